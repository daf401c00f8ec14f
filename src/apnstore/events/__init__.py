from .bus import EventBus, Subscription
from .domain_events import DomainEvent
from .apn_events import (
    ApnTableChanged,
    PreferredApnChanged,
    SchemaMigrated,
    SeedLoaded,
)

__all__ = [
    "ApnTableChanged",
    "DomainEvent",
    "EventBus",
    "PreferredApnChanged",
    "SchemaMigrated",
    "SeedLoaded",
    "Subscription",
]

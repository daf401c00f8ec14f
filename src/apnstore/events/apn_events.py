from dataclasses import dataclass
from typing import Optional

from .domain_events import DomainEvent


@dataclass(frozen=True)
class ApnTableChanged(DomainEvent):
    """Emitted after every committed mutation of the carriers table."""

    reason: str = ""
    sub_id: Optional[int] = None


@dataclass(frozen=True)
class SeedLoaded(DomainEvent):
    inserted: int = 0
    merged: int = 0
    skipped: int = 0
    purged: int = 0
    checksum: int = 0


@dataclass(frozen=True)
class SchemaMigrated(DomainEvent):
    from_version: int = 0
    to_version: int = 0
    rebuilt: bool = False


@dataclass(frozen=True)
class PreferredApnChanged(DomainEvent):
    sub_id: int = 0
    apn_id: int = -1

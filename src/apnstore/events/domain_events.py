from dataclasses import dataclass, field
from datetime import datetime
from uuid import uuid4


@dataclass(frozen=True)
class DomainEvent:
    """Base of every event published on the engine bus.

    ``source`` names the component that published the event.
    """

    event_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=datetime.now)
    source: str = "apnstore"

    @property
    def name(self) -> str:
        return type(self).__name__

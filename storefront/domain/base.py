"""Building blocks shared by the domain modules.

Value objects, aggregate roots keyed by a string id, and the domain
events the aggregates record. An event's payload is its own dataclass
fields, so event classes only declare a type and their fields.
"""

from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, ClassVar
from uuid import uuid4


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ValueObject:
    """Immutable value compared by its attributes."""


@dataclass(kw_only=True, eq=False)
class AggregateRoot:
    """Consistency boundary for one payment order or checkout session.

    Identity is the string id: two instances with the same id are the
    same aggregate whatever their state. Subclasses are declared with
    ``eq=False`` so they keep this comparison.

    Attributes:
        id: Identifier, also used as the storage key.
        version: Bumped on every state change; stored alongside the row.
        created_at: When the aggregate was created.
        updated_at: When it last changed.
    """

    id: str
    version: int = 1
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    _events: list["DomainEvent"] = field(default_factory=list, init=False, repr=False)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, type(self)):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash((type(self).__name__, self.id))

    @property
    def pending_events(self) -> tuple["DomainEvent", ...]:
        return tuple(self._events)

    def collect_events(self) -> list["DomainEvent"]:
        """Return the events recorded since the last call and forget them."""
        events, self._events = self._events, []
        return events

    def _record_event(self, event: "DomainEvent") -> None:
        self._events.append(event)

    def _touch(self) -> None:
        self.updated_at = utcnow()
        self.version += 1


_ENVELOPE_FIELDS = frozenset({"aggregate_id", "event_id", "occurred_at"})


@dataclass(frozen=True, kw_only=True)
class DomainEvent:
    """Something that happened to an aggregate.

    ``event_type`` is ``"<aggregate>.<what happened>"``, for example
    ``payment_order.paid``; the part before the dot names the aggregate.
    """

    event_type: ClassVar[str]

    aggregate_id: str
    event_id: str = field(default_factory=lambda: uuid4().hex)
    occurred_at: datetime = field(default_factory=utcnow)

    @property
    def aggregate_type(self) -> str:
        return self.event_type.partition(".")[0]

    def payload(self) -> dict[str, Any]:
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name not in _ENVELOPE_FIELDS
        }

    def to_dict(self) -> dict[str, Any]:
        """Flatten the event for logging."""
        return {
            "event_id": self.event_id,
            "event_type": self.event_type,
            "aggregate_type": self.aggregate_type,
            "aggregate_id": self.aggregate_id,
            "occurred_at": self.occurred_at.isoformat(),
            "payload": self.payload(),
        }

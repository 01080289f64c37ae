"""Domain events emitted by committed ledger and pool mutations.

Components return events alongside their results instead of logging
them implicitly. The service appends every event it receives to an
append-only EventLog for audit.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4


class EventKind(str, Enum):
    """Classification of domain events."""
    POST_CREATED = "post_created"
    POST_VERIFIED = "post_verified"
    POOL_DEPOSIT = "pool_deposit"
    POOL_SPONSORED = "pool_sponsored"
    PLATFORM_FEE_WITHDRAWN = "platform_fee_withdrawn"


@dataclass(frozen=True)
class DomainEvent:
    """A single immutable event."""
    kind: EventKind
    actor: str
    timestamp: datetime
    post_id: int | None = None
    payload: dict[str, Any] = field(default_factory=dict)
    event_id: UUID = field(default_factory=uuid4)

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": str(self.event_id),
            "kind": self.kind.value,
            "actor": self.actor,
            "timestamp": self.timestamp.isoformat(),
            "post_id": self.post_id,
            "payload": self.payload,
        }


# Receives each event while the emitting component still holds its lock,
# so sinks see events in commit order. Sinks must not call back into
# the component.
EventSink = Callable[[DomainEvent], None]


class EventLog:
    """In-memory append-only log of domain events.

    Events can only be appended, never modified or removed. Pass
    ``log.append`` as a component's ``on_commit`` sink to record events
    in the order the component committed them.
    """

    def __init__(self) -> None:
        self._events: list[DomainEvent] = []
        self._event_ids: set[UUID] = set()
        self._lock = threading.Lock()

    def append(self, event: DomainEvent) -> None:
        """Append an event.

        Raises ValueError on a duplicate event_id.
        """
        with self._lock:
            if event.event_id in self._event_ids:
                raise ValueError(f"Duplicate event ID: {event.event_id}")
            self._events.append(event)
            self._event_ids.add(event.event_id)

    def extend(self, events: list[DomainEvent]) -> None:
        for event in events:
            self.append(event)

    def events(
        self,
        kind: EventKind | None = None,
        post_id: int | None = None,
    ) -> list[DomainEvent]:
        """Return events in append order, optionally filtered."""
        with self._lock:
            result = list(self._events)
        if kind is not None:
            result = [e for e in result if e.kind == kind]
        if post_id is not None:
            result = [e for e in result if e.post_id == post_id]
        return result

    @property
    def count(self) -> int:
        with self._lock:
            return len(self._events)

    @property
    def last_event(self) -> DomainEvent | None:
        with self._lock:
            return self._events[-1] if self._events else None

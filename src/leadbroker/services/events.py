"""Domain events produced by state transitions.

Services never talk to delivery channels. Each operation returns the events it
wants emitted; callers dispatch them after the transaction commits.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Generic, TypeVar

from leadbroker.models.enums import NotificationKind
from leadbroker.services.clock import utcnow

T = TypeVar("T")


@dataclass(frozen=True)
class DomainEvent:
    recipient: str
    kind: NotificationKind
    job_id: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=utcnow)


@dataclass
class Outcome(Generic[T]):
    """Result of a core operation: the updated row plus events to emit."""

    value: T
    events: list[DomainEvent] = field(default_factory=list)

    def emit(
        self,
        recipient: str | None,
        kind: NotificationKind,
        job_id: str | None = None,
        *,
        at: datetime | None = None,
        **payload: Any,
    ) -> None:
        if not recipient:
            return
        self.events.append(
            DomainEvent(
                recipient=recipient,
                kind=kind,
                job_id=job_id,
                payload=payload,
                occurred_at=at or utcnow(),
            )
        )

    def absorb(self, other: "Outcome") -> None:
        self.events.extend(other.events)

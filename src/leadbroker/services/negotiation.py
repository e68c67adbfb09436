"""Final-price negotiation rules.

Negotiation is not its own entity: it only reads and writes the proposal
fields on a job. This module holds the window, the reminder cadence and the
checks shared by the lifecycle service and the reminder sweep.
"""

import math
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from sqlalchemy.ext.asyncio import AsyncSession

from leadbroker.db.base import MAX_MONEY
from leadbroker.db.models.job import JobRow
from leadbroker.errors.exceptions import InvalidTransitionError, ValidationError
from leadbroker.models.enums import JobAction, JobStatus, NotificationKind
from leadbroker.repositories.job_repo import JobRepository
from leadbroker.repositories.notification_repo import NotificationRepository
from leadbroker.services.clock import ensure_utc
from leadbroker.services.events import DomainEvent

NEGOTIATION_WINDOW = timedelta(days=7)

# Hours before the deadline at which the requester is reminded, largest first
REMINDER_THRESHOLDS_HOURS: tuple[int, ...] = (24, 12, 6, 2, 1)

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    """Coerce an amount to a two-place Decimal; NaN and infinities are rejected."""
    try:
        amount = Decimal(str(value))
        if not amount.is_finite():
            raise ValidationError(f"Invalid amount: {value!r}")
        amount = amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(f"Invalid amount: {value!r}") from exc
    if abs(amount) > MAX_MONEY:
        raise ValidationError(f"Amount exceeds {MAX_MONEY}: {value!r}")
    return amount


def validate_proposed_amount(amount) -> Decimal:
    """A proposal must be strictly positive."""
    money = to_money(amount)
    if money <= 0:
        raise InvalidTransitionError(
            "Final price must be greater than zero",
            action=JobAction.PROPOSE_FINAL_PRICE,
        )
    return money


def has_pending_proposal(job: JobRow) -> bool:
    return job.status == JobStatus.AWAITING_SETTLEMENT and job.proposed_final_amount is not None


def deadline_for(proposed_at: datetime) -> datetime:
    return proposed_at + NEGOTIATION_WINDOW


def is_expired(job: JobRow, now: datetime) -> bool:
    """True when a pending proposal has reached its deadline."""
    if not has_pending_proposal(job) or job.negotiation_deadline is None:
        return False
    return ensure_utc(now) >= ensure_utc(job.negotiation_deadline)


def hours_remaining(job: JobRow, now: datetime) -> float | None:
    if job.negotiation_deadline is None:
        return None
    delta = ensure_utc(job.negotiation_deadline) - ensure_utc(now)
    return delta.total_seconds() / 3600


def reminder_threshold(remaining_hours: float | None) -> int | None:
    """The tightest reminder threshold already crossed, or None if none is due.

    With 5 hours left the 6h threshold is the current one; with 30 hours left
    no reminder is due yet.
    """
    if remaining_hours is None or remaining_hours <= 0:
        return None
    remaining = math.ceil(remaining_hours)
    for threshold in sorted(REMINDER_THRESHOLDS_HOURS):
        if remaining <= threshold:
            return threshold
    return None


async def due_reminder(session: AsyncSession, job_id: str, now: datetime) -> DomainEvent | None:
    """The reminder the requester should get now for ``job_id``, if any.

    At most one reminder goes out per threshold: a FINAL_PRICE_REMINDER
    already recorded since the threshold was crossed suppresses another.
    """
    job = await JobRepository(session).get(job_id)
    if job is None or not has_pending_proposal(job):
        return None
    threshold = reminder_threshold(hours_remaining(job, now))
    if threshold is None:
        return None

    deadline = ensure_utc(job.negotiation_deadline)
    crossed_at = deadline - timedelta(hours=threshold)
    already_sent = await NotificationRepository(session).exists_since(
        job.requester_id, NotificationKind.FINAL_PRICE_REMINDER, job_id, crossed_at
    )
    if already_sent:
        return None
    return DomainEvent(
        recipient=job.requester_id,
        kind=NotificationKind.FINAL_PRICE_REMINDER,
        job_id=job_id,
        payload={
            "threshold_hours": threshold,
            "amount": str(job.proposed_final_amount),
            "deadline": deadline.isoformat(),
        },
        occurred_at=now,
    )

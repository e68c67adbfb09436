"""Job lifecycle transition table.

All status changes go through ``next_status``; any (status, action) pair not
listed here is rejected in one place.

    OPEN -> ASSIGNED -> IN_PROGRESS -> AWAITING_SETTLEMENT -> COMPLETED
                              ^                |
                              +---- reject ----+

    any non-terminal state, or COMPLETED inside the dispute window -> DISPUTED
    DISPUTED -> status held before the dispute, or COMPLETED
"""

from leadbroker.errors.exceptions import InvalidTransitionError
from leadbroker.models.enums import JobAction, JobStatus

TRANSITIONS: dict[tuple[JobStatus, JobAction], JobStatus] = {
    (JobStatus.OPEN, JobAction.SELECT_PROVIDER): JobStatus.ASSIGNED,
    (JobStatus.OPEN, JobAction.CONFIRM_WINNER): JobStatus.ASSIGNED,
    (JobStatus.ASSIGNED, JobAction.CONFIRM_START): JobStatus.IN_PROGRESS,
    (JobStatus.IN_PROGRESS, JobAction.PROPOSE_FINAL_PRICE): JobStatus.AWAITING_SETTLEMENT,
    (JobStatus.AWAITING_SETTLEMENT, JobAction.ACCEPT_FINAL_PRICE): JobStatus.COMPLETED,
    (JobStatus.AWAITING_SETTLEMENT, JobAction.REJECT_FINAL_PRICE): JobStatus.IN_PROGRESS,
    (JobStatus.AWAITING_SETTLEMENT, JobAction.AUTO_CONFIRM_FINAL_PRICE): JobStatus.COMPLETED,
    (JobStatus.AWAITING_SETTLEMENT, JobAction.OVERRIDE_FINAL_PRICE): JobStatus.COMPLETED,
    (JobStatus.OPEN, JobAction.RAISE_DISPUTE): JobStatus.DISPUTED,
    (JobStatus.ASSIGNED, JobAction.RAISE_DISPUTE): JobStatus.DISPUTED,
    (JobStatus.IN_PROGRESS, JobAction.RAISE_DISPUTE): JobStatus.DISPUTED,
    (JobStatus.AWAITING_SETTLEMENT, JobAction.RAISE_DISPUTE): JobStatus.DISPUTED,
    (JobStatus.COMPLETED, JobAction.RAISE_DISPUTE): JobStatus.DISPUTED,
    # A further dispute on an already disputed job keeps it disputed
    (JobStatus.DISPUTED, JobAction.RAISE_DISPUTE): JobStatus.DISPUTED,
}

# Where a resolved dispute may send the job
RESOLUTION_TARGETS: frozenset[JobStatus] = frozenset({
    JobStatus.OPEN,
    JobStatus.ASSIGNED,
    JobStatus.IN_PROGRESS,
    JobStatus.AWAITING_SETTLEMENT,
    JobStatus.COMPLETED,
})

TERMINAL_STATUSES: frozenset[JobStatus] = frozenset({JobStatus.COMPLETED})


def next_status(current: str, action: JobAction, target: JobStatus | None = None) -> JobStatus:
    """Return the status ``action`` leads to from ``current`` or raise.

    ``target`` is only meaningful for RESOLVE_DISPUTE, whose destination is
    chosen by the resolution rather than fixed by the table.
    """
    try:
        status = JobStatus(current)
    except ValueError:
        raise InvalidTransitionError(f"Unknown job status '{current}'", current, action) from None

    if action == JobAction.RESOLVE_DISPUTE:
        if status != JobStatus.DISPUTED:
            raise InvalidTransitionError(
                f"Cannot resolve a dispute on a job in status '{status}'", status, action
            )
        if target not in RESOLUTION_TARGETS:
            raise InvalidTransitionError(
                f"A resolved dispute cannot move the job to '{target}'", status, action
            )
        return target

    nxt = TRANSITIONS.get((status, action))
    if nxt is None:
        raise InvalidTransitionError(
            f"Cannot {action.replace('_', ' ')} while job is '{status}'", status, action
        )
    return nxt


def allowed_actions(current: str) -> list[JobAction]:
    """Actions the table permits from ``current`` (reported on job responses)."""
    status = JobStatus(current)
    actions = [action for (src, action) in TRANSITIONS if src == status]
    if status == JobStatus.DISPUTED:
        actions.append(JobAction.RESOLVE_DISPUTE)
    return actions

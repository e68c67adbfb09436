"""Dispute escalation: the human-arbitrated branch of the job pipeline.

Raising a dispute parks the job in DISPUTED, remembering where it was. While
any dispute on the job is OPEN or UNDER_REVIEW the transition table blocks
every forward action. Resolving the last active dispute puts the job back
according to the resolution options.
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from leadbroker.db.models.dispute import DisputeResponseRow, DisputeRow
from leadbroker.db.models.job import JobRow
from leadbroker.errors.exceptions import (
    AuthorizationError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from leadbroker.models.enums import (
    DisputeResolution,
    DisputeStatus,
    DisputeType,
    JobAction,
    JobStatus,
    NotificationKind,
    Role,
)
from leadbroker.repositories.access_grant_repo import AccessGrantRepository
from leadbroker.repositories.dispute_repo import (
    ACTIVE_DISPUTE_STATUSES,
    DisputeRepository,
    DisputeResponseRepository,
)
from leadbroker.services import negotiation
from leadbroker.services.actors import Actor
from leadbroker.services.clock import ensure_utc, utcnow
from leadbroker.services.config_provider import ConfigProvider
from leadbroker.services.events import Outcome
from leadbroker.services.id_generator import DISPUTE_PREFIX, generate_id
from leadbroker.services.job_lifecycle import JobLifecycle

logger = logging.getLogger(__name__)

DISPUTE_WINDOW = timedelta(days=30)


class DisputeService:
    def __init__(self, session: AsyncSession, config: ConfigProvider):
        self.session = session
        self.lifecycle = JobLifecycle(session, config)
        self.disputes = DisputeRepository(session)
        self.responses = DisputeResponseRepository(session)
        self.grants = AccessGrantRepository(session)

    @staticmethod
    def _party_role(job: JobRow, actor: Actor) -> Role | None:
        if actor.user_id == job.requester_id:
            return Role.REQUESTER
        if actor.provider_id and actor.provider_id == job.assigned_provider_id:
            return Role.PROVIDER
        return None

    async def _get(self, dispute_id: str) -> DisputeRow:
        dispute = await self.disputes.get(dispute_id)
        if not dispute:
            raise NotFoundError("Dispute", dispute_id)
        return dispute

    async def _load_visible(self, dispute_id: str, actor: Actor) -> tuple[DisputeRow, JobRow, Role]:
        dispute = await self._get(dispute_id)
        job = await self.lifecycle.get_job(dispute.job_id)
        role = Role.ARBITRATOR if actor.is_arbitrator else self._party_role(job, actor)
        if role is None:
            raise AuthorizationError("Only the parties to the job or an arbitrator can see this dispute")
        return dispute, job, role

    @staticmethod
    def _counterparties(job: JobRow, exclude: str | None) -> list[str]:
        parties = [job.requester_id, job.assigned_provider_id]
        return [p for p in parties if p and p != exclude]

    async def raise_dispute(
        self,
        job_id: str,
        actor: Actor,
        dispute_type: DisputeType,
        title: str,
        description: str,
        priority: str = "medium",
        now: datetime | None = None,
    ) -> Outcome[DisputeRow]:
        """Open a dispute and force the job into DISPUTED.

        Only the requester or the assigned provider may raise one. A
        completed job can be disputed for a limited window after completion;
        its final amount and settlement are left untouched.
        """
        now = now or utcnow()
        job = await self.lifecycle.get_job(job_id)
        role = self._party_role(job, actor)
        if role is None:
            raise AuthorizationError("Only the requester or the assigned provider can raise a dispute")

        if job.status == JobStatus.COMPLETED:
            completed_at = ensure_utc(job.completed_at)
            if completed_at is None or now - completed_at > DISPUTE_WINDOW:
                raise InvalidTransitionError(
                    "The dispute window for this job has closed", job.status, JobAction.RAISE_DISPUTE
                )

        if job.status != JobStatus.DISPUTED:
            await self.lifecycle.transition(
                job,
                JobAction.RAISE_DISPUTE,
                actor,
                status_before_dispute=job.status,
            )

        dispute = await self.disputes.create(
            dispute_id=generate_id(DISPUTE_PREFIX),
            job_id=job_id,
            raised_by=actor.user_id,
            role=role,
            dispute_type=dispute_type,
            title=title,
            description=description,
            priority=priority,
            status=DisputeStatus.OPEN,
            credit_refunded=False,
        )
        logger.info(
            "Dispute raised: dispute=%s job=%s by=%s role=%s type=%s",
            dispute.dispute_id, job_id, actor.user_id, role, dispute_type,
        )

        outcome = Outcome(dispute)
        for party in self._counterparties(job, actor.provider_id if role == Role.PROVIDER else actor.user_id):
            outcome.emit(party, NotificationKind.DISPUTE_RAISED, job_id, at=now,
                         dispute_id=dispute.dispute_id, title=title)
        return outcome

    async def get_dispute(self, dispute_id: str, actor: Actor) -> DisputeRow:
        dispute, _, _ = await self._load_visible(dispute_id, actor)
        return dispute

    async def add_response(
        self, dispute_id: str, actor: Actor, message: str, internal: bool = False
    ) -> Outcome[DisputeResponseRow]:
        """Append a response; the first one moves the dispute under review."""
        dispute, job, role = await self._load_visible(dispute_id, actor)
        if internal and role != Role.ARBITRATOR:
            raise AuthorizationError("Only arbitrators can post internal responses")
        if dispute.status == DisputeStatus.RESOLVED:
            raise InvalidTransitionError("Dispute is already resolved", dispute.status, "respond")

        now = utcnow()
        response = await self.responses.create(
            dispute_id=dispute_id,
            author_id=actor.user_id,
            author_role=role,
            message=message,
            internal=internal,
            created_at=now,
        )
        if dispute.status == DisputeStatus.OPEN:
            await self.disputes.guarded_update(
                dispute,
                [DisputeRow.status == DisputeStatus.OPEN],
                status=DisputeStatus.UNDER_REVIEW,
            )

        outcome = Outcome(response)
        if not internal:
            author = actor.provider_id if role == Role.PROVIDER else actor.user_id
            for party in self._counterparties(job, author):
                outcome.emit(party, NotificationKind.DISPUTE_RESPONSE, job.job_id, at=now,
                             dispute_id=dispute_id)
        return outcome

    async def list_responses(self, dispute_id: str, actor: Actor) -> list[DisputeResponseRow]:
        """Responses in order; internal ones only for arbitrators."""
        _, _, role = await self._load_visible(dispute_id, actor)
        return await self.responses.list_for_dispute(dispute_id, include_internal=role == Role.ARBITRATOR)

    async def resolve_dispute(
        self,
        dispute_id: str,
        actor: Actor,
        resolution: DisputeResolution,
        notes: str | None = None,
        reverse_credit: bool = False,
        commission_amount: Decimal | None = None,
        complete_job: bool = False,
        reopen_job: bool = False,
        now: datetime | None = None,
    ) -> Outcome[DisputeRow]:
        """Close a dispute and apply its consequences in one transaction.

        ``reverse_credit`` refunds the assigned provider's access credit,
        ``commission_amount`` re-prices the job's commission (zero waives it),
        ``complete_job`` forces COMPLETED and ``reopen_job`` sends the job back
        to OPEN without a provider. With neither, the job returns to the status
        it held before the dispute. The job stays DISPUTED while any other
        dispute on it is still active.
        """
        if not actor.is_arbitrator:
            raise AuthorizationError("Only an arbitrator can resolve a dispute")
        if complete_job and reopen_job:
            raise ValidationError("complete_job and reopen_job cannot both be set")
        now = now or utcnow()

        dispute = await self._get(dispute_id)
        job = await self.lifecycle.get_job(dispute.job_id)
        closed = await self.disputes.guarded_update(
            dispute,
            [DisputeRow.status.in_(ACTIVE_DISPUTE_STATUSES)],
            status=DisputeStatus.RESOLVED,
            resolution=resolution,
            resolution_notes=notes,
            resolved_by=actor.user_id,
            resolved_at=now,
        )
        if not closed:
            raise InvalidTransitionError("Dispute is already resolved", dispute.status, JobAction.RESOLVE_DISPUTE)

        outcome = Outcome(dispute)

        if reverse_credit:
            if not job.assigned_provider_id:
                raise ValidationError("The job has no assigned provider to refund")
            refund = await self.lifecycle.ledger.reverse(
                job.job_id, job.assigned_provider_id, reference=dispute_id, actor_id=actor.user_id
            )
            outcome.absorb(refund)
            await self.disputes.update(dispute, credit_refunded=refund.value)

        if commission_amount is not None:
            amount = negotiation.to_money(commission_amount)
            if amount < 0:
                raise ValidationError("Commission amount cannot be negative")
            adjusted = await self.lifecycle.commissions.adjust(job.job_id, amount)
            if adjusted is None:
                raise ValidationError("The job has no commission to adjust")
            await self.disputes.update(dispute, commission_adjusted_to=amount)

        parties = self._counterparties(job, None)
        remaining = await self.disputes.count_active_for_job(job.job_id)
        if job.status == JobStatus.DISPUTED and remaining == 0:
            outcome.absorb(await self._restore_job(job, actor, now, complete_job, reopen_job))
        elif complete_job or reopen_job:
            logger.info(
                "Job stays disputed, %d other dispute(s) active: job=%s", remaining, job.job_id
            )

        logger.info(
            "Dispute resolved: dispute=%s job=%s resolution=%s by=%s",
            dispute_id, job.job_id, resolution, actor.user_id,
        )
        for party in parties:
            outcome.emit(party, NotificationKind.DISPUTE_RESOLVED, job.job_id, at=now,
                         dispute_id=dispute_id, resolution=str(resolution))
        return outcome

    async def _restore_job(
        self, job: JobRow, actor: Actor, now: datetime, complete_job: bool, reopen_job: bool
    ) -> Outcome[JobRow]:
        if complete_job and job.final_amount is None:
            return await self.lifecycle.complete_disputed(job, actor, now)

        if complete_job:
            target = JobStatus.COMPLETED
        elif reopen_job:
            if job.final_amount is not None:
                raise InvalidTransitionError(
                    "A completed job cannot be reopened", job.status, JobAction.RESOLVE_DISPUTE
                )
            return await self._reopen(job, actor)
        elif job.status_before_dispute:
            target = JobStatus(job.status_before_dispute)
        else:
            target = JobStatus.COMPLETED if job.final_amount is not None else JobStatus.OPEN

        values = {"status_before_dispute": None}
        if target == JobStatus.AWAITING_SETTLEMENT:
            # Negotiation window restarts from the resolution
            values["negotiation_deadline"] = negotiation.deadline_for(now)
        await self.lifecycle.transition(job, JobAction.RESOLVE_DISPUTE, actor, target=target, **values)
        return Outcome(job)

    async def _reopen(self, job: JobRow, actor: Actor) -> Outcome[JobRow]:
        previous = job.assigned_provider_id
        await self.lifecycle.transition(
            job,
            JobAction.RESOLVE_DISPUTE,
            actor,
            target=JobStatus.OPEN,
            assigned_provider_id=None,
            assigned_at=None,
            started_at=None,
            proposed_final_amount=None,
            proposed_at=None,
            negotiation_deadline=None,
            status_before_dispute=None,
        )
        if previous:
            grant = await self.grants.get_for(job.job_id, previous)
            if grant and grant.claimed_win:
                await self.grants.update(grant, claimed_win=False, claimed_at=None)
        logger.info("Job reopened by dispute resolution: job=%s previous_provider=%s", job.job_id, previous)
        return Outcome(job)

"""Job lifecycle service: every status change a job goes through.

Each operation loads the job, checks who is calling, asks the transition
table for the next status and then writes it with a guarded update that
re-checks the current status in the same statement. A caller that loses a
race gets ``InvalidTransitionError`` and nothing is written.

Operations return an ``Outcome`` carrying the updated ``JobRow`` and the
notifications to send once the caller has committed.
"""

import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from leadbroker.db.models.job import JobRow
from leadbroker.errors.exceptions import (
    AuthorizationError,
    ConflictingClaimError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from leadbroker.models.enums import (
    FinalPriceDecisionValue,
    JobAction,
    JobStatus,
    NotificationKind,
    ProviderStatus,
)
from leadbroker.repositories.job_repo import JobRepository
from leadbroker.repositories.provider_repo import ProviderRepository
from leadbroker.services import negotiation
from leadbroker.services.access_ledger import AccessLedger
from leadbroker.services.actors import SYSTEM_ACTOR, SYSTEM_ACTOR_ID, Actor
from leadbroker.services.clock import utcnow
from leadbroker.services.commission_engine import CommissionEngine
from leadbroker.services.config_provider import ConfigProvider
from leadbroker.services.events import Outcome
from leadbroker.services.id_generator import JOB_PREFIX, generate_id
from leadbroker.services.state_machine import next_status

logger = logging.getLogger(__name__)

AUTO_CONFIRM_REASON = "Negotiation deadline elapsed without a response"


class JobLifecycle:
    def __init__(self, session: AsyncSession, config: ConfigProvider):
        self.session = session
        self.config = config
        self.jobs = JobRepository(session)
        self.providers = ProviderRepository(session)
        self.ledger = AccessLedger(session)
        self.commissions = CommissionEngine(session, config)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def get_job(self, job_id: str) -> JobRow:
        job = await self.jobs.get(job_id)
        if not job:
            raise NotFoundError("Job", job_id)
        return job

    @staticmethod
    def _require_requester(job: JobRow, actor: Actor) -> None:
        if actor.user_id != job.requester_id:
            raise AuthorizationError("Only the job's requester can do this")

    async def _require_assigned_provider(self, job: JobRow, actor: Actor) -> None:
        if not actor.provider_id or actor.provider_id != job.assigned_provider_id:
            raise AuthorizationError("Only the assigned provider can do this")
        await self.ledger.require_access(job.job_id, actor.provider_id)

    async def transition(
        self,
        job: JobRow,
        action: JobAction,
        actor: Actor,
        conditions: tuple = (),
        target: JobStatus | None = None,
        **values,
    ) -> JobStatus:
        """Move ``job`` along the transition table, writing ``values`` with it."""
        current = job.status
        nxt = next_status(current, action, target)
        won = await self.jobs.guarded_update(
            job,
            [JobRow.status == current, *conditions],
            status=nxt,
            **values,
        )
        if not won:
            raise InvalidTransitionError(
                f"Job '{job.job_id}' changed while trying to {action.replace('_', ' ')}",
                job.status,
                action,
            )
        logger.info(
            "Job transition: job=%s %s -> %s action=%s actor=%s",
            job.job_id, current, nxt, action, actor.user_id,
        )
        return nxt

    # ------------------------------------------------------------------
    # Posting and winner selection
    # ------------------------------------------------------------------

    async def post_job(
        self,
        actor: Actor,
        title: str,
        description: str | None = None,
        budget: Decimal | None = None,
    ) -> Outcome[JobRow]:
        if budget is not None:
            budget = negotiation.to_money(budget)
            if budget < 0:
                raise ValidationError("Budget cannot be negative")
        job = await self.jobs.create(
            job_id=generate_id(JOB_PREFIX),
            requester_id=actor.user_id,
            title=title,
            description=description,
            status=JobStatus.OPEN,
            budget=budget,
            requester_confirmed=False,
            commission_settled=False,
        )
        logger.info("Job posted: job=%s requester=%s", job.job_id, actor.user_id)
        return Outcome(job)

    async def _assign_winner(
        self, job: JobRow, provider_id: str, action: JobAction, actor: Actor
    ) -> Outcome[JobRow]:
        """Single write path shared by direct selection and claim confirmation."""
        if not await self.ledger.has_access(job.job_id, provider_id):
            raise InvalidTransitionError(
                f"Provider '{provider_id}' has no access grant for this job", job.status, action
            )
        provider = await self.providers.get(provider_id)
        if provider is None:
            raise NotFoundError("Provider", provider_id)
        if provider.status == ProviderStatus.SUSPENDED:
            raise InvalidTransitionError(f"Provider '{provider_id}' is suspended", job.status, action)

        now = utcnow()
        await self.transition(
            job,
            action,
            actor,
            conditions=(JobRow.assigned_provider_id.is_(None),),
            assigned_provider_id=provider_id,
            assigned_at=now,
        )
        outcome = Outcome(job)
        outcome.emit(provider_id, NotificationKind.PROVIDER_SELECTED, job.job_id, at=now, title=job.title)
        return outcome

    async def select_provider(self, job_id: str, actor: Actor, provider_id: str) -> Outcome[JobRow]:
        """Requester picks a provider who holds an access grant, claimed or not."""
        job = await self.get_job(job_id)
        self._require_requester(job, actor)
        return await self._assign_winner(job, provider_id, JobAction.SELECT_PROVIDER, actor)

    async def confirm_winner(
        self, job_id: str, actor: Actor, provider_id: str | None = None
    ) -> Outcome[JobRow]:
        """Requester confirms a provider's win claim.

        Without ``provider_id`` this only succeeds when exactly one provider
        has claimed; several claimants must be disambiguated by id.
        """
        job = await self.get_job(job_id)
        self._require_requester(job, actor)
        next_status(job.status, JobAction.CONFIRM_WINNER)

        claims = await self.ledger.list_claims(job_id)
        claimant_ids = [c.provider_id for c in claims]
        if provider_id is None:
            if not claimant_ids:
                raise InvalidTransitionError("No provider has claimed this job", job.status,
                                             JobAction.CONFIRM_WINNER)
            if len(claimant_ids) > 1:
                raise ConflictingClaimError(claimant_ids)
            provider_id = claimant_ids[0]
        elif provider_id not in claimant_ids:
            raise InvalidTransitionError(
                f"Provider '{provider_id}' has not claimed this job", job.status, JobAction.CONFIRM_WINNER
            )
        return await self._assign_winner(job, provider_id, JobAction.CONFIRM_WINNER, actor)

    async def confirm_start(self, job_id: str, actor: Actor) -> Outcome[JobRow]:
        job = await self.get_job(job_id)
        self._require_requester(job, actor)
        now = utcnow()
        await self.transition(job, JobAction.CONFIRM_START, actor, started_at=now)
        outcome = Outcome(job)
        outcome.emit(job.assigned_provider_id, NotificationKind.JOB_STARTED, job.job_id, at=now)
        return outcome

    # ------------------------------------------------------------------
    # Final-price negotiation
    # ------------------------------------------------------------------

    async def propose_final_price(self, job_id: str, actor: Actor, amount) -> Outcome[JobRow]:
        job = await self.get_job(job_id)
        await self._require_assigned_provider(job, actor)
        money = negotiation.validate_proposed_amount(amount)
        if negotiation.has_pending_proposal(job):
            raise InvalidTransitionError(
                "A final price proposal is already pending", job.status, JobAction.PROPOSE_FINAL_PRICE
            )

        now = utcnow()
        deadline = negotiation.deadline_for(now)
        await self.transition(
            job,
            JobAction.PROPOSE_FINAL_PRICE,
            actor,
            conditions=(JobRow.proposed_final_amount.is_(None),),
            proposed_final_amount=money,
            proposed_at=now,
            negotiation_deadline=deadline,
        )
        outcome = Outcome(job)
        outcome.emit(
            job.requester_id,
            NotificationKind.FINAL_PRICE_PROPOSED,
            job.job_id,
            at=now,
            amount=str(money),
            deadline=deadline.isoformat(),
        )
        return outcome

    async def confirm_final_price(
        self,
        job_id: str,
        actor: Actor,
        decision: FinalPriceDecisionValue,
        reason: str | None = None,
    ) -> Outcome[JobRow]:
        """Requester accepts or rejects the pending proposal."""
        job = await self.get_job(job_id)
        self._require_requester(job, actor)

        if decision == FinalPriceDecisionValue.REJECT:
            return await self._reject(job, actor, reason)

        now = utcnow()
        outcome = await self._complete(
            job,
            JobAction.ACCEPT_FINAL_PRICE,
            actor,
            now,
            confirmed_by=actor.user_id,
            requester_confirmed=True,
        )
        for party in (job.requester_id, job.assigned_provider_id):
            outcome.emit(party, NotificationKind.JOB_COMPLETED, job.job_id, at=now,
                         final_amount=str(job.final_amount))
        return outcome

    async def _reject(self, job: JobRow, actor: Actor, reason: str | None) -> Outcome[JobRow]:
        if not reason or not reason.strip():
            raise ValidationError("A reason is required to reject a final price")
        now = utcnow()
        rejected_amount = job.proposed_final_amount
        await self.transition(
            job,
            JobAction.REJECT_FINAL_PRICE,
            actor,
            conditions=(JobRow.proposed_final_amount.is_not(None),),
            proposed_final_amount=None,
            proposed_at=None,
            negotiation_deadline=None,
            final_price_rejected_at=now,
            final_price_rejection_reason=reason.strip(),
        )
        outcome = Outcome(job)
        outcome.emit(
            job.assigned_provider_id,
            NotificationKind.FINAL_PRICE_REJECTED,
            job.job_id,
            at=now,
            amount=str(rejected_amount) if rejected_amount is not None else None,
            reason=reason.strip(),
        )
        return outcome

    async def admin_override_final_price(self, job_id: str, actor: Actor, reason: str) -> Outcome[JobRow]:
        """Arbitrator closes a stuck negotiation at the proposed price."""
        if not actor.is_arbitrator:
            raise AuthorizationError("Only an arbitrator can override a final price")
        if not reason or not reason.strip():
            raise ValidationError("A reason is required to override a final price")
        job = await self.get_job(job_id)

        now = utcnow()
        outcome = await self._complete(
            job,
            JobAction.OVERRIDE_FINAL_PRICE,
            actor,
            now,
            confirmed_by=actor.user_id,
            requester_confirmed=False,
            override_by=actor.user_id,
            override_at=now,
            override_reason=reason.strip(),
        )
        for party in (job.requester_id, job.assigned_provider_id):
            outcome.emit(party, NotificationKind.FINAL_PRICE_OVERRIDDEN, job.job_id, at=now,
                         final_amount=str(job.final_amount), reason=reason.strip())
        return outcome

    async def auto_confirm(self, job_id: str, now: datetime | None = None) -> Outcome[JobRow]:
        """Timeout path: confirm a proposal whose deadline has passed, as the system.

        Returns an outcome with no events when the job no longer qualifies
        (someone else already confirmed, rejected or disputed it).
        """
        now = now or utcnow()
        job = await self.get_job(job_id)
        if not negotiation.is_expired(job, now):
            logger.info("Auto-confirm skipped: job=%s status=%s", job_id, job.status)
            return Outcome(job)

        outcome = await self._complete(
            job,
            JobAction.AUTO_CONFIRM_FINAL_PRICE,
            SYSTEM_ACTOR,
            now,
            extra_conditions=(JobRow.negotiation_deadline <= now,),
            confirmed_by=SYSTEM_ACTOR_ID,
            requester_confirmed=True,
            override_by=SYSTEM_ACTOR_ID,
            override_at=now,
            override_reason=AUTO_CONFIRM_REASON,
        )
        for party in (job.requester_id, job.assigned_provider_id):
            outcome.emit(party, NotificationKind.FINAL_PRICE_AUTO_CONFIRMED, job.job_id, at=now,
                         final_amount=str(job.final_amount))
        return outcome

    async def _complete(
        self,
        job: JobRow,
        action: JobAction,
        actor: Actor,
        now: datetime,
        extra_conditions: tuple = (),
        target: JobStatus | None = None,
        **values,
    ) -> Outcome[JobRow]:
        """Close the negotiation at the proposed price and settle commission.

        The status write and the commission evaluation share the caller's
        transaction, so either both land or neither does.
        """
        if job.proposed_final_amount is None:
            raise InvalidTransitionError("There is no pending final price to confirm", job.status, action)
        final_amount = job.proposed_final_amount

        await self.transition(
            job,
            action,
            actor,
            conditions=(
                JobRow.proposed_final_amount.is_not(None),
                JobRow.final_amount.is_(None),
                *extra_conditions,
            ),
            target=target,
            final_amount=final_amount,
            confirmed_at=now,
            completed_at=now,
            **values,
        )
        outcome = Outcome(job)
        settlement = await self.commissions.settle(job, final_amount, now)
        outcome.absorb(settlement)
        return outcome

    async def complete_disputed(self, job: JobRow, actor: Actor, now: datetime) -> Outcome[JobRow]:
        """Resolution path that closes a disputed job that never completed."""
        outcome = await self._complete(
            job,
            JobAction.RESOLVE_DISPUTE,
            actor,
            now,
            target=JobStatus.COMPLETED,
            confirmed_by=actor.user_id,
            requester_confirmed=False,
            override_by=actor.user_id,
            override_at=now,
            override_reason="Completed by dispute resolution",
            status_before_dispute=None,
        )
        for party in (job.requester_id, job.assigned_provider_id):
            outcome.emit(party, NotificationKind.JOB_COMPLETED, job.job_id, at=now,
                         final_amount=str(job.final_amount))
        return outcome

"""Access ledger: which providers may act on which jobs, and how they got there.

A subscription never grants access by itself; every provider interaction with
a job must be backed by an ``AccessGrantRow``. The commission engine reads the
same row to decide whether a fee is owed.
"""

import logging
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from leadbroker.db.models.access_grant import AccessGrantRow
from leadbroker.db.models.job import JobRow
from leadbroker.db.models.provider import ProviderRow
from leadbroker.errors.exceptions import (
    AuthorizationError,
    ConflictError,
    InsufficientCreditsError,
    InvalidTransitionError,
    NotFoundError,
)
from leadbroker.models.enums import (
    AccessMethod,
    CreditTransactionType,
    JobStatus,
    NotificationKind,
    ProviderStatus,
)
from leadbroker.repositories.access_grant_repo import AccessGrantRepository
from leadbroker.repositories.job_repo import JobRepository
from leadbroker.repositories.provider_repo import CreditTransactionRepository, ProviderRepository
from leadbroker.services.clock import utcnow
from leadbroker.services.events import Outcome

logger = logging.getLogger(__name__)

CREDITS_PER_ACCESS = 1


class AccessLedger:
    """Grants, lookups, win claims and dispute reversals for (job, provider) pairs."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.grants = AccessGrantRepository(session)
        self.jobs = JobRepository(session)
        self.providers = ProviderRepository(session)
        self.transactions = CreditTransactionRepository(session)

    async def get_job(self, job_id: str) -> JobRow:
        job = await self.jobs.get(job_id)
        if not job:
            raise NotFoundError("Job", job_id)
        return job

    async def _get_active_provider(self, provider_id: str) -> ProviderRow:
        provider = await self.providers.get(provider_id)
        if not provider:
            raise NotFoundError("Provider", provider_id)
        if provider.status == ProviderStatus.SUSPENDED:
            raise AuthorizationError(f"Provider '{provider_id}' is suspended")
        return provider

    async def _log_credit(
        self,
        provider_id: str,
        transaction_type: CreditTransactionType,
        amount: int,
        description: str,
        job_id: str | None = None,
        actor_id: str | None = None,
        at: datetime | None = None,
    ) -> None:
        await self.transactions.create(
            provider_id=provider_id,
            transaction_type=transaction_type,
            amount=amount,
            job_id=job_id,
            description=description,
            actor_id=actor_id,
            created_at=at or utcnow(),
        )

    async def grant_access(
        self,
        job_id: str,
        provider_id: str,
        method: AccessMethod,
        payment_reference: str | None = None,
    ) -> Outcome[AccessGrantRow]:
        """Record that ``provider_id`` obtained the right to act on ``job_id``.

        Fails if a grant already exists for the pair. CREDIT spends one credit
        from the provider's balance in the same transaction as the grant.
        """
        job = await self.get_job(job_id)
        if job.status != JobStatus.OPEN:
            raise InvalidTransitionError(
                f"Access can only be granted on open jobs (job is '{job.status}')",
                job.status,
                "grant_access",
            )
        provider = await self._get_active_provider(provider_id)

        if await self.grants.get_for(job_id, provider_id):
            raise ConflictError(f"Provider '{provider_id}' already has access to job '{job_id}'")

        now = utcnow()
        credit_consumed = False
        if method == AccessMethod.CREDIT:
            if not await self.providers.adjust_credits(provider, -CREDITS_PER_ACCESS):
                raise InsufficientCreditsError(provider_id, provider.credits_balance)
            await self._log_credit(
                provider_id,
                CreditTransactionType.DEDUCTION,
                -CREDITS_PER_ACCESS,
                f"Access to job {job_id}",
                job_id=job_id,
                actor_id=provider.user_id,
                at=now,
            )
            credit_consumed = True
        elif method == AccessMethod.SUBSCRIPTION_SLOT:
            if not provider.subscription_active:
                raise AuthorizationError("Subscription slot access requires an active subscription")

        try:
            grant = await self.grants.create(
                job_id=job_id,
                provider_id=provider_id,
                method=method,
                credit_consumed=credit_consumed,
                payment_reference=payment_reference,
                claimed_win=False,
                granted_at=now,
            )
        except IntegrityError:
            # A concurrent request committed a grant for the pair after our check;
            # drop this attempt, credit debit included
            await self.session.rollback()
            logger.info("Concurrent duplicate grant: job=%s provider=%s", job_id, provider_id)
            raise ConflictError(f"Provider '{provider_id}' already has access to job '{job_id}'")
        logger.info(
            "Access granted: job=%s provider=%s method=%s", job_id, provider_id, method
        )

        outcome = Outcome(grant)
        outcome.emit(provider_id, NotificationKind.ACCESS_GRANTED, job_id, at=now, method=str(method))
        return outcome

    async def has_access(self, job_id: str, provider_id: str | None) -> bool:
        if not provider_id:
            return False
        return await self.grants.get_for(job_id, provider_id) is not None

    async def require_access(self, job_id: str, provider_id: str | None) -> AccessGrantRow:
        """Return the grant or raise; every provider-side job action calls this first."""
        grant = await self.grants.get_for(job_id, provider_id) if provider_id else None
        if grant is None:
            raise AuthorizationError(f"Provider has no access grant for job '{job_id}'")
        return grant

    async def list_grants(self, job_id: str) -> list[AccessGrantRow]:
        return await self.grants.list_by_job(job_id)

    async def claim_win(self, job_id: str, provider_id: str) -> Outcome[AccessGrantRow]:
        """Mark the provider's grant as claiming the win.

        Several providers may claim independently; claiming again is a no-op.
        """
        job = await self.get_job(job_id)
        grant = await self.require_access(job_id, provider_id)
        await self._get_active_provider(provider_id)

        if job.status != JobStatus.OPEN or job.assigned_provider_id:
            raise InvalidTransitionError(
                "A winner has already been confirmed for this job", job.status, "claim_win"
            )

        outcome = Outcome(grant)
        if grant.claimed_win:
            return outcome

        now = utcnow()
        await self.grants.update(grant, claimed_win=True, claimed_at=now)
        logger.info("Win claimed: job=%s provider=%s", job_id, provider_id)
        outcome.emit(job.requester_id, NotificationKind.WIN_CLAIMED, job_id, at=now, provider_id=provider_id)
        return outcome

    async def list_claims(self, job_id: str) -> list[AccessGrantRow]:
        return await self.grants.list_claims(job_id)

    async def reverse(
        self, job_id: str, provider_id: str, reference: str, actor_id: str | None = None
    ) -> Outcome[bool]:
        """Refund the credit a grant consumed, keeping the grant as an audit record.

        Only CREDIT grants that have not already been reversed are refunded.
        The outcome value says whether a credit went back to the provider.
        """
        grant = await self.require_access(job_id, provider_id)
        outcome = Outcome(False)
        if not grant.credit_consumed:
            logger.info("Nothing to reverse: job=%s provider=%s method=%s", job_id, provider_id, grant.method)
            return outcome

        now = utcnow()
        claimed = await self.grants.guarded_update(
            grant,
            [AccessGrantRow.reversed_at.is_(None)],
            reversed_at=now,
            reversal_reference=reference,
        )
        if not claimed:
            logger.info("Grant already reversed: job=%s provider=%s", job_id, provider_id)
            return outcome

        provider = await self.providers.get(provider_id)
        if not provider:
            raise NotFoundError("Provider", provider_id)
        await self.providers.adjust_credits(provider, CREDITS_PER_ACCESS)
        await self._log_credit(
            provider_id,
            CreditTransactionType.DISPUTE_REFUND,
            CREDITS_PER_ACCESS,
            f"Refund for job {job_id} ({reference})",
            job_id=job_id,
            actor_id=actor_id,
            at=now,
        )
        logger.info("Credit refunded: job=%s provider=%s ref=%s", job_id, provider_id, reference)
        outcome.value = True
        outcome.emit(provider_id, NotificationKind.CREDIT_REFUNDED, job_id, at=now, credits=CREDITS_PER_ACCESS)
        return outcome

"""Provider accounts and credit allocation."""

import logging
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from leadbroker.db.models.provider import ProviderRow
from leadbroker.errors.exceptions import ConflictError, NotFoundError
from leadbroker.models.enums import CreditTransactionType, NotificationKind, ProviderStatus
from leadbroker.repositories.provider_repo import CreditTransactionRepository, ProviderRepository
from leadbroker.services.actors import SYSTEM_ACTOR_ID, Actor
from leadbroker.services.clock import utcnow
from leadbroker.services.config_provider import ConfigProvider
from leadbroker.services.events import Outcome
from leadbroker.services.id_generator import PROVIDER_PREFIX, generate_id

logger = logging.getLogger(__name__)

WEEKLY_RESET_PERIOD = timedelta(days=7)


class CreditService:
    def __init__(self, session: AsyncSession, config: ConfigProvider):
        self.session = session
        self.config = config
        self.providers = ProviderRepository(session)
        self.transactions = CreditTransactionRepository(session)

    async def get_provider(self, provider_id: str) -> ProviderRow:
        provider = await self.providers.get(provider_id)
        if not provider:
            raise NotFoundError("Provider", provider_id)
        return provider

    async def register_provider(
        self, actor: Actor, business_name: str, subscription_active: bool = False
    ) -> Outcome[ProviderRow]:
        """Create the caller's provider profile with the trial credit allocation."""
        if await self.providers.get_by_user(actor.user_id):
            raise ConflictError(f"User '{actor.user_id}' already has a provider profile")

        now = utcnow()
        trial = await self.config.get_free_access_allocation()
        provider = await self.providers.create(
            provider_id=generate_id(PROVIDER_PREFIX),
            user_id=actor.user_id,
            business_name=business_name,
            status=ProviderStatus.ACTIVE,
            credits_balance=trial,
            subscription_active=subscription_active,
            last_credit_reset_at=now,
        )
        if trial:
            await self.transactions.create(
                provider_id=provider.provider_id,
                transaction_type=CreditTransactionType.TRIAL_ALLOCATION,
                amount=trial,
                description=f"Trial allocation of {trial} credits",
                actor_id=SYSTEM_ACTOR_ID,
                created_at=now,
            )
        logger.info("Provider registered: provider=%s user=%s trial=%d", provider.provider_id, actor.user_id, trial)

        outcome = Outcome(provider)
        outcome.emit(provider.provider_id, NotificationKind.CREDITS_ALLOCATED, at=now, credits=trial)
        return outcome

    async def reset_weekly(self, provider_id: str, allocation: int, now: datetime) -> Outcome[ProviderRow]:
        """Top a subscribed provider back up to ``allocation`` credits.

        Balances above the allocation are left alone; only the increase is
        logged. The guard on ``last_credit_reset_at`` keeps two sweeps from
        both resetting the same provider.
        """
        provider = await self.get_provider(provider_id)
        outcome = Outcome(provider)
        previous_reset = provider.last_credit_reset_at
        increase = max(allocation - provider.credits_balance, 0)

        conditions = [
            ProviderRow.last_credit_reset_at.is_(None)
            if previous_reset is None
            else ProviderRow.last_credit_reset_at == previous_reset
        ]
        won = await self.providers.guarded_update(
            provider,
            conditions,
            credits_balance=ProviderRow.credits_balance + increase,
            last_credit_reset_at=now,
        )
        if not won:
            logger.info("Weekly reset already applied: provider=%s", provider_id)
            return outcome

        if increase:
            await self.transactions.create(
                provider_id=provider_id,
                transaction_type=CreditTransactionType.WEEKLY_ALLOCATION,
                amount=increase,
                description=f"Weekly allocation reset to {allocation} credits",
                actor_id=SYSTEM_ACTOR_ID,
                created_at=now,
            )
            outcome.emit(provider_id, NotificationKind.CREDITS_ALLOCATED, at=now, credits=increase)
        logger.info("Weekly credits reset: provider=%s increase=%d", provider_id, increase)
        return outcome

    async def list_due_for_reset(self, now: datetime) -> list[str]:
        providers = await self.providers.list_due_for_weekly_credits(now - WEEKLY_RESET_PERIOD)
        return [p.provider_id for p in providers]

"""Provider and credit transaction repositories."""

from datetime import datetime

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from leadbroker.db.models.provider import CreditTransactionRow, ProviderRow
from leadbroker.models.enums import ProviderStatus
from leadbroker.repositories.base import BaseRepository


class ProviderRepository(BaseRepository):
    pk_field = "provider_id"

    def __init__(self, session: AsyncSession):
        super().__init__(session, ProviderRow)

    async def get(self, provider_id: str) -> ProviderRow | None:
        return await self.get_by_id("provider_id", provider_id)

    async def get_by_user(self, user_id: str) -> ProviderRow | None:
        return await self.get_by_id("user_id", user_id)

    async def adjust_credits(self, provider: ProviderRow, delta: int) -> bool:
        """Atomically add ``delta`` credits; a debit fails if the balance would go negative."""
        conditions = []
        if delta < 0:
            conditions.append(ProviderRow.credits_balance >= -delta)
        return await self.guarded_update(
            provider,
            conditions,
            credits_balance=ProviderRow.credits_balance + delta,
        )

    async def suspend(self, provider: ProviderRow, reason: str, at: datetime) -> ProviderRow:
        return await self.update(
            provider,
            status=ProviderStatus.SUSPENDED,
            suspension_reason=reason,
            suspended_at=at,
        )

    async def reactivate(self, provider: ProviderRow) -> ProviderRow:
        return await self.update(
            provider,
            status=ProviderStatus.ACTIVE,
            suspension_reason=None,
            suspended_at=None,
        )

    async def list_due_for_weekly_credits(self, cutoff: datetime) -> list[ProviderRow]:
        stmt = select(ProviderRow).where(
            ProviderRow.subscription_active.is_(True),
            ProviderRow.status == ProviderStatus.ACTIVE,
            or_(
                ProviderRow.last_credit_reset_at.is_(None),
                ProviderRow.last_credit_reset_at < cutoff,
            ),
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())


class CreditTransactionRepository(BaseRepository):
    def __init__(self, session: AsyncSession):
        super().__init__(session, CreditTransactionRow)

    async def list_by_provider(self, provider_id: str) -> list[CreditTransactionRow]:
        stmt = (
            select(CreditTransactionRow)
            .where(CreditTransactionRow.provider_id == provider_id)
            .order_by(CreditTransactionRow.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

"""Commission record repository."""

from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from leadbroker.db.models.commission import CommissionRecordRow
from leadbroker.models.enums import CommissionStatus
from leadbroker.repositories.base import BaseRepository


class CommissionRepository(BaseRepository):
    pk_field = "commission_id"

    def __init__(self, session: AsyncSession):
        super().__init__(session, CommissionRecordRow)

    async def get(self, commission_id: str) -> CommissionRecordRow | None:
        return await self.get_by_id("commission_id", commission_id)

    async def get_by_job(self, job_id: str) -> CommissionRecordRow | None:
        return await self.get_by_id("job_id", job_id)

    async def count_for_job(self, job_id: str) -> int:
        stmt = select(func.count()).select_from(CommissionRecordRow).where(CommissionRecordRow.job_id == job_id)
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def list_pending_due_before(self, horizon: datetime) -> list[str]:
        """IDs of PENDING commissions due at or before ``horizon``."""
        stmt = (
            select(CommissionRecordRow.commission_id)
            .where(
                CommissionRecordRow.status == CommissionStatus.PENDING,
                CommissionRecordRow.due_at <= horizon,
            )
            .order_by(CommissionRecordRow.due_at)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count_overdue_for_provider(self, provider_id: str) -> int:
        stmt = select(func.count()).select_from(CommissionRecordRow).where(
            CommissionRecordRow.provider_id == provider_id,
            CommissionRecordRow.status == CommissionStatus.OVERDUE,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one()

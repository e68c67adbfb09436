"""Dispute repositories."""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from leadbroker.db.models.dispute import DisputeResponseRow, DisputeRow
from leadbroker.models.enums import DisputeStatus
from leadbroker.repositories.base import BaseRepository

ACTIVE_DISPUTE_STATUSES = (DisputeStatus.OPEN, DisputeStatus.UNDER_REVIEW)


class DisputeRepository(BaseRepository):
    pk_field = "dispute_id"

    def __init__(self, session: AsyncSession):
        super().__init__(session, DisputeRow)

    async def get(self, dispute_id: str) -> DisputeRow | None:
        return await self.get_by_id("dispute_id", dispute_id)

    async def list_by_job(self, job_id: str) -> list[DisputeRow]:
        return await self.list_by_field("job_id", job_id)

    async def count_active_for_job(self, job_id: str) -> int:
        stmt = select(func.count()).select_from(DisputeRow).where(
            DisputeRow.job_id == job_id,
            DisputeRow.status.in_(ACTIVE_DISPUTE_STATUSES),
        )
        result = await self.session.execute(stmt)
        return result.scalar_one()


class DisputeResponseRepository(BaseRepository):
    def __init__(self, session: AsyncSession):
        super().__init__(session, DisputeResponseRow)

    async def list_for_dispute(self, dispute_id: str, include_internal: bool) -> list[DisputeResponseRow]:
        stmt = select(DisputeResponseRow).where(DisputeResponseRow.dispute_id == dispute_id)
        if not include_internal:
            stmt = stmt.where(DisputeResponseRow.internal.is_(False))
        stmt = stmt.order_by(DisputeResponseRow.created_at, DisputeResponseRow.id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

"""Job repository."""

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leadbroker.db.models.job import JobRow
from leadbroker.models.enums import JobStatus
from leadbroker.repositories.base import BaseRepository


class JobRepository(BaseRepository):
    pk_field = "job_id"

    def __init__(self, session: AsyncSession):
        super().__init__(session, JobRow)

    async def get(self, job_id: str) -> JobRow | None:
        return await self.get_by_id("job_id", job_id)

    async def list_by_requester(self, requester_id: str) -> list[JobRow]:
        return await self.list_by_field("requester_id", requester_id)

    async def list_negotiation_timeouts(self, now: datetime, limit: int = 500) -> list[str]:
        """IDs of jobs whose pending final-price proposal is past its deadline."""
        stmt = (
            select(JobRow.job_id)
            .where(
                JobRow.status == JobStatus.AWAITING_SETTLEMENT,
                JobRow.negotiation_deadline.is_not(None),
                JobRow.negotiation_deadline <= now,
            )
            .order_by(JobRow.negotiation_deadline)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_pending_negotiations(self, now: datetime) -> list[JobRow]:
        """Jobs awaiting settlement whose deadline is still ahead."""
        stmt = select(JobRow).where(
            JobRow.status == JobStatus.AWAITING_SETTLEMENT,
            JobRow.negotiation_deadline.is_not(None),
            JobRow.negotiation_deadline > now,
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

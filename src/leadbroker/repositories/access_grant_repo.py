"""Access grant repository."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leadbroker.db.models.access_grant import AccessGrantRow
from leadbroker.repositories.base import BaseRepository


class AccessGrantRepository(BaseRepository):
    def __init__(self, session: AsyncSession):
        super().__init__(session, AccessGrantRow)

    async def get_for(self, job_id: str, provider_id: str) -> AccessGrantRow | None:
        stmt = select(AccessGrantRow).where(
            AccessGrantRow.job_id == job_id,
            AccessGrantRow.provider_id == provider_id,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_by_job(self, job_id: str) -> list[AccessGrantRow]:
        return await self.list_by_field("job_id", job_id)

    async def list_claims(self, job_id: str) -> list[AccessGrantRow]:
        stmt = (
            select(AccessGrantRow)
            .where(AccessGrantRow.job_id == job_id, AccessGrantRow.claimed_win.is_(True))
            .order_by(AccessGrantRow.claimed_at)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

"""Notification and platform setting repositories."""

from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leadbroker.db.models.notification import NotificationRow, PlatformSettingRow
from leadbroker.repositories.base import BaseRepository


class NotificationRepository(BaseRepository):
    def __init__(self, session: AsyncSession):
        super().__init__(session, NotificationRow)

    async def list_by_recipient(self, recipient: str) -> list[NotificationRow]:
        stmt = (
            select(NotificationRow)
            .where(NotificationRow.recipient == recipient)
            .order_by(NotificationRow.created_at.desc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def exists_since(self, recipient: str, kind: str, job_id: str, since: datetime) -> bool:
        """True if ``recipient`` got a ``kind`` notification about ``job_id`` at or after ``since``."""
        stmt = (
            select(NotificationRow.notification_id)
            .where(
                NotificationRow.recipient == recipient,
                NotificationRow.kind == kind,
                NotificationRow.job_id == job_id,
                NotificationRow.created_at >= since,
            )
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none() is not None


class PlatformSettingRepository(BaseRepository):
    def __init__(self, session: AsyncSession):
        super().__init__(session, PlatformSettingRow)

    async def get(self, key: str) -> PlatformSettingRow | None:
        return await self.get_by_id("key", key)

    async def put(self, key: str, value: dict, updated_by: str | None = None) -> PlatformSettingRow:
        now = datetime.now(timezone.utc)
        row = await self.get(key)
        if row:
            return await self.update(row, value=value, updated_by=updated_by, updated_at=now)
        return await self.create(key=key, value=value, updated_by=updated_by, updated_at=now)

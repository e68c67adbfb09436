"""Base repository with common CRUD operations."""

from typing import Any, TypeVar

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from leadbroker.db.base import Base

T = TypeVar("T", bound=Base)


class BaseRepository:
    """Generic async repository for SQLAlchemy models."""

    pk_field: str = "id"

    def __init__(self, session: AsyncSession, model_class: type[T]):
        self.session = session
        self.model_class = model_class

    async def get_by_id(self, pk_field: str, pk_value: Any) -> T | None:
        """Get a single record by primary key."""
        stmt = select(self.model_class).where(
            getattr(self.model_class, pk_field) == pk_value
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(self, **kwargs: Any) -> T:
        """Create and persist a new record."""
        row = self.model_class(**kwargs)
        self.session.add(row)
        await self.session.flush()
        return row

    async def update(self, row: T, **kwargs: Any) -> T:
        """Update an existing record."""
        for key, value in kwargs.items():
            setattr(row, key, value)
        await self.session.flush()
        return row

    async def list_by_field(self, field: str, value: Any) -> list[T]:
        """List records matching a field value."""
        stmt = select(self.model_class).where(
            getattr(self.model_class, field) == value
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def guarded_update(self, row: T, conditions: list, **values: Any) -> bool:
        """Compare-and-set: write ``values`` only if ``conditions`` still hold.

        The guard is evaluated by the database in the same UPDATE statement,
        so two writers racing on the same row cannot both succeed. Returns
        True when this caller won; the in-session ``row`` is refreshed either
        way so callers see the committed truth.
        """
        pk_col = getattr(self.model_class, self.pk_field)
        stmt = (
            update(self.model_class)
            .where(pk_col == getattr(row, self.pk_field), *conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        await self.session.refresh(row)
        return result.rowcount == 1

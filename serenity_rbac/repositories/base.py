"""
Base repository with common query operations.
"""

from dataclasses import dataclass
from typing import Any, Generic, Sequence, Type, TypeVar
from uuid import UUID

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from serenity_rbac.models.base import Base

ModelT = TypeVar("ModelT", bound=Base)
T = TypeVar("T")


@dataclass
class Page(Generic[T]):
    """Offset page of results."""
    items: list[T]
    total: int
    limit: int
    skip: int

    @property
    def has_more(self) -> bool:
        return self.skip + len(self.items) < self.total


def coerce_uuid(value: Any) -> UUID | None:
    """UUID from a UUID or its string form; None if it is neither."""
    if isinstance(value, UUID):
        return value
    if isinstance(value, str):
        try:
            return UUID(value)
        except ValueError:
            return None
    return None


class BaseRepository(Generic[ModelT]):
    """
    Base repository providing common query operations.

    Usage:
        class RoleRepository(BaseRepository[Role]):
            model = Role

        repo = RoleRepository(db)
        role = await repo.get_by_id(role_id)
    """

    model: Type[ModelT]

    def __init__(self, db: AsyncSession):
        self.db = db

    def _base_query(self) -> Select:
        """Base query - override to add default filters."""
        return select(self.model)

    async def get_by_id(self, id: UUID | str) -> ModelT | None:
        """Get entity by ID."""
        id = coerce_uuid(id)
        if id is None:
            return None
        stmt = self._base_query().where(self.model.id == id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_ids(self, ids: Sequence[UUID]) -> list[ModelT]:
        """Get multiple entities by IDs."""
        if not ids:
            return []
        stmt = self._base_query().where(self.model.id.in_(list(ids)))
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_one(self, **filters) -> ModelT | None:
        """Get single entity by filters."""
        stmt = self._base_query()
        for field, value in filters.items():
            stmt = stmt.where(getattr(self.model, field) == value)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def exists(self, **filters) -> bool:
        """Check if entity exists."""
        return await self.count(**filters) > 0

    async def count(self, **filters) -> int:
        """Count entities matching filters."""
        stmt = select(func.count()).select_from(self.model)
        for field, value in filters.items():
            stmt = stmt.where(getattr(self.model, field) == value)
        return await self.db.scalar(stmt) or 0

    async def all(self, order_by: str | None = None, **filters) -> list[ModelT]:
        """Get all entities matching filters (no pagination)."""
        stmt = self._base_query()
        for field, value in filters.items():
            if value is not None:
                stmt = stmt.where(getattr(self.model, field) == value)
        if order_by:
            stmt = stmt.order_by(getattr(self.model, order_by))
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def paginate(self, stmt: Select, limit: int, skip: int) -> Page[ModelT]:
        """Run a select with offset pagination and a total count."""
        count_stmt = select(func.count()).select_from(stmt.order_by(None).subquery())
        total = await self.db.scalar(count_stmt) or 0

        result = await self.db.execute(stmt.offset(skip).limit(limit))
        items = list(result.scalars().all())
        return Page(items=items, total=total, limit=limit, skip=skip)

    async def create(self, **data) -> ModelT:
        """Create new entity."""
        entity = self.model(**data)
        self.db.add(entity)
        await self.db.flush()
        return entity

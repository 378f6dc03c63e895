"""
Permission Set Registry - expand named bundles into permission codes.

Sets are read-only at runtime; the seeding path is the only writer.
Expansions are cached process-wide with the configured TTL.
"""

from typing import Any, Iterable

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from serenity_rbac.core.cache import PermissionCache
from serenity_rbac.core.errors import ConflictError, ErrorCode, NotFoundError
from serenity_rbac.models.permission import PermissionSet
from serenity_rbac.repositories import PermissionSetRepository
from serenity_rbac.schemas.base import parse_input
from serenity_rbac.schemas.permission import PermissionSetCreate

logger = structlog.get_logger()


class PermissionSetService:
    """Permission set lookups and (seed-only) creation."""

    def __init__(self, db: AsyncSession, cache: PermissionCache | None = None):
        self.db = db
        self.cache = cache
        self.sets = PermissionSetRepository(db)

    async def get(self, code: str) -> PermissionSet:
        permission_set = await self.sets.get_by_code(code)
        if permission_set is None:
            raise NotFoundError(
                f"Permission set not found: {code}",
                code=ErrorCode.PERMISSION_SET_NOT_FOUND,
                details={"code": code},
            )
        return permission_set

    async def resolve(self, code: str) -> list[str]:
        """
        Ordered permission codes of a set.

        Duplicates are kept; deduplication is the role layer's job.
        """
        if self.cache:
            cached = await self.cache.get_set(code)
            if cached is not None:
                return list(cached)

        permission_set = await self.get(code)
        codes = list(permission_set.permissions or [])

        if self.cache:
            await self.cache.set_set(code, codes)
        return codes

    async def resolve_many(self, codes: Iterable[str]) -> list[str]:
        """Concatenated expansion of several sets, in order."""
        expanded: list[str] = []
        for code in codes:
            expanded.extend(await self.resolve(code))
        return expanded

    async def list_sets(self, category: str | None = None) -> list[PermissionSet]:
        stmt = select(PermissionSet).order_by(PermissionSet.code)
        if category:
            stmt = stmt.where(PermissionSet.category == category)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def create_set(self, data: PermissionSetCreate | dict[str, Any]) -> PermissionSet:
        """Create a set (seeding path). Raises PERMISSION_SET_EXISTS on duplicates."""
        data = parse_input(PermissionSetCreate, data)

        if await self.sets.exists(code=data.code):
            raise ConflictError(
                f"Permission set already exists: {data.code}",
                code=ErrorCode.PERMISSION_SET_EXISTS,
                details={"code": data.code},
            )

        permission_set = PermissionSet(**data.model_dump())
        try:
            async with self.db.begin_nested():
                self.db.add(permission_set)
                await self.db.flush()
        except IntegrityError as e:
            raise ConflictError(
                f"Permission set already exists: {data.code}",
                code=ErrorCode.PERMISSION_SET_EXISTS,
                details={"code": data.code},
            ) from e

        await self.invalidate(data.code)
        logger.info(
            "Permission set created",
            code=permission_set.code,
            permissions=len(permission_set.permissions),
        )
        return permission_set

    async def invalidate(self, code: str | None = None) -> None:
        """Drop cached expansions (one set, or all)."""
        if self.cache:
            await self.cache.invalidate_set(code)

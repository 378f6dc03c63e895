"""
Permission and permission-set repositories.
"""

from typing import Iterable, Sequence
from uuid import UUID

from sqlalchemy import select, update

from serenity_rbac.models.permission import (
    DependencyType,
    Permission,
    PermissionSet,
    permission_conflicts,
    permission_dependencies,
)
from serenity_rbac.utils.timezone import utc_now
from .base import BaseRepository


class PermissionRepository(BaseRepository[Permission]):
    model = Permission

    async def get_by_code(self, code: str) -> Permission | None:
        return await self.get_one(code=code)

    async def get_by_codes(self, codes: Iterable[str]) -> list[Permission]:
        codes = list(dict.fromkeys(codes))
        if not codes:
            return []
        result = await self.db.execute(select(Permission).where(Permission.code.in_(codes)))
        return list(result.scalars().all())

    async def existing_codes(self, codes: Iterable[str]) -> set[str]:
        codes = list(codes)
        if not codes:
            return set()
        result = await self.db.execute(select(Permission.code).where(Permission.code.in_(codes)))
        return set(result.scalars().all())

    # ============================================================
    # RELATIONSHIPS
    # ============================================================

    async def add_dependency(
        self,
        permission_id: UUID,
        depends_on_id: UUID,
        dependency_type: DependencyType = DependencyType.REQUIRED,
    ) -> None:
        await self.db.execute(
            permission_dependencies.insert().values(
                permission_id=permission_id,
                depends_on_id=depends_on_id,
                dependency_type=dependency_type.value,
            )
        )

    async def add_conflict(self, permission_id: UUID, conflicts_with_id: UUID) -> None:
        await self.db.execute(
            permission_conflicts.insert().values(
                permission_id=permission_id,
                conflicts_with_id=conflicts_with_id,
            )
        )

    async def get_dependency_ids(
        self,
        permission_id: UUID,
        dependency_type: DependencyType | None = DependencyType.REQUIRED,
    ) -> list[UUID]:
        stmt = select(permission_dependencies.c.depends_on_id).where(
            permission_dependencies.c.permission_id == permission_id
        )
        if dependency_type is not None:
            stmt = stmt.where(permission_dependencies.c.dependency_type == dependency_type.value)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_conflicting_ids(self, permission_id: UUID, candidate_ids: Sequence[UUID]) -> list[UUID]:
        """
        Candidates in conflict with the permission, in either direction
        (candidate lists the permission, or the permission lists the candidate).
        """
        if not candidate_ids:
            return []
        candidates = list(candidate_ids)
        listed_by_candidate = select(permission_conflicts.c.permission_id).where(
            permission_conflicts.c.conflicts_with_id == permission_id,
            permission_conflicts.c.permission_id.in_(candidates),
        )
        listed_by_permission = select(permission_conflicts.c.conflicts_with_id).where(
            permission_conflicts.c.permission_id == permission_id,
            permission_conflicts.c.conflicts_with_id.in_(candidates),
        )
        found: list[UUID] = []
        for stmt in (listed_by_candidate, listed_by_permission):
            result = await self.db.execute(stmt)
            for pid in result.scalars().all():
                if pid not in found:
                    found.append(pid)
        return found

    # ============================================================
    # COUNTERS
    # ============================================================

    async def increment_usage(self, permission_id: UUID) -> None:
        """SQL-side ``usage_count + 1``."""
        await self.db.execute(
            update(Permission)
            .where(Permission.id == permission_id)
            .values(usage_count=Permission.usage_count + 1, last_used_at=utc_now())
            .execution_options(synchronize_session=False)
        )


class PermissionSetRepository(BaseRepository[PermissionSet]):
    model = PermissionSet

    async def get_by_code(self, code: str) -> PermissionSet | None:
        return await self.get_one(code=code)

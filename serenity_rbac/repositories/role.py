"""
Role, statistics, principal and assignment repositories.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import or_, select, update

from serenity_rbac.models.principal import Principal, PrincipalRole
from serenity_rbac.models.role import Role, RoleStatistics
from serenity_rbac.utils.timezone import utc_now
from .base import BaseRepository, coerce_uuid


class RoleRepository(BaseRepository[Role]):
    model = Role

    async def get_by_name(self, name: str) -> Role | None:
        return await self.get_one(name=name)

    async def get_by_ref(self, ref: Any) -> Role | None:
        """Resolve a role by id (UUID or string) or by name."""
        if isinstance(ref, Role):
            return ref
        role_id = coerce_uuid(ref)
        if role_id is not None:
            role = await self.get_by_id(role_id)
            if role is not None:
                return role
        if isinstance(ref, str):
            return await self.get_by_name(ref.lower())
        return None

    async def get_children(self, role_id: UUID) -> list[Role]:
        result = await self.db.execute(
            select(Role).where(Role.parent_role_id == role_id).order_by(Role.name)
        )
        return list(result.scalars().all())

    async def count_children(self, role_id: UUID) -> int:
        return await self.count(parent_role_id=role_id)


class RoleStatisticsRepository(BaseRepository[RoleStatistics]):
    model = RoleStatistics

    async def get_for_role(self, role_id: UUID) -> RoleStatistics | None:
        return await self.db.get(RoleStatistics, role_id, populate_existing=True)

    async def user_count(self, role_id: UUID) -> int:
        count = await self.db.scalar(
            select(RoleStatistics.user_count).where(RoleStatistics.role_id == role_id)
        )
        return count or 0

    async def record_assignment(self, role_id: UUID, when: datetime | None = None) -> None:
        """SQL-side ``user_count + 1`` and ``last_assigned_at``."""
        await self.db.execute(
            update(RoleStatistics)
            .where(RoleStatistics.role_id == role_id)
            .values(
                user_count=RoleStatistics.user_count + 1,
                last_assigned_at=when or utc_now(),
            )
            .execution_options(synchronize_session=False)
        )

    async def record_unassignment(self, role_id: UUID) -> None:
        await self.db.execute(
            update(RoleStatistics)
            .where(RoleStatistics.role_id == role_id, RoleStatistics.user_count > 0)
            .values(user_count=RoleStatistics.user_count - 1)
            .execution_options(synchronize_session=False)
        )

    async def record_usage(self, role_ids: list[UUID]) -> None:
        if not role_ids:
            return
        await self.db.execute(
            update(RoleStatistics)
            .where(RoleStatistics.role_id.in_(role_ids))
            .values(usage_count=RoleStatistics.usage_count + 1, last_used_at=utc_now())
            .execution_options(synchronize_session=False)
        )


class PrincipalRepository(BaseRepository[Principal]):
    model = Principal

    async def get_by_email(self, email: str) -> Principal | None:
        return await self.get_one(email=email)


class PrincipalRoleRepository(BaseRepository[PrincipalRole]):
    model = PrincipalRole

    async def get_assignment(self, principal_id: UUID, role_id: UUID) -> PrincipalRole | None:
        return await self.get_one(principal_id=principal_id, role_id=role_id)

    async def get_valid(self, principal_id: UUID, now: datetime | None = None) -> list[PrincipalRole]:
        """Assignments currently inside their validity window."""
        now = now or utc_now()
        result = await self.db.execute(
            select(PrincipalRole)
            .where(PrincipalRole.principal_id == principal_id)
            .where(PrincipalRole.valid_from <= now)
            .where(or_(PrincipalRole.valid_until.is_(None), PrincipalRole.valid_until > now))
        )
        return list(result.scalars().all())

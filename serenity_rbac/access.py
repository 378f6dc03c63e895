"""
AccessControl - the library's public entry point.

Bundles the services over one request-scoped session and a shared
cache/hook manager.

Usage:
    access = AccessControl.from_settings(session)

    await access.run_seed()
    decision = await access.authorize(["manager"], "report:read")
    if not decision:
        raise HTTPException(403, decision.reason)
"""

from datetime import datetime
from typing import Any, Iterable
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from serenity_rbac.core.cache import MemoryCacheBackend, PermissionCache
from serenity_rbac.core.config import Settings, get_settings
from serenity_rbac.core.hooks import HookManager
from serenity_rbac.models import Permission, Role
from serenity_rbac.schemas import (
    AuthorizationDecision,
    PermissionCoverage,
    PermissionCreate,
    RoleCreate,
    RoleHierarchy,
    SeedResult,
)
from serenity_rbac.services.assignments import AssignmentResult, AssignmentService
from serenity_rbac.services.catalog import CatalogService
from serenity_rbac.services.evaluator import AuthorizationEvaluator
from serenity_rbac.services.permission_sets import PermissionSetService
from serenity_rbac.services.roles import RoleService
from serenity_rbac.services.seeder import Seeder


class AccessControl:
    """Facade over catalog, sets, roles, assignments, evaluator and seeder."""

    def __init__(
        self,
        db: AsyncSession,
        cache: PermissionCache | None = None,
        hooks: HookManager | None = None,
        settings: Settings | None = None,
    ):
        self.db = db
        self.cache = cache
        self.hooks = hooks
        self.settings = settings or get_settings()

        self.catalog = CatalogService(db, hooks)
        self.sets = PermissionSetService(db, cache)
        self.roles = RoleService(db, self.catalog, cache, hooks, self.settings.rbac)
        self.assignments = AssignmentService(db, self.roles, hooks)
        self.evaluator = AuthorizationEvaluator(
            db,
            self.roles,
            catalog=self.catalog,
            assignments=self.assignments,
            settings=self.settings.rbac,
        )

    @classmethod
    def from_settings(
        cls,
        db: AsyncSession,
        settings: Settings | None = None,
        cache: PermissionCache | None = None,
        hooks: HookManager | None = None,
    ) -> "AccessControl":
        """Build with a cache configured from RBAC_* settings when none is given."""
        settings = settings or get_settings()
        if cache is None:
            cache = PermissionCache(MemoryCacheBackend(
                default_ttl=settings.rbac.cache_ttl,
                prefix=settings.rbac.cache_prefix,
                enabled=settings.rbac.cache_enabled,
            ))
        return cls(db, cache=cache, hooks=hooks or HookManager(), settings=settings)

    async def create_permission(self, data: PermissionCreate | dict[str, Any]) -> Permission:
        return await self.catalog.create_permission(data)

    async def create_role(self, data: RoleCreate | dict[str, Any]) -> Role:
        return await self.roles.create_role(data)

    async def add_permission_to_role(self, role: Any, permission: Any) -> Role:
        return await self.roles.add_permission(role, permission)

    async def remove_permission_from_role(self, role: Any, permission: Any) -> Role:
        return await self.roles.remove_permission(role, permission)

    async def deny_permission_on_role(self, role: Any, permission: Any) -> Role:
        return await self.roles.deny_permission(role, permission)

    async def assign_role_to_principal(
        self,
        role: Any,
        principal: Any,
        granted_by: UUID | None = None,
        valid_until: datetime | None = None,
    ) -> AssignmentResult:
        return await self.assignments.assign_role(role, principal, granted_by, valid_until)

    async def authorize(
        self,
        roles: Iterable[Any],
        permission_code: str,
        context: dict[str, Any] | None = None,
        now: datetime | None = None,
    ) -> AuthorizationDecision:
        return await self.evaluator.authorize(roles, permission_code, context, now)

    async def authorize_principal(
        self,
        principal: Any,
        permission_code: str,
        context: dict[str, Any] | None = None,
        now: datetime | None = None,
    ) -> AuthorizationDecision:
        return await self.evaluator.authorize_principal(principal, permission_code, context, now)

    async def get_role_hierarchy(self, role: Any) -> RoleHierarchy:
        return await self.roles.get_hierarchy(role)

    async def clone_role(self, role: Any, new_name: str, overrides: dict[str, Any] | None = None) -> Role:
        return await self.roles.clone(role, new_name, overrides)

    async def get_permission_coverage(
        self,
        roles: Iterable[Any],
        include_inherited: bool = False,
    ) -> PermissionCoverage:
        return await self.roles.get_permission_coverage(roles, include_inherited)

    async def run_seed(self, environment: str | None = None) -> SeedResult:
        seeder = Seeder(
            self.db,
            catalog=self.catalog,
            sets=self.sets,
            roles=self.roles,
            hooks=self.hooks,
            settings=self.settings,
        )
        return await seeder.run(environment)

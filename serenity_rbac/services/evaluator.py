"""
Authorization Evaluator - can the holder of these roles use this permission?

Deny beats allow: a denial anywhere in any held role's chain suppresses
the permission, whichever role grants it.
"""

from datetime import datetime
from typing import Any, Iterable

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from serenity_rbac.core.config import RBACSettings, get_settings
from serenity_rbac.core.errors import PolicyViolationError
from serenity_rbac.models.permission import Permission
from serenity_rbac.models.role import Role
from serenity_rbac.repositories import RoleStatisticsRepository
from serenity_rbac.schemas.decision import AuthorizationDecision
from serenity_rbac.services.assignments import AssignmentService
from serenity_rbac.services.catalog import CatalogService
from serenity_rbac.services.roles import (
    RoleService,
    check_ip_restriction,
    check_time_restrictions,
    restrictions_of,
)

logger = structlog.get_logger()


class AuthorizationEvaluator:
    """Evaluate permission checks against roles or a principal's assignments."""

    def __init__(
        self,
        db: AsyncSession,
        roles: RoleService,
        catalog: CatalogService | None = None,
        assignments: AssignmentService | None = None,
        settings: RBACSettings | None = None,
    ):
        self.db = db
        self.roles = roles
        self.catalog = catalog or roles.catalog
        self.assignments = assignments or AssignmentService(db, roles=roles)
        self.settings = settings or get_settings().rbac
        self.stats = RoleStatisticsRepository(db)

    async def authorize(
        self,
        role_refs: Iterable[Any],
        permission_code: str,
        context: dict[str, Any] | None = None,
        now: datetime | None = None,
    ) -> AuthorizationDecision:
        """
        Decide whether ``role_refs`` together grant ``permission_code``.

        ``context`` is matched against the permission's conditions;
        ``context["ip_address"]`` is checked against role IP whitelists.
        """
        context = context or {}
        code = permission_code.lower()

        permission = await self.catalog.get_by_code(code)
        if permission is None:
            return AuthorizationDecision.deny(code, "Unknown permission")
        if not permission.is_active:
            return AuthorizationDecision.deny(code, "Permission is inactive")

        held = await self.roles.resolve_roles(role_refs)
        if not held:
            return AuthorizationDecision.deny(code, "No roles")

        granting: list[Role] = []
        denied_by: list[Role] = []
        for role in held:
            if not role.is_active:
                continue
            try:
                allowed, denied = await self.roles.get_chain_permissions(role)
            except PolicyViolationError as e:
                logger.error(
                    "Role hierarchy invalid during authorization",
                    role=role.name,
                    permission=code,
                    error_code=e.code,
                )
                return AuthorizationDecision.deny(code, f"Role hierarchy invalid: {role.name}")

            if code in denied:
                denied_by.append(role)
            elif code in allowed and self._usable(role, context, now):
                granting.append(role)

        if denied_by:
            names = ", ".join(r.name for r in denied_by)
            return AuthorizationDecision.deny(code, f"Explicitly denied by role(s): {names}")
        if not granting:
            return AuthorizationDecision.deny(code, "Permission not granted by any role")

        if not self.catalog.check_conditions(permission, context):
            return AuthorizationDecision.deny(code, "Permission conditions not satisfied")

        await self._record_usage(permission, granting)

        requires_mfa = permission.requires_mfa or any(
            restrictions_of(r).requires_mfa for r in granting
        )
        requires_approval = permission.requires_approval or any(
            restrictions_of(r).requires_approval for r in granting
        )
        return AuthorizationDecision.allow(
            code,
            granted_by=[r.name for r in granting],
            requires_mfa=requires_mfa,
            requires_approval=requires_approval,
        )

    async def authorize_principal(
        self,
        principal_ref: Any,
        permission_code: str,
        context: dict[str, Any] | None = None,
        now: datetime | None = None,
    ) -> AuthorizationDecision:
        """Authorize using the principal's currently valid role assignments."""
        principal = await self.assignments.get_principal(principal_ref)
        if not principal.is_active:
            return AuthorizationDecision.deny(permission_code.lower(), "Principal is inactive")

        roles = await self.assignments.get_principal_roles(principal, now=now)
        context = {"principal": principal.as_context(), **(context or {})}
        return await self.authorize(roles, permission_code, context=context, now=now)

    def _usable(self, role: Role, context: dict[str, Any], now: datetime | None) -> bool:
        """Effective window, time window and IP whitelist all pass."""
        return (
            role.is_effective(now)
            and check_time_restrictions(role, now)
            and check_ip_restriction(role, context.get("ip_address"))
        )

    async def _record_usage(self, permission: Permission, granting: list[Role]) -> None:
        if not self.settings.record_usage:
            return
        try:
            async with self.db.begin_nested():
                await self.catalog.increment_usage(permission.id)
                await self.stats.record_usage([r.id for r in granting])
        except SQLAlchemyError as e:
            logger.warning(
                "Failed to record permission usage",
                permission=permission.code,
                error=str(e),
            )

"""
Role assignment - attach roles to principals behind the assignment gate.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from serenity_rbac.core.errors import ConflictError, ErrorCode, NotFoundError, PolicyViolationError
from serenity_rbac.core.hooks import HookEvent, HookManager
from serenity_rbac.models.principal import Principal, PrincipalRole
from serenity_rbac.models.role import Role
from serenity_rbac.repositories import (
    PrincipalRepository,
    PrincipalRoleRepository,
    RoleStatisticsRepository,
    coerce_uuid,
)
from serenity_rbac.services.roles import RoleService, assignment_rules_of
from serenity_rbac.utils.timezone import to_utc, utc_now

logger = structlog.get_logger()


@dataclass
class AssignmentResult:
    role: Role
    principal: Principal
    assignment: PrincipalRole
    created: bool


class AssignmentService:
    """Grant and revoke roles for principals."""

    def __init__(
        self,
        db: AsyncSession,
        roles: RoleService | None = None,
        hooks: HookManager | None = None,
    ):
        self.db = db
        self.hooks = hooks
        self.roles = roles or RoleService(db, hooks=hooks)
        self.principals = PrincipalRepository(db)
        self.assignments = PrincipalRoleRepository(db)
        self.stats = RoleStatisticsRepository(db)

    async def create_principal(
        self,
        email: str,
        name: str | None = None,
        attributes: dict[str, Any] | None = None,
    ) -> Principal:
        email = email.strip().lower()
        if await self.principals.exists(email=email):
            raise ConflictError(
                f"Principal already exists: {email}",
                details={"email": email},
            )
        try:
            async with self.db.begin_nested():
                principal = await self.principals.create(
                    email=email,
                    name=name,
                    attributes=dict(attributes or {}),
                )
        except IntegrityError as e:
            raise ConflictError(f"Principal already exists: {email}", details={"email": email}) from e
        logger.info("Principal created", principal_id=str(principal.id), email=email)
        return principal

    async def get_principal(self, ref: Any) -> Principal:
        principal = None
        if isinstance(ref, Principal):
            principal = ref
        elif (principal_id := coerce_uuid(ref)) is not None:
            principal = await self.principals.get_by_id(principal_id)
        elif isinstance(ref, str):
            principal = await self.principals.get_by_email(ref.strip().lower())

        if principal is None:
            raise NotFoundError(
                f"Principal not found: {ref}",
                code=ErrorCode.PRINCIPAL_NOT_FOUND,
                details={"principal": str(ref)},
            )
        return principal

    async def assign_role(
        self,
        role_ref: Any,
        principal_ref: Any,
        granted_by: UUID | None = None,
        valid_until: datetime | None = None,
        now: datetime | None = None,
    ) -> AssignmentResult:
        """
        Assign a role to a principal.

        Re-assigning a role the principal already holds returns the
        existing assignment and leaves the statistics alone.

        Raises:
            NotFoundError: unknown role or principal
            PolicyViolationError(ASSIGNMENT_NOT_ALLOWED): the role's gate
                refused; details carry the reason
        """
        role = await self.roles.get_role(role_ref)
        principal = await self.get_principal(principal_ref)

        existing = await self.assignments.get_assignment(principal.id, role.id)
        if existing is not None:
            return AssignmentResult(role=role, principal=principal, assignment=existing, created=False)

        check = await self.roles.can_be_assigned_to(role, principal, now=now)
        if not check.allowed:
            raise PolicyViolationError(
                f"Role {role.name} cannot be assigned to {principal.email}: {check.reason}",
                code=ErrorCode.ASSIGNMENT_NOT_ALLOWED,
                details={"role": role.name, "principal": str(principal.id), "reason": check.reason},
            )

        now = to_utc(now) if now else utc_now()
        if valid_until is None:
            expires_after = assignment_rules_of(role).expires_after
            if expires_after:
                valid_until = now + timedelta(days=expires_after)

        async with self.db.begin_nested():
            assignment = await self.assignments.create(
                principal_id=principal.id,
                role_id=role.id,
                granted_by_id=granted_by,
                valid_from=now,
                valid_until=valid_until,
            )
            await self.stats.record_assignment(role.id, when=now)

        logger.info(
            "Role assigned",
            role=role.name,
            principal_id=str(principal.id),
            valid_until=valid_until.isoformat() if valid_until else None,
        )
        if self.hooks:
            await self.hooks.trigger(
                HookEvent.ROLE_ASSIGNED,
                role=role,
                principal=principal,
                assignment=assignment,
            )
        return AssignmentResult(role=role, principal=principal, assignment=assignment, created=True)

    async def revoke_role(self, role_ref: Any, principal_ref: Any) -> bool:
        """Remove an assignment. Returns False if there was none."""
        role = await self.roles.get_role(role_ref)
        principal = await self.get_principal(principal_ref)

        assignment = await self.assignments.get_assignment(principal.id, role.id)
        if assignment is None:
            return False

        await self.db.delete(assignment)
        await self.db.flush()
        await self.stats.record_unassignment(role.id)
        logger.info("Role revoked", role=role.name, principal_id=str(principal.id))
        return True

    async def get_principal_roles(self, principal_ref: Any, now: datetime | None = None) -> list[Role]:
        """Roles held through assignments valid at ``now``, ordered by name."""
        principal = await self.get_principal(principal_ref)
        assignments = await self.assignments.get_valid(principal.id, now=to_utc(now) if now else None)
        return sorted((a.role for a in assignments), key=lambda r: r.name)

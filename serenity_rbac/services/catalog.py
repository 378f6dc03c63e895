"""
Permission Catalog - store and validate the canonical permission list.

Usage:
    catalog = CatalogService(db)

    perm = await catalog.create_permission({
        "resource": "report",
        "action": "read",
        "category": "analytics",
    })

    result = await catalog.check_compatibility(perm, role_permission_ids)
    if not result.compatible:
        ...
"""

from typing import Any, Iterable, Sequence
from uuid import UUID

import structlog
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from serenity_rbac.conditions import evaluate_conditions
from serenity_rbac.core.errors import ConflictError, ErrorCode, NotFoundError
from serenity_rbac.core.hooks import HookEvent, HookManager
from serenity_rbac.models.permission import (
    Permission,
    PermissionAction,
    PermissionCategory,
    RiskLevel,
)
from serenity_rbac.repositories import Page, PermissionRepository, coerce_uuid
from serenity_rbac.schemas.base import parse_input
from serenity_rbac.schemas.permission import (
    CompatibilityResult,
    PermissionCreate,
    PermissionSearch,
)
from serenity_rbac.utils.timezone import utc_now

logger = structlog.get_logger()


# ============================================================
# RISK CLASSIFICATION
# ============================================================

CRITICAL_ACTIONS = {PermissionAction.DELETE, PermissionAction.MANAGE}
CRITICAL_RESOURCES = {"system", "security", "billing"}

HIGH_ACTIONS = {PermissionAction.CREATE, PermissionAction.UPDATE, PermissionAction.APPROVE}
HIGH_RESOURCES = {"user_management", "organization_management"}

MEDIUM_ACTIONS = {PermissionAction.CREATE, PermissionAction.UPDATE, PermissionAction.PUBLISH}


def calculate_risk_level(resource: str, action: PermissionAction | str) -> RiskLevel:
    """
    Deterministic default risk level for a resource/action pair.

    >>> calculate_risk_level("system", "delete")
    <RiskLevel.CRITICAL: 'critical'>
    >>> calculate_risk_level("user", "read")
    <RiskLevel.LOW: 'low'>
    """
    action = PermissionAction(action)
    if action in CRITICAL_ACTIONS and resource in CRITICAL_RESOURCES:
        return RiskLevel.CRITICAL
    if action in HIGH_ACTIONS and resource in HIGH_RESOURCES:
        return RiskLevel.HIGH
    if action in MEDIUM_ACTIONS:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def _ref(permission: Permission) -> dict[str, str]:
    return {"id": str(permission.id), "code": permission.code}


class CatalogService:
    """Permission catalog operations."""

    def __init__(self, db: AsyncSession, hooks: HookManager | None = None):
        self.db = db
        self.hooks = hooks
        self.permissions = PermissionRepository(db)

    # ============================================================
    # LOOKUP
    # ============================================================

    async def get_by_code(self, code: str) -> Permission | None:
        return await self.permissions.get_by_code(code.lower())

    async def find(self, ref: Any) -> Permission | None:
        """Resolve a permission by instance, id or code."""
        if isinstance(ref, Permission):
            return ref
        permission_id = coerce_uuid(ref)
        if permission_id is not None:
            return await self.permissions.get_by_id(permission_id)
        if isinstance(ref, str):
            return await self.get_by_code(ref)
        return None

    async def get(self, ref: Any) -> Permission:
        """Resolve a permission or raise PERMISSION_NOT_FOUND."""
        permission = await self.find(ref)
        if permission is None:
            raise NotFoundError(
                f"Permission not found: {ref}",
                code=ErrorCode.PERMISSION_NOT_FOUND,
                details={"permission": str(ref)},
            )
        return permission

    async def get_many(self, refs: Iterable[Any]) -> list[Permission]:
        """Resolve several references, preserving order and dropping duplicates."""
        resolved: list[Permission] = []
        seen: set[UUID] = set()
        missing: list[str] = []

        refs = list(refs)
        codes = [r.lower() for r in refs if isinstance(r, str) and coerce_uuid(r) is None]
        by_code = {p.code: p for p in await self.permissions.get_by_codes(codes)}

        for ref in refs:
            if isinstance(ref, str) and ref.lower() in by_code:
                permission = by_code[ref.lower()]
            else:
                permission = await self.find(ref)
            if permission is None:
                missing.append(str(ref))
                continue
            if permission.id not in seen:
                seen.add(permission.id)
                resolved.append(permission)

        if missing:
            raise NotFoundError(
                f"Permission(s) not found: {', '.join(missing)}",
                code=ErrorCode.PERMISSION_NOT_FOUND,
                details={"missing": missing},
            )
        return resolved

    async def find_by_resource(self, resource: str, active_only: bool = True) -> list[Permission]:
        stmt = select(Permission).where(Permission.resource == resource)
        if active_only:
            stmt = stmt.where(Permission.is_active.is_(True))
        result = await self.db.execute(stmt.order_by(Permission.code))
        return list(result.scalars().all())

    async def find_by_category(
        self,
        category: PermissionCategory | str,
        active_only: bool = True,
    ) -> list[Permission]:
        stmt = select(Permission).where(Permission.category == PermissionCategory(category))
        if active_only:
            stmt = stmt.where(Permission.is_active.is_(True))
        result = await self.db.execute(stmt.order_by(Permission.code))
        return list(result.scalars().all())

    async def search(self, filters: PermissionSearch | dict[str, Any] | None = None) -> Page[Permission]:
        """
        Filtered catalog listing.

        Deprecated permissions are excluded unless include_deprecated is
        set. Tag filtering matches permissions carrying any requested tag.
        """
        filters = parse_input(PermissionSearch, filters or {})
        stmt = select(Permission)

        if filters.categories:
            stmt = stmt.where(Permission.category.in_(filters.categories))
        if filters.resources:
            stmt = stmt.where(Permission.resource.in_(filters.resources))
        if filters.actions:
            stmt = stmt.where(Permission.action.in_(filters.actions))
        if filters.scopes:
            stmt = stmt.where(Permission.scope.in_(filters.scopes))
        if filters.risk_levels:
            stmt = stmt.where(Permission.risk_level.in_(filters.risk_levels))
        if not filters.include_deprecated:
            stmt = stmt.where(Permission.is_deprecated.is_(False))
        if filters.active_only:
            stmt = stmt.where(Permission.is_active.is_(True))
        if filters.text:
            pattern = f"%{filters.text}%"
            stmt = stmt.where(or_(
                Permission.code.ilike(pattern),
                Permission.display_name.ilike(pattern),
                Permission.description.ilike(pattern),
            ))

        stmt = stmt.order_by(Permission.code)

        if filters.tags:
            # JSON containment differs per dialect; filter tags in Python
            result = await self.db.execute(stmt)
            wanted = set(filters.tags)
            matched = [p for p in result.scalars().all() if wanted.intersection(p.tags or [])]
            items = matched[filters.skip:filters.skip + filters.limit]
            return Page(items=items, total=len(matched), limit=filters.limit, skip=filters.skip)

        return await self.permissions.paginate(stmt, limit=filters.limit, skip=filters.skip)

    # ============================================================
    # CREATE
    # ============================================================

    async def create_permission(self, data: PermissionCreate | dict[str, Any]) -> Permission:
        """
        Create a catalog permission.

        Raises:
            ConflictError(PERMISSION_EXISTS): code already exists
            NotFoundError(PERMISSION_NOT_FOUND): unknown dependency/conflict reference
            RBACValidationError: malformed input
        """
        data = parse_input(PermissionCreate, data)

        if await self.permissions.exists(code=data.code):
            raise ConflictError(
                f"Permission already exists: {data.code}",
                code=ErrorCode.PERMISSION_EXISTS,
                details={"code": data.code},
            )

        # Resolve references before writing anything
        dependencies = [
            (await self.get(dep.permission), dep.type) for dep in data.dependencies
        ]
        conflicts = await self.get_many(data.conflicts)

        permission = Permission(
            code=data.code,
            display_name=data.display_name,
            description=data.description,
            resource=data.resource,
            action=data.action,
            scope=data.scope,
            category=data.category,
            risk_level=data.risk_level or calculate_risk_level(data.resource, data.action),
            requires_mfa=data.requires_mfa,
            requires_approval=data.requires_approval,
            approval_level=data.approval_level,
            conditions=[c.model_dump(mode="json") for c in data.conditions],
            audit_level=data.audit_level,
            retention_days=data.retention_days,
            tags=list(data.tags),
            is_system=data.is_system,
        )

        try:
            async with self.db.begin_nested():
                self.db.add(permission)
                await self.db.flush()
                for dependency, dependency_type in dependencies:
                    await self.permissions.add_dependency(permission.id, dependency.id, dependency_type)
                for conflict in conflicts:
                    await self.permissions.add_conflict(permission.id, conflict.id)
        except IntegrityError as e:
            raise ConflictError(
                f"Permission already exists: {data.code}",
                code=ErrorCode.PERMISSION_EXISTS,
                details={"code": data.code},
            ) from e

        logger.info(
            "Permission created",
            permission_id=str(permission.id),
            code=permission.code,
            risk_level=permission.risk_level.value,
        )
        if self.hooks:
            await self.hooks.trigger(HookEvent.PERMISSION_CREATED, permission=permission)
        return permission

    # ============================================================
    # RULES
    # ============================================================

    async def check_compatibility(
        self,
        permission: Permission,
        candidate_ids: Sequence[UUID],
    ) -> CompatibilityResult:
        """
        Check whether ``permission`` can join a set already holding
        ``candidate_ids``.

        Conflicts are checked first and in both directions; then every
        *required* dependency must be among the candidates.
        """
        candidates = [cid for cid in candidate_ids if cid != permission.id]

        conflict_ids = await self.permissions.get_conflicting_ids(permission.id, candidates)
        if conflict_ids:
            conflicting = await self.permissions.get_by_ids(conflict_ids)
            return CompatibilityResult(
                compatible=False,
                conflicts=[_ref(p) for p in sorted(conflicting, key=lambda p: p.code)],
            )

        required = await self.permissions.get_dependency_ids(permission.id)
        candidate_set = set(candidates)
        missing_ids = [dep for dep in required if dep not in candidate_set]
        if missing_ids:
            missing = await self.permissions.get_by_ids(missing_ids)
            return CompatibilityResult(
                compatible=False,
                missing_dependencies=[_ref(p) for p in sorted(missing, key=lambda p: p.code)],
            )

        return CompatibilityResult(compatible=True)

    def check_conditions(self, permission: Permission, context: Any) -> bool:
        """True when every attached condition holds for ``context``."""
        return evaluate_conditions(permission.get_conditions(), context or {})

    # ============================================================
    # LIFECYCLE
    # ============================================================

    async def increment_usage(self, permission_id: UUID) -> None:
        await self.permissions.increment_usage(permission_id)

    async def deprecate(self, ref: Any, replacement: Any | None = None) -> Permission:
        """Mark a permission deprecated, optionally pointing at a replacement."""
        permission = await self.get(ref)
        replacement_permission = await self.get(replacement) if replacement is not None else None

        permission.is_deprecated = True
        permission.deprecation_date = utc_now()
        if replacement_permission is not None:
            permission.replaced_by_id = replacement_permission.id
        await self.db.flush()

        logger.info(
            "Permission deprecated",
            code=permission.code,
            replaced_by=replacement_permission.code if replacement_permission else None,
        )
        if self.hooks:
            await self.hooks.trigger(
                HookEvent.PERMISSION_DEPRECATED,
                permission=permission,
                replacement=replacement_permission,
            )
        return permission

    async def deactivate(self, ref: Any) -> Permission:
        permission = await self.get(ref)
        permission.is_active = False
        await self.db.flush()
        logger.info("Permission deactivated", code=permission.code)
        return permission

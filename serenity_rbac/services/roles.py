"""
Role Hierarchy - roles, their permission lists and the parent/child tree.

Invariants maintained here:
- a child's level is strictly below its parent's (clamped on save)
- a role is never its own ancestor, and chains stay within
  RBAC_MAX_HIERARCHY_DEPTH
- a permission is never on both the allow-list and deny-list of a role
- every mutation bumps the role version and drops cached chains

Usage:
    roles = RoleService(db)

    admin = await roles.create_role({"name": "admin", "category": "administrative"})
    manager = await roles.create_role({
        "name": "manager",
        "category": "management",
        "parent_role": "admin",
    })
    await roles.deny_permission(manager, "report:delete")
"""

import ipaddress
from datetime import datetime
from typing import Any, Iterable

import structlog
from sqlalchemy import event, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session, SessionTransaction
from sqlalchemy.orm.exc import StaleDataError

from serenity_rbac.conditions import evaluate_conditions
from serenity_rbac.core.cache import PermissionCache
from serenity_rbac.core.config import RBACSettings, get_settings
from serenity_rbac.core.errors import (
    ConflictError,
    ErrorCode,
    NotFoundError,
    PolicyViolationError,
    RBACValidationError,
)
from serenity_rbac.core.hooks import HookEvent, HookManager
from serenity_rbac.models.permission import Permission
from serenity_rbac.models.principal import Principal
from serenity_rbac.models.role import (
    DEFAULT_LEVELS,
    Role,
    RoleScope,
    RoleStatistics,
    RoleType,
)
from serenity_rbac.repositories import RoleRepository, RoleStatisticsRepository
from serenity_rbac.schemas.base import parse_input
from serenity_rbac.schemas.role import (
    AssignmentCheck,
    AssignmentRules,
    PermissionCoverage,
    RoleCreate,
    RoleHierarchy,
    RoleRestrictions,
    RoleStatisticsSummary,
    RoleUpdate,
)
from serenity_rbac.services.catalog import CatalogService
from serenity_rbac.utils.timezone import day_of_week, from_utc, to_utc, utc_now

logger = structlog.get_logger()

# Session.info key: caches holding chains this session has changed but not
# yet committed
_PENDING_ROLE_CHANGES = "serenity_rbac.pending_role_changes"

# Attributes RoleUpdate may set directly (None means "leave as is" for
# non-nullable columns)
_NULLABLE_UPDATE_FIELDS = ("description", "expiration_date")
_PLAIN_UPDATE_FIELDS = (
    "display_name",
    "compliance",
    "tags",
    "priority",
    "is_active",
    "is_default",
    "effective_date",
)


def restrictions_of(role: Role) -> RoleRestrictions:
    return RoleRestrictions.model_validate(role.restrictions or {})


def assignment_rules_of(role: Role) -> AssignmentRules:
    return AssignmentRules.model_validate(role.assignment_rules or {})


def check_time_restrictions(role: Role, now: datetime | None = None) -> bool:
    """
    True when ``now`` falls inside the role's day/hour window.

    Days are 0=Sunday..6=Saturday; the hour window is inclusive on both
    ends and wraps past midnight when start > end (e.g. 22..6).
    """
    window = restrictions_of(role).time_restrictions
    if window is None or not window.enabled:
        return True

    now = to_utc(now) if now else utc_now()
    local = from_utc(now, window.timezone) if window.timezone else now

    if window.allowed_days and day_of_week(local) not in window.allowed_days:
        return False

    if window.allowed_hours is not None:
        start, end = window.allowed_hours.start, window.allowed_hours.end
        hour = local.hour
        if start <= end:
            inside = start <= hour <= end
        else:
            inside = hour >= start or hour <= end
        if not inside:
            return False

    return True


def check_ip_restriction(role: Role, ip: str | None) -> bool:
    """True if no whitelist is configured, else exact-address or CIDR membership."""
    whitelist = restrictions_of(role).ip_whitelist
    if not whitelist:
        return True
    if not ip:
        return False
    try:
        address = ipaddress.ip_address(ip)
    except ValueError:
        return False
    return any(address in ipaddress.ip_network(entry, strict=False) for entry in whitelist)


class RoleService:
    """Role creation, mutation and hierarchy introspection."""

    def __init__(
        self,
        db: AsyncSession,
        catalog: CatalogService | None = None,
        cache: PermissionCache | None = None,
        hooks: HookManager | None = None,
        settings: RBACSettings | None = None,
    ):
        self.db = db
        self.hooks = hooks
        self.cache = cache
        self.settings = settings or get_settings().rbac
        self.catalog = catalog or CatalogService(db, hooks)
        self.roles = RoleRepository(db)
        self.stats = RoleStatisticsRepository(db)

    # ============================================================
    # LOOKUP
    # ============================================================

    async def find_role(self, ref: Any) -> Role | None:
        return await self.roles.get_by_ref(ref)

    async def get_role(self, ref: Any) -> Role:
        role = await self.roles.get_by_ref(ref)
        if role is None:
            raise NotFoundError(
                f"Role not found: {ref}",
                code=ErrorCode.ROLE_NOT_FOUND,
                details={"role": str(ref)},
            )
        return role

    async def find_by_scope(self, scope: RoleScope | str, active_only: bool = True) -> list[Role]:
        """Roles in a scope, most privileged first."""
        stmt = select(Role).where(Role.scope == RoleScope(scope))
        if active_only:
            stmt = stmt.where(Role.is_active.is_(True))
        result = await self.db.execute(stmt.order_by(Role.level.desc(), Role.name))
        return list(result.scalars().all())

    # ============================================================
    # CREATE / UPDATE
    # ============================================================

    async def create_role(self, data: RoleCreate | dict[str, Any]) -> Role:
        """
        Create a role.

        Raises:
            ConflictError(ROLE_EXISTS): duplicate name
            NotFoundError(PARENT_ROLE_NOT_FOUND): parent reference does not resolve
            NotFoundError(PERMISSION_NOT_FOUND): unknown permission code
            PolicyViolationError(PERMISSION_INCOMPATIBLE): allow-list breaks a conflict/dependency rule
            PolicyViolationError(HIERARCHY_TOO_DEEP): parent chain too long
        """
        data = parse_input(RoleCreate, data)

        if await self.roles.exists(name=data.name):
            raise ConflictError(
                f"Role already exists: {data.name}",
                code=ErrorCode.ROLE_EXISTS,
                details={"name": data.name},
            )

        parent = None
        if data.parent_role is not None:
            parent = await self._get_parent(data.parent_role)
            await self._validate_parent(parent, role=None)

        level = data.level if data.level is not None else DEFAULT_LEVELS[data.category]
        level = self._clamp_level(data.name, level, parent)
        scope = data.scope or (parent.scope if parent else RoleScope(self.settings.default_scope))

        allowed = await self.catalog.get_many(data.permissions)
        denied = await self.catalog.get_many(data.denied_permissions)
        await self._check_allow_list(data.name, allowed)

        role = Role(
            name=data.name,
            display_name=data.display_name,
            description=data.description,
            scope=scope,
            category=data.category,
            role_type=data.role_type,
            level=level,
            parent_role_id=parent.id if parent else None,
            permissions=allowed,
            denied_permissions=denied,
            restrictions=data.restrictions.model_dump(mode="json", exclude_none=True),
            assignment_rules=data.assignment_rules.model_dump(mode="json", exclude_none=True),
            compliance=dict(data.compliance),
            tags=list(data.tags),
            priority=data.priority,
            is_active=data.is_active,
            is_system=data.is_system,
            is_default=data.is_default,
            effective_date=data.effective_date or utc_now(),
            expiration_date=data.expiration_date,
        )

        try:
            async with self.db.begin_nested():
                self.db.add(role)
                await self.db.flush()
                self.db.add(RoleStatistics(role_id=role.id))
                await self.db.flush()
        except IntegrityError as e:
            raise ConflictError(
                f"Role already exists: {data.name}",
                code=ErrorCode.ROLE_EXISTS,
                details={"name": data.name},
            ) from e

        logger.info(
            "Role created",
            role_id=str(role.id),
            name=role.name,
            level=role.level,
            parent=parent.name if parent else None,
        )
        if self.hooks:
            await self.hooks.trigger(HookEvent.ROLE_CREATED, role=role, parent=parent)
        return role

    async def update_role(self, ref: Any, data: RoleUpdate | dict[str, Any]) -> Role:
        """
        Apply a partial update.

        System roles are protected (SYSTEM_ROLE_PROTECTED). Reparenting is
        checked for cycles and depth; levels are re-clamped down the tree.
        """
        role = await self.get_role(ref)
        self._ensure_mutable(role)
        data = parse_input(RoleUpdate, data)
        fields = data.model_fields_set

        if "parent_role" in fields:
            if data.parent_role is None:
                parent = None
            else:
                parent = await self._get_parent(data.parent_role)
                await self._validate_parent(parent, role=role)
            role.parent_role_id = parent.id if parent else None
        elif role.parent_role_id is not None:
            parent = await self.roles.get_by_id(role.parent_role_id)
        else:
            parent = None

        for name in _PLAIN_UPDATE_FIELDS:
            value = getattr(data, name)
            if name in fields and value is not None:
                setattr(role, name, value)
        for name in _NULLABLE_UPDATE_FIELDS:
            if name in fields:
                setattr(role, name, getattr(data, name))

        if data.restrictions is not None:
            role.restrictions = data.restrictions.model_dump(mode="json", exclude_none=True)
        if data.assignment_rules is not None:
            role.assignment_rules = data.assignment_rules.model_dump(mode="json", exclude_none=True)

        if role.expiration_date and to_utc(role.expiration_date) <= to_utc(role.effective_date):
            raise RBACValidationError(
                "expiration_date must be after effective_date",
                details={"role": role.name},
            )

        if data.level is not None:
            role.level = data.level
        role.level = self._clamp_level(role.name, role.level, parent)
        try:
            # Walking children autoflushes the pending UPDATE of this role
            await self._cascade_levels(role)
        except StaleDataError as e:
            raise self._version_conflict(role) from e

        await self._save(role, change="update", fields=sorted(fields))
        return role

    async def deactivate_role(self, ref: Any) -> Role:
        role = await self.get_role(ref)
        self._ensure_mutable(role)
        role.is_active = False
        await self._save(role, change="deactivate")
        return role

    async def deprecate_role(self, ref: Any, replacement: Any | None = None) -> Role:
        role = await self.get_role(ref)
        self._ensure_mutable(role)
        replacement_role = await self.get_role(replacement) if replacement is not None else None

        role.deprecated_at = utc_now()
        if replacement_role is not None:
            role.replaced_by_id = replacement_role.id
        await self._save(
            role,
            change="deprecate",
            replaced_by=replacement_role.name if replacement_role else None,
        )
        return role

    async def clone(self, ref: Any, new_name: str, overrides: dict[str, Any] | None = None) -> Role:
        """
        Copy a role into a new custom role.

        Identity and statistics are not copied; the clone is never a
        system or default role. Goes through create_role validation.
        """
        source = await self.get_role(ref)

        payload: dict[str, Any] = {
            "name": new_name,
            "display_name": f"{source.display_name} (Copy)",
            "description": source.description,
            "scope": source.scope,
            "category": source.category,
            "level": source.level,
            "parent_role": source.parent_role_id,
            "permissions": source.permission_codes,
            "denied_permissions": source.denied_permission_codes,
            "restrictions": dict(source.restrictions or {}),
            "assignment_rules": dict(source.assignment_rules or {}),
            "compliance": dict(source.compliance or {}),
            "tags": list(source.tags or []),
            "priority": source.priority,
            "is_active": source.is_active,
            "expiration_date": source.expiration_date,
        }
        payload.update(overrides or {})
        payload.update(role_type=RoleType.CUSTOM, is_system=False, is_default=False)

        role = await self.create_role(payload)
        logger.info("Role cloned", source=source.name, clone=role.name)
        return role

    # ============================================================
    # PERMISSION LISTS
    # ============================================================

    async def add_permission(self, role_ref: Any, permission_ref: Any) -> Role:
        """
        Add to the allow-list (idempotent) and drop from the deny-list.

        Raises:
            NotFoundError(PERMISSION_NOT_FOUND)
            PolicyViolationError(PERMISSION_INCOMPATIBLE): details carry the
                compatibility result; the role is left unchanged
        """
        role = await self.get_role(role_ref)
        permission = await self.catalog.get(permission_ref)

        if not _holds(role.permissions, permission):
            result = await self.catalog.check_compatibility(
                permission,
                [p.id for p in role.permissions],
            )
            if not result.compatible:
                raise PolicyViolationError(
                    f"Permission {permission.code} is incompatible with role {role.name}",
                    code=ErrorCode.PERMISSION_INCOMPATIBLE,
                    details={"role": role.name, "permission": permission.code, **result.to_dict()},
                )
            role.permissions.append(permission)
        elif not _holds(role.denied_permissions, permission):
            return role

        _discard(role.denied_permissions, permission)
        await self._save(role, change="add_permission", permission=permission.code)
        return role

    async def remove_permission(self, role_ref: Any, permission_ref: Any) -> Role:
        """Remove from the allow-list only; the deny-list is untouched."""
        role = await self.get_role(role_ref)
        permission = await self.catalog.get(permission_ref)

        if _discard(role.permissions, permission):
            await self._save(role, change="remove_permission", permission=permission.code)
        return role

    async def deny_permission(self, role_ref: Any, permission_ref: Any) -> Role:
        """Add to the deny-list (idempotent) and drop from the allow-list."""
        role = await self.get_role(role_ref)
        permission = await self.catalog.get(permission_ref)

        changed = _discard(role.permissions, permission)
        if not _holds(role.denied_permissions, permission):
            role.denied_permissions.append(permission)
            changed = True

        if changed:
            await self._save(role, change="deny_permission", permission=permission.code)
        return role

    async def set_permissions(self, role_ref: Any, codes: Iterable[str]) -> bool:
        """
        Replace the allow-list wholesale (seeding path).

        Codes are deduplicated; anything now allowed is dropped from the
        deny-list. Returns True if the role changed.
        """
        role = await self.get_role(role_ref)
        permissions = await self.catalog.get_many(list(dict.fromkeys(codes)))

        new_ids = {p.id for p in permissions}
        old_ids = {p.id for p in role.permissions}
        overlap = [p for p in role.denied_permissions if p.id in new_ids]
        if new_ids == old_ids and not overlap:
            return False

        role.permissions = permissions
        for permission in overlap:
            _discard(role.denied_permissions, permission)
        await self._save(role, change="set_permissions", count=len(permissions))
        return True

    # ============================================================
    # RESTRICTIONS / ASSIGNMENT GATE
    # ============================================================

    def check_time_restrictions(self, role: Role, now: datetime | None = None) -> bool:
        return check_time_restrictions(role, now)

    def check_ip_restriction(self, role: Role, ip: str | None) -> bool:
        return check_ip_restriction(role, ip)

    async def can_be_assigned_to(
        self,
        role: Role,
        principal: Principal | dict[str, Any],
        now: datetime | None = None,
    ) -> AssignmentCheck:
        """Active/effective, under the user cap, and assignment rules satisfied."""
        if not role.is_effective(now):
            return AssignmentCheck(allowed=False, reason="Role is not active or effective")

        max_users = restrictions_of(role).max_users
        if max_users is not None:
            if await self.stats.user_count(role.id) >= max_users:
                return AssignmentCheck(allowed=False, reason="User limit reached for this role")

        rules = assignment_rules_of(role)
        context = principal.as_context() if isinstance(principal, Principal) else principal
        if rules.conditions and not evaluate_conditions(rules.conditions, context):
            return AssignmentCheck(allowed=False, reason="User does not meet assignment criteria")

        return AssignmentCheck(allowed=True)

    # ============================================================
    # HIERARCHY
    # ============================================================

    async def get_hierarchy(self, ref: Any) -> RoleHierarchy:
        """Ancestors root-ward, descendants in pre-order. Broken chains are truncated."""
        role = await self.get_role(ref)
        return RoleHierarchy(
            current=role,
            ancestors=await self._walk_ancestors(role, strict=False),
            descendants=await self._walk_descendants(role),
        )

    async def get_chain_permissions(self, role: Role) -> tuple[frozenset[str], frozenset[str]]:
        """
        (allow codes, deny codes) over the role and all of its ancestors.

        Strict walk: a cycle or an over-deep chain raises instead of
        producing a partial answer.
        """
        cache = self._shared_cache()
        if cache:
            cached = await cache.get_role_chain(role.id)
            if cached is not None:
                return cached
            generation = cache.role_generation

        chain = [role, *await self._walk_ancestors(role, strict=True)]
        allowed = frozenset(p.code for r in chain for p in r.permissions)
        denied = frozenset(p.code for r in chain for p in r.denied_permissions)

        if cache:
            await cache.set_role_chain(role.id, allowed, denied, generation=generation)
        return allowed, denied

    async def get_effective_permissions(self, ref: Any) -> list[str]:
        role = await self.get_role(ref)
        allowed, denied = await self.get_chain_permissions(role)
        return sorted(allowed - denied)

    async def get_permission_coverage(
        self,
        role_refs: Iterable[Any],
        include_inherited: bool = False,
    ) -> PermissionCoverage:
        """
        Multi-role aggregate: any role's denial suppresses the permission
        for the whole set. Unknown role references are ignored.
        """
        allowed: set[str] = set()
        denied: set[str] = set()

        for role in await self.resolve_roles(role_refs):
            if include_inherited:
                role_allowed, role_denied = await self.get_chain_permissions(role)
            else:
                role_allowed = set(role.permission_codes)
                role_denied = set(role.denied_permission_codes)
            allowed |= role_allowed
            denied |= role_denied

        return PermissionCoverage(
            allowed=sorted(allowed),
            denied=sorted(denied),
            effective=sorted(allowed - denied),
        )

    async def get_role_statistics(self, ref: Any) -> RoleStatisticsSummary:
        role = await self.get_role(ref)
        stats = await self.stats.get_for_role(role.id)
        return RoleStatisticsSummary(
            role_id=role.id,
            user_count=stats.user_count if stats else 0,
            usage_count=stats.usage_count if stats else 0,
            last_assigned_at=stats.last_assigned_at if stats else None,
            last_used_at=stats.last_used_at if stats else None,
            permission_count=len(role.permissions),
            denied_permission_count=len(role.denied_permissions),
            child_count=await self.roles.count_children(role.id),
        )

    # ============================================================
    # INTERNALS
    # ============================================================

    async def resolve_roles(self, refs: Iterable[Any]) -> list[Role]:
        roles: list[Role] = []
        seen = set()
        for ref in refs:
            role = await self.roles.get_by_ref(ref)
            if role is None:
                logger.debug("Ignoring unknown role reference", role=str(ref))
                continue
            if role.id not in seen:
                seen.add(role.id)
                roles.append(role)
        return roles

    async def _get_parent(self, ref: Any) -> Role:
        parent = await self.roles.get_by_ref(ref)
        if parent is None:
            raise NotFoundError(
                f"Parent role not found: {ref}",
                code=ErrorCode.PARENT_ROLE_NOT_FOUND,
                details={"parent_role": str(ref)},
            )
        return parent

    async def _validate_parent(self, parent: Role, role: Role | None) -> None:
        """Reject level-0 parents, cycles, and chains deeper than the limit."""
        if parent.level <= 0:
            raise RBACValidationError(
                f"Role {parent.name} is at level 0 and cannot have child roles",
                details={"parent_role": parent.name},
            )

        if role is not None and parent.id == role.id:
            raise PolicyViolationError(
                f"Role {role.name} cannot be its own parent",
                code=ErrorCode.HIERARCHY_CYCLE,
                details={"role": role.name},
            )

        ancestors = await self._walk_ancestors(parent, strict=True)
        if role is not None and any(a.id == role.id for a in ancestors):
            raise PolicyViolationError(
                f"Making {parent.name} the parent of {role.name} would create a cycle",
                code=ErrorCode.HIERARCHY_CYCLE,
                details={"role": role.name, "parent_role": parent.name},
            )

        # Depth of the (re)parented role plus the height of its own subtree
        depth = len(ancestors) + 1
        if role is not None:
            depth += await self._subtree_height(role)
        if depth > self.settings.max_hierarchy_depth:
            raise PolicyViolationError(
                f"Role hierarchy would exceed {self.settings.max_hierarchy_depth} levels",
                code=ErrorCode.HIERARCHY_TOO_DEEP,
                details={"parent_role": parent.name, "depth": depth},
            )

    async def _walk_ancestors(self, role: Role, strict: bool) -> list[Role]:
        """
        Parent chain, nearest first.

        A missing parent truncates the walk in either mode. A cycle or
        an over-deep chain raises when strict, otherwise is logged and
        truncated.
        """
        ancestors: list[Role] = []
        visited = {role.id}
        parent_id = role.parent_role_id

        while parent_id is not None:
            if parent_id in visited:
                if strict:
                    raise PolicyViolationError(
                        f"Role hierarchy cycle detected at {role.name}",
                        code=ErrorCode.HIERARCHY_CYCLE,
                        details={"role": role.name, "repeated_role_id": str(parent_id)},
                    )
                logger.warning("Role hierarchy cycle detected", role=role.name, repeated_role_id=str(parent_id))
                break

            if len(ancestors) >= self.settings.max_hierarchy_depth:
                if strict:
                    raise PolicyViolationError(
                        f"Role hierarchy of {role.name} exceeds {self.settings.max_hierarchy_depth} levels",
                        code=ErrorCode.HIERARCHY_TOO_DEEP,
                        details={"role": role.name},
                    )
                logger.warning("Role hierarchy too deep, truncating", role=role.name)
                break

            parent = await self.roles.get_by_id(parent_id)
            if parent is None:
                logger.warning(
                    "Role hierarchy truncated at missing parent",
                    role=role.name,
                    missing_parent_id=str(parent_id),
                )
                break

            ancestors.append(parent)
            visited.add(parent.id)
            parent_id = parent.parent_role_id

        return ancestors

    async def _walk_descendants(self, role: Role) -> list[Role]:
        """All descendants in pre-order, guarded by a visited set and the depth limit."""
        descendants: list[Role] = []
        visited = {role.id}
        max_depth = self.settings.max_hierarchy_depth

        async def visit(node: Role, depth: int) -> None:
            if depth > max_depth:
                logger.warning("Role hierarchy too deep, truncating descendants", role=role.name)
                return
            for child in await self.roles.get_children(node.id):
                if child.id in visited:
                    logger.warning("Role hierarchy cycle detected", role=node.name, child=child.name)
                    continue
                visited.add(child.id)
                descendants.append(child)
                await visit(child, depth + 1)

        await visit(role, 1)
        return descendants

    async def _subtree_height(self, role: Role) -> int:
        height = 0
        frontier = [role]
        visited = {role.id}
        while frontier and height <= self.settings.max_hierarchy_depth:
            next_frontier = []
            for node in frontier:
                for child in await self.roles.get_children(node.id):
                    if child.id not in visited:
                        visited.add(child.id)
                        next_frontier.append(child)
            if not next_frontier:
                break
            height += 1
            frontier = next_frontier
        return height

    def _clamp_level(self, name: str, level: int, parent: Role | None) -> int:
        if parent is not None and level >= parent.level:
            clamped = parent.level - 1
            logger.info(
                "Role level clamped below parent",
                role=name,
                requested=level,
                level=clamped,
                parent=parent.name,
            )
            return clamped
        return level

    async def _cascade_levels(self, role: Role) -> None:
        """Keep every descendant strictly below its parent after a level change."""
        children = await self.roles.get_children(role.id)
        if children and role.level <= 0:
            raise RBACValidationError(
                f"Role {role.name} has child roles and cannot drop to level 0",
                details={"role": role.name},
            )
        for child in children:
            if child.level >= role.level:
                child.level = self._clamp_level(child.name, child.level, role)
                child.updated_at = utc_now()
                await self._cascade_levels(child)

    def _ensure_mutable(self, role: Role) -> None:
        if role.is_system:
            raise PolicyViolationError(
                f"System role {role.name} cannot be modified",
                code=ErrorCode.SYSTEM_ROLE_PROTECTED,
                details={"role": role.name},
            )

    async def _check_allow_list(self, role_name: str, permissions: list[Permission]) -> None:
        """Every permission must be compatible with the rest of the list."""
        ids = [p.id for p in permissions]
        for permission in permissions:
            result = await self.catalog.check_compatibility(permission, ids)
            if not result.compatible:
                raise PolicyViolationError(
                    f"Permission {permission.code} is incompatible with role {role_name}",
                    code=ErrorCode.PERMISSION_INCOMPATIBLE,
                    details={"role": role_name, "permission": permission.code, **result.to_dict()},
                )

    def _version_conflict(self, role: Role) -> ConflictError:
        return ConflictError(
            f"Role {role.name} was modified concurrently",
            code=ErrorCode.ROLE_VERSION_CONFLICT,
            details={"role": role.name},
        )

    async def _save(self, role: Role, change: str, **details: Any) -> None:
        """Flush a role mutation under the version check, then invalidate and notify."""
        # Collection-only changes do not UPDATE the row; touching it does,
        # which is what bumps the version.
        role.updated_at = utc_now()
        try:
            await self.db.flush()
        except StaleDataError as e:
            raise self._version_conflict(role) from e

        if self.cache:
            await self.cache.invalidate_roles()
            self._invalidate_when_transaction_ends()

        logger.info("Role updated", role=role.name, change=change, version=role.version, **details)
        if self.hooks:
            await self.hooks.trigger(HookEvent.ROLE_UPDATED, role=role, change=change, **details)

    def _shared_cache(self) -> PermissionCache | None:
        """The chain cache, unless this session holds uncommitted role changes."""
        if self.cache is None:
            return None
        pending = self.db.sync_session.info.get(_PENDING_ROLE_CHANGES, ())
        if any(c is self.cache for c in pending):
            return None
        return self.cache

    def _invalidate_when_transaction_ends(self) -> None:
        # Other sessions may cache the old committed chain until this
        # transaction commits; drop role chains again once it ends.
        session = self.db.sync_session
        pending = session.info.setdefault(_PENDING_ROLE_CHANGES, [])
        if not any(c is self.cache for c in pending):
            pending.append(self.cache)

        if not event.contains(session, "after_commit", _drop_pending_role_chains):
            event.listen(session, "after_commit", _drop_pending_role_chains)
            event.listen(session, "after_transaction_end", _on_transaction_end)


def _drop_pending_role_chains(session: Session) -> None:
    for cache in session.info.pop(_PENDING_ROLE_CHANGES, []):
        cache.discard_role_chains()


def _on_transaction_end(session: Session, transaction: SessionTransaction) -> None:
    # Covers rollback of the outermost transaction; savepoints are ignored
    if transaction.parent is None:
        _drop_pending_role_chains(session)


def _holds(permissions: list[Permission], permission: Permission) -> bool:
    return any(p.id == permission.id for p in permissions)


def _discard(permissions: list[Permission], permission: Permission) -> bool:
    for existing in permissions:
        if existing.id == permission.id:
            permissions.remove(existing)
            return True
    return False

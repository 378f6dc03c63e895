"""
Database models.
"""

from .base import Base, JSONType, StandardMixin, TimestampMixin, UUIDMixin
from .permission import (
    AuditLevel,
    DependencyType,
    Permission,
    PermissionAction,
    PermissionCategory,
    PermissionScope,
    PermissionSet,
    RiskLevel,
    permission_conflicts,
    permission_dependencies,
)
from .role import (
    DEFAULT_LEVELS,
    Role,
    RoleCategory,
    RoleScope,
    RoleStatistics,
    RoleType,
    role_denied_permissions,
    role_permissions,
)
from .principal import Principal, PrincipalRole

__all__ = [
    "Base",
    "JSONType",
    "StandardMixin",
    "TimestampMixin",
    "UUIDMixin",
    # Permissions
    "AuditLevel",
    "DependencyType",
    "Permission",
    "PermissionAction",
    "PermissionCategory",
    "PermissionScope",
    "PermissionSet",
    "RiskLevel",
    "permission_conflicts",
    "permission_dependencies",
    # Roles
    "DEFAULT_LEVELS",
    "Role",
    "RoleCategory",
    "RoleScope",
    "RoleStatistics",
    "RoleType",
    "role_denied_permissions",
    "role_permissions",
    # Principals
    "Principal",
    "PrincipalRole",
]

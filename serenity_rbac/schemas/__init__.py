"""
Input schemas and result types.
"""

from .base import parse_input
from .decision import AuthorizationDecision, SeedResult
from .permission import (
    CompatibilityResult,
    DependencyRef,
    PermissionCreate,
    PermissionRead,
    PermissionSearch,
    PermissionSetCreate,
)
from .role import (
    AssignmentCheck,
    AssignmentRules,
    HourWindow,
    PermissionCoverage,
    RoleCreate,
    RoleHierarchy,
    RoleRead,
    RoleRestrictions,
    RoleStatisticsSummary,
    RoleUpdate,
    TimeRestrictions,
)

__all__ = [
    "parse_input",
    "AuthorizationDecision",
    "SeedResult",
    "CompatibilityResult",
    "DependencyRef",
    "PermissionCreate",
    "PermissionRead",
    "PermissionSearch",
    "PermissionSetCreate",
    "AssignmentCheck",
    "AssignmentRules",
    "HourWindow",
    "PermissionCoverage",
    "RoleCreate",
    "RoleHierarchy",
    "RoleRead",
    "RoleRestrictions",
    "RoleStatisticsSummary",
    "RoleUpdate",
    "TimeRestrictions",
]

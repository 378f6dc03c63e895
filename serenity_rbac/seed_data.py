"""
Declarative seed tables for the permission catalog, permission sets
and well-known roles.

The seeder (services/seeder.py) reads these tables; editing them and
re-running the seeder is how the catalog evolves. Role permission lists
are recomputed from ROLE_MAPPINGS on every run (full replace).
"""

from typing import Any

from serenity_rbac.models.permission import (
    AuditLevel,
    PermissionAction,
    PermissionCategory,
    PermissionScope,
    RiskLevel,
)
from serenity_rbac.models.role import RoleCategory, RoleScope, RoleType


# ============================================================
# RESOURCES x ACTIONS
# ============================================================

RESOURCES: dict[str, PermissionCategory] = {
    # Core
    "user": PermissionCategory.USER_MANAGEMENT,
    "organization": PermissionCategory.ORGANIZATION_MANAGEMENT,
    "tenant": PermissionCategory.ORGANIZATION_MANAGEMENT,
    "role": PermissionCategory.SECURITY,
    "permission": PermissionCategory.SECURITY,
    # Consulting
    "client": PermissionCategory.WORKFLOW,
    "project": PermissionCategory.WORKFLOW,
    "consultant": PermissionCategory.WORKFLOW,
    "engagement": PermissionCategory.WORKFLOW,
    # Recruitment
    "job": PermissionCategory.WORKFLOW,
    "candidate": PermissionCategory.WORKFLOW,
    "application": PermissionCategory.WORKFLOW,
    "partner": PermissionCategory.WORKFLOW,
    # System
    "system": PermissionCategory.SYSTEM,
    "settings": PermissionCategory.SYSTEM,
    "audit": PermissionCategory.SECURITY,
    "report": PermissionCategory.ANALYTICS,
    "analytics": PermissionCategory.ANALYTICS,
    "integration": PermissionCategory.INTEGRATION,
    "webhook": PermissionCategory.INTEGRATION,
    "api": PermissionCategory.INTEGRATION,
}

# Ordered so every dependency is created before its dependents
ACTIONS: list[PermissionAction] = [
    PermissionAction.READ,
    PermissionAction.CREATE,
    PermissionAction.UPDATE,
    PermissionAction.DELETE,
    PermissionAction.EXECUTE,
    PermissionAction.MANAGE,
]

GLOBAL_RESOURCES = {"system", "settings", "audit"}
SENSITIVE_RESOURCES = {"system", "permission", "role", "audit"}
MFA_RESOURCES = {"system", "permission", "role", "billing", "audit"}
DETAILED_AUDIT_RESOURCES = {"user", "permission", "role", "billing", "system"}

DESCRIPTIONS: dict[PermissionAction, str] = {
    PermissionAction.CREATE: "Create new {resource} records",
    PermissionAction.READ: "View {resource} information",
    PermissionAction.UPDATE: "Modify existing {resource} records",
    PermissionAction.DELETE: "Remove {resource} records",
    PermissionAction.MANAGE: "Full management of {resource} resources",
    PermissionAction.EXECUTE: "Execute {resource} operations",
}

DEPENDENCIES: dict[PermissionAction, list[PermissionAction]] = {
    PermissionAction.CREATE: [PermissionAction.READ],
    PermissionAction.UPDATE: [PermissionAction.READ],
    PermissionAction.DELETE: [PermissionAction.READ, PermissionAction.UPDATE],
    PermissionAction.MANAGE: [
        PermissionAction.CREATE,
        PermissionAction.READ,
        PermissionAction.UPDATE,
        PermissionAction.DELETE,
    ],
}


def seed_scope(resource: str, action: PermissionAction) -> PermissionScope:
    if resource in GLOBAL_RESOURCES:
        return PermissionScope.GLOBAL
    if action in (PermissionAction.DELETE, PermissionAction.MANAGE):
        return PermissionScope.ORGANIZATION
    return PermissionScope.TENANT


def seed_risk_level(resource: str, action: PermissionAction) -> RiskLevel:
    """Seeded resources use a stricter table than the catalog default."""
    destructive = action in (PermissionAction.DELETE, PermissionAction.MANAGE)
    if resource in SENSITIVE_RESOURCES and destructive:
        return RiskLevel.CRITICAL
    if resource in SENSITIVE_RESOURCES or action == PermissionAction.DELETE:
        return RiskLevel.HIGH
    if action in (PermissionAction.CREATE, PermissionAction.UPDATE):
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def seed_requires_mfa(resource: str, action: PermissionAction) -> bool:
    return resource in MFA_RESOURCES or action in (PermissionAction.DELETE, PermissionAction.MANAGE)


def seed_audit_level(resource: str, action: PermissionAction) -> AuditLevel:
    if resource in DETAILED_AUDIT_RESOURCES and action in (
        PermissionAction.CREATE,
        PermissionAction.UPDATE,
        PermissionAction.DELETE,
        PermissionAction.MANAGE,
    ):
        return AuditLevel.DETAILED
    return AuditLevel.BASIC


def resource_permissions() -> list[dict[str, Any]]:
    """One permission definition per (resource x action)."""
    definitions = []
    for resource, category in RESOURCES.items():
        for action in ACTIONS:
            definitions.append({
                "code": f"{resource}:{action.value}",
                "display_name": f"{action.value.title()} {resource}",
                "description": DESCRIPTIONS[action].format(resource=resource),
                "resource": resource,
                "action": action,
                "category": category,
                "scope": seed_scope(resource, action),
                "risk_level": seed_risk_level(resource, action),
                "requires_mfa": seed_requires_mfa(resource, action),
                "audit_level": seed_audit_level(resource, action),
                "dependencies": [f"{resource}:{dep.value}" for dep in DEPENDENCIES.get(action, [])],
                "is_system": True,
            })
    return definitions


# ============================================================
# FEATURE PERMISSIONS
# ============================================================

def _custom(
    code: str,
    display_name: str,
    resource: str,
    action: PermissionAction,
    category: PermissionCategory,
    risk: RiskLevel,
    description: str,
    requires_approval: bool = False,
) -> dict[str, Any]:
    critical = risk == RiskLevel.CRITICAL
    return {
        "code": code,
        "display_name": display_name,
        "description": description,
        "resource": resource,
        "action": action,
        "category": category,
        "scope": PermissionScope.ORGANIZATION,
        "risk_level": risk,
        "requires_mfa": critical,
        "requires_approval": requires_approval,
        "audit_level": AuditLevel.DETAILED if critical else AuditLevel.BASIC,
        "is_system": False,
    }


CUSTOM_PERMISSIONS: list[dict[str, Any]] = [
    # White label
    _custom("whitelabel:configure", "Configure White Label", "whitelabel", PermissionAction.UPDATE,
            PermissionCategory.CONTENT, RiskLevel.MEDIUM, "Configure white label settings"),
    _custom("whitelabel:manage", "Manage White Label", "whitelabel", PermissionAction.MANAGE,
            PermissionCategory.CONTENT, RiskLevel.HIGH, "Full white label management"),
    # Content
    _custom("content:publish", "Publish Content", "content", PermissionAction.PUBLISH,
            PermissionCategory.CONTENT, RiskLevel.MEDIUM, "Publish content to end users"),
    # Billing
    _custom("billing:view", "View Billing", "billing", PermissionAction.READ,
            PermissionCategory.BILLING, RiskLevel.LOW, "View billing information"),
    _custom("billing:approve", "Approve Billing", "billing", PermissionAction.APPROVE,
            PermissionCategory.BILLING, RiskLevel.HIGH, "Approve invoices and refunds",
            requires_approval=True),
    _custom("billing:manage", "Manage Billing", "billing", PermissionAction.MANAGE,
            PermissionCategory.BILLING, RiskLevel.CRITICAL, "Manage billing and payments"),
    # Data movement
    _custom("data:export", "Export Data", "data", PermissionAction.EXECUTE,
            PermissionCategory.SYSTEM, RiskLevel.HIGH, "Export system data"),
    _custom("data:import", "Import Data", "data", PermissionAction.CREATE,
            PermissionCategory.SYSTEM, RiskLevel.CRITICAL, "Import data into system"),
    # Compliance
    _custom("compliance:audit", "Compliance Audit", "compliance", PermissionAction.READ,
            PermissionCategory.SECURITY, RiskLevel.MEDIUM, "Perform compliance audits"),
    _custom("compliance:report", "Compliance Reporting", "compliance", PermissionAction.EXECUTE,
            PermissionCategory.SECURITY, RiskLevel.MEDIUM, "Generate compliance reports"),
    # Analytics
    _custom("analytics:advanced", "Advanced Analytics", "analytics", PermissionAction.READ,
            PermissionCategory.ANALYTICS, RiskLevel.LOW, "Access advanced analytics features"),
    _custom("analytics:export", "Export Analytics", "analytics", PermissionAction.EXECUTE,
            PermissionCategory.ANALYTICS, RiskLevel.MEDIUM, "Export analytics data"),
    # API
    _custom("api:admin:access", "API Admin Access", "api", PermissionAction.MANAGE,
            PermissionCategory.INTEGRATION, RiskLevel.CRITICAL, "Administrative API access",
            requires_approval=True),
    _custom("api:rate:unlimited", "Unlimited API Rate", "api", PermissionAction.EXECUTE,
            PermissionCategory.INTEGRATION, RiskLevel.HIGH, "Bypass API rate limits",
            requires_approval=True),
    _custom("api:batch:operations", "Batch API Operations", "api", PermissionAction.EXECUTE,
            PermissionCategory.INTEGRATION, RiskLevel.HIGH, "Perform batch API operations",
            requires_approval=True),
]

DEVELOPMENT_PERMISSIONS: list[dict[str, Any]] = [
    _custom("debug:enable", "Enable Debug Mode", "debug", PermissionAction.EXECUTE,
            PermissionCategory.SYSTEM, RiskLevel.CRITICAL, "Enable system debug mode"),
    _custom("test:execute", "Execute Tests", "test", PermissionAction.EXECUTE,
            PermissionCategory.SYSTEM, RiskLevel.HIGH, "Execute system tests"),
]


# ============================================================
# PERMISSION SETS
# ============================================================

PERMISSION_SETS: list[dict[str, Any]] = [
    {
        "code": "user-management",
        "name": "User Management",
        "description": "Complete user management capabilities",
        "category": "administration",
        "permissions": [
            "user:create", "user:read", "user:update", "user:delete",
            "role:read", "permission:read",
        ],
    },
    {
        "code": "organization-admin",
        "name": "Organization Administration",
        "description": "Full organization management permissions",
        "category": "administration",
        "permissions": [
            "organization:create", "organization:read", "organization:update",
            "organization:delete", "organization:manage",
            "tenant:read", "tenant:update", "tenant:manage",
            "settings:read", "settings:update", "settings:manage",
        ],
    },
    {
        "code": "consulting-manager",
        "name": "Consulting Management",
        "description": "Manage consulting operations",
        "category": "business",
        "permissions": [
            "client:create", "client:read", "client:update",
            "project:create", "project:read", "project:update",
            "consultant:read", "consultant:manage",
            "engagement:create", "engagement:read", "engagement:update",
        ],
    },
    {
        "code": "recruitment-manager",
        "name": "Recruitment Management",
        "description": "Manage recruitment operations",
        "category": "business",
        "permissions": [
            "job:create", "job:read", "job:update", "job:delete",
            "candidate:create", "candidate:read", "candidate:update",
            "application:read", "application:update",
            "partner:read",
        ],
    },
    {
        "code": "reporting-analytics",
        "name": "Reporting & Analytics",
        "description": "Access to reports and analytics",
        "category": "analytics",
        "permissions": [
            "report:read", "report:create", "report:execute",
            "analytics:read", "analytics:execute",
        ],
    },
    {
        "code": "system-admin",
        "name": "System Administration",
        "description": "System-level administration permissions",
        "category": "system",
        "permissions": [
            "system:read", "system:update", "system:manage",
            "audit:read",
            "integration:create", "integration:read", "integration:update", "integration:delete",
            "webhook:create", "webhook:read", "webhook:update", "webhook:delete",
        ],
    },
    {
        "code": "api-full-access",
        "name": "API Full Access",
        "description": "Complete API access permissions",
        "category": "api",
        "permissions": ["api:read", "api:create", "api:update", "api:delete", "api:execute"],
    },
    {
        "code": "read-only",
        "name": "Read Only Access",
        "description": "Read-only access to all resources",
        "category": "basic",
        "permissions": [f"{resource}:read" for resource in RESOURCES],
    },
    {
        "code": "self-service",
        "name": "Self Service",
        "description": "Permissions for self-service operations",
        "category": "basic",
        "permissions": ["user:read", "user:update", "project:read", "report:read"],
        "constraints": {"scope_to_self": True},
    },
]


# ============================================================
# WELL-KNOWN ROLES
# ============================================================

WELL_KNOWN_ROLES: list[dict[str, Any]] = [
    {
        "name": "super_admin",
        "display_name": "Super Administrator",
        "description": "Full platform access with all permissions",
        "scope": RoleScope.SYSTEM,
        "category": RoleCategory.ADMINISTRATIVE,
        "role_type": RoleType.SYSTEM,
        "level": 100,
        "is_system": True,
        "restrictions": {"requires_mfa": True},
    },
    {
        "name": "admin",
        "display_name": "Administrator",
        "description": "Administrative access",
        "scope": RoleScope.ORGANIZATION,
        "category": RoleCategory.ADMINISTRATIVE,
        "role_type": RoleType.SYSTEM,
        "level": 90,
        "is_system": True,
    },
    {
        "name": "manager",
        "display_name": "Manager",
        "description": "Management access",
        "scope": RoleScope.ORGANIZATION,
        "category": RoleCategory.MANAGEMENT,
        "role_type": RoleType.PREDEFINED,
        "level": 70,
    },
    {
        "name": "user",
        "display_name": "User",
        "description": "Standard user access",
        "scope": RoleScope.ORGANIZATION,
        "category": RoleCategory.OPERATIONAL,
        "role_type": RoleType.PREDEFINED,
        "level": 10,
        "is_default": True,
    },
    {
        "name": "guest",
        "display_name": "Guest",
        "description": "Guest access only",
        "scope": RoleScope.ORGANIZATION,
        "category": RoleCategory.GUEST,
        "role_type": RoleType.PREDEFINED,
        "level": 0,
    },
]

# Role permission list = union(set expansions) + permissions + additional - exclude
# "permissions": "*" means every catalog code.
ROLE_MAPPINGS: dict[str, dict[str, Any]] = {
    "super_admin": {
        "permissions": "*",
        "sets": [s["code"] for s in PERMISSION_SETS],
    },
    "admin": {
        "sets": [
            "user-management",
            "organization-admin",
            "consulting-manager",
            "recruitment-manager",
            "reporting-analytics",
        ],
        "exclude": ["system:delete", "system:manage", "audit:delete"],
    },
    "manager": {
        "sets": ["consulting-manager", "recruitment-manager", "reporting-analytics"],
        "additional": ["user:read", "organization:read"],
    },
    "user": {
        "sets": ["self-service"],
        "additional": ["client:read", "project:read", "job:read", "candidate:read", "report:read"],
    },
    "guest": {
        "sets": ["read-only"],
        "exclude": ["user:read", "audit:read", "system:read", "settings:read", "permission:read"],
    },
}

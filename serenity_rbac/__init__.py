"""
serenity-rbac - role-based access control on SQLAlchemy.

Permission catalog, permission sets, role hierarchy with deny-overrides,
an authorization evaluator and an idempotent seeder.
"""

from serenity_rbac.access import AccessControl
from serenity_rbac.core.errors import (
    ConflictError,
    ErrorCode,
    NotFoundError,
    PolicyViolationError,
    RBACError,
    RBACValidationError,
)
from serenity_rbac.schemas.decision import AuthorizationDecision, SeedResult

__version__ = "0.1.0"

__all__ = [
    "AccessControl",
    "AuthorizationDecision",
    "SeedResult",
    "ConflictError",
    "ErrorCode",
    "NotFoundError",
    "PolicyViolationError",
    "RBACError",
    "RBACValidationError",
]

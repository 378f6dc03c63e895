"""
Access-control error taxonomy.

Every failure surfaced by the library is an RBACError carrying:
- code: stable machine-readable identifier (e.g. "ROLE_EXISTS")
- message: human-readable explanation
- details: structured data the caller can act on
- status_code: HTTP status the outer layer should map it to

Kinds:
- ConflictError (409): duplicate identity, concurrent modification
- NotFoundError (404): referenced permission/role/principal missing
- PolicyViolationError (403): valid request forbidden by a business rule
- RBACValidationError (400): malformed input
"""

from typing import Any


class ErrorCode:
    """Standard error code constants."""

    # Conflict
    PERMISSION_EXISTS = "PERMISSION_EXISTS"
    PERMISSION_SET_EXISTS = "PERMISSION_SET_EXISTS"
    ROLE_EXISTS = "ROLE_EXISTS"
    ROLE_VERSION_CONFLICT = "ROLE_VERSION_CONFLICT"

    # Not found
    NOT_FOUND = "NOT_FOUND"
    PERMISSION_NOT_FOUND = "PERMISSION_NOT_FOUND"
    PERMISSION_SET_NOT_FOUND = "PERMISSION_SET_NOT_FOUND"
    ROLE_NOT_FOUND = "ROLE_NOT_FOUND"
    PARENT_ROLE_NOT_FOUND = "PARENT_ROLE_NOT_FOUND"
    PRINCIPAL_NOT_FOUND = "PRINCIPAL_NOT_FOUND"

    # Policy violation
    PERMISSION_INCOMPATIBLE = "PERMISSION_INCOMPATIBLE"
    SYSTEM_ROLE_PROTECTED = "SYSTEM_ROLE_PROTECTED"
    ASSIGNMENT_NOT_ALLOWED = "ASSIGNMENT_NOT_ALLOWED"
    HIERARCHY_CYCLE = "HIERARCHY_CYCLE"
    HIERARCHY_TOO_DEEP = "HIERARCHY_TOO_DEEP"

    # Validation
    VALIDATION_ERROR = "VALIDATION_ERROR"


class RBACError(Exception):
    """Base class for all access-control errors."""

    status_code: int = 500
    default_code: str = "RBAC_ERROR"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.code}: {self.message}>"


class ConflictError(RBACError):
    """Duplicate identity or lost-update conflict."""

    status_code = 409
    default_code = "CONFLICT"


class NotFoundError(RBACError):
    """Referenced entity does not exist."""

    status_code = 404
    default_code = ErrorCode.NOT_FOUND


class PolicyViolationError(RBACError):
    """Structurally valid operation forbidden by a business rule."""

    status_code = 403
    default_code = "POLICY_VIOLATION"


class RBACValidationError(RBACError):
    """Malformed input (missing field, invalid enum value, bad reference)."""

    status_code = 400
    default_code = ErrorCode.VALIDATION_ERROR

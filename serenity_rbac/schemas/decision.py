"""
Authorization and seeding result types.
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class AuthorizationDecision:
    """
    Result of an authorization check.

    Attributes:
        granted: Whether the permission is granted
        permission_code: The permission that was checked
        requires_mfa: Caller must force an MFA challenge before honoring
        requires_approval: Caller must route the action through approval
        reason: Human-readable explanation (for errors/logging)
        granted_by: Names of the held roles whose chain grants the permission
    """
    granted: bool
    permission_code: str
    requires_mfa: bool = False
    requires_approval: bool = False
    reason: str | None = None
    granted_by: list[str] = field(default_factory=list)

    @classmethod
    def allow(
        cls,
        permission_code: str,
        granted_by: list[str],
        requires_mfa: bool = False,
        requires_approval: bool = False,
    ) -> "AuthorizationDecision":
        return cls(
            granted=True,
            permission_code=permission_code,
            requires_mfa=requires_mfa,
            requires_approval=requires_approval,
            reason=f"Granted by role(s): {', '.join(granted_by)}",
            granted_by=granted_by,
        )

    @classmethod
    def deny(cls, permission_code: str, reason: str = "Permission denied") -> "AuthorizationDecision":
        return cls(granted=False, permission_code=permission_code, reason=reason)

    def __bool__(self) -> bool:
        return self.granted

    def to_dict(self) -> dict[str, Any]:
        return {
            "granted": self.granted,
            "permission_code": self.permission_code,
            "requires_mfa": self.requires_mfa,
            "requires_approval": self.requires_approval,
            "reason": self.reason,
            "granted_by": list(self.granted_by),
        }


@dataclass
class SeedResult:
    """Counters reported by the seeder."""
    created: int = 0
    skipped: int = 0
    permission_sets_created: int = 0
    roles_created: int = 0
    roles_updated: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "created": self.created,
            "skipped": self.skipped,
            "permission_sets_created": self.permission_sets_created,
            "roles_created": self.roles_created,
            "roles_updated": self.roles_updated,
        }

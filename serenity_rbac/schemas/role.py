"""
Role schemas.

Restrictions and assignment rules are stored as JSON on the role row
and validated through these models on the way in and on evaluation.
"""

import ipaddress
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from serenity_rbac.conditions import ASSIGNMENT_OPERATORS, Condition
from serenity_rbac.models.role import Role, RoleCategory, RoleScope, RoleType
from serenity_rbac.utils.timezone import is_valid_timezone


# ============================================================
# RESTRICTIONS
# ============================================================

class HourWindow(BaseModel):
    """Inclusive hour window, e.g. 9..17."""
    start: int = Field(ge=0, le=23)
    end: int = Field(ge=0, le=23)


class TimeRestrictions(BaseModel):
    """
    Day-of-week / hour-of-day window.

    Days use 0=Sunday ... 6=Saturday. Hours are compared in ``timezone``
    when given, UTC otherwise.
    """
    enabled: bool = True
    allowed_days: list[int] | None = None
    allowed_hours: HourWindow | None = None
    timezone: str | None = None

    @field_validator("allowed_days")
    @classmethod
    def validate_days(cls, v: list[int] | None) -> list[int] | None:
        if v is not None and any(d < 0 or d > 6 for d in v):
            raise ValueError("allowed_days entries must be between 0 (Sunday) and 6 (Saturday)")
        return v

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str | None) -> str | None:
        if v is not None and not is_valid_timezone(v):
            raise ValueError(f"Unknown timezone: {v}")
        return v


class RoleRestrictions(BaseModel):
    """Constraints on who can hold a role and when it is usable."""
    model_config = ConfigDict(extra="forbid")

    max_users: int | None = Field(None, ge=1)
    requires_mfa: bool = False
    requires_approval: bool = False
    ip_whitelist: list[str] = []
    time_restrictions: TimeRestrictions | None = None
    session_timeout: int | None = Field(None, ge=1, description="Minutes")
    concurrent_sessions: int | None = Field(None, ge=1)

    @field_validator("ip_whitelist")
    @classmethod
    def validate_ip_whitelist(cls, v: list[str]) -> list[str]:
        for entry in v:
            try:
                ipaddress.ip_network(entry, strict=False)
            except ValueError:
                raise ValueError(f"Invalid IP address or network: {entry}")
        return v


class AssignmentRules(BaseModel):
    """Conditions a principal must satisfy to be assigned a role."""
    type: Literal["attribute", "group", "dynamic", "temporal"] = "attribute"
    conditions: list[Condition] = []
    auto_assign: bool = False
    expires_after: int | None = Field(None, ge=1, description="Days")

    @field_validator("conditions")
    @classmethod
    def validate_operators(cls, v: list[Condition]) -> list[Condition]:
        for condition in v:
            if condition.operator not in ASSIGNMENT_OPERATORS:
                raise ValueError(
                    f"operator '{condition.operator.value}' is not allowed in assignment rules"
                )
        return v


# ============================================================
# INPUT
# ============================================================

class RoleCreate(BaseModel):
    """Role creation input."""

    name: str = Field(min_length=1, max_length=100, pattern=r"^[a-z0-9_-]+$")
    display_name: str | None = Field(None, max_length=200)
    description: str | None = Field(None, max_length=1000)

    scope: RoleScope | None = None
    category: RoleCategory
    role_type: RoleType = RoleType.CUSTOM
    level: int | None = Field(None, ge=0, le=100)
    parent_role: str | UUID | None = None

    # Permission codes
    permissions: list[str] = []
    denied_permissions: list[str] = []

    restrictions: RoleRestrictions = Field(default_factory=RoleRestrictions)
    assignment_rules: AssignmentRules = Field(default_factory=AssignmentRules)
    compliance: dict[str, Any] = {}
    tags: list[str] = []
    priority: int = 0

    is_active: bool = True
    is_system: bool = False
    is_default: bool = False
    effective_date: datetime | None = None
    expiration_date: datetime | None = None

    @field_validator("name", mode="before")
    @classmethod
    def lowercase_name(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @model_validator(mode="after")
    def derive_defaults(self) -> "RoleCreate":
        if not self.display_name:
            self.display_name = self.name.replace("_", " ").replace("-", " ").title()
        if self.effective_date and self.expiration_date and self.expiration_date <= self.effective_date:
            raise ValueError("expiration_date must be after effective_date")
        overlap = set(self.permissions) & set(self.denied_permissions)
        if overlap:
            raise ValueError(f"permissions both allowed and denied: {sorted(overlap)}")
        return self


class RoleUpdate(BaseModel):
    """
    Partial role update. Only fields explicitly passed are applied;
    pass ``parent_role=None`` to detach a role from its parent.
    """

    display_name: str | None = Field(None, max_length=200)
    description: str | None = Field(None, max_length=1000)
    level: int | None = Field(None, ge=0, le=100)
    parent_role: str | UUID | None = None
    restrictions: RoleRestrictions | None = None
    assignment_rules: AssignmentRules | None = None
    compliance: dict[str, Any] | None = None
    tags: list[str] | None = None
    priority: int | None = None
    is_active: bool | None = None
    is_default: bool | None = None
    effective_date: datetime | None = None
    expiration_date: datetime | None = None


class RoleRead(BaseModel):
    """Role response schema."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    display_name: str
    description: str | None = None
    scope: RoleScope
    category: RoleCategory
    role_type: RoleType
    level: int
    parent_role_id: UUID | None = None
    permission_codes: list[str]
    denied_permission_codes: list[str]
    is_active: bool
    is_system: bool
    is_default: bool
    priority: int
    version: int


# ============================================================
# RESULTS
# ============================================================

@dataclass
class AssignmentCheck:
    """Outcome of ``can_be_assigned_to``."""
    allowed: bool
    reason: str | None = None


@dataclass
class RoleHierarchy:
    """A role with its ancestors (root-ward) and descendants (pre-order)."""
    current: Role
    ancestors: list[Role] = field(default_factory=list)
    descendants: list[Role] = field(default_factory=list)


@dataclass
class PermissionCoverage:
    """Aggregated allow/deny codes across roles; effective = allowed - denied."""
    allowed: list[str] = field(default_factory=list)
    denied: list[str] = field(default_factory=list)
    effective: list[str] = field(default_factory=list)


@dataclass
class RoleStatisticsSummary:
    """Counters from the role's statistics record plus hierarchy size."""
    role_id: UUID
    user_count: int
    usage_count: int
    last_assigned_at: datetime | None
    last_used_at: datetime | None
    permission_count: int
    denied_permission_count: int
    child_count: int

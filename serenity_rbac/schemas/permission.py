"""
Permission schemas.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from serenity_rbac.conditions import Condition
from serenity_rbac.models.permission import (
    AuditLevel,
    DependencyType,
    PermissionAction,
    PermissionCategory,
    PermissionScope,
    RiskLevel,
)


class DependencyRef(BaseModel):
    """Reference to a permission this one depends on (code or id)."""
    permission: str | UUID
    type: DependencyType = DependencyType.REQUIRED


class PermissionCreate(BaseModel):
    """Permission creation input."""

    code: str | None = Field(None, max_length=100, pattern=r"^[a-z0-9_:]+$")
    display_name: str | None = Field(None, max_length=200)
    description: str | None = Field(None, max_length=1000)

    resource: str = Field(min_length=1, max_length=100, pattern=r"^[a-z0-9_]+$")
    action: PermissionAction
    scope: PermissionScope = PermissionScope.ORGANIZATION
    category: PermissionCategory
    risk_level: RiskLevel | None = None

    requires_mfa: bool = False
    requires_approval: bool = False
    approval_level: int = Field(default=1, ge=1, le=3)
    conditions: list[Condition] = []

    audit_level: AuditLevel = AuditLevel.BASIC
    retention_days: int = Field(default=90, ge=0)
    tags: list[str] = []
    is_system: bool = False

    dependencies: list[DependencyRef] = []
    conflicts: list[str | UUID] = []

    @field_validator("code", "resource", mode="before")
    @classmethod
    def lowercase(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("dependencies", mode="before")
    @classmethod
    def coerce_dependencies(cls, v: Any) -> Any:
        # Bare codes/ids are shorthand for a required dependency
        if isinstance(v, list):
            return [{"permission": d} if isinstance(d, (str, UUID)) else d for d in v]
        return v

    @model_validator(mode="after")
    def derive_defaults(self) -> "PermissionCreate":
        if not self.code:
            self.code = f"{self.resource}:{self.action.value}"
        if not self.display_name:
            self.display_name = f"{self.action.value.title()} {self.resource.replace('_', ' ').title()}"
        return self


class PermissionRead(BaseModel):
    """Permission response schema."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    code: str
    display_name: str
    description: str | None = None
    resource: str
    action: PermissionAction
    scope: PermissionScope
    category: PermissionCategory
    risk_level: RiskLevel
    requires_mfa: bool
    requires_approval: bool
    approval_level: int
    audit_level: AuditLevel
    tags: list[str]
    is_system: bool
    is_active: bool
    is_deprecated: bool
    deprecation_date: datetime | None = None
    replaced_by_id: UUID | None = None
    usage_count: int
    last_used_at: datetime | None = None


class PermissionSetCreate(BaseModel):
    """Permission set creation input (seeding path only)."""

    code: str = Field(min_length=1, max_length=100, pattern=r"^[a-z0-9_-]+$")
    name: str = Field(min_length=1, max_length=200)
    description: str | None = None
    category: str | None = None
    permissions: list[str] = []
    constraints: dict[str, Any] = {}
    is_system: bool = True
    is_immutable: bool = True


class PermissionSearch(BaseModel):
    """Catalog search filters. Empty lists mean "no filter"."""

    categories: list[PermissionCategory] = []
    resources: list[str] = []
    actions: list[PermissionAction] = []
    scopes: list[PermissionScope] = []
    risk_levels: list[RiskLevel] = []
    tags: list[str] = []
    text: str | None = None
    include_deprecated: bool = False
    active_only: bool = True
    limit: int = Field(default=50, ge=1, le=500)
    skip: int = Field(default=0, ge=0)


@dataclass
class CompatibilityResult:
    """
    Outcome of a compatibility check.

    conflicts / missing_dependencies hold ``{"id": ..., "code": ...}``
    entries for the offending permissions.
    """
    compatible: bool
    conflicts: list[dict[str, Any]] = field(default_factory=list)
    missing_dependencies: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"compatible": self.compatible}
        if self.conflicts:
            result["conflicts"] = self.conflicts
        if self.missing_dependencies:
            result["missing_dependencies"] = self.missing_dependencies
        return result

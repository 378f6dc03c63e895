"""
Permission catalog models.

A Permission is an atomic grantable capability identified by a
``resource:action`` code. Permissions are never hard-deleted; they are
deactivated or deprecated (optionally pointing at a replacement).

Usage:
    perm = Permission(
        code="report:read",
        display_name="Read Reports",
        resource="report",
        action=PermissionAction.READ,
    )
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from serenity_rbac.conditions import Condition, parse_conditions
from .base import Base, JSONType, StandardMixin, enum_column


class PermissionAction(str, Enum):
    """Actions a permission can grant."""
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    EXECUTE = "execute"
    MANAGE = "manage"
    APPROVE = "approve"
    PUBLISH = "publish"


class PermissionScope(str, Enum):
    """Blast radius of a permission."""
    GLOBAL = "global"
    ORGANIZATION = "organization"
    TENANT = "tenant"
    TEAM = "team"
    SELF = "self"


class PermissionCategory(str, Enum):
    USER_MANAGEMENT = "user_management"
    ORGANIZATION_MANAGEMENT = "organization_management"
    BILLING = "billing"
    SECURITY = "security"
    CONTENT = "content"
    ANALYTICS = "analytics"
    SYSTEM = "system"
    INTEGRATION = "integration"
    WORKFLOW = "workflow"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AuditLevel(str, Enum):
    NONE = "none"
    BASIC = "basic"
    DETAILED = "detailed"
    FULL = "full"


class DependencyType(str, Enum):
    REQUIRED = "required"
    RECOMMENDED = "recommended"


# Permission -> permissions it depends on
permission_dependencies = Table(
    "permission_dependencies",
    Base.metadata,
    Column("permission_id", Uuid, ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
    Column("depends_on_id", Uuid, ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
    Column("dependency_type", String(20), nullable=False, default=DependencyType.REQUIRED.value),
)

# Permission -> permissions that cannot coexist with it
permission_conflicts = Table(
    "permission_conflicts",
    Base.metadata,
    Column("permission_id", Uuid, ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
    Column("conflicts_with_id", Uuid, ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
)


class Permission(Base, StandardMixin):
    """
    Catalog entry for a single permission.

    Dependencies and conflicts live in association tables and are
    queried explicitly by the catalog service.
    """

    __tablename__ = "permissions"

    # Identity (immutable once created)
    code: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    display_name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Classification
    resource: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    action: Mapped[PermissionAction] = mapped_column(enum_column(PermissionAction), nullable=False)
    scope: Mapped[PermissionScope] = mapped_column(
        enum_column(PermissionScope),
        default=PermissionScope.ORGANIZATION,
        nullable=False,
    )
    category: Mapped[PermissionCategory] = mapped_column(
        enum_column(PermissionCategory),
        nullable=False,
        index=True,
    )
    risk_level: Mapped[RiskLevel] = mapped_column(
        enum_column(RiskLevel),
        default=RiskLevel.LOW,
        nullable=False,
    )

    # Enforcement
    requires_mfa: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    requires_approval: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    approval_level: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    conditions: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, default=list, nullable=False)

    # Audit policy
    audit_level: Mapped[AuditLevel] = mapped_column(
        enum_column(AuditLevel),
        default=AuditLevel.BASIC,
        nullable=False,
    )
    retention_days: Mapped[int] = mapped_column(Integer, default=90, nullable=False)

    tags: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)

    # Lifecycle
    is_system: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_deprecated: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    deprecation_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    replaced_by_id: Mapped[UUID | None] = mapped_column(
        Uuid,
        ForeignKey("permissions.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Usage statistics
    usage_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def get_conditions(self) -> list[Condition]:
        """Typed view of the stored conditions."""
        return parse_conditions(self.conditions)

    @property
    def is_usable(self) -> bool:
        """Active and not deprecated."""
        return self.is_active and not self.is_deprecated

    def __repr__(self) -> str:
        return f"<Permission {self.code}>"


class PermissionSet(Base, StandardMixin):
    """
    Named, reusable bundle of permission codes.

    A set grants nothing on its own; roles expand it at seeding time.
    """

    __tablename__ = "permission_sets"

    code: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Ordered permission codes (duplicates allowed)
    permissions: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)
    constraints: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict, nullable=False)

    is_system: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_immutable: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    def __repr__(self) -> str:
        return f"<PermissionSet {self.code}>"

"""
Role models.

Roles are split in two records:
- Role: the versioned policy record (permissions, hierarchy, restrictions)
- RoleStatistics: telemetry keyed by role id (user/usage counters)

Statistics writes never touch the policy row, so they neither bump the
role version nor invalidate cached effective permissions.

Hierarchy:
    A role has at most one parent (``parent_role_id``). Children are
    found by querying on ``parent_role_id``. A child's level is always
    strictly below its parent's.

    admin (90)
      └── manager (50)
            └── team_lead (40)
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
from sqlalchemy.orm import Mapped, mapped_column, relationship

from serenity_rbac.utils.timezone import to_utc, utc_now
from .base import Base, JSONType, StandardMixin, enum_column
from .permission import Permission


class RoleScope(str, Enum):
    SYSTEM = "system"
    ORGANIZATION = "organization"
    TENANT = "tenant"
    TEAM = "team"
    CUSTOM = "custom"


class RoleCategory(str, Enum):
    ADMINISTRATIVE = "administrative"
    MANAGEMENT = "management"
    OPERATIONAL = "operational"
    SUPPORT = "support"
    READONLY = "readonly"
    GUEST = "guest"
    SPECIAL = "special"


class RoleType(str, Enum):
    SYSTEM = "system"
    PREDEFINED = "predefined"
    CUSTOM = "custom"


# Default hierarchy level per category when none is supplied
DEFAULT_LEVELS: dict[RoleCategory, int] = {
    RoleCategory.ADMINISTRATIVE: 90,
    RoleCategory.MANAGEMENT: 70,
    RoleCategory.SPECIAL: 60,
    RoleCategory.OPERATIONAL: 50,
    RoleCategory.SUPPORT: 30,
    RoleCategory.READONLY: 20,
    RoleCategory.GUEST: 10,
}


# Allow-list
role_permissions = Table(
    "role_permissions",
    Base.metadata,
    Column("role_id", Uuid, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("permission_id", Uuid, ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
)

# Deny-list (wins over any allow, at any level)
role_denied_permissions = Table(
    "role_denied_permissions",
    Base.metadata,
    Column("role_id", Uuid, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("permission_id", Uuid, ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
)


class Role(Base, StandardMixin):
    """
    Role policy record.

    ``version`` is SQLAlchemy's version_id_col: every UPDATE of the row
    checks and bumps it, so concurrent writers fail with StaleDataError
    instead of silently overwriting each other.
    """

    __tablename__ = "roles"

    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    display_name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    scope: Mapped[RoleScope] = mapped_column(enum_column(RoleScope), nullable=False, index=True)
    category: Mapped[RoleCategory] = mapped_column(enum_column(RoleCategory), nullable=False)
    role_type: Mapped[RoleType] = mapped_column(
        "type",
        enum_column(RoleType),
        default=RoleType.CUSTOM,
        nullable=False,
    )

    # Hierarchy (higher = more privileged)
    level: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    parent_role_id: Mapped[UUID | None] = mapped_column(
        Uuid,
        ForeignKey("roles.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Permission lists
    permissions: Mapped[list[Permission]] = relationship(
        Permission,
        secondary=role_permissions,
        lazy="selectin",
        order_by=Permission.code,
    )
    denied_permissions: Mapped[list[Permission]] = relationship(
        Permission,
        secondary=role_denied_permissions,
        lazy="selectin",
        order_by=Permission.code,
    )

    # Constraints (validated by schemas.role.RoleRestrictions / AssignmentRules)
    restrictions: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict, nullable=False)
    assignment_rules: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict, nullable=False)
    compliance: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict, nullable=False)
    tags: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)
    priority: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Lifecycle
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_system: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    effective_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )
    expiration_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    deprecated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    replaced_by_id: Mapped[UUID | None] = mapped_column(
        Uuid,
        ForeignKey("roles.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Optimistic locking
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def is_effective(self, now: datetime | None = None) -> bool:
        """Active and inside the effective window ``[effective_date, expiration_date)``."""
        if not self.is_active:
            return False
        now = to_utc(now) if now else utc_now()
        if self.effective_date and to_utc(self.effective_date) > now:
            return False
        if self.expiration_date and now >= to_utc(self.expiration_date):
            return False
        return True

    @property
    def permission_codes(self) -> list[str]:
        return [p.code for p in self.permissions]

    @property
    def denied_permission_codes(self) -> list[str]:
        return [p.code for p in self.denied_permissions]

    def __repr__(self) -> str:
        return f"<Role {self.name} level={self.level}>"


class RoleStatistics(Base):
    """Usage telemetry for a role, updated with SQL-side increments."""

    __tablename__ = "role_statistics"

    role_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("roles.id", ondelete="CASCADE"),
        primary_key=True,
    )
    user_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_assigned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    usage_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<RoleStatistics role={self.role_id} users={self.user_count}>"

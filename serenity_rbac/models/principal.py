"""
Principal and role-assignment models.

A principal is the entity (usually a user) roles are assigned to.
Free-form ``attributes`` are what role assignment rules are evaluated
against, via dotted paths such as ``attributes.department``.
"""

from datetime import datetime
from typing import Any
from uuid import UUID
from sqlalchemy import Boolean, DateTime, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from serenity_rbac.utils.timezone import to_utc, utc_now
from .base import Base, JSONType, StandardMixin
from .role import Role


class Principal(Base, StandardMixin):
    """Authorization subject."""

    __tablename__ = "principals"

    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    attributes: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict, nullable=False)

    def as_context(self) -> dict[str, Any]:
        """Context dict used for assignment-rule evaluation."""
        return {
            "id": str(self.id),
            "email": self.email,
            "name": self.name,
            "is_active": self.is_active,
            "attributes": dict(self.attributes or {}),
        }

    def __repr__(self) -> str:
        return f"<Principal {self.email}>"


class PrincipalRole(Base, StandardMixin):
    """
    Principal <-> role assignment.

    One row per (principal, role). ``valid_from``/``valid_until`` bound
    the assignment in time; expired rows are ignored by lookups.
    """

    __tablename__ = "principal_roles"
    __table_args__ = (
        UniqueConstraint("principal_id", "role_id", name="uq_principal_role"),
    )

    principal_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("principals.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("roles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    granted_by_id: Mapped[UUID | None] = mapped_column(
        Uuid,
        ForeignKey("principals.id", ondelete="SET NULL"),
        nullable=True,
    )
    valid_from: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )
    valid_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    role: Mapped[Role] = relationship(Role, lazy="selectin")

    def is_valid(self, now: datetime | None = None) -> bool:
        now = to_utc(now) if now else utc_now()
        if to_utc(self.valid_from) > now:
            return False
        if self.valid_until and now >= to_utc(self.valid_until):
            return False
        return True

    def __repr__(self) -> str:
        return f"<PrincipalRole principal={self.principal_id} role={self.role_id}>"

"""Role, grant and assignment models."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from campus_db import GUID, Base, TimestampMixin, UTCDateTime, UUIDPrimaryKeyMixin, utc_now


class Role(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Named bundle of permission grants."""

    __tablename__ = "roles"

    role_key: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[str | None] = mapped_column(Text(), nullable=True)
    is_system: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    permissions: Mapped[list[RolePermission]] = relationship(
        "RolePermission",
        back_populates="role",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="RolePermission.permission_key",
    )

    @property
    def granted_keys(self) -> list[str]:
        return [grant.permission_key for grant in self.permissions if grant.granted]


class RolePermission(UUIDPrimaryKeyMixin, Base):
    """(role, permission key, granted) tuple."""

    __tablename__ = "role_permissions"
    __table_args__ = (UniqueConstraint("role_id", "permission_key"),)

    role_id: Mapped[UUID] = mapped_column(
        GUID(), ForeignKey("roles.id", ondelete="CASCADE"), nullable=False
    )
    permission_key: Mapped[str] = mapped_column(String(120), nullable=False)
    granted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utc_now)

    role: Mapped[Role] = relationship("Role", back_populates="permissions")


class UserRole(UUIDPrimaryKeyMixin, Base):
    """Explicit many-to-many edge between an identity and a role."""

    __tablename__ = "user_roles"
    __table_args__ = (
        UniqueConstraint("user_id", "role_id"),
        Index("ix_user_roles_role_id", "role_id"),
    )

    user_id: Mapped[UUID] = mapped_column(
        GUID(), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    role_id: Mapped[UUID] = mapped_column(
        GUID(), ForeignKey("roles.id", ondelete="CASCADE"), nullable=False
    )
    assigned_by: Mapped[UUID | None] = mapped_column(
        GUID(), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utc_now)

    role: Mapped[Role] = relationship("Role")


__all__ = ["Role", "RolePermission", "UserRole"]

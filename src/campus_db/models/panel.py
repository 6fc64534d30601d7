"""Workspace (panel) configuration models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from campus_db import GUID, Base, TimestampMixin, UTCDateTime, UUIDPrimaryKeyMixin, utc_now


def _enum_values(enum_cls: type[Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class PanelStatus(str, Enum):
    """Lifecycle states for panels."""

    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


panel_status_enum = SAEnum(
    PanelStatus,
    name="panel_status",
    native_enum=False,
    length=20,
    values_callable=_enum_values,
)


class Panel(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Navigation, theme, permission and capability overlay for a set of identities."""

    __tablename__ = "panels"

    name: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[str | None] = mapped_column(Text(), nullable=True)
    theme_config: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    navigation_config: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    capability_overrides: Mapped[dict[str, Any]] = mapped_column(
        JSON, nullable=False, default=dict
    )
    permission_set: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    is_system_panel: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    status: Mapped[PanelStatus] = mapped_column(
        panel_status_enum,
        nullable=False,
        default=PanelStatus.DRAFT,
        server_default=PanelStatus.DRAFT.value,
    )
    created_by: Mapped[UUID | None] = mapped_column(
        GUID(), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    assignments: Mapped[list[UserPanel]] = relationship(
        "UserPanel",
        back_populates="panel",
        passive_deletes=True,
    )


class UserPanel(UUIDPrimaryKeyMixin, Base):
    """Identity to panel edge; at most one default per identity."""

    __tablename__ = "user_panels"
    __table_args__ = (
        UniqueConstraint("user_id", "panel_id"),
        Index("ix_user_panels_panel_id", "panel_id"),
    )

    user_id: Mapped[UUID] = mapped_column(
        GUID(), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    panel_id: Mapped[UUID] = mapped_column(
        GUID(), ForeignKey("panels.id", ondelete="CASCADE"), nullable=False
    )
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    assigned_by: Mapped[UUID | None] = mapped_column(
        GUID(), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utc_now)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=utc_now, onupdate=utc_now
    )

    panel: Mapped[Panel] = relationship("Panel", back_populates="assignments")


Index(
    "ux_user_panels_single_default",
    UserPanel.user_id,
    unique=True,
    postgresql_where=UserPanel.is_default.is_(True),
    sqlite_where=UserPanel.is_default.is_(True),
)


__all__ = ["Panel", "PanelStatus", "UserPanel", "panel_status_enum"]

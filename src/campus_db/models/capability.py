"""Capability registry rows."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON, String, Text
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from campus_db import Base, TimestampMixin, UTCDateTime


def _enum_values(enum_cls: type[Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class CapabilityStatus(str, Enum):
    """Health of an independently toggleable feature."""

    STABLE = "stable"
    DEGRADED = "degraded"
    DISABLED = "disabled"


capability_status_enum = SAEnum(
    CapabilityStatus,
    name="capability_status",
    native_enum=False,
    length=20,
    values_callable=_enum_values,
)


class Capability(TimestampMixin, Base):
    """Named feature whose status is the single source of truth for availability."""

    __tablename__ = "capabilities"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    owner_module: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[CapabilityStatus] = mapped_column(
        capability_status_enum,
        nullable=False,
        default=CapabilityStatus.STABLE,
        server_default=CapabilityStatus.STABLE.value,
    )
    reason: Mapped[str | None] = mapped_column(Text(), nullable=True)
    last_error: Mapped[str | None] = mapped_column(Text(), nullable=True)
    last_checked: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    meta: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, nullable=False, default=dict)


__all__ = ["Capability", "CapabilityStatus", "capability_status_enum"]

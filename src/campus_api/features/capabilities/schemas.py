from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import Field

from campus_api.common.schema import BaseSchema
from campus_api.features.audit.schemas import AuditLogOut
from campus_db.models import CapabilityStatus

from .service import MAX_TEXT_LENGTH


class CapabilityOut(BaseSchema):
    """API representation of a registered capability."""

    id: str
    name: str
    owner_module: str
    status: CapabilityStatus
    reason: str | None = None
    last_error: str | None = None
    last_checked: datetime | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime


class HealthSummaryOut(BaseSchema):
    total: int
    stable: int
    degraded: int
    disabled: int


class CapabilityListData(BaseSchema):
    capabilities: list[CapabilityOut]
    summary: HealthSummaryOut


class CapabilityDetailOut(CapabilityOut):
    recent_events: list[AuditLogOut]


class CapabilityStatusUpdate(BaseSchema):
    """Payload for changing a capability's live status."""

    status: CapabilityStatus
    reason: str | None = Field(default=None, max_length=MAX_TEXT_LENGTH)
    last_error: str | None = Field(default=None, max_length=MAX_TEXT_LENGTH)
    metadata: dict[str, Any] | None = None
    confirmed: bool = False


class CapabilityStatusChangeOut(BaseSchema):
    capability: CapabilityOut
    old_status: CapabilityStatus
    new_status: CapabilityStatus


class HealthCheckReport(BaseSchema):
    healthy: bool = True
    error: str | None = None


__all__ = [
    "CapabilityDetailOut",
    "CapabilityListData",
    "CapabilityOut",
    "CapabilityStatusChangeOut",
    "CapabilityStatusUpdate",
    "HealthCheckReport",
    "HealthSummaryOut",
]

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from campus_api.common.schema import BaseSchema, Pagination


class AuditLogOut(BaseSchema):
    """API representation of an audit record."""

    id: UUID
    user_id: UUID | None
    action: str
    entity_type: str | None
    entity_id: str | None
    details: dict[str, Any]
    ip_address: str | None
    created_at: datetime


class AuditLogPage(BaseSchema):
    logs: list[AuditLogOut]
    pagination: Pagination


__all__ = ["AuditLogOut", "AuditLogPage"]

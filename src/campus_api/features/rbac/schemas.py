from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import Field

from campus_api.common.schema import BaseSchema


class PermissionOut(BaseSchema):
    """API representation of a permission from the catalogue."""

    key: str
    label: str | None = None
    description: str | None = None
    registered: bool


class PermissionListData(BaseSchema):
    permissions: list[PermissionOut]


class RoleCreate(BaseSchema):
    """Payload for creating a new role."""

    role_key: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=120)
    description: str | None = None
    permissions: list[str] = Field(default_factory=list)


class RoleUpdate(BaseSchema):
    """Payload for updating an existing role; permissions are replaced as one batch."""

    name: str | None = Field(default=None, min_length=1, max_length=120)
    description: str | None = None
    permissions: list[str] | None = None
    is_active: bool | None = None


class RoleOut(BaseSchema):
    """API representation of a role."""

    id: UUID
    role_key: str
    name: str
    description: str | None = None
    permissions: list[str]
    is_system: bool
    is_active: bool
    user_count: int | None = None
    created_at: datetime
    updated_at: datetime | None = None


class RoleListData(BaseSchema):
    roles: list[RoleOut]


class RoleAssignRequest(BaseSchema):
    user_id: UUID


class RoleAssignmentOut(BaseSchema):
    user_id: UUID
    role_id: UUID
    role_key: str
    assigned_by: UUID | None = None
    created_at: datetime


__all__ = [
    "PermissionListData",
    "PermissionOut",
    "RoleAssignRequest",
    "RoleAssignmentOut",
    "RoleCreate",
    "RoleListData",
    "RoleOut",
    "RoleUpdate",
]

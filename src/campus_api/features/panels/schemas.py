from __future__ import annotations

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import Field, field_validator, model_validator

from campus_api.common.schema import BaseSchema
from campus_db.models import CapabilityStatus, PanelStatus

HEX_COLOR_PATTERN = r"^#[0-9a-fA-F]{6}$"
DEFAULT_PRIMARY_COLOR = "#0ea5e9"
DEFAULT_SECONDARY_COLOR = "#64748b"


# ---------------------------------------------------------------------------
# Configuration documents
# ---------------------------------------------------------------------------


class PanelTheme(BaseSchema):
    primary_color: str = Field(default=DEFAULT_PRIMARY_COLOR, pattern=HEX_COLOR_PATTERN)
    secondary_color: str = Field(default=DEFAULT_SECONDARY_COLOR, pattern=HEX_COLOR_PATTERN)
    mode: Literal["light", "dark"] = "light"
    logo_url: str | None = Field(default=None, max_length=2048)
    favicon_url: str | None = Field(default=None, max_length=2048)
    custom_css: str | None = Field(default=None, max_length=20_000)


class PanelNavigation(BaseSchema):
    modules: list[str] = Field(default_factory=list)
    order: list[str] = Field(default_factory=list)
    hidden: list[str] = Field(default_factory=list)


class CapabilityOverride(BaseSchema):
    """Override value; a bare status string is accepted as shorthand."""

    status: CapabilityStatus
    reason: str | None = Field(default=None, max_length=1000)

    @model_validator(mode="before")
    @classmethod
    def _expand_shorthand(cls, value: Any) -> Any:
        if isinstance(value, str):
            return {"status": value}
        return value


class _PanelDocuments(BaseSchema):
    theme_config: PanelTheme | None = None
    navigation_config: PanelNavigation | None = None
    capability_overrides: dict[str, CapabilityOverride] | None = None
    permission_set: list[str] | None = None

    @field_validator("permission_set")
    @classmethod
    def _clean_permissions(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return None
        cleaned = [item.strip() for item in value]
        if any(not item for item in cleaned):
            raise ValueError("permission keys must not be blank")
        return list(dict.fromkeys(cleaned))


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class PanelCreate(_PanelDocuments):
    name: str = Field(min_length=1, max_length=120)
    description: str | None = Field(default=None, max_length=2000)


class PanelUpdate(_PanelDocuments):
    name: str | None = Field(default=None, min_length=1, max_length=120)
    description: str | None = Field(default=None, max_length=2000)
    status: PanelStatus | None = None
    is_system_panel: bool | None = None


class PanelCloneRequest(BaseSchema):
    name: str = Field(min_length=1, max_length=120)


class PanelAssignRequest(BaseSchema):
    user_id: UUID
    is_default: bool = False


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class EffectiveCapabilityOut(BaseSchema):
    status: CapabilityStatus
    reason: str | None = None
    overridden: bool
    global_status: CapabilityStatus


class PanelOut(BaseSchema):
    id: UUID
    name: str
    description: str | None = None
    theme_config: dict[str, Any]
    navigation_config: dict[str, Any]
    capability_overrides: dict[str, Any]
    permission_set: list[str]
    is_system_panel: bool
    status: PanelStatus
    created_by: UUID | None = None
    user_count: int | None = None
    created_at: datetime
    updated_at: datetime | None = None


class PanelDetailOut(PanelOut):
    capabilities: dict[str, EffectiveCapabilityOut]


class PanelListData(BaseSchema):
    panels: list[PanelOut]


class PanelAssignmentOut(BaseSchema):
    user_id: UUID
    panel_id: UUID
    is_default: bool
    assigned_by: UUID | None = None
    created_at: datetime


class EffectivePermissionsOut(BaseSchema):
    panel_id: UUID
    permissions: list[str]
    narrowed: bool


class UserPanelOut(BaseSchema):
    id: UUID
    name: str
    description: str | None = None
    theme_config: dict[str, Any]
    navigation_config: dict[str, Any]
    is_default: bool


__all__ = [
    "CapabilityOverride",
    "EffectiveCapabilityOut",
    "EffectivePermissionsOut",
    "PanelAssignRequest",
    "PanelAssignmentOut",
    "PanelCloneRequest",
    "PanelCreate",
    "PanelDetailOut",
    "PanelListData",
    "PanelNavigation",
    "PanelOut",
    "PanelTheme",
    "PanelUpdate",
    "UserPanelOut",
]

from __future__ import annotations

from uuid import UUID

from campus_api.common.schema import BaseSchema
from campus_api.features.panels.schemas import EffectiveCapabilityOut, UserPanelOut


class PanelSummaryOut(BaseSchema):
    id: UUID
    name: str


class MeContextOut(BaseSchema):
    """The caller's resolved authorization context."""

    user_id: UUID
    email: str
    display_name: str | None = None
    role: str
    role_keys: list[str]
    permissions: list[str]
    is_super_admin: bool
    default_panel: PanelSummaryOut | None = None
    impersonated_by: UUID | None = None
    auth_via: str


class MePanelsOut(BaseSchema):
    panels: list[UserPanelOut]


class MeCapabilitiesOut(BaseSchema):
    panel_id: UUID | None = None
    capabilities: dict[str, EffectiveCapabilityOut]


__all__ = ["MeCapabilitiesOut", "MeContextOut", "MePanelsOut", "PanelSummaryOut"]

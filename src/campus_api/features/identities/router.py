"""Endpoints describing the calling identity."""

from __future__ import annotations

from fastapi import APIRouter

from campus_api.common.schema import ApiResponse
from campus_api.core.http import ok
from campus_api.core.http.dependencies import (
    CapabilityRegistryDep,
    CurrentContext,
    ReadSessionDep,
)
from campus_api.features.panels.schemas import EffectiveCapabilityOut, UserPanelOut
from campus_api.features.panels.service import PanelService

from .schemas import MeCapabilitiesOut, MeContextOut, MePanelsOut, PanelSummaryOut

router = APIRouter(prefix="/me", tags=["me"])


@router.get(
    "",
    response_model=ApiResponse[MeContextOut],
    response_model_exclude_none=True,
    summary="Return the caller's authorization context",
)
def read_me(context: CurrentContext) -> ApiResponse[MeContextOut]:
    default = context.default_panel
    return ok(
        MeContextOut(
            user_id=context.user_id,
            email=context.email,
            display_name=context.display_name,
            role=context.role,
            role_keys=list(context.role_keys),
            permissions=sorted(context.permissions),
            is_super_admin=context.is_super_admin,
            default_panel=PanelSummaryOut(id=default.id, name=default.name) if default else None,
            impersonated_by=context.impersonated_by,
            auth_via=context.auth_via.value,
        )
    )


@router.get(
    "/panels",
    response_model=ApiResponse[MePanelsOut],
    response_model_exclude_none=True,
    summary="List the caller's published panels, default first",
)
def read_my_panels(context: CurrentContext, session: ReadSessionDep) -> ApiResponse[MePanelsOut]:
    views = PanelService(session=session).user_panels(context.user_id)
    return ok(
        MePanelsOut(
            panels=[
                UserPanelOut(
                    id=view.panel.id,
                    name=view.panel.name,
                    description=view.panel.description,
                    theme_config=dict(view.panel.theme_config or {}),
                    navigation_config=dict(view.panel.navigation_config or {}),
                    is_default=view.is_default,
                )
                for view in views
            ]
        )
    )


@router.get(
    "/capabilities",
    response_model=ApiResponse[MeCapabilitiesOut],
    response_model_exclude_none=True,
    summary="Capability status as seen through the caller's default panel",
)
def read_my_capabilities(
    context: CurrentContext,
    session: ReadSessionDep,
    registry: CapabilityRegistryDep,
) -> ApiResponse[MeCapabilitiesOut]:
    default = context.default_panel
    if default is None:
        capabilities = {
            capability.id: EffectiveCapabilityOut(
                status=capability.status,
                reason=capability.reason,
                overridden=False,
                global_status=capability.status,
            )
            for capability in registry.list_capabilities()
        }
    else:
        effective = PanelService(session=session).effective_capabilities(default.id)
        capabilities = {
            capability_id: EffectiveCapabilityOut(
                status=item.status,
                reason=item.reason,
                overridden=item.overridden,
                global_status=item.global_status,
            )
            for capability_id, item in effective.items()
        }
    return ok(
        MeCapabilitiesOut(
            panel_id=default.id if default else None,
            capabilities=capabilities,
        )
    )


__all__ = ["router"]

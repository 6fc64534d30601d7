"""Panel (workspace) administration endpoints."""

from __future__ import annotations

from typing import Annotated, Any
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query, Request, status
from sqlalchemy.orm import Session

from campus_api.common.network import client_ip
from campus_api.common.schema import ApiResponse
from campus_api.core.auth.principal import AuthContext
from campus_api.core.http import ok, require_destructive_confirmation
from campus_api.core.http.dependencies import (
    ConfirmedDep,
    GovernanceEngineDep,
    ReadSessionDep,
    RoleServiceDep,
    SuperAdminContext,
    WriteSessionDep,
    path_param,
)
from campus_api.features.audit.service import AuditLogWriter
from campus_api.features.governance.actions import ActionType, ImpactReport
from campus_api.features.governance.schemas import GovernanceOutcomeOut, ImpactReportOut
from campus_api.features.identities.service import IdentityService
from campus_db.models import Panel, UserPanel

from .schemas import (
    EffectiveCapabilityOut,
    EffectivePermissionsOut,
    PanelAssignmentOut,
    PanelAssignRequest,
    PanelCloneRequest,
    PanelCreate,
    PanelDetailOut,
    PanelListData,
    PanelOut,
    PanelUpdate,
)
from .service import EffectiveCapability, PanelService

router = APIRouter(prefix="/admin/panels", tags=["panels"])

PanelPath = Annotated[UUID, Path(description="Panel identifier", alias="panelId")]
UserPath = Annotated[UUID, Path(description="User identifier", alias="userId")]
PanelDeleteImpact = Annotated[
    ImpactReport,
    Depends(require_destructive_confirmation(ActionType.PANEL_DELETE, path_param("panelId"))),
]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _serialize_panel(panel: Panel, *, user_count: int | None = None) -> PanelOut:
    return PanelOut(
        id=panel.id,
        name=panel.name,
        description=panel.description,
        theme_config=dict(panel.theme_config or {}),
        navigation_config=dict(panel.navigation_config or {}),
        capability_overrides=dict(panel.capability_overrides or {}),
        permission_set=list(panel.permission_set or []),
        is_system_panel=panel.is_system_panel,
        status=panel.status,
        created_by=panel.created_by,
        user_count=user_count,
        created_at=panel.created_at,
        updated_at=panel.updated_at,
    )


def _serialize_effective(
    capabilities: dict[str, EffectiveCapability],
) -> dict[str, EffectiveCapabilityOut]:
    return {
        capability_id: EffectiveCapabilityOut(
            status=item.status,
            reason=item.reason,
            overridden=item.overridden,
            global_status=item.global_status,
        )
        for capability_id, item in capabilities.items()
    }


def _serialize_assignment(assignment: UserPanel) -> PanelAssignmentOut:
    return PanelAssignmentOut(
        user_id=assignment.user_id,
        panel_id=assignment.panel_id,
        is_default=assignment.is_default,
        assigned_by=assignment.assigned_by,
        created_at=assignment.created_at,
    )


def _audit(
    session: Session,
    request: Request,
    context: AuthContext,
    *,
    action: str,
    panel_id: UUID,
    details: dict[str, Any] | None = None,
    old_value: Any = None,
    new_value: Any = None,
) -> None:
    AuditLogWriter(session=session).record(
        action=action,
        actor_id=context.user_id,
        entity_type="panel",
        entity_id=panel_id,
        details=details,
        old_value=old_value,
        new_value=new_value,
        ip_address=client_ip(request),
        actor_role=context.role,
    )


# ---------------------------------------------------------------------------
# Panels
# ---------------------------------------------------------------------------


@router.get(
    "",
    response_model=ApiResponse[PanelListData],
    response_model_exclude_none=True,
    summary="List panels",
)
def list_panels(
    _context: SuperAdminContext,
    session: ReadSessionDep,
    include_archived: Annotated[bool, Query(alias="includeArchived")] = False,
    include_draft: Annotated[bool, Query(alias="includeDraft")] = True,
) -> ApiResponse[PanelListData]:
    listings = PanelService(session=session).list_panels(
        include_archived=include_archived,
        include_draft=include_draft,
    )
    return ok(
        PanelListData(
            panels=[_serialize_panel(item.panel, user_count=item.user_count) for item in listings]
        ),
        super_admin_action=True,
    )


@router.post(
    "",
    response_model=ApiResponse[PanelOut],
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
    summary="Create a draft panel",
)
def create_panel(
    payload: PanelCreate,
    request: Request,
    context: SuperAdminContext,
    session: WriteSessionDep,
) -> ApiResponse[PanelOut]:
    panel = PanelService(session=session).create(
        name=payload.name,
        description=payload.description,
        theme_config=payload.theme_config,
        navigation_config=payload.navigation_config,
        capability_overrides=payload.capability_overrides,
        permission_set=payload.permission_set,
        created_by=context.user_id,
    )
    _audit(
        session,
        request,
        context,
        action="PANEL_CREATED",
        panel_id=panel.id,
        new_value={"name": panel.name},
    )
    return ok(_serialize_panel(panel, user_count=0), super_admin_action=True)


@router.get(
    "/{panelId}",
    response_model=ApiResponse[PanelDetailOut],
    response_model_exclude_none=True,
    summary="Read a panel with its effective capabilities",
)
def read_panel(
    panel_id: PanelPath,
    _context: SuperAdminContext,
    session: ReadSessionDep,
) -> ApiResponse[PanelDetailOut]:
    service = PanelService(session=session)
    panel = service.get(panel_id)
    base = _serialize_panel(panel, user_count=service.assignment_count(panel.id))
    return ok(
        PanelDetailOut(
            **base.model_dump(by_alias=False),
            capabilities=_serialize_effective(service.effective_capabilities(panel.id)),
        ),
        super_admin_action=True,
    )


@router.put(
    "/{panelId}",
    response_model=ApiResponse[PanelOut],
    response_model_exclude_none=True,
    summary="Update a panel",
)
def update_panel(
    panel_id: PanelPath,
    payload: PanelUpdate,
    request: Request,
    context: SuperAdminContext,
    session: WriteSessionDep,
) -> ApiResponse[PanelOut]:
    result = PanelService(session=session).update(panel_id, payload)
    _audit(
        session,
        request,
        context,
        action="PANEL_UPDATED",
        panel_id=result.panel.id,
        details={"changes": list(result.changes)},
        new_value=payload.model_dump(exclude_unset=True, mode="json"),
    )
    return ok(_serialize_panel(result.panel), super_admin_action=True)


@router.post(
    "/{panelId}/clone",
    response_model=ApiResponse[PanelOut],
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
    summary="Clone a panel into a new draft",
)
def clone_panel(
    panel_id: PanelPath,
    payload: PanelCloneRequest,
    request: Request,
    context: SuperAdminContext,
    session: WriteSessionDep,
) -> ApiResponse[PanelOut]:
    clone = PanelService(session=session).clone(
        panel_id,
        name=payload.name,
        created_by=context.user_id,
    )
    _audit(
        session,
        request,
        context,
        action="PANEL_CLONED",
        panel_id=clone.id,
        details={"sourcePanelId": str(panel_id)},
    )
    return ok(_serialize_panel(clone, user_count=0), super_admin_action=True)


@router.post(
    "/{panelId}/publish",
    response_model=ApiResponse[PanelOut],
    response_model_exclude_none=True,
    summary="Publish a draft panel",
)
def publish_panel(
    panel_id: PanelPath,
    request: Request,
    context: SuperAdminContext,
    session: WriteSessionDep,
) -> ApiResponse[PanelOut]:
    panel = PanelService(session=session).publish(panel_id)
    _audit(session, request, context, action="PANEL_PUBLISHED", panel_id=panel.id)
    return ok(_serialize_panel(panel), super_admin_action=True)


@router.get(
    "/{panelId}/impact",
    response_model=ApiResponse[ImpactReportOut],
    summary="Preview the impact of deleting a panel",
)
def preview_panel_delete(
    panel_id: PanelPath,
    _context: SuperAdminContext,
    engine: GovernanceEngineDep,
) -> ApiResponse[ImpactReportOut]:
    report = engine.analyze_impact(ActionType.PANEL_DELETE, str(panel_id))
    return ok(ImpactReportOut.from_report(report), super_admin_action=True)


@router.delete(
    "/{panelId}",
    response_model=ApiResponse[GovernanceOutcomeOut],
    summary="Delete a panel after confirmation",
)
def delete_panel(
    panel_id: PanelPath,
    request: Request,
    context: SuperAdminContext,
    impact: PanelDeleteImpact,
    confirmed: ConfirmedDep,
    _session: WriteSessionDep,
    engine: GovernanceEngineDep,
) -> ApiResponse[GovernanceOutcomeOut]:
    outcome = engine.execute(
        ActionType.PANEL_DELETE,
        str(panel_id),
        actor=context,
        confirmed=confirmed,
        ip_address=client_ip(request),
        impact=impact,
    )
    return ok(
        GovernanceOutcomeOut(
            action_type=outcome.action_type,
            entity_id=outcome.entity_id,
            impact=ImpactReportOut.from_report(outcome.impact),
            result=outcome.result,
        ),
        super_admin_action=True,
    )


# ---------------------------------------------------------------------------
# Assignments
# ---------------------------------------------------------------------------


@router.post(
    "/{panelId}/assign-user",
    response_model=ApiResponse[PanelAssignmentOut],
    response_model_exclude_none=True,
    summary="Assign a panel to a user",
)
def assign_panel(
    panel_id: PanelPath,
    payload: PanelAssignRequest,
    request: Request,
    context: SuperAdminContext,
    session: WriteSessionDep,
) -> ApiResponse[PanelAssignmentOut]:
    assignment = PanelService(session=session).assign(
        panel_id=panel_id,
        user_id=payload.user_id,
        assigned_by=context.user_id,
        is_default=payload.is_default,
    )
    _audit(
        session,
        request,
        context,
        action="PANEL_ASSIGNED",
        panel_id=panel_id,
        details={"userId": str(payload.user_id), "isDefault": payload.is_default},
    )
    return ok(_serialize_assignment(assignment), super_admin_action=True)


@router.delete(
    "/{panelId}/assign-user/{userId}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove a panel assignment",
)
def unassign_panel(
    panel_id: PanelPath,
    user_id: UserPath,
    request: Request,
    context: SuperAdminContext,
    session: WriteSessionDep,
) -> None:
    PanelService(session=session).unassign(panel_id=panel_id, user_id=user_id)
    _audit(
        session,
        request,
        context,
        action="PANEL_UNASSIGNED",
        panel_id=panel_id,
        details={"userId": str(user_id)},
    )


# ---------------------------------------------------------------------------
# Composition
# ---------------------------------------------------------------------------


@router.get(
    "/{panelId}/effective-capabilities",
    response_model=ApiResponse[dict[str, EffectiveCapabilityOut]],
    response_model_exclude_none=True,
    summary="Registry status with this panel's overrides applied",
)
def read_effective_capabilities(
    panel_id: PanelPath,
    _context: SuperAdminContext,
    session: ReadSessionDep,
) -> ApiResponse[dict[str, EffectiveCapabilityOut]]:
    capabilities = PanelService(session=session).effective_capabilities(panel_id)
    return ok(_serialize_effective(capabilities), super_admin_action=True)


@router.get(
    "/{panelId}/effective-permissions",
    response_model=ApiResponse[EffectivePermissionsOut],
    summary="A user's permissions narrowed by this panel",
)
def read_effective_permissions(
    panel_id: PanelPath,
    context: SuperAdminContext,
    session: ReadSessionDep,
    roles: RoleServiceDep,
    user_id: Annotated[UUID | None, Query(alias="userId")] = None,
) -> ApiResponse[EffectivePermissionsOut]:
    target = IdentityService(session=session, roles=roles).get_user(user_id or context.user_id)
    granted = roles.get_user_permissions(target.id)
    effective = PanelService(session=session).effective_permissions(panel_id, granted=granted)
    return ok(
        EffectivePermissionsOut(
            panel_id=panel_id,
            permissions=sorted(effective.permissions),
            narrowed=effective.narrowed,
        ),
        super_admin_action=True,
    )


__all__ = ["router"]

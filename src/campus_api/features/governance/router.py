"""Super-admin governance endpoints: impact preview, confirmed execution, impersonation."""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Path, Query, Request, Response

from campus_api.common.errors import PermissionDeniedError
from campus_api.common.network import client_ip
from campus_api.common.schema import ApiResponse
from campus_api.core.http import (
    audit_super_admin_action,
    enforce_rate_limit,
    ok,
    require_destructive_confirmation,
)
from campus_api.core.http.dependencies import (
    SUPER_ADMIN_HEADER,
    ConfirmedDep,
    CurrentContext,
    GovernanceEngineDep,
    PermissionCacheDep,
    RoleServiceDep,
    SuperAdminContext,
    WriteSessionDep,
    path_param,
)
from campus_api.features.audit.schemas import AuditLogOut
from campus_api.features.audit.service import MAX_PAGE_SIZE
from campus_api.features.capabilities.schemas import HealthSummaryOut

from .actions import ActionType, ImpactReport
from .schemas import (
    GovernanceActionRequest,
    GovernanceOutcomeOut,
    GovernanceTrailOut,
    ImpactReportOut,
    ImpersonatedUserOut,
    ImpersonateRequest,
    ImpersonationEndedOut,
    ImpersonationOut,
    ImpersonatorOut,
    PlatformHealthOut,
)
from .service import GovernanceOutcome

router = APIRouter(
    prefix="/admin/super",
    tags=["governance"],
    dependencies=[Depends(enforce_rate_limit("governance"))],
)

ActionPath = Annotated[str, Path(description="Governed action type", alias="actionType")]
EntityPath = Annotated[str, Path(description="Target entity identifier", alias="entityId")]
UserPath = Annotated[UUID, Path(description="User identifier", alias="userId")]
UserDeleteImpact = Annotated[
    ImpactReport,
    Depends(require_destructive_confirmation(ActionType.USER_DELETE, path_param("userId"))),
]


def _serialize_outcome(outcome: GovernanceOutcome) -> GovernanceOutcomeOut:
    return GovernanceOutcomeOut(
        action_type=outcome.action_type,
        entity_id=outcome.entity_id,
        impact=ImpactReportOut.from_report(outcome.impact),
        result=outcome.result,
    )


# ---------------------------------------------------------------------------
# Impact and execution
# ---------------------------------------------------------------------------


@router.get(
    "/impact/{actionType}/{entityId}",
    response_model=ApiResponse[ImpactReportOut],
    summary="Preview the impact of a governed action",
)
def preview_impact(
    action_type: ActionPath,
    entity_id: EntityPath,
    _context: SuperAdminContext,
    engine: GovernanceEngineDep,
) -> ApiResponse[ImpactReportOut]:
    report = engine.analyze_impact(action_type, entity_id)
    return ok(ImpactReportOut.from_report(report), super_admin_action=True)


@router.post(
    "/actions/{actionType}/{entityId}",
    response_model=ApiResponse[GovernanceOutcomeOut],
    summary="Confirm and execute a governed action",
)
def execute_action(
    action_type: ActionPath,
    entity_id: EntityPath,
    request: Request,
    context: SuperAdminContext,
    confirmed: ConfirmedDep,
    _session: WriteSessionDep,
    engine: GovernanceEngineDep,
    payload: Annotated[GovernanceActionRequest | None, Body()] = None,
) -> ApiResponse[GovernanceOutcomeOut]:
    body = payload or GovernanceActionRequest()
    outcome = engine.execute(
        action_type,
        entity_id,
        actor=context,
        confirmed=confirmed or body.confirmed,
        ip_address=client_ip(request),
        payload={"reason": body.reason, "lastError": body.last_error},
    )
    return ok(_serialize_outcome(outcome), super_admin_action=True)


@router.delete(
    "/users/{userId}",
    response_model=ApiResponse[GovernanceOutcomeOut],
    summary="Delete a user after confirmation",
)
def delete_user(
    user_id: UserPath,
    request: Request,
    context: SuperAdminContext,
    impact: UserDeleteImpact,
    confirmed: ConfirmedDep,
    _session: WriteSessionDep,
    engine: GovernanceEngineDep,
) -> ApiResponse[GovernanceOutcomeOut]:
    outcome = engine.execute(
        ActionType.USER_DELETE,
        str(user_id),
        actor=context,
        confirmed=confirmed,
        ip_address=client_ip(request),
        impact=impact,
    )
    return ok(_serialize_outcome(outcome), super_admin_action=True)


# ---------------------------------------------------------------------------
# Impersonation
# ---------------------------------------------------------------------------


@router.post(
    "/impersonate",
    response_model=ApiResponse[ImpersonationOut],
    response_model_exclude_none=True,
    summary="Start a delegated session as another user",
    dependencies=[Depends(enforce_rate_limit("impersonation"))],
)
def start_impersonation(
    payload: ImpersonateRequest,
    request: Request,
    context: SuperAdminContext,
    confirmed: ConfirmedDep,
    _session: WriteSessionDep,
    engine: GovernanceEngineDep,
) -> ApiResponse[ImpersonationOut]:
    grant = engine.impersonate(
        actor=context,
        target_user_id=payload.user_id,
        confirmed=confirmed or payload.confirmed,
        ip_address=client_ip(request),
    )
    return ok(
        ImpersonationOut(
            token=grant.token,
            expires_in=grant.expires_in,
            user=ImpersonatedUserOut(
                id=grant.user.id,
                email=grant.user.email,
                display_name=grant.user.display_name,
                role=grant.user.role,
            ),
            impersonated_by=ImpersonatorOut(
                id=grant.impersonated_by.user_id,
                email=grant.impersonated_by.email,
            ),
            impact=ImpactReportOut.from_report(grant.impact),
        ),
        super_admin_action=True,
    )


@router.post(
    "/impersonate/end",
    response_model=ApiResponse[ImpersonationEndedOut],
    summary="End a delegated session",
)
def end_impersonation(
    request: Request,
    response: Response,
    context: CurrentContext,
    _session: WriteSessionDep,
    engine: GovernanceEngineDep,
) -> ApiResponse[ImpersonationEndedOut]:
    if not (context.is_super_admin or context.is_impersonating):
        raise PermissionDeniedError("Super Admin access required")
    accountable = engine.end_impersonation(actor=context, ip_address=client_ip(request))
    response.headers[SUPER_ADMIN_HEADER] = "true"
    return ok(
        ImpersonationEndedOut(message="Impersonation session ended", super_admin_id=accountable),
        super_admin_action=True,
    )


# ---------------------------------------------------------------------------
# Oversight
# ---------------------------------------------------------------------------


@router.get(
    "/audit",
    response_model=ApiResponse[GovernanceTrailOut],
    response_model_exclude_none=True,
    summary="Governance audit trail",
)
def read_governance_trail(
    _context: SuperAdminContext,
    engine: GovernanceEngineDep,
    action: Annotated[str | None, Query()] = None,
    entity_type: Annotated[str | None, Query(alias="entityType")] = None,
    limit: Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE)] = 100,
) -> ApiResponse[GovernanceTrailOut]:
    logs = engine.audit_trail(action=action, entity_type=entity_type, limit=limit)
    return ok(
        GovernanceTrailOut(logs=[AuditLogOut.model_validate(entry) for entry in logs]),
        super_admin_action=True,
    )


@router.get(
    "/health",
    response_model=ApiResponse[PlatformHealthOut],
    summary="Platform health summary",
)
def read_platform_health(
    _context: SuperAdminContext,
    engine: GovernanceEngineDep,
) -> ApiResponse[PlatformHealthOut]:
    health = engine.platform_health()
    return ok(
        PlatformHealthOut(
            capabilities=HealthSummaryOut(**health.capabilities.as_dict()),
            panels=health.panels,
            users=health.users,
        ),
        super_admin_action=True,
    )


@router.post(
    "/cache/invalidate",
    response_model=ApiResponse[dict[str, int]],
    summary="Flush the permission cache",
    dependencies=[Depends(audit_super_admin_action("PERMISSION_CACHE_FLUSH"))],
)
def invalidate_permission_cache(
    request: Request,
    _context: SuperAdminContext,
    roles: RoleServiceDep,
    cache: PermissionCacheDep,
    user_id: Annotated[UUID | None, Query(alias="userId")] = None,
) -> ApiResponse[dict[str, int]]:
    roles.invalidate(user_id)
    if user_id is not None:
        request.state.entity_id = user_id
    return ok({"cachedEntries": len(cache)}, super_admin_action=True)


__all__ = ["router"]

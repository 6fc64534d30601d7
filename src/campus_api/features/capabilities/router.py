"""Capability registry administration endpoints."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Path, Request, Response, status

from campus_api.common.errors import PermissionDeniedError
from campus_api.common.logging import log_context
from campus_api.common.network import client_ip
from campus_api.common.schema import ApiResponse
from campus_api.core.auth.principal import AuthContext
from campus_api.core.http import authorize_roles, ok
from campus_api.core.http.dependencies import (
    CapabilityRegistryDep,
    ConfirmedDep,
    GovernanceEngineDep,
    SUPER_ADMIN_HEADER,
    WriteSessionDep,
)
from campus_api.features.audit.schemas import AuditLogOut
from campus_api.features.audit.service import AuditLogWriter
from campus_api.features.governance.actions import ActionType
from campus_db.models import Capability, CapabilityStatus

from .schemas import (
    CapabilityDetailOut,
    CapabilityListData,
    CapabilityOut,
    CapabilityStatusChangeOut,
    CapabilityStatusUpdate,
    HealthCheckReport,
    HealthSummaryOut,
)
from .service import HealthSummary, parse_status

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/capabilities", tags=["capabilities"])

AdminContext = Annotated[AuthContext, Depends(authorize_roles("ADMIN"))]
CapabilityPath = Annotated[str, Path(description="Capability key", alias="capabilityId")]

STATUS_UPDATED_ACTION = "CAPABILITY_STATUS_UPDATED"


def _serialize_capability(capability: Capability) -> CapabilityOut:
    return CapabilityOut(
        id=capability.id,
        name=capability.name,
        owner_module=capability.owner_module,
        status=parse_status(capability.status),
        reason=capability.reason,
        last_error=capability.last_error,
        last_checked=capability.last_checked,
        metadata=dict(capability.meta or {}),
        created_at=capability.created_at,
        updated_at=capability.updated_at,
    )


def _serialize_summary(summary: HealthSummary) -> HealthSummaryOut:
    return HealthSummaryOut(**summary.as_dict())


@router.get(
    "",
    response_model=ApiResponse[CapabilityListData],
    response_model_exclude_none=True,
    summary="List capabilities with a health summary",
)
def list_capabilities(
    _admin: AdminContext,
    registry: CapabilityRegistryDep,
) -> ApiResponse[CapabilityListData]:
    return ok(
        CapabilityListData(
            capabilities=[_serialize_capability(item) for item in registry.list_capabilities()],
            summary=_serialize_summary(registry.health_summary()),
        )
    )


@router.get(
    "/health/summary",
    response_model=ApiResponse[HealthSummaryOut],
    summary="Count capabilities by status",
)
def read_health_summary(
    _admin: AdminContext,
    registry: CapabilityRegistryDep,
) -> ApiResponse[HealthSummaryOut]:
    return ok(_serialize_summary(registry.health_summary()))


@router.get(
    "/{capabilityId}",
    response_model=ApiResponse[CapabilityDetailOut],
    response_model_exclude_none=True,
    summary="Read a capability and its recent events",
)
def read_capability(
    capability_id: CapabilityPath,
    _admin: AdminContext,
    registry: CapabilityRegistryDep,
) -> ApiResponse[CapabilityDetailOut]:
    detail = registry.get_with_recent_events(capability_id)
    base = _serialize_capability(detail.capability)
    return ok(
        CapabilityDetailOut(
            **base.model_dump(by_alias=False),
            recent_events=[AuditLogOut.model_validate(event) for event in detail.recent_events],
        )
    )


@router.put(
    "/{capabilityId}/status",
    response_model=ApiResponse[CapabilityStatusChangeOut],
    response_model_exclude_none=True,
    summary="Change a capability's live status",
)
def update_capability_status(
    capability_id: CapabilityPath,
    payload: CapabilityStatusUpdate,
    request: Request,
    response: Response,
    context: AdminContext,
    confirmed: ConfirmedDep,
    session: WriteSessionDep,
    registry: CapabilityRegistryDep,
    engine: GovernanceEngineDep,
) -> ApiResponse[CapabilityStatusChangeOut]:
    target = parse_status(payload.status)
    ip_address = client_ip(request)

    if target is CapabilityStatus.DISABLED:
        if not context.is_super_admin:
            raise PermissionDeniedError("Super Admin access required to disable a capability")
        outcome = engine.execute(
            ActionType.CAPABILITY_DISABLE,
            capability_id,
            actor=context,
            confirmed=confirmed or payload.confirmed,
            ip_address=ip_address,
            payload={"reason": payload.reason, "lastError": payload.last_error},
        )
        capability = registry.get(capability_id)
        response.headers[SUPER_ADMIN_HEADER] = "true"
        return ok(
            CapabilityStatusChangeOut(
                capability=_serialize_capability(capability),
                old_status=outcome.result["oldStatus"],
                new_status=CapabilityStatus.DISABLED,
            ),
            super_admin_action=True,
        )

    change = registry.update_status(
        capability_id,
        status=target,
        reason=payload.reason,
        last_error=payload.last_error,
        metadata=payload.metadata,
    )
    AuditLogWriter(session=session).record(
        action=STATUS_UPDATED_ACTION,
        actor_id=context.user_id,
        entity_type="capability",
        entity_id=capability_id,
        old_value={"status": change.previous_status.value, "reason": change.previous_reason},
        new_value={"status": target.value, "reason": payload.reason},
        ip_address=ip_address,
        actor_role=context.role,
    )
    return ok(
        CapabilityStatusChangeOut(
            capability=_serialize_capability(change.capability),
            old_status=change.previous_status,
            new_status=target,
        )
    )


@router.post(
    "/{capabilityId}/health-check",
    response_model=ApiResponse[CapabilityOut],
    response_model_exclude_none=True,
    status_code=status.HTTP_200_OK,
    summary="Record the result of a health check",
)
def record_health_check(
    capability_id: CapabilityPath,
    payload: HealthCheckReport,
    context: AdminContext,
    _session: WriteSessionDep,
    registry: CapabilityRegistryDep,
) -> ApiResponse[CapabilityOut]:
    capability = registry.record_check(capability_id, healthy=payload.healthy, error=payload.error)
    logger.info(
        "capability.health.recorded",
        extra=log_context(
            user_id=context.user_id,
            capability_id=capability_id,
            healthy=payload.healthy,
        ),
    )
    return ok(_serialize_capability(capability))


__all__ = ["router"]

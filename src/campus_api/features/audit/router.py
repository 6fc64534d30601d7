"""Audit trail query endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Path, Query

from campus_api.common.schema import ApiResponse, Pagination
from campus_api.core.auth.principal import AuthContext
from campus_api.core.http import authorize_roles, capability_required, ok
from campus_api.core.http.dependencies import ReadSessionDep
from campus_api.features.capabilities.service import CapabilityCheck

from .schemas import AuditLogOut, AuditLogPage
from .service import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, AuditLogWriter

router = APIRouter(prefix="/audit-logs", tags=["audit"])

AuditCapability = Annotated[CapabilityCheck, Depends(capability_required("audit"))]
AuditReader = Annotated[AuthContext, Depends(authorize_roles("ADMIN", "HR_ADMIN", "HR_MANAGER"))]
AuditPath = Annotated[UUID, Path(description="Audit record identifier", alias="auditId")]


@router.get(
    "",
    response_model=ApiResponse[AuditLogPage],
    response_model_exclude_none=True,
    summary="Query the audit trail",
)
def list_audit_logs(
    _reader: AuditReader,
    check: AuditCapability,
    session: ReadSessionDep,
    user_id: Annotated[UUID | None, Query(alias="userId")] = None,
    action: Annotated[str | None, Query()] = None,
    entity_type: Annotated[str | None, Query(alias="entityType")] = None,
    entity_id: Annotated[str | None, Query(alias="entityId")] = None,
    start_date: Annotated[datetime | None, Query(alias="startDate")] = None,
    end_date: Annotated[datetime | None, Query(alias="endDate")] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=MAX_PAGE_SIZE)] = DEFAULT_PAGE_SIZE,
) -> ApiResponse[AuditLogPage]:
    result = AuditLogWriter(session=session).query(
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit,
    )
    return ok(
        AuditLogPage(
            logs=[AuditLogOut.model_validate(item) for item in result.items],
            pagination=Pagination.build(total=result.total, page=result.page, limit=result.limit),
        ),
        check=check,
    )


@router.get(
    "/{auditId}",
    response_model=ApiResponse[AuditLogOut],
    response_model_exclude_none=True,
    summary="Read one audit record",
)
def read_audit_log(
    audit_id: AuditPath,
    _reader: AuditReader,
    check: AuditCapability,
    session: ReadSessionDep,
) -> ApiResponse[AuditLogOut]:
    entry = AuditLogWriter(session=session).get(audit_id)
    return ok(AuditLogOut.model_validate(entry), check=check)


__all__ = ["router"]

"""Role administration and permission catalogue endpoints."""

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
    RoleServiceDep,
    SuperAdminContext,
    WriteSessionDep,
    path_param,
)
from campus_api.features.audit.service import AuditLogWriter
from campus_api.features.governance.actions import ActionType, ImpactReport
from campus_api.features.governance.schemas import GovernanceOutcomeOut, ImpactReportOut
from campus_db.models import Role

from .schemas import (
    PermissionListData,
    PermissionOut,
    RoleAssignmentOut,
    RoleAssignRequest,
    RoleCreate,
    RoleListData,
    RoleOut,
    RoleUpdate,
)

router = APIRouter(prefix="/admin/roles", tags=["rbac"])

RolePath = Annotated[UUID, Path(description="Role identifier", alias="roleId")]
UserPath = Annotated[UUID, Path(description="User identifier", alias="userId")]
RoleDeleteImpact = Annotated[
    ImpactReport,
    Depends(require_destructive_confirmation(ActionType.ROLE_DELETE, path_param("roleId"))),
]


def _serialize_role(role: Role, *, user_count: int | None = None) -> RoleOut:
    return RoleOut(
        id=role.id,
        role_key=role.role_key,
        name=role.name,
        description=role.description,
        permissions=sorted(grant.permission_key for grant in role.permissions if grant.granted),
        is_system=role.is_system,
        is_active=role.is_active,
        user_count=user_count,
        created_at=role.created_at,
        updated_at=role.updated_at,
    )


def _audit(
    session: Session,
    request: Request,
    context: AuthContext,
    *,
    action: str,
    role_id: UUID,
    details: dict[str, Any] | None = None,
    old_value: Any = None,
    new_value: Any = None,
) -> None:
    AuditLogWriter(session=session).record(
        action=action,
        actor_id=context.user_id,
        entity_type="role",
        entity_id=role_id,
        details=details,
        old_value=old_value,
        new_value=new_value,
        ip_address=client_ip(request),
        actor_role=context.role,
    )


# ---------------------------------------------------------------------------
# Permission catalogue
# ---------------------------------------------------------------------------


@router.get(
    "/permissions/list",
    response_model=ApiResponse[PermissionListData],
    response_model_exclude_none=True,
    summary="List known permission keys",
)
def list_permissions(
    _context: SuperAdminContext,
    roles: RoleServiceDep,
) -> ApiResponse[PermissionListData]:
    entries = roles.list_permission_catalogue()
    return ok(
        PermissionListData(
            permissions=[
                PermissionOut(
                    key=entry.key,
                    label=entry.label,
                    description=entry.description,
                    registered=entry.registered,
                )
                for entry in entries
            ]
        ),
        super_admin_action=True,
    )


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------


@router.get(
    "",
    response_model=ApiResponse[RoleListData],
    response_model_exclude_none=True,
    summary="List roles with their assignment counts",
)
def list_roles(
    _context: SuperAdminContext,
    roles: RoleServiceDep,
    include_inactive: Annotated[bool, Query(alias="includeInactive")] = False,
) -> ApiResponse[RoleListData]:
    summaries = roles.list_roles(include_inactive=include_inactive)
    return ok(
        RoleListData(
            roles=[
                _serialize_role(item.role, user_count=item.assignment_count) for item in summaries
            ]
        ),
        super_admin_action=True,
    )


@router.get(
    "/{roleId}",
    response_model=ApiResponse[RoleOut],
    response_model_exclude_none=True,
    summary="Read a role",
)
def read_role(
    role_id: RolePath,
    _context: SuperAdminContext,
    roles: RoleServiceDep,
) -> ApiResponse[RoleOut]:
    role = roles.get_role(role_id)
    return ok(
        _serialize_role(role, user_count=roles.count_role_holders(role)),
        super_admin_action=True,
    )


@router.post(
    "",
    response_model=ApiResponse[RoleOut],
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
    summary="Create a role",
)
def create_role(
    payload: RoleCreate,
    request: Request,
    context: SuperAdminContext,
    session: WriteSessionDep,
    roles: RoleServiceDep,
) -> ApiResponse[RoleOut]:
    role = roles.create_role(
        role_key=payload.role_key,
        name=payload.name,
        description=payload.description,
        permissions=payload.permissions,
    )
    _audit(
        session,
        request,
        context,
        action="ROLE_CREATED",
        role_id=role.id,
        new_value={"roleKey": role.role_key, "permissions": list(payload.permissions)},
    )
    return ok(_serialize_role(role, user_count=0), super_admin_action=True)


@router.put(
    "/{roleId}",
    response_model=ApiResponse[RoleOut],
    response_model_exclude_none=True,
    summary="Update a role",
)
def update_role(
    role_id: RolePath,
    payload: RoleUpdate,
    request: Request,
    context: SuperAdminContext,
    session: WriteSessionDep,
    roles: RoleServiceDep,
) -> ApiResponse[RoleOut]:
    before = _serialize_role(roles.get_role(role_id)).permissions
    role = roles.update_role(
        role_id=role_id,
        name=payload.name,
        description=payload.description,
        permissions=payload.permissions,
        is_active=payload.is_active,
    )
    _audit(
        session,
        request,
        context,
        action="ROLE_UPDATED",
        role_id=role.id,
        old_value={"permissions": before},
        new_value=payload.model_dump(exclude_unset=True, mode="json"),
    )
    return ok(_serialize_role(role), super_admin_action=True)


@router.delete(
    "/{roleId}",
    response_model=ApiResponse[GovernanceOutcomeOut],
    summary="Delete a role after confirmation",
)
def delete_role(
    role_id: RolePath,
    request: Request,
    context: SuperAdminContext,
    impact: RoleDeleteImpact,
    confirmed: ConfirmedDep,
    _session: WriteSessionDep,
    engine: GovernanceEngineDep,
) -> ApiResponse[GovernanceOutcomeOut]:
    outcome = engine.execute(
        ActionType.ROLE_DELETE,
        str(role_id),
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
    "/{roleId}/assign-user",
    response_model=ApiResponse[RoleAssignmentOut],
    response_model_exclude_none=True,
    summary="Assign a role to a user",
)
def assign_role(
    role_id: RolePath,
    payload: RoleAssignRequest,
    request: Request,
    context: SuperAdminContext,
    session: WriteSessionDep,
    roles: RoleServiceDep,
) -> ApiResponse[RoleAssignmentOut]:
    assignment = roles.assign_role(
        role_id=role_id,
        user_id=payload.user_id,
        assigned_by=context.user_id,
    )
    _audit(
        session,
        request,
        context,
        action="ROLE_ASSIGNED",
        role_id=role_id,
        details={"userId": str(payload.user_id)},
    )
    return ok(
        RoleAssignmentOut(
            user_id=assignment.user_id,
            role_id=assignment.role_id,
            role_key=assignment.role.role_key,
            assigned_by=assignment.assigned_by,
            created_at=assignment.created_at,
        ),
        super_admin_action=True,
    )


@router.delete(
    "/{roleId}/assign-user/{userId}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove a role assignment",
)
def unassign_role(
    role_id: RolePath,
    user_id: UserPath,
    request: Request,
    context: SuperAdminContext,
    session: WriteSessionDep,
    roles: RoleServiceDep,
) -> None:
    roles.unassign_role(role_id=role_id, user_id=user_id)
    _audit(
        session,
        request,
        context,
        action="ROLE_REMOVED",
        role_id=role_id,
        details={"userId": str(user_id)},
    )


__all__ = ["router"]

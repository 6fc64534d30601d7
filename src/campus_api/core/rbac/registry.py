"""Canonical permission catalogue, system roles and the super-privilege predicate.

Keep the structure stable so feature teams can seed and reference permission
keys consistently. Keys are opaque ``resource:action`` strings.
"""

from __future__ import annotations

from collections.abc import Collection
from dataclasses import dataclass

SUPER_PERMISSION = "system:*"
ALL_PERMISSIONS = "*"
SUPER_ADMIN_ROLE = "SUPER_ADMIN"


@dataclass(frozen=True)
class PermissionDef:
    """Static permission definition."""

    key: str
    label: str
    description: str

    @property
    def resource(self) -> str:
        return self.key.split(":", 1)[0]


@dataclass(frozen=True)
class SystemRoleDef:
    """Static system role definition seeded at startup."""

    role_key: str
    name: str
    description: str
    permissions: tuple[str, ...]


def _permission(key: str, label: str, description: str) -> PermissionDef:
    return PermissionDef(key=key, label=label, description=description)


PERMISSIONS: tuple[PermissionDef, ...] = (
    # Control plane ------------------------------------------------------
    _permission(SUPER_PERMISSION, "All permissions", "Satisfies every permission check."),
    _permission("roles:view", "View roles", "Inspect roles, grants and assignments."),
    _permission("roles:manage", "Manage roles", "Create, edit, delete and assign roles."),
    _permission("capabilities:view", "View capabilities", "Inspect feature health."),
    _permission("capabilities:manage", "Manage capabilities", "Change capability status."),
    _permission("panels:view", "View panels", "Inspect workspace configurations."),
    _permission("panels:manage", "Manage panels", "Create, publish and assign panels."),
    _permission("audit:view", "View audit trail", "Query the audit log."),
    _permission("system:config", "Change system configuration", "Edit platform settings."),
    # Domain -------------------------------------------------------------
    _permission("dashboard:view", "View dashboard", "Open the operational dashboard."),
    _permission("dashboard:analytics", "Dashboard analytics", "Open analytics widgets."),
    _permission("task:view", "View tasks", "List and open tasks."),
    _permission("task:create", "Create tasks", "Raise new tasks."),
    _permission("task:update", "Update tasks", "Edit task details."),
    _permission("task:assign", "Assign tasks", "Assign tasks to staff."),
    _permission("task:close", "Close tasks", "Close resolved tasks."),
    _permission("task:escalate", "Escalate tasks", "Escalate overdue tasks."),
    _permission("task:delete", "Delete tasks", "Remove tasks."),
    _permission("exam:view", "View exams", "List exams and schedules."),
    _permission("exam:create", "Create exams", "Draft new exams."),
    _permission("exam:edit", "Edit exams", "Change exam details."),
    _permission("exam:schedule", "Schedule exams", "Place exams on the calendar."),
    _permission("exam:publish", "Publish exams", "Publish exam results."),
    _permission("exam:delete", "Delete exams", "Remove exams."),
    _permission("report:view", "View reports", "Open reports."),
    _permission("report:export", "Export reports", "Download report data."),
    _permission("compliance:view", "View compliance", "Inspect compliance records."),
    _permission("compliance:manage", "Manage compliance", "Approve compliance records."),
    _permission("finance:view", "View finance", "Inspect finance records."),
    _permission("finance:manage", "Manage finance", "Edit finance records."),
    _permission("crowd:view", "View crowd data", "Open crowd intelligence views."),
    _permission("leave:view", "View leave", "Inspect leave requests."),
    _permission("leave:approve", "Approve leave", "Approve or reject leave requests."),
    _permission("payroll:view", "View payroll", "Inspect payroll runs."),
    _permission("payroll:generate", "Generate payroll", "Run payroll generation."),
    _permission("attendance:view", "View attendance", "Inspect attendance records."),
    _permission("attendance:mark", "Mark attendance", "Record attendance."),
)

PERMISSION_REGISTRY: dict[str, PermissionDef] = {perm.key: perm for perm in PERMISSIONS}


SYSTEM_ROLES: tuple[SystemRoleDef, ...] = (
    SystemRoleDef(
        role_key=SUPER_ADMIN_ROLE,
        name="Super Administrator",
        description="System role with full access to all features",
        permissions=(SUPER_PERMISSION,),
    ),
    SystemRoleDef(
        role_key="ADMIN",
        name="Administrator",
        description="System role: Administrator",
        permissions=(
            "roles:view",
            "capabilities:view",
            "capabilities:manage",
            "panels:view",
            "audit:view",
            "dashboard:view",
            "dashboard:analytics",
            "report:view",
            "report:export",
        ),
    ),
    SystemRoleDef(
        role_key="REGISTRAR",
        name="Registrar",
        description="System role: Registrar",
        permissions=(
            "task:create",
            "task:view",
            "exam:create",
            "exam:view",
            "exam:edit",
            "exam:schedule",
            "dashboard:view",
            "report:view",
        ),
    ),
    SystemRoleDef(
        role_key="DEAN",
        name="Dean",
        description="System role: Dean",
        permissions=(
            "task:create",
            "task:view",
            "task:close",
            "task:escalate",
            "exam:create",
            "exam:view",
            "exam:edit",
            "exam:schedule",
            "exam:publish",
            "dashboard:view",
            "dashboard:analytics",
            "report:view",
            "report:export",
            "compliance:view",
            "audit:view",
            "crowd:view",
        ),
    ),
    SystemRoleDef(
        role_key="DIRECTOR",
        name="Director",
        description="System role: Director",
        permissions=(
            "task:create",
            "task:view",
            "task:close",
            "task:escalate",
            "task:assign",
            "task:delete",
            "exam:create",
            "exam:view",
            "exam:edit",
            "exam:delete",
            "exam:schedule",
            "exam:publish",
            "dashboard:view",
            "dashboard:analytics",
            "report:view",
            "report:export",
            "compliance:view",
            "compliance:manage",
            "finance:view",
            "finance:manage",
            "audit:view",
            "crowd:view",
        ),
    ),
    SystemRoleDef(
        role_key="EXECUTIVE",
        name="Executive",
        description="System role: Executive",
        permissions=(
            "task:view",
            "exam:view",
            "dashboard:view",
            "dashboard:analytics",
            "report:view",
            "report:export",
            "compliance:view",
            "finance:view",
            "audit:view",
            "crowd:view",
        ),
    ),
)

SYSTEM_ROLE_BY_KEY: dict[str, SystemRoleDef] = {role.role_key: role for role in SYSTEM_ROLES}


def is_super_privileged(
    *,
    permissions: Collection[str],
    role_keys: Collection[str] = (),
) -> bool:
    """Single predicate every gate uses to recognise the super-privilege."""

    if ALL_PERMISSIONS in permissions or SUPER_PERMISSION in permissions:
        return True
    return SUPER_ADMIN_ROLE in role_keys


__all__ = [
    "ALL_PERMISSIONS",
    "PERMISSIONS",
    "PERMISSION_REGISTRY",
    "PermissionDef",
    "SUPER_ADMIN_ROLE",
    "SUPER_PERMISSION",
    "SYSTEM_ROLES",
    "SYSTEM_ROLE_BY_KEY",
    "SystemRoleDef",
    "is_super_privileged",
]

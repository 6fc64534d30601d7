"""Catalogue of governed destructive actions and their impact strategies.

Each :class:`ActionType` maps to exactly one strategy through an exhaustive
``match``; adding a member without a strategy fails type checking.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Literal, Protocol, assert_never
from uuid import UUID

from sqlalchemy.orm import Session

from campus_api.common.errors import InvalidInputError, NotFoundError
from campus_api.features.identities.service import IdentityService
from campus_api.features.panels.service import PanelService
from campus_api.features.rbac.service import RoleService, count_role_holders
from campus_db.models import Capability, CapabilityStatus, Role, User

AffectedUsers = int | Literal["all"]


class ActionType(str, Enum):
    PANEL_DELETE = "PANEL_DELETE"
    ROLE_DELETE = "ROLE_DELETE"
    USER_DELETE = "USER_DELETE"
    CAPABILITY_DISABLE = "CAPABILITY_DISABLE"
    SYSTEM_CONFIG_CHANGE = "SYSTEM_CONFIG_CHANGE"
    USER_IMPERSONATE = "USER_IMPERSONATE"


class Severity(str, Enum):
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass(frozen=True)
class Assessment:
    affected_users: AffectedUsers
    message: str
    requires_confirmation: bool
    warnings: tuple[str, ...] = ()
    recommendations: tuple[str, ...] = ()


@dataclass(frozen=True)
class ImpactReport:
    """Blast radius of one governed action against one entity."""

    action_type: ActionType
    entity_id: str
    entity_type: str
    severity: Severity
    reversible: bool
    affected_users: AffectedUsers
    message: str
    requires_confirmation: bool
    warnings: tuple[str, ...] = field(default_factory=tuple)
    recommendations: tuple[str, ...] = field(default_factory=tuple)

    def summary(self) -> dict[str, Any]:
        return {
            "actionType": self.action_type.value,
            "severity": self.severity.value,
            "reversible": self.reversible,
            "affectedUsers": self.affected_users,
            "message": self.message,
            "requiresConfirmation": self.requires_confirmation,
            "warnings": list(self.warnings),
            "recommendations": list(self.recommendations),
        }


@dataclass(frozen=True)
class ImpactContext:
    session: Session
    roles: RoleService


class ImpactStrategy(Protocol):
    entity_type: ClassVar[str]
    severity: ClassVar[Severity]
    reversible: ClassVar[bool]

    def assess(self, ctx: ImpactContext, entity_id: str) -> Assessment: ...


def parse_entity_uuid(entity_id: str) -> UUID:
    try:
        return UUID(str(entity_id))
    except (TypeError, ValueError) as exc:
        raise InvalidInputError(f"Invalid entity id: {entity_id}") from exc


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


class PanelDeleteImpact:
    entity_type: ClassVar[str] = "panel"
    severity: ClassVar[Severity] = Severity.HIGH
    reversible: ClassVar[bool] = False

    def assess(self, ctx: ImpactContext, entity_id: str) -> Assessment:
        panels = PanelService(session=ctx.session)
        panel = panels.get(parse_entity_uuid(entity_id))
        assigned = panels.assignment_count(panel.id)
        warnings: list[str] = []
        recommendations: list[str] = []
        if panel.is_system_panel:
            warnings.append("System panels cannot be deleted.")
        active = panels.active_assignment_count(panel.id)
        if active:
            warnings.append(f"{active} active user(s) still use this panel.")
            recommendations.append("Reassign active users to another panel before deleting.")
        if assigned:
            message = (
                f"This panel is assigned to {assigned} user(s). "
                "They will lose access if deleted."
            )
        else:
            message = "No users are assigned to this panel."
        return Assessment(
            affected_users=assigned,
            message=message,
            requires_confirmation=assigned > 0,
            warnings=tuple(warnings),
            recommendations=tuple(recommendations),
        )


class RoleDeleteImpact:
    entity_type: ClassVar[str] = "role"
    severity: ClassVar[Severity] = Severity.HIGH
    reversible: ClassVar[bool] = False

    def assess(self, ctx: ImpactContext, entity_id: str) -> Assessment:
        role = ctx.session.get(Role, parse_entity_uuid(entity_id))
        if role is None:
            raise NotFoundError("Role")
        holders = count_role_holders(ctx.session, role)
        warnings: list[str] = []
        recommendations: list[str] = []
        if role.is_system:
            warnings.append("System roles cannot be deleted.")
        if holders:
            recommendations.append("Unassign the role from every user before deleting it.")
            message = (
                f"This role is assigned to {holders} user(s). "
                "They will lose permissions if deleted."
            )
        else:
            message = "No users have this role."
        return Assessment(
            affected_users=holders,
            message=message,
            requires_confirmation=holders > 0,
            warnings=tuple(warnings),
            recommendations=tuple(recommendations),
        )


class UserDeleteImpact:
    entity_type: ClassVar[str] = "user"
    severity: ClassVar[Severity] = Severity.CRITICAL
    reversible: ClassVar[bool] = False

    def assess(self, ctx: ImpactContext, entity_id: str) -> Assessment:
        identities = IdentityService(session=ctx.session, roles=ctx.roles)
        user = identities.get_user(parse_entity_uuid(entity_id))
        footprint = identities.footprint(user.id)
        warnings: list[str] = []
        if footprint.role_assignments:
            warnings.append(f"{footprint.role_assignments} role assignment(s) will be removed.")
        if footprint.panel_assignments:
            warnings.append(f"{footprint.panel_assignments} panel assignment(s) will be removed.")
        if ctx.roles.is_super_admin(user.id):
            warnings.append("This user holds the super-privilege.")
        return Assessment(
            affected_users=1,
            message=(
                "Deleting this user will remove all their data and access. "
                "This cannot be undone."
            ),
            requires_confirmation=True,
            warnings=tuple(warnings),
            recommendations=("Consider deactivating the account instead.",),
        )


class CapabilityDisableImpact:
    entity_type: ClassVar[str] = "capability"
    severity: ClassVar[Severity] = Severity.HIGH
    reversible: ClassVar[bool] = True

    def assess(self, ctx: ImpactContext, entity_id: str) -> Assessment:
        capability = ctx.session.get(Capability, entity_id)
        if capability is None:
            raise NotFoundError("Capability")
        warnings: list[str] = []
        if CapabilityStatus(capability.status) is CapabilityStatus.DISABLED:
            warnings.append("This capability is already disabled.")
        return Assessment(
            affected_users="all",
            message=(
                "Disabling this capability will affect all users. "
                "Related features will be unavailable."
            ),
            requires_confirmation=True,
            warnings=tuple(warnings),
            recommendations=("Prefer marking the capability degraded if it still works.",),
        )


class SystemConfigChangeImpact:
    entity_type: ClassVar[str] = "system_config"
    severity: ClassVar[Severity] = Severity.HIGH
    reversible: ClassVar[bool] = True

    def assess(self, ctx: ImpactContext, entity_id: str) -> Assessment:
        return Assessment(
            affected_users="all",
            message="Changing this system configuration will affect the entire platform.",
            requires_confirmation=True,
        )


class UserImpersonateImpact:
    entity_type: ClassVar[str] = "user"
    severity: ClassVar[Severity] = Severity.MEDIUM
    reversible: ClassVar[bool] = True

    def assess(self, ctx: ImpactContext, entity_id: str) -> Assessment:
        user = ctx.session.get(User, parse_entity_uuid(entity_id))
        if user is None:
            raise NotFoundError("User")
        warnings: list[str] = []
        if ctx.roles.is_super_admin(user.id):
            warnings.append("Super Admin users cannot be impersonated.")
        if not user.is_active:
            warnings.append("Inactive users cannot be impersonated.")
        return Assessment(
            affected_users=1,
            message=f"You will be impersonating {user.label}. All actions will be logged.",
            requires_confirmation=True,
            warnings=tuple(warnings),
        )


def strategy_for(action: ActionType) -> ImpactStrategy:
    match action:
        case ActionType.PANEL_DELETE:
            return PanelDeleteImpact()
        case ActionType.ROLE_DELETE:
            return RoleDeleteImpact()
        case ActionType.USER_DELETE:
            return UserDeleteImpact()
        case ActionType.CAPABILITY_DISABLE:
            return CapabilityDisableImpact()
        case ActionType.SYSTEM_CONFIG_CHANGE:
            return SystemConfigChangeImpact()
        case ActionType.USER_IMPERSONATE:
            return UserImpersonateImpact()
        case _:
            assert_never(action)


def parse_action_type(value: ActionType | str) -> ActionType:
    if isinstance(value, ActionType):
        return value
    try:
        return ActionType(str(value).strip().upper())
    except ValueError as exc:
        raise InvalidInputError(
            f"Unknown action type: {value}",
            details={"allowed": [member.value for member in ActionType]},
        ) from exc


__all__ = [
    "ActionType",
    "AffectedUsers",
    "Assessment",
    "ImpactContext",
    "ImpactReport",
    "ImpactStrategy",
    "Severity",
    "parse_action_type",
    "parse_entity_uuid",
    "strategy_for",
]

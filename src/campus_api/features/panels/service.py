"""Workspace (panel) configuration service.

Panels are an overlay: navigation, theme, a permission whitelist and a map of
capability overrides presented to the identities they are assigned to. They
never mutate the capability registry.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from campus_api.common.errors import (
    InvalidInputError,
    InvalidStateTransitionError,
    NotFoundError,
)
from campus_api.common.logging import log_context
from campus_api.core.rbac.registry import ALL_PERMISSIONS
from campus_db.models import Capability, CapabilityStatus, Panel, PanelStatus, User, UserPanel

from .catalog import SYSTEM_PANELS, SystemPanelSeed
from .schemas import CapabilityOverride, PanelNavigation, PanelTheme, PanelUpdate

logger = logging.getLogger(__name__)

_SEVERITY: dict[CapabilityStatus, int] = {
    CapabilityStatus.STABLE: 0,
    CapabilityStatus.DEGRADED: 1,
    CapabilityStatus.DISABLED: 2,
}

_TRANSITIONS: dict[PanelStatus, frozenset[PanelStatus]] = {
    PanelStatus.DRAFT: frozenset({PanelStatus.PUBLISHED, PanelStatus.ARCHIVED}),
    PanelStatus.PUBLISHED: frozenset({PanelStatus.ARCHIVED}),
    PanelStatus.ARCHIVED: frozenset({PanelStatus.DRAFT}),
}


@dataclass(frozen=True)
class PanelListing:
    panel: Panel
    user_count: int


@dataclass(frozen=True)
class PanelUpdateResult:
    panel: Panel
    changes: tuple[str, ...]


@dataclass(frozen=True)
class UserPanelView:
    panel: Panel
    is_default: bool
    assigned_at: datetime


@dataclass(frozen=True)
class EffectiveCapability:
    status: CapabilityStatus
    reason: str | None
    overridden: bool
    global_status: CapabilityStatus


@dataclass(frozen=True)
class EffectivePermissions:
    permissions: frozenset[str]
    narrowed: bool


# ---------------------------------------------------------------------------
# Document helpers
# ---------------------------------------------------------------------------


def _document(model: type[BaseModel], value: BaseModel | Mapping[str, Any] | None) -> dict[str, Any]:
    if value is None:
        return model().model_dump(mode="json")
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    return model.model_validate(dict(value)).model_dump(mode="json")


def theme_document(value: PanelTheme | Mapping[str, Any] | None) -> dict[str, Any]:
    return _document(PanelTheme, value)


def navigation_document(value: PanelNavigation | Mapping[str, Any] | None) -> dict[str, Any]:
    return _document(PanelNavigation, value)


def overrides_document(
    value: Mapping[str, CapabilityOverride | Mapping[str, Any] | str] | None,
) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for capability_id, override in (value or {}).items():
        key = str(capability_id).strip()
        if not key:
            raise InvalidInputError("Capability override keys must not be blank")
        if not isinstance(override, CapabilityOverride):
            override = CapabilityOverride.model_validate(override)
        result[key] = override.model_dump(mode="json")
    return result


def permission_document(value: list[str] | None) -> list[str]:
    cleaned = [str(item).strip() for item in (value or [])]
    if any(not item for item in cleaned):
        raise InvalidInputError("Permission keys must not be blank")
    return list(dict.fromkeys(cleaned))


def capability_override(panel: Panel, capability_id: str) -> tuple[CapabilityStatus, str | None] | None:
    """Stored override for ``capability_id``; tolerates the bare-string shorthand."""

    raw = (panel.capability_overrides or {}).get(capability_id)
    if raw is None:
        return None
    if isinstance(raw, str):
        status, reason = raw, None
    else:
        status, reason = raw.get("status"), raw.get("reason")
    try:
        return CapabilityStatus(status), reason
    except ValueError:
        logger.warning(
            "panel.override.invalid",
            extra=log_context(panel_id=panel.id, capability_id=capability_id, status=status),
        )
        return None


def is_more_severe(candidate: CapabilityStatus, baseline: CapabilityStatus) -> bool:
    return _SEVERITY[candidate] > _SEVERITY[baseline]


def _coerce_status(value: PanelStatus | str) -> PanelStatus:
    try:
        return PanelStatus(value)
    except ValueError as exc:
        raise InvalidInputError(f"Invalid panel status: {value}") from exc


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class PanelService:
    """CRUD, lifecycle, assignment and read-time composition for panels."""

    def __init__(self, *, session: Session) -> None:
        self._session = session

    # Reads -------------------------------------------------------------

    def get(self, panel_id: UUID) -> Panel:
        panel = self._session.get(Panel, panel_id)
        if panel is None:
            raise NotFoundError("Panel")
        return panel

    def list_panels(
        self,
        *,
        include_archived: bool = False,
        include_draft: bool = True,
    ) -> list[PanelListing]:
        counts = (
            select(UserPanel.panel_id, func.count(UserPanel.id).label("user_count"))
            .group_by(UserPanel.panel_id)
            .subquery()
        )
        stmt = select(Panel, func.coalesce(counts.c.user_count, 0)).outerjoin(
            counts, counts.c.panel_id == Panel.id
        )
        if not include_archived:
            stmt = stmt.where(Panel.status != PanelStatus.ARCHIVED)
        if not include_draft:
            stmt = stmt.where(Panel.status != PanelStatus.DRAFT)
        stmt = stmt.order_by(Panel.is_system_panel.desc(), Panel.created_at.desc())
        return [
            PanelListing(panel=panel, user_count=int(count))
            for panel, count in self._session.execute(stmt).all()
        ]

    def assignment_count(self, panel_id: UUID) -> int:
        stmt = select(func.count(UserPanel.id)).where(UserPanel.panel_id == panel_id)
        return int(self._session.scalar(stmt) or 0)

    def active_assignment_count(self, panel_id: UUID) -> int:
        stmt = (
            select(func.count(UserPanel.id))
            .join(User, User.id == UserPanel.user_id)
            .where(UserPanel.panel_id == panel_id, User.is_active.is_(True))
        )
        return int(self._session.scalar(stmt) or 0)

    def user_panels(self, user_id: UUID) -> list[UserPanelView]:
        """Published panels assigned to ``user_id``, default first."""

        stmt = (
            select(Panel, UserPanel.is_default, UserPanel.created_at)
            .join(UserPanel, UserPanel.panel_id == Panel.id)
            .where(UserPanel.user_id == user_id, Panel.status == PanelStatus.PUBLISHED)
            .order_by(UserPanel.is_default.desc(), UserPanel.created_at.desc())
        )
        return [
            UserPanelView(panel=panel, is_default=bool(is_default), assigned_at=assigned_at)
            for panel, is_default, assigned_at in self._session.execute(stmt).all()
        ]

    def default_panel(self, user_id: UUID) -> Panel | None:
        stmt = (
            select(Panel)
            .join(UserPanel, UserPanel.panel_id == Panel.id)
            .where(
                UserPanel.user_id == user_id,
                UserPanel.is_default.is_(True),
                Panel.status == PanelStatus.PUBLISHED,
            )
            .limit(1)
        )
        return self._session.scalar(stmt)

    # Writes ------------------------------------------------------------

    def create(
        self,
        *,
        name: str,
        description: str | None = None,
        theme_config: PanelTheme | Mapping[str, Any] | None = None,
        navigation_config: PanelNavigation | Mapping[str, Any] | None = None,
        capability_overrides: Mapping[str, Any] | None = None,
        permission_set: list[str] | None = None,
        created_by: UUID | None = None,
        is_system_panel: bool = False,
    ) -> Panel:
        cleaned_name = name.strip()
        if not cleaned_name:
            raise InvalidInputError("name cannot be empty")
        panel = Panel(
            name=cleaned_name,
            description=description,
            theme_config=theme_document(theme_config),
            navigation_config=navigation_document(navigation_config),
            capability_overrides=overrides_document(capability_overrides),
            permission_set=permission_document(permission_set),
            is_system_panel=is_system_panel,
            status=PanelStatus.DRAFT,
            created_by=created_by,
        )
        self._session.add(panel)
        self._session.flush()
        logger.info("panel.created", extra=log_context(panel_id=panel.id, user_id=created_by))
        return panel

    def sync_system_panels(self, seeds: Iterable[SystemPanelSeed] = SYSTEM_PANELS) -> int:
        """Provision missing system panels as published; existing ones are left untouched."""

        existing = set(
            self._session.scalars(select(Panel.name).where(Panel.is_system_panel.is_(True))).all()
        )
        created = 0
        for seed in seeds:
            if seed.name in existing:
                continue
            panel = self.create(
                name=seed.name,
                description=seed.description,
                theme_config=seed.theme,
                navigation_config=seed.navigation(),
                permission_set=list(seed.permission_set),
                is_system_panel=True,
            )
            panel.status = PanelStatus.PUBLISHED
            created += 1
        self._session.flush()
        logger.info("panel.system.synced", extra=log_context(created=created))
        return created

    def update(self, panel_id: UUID, payload: PanelUpdate) -> PanelUpdateResult:
        panel = self.get(panel_id)
        provided = payload.model_fields_set
        changes: list[str] = []

        if "is_system_panel" in provided and payload.is_system_panel is not None:
            if payload.is_system_panel != panel.is_system_panel:
                raise InvalidInputError("isSystemPanel cannot be changed")

        if "name" in provided and payload.name is not None:
            cleaned = payload.name.strip()
            if not cleaned:
                raise InvalidInputError("name cannot be empty")
            panel.name = cleaned
            changes.append("name")
        if "description" in provided:
            panel.description = payload.description
            changes.append("description")
        if "theme_config" in provided:
            panel.theme_config = theme_document(payload.theme_config)
            changes.append("theme_config")
        if "navigation_config" in provided:
            panel.navigation_config = navigation_document(payload.navigation_config)
            changes.append("navigation_config")
        if "capability_overrides" in provided:
            panel.capability_overrides = overrides_document(payload.capability_overrides)
            changes.append("capability_overrides")
        if "permission_set" in provided:
            panel.permission_set = permission_document(payload.permission_set)
            changes.append("permission_set")
        if "status" in provided and payload.status is not None:
            target = _coerce_status(payload.status)
            if target != panel.status:
                self.transition(panel, target)
                changes.append("status")

        self._session.flush()
        logger.info(
            "panel.updated",
            extra=log_context(panel_id=panel.id, changes=",".join(changes)),
        )
        return PanelUpdateResult(panel=panel, changes=tuple(changes))

    def transition(
        self,
        panel: Panel,
        target: PanelStatus,
        *,
        governance: bool = False,
    ) -> Panel:
        current = _coerce_status(panel.status)
        if current == target:
            return panel
        if target not in _TRANSITIONS[current]:
            raise InvalidStateTransitionError(
                f"Cannot transition panel from {current.value} to {target.value}",
                details={"from": current.value, "to": target.value},
            )
        if panel.is_system_panel and target == PanelStatus.ARCHIVED and not governance:
            raise InvalidStateTransitionError("System panels cannot be archived")
        if panel.is_system_panel and current == PanelStatus.ARCHIVED:
            raise InvalidStateTransitionError("Archived system panels cannot return to draft")
        panel.status = target
        logger.info(
            "panel.status.changed",
            extra=log_context(panel_id=panel.id, old_status=current.value, new_status=target.value),
        )
        return panel

    def publish(self, panel_id: UUID) -> Panel:
        panel = self.get(panel_id)
        current = _coerce_status(panel.status)
        if current == PanelStatus.ARCHIVED:
            raise InvalidStateTransitionError("Archived panels cannot be published")
        self.transition(panel, PanelStatus.PUBLISHED)
        self._session.flush()
        return panel

    def clone(self, panel_id: UUID, *, name: str, created_by: UUID | None) -> Panel:
        original = self.get(panel_id)
        clone = self.create(
            name=name,
            description=f"{original.description or ''} (Cloned from {original.name})",
            theme_config=dict(original.theme_config or {}),
            navigation_config=dict(original.navigation_config or {}),
            capability_overrides=dict(original.capability_overrides or {}),
            permission_set=list(original.permission_set or []),
            created_by=created_by,
        )
        logger.info(
            "panel.cloned",
            extra=log_context(panel_id=clone.id, source_panel_id=str(original.id)),
        )
        return clone

    def ensure_deletable(self, panel: Panel) -> None:
        if panel.is_system_panel:
            raise InvalidInputError("System panels cannot be deleted")
        active = self.active_assignment_count(panel.id)
        if active:
            raise InvalidInputError(
                f"Cannot delete panel: assigned to {active} active user(s)",
                details={"activeUsers": active},
            )

    def delete(self, panel_id: UUID) -> Panel:
        panel = self.get(panel_id)
        self.ensure_deletable(panel)
        self._session.execute(delete(UserPanel).where(UserPanel.panel_id == panel.id))
        self._session.delete(panel)
        self._session.flush()
        logger.info("panel.deleted", extra=log_context(panel_id=panel_id))
        return panel

    # Assignments -------------------------------------------------------

    def assign(
        self,
        *,
        panel_id: UUID,
        user_id: UUID,
        assigned_by: UUID | None,
        is_default: bool = False,
    ) -> UserPanel:
        """Assign a panel; a new default replaces the previous one in the same unit of work."""

        panel = self.get(panel_id)
        if _coerce_status(panel.status) == PanelStatus.ARCHIVED:
            raise InvalidStateTransitionError("Archived panels cannot be assigned")
        if self._session.get(User, user_id) is None:
            raise NotFoundError("User")

        if is_default:
            self._session.execute(
                update(UserPanel)
                .where(
                    UserPanel.user_id == user_id,
                    UserPanel.panel_id != panel.id,
                    UserPanel.is_default.is_(True),
                )
                .values(is_default=False)
            )
            self._session.flush()

        assignment = self._session.scalar(
            select(UserPanel).where(UserPanel.user_id == user_id, UserPanel.panel_id == panel.id)
        )
        if assignment is None:
            assignment = UserPanel(
                user_id=user_id,
                panel_id=panel.id,
                is_default=is_default,
                assigned_by=assigned_by,
            )
            self._session.add(assignment)
        else:
            assignment.is_default = is_default
            assignment.assigned_by = assigned_by
        self._session.flush()

        logger.info(
            "panel.assign.success",
            extra=log_context(panel_id=panel.id, user_id=user_id, is_default=is_default),
        )
        return assignment

    def unassign(self, *, panel_id: UUID, user_id: UUID) -> None:
        result = self._session.execute(
            delete(UserPanel).where(UserPanel.user_id == user_id, UserPanel.panel_id == panel_id)
        )
        if not result.rowcount:
            raise NotFoundError("Panel assignment")
        self._session.flush()
        logger.info("panel.unassign.success", extra=log_context(panel_id=panel_id, user_id=user_id))

    # Composition -------------------------------------------------------

    def effective_capabilities(self, panel_id: UUID) -> dict[str, EffectiveCapability]:
        """Registry status with this panel's overrides layered on top, for display only.

        An override only applies when it is more severe than the global status;
        a panel can hide or degrade a capability but never re-enable one.
        """

        panel = self.get(panel_id)
        capabilities = self._session.scalars(select(Capability).order_by(Capability.id)).all()
        result: dict[str, EffectiveCapability] = {}
        for capability in capabilities:
            global_status = CapabilityStatus(capability.status)
            override = capability_override(panel, capability.id)
            if override is None or not is_more_severe(override[0], global_status):
                result[capability.id] = EffectiveCapability(
                    status=global_status,
                    reason=capability.reason,
                    overridden=False,
                    global_status=global_status,
                )
            else:
                status, reason = override
                result[capability.id] = EffectiveCapability(
                    status=status,
                    reason=reason or capability.reason,
                    overridden=True,
                    global_status=global_status,
                )
        return result

    def effective_permissions(
        self,
        panel_id: UUID,
        *,
        granted: frozenset[str],
    ) -> EffectivePermissions:
        """Narrow ``granted`` by the panel whitelist; an empty whitelist does not narrow."""

        panel = self.get(panel_id)
        whitelist = frozenset(panel.permission_set or [])
        if not whitelist:
            return EffectivePermissions(permissions=granted, narrowed=False)
        if ALL_PERMISSIONS in granted:
            return EffectivePermissions(permissions=whitelist, narrowed=True)
        return EffectivePermissions(permissions=granted & whitelist, narrowed=True)


__all__ = [
    "EffectiveCapability",
    "EffectivePermissions",
    "PanelListing",
    "PanelService",
    "PanelUpdateResult",
    "UserPanelView",
    "capability_override",
    "is_more_severe",
    "navigation_document",
    "overrides_document",
    "permission_document",
    "theme_document",
]

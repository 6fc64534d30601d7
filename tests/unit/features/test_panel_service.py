from __future__ import annotations

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from campus_api.common.errors import (
    InvalidInputError,
    InvalidStateTransitionError,
    NotFoundError,
)
from campus_api.core.rbac.registry import ALL_PERMISSIONS
from campus_api.features.capabilities.service import CapabilityRegistry
from campus_api.features.panels.schemas import PanelUpdate
from campus_api.features.panels.service import PanelService, is_more_severe
from campus_db.models import CapabilityStatus, PanelStatus, UserPanel


@pytest.fixture()
def panels(session: Session) -> PanelService:
    return PanelService(session=session)


def _published(panels: PanelService, name: str, **kwargs):
    panel = panels.create(name=name, **kwargs)
    return panels.publish(panel.id)


def test_create_starts_as_draft_with_default_documents(panels: PanelService) -> None:
    panel = panels.create(name="  Registrar Desk  ")

    assert panel.name == "Registrar Desk"
    assert panel.status == PanelStatus.DRAFT
    assert panel.theme_config["primaryColor"] == "#0ea5e9"
    assert panel.capability_overrides == {}
    assert panel.permission_set == []


def test_create_rejects_blank_name(panels: PanelService) -> None:
    with pytest.raises(InvalidInputError):
        panels.create(name="   ")


def test_lifecycle_transitions(panels: PanelService) -> None:
    panel = panels.create(name="Finance")

    panels.publish(panel.id)
    assert panel.status == PanelStatus.PUBLISHED

    with pytest.raises(InvalidStateTransitionError):
        panels.transition(panel, PanelStatus.DRAFT)

    panels.transition(panel, PanelStatus.ARCHIVED)
    with pytest.raises(InvalidStateTransitionError, match="Archived panels cannot be published"):
        panels.publish(panel.id)

    panels.transition(panel, PanelStatus.DRAFT)
    assert panel.status == PanelStatus.DRAFT


def test_system_panels_cannot_be_archived_or_deleted(panels: PanelService) -> None:
    panel = panels.create(name="Default", is_system_panel=True)

    with pytest.raises(InvalidStateTransitionError, match="System panels"):
        panels.transition(panel, PanelStatus.ARCHIVED)
    with pytest.raises(InvalidInputError, match="System panels cannot be deleted"):
        panels.delete(panel.id)


def test_sync_system_panels_provisions_once(panels: PanelService) -> None:
    assert panels.sync_system_panels() == 2
    assert panels.sync_system_panels() == 0

    listed = [item.panel for item in panels.list_panels() if item.panel.is_system_panel]
    by_name = {panel.name: panel for panel in listed}
    assert set(by_name) == {"Super Admin Panel", "Operations Panel"}
    assert by_name["Super Admin Panel"].permission_set == ["system:*"]
    assert all(panel.status == PanelStatus.PUBLISHED for panel in listed)
    with pytest.raises(InvalidInputError, match="System panels cannot be deleted"):
        panels.delete(by_name["Operations Panel"].id)


def test_update_tracks_changes_and_rejects_system_flag(panels: PanelService) -> None:
    panel = panels.create(name="Exams")

    result = panels.update(
        panel.id,
        PanelUpdate(name="Exam Cell", capability_overrides={"payroll": "disabled"}),
    )

    assert result.changes == ("name", "capability_overrides")
    assert panel.capability_overrides == {"payroll": {"status": "disabled", "reason": None}}

    with pytest.raises(InvalidInputError, match="isSystemPanel"):
        panels.update(panel.id, PanelUpdate(is_system_panel=True))


def test_only_one_default_panel_per_user(session: Session, panels: PanelService, make_user) -> None:
    user = make_user()
    first = _published(panels, "P1")
    second = _published(panels, "P2")

    panels.assign(panel_id=first.id, user_id=user.id, assigned_by=None, is_default=True)
    panels.assign(panel_id=second.id, user_id=user.id, assigned_by=None, is_default=True)

    rows = session.scalars(select(UserPanel).where(UserPanel.user_id == user.id)).all()
    defaults = {row.panel_id: row.is_default for row in rows}
    assert defaults == {first.id: False, second.id: True}
    assert panels.default_panel(user.id).id == second.id


def test_user_panels_lists_published_only(panels: PanelService, make_user) -> None:
    user = make_user()
    published = _published(panels, "Visible")
    draft = panels.create(name="Hidden")
    panels.assign(panel_id=published.id, user_id=user.id, assigned_by=None, is_default=True)
    panels.assign(panel_id=draft.id, user_id=user.id, assigned_by=None)

    views = panels.user_panels(user.id)

    assert [view.panel.name for view in views] == ["Visible"]
    assert views[0].is_default


def test_archived_panels_cannot_be_assigned(panels: PanelService, make_user) -> None:
    user = make_user()
    panel = panels.create(name="Old")
    panels.transition(panel, PanelStatus.ARCHIVED)

    with pytest.raises(InvalidStateTransitionError):
        panels.assign(panel_id=panel.id, user_id=user.id, assigned_by=None)


def test_delete_requires_no_active_users(panels: PanelService, make_user) -> None:
    panel = _published(panels, "Busy")
    active = make_user()
    inactive = make_user(is_active=False)
    panels.assign(panel_id=panel.id, user_id=active.id, assigned_by=None)
    panels.assign(panel_id=panel.id, user_id=inactive.id, assigned_by=None)

    with pytest.raises(InvalidInputError, match="1 active user"):
        panels.delete(panel.id)

    panels.unassign(panel_id=panel.id, user_id=active.id)
    panels.delete(panel.id)

    with pytest.raises(NotFoundError):
        panels.get(panel.id)


def test_unassign_missing_assignment(panels: PanelService, make_user) -> None:
    panel = panels.create(name="Lonely")

    with pytest.raises(NotFoundError):
        panels.unassign(panel_id=panel.id, user_id=make_user().id)


def test_clone_copies_documents_as_new_draft(panels: PanelService) -> None:
    source = _published(
        panels,
        "HR",
        description="Human resources",
        permission_set=["leave:view"],
        capability_overrides={"payroll": {"status": "degraded", "reason": "Audit"}},
    )

    clone = panels.clone(source.id, name="HR Copy", created_by=None)

    assert clone.id != source.id
    assert clone.status == PanelStatus.DRAFT
    assert clone.description == "Human resources (Cloned from HR)"
    assert clone.permission_set == ["leave:view"]
    assert clone.capability_overrides == source.capability_overrides


def test_effective_capabilities_overlay_without_touching_registry(
    session: Session,
    panels: PanelService,
) -> None:
    registry = CapabilityRegistry(session=session)
    registry.seed()
    panel = panels.create(
        name="Overlay",
        capability_overrides={"payroll": {"status": "disabled", "reason": "Hidden here"}},
    )

    effective = panels.effective_capabilities(panel.id)

    assert effective["payroll"].status is CapabilityStatus.DISABLED
    assert effective["payroll"].overridden
    assert effective["payroll"].global_status is CapabilityStatus.STABLE
    assert effective["leave"].overridden is False
    assert registry.check("payroll").available


def test_effective_capabilities_never_relax_global_status(
    session: Session,
    panels: PanelService,
) -> None:
    registry = CapabilityRegistry(session=session)
    registry.seed()
    registry.update_status("payroll", status=CapabilityStatus.DISABLED, reason="Vendor outage")
    panel = panels.create(
        name="Optimist",
        capability_overrides={"payroll": "stable", "smart_suggestions": "stable"},
    )

    effective = panels.effective_capabilities(panel.id)

    assert effective["payroll"].status is CapabilityStatus.DISABLED
    assert effective["payroll"].overridden is False
    assert effective["payroll"].reason == "Vendor outage"
    assert effective["smart_suggestions"].status is CapabilityStatus.DEGRADED
    assert effective["smart_suggestions"].overridden is False


def test_effective_permissions_narrow_by_whitelist(panels: PanelService) -> None:
    open_panel = panels.create(name="Open")
    narrow = panels.create(name="Narrow", permission_set=["leave:view", "task:view"])
    granted = frozenset({"leave:view", "payroll:view"})

    assert panels.effective_permissions(open_panel.id, granted=granted).permissions == granted
    result = panels.effective_permissions(narrow.id, granted=granted)
    assert result.narrowed
    assert result.permissions == frozenset({"leave:view"})
    everything = panels.effective_permissions(narrow.id, granted=frozenset({ALL_PERMISSIONS}))
    assert everything.permissions == frozenset({"leave:view", "task:view"})


def test_severity_ordering() -> None:
    assert is_more_severe(CapabilityStatus.DISABLED, CapabilityStatus.DEGRADED)
    assert is_more_severe(CapabilityStatus.DEGRADED, CapabilityStatus.STABLE)
    assert not is_more_severe(CapabilityStatus.STABLE, CapabilityStatus.DEGRADED)

from __future__ import annotations

from dataclasses import replace
from uuid import uuid4

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from campus_api.common.errors import (
    ConfirmationRequiredError,
    InvalidInputError,
    NotFoundError,
    PermissionDeniedError,
)
from campus_api.core.auth.principal import AuthContext, AuthenticatedPrincipal, AuthVia
from campus_api.core.rbac.cache import PermissionCache
from campus_api.core.security.tokens import (
    IMPERSONATED_BY_CLAIM,
    IMPERSONATION_CLAIM,
    decode_token,
)
from campus_api.features.capabilities.service import CapabilityRegistry
from campus_api.features.governance.actions import ActionType, Severity
from campus_api.features.governance.service import GovernanceEngine
from campus_api.features.identities.service import IdentityService
from campus_api.features.panels.service import PanelService
from campus_api.features.rbac.service import RoleService
from campus_api.settings import Settings
from campus_db.models import AuditLog, CapabilityStatus, User


@pytest.fixture()
def engine(session: Session, cache: PermissionCache, settings: Settings, roles: RoleService) -> GovernanceEngine:
    CapabilityRegistry(session=session).seed()
    session.commit()
    return GovernanceEngine(session=session, cache=cache, settings=settings)


@pytest.fixture()
def super_admin(make_user) -> User:
    return make_user(role="SUPER_ADMIN", email="root@campus.test")


def _context(session: Session, roles: RoleService, user: User, *, impersonated_by=None) -> AuthContext:
    principal = AuthenticatedPrincipal(
        user_id=user.id,
        auth_via=AuthVia.IMPERSONATION if impersonated_by else AuthVia.BEARER,
        impersonated_by=impersonated_by,
    )
    return IdentityService(session=session, roles=roles).build_context(user, principal=principal)


def _audit_actions(session: Session) -> list[str]:
    return list(session.scalars(select(AuditLog.action).order_by(AuditLog.created_at)).all())


def test_unknown_action_type_is_invalid_input(engine: GovernanceEngine) -> None:
    with pytest.raises(InvalidInputError, match="Unknown action type"):
        engine.analyze_impact("FORMAT_DISK", str(uuid4()))


def test_impact_of_missing_entity_is_not_found(engine: GovernanceEngine) -> None:
    with pytest.raises(NotFoundError):
        engine.analyze_impact(ActionType.ROLE_DELETE, str(uuid4()))
    with pytest.raises(InvalidInputError, match="Invalid entity id"):
        engine.analyze_impact(ActionType.USER_DELETE, "not-a-uuid")


def test_role_delete_impact_counts_holders(engine: GovernanceEngine, make_user, make_role) -> None:
    role = make_role("TEMP_ROLE", "task:view")
    make_user(role="TEMP_ROLE")

    report = engine.analyze_impact("role_delete", str(role.id))

    assert report.action_type is ActionType.ROLE_DELETE
    assert report.severity is Severity.HIGH
    assert report.affected_users == 1
    assert report.requires_confirmation
    assert not report.reversible


def test_unassigned_role_delete_needs_no_confirmation(
    session: Session,
    roles: RoleService,
    engine: GovernanceEngine,
    super_admin: User,
    make_role,
) -> None:
    role = make_role("TEMP_ROLE", "task:view")
    actor = _context(session, roles, super_admin)

    outcome = engine.execute(ActionType.ROLE_DELETE, str(role.id), actor=actor, confirmed=False)

    assert outcome.result == {"roleKey": "TEMP_ROLE"}
    assert roles.get_role_by_key("TEMP_ROLE") is None
    assert _audit_actions(session) == ["SUPER_ADMIN_ROLE_DELETE"]


def test_capability_disable_affects_everyone(engine: GovernanceEngine) -> None:
    report = engine.analyze_impact(ActionType.CAPABILITY_DISABLE, "payroll")

    assert report.affected_users == "all"
    assert report.reversible
    assert report.summary()["affectedUsers"] == "all"


def test_user_delete_is_two_step(
    session: Session,
    roles: RoleService,
    engine: GovernanceEngine,
    super_admin: User,
    make_user,
) -> None:
    target = make_user(email="leaving@campus.test")
    actor = _context(session, roles, super_admin)

    with pytest.raises(ConfirmationRequiredError) as excinfo:
        engine.execute(ActionType.USER_DELETE, str(target.id), actor=actor, confirmed=False)

    assert excinfo.value.details["impact"]["severity"] == "critical"
    assert session.get(User, target.id) is not None
    assert _audit_actions(session) == []

    outcome = engine.execute(
        ActionType.USER_DELETE,
        str(target.id),
        actor=actor,
        confirmed=True,
        ip_address="10.0.0.7",
    )

    assert outcome.result == {"email": "leaving@campus.test"}
    assert session.get(User, target.id) is None
    entries = session.scalars(select(AuditLog)).all()
    assert [entry.action for entry in entries] == ["SUPER_ADMIN_USER_DELETE"]
    assert entries[0].user_id == super_admin.id
    assert entries[0].ip_address == "10.0.0.7"
    assert entries[0].details["superAdminAction"] is True
    assert entries[0].details["outcome"] == "succeeded"
    assert entries[0].details["impact"]["actionType"] == "USER_DELETE"


def test_capability_disable_execution(
    session: Session,
    roles: RoleService,
    engine: GovernanceEngine,
    super_admin: User,
) -> None:
    actor = _context(session, roles, super_admin)

    outcome = engine.execute(
        ActionType.CAPABILITY_DISABLE,
        "payroll",
        actor=actor,
        confirmed=True,
        payload={"reason": "Vendor outage"},
    )

    assert outcome.result["oldStatus"] == "stable"
    assert outcome.result["newStatus"] == "disabled"
    check = CapabilityRegistry(session=session).check("payroll")
    assert check.status is CapabilityStatus.DISABLED
    assert check.reason == "Vendor outage"


def test_failed_mutation_is_audited_and_rolled_back(
    session: Session,
    roles: RoleService,
    engine: GovernanceEngine,
    super_admin: User,
) -> None:
    session.commit()
    actor = _context(session, roles, super_admin)

    with pytest.raises(InvalidInputError, match="your own account"):
        engine.execute(ActionType.USER_DELETE, str(super_admin.id), actor=actor, confirmed=True)

    assert session.get(User, super_admin.id) is not None
    entries = session.scalars(select(AuditLog)).all()
    assert [entry.action for entry in entries] == ["SUPER_ADMIN_USER_DELETE"]
    assert entries[0].details["outcome"] == "failed"


def test_doomed_deletes_are_refused_before_confirmation(
    session: Session,
    roles: RoleService,
    engine: GovernanceEngine,
    super_admin: User,
    make_user,
    make_role,
) -> None:
    panels = PanelService(session=session)
    panel = panels.publish(panels.create(name="Busy").id)
    panels.assign(panel_id=panel.id, user_id=make_user().id, assigned_by=None)
    role = make_role("TEMP_ROLE", "task:view")
    make_user(role="TEMP_ROLE")
    session.commit()
    actor = _context(session, roles, super_admin)

    with pytest.raises(InvalidInputError, match="active user"):
        engine.execute(ActionType.PANEL_DELETE, str(panel.id), actor=actor, confirmed=False)
    with pytest.raises(InvalidInputError, match="1 user\\(s\\) have this role"):
        engine.gate(ActionType.ROLE_DELETE, str(role.id), confirmed=False)

    assert engine.analyze_impact(ActionType.PANEL_DELETE, str(panel.id)).requires_confirmation
    assert _audit_actions(session) == []


def test_execute_refuses_impersonation_and_config_change(
    session: Session,
    roles: RoleService,
    engine: GovernanceEngine,
    super_admin: User,
) -> None:
    session.commit()
    actor = _context(session, roles, super_admin)

    with pytest.raises(InvalidInputError, match="impersonate endpoint"):
        engine.execute(ActionType.USER_IMPERSONATE, str(uuid4()), actor=actor, confirmed=True)
    with pytest.raises(InvalidInputError, match="not supported"):
        engine.execute(ActionType.SYSTEM_CONFIG_CHANGE, "theme", actor=actor, confirmed=True)


def test_impersonating_a_super_admin_is_refused(
    session: Session,
    roles: RoleService,
    engine: GovernanceEngine,
    super_admin: User,
    make_user,
) -> None:
    other_root = make_user(role="SUPER_ADMIN")
    actor = _context(session, roles, super_admin)

    for confirmed in (False, True):
        with pytest.raises(PermissionDeniedError, match="Cannot impersonate Super Admin"):
            engine.impersonate(actor=actor, target_user_id=other_root.id, confirmed=confirmed)

    assert _audit_actions(session) == []


def test_impersonation_requires_confirmation_then_issues_token(
    session: Session,
    roles: RoleService,
    settings: Settings,
    engine: GovernanceEngine,
    super_admin: User,
    make_user,
) -> None:
    target = make_user(role="REGISTRAR", display_name="Rita Registrar")
    actor = _context(session, roles, super_admin)

    with pytest.raises(ConfirmationRequiredError):
        engine.impersonate(actor=actor, target_user_id=target.id, confirmed=False)

    grant = engine.impersonate(actor=actor, target_user_id=target.id, confirmed=True)

    claims = decode_token(grant.token, secret=settings.secret_key_value, algorithms=[settings.algorithm])
    assert claims["sub"] == str(target.id)
    assert claims[IMPERSONATION_CLAIM] is True
    assert claims[IMPERSONATED_BY_CLAIM] == str(super_admin.id)
    assert grant.expires_in == settings.impersonation_token_ttl_minutes * 60
    assert _audit_actions(session) == ["SUPER_ADMIN_USER_IMPERSONATE"]


def test_nested_and_inactive_impersonation_are_refused(
    session: Session,
    roles: RoleService,
    engine: GovernanceEngine,
    super_admin: User,
    make_user,
) -> None:
    target = make_user()
    inactive = make_user(is_active=False)
    actor = _context(session, roles, super_admin)
    delegated = replace(actor, impersonated_by=uuid4())

    with pytest.raises(PermissionDeniedError, match="Nested"):
        engine.impersonate(actor=delegated, target_user_id=target.id, confirmed=True)
    with pytest.raises(InvalidInputError, match="inactive"):
        engine.impersonate(actor=actor, target_user_id=inactive.id, confirmed=True)


def test_end_impersonation_attributes_the_super_admin(
    session: Session,
    roles: RoleService,
    engine: GovernanceEngine,
    super_admin: User,
    make_user,
) -> None:
    target = make_user()
    delegated = _context(session, roles, target, impersonated_by=super_admin.id)

    accountable = engine.end_impersonation(actor=delegated)

    assert accountable == super_admin.id
    entry = session.scalars(select(AuditLog)).one()
    assert entry.action == "SUPER_ADMIN_USER_IMPERSONATION_ENDED"
    assert entry.user_id == super_admin.id
    assert entry.details["impersonatedUserId"] == str(target.id)


def test_audit_trail_only_returns_governance_records(
    session: Session,
    roles: RoleService,
    engine: GovernanceEngine,
    super_admin: User,
    make_role,
) -> None:
    role = make_role("TEMP_ROLE")
    actor = _context(session, roles, super_admin)
    session.add(AuditLog(action="ROLE_CREATED", user_id=super_admin.id, details={}))
    engine.execute(ActionType.ROLE_DELETE, str(role.id), actor=actor, confirmed=False)

    trail = engine.audit_trail()

    assert [entry.action for entry in trail] == ["SUPER_ADMIN_ROLE_DELETE"]
    assert session.scalar(select(func.count()).select_from(AuditLog)) == 2


def test_platform_health_counts(
    engine: GovernanceEngine,
    super_admin: User,
    make_user,
) -> None:
    make_user(is_active=False)

    health = engine.platform_health()

    assert health.users == {"total": 2, "active": 1, "roleCount": 2}
    assert health.capabilities.degraded == 1
    assert health.panels["total"] == 0

from __future__ import annotations

from uuid import uuid4

import pytest
from sqlalchemy.orm import Session

from campus_api.common.errors import InvalidInputError, NotFoundError
from campus_api.core.rbac.cache import PermissionCache
from campus_api.core.rbac.registry import ALL_PERMISSIONS, SUPER_PERMISSION
from campus_api.features.rbac.service import RoleService, flatten_permissions


def test_super_admin_holds_every_permission(roles: RoleService, make_user) -> None:
    user = make_user(role="SUPER_ADMIN")

    assert roles.get_user_permissions(user.id) == frozenset({ALL_PERMISSIONS})
    assert roles.has_permission(user.id, "payroll:generate")
    assert roles.has_permission(user.id, "not:catalogued")
    assert roles.has_all(user.id, ["leave:approve", "roles:manage"])
    assert roles.is_super_admin(user.id)


def test_label_role_grants_only_its_permissions(roles: RoleService, make_user, make_role) -> None:
    make_role("STAFF", "leave:approve")
    user = make_user(role="STAFF")

    assert roles.has_permission(user.id, "leave:approve")
    assert not roles.has_permission(user.id, "payroll:generate")
    assert not roles.is_super_admin(user.id)
    assert roles.has_any(user.id, ["payroll:generate", "leave:approve"])
    assert not roles.has_all(user.id, ["payroll:generate", "leave:approve"])


def test_unknown_identity_resolves_to_nothing(roles: RoleService) -> None:
    stranger = uuid4()

    assert roles.get_user_roles(stranger) == []
    assert roles.get_user_permissions(stranger) == frozenset()
    assert not roles.has_any(stranger, ["leave:approve"])


def test_authorize_reports_missing_keys(roles: RoleService, make_user, make_role) -> None:
    make_role("STAFF", "leave:approve")
    user = make_user(role="STAFF")

    decision = roles.authorize(user_id=user.id, permission_keys=["leave:approve", "payroll:generate"])

    assert not decision.allowed
    assert decision.missing == ("payroll:generate",)

    with pytest.raises(InvalidInputError):
        roles.authorize(user_id=user.id, permission_keys=["  "])


def test_unknown_user_has_no_permissions(roles: RoleService) -> None:
    assert roles.get_user_permissions(uuid4()) == frozenset()


def test_inactive_roles_are_ignored(roles: RoleService, make_user, make_role) -> None:
    role = make_role("TEMP_ROLE", "task:view")
    role.is_active = False
    user = make_user(role="TEMP_ROLE")

    assert not roles.has_permission(user.id, "task:view")


def test_assignment_and_labels_union(roles: RoleService, make_user, make_role) -> None:
    make_role("STAFF", "leave:view")
    extra = make_role("TEMP_ROLE", "task:view")
    user = make_user(role="STAFF")

    roles.assign_role(role_id=extra.id, user_id=user.id, assigned_by=None)

    assert roles.get_user_role_keys(user.id) == ("STAFF", "TEMP_ROLE")
    assert roles.has_all(user.id, ["leave:view", "task:view"])


def test_flatten_collapses_super_permission(roles: RoleService) -> None:
    super_admin = roles.get_role_by_key("SUPER_ADMIN")
    admin = roles.get_role_by_key("ADMIN")
    assert super_admin is not None and admin is not None

    assert flatten_permissions([admin, super_admin]) == frozenset({ALL_PERMISSIONS})


def test_update_role_invalidates_cached_permissions(
    roles: RoleService,
    cache: PermissionCache,
    make_user,
    make_role,
) -> None:
    role = make_role("STAFF", "leave:view")
    user = make_user(role="STAFF")
    assert not roles.has_permission(user.id, "leave:approve")
    assert cache.get(user.id) is not None

    roles.update_role(role_id=role.id, permissions=["leave:view", "leave:approve"])

    assert cache.get(user.id) is None
    assert roles.has_permission(user.id, "leave:approve")


def test_unassign_invalidates_the_identity(
    session: Session,
    roles: RoleService,
    cache: PermissionCache,
    make_user,
    make_role,
) -> None:
    role = make_role("TEMP_ROLE", "task:view")
    user = make_user()
    roles.assign_role(role_id=role.id, user_id=user.id, assigned_by=None)
    assert roles.has_permission(user.id, "task:view")

    roles.unassign_role(role_id=role.id, user_id=user.id)
    session.commit()

    assert cache.get(user.id) is None
    assert not roles.has_permission(user.id, "task:view")
    with pytest.raises(NotFoundError):
        roles.unassign_role(role_id=role.id, user_id=user.id)


def test_create_role_validates_input(roles: RoleService) -> None:
    with pytest.raises(InvalidInputError):
        roles.create_role(role_key="lower", name="Lower", description=None, permissions=[])
    with pytest.raises(InvalidInputError, match="Invalid permission"):
        roles.create_role(role_key="NEW_ROLE", name="New", description=None, permissions=["nope:x"])
    with pytest.raises(InvalidInputError, match="reserved"):
        roles.create_role(
            role_key="NEW_ROLE",
            name="New",
            description=None,
            permissions=[SUPER_PERMISSION],
        )
    with pytest.raises(InvalidInputError, match="already exists"):
        roles.create_role(role_key="ADMIN", name="Admin", description=None, permissions=[])


def test_create_role_dedupes_permissions(roles: RoleService) -> None:
    role = roles.create_role(
        role_key="HOSTEL_WARDEN",
        name="  Hostel Warden ",
        description="  ",
        permissions=["attendance:view", "attendance:view", "attendance:mark"],
    )

    assert role.name == "Hostel Warden"
    assert role.description is None
    assert sorted(grant.permission_key for grant in role.permissions) == [
        "attendance:mark",
        "attendance:view",
    ]


def test_delete_unassigned_role(roles: RoleService, make_role) -> None:
    role = make_role("TEMP_ROLE", "task:view")

    roles.delete_role(role_id=role.id)

    assert roles.get_role_by_key("TEMP_ROLE") is None


def test_delete_role_with_holders_is_refused(roles: RoleService, make_user, make_role) -> None:
    role = make_role("TEMP_ROLE", "task:view")
    make_user(role="TEMP_ROLE")
    assigned = make_user()
    roles.assign_role(role_id=role.id, user_id=assigned.id, assigned_by=None)

    with pytest.raises(InvalidInputError, match="2 user"):
        roles.delete_role(role_id=role.id)

    assert roles.get_role_by_key("TEMP_ROLE") is not None


def test_system_roles_cannot_be_deleted_or_deactivated(roles: RoleService) -> None:
    admin = roles.get_role_by_key("ADMIN")
    assert admin is not None

    with pytest.raises(InvalidInputError, match="System roles cannot be deleted"):
        roles.delete_role(role_id=admin.id)
    with pytest.raises(InvalidInputError, match="deactivated"):
        roles.update_role(role_id=admin.id, is_active=False)


def test_sync_system_roles_is_idempotent(session: Session, roles: RoleService) -> None:
    before = [summary.role.role_key for summary in roles.list_roles()]

    roles.sync_system_roles()
    session.commit()

    assert [summary.role.role_key for summary in roles.list_roles()] == before


def test_permission_catalogue_marks_unregistered_keys(roles: RoleService, make_role) -> None:
    make_role("LEGACY", "legacy:thing")

    entries = {entry.key: entry for entry in roles.list_permission_catalogue()}

    assert entries["leave:approve"].registered
    assert entries["legacy:thing"].registered is False

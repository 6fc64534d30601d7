from __future__ import annotations

from campus_api.core.rbac.registry import (
    ALL_PERMISSIONS,
    PERMISSION_REGISTRY,
    SUPER_ADMIN_ROLE,
    SUPER_PERMISSION,
    SYSTEM_ROLES,
    is_super_privileged,
)


def test_super_privilege_by_collapsed_permission_set() -> None:
    assert is_super_privileged(permissions=frozenset({ALL_PERMISSIONS}), role_keys=())


def test_super_privilege_by_role_key() -> None:
    assert is_super_privileged(permissions=frozenset(), role_keys=(SUPER_ADMIN_ROLE,))


def test_ordinary_grants_are_not_super() -> None:
    assert not is_super_privileged(
        permissions=frozenset({"roles:manage", "system:config"}),
        role_keys=("ADMIN",),
    )


def test_system_roles_only_reference_catalogued_permissions() -> None:
    for role in SYSTEM_ROLES:
        for key in role.permissions:
            assert key in PERMISSION_REGISTRY, (role.role_key, key)


def test_only_super_admin_role_carries_super_permission() -> None:
    holders = [role.role_key for role in SYSTEM_ROLES if SUPER_PERMISSION in role.permissions]
    assert holders == [SUPER_ADMIN_ROLE]

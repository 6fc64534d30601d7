from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import delete, event, func, or_, select, union
from sqlalchemy.orm import Session

from campus_api.common.errors import InvalidInputError, NotFoundError
from campus_api.common.logging import log_context
from campus_api.core.rbac.cache import PermissionCache
from campus_api.core.rbac.registry import (
    ALL_PERMISSIONS,
    PERMISSION_REGISTRY,
    SUPER_ADMIN_ROLE,
    SUPER_PERMISSION,
    SYSTEM_ROLES,
    is_super_privileged,
)
from campus_db.models import Role, RolePermission, User, UserRole

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# DTOs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AuthorizationDecision:
    """Result of an authorization evaluation."""

    granted: frozenset[str]
    required: tuple[str, ...]
    missing: tuple[str, ...]

    @property
    def allowed(self) -> bool:
        return not self.missing


@dataclass(frozen=True)
class RoleSummary:
    role: Role
    assignment_count: int


@dataclass(frozen=True)
class CatalogueEntry:
    key: str
    label: str | None
    description: str | None
    registered: bool


_ROLE_KEY_PATTERN = re.compile(r"^[A-Z_][A-Z0-9_]*$")
_PENDING_INVALIDATIONS = "rbac_pending_invalidations"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _normalize_role_name(value: str) -> str:
    candidate = value.strip()
    if not candidate:
        raise InvalidInputError("name is required")
    return candidate


def _normalize_description(value: str | None) -> str | None:
    if value is None:
        return None
    candidate = value.strip()
    return candidate or None


def _flush_pending_invalidations(session: Session) -> None:
    pending = session.info.pop(_PENDING_INVALIDATIONS, None) or set()
    for cache, identity_id in pending:
        cache.invalidate(identity_id)


def _discard_pending_invalidations(session: Session) -> None:
    session.info.pop(_PENDING_INVALIDATIONS, None)


def flatten_permissions(roles: Iterable[Role]) -> frozenset[str]:
    """Union of granted keys; any super-permission grant collapses to ``{"*"}``."""

    keys: set[str] = set()
    for role in roles:
        for grant in role.permissions:
            if not grant.granted:
                continue
            if grant.permission_key == SUPER_PERMISSION:
                return frozenset({ALL_PERMISSIONS})
            keys.add(grant.permission_key)
    return frozenset(keys)


def permissions_satisfy(permissions: frozenset[str], required: str) -> bool:
    if ALL_PERMISSIONS in permissions:
        return True
    return required in permissions


def count_role_holders(session: Session, role: Role) -> int:
    """Distinct identities holding ``role`` by assignment or by label."""

    holders = union(
        select(UserRole.user_id.label("user_id")).where(UserRole.role_id == role.id),
        select(User.id.label("user_id")).where(
            or_(User.role == role.role_key, User.admin_role == role.role_key)
        ),
    ).subquery()
    return int(session.scalar(select(func.count()).select_from(holders)) or 0)


class RoleService:
    """Role resolution, permission checks and role administration.

    Every mutation path invalidates the permission cache synchronously and once
    more after the surrounding transaction commits.
    """

    def __init__(self, *, session: Session, cache: PermissionCache) -> None:
        self._session = session
        self._cache = cache

    # ------------------------------------------------------------------
    # Cache invalidation
    # ------------------------------------------------------------------

    def invalidate(self, identity_id: UUID | None = None) -> None:
        self._cache.invalidate(identity_id)
        pending = self._session.info.setdefault(_PENDING_INVALIDATIONS, set())
        pending.add((self._cache, identity_id))
        if not event.contains(self._session, "after_commit", _flush_pending_invalidations):
            event.listen(self._session, "after_commit", _flush_pending_invalidations)
            event.listen(self._session, "after_rollback", _discard_pending_invalidations)

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def get_user_roles(self, user_id: UUID) -> list[Role]:
        """Primary label role, then admin label role, then explicit assignments."""

        user = self._session.get(User, user_id)
        if user is None:
            return []

        resolved: dict[UUID, Role] = {}
        for label in (user.role, user.admin_role):
            if not label:
                continue
            role = self._session.scalar(
                select(Role).where(Role.role_key == label, Role.is_active.is_(True))
            )
            if role is not None:
                resolved.setdefault(role.id, role)

        assigned = self._session.scalars(
            select(Role)
            .join(UserRole, UserRole.role_id == Role.id)
            .where(UserRole.user_id == user_id, Role.is_active.is_(True))
            .order_by(UserRole.created_at)
        ).all()
        for role in assigned:
            resolved.setdefault(role.id, role)
        return list(resolved.values())

    def get_user_role_keys(self, user_id: UUID) -> tuple[str, ...]:
        return tuple(role.role_key for role in self.get_user_roles(user_id))

    def get_user_permissions(self, user_id: UUID) -> frozenset[str]:
        cached = self._cache.get(user_id)
        if cached is not None:
            logger.debug("rbac.permissions.cache_hit", extra=log_context(user_id=user_id))
            return cached

        permissions = flatten_permissions(self.get_user_roles(user_id))
        self._cache.set(user_id, permissions)
        logger.debug(
            "rbac.permissions.resolved",
            extra=log_context(user_id=user_id, permission_count=len(permissions)),
        )
        return permissions

    def has_permission(self, user_id: UUID, permission_key: str) -> bool:
        return permissions_satisfy(self.get_user_permissions(user_id), permission_key)

    def has_any(self, user_id: UUID, permission_keys: Sequence[str]) -> bool:
        permissions = self.get_user_permissions(user_id)
        return any(permissions_satisfy(permissions, key) for key in permission_keys)

    def has_all(self, user_id: UUID, permission_keys: Sequence[str]) -> bool:
        permissions = self.get_user_permissions(user_id)
        return all(permissions_satisfy(permissions, key) for key in permission_keys)

    def is_super_admin(self, user_id: UUID) -> bool:
        return is_super_privileged(
            permissions=self.get_user_permissions(user_id),
            role_keys=self.get_user_role_keys(user_id),
        )

    def authorize(
        self,
        *,
        user_id: UUID,
        permission_keys: Sequence[str],
        granted: frozenset[str] | None = None,
    ) -> AuthorizationDecision:
        """Evaluate ``permission_keys``; ``granted`` replaces the resolved set when given."""

        required = tuple(dict.fromkeys(key.strip() for key in permission_keys if key.strip()))
        if not required:
            raise InvalidInputError("At least one permission key is required")
        if granted is None:
            granted = self.get_user_permissions(user_id)
        missing = tuple(key for key in required if not permissions_satisfy(granted, key))
        return AuthorizationDecision(granted=granted, required=required, missing=missing)

    # ------------------------------------------------------------------
    # Catalogue
    # ------------------------------------------------------------------

    def known_permission_keys(self) -> set[str]:
        stored = self._session.scalars(select(RolePermission.permission_key).distinct()).all()
        return set(PERMISSION_REGISTRY) | set(stored)

    def list_permission_catalogue(self) -> list[CatalogueEntry]:
        entries: list[CatalogueEntry] = []
        for key in sorted(self.known_permission_keys()):
            definition = PERMISSION_REGISTRY.get(key)
            entries.append(
                CatalogueEntry(
                    key=key,
                    label=definition.label if definition else None,
                    description=definition.description if definition else None,
                    registered=definition is not None,
                )
            )
        return entries

    def _validate_permissions(self, *, role_key: str, keys: Sequence[str]) -> tuple[str, ...]:
        normalized = tuple(dict.fromkeys(str(key).strip() for key in keys))
        if any(not key for key in normalized):
            raise InvalidInputError("Permission keys must not be blank")
        known = self.known_permission_keys()
        for key in normalized:
            if key not in known:
                raise InvalidInputError(f"Invalid permission: {key}")
            if key == SUPER_PERMISSION and role_key != SUPER_ADMIN_ROLE:
                raise InvalidInputError(
                    f"Permission {SUPER_PERMISSION} is reserved for the {SUPER_ADMIN_ROLE} role"
                )
        return normalized

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def list_roles(self, *, include_inactive: bool = False) -> list[RoleSummary]:
        stmt = select(Role).order_by(Role.is_system.desc(), Role.name.asc())
        if not include_inactive:
            stmt = stmt.where(Role.is_active.is_(True))
        roles = self._session.scalars(stmt).all()
        return [
            RoleSummary(role=role, assignment_count=self.count_role_holders(role)) for role in roles
        ]

    def get_role(self, role_id: UUID) -> Role:
        role = self._session.get(Role, role_id)
        if role is None:
            raise NotFoundError("Role")
        return role

    def get_role_by_key(self, role_key: str) -> Role | None:
        return self._session.scalar(select(Role).where(Role.role_key == role_key))

    def count_role_holders(self, role: Role) -> int:
        return count_role_holders(self._session, role)

    def create_role(
        self,
        *,
        role_key: str,
        name: str,
        description: str | None,
        permissions: Sequence[str],
    ) -> Role:
        key = role_key.strip()
        if not key:
            raise InvalidInputError("roleKey is required")
        if not _ROLE_KEY_PATTERN.match(key):
            raise InvalidInputError("roleKey must be uppercase with underscores")
        if self.get_role_by_key(key) is not None:
            raise InvalidInputError("Role key already exists")

        keys = self._validate_permissions(role_key=key, keys=permissions)
        role = Role(
            role_key=key,
            name=_normalize_role_name(name),
            description=_normalize_description(description),
            is_system=False,
            is_active=True,
        )
        role.permissions = [RolePermission(permission_key=k, granted=True) for k in keys]
        self._session.add(role)
        self._session.flush()

        self.invalidate()
        logger.info(
            "rbac.role.created",
            extra=log_context(role_id=role.id, role_key=key, permission_count=len(keys)),
        )
        return role

    def update_role(
        self,
        *,
        role_id: UUID,
        name: str | None = None,
        description: str | None = None,
        permissions: Sequence[str] | None = None,
        is_active: bool | None = None,
    ) -> Role:
        role = self.get_role(role_id)
        if role.is_system and is_active is False:
            raise InvalidInputError("System roles cannot be deactivated")

        if name is not None:
            role.name = _normalize_role_name(name)
        if description is not None:
            role.description = _normalize_description(description)
        if is_active is not None:
            role.is_active = is_active
        if permissions is not None:
            keys = self._validate_permissions(role_key=role.role_key, keys=permissions)
            self._replace_grants(role=role, permission_keys=keys)

        self._session.flush()
        self._session.refresh(role, attribute_names=["permissions"])
        self.invalidate()
        logger.info("rbac.role.updated", extra=log_context(role_id=role.id))
        return role

    def _replace_grants(self, *, role: Role, permission_keys: Sequence[str]) -> None:
        current = {grant.permission_key: grant for grant in role.permissions}
        desired = set(permission_keys)

        removals = set(current) - desired
        if removals:
            self._session.execute(
                delete(RolePermission).where(
                    RolePermission.role_id == role.id,
                    RolePermission.permission_key.in_(sorted(removals)),
                )
            )
        for key in desired & set(current):
            current[key].granted = True
        self._session.add_all(
            [
                RolePermission(role_id=role.id, permission_key=key, granted=True)
                for key in permission_keys
                if key not in current
            ]
        )
        self._session.flush()
        self._session.expire(role, ["permissions"])

    def ensure_deletable(self, role: Role) -> int:
        if role.is_system:
            raise InvalidInputError("System roles cannot be deleted")
        holders = self.count_role_holders(role)
        if holders:
            raise InvalidInputError(
                f"Cannot delete role: {holders} user(s) have this role assigned",
                details={"assignedUsers": holders},
            )
        return holders

    def delete_role(self, *, role_id: UUID) -> Role:
        role = self.get_role(role_id)
        self.ensure_deletable(role)
        self._session.delete(role)
        self._session.flush()
        self.invalidate()
        logger.info(
            "rbac.role.deleted",
            extra=log_context(role_id=role_id, role_key=role.role_key),
        )
        return role

    # ------------------------------------------------------------------
    # Assignments
    # ------------------------------------------------------------------

    def assign_role(self, *, role_id: UUID, user_id: UUID, assigned_by: UUID | None) -> UserRole:
        role = self.get_role(role_id)
        if self._session.get(User, user_id) is None:
            raise NotFoundError("User")

        assignment = self._session.scalar(
            select(UserRole).where(UserRole.user_id == user_id, UserRole.role_id == role.id)
        )
        if assignment is None:
            assignment = UserRole(user_id=user_id, role_id=role.id, assigned_by=assigned_by)
            self._session.add(assignment)
        else:
            assignment.assigned_by = assigned_by
        self._session.flush()

        self.invalidate(user_id)
        logger.info(
            "rbac.assignment.created",
            extra=log_context(role_id=role.id, user_id=user_id),
        )
        return assignment

    def unassign_role(self, *, role_id: UUID, user_id: UUID) -> None:
        role = self.get_role(role_id)
        if self._session.get(User, user_id) is None:
            raise NotFoundError("User")
        result = self._session.execute(
            delete(UserRole).where(UserRole.user_id == user_id, UserRole.role_id == role.id)
        )
        if not result.rowcount:
            raise NotFoundError("Role assignment")
        self._session.flush()
        self.invalidate(user_id)
        logger.info(
            "rbac.assignment.deleted",
            extra=log_context(role_id=role.id, user_id=user_id),
        )

    # ------------------------------------------------------------------
    # Bootstrap
    # ------------------------------------------------------------------

    def sync_system_roles(self) -> None:
        """Ensure system roles exist and carry at least their canonical grants."""

        logger.debug("rbac.system_roles.sync.start")
        for definition in SYSTEM_ROLES:
            role = self.get_role_by_key(definition.role_key)
            if role is None:
                role = Role(
                    role_key=definition.role_key,
                    name=definition.name,
                    description=definition.description,
                )
                self._session.add(role)
            role.is_system = True
            role.is_active = True
            self._session.flush()

            present = {grant.permission_key: grant for grant in role.permissions}
            for key in definition.permissions:
                grant = present.get(key)
                if grant is None:
                    role.permissions.append(RolePermission(permission_key=key, granted=True))
                else:
                    grant.granted = True
            self._session.flush()

        self.invalidate()
        logger.debug("rbac.system_roles.sync.success")


__all__ = [
    "AuthorizationDecision",
    "CatalogueEntry",
    "RoleService",
    "RoleSummary",
    "count_role_holders",
    "flatten_permissions",
    "permissions_satisfy",
]

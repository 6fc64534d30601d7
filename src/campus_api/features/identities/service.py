from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from campus_api.common.errors import NotFoundError
from campus_api.common.logging import log_context
from campus_api.core.auth.principal import AuthContext, AuthenticatedPrincipal, PanelSummary
from campus_api.core.rbac.registry import is_super_privileged
from campus_api.features.panels.service import PanelService
from campus_api.features.rbac.service import RoleService
from campus_db.models import User, UserPanel, UserRole

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IdentityFootprint:
    """Dependents that disappear with an identity."""

    role_assignments: int
    panel_assignments: int


@dataclass
class IdentityService:
    """Identity lookups, context assembly and deletion."""

    session: Session
    roles: RoleService

    def get_user(self, user_id: UUID) -> User:
        user = self.session.get(User, user_id)
        if user is None:
            raise NotFoundError("User")
        return user

    def build_context(self, user: User, *, principal: AuthenticatedPrincipal) -> AuthContext:
        """Resolve roles, permissions and the default panel for ``user``.

        The default panel's whitelist narrows the active permission set; the
        super-privilege is never narrowed.
        """

        role_keys = self.roles.get_user_role_keys(user.id)
        permissions = self.roles.get_user_permissions(user.id)
        is_super_admin = is_super_privileged(permissions=permissions, role_keys=role_keys)
        panels = PanelService(session=self.session)
        default = panels.default_panel(user.id)
        if default is not None and not is_super_admin:
            permissions = panels.effective_permissions(default.id, granted=permissions).permissions
        return AuthContext(
            user_id=user.id,
            email=user.email,
            display_name=user.display_name,
            role=user.role,
            role_keys=role_keys,
            permissions=permissions,
            is_super_admin=is_super_admin,
            default_panel=PanelSummary(id=default.id, name=default.name) if default else None,
            impersonated_by=principal.impersonated_by,
            auth_via=principal.auth_via,
        )

    def footprint(self, user_id: UUID) -> IdentityFootprint:
        roles = self.session.scalar(
            select(func.count(UserRole.id)).where(UserRole.user_id == user_id)
        )
        panels = self.session.scalar(
            select(func.count(UserPanel.id)).where(UserPanel.user_id == user_id)
        )
        return IdentityFootprint(role_assignments=int(roles or 0), panel_assignments=int(panels or 0))

    def delete_user(self, user_id: UUID) -> User:
        user = self.get_user(user_id)
        self.session.execute(delete(UserRole).where(UserRole.user_id == user.id))
        self.session.execute(delete(UserPanel).where(UserPanel.user_id == user.id))
        self.session.delete(user)
        self.session.flush()
        self.roles.invalidate(user_id)
        logger.info("identity.deleted", extra=log_context(user_id=user_id))
        return user


__all__ = ["IdentityFootprint", "IdentityService"]

"""Identity information produced by the auth pipeline."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from uuid import UUID


class AuthVia(str, enum.Enum):
    """Transport used to authenticate the request."""

    BEARER = "bearer"
    IMPERSONATION = "impersonation"


@dataclass(slots=True)
class AuthenticatedPrincipal:
    """Verified credential, before roles and permissions are attached."""

    user_id: UUID
    auth_via: AuthVia
    impersonated_by: UUID | None = None


@dataclass(frozen=True, slots=True)
class PanelSummary:
    id: UUID
    name: str


@dataclass(frozen=True, slots=True)
class AuthContext:
    """Authorization context attached to every authenticated request."""

    user_id: UUID
    email: str
    display_name: str | None
    role: str
    role_keys: tuple[str, ...]
    permissions: frozenset[str]
    is_super_admin: bool
    default_panel: PanelSummary | None = None
    impersonated_by: UUID | None = None
    auth_via: AuthVia = AuthVia.BEARER
    extra: dict[str, str] = field(default_factory=dict)

    @property
    def is_impersonating(self) -> bool:
        return self.impersonated_by is not None


__all__ = ["AuthContext", "AuthVia", "AuthenticatedPrincipal", "PanelSummary"]

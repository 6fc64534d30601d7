"""Request authentication pipeline used by FastAPI dependencies."""

from __future__ import annotations

import logging
from uuid import UUID

import jwt
from sqlalchemy.orm import Session
from starlette.requests import HTTPConnection

from campus_api.common.errors import AuthRequiredError
from campus_api.core.security.tokens import (
    IMPERSONATED_BY_CLAIM,
    IMPERSONATION_CLAIM,
    decode_token,
)
from campus_api.settings import Settings
from campus_db.models import User

from .principal import AuthenticatedPrincipal, AuthVia

logger = logging.getLogger(__name__)


def _extract_bearer_token(conn: HTTPConnection) -> str | None:
    header = conn.headers.get("authorization") or ""
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer":
        return None
    candidate = token.strip()
    return candidate or None


def _parse_uuid(value: object) -> UUID | None:
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        return None


def resolve_principal(token: str, *, settings: Settings) -> AuthenticatedPrincipal:
    """Verify ``token`` and return the principal it names."""

    try:
        payload = decode_token(
            token,
            secret=settings.secret_key_value,
            algorithms=[settings.algorithm],
        )
    except jwt.ExpiredSignatureError as exc:
        raise AuthRequiredError("Token has expired") from exc
    except jwt.PyJWTError as exc:
        raise AuthRequiredError("Invalid token") from exc

    user_id = _parse_uuid(payload.get("sub"))
    if user_id is None:
        raise AuthRequiredError("Invalid token")

    impersonated_by = None
    if payload.get(IMPERSONATION_CLAIM):
        impersonated_by = _parse_uuid(payload.get(IMPERSONATED_BY_CLAIM))
        if impersonated_by is None:
            raise AuthRequiredError("Invalid token")

    return AuthenticatedPrincipal(
        user_id=user_id,
        auth_via=AuthVia.IMPERSONATION if impersonated_by else AuthVia.BEARER,
        impersonated_by=impersonated_by,
    )


def authenticate_request(
    conn: HTTPConnection,
    *,
    session: Session,
    settings: Settings,
) -> tuple[AuthenticatedPrincipal, User]:
    """Authenticate ``conn`` and load the backing identity record."""

    token = _extract_bearer_token(conn)
    if token is None:
        raise AuthRequiredError("Authentication required")

    principal = resolve_principal(token, settings=settings)
    user = session.get(User, principal.user_id)
    if user is None:
        logger.info("auth.principal.unknown", extra={"user_id": str(principal.user_id)})
        raise AuthRequiredError("Unknown principal")
    if not user.is_active:
        raise AuthRequiredError("User account is inactive")
    return principal, user


__all__ = ["authenticate_request", "resolve_principal"]

"""JWT helpers for access and delegated (impersonation) credentials."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

import jwt

from campus_api.settings import Settings

IMPERSONATION_CLAIM = "impersonation"
IMPERSONATED_BY_CLAIM = "impersonated_by"


def decode_token(
    token: str,
    *,
    secret: str,
    algorithms: Sequence[str],
) -> dict[str, Any]:
    """Decode a JWT and return its payload; raises :class:`jwt.PyJWTError`."""

    return jwt.decode(
        token,
        secret,
        algorithms=list(algorithms),
        options={"verify_aud": False, "require": ["sub", "exp"]},
    )


def encode_token(payload: dict[str, Any], *, secret: str, algorithm: str) -> str:
    return jwt.encode(payload, secret, algorithm=algorithm)


def _claims(
    *,
    subject: UUID,
    email: str | None,
    role: str | None,
    ttl: timedelta,
    now: datetime | None = None,
) -> dict[str, Any]:
    issued = now or datetime.now(UTC)
    claims: dict[str, Any] = {
        "sub": str(subject),
        "iat": int(issued.timestamp()),
        "exp": int((issued + ttl).timestamp()),
    }
    if email is not None:
        claims["email"] = email
    if role is not None:
        claims["role"] = role
    return claims


def mint_access_token(
    settings: Settings,
    *,
    subject: UUID,
    email: str | None = None,
    role: str | None = None,
    expires_in: timedelta | None = None,
) -> str:
    ttl = expires_in or timedelta(minutes=settings.access_token_expire_minutes)
    claims = _claims(subject=subject, email=email, role=role, ttl=ttl)
    return encode_token(claims, secret=settings.secret_key_value, algorithm=settings.algorithm)


def mint_impersonation_token(
    settings: Settings,
    *,
    subject: UUID,
    impersonated_by: UUID,
    email: str | None = None,
    role: str | None = None,
) -> tuple[str, int]:
    """Return a clearly marked delegated credential and its lifetime in seconds."""

    ttl = timedelta(minutes=settings.impersonation_token_ttl_minutes)
    claims = _claims(subject=subject, email=email, role=role, ttl=ttl)
    claims[IMPERSONATED_BY_CLAIM] = str(impersonated_by)
    claims[IMPERSONATION_CLAIM] = True
    token = encode_token(claims, secret=settings.secret_key_value, algorithm=settings.algorithm)
    return token, int(ttl.total_seconds())


__all__ = [
    "IMPERSONATED_BY_CLAIM",
    "IMPERSONATION_CLAIM",
    "decode_token",
    "encode_token",
    "mint_access_token",
    "mint_impersonation_token",
]

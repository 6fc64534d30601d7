from __future__ import annotations

from datetime import timedelta
from uuid import uuid4

import pytest
from starlette.requests import Request

from campus_api.common.errors import AuthRequiredError
from campus_api.core.auth.pipeline import authenticate_request, resolve_principal
from campus_api.core.auth.principal import AuthVia
from campus_api.core.security.tokens import mint_access_token, mint_impersonation_token
from campus_api.settings import Settings
from tests.utils import bearer


def _request(headers: dict[str, str] | None = None) -> Request:
    raw = [(key.lower().encode(), value.encode()) for key, value in (headers or {}).items()]
    return Request(
        {
            "type": "http",
            "method": "GET",
            "path": "/api/v1/me",
            "headers": raw,
            "scheme": "http",
            "server": ("testserver", 80),
        }
    )


def test_access_token_resolves_to_bearer_principal(settings: Settings) -> None:
    user_id = uuid4()
    token = mint_access_token(settings, subject=user_id, role="STAFF")

    principal = resolve_principal(token, settings=settings)

    assert principal.user_id == user_id
    assert principal.auth_via is AuthVia.BEARER
    assert principal.impersonated_by is None


def test_impersonation_token_names_the_super_admin(settings: Settings) -> None:
    target, root = uuid4(), uuid4()
    token, expires_in = mint_impersonation_token(settings, subject=target, impersonated_by=root)

    principal = resolve_principal(token, settings=settings)

    assert principal.auth_via is AuthVia.IMPERSONATION
    assert principal.impersonated_by == root
    assert expires_in == settings.impersonation_token_ttl_minutes * 60


def test_expired_and_forged_tokens_are_rejected(settings: Settings) -> None:
    expired = mint_access_token(settings, subject=uuid4(), expires_in=timedelta(seconds=-5))
    with pytest.raises(AuthRequiredError, match="expired"):
        resolve_principal(expired, settings=settings)
    with pytest.raises(AuthRequiredError, match="Invalid token"):
        resolve_principal("not.a.jwt", settings=settings)


def test_missing_header_requires_authentication(session, settings: Settings) -> None:
    with pytest.raises(AuthRequiredError, match="Authentication required"):
        authenticate_request(_request(), session=session, settings=settings)
    with pytest.raises(AuthRequiredError):
        authenticate_request(
            _request({"Authorization": "Basic abc"}),
            session=session,
            settings=settings,
        )


def test_unknown_and_inactive_identities_are_rejected(session, settings: Settings, make_user) -> None:
    inactive = make_user(is_active=False)

    with pytest.raises(AuthRequiredError, match="Unknown principal"):
        authenticate_request(_request(bearer(settings, uuid4())), session=session, settings=settings)
    with pytest.raises(AuthRequiredError, match="inactive"):
        authenticate_request(
            _request(bearer(settings, inactive.id)),
            session=session,
            settings=settings,
        )


def test_active_identity_is_loaded(session, settings: Settings, make_user) -> None:
    user = make_user(role="registrar")

    principal, loaded = authenticate_request(
        _request(bearer(settings, user.id)),
        session=session,
        settings=settings,
    )

    assert principal.user_id == user.id
    assert loaded.role == "REGISTRAR"

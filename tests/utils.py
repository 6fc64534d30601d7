"""Helpers shared by unit and integration tests."""

from __future__ import annotations

from typing import Any
from uuid import UUID

from campus_api.core.security.tokens import mint_access_token
from campus_api.settings import Settings

TEST_SECRET_KEY = "test-secret-key-for-tests-please-change-me"


def build_test_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "_env_file": None,
        "secret_key": TEST_SECRET_KEY,
        "database_url": "sqlite://",
        "log_level": "WARNING",
        "rate_limit_enabled": False,
    }
    values.update(overrides)
    return Settings(**values)


def bearer(settings: Settings, user_id: UUID, *, role: str | None = None) -> dict[str, str]:
    token = mint_access_token(settings, subject=user_id, role=role)
    return {"Authorization": f"Bearer {token}"}

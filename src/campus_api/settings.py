"""Control-plane API settings (conventional Pydantic v2)."""

from __future__ import annotations

import json
from typing import Literal

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings

from campus_db.settings import (
    DatabaseSettingsMixin,
    campus_settings_config,
    create_settings_accessors,
    normalize_log_format,
    normalize_log_level,
)

# ---- Defaults ---------------------------------------------------------------

DEFAULT_CORS_ORIGINS: list[str] = []
DEFAULT_PERMISSION_CACHE_TTL_SECONDS = 300
DEFAULT_IMPERSONATION_TTL_MINUTES = 60


# ---- Settings ---------------------------------------------------------------


class Settings(DatabaseSettingsMixin, BaseSettings):
    """FastAPI settings loaded from CAMPUS_* environment variables."""

    model_config = campus_settings_config(enable_decoding=False, populate_by_name=True)

    # Core
    app_name: str = "Campus Control Plane API"
    app_version: str = "0.1.0"
    log_format: str = "console"
    log_level: str = "INFO"
    api_log_level: str | None = None
    request_log_level: str | None = None
    database_log_level: str | None = None

    # Server
    api_host: str | None = None
    api_port: int = Field(8001, ge=1, le=65535)
    server_cors_origins: list[str] = Field(default_factory=lambda: list(DEFAULT_CORS_ORIGINS))

    # JWT
    secret_key: SecretStr = Field(..., min_length=32)
    algorithm: str = "HS256"
    access_token_expire_minutes: int = Field(30, ge=1)
    impersonation_token_ttl_minutes: int = Field(DEFAULT_IMPERSONATION_TTL_MINUTES, ge=1, le=240)

    # Authorization
    permission_cache_ttl_seconds: int = Field(DEFAULT_PERMISSION_CACHE_TTL_SECONDS, ge=0)

    # Capabilities
    capability_unregistered_policy: Literal["allow", "deny"] = "allow"
    capability_seed_on_startup: bool = True

    # Rate limiting
    rate_limit_enabled: bool = True
    rate_limit_default_requests: int = Field(100, ge=1)
    rate_limit_default_window_seconds: int = Field(60, ge=1)
    rate_limit_governance_requests: int = Field(30, ge=1)
    rate_limit_governance_window_seconds: int = Field(60, ge=1)
    rate_limit_impersonation_requests: int = Field(5, ge=1)
    rate_limit_impersonation_window_seconds: int = Field(15 * 60, ge=1)

    # ---- Validators ----

    @field_validator("server_cors_origins", mode="before")
    @classmethod
    def _parse_cors_origins(cls, value: object) -> object:
        if value is None:
            return value
        if isinstance(value, str):
            raw = value.strip()
            if not raw:
                return []
            if raw.startswith("["):
                try:
                    parsed = json.loads(raw)
                except json.JSONDecodeError:
                    parsed = None
                if isinstance(parsed, list):
                    return parsed
            return [item.strip() for item in raw.split(",") if item.strip()]
        if isinstance(value, tuple):
            return list(value)
        return value

    @field_validator("capability_unregistered_policy", mode="before")
    @classmethod
    def _normalize_unregistered_policy(cls, value: object) -> object:
        if value is None:
            return "allow"
        raw = str(value).strip().lower()
        if not raw:
            raise ValueError("CAMPUS_CAPABILITY_UNREGISTERED_POLICY must not be empty.")
        return raw

    @model_validator(mode="after")
    def _finalize(self) -> Settings:
        self.log_format = normalize_log_format(self.log_format, env_var="CAMPUS_LOG_FORMAT")

        normalized_log_level = normalize_log_level(self.log_level, env_var="CAMPUS_LOG_LEVEL")
        if normalized_log_level is None:
            raise ValueError("CAMPUS_LOG_LEVEL must not be empty.")
        self.log_level = normalized_log_level

        self.api_log_level = normalize_log_level(
            self.api_log_level, env_var="CAMPUS_API_LOG_LEVEL"
        )
        self.request_log_level = normalize_log_level(
            self.request_log_level,
            env_var="CAMPUS_REQUEST_LOG_LEVEL",
        )
        self.database_log_level = normalize_log_level(
            self.database_log_level,
            env_var="CAMPUS_DATABASE_LOG_LEVEL",
        )

        if self.algorithm != "HS256":
            raise ValueError("CAMPUS_ALGORITHM must be HS256.")
        if len(self.secret_key.get_secret_value().encode("utf-8")) < 32:
            raise ValueError("CAMPUS_SECRET_KEY must be at least 32 bytes (recommend 64+).")
        return self

    # ---- Convenience ----

    @property
    def effective_api_log_level(self) -> str:
        return self.api_log_level or self.log_level

    @property
    def effective_request_log_level(self) -> str:
        return self.request_log_level or self.effective_api_log_level

    @property
    def secret_key_value(self) -> str:
        return self.secret_key.get_secret_value()


get_settings, reload_settings = create_settings_accessors(Settings)


__all__ = [
    "DEFAULT_CORS_ORIGINS",
    "Settings",
    "get_settings",
    "reload_settings",
]

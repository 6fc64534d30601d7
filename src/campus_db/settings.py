"""Shared settings helpers and the database settings used by API and DB tooling."""

from __future__ import annotations

from collections.abc import Callable
from functools import lru_cache
from typing import Protocol, TypeVar

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ALLOWED_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})
ALLOWED_LOG_FORMATS = frozenset({"console", "json"})
DEFAULT_DATABASE_URL = "sqlite:///./data/campus.sqlite"

T = TypeVar("T")


def campus_settings_config(
    *,
    enable_decoding: bool = True,
    populate_by_name: bool = False,
) -> SettingsConfigDict:
    """Return the standard ``BaseSettings`` config dict for campus services."""

    return SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="CAMPUS_",
        case_sensitive=False,
        extra="ignore",
        env_ignore_empty=True,
        enable_decoding=enable_decoding,
        populate_by_name=populate_by_name,
        str_strip_whitespace=True,
    )


def create_settings_accessors(
    settings_type: type[T],
) -> tuple[Callable[[], T], Callable[[], T]]:
    """Create ``get_settings`` and ``reload_settings`` helpers for a settings class."""

    @lru_cache(maxsize=1)
    def _build() -> T:
        return settings_type()

    def get_settings() -> T:
        return _build()

    def reload_settings() -> T:
        _build.cache_clear()
        return _build()

    return get_settings, reload_settings


def normalize_log_format(value: str, *, env_var: str = "CAMPUS_LOG_FORMAT") -> str:
    normalized = value.strip().lower()
    if normalized not in ALLOWED_LOG_FORMATS:
        allowed = ", ".join(sorted(ALLOWED_LOG_FORMATS))
        raise ValueError(f"{env_var} must be one of: {allowed}.")
    return normalized


def normalize_log_level(value: str | None, *, env_var: str) -> str | None:
    if value is None:
        return None
    normalized = value.strip().upper()
    if normalized not in ALLOWED_LOG_LEVELS:
        allowed = ", ".join(sorted(ALLOWED_LOG_LEVELS))
        raise ValueError(f"{env_var} must be one of: {allowed}.")
    return normalized


class DatabaseSettingsMixin:
    """Database settings shared by the API process and migration tooling."""

    database_url: str = Field(default=DEFAULT_DATABASE_URL, description="SQLAlchemy URL.")
    database_echo: bool = False
    database_pool_size: int = Field(5, ge=1)
    database_max_overflow: int = Field(10, ge=0)
    database_pool_timeout: int = Field(30, gt=0)
    database_pool_recycle: int = Field(1800, ge=0)
    database_sqlite_busy_timeout_ms: int = Field(5_000, ge=0)
    database_migrate_on_startup: bool = False

    @field_validator("database_url", mode="before")
    @classmethod
    def _require_database_url(cls, value: object) -> object:
        if value is None:
            return DEFAULT_DATABASE_URL
        raw = str(value).strip()
        if not raw:
            raise ValueError("CAMPUS_DATABASE_URL must not be empty.")
        return raw


class DatabaseSettingsProtocol(Protocol):
    """Structural type for database settings consumed across package boundaries."""

    database_url: str
    database_echo: bool
    database_pool_size: int
    database_max_overflow: int
    database_pool_timeout: int
    database_pool_recycle: int
    database_sqlite_busy_timeout_ms: int
    database_migrate_on_startup: bool


class Settings(DatabaseSettingsMixin, BaseSettings):
    """Settings required for the database engine and migrations."""

    model_config = campus_settings_config()


get_settings, reload_settings = create_settings_accessors(Settings)


__all__ = [
    "ALLOWED_LOG_FORMATS",
    "ALLOWED_LOG_LEVELS",
    "DEFAULT_DATABASE_URL",
    "DatabaseSettingsMixin",
    "DatabaseSettingsProtocol",
    "Settings",
    "campus_settings_config",
    "create_settings_accessors",
    "get_settings",
    "normalize_log_format",
    "normalize_log_level",
    "reload_settings",
]

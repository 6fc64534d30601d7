"""Identity records consulted by the authorization control plane."""

from __future__ import annotations

from typing import Any

from sqlalchemy import JSON, Boolean, String
from sqlalchemy.orm import Mapped, mapped_column, validates

from campus_db import Base, TimestampMixin, UUIDPrimaryKeyMixin


def _normalise_email(value: str) -> str:
    cleaned = value.strip().lower()
    if not cleaned:
        msg = "Email must not be empty"
        raise ValueError(msg)
    return cleaned


def _normalise_role_label(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = value.strip().upper()
    return cleaned or None


class User(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Single identity model.

    ``role`` and ``admin_role`` are free-form labels; they only take part in
    authorization when they match the ``role_key`` of an active role.
    """

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    role: Mapped[str] = mapped_column(String(64), nullable=False)
    admin_role: Mapped[str | None] = mapped_column(String(64), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    profile: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    @validates("email")
    def _validate_email(self, _key: str, value: str) -> str:
        return _normalise_email(value)

    @validates("role")
    def _validate_role(self, _key: str, value: str) -> str:
        normalised = _normalise_role_label(value)
        if normalised is None:
            raise ValueError("Role label must not be empty")
        return normalised

    @validates("admin_role")
    def _validate_admin_role(self, _key: str, value: str | None) -> str | None:
        return _normalise_role_label(value)

    @property
    def label(self) -> str:
        return self.display_name or self.email


__all__ = ["User"]

"""Closed error taxonomy shared by every control-plane component.

Each failure carries a stable machine code and a fixed HTTP status. Handlers in
:mod:`campus_api.common.exceptions` render them as::

    {"success": false, "error": {"code": ..., "message": ..., "details": ...}}
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from fastapi import status


@dataclass(frozen=True)
class ErrorDefinition:
    """Canonical code/status pair for one taxonomy member."""

    code: str
    status: int
    default_message: str


AUTH_REQUIRED = ErrorDefinition("AUTH_REQUIRED", status.HTTP_401_UNAUTHORIZED, "Authentication required")
PERMISSION_DENIED = ErrorDefinition(
    "PERMISSION_DENIED", status.HTTP_403_FORBIDDEN, "Permission denied"
)
INVALID_INPUT = ErrorDefinition("INVALID_INPUT", status.HTTP_400_BAD_REQUEST, "Invalid input")
INVALID_STATE_TRANSITION = ErrorDefinition(
    "INVALID_STATE_TRANSITION", status.HTTP_400_BAD_REQUEST, "Invalid state transition"
)
FEATURE_DISABLED = ErrorDefinition(
    "FEATURE_DISABLED", status.HTTP_403_FORBIDDEN, "Feature is currently disabled"
)
DATA_INCOMPLETE = ErrorDefinition(
    "DATA_INCOMPLETE", status.HTTP_422_UNPROCESSABLE_CONTENT, "Required data is incomplete"
)
RATE_LIMITED = ErrorDefinition(
    "RATE_LIMITED", status.HTTP_429_TOO_MANY_REQUESTS, "Too many requests"
)
INTERNAL = ErrorDefinition(
    "INTERNAL", status.HTTP_500_INTERNAL_SERVER_ERROR, "An unexpected error occurred"
)
NOT_FOUND = ErrorDefinition("INVALID_INPUT", status.HTTP_404_NOT_FOUND, "Resource not found")
CONFIRMATION_REQUIRED = ErrorDefinition(
    "CONFIRMATION_REQUIRED",
    status.HTTP_400_BAD_REQUEST,
    "Confirmation required for this destructive action",
)


class ControlPlaneError(Exception):
    """Base class for typed failures; never raised directly."""

    definition: ErrorDefinition = INTERNAL

    def __init__(
        self,
        message: str | None = None,
        *,
        details: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.message = message or self.definition.default_message
        self.details = details
        self.headers = headers
        super().__init__(self.message)

    @property
    def code(self) -> str:
        return self.definition.code

    @property
    def status_code(self) -> int:
        return self.definition.status

    def to_response(self) -> dict[str, Any]:
        error: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            error["details"] = self.details
        return {"success": False, "error": error}


class AuthRequiredError(ControlPlaneError):
    definition = AUTH_REQUIRED


class PermissionDeniedError(ControlPlaneError):
    """Raised when the caller lacks a role or permission."""

    definition = PERMISSION_DENIED

    def __init__(
        self,
        message: str | None = None,
        *,
        permission_key: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.permission_key = permission_key
        if message is None and permission_key:
            message = f"Permission required: {permission_key}"
        merged = dict(details or {})
        if permission_key:
            merged.setdefault("permission", permission_key)
        super().__init__(message, details=merged or None)


class InvalidInputError(ControlPlaneError):
    definition = INVALID_INPUT


class NotFoundError(InvalidInputError):
    """404 flavour of invalid input."""

    definition = NOT_FOUND

    def __init__(self, resource: str = "Resource", *, details: dict[str, Any] | None = None):
        self.resource = resource
        super().__init__(f"{resource} not found", details=details)


class InvalidStateTransitionError(ControlPlaneError):
    definition = INVALID_STATE_TRANSITION


class FeatureDisabledError(ControlPlaneError):
    definition = FEATURE_DISABLED


class DataIncompleteError(ControlPlaneError):
    definition = DATA_INCOMPLETE


class RateLimitedError(ControlPlaneError):
    definition = RATE_LIMITED

    def __init__(self, *, retry_after: int, headers: dict[str, str] | None = None) -> None:
        self.retry_after = retry_after
        merged_headers = {"Retry-After": str(retry_after), **(headers or {})}
        super().__init__(
            "Too many requests, please try again later",
            details={"retryAfter": retry_after},
            headers=merged_headers,
        )


class InternalError(ControlPlaneError):
    definition = INTERNAL


class ConfirmationRequiredError(InvalidInputError):
    """Destructive action rejected until the caller re-submits with confirmation."""

    definition = CONFIRMATION_REQUIRED

    def __init__(self, *, action_type: str, impact: dict[str, Any]) -> None:
        self.action_type = action_type
        self.impact = impact
        super().__init__(
            details={
                "actionType": action_type,
                "impact": impact,
                "requiresConfirmation": True,
            }
        )


__all__ = [
    "AuthRequiredError",
    "ConfirmationRequiredError",
    "ControlPlaneError",
    "DataIncompleteError",
    "ErrorDefinition",
    "FeatureDisabledError",
    "InternalError",
    "InvalidInputError",
    "InvalidStateTransitionError",
    "NotFoundError",
    "PermissionDeniedError",
    "RateLimitedError",
]

"""Centralized FastAPI exception handlers with structured logging.

Every failure leaves the API in the same envelope::

    {"success": false, "error": {"code": ..., "message": ..., "details": ...}}
"""

from __future__ import annotations

import logging
from typing import Any
from uuid import uuid4

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .errors import (
    AuthRequiredError,
    ControlPlaneError,
    DataIncompleteError,
    InternalError,
    InvalidInputError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitedError,
)
from .logging import current_request_id, log_context

_UNHANDLED_LOGGER = logging.getLogger("campus_api.errors")
_HTTP_LOGGER = logging.getLogger("campus_api.http")


def _error_response(error: ControlPlaneError, *, status_code: int | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code or error.status_code,
        content=error.to_response(),
        headers=error.headers,
    )


def control_plane_error_handler(request: Request, exc: ControlPlaneError) -> JSONResponse:
    """Render a typed failure; 5xx members are logged, client errors are not."""
    if exc.status_code >= 500:
        _HTTP_LOGGER.error(
            "control_plane_error",
            extra=log_context(
                path=str(request.url.path),
                method=request.method,
                code=exc.code,
                detail=exc.message,
            ),
        )
    return _error_response(exc)


def request_validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    fields: list[dict[str, Any]] = []
    for item in exc.errors():
        location = [str(part) for part in item.get("loc", ()) if part not in ("body", "query", "path")]
        fields.append(
            {
                "field": ".".join(location) or None,
                "message": item.get("msg", "Invalid value"),
                "type": item.get("type"),
            }
        )
    error = InvalidInputError("Request validation failed", details={"fields": fields})
    return _error_response(error)


def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    """Translate store constraint violations without leaking driver messages."""
    text = str(getattr(exc, "orig", exc)).lower()
    error: ControlPlaneError
    if "unique" in text or "duplicate" in text:
        error = InvalidInputError("Duplicate entry: resource already exists")
    elif "foreign key" in text:
        error = InvalidInputError("Referenced resource does not exist")
    elif "not null" in text or "not-null" in text:
        error = DataIncompleteError("Required field is missing")
    else:
        return unhandled_exception_handler(request, exc)
    _HTTP_LOGGER.info(
        "integrity_error",
        extra=log_context(path=str(request.url.path), method=request.method, code=error.code),
    )
    return _error_response(error)


def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render framework-level HTTP errors (route misses, 405s) in the shared envelope."""
    message = exc.detail if isinstance(exc.detail, str) else None
    error: ControlPlaneError
    if exc.status_code == 401:
        error = AuthRequiredError(message)
    elif exc.status_code == 403:
        error = PermissionDeniedError(message)
    elif exc.status_code == 404:
        error = NotFoundError("Route" if message in (None, "Not Found") else message)
    elif exc.status_code == 429:
        error = RateLimitedError(retry_after=60)
    elif exc.status_code >= 500:
        _HTTP_LOGGER.error(
            "http_exception",
            extra=log_context(
                path=str(request.url.path),
                method=request.method,
                status_code=exc.status_code,
                detail=exc.detail,
            ),
        )
        error = InternalError()
    else:
        error = InvalidInputError(message)
    headers = dict(error.headers or {})
    headers.update(getattr(exc, "headers", None) or {})
    error.headers = headers or None
    return _error_response(error, status_code=exc.status_code)


def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected exceptions.

    The stack trace stays in the server log; the caller only sees an error id
    to quote when reporting the problem.
    """
    correlation_id = current_request_id() or getattr(request.state, "correlation_id", None)
    error_id = f"ERR-{correlation_id or uuid4().hex}"
    _UNHANDLED_LOGGER.exception(
        "unhandled_exception",
        extra=log_context(
            path=str(request.url.path),
            method=request.method,
            exception_type=type(exc).__name__,
            error_id=error_id,
        ),
    )
    return _error_response(InternalError(details={"errorId": error_id}))


__all__ = [
    "control_plane_error_handler",
    "http_exception_handler",
    "integrity_error_handler",
    "request_validation_exception_handler",
    "unhandled_exception_handler",
]

"""Control-plane FastAPI application entry point."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TypeAlias, cast

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import Response

from .api.v1.router import create_api_router
from .app.lifecycles import create_application_lifespan
from .common.errors import ControlPlaneError
from .common.exceptions import (
    control_plane_error_handler,
    http_exception_handler,
    integrity_error_handler,
    request_validation_exception_handler,
    unhandled_exception_handler,
)
from .common.logging import setup_logging
from .common.middleware import register_middleware
from .settings import Settings, get_settings

API_PREFIX = "/api"
HttpExceptionHandler: TypeAlias = Callable[[Request, Exception], Response | Awaitable[Response]]
logger = logging.getLogger(__name__)


def _as_http_exception_handler(handler: Callable[..., Response]) -> HttpExceptionHandler:
    return cast(HttpExceptionHandler, handler)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the control-plane FastAPI application."""
    # Settings + logging first so everything else uses the configured root logger.
    settings = settings or get_settings()
    setup_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=False,
        lifespan=create_application_lifespan(settings=settings),
    )

    app.add_exception_handler(
        RequestValidationError, _as_http_exception_handler(request_validation_exception_handler)
    )
    app.add_exception_handler(HTTPException, _as_http_exception_handler(http_exception_handler))
    app.add_exception_handler(
        StarletteHTTPException, _as_http_exception_handler(http_exception_handler)
    )
    app.add_exception_handler(
        ControlPlaneError, _as_http_exception_handler(control_plane_error_handler)
    )
    app.add_exception_handler(IntegrityError, _as_http_exception_handler(integrity_error_handler))
    app.add_exception_handler(Exception, _as_http_exception_handler(unhandled_exception_handler))

    register_middleware(app, settings=settings)
    app.include_router(create_api_router(), prefix=API_PREFIX)
    logger.debug("app.created", extra={"api_prefix": API_PREFIX})
    return app


__all__ = [
    "API_PREFIX",
    "create_app",
]

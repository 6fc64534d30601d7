"""FastAPI lifespan helpers for the control-plane application."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.routing import Lifespan

from campus_api.common.logging import log_context
from campus_api.core.rbac.cache import PermissionCache
from campus_api.db import database_for, init_db, shutdown_db
from campus_api.features.capabilities.service import CapabilityRegistry
from campus_api.features.panels.service import PanelService
from campus_api.features.rbac.service import RoleService
from campus_api.settings import Settings, get_settings
from campus_db.migrations_runner import ensure_schema

logger = logging.getLogger(__name__)


def bootstrap_control_plane(app: FastAPI, settings: Settings) -> None:
    """Create the schema if needed, then sync system roles, system panels and capabilities."""

    database = database_for(app)
    state = ensure_schema(database.engine, settings)
    with database.sessions() as session:
        with session.begin():
            RoleService(session=session, cache=app.state.permission_cache).sync_system_roles()
            panels = PanelService(session=session).sync_system_panels()
            seeded = 0
            if settings.capability_seed_on_startup:
                seeded = CapabilityRegistry(session=session).seed()
    logger.info(
        "app.bootstrap.complete",
        extra=log_context(
            schema_state=state,
            capabilities_seeded=seeded,
            system_panels_created=panels,
        ),
    )


def create_application_lifespan(*, settings: Settings | None = None) -> Lifespan[FastAPI]:
    """Return the lifespan context manager used by :func:`create_app`."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        resolved = settings or get_settings()
        app.state.settings = resolved
        app.state.permission_cache = PermissionCache(
            ttl_seconds=resolved.permission_cache_ttl_seconds
        )
        app.state.rate_limiters = {}
        init_db(app, resolved)
        bootstrap_control_plane(app, resolved)
        logger.info(
            "app.startup.complete",
            extra=log_context(
                app_name=resolved.app_name,
                version=resolved.app_version,
                unregistered_policy=resolved.capability_unregistered_policy,
            ),
        )
        try:
            yield
        finally:
            shutdown_db(app)
            logger.info("app.shutdown.complete")

    return lifespan


__all__ = ["bootstrap_control_plane", "create_application_lifespan"]

"""Engine ownership and per-request sessions for the control-plane API.

The lifespan opens one :class:`Database` per application. Routes receive a
session through :func:`get_db_read` or :func:`get_db_write`; only the latter
commits, and only when the endpoint returns normally.
"""

from __future__ import annotations

import logging
from collections.abc import Generator
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from starlette.exceptions import HTTPException as StarletteHTTPException

from campus_api.common.errors import ControlPlaneError
from campus_api.settings import Settings, get_settings
from campus_db.engine import build_engine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Database:
    engine: Engine
    sessions: sessionmaker[Session]

    def dispose(self) -> None:
        self.engine.dispose()


def init_db(app: FastAPI, settings: Settings | None = None) -> Database:
    previous: Database | None = getattr(app.state, "database", None)
    if previous is not None:
        previous.dispose()
    engine = build_engine(settings or get_settings())
    database = Database(engine=engine, sessions=sessionmaker(bind=engine, expire_on_commit=False))
    app.state.database = database
    return database


def shutdown_db(app: FastAPI) -> None:
    database: Database | None = getattr(app.state, "database", None)
    if database is not None:
        database.dispose()
    app.state.database = None


def database_for(app: FastAPI) -> Database:
    database: Database | None = getattr(app.state, "database", None)
    if database is None:
        raise RuntimeError("Database not initialized; the application lifespan has not run")
    return database


def _is_expected(exc: BaseException) -> bool:
    if isinstance(exc, ControlPlaneError):
        return exc.status_code < 500
    return isinstance(exc, (StarletteHTTPException, RequestValidationError))


def _request_session(request: Request) -> Generator[Session]:
    with database_for(request.app).sessions() as session:
        try:
            yield session
        except BaseException as exc:
            session.rollback()
            if not _is_expected(exc):
                logger.warning(
                    "db.session.rollback",
                    extra={"path": request.url.path, "method": request.method},
                    exc_info=exc,
                )
            raise
        if getattr(request.state, "db_writable", False):
            session.commit()
        else:
            session.rollback()


def get_db_write(
    request: Request,
    session: Annotated[Session, Depends(_request_session)],
) -> Session:
    request.state.db_writable = True
    return session


def get_db_read(session: Annotated[Session, Depends(_request_session)]) -> Session:
    return session


__all__ = [
    "Database",
    "database_for",
    "get_db_read",
    "get_db_write",
    "init_db",
    "shutdown_db",
]

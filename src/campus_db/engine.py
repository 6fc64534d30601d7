"""Synchronous engine construction for the API process and DB tooling."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.pool import StaticPool

from .settings import DatabaseSettingsProtocol

logger = logging.getLogger(__name__)

DatabaseSettings = DatabaseSettingsProtocol


def is_sqlite_memory_url(url: URL) -> bool:
    if url.get_backend_name() != "sqlite":
        return False
    database = (url.database or "").strip()
    if database in {"", ":memory:"}:
        return True
    return database.startswith("file:") and (url.query or {}).get("mode") == "memory"


def ensure_sqlite_database_directory(url: URL) -> None:
    database = (url.database or "").strip()
    if not database or database == ":memory:" or database.startswith("file:"):
        return
    path = Path(database)
    if not path.is_absolute():
        path = (Path.cwd() / path).resolve()
    path.parent.mkdir(parents=True, exist_ok=True)


def _install_sqlite_hooks(engine: Engine, *, busy_timeout_ms: int, memory: bool) -> None:
    # pysqlite's implicit transaction handling breaks SAVEPOINT; take over BEGIN.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, _connection_record) -> None:
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        try:
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute(f"PRAGMA busy_timeout={int(busy_timeout_ms)}")
            if not memory:
                cursor.execute("PRAGMA journal_mode=WAL")
        finally:
            cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn) -> None:
        conn.exec_driver_sql("BEGIN")


def build_engine(settings: DatabaseSettings) -> Engine:
    """Return a configured engine for ``settings.database_url``."""

    url = make_url(settings.database_url)
    engine_kwargs: dict[str, Any] = {
        "echo": settings.database_echo,
        "pool_pre_ping": True,
    }

    backend = url.get_backend_name()
    memory = is_sqlite_memory_url(url)
    if backend == "sqlite":
        engine_kwargs["connect_args"] = {
            "check_same_thread": False,
            "timeout": settings.database_sqlite_busy_timeout_ms / 1000.0,
        }
        if memory:
            engine_kwargs["poolclass"] = StaticPool
        else:
            ensure_sqlite_database_directory(url)
    else:
        engine_kwargs.update(
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_timeout=settings.database_pool_timeout,
            pool_recycle=settings.database_pool_recycle,
        )

    engine = create_engine(url, **engine_kwargs)
    if backend == "sqlite":
        _install_sqlite_hooks(
            engine,
            busy_timeout_ms=settings.database_sqlite_busy_timeout_ms,
            memory=memory,
        )

    logger.debug(
        "db.engine.created",
        extra={"backend": backend, "memory": memory},
    )
    return engine


__all__ = [
    "DatabaseSettings",
    "build_engine",
    "ensure_sqlite_database_directory",
    "is_sqlite_memory_url",
]

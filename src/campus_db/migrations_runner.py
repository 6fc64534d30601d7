"""Programmatic Alembic runner for control-plane migrations."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from importlib import resources
from pathlib import Path
from typing import Iterator, Literal

from alembic import command
from alembic.config import Config
from sqlalchemy.engine import Engine, make_url

from .base import Base
from .engine import DatabaseSettings
from .settings import get_settings

__all__ = [
    "SchemaState",
    "alembic_config",
    "ensure_schema",
    "run_migrations",
]

logger = logging.getLogger(__name__)

SchemaState = Literal["migrated", "metadata_created", "external"]


def _migrations_path() -> Path:
    return Path(str(resources.files("campus_db") / "migrations"))


@contextmanager
def alembic_config(settings: DatabaseSettings | None = None) -> Iterator[Config]:
    migrations_dir = _migrations_path()
    if not migrations_dir.exists():
        raise FileNotFoundError(f"Alembic migrations not found at {migrations_dir}")

    resolved = settings or get_settings()
    alembic_cfg = Config()
    alembic_cfg.set_main_option("script_location", str(migrations_dir))
    alembic_cfg.attributes["settings"] = resolved
    alembic_cfg.attributes["configure_logger"] = False
    # ConfigParser treats % as interpolation; escape to preserve URL encoding.
    alembic_cfg.set_main_option("sqlalchemy.url", resolved.database_url.replace("%", "%%"))
    yield alembic_cfg


def run_migrations(settings: DatabaseSettings | None = None, *, revision: str = "head") -> None:
    with alembic_config(settings) as alembic_cfg:
        command.upgrade(alembic_cfg, revision)


def ensure_schema(engine: Engine, settings: DatabaseSettings) -> SchemaState:
    """Ensure the schema exists for the configured backend.

    Migrations run when requested; otherwise SQLite databases are created
    straight from metadata; other backends are migrated out of band
    (`campus-api db upgrade`).
    """

    url = make_url(settings.database_url)
    if settings.database_migrate_on_startup:
        run_migrations(settings)
        logger.info("db.schema.migrated", extra={"backend": url.get_backend_name()})
        return "migrated"

    if url.get_backend_name() != "sqlite":
        logger.info("db.schema.external", extra={"backend": url.get_backend_name()})
        return "external"

    import campus_db.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.info("db.schema.metadata_created", extra={"backend": "sqlite"})
    return "metadata_created"

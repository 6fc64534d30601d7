"""Alembic environment for the control-plane schema.

Settings come from the runner (``config.attributes["settings"]``), falling
back to ``CAMPUS_*`` environment variables when Alembic is invoked directly.
"""

from __future__ import annotations

from alembic import context

import campus_db.models  # noqa: F401  (populates Base.metadata)
from campus_db.base import Base
from campus_db.engine import build_engine
from campus_db.settings import DatabaseSettingsMixin, Settings

config = context.config
target_metadata = Base.metadata


def _settings() -> DatabaseSettingsMixin:
    provided = config.attributes.get("settings")
    if isinstance(provided, DatabaseSettingsMixin):
        return provided
    url = config.get_main_option("sqlalchemy.url")
    if url:
        return Settings(_env_file=None, database_url=url.replace("%%", "%"))
    return Settings()


def run_offline(settings: DatabaseSettingsMixin) -> None:
    context.configure(
        url=settings.database_url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=settings.database_url.startswith("sqlite"),
    )
    with context.begin_transaction():
        context.run_migrations()


def run_online(settings: DatabaseSettingsMixin) -> None:
    engine = build_engine(settings)
    try:
        with engine.connect() as connection:
            context.configure(
                connection=connection,
                target_metadata=target_metadata,
                render_as_batch=connection.dialect.name == "sqlite",
            )
            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()


if context.is_offline_mode():
    run_offline(_settings())
else:
    run_online(_settings())

"""`campus-api` command implementations."""

from __future__ import annotations

from datetime import timedelta
from uuid import UUID

import typer
import uvicorn
from sqlalchemy.orm import sessionmaker

from campus_api.common.logging import setup_logging
from campus_api.core.rbac.cache import PermissionCache
from campus_api.core.security.tokens import mint_access_token
from campus_api.features.capabilities.service import CapabilityRegistry
from campus_api.features.panels.service import PanelService
from campus_api.features.rbac.service import RoleService
from campus_api.settings import get_settings
from campus_db.engine import build_engine
from campus_db.migrations_runner import ensure_schema, run_migrations
from campus_db.models import User

DEFAULT_API_BIND_HOST = "0.0.0.0"

app = typer.Typer(
    add_completion=False,
    invoke_without_command=True,
    help="Campus control-plane CLI (start, db, capabilities, token).",
)
db_app = typer.Typer(add_completion=False, help="Database schema commands.")
capabilities_app = typer.Typer(add_completion=False, help="Capability catalogue commands.")
app.add_typer(db_app, name="db")
app.add_typer(capabilities_app, name="capabilities")


@app.callback()
def _main(ctx: typer.Context) -> None:
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())


@app.command(name="start", help="Run the API server.")
def start(
    host: str | None = typer.Option(None, "--host", help="Bind address."),
    port: int | None = typer.Option(None, "--port", help="Bind port."),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes."),
) -> None:
    settings = get_settings()
    bind_host = host or settings.api_host or DEFAULT_API_BIND_HOST
    bind_port = port or settings.api_port
    typer.echo(f"Starting control-plane API on http://{bind_host}:{bind_port}")
    uvicorn.run(
        "campus_api.main:create_app",
        factory=True,
        host=bind_host,
        port=bind_port,
        reload=reload,
        log_level=settings.effective_api_log_level.lower(),
    )


@db_app.command(name="upgrade", help="Apply Alembic migrations up to a revision.")
def db_upgrade(
    revision: str = typer.Argument("head", help="Target revision."),
) -> None:
    settings = get_settings()
    setup_logging(settings)
    run_migrations(settings, revision=revision)
    typer.echo(f"database upgraded to {revision}")


@capabilities_app.command(
    name="seed",
    help="Register the capability catalogue and the system panels.",
)
def capabilities_seed() -> None:
    settings = get_settings()
    setup_logging(settings)
    engine = build_engine(settings)
    try:
        ensure_schema(engine, settings)
        session_factory = sessionmaker(bind=engine, expire_on_commit=False)
        with session_factory() as session:
            with session.begin():
                RoleService(session=session, cache=PermissionCache()).sync_system_roles()
                count = CapabilityRegistry(session=session).seed()
                panels = PanelService(session=session).sync_system_panels()
    finally:
        engine.dispose()
    typer.echo(f"registered {count} capabilities, created {panels} system panels")


@app.command(name="token", help="Mint a development access token for an identity.")
def token(
    identity_id: str = typer.Argument(..., help="Identity (user) id."),
    minutes: int | None = typer.Option(None, "--minutes", min=1, help="Token lifetime."),
) -> None:
    try:
        subject = UUID(identity_id)
    except ValueError:
        typer.echo(f"error: invalid identity id: {identity_id}", err=True)
        raise typer.Exit(code=1) from None

    settings = get_settings()
    engine = build_engine(settings)
    try:
        with sessionmaker(bind=engine)() as session:
            user = session.get(User, subject)
            if user is None:
                typer.echo(f"error: identity {identity_id} not found", err=True)
                raise typer.Exit(code=1)
            email, role = user.email, user.role
    finally:
        engine.dispose()

    typer.echo(
        mint_access_token(
            settings,
            subject=subject,
            email=email,
            role=role,
            expires_in=timedelta(minutes=minutes) if minutes else None,
        )
    )


__all__ = ["app"]

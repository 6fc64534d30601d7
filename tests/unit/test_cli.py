"""Smoke tests for the ``campus-api`` command line."""

from __future__ import annotations

from pathlib import Path

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import sessionmaker
from typer.testing import CliRunner

from campus_api import cli
from campus_api.core.security.tokens import decode_token
from campus_api.settings import Settings
from campus_db.engine import build_engine
from campus_db.migrations_runner import ensure_schema
from campus_db.models import Capability, Panel, User
from tests.utils import build_test_settings

runner = CliRunner()


@pytest.fixture()
def cli_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Settings:
    settings = build_test_settings(database_url=f"sqlite:///{tmp_path / 'cli.sqlite'}")
    monkeypatch.setattr(cli, "get_settings", lambda: settings)
    return settings


def test_capabilities_seed_is_repeatable(cli_settings: Settings) -> None:
    first = runner.invoke(cli.app, ["capabilities", "seed"])
    second = runner.invoke(cli.app, ["capabilities", "seed"])

    assert first.exit_code == 0, first.output
    assert "registered 16 capabilities, created 2 system panels" in first.output
    assert "created 0 system panels" in second.output
    engine = build_engine(cli_settings)
    try:
        with sessionmaker(bind=engine)() as session:
            assert session.scalar(select(func.count()).select_from(Capability)) == 16
            system_panels = session.scalars(
                select(Panel.name).where(Panel.is_system_panel.is_(True)).order_by(Panel.name)
            ).all()
            assert system_panels == ["Operations Panel", "Super Admin Panel"]
    finally:
        engine.dispose()


def test_token_mints_for_existing_identity(cli_settings: Settings) -> None:
    engine = build_engine(cli_settings)
    try:
        ensure_schema(engine, cli_settings)
        with sessionmaker(bind=engine, expire_on_commit=False)() as session:
            with session.begin():
                user = User(email="clerk@campus.test", role="STAFF")
                session.add(user)
    finally:
        engine.dispose()

    result = runner.invoke(cli.app, ["token", str(user.id), "--minutes", "5"])

    assert result.exit_code == 0, result.output
    claims = decode_token(
        result.output.strip(),
        secret=cli_settings.secret_key_value,
        algorithms=[cli_settings.algorithm],
    )
    assert claims["sub"] == str(user.id)
    assert claims["role"] == "STAFF"
    assert claims["exp"] - claims["iat"] == 300


def test_token_rejects_malformed_identity() -> None:
    result = runner.invoke(cli.app, ["token", "not-a-uuid"])

    assert result.exit_code == 1
    assert "invalid identity id" in result.output


def test_token_reports_unknown_identity(cli_settings: Settings) -> None:
    engine = build_engine(cli_settings)
    try:
        ensure_schema(engine, cli_settings)
    finally:
        engine.dispose()

    result = runner.invoke(cli.app, ["token", "00000000-0000-0000-0000-000000000001"])

    assert result.exit_code == 1
    assert "not found" in result.output

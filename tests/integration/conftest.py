from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from pathlib import Path
from uuid import UUID

import pytest
import pytest_asyncio
from asgi_lifespan import LifespanManager
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import Session, sessionmaker

from campus_api.main import create_app
from campus_api.settings import Settings
from campus_db.models import Role, RolePermission, User
from tests.utils import bearer, build_test_settings


@pytest.fixture()
def app_settings(tmp_path: Path) -> Settings:
    return build_test_settings(database_url=f"sqlite:///{tmp_path / 'campus.sqlite'}")


@pytest.fixture()
def app(app_settings: Settings) -> FastAPI:
    return create_app(settings=app_settings)


@pytest_asyncio.fixture()
async def started_app(app: FastAPI) -> AsyncIterator[FastAPI]:
    async with LifespanManager(app):
        yield app


@pytest_asyncio.fixture()
async def async_client(started_app: FastAPI) -> AsyncIterator[AsyncClient]:
    async with AsyncClient(
        transport=ASGITransport(app=started_app),
        base_url="http://testserver",
    ) as client:
        yield client


@pytest.fixture()
def db(started_app: FastAPI) -> sessionmaker[Session]:
    return started_app.state.database.sessions


@pytest.fixture()
def seed_user(db: sessionmaker[Session]) -> Callable[..., UUID]:
    counter = {"value": 0}

    def _seed(
        *,
        role: str = "STAFF",
        admin_role: str | None = None,
        is_active: bool = True,
        display_name: str | None = None,
    ) -> UUID:
        counter["value"] += 1
        with db() as session, session.begin():
            user = User(
                email=f"member{counter['value']}@campus.test",
                display_name=display_name,
                role=role,
                admin_role=admin_role,
                is_active=is_active,
            )
            session.add(user)
            session.flush()
            return user.id

    return _seed


@pytest.fixture()
def seed_role(db: sessionmaker[Session]) -> Callable[..., UUID]:
    def _seed(role_key: str, *permissions: str) -> UUID:
        with db() as session, session.begin():
            role = Role(role_key=role_key, name=role_key.title(), is_system=False, is_active=True)
            role.permissions = [RolePermission(permission_key=key, granted=True) for key in permissions]
            session.add(role)
            session.flush()
            return role.id

    return _seed


@pytest.fixture()
def auth(app_settings: Settings) -> Callable[[UUID], dict[str, str]]:
    def _headers(user_id: UUID) -> dict[str, str]:
        return bearer(app_settings, user_id)

    return _headers


@pytest.fixture()
def root_headers(seed_user, auth) -> dict[str, str]:
    return auth(seed_user(role="SUPER_ADMIN", display_name="Root"))

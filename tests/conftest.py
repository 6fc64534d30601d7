"""Shared pytest fixtures for control-plane tests."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from pathlib import Path

import pytest
from sqlalchemy.orm import Session, sessionmaker

import campus_db.models  # noqa: F401
from campus_api.core.rbac.cache import PermissionCache
from campus_api.features.rbac.service import RoleService
from campus_api.settings import Settings
from campus_db import Base
from campus_db.engine import build_engine
from campus_db.models import Role, RolePermission, User
from tests.utils import build_test_settings

_TESTS_ROOT = Path(__file__).parent


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    for item in items:
        relative = Path(str(item.fspath)).resolve().relative_to(_TESTS_ROOT.resolve())
        if relative.parts and relative.parts[0] == "integration":
            item.add_marker(pytest.mark.integration)
        elif relative.parts and relative.parts[0] == "unit":
            item.add_marker(pytest.mark.unit)


@pytest.fixture()
def settings() -> Settings:
    return build_test_settings()


@pytest.fixture()
def session_factory(settings: Settings) -> Iterator[sessionmaker[Session]]:
    engine = build_engine(settings)
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(bind=engine, expire_on_commit=False)
    finally:
        engine.dispose()


@pytest.fixture()
def session(session_factory: sessionmaker[Session]) -> Iterator[Session]:
    with session_factory() as db:
        yield db


@pytest.fixture()
def cache() -> PermissionCache:
    return PermissionCache(ttl_seconds=300)


@pytest.fixture()
def roles(session: Session, cache: PermissionCache) -> RoleService:
    service = RoleService(session=session, cache=cache)
    service.sync_system_roles()
    session.commit()
    return service


@pytest.fixture()
def make_user(session: Session) -> Callable[..., User]:
    counter = {"value": 0}

    def _make(
        *,
        role: str = "STAFF",
        admin_role: str | None = None,
        email: str | None = None,
        is_active: bool = True,
        display_name: str | None = None,
    ) -> User:
        counter["value"] += 1
        user = User(
            email=email or f"user{counter['value']}@campus.test",
            display_name=display_name,
            role=role,
            admin_role=admin_role,
            is_active=is_active,
        )
        session.add(user)
        session.flush()
        return user

    return _make


@pytest.fixture()
def make_role(session: Session) -> Callable[..., Role]:
    def _make(role_key: str, *permissions: str, is_system: bool = False) -> Role:
        role = Role(
            role_key=role_key,
            name=role_key.replace("_", " ").title(),
            is_system=is_system,
            is_active=True,
        )
        role.permissions = [
            RolePermission(permission_key=key, granted=True) for key in permissions
        ]
        session.add(role)
        session.flush()
        return role

    return _make

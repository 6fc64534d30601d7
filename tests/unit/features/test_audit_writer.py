from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from campus_api.common.errors import InvalidInputError
from campus_api.features.audit.service import MAX_PAGE_SIZE, AuditLogWriter
from campus_db import utc_now
from campus_db.models import AuditLog, User


@pytest.fixture()
def writer(session: Session) -> AuditLogWriter:
    return AuditLogWriter(session=session)


def test_record_merges_old_and_new_values(writer: AuditLogWriter, make_user) -> None:
    actor = make_user()

    entry = writer.record(
        action="ROLE_UPDATED",
        actor_id=actor.id,
        entity_type="role",
        entity_id="r-1",
        details={"roleKey": "TEMP_ROLE"},
        old_value={"name": "Old"},
        new_value={"name": "New"},
        actor_role="SUPER_ADMIN",
    )

    assert entry is not None
    assert entry.details == {
        "roleKey": "TEMP_ROLE",
        "oldValue": {"name": "Old"},
        "newValue": {"name": "New"},
        "userRole": "SUPER_ADMIN",
    }


def test_failed_record_never_raises_nor_poisons_the_transaction(
    session: Session,
    writer: AuditLogWriter,
    make_user,
) -> None:
    user = make_user()

    # action is NOT NULL; the savepoint absorbs the failure.
    result = writer.record(action=None, actor_id=user.id)  # type: ignore[arg-type]
    session.commit()

    assert result is None
    assert session.scalars(select(AuditLog)).all() == []
    assert session.get(User, user.id) is not None


def test_pending_domain_failure_propagates(
    session: Session,
    writer: AuditLogWriter,
    make_user,
) -> None:
    make_user(email="clerk@campus.test")
    session.add(User(email="clerk@campus.test", role="STAFF"))

    with pytest.raises(IntegrityError):
        writer.record(action="USER_CREATED")

    session.rollback()
    assert session.scalars(select(AuditLog)).all() == []


def test_record_detached_commits_after_caller_rollback(session: Session, writer: AuditLogWriter) -> None:
    session.add(AuditLog(action="DOOMED", details={}))
    session.flush()
    session.rollback()

    assert writer.record_detached(action="SUPER_ADMIN_USER_DELETE", entity_type="user")

    actions = session.scalars(select(AuditLog.action)).all()
    assert actions == ["SUPER_ADMIN_USER_DELETE"]


def test_query_filters_and_paginates(session: Session, writer: AuditLogWriter, make_user) -> None:
    actor = make_user()
    now = utc_now()
    for index in range(3):
        session.add(
            AuditLog(
                action="PANEL_CREATED",
                user_id=actor.id,
                entity_type="panel",
                entity_id=f"p-{index}",
                details={},
                created_at=now - timedelta(minutes=index),
            )
        )
    session.add(AuditLog(action="ROLE_CREATED", entity_type="role", details={}, created_at=now))
    session.flush()

    page = writer.query(action="PANEL_CREATED", page=1, limit=2)
    assert page.total == 3
    assert [entry.entity_id for entry in page.items] == ["p-0", "p-1"]

    second = writer.query(action="PANEL_CREATED", page=2, limit=2)
    assert [entry.entity_id for entry in second.items] == ["p-2"]

    window = writer.query(start_date=now - timedelta(seconds=90), user_id=actor.id)
    assert [entry.entity_id for entry in window.items] == ["p-0", "p-1"]

    assert writer.query(entity_type="role").total == 1


def test_query_rejects_bad_bounds(writer: AuditLogWriter) -> None:
    now = utc_now()
    with pytest.raises(InvalidInputError):
        writer.query(page=0)
    with pytest.raises(InvalidInputError):
        writer.query(limit=MAX_PAGE_SIZE + 1)
    with pytest.raises(InvalidInputError, match="startDate"):
        writer.query(start_date=now, end_date=now - timedelta(days=1))

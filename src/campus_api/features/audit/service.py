"""Best-effort, append-only audit writer and the filtered audit query."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from campus_api.common.errors import InvalidInputError, NotFoundError
from campus_api.common.logging import log_context
from campus_db.models import AuditLog

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200
GOVERNANCE_ACTION_PREFIX = "SUPER_ADMIN_"


@dataclass(frozen=True)
class AuditPage:
    items: list[AuditLog]
    total: int
    page: int
    limit: int


def build_details(
    details: dict[str, Any] | None,
    *,
    old_value: Any = None,
    new_value: Any = None,
    actor_role: str | None = None,
) -> dict[str, Any]:
    merged: dict[str, Any] = dict(details or {})
    if old_value is not None:
        merged["oldValue"] = old_value
    if new_value is not None:
        merged["newValue"] = new_value
    if actor_role:
        merged["userRole"] = actor_role
    return merged


class AuditLogWriter:
    """Append security-relevant decisions to ``audit_logs``.

    ``record`` joins the caller's unit of work inside a SAVEPOINT so a failed
    audit insert never poisons the surrounding transaction, and never raises.
    ``record_detached`` commits through its own session; use it when the
    caller's unit of work is rolling back.
    """

    def __init__(
        self,
        *,
        session: Session,
        session_factory: Callable[[], Session] | None = None,
    ) -> None:
        self._session = session
        self._session_factory = session_factory

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def record(
        self,
        *,
        action: str,
        actor_id: UUID | None = None,
        entity_type: str | None = None,
        entity_id: UUID | str | None = None,
        details: dict[str, Any] | None = None,
        ip_address: str | None = None,
        old_value: Any = None,
        new_value: Any = None,
        actor_role: str | None = None,
    ) -> AuditLog | None:
        entry = AuditLog(
            user_id=actor_id,
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            details=build_details(
                details, old_value=old_value, new_value=new_value, actor_role=actor_role
            ),
            ip_address=ip_address,
        )
        # Pending domain changes must fail on their own, not inside the savepoint.
        self._session.flush()
        try:
            with self._session.begin_nested():
                self._session.add(entry)
                self._session.flush()
        except Exception:
            logger.warning(
                "audit.write.failed",
                extra=log_context(
                    user_id=actor_id,
                    action=action,
                    entity_type=entity_type,
                    entity_id=str(entity_id) if entity_id is not None else None,
                ),
                exc_info=True,
            )
            return None
        logger.debug(
            "audit.write.success",
            extra=log_context(user_id=actor_id, action=action, entity_type=entity_type),
        )
        return entry

    def record_detached(
        self,
        *,
        action: str,
        actor_id: UUID | None = None,
        entity_type: str | None = None,
        entity_id: UUID | str | None = None,
        details: dict[str, Any] | None = None,
        ip_address: str | None = None,
        actor_role: str | None = None,
    ) -> bool:
        factory = self._session_factory or self._default_factory
        try:
            with factory() as session:
                with session.begin():
                    session.add(
                        AuditLog(
                            user_id=actor_id,
                            action=action,
                            entity_type=entity_type,
                            entity_id=str(entity_id) if entity_id is not None else None,
                            details=build_details(details, actor_role=actor_role),
                            ip_address=ip_address,
                        )
                    )
        except Exception:
            logger.warning(
                "audit.write.failed",
                extra=log_context(user_id=actor_id, action=action, detached=True),
                exc_info=True,
            )
            return False
        return True

    def _default_factory(self) -> Session:
        return Session(bind=self._session.get_bind(), expire_on_commit=False)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def query(
        self,
        *,
        user_id: UUID | None = None,
        action: str | None = None,
        action_prefix: str | None = None,
        entity_type: str | None = None,
        entity_id: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> AuditPage:
        if page < 1:
            raise InvalidInputError("page must be >= 1")
        if limit < 1 or limit > MAX_PAGE_SIZE:
            raise InvalidInputError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
        if start_date and end_date and start_date > end_date:
            raise InvalidInputError("startDate must not be after endDate")

        stmt = self._filtered(
            select(AuditLog),
            user_id=user_id,
            action=action,
            action_prefix=action_prefix,
            entity_type=entity_type,
            entity_id=entity_id,
            start_date=start_date,
            end_date=end_date,
        )
        total = self._session.scalar(
            select(func.count()).select_from(stmt.order_by(None).subquery())
        )
        rows = self._session.scalars(
            stmt.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()
        return AuditPage(items=list(rows), total=int(total or 0), page=page, limit=limit)

    def get(self, audit_id: UUID) -> AuditLog:
        entry = self._session.get(AuditLog, audit_id)
        if entry is None:
            raise NotFoundError("Audit log")
        return entry

    def recent_for_entity(
        self,
        *,
        entity_type: str,
        entity_id: str,
        limit: int = 5,
    ) -> list[AuditLog]:
        stmt = (
            select(AuditLog)
            .where(AuditLog.entity_type == entity_type, AuditLog.entity_id == entity_id)
            .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
            .limit(limit)
        )
        return list(self._session.scalars(stmt).all())

    def governance_trail(
        self,
        *,
        action: str | None = None,
        entity_type: str | None = None,
        limit: int = 100,
    ) -> list[AuditLog]:
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        stmt = self._filtered(
            select(AuditLog),
            action=action,
            action_prefix=GOVERNANCE_ACTION_PREFIX,
            entity_type=entity_type,
        )
        stmt = stmt.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit)
        return list(self._session.scalars(stmt).all())

    @staticmethod
    def _filtered(
        stmt: Select[tuple[AuditLog]],
        *,
        user_id: UUID | None = None,
        action: str | None = None,
        action_prefix: str | None = None,
        entity_type: str | None = None,
        entity_id: str | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> Select[tuple[AuditLog]]:
        if user_id is not None:
            stmt = stmt.where(AuditLog.user_id == user_id)
        if action:
            stmt = stmt.where(AuditLog.action == action)
        if action_prefix:
            stmt = stmt.where(AuditLog.action.startswith(action_prefix, autoescape=True))
        if entity_type:
            stmt = stmt.where(AuditLog.entity_type == entity_type)
        if entity_id:
            stmt = stmt.where(AuditLog.entity_id == entity_id)
        if start_date is not None:
            stmt = stmt.where(AuditLog.created_at >= start_date)
        if end_date is not None:
            stmt = stmt.where(AuditLog.created_at <= end_date)
        return stmt


__all__ = [
    "AuditLogWriter",
    "AuditPage",
    "DEFAULT_PAGE_SIZE",
    "GOVERNANCE_ACTION_PREFIX",
    "MAX_PAGE_SIZE",
    "build_details",
]

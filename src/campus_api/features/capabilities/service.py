"""Capability registry: per-feature health independent of permissions.

The stored ``status`` is the only answer to "is this feature usable". Panel
overrides layer on top for display and never reach this module.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Literal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from campus_api.common.errors import FeatureDisabledError, InvalidInputError, NotFoundError
from campus_api.common.logging import log_context
from campus_api.features.audit.service import AuditLogWriter
from campus_db import utc_now
from campus_db.models import AuditLog, Capability, CapabilityStatus

from .catalog import CAPABILITY_SEEDS, CapabilitySeed

logger = logging.getLogger(__name__)

UnregisteredPolicy = Literal["allow", "deny"]

MAX_TEXT_LENGTH = 1000
UNREGISTERED_REASON = "Capability is not registered"
RECENT_EVENT_LIMIT = 5


@dataclass(frozen=True)
class CapabilityCheck:
    """Outcome of a registry lookup; a pure function of the stored status."""

    capability_id: str
    status: CapabilityStatus
    available: bool
    degraded: bool
    reason: str | None
    registered: bool = True


@dataclass(frozen=True)
class CapabilityStatusChange:
    capability: Capability
    previous_status: CapabilityStatus
    previous_reason: str | None


@dataclass(frozen=True)
class HealthSummary:
    total: int
    stable: int
    degraded: int
    disabled: int

    def as_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "stable": self.stable,
            "degraded": self.degraded,
            "disabled": self.disabled,
        }


@dataclass(frozen=True)
class CapabilityDetail:
    capability: Capability
    recent_events: list[AuditLog]


def parse_status(value: CapabilityStatus | str) -> CapabilityStatus:
    if isinstance(value, CapabilityStatus):
        return value
    try:
        return CapabilityStatus(str(value).strip().lower())
    except ValueError as exc:
        allowed = ", ".join(member.value for member in CapabilityStatus)
        raise InvalidInputError(
            f"Invalid status: {value}",
            details={"allowed": allowed},
        ) from exc


def _bounded(value: str | None, *, field: str) -> str | None:
    if value is None:
        return None
    if len(value) > MAX_TEXT_LENGTH:
        raise InvalidInputError(f"{field} must be at most {MAX_TEXT_LENGTH} characters")
    return value


def check_from_row(capability: Capability) -> CapabilityCheck:
    status = parse_status(capability.status)
    return CapabilityCheck(
        capability_id=capability.id,
        status=status,
        available=status is not CapabilityStatus.DISABLED,
        degraded=status is CapabilityStatus.DEGRADED,
        reason=capability.reason,
    )


class CapabilityRegistry:
    """Register, query and transition capabilities."""

    def __init__(
        self,
        *,
        session: Session,
        unregistered_policy: UnregisteredPolicy = "allow",
    ) -> None:
        self._session = session
        self._unregistered_policy = unregistered_policy

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(
        self,
        *,
        capability_id: str,
        name: str,
        owner_module: str,
        status: CapabilityStatus | str = CapabilityStatus.STABLE,
        reason: str | None = None,
    ) -> Capability:
        """Idempotent upsert; an existing row only has its labels refreshed."""

        capability = self._session.get(Capability, capability_id)
        if capability is None:
            capability = Capability(
                id=capability_id,
                name=name,
                owner_module=owner_module,
                status=parse_status(status),
                reason=_bounded(reason, field="reason"),
                last_checked=utc_now(),
                meta={},
            )
            self._session.add(capability)
            logger.info(
                "capability.registered",
                extra=log_context(capability_id=capability_id, status=capability.status),
            )
        else:
            capability.name = name
            capability.owner_module = owner_module
        self._session.flush()
        return capability

    def seed(self, seeds: Iterable[CapabilitySeed] = CAPABILITY_SEEDS) -> int:
        count = 0
        for seed in seeds:
            self.register(
                capability_id=seed.id,
                name=seed.name,
                owner_module=seed.owner_module,
                status=seed.status,
                reason=seed.reason,
            )
            count += 1
        logger.info("capability.seed.success", extra=log_context(count=count))
        return count

    # ------------------------------------------------------------------
    # Gating
    # ------------------------------------------------------------------

    def check(self, capability_id: str) -> CapabilityCheck:
        capability = self._session.get(Capability, capability_id)
        if capability is not None:
            return check_from_row(capability)

        logger.warning(
            "capability.unregistered",
            extra=log_context(capability_id=capability_id, policy=self._unregistered_policy),
        )
        if self._unregistered_policy == "deny":
            return CapabilityCheck(
                capability_id=capability_id,
                status=CapabilityStatus.DISABLED,
                available=False,
                degraded=False,
                reason=UNREGISTERED_REASON,
                registered=False,
            )
        return CapabilityCheck(
            capability_id=capability_id,
            status=CapabilityStatus.STABLE,
            available=True,
            degraded=False,
            reason=None,
            registered=False,
        )

    def require(self, capability_id: str) -> CapabilityCheck:
        result = self.check(capability_id)
        if not result.available:
            logger.info(
                "capability.gate.blocked",
                extra=log_context(capability_id=capability_id, reason=result.reason),
            )
            raise FeatureDisabledError(
                f"Capability '{capability_id}' is currently disabled",
                details={"capabilityId": capability_id, "reason": result.reason},
            )
        return result

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def update_status(
        self,
        capability_id: str,
        *,
        status: CapabilityStatus | str,
        reason: str | None = None,
        last_error: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> CapabilityStatusChange:
        target = parse_status(status)
        reason = _bounded(reason, field="reason")
        last_error = _bounded(last_error, field="lastError")

        capability = self.get(capability_id)
        previous_status = parse_status(capability.status)
        previous_reason = capability.reason

        capability.status = target
        capability.reason = reason
        capability.last_error = last_error
        if metadata is not None:
            capability.meta = dict(metadata)
        capability.last_checked = utc_now()
        self._session.flush()

        logger.info(
            "capability.status.updated",
            extra=log_context(
                capability_id=capability_id,
                old_status=previous_status.value,
                new_status=target.value,
            ),
        )
        return CapabilityStatusChange(
            capability=capability,
            previous_status=previous_status,
            previous_reason=previous_reason,
        )

    def record_check(
        self,
        capability_id: str,
        *,
        healthy: bool = True,
        error: str | None = None,
    ) -> Capability:
        """Record a health check; an unhealthy stable capability becomes degraded."""

        capability = self.get(capability_id)
        capability.last_checked = utc_now()
        if not healthy:
            if error:
                capability.last_error = error[:MAX_TEXT_LENGTH]
            if parse_status(capability.status) is CapabilityStatus.STABLE:
                capability.status = CapabilityStatus.DEGRADED
                capability.reason = "Health check failed"
                logger.warning(
                    "capability.health.degraded",
                    extra=log_context(capability_id=capability_id, error=error),
                )
        self._session.flush()
        return capability

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, capability_id: str) -> Capability:
        capability = self._session.get(Capability, capability_id)
        if capability is None:
            raise NotFoundError("Capability")
        return capability

    def get_with_recent_events(self, capability_id: str) -> CapabilityDetail:
        capability = self.get(capability_id)
        events = AuditLogWriter(session=self._session).recent_for_entity(
            entity_type="capability",
            entity_id=capability_id,
            limit=RECENT_EVENT_LIMIT,
        )
        return CapabilityDetail(capability=capability, recent_events=events)

    def list_capabilities(self) -> list[Capability]:
        stmt = select(Capability).order_by(Capability.owner_module.asc(), Capability.name.asc())
        return list(self._session.scalars(stmt).all())

    def statuses(self) -> dict[str, CapabilityStatus]:
        rows = self._session.execute(select(Capability.id, Capability.status)).all()
        return {row.id: parse_status(row.status) for row in rows}

    def health_summary(self) -> HealthSummary:
        rows = self._session.execute(
            select(Capability.status, func.count()).group_by(Capability.status)
        ).all()
        counts = {member: 0 for member in CapabilityStatus}
        for status, count in rows:
            counts[parse_status(status)] = int(count)
        return HealthSummary(
            total=sum(counts.values()),
            stable=counts[CapabilityStatus.STABLE],
            degraded=counts[CapabilityStatus.DEGRADED],
            disabled=counts[CapabilityStatus.DISABLED],
        )


__all__ = [
    "CapabilityCheck",
    "CapabilityDetail",
    "CapabilityRegistry",
    "CapabilityStatusChange",
    "HealthSummary",
    "MAX_TEXT_LENGTH",
    "UNREGISTERED_REASON",
    "UnregisteredPolicy",
    "check_from_row",
    "parse_status",
]

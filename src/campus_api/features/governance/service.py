"""Governance engine: analyze, confirm, then execute with one audit record.

Every governed mutation follows the same two-round-trip protocol. The first
call without confirmation returns the impact and mutates nothing; the
confirmed call performs exactly one mutation and writes exactly one
``SUPER_ADMIN_<ACTION>`` audit record. Nothing is held between the calls.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, assert_never
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from campus_api.common.errors import (
    ConfirmationRequiredError,
    InvalidInputError,
    PermissionDeniedError,
)
from campus_api.common.logging import log_context
from campus_api.core.auth.principal import AuthContext
from campus_api.core.rbac.cache import PermissionCache
from campus_api.core.rbac.registry import SUPER_ADMIN_ROLE
from campus_api.core.security.tokens import mint_impersonation_token
from campus_api.features.audit.service import GOVERNANCE_ACTION_PREFIX, AuditLogWriter
from campus_api.features.capabilities.service import CapabilityRegistry, HealthSummary
from campus_api.features.identities.service import IdentityService
from campus_api.features.panels.service import PanelService
from campus_api.features.rbac.service import RoleService
from campus_api.settings import Settings
from campus_db.models import AuditLog, CapabilityStatus, Panel, PanelStatus, User

from .actions import (
    ActionType,
    ImpactContext,
    ImpactReport,
    parse_action_type,
    parse_entity_uuid,
    strategy_for,
)

logger = logging.getLogger(__name__)

IMPERSONATION_ENDED_ACTION = "USER_IMPERSONATION_ENDED"


@dataclass(frozen=True)
class GovernanceOutcome:
    action_type: ActionType
    entity_id: str
    impact: ImpactReport
    result: dict[str, Any]


@dataclass(frozen=True)
class ImpersonationGrant:
    token: str
    expires_in: int
    user: User
    impersonated_by: AuthContext
    impact: ImpactReport


@dataclass(frozen=True)
class PlatformHealth:
    capabilities: HealthSummary
    panels: dict[str, int]
    users: dict[str, int]


def _now_iso() -> str:
    return datetime.now(tz=UTC).isoformat()


class GovernanceEngine:
    """Impact analysis, confirmation gate and audited execution for super-admins."""

    def __init__(
        self,
        *,
        session: Session,
        cache: PermissionCache,
        settings: Settings,
    ) -> None:
        self._session = session
        self._settings = settings
        self._roles = RoleService(session=session, cache=cache)
        self._panels = PanelService(session=session)
        self._capabilities = CapabilityRegistry(
            session=session,
            unregistered_policy=settings.capability_unregistered_policy,
        )
        self._identities = IdentityService(session=session, roles=self._roles)
        self._audit = AuditLogWriter(session=session)

    # ------------------------------------------------------------------
    # Analyze and gate
    # ------------------------------------------------------------------

    def analyze_impact(self, action_type: ActionType | str, entity_id: str) -> ImpactReport:
        action = parse_action_type(action_type)
        strategy = strategy_for(action)
        assessment = strategy.assess(
            ImpactContext(session=self._session, roles=self._roles),
            str(entity_id),
        )
        report = ImpactReport(
            action_type=action,
            entity_id=str(entity_id),
            entity_type=strategy.entity_type,
            severity=strategy.severity,
            reversible=strategy.reversible,
            affected_users=assessment.affected_users,
            message=assessment.message,
            requires_confirmation=assessment.requires_confirmation,
            warnings=assessment.warnings,
            recommendations=assessment.recommendations,
        )
        logger.debug(
            "governance.impact.analyzed",
            extra=log_context(
                action_type=action.value,
                entity_id=str(entity_id),
                affected_users=assessment.affected_users,
                requires_confirmation=assessment.requires_confirmation,
            ),
        )
        return report

    def gate(
        self,
        action_type: ActionType | str,
        entity_id: str,
        *,
        confirmed: bool,
    ) -> ImpactReport:
        """Return the impact, or refuse when confirmation is required and absent.

        Preconditions that would make the mutation fail are checked first, so a
        doomed action is refused outright instead of asking for confirmation.
        """

        action = parse_action_type(action_type)
        self._ensure_preconditions(action, str(entity_id))
        report = self.analyze_impact(action, entity_id)
        if report.requires_confirmation and not confirmed:
            logger.info(
                "governance.confirmation.required",
                extra=log_context(
                    action_type=report.action_type.value,
                    entity_id=report.entity_id,
                    severity=report.severity.value,
                ),
            )
            raise ConfirmationRequiredError(
                action_type=report.action_type.value,
                impact=report.summary(),
            )
        return report

    def _ensure_preconditions(self, action: ActionType, entity_id: str) -> None:
        match action:
            case ActionType.PANEL_DELETE:
                self._panels.ensure_deletable(self._panels.get(parse_entity_uuid(entity_id)))
            case ActionType.ROLE_DELETE:
                self._roles.ensure_deletable(self._roles.get_role(parse_entity_uuid(entity_id)))
            case _:
                return

    # ------------------------------------------------------------------
    # Execute
    # ------------------------------------------------------------------

    def execute(
        self,
        action_type: ActionType | str,
        entity_id: str,
        *,
        actor: AuthContext,
        confirmed: bool,
        ip_address: str | None = None,
        impact: ImpactReport | None = None,
        payload: Mapping[str, Any] | None = None,
    ) -> GovernanceOutcome:
        action = parse_action_type(action_type)
        if action is ActionType.USER_IMPERSONATE:
            raise InvalidInputError("Impersonation is started through the impersonate endpoint")
        report = impact or self.gate(action, entity_id, confirmed=confirmed)

        try:
            result = self._mutate(action, report.entity_id, actor=actor, payload=payload or {})
        except Exception as exc:
            self._session.rollback()
            self._audit.record_detached(
                action=f"{GOVERNANCE_ACTION_PREFIX}{action.value}",
                actor_id=actor.user_id,
                entity_type=report.entity_type,
                entity_id=report.entity_id,
                details=self._audit_details(
                    report,
                    ip_address=ip_address,
                    outcome="failed",
                    extra={"error": str(exc)},
                ),
                ip_address=ip_address,
                actor_role=SUPER_ADMIN_ROLE,
            )
            logger.warning(
                "governance.execute.failed",
                extra=log_context(
                    user_id=actor.user_id,
                    action_type=action.value,
                    entity_id=report.entity_id,
                    error=type(exc).__name__,
                ),
            )
            raise

        self._audit.record(
            action=f"{GOVERNANCE_ACTION_PREFIX}{action.value}",
            actor_id=actor.user_id,
            entity_type=report.entity_type,
            entity_id=report.entity_id,
            details=self._audit_details(
                report,
                ip_address=ip_address,
                outcome="succeeded",
                extra=result,
            ),
            ip_address=ip_address,
            actor_role=SUPER_ADMIN_ROLE,
        )
        logger.info(
            "governance.execute.success",
            extra=log_context(
                user_id=actor.user_id,
                action_type=action.value,
                entity_id=report.entity_id,
            ),
        )
        return GovernanceOutcome(
            action_type=action,
            entity_id=report.entity_id,
            impact=report,
            result=result,
        )

    def _mutate(
        self,
        action: ActionType,
        entity_id: str,
        *,
        actor: AuthContext,
        payload: Mapping[str, Any],
    ) -> dict[str, Any]:
        match action:
            case ActionType.PANEL_DELETE:
                panel = self._panels.delete(parse_entity_uuid(entity_id))
                return {"panelName": panel.name}
            case ActionType.ROLE_DELETE:
                role = self._roles.delete_role(role_id=parse_entity_uuid(entity_id))
                return {"roleKey": role.role_key}
            case ActionType.USER_DELETE:
                user_id = parse_entity_uuid(entity_id)
                if user_id == actor.user_id:
                    raise InvalidInputError("You cannot delete your own account")
                user = self._identities.delete_user(user_id)
                return {"email": user.email}
            case ActionType.CAPABILITY_DISABLE:
                change = self._capabilities.update_status(
                    entity_id,
                    status=CapabilityStatus.DISABLED,
                    reason=payload.get("reason"),
                    last_error=payload.get("lastError"),
                )
                return {
                    "oldStatus": change.previous_status.value,
                    "newStatus": CapabilityStatus.DISABLED.value,
                    "reason": change.capability.reason,
                }
            case ActionType.SYSTEM_CONFIG_CHANGE:
                raise InvalidInputError("System configuration changes are not supported")
            case ActionType.USER_IMPERSONATE:
                raise InvalidInputError("Impersonation is started through the impersonate endpoint")
            case _:
                assert_never(action)

    @staticmethod
    def _audit_details(
        report: ImpactReport,
        *,
        ip_address: str | None,
        outcome: str,
        extra: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        return {
            **(extra or {}),
            "superAdminAction": True,
            "impact": report.summary(),
            "ipAddress": ip_address,
            "outcome": outcome,
            "timestamp": _now_iso(),
        }

    # ------------------------------------------------------------------
    # Impersonation
    # ------------------------------------------------------------------

    def impersonate(
        self,
        *,
        actor: AuthContext,
        target_user_id: UUID,
        confirmed: bool,
        ip_address: str | None = None,
    ) -> ImpersonationGrant:
        target = self._identities.get_user(target_user_id)
        if self._roles.is_super_admin(target.id):
            logger.warning(
                "governance.impersonation.refused",
                extra=log_context(user_id=actor.user_id, target_user_id=str(target.id)),
            )
            raise PermissionDeniedError("Cannot impersonate Super Admin users")
        if not target.is_active:
            raise InvalidInputError("Cannot impersonate an inactive user")
        if actor.is_impersonating:
            raise PermissionDeniedError("Nested impersonation is not allowed")

        report = self.gate(ActionType.USER_IMPERSONATE, str(target.id), confirmed=confirmed)
        token, expires_in = mint_impersonation_token(
            self._settings,
            subject=target.id,
            impersonated_by=actor.user_id,
            email=target.email,
            role=target.role,
        )
        self._audit.record(
            action=f"{GOVERNANCE_ACTION_PREFIX}{ActionType.USER_IMPERSONATE.value}",
            actor_id=actor.user_id,
            entity_type=report.entity_type,
            entity_id=target.id,
            details=self._audit_details(
                report,
                ip_address=ip_address,
                outcome="succeeded",
                extra={
                    "targetUserId": str(target.id),
                    "targetUserEmail": target.email,
                    "targetUserName": target.display_name,
                    "confirmed": confirmed,
                    "expiresIn": expires_in,
                },
            ),
            ip_address=ip_address,
            actor_role=SUPER_ADMIN_ROLE,
        )
        logger.info(
            "governance.impersonation.started",
            extra=log_context(user_id=actor.user_id, target_user_id=str(target.id)),
        )
        return ImpersonationGrant(
            token=token,
            expires_in=expires_in,
            user=target,
            impersonated_by=actor,
            impact=report,
        )

    def end_impersonation(self, *, actor: AuthContext, ip_address: str | None = None) -> UUID:
        """Audit the end of a delegated session; returns the accountable super-admin id."""

        accountable = actor.impersonated_by or actor.user_id
        details: dict[str, Any] = {
            "sessionEnded": True,
            "superAdminAction": True,
            "ipAddress": ip_address,
            "timestamp": _now_iso(),
        }
        if actor.impersonated_by is not None:
            details["impersonatedUserId"] = str(actor.user_id)
        self._audit.record(
            action=f"{GOVERNANCE_ACTION_PREFIX}{IMPERSONATION_ENDED_ACTION}",
            actor_id=accountable,
            entity_type="session",
            entity_id=accountable,
            details=details,
            ip_address=ip_address,
            actor_role=SUPER_ADMIN_ROLE,
        )
        logger.info("governance.impersonation.ended", extra=log_context(user_id=accountable))
        return accountable

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def audit_trail(
        self,
        *,
        action: str | None = None,
        entity_type: str | None = None,
        limit: int = 100,
    ) -> list[AuditLog]:
        return self._audit.governance_trail(action=action, entity_type=entity_type, limit=limit)

    def platform_health(self) -> PlatformHealth:
        panel_rows = self._session.execute(
            select(Panel.status, func.count()).group_by(Panel.status)
        ).all()
        panels = {status.value: 0 for status in PanelStatus}
        for status, count in panel_rows:
            panels[PanelStatus(status).value] = int(count)
        panels["total"] = sum(panels.values())
        panels["system"] = int(
            self._session.scalar(
                select(func.count()).select_from(Panel).where(Panel.is_system_panel.is_(True))
            )
            or 0
        )

        total_users, active_users, role_count = self._session.execute(
            select(
                func.count(User.id),
                func.count(User.id).filter(User.is_active.is_(True)),
                func.count(func.distinct(User.role)),
            )
        ).one()
        return PlatformHealth(
            capabilities=self._capabilities.health_summary(),
            panels=panels,
            users={
                "total": int(total_users or 0),
                "active": int(active_users or 0),
                "roleCount": int(role_count or 0),
            },
        )


__all__ = [
    "GovernanceEngine",
    "GovernanceOutcome",
    "IMPERSONATION_ENDED_ACTION",
    "ImpersonationGrant",
    "PlatformHealth",
]

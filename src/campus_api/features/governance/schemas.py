from __future__ import annotations

from typing import Any
from uuid import UUID

from pydantic import Field

from campus_api.common.schema import BaseSchema
from campus_api.features.audit.schemas import AuditLogOut
from campus_api.features.capabilities.schemas import HealthSummaryOut

from .actions import ActionType, ImpactReport, Severity


class ImpactReportOut(BaseSchema):
    """Blast radius of a governed action."""

    action_type: ActionType
    entity_id: str
    entity_type: str
    severity: Severity
    reversible: bool
    affected_users: int | str
    message: str
    requires_confirmation: bool
    warnings: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)

    @classmethod
    def from_report(cls, report: ImpactReport) -> ImpactReportOut:
        return cls(
            action_type=report.action_type,
            entity_id=report.entity_id,
            entity_type=report.entity_type,
            severity=report.severity,
            reversible=report.reversible,
            affected_users=report.affected_users,
            message=report.message,
            requires_confirmation=report.requires_confirmation,
            warnings=list(report.warnings),
            recommendations=list(report.recommendations),
        )


class GovernanceActionRequest(BaseSchema):
    """Body of a confirm-and-execute call."""

    confirmed: bool = False
    reason: str | None = Field(default=None, max_length=1000)
    last_error: str | None = Field(default=None, max_length=1000)


class GovernanceOutcomeOut(BaseSchema):
    action_type: ActionType
    entity_id: str
    impact: ImpactReportOut
    result: dict[str, Any]


class ImpersonateRequest(BaseSchema):
    user_id: UUID
    confirmed: bool = False


class ImpersonatedUserOut(BaseSchema):
    id: UUID
    email: str
    display_name: str | None = None
    role: str


class ImpersonatorOut(BaseSchema):
    id: UUID
    email: str


class ImpersonationOut(BaseSchema):
    token: str
    expires_in: int
    user: ImpersonatedUserOut
    impersonated_by: ImpersonatorOut
    impact: ImpactReportOut


class ImpersonationEndedOut(BaseSchema):
    message: str
    super_admin_id: UUID


class GovernanceTrailOut(BaseSchema):
    logs: list[AuditLogOut]


class PlatformHealthOut(BaseSchema):
    capabilities: HealthSummaryOut
    panels: dict[str, int]
    users: dict[str, int]


__all__ = [
    "GovernanceActionRequest",
    "GovernanceOutcomeOut",
    "GovernanceTrailOut",
    "ImpactReportOut",
    "ImpersonateRequest",
    "ImpersonatedUserOut",
    "ImpersonationEndedOut",
    "ImpersonationOut",
    "ImpersonatorOut",
    "PlatformHealthOut",
]

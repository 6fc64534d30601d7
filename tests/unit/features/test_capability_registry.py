from __future__ import annotations

import pytest
from sqlalchemy.orm import Session

from campus_api.common.errors import FeatureDisabledError, InvalidInputError, NotFoundError
from campus_api.features.capabilities.catalog import CAPABILITY_SEEDS
from campus_api.features.capabilities.service import (
    MAX_TEXT_LENGTH,
    UNREGISTERED_REASON,
    CapabilityRegistry,
)
from campus_db.models import CapabilityStatus


@pytest.fixture()
def registry(session: Session) -> CapabilityRegistry:
    service = CapabilityRegistry(session=session)
    service.seed()
    session.commit()
    return service


def test_seed_is_idempotent(session: Session, registry: CapabilityRegistry) -> None:
    registry.update_status("payroll", status="degraded", reason="Slow upstream")

    registry.seed()

    assert len(registry.list_capabilities()) == len(CAPABILITY_SEEDS)
    assert registry.get("payroll").status == CapabilityStatus.DEGRADED
    assert registry.get("payroll").reason == "Slow upstream"


def test_seeded_degraded_capability_keeps_reason(registry: CapabilityRegistry) -> None:
    check = registry.check("smart_suggestions")

    assert check.available
    assert check.degraded
    assert check.reason == "New feature - monitoring performance"


def test_require_blocks_disabled_capability(registry: CapabilityRegistry) -> None:
    registry.update_status("payroll", status=CapabilityStatus.DISABLED, reason="Vendor outage")

    with pytest.raises(FeatureDisabledError) as excinfo:
        registry.require("payroll")

    assert excinfo.value.details == {"capabilityId": "payroll", "reason": "Vendor outage"}
    assert registry.check("payroll").available is False


def test_require_passes_degraded_capability(registry: CapabilityRegistry) -> None:
    registry.update_status("leave", status="degraded", reason="Partial outage")

    check = registry.require("leave")

    assert check.degraded
    assert check.reason == "Partial outage"


def test_update_status_replaces_reason_and_reports_previous(registry: CapabilityRegistry) -> None:
    first = registry.update_status("audit", status="degraded", reason="Lagging")
    second = registry.update_status("audit", status="stable")

    assert first.previous_status is CapabilityStatus.STABLE
    assert second.previous_status is CapabilityStatus.DEGRADED
    assert second.previous_reason == "Lagging"
    assert second.capability.reason is None


def test_repeated_toggle_keeps_same_state(registry: CapabilityRegistry) -> None:
    registry.update_status("hr", status="disabled", reason="Maintenance")
    registry.update_status("hr", status="disabled", reason="Maintenance")

    assert registry.get("hr").status == CapabilityStatus.DISABLED
    assert registry.health_summary().disabled == 1


def test_update_status_validates_input(registry: CapabilityRegistry) -> None:
    with pytest.raises(InvalidInputError, match="Invalid status"):
        registry.update_status("hr", status="broken")
    with pytest.raises(InvalidInputError, match="reason"):
        registry.update_status("hr", status="degraded", reason="x" * (MAX_TEXT_LENGTH + 1))
    with pytest.raises(NotFoundError):
        registry.update_status("missing", status="stable")

    registry.update_status("hr", status="degraded", reason="x" * MAX_TEXT_LENGTH)


def test_unregistered_capability_policy(session: Session) -> None:
    allow = CapabilityRegistry(session=session, unregistered_policy="allow")
    deny = CapabilityRegistry(session=session, unregistered_policy="deny")

    assert allow.require("ghost").registered is False

    blocked = deny.check("ghost")
    assert blocked.available is False
    assert blocked.reason == UNREGISTERED_REASON
    with pytest.raises(FeatureDisabledError):
        deny.require("ghost")


def test_failed_health_check_degrades_stable_capability(registry: CapabilityRegistry) -> None:
    capability = registry.record_check("exports", healthy=False, error="timeout")

    assert capability.status == CapabilityStatus.DEGRADED
    assert capability.reason == "Health check failed"
    assert capability.last_error == "timeout"


def test_failed_health_check_never_re_enables(registry: CapabilityRegistry) -> None:
    registry.update_status("exports", status="disabled", reason="Off")

    capability = registry.record_check("exports", healthy=False, error="timeout")

    assert capability.status == CapabilityStatus.DISABLED
    assert capability.reason == "Off"


def test_health_summary_counts_by_status(registry: CapabilityRegistry) -> None:
    registry.update_status("leave", status="disabled")

    summary = registry.health_summary()

    assert summary.total == len(CAPABILITY_SEEDS)
    assert summary.degraded == 1
    assert summary.disabled == 1
    assert summary.stable == summary.total - 2

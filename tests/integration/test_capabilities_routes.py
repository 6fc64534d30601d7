from __future__ import annotations

import pytest
from sqlalchemy import update

from campus_db.models import Role

pytestmark = pytest.mark.asyncio


async def test_admin_lists_capabilities_with_summary(async_client, seed_user, auth) -> None:
    admin = auth(seed_user(role="ADMIN"))

    response = await async_client.get("/api/v1/admin/capabilities", headers=admin)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["summary"]["total"] == len(data["capabilities"])
    assert data["summary"]["degraded"] == 1
    summary = await async_client.get("/api/v1/admin/capabilities/health/summary", headers=admin)
    assert summary.json()["data"] == data["summary"]


async def test_staff_cannot_manage_capabilities(async_client, seed_user, auth) -> None:
    response = await async_client.get("/api/v1/admin/capabilities", headers=auth(seed_user()))

    assert response.status_code == 403
    assert response.json()["error"]["details"] == {"requiredRoles": ["ADMIN"]}


async def test_admin_degrades_and_restores(async_client, seed_user, auth) -> None:
    admin = auth(seed_user(role="ADMIN"))

    degraded = await async_client.put(
        "/api/v1/admin/capabilities/payroll/status",
        json={"status": "degraded", "reason": "Bank API slow"},
        headers=admin,
    )
    assert degraded.status_code == 200
    assert degraded.json()["data"]["oldStatus"] == "stable"
    assert degraded.json()["data"]["capability"]["reason"] == "Bank API slow"

    restored = await async_client.put(
        "/api/v1/admin/capabilities/payroll/status",
        json={"status": "stable"},
        headers=admin,
    )
    assert restored.json()["data"]["capability"]["status"] == "stable"
    assert "reason" not in restored.json()["data"]["capability"]

    detail = await async_client.get("/api/v1/admin/capabilities/payroll", headers=admin)
    events = detail.json()["data"]["recentEvents"]
    assert [event["action"] for event in events] == [
        "CAPABILITY_STATUS_UPDATED",
        "CAPABILITY_STATUS_UPDATED",
    ]


async def test_only_super_admin_disables(async_client, seed_user, auth, root_headers) -> None:
    admin = auth(seed_user(role="ADMIN"))

    refused = await async_client.put(
        "/api/v1/admin/capabilities/payroll/status",
        json={"status": "disabled", "confirmed": True},
        headers=admin,
    )
    assert refused.status_code == 403

    unconfirmed = await async_client.put(
        "/api/v1/admin/capabilities/payroll/status",
        json={"status": "disabled", "reason": "Vendor outage"},
        headers=root_headers,
    )
    assert unconfirmed.json()["error"]["code"] == "CONFIRMATION_REQUIRED"
    assert unconfirmed.json()["error"]["details"]["impact"]["affectedUsers"] == "all"

    disabled = await async_client.put(
        "/api/v1/admin/capabilities/payroll/status",
        json={"status": "disabled", "reason": "Vendor outage", "confirmed": True},
        headers=root_headers,
    )
    assert disabled.status_code == 200
    assert disabled.headers["X-Super-Admin-Action"] == "true"
    assert disabled.json()["data"]["newStatus"] == "disabled"


async def test_failed_health_check_degrades(async_client, seed_user, auth) -> None:
    admin = auth(seed_user(role="ADMIN"))

    response = await async_client.post(
        "/api/v1/admin/capabilities/attendance/health-check",
        json={"healthy": False, "error": "timeout"},
        headers=admin,
    )

    assert response.status_code == 200
    assert response.json()["data"]["status"] == "degraded"
    assert response.json()["data"]["lastError"] == "timeout"


async def test_unknown_capability_is_not_found(async_client, root_headers) -> None:
    response = await async_client.get("/api/v1/admin/capabilities/ghost", headers=root_headers)

    assert response.status_code == 404


async def test_audit_route_is_role_and_capability_gated(
    async_client,
    seed_user,
    auth,
    root_headers,
) -> None:
    admin = auth(seed_user(role="ADMIN"))
    staff = auth(seed_user())

    assert (await async_client.get("/api/v1/audit-logs", headers=staff)).status_code == 403

    allowed = await async_client.get("/api/v1/audit-logs", headers=admin)
    assert allowed.status_code == 200
    assert allowed.json()["degraded"] is False
    assert allowed.json()["data"]["pagination"]["page"] == 1

    await async_client.put(
        "/api/v1/admin/capabilities/audit/status",
        json={"status": "degraded", "reason": "Indexing backlog"},
        headers=admin,
    )
    degraded = await async_client.get("/api/v1/audit-logs", headers=admin)
    assert degraded.json()["degraded"] is True
    assert degraded.json()["degradedReason"] == "Indexing backlog"

    await async_client.put(
        "/api/v1/admin/capabilities/audit/status",
        json={"status": "disabled", "confirmed": True},
        headers=root_headers,
    )
    blocked = await async_client.get("/api/v1/audit-logs", headers=admin)
    assert blocked.status_code == 403
    assert blocked.json()["error"]["code"] == "FEATURE_DISABLED"

    super_blocked = await async_client.get("/api/v1/audit-logs", headers=root_headers)
    assert super_blocked.json()["error"]["code"] == "FEATURE_DISABLED"


async def test_role_guard_ignores_unresolved_role_label(async_client, seed_user, auth, db) -> None:
    manager = auth(seed_user(role="HR_MANAGER"))

    unresolved = await async_client.get("/api/v1/audit-logs", headers=manager)
    assert unresolved.status_code == 403
    assert unresolved.json()["error"]["details"]["requiredRoles"] == ["ADMIN", "HR_ADMIN", "HR_MANAGER"]

    with db() as session, session.begin():
        session.add(Role(role_key="HR_MANAGER", name="Hr Manager", is_system=False, is_active=False))
    inactive = await async_client.get("/api/v1/audit-logs", headers=manager)
    assert inactive.status_code == 403

    with db() as session, session.begin():
        session.execute(update(Role).where(Role.role_key == "HR_MANAGER").values(is_active=True))
    active = await async_client.get("/api/v1/audit-logs", headers=manager)
    assert active.status_code == 200

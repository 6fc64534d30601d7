"""Success envelope helpers shared by every router."""

from __future__ import annotations

from typing import TypeVar

from campus_api.common.schema import ApiResponse
from campus_api.features.capabilities.service import CapabilityCheck

T = TypeVar("T")


def ok(
    data: T,
    *,
    check: CapabilityCheck | None = None,
    super_admin_action: bool = False,
) -> ApiResponse[T]:
    """Wrap ``data``; a capability check adds ``degraded`` and ``degradedReason``."""

    degraded: bool | None = None
    reason: str | None = None
    if check is not None:
        degraded = check.degraded
        reason = check.reason if check.degraded else None
    return ApiResponse(
        data=data,
        degraded=degraded,
        degraded_reason=reason,
        super_admin_action=True if super_admin_action else None,
    )


__all__ = ["ok"]

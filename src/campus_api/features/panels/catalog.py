"""System panels provisioned at startup."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class SystemPanelSeed:
    name: str
    description: str
    permission_set: tuple[str, ...]
    modules: tuple[str, ...]
    theme: dict[str, Any] = field(default_factory=dict)

    def navigation(self) -> dict[str, list[str]]:
        return {"modules": list(self.modules), "order": list(self.modules), "hidden": []}


SYSTEM_PANELS: tuple[SystemPanelSeed, ...] = (
    SystemPanelSeed(
        name="Super Admin Panel",
        description="Full access panel for super administrators",
        permission_set=("system:*",),
        modules=("dashboard", "roles", "panels", "capabilities", "audit-logs"),
        theme={"primaryColor": "#0ea5e9", "secondaryColor": "#64748b", "mode": "light"},
    ),
    SystemPanelSeed(
        name="Operations Panel",
        description="Panel for operations team",
        permission_set=("capabilities:view", "audit:view", "dashboard:view"),
        modules=("dashboard", "capabilities", "audit-logs"),
        theme={"primaryColor": "#10b981", "secondaryColor": "#6b7280", "mode": "light"},
    ),
)


__all__ = ["SYSTEM_PANELS", "SystemPanelSeed"]

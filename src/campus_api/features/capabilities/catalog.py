"""Bootstrap catalogue of product capabilities registered at startup."""

from __future__ import annotations

from dataclasses import dataclass

from campus_db.models import CapabilityStatus


@dataclass(frozen=True)
class CapabilitySeed:
    id: str
    name: str
    owner_module: str
    status: CapabilityStatus = CapabilityStatus.STABLE
    reason: str | None = None


CAPABILITY_SEEDS: tuple[CapabilitySeed, ...] = (
    CapabilitySeed("attendance", "Attendance Management", "attendance"),
    CapabilitySeed("leave", "Leave Management", "hr"),
    CapabilitySeed("payroll", "Payroll Processing", "hr"),
    CapabilitySeed("audit", "Audit Logging", "audit"),
    CapabilitySeed("security", "Security Features", "security"),
    CapabilitySeed("academic_intelligence", "Academic Intelligence", "ai"),
    CapabilitySeed("crowd_intelligence", "Crowd Intelligence", "ai"),
    CapabilitySeed("exports", "Data Exports", "admin"),
    CapabilitySeed("community", "Community Features", "community"),
    CapabilitySeed("feedback", "Feedback & Suggestions", "feedback"),
    CapabilitySeed("hr", "HR Management", "hr"),
    CapabilitySeed("attendance_intelligence", "Attendance Intelligence", "attendance"),
    CapabilitySeed("substitution", "Substitution Allocation", "academic"),
    CapabilitySeed("celebrations", "Celebrations & Events", "community"),
    CapabilitySeed("student_insights", "Student Insights", "academic"),
    CapabilitySeed(
        "smart_suggestions",
        "Smart Suggestions",
        "ai",
        status=CapabilityStatus.DEGRADED,
        reason="New feature - monitoring performance",
    ),
)


__all__ = ["CAPABILITY_SEEDS", "CapabilitySeed"]

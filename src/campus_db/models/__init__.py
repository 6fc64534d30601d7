"""Central exports for campus control-plane SQLAlchemy models."""

from .audit import AuditLog
from .capability import Capability, CapabilityStatus
from .panel import Panel, PanelStatus, UserPanel
from .rbac import Role, RolePermission, UserRole
from .user import User

__all__ = [
    "AuditLog",
    "Capability",
    "CapabilityStatus",
    "Panel",
    "PanelStatus",
    "Role",
    "RolePermission",
    "User",
    "UserPanel",
    "UserRole",
]

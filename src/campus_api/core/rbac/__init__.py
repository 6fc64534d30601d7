"""RBAC contracts shared by services and HTTP guards."""

from .cache import PermissionCache
from .registry import (
    ALL_PERMISSIONS,
    PERMISSION_REGISTRY,
    PERMISSIONS,
    SUPER_ADMIN_ROLE,
    SUPER_PERMISSION,
    SYSTEM_ROLES,
    PermissionDef,
    is_super_privileged,
)

__all__ = [
    "ALL_PERMISSIONS",
    "PERMISSIONS",
    "PERMISSION_REGISTRY",
    "PermissionCache",
    "PermissionDef",
    "SUPER_ADMIN_ROLE",
    "SUPER_PERMISSION",
    "SYSTEM_ROLES",
    "is_super_privileged",
]

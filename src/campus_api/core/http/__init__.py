"""HTTP dependency helpers built on the shared auth, RBAC and capability contracts."""

from .dependencies import (
    audit_super_admin_action,
    authorize_roles,
    capability_checked,
    capability_required,
    enforce_rate_limit,
    get_current_context,
    get_optional_context,
    require_any_permission,
    require_destructive_confirmation,
    require_permission,
    require_super_admin,
)
from .envelope import ok

__all__ = [
    "audit_super_admin_action",
    "authorize_roles",
    "capability_checked",
    "capability_required",
    "enforce_rate_limit",
    "get_current_context",
    "get_optional_context",
    "ok",
    "require_any_permission",
    "require_destructive_confirmation",
    "require_permission",
    "require_super_admin",
]

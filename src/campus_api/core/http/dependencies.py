"""FastAPI dependencies that bridge HTTP requests to the control plane.

Each guard is an explicit entry point: a route states which policy it uses
by the dependency it declares (``capability_required`` blocks,
``capability_checked`` only annotates).
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Generator
from dataclasses import replace
from datetime import UTC, datetime
from typing import Annotated, Any

from fastapi import Depends, FastAPI, Request, Response
from sqlalchemy.orm import Session

from campus_api.common.errors import (
    AuthRequiredError,
    InvalidInputError,
    PermissionDeniedError,
    RateLimitedError,
)
from campus_api.common.logging import log_context
from campus_api.common.network import client_ip
from campus_api.common.rate_limit import InMemoryRateLimiter, RateLimit
from campus_api.db import get_db_read, get_db_write
from campus_api.features.audit.service import GOVERNANCE_ACTION_PREFIX, AuditLogWriter
from campus_api.features.capabilities.service import CapabilityCheck, CapabilityRegistry
from campus_api.features.governance.actions import ActionType, ImpactReport
from campus_api.features.governance.service import GovernanceEngine
from campus_api.features.identities.service import IdentityService
from campus_api.features.panels.service import capability_override, is_more_severe
from campus_api.features.rbac.service import RoleService
from campus_api.settings import Settings, get_settings
from campus_db.models import CapabilityStatus, Panel

from ..auth.pipeline import authenticate_request
from ..auth.principal import AuthContext
from ..rbac.cache import PermissionCache
from ..rbac.registry import SUPER_ADMIN_ROLE

logger = logging.getLogger(__name__)

SUPER_ADMIN_HEADER = "X-Super-Admin-Action"


# ---------------------------------------------------------------------------
# Infrastructure
# ---------------------------------------------------------------------------


def get_app_settings(request: Request) -> Settings:
    settings = getattr(request.app.state, "settings", None)
    return settings if settings is not None else get_settings()


ReadSessionDep = Annotated[Session, Depends(get_db_read)]
WriteSessionDep = Annotated[Session, Depends(get_db_write)]
SettingsDep = Annotated[Settings, Depends(get_app_settings)]


def get_permission_cache(request: Request) -> PermissionCache:
    cache = getattr(request.app.state, "permission_cache", None)
    if cache is None:
        settings = get_app_settings(request)
        cache = PermissionCache(ttl_seconds=settings.permission_cache_ttl_seconds)
        request.app.state.permission_cache = cache
    return cache


PermissionCacheDep = Annotated[PermissionCache, Depends(get_permission_cache)]


def get_role_service(session: ReadSessionDep, cache: PermissionCacheDep) -> RoleService:
    return RoleService(session=session, cache=cache)


def get_capability_registry(session: ReadSessionDep, settings: SettingsDep) -> CapabilityRegistry:
    return CapabilityRegistry(
        session=session,
        unregistered_policy=settings.capability_unregistered_policy,
    )


def get_governance_engine(
    session: ReadSessionDep,
    cache: PermissionCacheDep,
    settings: SettingsDep,
) -> GovernanceEngine:
    return GovernanceEngine(session=session, cache=cache, settings=settings)


RoleServiceDep = Annotated[RoleService, Depends(get_role_service)]
CapabilityRegistryDep = Annotated[CapabilityRegistry, Depends(get_capability_registry)]
GovernanceEngineDep = Annotated[GovernanceEngine, Depends(get_governance_engine)]


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


def get_current_context(
    request: Request,
    session: ReadSessionDep,
    settings: SettingsDep,
    roles: RoleServiceDep,
) -> AuthContext:
    """Authenticate the request and attach the resolved authorization context."""

    principal, user = authenticate_request(request, session=session, settings=settings)
    context = IdentityService(session=session, roles=roles).build_context(
        user, principal=principal
    )
    request.state.auth_context = context
    logger.debug(
        "auth.context.resolved",
        extra=log_context(
            user_id=context.user_id,
            auth_via=context.auth_via.value,
            super_admin=context.is_super_admin,
        ),
    )
    return context


def get_optional_context(
    request: Request,
    session: ReadSessionDep,
    settings: SettingsDep,
    roles: RoleServiceDep,
) -> AuthContext | None:
    """Resolve the caller when valid credentials are present, else ``None``."""

    if not request.headers.get("authorization"):
        return None
    try:
        return get_current_context(request, session, settings, roles)
    except AuthRequiredError as exc:
        logger.debug("auth.context.unresolved", extra=log_context(reason=exc.message))
        return None


CurrentContext = Annotated[AuthContext, Depends(get_current_context)]
OptionalContext = Annotated[AuthContext | None, Depends(get_optional_context)]


# ---------------------------------------------------------------------------
# Role and permission guards
# ---------------------------------------------------------------------------


def authorize_roles(*role_keys: str) -> Callable[..., AuthContext]:
    """Require one of ``role_keys``; the super-privilege satisfies every role check."""

    wanted = frozenset(key.strip().upper() for key in role_keys)

    def dependency(context: CurrentContext) -> AuthContext:
        if context.is_super_admin:
            return context
        if wanted.intersection(context.role_keys):
            return context
        logger.info(
            "rbac.role.denied",
            extra=log_context(user_id=context.user_id, required=",".join(sorted(wanted))),
        )
        raise PermissionDeniedError(
            "Insufficient role for this action",
            details={"requiredRoles": sorted(wanted)},
        )

    return dependency


def require_permission(permission_key: str) -> Callable[..., AuthContext]:
    """Return a dependency enforcing a specific permission."""

    def dependency(context: CurrentContext, roles: RoleServiceDep) -> AuthContext:
        decision = roles.authorize(
            user_id=context.user_id,
            permission_keys=[permission_key],
            granted=context.permissions,
        )
        if not decision.allowed:
            logger.info(
                "rbac.permission.denied",
                extra=log_context(user_id=context.user_id, permission=permission_key),
            )
            raise PermissionDeniedError(permission_key=permission_key)
        return context

    return dependency


def require_any_permission(*permission_keys: str) -> Callable[..., AuthContext]:
    def dependency(context: CurrentContext, roles: RoleServiceDep) -> AuthContext:
        decision = roles.authorize(
            user_id=context.user_id,
            permission_keys=permission_keys,
            granted=context.permissions,
        )
        if len(decision.missing) == len(decision.required):
            logger.info(
                "rbac.permission.denied",
                extra=log_context(
                    user_id=context.user_id,
                    permission=",".join(decision.required),
                ),
            )
            raise PermissionDeniedError(
                "One of the listed permissions is required",
                details={"permissions": list(decision.required)},
            )
        return context

    return dependency


def require_super_admin(response: Response, context: CurrentContext) -> AuthContext:
    if not context.is_super_admin:
        raise PermissionDeniedError("Super Admin access required")
    response.headers[SUPER_ADMIN_HEADER] = "true"
    return context


SuperAdminContext = Annotated[AuthContext, Depends(require_super_admin)]


# ---------------------------------------------------------------------------
# Capability gates
# ---------------------------------------------------------------------------


def capability_required(capability_id: str) -> Callable[..., CapabilityCheck]:
    """Hard gate: block when disabled; pass stable and degraded with annotation."""

    def dependency(request: Request, registry: CapabilityRegistryDep) -> CapabilityCheck:
        check = registry.require(capability_id)
        request.state.capability_check = check
        return check

    return dependency


def capability_checked(capability_id: str) -> Callable[..., CapabilityCheck]:
    """Status overlay: never blocks; reports degraded state for the caller's panel."""

    def dependency(
        request: Request,
        registry: CapabilityRegistryDep,
        session: ReadSessionDep,
        context: OptionalContext,
    ) -> CapabilityCheck:
        check = registry.check(capability_id)
        status, reason = check.status, check.reason
        if context is not None and context.default_panel is not None:
            panel = session.get(Panel, context.default_panel.id)
            override = capability_override(panel, capability_id) if panel else None
            if override is not None and is_more_severe(override[0], status):
                status, reason = override[0], override[1] or reason
        degraded = status is not CapabilityStatus.STABLE
        check = replace(
            check,
            status=status,
            degraded=degraded,
            reason=reason if degraded else None,
        )
        request.state.capability_check = check
        return check

    return dependency


# ---------------------------------------------------------------------------
# Governance
# ---------------------------------------------------------------------------


async def read_confirmation(request: Request) -> bool:
    """``?confirmed=true`` or a JSON body carrying ``"confirmed": true``."""

    if request.query_params.get("confirmed", "").strip().lower() == "true":
        return True
    if request.method in {"GET", "HEAD", "OPTIONS"}:
        return False
    raw = await request.body()
    if not raw:
        return False
    try:
        payload = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError):
        return False
    return isinstance(payload, dict) and payload.get("confirmed") is True


ConfirmedDep = Annotated[bool, Depends(read_confirmation)]


def path_param(name: str) -> Callable[[Request], Any]:
    def extract(request: Request) -> Any:
        return request.path_params.get(name)

    return extract


def require_destructive_confirmation(
    action_type: ActionType,
    id_extractor: Callable[[Request], Any] | None = None,
) -> Callable[..., ImpactReport]:
    """Analyze impact and refuse unconfirmed requests that need confirmation."""

    extract = id_extractor or path_param("id")

    def dependency(
        request: Request,
        _context: SuperAdminContext,
        engine: GovernanceEngineDep,
        confirmed: ConfirmedDep,
    ) -> ImpactReport:
        entity_id = extract(request)
        if entity_id is None or str(entity_id).strip() == "":
            raise InvalidInputError("Entity id is required")
        report = engine.gate(action_type, str(entity_id), confirmed=confirmed)
        request.state.action_impact = report
        request.state.action_type = report.action_type
        request.state.entity_id = report.entity_id
        return report

    return dependency


def audit_super_admin_action(action_name: str) -> Callable[..., Generator[None]]:
    """Record ``SUPER_ADMIN_<action_name>`` once the endpoint completes successfully.

    Not combined with :meth:`GovernanceEngine.execute`, which audits itself.
    """

    def dependency(
        request: Request,
        session: WriteSessionDep,
        context: SuperAdminContext,
    ) -> Generator[None]:
        yield
        impact: ImpactReport | None = getattr(request.state, "action_impact", None)
        details: dict[str, Any] = {
            "method": request.method,
            "path": request.url.path,
            "superAdminAction": True,
            "impact": impact.summary() if impact is not None else {},
            "ipAddress": client_ip(request),
            "timestamp": datetime.now(tz=UTC).isoformat(),
        }
        AuditLogWriter(session=session).record(
            action=f"{GOVERNANCE_ACTION_PREFIX}{action_name}",
            actor_id=context.user_id,
            entity_type=impact.entity_type if impact is not None else None,
            entity_id=getattr(request.state, "entity_id", None),
            details=details,
            ip_address=client_ip(request),
            actor_role=SUPER_ADMIN_ROLE,
        )

    return dependency


# ---------------------------------------------------------------------------
# Rate limiting
# ---------------------------------------------------------------------------


def _limit_for(category: str, settings: Settings) -> RateLimit:
    if category == "governance":
        return RateLimit(
            settings.rate_limit_governance_requests,
            settings.rate_limit_governance_window_seconds,
        )
    if category == "impersonation":
        return RateLimit(
            settings.rate_limit_impersonation_requests,
            settings.rate_limit_impersonation_window_seconds,
        )
    return RateLimit(
        settings.rate_limit_default_requests,
        settings.rate_limit_default_window_seconds,
    )


def get_rate_limiter(app: FastAPI, category: str, settings: Settings) -> InMemoryRateLimiter:
    limiters: dict[str, InMemoryRateLimiter] | None = getattr(app.state, "rate_limiters", None)
    if limiters is None:
        limiters = {}
        app.state.rate_limiters = limiters
    limiter = limiters.get(category)
    if limiter is None:
        limiter = InMemoryRateLimiter(limit=_limit_for(category, settings))
        limiters[category] = limiter
    return limiter


def enforce_rate_limit(category: str = "default") -> Callable[..., None]:
    def dependency(request: Request, response: Response, settings: SettingsDep) -> None:
        if not settings.rate_limit_enabled:
            return
        limiter = get_rate_limiter(request.app, category, settings)
        decision = limiter.hit(f"{category}:{client_ip(request) or 'unknown'}")
        headers = decision.headers()
        if not decision.allowed:
            logger.warning(
                "rate_limit.exceeded",
                extra=log_context(category=category, client_ip=client_ip(request)),
            )
            raise RateLimitedError(retry_after=decision.reset_after, headers=headers)
        response.headers.update(headers)

    return dependency


__all__ = [
    "CapabilityRegistryDep",
    "ConfirmedDep",
    "CurrentContext",
    "GovernanceEngineDep",
    "OptionalContext",
    "PermissionCacheDep",
    "ReadSessionDep",
    "RoleServiceDep",
    "SUPER_ADMIN_HEADER",
    "SettingsDep",
    "SuperAdminContext",
    "WriteSessionDep",
    "audit_super_admin_action",
    "authorize_roles",
    "capability_checked",
    "capability_required",
    "enforce_rate_limit",
    "get_app_settings",
    "get_current_context",
    "get_optional_context",
    "get_permission_cache",
    "get_rate_limiter",
    "path_param",
    "read_confirmation",
    "require_any_permission",
    "require_destructive_confirmation",
    "require_permission",
    "require_super_admin",
]

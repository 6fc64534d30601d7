"""Aggregate the versioned control-plane routers."""

from __future__ import annotations

from fastapi import APIRouter

from campus_api.features.audit.router import router as audit_router
from campus_api.features.capabilities.router import router as capabilities_router
from campus_api.features.governance.router import router as governance_router
from campus_api.features.identities.router import router as me_router
from campus_api.features.panels.router import router as panels_router
from campus_api.features.rbac.router import router as rbac_router

API_VERSION_PREFIX = "/v1"


def create_api_router() -> APIRouter:
    api_router = APIRouter(prefix=API_VERSION_PREFIX)
    api_router.include_router(me_router)
    api_router.include_router(capabilities_router)
    api_router.include_router(panels_router)
    api_router.include_router(rbac_router)
    api_router.include_router(governance_router)
    api_router.include_router(audit_router)
    return api_router


__all__ = ["API_VERSION_PREFIX", "create_api_router"]

"""Authentication primitives shared by HTTP dependencies."""

from .pipeline import authenticate_request, resolve_principal
from .principal import AuthContext, AuthenticatedPrincipal, AuthVia, PanelSummary

__all__ = [
    "AuthContext",
    "AuthVia",
    "AuthenticatedPrincipal",
    "PanelSummary",
    "authenticate_request",
    "resolve_principal",
]

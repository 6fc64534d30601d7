"""Shared identity and access foundation layer.

Feature modules depend on these contracts (auth, RBAC, HTTP guards); keep
dependencies pointed inwards here to avoid cross-feature coupling.
"""

__all__ = [
    "auth",
    "http",
    "rbac",
    "security",
]

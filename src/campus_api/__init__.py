"""Authorization, capability and governance control plane API."""

__all__ = ["cli", "main", "settings"]

"""Common utilities and helpers used across the API service."""

__all__ = [
    "errors",
    "exceptions",
    "logging",
    "middleware",
    "network",
    "rate_limit",
    "schema",
]

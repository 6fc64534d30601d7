"""Request network helpers."""

from __future__ import annotations

from starlette.requests import HTTPConnection


def client_ip(conn: HTTPConnection) -> str | None:
    """Originating address: first ``X-Forwarded-For`` hop, then ``X-Real-IP``, then the peer."""

    forwarded = conn.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = (conn.headers.get("x-real-ip") or "").strip()
    if real_ip:
        return real_ip
    if conn.client is not None:
        return conn.client.host
    return None


__all__ = ["client_ip"]

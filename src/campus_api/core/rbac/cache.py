"""Process-local, time-bounded cache of flattened permission sets."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from uuid import UUID

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CachedPermissions:
    permissions: frozenset[str]
    expires_at: float


class PermissionCache:
    """Per-identity permission cache with an explicit invalidation contract.

    Reads never take the lock; entries are immutable and replaced wholesale.
    ``invalidate(identity_id)`` drops one identity, ``invalidate()`` drops all.
    """

    def __init__(
        self,
        *,
        ttl_seconds: float = 300,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = float(ttl_seconds)
        self._clock = clock
        self._entries: dict[UUID, CachedPermissions] = {}
        self._lock = threading.Lock()

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def get(self, identity_id: UUID) -> frozenset[str] | None:
        entry = self._entries.get(identity_id)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            return None
        return entry.permissions

    def set(self, identity_id: UUID, permissions: frozenset[str]) -> None:
        if self._ttl <= 0:
            return
        entry = CachedPermissions(
            permissions=frozenset(permissions),
            expires_at=self._clock() + self._ttl,
        )
        with self._lock:
            self._entries[identity_id] = entry

    def invalidate(self, identity_id: UUID | None = None) -> None:
        with self._lock:
            if identity_id is None:
                dropped = len(self._entries)
                self._entries.clear()
            else:
                dropped = 1 if self._entries.pop(identity_id, None) is not None else 0
        logger.debug(
            "rbac.cache.invalidated",
            extra={
                "scope": "all" if identity_id is None else "identity",
                "user_id": str(identity_id) if identity_id else None,
                "dropped": dropped,
            },
        )

    def __len__(self) -> int:
        return len(self._entries)


__all__ = ["CachedPermissions", "PermissionCache"]

"""Simple in-memory rate limiting helpers."""

from __future__ import annotations

import math
import threading
import time
from collections import defaultdict, deque
from collections.abc import Callable
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class RateLimit:
    max_requests: int
    window_seconds: int


@dataclass(frozen=True, slots=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_after: int

    def headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_after),
        }


class InMemoryRateLimiter:
    """Sliding-window limiter keyed by arbitrary strings."""

    def __init__(
        self,
        *,
        limit: RateLimit,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._limit = limit
        self._clock = clock
        self._events: defaultdict[str, deque[float]] = defaultdict(deque)
        self._lock = threading.Lock()

    @property
    def limit(self) -> RateLimit:
        return self._limit

    def hit(self, key: str, *, now: float | None = None) -> RateLimitDecision:
        timestamp = now if now is not None else self._clock()
        window_start = timestamp - self._limit.window_seconds
        with self._lock:
            events = self._events[key]
            while events and events[0] <= window_start:
                events.popleft()

            if len(events) >= self._limit.max_requests:
                reset_after = math.ceil(events[0] + self._limit.window_seconds - timestamp)
                return RateLimitDecision(
                    allowed=False,
                    limit=self._limit.max_requests,
                    remaining=0,
                    reset_after=max(reset_after, 1),
                )

            events.append(timestamp)
            reset_after = math.ceil(events[0] + self._limit.window_seconds - timestamp)
            return RateLimitDecision(
                allowed=True,
                limit=self._limit.max_requests,
                remaining=self._limit.max_requests - len(events),
                reset_after=max(reset_after, 0),
            )

    def allow(self, key: str, *, now: float | None = None) -> bool:
        return self.hit(key, now=now).allowed

    def reset(self) -> None:
        with self._lock:
            self._events.clear()


__all__ = ["InMemoryRateLimiter", "RateLimit", "RateLimitDecision"]

from __future__ import annotations

from campus_api.common.rate_limit import InMemoryRateLimiter, RateLimit


def test_limiter_blocks_when_full_and_recovers():
    limiter = InMemoryRateLimiter(limit=RateLimit(max_requests=2, window_seconds=60))

    first = limiter.hit("governance:10.0.0.1", now=0)
    second = limiter.hit("governance:10.0.0.1", now=1)
    blocked = limiter.hit("governance:10.0.0.1", now=2)

    assert (first.allowed, first.remaining) == (True, 1)
    assert (second.allowed, second.remaining) == (True, 0)
    assert blocked.allowed is False
    assert blocked.reset_after == 58
    assert limiter.allow("governance:10.0.0.1", now=61)


def test_limiter_keys_are_independent():
    limiter = InMemoryRateLimiter(limit=RateLimit(max_requests=1, window_seconds=60))

    assert limiter.allow("default:a", now=0)
    assert not limiter.allow("default:a", now=1)
    assert limiter.allow("default:b", now=1)


def test_decision_headers():
    limiter = InMemoryRateLimiter(limit=RateLimit(max_requests=5, window_seconds=30))

    headers = limiter.hit("k", now=0).headers()

    assert headers == {
        "X-RateLimit-Limit": "5",
        "X-RateLimit-Remaining": "4",
        "X-RateLimit-Reset": "30",
    }


def test_reset_clears_history():
    limiter = InMemoryRateLimiter(limit=RateLimit(max_requests=1, window_seconds=60))
    limiter.hit("k", now=0)

    limiter.reset()

    assert limiter.allow("k", now=1)

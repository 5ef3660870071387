"""
tests/test_rate_limiter.py

Fixed-window limiter, bucket store and TTL cache, all driven by a fake clock.
"""

from __future__ import annotations

import pytest

from app.errors import ErrorCode, RateLimitedError
from app.services.rate_limiter import RateLimiter, client_identity
from app.stores import BucketStore, RateBucket, TTLCache
from tests.conftest import FakeClock


def _limiter(clock: FakeClock, *, limit: int = 3, window: float = 60.0, buckets: int = 500):
    return RateLimiter(
        name="insights",
        max_requests=limit,
        window_seconds=window,
        store=BucketStore(max_buckets=buckets, clock=clock),
    )


class TestRateLimiter:
    def test_allows_up_to_limit_then_rejects(self, clock: FakeClock) -> None:
        limiter = _limiter(clock, limit=3)
        decisions = [limiter.hit("10.0.0.1") for _ in range(4)]
        assert [d.allowed for d in decisions] == [True, True, True, False]
        assert decisions[-1].count == 4

    def test_clients_are_counted_independently(self, clock: FakeClock) -> None:
        limiter = _limiter(clock, limit=1)
        assert limiter.hit("a").allowed
        assert limiter.hit("b").allowed
        assert not limiter.hit("a").allowed

    def test_window_resets_after_expiry(self, clock: FakeClock) -> None:
        limiter = _limiter(clock, limit=1, window=60.0)
        assert limiter.hit("a").allowed
        assert not limiter.hit("a").allowed
        clock.advance(60.0)
        # Still inside the window: reset only once now > reset_at.
        assert not limiter.hit("a").allowed
        clock.advance(0.5)
        decision = limiter.hit("a")
        assert decision.allowed
        assert decision.count == 1

    def test_check_raises_with_retry_after(self, clock: FakeClock) -> None:
        limiter = _limiter(clock, limit=1, window=60.0)
        limiter.check("a")
        clock.advance(20.2)
        with pytest.raises(RateLimitedError) as exc_info:
            limiter.check("a")
        err = exc_info.value
        assert err.status == 429
        assert err.code is ErrorCode.RATE_LIMITED
        assert err.retry_after_seconds == 40
        assert err.details == {"limiter": "insights", "limit": 1, "retryAfterSeconds": 40}

    def test_custom_message_is_used(self, clock: FakeClock) -> None:
        limiter = RateLimiter(
            name="x",
            max_requests=1,
            window_seconds=10,
            store=BucketStore(max_buckets=5, clock=clock),
            message="slow down",
        )
        limiter.check("a")
        with pytest.raises(RateLimitedError, match="slow down"):
            limiter.check("a")

    def test_empty_client_id_uses_shared_bucket(self, clock: FakeClock) -> None:
        limiter = _limiter(clock, limit=1)
        limiter.hit("")
        assert not limiter.hit("unknown").allowed


class TestBucketStore:
    def test_sweeps_only_expired_buckets_when_oversized(self, clock: FakeClock) -> None:
        store = BucketStore(max_buckets=2, clock=clock)
        store.put("old", RateBucket(count=1, reset_at=10.0))
        store.put("live-1", RateBucket(count=1, reset_at=5000.0))
        assert store.sweep_if_oversized(now=100.0) == 0

        store.put("live-2", RateBucket(count=1, reset_at=5000.0))
        assert store.sweep_if_oversized(now=100.0) == 1
        assert store.get("old") is None
        assert len(store) == 2

    def test_limiter_keeps_table_bounded(self, clock: FakeClock) -> None:
        limiter = _limiter(clock, limit=5, window=1.0, buckets=3)
        for idx in range(3):
            limiter.hit(f"client-{idx}")
        clock.advance(5.0)
        limiter.hit("client-new")
        assert len(limiter._store) == 1


class TestTTLCache:
    def test_entry_expires_after_ttl(self, clock: FakeClock) -> None:
        cache: TTLCache[str] = TTLCache(ttl_seconds=300, clock=clock)
        cache.set("represas", "value")
        clock.advance(299)
        assert cache.get("represas") == "value"
        clock.advance(2)
        assert cache.get("represas") is None
        assert len(cache) == 0

    def test_per_entry_ttl_override(self, clock: FakeClock) -> None:
        cache: TTLCache[int] = TTLCache(ttl_seconds=300, clock=clock)
        cache.set("short", 1, ttl_seconds=5)
        clock.advance(6)
        assert cache.get("short") is None

    def test_clear(self, clock: FakeClock) -> None:
        cache: TTLCache[int] = TTLCache(ttl_seconds=300, clock=clock)
        cache.set("a", 1)
        cache.clear()
        assert cache.get("a") is None


class TestClientIdentity:
    @pytest.mark.parametrize(
        "forwarded, remote, expected",
        [
            ("203.0.113.7, 10.0.0.1", "10.0.0.2", "203.0.113.7"),
            (" , 10.0.0.1", "10.0.0.2", "10.0.0.2"),
            (None, "10.0.0.2", "10.0.0.2"),
            (None, None, "unknown"),
        ],
    )
    def test_resolution_order(self, forwarded, remote, expected) -> None:
        assert client_identity(forwarded, remote) == expected

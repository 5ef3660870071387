"""
Fixed-window request rate limiter keyed by client identity.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from app.errors import RateLimitedError
from app.stores import BucketStore, RateBucket

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT = "unknown"


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    count: int
    limit: int
    reset_at: float
    retry_after_seconds: int


class RateLimiter:
    """
    Counts requests per client in fixed windows of ``window_seconds``.

    The first request of a window creates (or resets) the bucket with
    ``count=1``; later requests increment it and are rejected once the count
    exceeds ``max_requests``. The whole read-modify-write for one hit runs
    under the store lock.
    """

    def __init__(
        self,
        *,
        name: str,
        max_requests: int,
        window_seconds: float,
        store: BucketStore,
        message: str | None = None,
    ) -> None:
        self.name = name
        self._max_requests = max(1, max_requests)
        self._window_seconds = max(0.001, window_seconds)
        self._store = store
        self._message = message

    @property
    def max_requests(self) -> int:
        return self._max_requests

    def hit(self, client_id: str) -> RateLimitDecision:
        """
        Record one request for ``client_id`` and report whether it is allowed.
        """

        key = client_id or UNKNOWN_CLIENT
        with self._store.lock:
            now = self._store.clock()
            bucket = self._store.get(key)
            if bucket is None or now > bucket.reset_at:
                bucket = RateBucket(count=1, reset_at=now + self._window_seconds)
                self._store.put(key, bucket)
            else:
                bucket.count += 1
            self._store.sweep_if_oversized(now)

            allowed = bucket.count <= self._max_requests
            retry_after = 0 if allowed else max(1, math.ceil(bucket.reset_at - now))
            return RateLimitDecision(
                allowed=allowed,
                count=bucket.count,
                limit=self._max_requests,
                reset_at=bucket.reset_at,
                retry_after_seconds=retry_after,
            )

    def check(self, client_id: str) -> None:
        """
        Record one request and raise :class:`RateLimitedError` when over the limit.
        """

        decision = self.hit(client_id)
        if decision.allowed:
            return
        logger.warning(
            "Rate limit %r exceeded client=%s count=%d limit=%d",
            self.name,
            client_id,
            decision.count,
            decision.limit,
        )
        raise RateLimitedError(
            self._message,
            retry_after_seconds=decision.retry_after_seconds,
            details={"limiter": self.name, "limit": decision.limit},
        )


def client_identity(
    forwarded_for: str | None,
    remote_address: str | None,
) -> str:
    """
    Best-effort client identity: first forwarded address, else the
    connection address, else a constant fallback.
    """

    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first
    if remote_address:
        return remote_address
    return UNKNOWN_CLIENT

"""
Fixed-window rate limiting backed by the Django cache.

Counters are shared by every worker that uses the same cache, so the
increment goes through ``cache.add`` + ``cache.incr`` rather than a
read-modify-write.
"""
import time
from dataclasses import dataclass
from typing import Callable, Optional

from django.core.cache import caches
from django.core.cache.backends.base import BaseCache

from .exceptions import RateLimitExceeded
from .logging_utils import get_security_logger

logger = get_security_logger("rate_limiter")

CACHE_KEY_PREFIX = "wms_ratelimit"


@dataclass(frozen=True)
class RateLimitCounter:
    key: str
    count: int
    window_start: float
    expires_at: float

    def remaining(self, max_requests: int) -> int:
        return max(0, max_requests - self.count)


class RateLimiter:
    """
    Counts requests per key inside wall-clock aligned windows.

    When a window expires the next request lands in a fresh bucket and
    starts again at 1; the old bucket is evicted by the cache timeout.
    """

    def __init__(self, cache_alias: str = 'default', clock: Optional[Callable[[], float]] = None):
        self.cache_alias = cache_alias
        self.clock = clock or time.time
        self._backend_checked = False

    @property
    def cache(self):
        return caches[self.cache_alias]

    @property
    def atomic_increments(self) -> bool:
        """False for backends whose incr() is the generic get-then-set."""
        return type(self.cache).incr is not BaseCache.incr

    def _check_backend(self):
        if self._backend_checked:
            return
        self._backend_checked = True
        if not self.atomic_increments:
            logger.warning(
                "Cache backend %s for alias %s does not increment atomically; "
                "concurrent requests can exceed rate limits",
                type(self.cache).__name__, self.cache_alias,
                extra={"operation": "check_backend"}
            )

    def _bucket(self, key: str, window_seconds: int, now: float):
        window_start = now - (now % window_seconds)
        cache_key = f"{CACHE_KEY_PREFIX}:{key}:{window_seconds}:{int(window_start)}"
        return cache_key, window_start, window_start + window_seconds

    def _increment(self, cache_key: str, timeout: int) -> int:
        if self.cache.add(cache_key, 1, timeout=timeout):
            return 1
        try:
            return self.cache.incr(cache_key)
        except ValueError:
            # Evicted between add() and incr(); this request opens the bucket.
            self.cache.set(cache_key, 1, timeout=timeout)
            return 1

    def check_rate_limit(self, key: str, max_requests: int, window_seconds: int) -> RateLimitCounter:
        """Increment ``key`` and raise ``RateLimitExceeded`` past ``max_requests``.

        The counter keeps the increment even when the request is rejected.
        """
        if max_requests < 0 or window_seconds <= 0:
            raise ValueError("max_requests must be >= 0 and window_seconds > 0")
        self._check_backend()

        now = self.clock()
        cache_key, window_start, expires_at = self._bucket(key, window_seconds, now)
        # One extra second so the bucket never vanishes before the window closes.
        count = self._increment(cache_key, int(expires_at - now) + 1)
        counter = RateLimitCounter(key=key, count=count, window_start=window_start, expires_at=expires_at)

        if count > max_requests:
            retry_after = int(expires_at - now) + 1
            logger.warning(
                "Rate limit exceeded for %s: %s requests (limit %s/%ss)",
                key, count, max_requests, window_seconds,
                extra={"operation": "check_rate_limit"}
            )
            raise RateLimitExceeded(key, max_requests, window_seconds, retry_after=retry_after)

        return counter

    def current_count(self, key: str, window_seconds: int) -> int:
        cache_key, _, _ = self._bucket(key, window_seconds, self.clock())
        return self.cache.get(cache_key, 0)


def rate_limit_key(action: str, identity: str) -> str:
    """Distinct actions never share a counter."""
    return f"{action}_{identity}"


# Global rate limiter instance
rate_limiter = RateLimiter()


def check_rate_limit(key: str, max_requests: int, window_seconds: int) -> RateLimitCounter:
    return rate_limiter.check_rate_limit(key, max_requests, window_seconds)

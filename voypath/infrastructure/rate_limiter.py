"""Per-caller request limits.

One process uses ``InMemoryRateLimiter`` (sliding window). Several API
instances share a ``RedisRateLimiter`` (fixed window per bucket) by pointing
``RATE_LIMIT_REDIS_URL`` or ``REDIS_URL`` at the same server. Both answer
with a ``RateLimitDecision`` so the API can emit ``Retry-After``.
"""

from __future__ import annotations

import logging
import math
import os
import threading
import time
from collections import deque
from dataclasses import dataclass

import redis

from voypath.security.redact import redact_sensitive

_logger = logging.getLogger("voypath.rate-limit")
_DEFAULT_PREFIX = "voypath:ratelimit:"
# idle callers are dropped once this many keys are tracked
_MAX_TRACKED_KEYS = 10_000


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    retry_after: int = 0


class InMemoryRateLimiter:
    """Thread-safe sliding-window limiter for a single process."""

    backend = "memory"

    def __init__(self, max_requests: int, window_seconds: int):
        self._max = max(1, int(max_requests))
        self._window = max(1, int(window_seconds))
        self._hits: dict[str, deque[float]] = {}
        self._lock = threading.Lock()

    def _prune(self, now: float) -> None:
        for key in [k for k, hits in self._hits.items() if not hits or now - hits[-1] >= self._window]:
            del self._hits[key]

    def check(self, key: str) -> RateLimitDecision:
        now = time.time()
        with self._lock:
            hits = self._hits.get(key)
            if hits is None:
                if len(self._hits) >= _MAX_TRACKED_KEYS:
                    self._prune(now)
                hits = self._hits[key] = deque()
            while hits and now - hits[0] >= self._window:
                hits.popleft()
            if len(hits) >= self._max:
                return RateLimitDecision(False, 0, max(1, math.ceil(self._window - (now - hits[0]))))
            hits.append(now)
            return RateLimitDecision(True, self._max - len(hits))

    def allow(self, key: str) -> bool:
        return self.check(key).allowed

    def tracked_keys(self) -> int:
        with self._lock:
            return len(self._hits)


class RedisRateLimiter:
    """Redis-backed fixed-window limiter for multi-instance deployments."""

    backend = "redis"

    def __init__(
        self,
        redis_url: str,
        max_requests: int,
        window_seconds: int,
        prefix: str = _DEFAULT_PREFIX,
    ):
        self._max = max(1, int(max_requests))
        self._window = max(1, int(window_seconds))
        self._prefix = prefix
        self._client = redis.Redis.from_url(redis_url, decode_responses=True)
        self._client.ping()

    def check(self, key: str) -> RateLimitDecision:
        now = int(time.time())
        bucket = now // self._window
        redis_key = f"{self._prefix}{key}:{bucket}"
        count = int(self._client.incr(redis_key))
        if count == 1:
            self._client.expire(redis_key, self._window + 5)
        if count > self._max:
            return RateLimitDecision(False, 0, (bucket + 1) * self._window - now)
        return RateLimitDecision(True, self._max - count)

    def allow(self, key: str) -> bool:
        return self.check(key).allowed


def get_rate_limiter(max_requests: int, window_seconds: int):
    redis_url = os.getenv("RATE_LIMIT_REDIS_URL") or os.getenv("REDIS_URL")
    if redis_url:
        try:
            limiter = RedisRateLimiter(redis_url, max_requests, window_seconds)
            _logger.info("Rate limiter initialized with Redis backend")
            return limiter
        except redis.RedisError as exc:
            _logger.warning(
                "Failed to initialize Redis rate limiter, fallback to memory: %s",
                redact_sensitive(str(exc)),
            )

    return InMemoryRateLimiter(max_requests=max_requests, window_seconds=window_seconds)

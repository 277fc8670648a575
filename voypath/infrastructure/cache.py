"""In-process TTL caches for provider responses.

Keys are namespaced (``tp_direct:<digest>``) so one provider's entries can be
dropped without clearing the rest. A full cache first purges expired entries
and only then evicts the live entries closest to expiry.
"""

from __future__ import annotations

import hashlib
import json
import threading
import time
from collections.abc import Callable
from typing import Any, Optional, TypeVar

T = TypeVar("T")

_MISSING = object()


class MemoryCache:
    def __init__(self, name: str, default_ttl: float = 300.0, max_size: int = 500):
        self.name = name
        self._store: dict[str, tuple[Any, float]] = {}
        self._default_ttl = default_ttl
        self._max_size = max(1, max_size)
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def _lookup(self, key: str, now: float) -> Any:
        entry = self._store.get(key)
        if entry is None:
            return _MISSING
        if now >= entry[1]:
            del self._store[key]
            return _MISSING
        return entry[0]

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            value = self._lookup(key, time.monotonic())
            if value is _MISSING:
                self._misses += 1
                return None
            self._hits += 1
            return value

    def _make_room(self, now: float) -> None:
        expired = [k for k, (_, expire_at) in self._store.items() if now >= expire_at]
        for k in expired:
            del self._store[k]
        if len(self._store) < self._max_size:
            return
        # a tenth of the capacity, soonest expiry first
        victims = sorted(self._store, key=lambda k: self._store[k][1])[: self._max_size // 10 + 1]
        for k in victims:
            del self._store[k]
        self._evictions += len(victims)

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        ttl = ttl if ttl is not None else self._default_ttl
        now = time.monotonic()
        with self._lock:
            if key not in self._store and len(self._store) >= self._max_size:
                self._make_room(now)
            self._store[key] = (value, now + ttl)

    def get_or_load(self, key: str, loader: Callable[[], T], ttl: Optional[float] = None) -> T:
        """Cached value for ``key``, else ``loader()`` stored under it.

        The loader runs outside the lock; an exception from it is not cached.
        """
        with self._lock:
            value = self._lookup(key, time.monotonic())
            if value is not _MISSING:
                self._hits += 1
                return value
            self._misses += 1
        value = loader()
        self.set(key, value, ttl)
        return value

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)

    def invalidate_namespace(self, namespace: str) -> int:
        prefix = f"{namespace}:"
        with self._lock:
            doomed = [k for k in self._store if k.startswith(prefix)]
            for k in doomed:
                del self._store[k]
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()
            self._hits = 0
            self._misses = 0
            self._evictions = 0

    @property
    def stats(self) -> dict[str, Any]:
        with self._lock:
            total = self._hits + self._misses
            return {
                "name": self.name,
                "size": len(self._store),
                "max_size": self._max_size,
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "hit_rate": round(self._hits / total, 3) if total > 0 else 0.0,
            }


def make_cache_key(namespace: str, *parts: Any) -> str:
    """``namespace:<sha256 prefix>`` of the JSON-encoded parts; None and "" stay distinct."""
    raw = json.dumps(parts, default=str, ensure_ascii=False)
    return f"{namespace}:{hashlib.sha256(raw.encode('utf-8')).hexdigest()[:32]}"


# TravelPayouts prices are refreshed upstream a few times a day.
flight_cache = MemoryCache("flights", default_ttl=1800.0, max_size=300)

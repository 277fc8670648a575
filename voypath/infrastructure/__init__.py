"""Infrastructure services and cross-cutting utilities."""

from voypath.infrastructure.cache import MemoryCache, flight_cache, make_cache_key
from voypath.infrastructure.rate_limiter import get_rate_limiter

__all__ = [
    "MemoryCache",
    "flight_cache",
    "get_rate_limiter",
    "make_cache_key",
]

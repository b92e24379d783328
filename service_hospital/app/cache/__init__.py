"""
Cache package for the Hospital Service.

Provides the cache-aside layer used by the hospital read/write paths:
Redis as the primary backend, a bounded in-process map while Redis is
unreachable, TTL expiry and wildcard invalidation.
"""

from .cache_service import CacheService, DEFAULT_TTL
from .fallback import CacheEntry, FallbackStore
from .keys import CacheKeys, CacheTTL
from .primary import ConnectionState, RedisPrimaryBackend

__all__ = [
    "CacheService",
    "DEFAULT_TTL",
    "CacheEntry",
    "FallbackStore",
    "CacheKeys",
    "CacheTTL",
    "ConnectionState",
    "RedisPrimaryBackend",
]

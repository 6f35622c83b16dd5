"""Response Caching Layer.

Public API:
    CacheBackend          - Abstract base for all backends
    RedisCacheBackend     - Redis-backed store
    InMemoryCacheBackend  - Dict-backed store for dev/testing
    get_cache_backend     - Factory: selects backend (or None) from settings

    CacheMiddleware       - ASGI middleware for HTTP response caching
    CacheRule             - Path pattern + TTL for a cache-wrapped route

    CacheInvalidator      - Pattern-based invalidation for write paths
    build_cache_key       - Deterministic key for a request signature
"""

from storefront.cache.backend import (
    CacheBackend,
    InMemoryCacheBackend,
    RedisCacheBackend,
    get_cache_backend,
)
from storefront.cache.invalidation import CacheInvalidator, get_cache_invalidator
from storefront.cache.keys import build_cache_key
from storefront.cache.middleware import CacheMiddleware, CacheRule

__all__ = [
    "CacheBackend",
    "RedisCacheBackend",
    "InMemoryCacheBackend",
    "get_cache_backend",
    "CacheMiddleware",
    "CacheRule",
    "CacheInvalidator",
    "get_cache_invalidator",
    "build_cache_key",
]

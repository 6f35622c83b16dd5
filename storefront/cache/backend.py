"""Cache backend implementations.

Defines the CacheBackend ABC and two concrete implementations:
- RedisCacheBackend: networked store using redis.asyncio with JSON values
- InMemoryCacheBackend: dict-based store with TTL, for dev and tests

The factory get_cache_backend() selects a backend from settings. An unset
REDIS_URL returns None, which disables response caching entirely. Every
backend method swallows store errors after logging them, so callers can
treat the cache as best-effort.
"""

from __future__ import annotations

import asyncio
import fnmatch
import json
import time
from abc import ABC, abstractmethod
from typing import Any

import redis.asyncio as aioredis
import structlog

log = structlog.get_logger(__name__)

MEMORY_URL = "memory://"


class CacheBackend(ABC):
    """Abstract interface all cache backends must implement."""

    name: str = "abstract"

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Return cached value for key, or None if not found / expired."""

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: int) -> None:
        """Store value under key with TTL in seconds."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete key from cache (no-op if key does not exist)."""

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Return True if key exists and has not expired."""

    @abstractmethod
    async def delete_pattern(self, pattern: str) -> int:
        """Delete all keys matching a glob pattern. Returns deleted count."""

    @abstractmethod
    async def flush_all(self) -> None:
        """Remove ALL keys from the cache. Use with caution."""

    @abstractmethod
    async def info(self) -> dict[str, Any]:
        """Return backend-specific info/stats dict."""

    async def ping(self) -> bool:
        """Return True if the store answers."""
        return True

    async def close(self) -> None:
        """Release any connections held by the backend."""


# ---------------------------------------------------------------------------
# Redis backend
# ---------------------------------------------------------------------------


class RedisCacheBackend(CacheBackend):
    """Cache backend backed by Redis.

    The client is created here, at bootstrap, rather than by the first
    request that needs it. redis-py connects lazily per command, so an
    unreachable server does not block construction; it surfaces as a
    logged failure on each call instead. Values are JSON-serialised so
    they round-trip without pickle.
    """

    name = "redis"

    def __init__(
        self,
        redis_url: str,
        *,
        connect_timeout: float = 10.0,
        command_timeout: float = 5.0,
        client: Any = None,
    ) -> None:
        self._redis_url = redis_url
        self._client = client or aioredis.from_url(
            redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=connect_timeout,
            socket_timeout=command_timeout,
        )

    async def get(self, key: str) -> Any | None:
        try:
            raw = await self._client.get(key)
            if raw is None:
                return None
            return json.loads(raw)
        except Exception as exc:
            log.warning("cache.redis.get_failed", key=key, error=str(exc))
            return None

    async def set(self, key: str, value: Any, ttl: int) -> None:
        try:
            serialised = json.dumps(value)
            await self._client.setex(key, ttl, serialised)
        except Exception as exc:
            log.warning("cache.redis.set_failed", key=key, error=str(exc))

    async def delete(self, key: str) -> None:
        try:
            await self._client.delete(key)
        except Exception as exc:
            log.warning("cache.redis.delete_failed", key=key, error=str(exc))

    async def exists(self, key: str) -> bool:
        try:
            return bool(await self._client.exists(key))
        except Exception as exc:
            log.warning("cache.redis.exists_failed", key=key, error=str(exc))
            return False

    async def delete_pattern(self, pattern: str) -> int:
        """Delete all keys matching a glob pattern using SCAN + DEL.

        SCAN is used instead of KEYS so a large keyspace never blocks the
        server. Keys are deleted in batches of the scan page size.
        """
        try:
            deleted = 0
            batch: list[str] = []
            async for key in self._client.scan_iter(match=pattern, count=100):
                batch.append(key)
                if len(batch) >= 100:
                    deleted += await self._client.delete(*batch)
                    batch = []
            if batch:
                deleted += await self._client.delete(*batch)
            log.debug("cache.redis.pattern_deleted", pattern=pattern, deleted=deleted)
            return deleted
        except Exception as exc:
            log.warning("cache.redis.delete_pattern_failed", pattern=pattern, error=str(exc))
            return 0

    async def flush_all(self) -> None:
        try:
            await self._client.flushdb()
            log.info("cache.redis.flushed_all")
        except Exception as exc:
            log.warning("cache.redis.flush_all_failed", error=str(exc))

    async def info(self) -> dict[str, Any]:
        try:
            redis_info = await self._client.info()
            dbsize = await self._client.dbsize()
            hits = int(redis_info.get("keyspace_hits", 0))
            misses = int(redis_info.get("keyspace_misses", 0))
            total = hits + misses
            return {
                "backend": self.name,
                "connected": True,
                "total_keys": dbsize,
                "hits": hits,
                "misses": misses,
                "hit_rate": round(hits / total, 4) if total else 0.0,
                "used_memory_human": redis_info.get("used_memory_human", "unknown"),
            }
        except Exception as exc:
            return {
                "backend": self.name,
                "connected": False,
                "error": str(exc),
            }

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except Exception as exc:
            log.warning("cache.redis.unavailable", error=str(exc))
            return False

    async def close(self) -> None:
        """Close the Redis connection pool."""
        try:
            await self._client.aclose()
        except Exception as exc:
            log.warning("cache.redis.close_failed", error=str(exc))


# ---------------------------------------------------------------------------
# In-memory backend (testing / dev)
# ---------------------------------------------------------------------------


class _CacheEntry:
    """Single entry stored by InMemoryCacheBackend."""

    __slots__ = ("value", "expires_at")

    def __init__(self, value: Any, ttl: int) -> None:
        self.value = value
        self.expires_at: float = time.monotonic() + ttl

    @property
    def is_expired(self) -> bool:
        return time.monotonic() >= self.expires_at


class InMemoryCacheBackend(CacheBackend):
    """Dict-backed cache with TTL support.

    Guarded by an asyncio.Lock. Suitable for tests and single-process
    dev environments. Does NOT persist across process restarts.
    """

    name = "memory"

    def __init__(self) -> None:
        self._store: dict[str, _CacheEntry] = {}
        self._lock = asyncio.Lock()
        self._hits: int = 0
        self._misses: int = 0

    async def get(self, key: str) -> Any | None:
        async with self._lock:
            entry = self._store.get(key)
            if entry is None or entry.is_expired:
                if entry is not None:
                    del self._store[key]
                self._misses += 1
                return None
            self._hits += 1
            return entry.value

    async def set(self, key: str, value: Any, ttl: int) -> None:
        # Round-trip through JSON so stored values behave like the Redis
        # backend: detached from the caller and limited to JSON types.
        try:
            serialised = json.loads(json.dumps(value))
        except (TypeError, ValueError) as exc:
            log.warning("cache.memory.set_failed", key=key, error=str(exc))
            return
        async with self._lock:
            self._store[key] = _CacheEntry(serialised, ttl)

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._store.pop(key, None)

    async def exists(self, key: str) -> bool:
        async with self._lock:
            entry = self._store.get(key)
            if entry is None or entry.is_expired:
                if entry is not None:
                    del self._store[key]
                return False
            return True

    async def delete_pattern(self, pattern: str) -> int:
        """Delete all keys matching a glob pattern (fnmatchcase semantics)."""
        async with self._lock:
            to_delete = [k for k in self._store if fnmatch.fnmatchcase(k, pattern)]
            for k in to_delete:
                del self._store[k]
            return len(to_delete)

    async def flush_all(self) -> None:
        async with self._lock:
            self._store.clear()
            self._hits = 0
            self._misses = 0
        log.info("cache.memory.flushed_all")

    async def info(self) -> dict[str, Any]:
        async with self._lock:
            expired = [k for k, v in self._store.items() if v.is_expired]
            for k in expired:
                del self._store[k]

            total_requests = self._hits + self._misses
            hit_rate = self._hits / total_requests if total_requests > 0 else 0.0

            return {
                "backend": self.name,
                "connected": True,
                "total_keys": len(self._store),
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": round(hit_rate, 4),
            }


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def get_cache_backend(settings: Any) -> CacheBackend | None:
    """Return the CacheBackend selected by settings, or None.

    - REDIS_URL unset or empty: None, caching disabled
    - REDIS_URL == "memory://": InMemoryCacheBackend
    - anything else: RedisCacheBackend for that URL

    Args:
        settings: Application Settings instance.
    """
    redis_url: str | None = getattr(settings, "redis_url", None)

    if not redis_url:
        log.info("cache.disabled", reason="REDIS_URL not configured")
        return None

    if redis_url == MEMORY_URL:
        log.info("cache.backend_selected", backend="memory")
        return InMemoryCacheBackend()

    log.info("cache.backend_selected", backend="redis", url=redis_url.split("@")[-1])
    return RedisCacheBackend(
        redis_url,
        connect_timeout=getattr(settings, "cache_connect_timeout", 10.0),
        command_timeout=getattr(settings, "cache_command_timeout", 5.0),
    )

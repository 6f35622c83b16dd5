"""Tests for the cache backends.

Covers:
- InMemoryCacheBackend: get/set/TTL/delete/exists/pattern/flush/info
- RedisCacheBackend: delegation to a mocked redis client, error swallowing
- get_cache_backend factory: selects backend (or None) from settings
"""

from __future__ import annotations

import json
import time
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest


# ---------------------------------------------------------------------------
# InMemoryCacheBackend
# ---------------------------------------------------------------------------


class TestInMemoryCacheBackend:
    """Unit tests for InMemoryCacheBackend."""

    @pytest.fixture
    def backend(self):
        from storefront.cache.backend import InMemoryCacheBackend
        return InMemoryCacheBackend()

    @pytest.mark.asyncio
    async def test_set_and_get_returns_value(self, backend):
        await backend.set("cache:GET:/api/products", {"status_code": 200, "body": [1]}, ttl=60)
        assert await backend.get("cache:GET:/api/products") == {"status_code": 200, "body": [1]}

    @pytest.mark.asyncio
    async def test_get_missing_key_returns_none(self, backend):
        assert await backend.get("nonexistent") is None

    @pytest.mark.asyncio
    async def test_expired_entry_not_returned(self, backend):
        """Expired entries return None and are pruned from the store."""
        from storefront.cache.backend import _CacheEntry
        backend._store["stale"] = _CacheEntry(value="old", ttl=0)
        assert await backend.get("stale") is None
        assert "stale" not in backend._store

    @pytest.mark.asyncio
    async def test_entry_expires_after_ttl(self, backend):
        await backend.set("key", {"a": 1}, ttl=60)
        backend._store["key"].expires_at = time.monotonic() - 1
        assert await backend.exists("key") is False

    @pytest.mark.asyncio
    async def test_stored_value_is_detached_from_caller(self, backend):
        value = {"items": [1, 2]}
        await backend.set("key", value, ttl=60)
        value["items"].append(3)
        assert await backend.get("key") == {"items": [1, 2]}

    @pytest.mark.asyncio
    async def test_unserialisable_value_is_skipped(self, backend):
        """Values that are not JSON-serialisable are logged and not stored."""
        await backend.set("bad", {"obj": object()}, ttl=60)
        assert await backend.exists("bad") is False

    @pytest.mark.asyncio
    async def test_delete_removes_key(self, backend):
        await backend.set("key2", "value", ttl=60)
        await backend.delete("key2")
        assert await backend.get("key2") is None

    @pytest.mark.asyncio
    async def test_delete_missing_key_is_noop(self, backend):
        await backend.delete("never-set")

    @pytest.mark.asyncio
    async def test_exists_returns_true_for_live_key(self, backend):
        await backend.set("live", "data", ttl=60)
        assert await backend.exists("live") is True

    @pytest.mark.asyncio
    async def test_delete_pattern_removes_matching_keys(self, backend):
        await backend.set("cache:GET:/api/products?page=1", 1, ttl=60)
        await backend.set("cache:GET:/api/products/abc", 2, ttl=60)
        await backend.set("cache:GET:/api/health", 3, ttl=60)

        deleted = await backend.delete_pattern("cache:GET:/api/products*")

        assert deleted == 2
        assert await backend.get("cache:GET:/api/products?page=1") is None
        assert await backend.get("cache:GET:/api/health") == 3

    @pytest.mark.asyncio
    async def test_delete_pattern_is_case_sensitive(self, backend):
        await backend.set("cache:GET:/api/Products", 1, ttl=60)
        assert await backend.delete_pattern("cache:GET:/api/products*") == 0

    @pytest.mark.asyncio
    async def test_flush_all_clears_store(self, backend):
        await backend.set("a", 1, ttl=60)
        await backend.set("b", 2, ttl=60)
        await backend.flush_all()
        assert await backend.get("a") is None
        assert await backend.get("b") is None

    @pytest.mark.asyncio
    async def test_info_reports_hit_miss_counters(self, backend):
        await backend.set("k", "v", ttl=60)
        await backend.get("k")
        await backend.get("k")
        await backend.get("missing")

        info = await backend.info()

        assert info["backend"] == "memory"
        assert info["connected"] is True
        assert info["total_keys"] == 1
        assert info["hits"] == 2
        assert info["misses"] == 1
        assert info["hit_rate"] == pytest.approx(0.6667, abs=1e-4)

    @pytest.mark.asyncio
    async def test_ping_and_close(self, backend):
        assert await backend.ping() is True
        await backend.close()


# ---------------------------------------------------------------------------
# RedisCacheBackend (mocked redis client)
# ---------------------------------------------------------------------------


class TestRedisCacheBackendMocked:
    """Tests for RedisCacheBackend delegating to a mocked redis client."""

    @staticmethod
    async def _async_gen(items):
        for item in items:
            yield item

    @pytest.fixture
    def mock_redis(self):
        client = AsyncMock()
        client.get = AsyncMock(return_value=None)
        client.setex = AsyncMock()
        client.delete = AsyncMock(return_value=1)
        client.exists = AsyncMock(return_value=0)
        client.scan_iter = MagicMock(return_value=self._async_gen([]))
        client.flushdb = AsyncMock()
        client.info = AsyncMock(return_value={
            "used_memory_human": "1.5M",
            "keyspace_hits": 30,
            "keyspace_misses": 10,
        })
        client.dbsize = AsyncMock(return_value=5)
        client.ping = AsyncMock(return_value=True)
        client.aclose = AsyncMock()
        return client

    @pytest.fixture
    def backend(self, mock_redis):
        from storefront.cache.backend import RedisCacheBackend
        return RedisCacheBackend("redis://localhost:6379/0", client=mock_redis)

    @pytest.mark.asyncio
    async def test_set_calls_setex_with_json(self, backend, mock_redis):
        await backend.set("mykey", {"status_code": 200, "body": {"a": 1}}, ttl=120)
        mock_redis.setex.assert_called_once()
        key, ttl, raw = mock_redis.setex.call_args[0]
        assert key == "mykey"
        assert ttl == 120
        assert json.loads(raw) == {"status_code": 200, "body": {"a": 1}}

    @pytest.mark.asyncio
    async def test_get_deserialises_json(self, backend, mock_redis):
        mock_redis.get.return_value = json.dumps({"key": "value"})
        assert await backend.get("testkey") == {"key": "value"}

    @pytest.mark.asyncio
    async def test_get_returns_none_when_redis_fails(self, backend, mock_redis):
        mock_redis.get.side_effect = ConnectionError("connection refused")
        assert await backend.get("testkey") is None

    @pytest.mark.asyncio
    async def test_set_swallows_redis_errors(self, backend, mock_redis):
        mock_redis.setex.side_effect = TimeoutError("timed out")
        await backend.set("mykey", {"a": 1}, ttl=60)

    @pytest.mark.asyncio
    async def test_delete_calls_redis_delete(self, backend, mock_redis):
        await backend.delete("delkey")
        mock_redis.delete.assert_called_once_with("delkey")

    @pytest.mark.asyncio
    async def test_exists_returns_true(self, backend, mock_redis):
        mock_redis.exists.return_value = 1
        assert await backend.exists("present") is True

    @pytest.mark.asyncio
    async def test_delete_pattern_uses_scan_and_delete(self, backend, mock_redis):
        keys = ["cache:GET:/api/products", "cache:GET:/api/products?page=2"]
        mock_redis.scan_iter.return_value = self._async_gen(keys)
        mock_redis.delete.return_value = 2

        deleted = await backend.delete_pattern("cache:GET:/api/products*")

        assert deleted == 2
        mock_redis.scan_iter.assert_called_once_with(match="cache:GET:/api/products*", count=100)
        mock_redis.delete.assert_called_once_with(*keys)

    @pytest.mark.asyncio
    async def test_delete_pattern_without_matches_skips_delete(self, backend, mock_redis):
        assert await backend.delete_pattern("cache:GET:/nothing*") == 0
        mock_redis.delete.assert_not_called()

    @pytest.mark.asyncio
    async def test_delete_pattern_returns_zero_on_error(self, backend, mock_redis):
        mock_redis.scan_iter.side_effect = ConnectionError("down")
        assert await backend.delete_pattern("cache:*") == 0

    @pytest.mark.asyncio
    async def test_flush_all_calls_flushdb(self, backend, mock_redis):
        await backend.flush_all()
        mock_redis.flushdb.assert_called_once()

    @pytest.mark.asyncio
    async def test_info_returns_connected_stats(self, backend):
        info = await backend.info()
        assert info["backend"] == "redis"
        assert info["connected"] is True
        assert info["total_keys"] == 5
        assert info["hits"] == 30
        assert info["misses"] == 10
        assert info["hit_rate"] == 0.75
        assert info["used_memory_human"] == "1.5M"

    @pytest.mark.asyncio
    async def test_info_reports_disconnected_on_error(self, backend, mock_redis):
        mock_redis.info.side_effect = ConnectionError("down")
        info = await backend.info()
        assert info["connected"] is False
        assert "down" in info["error"]

    @pytest.mark.asyncio
    async def test_ping_returns_false_when_unreachable(self, backend, mock_redis):
        mock_redis.ping.side_effect = ConnectionError("down")
        assert await backend.ping() is False

    @pytest.mark.asyncio
    async def test_close_closes_client(self, backend, mock_redis):
        await backend.close()
        mock_redis.aclose.assert_called_once()


# ---------------------------------------------------------------------------
# get_cache_backend factory
# ---------------------------------------------------------------------------


class TestGetCacheBackend:
    """get_cache_backend() selects a backend from REDIS_URL."""

    @pytest.mark.parametrize("redis_url", [None, ""])
    def test_returns_none_without_redis_url(self, redis_url):
        from storefront.cache.backend import get_cache_backend
        assert get_cache_backend(SimpleNamespace(redis_url=redis_url)) is None

    def test_returns_memory_backend_for_memory_url(self):
        from storefront.cache.backend import InMemoryCacheBackend, get_cache_backend
        backend = get_cache_backend(SimpleNamespace(redis_url="memory://"))
        assert isinstance(backend, InMemoryCacheBackend)

    def test_returns_redis_backend_for_redis_url(self, fake_settings):
        from storefront.cache.backend import RedisCacheBackend, get_cache_backend
        settings = fake_settings.model_copy(update={"redis_url": "redis://localhost:6379/0"})
        backend = get_cache_backend(settings)
        assert isinstance(backend, RedisCacheBackend)

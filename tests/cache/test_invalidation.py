"""Tests for CacheInvalidator."""

from __future__ import annotations

import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest

from storefront.cache.backend import InMemoryCacheBackend
from storefront.cache.invalidation import CacheInvalidator


@pytest.fixture
async def populated_backend():
    backend = InMemoryCacheBackend()
    for key in (
        "cache:GET:/api/products",
        "cache:GET:/api/products?page=2",
        "cache:GET:/api/products/categories",
        "cache:GET:/api/products/11111111-1111-1111-1111-111111111111",
        "cache:GET:/api/products/22222222-2222-2222-2222-222222222222",
        "cache:GET:/api/health",
    ):
        await backend.set(key, {"status_code": 200, "body": {}}, ttl=60)
    return backend


class TestCacheInvalidator:

    @pytest.mark.asyncio
    async def test_invalidate_returns_deleted_count(self, populated_backend):
        invalidator = CacheInvalidator(populated_backend)
        assert await invalidator.invalidate("cache:GET:/api/products/categories*") == 1

    @pytest.mark.asyncio
    async def test_product_listings_sweep_keeps_other_routes(self, populated_backend):
        invalidator = CacheInvalidator(populated_backend)

        deleted = await invalidator.invalidate_product_listings()

        assert deleted == 5
        assert await populated_backend.exists("cache:GET:/api/health")
        assert not await populated_backend.exists("cache:GET:/api/products?page=2")

    @pytest.mark.asyncio
    async def test_invalidate_product_drops_detail_then_listings(self, populated_backend):
        invalidator = CacheInvalidator(populated_backend)
        product_id = uuid.UUID("11111111-1111-1111-1111-111111111111")

        deleted = await invalidator.invalidate_product(product_id)

        assert deleted == 5
        assert not await populated_backend.exists(f"cache:GET:/api/products/{product_id}")
        assert not await populated_backend.exists("cache:GET:/api/products")

    @pytest.mark.asyncio
    async def test_invalidate_products_dedupes_ids(self):
        backend = MagicMock()
        backend.delete_pattern = AsyncMock(return_value=1)
        invalidator = CacheInvalidator(backend)
        a, b = uuid.uuid4(), uuid.uuid4()

        deleted = await invalidator.invalidate_products([a, a, b])

        assert deleted == 3
        patterns = [c.args[0] for c in backend.delete_pattern.call_args_list]
        assert patterns == [
            f"cache:GET:/api/products/{a}*",
            f"cache:GET:/api/products/{b}*",
            "cache:GET:/api/products*",
        ]

    @pytest.mark.asyncio
    async def test_disabled_invalidator_is_noop(self):
        invalidator = CacheInvalidator(None)
        assert invalidator.enabled is False
        assert await invalidator.invalidate_product(uuid.uuid4()) == 0

    @pytest.mark.asyncio
    async def test_store_failure_is_swallowed(self):
        backend = MagicMock()
        backend.delete_pattern = AsyncMock(side_effect=ConnectionError("down"))
        invalidator = CacheInvalidator(backend)

        assert await invalidator.invalidate_product_listings() == 0

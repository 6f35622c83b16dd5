"""Response cache invalidation.

Write paths call the invalidator after their transaction has committed.
Invalidating earlier would let a concurrent read repopulate the entry
from the not-yet-committed (old) state.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable

import structlog
from fastapi import Request

from storefront.cache.backend import CacheBackend
from storefront.cache.keys import path_pattern

log = structlog.get_logger(__name__)

PRODUCTS_PATH = "/api/products"


class CacheInvalidator:
    """Deletes cached responses by key pattern.

    A ``None`` backend makes every method a no-op returning 0.
    """

    def __init__(self, backend: CacheBackend | None) -> None:
        self._backend = backend

    @property
    def enabled(self) -> bool:
        return self._backend is not None

    async def invalidate(self, pattern: str) -> int:
        """Delete every cached key matching the glob ``pattern``.

        Returns:
            Number of keys removed (0 when caching is disabled or the
            store is unreachable).
        """
        if self._backend is None:
            return 0
        try:
            deleted = await self._backend.delete_pattern(pattern)
        except Exception as exc:
            log.warning("cache.invalidation_failed", pattern=pattern, error=str(exc))
            return 0
        log.info("cache.invalidated", pattern=pattern, keys_deleted=deleted)
        return deleted

    async def invalidate_product_listings(self) -> int:
        """Drop every cached product listing, category list and detail."""
        return await self.invalidate(path_pattern("GET", PRODUCTS_PATH))

    async def invalidate_product_detail(self, product_id: uuid.UUID | str) -> int:
        return await self.invalidate(path_pattern("GET", f"{PRODUCTS_PATH}/{product_id}"))

    async def invalidate_product(self, product_id: uuid.UUID | str) -> int:
        """Drop one product's detail entry, then the listings embedding it."""
        deleted = await self.invalidate_product_detail(product_id)
        deleted += await self.invalidate_product_listings()
        return deleted

    async def invalidate_products(self, product_ids: Iterable[uuid.UUID | str]) -> int:
        """Like invalidate_product() for many IDs, with a single listing sweep."""
        deleted = 0
        for product_id in dict.fromkeys(product_ids):
            deleted += await self.invalidate_product_detail(product_id)
        deleted += await self.invalidate_product_listings()
        return deleted


def get_cache_invalidator(request: Request) -> CacheInvalidator:
    """FastAPI dependency returning the app-wide invalidator.

    Override with app.dependency_overrides in tests.
    """
    return request.app.state.cache_invalidator

"""Cache inspection endpoint.

GET /api/cache/stats - Backend info and hit/miss statistics

Read-only: invalidation happens inside write handlers and is deliberately
not exposed over HTTP.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from storefront.cache.backend import CacheBackend

router = APIRouter(prefix="/cache", tags=["cache"])


def get_cache_backend_dep(request: Request) -> CacheBackend | None:
    """Return the app's cache backend (None when caching is disabled)."""
    return request.app.state.cache_backend


class CacheStatsResponse(BaseModel):
    enabled: bool
    backend: str
    connected: bool
    total_keys: int = 0
    hits: int = 0
    misses: int = 0
    hit_rate: float = 0.0
    extra: dict[str, Any] = {}


@router.get("/stats", response_model=CacheStatsResponse)
async def get_cache_stats(
    backend: CacheBackend | None = Depends(get_cache_backend_dep),
) -> CacheStatsResponse:
    """Return cache statistics, useful to check whether Redis is reachable."""
    if backend is None:
        return CacheStatsResponse(enabled=False, backend="disabled", connected=False)

    stats = await backend.info()
    known = {"backend", "connected", "total_keys", "hits", "misses", "hit_rate"}
    return CacheStatsResponse(
        enabled=True,
        backend=str(stats.get("backend", backend.name)),
        connected=bool(stats.get("connected", False)),
        total_keys=int(stats.get("total_keys", 0)),
        hits=int(stats.get("hits", 0)),
        misses=int(stats.get("misses", 0)),
        hit_rate=float(stats.get("hit_rate", 0.0)),
        extra={k: v for k, v in stats.items() if k not in known},
    )

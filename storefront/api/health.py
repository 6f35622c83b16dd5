"""Health check endpoints.

/api/health        - Liveness: is the process up?
/api/health/ready  - Readiness: database reachable, cache state

These are public endpoints - no auth required. An unreachable cache does
not make the service unready, since the API works without it.
"""

from __future__ import annotations

import time
from datetime import UTC, datetime

from fastapi import APIRouter, Request
from sqlalchemy import text

from storefront.database import get_engine

router = APIRouter(prefix="/health", tags=["health"])

_STARTED_AT = time.monotonic()


@router.get("")
async def liveness(request: Request) -> dict:
    """Liveness check - always returns 200 if the process is running."""
    return {
        "status": "ok",
        "timestamp": datetime.now(UTC).isoformat(),
        "uptime": round(time.monotonic() - _STARTED_AT, 3),
        "environment": request.app.state.settings.environment,
    }


@router.get("/ready")
async def readiness(request: Request) -> dict:
    """Readiness check - checks DB connectivity and reports cache state."""
    try:
        engine = get_engine()
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        db_status = "ok"
    except Exception as exc:
        db_status = f"error: {exc}"

    backend = request.app.state.cache_backend
    if backend is None:
        cache_status = "disabled"
    else:
        cache_status = "ok" if await backend.ping() else "unavailable"

    is_ready = db_status == "ok"
    return {
        "status": "ready" if is_ready else "not_ready",
        "database": db_status,
        "cache": cache_status,
        "timestamp": datetime.now(UTC).isoformat(),
    }

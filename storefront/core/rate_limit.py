"""Per-client rate limiting with an in-process fixed window counter.

Two limiters are built by the application factory:

- the API limiter, applied by ``RateLimitMiddleware`` to every request
  under ``/api`` (cached responses included)
- the order limiter, applied by the ``enforce_order_rate_limit``
  dependency to ``POST /api/orders`` only

Clients are identified by their socket address. Counters live in this
process; several API instances each keep their own.
"""

from __future__ import annotations

import asyncio
import time
from collections import defaultdict
from dataclasses import dataclass, field

import structlog
from fastapi import HTTPException, Request, status
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

log = structlog.get_logger(__name__)


@dataclass
class _WindowCounter:
    window_start: float = field(default_factory=time.monotonic)
    count: int = 0
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class RateLimiter:
    """Allow ``limit`` requests per client in each ``window_seconds`` window.

    ``limit=0`` disables the limiter.
    """

    def __init__(self, limit: int, window_seconds: float, *, name: str = "api") -> None:
        self.limit = limit
        self.window_seconds = window_seconds
        self.name = name
        self._counters: dict[str, _WindowCounter] = defaultdict(_WindowCounter)

    @property
    def enabled(self) -> bool:
        return self.limit > 0

    async def check(self, client_id: str) -> None:
        """Count one request for ``client_id``.

        Raises:
            HTTPException: 429 with a Retry-After header once the client
                is over the limit for the current window.
        """
        if not self.enabled:
            return

        counter = self._counters[client_id]
        async with counter.lock:
            now = time.monotonic()
            elapsed = now - counter.window_start
            if elapsed >= self.window_seconds:
                counter.window_start = now
                counter.count = 0
                elapsed = 0.0

            counter.count += 1
            if counter.count <= self.limit:
                return

            retry_after = int(self.window_seconds - elapsed) + 1
            log.warning(
                "rate_limit.exceeded",
                limiter=self.name,
                client=client_id,
                count=counter.count,
                limit=self.limit,
            )
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=(
                    f"Rate limit exceeded: {self.limit} requests "
                    f"per {_describe_window(self.window_seconds)}"
                ),
                headers={"Retry-After": str(retry_after)},
            )

    def reset(self, client_id: str | None = None) -> None:
        """Forget one client's counter, or every counter."""
        if client_id is None:
            self._counters.clear()
        else:
            self._counters.pop(client_id, None)


def _describe_window(seconds: float) -> str:
    if seconds % 3600 == 0:
        hours = int(seconds // 3600)
        return "hour" if hours == 1 else f"{hours} hours"
    if seconds % 60 == 0:
        minutes = int(seconds // 60)
        return "minute" if minutes == 1 else f"{minutes} minutes"
    return f"{seconds:g} seconds"


def client_id(request: Request) -> str:
    return request.client.host if request.client else "unknown"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Apply ``limiter`` to every request whose path starts with ``path_prefix``."""

    def __init__(self, app: ASGIApp, *, limiter: RateLimiter, path_prefix: str = "/api") -> None:
        super().__init__(app)
        self._limiter = limiter
        self._path_prefix = path_prefix

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path.startswith(self._path_prefix):
            try:
                await self._limiter.check(client_id(request))
            except HTTPException as exc:
                return JSONResponse(
                    status_code=exc.status_code,
                    content={"detail": exc.detail},
                    headers=exc.headers,
                )
        return await call_next(request)


async def enforce_order_rate_limit(request: Request) -> None:
    """FastAPI dependency - apply the app's order limiter."""
    await request.app.state.order_rate_limiter.check(client_id(request))

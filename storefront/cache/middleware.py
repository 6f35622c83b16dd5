"""HTTP response cache middleware.

Pure ASGI middleware that caches JSON responses of selected GET routes.

Read phase:
- Only GET requests whose path matches a CacheRule are considered
- The key is built from method, normalized path and sorted query string
- A stored entry is replayed directly with ``X-Cache: HIT`` and the
  downstream handler is never invoked
- Otherwise the key is stashed in ``request.state.cache_key`` and the
  response is marked ``X-Cache: MISS``

Write phase:
- The ASGI ``send`` channel is wrapped; messages are forwarded to the
  client unchanged as they arrive while the body is buffered on the side
- Once the final body message has gone out, 2xx JSON responses are stored
  with the rule's TTL. The client already has the full response at this
  point, so a slow or failing store cannot delay or change it.

With no backend configured the middleware is a pass-through and no
``X-Cache`` header is emitted.
"""

from __future__ import annotations

import asyncio
import json
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import structlog
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from storefront.cache.backend import CacheBackend
from storefront.cache.keys import build_cache_key

log = structlog.get_logger(__name__)

CACHE_HEADER = "X-Cache"
CACHE_KEY_STATE = "cache_key"
DEFAULT_TTL = 300


@dataclass(frozen=True)
class CacheRule:
    """A cache-wrapped route: full-match path regex and TTL in seconds.

    ``ttl=None`` means the middleware's default TTL applies.
    """

    pattern: str
    ttl: int | None = None
    _regex: re.Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_regex", re.compile(self.pattern))

    def matches(self, path: str) -> bool:
        return self._regex.fullmatch(path) is not None


class _ResponseRecorder:
    """Send wrapper that tags MISS responses and keeps a copy of the body."""

    def __init__(self, send: Send) -> None:
        self._send = send
        self.status_code: int | None = None
        self.content_type: str = ""
        self.complete = False
        self._chunks: list[bytes] = []

    @property
    def cacheable(self) -> bool:
        return (
            self.complete
            and self.status_code is not None
            and 200 <= self.status_code < 300
            and "application/json" in self.content_type
        )

    @property
    def body(self) -> bytes:
        return b"".join(self._chunks)

    async def send(self, message: Message) -> None:
        if message["type"] == "http.response.start":
            self.status_code = message["status"]
            headers = list(message.get("headers", []))
            for name, value in headers:
                if name.lower() == b"content-type":
                    self.content_type = value.decode("latin-1").lower()
            headers.append((CACHE_HEADER.lower().encode(), b"MISS"))
            message["headers"] = headers
        elif message["type"] == "http.response.body":
            self._chunks.append(message.get("body", b""))
            if not message.get("more_body", False):
                self.complete = True
        await self._send(message)


class CacheMiddleware:
    """ASGI middleware caching GET responses for the routes in ``rules``.

    The backend is injected by the application factory. ``None`` disables
    caching without any other change in behaviour.
    """

    def __init__(
        self,
        app: ASGIApp,
        backend: CacheBackend | None,
        rules: Sequence[CacheRule] = (),
        *,
        default_ttl: int = DEFAULT_TTL,
        store_timeout: float = 5.0,
    ) -> None:
        self.app = app
        self._backend = backend
        self._rules = tuple(rules)
        self._default_ttl = default_ttl
        self._store_timeout = store_timeout

    def match_rule(self, path: str) -> CacheRule | None:
        """Return the first rule matching ``path``, or None.

        The raw request path is matched, so "/api/products/" is not cached
        and reaches the router, which redirects it the same way it would
        with caching off.
        """
        for rule in self._rules:
            if rule.matches(path):
                return rule
        return None

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or self._backend is None or scope["method"] != "GET":
            await self.app(scope, receive, send)
            return

        path: str = scope["path"]
        rule = self.match_rule(path)
        if rule is None:
            await self.app(scope, receive, send)
            return

        query_string = scope.get("query_string", b"").decode("latin-1")
        cache_key = build_cache_key("GET", path, query_string)

        # --- Cache lookup ---
        cached = await self._lookup(cache_key)
        if cached is not None:
            log.debug("cache.middleware.hit", path=path, key=cache_key)
            response = JSONResponse(
                content=cached["body"],
                status_code=cached.get("status_code", 200),
                headers={CACHE_HEADER: "HIT"},
            )
            await response(scope, receive, send)
            return

        # --- Cache miss - process request ---
        scope.setdefault("state", {})[CACHE_KEY_STATE] = cache_key
        recorder = _ResponseRecorder(send)
        await self.app(scope, receive, recorder.send)

        if recorder.cacheable:
            ttl = rule.ttl if rule.ttl is not None else self._default_ttl
            await self._store(cache_key, recorder, ttl, path)

    async def _lookup(self, cache_key: str) -> dict[str, Any] | None:
        assert self._backend is not None
        try:
            cached = await asyncio.wait_for(
                self._backend.get(cache_key), timeout=self._store_timeout
            )
        except Exception as exc:
            log.warning("cache.middleware.lookup_failed", key=cache_key, error=str(exc))
            return None
        if not isinstance(cached, dict) or "body" not in cached:
            return None
        return cached

    async def _store(
        self,
        cache_key: str,
        recorder: _ResponseRecorder,
        ttl: int,
        path: str,
    ) -> None:
        assert self._backend is not None
        try:
            body = json.loads(recorder.body)
            await asyncio.wait_for(
                self._backend.set(
                    cache_key,
                    {"status_code": recorder.status_code, "body": body},
                    ttl,
                ),
                timeout=self._store_timeout,
            )
        except Exception as exc:
            log.warning(
                "cache.middleware.store_failed",
                path=path,
                key=cache_key,
                error=str(exc),
            )
            return
        log.debug("cache.middleware.stored", path=path, key=cache_key, ttl=ttl)

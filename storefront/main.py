"""FastAPI application entrypoint.

Application startup order:
1. Configure structured logging
2. init_db(): engine, session factory and, when DB_CREATE_TABLES is set, the tables
3. Ping the cache backend (built by create_app) and log its state

Shutdown order:
1. Close the cache backend
2. Close DB connection pool
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from storefront.api.router import api_router
from storefront.cache.backend import get_cache_backend
from storefront.cache.invalidation import CacheInvalidator
from storefront.cache.middleware import CacheMiddleware, CacheRule
from storefront.config import Settings, get_settings
from storefront.core.rate_limit import RateLimiter, RateLimitMiddleware
from storefront.core.security import RequestSizeLimitMiddleware, SecurityHeadersMiddleware
from storefront.database import close_db, init_db
from storefront.telemetry.logging import CorrelationIdMiddleware, configure_logging

log = structlog.get_logger(__name__)


def build_cache_rules(settings: Settings) -> list[CacheRule]:
    """Cache-wrapped routes and their TTLs; first match wins."""
    return [
        CacheRule(r"/api/products/categories", ttl=settings.cache_ttl_categories),
        CacheRule(r"/api/products/[^/]+", ttl=settings.cache_ttl_product_detail),
        CacheRule(r"/api/products", ttl=settings.cache_ttl_product_list),
    ]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: startup and shutdown."""
    settings: Settings = app.state.settings

    configure_logging(
        json_logs=settings.is_prod,
        log_level="DEBUG" if settings.debug else settings.log_level,
    )

    log.info(
        "app.starting",
        environment=settings.environment,
        db_url=settings.database_url.split("@")[-1],
    )

    await init_db(settings)

    backend = app.state.cache_backend
    if backend is None:
        log.info("app.cache_disabled")
    elif await backend.ping():
        log.info("app.cache_ready", backend=backend.name)
    else:
        # Requests still work; every cache call degrades to a miss
        log.warning("app.cache_unreachable", backend=backend.name)

    log.info("app.ready")
    yield

    if backend is not None:
        await backend.close()
    await close_db()
    log.info("app.shutdown")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Application factory."""
    settings = settings or get_settings()

    app = FastAPI(
        title="Storefront API",
        description="E-commerce catalogue and checkout API with response caching.",
        version="2.0.0",
        docs_url="/docs" if settings.is_dev else None,
        redoc_url="/redoc" if settings.is_dev else None,
        openapi_url="/openapi.json" if settings.is_dev else None,
        lifespan=lifespan,
    )

    # The cache client is owned here and shared by the middleware, the
    # invalidator and the stats endpoint.
    cache_backend = get_cache_backend(settings)
    app.state.settings = settings
    app.state.cache_backend = cache_backend
    app.state.cache_invalidator = CacheInvalidator(cache_backend)
    app.state.order_rate_limiter = RateLimiter(
        settings.order_rate_limit_requests,
        settings.order_rate_limit_window_seconds,
        name="orders",
    )

    # ------------------------------------------------------------------ #
    # Middleware (added in reverse order - last added = first executed)
    # ------------------------------------------------------------------ #

    # Response cache sits closest to the routes
    app.add_middleware(
        CacheMiddleware,
        backend=cache_backend,
        rules=build_cache_rules(settings),
        default_ttl=settings.cache_ttl_default,
        store_timeout=settings.cache_command_timeout,
    )

    app.add_middleware(RequestSizeLimitMiddleware, max_size=settings.max_request_size)

    # Counted before the cache, so HITs use up the allowance too
    app.add_middleware(
        RateLimitMiddleware,
        limiter=RateLimiter(
            settings.rate_limit_requests,
            settings.rate_limit_window_seconds,
        ),
        path_prefix="/api",
    )

    app.add_middleware(SecurityHeadersMiddleware, is_production=settings.is_prod)

    # Correlation ID for log correlation across SPA and API
    app.add_middleware(CorrelationIdMiddleware)

    # CORS (must be first in execution order, so add last)
    cors_origins = (
        ["*"]
        if settings.is_dev
        else list(dict.fromkeys([settings.frontend_url, *settings.cors_allowed_origins]))
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=settings.is_prod,
        allow_methods=["*"],
        allow_headers=["Content-Type", "X-Correlation-ID"],
        expose_headers=["X-Cache", "X-Correlation-ID"],
    )

    # ------------------------------------------------------------------ #
    # Routers
    # ------------------------------------------------------------------ #
    app.include_router(api_router)

    @app.get("/", include_in_schema=False)
    async def root() -> dict:
        return {
            "message": "Storefront API",
            "version": app.version,
            "endpoints": {
                "products": "/api/products",
                "orders": "/api/orders",
                "health": "/api/health",
                "cache": "/api/cache/stats",
            },
        }

    # ------------------------------------------------------------------ #
    # Global exception handlers
    # ------------------------------------------------------------------ #

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        log.error(
            "app.unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    return app


# Module-level app instance for uvicorn
app = create_app()

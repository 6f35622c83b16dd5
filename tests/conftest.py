"""
Shared test fixtures for pytest.

Provides common settings, apps and data helpers for all test modules:
- fake_settings: Test environment configuration (SQLite file DB, in-memory cache)
- app / client: Full application with the in-memory cache backend
- uncached_client: Full application with caching disabled (no REDIS_URL)
- db_session: Real async session on a throwaway SQLite database
- product_payload / make_product: Helpers to create catalogue data over HTTP
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.config import Environment, Settings, get_settings
from storefront.database import close_db, get_session_factory, init_db
from storefront.main import create_app


# ------------------------------------------------------------------ #
# Session-scoped: clear settings cache between test sessions
# ------------------------------------------------------------------ #

@pytest.fixture(autouse=True, scope="session")
def _clear_settings_cache():
    """Clear the lru_cache on get_settings so test overrides take effect."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# ------------------------------------------------------------------ #
# Settings
# ------------------------------------------------------------------ #

def _test_settings(tmp_path, **overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "environment": Environment.TEST,
        "database_url": f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        "db_create_tables": True,
        "redis_url": "memory://",
        "log_level": "WARNING",
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def fake_settings(tmp_path) -> Settings:
    """Test settings: file-backed SQLite and the in-memory cache backend."""
    return _test_settings(tmp_path)


# ------------------------------------------------------------------ #
# Applications and clients
# ------------------------------------------------------------------ #

@pytest.fixture
def app(fake_settings) -> FastAPI:
    return create_app(fake_settings)


@pytest.fixture
def client(app):
    """TestClient running the full lifespan (tables created on startup)."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def uncached_client(tmp_path):
    """TestClient for an app started without REDIS_URL."""
    settings = _test_settings(tmp_path, redis_url=None)
    with TestClient(create_app(settings)) as test_client:
        yield test_client


@pytest.fixture
async def db_session(fake_settings) -> AsyncGenerator[AsyncSession, None]:
    """Async session on a fresh SQLite database."""
    await init_db(fake_settings)
    async with get_session_factory()() as session:
        yield session
    await close_db()


# ------------------------------------------------------------------ #
# Data helpers
# ------------------------------------------------------------------ #

@pytest.fixture
def product_payload() -> dict[str, Any]:
    return {
        "name": "Noise Cancelling Headphones",
        "description": "Wireless over-ear headphones",
        "price": 199.99,
        "category": "electronics",
        "stock": 10,
        "image": "https://images.example.com/headphones.png",
        "tags": ["audio"],
    }


@pytest.fixture
def make_product(client, product_payload) -> Callable[..., dict[str, Any]]:
    """Create a product through the API and return its JSON representation."""

    def _make(**overrides: Any) -> dict[str, Any]:
        payload = {**product_payload, **overrides}
        response = client.post("/api/products", json=payload)
        assert response.status_code == 201, response.text
        return response.json()["data"]

    return _make

"""Main API router - aggregates all sub-routers under /api."""

from __future__ import annotations

from fastapi import APIRouter

from storefront.api import cache, health, orders, products

api_router = APIRouter(prefix="/api")
api_router.include_router(health.router)
api_router.include_router(products.router)
api_router.include_router(orders.router)
api_router.include_router(cache.router)

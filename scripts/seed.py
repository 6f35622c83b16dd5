#!/usr/bin/env python3
"""Seed the development database with sample catalogue data.

Creates a dozen products spread over every category so listings,
filtering and the category endpoint have something to show.

Idempotent: safe to run multiple times - products are identified by name
and existing ones are skipped rather than duplicated. Cached listings are
flushed afterwards so the API does not keep serving the old catalogue.

Usage:
    # From project root (database must be running)
    python scripts/seed.py
"""

from __future__ import annotations

import asyncio
import sys
from collections import Counter
from pathlib import Path

# ---------------------------------------------------------------------------
# Ensure the project root is on sys.path so "storefront.*" imports work
# whether this script is run directly or via "python scripts/seed.py".
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

_IMG = "https://images.unsplash.com/{}?w=400&h=400&fit=crop"

SAMPLE_PRODUCTS: list[dict] = [
    {
        "name": "iPhone 15 Pro",
        "description": "The most advanced iPhone, with the A17 Pro chip, a 48MP camera and a titanium design.",
        "price": 999.99,
        "image": _IMG.format("photo-1592750475338-74b7b21085ab"),
        "stock": 25,
        "category": "electronics",
        "tags": ["apple", "smartphone"],
    },
    {
        "name": "MacBook Air M2",
        "description": 'Ultralight laptop with the M2 chip, a 13.6" Liquid Retina display and up to 18 hours of battery.',
        "price": 1199.99,
        "image": _IMG.format("photo-1517336714731-489689fd1ca8"),
        "stock": 15,
        "category": "electronics",
        "tags": ["apple", "laptop"],
    },
    {
        "name": "Nike Air Max 270",
        "description": "Running shoes with Air Max cushioning for all-day comfort.",
        "price": 129.99,
        "image": _IMG.format("photo-1542291026-7eec264c27ff"),
        "stock": 50,
        "category": "sports",
        "tags": ["shoes", "running"],
    },
    {
        "name": "Samsung 4K Smart TV",
        "description": '55" smart TV with 4K resolution, HDR and the Tizen operating system.',
        "price": 699.99,
        "image": _IMG.format("photo-1593359677879-a4bb92f829d1"),
        "stock": 12,
        "category": "electronics",
        "tags": ["tv"],
    },
    {
        "name": "Basic Cotton T-Shirt",
        "description": "Organic cotton t-shirt, soft and breathable for everyday wear.",
        "price": 24.99,
        "image": _IMG.format("photo-1521572163474-6864f9cf17ab"),
        "stock": 100,
        "category": "clothing",
        "tags": ["cotton"],
    },
    {
        "name": "Automatic Coffee Maker",
        "description": "Programmable coffee maker with a built-in grinder and several brew modes.",
        "price": 89.99,
        "image": _IMG.format("photo-1495474472287-4d71bcdd2085"),
        "stock": 30,
        "category": "home",
        "tags": ["kitchen", "coffee"],
    },
    {
        "name": "The Little Prince",
        "description": "Antoine de Saint-Exupery's classic, special hardcover edition.",
        "price": 19.99,
        "image": _IMG.format("photo-1544947950-fa07a98d237f"),
        "stock": 75,
        "category": "books",
        "tags": ["classic"],
    },
    {
        "name": "Sony Bluetooth Headphones",
        "description": "Wireless noise-cancelling headphones with up to 30 hours of battery.",
        "price": 199.99,
        "image": _IMG.format("photo-1505740420928-5e560c06d30e"),
        "stock": 40,
        "category": "electronics",
        "tags": ["audio", "wireless"],
    },
    {
        "name": "Modern 3-Seat Sofa",
        "description": "Minimalist sofa that fits right into a modern living room.",
        "price": 599.99,
        "image": _IMG.format("photo-1555041469-a586c61ea9bc"),
        "stock": 8,
        "category": "home",
        "tags": ["furniture"],
    },
    {
        "name": "Professional Football",
        "description": "Official match ball built with the latest panel technology.",
        "price": 79.99,
        "image": _IMG.format("photo-1579952363873-27f3bade9f55"),
        "stock": 35,
        "category": "sports",
        "tags": ["football"],
    },
    {
        "name": "Slim Fit Jeans",
        "description": "High quality slim fit jeans for any occasion.",
        "price": 59.99,
        "image": _IMG.format("photo-1542272604-787c3835535d"),
        "stock": 60,
        "category": "clothing",
        "tags": ["denim"],
    },
    {
        "name": "LED Desk Lamp",
        "description": "Modern desk lamp with adjustable LED brightness.",
        "price": 45.99,
        "image": _IMG.format("photo-1507473885765-e6ed057f782c"),
        "stock": 25,
        "category": "home",
        "tags": ["lighting"],
    },
]


async def seed() -> None:
    """Main seed routine - idempotent."""
    from sqlalchemy import select

    from storefront.cache.backend import get_cache_backend
    from storefront.cache.invalidation import CacheInvalidator
    from storefront.config import get_settings
    from storefront.database import close_db, get_session_factory, init_db
    from storefront.models.product import Product

    settings = get_settings()
    await init_db(settings)
    session_factory = get_session_factory()

    created = 0
    async with session_factory() as db:
        for data in SAMPLE_PRODUCTS:
            result = await db.execute(select(Product).where(Product.name == data["name"]))
            if result.scalar_one_or_none() is not None:
                print(f"  [~] Product exists:  {data['name']}")
                continue
            db.add(Product(**data))
            created += 1
            print(f"  [+] Product created: {data['name']} ({data['category']})")
        await db.commit()

    backend = get_cache_backend(settings)
    if backend is not None:
        deleted = await CacheInvalidator(backend).invalidate_product_listings()
        print(f"  [~] Cached product responses flushed: {deleted}")
        await backend.close()

    divider = "=" * 72
    print(f"\n{divider}")
    print(f"SEED COMPLETE - {created} new product(s). Catalogue by category:")
    print(divider)
    for category, count in Counter(p["category"] for p in SAMPLE_PRODUCTS).most_common():
        print(f"  {category:<12} {count}")
    print(f"\n  API      : http://localhost:8000/api/products")
    print(f"{divider}\n")

    await close_db()


if __name__ == "__main__":
    asyncio.run(seed())

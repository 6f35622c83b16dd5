"""Product service - catalogue queries and CRUD.

The service only flushes; the caller owns the transaction. Write endpoints
commit before invalidating the response cache.
"""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass
from typing import Any

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.models.product import Product

log = structlog.get_logger(__name__)

SORTABLE_FIELDS = ("name", "price", "created_at", "stock")


class ProductNotFoundError(Exception):
    """Raised when a requested product does not exist."""

    def __init__(self, product_id: uuid.UUID) -> None:
        super().__init__(f"Product {product_id} not found")
        self.product_id = product_id


@dataclass(frozen=True)
class ProductQuery:
    """Filters, sorting and paging for a catalogue listing."""

    page: int = 1
    limit: int = 12
    category: str | None = None
    min_price: float | None = None
    max_price: float | None = None
    search: str | None = None
    sort: str = "created_at"
    order: str = "desc"


@dataclass(frozen=True)
class Pagination:
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    @property
    def has_next_page(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev_page(self) -> bool:
        return self.page > 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "page": self.page,
            "limit": self.limit,
            "total": self.total,
            "total_pages": self.total_pages,
            "has_next_page": self.has_next_page,
            "has_prev_page": self.has_prev_page,
            "next_page": self.page + 1 if self.has_next_page else None,
            "prev_page": self.page - 1 if self.has_prev_page else None,
        }


class ProductService:
    """Catalogue operations over an async session."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def list_products(self, query: ProductQuery) -> tuple[list[Product], Pagination]:
        """Return one page of active products plus pagination metadata."""
        conditions: list[Any] = [Product.is_active.is_(True)]
        if query.category:
            conditions.append(Product.category == query.category)
        if query.min_price is not None:
            conditions.append(Product.price >= query.min_price)
        if query.max_price is not None:
            conditions.append(Product.price <= query.max_price)
        if query.search:
            conditions.append(
                or_(
                    Product.name.icontains(query.search, autoescape=True),
                    Product.description.icontains(query.search, autoescape=True),
                )
            )

        sort_field = query.sort if query.sort in SORTABLE_FIELDS else "created_at"
        sort_column = getattr(Product, sort_field)
        ordering = sort_column.asc() if query.order == "asc" else sort_column.desc()

        stmt = (
            select(Product)
            .where(*conditions)
            .order_by(ordering, Product.id)
            .offset((query.page - 1) * query.limit)
            .limit(query.limit)
        )
        count_stmt = select(func.count()).select_from(Product).where(*conditions)

        products = list((await self._db.execute(stmt)).scalars().all())
        total = (await self._db.execute(count_stmt)).scalar_one()

        log.debug(
            "product_service.list_products",
            page=query.page,
            limit=query.limit,
            returned=len(products),
            total=total,
        )
        return products, Pagination(page=query.page, limit=query.limit, total=total)

    async def get_product(self, product_id: uuid.UUID) -> Product:
        """Return a product by ID.

        Raises:
            ProductNotFoundError: If no product has this ID
        """
        product = await self._db.get(Product, product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        return product

    async def list_categories(self) -> list[str]:
        """Distinct categories used by active products, alphabetically."""
        stmt = (
            select(Product.category)
            .where(Product.is_active.is_(True))
            .distinct()
            .order_by(Product.category)
        )
        return list((await self._db.execute(stmt)).scalars().all())

    async def create_product(self, data: dict[str, Any]) -> Product:
        product = Product(**data)
        self._db.add(product)
        await self._db.flush()

        log.info("product_service.create_product", product_id=str(product.id))
        return product

    async def update_product(self, product_id: uuid.UUID, changes: dict[str, Any]) -> Product:
        """Apply a partial update.

        Raises:
            ProductNotFoundError: If no product has this ID
        """
        product = await self.get_product(product_id)
        for field_name, value in changes.items():
            setattr(product, field_name, value)
        await self._db.flush()
        # Reload updated_at set by onupdate without a lazy load
        await self._db.refresh(product)

        log.info(
            "product_service.update_product",
            product_id=str(product_id),
            fields=sorted(changes),
        )
        return product

    async def delete_product(self, product_id: uuid.UUID) -> None:
        """Delete a product.

        Raises:
            ProductNotFoundError: If no product has this ID
        """
        product = await self.get_product(product_id)
        await self._db.delete(product)
        await self._db.flush()

        log.info("product_service.delete_product", product_id=str(product_id))

"""Product catalogue model."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Float, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from storefront.database import Base


class ProductCategory(StrEnum):
    """Closed set of catalogue categories."""

    ELECTRONICS = "electronics"
    CLOTHING = "clothing"
    HOME = "home"
    SPORTS = "sports"
    BOOKS = "books"
    OTHER = "other"


class Product(Base):
    """A purchasable catalogue item.

    ``stock`` is decremented when an order is placed; it never goes below
    zero because order creation checks availability first.
    """

    __tablename__ = "products"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    price: Mapped[float] = mapped_column(Float, nullable=False)
    image: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    category: Mapped[str] = mapped_column(String(60), nullable=False)
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    __table_args__ = (
        Index("idx_products_category", "category"),
        Index("idx_products_price", "price"),
        Index("idx_products_name", "name"),
    )

    def __init__(self, **kwargs: Any) -> None:
        """Apply Python-level defaults so unsaved objects are usable."""
        kwargs.setdefault("id", uuid.uuid4())
        kwargs.setdefault("description", "")
        kwargs.setdefault("stock", 0)
        kwargs.setdefault("tags", [])
        kwargs.setdefault("is_active", True)
        kwargs.setdefault("created_at", datetime.now(UTC))
        kwargs.setdefault("updated_at", datetime.now(UTC))
        super().__init__(**kwargs)

    @property
    def formatted_price(self) -> str:
        return f"${self.price:.2f}"

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} stock={self.stock}>"

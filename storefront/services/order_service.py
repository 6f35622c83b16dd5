"""Order service - checkout and order lookup.

Checkout validates every requested product and its stock before writing
anything, snapshots product data onto the order lines, then decrements
stock in the same transaction.
"""

from __future__ import annotations

import time
import uuid
from collections import Counter
from dataclasses import dataclass

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.models.order import Order, OrderItem
from storefront.models.product import Product
from storefront.services.product_service import ProductNotFoundError

log = structlog.get_logger(__name__)

# Tolerated difference between the client's total and the computed one
_TOTAL_TOLERANCE = 0.01


class OrderNotFoundError(Exception):
    """Raised when no order has the requested order number."""


class InsufficientStockError(Exception):
    """Raised when a product cannot cover the requested quantity."""

    def __init__(self, product: Product, requested: int) -> None:
        super().__init__(
            f"Insufficient stock for {product.name}. "
            f"Available: {product.stock}, requested: {requested}"
        )
        self.product_id = product.id
        self.available = product.stock
        self.requested = requested


@dataclass(frozen=True)
class OrderLine:
    product_id: uuid.UUID
    quantity: int


class OrderService:
    """Order placement and retrieval."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def create_order(
        self,
        *,
        customer_name: str,
        customer_email: str,
        customer_address: str,
        lines: list[OrderLine],
        client_total: float | None = None,
    ) -> Order:
        """Place an order and decrement stock.

        Repeated lines for the same product are merged, so stock is checked
        against the combined quantity.

        Raises:
            ProductNotFoundError: If any product does not exist
            InsufficientStockError: If any product lacks stock
        """
        quantities: Counter[uuid.UUID] = Counter()
        for line in lines:
            quantities[line.product_id] += line.quantity

        stmt = (
            select(Product)
            .where(Product.id.in_(list(quantities)))
            .with_for_update()
        )
        products = {p.id: p for p in (await self._db.execute(stmt)).scalars().all()}

        items: list[OrderItem] = []
        for product_id, quantity in quantities.items():
            product = products.get(product_id)
            if product is None:
                raise ProductNotFoundError(product_id)
            if product.stock < quantity:
                raise InsufficientStockError(product, quantity)
            items.append(
                OrderItem(
                    product_id=product.id,
                    name=product.name,
                    price=product.price,
                    image=product.image,
                    quantity=quantity,
                )
            )

        order = Order(
            order_number=await self._next_order_number(),
            customer_name=customer_name,
            customer_email=customer_email.strip().lower(),
            customer_address=customer_address,
            total=0.0,
            items=items,
        )
        order.total = order.calculate_total()
        if client_total is not None and abs(client_total - order.total) > _TOTAL_TOLERANCE:
            log.warning(
                "order_service.total_mismatch",
                client_total=client_total,
                computed_total=order.total,
            )

        for product_id, quantity in quantities.items():
            products[product_id].stock -= quantity

        self._db.add(order)
        await self._db.flush()

        log.info(
            "order_service.create_order",
            order_number=order.order_number,
            lines=len(items),
            total=order.total,
        )
        return order

    async def get_order_by_number(self, order_number: str) -> Order:
        """Return an order by its public number.

        Raises:
            OrderNotFoundError: If no order has this number
        """
        stmt = select(Order).where(Order.order_number == order_number)
        order = (await self._db.execute(stmt)).scalar_one_or_none()
        if order is None:
            raise OrderNotFoundError(order_number)
        return order

    async def list_orders_by_email(self, email: str) -> list[Order]:
        """All orders for a customer email, newest first."""
        stmt = (
            select(Order)
            .where(Order.customer_email == email.strip().lower())
            .order_by(Order.created_at.desc())
        )
        return list((await self._db.execute(stmt)).scalars().all())

    async def _next_order_number(self) -> str:
        count = (await self._db.execute(select(func.count()).select_from(Order))).scalar_one()
        return f"ORD-{int(time.time() * 1000)}-{count + 1}"

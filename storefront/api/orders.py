"""Order API endpoints.

POST /api/orders                  - Place an order (decrements stock, rate limited)
GET  /api/orders/{order_number}   - Look up one order
GET  /api/orders?email=...        - Orders for a customer email

Orders are never cached. Placing one changes stock, so the cached entries
of every product on the order are invalidated after commit.
"""

from __future__ import annotations

import uuid
from datetime import datetime

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.cache.invalidation import CacheInvalidator, get_cache_invalidator
from storefront.core.rate_limit import enforce_order_rate_limit
from storefront.database import get_db_session
from storefront.services.order_service import (
    InsufficientStockError,
    OrderLine,
    OrderNotFoundError,
    OrderService,
)
from storefront.services.product_service import ProductNotFoundError

log = structlog.get_logger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])


# ---------------------------------------------------------------------------
# Request / Response schemas
# ---------------------------------------------------------------------------


class OrderItemRequest(BaseModel):
    product_id: uuid.UUID
    quantity: int = Field(..., ge=1, le=100)


class CreateOrderRequest(BaseModel):
    customer_name: str = Field(..., min_length=1, max_length=100)
    customer_email: EmailStr
    customer_address: str = Field(..., min_length=1, max_length=200)
    items: list[OrderItemRequest] = Field(..., min_length=1, max_length=50)
    total: float | None = Field(
        default=None,
        ge=0,
        description="Client-side total; the stored total is recomputed from line prices",
    )


class OrderItemOut(BaseModel):
    product_id: uuid.UUID | None
    name: str
    price: float
    image: str | None
    quantity: int

    model_config = {"from_attributes": True}


class OrderOut(BaseModel):
    order_number: str
    customer_name: str
    customer_email: str
    customer_address: str
    total: float
    status: str
    items: list[OrderItemOut]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class OrderSummary(BaseModel):
    order_number: str
    total: float
    status: str
    created_at: datetime

    model_config = {"from_attributes": True}


class OrderCreatedResponse(BaseModel):
    success: bool = True
    message: str
    data: OrderSummary


class OrderResponse(BaseModel):
    success: bool = True
    data: OrderOut


class OrderListResponse(BaseModel):
    success: bool = True
    count: int
    data: list[OrderOut]


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=OrderCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(enforce_order_rate_limit)],
)
async def create_order(
    request: CreateOrderRequest,
    db: AsyncSession = Depends(get_db_session),
    invalidator: CacheInvalidator = Depends(get_cache_invalidator),
) -> OrderCreatedResponse:
    """Place an order after checking every product and its stock."""
    service = OrderService(db)
    try:
        order = await service.create_order(
            customer_name=request.customer_name,
            customer_email=request.customer_email,
            customer_address=request.customer_address,
            lines=[OrderLine(i.product_id, i.quantity) for i in request.items],
            client_total=request.total,
        )
    except ProductNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except InsufficientStockError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    await db.commit()
    await invalidator.invalidate_products(
        item.product_id for item in order.items if item.product_id is not None
    )

    log.info("orders.created", order_number=order.order_number, total=order.total)
    return OrderCreatedResponse(
        message="Order created",
        data=OrderSummary.model_validate(order),
    )


@router.get("/{order_number}", response_model=OrderResponse)
async def get_order(
    order_number: str,
    db: AsyncSession = Depends(get_db_session),
) -> OrderResponse:
    try:
        order = await OrderService(db).get_order_by_number(order_number)
    except OrderNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Order {order_number} not found",
        ) from exc
    return OrderResponse(data=OrderOut.model_validate(order))


@router.get("", response_model=OrderListResponse)
async def list_orders(
    email: EmailStr = Query(..., description="Customer email used at checkout"),
    db: AsyncSession = Depends(get_db_session),
) -> OrderListResponse:
    orders = await OrderService(db).list_orders_by_email(email)
    return OrderListResponse(
        count=len(orders),
        data=[OrderOut.model_validate(o) for o in orders],
    )

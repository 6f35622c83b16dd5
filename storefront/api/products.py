"""Product catalogue API endpoints.

GET    /api/products               - Paginated, filterable listing (cached 120 s)
GET    /api/products/categories    - Categories in use (cached 600 s)
GET    /api/products/{id}          - Product detail (cached 300 s)
POST   /api/products               - Create product
PUT    /api/products/{id}          - Partial update
DELETE /api/products/{id}          - Delete product

Read endpoints are cached by CacheMiddleware. Write endpoints commit and
then invalidate the affected cache entries.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, HttpUrl, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.cache.invalidation import CacheInvalidator, get_cache_invalidator
from storefront.database import get_db_session
from storefront.models.product import ProductCategory
from storefront.services.product_service import (
    ProductNotFoundError,
    ProductQuery,
    ProductService,
)

log = structlog.get_logger(__name__)

router = APIRouter(prefix="/products", tags=["products"])

Tag = Annotated[str, Field(min_length=1, max_length=30)]


# ---------------------------------------------------------------------------
# Request / Response schemas
# ---------------------------------------------------------------------------


class ProductCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    description: str = Field(default="", max_length=2000)
    price: float = Field(..., ge=0)
    category: ProductCategory
    stock: int = Field(default=0, ge=0)
    image: HttpUrl | None = None
    tags: list[Tag] = Field(default_factory=list, max_length=10)
    is_active: bool = True


class ProductUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=120)
    description: str | None = Field(default=None, max_length=2000)
    price: float | None = Field(default=None, ge=0)
    category: ProductCategory | None = None
    stock: int | None = Field(default=None, ge=0)
    image: HttpUrl | None = None
    tags: list[Tag] | None = Field(default=None, max_length=10)
    is_active: bool | None = None

    @field_validator("name", "description", "price", "category", "stock", "tags", "is_active")
    @classmethod
    def reject_null(cls, value):
        # Omit a field to leave it unchanged. Only image can be cleared.
        if value is None:
            raise ValueError("may not be null")
        return value


class ProductOut(BaseModel):
    id: uuid.UUID
    name: str
    description: str
    price: float
    image: str | None
    stock: int
    category: str
    tags: list[str]
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class PaginationOut(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool
    next_page: int | None
    prev_page: int | None


class ProductListResponse(BaseModel):
    success: bool = True
    data: list[ProductOut]
    pagination: PaginationOut


class ProductResponse(BaseModel):
    success: bool = True
    message: str | None = None
    data: ProductOut


class CategoryListResponse(BaseModel):
    success: bool = True
    data: list[str]


class DeleteResponse(BaseModel):
    success: bool = True
    message: str


def _not_found(exc: ProductNotFoundError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))


# ---------------------------------------------------------------------------
# Read endpoints
# ---------------------------------------------------------------------------


@router.get("", response_model=ProductListResponse)
async def list_products(
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
    category: str | None = Query(None, max_length=60),
    min_price: float | None = Query(None, ge=0),
    max_price: float | None = Query(None, ge=0),
    search: str | None = Query(None, max_length=100),
    sort: str = Query("created_at", pattern="^(name|price|created_at|stock)$"),
    order: str = Query("desc", pattern="^(asc|desc)$"),
    db: AsyncSession = Depends(get_db_session),
) -> ProductListResponse:
    """List active products with filtering, sorting and pagination."""
    service = ProductService(db)
    products, pagination = await service.list_products(
        ProductQuery(
            page=page,
            limit=limit,
            category=category,
            min_price=min_price,
            max_price=max_price,
            search=search,
            sort=sort,
            order=order,
        )
    )
    return ProductListResponse(
        data=[ProductOut.model_validate(p) for p in products],
        pagination=PaginationOut(**pagination.to_dict()),
    )


@router.get("/categories", response_model=CategoryListResponse)
async def list_categories(
    db: AsyncSession = Depends(get_db_session),
) -> CategoryListResponse:
    return CategoryListResponse(data=await ProductService(db).list_categories())


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: uuid.UUID,
    db: AsyncSession = Depends(get_db_session),
) -> ProductResponse:
    try:
        product = await ProductService(db).get_product(product_id)
    except ProductNotFoundError as exc:
        raise _not_found(exc) from exc
    return ProductResponse(data=ProductOut.model_validate(product))


# ---------------------------------------------------------------------------
# Write endpoints
# ---------------------------------------------------------------------------


@router.post("", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
async def create_product(
    request: ProductCreateRequest,
    db: AsyncSession = Depends(get_db_session),
    invalidator: CacheInvalidator = Depends(get_cache_invalidator),
) -> ProductResponse:
    """Create a product and drop cached listings."""
    product = await ProductService(db).create_product(request.model_dump(mode="json"))
    await db.commit()
    await invalidator.invalidate_product_listings()

    log.info("products.created", product_id=str(product.id))
    return ProductResponse(
        message="Product created",
        data=ProductOut.model_validate(product),
    )


@router.put("/{product_id}", response_model=ProductResponse)
async def update_product(
    product_id: uuid.UUID,
    request: ProductUpdateRequest,
    db: AsyncSession = Depends(get_db_session),
    invalidator: CacheInvalidator = Depends(get_cache_invalidator),
) -> ProductResponse:
    """Update only the fields present in the request body."""
    changes = request.model_dump(mode="json", exclude_unset=True)
    try:
        product = await ProductService(db).update_product(product_id, changes)
    except ProductNotFoundError as exc:
        raise _not_found(exc) from exc
    await db.commit()
    await invalidator.invalidate_product(product_id)

    log.info("products.updated", product_id=str(product_id), fields=sorted(changes))
    return ProductResponse(
        message="Product updated",
        data=ProductOut.model_validate(product),
    )


@router.delete("/{product_id}", response_model=DeleteResponse)
async def delete_product(
    product_id: uuid.UUID,
    db: AsyncSession = Depends(get_db_session),
    invalidator: CacheInvalidator = Depends(get_cache_invalidator),
) -> DeleteResponse:
    try:
        await ProductService(db).delete_product(product_id)
    except ProductNotFoundError as exc:
        raise _not_found(exc) from exc
    await db.commit()
    await invalidator.invalidate_product(product_id)

    log.info("products.deleted", product_id=str(product_id))
    return DeleteResponse(message="Product deleted")

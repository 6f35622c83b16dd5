"""ORM models package.

Import all models here so that SQLAlchemy's metadata is fully populated
before create_all() runs.
"""

from storefront.models.order import Order, OrderItem, OrderStatus
from storefront.models.product import Product, ProductCategory

__all__ = [
    "Order",
    "OrderItem",
    "OrderStatus",
    "Product",
    "ProductCategory",
]

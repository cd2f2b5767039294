"""
ORM models. Importing this package registers every table with
`Base.metadata` so relationships resolve and Alembic sees the full schema.
"""

from orderdesk.models.status import DeliveryStatus, OrderStatus, PaymentStatus, UserRole
from orderdesk.models.user import User
from orderdesk.models.product import Product, ProductVariant
from orderdesk.models.order import Customer, Order, OrderItem

__all__ = [
    "Customer",
    "DeliveryStatus",
    "Order",
    "OrderItem",
    "OrderStatus",
    "PaymentStatus",
    "Product",
    "ProductVariant",
    "User",
    "UserRole",
]

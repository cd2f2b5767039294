"""
OrderDesk Backend - Order SQLAlchemy Models
=============================================

What:  ORM models for the `orders` and `order_items` tables.
Who:   OrderStore reads and mutates them; the status machine, the invoice
       renderer and the API schemas read them.

Table Design:
    - UUID primary key, plus a unique human-readable `code`
    - Customer snapshot stored as plain columns, exposed as `Order.customer`
    - Three status columns; `status` is the aggregate of the other two
    - manager_id / shipper_id: weak references, SET NULL on user delete
    - order_items: ordered by `position`, deleted together with their order

Lifecycle:
    1. Inserted by the checkout flow (outside this service)
    2. Mutated only through OrderStore.update_fields()
    3. Hard-deleted only by an explicit admin delete

Index on created_at DESC serves the default listing sort.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from orderdesk.database import Base
from orderdesk.models.product import Product, ProductVariant
from orderdesk.models.status import DeliveryStatus, OrderStatus, PaymentStatus
from orderdesk.models.user import User, enum_values

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Customer:
    """Customer identity captured when the order was placed. Never edited."""

    full_name: str
    phone: str
    address: str
    email: str


class Order(Base):
    """A customer purchase with payment, delivery and aggregate status."""

    __tablename__ = "orders"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    # ── Customer snapshot ─────────────────────────────────────────────────
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str] = mapped_column(String(32), nullable=False)
    address: Mapped[str] = mapped_column(String(512), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)

    payment_method: Mapped[str] = mapped_column(String(64), nullable=False, default="COD")
    order_total_price: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )

    # ── Status ────────────────────────────────────────────────────────────
    payment_status: Mapped[PaymentStatus] = mapped_column(
        SAEnum(PaymentStatus, native_enum=False, length=20, values_callable=enum_values),
        nullable=False,
        default=PaymentStatus.PENDING,
    )
    delivery_status: Mapped[DeliveryStatus] = mapped_column(
        SAEnum(DeliveryStatus, native_enum=False, length=20, values_callable=enum_values),
        nullable=False,
        default=DeliveryStatus.PENDING,
    )
    status: Mapped[OrderStatus] = mapped_column(
        SAEnum(OrderStatus, native_enum=False, length=20, values_callable=enum_values),
        nullable=False,
        default=OrderStatus.PENDING,
    )

    # ── Staff references ──────────────────────────────────────────────────
    manager_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    shipper_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )

    # ── Timestamps (UTC) ──────────────────────────────────────────────────
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    # ── Relationships (populated explicitly by OrderStore) ────────────────
    items: Mapped[List["OrderItem"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.position",
    )
    manager: Mapped[Optional[User]] = relationship(foreign_keys=[manager_id])
    shipper: Mapped[Optional[User]] = relationship(foreign_keys=[shipper_id])

    __table_args__ = (
        Index("idx_orders_created_at", created_at.desc()),
        Index("idx_orders_status", "status"),
    )

    @property
    def customer(self) -> Customer:
        return Customer(
            full_name=self.full_name,
            phone=self.phone,
            address=self.address,
            email=self.email,
        )

    @property
    def items_total(self) -> Decimal:
        """Order total recomputed from the line items. Requires `items` loaded."""
        return sum((item.line_total for item in self.items), Decimal("0"))

    def reconciled_total(self) -> Decimal:
        """
        The total reported to clients: always the sum of the line totals.

        A stored `order_total_price` that disagrees is logged, never trusted.
        """
        computed = self.items_total
        if self.order_total_price is not None and Decimal(self.order_total_price) != computed:
            logger.warning(
                "Order %s stored total %s differs from line-item total %s",
                self.code,
                self.order_total_price,
                computed,
            )
        return computed

    def __repr__(self) -> str:
        return (
            f"<Order(code='{self.code}', status='{self.status.value}', "
            f"payment='{self.payment_status.value}', delivery='{self.delivery_status.value}')>"
        )


class OrderItem(Base):
    """One line of an order; unit_price is the price at checkout time."""

    __tablename__ = "order_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    product_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("products.id"), nullable=False
    )
    variant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("product_variants.id"), nullable=False
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    order: Mapped[Order] = relationship(back_populates="items")
    product: Mapped[Product] = relationship()
    variant: Mapped[ProductVariant] = relationship()

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        CheckConstraint("unit_price >= 0", name="ck_order_items_unit_price_non_negative"),
    )

    @property
    def line_total(self) -> Decimal:
        return Decimal(self.quantity) * Decimal(self.unit_price)

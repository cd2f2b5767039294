"""
OrderDesk Backend - Pydantic Request/Response Schemas
=======================================================

What:  Pydantic models defining the API contract with the admin dashboard.
How:   FastAPI validates request bodies against these models, serializes
       responses through them and generates the OpenAPI docs from them.

Field names are snake_case in Python and camelCase on the wire
(`payment_status` ↔ `paymentStatus`), matching the dashboard's existing
order payloads.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from orderdesk.models.order import Order, OrderItem
from orderdesk.models.status import DeliveryStatus, OrderStatus, PaymentStatus
from orderdesk.models.user import User


class CamelModel(BaseModel):
    """
    Base for the order API models.

    What:  Serializes snake_case attributes as camelCase JSON (fullName,
           totalDocs) and accepts either spelling on input.
    How:   pydantic alias_generator + from_attributes, so ORM rows validate
           directly.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class CustomerResponse(CamelModel):
    """Customer details as captured on the order at checkout."""

    full_name: str
    phone: str
    address: str
    email: str


class UserRef(CamelModel):
    """A populated manager or shipper reference."""
    id: uuid.UUID
    full_name: str
    email: str
    role: str

    @classmethod
    def from_user(cls, user: Optional[User]) -> Optional["UserRef"]:
        if user is None:
            return None
        return cls(id=user.id, full_name=user.full_name, email=user.email, role=user.role.value)


class ProductRef(CamelModel):
    id: uuid.UUID
    name: str


class VariantRef(CamelModel):
    id: uuid.UUID
    name: str
    price: float


class OrderItemResponse(CamelModel):
    """One line item; `lineTotal` is quantity times the unit price."""

    id: uuid.UUID
    product: ProductRef
    variant: VariantRef
    quantity: int
    unit_price: float
    line_total: float

    @classmethod
    def from_item(cls, item: OrderItem) -> "OrderItemResponse":
        return cls(
            id=item.id,
            product=ProductRef(id=item.product.id, name=item.product.name),
            variant=VariantRef(id=item.variant.id, name=item.variant.name, price=item.variant.price),
            quantity=item.quantity,
            unit_price=item.unit_price,
            line_total=item.line_total,
        )


class OrderSummary(CamelModel):
    """
    Order as shown in list views: no line-item detail, but the total is
    still recomputed from the items.
    """
    id: uuid.UUID
    code: str
    customer: CustomerResponse
    payment_method: str
    payment_status: PaymentStatus
    delivery_status: DeliveryStatus
    status: OrderStatus
    order_total_price: float
    item_count: int
    manager_id: Optional[uuid.UUID] = None
    shipper_id: Optional[uuid.UUID] = None
    manager: Optional[UserRef] = None
    shipper: Optional[UserRef] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def summary_fields(cls, order: Order) -> dict:
        return dict(
            id=order.id,
            code=order.code,
            customer=CustomerResponse.model_validate(order.customer),
            payment_method=order.payment_method,
            payment_status=order.payment_status,
            delivery_status=order.delivery_status,
            status=order.status,
            order_total_price=order.reconciled_total(),
            item_count=len(order.items),
            manager_id=order.manager_id,
            shipper_id=order.shipper_id,
            manager=UserRef.from_user(order.manager),
            shipper=UserRef.from_user(order.shipper),
            created_at=order.created_at,
            updated_at=order.updated_at,
        )

    @classmethod
    def from_order(cls, order: Order) -> "OrderSummary":
        return cls(**cls.summary_fields(order))


class OrderResponse(OrderSummary):
    """Full order with line items, products and variants resolved."""
    items: List[OrderItemResponse]

    @classmethod
    def from_order(cls, order: Order) -> "OrderResponse":
        return cls(
            **cls.summary_fields(order),
            items=[OrderItemResponse.from_item(item) for item in order.items],
        )


class OrderPage(CamelModel):
    """
    One page of a search, in the paginator shape the dashboard consumes:

        {"docs": [...], "totalDocs": 57, "limit": 10, "page": 2,
         "totalPages": 6, "pagingCounter": 11, "hasPrevPage": true,
         "hasNextPage": true, "prevPage": 1, "nextPage": 3}
    """
    docs: List[OrderSummary]
    total_docs: int
    limit: int
    page: int
    total_pages: int
    paging_counter: int
    has_prev_page: bool
    has_next_page: bool
    prev_page: Optional[int] = None
    next_page: Optional[int] = None


class OrderStatistic(CamelModel):
    """Dashboard counters returned by GET /orders/statistic."""

    total_canceled: int
    total_completed: int
    total: int


class MessageResponse(BaseModel):
    """Plain confirmation, e.g. {"message": "Email sent successfully."}."""

    message: str


# ══════════════════════════════════════════════════════════════════════════
# Request Bodies
# ══════════════════════════════════════════════════════════════════════════


class DeliveryStatusUpdate(CamelModel):
    """Body of POST /orders/{id}/ship/status."""

    status: DeliveryStatus = Field(description="New delivery status")


class ShipperAssignment(CamelModel):
    """
    Body of PUT /orders/{id}/ship.

    The field is required but nullable: {"shipperId": null} unassigns,
    while an empty body is a 422.
    """

    shipper_id: Optional[uuid.UUID] = Field(
        description="Shipper account to assign; null unassigns the current shipper"
    )


# ══════════════════════════════════════════════════════════════════════════
# Error / Health Models
# ══════════════════════════════════════════════════════════════════════════


class ErrorResponse(BaseModel):
    """
    Standardized error body for every failed request.

    Example:
        {
            "error": "transition_rejected",
            "message": "Can not cancel this order that was completed.",
            "details": {"action": "cancel", "status": "Completed"},
            "request_id": "1f3a9c2e"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    mail: str = Field(description="Mail relay configuration: configured, unconfigured")
    uptime_seconds: float = Field(description="Seconds since service started")

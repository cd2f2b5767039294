"""
OrderDesk Backend - Order Route Handlers
==========================================

What:  The /orders API used by the admin dashboard.
How:   Extract query/path/body input, delegate to OrderService, return JSON.
       Errors are raised as exceptions and formatted by the global handlers.

Route Inventory:
    GET    /orders                         paginated search, scoped by role
    GET    /orders/statistic               canceled / completed / total counts
    GET    /orders/all                     unpaginated list, scoped by role
    GET    /orders/{id}                    populated order
    GET    /orders/{id}/invoice            inline PDF
    GET    /orders/{id}/invoice/send-email email the PDF to the customer
    POST   /orders/{id}/pay                Pay
    POST   /orders/{id}/ship/status        SetDeliveryStatus
    POST   /orders/{id}/cancel             Cancel
    PUT    /orders/{id}/ship               AssignShipper
    DELETE /orders/{id}                    hard delete

The fixed paths (/statistic, /all) are registered before /{id} so they are
never captured as an order id.
"""

import logging
import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from orderdesk.config import settings
from orderdesk.database import get_db_session
from orderdesk.dependencies import get_caller, get_mail_dispatcher, parse_order_id
from orderdesk.schemas.caller import Caller
from orderdesk.schemas.order import (
    DeliveryStatusUpdate,
    ErrorResponse,
    MessageResponse,
    OrderPage,
    OrderResponse,
    OrderStatistic,
    OrderSummary,
    ShipperAssignment,
)
from orderdesk.services.invoice_renderer import iter_chunks
from orderdesk.services.mail_dispatcher import MailDispatcher
from orderdesk.services.order_filters import OrderFilter
from orderdesk.services.order_service import order_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["Orders"])

NOT_FOUND = {404: {"description": "Order not found", "model": ErrorResponse}}
BAD_ID = {400: {"description": "Missing or malformed id", "model": ErrorResponse}}
REJECTED = {409: {"description": "Transition rejected by a business rule", "model": ErrorResponse}}


@router.get(
    "",
    response_model=OrderPage,
    responses={400: {"description": "Invalid filter or sort", "model": ErrorResponse}},
    summary="Search orders with pagination",
)
async def search_orders(
    limit: int = Query(
        default=settings.default_page_size, alias="_limit", ge=1, le=settings.max_page_size,
        description="Items per page",
    ),
    page: int = Query(default=1, alias="_page", ge=1, description="1-based page number"),
    sort: str = Query(default="createdAt", alias="_sort", description="Sort field (camelCase)"),
    direction: str = Query(default="desc", alias="_order", description="'asc' or 'desc'"),
    q: Optional[str] = Query(default=None, description="Substring of code, phone or customer name"),
    status: Optional[str] = Query(default=None, description="Pending, Completed, Canceled or all"),
    date_from: Optional[str] = Query(default=None, alias="from", description="Created on/after (date or ISO datetime)"),
    date_to: Optional[str] = Query(default=None, alias="to", description="Created on/before (date or ISO datetime)"),
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db_session),
) -> OrderPage:
    """
    Example:
        GET /orders?_page=2&_limit=20&q=0903&status=Pending&from=2024-01-01&to=2024-01-31
    """
    return await order_service.search_orders(
        db,
        caller,
        OrderFilter(q=q, status=status, date_from=date_from, date_to=date_to),
        page=page,
        limit=limit,
        sort=sort,
        direction=direction,
    )


@router.get("/statistic", response_model=OrderStatistic, summary="Order counts by outcome")
async def order_statistic(
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db_session),
) -> OrderStatistic:
    """
    Dashboard counters: canceled, completed and overall order totals.

    What:    Counts every order regardless of who is asking.
    Who:     Called by the dashboard summary cards.
    """
    return await order_service.statistic(db)


@router.get("/all", response_model=List[OrderSummary], summary="All orders visible to the caller")
async def list_all_orders(
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db_session),
) -> List[OrderSummary]:
    """Every order the caller may see, newest first, without pagination."""
    return await order_service.list_all(db, caller)


@router.get(
    "/{order_id}",
    response_model=OrderResponse,
    responses={**BAD_ID, **NOT_FOUND},
    summary="Get one order with items, manager and shipper",
)
async def get_order(
    order_id: uuid.UUID = Depends(parse_order_id),
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db_session),
) -> OrderResponse:
    """
    Get one order, fully populated.

    What:    Customer snapshot, status fields, line items with product and
             variant names, manager and shipper.
    Who:     Called by the dashboard order detail page.

    Args:
        order_id: Parsed by parse_order_id; a malformed id is a 400, not a 422.
    """
    return await order_service.get_order(db, order_id)


@router.get(
    "/{order_id}/invoice",
    response_class=StreamingResponse,
    responses={
        200: {"description": "Invoice PDF", "content": {"application/pdf": {}}},
        **BAD_ID,
        **NOT_FOUND,
    },
    summary="Render the order's invoice as an inline PDF",
)
async def get_invoice(
    order_id: uuid.UUID = Depends(parse_order_id),
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db_session),
) -> StreamingResponse:
    """
    The PDF is rendered completely before the first byte is sent, so a
    rendering failure yields a JSON error instead of a truncated document.
    """
    artifact = await order_service.render_invoice(db, order_id)
    return StreamingResponse(
        iter_chunks(artifact),
        media_type="application/pdf",
        headers={
            "Content-Disposition": "inline; filename=invoice.pdf",
            "Content-Length": str(len(artifact)),
        },
    )


@router.get(
    "/{order_id}/invoice/send-email",
    response_model=MessageResponse,
    responses={
        **BAD_ID,
        **NOT_FOUND,
        502: {"description": "Mail relay rejected the message", "model": ErrorResponse},
    },
    summary="Email the invoice to the customer",
)
async def send_invoice_email(
    order_id: uuid.UUID = Depends(parse_order_id),
    caller: Caller = Depends(get_caller),
    dispatcher: MailDispatcher = Depends(get_mail_dispatcher),
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    """
    Render the invoice and email it to the order's customer.

    What:    Responds only after the relay accepted the message.
    Who:     The "Send invoice" button on the order detail page.

    Errors:
        502 with the relay's text verbatim when delivery fails. Nothing is
        retried; the user presses the button again.
    """
    return await order_service.send_invoice(db, order_id, dispatcher)


@router.post(
    "/{order_id}/pay",
    response_model=OrderResponse,
    responses={**BAD_ID, **NOT_FOUND, **REJECTED},
    summary="Mark the order as paid",
)
async def pay_order(
    order_id: uuid.UUID = Depends(parse_order_id),
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db_session),
) -> OrderResponse:
    """
    Mark the order as paid.

    Paying an already-paid order succeeds without a write. A canceled
    order is rejected.
    """
    return await order_service.pay(db, order_id)


@router.post(
    "/{order_id}/ship/status",
    response_model=OrderResponse,
    responses={**BAD_ID, **NOT_FOUND, **REJECTED},
    summary="Set the delivery status",
)
async def set_delivery_status(
    body: DeliveryStatusUpdate,
    order_id: uuid.UUID = Depends(parse_order_id),
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db_session),
) -> OrderResponse:
    """
    Move the delivery status. Shipped on a paid order completes it.

    Example:
        POST /orders/{id}/ship/status  {"status": "Shipping"}
    """
    return await order_service.set_delivery_status(db, order_id, body.status)


@router.post(
    "/{order_id}/cancel",
    response_model=OrderResponse,
    responses={**BAD_ID, **NOT_FOUND, **REJECTED},
    summary="Cancel the order",
)
async def cancel_order(
    order_id: uuid.UUID = Depends(parse_order_id),
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db_session),
) -> OrderResponse:
    """Cancel payment, delivery and the order together. Completed orders are rejected."""
    return await order_service.cancel(db, order_id)


@router.put(
    "/{order_id}/ship",
    response_model=OrderResponse,
    responses={**BAD_ID, **NOT_FOUND},
    summary="Assign (or unassign) the shipper",
)
async def assign_shipper(
    body: ShipperAssignment,
    order_id: uuid.UUID = Depends(parse_order_id),
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db_session),
) -> OrderResponse:
    """
    Assign a shipper, or unassign with {"shipperId": null}.

    An unknown shipper id is a 404 naming the shipper. Allowed in every status.
    """
    return await order_service.assign_shipper(db, order_id, body.shipper_id)


@router.delete(
    "/{order_id}",
    response_model=OrderResponse,
    responses={**BAD_ID, **NOT_FOUND},
    summary="Permanently delete the order",
)
async def delete_order(
    order_id: uuid.UUID = Depends(parse_order_id),
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db_session),
) -> OrderResponse:
    """
    Permanently delete the order and its line items.

    What:    Returns the order as it was just before deletion.
    Who:     Admin cleanup of test or duplicate orders. There is no undo.
    """
    logger.warning("Order %s deleted by %s %s", order_id, caller.role, caller.id)
    return await order_service.delete_order(db, order_id)

"""
OrderDesk Backend - Order Service (Business Logic Orchestrator)
=================================================================

What:  Coordinates the store, the status machine, the invoice renderer and
       the mail dispatcher for each order endpoint.
Who:   Called by route handlers; returns API schemas.

Transition Flow (POST /orders/{id}/pay, .../cancel, ...):
    ┌──────────┐    ┌──────────────┐    ┌──────────────┐    ┌──────────────┐
    │  Route   │───▶│ Store: fresh │───▶│ StatusMachine│───▶│ Store:       │
    │          │    │ find_by_id   │    │ apply        │    │ update_fields│
    └──────────┘    └──────────────┘    └──────────────┘    └──────────────┘

Invoice Email Flow (GET /orders/{id}/invoice/send-email):
    Store.find_by_id → InvoiceRenderer.render (worker thread, to completion)
    → MailDispatcher.send (awaits relay acknowledgement)

NotFoundError and TransitionRejectedError propagate unchanged to the global
handlers. Rejections are logged at INFO; they are expected outcomes.
"""

import logging
import uuid
from typing import List, Optional

from fastapi.concurrency import run_in_threadpool
from sqlalchemy.ext.asyncio import AsyncSession

from orderdesk.exceptions import TransitionRejectedError
from orderdesk.models.order import Order
from orderdesk.models.status import DeliveryStatus
from orderdesk.schemas.caller import Caller
from orderdesk.schemas.order import (
    MessageResponse,
    OrderPage,
    OrderResponse,
    OrderStatistic,
    OrderSummary,
)
from orderdesk.services.invoice_renderer import InvoiceRenderer, invoice_renderer
from orderdesk.services.mail_dispatcher import MailDispatcher
from orderdesk.services.order_filters import OrderFilter
from orderdesk.services.order_store import OrderStore, order_store
from orderdesk.services.status_machine import (
    Action,
    AssignShipper,
    Cancel,
    Pay,
    SetDeliveryStatus,
    StatusSnapshot,
    apply_transition,
)

logger = logging.getLogger(__name__)

EMAIL_SENT_MESSAGE = "Email sent successfully."


class OrderService:
    """
    Business logic layer for order operations.

    Stateless apart from its collaborators; the database session and the
    mail dispatcher are passed in per call.
    """

    def __init__(
        self,
        store: Optional[OrderStore] = None,
        renderer: Optional[InvoiceRenderer] = None,
    ):
        self.store = store or order_store
        self.renderer = renderer or invoice_renderer

    # ── Reads ─────────────────────────────────────────────────────────────

    async def search_orders(
        self,
        db: AsyncSession,
        caller: Caller,
        order_filter: OrderFilter,
        page: int,
        limit: int,
        sort: str,
        direction: str,
    ) -> OrderPage:
        result = await self.store.search(
            db,
            order_filter,
            caller,
            page=page,
            limit=limit,
            sort=sort,
            direction=direction,
        )
        return OrderPage(
            docs=[OrderSummary.from_order(order) for order in result.orders],
            total_docs=result.total,
            limit=result.limit,
            page=result.page,
            total_pages=result.total_pages,
            paging_counter=result.paging_counter,
            has_prev_page=result.page > 1,
            has_next_page=result.page < result.total_pages,
            prev_page=result.page - 1 if result.page > 1 else None,
            next_page=result.page + 1 if result.page < result.total_pages else None,
        )

    async def statistic(self, db: AsyncSession) -> OrderStatistic:
        return OrderStatistic(**await self.store.count_by_status(db))

    async def list_all(self, db: AsyncSession, caller: Caller) -> List[OrderSummary]:
        orders = await self.store.list_all(db, caller)
        return [OrderSummary.from_order(order) for order in orders]

    async def get_order(self, db: AsyncSession, order_id: uuid.UUID) -> OrderResponse:
        order = await self.store.find_by_id(db, order_id)
        return OrderResponse.from_order(order)

    # ── Transitions ───────────────────────────────────────────────────────

    async def apply(self, db: AsyncSession, order_id: uuid.UUID, action: Action) -> OrderResponse:
        """
        Read the order fresh, run the status machine, persist the difference.

        Raises:
            NotFoundError: Unknown order id
            TransitionRejectedError: A guard refused the action; nothing written
        """
        order = await self.store.find_by_id(db, order_id)
        before = StatusSnapshot.of(order)

        try:
            after = apply_transition(before, action)
        except TransitionRejectedError as e:
            logger.info("Order %s: %s rejected: %s", order.code, action.name, e.message)
            raise

        updated = await self.store.update_fields(db, order_id, after.changed_fields(before))
        return OrderResponse.from_order(updated)

    async def pay(self, db: AsyncSession, order_id: uuid.UUID) -> OrderResponse:
        return await self.apply(db, order_id, Pay())

    async def set_delivery_status(
        self, db: AsyncSession, order_id: uuid.UUID, delivery_status: DeliveryStatus
    ) -> OrderResponse:
        return await self.apply(db, order_id, SetDeliveryStatus(delivery_status))

    async def cancel(self, db: AsyncSession, order_id: uuid.UUID) -> OrderResponse:
        return await self.apply(db, order_id, Cancel())

    async def assign_shipper(
        self, db: AsyncSession, order_id: uuid.UUID, shipper_id: Optional[uuid.UUID]
    ) -> OrderResponse:
        if shipper_id is not None:
            await self.store.find_user(db, shipper_id, resource="shipper")
        return await self.apply(db, order_id, AssignShipper(shipper_id))

    async def delete_order(self, db: AsyncSession, order_id: uuid.UUID) -> OrderResponse:
        order = await self.store.delete(db, order_id)
        return OrderResponse.from_order(order)

    # ── Invoices ──────────────────────────────────────────────────────────

    async def render_invoice(self, db: AsyncSession, order_id: uuid.UUID) -> bytes:
        """Fetch a populated order and render its invoice to completion."""
        order = await self.store.find_by_id(db, order_id)
        return await self._render(order)

    async def send_invoice(
        self,
        db: AsyncSession,
        order_id: uuid.UUID,
        dispatcher: MailDispatcher,
    ) -> MessageResponse:
        """
        Render the invoice and email it to the customer.

        The artifact is fully rendered before the dispatcher reads it.

        Raises:
            InvoiceRenderError: Rendering failed; nothing was sent
            MailTransportError: The relay refused the message (not retried)
        """
        order = await self.store.find_by_id(db, order_id)
        artifact = await self._render(order)
        await dispatcher.send(order, artifact)
        return MessageResponse(message=EMAIL_SENT_MESSAGE)

    async def _render(self, order: Order) -> bytes:
        # reportlab is synchronous and CPU-bound
        return await run_in_threadpool(self.renderer.render, order)


order_service = OrderService()

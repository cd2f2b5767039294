"""
OrderDesk Backend - Order Store
=================================

What:  Persistence operations over orders and their referenced rows.
How:   Async SQLAlchemy queries on the request's session. Every read that
       returns orders eager-loads ("populates") the references the caller
       will serialize, because lazy loading is not available on an
       AsyncSession.
Who:   OrderService.

Operations:
    find_by_id(id)                 → Order (items, products, variants, manager, shipper)
    search(filter, page, sort)     → OrderPageResult
    list_all(caller)               → [Order]
    count_by_status()              → {canceled, completed, total}
    update_fields(id, changes)     → Order, re-read after the write
    delete(id)                     → the deleted Order
    find_user(id)                  → User, for manager / shipper references

`update_fields` is the only method that writes order columns. It does not
compare versions: two concurrent writers to one order race, and the last
write wins.
"""

import logging
import math
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from orderdesk.exceptions import DatabaseError, NotFoundError
from orderdesk.models.order import Order, OrderItem
from orderdesk.models.status import OrderStatus
from orderdesk.models.user import User
from orderdesk.schemas.caller import Caller
from orderdesk.services.order_filters import (
    OrderFilter,
    build_order_by,
    build_order_filter,
    scope_predicate,
)

logger = logging.getLogger(__name__)

# Detail reads: everything the full order view and the invoice need.
DETAIL_LOADERS = (
    selectinload(Order.items).selectinload(OrderItem.product),
    selectinload(Order.items).selectinload(OrderItem.variant),
    selectinload(Order.manager),
    selectinload(Order.shipper),
)

# List reads: items are needed for the recomputed total only.
LIST_LOADERS = (
    selectinload(Order.items),
    selectinload(Order.manager),
    selectinload(Order.shipper),
)


@dataclass
class OrderPageResult:
    orders: List[Order]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return max(1, math.ceil(self.total / self.limit))

    @property
    def paging_counter(self) -> int:
        return (self.page - 1) * self.limit + 1


@contextmanager
def _database_errors(operation: str, **context: Any) -> Iterator[None]:
    """Translate driver/ORM failures into DatabaseError; log the original."""
    try:
        yield
    except SQLAlchemyError as e:
        logger.error("Database error during %s: %s", operation, str(e), exc_info=True)
        raise DatabaseError(
            message=f"Could not {operation}. Please try again.",
            context={"error_type": type(e).__name__, **context},
        )


class OrderStore:
    """Stateless; each call runs on the session it is given."""

    async def find_by_id(self, db: AsyncSession, order_id: uuid.UUID) -> Order:
        """
        Fetch one order, fully populated, bypassing any copy already held
        in the session's identity map.

        Raises:
            NotFoundError: No order with this id (→ 404)
            DatabaseError: Query execution failed (→ 500)
        """
        with _database_errors("retrieve the order", order_id=str(order_id)):
            result = await db.execute(
                select(Order)
                .options(*DETAIL_LOADERS)
                .where(Order.id == order_id)
                .execution_options(populate_existing=True)
            )
            order = result.scalar_one_or_none()

        if order is None:
            raise NotFoundError(resource="order", resource_id=str(order_id))
        return order

    async def search(
        self,
        db: AsyncSession,
        order_filter: OrderFilter,
        caller: Optional[Caller],
        page: int = 1,
        limit: int = 10,
        sort: str = "createdAt",
        direction: str = "desc",
    ) -> OrderPageResult:
        """
        One page of orders matching the filter, scoped to the caller.

        Query plan (default sort, no filters):
            SELECT ... FROM orders ORDER BY created_at DESC, id LIMIT :limit OFFSET :offset
            → uses idx_orders_created_at
        A second COUNT(*) with the same predicates gives totalDocs.
        """
        predicates = build_order_filter(order_filter, caller)
        order_by = build_order_by(sort, direction)

        with _database_errors("retrieve orders"):
            total = await db.scalar(
                select(func.count()).select_from(Order).where(*predicates)
            ) or 0

            result = await db.execute(
                select(Order)
                .options(*LIST_LOADERS)
                .where(*predicates)
                .order_by(order_by, Order.id)
                .limit(limit)
                .offset((page - 1) * limit)
            )
            orders = list(result.scalars().all())

        logger.debug(
            "Order search page=%d limit=%d matched=%d returned=%d",
            page, limit, total, len(orders),
        )
        return OrderPageResult(orders=orders, total=total, page=page, limit=limit)

    async def list_all(self, db: AsyncSession, caller: Optional[Caller]) -> List[Order]:
        """Every order visible to the caller, newest first, unpaginated."""
        scope = scope_predicate(caller)
        query = select(Order).options(*LIST_LOADERS).order_by(Order.created_at.desc(), Order.id)
        if scope is not None:
            query = query.where(scope)

        with _database_errors("retrieve orders"):
            result = await db.execute(query)
            return list(result.scalars().all())

    async def count_by_status(self, db: AsyncSession) -> Dict[str, int]:
        """Order counts for the dashboard: canceled, completed and overall."""
        with _database_errors("count orders"):
            result = await db.execute(
                select(Order.status, func.count()).group_by(Order.status)
            )
            counts = {OrderStatus(status): count for status, count in result.all()}

        return {
            "total_canceled": counts.get(OrderStatus.CANCELED, 0),
            "total_completed": counts.get(OrderStatus.COMPLETED, 0),
            "total": sum(counts.values()),
        }

    async def update_fields(
        self,
        db: AsyncSession,
        order_id: uuid.UUID,
        changes: Dict[str, Any],
    ) -> Order:
        """
        Write `changes` to one order in a single UPDATE, then re-read it.

        `updated_at` is stamped on every write. An empty change set performs
        no write and returns the current order.

        Raises:
            NotFoundError: The order disappeared before the write
            DatabaseError: Statement execution failed
        """
        if not changes:
            return await self.find_by_id(db, order_id)

        values = dict(changes)
        values.setdefault("updated_at", datetime.now(timezone.utc))

        with _database_errors("update the order", order_id=str(order_id)):
            result = await db.execute(
                update(Order)
                .where(Order.id == order_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )

        if result.rowcount == 0:
            raise NotFoundError(resource="order", resource_id=str(order_id))

        logger.info(
            "Order %s updated: %s",
            order_id,
            ", ".join(f"{k}={getattr(v, 'value', v)}" for k, v in changes.items()),
        )
        return await self.find_by_id(db, order_id)

    async def delete(self, db: AsyncSession, order_id: uuid.UUID) -> Order:
        """
        Hard-delete an order and its line items. Irreversible.

        Returns the deleted order as it was just before deletion.
        """
        order = await self.find_by_id(db, order_id)

        with _database_errors("delete the order", order_id=str(order_id)):
            await db.delete(order)
            await db.flush()

        logger.info("Order %s (%s) deleted", order.code, order_id)
        return order

    async def find_user(
        self, db: AsyncSession, user_id: uuid.UUID, resource: str = "user"
    ) -> User:
        """Fetch a user an order can reference. `resource` names it in the 404."""
        with _database_errors("retrieve the user", user_id=str(user_id)):
            user = await db.get(User, user_id)

        if user is None:
            raise NotFoundError(resource=resource, resource_id=str(user_id))
        return user


order_store = OrderStore()

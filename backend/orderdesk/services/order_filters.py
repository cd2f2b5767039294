"""
OrderDesk Backend - Order Search Filters
==========================================

What:  Builds the WHERE and ORDER BY clauses for order searches.
How:   One small function per optional predicate; `build_order_filter()`
       composes whichever of them apply. Each returns None when its input
       is absent, so every predicate can be tested on its own.
Who:   OrderStore.search() and OrderStore.list_all().

Predicates:
    text_predicate(q)                  code / phone / full_name ILIKE %q%
    status_predicate(status)           status == status ("all" = no filter)
    created_range_predicate(from, to)  inclusive created_at range
    scope_predicate(caller)            staff → own managed, shipper → own shipped
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import List, Optional, Tuple
from zoneinfo import ZoneInfo

from sqlalchemy import ColumnElement, and_, or_
from sqlalchemy.sql.elements import UnaryExpression

from orderdesk.config import settings
from orderdesk.exceptions import ValidationError
from orderdesk.models.order import Order
from orderdesk.models.status import OrderStatus
from orderdesk.schemas.caller import Caller

# API sort key → column. Keys use the camelCase names of the JSON contract.
SORTABLE_COLUMNS = {
    "createdAt": Order.created_at,
    "updatedAt": Order.updated_at,
    "code": Order.code,
    "status": Order.status,
    "fullName": Order.full_name,
    "orderTotalPrice": Order.order_total_price,
}


@dataclass(frozen=True)
class OrderFilter:
    """Raw search input as received on the query string."""

    q: Optional[str] = None
    status: Optional[str] = None
    date_from: Optional[str] = None
    date_to: Optional[str] = None


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def text_predicate(q: Optional[str]) -> Optional[ColumnElement[bool]]:
    """Case-insensitive substring match over code, phone and customer name."""
    if q is None or not q.strip():
        return None
    pattern = f"%{_escape_like(q.strip())}%"
    return or_(
        Order.code.ilike(pattern, escape="\\"),
        Order.phone.ilike(pattern, escape="\\"),
        Order.full_name.ilike(pattern, escape="\\"),
    )


def status_predicate(status: Optional[str]) -> Optional[ColumnElement[bool]]:
    """Exact aggregate-status match. Empty or "all" means no restriction."""
    if not status or status == "all":
        return None
    try:
        wanted = OrderStatus(status)
    except ValueError:
        raise ValidationError(
            message=(
                f"Unknown status '{status}'. "
                f"Allowed: all, {', '.join(s.value for s in OrderStatus)}"
            ),
            field="status",
        )
    return Order.status == wanted


def _business_zone() -> ZoneInfo:
    return ZoneInfo(settings.business_timezone)


def _parse_bound(raw: str, field: str, zone: ZoneInfo) -> Tuple[datetime, bool]:
    """
    Parse a date or datetime bound into an aware UTC datetime.

    Returns (instant, is_date_only). Naive datetimes are read in `zone`.
    """
    raw = raw.strip()
    try:
        if len(raw) == 10:
            day = date.fromisoformat(raw)
            return datetime.combine(day, time.min, tzinfo=zone).astimezone(timezone.utc), True
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError(
            message=f"Invalid date '{raw}'. Use YYYY-MM-DD or an ISO 8601 datetime.",
            field=field,
        )
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=zone)
    return parsed.astimezone(timezone.utc), False


def created_range_predicate(
    date_from: Optional[str],
    date_to: Optional[str],
    zone: Optional[ZoneInfo] = None,
) -> Optional[ColumnElement[bool]]:
    """
    Inclusive created_at range.

    A date-only `date_to` covers that whole calendar day in the business
    time zone (created_at < next local midnight).
    """
    if not date_from and not date_to:
        return None
    zone = zone or _business_zone()
    clauses = []
    if date_from:
        start, _ = _parse_bound(date_from, "from", zone)
        clauses.append(Order.created_at >= start)
    if date_to:
        end, date_only = _parse_bound(date_to, "to", zone)
        if date_only:
            local_day = end.astimezone(zone).date() + timedelta(days=1)
            next_midnight = datetime.combine(local_day, time.min, tzinfo=zone)
            clauses.append(Order.created_at < next_midnight.astimezone(timezone.utc))
        else:
            clauses.append(Order.created_at <= end)
    return and_(*clauses)


def scope_predicate(caller: Optional[Caller]) -> Optional[ColumnElement[bool]]:
    """Staff see the orders they manage; shippers see the orders they carry."""
    if caller is None:
        return None
    if caller.is_staff:
        return Order.manager_id == caller.id
    if caller.is_shipper:
        return Order.shipper_id == caller.id
    return None


def build_order_filter(order_filter: OrderFilter, caller: Optional[Caller]) -> List[ColumnElement[bool]]:
    """All applicable predicates for a search, ready for `select().where(*...)`."""
    predicates = [
        text_predicate(order_filter.q),
        status_predicate(order_filter.status),
        created_range_predicate(order_filter.date_from, order_filter.date_to),
        scope_predicate(caller),
    ]
    return [p for p in predicates if p is not None]


def build_order_by(sort: str, direction: str) -> UnaryExpression:
    """ORDER BY clause for an API sort key and "asc"/"desc" direction."""
    column = SORTABLE_COLUMNS.get(sort)
    if column is None:
        raise ValidationError(
            message=f"Cannot sort by '{sort}'. Allowed: {', '.join(sorted(SORTABLE_COLUMNS))}",
            field="_sort",
        )
    if direction not in ("asc", "desc"):
        raise ValidationError(
            message=f"Invalid sort order '{direction}'. Must be 'asc' or 'desc'.",
            field="_order",
        )
    return column.desc() if direction == "desc" else column.asc()

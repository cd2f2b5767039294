"""
OrderDesk Backend - Order Filter Tests
========================================

Each predicate builder is checked on its own: absent input yields None,
present input yields a clause, bad input raises ValidationError.
Clauses are inspected through their compiled SQL and bound parameters.
"""

import uuid
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy.dialects import sqlite

from orderdesk.exceptions import ValidationError
from orderdesk.models.status import OrderStatus
from orderdesk.schemas.caller import Caller
from orderdesk.services.order_filters import (
    SORTABLE_COLUMNS,
    OrderFilter,
    _parse_bound,
    build_order_by,
    build_order_filter,
    created_range_predicate,
    scope_predicate,
    status_predicate,
    text_predicate,
)

UTC = timezone.utc
SAIGON = ZoneInfo("Asia/Ho_Chi_Minh")


def compiled(clause):
    return clause.compile(dialect=sqlite.dialect())


class TestTextPredicate:

    @pytest.mark.parametrize("q", [None, "", "   "])
    def test_blank_query_means_no_filter(self, q):
        assert text_predicate(q) is None

    def test_matches_code_phone_and_name(self):
        sql = str(compiled(text_predicate("0903")))

        assert "orders.code" in sql
        assert "orders.phone" in sql
        assert "orders.full_name" in sql

    def test_wildcards_in_input_are_escaped(self):
        params = compiled(text_predicate("50%_off")).params
        assert set(params.values()) == {"%50\\%\\_off%"}


class TestStatusPredicate:

    @pytest.mark.parametrize("value", [None, "", "all"])
    def test_no_restriction(self, value):
        assert status_predicate(value) is None

    @pytest.mark.parametrize("value", [s.value for s in OrderStatus])
    def test_known_status(self, value):
        params = compiled(status_predicate(value)).params
        assert list(params.values()) == [value]

    def test_unknown_status_is_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            status_predicate("Shipped")

        assert exc_info.value.field == "status"
        assert "Allowed: all, Pending, Completed, Canceled" in exc_info.value.message


class TestParseBound:

    def test_date_only_is_local_midnight(self):
        instant, date_only = _parse_bound("2024-01-15", "from", SAIGON)

        assert date_only is True
        assert instant == datetime(2024, 1, 14, 17, 0, tzinfo=UTC)

    def test_naive_datetime_is_read_in_business_zone(self):
        instant, date_only = _parse_bound("2024-01-15T09:30:00", "from", SAIGON)

        assert date_only is False
        assert instant == datetime(2024, 1, 15, 2, 30, tzinfo=UTC)

    def test_zulu_suffix_is_utc(self):
        instant, _ = _parse_bound("2024-01-15T09:30:00Z", "to", SAIGON)
        assert instant == datetime(2024, 1, 15, 9, 30, tzinfo=UTC)

    @pytest.mark.parametrize("raw", ["yesterday", "2024-13-01", "15/01/2024"])
    def test_garbage_is_rejected(self, raw):
        with pytest.raises(ValidationError) as exc_info:
            _parse_bound(raw, "to", SAIGON)
        assert exc_info.value.field == "to"


class TestCreatedRangePredicate:

    def test_no_bounds_means_no_filter(self):
        assert created_range_predicate(None, None, SAIGON) is None
        assert created_range_predicate("", "", SAIGON) is None

    def test_from_only(self):
        params = compiled(created_range_predicate("2024-01-15", None, UTC)).params
        assert list(params.values()) == [datetime(2024, 1, 15, tzinfo=UTC)]

    def test_date_only_to_covers_whole_local_day(self):
        clause = created_range_predicate(None, "2024-01-15", SAIGON)
        sql = str(compiled(clause))
        params = compiled(clause).params

        assert "orders.created_at <" in sql
        assert list(params.values()) == [datetime(2024, 1, 15, 17, 0, tzinfo=UTC)]

    def test_datetime_to_is_inclusive(self):
        clause = created_range_predicate(None, "2024-01-15T12:00:00+00:00", SAIGON)
        sql = str(compiled(clause))

        assert "orders.created_at <=" in sql
        assert list(compiled(clause).params.values()) == [datetime(2024, 1, 15, 12, tzinfo=UTC)]

    def test_both_bounds(self):
        clause = created_range_predicate("2024-01-01", "2024-01-31", UTC)
        values = sorted(compiled(clause).params.values())

        assert values == [datetime(2024, 1, 1, tzinfo=UTC), datetime(2024, 2, 1, tzinfo=UTC)]


class TestScopePredicate:

    def test_no_caller_means_no_scope(self):
        assert scope_predicate(None) is None

    def test_admin_sees_everything(self):
        assert scope_predicate(Caller(id=uuid.uuid4(), role="admin")) is None

    def test_staff_sees_managed_orders(self):
        caller = Caller(id=uuid.uuid4(), role="staff")
        clause = compiled(scope_predicate(caller))

        assert "orders.manager_id" in str(clause)
        assert list(clause.params.values()) == [caller.id]

    def test_shipper_sees_carried_orders(self):
        caller = Caller(id=uuid.uuid4(), role="shipper")
        assert "orders.shipper_id" in str(compiled(scope_predicate(caller)))


class TestBuildOrderFilter:

    def test_empty_filter_for_admin(self):
        assert build_order_filter(OrderFilter(), Caller(id=uuid.uuid4(), role="admin")) == []

    def test_combines_present_predicates(self):
        predicates = build_order_filter(
            OrderFilter(q="Nguyen", status="Pending", date_from="2024-01-01"),
            Caller(id=uuid.uuid4(), role="staff"),
        )
        assert len(predicates) == 4

    def test_invalid_input_propagates(self):
        with pytest.raises(ValidationError):
            build_order_filter(OrderFilter(date_to="not-a-date"), None)


class TestBuildOrderBy:

    @pytest.mark.parametrize("sort", sorted(SORTABLE_COLUMNS))
    def test_every_sortable_key(self, sort):
        assert build_order_by(sort, "asc") is not None

    def test_direction(self):
        assert str(compiled(build_order_by("createdAt", "desc"))).endswith("DESC")
        assert str(compiled(build_order_by("createdAt", "asc"))).endswith("ASC")

    def test_unknown_field_is_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            build_order_by("password", "asc")
        assert exc_info.value.field == "_sort"

    def test_unknown_direction_is_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            build_order_by("code", "sideways")
        assert exc_info.value.field == "_order"

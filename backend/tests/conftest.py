"""
OrderDesk Backend - Test Configuration (conftest.py)
======================================================

What:  Shared pytest fixtures for the test suite.
How:   Store, service and API tests run against an in-memory SQLite database
       (aiosqlite) created fresh for each test; the API tests swap the
       app's session and mail dependencies through dependency_overrides.

Fixture Hierarchy (all function-scoped):
    ├── mock_db_session:  AsyncMock session for pure unit tests
    ├── build_order:      transient orders for renderer / dispatcher tests
    ├── db_engine:        in-memory engine with every table created
    ├── db_session:       AsyncSession bound to db_engine
    ├── staff:            users: admin, two staff members, a shipper
    ├── catalog:          one product with two variants
    ├── order_factory:    inserts a populated order
    ├── headers_for:      X-User-Id / X-User-Role headers for a user
    └── test_client:      HTTPX AsyncClient wired to the app
"""

import os

# Settings are read at import time; point them at test values first.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SMTP_USERNAME"] = "invoices@example.com"
os.environ["SMTP_PASSWORD"] = "test-password-not-real"
os.environ["LOG_LEVEL"] = "WARNING"

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Tuple
from unittest.mock import AsyncMock, MagicMock
import uuid

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from orderdesk.database import Base
from orderdesk.models import (
    DeliveryStatus,
    Order,
    OrderItem,
    OrderStatus,
    PaymentStatus,
    Product,
    ProductVariant,
    User,
    UserRole,
)


@dataclass
class Staff:
    admin: User
    staff_one: User
    staff_two: User
    shipper: User


@dataclass
class Catalog:
    product: Product
    small: ProductVariant
    large: ProductVariant


# ══════════════════════════════════════════════════════════════════════════
# Unit-test doubles
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def mock_db_session():
    """
    A mock AsyncSession for tests that never reach the database.

    Usage:
        mock_db_session.execute.return_value.scalar_one_or_none.return_value = order
    """
    session = AsyncMock()
    session.execute = AsyncMock()
    session.scalar = AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.delete = AsyncMock()
    session.add = MagicMock()
    return session


@pytest.fixture
def build_order():
    """
    Factory for transient (never persisted) orders with products and
    variants attached, for renderer and dispatcher tests.

    Item i has quantity i + 1 at 25.00, so two items total 75.00.
    """

    def build(item_count: int = 2, code: str = "O-1") -> Order:
        product = Product(id=uuid.uuid4(), name="Linen Shirt")
        variant = ProductVariant(id=uuid.uuid4(), product=product, name="M / Sand", price=Decimal("25.00"))
        items = [
            OrderItem(
                id=uuid.uuid4(),
                position=i,
                product=product,
                variant=variant,
                quantity=i + 1,
                unit_price=Decimal("25.00"),
            )
            for i in range(item_count)
        ]
        created = datetime(2024, 1, 10, 8, 0, tzinfo=timezone.utc)
        return Order(
            id=uuid.uuid4(),
            code=code,
            full_name="Nguyen Van A",
            phone="0903123456",
            address="12 Le Loi, District 1",
            email="customer@example.com",
            payment_method="COD",
            order_total_price=sum((item.line_total for item in items), Decimal("0")),
            payment_status=PaymentStatus.PAID,
            delivery_status=DeliveryStatus.SHIPPING,
            status=OrderStatus.PENDING,
            created_at=created,
            updated_at=created,
            items=items,
        )

    return build


# ══════════════════════════════════════════════════════════════════════════
# Database fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def db_engine():
    # StaticPool: every session shares the single in-memory connection.
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def staff(db_session) -> Staff:
    members = Staff(
        admin=User(full_name="Ada Admin", email="admin@example.com", role=UserRole.ADMIN),
        staff_one=User(full_name="Sam Staff", email="s1@example.com", role=UserRole.STAFF),
        staff_two=User(full_name="Sue Staff", email="s2@example.com", role=UserRole.STAFF),
        shipper=User(full_name="Cody Courier", email="ship@example.com", role=UserRole.SHIPPER),
    )
    db_session.add_all([members.admin, members.staff_one, members.staff_two, members.shipper])
    await db_session.commit()
    return members


@pytest_asyncio.fixture
async def catalog(db_session) -> Catalog:
    product = Product(name="Linen Shirt")
    small = ProductVariant(product=product, name="S / White", price=Decimal("25.00"))
    large = ProductVariant(product=product, name="L / Navy", price=Decimal("27.50"))
    db_session.add_all([product, small, large])
    await db_session.commit()
    return Catalog(product=product, small=small, large=large)


@pytest_asyncio.fixture
async def order_factory(db_session, catalog):
    """
    Insert an order and return its id.

    Usage:
        order_id = await order_factory("O-1", status=OrderStatus.COMPLETED, ...)
    """
    counter = {"n": 0}

    async def create(
        code: Optional[str] = None,
        *,
        full_name: str = "Nguyen Van A",
        phone: str = "0903123456",
        email: str = "customer@example.com",
        status: OrderStatus = OrderStatus.PENDING,
        payment_status: PaymentStatus = PaymentStatus.PENDING,
        delivery_status: DeliveryStatus = DeliveryStatus.PENDING,
        manager: Optional[User] = None,
        shipper: Optional[User] = None,
        created_at: Optional[datetime] = None,
        lines: Optional[List[Tuple[ProductVariant, int, Decimal]]] = None,
    ) -> uuid.UUID:
        counter["n"] += 1
        if lines is None:
            lines = [(catalog.small, 2, Decimal("25.00")), (catalog.large, 1, Decimal("27.50"))]
        items = [
            OrderItem(
                position=index,
                product_id=variant.product_id,
                variant_id=variant.id,
                quantity=quantity,
                unit_price=price,
            )
            for index, (variant, quantity, price) in enumerate(lines)
        ]
        stamp = created_at or datetime(2024, 1, 10, 8, 0, counter["n"], tzinfo=timezone.utc)
        order = Order(
            code=code or f"ORD-{counter['n']:04d}",
            full_name=full_name,
            phone=phone,
            address="12 Le Loi, District 1",
            email=email,
            payment_method="COD",
            order_total_price=sum((Decimal(q) * p for _, q, p in lines), Decimal("0")),
            status=status,
            payment_status=payment_status,
            delivery_status=delivery_status,
            manager_id=manager.id if manager else None,
            shipper_id=shipper.id if shipper else None,
            created_at=stamp,
            updated_at=stamp,
            items=items,
        )
        db_session.add(order)
        await db_session.commit()
        return order.id

    return create


# ══════════════════════════════════════════════════════════════════════════
# API client
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def headers_for():
    """Auth gateway headers identifying a user as the caller."""

    def build(user: User) -> Dict[str, str]:
        return {"X-User-Id": str(user.id), "X-User-Role": user.role.value}

    return build


@pytest.fixture
def mail_dispatcher():
    """Stand-in for the lifespan-created dispatcher; `send` is an AsyncMock."""
    dispatcher = MagicMock()
    dispatcher.send = AsyncMock()
    dispatcher.is_configured = True
    return dispatcher


@pytest_asyncio.fixture
async def test_client(session_factory, mail_dispatcher):
    """
    HTTPX AsyncClient talking to the app through ASGITransport.

    Each request gets its own session on the test database, committed on
    success and rolled back on error, like get_db_session.
    """
    from orderdesk.database import get_db_session
    from orderdesk.dependencies import get_mail_dispatcher
    from orderdesk.main import app

    async def override_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = override_session
    app.dependency_overrides[get_mail_dispatcher] = lambda: mail_dispatcher

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()

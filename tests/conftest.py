"""
Test Suite Configuration
"""
import os

# Before any kpi_engine import: settings are cached on first use
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("METRICS_CACHE_ENABLED", "false")

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator

import polars as pl
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from kpi_engine.config import MetricsSettings
from kpi_engine.database.models import Base
from kpi_engine.metrics.records import (
    CustomerRecord,
    OrderItemRecord,
    OrderRecord,
    ProductRecord,
    ServiceRequestRecord,
)
from kpi_engine.metrics.source import InMemoryRecordSource

NOW = datetime(2024, 1, 15, tzinfo=timezone.utc)


def days_ago(days: float, now: datetime = NOW) -> datetime:
    return now - timedelta(days=days)


def make_order(
    order_id: str,
    amount,
    status: str = "DELIVERED",
    created_at: datetime = None,
    customer_id: str = "cust-1",
    wilaya: str = None,
) -> OrderRecord:
    return OrderRecord(
        id=order_id,
        customer_id=customer_id,
        total_amount=Decimal(str(amount)),
        status=status,
        created_at=created_at or days_ago(1),
        wilaya=wilaya,
    )


def make_item(order_id: str, product_id: str, quantity: int, total_price) -> OrderItemRecord:
    total = Decimal(str(total_price))
    return OrderItemRecord(
        order_id=order_id,
        product_id=product_id,
        quantity=quantity,
        unit_price=total / quantity,
        total_price=total,
    )


@pytest.fixture
def now() -> datetime:
    """Fixed reference instant: 2024-01-15T00:00:00Z"""
    return NOW


@pytest.fixture
def metrics_settings() -> MetricsSettings:
    return MetricsSettings(cache_enabled=False)


@pytest.fixture
def products() -> list:
    return [
        ProductRecord(id="prod-1", name="Split AC 12000 BTU", stock_quantity=0, category_name="Air Conditioning"),
        ProductRecord(id="prod-2", name="Gas Heater", stock_quantity=4, category_name="Heating"),
        ProductRecord(id="prod-3", name="Filter Kit", stock_quantity=9, category_name=None),
        ProductRecord(id="prod-4", name="Water Heater 50L", stock_quantity=120, category_name="Water Heaters"),
        ProductRecord(id="prod-5", name="Retired Remote", stock_quantity=1, is_active=False),
    ]


@pytest.fixture
def customers() -> list:
    return [
        CustomerRecord(id="cust-1", name="Amina B.", created_at=days_ago(400), wilaya="Alger"),
        CustomerRecord(id="cust-2", name="Karim D.", created_at=days_ago(10), wilaya="Oran"),
        CustomerRecord(id="cust-3", name="Sofiane M.", created_at=days_ago(45)),
        CustomerRecord(id="cust-4", name="Nadia K.", created_at=days_ago(3)),
    ]


@pytest.fixture
def orders() -> list:
    """
    Current 30d window holds ord-1..ord-5, the previous one ord-6..ord-7.
    ord-8 is lifetime history for cust-1.
    """
    return [
        make_order("ord-1", 1000, "DELIVERED", days_ago(2), "cust-1", "Alger"),
        make_order("ord-2", 500, "CANCELLED", days_ago(3), "cust-2", "Oran"),
        make_order("ord-3", 2500, "SHIPPED", days_ago(5), "cust-2", "Oran"),
        make_order("ord-4", 300, "PENDING", days_ago(8), "cust-3"),
        make_order("ord-5", 700, "DELIVERED", days_ago(20), "cust-1", "Alger"),
        make_order("ord-6", 1500, "DELIVERED", days_ago(35), "cust-1", "Alger"),
        make_order("ord-7", 900, "CANCELLED", days_ago(50), "cust-3"),
        make_order("ord-8", 60000, "DELIVERED", days_ago(300), "cust-1", "Alger"),
    ]


@pytest.fixture
def order_items() -> list:
    return [
        make_item("ord-1", "prod-1", 1, 800),
        make_item("ord-1", "prod-3", 2, 200),
        make_item("ord-2", "prod-2", 1, 500),
        make_item("ord-3", "prod-1", 2, 1600),
        make_item("ord-3", "prod-2", 1, 900),
        make_item("ord-4", "prod-3", 3, 300),
        make_item("ord-5", "prod-4", 1, 700),
        make_item("ord-6", "prod-4", 2, 1500),
    ]


@pytest.fixture
def service_requests() -> list:
    return [
        ServiceRequestRecord(id="sr-1", status="COMPLETED", created_at=days_ago(1)),
        ServiceRequestRecord(id="sr-2", status="COMPLETED", created_at=days_ago(4)),
        ServiceRequestRecord(id="sr-3", status="PENDING", created_at=days_ago(6)),
        ServiceRequestRecord(id="sr-4", status="CANCELLED", created_at=days_ago(12)),
        ServiceRequestRecord(id="sr-5", status="COMPLETED", created_at=days_ago(40)),
    ]


@pytest.fixture
def record_source(orders, order_items, customers, service_requests, products) -> InMemoryRecordSource:
    return InMemoryRecordSource(
        orders=orders,
        order_items=order_items,
        customers=customers,
        service_requests=service_requests,
        products=products,
    )


@pytest.fixture
def frames(orders, order_items, customers, service_requests, products) -> dict:
    """The same records as polars frames"""
    return {
        "orders": pl.DataFrame({
            "id": [o.id for o in orders],
            "customer_id": [o.customer_id for o in orders],
            "total_amount": [float(o.total_amount) for o in orders],
            "status": [o.status.value for o in orders],
            "created_at": [o.created_at for o in orders],
            "wilaya": [o.wilaya for o in orders],
        }),
        "order_items": pl.DataFrame({
            "order_id": [i.order_id for i in order_items],
            "product_id": [i.product_id for i in order_items],
            "quantity": [i.quantity for i in order_items],
            "unit_price": [float(i.unit_price) for i in order_items],
            "total_price": [float(i.total_price) for i in order_items],
        }),
        "customers": pl.DataFrame({
            "id": [c.id for c in customers],
            "name": [c.name for c in customers],
            "created_at": [c.created_at for c in customers],
        }),
        "service_requests": pl.DataFrame({
            "id": [r.id for r in service_requests],
            "status": [r.status.value for r in service_requests],
            "created_at": [r.created_at for r in service_requests],
        }),
        "products": pl.DataFrame({
            "id": [p.id for p in products],
            "name": [p.name for p in products],
            "stock_quantity": [p.stock_quantity for p in products],
            "category_name": [p.category_name for p in products],
            "is_active": [p.is_active for p in products],
        }),
    }


@pytest_asyncio.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Fresh SQLite database file with the back office schema"""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'metrics.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()

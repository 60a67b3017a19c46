"""
SQL Record Source

RecordSource over the back office schema. Each fetch opens its own session so
the composer can run fetches concurrently; SQLAlchemy errors surface as
DataSourceUnavailable.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional

import structlog
from sqlalchemy import Select, and_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kpi_engine.database.models import (
    Category,
    Customer,
    Order,
    OrderItem,
    Product,
    ServiceRequest,
    Wilaya,
)
from kpi_engine.metrics.exceptions import DataSourceUnavailable
from kpi_engine.metrics.records import (
    CustomerRecord,
    OrderItemRecord,
    OrderRecord,
    ProductRecord,
    ServiceRequestRecord,
)

logger = structlog.get_logger(__name__)


def _window(column, start: Optional[datetime], end: Optional[datetime]) -> List[Any]:
    clauses = []
    if start is not None:
        clauses.append(column >= start)
    if end is not None:
        clauses.append(column < end)
    return clauses


class SqlRecordSource:
    """RecordSource reading through an async session factory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def _rows(self, name: str, query: Select) -> List[Any]:
        try:
            async with self.session_factory() as session:
                result = await session.execute(query)
                rows = result.all()
        except SQLAlchemyError as e:
            logger.error("Record query failed", query=name, error=str(e))
            raise DataSourceUnavailable(
                f"Failed to query {name}", details={"query": name, "error": str(e)}
            ) from e
        logger.debug("Record query completed", query=name, rows=len(rows))
        return rows

    async def fetch_orders(self, start: Optional[datetime], end: Optional[datetime]) -> List[OrderRecord]:
        query = (
            select(
                Order.id,
                Order.customer_id,
                Order.total_amount,
                Order.status,
                Order.created_at,
                Wilaya.name.label("wilaya"),
            )
            .outerjoin(Wilaya, Order.shipping_wilaya_id == Wilaya.id)
            .where(and_(True, *_window(Order.created_at, start, end)))
        )
        return [
            OrderRecord(
                id=row.id,
                customer_id=row.customer_id,
                total_amount=Decimal(row.total_amount),
                status=row.status,
                created_at=row.created_at,
                wilaya=row.wilaya,
            )
            for row in await self._rows("orders", query)
        ]

    async def fetch_order_items(
        self, start: Optional[datetime], end: Optional[datetime]
    ) -> List[OrderItemRecord]:
        query = (
            select(
                OrderItem.order_id,
                OrderItem.product_id,
                OrderItem.quantity,
                OrderItem.unit_price,
                OrderItem.total_price,
            )
            .join(Order, OrderItem.order_id == Order.id)
            .where(and_(True, *_window(Order.created_at, start, end)))
        )
        return [
            OrderItemRecord(
                order_id=row.order_id,
                product_id=row.product_id,
                quantity=row.quantity,
                unit_price=Decimal(row.unit_price),
                total_price=Decimal(row.total_price),
            )
            for row in await self._rows("order items", query)
        ]

    async def fetch_customers(self) -> List[CustomerRecord]:
        query = (
            select(
                Customer.id,
                Customer.first_name,
                Customer.last_name,
                Customer.created_at,
                Wilaya.name.label("wilaya"),
            )
            .outerjoin(Wilaya, Customer.wilaya_id == Wilaya.id)
        )
        records = []
        for row in await self._rows("customers", query):
            name = " ".join(part for part in (row.first_name, row.last_name) if part) or None
            records.append(CustomerRecord(
                id=row.id,
                created_at=row.created_at,
                name=name,
                wilaya=row.wilaya,
            ))
        return records

    async def fetch_service_requests(
        self, start: Optional[datetime], end: Optional[datetime]
    ) -> List[ServiceRequestRecord]:
        query = select(
            ServiceRequest.id,
            ServiceRequest.status,
            ServiceRequest.created_at,
        ).where(and_(True, *_window(ServiceRequest.created_at, start, end)))
        return [
            ServiceRequestRecord(id=row.id, status=row.status, created_at=row.created_at)
            for row in await self._rows("service requests", query)
        ]

    async def fetch_products(self) -> List[ProductRecord]:
        query = (
            select(
                Product.id,
                Product.name,
                Product.stock_quantity,
                Product.min_stock,
                Product.is_active,
                Category.name.label("category_name"),
            )
            .outerjoin(Category, Product.category_id == Category.id)
        )
        return [
            ProductRecord(
                id=row.id,
                name=row.name,
                stock_quantity=row.stock_quantity or 0,
                category_name=row.category_name,
                minimum_stock=row.min_stock,
                is_active=row.is_active,
            )
            for row in await self._rows("products", query)
        ]

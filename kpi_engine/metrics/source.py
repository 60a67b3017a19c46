"""
Record Sources

The engine reads records through `RecordSource`. Windowed fetches take a
half-open [start, end) range; a bound of None leaves that side open.
"""

from datetime import datetime
from typing import Iterable, List, Optional, Protocol, Sequence, runtime_checkable

from kpi_engine.metrics.records import (
    CustomerRecord,
    OrderItemRecord,
    OrderRecord,
    ProductRecord,
    ServiceRequestRecord,
    ensure_utc,
)


@runtime_checkable
class RecordSource(Protocol):
    """Read-only access to the transactional records"""

    async def fetch_orders(
        self, start: Optional[datetime], end: Optional[datetime]
    ) -> List[OrderRecord]:
        ...

    async def fetch_order_items(
        self, start: Optional[datetime], end: Optional[datetime]
    ) -> List[OrderItemRecord]:
        """Items whose parent order was placed in the window."""
        ...

    async def fetch_customers(self) -> List[CustomerRecord]:
        ...

    async def fetch_service_requests(
        self, start: Optional[datetime], end: Optional[datetime]
    ) -> List[ServiceRequestRecord]:
        ...

    async def fetch_products(self) -> List[ProductRecord]:
        ...


def within(instant: datetime, start: Optional[datetime], end: Optional[datetime]) -> bool:
    """Whether `instant` falls in [start, end) with open sides for None."""
    instant = ensure_utc(instant)
    if start is not None and instant < ensure_utc(start):
        return False
    if end is not None and instant >= ensure_utc(end):
        return False
    return True


class InMemoryRecordSource:
    """RecordSource over plain record lists, used by tests and demos."""

    def __init__(
        self,
        orders: Iterable[OrderRecord] = (),
        order_items: Iterable[OrderItemRecord] = (),
        customers: Iterable[CustomerRecord] = (),
        service_requests: Iterable[ServiceRequestRecord] = (),
        products: Iterable[ProductRecord] = (),
    ):
        self.orders: Sequence[OrderRecord] = list(orders)
        self.order_items: Sequence[OrderItemRecord] = list(order_items)
        self.customers: Sequence[CustomerRecord] = list(customers)
        self.service_requests: Sequence[ServiceRequestRecord] = list(service_requests)
        self.products: Sequence[ProductRecord] = list(products)

    async def fetch_orders(self, start, end) -> List[OrderRecord]:
        return [order for order in self.orders if within(order.created_at, start, end)]

    async def fetch_order_items(self, start, end) -> List[OrderItemRecord]:
        order_ids = {order.id for order in await self.fetch_orders(start, end)}
        return [item for item in self.order_items if item.order_id in order_ids]

    async def fetch_customers(self) -> List[CustomerRecord]:
        return list(self.customers)

    async def fetch_service_requests(self, start, end) -> List[ServiceRequestRecord]:
        return [
            request for request in self.service_requests
            if within(request.created_at, start, end)
        ]

    async def fetch_products(self) -> List[ProductRecord]:
        return list(self.products)

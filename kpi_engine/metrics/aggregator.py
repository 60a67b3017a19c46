"""
Record Aggregation

Folds order, order item, service request and product records into sums,
counts, and per-key partial sums (category, product, wilaya, status).

Revenue never includes cancelled orders. Order counts come in two modes:
every order placed, or revenue-eligible orders only. Item level breakdowns
only see items whose parent order is inside the window and not cancelled.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from kpi_engine.metrics.growth import percentage
from kpi_engine.metrics.periods import Period
from kpi_engine.metrics.records import (
    CustomerRecord,
    OrderItemRecord,
    OrderRecord,
    OrderStatus,
    ProductRecord,
    ServiceRequestRecord,
    ServiceRequestStatus,
    StockStatus,
    UNCATEGORIZED,
    UNKNOWN_REGION,
)

ZERO = Decimal("0")

DEFAULT_MINIMUM_STOCK = 10
CRITICAL_STOCK_LEVEL = 5

OrderPredicate = Callable[[OrderRecord], bool]


class CountMode(str, Enum):
    """Which orders an order count includes"""
    ALL_ORDERS = "all_orders"
    REVENUE_ELIGIBLE = "revenue_eligible"


def average_order_value(revenue: Decimal, count: int) -> Decimal:
    """Revenue per order, 0 when there are no orders."""
    if count == 0:
        return ZERO
    return Decimal(revenue) / count


# =============================================================================
# ACCUMULATORS
# =============================================================================

@dataclass
class RevenueTally:
    """Running revenue and order count"""
    revenue: Decimal = ZERO
    count: int = 0

    def add(self, amount: Decimal) -> None:
        self.revenue += amount
        self.count += 1

    @property
    def average_order_value(self) -> Decimal:
        return average_order_value(self.revenue, self.count)


@dataclass
class ProductTally:
    """Running item revenue, units and distinct parent orders"""
    revenue: Decimal = ZERO
    units: int = 0
    order_ids: Set[str] = field(default_factory=set)

    def add(self, item: OrderItemRecord) -> None:
        self.revenue += item.total_price
        self.units += item.quantity
        self.order_ids.add(item.order_id)


# =============================================================================
# RESULTS
# =============================================================================

@dataclass(frozen=True)
class OrderTotals:
    """Revenue (eligible orders only) and an order count in the requested mode"""
    revenue: Decimal
    count: int
    mode: CountMode

    @property
    def average_order_value(self) -> Decimal:
        return average_order_value(self.revenue, self.count)


@dataclass(frozen=True)
class CategoryDistributionRow:
    name: str
    revenue: Decimal
    percentage_of_total: float
    distinct_order_count: int


@dataclass(frozen=True)
class ProductPerformance:
    product_id: str
    name: str
    category: str
    revenue: Decimal
    units_sold: int
    order_count: int
    stock: int


@dataclass(frozen=True)
class RegionRow:
    region: str
    order_count: int
    revenue: Decimal
    percentage: float


@dataclass(frozen=True)
class ServiceStatusRow:
    status: ServiceRequestStatus
    count: int
    percentage: float


@dataclass(frozen=True)
class CustomerRegionRow:
    region: str
    customer_count: int


@dataclass(frozen=True)
class ServiceOverview:
    pending: int
    completed: int


@dataclass(frozen=True)
class InventoryAlert:
    product_id: str
    product_name: str
    current_stock: int
    minimum_stock: int
    status: StockStatus
    category: str = UNCATEGORIZED


@dataclass(frozen=True)
class InventoryOverview:
    """Catalog stock counts over active products only"""
    total_products: int
    low_stock: int
    out_of_stock: int


# =============================================================================
# ORDER TOTALS
# =============================================================================

def in_period(period: Period) -> OrderPredicate:
    """Predicate selecting orders placed inside `period`."""
    return lambda order: period.contains(order.created_at)


def aggregate(
    orders: Iterable[OrderRecord],
    predicate: Optional[OrderPredicate] = None,
    mode: CountMode = CountMode.REVENUE_ELIGIBLE,
) -> OrderTotals:
    """
    Sum revenue and count orders matching `predicate`.

    Args:
        orders: Orders to fold
        predicate: Optional filter applied before anything is counted
        mode: Whether the count includes cancelled orders

    Returns:
        OrderTotals: Eligible revenue and the order count for `mode`
    """
    revenue = ZERO
    count = 0
    for order in orders:
        if predicate is not None and not predicate(order):
            continue
        if order.is_revenue_eligible:
            revenue += order.total_amount
            count += 1
        elif mode == CountMode.ALL_ORDERS:
            count += 1
    return OrderTotals(revenue=revenue, count=count, mode=mode)


def count_by_status(
    orders: Iterable[OrderRecord],
    status: OrderStatus,
    predicate: Optional[OrderPredicate] = None,
) -> int:
    """Number of orders in `status` matching `predicate`."""
    return sum(
        1 for order in orders
        if order.status == status and (predicate is None or predicate(order))
    )


def distinct_buyers(orders: Iterable[OrderRecord], period: Period) -> Set[str]:
    """Customers with at least one revenue-eligible order in `period`."""
    return {
        order.customer_id for order in orders
        if order.is_revenue_eligible and period.contains(order.created_at)
    }


def customers_created_in(customers: Iterable[CustomerRecord], period: Period) -> int:
    return sum(1 for customer in customers if period.contains(customer.created_at))


def recent_orders(
    orders: Iterable[OrderRecord],
    period: Period,
    limit: int = 5,
) -> List[OrderRecord]:
    """The `limit` latest orders placed in `period`, cancelled included, newest first."""
    placed = [order for order in orders if period.contains(order.created_at)]
    placed.sort(key=lambda order: order.id)
    placed.sort(key=lambda order: order.created_at, reverse=True)
    return placed[:limit]


# =============================================================================
# ITEM LEVEL BREAKDOWNS
# =============================================================================

def eligible_items(
    items: Iterable[OrderItemRecord],
    orders: Iterable[OrderRecord],
    period: Period,
) -> List[Tuple[OrderItemRecord, OrderRecord]]:
    """Items joined to their parent order, keeping in-window non-cancelled orders."""
    parents = {
        order.id: order for order in orders
        if order.is_revenue_eligible and period.contains(order.created_at)
    }
    return [(item, parents[item.order_id]) for item in items if item.order_id in parents]


def category_distribution(
    items: Iterable[OrderItemRecord],
    orders: Iterable[OrderRecord],
    products: Iterable[ProductRecord],
    period: Period,
) -> List[CategoryDistributionRow]:
    """
    Item revenue per product category, sorted by revenue descending.

    Percentages are shares of the total item revenue of the window.
    """
    catalog = {product.id: product for product in products}
    tallies: Dict[str, ProductTally] = defaultdict(ProductTally)

    for item, _ in eligible_items(items, orders, period):
        product = catalog.get(item.product_id)
        name = product.category if product else UNCATEGORIZED
        tallies[name].add(item)

    total = sum((tally.revenue for tally in tallies.values()), ZERO)
    rows = [
        CategoryDistributionRow(
            name=name,
            revenue=tally.revenue,
            percentage_of_total=percentage(tally.revenue, total),
            distinct_order_count=len(tally.order_ids),
        )
        for name, tally in tallies.items()
    ]
    return sorted(rows, key=lambda row: row.revenue, reverse=True)


def product_performance(
    items: Iterable[OrderItemRecord],
    orders: Iterable[OrderRecord],
    products: Iterable[ProductRecord],
    period: Period,
) -> List[ProductPerformance]:
    """
    Revenue, units and distinct orders per product.

    Sorted by revenue descending; equal revenues are ordered by product id so
    the ranking does not depend on record order.
    """
    catalog = {product.id: product for product in products}
    tallies: Dict[str, ProductTally] = defaultdict(ProductTally)

    for item, _ in eligible_items(items, orders, period):
        tallies[item.product_id].add(item)

    rows = []
    for product_id, tally in tallies.items():
        product = catalog.get(product_id)
        rows.append(ProductPerformance(
            product_id=product_id,
            name=product.name if product else "Unknown",
            category=product.category if product else UNCATEGORIZED,
            revenue=tally.revenue,
            units_sold=tally.units,
            order_count=len(tally.order_ids),
            stock=product.stock_quantity if product else 0,
        ))

    rows.sort(key=lambda row: row.product_id)
    rows.sort(key=lambda row: row.revenue, reverse=True)
    return rows


def top_products(
    items: Iterable[OrderItemRecord],
    orders: Iterable[OrderRecord],
    products: Iterable[ProductRecord],
    period: Period,
    limit: int = 10,
) -> List[ProductPerformance]:
    """The `limit` best products by revenue."""
    return product_performance(items, orders, products, period)[:limit]


# =============================================================================
# GEOGRAPHY AND SERVICES
# =============================================================================

def geographic_distribution(
    orders: Iterable[OrderRecord],
    period: Period,
    limit: int = 10,
) -> List[RegionRow]:
    """
    Revenue-eligible orders per wilaya, top `limit` by revenue.

    Percentages are shares of the revenue of all wilayas, including the ones
    cut off by `limit`.
    """
    tallies: Dict[str, RevenueTally] = defaultdict(RevenueTally)
    for order in orders:
        if order.is_revenue_eligible and period.contains(order.created_at):
            tallies[order.wilaya or UNKNOWN_REGION].add(order.total_amount)

    total = sum((tally.revenue for tally in tallies.values()), ZERO)
    rows = [
        RegionRow(
            region=region,
            order_count=tally.count,
            revenue=tally.revenue,
            percentage=percentage(tally.revenue, total),
        )
        for region, tally in tallies.items()
    ]
    rows.sort(key=lambda row: row.revenue, reverse=True)
    return rows[:limit]


def customers_by_region(
    customers: Iterable[CustomerRecord],
    limit: int = 10,
) -> List[CustomerRegionRow]:
    """
    Customer accounts per wilaya, top `limit` by count.

    Customers without a known wilaya are left out rather than grouped.
    """
    counts: Dict[str, int] = defaultdict(int)
    for customer in customers:
        if customer.wilaya and customer.wilaya != UNKNOWN_REGION:
            counts[customer.wilaya] += 1

    rows = [CustomerRegionRow(region=region, customer_count=count) for region, count in counts.items()]
    rows.sort(key=lambda row: (-row.customer_count, row.region))
    return rows[:limit]


def service_overview(requests: Iterable[ServiceRequestRecord], period: Period) -> ServiceOverview:
    """Pending and completed service requests created in `period`."""
    pending = completed = 0
    for request in requests:
        if not period.contains(request.created_at):
            continue
        if request.status == ServiceRequestStatus.PENDING:
            pending += 1
        elif request.status == ServiceRequestStatus.COMPLETED:
            completed += 1
    return ServiceOverview(pending=pending, completed=completed)


def service_status_breakdown(
    requests: Iterable[ServiceRequestRecord],
    period: Period,
) -> List[ServiceStatusRow]:
    """Count and share of in-period service requests per status, cancelled included."""
    counts: Dict[ServiceRequestStatus, int] = defaultdict(int)
    for request in requests:
        if period.contains(request.created_at):
            counts[request.status] += 1

    total = sum(counts.values())
    order = list(ServiceRequestStatus)
    rows = [
        ServiceStatusRow(status=status, count=count, percentage=percentage(count, total))
        for status, count in counts.items()
    ]
    return sorted(rows, key=lambda row: (-row.count, order.index(row.status)))


# =============================================================================
# INVENTORY
# =============================================================================

def stock_status(
    stock_quantity: int,
    minimum_stock: Optional[int] = None,
    default_minimum_stock: int = DEFAULT_MINIMUM_STOCK,
    critical_level: int = CRITICAL_STOCK_LEVEL,
) -> Optional[StockStatus]:
    """
    Alert severity for a stock level, or None when no alert is due.

    Args:
        stock_quantity: Units on hand
        minimum_stock: Product reorder point (None uses the default)
        default_minimum_stock: Reorder point for products without one
        critical_level: Highest stock still considered critical

    Returns:
        StockStatus or None
    """
    threshold = default_minimum_stock if minimum_stock is None else minimum_stock
    if stock_quantity > threshold:
        return None
    if stock_quantity == 0:
        return StockStatus.OUT_OF_STOCK
    if stock_quantity <= critical_level:
        return StockStatus.CRITICAL
    return StockStatus.LOW_STOCK


def inventory_alerts(
    products: Sequence[ProductRecord],
    default_minimum_stock: int = DEFAULT_MINIMUM_STOCK,
    critical_level: int = CRITICAL_STOCK_LEVEL,
) -> List[InventoryAlert]:
    """Active products at or below their reorder point, lowest stock first."""
    alerts = []
    for product in products:
        if not product.is_active:
            continue
        status = stock_status(
            product.stock_quantity,
            product.minimum_stock,
            default_minimum_stock=default_minimum_stock,
            critical_level=critical_level,
        )
        if status is None:
            continue
        alerts.append(InventoryAlert(
            product_id=product.id,
            product_name=product.name,
            current_stock=product.stock_quantity,
            minimum_stock=default_minimum_stock if product.minimum_stock is None else product.minimum_stock,
            status=status,
            category=product.category,
        ))
    return sorted(alerts, key=lambda alert: alert.current_stock)


def inventory_overview(
    products: Sequence[ProductRecord],
    default_minimum_stock: int = DEFAULT_MINIMUM_STOCK,
    critical_level: int = CRITICAL_STOCK_LEVEL,
) -> InventoryOverview:
    """Active product count with how many of them are low or out of stock."""
    active = [product for product in products if product.is_active]
    alerts = inventory_alerts(active, default_minimum_stock, critical_level)
    return InventoryOverview(
        total_products=len(active),
        low_stock=len(alerts),
        out_of_stock=sum(1 for alert in alerts if alert.status == StockStatus.OUT_OF_STOCK),
    )

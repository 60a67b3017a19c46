"""
Dashboard Composition

Resolves the period and its comparison period, fetches the records they need
concurrently, and assembles the dashboard sections. Every entry point is
all-or-nothing: a failed or timed out fetch fails the whole call.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional, TypeVar

import structlog

from kpi_engine.config.logging import metrics_context
from kpi_engine.config.settings import MetricsSettings
from kpi_engine.metrics import aggregator
from kpi_engine.metrics.aggregator import CountMode, in_period
from kpi_engine.metrics.bucketing import (
    WeekStart,
    bucket_orders,
    parse_granularity,
    summarize_buckets,
)
from kpi_engine.metrics.exceptions import (
    CompositionTimeout,
    DataSourceUnavailable,
    MetricsError,
)
from kpi_engine.metrics.growth import percentage, rounded_growth
from kpi_engine.metrics.periods import Period, comparison_period, parse_timeframe, resolve_period
from kpi_engine.metrics.records import (
    CustomerRecord,
    OrderItemRecord,
    OrderRecord,
    OrderStatus,
    ProductRecord,
    ServiceRequestRecord,
    ensure_utc,
)
from kpi_engine.metrics.schemas import (
    BusinessMetrics,
    CategorySlice,
    CustomerRegionSlice,
    Dashboard,
    DashboardSummary,
    InventoryAlertEntry,
    InventoryStats,
    RecentOrder,
    RegionSlice,
    SalesPoint,
    SalesTrends,
    SalesTrendSummary,
    SegmentSlice,
    ServiceRequestStats,
    ServiceStat,
    TopCustomerEntry,
    TopProduct,
    to_display,
)
from kpi_engine.metrics.segmentation import (
    CustomerSnapshot,
    SegmentRules,
    active_customers,
    build_snapshots,
    summarize_segments,
    top_customers,
)
from kpi_engine.metrics.source import RecordSource

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Window:
    """A resolved period with its comparison period"""
    period: Period
    previous: Period


@dataclass
class RecordSet:
    """Records fetched for one composition; sections only read what they need"""
    orders: List[OrderRecord] = field(default_factory=list)
    previous_orders: List[OrderRecord] = field(default_factory=list)
    history: List[OrderRecord] = field(default_factory=list)
    items: List[OrderItemRecord] = field(default_factory=list)
    customers: List[CustomerRecord] = field(default_factory=list)
    service_requests: List[ServiceRequestRecord] = field(default_factory=list)
    previous_service_requests: List[ServiceRequestRecord] = field(default_factory=list)
    products: List[ProductRecord] = field(default_factory=list)


class DashboardComposer:
    """
    Builds dashboard sections from a RecordSource.

    Holds no state between calls; the clock is injected so every entry point
    can also be given an explicit `now`.
    """

    def __init__(
        self,
        source: RecordSource,
        settings: Optional[MetricsSettings] = None,
        timeout_seconds: Optional[float] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.source = source
        self.settings = settings or MetricsSettings()
        self.timeout_seconds = (
            self.settings.composition_timeout_seconds if timeout_seconds is None else timeout_seconds
        )
        self.clock = clock
        self.rules = SegmentRules.from_settings(self.settings)

    # -------------------------------------------------------------------------
    # Plumbing
    # -------------------------------------------------------------------------

    def _window(self, timeframe, now: Optional[datetime]) -> Window:
        period = resolve_period(timeframe or self.settings.default_timeframe, now or self.clock())
        return Window(period=period, previous=comparison_period(period))

    async def _fetch(self, name: str, awaitable: Awaitable[T]) -> T:
        try:
            return await awaitable
        except MetricsError:
            raise
        except Exception as e:
            logger.error("Record fetch failed", fetch=name, error=str(e))
            raise DataSourceUnavailable(
                f"Failed to fetch {name}", details={"fetch": name, "error": str(e)}
            ) from e

    async def _run(self, operation: str, awaitable: Awaitable[T], **context) -> T:
        # Bound before wait_for creates its task so fetch logs inherit the context
        with metrics_context(operation, **context):
            started = time.perf_counter()
            try:
                result = await asyncio.wait_for(awaitable, timeout=self.timeout_seconds)
            except asyncio.TimeoutError as e:
                logger.warning("Metrics composition timed out", timeout_seconds=self.timeout_seconds)
                raise CompositionTimeout(self.timeout_seconds, details={"operation": operation}) from e
            logger.info("Metrics computed", duration_ms=round((time.perf_counter() - started) * 1000, 2))
            return result

    async def _load(self, window: Window) -> RecordSet:
        period, previous = window.period, window.previous
        source = self.source
        (
            orders,
            previous_orders,
            history,
            items,
            customers,
            service_requests,
            previous_service_requests,
            products,
        ) = await asyncio.gather(
            self._fetch("orders", source.fetch_orders(period.start, period.end)),
            self._fetch("previous orders", source.fetch_orders(previous.start, previous.end)),
            self._fetch("order history", source.fetch_orders(None, period.end)),
            self._fetch("order items", source.fetch_order_items(period.start, period.end)),
            self._fetch("customers", source.fetch_customers()),
            self._fetch("service requests", source.fetch_service_requests(period.start, period.end)),
            self._fetch(
                "previous service requests",
                source.fetch_service_requests(previous.start, previous.end),
            ),
            self._fetch("products", source.fetch_products()),
        )
        logger.debug(
            "Records loaded",
            period_start=period.start.isoformat(),
            period_end=period.end.isoformat(),
            orders=len(orders),
            previous_orders=len(previous_orders),
            items=len(items),
            customers=len(customers),
            service_requests=len(service_requests),
            products=len(products),
        )
        return RecordSet(
            orders=orders,
            previous_orders=previous_orders,
            history=history,
            items=items,
            customers=customers,
            service_requests=service_requests,
            previous_service_requests=previous_service_requests,
            products=products,
        )

    # -------------------------------------------------------------------------
    # Sections
    # -------------------------------------------------------------------------

    def _summary(
        self, window: Window, records: RecordSet, snapshots: List[CustomerSnapshot]
    ) -> DashboardSummary:
        period, previous = window.period, window.previous
        current = aggregator.aggregate(records.orders, in_period(period), CountMode.ALL_ORDERS)
        prior = aggregator.aggregate(records.previous_orders, in_period(previous), CountMode.ALL_ORDERS)
        eligible = aggregator.aggregate(records.orders, in_period(period))

        new_customers = aggregator.customers_created_in(records.customers, period)
        previous_new_customers = aggregator.customers_created_in(records.customers, previous)
        total_customers = sum(1 for customer in records.customers if customer.created_at < period.end)
        active = active_customers(snapshots, self.settings.active_customer_days)

        inventory = aggregator.inventory_overview(
            records.products,
            default_minimum_stock=self.settings.default_minimum_stock,
            critical_level=self.settings.critical_stock_level,
        )
        names = {customer.id: customer.name for customer in records.customers}
        recent = aggregator.recent_orders(records.orders, period, limit=self.settings.recent_activity_limit)

        return DashboardSummary(
            total_revenue=to_display(current.revenue),
            total_orders=current.count,
            total_customers=total_customers,
            total_services=sum(1 for r in records.service_requests if period.contains(r.created_at)),
            revenue_growth=rounded_growth(current.revenue, prior.revenue),
            order_growth=rounded_growth(current.count, prior.count),
            customer_growth=rounded_growth(new_customers, previous_new_customers),
            average_order_value=to_display(eligible.average_order_value),
            pending_orders=aggregator.count_by_status(records.orders, OrderStatus.PENDING, in_period(period)),
            new_customers=new_customers,
            active_customers=active,
            retention_rate=to_display(percentage(active, total_customers)),
            inventory=InventoryStats.from_overview(inventory),
            services=ServiceRequestStats.from_overview(
                aggregator.service_overview(records.service_requests, period)
            ),
            recent_activity=[RecentOrder.from_order(order, names.get(order.customer_id)) for order in recent],
        )

    def _business_metrics(self, window: Window, records: RecordSet) -> BusinessMetrics:
        period, previous = window.period, window.previous
        current = aggregator.aggregate(records.orders, in_period(period))
        prior = aggregator.aggregate(records.previous_orders, in_period(previous))

        new_customers = aggregator.customers_created_in(records.customers, period)
        previous_new_customers = aggregator.customers_created_in(records.customers, previous)
        existing = {c.id for c in records.customers if c.created_at < period.start}
        buyers = aggregator.distinct_buyers(records.orders, period)

        services = sum(1 for r in records.service_requests if period.contains(r.created_at))
        previous_services = sum(
            1 for r in records.previous_service_requests if previous.contains(r.created_at)
        )
        delivered = aggregator.count_by_status(records.orders, OrderStatus.DELIVERED, in_period(period))
        low_stock = aggregator.inventory_alerts(
            records.products,
            default_minimum_stock=self.settings.default_minimum_stock,
            critical_level=self.settings.critical_stock_level,
        )

        return BusinessMetrics(
            total_revenue=to_display(current.revenue),
            total_orders=current.count,
            average_order_value=to_display(current.average_order_value),
            revenue_growth=rounded_growth(current.revenue, prior.revenue),
            orders_growth=rounded_growth(current.count, prior.count),
            new_customers=new_customers,
            returning_customers=len(buyers & existing),
            total_customers=sum(1 for c in records.customers if c.created_at < period.end),
            customer_growth=rounded_growth(new_customers, previous_new_customers),
            total_services=services,
            service_growth=rounded_growth(services, previous_services),
            conversion_rate=to_display(percentage(delivered, current.count)),
            low_stock_products=len(low_stock),
            customers_by_region=self._customers_by_region(records.customers),
        )

    def _sales_trends(self, window: Window, records: RecordSet, group_by) -> SalesTrends:
        buckets = bucket_orders(
            records.orders,
            parse_granularity(group_by or self.settings.default_group_by),
            window.period,
            WeekStart(self.settings.week_start),
        )
        totals = summarize_buckets(buckets)
        prior = aggregator.aggregate(records.previous_orders, in_period(window.previous))
        return SalesTrends(
            sales=[SalesPoint.from_bucket(bucket) for bucket in buckets],
            summary=SalesTrendSummary(
                total_revenue=to_display(totals.revenue),
                total_orders=totals.count,
                average_order_value=to_display(totals.average_order_value),
                revenue_growth=rounded_growth(totals.revenue, prior.revenue),
            ),
        )

    def _categories(self, window: Window, records: RecordSet) -> List[CategorySlice]:
        rows = aggregator.category_distribution(records.items, records.orders, records.products, window.period)
        return [CategorySlice.from_row(row) for row in rows]

    def _top_products(self, window: Window, records: RecordSet, limit: Optional[int]) -> List[TopProduct]:
        rows = aggregator.top_products(
            records.items,
            records.orders,
            records.products,
            window.period,
            limit=limit or self.settings.top_products_limit,
        )
        return [TopProduct.from_row(row) for row in rows]

    def _service_stats(self, window: Window, records: RecordSet) -> List[ServiceStat]:
        rows = aggregator.service_status_breakdown(records.service_requests, window.period)
        return [ServiceStat.from_row(row) for row in rows]

    def _geography(self, window: Window, records: RecordSet, limit: Optional[int] = None) -> List[RegionSlice]:
        rows = aggregator.geographic_distribution(
            records.orders, window.period, limit=limit or self.settings.geography_limit
        )
        return [RegionSlice.from_row(row) for row in rows]

    def _customers_by_region(
        self, customers: List[CustomerRecord], limit: Optional[int] = None
    ) -> List[CustomerRegionSlice]:
        rows = aggregator.customers_by_region(customers, limit=limit or self.settings.geography_limit)
        return [CustomerRegionSlice.from_row(row) for row in rows]

    def _inventory_alerts(self, products: List[ProductRecord]) -> List[InventoryAlertEntry]:
        alerts = aggregator.inventory_alerts(
            products,
            default_minimum_stock=self.settings.default_minimum_stock,
            critical_level=self.settings.critical_stock_level,
        )
        return [InventoryAlertEntry.from_alert(alert) for alert in alerts]

    def _segments(self, snapshots: List[CustomerSnapshot]) -> List[SegmentSlice]:
        return [SegmentSlice.from_row(row) for row in summarize_segments(snapshots, self.rules)]

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    async def compose_dashboard(
        self,
        timeframe=None,
        group_by=None,
        now: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> Dashboard:
        """
        Compute every dashboard section over one period.

        Args:
            timeframe: 7d, 30d, 90d or 1y; anything else means 30d
            group_by: day, week or month for the sales trend
            now: End of the period, defaults to the composer clock
            limit: Top products limit

        Returns:
            Dashboard: All sections

        Raises:
            DataSourceUnavailable: A record fetch failed
            CompositionTimeout: The composition exceeded the timeout
        """
        async def compose() -> Dashboard:
            window = self._window(timeframe, now)
            records = await self._load(window)
            snapshots = build_snapshots(records.customers, records.history, window.period.end)
            return Dashboard(
                timeframe=parse_timeframe(timeframe or self.settings.default_timeframe).value,
                group_by=parse_granularity(group_by or self.settings.default_group_by).value,
                period_start=window.period.start,
                period_end=window.period.end,
                summary=self._summary(window, records, snapshots),
                sales_trends=self._sales_trends(window, records, group_by),
                categories=self._categories(window, records),
                top_products=self._top_products(window, records, limit),
                segments=self._segments(snapshots),
                service_stats=self._service_stats(window, records),
                geography=self._geography(window, records),
                inventory_alerts=self._inventory_alerts(records.products),
            )

        return await self._run("dashboard", compose(), timeframe=timeframe, group_by=group_by)

    async def get_summary(self, timeframe=None, now: Optional[datetime] = None) -> DashboardSummary:
        async def compute() -> DashboardSummary:
            window = self._window(timeframe, now)
            records = await self._load(window)
            snapshots = build_snapshots(records.customers, records.history, window.period.end)
            return self._summary(window, records, snapshots)

        return await self._run("summary", compute(), timeframe=timeframe)

    async def get_business_metrics(self, timeframe=None, now: Optional[datetime] = None) -> BusinessMetrics:
        async def compute() -> BusinessMetrics:
            window = self._window(timeframe, now)
            return self._business_metrics(window, await self._load(window))

        return await self._run("business_metrics", compute(), timeframe=timeframe)

    async def get_sales_trends(
        self, timeframe=None, group_by=None, now: Optional[datetime] = None
    ) -> SalesTrends:
        async def compute() -> SalesTrends:
            window = self._window(timeframe, now)
            period, previous = window.period, window.previous
            orders, previous_orders = await asyncio.gather(
                self._fetch("orders", self.source.fetch_orders(period.start, period.end)),
                self._fetch("previous orders", self.source.fetch_orders(previous.start, previous.end)),
            )
            records = RecordSet(orders=orders, previous_orders=previous_orders)
            return self._sales_trends(window, records, group_by)

        return await self._run("sales_trends", compute(), timeframe=timeframe, group_by=group_by)

    async def get_category_distribution(
        self, timeframe=None, now: Optional[datetime] = None
    ) -> List[CategorySlice]:
        async def compute() -> List[CategorySlice]:
            window = self._window(timeframe, now)
            records = await self._load_items(window)
            return self._categories(window, records)

        return await self._run("categories", compute(), timeframe=timeframe)

    async def get_top_products(
        self, timeframe=None, now: Optional[datetime] = None, limit: Optional[int] = None
    ) -> List[TopProduct]:
        async def compute() -> List[TopProduct]:
            window = self._window(timeframe, now)
            records = await self._load_items(window)
            return self._top_products(window, records, limit)

        return await self._run("top_products", compute(), timeframe=timeframe)

    async def get_customer_segments(self, now: Optional[datetime] = None) -> List[SegmentSlice]:
        async def compute() -> List[SegmentSlice]:
            snapshots = await self._load_snapshots(now)
            return self._segments(snapshots)

        return await self._run("customer_segments", compute())

    async def get_top_customers(
        self, now: Optional[datetime] = None, limit: Optional[int] = None
    ) -> List[TopCustomerEntry]:
        async def compute() -> List[TopCustomerEntry]:
            snapshots = await self._load_snapshots(now)
            rows = top_customers(snapshots, self.rules, limit=limit or self.settings.top_customers_limit)
            return [TopCustomerEntry.from_row(row) for row in rows]

        return await self._run("top_customers", compute())

    async def get_service_stats(self, timeframe=None, now: Optional[datetime] = None) -> List[ServiceStat]:
        async def compute() -> List[ServiceStat]:
            window = self._window(timeframe, now)
            requests = await self._fetch(
                "service requests",
                self.source.fetch_service_requests(window.period.start, window.period.end),
            )
            rows = aggregator.service_status_breakdown(requests, window.period)
            return [ServiceStat.from_row(row) for row in rows]

        return await self._run("service_stats", compute(), timeframe=timeframe)

    async def get_geographic_distribution(
        self, timeframe=None, now: Optional[datetime] = None, limit: Optional[int] = None
    ) -> List[RegionSlice]:
        async def compute() -> List[RegionSlice]:
            window = self._window(timeframe, now)
            orders = await self._fetch(
                "orders", self.source.fetch_orders(window.period.start, window.period.end)
            )
            rows = aggregator.geographic_distribution(
                orders, window.period, limit=limit or self.settings.geography_limit
            )
            return [RegionSlice.from_row(row) for row in rows]

        return await self._run("geography", compute(), timeframe=timeframe)

    async def get_customers_by_region(self, limit: Optional[int] = None) -> List[CustomerRegionSlice]:
        async def compute() -> List[CustomerRegionSlice]:
            customers = await self._fetch("customers", self.source.fetch_customers())
            return self._customers_by_region(customers, limit)

        return await self._run("customers_by_region", compute())

    async def get_inventory_alerts(self) -> List[InventoryAlertEntry]:
        async def compute() -> List[InventoryAlertEntry]:
            products = await self._fetch("products", self.source.fetch_products())
            return self._inventory_alerts(products)

        return await self._run("inventory_alerts", compute())

    # -------------------------------------------------------------------------
    # Partial loads
    # -------------------------------------------------------------------------

    async def _load_items(self, window: Window) -> RecordSet:
        period = window.period
        orders, items, products = await asyncio.gather(
            self._fetch("orders", self.source.fetch_orders(period.start, period.end)),
            self._fetch("order items", self.source.fetch_order_items(period.start, period.end)),
            self._fetch("products", self.source.fetch_products()),
        )
        return RecordSet(orders=orders, items=items, products=products)

    async def _load_snapshots(self, now: Optional[datetime]) -> List[CustomerSnapshot]:
        now = ensure_utc(now or self.clock())
        customers, history = await asyncio.gather(
            self._fetch("customers", self.source.fetch_customers()),
            self._fetch("order history", self.source.fetch_orders(None, now)),
        )
        return build_snapshots(customers, history, now)

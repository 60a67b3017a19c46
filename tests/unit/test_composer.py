"""
Unit Tests - Dashboard Composition
"""
import asyncio

import pytest
import structlog

from kpi_engine.config import MetricsSettings
from kpi_engine.config.logging import add_service_info, metrics_context
from kpi_engine.metrics import (
    CompositionTimeout,
    DashboardComposer,
    DataSourceUnavailable,
    InMemoryRecordSource,
    RecordSource,
)


class SlowRecordSource(InMemoryRecordSource):
    """Orders take longer than any test timeout"""

    async def fetch_orders(self, start, end):
        await asyncio.sleep(5)
        return await super().fetch_orders(start, end)


class BrokenRecordSource(InMemoryRecordSource):
    """Product queries fail"""

    async def fetch_products(self):
        raise ConnectionError("connection reset by peer")


class ContextRecordingSource(InMemoryRecordSource):
    """Remembers the structlog context products were fetched under"""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.contexts = []

    async def fetch_products(self):
        self.contexts.append(structlog.contextvars.get_contextvars())
        return await super().fetch_products()


@pytest.fixture
def composer(record_source, metrics_settings, now) -> DashboardComposer:
    return DashboardComposer(record_source, settings=metrics_settings, clock=lambda: now)


class TestDashboard:
    """Tests for the full dashboard composition"""

    @pytest.mark.asyncio
    async def test_summary(self, composer):
        dashboard = await composer.compose_dashboard("30d")
        summary = dashboard.summary

        assert summary.total_revenue == 4500.0
        assert summary.total_orders == 5
        assert summary.revenue_growth == 200.0
        assert summary.order_growth == 150.0
        assert summary.average_order_value == 1125.0
        assert summary.total_customers == 4
        assert summary.new_customers == 2
        assert summary.customer_growth == 100.0
        assert summary.total_services == 4
        assert summary.pending_orders == 1
        assert summary.active_customers == 3
        assert summary.retention_rate == 75.0

    @pytest.mark.asyncio
    async def test_summary_inventory_and_services(self, composer):
        summary = (await composer.compose_dashboard("30d")).summary

        # The inactive product is left out of every inventory count
        assert summary.inventory.total_products == 4
        assert summary.inventory.low_stock_products == 3
        assert summary.inventory.out_of_stock_products == 1
        assert summary.services.pending_service_requests == 1
        assert summary.services.completed_service_requests == 2

    @pytest.mark.asyncio
    async def test_summary_recent_activity(self, composer):
        summary = await composer.get_summary("30d")

        assert [o.id for o in summary.recent_activity] == ["ord-1", "ord-2", "ord-3", "ord-4", "ord-5"]
        assert summary.recent_activity[0].customer_name == "Amina B."
        assert summary.recent_activity[0].amount == 1000.0
        assert summary.recent_activity[1].status == "CANCELLED"

        payload = summary.model_dump(by_alias=True)
        assert payload["inventory"]["outOfStockProducts"] == 1
        assert payload["services"]["pendingServiceRequests"] == 1
        assert payload["recentActivity"][0]["type"] == "order"

    @pytest.mark.asyncio
    async def test_recent_activity_limit(self, record_source, now):
        composer = DashboardComposer(
            record_source, settings=MetricsSettings(recent_activity_limit=2), clock=lambda: now
        )

        summary = await composer.get_summary("7d")

        assert [o.id for o in summary.recent_activity] == ["ord-1", "ord-2"]

    @pytest.mark.asyncio
    async def test_sections(self, composer):
        dashboard = await composer.compose_dashboard("30d")

        assert dashboard.timeframe == "30d"
        assert dashboard.group_by == "day"
        assert [p.date for p in dashboard.sales_trends.sales] == [
            "2023-12-26", "2024-01-07", "2024-01-10", "2024-01-13",
        ]
        assert dashboard.sales_trends.summary.total_orders == 4
        assert [c.name for c in dashboard.categories][0] == "Air Conditioning"
        assert [p.id for p in dashboard.top_products] == ["prod-1", "prod-2", "prod-4", "prod-3"]
        assert [s.segment for s in dashboard.segments] == ["VIP", "NEW", "LOST"]
        assert [s.status for s in dashboard.service_stats] == ["COMPLETED", "PENDING", "CANCELLED"]
        assert [g.region for g in dashboard.geography] == ["Oran", "Alger", "Unknown"]
        assert [a.status for a in dashboard.inventory_alerts] == ["OUT_OF_STOCK", "CRITICAL", "LOW_STOCK"]

    @pytest.mark.asyncio
    async def test_unknown_timeframe_is_30_days(self, composer):
        default = await composer.compose_dashboard("30d")
        fallback = await composer.compose_dashboard("fortnight")

        assert fallback.timeframe == "30d"
        assert fallback.period_start == default.period_start
        assert fallback.summary == default.summary

    @pytest.mark.asyncio
    async def test_weekly_trend(self, composer):
        trends = await composer.get_sales_trends("30d", group_by="week")

        assert [(p.date, p.orders) for p in trends.sales] == [
            ("2023-12-25", 1), ("2024-01-01", 1), ("2024-01-08", 2),
        ]
        assert trends.summary.revenue_growth == 200.0

    @pytest.mark.asyncio
    async def test_sunday_week_start(self, record_source, now):
        composer = DashboardComposer(record_source, settings=MetricsSettings(week_start="sunday"), clock=lambda: now)

        trends = await composer.get_sales_trends("30d", group_by="week")

        assert [p.date for p in trends.sales] == ["2023-12-24", "2024-01-07"]

    @pytest.mark.asyncio
    async def test_empty_source(self, now):
        dashboard = await DashboardComposer(InMemoryRecordSource(), clock=lambda: now).compose_dashboard()

        assert dashboard.summary.total_revenue == 0.0
        assert dashboard.summary.revenue_growth == 0.0
        assert dashboard.summary.retention_rate == 0.0
        assert dashboard.sales_trends.sales == []
        assert dashboard.segments == []
        assert dashboard.summary.recent_activity == []
        assert dashboard.summary.inventory.total_products == 0

    def test_in_memory_source_satisfies_protocol(self, record_source):
        assert isinstance(record_source, RecordSource)


class TestBusinessMetrics:
    """Tests for the admin KPI block"""

    @pytest.mark.asyncio
    async def test_business_metrics(self, composer):
        metrics = await composer.get_business_metrics("30d")

        assert metrics.total_revenue == 4500.0
        assert metrics.total_orders == 4
        assert metrics.orders_growth == 300.0
        assert metrics.returning_customers == 2
        assert metrics.total_services == 4
        assert metrics.service_growth == 300.0
        assert metrics.conversion_rate == 50.0
        assert metrics.low_stock_products == 3
        assert [(r.region, r.customers) for r in metrics.customers_by_region] == [("Alger", 1), ("Oran", 1)]


class TestSingleSections:
    """Tests for the per-section entry points"""

    @pytest.mark.asyncio
    async def test_top_products_limit(self, composer):
        products = await composer.get_top_products("30d", limit=2)

        assert [p.id for p in products] == ["prod-1", "prod-2"]
        assert products[0].units_sold == 3

    @pytest.mark.asyncio
    async def test_categories(self, composer):
        categories = await composer.get_category_distribution("30d")

        assert categories[0].value == 2400.0
        assert categories[0].percentage == 53.33
        assert categories[-1].name == "Uncategorized"

    @pytest.mark.asyncio
    async def test_customer_segments(self, composer):
        segments = await composer.get_customer_segments()

        assert segments[0].segment == "VIP"
        assert segments[0].percentage == 95.76
        assert sum(s.count for s in segments) == 4

    @pytest.mark.asyncio
    async def test_top_customers(self, composer):
        customers = await composer.get_top_customers(limit=3)

        assert [c.id for c in customers] == ["cust-1", "cust-2", "cust-3"]
        assert customers[0].total_spent == 63200.0
        assert customers[0].segment == "VIP"

    @pytest.mark.asyncio
    async def test_geography(self, composer):
        regions = await composer.get_geographic_distribution("30d", limit=2)

        assert [r.region for r in regions] == ["Oran", "Alger"]
        assert regions[0].percentage == 55.56

    @pytest.mark.asyncio
    async def test_service_stats(self, composer):
        stats = await composer.get_service_stats("7d")

        assert [(s.status, s.count) for s in stats] == [("COMPLETED", 2), ("PENDING", 1)]

    @pytest.mark.asyncio
    async def test_inventory_alerts(self, composer):
        alerts = await composer.get_inventory_alerts()

        assert [a.product_id for a in alerts] == ["prod-1", "prod-2", "prod-3"]
        assert [a.category for a in alerts] == ["Air Conditioning", "Heating", "Uncategorized"]

    @pytest.mark.asyncio
    async def test_customers_by_region(self, composer):
        regions = await composer.get_customers_by_region()

        assert [(r.region, r.customers) for r in regions] == [("Alger", 1), ("Oran", 1)]

    @pytest.mark.asyncio
    async def test_customers_by_region_limit(self, composer):
        regions = await composer.get_customers_by_region(limit=1)

        assert [r.region for r in regions] == ["Alger"]


class TestLoggingContext:
    """Tests for the metrics operation bound to the log context"""

    @pytest.mark.asyncio
    async def test_fetches_run_under_operation_context(self, products, now):
        source = ContextRecordingSource(products=products)
        composer = DashboardComposer(source, clock=lambda: now)

        await composer.get_business_metrics("7d")

        assert source.contexts[0]["metrics_operation"] == "business_metrics"
        assert source.contexts[0]["timeframe"] == "7d"
        assert "metrics_operation" not in structlog.contextvars.get_contextvars()

    @pytest.mark.asyncio
    async def test_unset_parameters_are_not_bound(self, products, now):
        source = ContextRecordingSource(products=products)
        composer = DashboardComposer(source, clock=lambda: now)

        await composer.get_inventory_alerts()

        assert source.contexts[0]["metrics_operation"] == "inventory_alerts"
        assert "timeframe" not in source.contexts[0]

    def test_metrics_context_restores_previous_bindings(self):
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id="abc")
        try:
            with metrics_context("summary", timeframe="30d", group_by=None):
                assert structlog.contextvars.get_contextvars() == {
                    "request_id": "abc", "metrics_operation": "summary", "timeframe": "30d",
                }
            assert structlog.contextvars.get_contextvars() == {"request_id": "abc"}
        finally:
            structlog.contextvars.clear_contextvars()

    def test_service_info_processor(self):
        processor = add_service_info("kpi-engine", "1.0.0")

        event = processor(None, "info", {"event": "Metrics computed", "service": "worker"})

        assert event == {"event": "Metrics computed", "service": "worker", "version": "1.0.0"}


class TestFailures:
    """Tests for all-or-nothing composition"""

    @pytest.mark.asyncio
    async def test_failed_fetch_fails_whole_dashboard(self, orders, products, now):
        composer = DashboardComposer(BrokenRecordSource(orders=orders, products=products), clock=lambda: now)

        with pytest.raises(DataSourceUnavailable) as exc_info:
            await composer.compose_dashboard()

        assert exc_info.value.details["fetch"] == "products"
        assert exc_info.value.retryable is False

    @pytest.mark.asyncio
    async def test_sections_without_the_failing_fetch_still_work(self, orders, products, now):
        composer = DashboardComposer(BrokenRecordSource(orders=orders, products=products), clock=lambda: now)

        regions = await composer.get_geographic_distribution("30d")

        assert regions

    @pytest.mark.asyncio
    async def test_timeout(self, orders, now):
        composer = DashboardComposer(SlowRecordSource(orders=orders), timeout_seconds=0.05, clock=lambda: now)

        with pytest.raises(CompositionTimeout) as exc_info:
            await composer.compose_dashboard()

        assert exc_info.value.retryable is True
        assert exc_info.value.timeout_seconds == 0.05

"""
Response Schemas

Pydantic models for the dashboard payloads. Fields are snake_case in Python
and serialized with camelCase aliases. Money is carried as Decimal inside the
engine and rounded to 2 decimals here; growth and percentages likewise.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from kpi_engine.metrics.aggregator import (
    CategoryDistributionRow,
    CustomerRegionRow,
    InventoryAlert,
    InventoryOverview,
    ProductPerformance,
    RegionRow,
    ServiceOverview,
    ServiceStatusRow,
)
from kpi_engine.metrics.bucketing import SalesBucket
from kpi_engine.metrics.records import OrderRecord
from kpi_engine.metrics.segmentation import SegmentSummaryRow, TopCustomer


def to_display(value: Union[Decimal, float, int], digits: int = 2) -> float:
    """Round a money amount or a percentage for the response."""
    return round(float(value), digits)


class CamelModel(BaseModel):
    """Base model serializing field names as camelCase"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# SUMMARY
# =============================================================================

class InventoryStats(CamelModel):
    total_products: int = 0
    low_stock_products: int = 0
    out_of_stock_products: int = 0

    @classmethod
    def from_overview(cls, overview: InventoryOverview) -> "InventoryStats":
        return cls(
            total_products=overview.total_products,
            low_stock_products=overview.low_stock,
            out_of_stock_products=overview.out_of_stock,
        )


class ServiceRequestStats(CamelModel):
    pending_service_requests: int = 0
    completed_service_requests: int = 0

    @classmethod
    def from_overview(cls, overview: ServiceOverview) -> "ServiceRequestStats":
        return cls(
            pending_service_requests=overview.pending,
            completed_service_requests=overview.completed,
        )


class RecentOrder(CamelModel):
    """Activity feed entry for a placed order"""
    type: str = "order"
    id: str
    customer_id: str
    customer_name: Optional[str] = None
    status: str
    amount: float
    timestamp: datetime

    @classmethod
    def from_order(cls, order: OrderRecord, customer_name: Optional[str] = None) -> "RecentOrder":
        return cls(
            id=order.id,
            customer_id=order.customer_id,
            customer_name=customer_name,
            status=order.status.value,
            amount=to_display(order.total_amount),
            timestamp=order.created_at,
        )


class DashboardSummary(CamelModel):
    """Headline totals of the period with growth against the previous one"""
    total_revenue: float
    total_orders: int
    total_customers: int
    total_services: int
    revenue_growth: float
    order_growth: float
    customer_growth: float
    average_order_value: float = 0.0
    pending_orders: int = 0
    new_customers: int = 0
    active_customers: int = 0
    retention_rate: float = 0.0
    inventory: InventoryStats = InventoryStats()
    services: ServiceRequestStats = ServiceRequestStats()
    recent_activity: List[RecentOrder] = []


class SummaryResponse(CamelModel):
    summary: DashboardSummary


class CustomerRegionSlice(CamelModel):
    region: str
    customers: int

    @classmethod
    def from_row(cls, row: CustomerRegionRow) -> "CustomerRegionSlice":
        return cls(region=row.region, customers=row.customer_count)


class CustomersByRegionResponse(CamelModel):
    customers_by_region: List[CustomerRegionSlice]


class BusinessMetrics(CamelModel):
    """Business KPIs of the admin overview page"""
    total_revenue: float
    total_orders: int
    average_order_value: float
    revenue_growth: float
    orders_growth: float
    new_customers: int
    returning_customers: int
    total_customers: int
    customer_growth: float
    total_services: int
    service_growth: float
    conversion_rate: float
    low_stock_products: int
    customers_by_region: List[CustomerRegionSlice] = []


# =============================================================================
# SALES TRENDS
# =============================================================================

class SalesPoint(CamelModel):
    date: str
    revenue: float
    orders: int
    average_order_value: float

    @classmethod
    def from_bucket(cls, bucket: SalesBucket) -> "SalesPoint":
        return cls(
            date=bucket.bucket_key,
            revenue=to_display(bucket.revenue),
            orders=bucket.order_count,
            average_order_value=to_display(bucket.average_order_value),
        )


class SalesTrendSummary(CamelModel):
    total_revenue: float
    total_orders: int
    average_order_value: float
    revenue_growth: float


class SalesTrends(CamelModel):
    sales: List[SalesPoint]
    summary: SalesTrendSummary


# =============================================================================
# BREAKDOWNS
# =============================================================================

class CategorySlice(CamelModel):
    name: str
    value: float
    percentage: float
    orders: int

    @classmethod
    def from_row(cls, row: CategoryDistributionRow) -> "CategorySlice":
        return cls(
            name=row.name,
            value=to_display(row.revenue),
            percentage=to_display(row.percentage_of_total),
            orders=row.distinct_order_count,
        )


class CategoriesResponse(CamelModel):
    categories: List[CategorySlice]


class TopProduct(CamelModel):
    id: str
    name: str
    category: str
    revenue: float
    units_sold: int
    orders: int
    stock: int

    @classmethod
    def from_row(cls, row: ProductPerformance) -> "TopProduct":
        return cls(
            id=row.product_id,
            name=row.name,
            category=row.category,
            revenue=to_display(row.revenue),
            units_sold=row.units_sold,
            orders=row.order_count,
            stock=row.stock,
        )


class TopProductsResponse(CamelModel):
    top_products: List[TopProduct]


class SegmentSlice(CamelModel):
    segment: str
    count: int
    total_revenue: float
    average_order_value: float
    percentage: float

    @classmethod
    def from_row(cls, row: SegmentSummaryRow) -> "SegmentSlice":
        return cls(
            segment=row.segment.value,
            count=row.count,
            total_revenue=to_display(row.total_revenue),
            average_order_value=to_display(row.average_order_value),
            percentage=to_display(row.percentage),
        )


class SegmentsResponse(CamelModel):
    segments: List[SegmentSlice]


class TopCustomerEntry(CamelModel):
    id: str
    name: Optional[str] = None
    total_spent: float
    order_count: int
    segment: str
    last_order_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: TopCustomer) -> "TopCustomerEntry":
        return cls(
            id=row.customer_id,
            name=row.name,
            total_spent=to_display(row.total_spent),
            order_count=row.order_count,
            segment=row.segment.value,
            last_order_at=row.last_order_at,
        )


class TopCustomersResponse(CamelModel):
    top_customers: List[TopCustomerEntry]


class ServiceStat(CamelModel):
    status: str
    count: int
    percentage: float

    @classmethod
    def from_row(cls, row: ServiceStatusRow) -> "ServiceStat":
        return cls(status=row.status.value, count=row.count, percentage=to_display(row.percentage))


class ServiceStatsResponse(CamelModel):
    service_stats: List[ServiceStat]


class RegionSlice(CamelModel):
    region: str
    orders: int
    revenue: float
    percentage: float

    @classmethod
    def from_row(cls, row: RegionRow) -> "RegionSlice":
        return cls(
            region=row.region,
            orders=row.order_count,
            revenue=to_display(row.revenue),
            percentage=to_display(row.percentage),
        )


class GeographyResponse(CamelModel):
    geography: List[RegionSlice]


class InventoryAlertEntry(CamelModel):
    product_id: str
    product_name: str
    current_stock: int
    minimum_stock: int
    status: str
    category: str

    @classmethod
    def from_alert(cls, alert: InventoryAlert) -> "InventoryAlertEntry":
        return cls(
            product_id=alert.product_id,
            product_name=alert.product_name,
            current_stock=alert.current_stock,
            minimum_stock=alert.minimum_stock,
            status=alert.status.value,
            category=alert.category,
        )


class InventoryAlertsResponse(CamelModel):
    inventory_alerts: List[InventoryAlertEntry]


# =============================================================================
# DASHBOARD
# =============================================================================

class Dashboard(CamelModel):
    """Every dashboard section computed over one period"""
    timeframe: str
    group_by: str
    period_start: datetime
    period_end: datetime
    summary: DashboardSummary
    sales_trends: SalesTrends
    categories: List[CategorySlice]
    top_products: List[TopProduct]
    segments: List[SegmentSlice]
    service_stats: List[ServiceStat]
    geography: List[RegionSlice]
    inventory_alerts: List[InventoryAlertEntry]

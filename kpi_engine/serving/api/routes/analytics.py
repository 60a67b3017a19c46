"""
Admin Analytics Endpoints

REST API for the back office dashboard. Unknown timeframes and groupBy
values fall back to their defaults instead of failing the request.
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Query, Request

from kpi_engine.config import get_settings
from kpi_engine.metrics.bucketing import parse_granularity
from kpi_engine.metrics.composer import DashboardComposer
from kpi_engine.metrics.exceptions import DataSourceUnavailable
from kpi_engine.metrics.periods import parse_timeframe
from kpi_engine.metrics.schemas import (
    BusinessMetrics,
    CategoriesResponse,
    CustomersByRegionResponse,
    Dashboard,
    GeographyResponse,
    InventoryAlertsResponse,
    SalesTrends,
    SegmentsResponse,
    ServiceStatsResponse,
    SummaryResponse,
    TopCustomersResponse,
    TopProductsResponse,
)
from kpi_engine.metrics.source import RecordSource
from kpi_engine.serving.cache import dashboard_cache

router = APIRouter()
logger = structlog.get_logger(__name__)

TIMEFRAME_QUERY = Query(None, description="7d, 30d, 90d or 1y; defaults to METRICS_DEFAULT_TIMEFRAME")
GROUP_BY_QUERY = Query(None, alias="groupBy", description="day, week or month; defaults to METRICS_DEFAULT_GROUP_BY")


def get_record_source(request: Request) -> RecordSource:
    """Record source configured at startup."""
    source = getattr(request.app.state, "record_source", None)
    if source is None:
        raise DataSourceUnavailable("No record source configured")
    return source


def get_composer(source: RecordSource = Depends(get_record_source)) -> DashboardComposer:
    return DashboardComposer(source, get_settings().metrics)


@router.get("/dashboard", response_model=Dashboard)
async def get_dashboard(
    timeframe: Optional[str] = TIMEFRAME_QUERY,
    group_by: Optional[str] = GROUP_BY_QUERY,
    limit: Optional[int] = Query(None, ge=1, le=100),
    composer: DashboardComposer = Depends(get_composer),
):
    """
    Full dashboard for one period.

    Cached per (timeframe, groupBy, limit) when the cache is enabled.
    """
    resolved_timeframe = parse_timeframe(timeframe or composer.settings.default_timeframe).value
    resolved_group_by = parse_granularity(group_by or composer.settings.default_group_by).value
    logger.info("get_dashboard called", timeframe=resolved_timeframe, group_by=resolved_group_by, limit=limit)

    async def compose() -> dict:
        dashboard = await composer.compose_dashboard(resolved_timeframe, resolved_group_by, limit=limit)
        return dashboard.model_dump(mode="json", by_alias=True)

    if not composer.settings.cache_enabled:
        return await compose()

    cache_key = f"{resolved_timeframe}:{resolved_group_by}:{limit or composer.settings.top_products_limit}"
    return await dashboard_cache.get_or_set(cache_key, compose, ttl=composer.settings.cache_ttl_seconds)


@router.get("/summary", response_model=SummaryResponse)
async def get_summary(
    timeframe: Optional[str] = TIMEFRAME_QUERY,
    composer: DashboardComposer = Depends(get_composer),
) -> SummaryResponse:
    """Headline totals with growth against the previous period."""
    return SummaryResponse(summary=await composer.get_summary(timeframe))


@router.get("/business-metrics", response_model=BusinessMetrics)
async def get_business_metrics(
    timeframe: Optional[str] = TIMEFRAME_QUERY,
    composer: DashboardComposer = Depends(get_composer),
) -> BusinessMetrics:
    """Business KPIs: conversion, returning customers, service growth and stock."""
    return await composer.get_business_metrics(timeframe)


@router.get("/sales-trends", response_model=SalesTrends)
async def get_sales_trends(
    timeframe: Optional[str] = TIMEFRAME_QUERY,
    group_by: Optional[str] = GROUP_BY_QUERY,
    composer: DashboardComposer = Depends(get_composer),
) -> SalesTrends:
    """Revenue and orders per day, week or month."""
    trends = await composer.get_sales_trends(timeframe, group_by)
    logger.info("Sales trend query completed", data_points=len(trends.sales))
    return trends


@router.get("/categories", response_model=CategoriesResponse)
async def get_categories(
    timeframe: Optional[str] = TIMEFRAME_QUERY,
    composer: DashboardComposer = Depends(get_composer),
) -> CategoriesResponse:
    return CategoriesResponse(categories=await composer.get_category_distribution(timeframe))


@router.get("/top-products", response_model=TopProductsResponse)
async def get_top_products(
    timeframe: Optional[str] = TIMEFRAME_QUERY,
    limit: Optional[int] = Query(None, ge=1, le=100),
    composer: DashboardComposer = Depends(get_composer),
) -> TopProductsResponse:
    return TopProductsResponse(top_products=await composer.get_top_products(timeframe, limit=limit))


@router.get("/customer-segments", response_model=SegmentsResponse)
async def get_customer_segments(
    composer: DashboardComposer = Depends(get_composer),
) -> SegmentsResponse:
    """Lifetime customer segments as of now."""
    return SegmentsResponse(segments=await composer.get_customer_segments())


@router.get("/top-customers", response_model=TopCustomersResponse)
async def get_top_customers(
    limit: Optional[int] = Query(None, ge=1, le=100),
    composer: DashboardComposer = Depends(get_composer),
) -> TopCustomersResponse:
    return TopCustomersResponse(top_customers=await composer.get_top_customers(limit=limit))


@router.get("/service-stats", response_model=ServiceStatsResponse)
async def get_service_stats(
    timeframe: Optional[str] = TIMEFRAME_QUERY,
    composer: DashboardComposer = Depends(get_composer),
) -> ServiceStatsResponse:
    return ServiceStatsResponse(service_stats=await composer.get_service_stats(timeframe))


@router.get("/geography", response_model=GeographyResponse)
async def get_geography(
    timeframe: Optional[str] = TIMEFRAME_QUERY,
    composer: DashboardComposer = Depends(get_composer),
) -> GeographyResponse:
    return GeographyResponse(geography=await composer.get_geographic_distribution(timeframe))


@router.get("/inventory-alerts", response_model=InventoryAlertsResponse)
async def get_inventory_alerts(
    composer: DashboardComposer = Depends(get_composer),
) -> InventoryAlertsResponse:
    """Active products at or below their reorder point, lowest stock first."""
    return InventoryAlertsResponse(inventory_alerts=await composer.get_inventory_alerts())


@router.get("/customers-by-region", response_model=CustomersByRegionResponse)
async def get_customers_by_region(
    limit: Optional[int] = Query(None, ge=1, le=100),
    composer: DashboardComposer = Depends(get_composer),
) -> CustomersByRegionResponse:
    """Customer accounts per wilaya; customers without one are not counted."""
    return CustomersByRegionResponse(customers_by_region=await composer.get_customers_by_region(limit=limit))

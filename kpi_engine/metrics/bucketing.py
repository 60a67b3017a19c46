"""
Time Bucketing

Groups revenue-eligible orders of a period into day, week or month buckets
keyed on the UTC calendar. Buckets without orders are not synthesized.
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterable, List

import structlog

from kpi_engine.metrics.aggregator import RevenueTally
from kpi_engine.metrics.periods import Period
from kpi_engine.metrics.records import OrderRecord, ensure_utc

logger = structlog.get_logger(__name__)


class Granularity(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class WeekStart(str, Enum):
    MONDAY = "monday"
    SUNDAY = "sunday"


DEFAULT_GRANULARITY = Granularity.DAY


def parse_granularity(token) -> Granularity:
    """Parse a groupBy token, falling back to day."""
    if isinstance(token, Granularity):
        return token
    try:
        return Granularity(str(token).strip().lower())
    except ValueError:
        logger.debug("Unknown granularity, using default", group_by=token, default=DEFAULT_GRANULARITY.value)
        return DEFAULT_GRANULARITY


@dataclass(frozen=True)
class SalesBucket:
    bucket_key: str
    revenue: Decimal
    order_count: int
    average_order_value: Decimal


def bucket_key(
    instant: datetime,
    granularity: Granularity,
    week_start: WeekStart = WeekStart.MONDAY,
) -> str:
    """
    Bucket label for an instant.

    Args:
        instant: Order instant (naive values are taken as UTC)
        granularity: day -> YYYY-MM-DD, week -> week start date, month -> YYYY-MM
        week_start: First day of the week for weekly buckets

    Returns:
        str: Bucket key, sortable as a string
    """
    day = ensure_utc(instant).date()
    if granularity == Granularity.MONTH:
        return day.strftime("%Y-%m")
    if granularity == Granularity.WEEK:
        # weekday(): Monday is 0
        offset = day.weekday()
        if week_start == WeekStart.SUNDAY:
            offset = (offset + 1) % 7
        day = day - timedelta(days=offset)
    return day.isoformat()


def bucket_orders(
    orders: Iterable[OrderRecord],
    granularity: Granularity,
    period: Period,
    week_start: WeekStart = WeekStart.MONDAY,
) -> List[SalesBucket]:
    """
    Revenue, order count and average order value per time bucket.

    Cancelled orders and orders outside `period` are dropped before
    bucketing, so bucket order counts sum to the period's revenue-eligible
    order count.

    Returns:
        List[SalesBucket]: Sorted ascending by bucket key
    """
    granularity = parse_granularity(granularity)
    week_start = WeekStart(week_start)
    tallies: Dict[str, RevenueTally] = defaultdict(RevenueTally)

    for order in orders:
        if not order.is_revenue_eligible or not period.contains(order.created_at):
            continue
        tallies[bucket_key(order.created_at, granularity, week_start)].add(order.total_amount)

    return [
        SalesBucket(
            bucket_key=key,
            revenue=tally.revenue,
            order_count=tally.count,
            average_order_value=tally.average_order_value,
        )
        for key, tally in sorted(tallies.items())
    ]


def summarize_buckets(buckets: Iterable[SalesBucket]) -> RevenueTally:
    """Totals over a bucket series."""
    summary = RevenueTally()
    for bucket in buckets:
        summary.revenue += bucket.revenue
        summary.count += bucket.order_count
    return summary

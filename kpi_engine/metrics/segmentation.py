"""
Customer Segmentation

Derives per-customer snapshots (lifetime spend, order count, recency) from
non-cancelled orders and assigns each customer exactly one segment:

    1. total spent above the VIP threshold   -> VIP
    2. last order more than lost_days ago    -> LOST
    3. last order more than at_risk_days ago -> AT_RISK
    4. more than one order                   -> REGULAR
    5. anything else                         -> NEW

The first matching rule wins. Customers who never ordered carry a recency of
999 days.
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

import structlog

from kpi_engine.metrics.aggregator import ZERO, average_order_value
from kpi_engine.metrics.growth import percentage
from kpi_engine.metrics.records import CustomerRecord, OrderRecord, Segment, ensure_utc

logger = structlog.get_logger(__name__)

NO_ORDER_DAYS = 999


@dataclass(frozen=True)
class SegmentRules:
    """Thresholds of the segmentation precedence"""
    vip_spend_threshold: Decimal = Decimal("50000")
    at_risk_days: int = 90
    lost_days: int = 180

    @classmethod
    def from_settings(cls, metrics) -> "SegmentRules":
        return cls(
            vip_spend_threshold=Decimal(str(metrics.vip_spend_threshold)),
            at_risk_days=metrics.at_risk_days,
            lost_days=metrics.lost_days,
        )


@dataclass(frozen=True)
class CustomerSnapshot:
    """Per-call derived view of a customer's order history"""
    customer_id: str
    total_spent: Decimal
    order_count: int
    days_since_last_order: int
    last_order_at: Optional[datetime] = None
    name: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def average_order_value(self) -> Decimal:
        return average_order_value(self.total_spent, self.order_count)


@dataclass
class SegmentTally:
    """Running members, revenue and summed per-customer AOV of a segment"""
    count: int = 0
    revenue: Decimal = ZERO
    aov_sum: Decimal = ZERO

    def add(self, snapshot: CustomerSnapshot) -> None:
        self.count += 1
        self.revenue += snapshot.total_spent
        self.aov_sum += snapshot.average_order_value

    @property
    def average_order_value(self) -> Decimal:
        return average_order_value(self.aov_sum, self.count)


@dataclass(frozen=True)
class SegmentSummaryRow:
    segment: Segment
    count: int
    total_revenue: Decimal
    average_order_value: Decimal
    percentage: float


@dataclass(frozen=True)
class TopCustomer:
    customer_id: str
    name: Optional[str]
    total_spent: Decimal
    order_count: int
    segment: Segment
    last_order_at: Optional[datetime] = None


@dataclass
class _History:
    spent: Decimal = ZERO
    orders: int = 0
    last_order_at: Optional[datetime] = None


def build_snapshots(
    customers: Iterable[CustomerRecord],
    orders: Iterable[OrderRecord],
    now: datetime,
) -> List[CustomerSnapshot]:
    """
    Derive a snapshot for every customer from their non-cancelled orders.

    Args:
        customers: All customers
        orders: Orders of any period; cancelled ones are ignored
        now: Reference instant for recency

    Returns:
        List[CustomerSnapshot]: One per customer, in customer order
    """
    now = ensure_utc(now)
    histories: Dict[str, _History] = defaultdict(_History)
    for order in orders:
        if not order.is_revenue_eligible:
            continue
        history = histories[order.customer_id]
        history.spent += order.total_amount
        history.orders += 1
        if history.last_order_at is None or order.created_at > history.last_order_at:
            history.last_order_at = order.created_at

    snapshots = []
    for customer in customers:
        history = histories.get(customer.id, _History())
        if history.last_order_at is None:
            days = NO_ORDER_DAYS
        else:
            days = max((now - history.last_order_at).days, 0)
        snapshots.append(CustomerSnapshot(
            customer_id=customer.id,
            total_spent=history.spent,
            order_count=history.orders,
            days_since_last_order=days,
            last_order_at=history.last_order_at,
            name=customer.name,
            created_at=customer.created_at,
        ))
    return snapshots


def classify(snapshot: CustomerSnapshot, rules: SegmentRules = SegmentRules()) -> Segment:
    """Segment of a customer; total over every snapshot."""
    if snapshot.total_spent > rules.vip_spend_threshold:
        return Segment.VIP
    if snapshot.days_since_last_order > rules.lost_days:
        return Segment.LOST
    if snapshot.days_since_last_order > rules.at_risk_days:
        return Segment.AT_RISK
    if snapshot.order_count > 1:
        return Segment.REGULAR
    return Segment.NEW


def summarize_segments(
    snapshots: Iterable[CustomerSnapshot],
    rules: SegmentRules = SegmentRules(),
) -> List[SegmentSummaryRow]:
    """
    Member count, revenue, mean per-customer AOV and revenue share per segment.

    Only segments with members appear, sorted by total revenue descending.
    """
    tallies: Dict[Segment, SegmentTally] = defaultdict(SegmentTally)
    for snapshot in snapshots:
        tallies[classify(snapshot, rules)].add(snapshot)

    total = sum((tally.revenue for tally in tallies.values()), ZERO)
    rows = [
        SegmentSummaryRow(
            segment=segment,
            count=tally.count,
            total_revenue=tally.revenue,
            average_order_value=tally.average_order_value,
            percentage=percentage(tally.revenue, total),
        )
        for segment, tally in tallies.items()
    ]
    logger.debug("Segments summarized", segments={row.segment.value: row.count for row in rows})
    return sorted(rows, key=lambda row: row.total_revenue, reverse=True)


def top_customers(
    snapshots: Iterable[CustomerSnapshot],
    rules: SegmentRules = SegmentRules(),
    limit: int = 10,
) -> List[TopCustomer]:
    """Customers with orders ranked by lifetime spend, ties by customer id."""
    ranked = sorted(
        (snapshot for snapshot in snapshots if snapshot.order_count > 0),
        key=lambda snapshot: (-snapshot.total_spent, snapshot.customer_id),
    )
    return [
        TopCustomer(
            customer_id=snapshot.customer_id,
            name=snapshot.name,
            total_spent=snapshot.total_spent,
            order_count=snapshot.order_count,
            segment=classify(snapshot, rules),
            last_order_at=snapshot.last_order_at,
        )
        for snapshot in ranked[:limit]
    ]


def active_customers(snapshots: Iterable[CustomerSnapshot], within_days: int = 90) -> int:
    """Customers whose last non-cancelled order is at most `within_days` old."""
    return sum(
        1 for snapshot in snapshots
        if snapshot.last_order_at is not None and snapshot.days_since_last_order <= within_days
    )

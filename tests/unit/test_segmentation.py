"""
Unit Tests - Customer Segmentation
"""
from decimal import Decimal
from itertools import product

import pytest

from kpi_engine.config import MetricsSettings
from kpi_engine.metrics.records import CustomerRecord, Segment
from kpi_engine.metrics.segmentation import (
    NO_ORDER_DAYS,
    CustomerSnapshot,
    SegmentRules,
    active_customers,
    build_snapshots,
    classify,
    summarize_segments,
    top_customers,
)

from tests.conftest import days_ago, make_order


def snapshot(spent, orders=1, days=0, customer_id="c") -> CustomerSnapshot:
    return CustomerSnapshot(
        customer_id=customer_id,
        total_spent=Decimal(str(spent)),
        order_count=orders,
        days_since_last_order=days,
    )


class TestClassify:
    """Tests for segment precedence"""

    def test_vip_wins_over_lost(self):
        """60000 spent with a last order 200 days ago is VIP"""
        assert classify(snapshot(60000, orders=3, days=200)) == Segment.VIP

    def test_threshold_is_strict(self):
        assert classify(snapshot(50000, orders=1, days=1)) == Segment.NEW
        assert classify(snapshot("50000.01", orders=1, days=1)) == Segment.VIP

    def test_lost_before_at_risk(self):
        assert classify(snapshot(100, orders=5, days=181)) == Segment.LOST
        assert classify(snapshot(100, orders=5, days=180)) == Segment.AT_RISK

    def test_at_risk_before_regular(self):
        assert classify(snapshot(100, orders=5, days=91)) == Segment.AT_RISK
        assert classify(snapshot(100, orders=5, days=90)) == Segment.REGULAR

    def test_single_recent_order_is_new(self):
        assert classify(snapshot(100, orders=1, days=10)) == Segment.NEW

    def test_no_orders_is_lost(self):
        assert classify(snapshot(0, orders=0, days=NO_ORDER_DAYS)) == Segment.LOST

    def test_total_and_deterministic(self):
        """Every combination gets exactly one segment, the same one every time"""
        for spent, orders, days in product([0, 100, 50000, 50001], [0, 1, 2], [0, 90, 91, 180, 181, 999]):
            s = snapshot(spent, orders, days)
            assert classify(s) in Segment
            assert classify(s) == classify(s)

    def test_rules_from_settings(self):
        rules = SegmentRules.from_settings(MetricsSettings(vip_spend_threshold=1000, at_risk_days=30, lost_days=60))

        assert classify(snapshot(1500), rules) == Segment.VIP
        assert classify(snapshot(10, orders=2, days=45), rules) == Segment.AT_RISK

    def test_settings_reject_lost_not_after_at_risk(self):
        with pytest.raises(ValueError):
            MetricsSettings(at_risk_days=90, lost_days=90)


class TestBuildSnapshots:
    """Tests for snapshot derivation"""

    def test_derived_from_non_cancelled_orders(self, customers, orders, now):
        snapshots = {s.customer_id: s for s in build_snapshots(customers, orders, now)}

        assert snapshots["cust-1"].total_spent == Decimal("63200")
        assert snapshots["cust-1"].order_count == 4
        assert snapshots["cust-1"].days_since_last_order == 2
        assert snapshots["cust-2"].total_spent == Decimal("2500")
        assert snapshots["cust-2"].order_count == 1
        assert snapshots["cust-3"].order_count == 1

    def test_customer_without_orders_gets_sentinel(self, now):
        customers = [CustomerRecord(id="c", created_at=days_ago(5))]
        orders = [make_order("a", 100, "CANCELLED", customer_id="c")]

        (s,) = build_snapshots(customers, orders, now)

        assert s.days_since_last_order == NO_ORDER_DAYS
        assert s.last_order_at is None
        assert s.average_order_value == Decimal("0")

    def test_active_customers(self, customers, orders, now):
        snapshots = build_snapshots(customers, orders, now)

        assert active_customers(snapshots, within_days=90) == 3
        assert active_customers(snapshots, within_days=3) == 1


class TestSummarizeSegments:
    """Tests for segment summary rows"""

    def test_summary(self, customers, orders, now):
        rows = summarize_segments(build_snapshots(customers, orders, now))

        assert [row.segment for row in rows] == [Segment.VIP, Segment.NEW, Segment.LOST]
        assert sum(row.count for row in rows) == len(customers)

        vip, new, lost = rows
        assert vip.total_revenue == Decimal("63200")
        assert vip.average_order_value == Decimal("15800")
        assert new.count == 2
        assert new.average_order_value == Decimal("1400")
        assert round(vip.percentage, 2) == 95.76
        assert lost.percentage == 0.0

    def test_absent_segments_are_omitted(self):
        rows = summarize_segments([snapshot(100, orders=2, days=1, customer_id="a")])

        assert [row.segment for row in rows] == [Segment.REGULAR]
        assert rows[0].percentage == 100.0

    def test_no_customers(self):
        assert summarize_segments([]) == []


class TestTopCustomers:
    def test_ranked_by_spend(self, customers, orders, now):
        rows = top_customers(build_snapshots(customers, orders, now), limit=2)

        assert [row.customer_id for row in rows] == ["cust-1", "cust-2"]
        assert rows[0].segment == Segment.VIP
        assert rows[0].name == "Amina B."

    def test_customers_without_orders_are_not_ranked(self, customers, orders, now):
        rows = top_customers(build_snapshots(customers, orders, now))

        assert "cust-4" not in {row.customer_id for row in rows}

"""
Unit Tests - Time Bucketing
"""
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from kpi_engine.metrics.aggregator import aggregate, in_period
from kpi_engine.metrics.bucketing import (
    Granularity,
    WeekStart,
    bucket_key,
    bucket_orders,
    parse_granularity,
    summarize_buckets,
)
from kpi_engine.metrics.periods import resolve_period

from tests.conftest import make_order


class TestBucketKey:
    """Tests for bucket labels"""

    def test_day(self):
        assert bucket_key(datetime(2024, 1, 7, 23, 59, tzinfo=timezone.utc), Granularity.DAY) == "2024-01-07"

    def test_month(self):
        assert bucket_key(datetime(2023, 12, 31, 12, tzinfo=timezone.utc), Granularity.MONTH) == "2023-12"

    @pytest.mark.parametrize("day,expected", [
        (datetime(2024, 1, 1), "2024-01-01"),   # Monday
        (datetime(2024, 1, 7), "2024-01-01"),   # Sunday
        (datetime(2024, 1, 10), "2024-01-08"),  # Wednesday
        (datetime(2023, 12, 26), "2023-12-25"),
    ])
    def test_week_starts_monday(self, day, expected):
        assert bucket_key(day, Granularity.WEEK) == expected

    def test_week_starts_sunday_when_configured(self):
        assert bucket_key(datetime(2024, 1, 7), Granularity.WEEK, WeekStart.SUNDAY) == "2024-01-07"
        assert bucket_key(datetime(2024, 1, 13), Granularity.WEEK, WeekStart.SUNDAY) == "2024-01-07"
        assert bucket_key(datetime(2024, 1, 6), Granularity.WEEK, WeekStart.SUNDAY) == "2023-12-31"

    def test_keys_use_utc_calendar(self):
        algiers = timezone(timedelta(hours=1))
        late = datetime(2024, 1, 8, 0, 30, tzinfo=algiers)

        assert bucket_key(late, Granularity.DAY) == "2024-01-07"

    def test_unknown_granularity_falls_back_to_day(self):
        assert parse_granularity("hour") == Granularity.DAY
        assert parse_granularity("WEEK") == Granularity.WEEK


class TestBucketOrders:
    """Tests for sales trend series"""

    def test_daily_series(self, orders, now):
        buckets = bucket_orders(orders, Granularity.DAY, resolve_period("30d", now))

        assert [b.bucket_key for b in buckets] == ["2023-12-26", "2024-01-07", "2024-01-10", "2024-01-13"]
        assert buckets[-1].revenue == Decimal("1000")

    def test_weekly_series(self, orders, now):
        buckets = bucket_orders(orders, Granularity.WEEK, resolve_period("30d", now))

        assert [(b.bucket_key, b.order_count) for b in buckets] == [
            ("2023-12-25", 1),
            ("2024-01-01", 1),
            ("2024-01-08", 2),
        ]
        assert buckets[-1].revenue == Decimal("3500")
        assert buckets[-1].average_order_value == Decimal("1750")

    def test_monthly_series(self, orders, now):
        buckets = bucket_orders(orders, "month", resolve_period("30d", now))

        assert [(b.bucket_key, b.order_count) for b in buckets] == [("2023-12", 1), ("2024-01", 3)]

    def test_counts_sum_to_eligible_orders(self, orders, now):
        """Bucket order counts add up to the revenue-eligible count of the period"""
        period = resolve_period("30d", now)
        for granularity in Granularity:
            buckets = bucket_orders(orders, granularity, period)
            totals = summarize_buckets(buckets)

            assert totals.count == aggregate(orders, in_period(period)).count
            assert totals.revenue == aggregate(orders, in_period(period)).revenue

    def test_empty_buckets_are_not_synthesized(self, now):
        orders = [
            make_order("a", 10, created_at=now - timedelta(days=6)),
            make_order("b", 10, created_at=now - timedelta(days=1)),
        ]

        buckets = bucket_orders(orders, Granularity.DAY, resolve_period("7d", now))

        assert len(buckets) == 2

    def test_cancelled_and_out_of_window_orders_excluded(self, now):
        orders = [
            make_order("a", 10, "CANCELLED", created_at=now - timedelta(days=1)),
            make_order("b", 10, created_at=now),
            make_order("c", 10, created_at=now - timedelta(days=7, seconds=1)),
        ]

        assert bucket_orders(orders, Granularity.DAY, resolve_period("7d", now)) == []

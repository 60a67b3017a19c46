"""
Metrics Engine Module

Period resolution, growth, aggregation, bucketing, segmentation and the
dashboard composer that ties them together.
"""
from .composer import DashboardComposer
from .exceptions import CompositionTimeout, DataSourceUnavailable, MetricsError, RecordValidationError
from .periods import Period, Timeframe, comparison_period, resolve_period
from .source import InMemoryRecordSource, RecordSource

__all__ = [
    "DashboardComposer",
    "CompositionTimeout",
    "DataSourceUnavailable",
    "MetricsError",
    "RecordValidationError",
    "Period",
    "Timeframe",
    "comparison_period",
    "resolve_period",
    "InMemoryRecordSource",
    "RecordSource",
]

"""
Metrics Engine Errors

Only data source failures escape the engine. Unknown timeframes and division
by zero are recovered where they occur.
"""

from typing import Any, Dict, Optional


class MetricsError(Exception):
    """Base class for metrics engine errors"""

    retryable: bool = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class DataSourceUnavailable(MetricsError):
    """A record query failed; the whole composition fails with it."""


class CompositionTimeout(DataSourceUnavailable):
    """The composition did not finish within the caller's timeout."""

    retryable = True

    def __init__(self, timeout_seconds: float, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            f"Metrics composition exceeded {timeout_seconds:g}s",
            details={"timeout_seconds": timeout_seconds, **(details or {})},
        )
        self.timeout_seconds = timeout_seconds


class RecordValidationError(MetricsError):
    """A record frame failed its data quality checks."""

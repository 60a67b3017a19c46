"""
Period Resolution

Maps timeframe tokens to half-open [start, end) windows ending at an injected
"now", and derives the equally long window immediately before them.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

import structlog

from kpi_engine.metrics.records import ensure_utc

logger = structlog.get_logger(__name__)


class Timeframe(str, Enum):
    """Trailing window sizes accepted by the dashboard"""
    LAST_7_DAYS = "7d"
    LAST_30_DAYS = "30d"
    LAST_90_DAYS = "90d"
    LAST_YEAR = "1y"

    @property
    def days(self) -> int:
        return TIMEFRAME_DAYS[self]


# 1y is 365 calendar days, not calendar-year arithmetic
TIMEFRAME_DAYS = {
    Timeframe.LAST_7_DAYS: 7,
    Timeframe.LAST_30_DAYS: 30,
    Timeframe.LAST_90_DAYS: 90,
    Timeframe.LAST_YEAR: 365,
}

DEFAULT_TIMEFRAME = Timeframe.LAST_30_DAYS


@dataclass(frozen=True)
class Period:
    """Half-open instant range [start, end)."""
    start: datetime
    end: datetime

    def __post_init__(self):
        object.__setattr__(self, "start", ensure_utc(self.start))
        object.__setattr__(self, "end", ensure_utc(self.end))
        if self.end < self.start:
            raise ValueError("Period end must not precede its start")

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def contains(self, instant: datetime) -> bool:
        return self.start <= ensure_utc(instant) < self.end


def parse_timeframe(token) -> Timeframe:
    """
    Parse a timeframe token, falling back to 30d for anything unrecognized.

    Args:
        token: Timeframe, token string, or None

    Returns:
        Timeframe: Parsed timeframe
    """
    if isinstance(token, Timeframe):
        return token
    try:
        return Timeframe(str(token).strip().lower())
    except ValueError:
        logger.debug("Unknown timeframe, using default", timeframe=token, default=DEFAULT_TIMEFRAME.value)
        return DEFAULT_TIMEFRAME


def resolve_period(timeframe, now: datetime) -> Period:
    """
    Resolve a timeframe token to the trailing window ending at `now`.

    Args:
        timeframe: Timeframe token (7d, 30d, 90d, 1y)
        now: Instant the window ends at

    Returns:
        Period: [now - N days, now)
    """
    resolved = parse_timeframe(timeframe)
    end = ensure_utc(now)
    return Period(start=end - timedelta(days=resolved.days), end=end)


def comparison_period(period: Period) -> Period:
    """The window of identical duration ending where `period` starts."""
    return Period(start=period.start - period.duration, end=period.start)

"""
Time helpers.

All timestamps in the ledger are naive UTC datetimes. The trading day is
bounded by midnight at a configurable UTC offset so that "today's realized
P/L" resets at one explicit boundary for every account.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Optional, Tuple


def utcnow() -> datetime:
    """Naive UTC now (the ledger stores naive UTC)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def trading_day(now: Optional[datetime] = None, utc_offset_hours: int = 0) -> date:
    """Return the trading day that contains ``now``."""
    if now is None:
        now = utcnow()
    return (now + timedelta(hours=utc_offset_hours)).date()


def trading_day_bounds(
    now: Optional[datetime] = None,
    utc_offset_hours: int = 0,
) -> Tuple[datetime, datetime]:
    """
    Return the [start, end) of the trading day containing ``now`` as naive UTC.

    Example: offset -5 (EST) puts the boundary at 05:00 UTC.
    """
    day = trading_day(now, utc_offset_hours)
    return day_bounds(day, utc_offset_hours)


def day_bounds(day: date, utc_offset_hours: int = 0) -> Tuple[datetime, datetime]:
    """Return the [start, end) naive UTC bounds of a given trading day."""
    local_midnight = datetime(day.year, day.month, day.day)
    start = local_midnight - timedelta(hours=utc_offset_hours)
    return start, start + timedelta(days=1)

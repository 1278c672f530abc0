"""
Utilities Package

Common utility functions and helpers.
"""

from .candle_utils import TIMEFRAME_MAP, normalize_candles, timeframe_to_seconds
from .time_utils import day_bounds, trading_day, trading_day_bounds, utcnow

__all__ = [
    "TIMEFRAME_MAP",
    "normalize_candles",
    "timeframe_to_seconds",
    "day_bounds",
    "trading_day",
    "trading_day_bounds",
    "utcnow",
]

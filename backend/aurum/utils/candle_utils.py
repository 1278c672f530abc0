"""
Candle Data Utilities

Utility functions for processing OHLC candle data returned by the bridge.
"""

import logging
from typing import Any, Dict, List

logger = logging.getLogger(__name__)


# Timeframe mapping from string identifiers to seconds
TIMEFRAME_MAP = {
    "ONE_MINUTE": 60,
    "FIVE_MINUTE": 300,
    "FIFTEEN_MINUTE": 900,
    "THIRTY_MINUTE": 1800,
    "ONE_HOUR": 3600,
    "FOUR_HOUR": 14400,
    "ONE_DAY": 86400,
}

# Terminal-side names for the same timeframes
BRIDGE_TIMEFRAMES = {
    "ONE_MINUTE": "M1",
    "FIVE_MINUTE": "M5",
    "FIFTEEN_MINUTE": "M15",
    "THIRTY_MINUTE": "M30",
    "ONE_HOUR": "H1",
    "FOUR_HOUR": "H4",
    "ONE_DAY": "D1",
}


def timeframe_to_seconds(timeframe: str) -> int:
    """Convert timeframe string to seconds (defaults to 60 if unknown)."""
    return TIMEFRAME_MAP.get(timeframe, 60)


def to_bridge_timeframe(timeframe: str) -> str:
    return BRIDGE_TIMEFRAMES.get(timeframe, "M1")


def normalize_candles(raw_candles: List[Dict[str, Any]]) -> List[Dict[str, float]]:
    """
    Convert raw bridge candles into float OHLC dicts sorted oldest first.

    Candles with missing or non-numeric fields are dropped.
    """
    candles = []
    for c in raw_candles:
        try:
            candles.append({
                "time": float(c.get("time", c.get("start", 0))),
                "open": float(c["open"]),
                "high": float(c["high"]),
                "low": float(c["low"]),
                "close": float(c["close"]),
                "volume": float(c.get("volume", 0) or 0),
            })
        except (KeyError, TypeError, ValueError):
            logger.debug(f"Dropping malformed candle: {c}")
            continue

    candles.sort(key=lambda c: c["time"])
    return candles

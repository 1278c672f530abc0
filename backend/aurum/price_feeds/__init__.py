"""
Indicator Feeds

Provides the indicator snapshot consumed once per decision cycle.

Components:
- IndicatorSnapshot: price, EMA short/long, RSI, ATR and capture time
- IndicatorFeed: Abstract base class for indicator sources
- BridgeIndicatorFeed: Computes indicators from venue bridge candles
- StaticIndicatorFeed: Replays given snapshots (dry runs, tests)
"""

from aurum.price_feeds.base import IndicatorFeed, IndicatorSnapshot
from aurum.price_feeds.bridge_feed import BridgeIndicatorFeed
from aurum.price_feeds.static_feed import StaticIndicatorFeed

__all__ = [
    "IndicatorFeed",
    "IndicatorSnapshot",
    "BridgeIndicatorFeed",
    "StaticIndicatorFeed",
]

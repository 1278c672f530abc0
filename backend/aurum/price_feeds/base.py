"""
Base Indicator Feed Interface

Defines the snapshot the signal evaluator consumes and the abstract feed
every indicator source implements.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from aurum.utils.time_utils import utcnow


@dataclass(frozen=True)
class IndicatorSnapshot:
    """
    Indicator values for one decision cycle.

    Consumed once and never cached across cycles.
    """
    symbol: str
    price: float
    short_avg: float  # EMA short period
    long_avg: float  # EMA long period
    momentum: float  # RSI, 0-100
    volatility: float  # ATR, price units
    timestamp: datetime  # Naive UTC capture time

    def age_seconds(self, now: Optional[datetime] = None) -> float:
        if now is None:
            now = utcnow()
        return (now - self.timestamp).total_seconds()

    def describe(self) -> str:
        return (
            f"{self.symbol} @ {self.price:.2f} | EMA {self.short_avg:.2f}/{self.long_avg:.2f} "
            f"| RSI {self.momentum:.1f} | ATR {self.volatility:.2f}"
        )


class IndicatorFeed(ABC):
    """Abstract source of indicator snapshots."""

    @abstractmethod
    async def fetch_indicators(self, symbol: str) -> IndicatorSnapshot:
        """
        Fetch the current indicator snapshot for a symbol.

        Raises:
            TransientFeedError: data unavailable, malformed, or stale
        """
        pass

    async def close(self):
        """Release any underlying resources."""
        return None

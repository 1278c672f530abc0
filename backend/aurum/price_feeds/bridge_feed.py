"""
Bridge Indicator Feed

Pulls recent candles from the execution venue and derives the strategy's
indicators locally. Anything short of a complete, fresh snapshot raises
TransientFeedError; a missing indicator is never treated as a signal.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from aurum.config import settings
from aurum.exceptions import TransientFeedError
from aurum.exchange_clients.base import ExecutionVenue
from aurum.indicator_calculator import IndicatorCalculator
from aurum.price_feeds.base import IndicatorFeed, IndicatorSnapshot
from aurum.utils.candle_utils import normalize_candles, timeframe_to_seconds
from aurum.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


class BridgeIndicatorFeed(IndicatorFeed):
    """EMA/RSI/ATR snapshot computed from venue candles."""

    def __init__(
        self,
        venue: ExecutionVenue,
        timeframe: Optional[str] = None,
        lookback: Optional[int] = None,
        max_age_seconds: Optional[int] = None,
    ):
        self.venue = venue
        self.timeframe = timeframe or settings.candle_timeframe
        self.lookback = lookback or settings.candle_lookback
        self.max_age_seconds = max_age_seconds or settings.indicator_max_age_seconds
        self.calculator = IndicatorCalculator()

    async def fetch_indicators(self, symbol: str) -> IndicatorSnapshot:
        try:
            raw = await self.venue.get_candles(symbol, self.timeframe, self.lookback)
        except (ConnectionError, ValueError, RuntimeError) as e:
            raise TransientFeedError(f"Candle fetch failed for {symbol}: {e}")

        candles = normalize_candles(raw)
        min_needed = max(settings.ema_long_period, settings.rsi_period + 1, settings.atr_period + 1)
        if len(candles) < min_needed:
            raise TransientFeedError(
                f"Insufficient candles for {symbol}: got {len(candles)}, need {min_needed}"
            )

        values = self.calculator.calculate_all_indicators(
            candles,
            ema_short_period=settings.ema_short_period,
            ema_long_period=settings.ema_long_period,
            rsi_period=settings.rsi_period,
            atr_period=settings.atr_period,
        )
        if any(values.get(k) is None for k in ("price", "ema_short", "ema_long", "rsi", "atr")):
            raise TransientFeedError(f"Incomplete indicators for {symbol}: {values}")

        now = utcnow()
        last_time = candles[-1]["time"]
        if last_time > 0:
            # Candle time is its open; the bar is current until it closes
            bar_close = last_time + timeframe_to_seconds(self.timeframe)
            timestamp = min(
                datetime.fromtimestamp(bar_close, timezone.utc).replace(tzinfo=None),
                now,
            )
        else:
            timestamp = now

        snapshot = IndicatorSnapshot(
            symbol=symbol,
            price=values["price"],
            short_avg=values["ema_short"],
            long_avg=values["ema_long"],
            momentum=values["rsi"],
            volatility=values["atr"],
            timestamp=timestamp,
        )

        age = snapshot.age_seconds(now)
        if age > self.max_age_seconds:
            raise TransientFeedError(
                f"Stale indicators for {symbol}: {age:.0f}s old (max {self.max_age_seconds}s)"
            )

        logger.debug(f"Indicators: {snapshot.describe()}")
        return snapshot

    async def close(self):
        await self.venue.close()

"""
Indicator Calculator for the signal evaluator

Calculates the indicators the strategy consumes from OHLC candle data:
- EMA (Exponential Moving Average), short and long period
- RSI (Relative Strength Index, Wilder smoothing)
- ATR (Average True Range, Wilder smoothing)
"""

from typing import Any, Dict, List, Optional


class IndicatorCalculator:
    """
    Calculates technical indicators from candle data

    Returns a dictionary with keys:
    - "price": latest close
    - "ema_short" / "ema_long"
    - "rsi"
    - "atr"
    """

    def calculate_all_indicators(
        self,
        candles: List[Dict[str, Any]],
        ema_short_period: int = 9,
        ema_long_period: int = 21,
        rsi_period: int = 14,
        atr_period: int = 14,
    ) -> Dict[str, Optional[float]]:
        """
        Calculate all indicators from candle data (oldest first).

        Values that cannot be computed from the available history are None.
        """
        if not candles:
            return {}

        closes = [float(c["close"]) for c in candles]
        highs = [float(c["high"]) for c in candles]
        lows = [float(c["low"]) for c in candles]

        return {
            "price": closes[-1],
            "ema_short": self.calculate_ema(closes, ema_short_period),
            "ema_long": self.calculate_ema(closes, ema_long_period),
            "rsi": self.calculate_rsi(closes, rsi_period),
            "atr": self.calculate_atr(highs, lows, closes, atr_period),
        }

    def calculate_rsi(self, prices: List[float], period: int = 14) -> Optional[float]:
        """Calculate RSI (Relative Strength Index)"""
        if len(prices) < period + 1:
            return None

        # Calculate price changes
        changes = [prices[i] - prices[i - 1] for i in range(1, len(prices))]

        gains = [change if change > 0 else 0 for change in changes]
        losses = [-change if change < 0 else 0 for change in changes]

        # Initial average gain/loss
        avg_gain = sum(gains[:period]) / period
        avg_loss = sum(losses[:period]) / period

        # Smooth using Wilder's method
        for i in range(period, len(gains)):
            avg_gain = (avg_gain * (period - 1) + gains[i]) / period
            avg_loss = (avg_loss * (period - 1) + losses[i]) / period

        if avg_loss == 0:
            return 100.0

        rs = avg_gain / avg_loss
        return 100 - (100 / (1 + rs))

    def calculate_ema(self, prices: List[float], period: int) -> Optional[float]:
        """Calculate EMA (Exponential Moving Average)"""
        if len(prices) < period:
            return None

        multiplier = 2 / (period + 1)

        # Start with SMA for initial value
        ema = sum(prices[:period]) / period

        for price in prices[period:]:
            ema = (price - ema) * multiplier + ema

        return ema

    def calculate_atr(
        self,
        highs: List[float],
        lows: List[float],
        closes: List[float],
        period: int = 14,
    ) -> Optional[float]:
        """
        Calculate ATR (Average True Range)

        True range for bar i is max(high - low, |high - prev_close|, |low - prev_close|).
        The first ATR is the mean of the first `period` true ranges, then Wilder smoothing.
        """
        if len(closes) < period + 1:
            return None

        true_ranges = []
        for i in range(1, len(closes)):
            true_ranges.append(max(
                highs[i] - lows[i],
                abs(highs[i] - closes[i - 1]),
                abs(lows[i] - closes[i - 1]),
            ))

        atr = sum(true_ranges[:period]) / period
        for tr in true_ranges[period:]:
            atr = (atr * (period - 1) + tr) / period

        return atr

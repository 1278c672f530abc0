"""
Signal evaluation for the EMA crossover / RSI strategy

Pure functions: the decision depends only on the indicator snapshot and the
currently open trade, never on wall-clock time.

Entry:
- OPEN_LONG when EMA short > EMA long and 50 < RSI < 70
- OPEN_SHORT when EMA short < EMA long and 30 < RSI < 50

Exit (one trade open):
- LONG: RSI > 70, price <= stop loss, or price >= take profit
- SHORT: RSI < 30, price >= stop loss, or price <= take profit
"""

from typing import Optional

from aurum.constants import Decision, TradeSide
from aurum.price_feeds.base import IndicatorSnapshot

RSI_OVERBOUGHT = 70.0
RSI_OVERSOLD = 30.0
RSI_MIDLINE = 50.0


def close_reason(snapshot: IndicatorSnapshot, trade) -> Optional[str]:
    """
    Return why the open trade should be closed, or None to keep it.

    Reasons: "stop_loss", "take_profit", "momentum". Bracket hits are
    checked before momentum so a price through the stop is reported as such.
    """
    price = snapshot.price

    if trade.side == TradeSide.LONG.value:
        if trade.stop_loss is not None and price <= trade.stop_loss:
            return "stop_loss"
        if trade.take_profit is not None and price >= trade.take_profit:
            return "take_profit"
        if snapshot.momentum > RSI_OVERBOUGHT:
            return "momentum"
        return None

    if trade.stop_loss is not None and price >= trade.stop_loss:
        return "stop_loss"
    if trade.take_profit is not None and price <= trade.take_profit:
        return "take_profit"
    if snapshot.momentum < RSI_OVERSOLD:
        return "momentum"
    return None


def evaluate(snapshot: IndicatorSnapshot, open_trade=None) -> Decision:
    """Map indicators and position state to a Decision."""
    if open_trade is not None:
        if close_reason(snapshot, open_trade) is not None:
            return Decision.CLOSE
        return Decision.HOLD

    rsi = snapshot.momentum

    if snapshot.short_avg > snapshot.long_avg and RSI_MIDLINE < rsi < RSI_OVERBOUGHT:
        return Decision.OPEN_LONG

    if snapshot.short_avg < snapshot.long_avg and RSI_OVERSOLD < rsi < RSI_MIDLINE:
        return Decision.OPEN_SHORT

    return Decision.HOLD


def decision_side(decision: Decision) -> Optional[str]:
    """OPEN_LONG -> LONG, OPEN_SHORT -> SHORT, else None."""
    if decision == Decision.OPEN_LONG:
        return TradeSide.LONG.value
    if decision == Decision.OPEN_SHORT:
        return TradeSide.SHORT.value
    return None

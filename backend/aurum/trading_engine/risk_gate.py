"""
Risk gate

Validates a strategy decision against the account's daily envelope before
anything is executed. Closing is never blocked; entries are blocked once the
day's realized P/L has hit the loss limit or the profit target.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

from aurum.constants import Decision, TradeSide
from aurum.price_feeds.base import IndicatorSnapshot
from aurum.trading_engine.signal_evaluator import decision_side

RISK_EXHAUSTED = "risk_exhausted"
GOAL_MET = "goal_met"
NO_POSITION_SIZE = "no_position_size"


@dataclass
class GateOutcome:
    """A gated decision plus the order parameters for an entry."""
    decision: Decision
    proposed: Decision
    reason: Optional[str] = None  # Set when an entry was downgraded to HOLD
    side: Optional[str] = None
    volume: Optional[float] = None
    entry_price: Optional[float] = None
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None

    @property
    def blocked(self) -> bool:
        return self.reason is not None


def compute_bracket(
    entry_price: float,
    side: str,
    atr: float,
    stop_multiplier: float = 1.5,
    target_multiplier: float = 2.0,
) -> Tuple[float, float]:
    """
    Return (stop_loss, take_profit) for an entry.

    LONG: stop below, target above. SHORT: mirrored.
    """
    if side == TradeSide.LONG.value:
        return entry_price - stop_multiplier * atr, entry_price + target_multiplier * atr
    return entry_price + stop_multiplier * atr, entry_price - target_multiplier * atr


def clamp_volume(proposed_volume: float, max_position_size: float) -> float:
    return max(0.0, min(proposed_volume, max_position_size))


def describe_block(reason: str, todays_pnl: float, account) -> str:
    """Human-readable line for the UPDATE activity entry."""
    if reason == RISK_EXHAUSTED:
        return (
            f"Daily risk limit reached (P/L ${todays_pnl:.2f} <= -${account.daily_risk_limit:.2f}). "
            f"No new trades today."
        )
    if reason == GOAL_MET:
        return (
            f"Daily profit target reached (P/L ${todays_pnl:.2f} >= ${account.daily_profit_target:.2f}). "
            f"No new trades today."
        )
    return f"Max position size is {account.max_position_size}. Entry skipped."


def gate(
    decision: Decision,
    account,
    todays_realized_pnl: float,
    snapshot: Optional[IndicatorSnapshot] = None,
    proposed_volume: float = 0.1,
    stop_multiplier: float = 1.5,
    target_multiplier: float = 2.0,
) -> GateOutcome:
    """
    Gate a decision.

    CLOSE and HOLD pass through unchanged. An OPEN is downgraded to HOLD when
    realized P/L <= -daily_risk_limit (checked first) or >= daily_profit_target,
    or when the clamped volume is zero. Otherwise the outcome carries the
    clamped volume and the ATR bracket around the snapshot price.
    """
    if not decision.is_open:
        return GateOutcome(decision=decision, proposed=decision)

    if todays_realized_pnl <= -account.daily_risk_limit:
        return GateOutcome(decision=Decision.HOLD, proposed=decision, reason=RISK_EXHAUSTED)

    if todays_realized_pnl >= account.daily_profit_target:
        return GateOutcome(decision=Decision.HOLD, proposed=decision, reason=GOAL_MET)

    volume = clamp_volume(proposed_volume, account.max_position_size)
    if volume <= 0:
        return GateOutcome(decision=Decision.HOLD, proposed=decision, reason=NO_POSITION_SIZE)

    if snapshot is None:
        raise ValueError("An indicator snapshot is required to gate an entry")

    side = decision_side(decision)
    stop_loss, take_profit = compute_bracket(
        snapshot.price, side, snapshot.volatility, stop_multiplier, target_multiplier
    )
    return GateOutcome(
        decision=decision,
        proposed=decision,
        side=side,
        volume=volume,
        entry_price=snapshot.price,
        stop_loss=stop_loss,
        take_profit=take_profit,
    )

"""
Daily performance summary

Aggregates one trading day of closed trades for an account and writes the
end-of-day SUMMARY activity entry (once per account per day).
"""

import logging
from dataclasses import asdict, dataclass
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from aurum.constants import TERMINAL_TRADE_STATUSES, ActivityCategory, TradeStatus
from aurum.models import Account, ActivityLog, Trade
from aurum.trading_engine.activity_logger import format_pnl, log_activity, publish_activities
from aurum.trading_engine.command_channel import commit_or_raise
from aurum.trading_engine.trade_manager import get_realized_pnl_between
from aurum.utils.time_utils import day_bounds

logger = logging.getLogger(__name__)


@dataclass
class DailySummary:
    date: str
    starting_balance: float
    ending_balance: float
    trades_taken: int
    winning_trades: int
    win_rate: float  # Percent
    total_profit: float
    max_drawdown: float  # Most negative running P/L of the day, 0 if never negative

    def to_dict(self) -> dict:
        return asdict(self)

    def describe(self) -> str:
        return (
            f"DAILY SUMMARY: {self.trades_taken} trades, {self.winning_trades} wins, "
            f"{format_pnl(self.total_profit)} profit."
        )


def max_drawdown(profits: List[float]) -> float:
    """Lowest point of the running cumulative P/L (0 if it never goes negative)."""
    running = 0.0
    lowest = 0.0
    for p in profits:
        running += p
        lowest = min(lowest, running)
    return round(lowest, 2)


async def compute_daily_summary(
    db: AsyncSession,
    account: Account,
    day: date,
    utc_offset_hours: int = 0,
) -> DailySummary:
    """Summarize trades closed during the given trading day."""
    start, end = day_bounds(day, utc_offset_hours)

    query = (
        select(Trade)
        .where(
            Trade.account_id == account.id,
            Trade.status.in_(TERMINAL_TRADE_STATUSES),
            Trade.closed_at >= start,
            Trade.closed_at < end,
        )
        .order_by(Trade.closed_at)
    )
    result = await db.execute(query)
    trades = list(result.scalars().all())

    profits = [t.profit or 0.0 for t in trades]
    wins = sum(1 for t in trades if t.status == TradeStatus.WON.value)
    total = round(sum(profits), 2)

    realized_before = await get_realized_pnl_between(db, account.id, datetime.min, start)
    opening = round(account.starting_balance + realized_before, 2)

    return DailySummary(
        date=day.isoformat(),
        starting_balance=opening,
        ending_balance=round(opening + total, 2),
        trades_taken=len(trades),
        winning_trades=wins,
        win_rate=round(wins / len(trades) * 100, 1) if trades else 0.0,
        total_profit=total,
        max_drawdown=max_drawdown(profits),
    )


async def log_daily_summary(
    db: AsyncSession,
    account: Account,
    day: date,
    utc_offset_hours: int = 0,
) -> Optional[ActivityLog]:
    """
    Write the SUMMARY entry for a finished trading day.

    Returns None if that day was already summarized for this account.
    """
    day_key = day.isoformat()
    if account.last_summary_date is not None and account.last_summary_date >= day_key:
        return None

    summary = await compute_daily_summary(db, account, day, utc_offset_hours)
    entry = log_activity(db, account.id, summary.describe(), ActivityCategory.SUMMARY)
    account.last_summary_date = day_key
    await commit_or_raise(db, f"daily summary {day_key} for account {account.id}")
    await publish_activities([entry])

    logger.info(f"[account {account.id}] {summary.describe()}")
    return entry

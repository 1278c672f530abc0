"""
Trade ledger utilities for trading engine

Handles trade reads and the single closure transition:
- Getting the open trade(s) for an account
- Aggregating realized P/L (today and all-time)
- Building a Trade from an acknowledged OPEN command
- Applying a closure (idempotent)

Nothing here commits; callers own the transaction.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from aurum.constants import TERMINAL_TRADE_STATUSES, TradeSide, TradeStatus
from aurum.models import Account, Trade, TradeCommand
from aurum.utils.time_utils import trading_day_bounds, utcnow


def calculate_profit(
    side: str,
    entry_price: float,
    exit_price: float,
    volume: float,
    contract_multiplier: float = 100.0,
) -> float:
    """
    Realized profit in account currency, rounded to cents.

    (exit - entry) x (-1 for SHORT) x volume x contract_multiplier
    """
    direction = -1 if side == TradeSide.SHORT.value else 1
    return round((exit_price - entry_price) * direction * volume * contract_multiplier, 2)


def calculate_unrealized_pnl(trade: Trade, current_price: float, contract_multiplier: float = 100.0) -> float:
    return calculate_profit(trade.side, trade.entry_price, current_price, trade.volume, contract_multiplier)


async def get_open_trades(db: AsyncSession, account_id: int) -> List[Trade]:
    """All OPEN trades for an account, newest first (more than one is an invariant violation)"""
    query = (
        select(Trade)
        .where(Trade.account_id == account_id, Trade.status == TradeStatus.OPEN.value)
        .order_by(desc(Trade.opened_at))
    )
    result = await db.execute(query)
    return list(result.scalars().all())


async def get_open_trade(db: AsyncSession, account_id: int) -> Optional[Trade]:
    """Get the currently open trade for this account"""
    trades = await get_open_trades(db, account_id)
    return trades[0] if trades else None


async def get_trade(db: AsyncSession, trade_id: str) -> Optional[Trade]:
    result = await db.execute(select(Trade).where(Trade.id == trade_id))
    return result.scalars().first()


async def get_realized_pnl_between(
    db: AsyncSession,
    account_id: int,
    start: datetime,
    end: datetime,
) -> float:
    """Sum of profit for trades closed in [start, end)"""
    query = select(func.coalesce(func.sum(Trade.profit), 0.0)).where(
        Trade.account_id == account_id,
        Trade.status.in_(TERMINAL_TRADE_STATUSES),
        Trade.closed_at >= start,
        Trade.closed_at < end,
    )
    result = await db.execute(query)
    return float(result.scalar() or 0.0)


async def get_todays_realized_pnl(
    db: AsyncSession,
    account_id: int,
    now: Optional[datetime] = None,
    utc_offset_hours: int = 0,
) -> float:
    """Realized P/L of trades closed during the trading day containing now"""
    start, end = trading_day_bounds(now, utc_offset_hours)
    return await get_realized_pnl_between(db, account_id, start, end)


async def get_total_realized_pnl(db: AsyncSession, account_id: int) -> float:
    """Sum of profit over every WON/LOST trade of the account"""
    query = select(func.coalesce(func.sum(Trade.profit), 0.0)).where(
        Trade.account_id == account_id,
        Trade.status.in_(TERMINAL_TRADE_STATUSES),
    )
    result = await db.execute(query)
    return float(result.scalar() or 0.0)


def build_trade_from_command(command: TradeCommand, opened_at: Optional[datetime] = None) -> Trade:
    """Trade row for an acknowledged OPEN command (trade id = correlation id)"""
    return Trade(
        id=command.correlation_id,
        account_id=command.account_id,
        symbol=command.symbol,
        side=command.side,
        entry_price=command.entry_price,
        volume=command.volume,
        stop_loss=command.stop_loss,
        take_profit=command.take_profit,
        confidence_level=command.confidence_level,
        opened_at=opened_at or command.acknowledged_at or utcnow(),
        status=TradeStatus.OPEN.value,
    )


def apply_trade_closure(
    account: Account,
    trade: Trade,
    exit_price: float,
    close_reason: Optional[str] = None,
    closed_at: Optional[datetime] = None,
    contract_multiplier: float = 100.0,
) -> Optional[float]:
    """
    Move an OPEN trade to WON/LOST and credit the profit to the account.

    Returns the realized profit, or None when the trade was already terminal
    (a redelivered close changes nothing).
    """
    if not trade.is_open:
        return None

    profit = calculate_profit(trade.side, trade.entry_price, exit_price, trade.volume, contract_multiplier)

    trade.exit_price = exit_price
    trade.profit = profit
    trade.status = TradeStatus.WON.value if profit >= 0 else TradeStatus.LOST.value
    trade.closed_at = closed_at or utcnow()
    trade.close_reason = close_reason

    account.current_balance = round(account.current_balance + profit, 2)
    return profit

"""
Activity logging utilities for trading engine

The activity log is the user-facing narrative of each cycle. Entries are
added to the caller's session (the caller commits) and pushed to WebSocket
subscribers once the caller's commit has succeeded.
"""

import logging
from typing import List

from sqlalchemy.ext.asyncio import AsyncSession

from aurum.constants import ActivityCategory
from aurum.models import ActivityLog
from aurum.services.websocket_manager import ws_manager
from aurum.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


def log_activity(
    db: AsyncSession,
    account_id: int,
    message: str,
    category: ActivityCategory,
) -> ActivityLog:
    """Append an activity entry (don't commit - let caller handle transaction)"""
    entry = ActivityLog(
        account_id=account_id,
        timestamp=utcnow(),
        message=message,
        category=category.value,
    )
    db.add(entry)
    logger.debug(f"[account {account_id}] {category.value}: {message}")
    return entry


async def publish_activities(entries: List[ActivityLog]):
    """Broadcast committed entries to WebSocket subscribers"""
    for entry in entries:
        try:
            await ws_manager.broadcast_activity(entry.account_id, entry.category, entry.message)
        except Exception as e:
            # Subscribers are passive; a failed push never affects the ledger
            logger.warning(f"Failed to broadcast activity: {e}")


def format_pnl(amount: float) -> str:
    """+$12.50 / -$1,206.00"""
    sign = "+" if amount >= 0 else "-"
    return f"{sign}${abs(amount):,.2f}"


def format_money(amount: float) -> str:
    """$1,950.00"""
    return f"${amount:,.2f}"


def signal_message(side: str, volume: float, price: float, confidence: str, stop_loss: float, take_profit: float) -> str:
    action = "BUY" if side == "LONG" else "SELL"
    return (
        f"SIGNAL: {action} {volume:g} lots @ {format_money(price)} ({confidence} confidence) "
        f"| SL {format_money(stop_loss)} TP {format_money(take_profit)}"
    )


def result_message(status: str, profit: float, todays_pnl: float, profit_target: float) -> str:
    """TRADE WON: +$180.00 profit | Today: +$180.00/1,000"""
    outcome = "profit" if profit >= 0 else "loss"
    return (
        f"TRADE {status}: {format_pnl(profit)} {outcome} "
        f"| Today: {format_pnl(todays_pnl)}/{profit_target:,.0f}"
    )

"""
Account service

Default account bootstrap and the operator's auto-trading toggle. Balance
and trade state are never written here.
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from aurum.config import settings
from aurum.constants import ActivityCategory
from aurum.models import Account, ActivityLog
from aurum.trading_engine.activity_logger import format_money, log_activity, publish_activities
from aurum.trading_engine.command_channel import commit_or_raise
from aurum.trading_engine.lifecycle_manager import TradeLifecycleManager, load_account

logger = logging.getLogger(__name__)


async def ensure_default_account(db: AsyncSession, is_paper_trading: bool = True) -> Account:
    """Create the default trading account on first start (returns the existing one otherwise)"""
    result = await db.execute(select(Account).order_by(Account.id).limit(1))
    account = result.scalars().first()
    if account is not None:
        return account

    account = Account(
        name="Default",
        symbol=settings.trading_symbol,
        starting_balance=10000.0,
        current_balance=10000.0,
        daily_risk_limit=500.0,
        daily_profit_target=1000.0,
        max_position_size=1.0,
        auto_trading_active=False,
        is_paper_trading=is_paper_trading,
    )
    db.add(account)
    await commit_or_raise(db, "create default account")
    logger.info(f"Created default account {account.id} ({account.symbol}, paper={is_paper_trading})")
    return account


def toggle_message(account: Account) -> str:
    if account.auto_trading_active:
        return (
            f"AUTO-TRADING: ACTIVE. Goal: {format_money(account.daily_profit_target)} Profit. "
            f"Max Risk: {format_money(account.daily_risk_limit)}."
        )
    return "AUTO-TRADING: PAUSED. Open trades are left as they are."


async def set_auto_trading(
    db: AsyncSession,
    account_id: int,
    enabled: bool,
    manager: Optional[TradeLifecycleManager] = None,
) -> Account:
    """
    Enable or disable auto-trading.

    With a manager, waits for the account's running cycle so an in-flight
    dispatch is never interrupted and the account row is not written twice.
    """
    if manager is not None:
        async with manager.account_lock(account_id):
            return await _set_auto_trading(db, account_id, enabled)
    return await _set_auto_trading(db, account_id, enabled)


async def _set_auto_trading(db: AsyncSession, account_id: int, enabled: bool) -> Account:
    account = await load_account(db, account_id)
    if bool(account.auto_trading_active) == enabled:
        return account

    account.auto_trading_active = enabled
    entry: ActivityLog = log_activity(db, account_id, toggle_message(account), ActivityCategory.UPDATE)
    await commit_or_raise(db, f"toggle auto-trading for account {account_id}")
    await publish_activities([entry])
    logger.info(f"[account {account_id}] Auto-trading {'enabled' if enabled else 'disabled'}")
    return account

"""
Start-of-cycle reconciliation

Re-reads the ledger for one account and repairs what an interrupted cycle,
a lost write or a late acknowledgment can leave behind, before any new
decision is taken:

1. More than one OPEN trade: InvariantViolation (auto-trading is halted)
2. PENDING commands: redelivered with the same correlation id
3. ACKNOWLEDGED OPEN without a Trade row: Trade inserted from the command
4. OPEN trade with an ACKNOWLEDGED CLOSE: closure applied
5. current_balance drift from starting_balance + realized profit: corrected
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from sqlalchemy import exists, select
from sqlalchemy.ext.asyncio import AsyncSession

from aurum.config import settings
from aurum.constants import ActivityCategory, CommandAction, CommandStatus, TradeStatus
from aurum.exceptions import InvariantViolation, PersistenceError, VenueDispatchError
from aurum.models import Account, ActivityLog, Trade, TradeCommand
from aurum.trading_engine.activity_logger import log_activity, publish_activities, result_message, signal_message
from aurum.trading_engine.command_channel import (
    CommandChannel,
    commit_or_raise,
    get_command,
    get_commands_by_status,
)
from aurum.trading_engine.trade_manager import (
    apply_trade_closure,
    build_trade_from_command,
    get_open_trades,
    get_todays_realized_pnl,
    get_total_realized_pnl,
    get_trade,
)

logger = logging.getLogger(__name__)

BALANCE_TOLERANCE = 0.005


@dataclass
class ReconciliationReport:
    account_id: int
    redispatched: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    trades_inserted: List[str] = field(default_factory=list)
    closures_applied: List[str] = field(default_factory=list)
    balance_before: Optional[float] = None  # Set only when drift was corrected
    balance_after: Optional[float] = None

    @property
    def repaired(self) -> bool:
        return bool(
            self.redispatched or self.failed or self.trades_inserted
            or self.closures_applied or self.balance_after is not None
        )


async def halt_account(db: AsyncSession, account: Account, message: str):
    """Disable auto-trading after a fatal-class inconsistency and raise InvariantViolation."""
    account_id = account.id
    logger.critical(f"[account {account_id}] INVARIANT VIOLATION: {message}. Auto-trading disabled.")
    account.auto_trading_active = False
    log_activity(db, account_id, f"AUTO-TRADING HALTED: {message}", ActivityCategory.UPDATE)
    try:
        await commit_or_raise(db, f"halt account {account_id}")
    except PersistenceError:
        logger.critical(f"[account {account_id}] Could not persist auto-trading halt")
    raise InvariantViolation(message, account_id=account_id)


def record_open(db: AsyncSession, command: TradeCommand) -> Tuple[Trade, ActivityLog]:
    """Add the Trade for an acknowledged OPEN plus its SIGNAL entry (caller commits)."""
    trade = build_trade_from_command(command)
    db.add(trade)
    entry = log_activity(
        db,
        command.account_id,
        signal_message(
            command.side, command.volume, command.entry_price,
            command.confidence_level or settings.default_confidence,
            command.stop_loss, command.take_profit,
        ),
        ActivityCategory.SIGNAL,
    )
    return trade, entry


async def record_close(
    db: AsyncSession,
    account: Account,
    trade: Trade,
    exit_price: float,
    close_reason: Optional[str],
) -> Optional[ActivityLog]:
    """
    Apply a closure plus its RESULT entry (caller commits).

    Returns None when the trade was already terminal.
    """
    todays_pnl = await get_todays_realized_pnl(
        db, account.id, utc_offset_hours=settings.trading_day_utc_offset_hours
    )
    profit = apply_trade_closure(
        account, trade, exit_price, close_reason,
        contract_multiplier=settings.contract_multiplier,
    )
    if profit is None:
        return None
    return log_activity(
        db,
        account.id,
        result_message(trade.status, profit, todays_pnl + profit, account.daily_profit_target),
        ActivityCategory.RESULT,
    )


async def _redeliver_pending(
    db: AsyncSession,
    account: Account,
    channel: CommandChannel,
    report: ReconciliationReport,
    entries: List[ActivityLog],
):
    pending = await get_commands_by_status(db, account.id, CommandStatus.PENDING)
    for command in pending:
        correlation_id = command.correlation_id
        open_trades = await get_open_trades(db, account.id)

        if command.action == CommandAction.OPEN.value:
            if open_trades:
                # Another position owns the account; never send a second entry
                command.status = CommandStatus.FAILED.value
                command.error_message = f"Superseded: trade {open_trades[0].id} already open"
                await commit_or_raise(db, f"supersede OPEN {correlation_id}")
                report.failed.append(correlation_id)
                logger.error(f"[account {account.id}] Pending OPEN {correlation_id} superseded by open trade")
                continue

            def on_open_ack(cmd, response):
                _trade, entry = record_open(db, cmd)
                entries.append(entry)
                report.trades_inserted.append(cmd.correlation_id)

            hook = on_open_ack

        elif command.action == CommandAction.CLOSE.value:
            trade = await get_trade(db, correlation_id)

            async def on_close_ack(cmd, response):
                if trade is not None and trade.is_open:
                    exit_price = cmd.exit_price if cmd.exit_price is not None else trade.entry_price
                    entry = await record_close(db, account, trade, exit_price, cmd.close_reason)
                    if entry is not None:
                        entries.append(entry)
                        report.closures_applied.append(cmd.correlation_id)

            hook = on_close_ack

        else:
            hook = None

        try:
            await channel.dispatch(db, command, retry_safe=True, on_acknowledged=hook)
            report.redispatched.append(correlation_id)
            logger.info(f"[account {account.id}] Redelivered pending {command.action} {correlation_id}")
        except VenueDispatchError as e:
            report.failed.append(correlation_id)
            logger.warning(f"[account {account.id}] Redelivery failed for {correlation_id}: {e.message}")


async def _insert_missing_trades(
    db: AsyncSession,
    account: Account,
    report: ReconciliationReport,
    entries: List[ActivityLog],
):
    query = select(TradeCommand).where(
        TradeCommand.account_id == account.id,
        TradeCommand.action == CommandAction.OPEN.value,
        TradeCommand.status == CommandStatus.ACKNOWLEDGED.value,
        ~exists().where(Trade.id == TradeCommand.correlation_id),
    )
    result = await db.execute(query.order_by(TradeCommand.acknowledged_at))
    for command in result.scalars().all():
        open_trades = await get_open_trades(db, account.id)
        if open_trades:
            await halt_account(
                db, account,
                f"venue acknowledged entry {command.correlation_id} while trade {open_trades[0].id} is open",
            )
        _trade, entry = record_open(db, command)
        await commit_or_raise(db, f"insert trade {command.correlation_id}")
        entries.append(entry)
        report.trades_inserted.append(command.correlation_id)
        logger.warning(f"[account {account.id}] Inserted missing trade for acknowledged OPEN {command.correlation_id}")


async def _apply_missing_closures(
    db: AsyncSession,
    account: Account,
    report: ReconciliationReport,
    entries: List[ActivityLog],
):
    query = select(Trade).where(
        Trade.account_id == account.id,
        Trade.status == TradeStatus.OPEN.value,
        exists().where(
            TradeCommand.correlation_id == Trade.id,
            TradeCommand.action == CommandAction.CLOSE.value,
            TradeCommand.status == CommandStatus.ACKNOWLEDGED.value,
        ),
    )
    result = await db.execute(query)
    for trade in result.scalars().all():
        command = await get_command(db, trade.id, CommandAction.CLOSE.value)
        exit_price = command.exit_price if command.exit_price is not None else trade.entry_price
        entry = await record_close(db, account, trade, exit_price, command.close_reason)
        await commit_or_raise(db, f"apply closure {trade.id}")
        if entry is not None:
            entries.append(entry)
            report.closures_applied.append(trade.id)
            logger.warning(f"[account {account.id}] Applied missing closure for trade {trade.id}")


async def _check_balance(
    db: AsyncSession,
    account: Account,
    report: ReconciliationReport,
):
    realized = await get_total_realized_pnl(db, account.id)
    expected = round(account.starting_balance + realized, 2)
    if abs(account.current_balance - expected) <= BALANCE_TOLERANCE:
        return

    logger.error(
        f"[account {account.id}] Balance drift: current {account.current_balance:.2f}, "
        f"expected {expected:.2f} (starting {account.starting_balance:.2f} + realized {realized:.2f}). Correcting."
    )
    report.balance_before = account.current_balance
    report.balance_after = expected
    account.current_balance = expected
    await commit_or_raise(db, f"correct balance for account {account.id}")


async def reconcile_account(
    db: AsyncSession,
    account: Account,
    channel: CommandChannel,
) -> ReconciliationReport:
    """
    Repair the account's ledger before a decision cycle.

    Raises:
        InvariantViolation: more than one OPEN trade, or an acknowledged
            entry that cannot be recorded without opening a second trade
        PersistenceError: a repair could not be committed
    """
    report = ReconciliationReport(account_id=account.id)
    entries: List[ActivityLog] = []

    open_trades = await get_open_trades(db, account.id)
    if len(open_trades) > 1:
        ids = ", ".join(t.id for t in open_trades)
        await halt_account(db, account, f"{len(open_trades)} open trades ({ids})")

    await _redeliver_pending(db, account, channel, report, entries)
    await _insert_missing_trades(db, account, report, entries)
    await _apply_missing_closures(db, account, report, entries)
    await _check_balance(db, account, report)

    if entries:
        await publish_activities(entries)
    if report.repaired:
        logger.info(f"[account {account.id}] Reconciliation: {report}")
    return report

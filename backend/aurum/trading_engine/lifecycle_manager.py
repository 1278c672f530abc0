"""
Trade lifecycle manager

Owns the per-account state machine (IDLE <-> IN_TRADE) and is the only
writer of Trade and TradeCommand rows and of Account.current_balance.

One decision cycle:
1. Re-read the account (a paused account returns at once, untouched) and
   reconcile the ledger (no cached state)
2. Fetch one indicator snapshot (failure skips the cycle)
3. Evaluate the strategy, gate it against the daily envelope
4. OPEN: commit a PENDING command, dispatch, insert the Trade on ack
   CLOSE: commit a PENDING command, dispatch, apply the closure on ack
   HOLD: narrate (ANALYSIS when idle, throttled UPDATE when in a trade)

Cycles for one account are serialized by a per-account lock; different
accounts run independently.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from aurum.config import Settings, settings as default_settings
from aurum.constants import ActivityCategory, CommandAction, CycleOutcome, Decision, EngineState
from aurum.exceptions import ConflictError, NotFoundError, TransientFeedError, VenueDispatchError
from aurum.models import Account, ActivityLog, Trade
from aurum.price_feeds.base import IndicatorFeed, IndicatorSnapshot
from aurum.services.websocket_manager import ws_manager
from aurum.trading_engine.activity_logger import format_money, format_pnl, log_activity, publish_activities
from aurum.trading_engine.command_channel import CommandChannel, commit_or_raise, get_command
from aurum.trading_engine.reconciliation import ReconciliationReport, reconcile_account, record_close, record_open
from aurum.trading_engine.risk_gate import GateOutcome, describe_block, gate
from aurum.trading_engine.signal_evaluator import close_reason, evaluate
from aurum.trading_engine.trade_manager import calculate_unrealized_pnl, get_open_trade, get_todays_realized_pnl
from aurum.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


@dataclass
class CycleResult:
    """What one decision cycle did."""
    account_id: int
    state_before: EngineState
    state_after: EngineState
    outcome: CycleOutcome
    decision: Optional[Decision] = None
    gated_decision: Optional[Decision] = None
    trade_id: Optional[str] = None
    error: Optional[str] = None
    reconciliation: Optional[ReconciliationReport] = None

    def to_dict(self) -> dict:
        return {
            "account_id": self.account_id,
            "state_before": self.state_before.value,
            "state_after": self.state_after.value,
            "decision": self.decision.value if self.decision else None,
            "gated_decision": self.gated_decision.value if self.gated_decision else None,
            "outcome": self.outcome.value,
            "trade_id": self.trade_id,
            "message": self.error or "",
        }


def engine_state(open_trade: Optional[Trade]) -> EngineState:
    return EngineState.IN_TRADE if open_trade is not None else EngineState.IDLE


async def load_account(db: AsyncSession, account_id: int) -> Account:
    result = await db.execute(select(Account).where(Account.id == account_id))
    account = result.scalars().first()
    if account is None:
        raise NotFoundError(f"Account {account_id} not found")
    return account


class TradeLifecycleManager:
    """
    Runs decision cycles for any number of accounts.

    Usage:
        manager = TradeLifecycleManager(feed, CommandChannel(venue))
        result = await manager.run_cycle(db, account_id)
    """

    def __init__(
        self,
        feed: IndicatorFeed,
        channel: CommandChannel,
        config: Optional[Settings] = None,
    ):
        self.feed = feed
        self.channel = channel
        self.config = config or default_settings
        self._account_locks: Dict[int, asyncio.Lock] = {}

    def account_lock(self, account_id: int) -> asyncio.Lock:
        """Return (or create) the asyncio.Lock serializing this account's cycles."""
        if account_id not in self._account_locks:
            self._account_locks[account_id] = asyncio.Lock()
        return self._account_locks[account_id]

    def is_running(self, account_id: int) -> bool:
        lock = self._account_locks.get(account_id)
        return lock is not None and lock.locked()

    async def run_cycle(self, db: AsyncSession, account_id: int, now: Optional[datetime] = None) -> CycleResult:
        """
        Run one decision cycle for an account.

        Raises:
            NotFoundError: unknown account
            InvariantViolation: reconciliation found an unrepairable ledger
            PersistenceError: a ledger write failed (cycle aborted)
        """
        async with self.account_lock(account_id):
            return await self._run_cycle(db, account_id, now or utcnow())

    async def close_trade_manually(
        self,
        db: AsyncSession,
        account_id: int,
        exit_price: float,
    ) -> CycleResult:
        """Operator close of the open trade at a given price, through the normal CLOSE path."""
        async with self.account_lock(account_id):
            account = await load_account(db, account_id)
            open_trade = await get_open_trade(db, account_id)
            if open_trade is None:
                raise ConflictError(f"Account {account_id} has no open trade")
            log_activity(
                db, account_id,
                f"Manual close requested at {format_money(exit_price)}",
                ActivityCategory.UPDATE,
            )
            return await self._close(
                db, account, open_trade, exit_price, "manual", utcnow(),
                decision=Decision.CLOSE, gated_decision=Decision.CLOSE,
            )

    async def _run_cycle(self, db: AsyncSession, account_id: int, now: datetime) -> CycleResult:
        account = await load_account(db, account_id)

        if not account.auto_trading_active:
            # Paused: trades and commands stay exactly as they are until re-enabled
            state = engine_state(await get_open_trade(db, account_id))
            return CycleResult(account_id, state, state, CycleOutcome.PAUSED)

        report = await reconcile_account(db, account, self.channel)

        open_trade = await get_open_trade(db, account_id)
        state = engine_state(open_trade)

        account.last_cycle_at = now

        try:
            snapshot = await self.feed.fetch_indicators(account.symbol)
        except TransientFeedError as e:
            logger.warning(f"[account {account_id}] Skipping cycle: {e.message}")
            entry = log_activity(
                db, account_id,
                f"Market data unavailable: {e.message}. Skipping this cycle.",
                ActivityCategory.ANALYSIS,
            )
            await commit_or_raise(db, f"skip cycle for account {account_id}")
            await publish_activities([entry])
            return CycleResult(
                account_id, state, state, CycleOutcome.SKIPPED,
                error=e.message, reconciliation=report,
            )

        decision = evaluate(snapshot, open_trade)
        todays_pnl = await get_todays_realized_pnl(
            db, account_id, now, self.config.trading_day_utc_offset_hours
        )
        gated = gate(
            decision,
            account,
            todays_pnl,
            snapshot,
            proposed_volume=self.config.default_volume,
            stop_multiplier=self.config.stop_loss_atr_multiplier,
            target_multiplier=self.config.take_profit_atr_multiplier,
        )
        logger.info(
            f"[account {account_id}] {state.value} | {snapshot.describe()} | "
            f"decision {decision.value} -> {gated.decision.value}"
        )

        if gated.decision.is_open:
            result = await self._open(db, account, gated, now)
        elif gated.decision == Decision.CLOSE:
            result = await self._close(
                db, account, open_trade, snapshot.price, close_reason(snapshot, open_trade), now,
                decision=decision, gated_decision=gated.decision,
            )
        else:
            result = await self._hold(db, account, open_trade, snapshot, gated, todays_pnl, now)

        result.decision = decision
        result.gated_decision = gated.decision
        result.reconciliation = report
        return result

    async def _open(self, db: AsyncSession, account: Account, gated: GateOutcome, now: datetime) -> CycleResult:
        account_id = account.id
        trade_id = str(uuid.uuid4())

        command = await self.channel.create_command(
            db,
            CommandAction.OPEN,
            trade_id,
            account_id,
            account.symbol,
            gated.side,
            gated.volume,
            entry_price=gated.entry_price,
            stop_loss=gated.stop_loss,
            take_profit=gated.take_profit,
            confidence_level=self.config.default_confidence,
        )

        entries: List[ActivityLog] = []

        def on_ack(cmd, response):
            _trade, entry = record_open(db, cmd)
            entries.append(entry)

        try:
            # No trade is durable before the ack, so redelivery cannot double-open
            await self.channel.dispatch(db, command, retry_safe=True, on_acknowledged=on_ack)
        except VenueDispatchError as e:
            entry = log_activity(
                db, account_id,
                f"ENTRY NOT CONFIRMED: {gated.side} {gated.volume:g} lots @ {format_money(gated.entry_price)} "
                f"({e.message}). No trade opened.",
                ActivityCategory.UPDATE,
            )
            await commit_or_raise(db, f"record failed entry {trade_id}")
            await publish_activities([entry])
            return CycleResult(
                account_id, EngineState.IDLE, EngineState.IDLE, CycleOutcome.DISPATCH_FAILED,
                trade_id=trade_id, error=e.message,
            )

        await publish_activities(entries)
        await ws_manager.broadcast_trade_event(
            "trade_opened", account_id, trade_id, gated.side, gated.entry_price, gated.volume,
        )
        logger.info(f"[account {account_id}] Opened {gated.side} trade {trade_id} @ {gated.entry_price:.2f}")
        return CycleResult(
            account_id, EngineState.IDLE, EngineState.IN_TRADE, CycleOutcome.OPENED, trade_id=trade_id,
        )

    async def _close(
        self,
        db: AsyncSession,
        account: Account,
        trade: Trade,
        exit_price: float,
        reason: Optional[str],
        now: datetime,
        decision: Optional[Decision] = None,
        gated_decision: Optional[Decision] = None,
    ) -> CycleResult:
        account_id = account.id
        trade_id = trade.id

        open_command = await get_command(db, trade_id, CommandAction.OPEN.value)
        command = await self.channel.create_command(
            db,
            CommandAction.CLOSE,
            trade_id,
            account_id,
            trade.symbol,
            trade.side,
            trade.volume,
            exit_price=exit_price,
            close_reason=reason,
            ticket_id=open_command.ticket_id if open_command else None,
        )

        entries: List[ActivityLog] = []

        async def on_ack(cmd, response):
            entry = await record_close(db, account, trade, cmd.exit_price, cmd.close_reason)
            if entry is not None:
                entries.append(entry)

        try:
            outcome = await self.channel.dispatch(db, command, retry_safe=True, on_acknowledged=on_ack)
        except VenueDispatchError as e:
            entry = log_activity(
                db, account_id,
                f"CLOSE NOT CONFIRMED for {trade.side} trade ({e.message}). Will retry next cycle.",
                ActivityCategory.UPDATE,
            )
            await commit_or_raise(db, f"record failed close {trade_id}")
            await publish_activities([entry])
            return CycleResult(
                account_id, EngineState.IN_TRADE, EngineState.IN_TRADE, CycleOutcome.DISPATCH_FAILED,
                decision=decision, gated_decision=gated_decision, trade_id=trade_id, error=e.message,
            )

        if outcome.duplicate and trade.is_open:
            # Acknowledged earlier but the closure never landed
            await on_ack(command, None)
            await commit_or_raise(db, f"apply closure {trade_id}")

        await publish_activities(entries)
        await ws_manager.broadcast_trade_event(
            "trade_closed", account_id, trade_id, trade.side, trade.exit_price, trade.volume,
            profit=trade.profit, status=trade.status,
        )
        logger.info(
            f"[account {account_id}] Closed trade {trade_id} ({reason}) @ {trade.exit_price:.2f}: "
            f"{trade.status} {format_pnl(trade.profit)}"
        )
        return CycleResult(
            account_id, EngineState.IN_TRADE, EngineState.IDLE, CycleOutcome.CLOSED,
            decision=decision, gated_decision=gated_decision, trade_id=trade_id,
        )

    def _update_due(self, account: Account, now: datetime) -> bool:
        if account.last_update_log_at is None:
            return True
        elapsed = (now - account.last_update_log_at).total_seconds()
        return elapsed >= self.config.update_log_interval_seconds

    async def _hold(
        self,
        db: AsyncSession,
        account: Account,
        open_trade: Optional[Trade],
        snapshot: IndicatorSnapshot,
        gated: GateOutcome,
        todays_pnl: float,
        now: datetime,
    ) -> CycleResult:
        account_id = account.id
        state = engine_state(open_trade)
        entry = None

        if gated.blocked:
            # Every blocked entry is narrated; only in-trade updates are throttled
            outcome = CycleOutcome.GATED
            entry = log_activity(
                db, account_id, describe_block(gated.reason, todays_pnl, account), ActivityCategory.UPDATE,
            )
        elif open_trade is not None:
            outcome = CycleOutcome.HELD
            if self._update_due(account, now):
                unrealized = calculate_unrealized_pnl(open_trade, snapshot.price, self.config.contract_multiplier)
                minutes = int((now - open_trade.opened_at).total_seconds() // 60)
                entry = log_activity(
                    db, account_id,
                    f"Trade running: {open_trade.side} @ {format_money(open_trade.entry_price)}, "
                    f"Current: {format_money(snapshot.price)} | Unrealized: {format_pnl(unrealized)} "
                    f"| {minutes} min",
                    ActivityCategory.UPDATE,
                )
                account.last_update_log_at = now
        else:
            outcome = CycleOutcome.HELD
            entry = log_activity(
                db, account_id,
                f"Market analysis: {snapshot.describe()}. No entry signal.",
                ActivityCategory.ANALYSIS,
            )

        await commit_or_raise(db, f"hold cycle for account {account_id}")
        if entry is not None:
            await publish_activities([entry])
        return CycleResult(
            account_id, state, state, outcome, trade_id=open_trade.id if open_trade else None,
        )

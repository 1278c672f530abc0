"""
Auto-trading monitor

Background loop that schedules decision cycles. Every tick it loads the
accounts with auto-trading enabled and starts one cycle task per account
that is due. Cycles for one account never overlap (the lifecycle manager's
per-account lock, plus one task per account here); different accounts run
in parallel. Each cycle gets its own database session.

At the trading-day rollover the monitor also writes each account's daily
summary for the finished day.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from aurum.config import Settings, settings as default_settings
from aurum.database import async_session_maker
from aurum.exceptions import AppError, InvariantViolation
from aurum.models import Account
from aurum.services.daily_summary_service import log_daily_summary
from aurum.services.shutdown_manager import ShutdownManager, shutdown_manager
from aurum.trading_engine.lifecycle_manager import CycleResult, TradeLifecycleManager
from aurum.utils.time_utils import day_bounds, trading_day, utcnow

logger = logging.getLogger(__name__)


class AutoTradingMonitor:
    """
    Schedule decision cycles for every auto-trading account.

    Usage:
        monitor = AutoTradingMonitor(manager)
        await monitor.start_async()
        ...
        await monitor.stop()
    """

    def __init__(
        self,
        manager: TradeLifecycleManager,
        config: Optional[Settings] = None,
        session_maker=None,
        shutdown: Optional[ShutdownManager] = None,
    ):
        self.manager = manager
        self.config = config or default_settings
        self.session_maker = session_maker or async_session_maker
        self.shutdown = shutdown or shutdown_manager
        self.running = False
        self.task: Optional[asyncio.Task] = None
        self._cycle_tasks: Dict[int, asyncio.Task] = {}
        self._last_results: Dict[int, CycleResult] = {}

    async def get_active_accounts(self, db: AsyncSession) -> List[Account]:
        """Accounts with auto-trading enabled (disabled accounts are never scheduled)"""
        result = await db.execute(select(Account).where(Account.auto_trading_active.is_(True)))
        return list(result.scalars().all())

    def is_due(self, account: Account, now: datetime) -> bool:
        if account.id in self._cycle_tasks:
            return False
        if account.last_cycle_at is None:
            return True
        return (now - account.last_cycle_at).total_seconds() >= self.config.cycle_interval_seconds

    async def run_account_cycle(self, account_id: int) -> Optional[CycleResult]:
        """One cycle in its own session; errors are logged, never raised into the loop."""
        try:
            async with self.session_maker() as db:
                result = await self.manager.run_cycle(db, account_id)
            self._last_results[account_id] = result
            if result.error:
                logger.warning(f"[account {account_id}] Cycle {result.outcome.value}: {result.error}")
            return result
        except InvariantViolation as e:
            logger.critical(f"[account {account_id}] Cycle aborted: {e.message}")
        except AppError as e:
            logger.error(f"[account {account_id}] Cycle aborted: {e.message}")
        except Exception as e:
            logger.error(f"[account {account_id}] Unexpected cycle error: {e}", exc_info=True)
        return None

    def _spawn_cycle(self, account_id: int):
        task = asyncio.create_task(self.run_account_cycle(account_id))
        self._cycle_tasks[account_id] = task
        task.add_done_callback(lambda _t, aid=account_id: self._cycle_tasks.pop(aid, None))

    async def write_daily_summaries(self, db: AsyncSession, now: datetime):
        """Summarize the previous trading day once for each account that existed during it."""
        offset = self.config.trading_day_utc_offset_hours
        previous_day = trading_day(now, offset) - timedelta(days=1)
        _start, end = day_bounds(previous_day, offset)

        result = await db.execute(select(Account))
        for account in result.scalars().all():
            if account.created_at is not None and account.created_at >= end:
                continue
            if account.last_summary_date is not None and account.last_summary_date >= previous_day.isoformat():
                continue
            try:
                async with self.manager.account_lock(account.id):
                    await log_daily_summary(db, account, previous_day, offset)
            except AppError as e:
                logger.error(f"[account {account.id}] Daily summary failed: {e.message}")

    async def tick(self, now: Optional[datetime] = None):
        """One scheduling pass."""
        now = now or utcnow()
        async with self.session_maker() as db:
            await self.write_daily_summaries(db, now)
            accounts = await self.get_active_accounts(db)
            due = [a.id for a in accounts if self.is_due(a, now)]

        for account_id in due:
            self._spawn_cycle(account_id)

    async def monitor_loop(self):
        """Main scheduling loop"""
        logger.info("Auto-trading monitor loop started")
        while self.running:
            try:
                if not self.shutdown.is_shutting_down:
                    await self.tick()
            except Exception as e:
                logger.error(f"Error in monitor loop: {e}", exc_info=True)
            await asyncio.sleep(self.config.monitor_tick_seconds)
        logger.info("Auto-trading monitor stopped")

    def start(self):
        """Start the monitoring task (synchronous)"""
        if not self.running:
            self.running = True  # Set before creating the task to prevent double-start
            self.task = asyncio.create_task(self.monitor_loop())
            logger.info("Auto-trading monitor task started")
        else:
            logger.warning("Monitor already running, ignoring duplicate start() call")

    async def start_async(self):
        """Start the monitoring task (async - preferred method)"""
        self.start()
        # Give the task a moment to actually start
        await asyncio.sleep(0.1)

    async def stop(self, timeout: float = 60.0) -> dict:
        """
        Stop scheduling and wait for running cycles.

        Cycles already past the dispatch point always finish; the shutdown
        manager refuses new dispatches while they drain.
        """
        self.running = False
        if self.task:
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass
            self.task = None

        shutdown_status = await self.shutdown.prepare_shutdown(timeout=timeout)
        pending = list(self._cycle_tasks.values())
        if pending:
            await asyncio.wait(pending, timeout=timeout)
        logger.info(f"Auto-trading monitor stopped: {shutdown_status['message']}")
        return shutdown_status

    async def get_status(self) -> Dict[str, Any]:
        """Get monitor status"""
        try:
            async with self.session_maker() as db:
                accounts = await self.get_active_accounts(db)
                return {
                    "running": self.running,
                    "cycle_interval_seconds": self.config.cycle_interval_seconds,
                    "active_accounts": len(accounts),
                    "cycles_in_progress": sorted(self._cycle_tasks.keys()),
                    "accounts": [
                        {
                            "id": account.id,
                            "name": account.name,
                            "symbol": account.symbol,
                            "last_cycle_at": account.last_cycle_at.isoformat() if account.last_cycle_at else None,
                            "last_outcome": (
                                self._last_results[account.id].outcome.value
                                if account.id in self._last_results else None
                            ),
                        }
                        for account in accounts
                    ],
                    "shutdown": self.shutdown.get_status(),
                }
        except Exception as e:
            logger.error(f"Error getting status: {e}")
            return {"running": self.running, "error": str(e)}

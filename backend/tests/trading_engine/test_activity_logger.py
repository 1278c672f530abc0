"""
Tests for backend/aurum/trading_engine/activity_logger.py
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy import select

from aurum.constants import ActivityCategory
from aurum.models import ActivityLog
from aurum.trading_engine.activity_logger import (
    format_money,
    format_pnl,
    log_activity,
    publish_activities,
    result_message,
    signal_message,
)


class TestFormatting:

    def test_format_pnl(self):
        assert format_pnl(1206.0) == "+$1,206.00"
        assert format_pnl(-60.0) == "-$60.00"
        assert format_pnl(0.0) == "+$0.00"

    def test_format_money(self):
        assert format_money(1950.0) == "$1,950.00"

    def test_signal_message(self):
        text = signal_message("LONG", 0.1, 1950.0, "Moderate", 1944.0, 1958.0)
        assert text == "SIGNAL: BUY 0.1 lots @ $1,950.00 (Moderate confidence) | SL $1,944.00 TP $1,958.00"

    def test_signal_message_short(self):
        assert signal_message("SHORT", 0.5, 1950.0, "High", 1956.0, 1942.0).startswith("SIGNAL: SELL 0.5 lots")

    def test_result_message_won(self):
        assert result_message("WON", 80.0, 80.0, 1000.0) == "TRADE WON: +$80.00 profit | Today: +$80.00/1,000"

    def test_result_message_lost(self):
        assert result_message("LOST", -60.0, -60.0, 1000.0) == "TRADE LOST: -$60.00 loss | Today: -$60.00/1,000"


class TestLogActivity:

    @pytest.mark.asyncio
    async def test_entry_added_not_committed(self, db_session, account):
        entry = log_activity(db_session, account.id, "Market analysis", ActivityCategory.ANALYSIS)
        assert entry.category == "ANALYSIS"
        assert entry in db_session.new

        await db_session.commit()
        rows = (await db_session.execute(select(ActivityLog))).scalars().all()
        assert [r.message for r in rows] == ["Market analysis"]


class TestPublishActivities:

    @pytest.mark.asyncio
    async def test_broadcasts_each_entry(self):
        entries = [
            ActivityLog(account_id=1, message="a", category="SIGNAL"),
            ActivityLog(account_id=1, message="b", category="RESULT"),
        ]
        with patch("aurum.trading_engine.activity_logger.ws_manager") as ws:
            ws.broadcast_activity = AsyncMock()
            await publish_activities(entries)
        assert ws.broadcast_activity.await_count == 2
        ws.broadcast_activity.assert_any_await(1, "RESULT", "b")

    @pytest.mark.asyncio
    async def test_broadcast_failure_swallowed(self):
        """A dead subscriber never breaks the cycle."""
        with patch("aurum.trading_engine.activity_logger.ws_manager") as ws:
            ws.broadcast_activity = AsyncMock(side_effect=RuntimeError("socket closed"))
            await publish_activities([MagicMock(account_id=1, category="UPDATE", message="x")])

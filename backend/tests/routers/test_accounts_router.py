"""
Tests for backend/aurum/routers/accounts_router.py

Endpoints are called directly with the test session; the HTTP class at the
bottom goes through the application to check error translation.
"""

from datetime import datetime
from unittest.mock import AsyncMock

import httpx
import pytest
from pydantic import ValidationError as PydanticValidationError

from aurum.constants import CycleOutcome
from aurum.exceptions import ConflictError, NotFoundError, ValidationError
from aurum.models import DailyRecommendation, Trade
from aurum.routers.accounts_router import (
    acknowledge_command,
    close_open_trade,
    create_recommendation,
    get_account_status,
    get_activities,
    get_commands,
    get_daily_summary,
    get_trades,
    toggle_auto_trading,
)
from aurum.schemas import AutoTradingToggleRequest, CommandAcknowledgmentRequest, ManualCloseRequest
from aurum.trading_engine.trade_manager import get_open_trade


async def _open_trade(manager, feed, db, account, snapshot_factory):
    feed.push(snapshot_factory())
    await manager.run_cycle(db, account.id)


class TestGetAccountStatus:

    @pytest.mark.asyncio
    async def test_idle_account(self, db_session, account):
        status = await get_account_status(account.id, db=db_session)
        assert status.engine_state == "IDLE"
        assert status.account.current_balance == 10000.0
        assert status.todays_realized_pnl == 0.0
        assert status.risk_exhausted is False
        assert status.open_trade is None

    @pytest.mark.asyncio
    async def test_in_trade(self, db_session, account, manager, feed, snapshot_factory):
        await _open_trade(manager, feed, db_session, account, snapshot_factory)
        status = await get_account_status(account.id, db=db_session)
        assert status.engine_state == "IN_TRADE"
        assert status.open_trade.side == "LONG"

    @pytest.mark.asyncio
    async def test_unknown_account(self, db_session):
        with pytest.raises(NotFoundError):
            await get_account_status(404, db=db_session)


class TestToggleAutoTrading:

    @pytest.mark.asyncio
    async def test_disable(self, db_session, account, manager):
        result = await toggle_auto_trading(
            account.id, AutoTradingToggleRequest(enabled=False), db=db_session, manager=manager,
        )
        assert result.auto_trading_active is False


class TestListings:

    @pytest.mark.asyncio
    async def test_trades_commands_activities(self, db_session, account, manager, feed, snapshot_factory):
        await _open_trade(manager, feed, db_session, account, snapshot_factory)

        trades = await get_trades(account.id, status=None, limit=100, db=db_session)
        assert len(trades) == 1
        assert await get_trades(account.id, status="won", limit=100, db=db_session) == []

        commands = await get_commands(account.id, limit=100, db=db_session)
        assert [(c.action, c.status) for c in commands] == [("OPEN", "ACKNOWLEDGED")]

        signals = await get_activities(account.id, category="signal", limit=100, db=db_session)
        assert len(signals) == 1
        assert signals[0].message.startswith("SIGNAL: BUY")


class TestCloseOpenTrade:

    @pytest.mark.asyncio
    async def test_close(self, db_session, account, manager, feed, snapshot_factory):
        await _open_trade(manager, feed, db_session, account, snapshot_factory)

        result = await close_open_trade(
            account.id, ManualCloseRequest(exit_price=1958.0), db=db_session, manager=manager,
        )

        assert result.outcome == "CLOSED"
        assert result.state_after == "IDLE"
        assert account.current_balance == 10080.0

    @pytest.mark.asyncio
    async def test_close_without_trade(self, db_session, account, manager):
        with pytest.raises(ConflictError):
            await close_open_trade(
                account.id, ManualCloseRequest(exit_price=1958.0), db=db_session, manager=manager,
            )


class TestAcknowledgeCommand:

    @pytest.mark.asyncio
    async def test_late_ack_recorded_and_reconciled(
        self, db_session, account, manager, feed, snapshot_factory, paper_venue
    ):
        paper_venue.submit = AsyncMock(side_effect=ConnectionError("Venue bridge timeout"))
        feed.push(snapshot_factory())
        failed = await manager.run_cycle(db_session, account.id)
        assert failed.outcome == CycleOutcome.DISPATCH_FAILED
        del paper_venue.submit

        request = CommandAcknowledgmentRequest(action="OPEN", ticket_id="T-77")
        command = await acknowledge_command(
            account.id, failed.trade_id, request, db=db_session, manager=manager,
        )

        assert command.status == "ACKNOWLEDGED"
        assert command.ticket_id == "T-77"
        assert await get_open_trade(db_session, account.id) is None

        result = await manager.run_cycle(db_session, account.id)

        assert result.reconciliation.trades_inserted == [failed.trade_id]
        trade = await get_open_trade(db_session, account.id)
        assert trade.id == failed.trade_id

    @pytest.mark.asyncio
    async def test_repeated_ack_is_idempotent(self, db_session, account, manager, feed, snapshot_factory):
        await _open_trade(manager, feed, db_session, account, snapshot_factory)
        trade = await get_open_trade(db_session, account.id)
        request = CommandAcknowledgmentRequest(action="OPEN", ticket_id="other")

        command = await acknowledge_command(account.id, trade.id, request, db=db_session, manager=manager)

        assert command.status == "ACKNOWLEDGED"
        assert command.ticket_id != "other"

    @pytest.mark.asyncio
    async def test_unknown_command(self, db_session, account, manager):
        request = CommandAcknowledgmentRequest(action="CLOSE")
        with pytest.raises(NotFoundError):
            await acknowledge_command(account.id, "missing", request, db=db_session, manager=manager)

    def test_rejects_unknown_action(self):
        with pytest.raises(PydanticValidationError):
            CommandAcknowledgmentRequest(action="CANCEL")


class TestDailySummary:

    @pytest.mark.asyncio
    async def test_given_day(self, db_session, account):
        db_session.add(Trade(
            id="t", account_id=account.id, symbol="XAUUSD", side="LONG", entry_price=1950.0,
            volume=0.1, status="WON", profit=80.0, exit_price=1958.0,
            opened_at=datetime(2024, 3, 2, 9), closed_at=datetime(2024, 3, 2, 10),
        ))
        await db_session.commit()

        summary = await get_daily_summary(account.id, day="2024-03-02", db=db_session)

        assert summary.trades_taken == 1
        assert summary.total_profit == 80.0

    @pytest.mark.asyncio
    async def test_bad_day(self, db_session, account):
        with pytest.raises(ValidationError):
            await get_daily_summary(account.id, day="03/02/2024", db=db_session)


class TestCreateRecommendation:

    @pytest.mark.asyncio
    async def test_returns_stored_recommendation(self, db_session, account):
        stored = DailyRecommendation(
            account_id=account.id, date="2024-03-03", recommended_position_size="+10%",
            size_adjustment_pct=10.0, reasoning="Trend", provider="anthropic",
        )
        db_session.add(stored)
        await db_session.commit()
        advisory = AsyncMock()
        advisory.suggest_next_day_position_size.return_value = stored

        result = await create_recommendation(account.id, db=db_session, advisory=advisory)

        assert result.size_adjustment_pct == 10.0
        advisory.suggest_next_day_position_size.assert_awaited_once_with(db_session, account.id)


class TestHttpErrors:
    """AppError subclasses become JSON error responses."""

    @pytest.fixture
    def app(self, db_session, manager):
        from aurum.database import get_db
        from aurum.main import app
        from aurum.routers import accounts_router

        async def override_get_db():
            yield db_session

        previous = dict(app.dependency_overrides)
        app.dependency_overrides[get_db] = override_get_db
        app.dependency_overrides[accounts_router.get_lifecycle_manager] = lambda: manager
        yield app
        app.dependency_overrides.clear()
        app.dependency_overrides.update(previous)

    @pytest.mark.asyncio
    async def test_not_found(self, app):
        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
            resp = await client.get("/api/accounts/404")
        assert resp.status_code == 404
        assert resp.json() == {"detail": "Account 404 not found"}

    @pytest.mark.asyncio
    async def test_conflict(self, app, account):
        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
            resp = await client.post(f"/api/accounts/{account.id}/close", json={"exit_price": 1950.0})
        assert resp.status_code == 409

    @pytest.mark.asyncio
    async def test_invalid_close_price(self, app, account):
        async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
            resp = await client.post(f"/api/accounts/{account.id}/close", json={"exit_price": 0})
        assert resp.status_code == 422

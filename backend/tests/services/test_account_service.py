"""
Tests for backend/aurum/services/account_service.py
"""

import pytest
from sqlalchemy import select

from aurum.exceptions import NotFoundError
from aurum.models import Account, ActivityLog
from aurum.services.account_service import ensure_default_account, set_auto_trading, toggle_message


class TestEnsureDefaultAccount:

    @pytest.mark.asyncio
    async def test_creates_once(self, db_session):
        first = await ensure_default_account(db_session, is_paper_trading=True)
        second = await ensure_default_account(db_session)

        assert first.id == second.id
        assert first.current_balance == 10000.0
        assert first.daily_risk_limit == 500.0
        assert first.daily_profit_target == 1000.0
        assert first.auto_trading_active is False
        assert first.is_paper_trading is True
        assert len((await db_session.execute(select(Account))).scalars().all()) == 1


class TestSetAutoTrading:

    @pytest.mark.asyncio
    async def test_enable_writes_update_entry(self, db_session, account, manager):
        account.auto_trading_active = False
        await db_session.commit()

        result = await set_auto_trading(db_session, account.id, True, manager=manager)

        assert result.auto_trading_active is True
        entries = (await db_session.execute(select(ActivityLog))).scalars().all()
        assert [e.message for e in entries] == [
            "AUTO-TRADING: ACTIVE. Goal: $1,000.00 Profit. Max Risk: $500.00."
        ]

    @pytest.mark.asyncio
    async def test_unchanged_is_noop(self, db_session, account):
        await set_auto_trading(db_session, account.id, True)
        assert (await db_session.execute(select(ActivityLog))).scalars().all() == []

    @pytest.mark.asyncio
    async def test_disable(self, db_session, account):
        result = await set_auto_trading(db_session, account.id, False)
        assert result.auto_trading_active is False
        assert toggle_message(result).startswith("AUTO-TRADING: PAUSED")

    @pytest.mark.asyncio
    async def test_unknown_account(self, db_session):
        with pytest.raises(NotFoundError):
            await set_auto_trading(db_session, 42, True)

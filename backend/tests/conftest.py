"""
Shared test fixtures for the aurum backend tests.

Provides reusable fixtures for:
- Async database sessions (in-memory SQLite)
- Accounts and indicator snapshots
- Paper venue, command channel and lifecycle manager wired together
"""

from datetime import datetime

import pytest
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncSession,
    async_sessionmaker,
)

from aurum.models import Account
from aurum.price_feeds.base import IndicatorSnapshot
from aurum.utils.time_utils import utcnow


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
async def async_engine():
    """Create an in-memory async SQLite engine for testing."""
    from aurum.models import Base

    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(async_engine):
    """Session factory bound to the test engine (for code that opens its own sessions)."""
    return async_sessionmaker(
        async_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@pytest.fixture
async def db_session(session_factory):
    """Provide an async database session for tests."""
    async with session_factory() as session:
        yield session
        await session.rollback()


# ---------------------------------------------------------------------------
# Sample data factories
# ---------------------------------------------------------------------------


def make_snapshot(
    price=1950.0,
    short_avg=1955.0,
    long_avg=1945.0,
    momentum=60.0,
    volatility=4.0,
    timestamp=None,
    symbol="XAUUSD",
):
    """IndicatorSnapshot with the LONG-entry scenario values by default."""
    return IndicatorSnapshot(
        symbol=symbol,
        price=price,
        short_avg=short_avg,
        long_avg=long_avg,
        momentum=momentum,
        volatility=volatility,
        timestamp=timestamp or utcnow(),
    )


@pytest.fixture
def snapshot_factory():
    return make_snapshot


@pytest.fixture
async def account(db_session):
    """Default account: 10,000 balance, 500 risk limit, 1,000 target, auto-trading on."""
    acct = Account(
        name="Test",
        symbol="XAUUSD",
        starting_balance=10000.0,
        current_balance=10000.0,
        daily_risk_limit=500.0,
        daily_profit_target=1000.0,
        max_position_size=1.0,
        auto_trading_active=True,
        is_paper_trading=True,
        created_at=datetime(2024, 1, 1),
    )
    db_session.add(acct)
    await db_session.commit()
    return acct


@pytest.fixture
def sample_candles():
    """Generate OHLC candles from a list of closes (one minute apart)."""
    def _make_candles(prices, start_time=1_700_000_000, spread=1.0):
        return [
            {
                "time": start_time + i * 60,
                "open": p - 0.2,
                "high": p + spread,
                "low": p - spread,
                "close": p,
                "volume": 100,
            }
            for i, p in enumerate(prices)
        ]
    return _make_candles


# ---------------------------------------------------------------------------
# Engine fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def shutdown():
    """A fresh shutdown manager (the global one is never touched by tests)."""
    from aurum.services.shutdown_manager import ShutdownManager

    return ShutdownManager()


@pytest.fixture
def paper_venue():
    from aurum.exchange_clients.paper_venue import PaperVenue

    return PaperVenue()


@pytest.fixture
def channel(paper_venue, shutdown):
    """Command channel over the paper venue with no retry delay."""
    from aurum.trading_engine.command_channel import CommandChannel

    return CommandChannel(paper_venue, ack_timeout=1.0, max_attempts=3, backoff=0.0, shutdown=shutdown)


@pytest.fixture
def feed():
    """Static feed; push() snapshots before running a cycle."""
    from aurum.price_feeds.static_feed import StaticIndicatorFeed

    return StaticIndicatorFeed()


@pytest.fixture
def manager(feed, channel):
    from aurum.trading_engine.lifecycle_manager import TradeLifecycleManager

    return TradeLifecycleManager(feed, channel)

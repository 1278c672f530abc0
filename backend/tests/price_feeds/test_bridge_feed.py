"""
Tests for backend/aurum/price_feeds/bridge_feed.py

The venue is mocked; covers indicator derivation and every path that must
surface as TransientFeedError (never as a signal).
"""

import time
from unittest.mock import AsyncMock, MagicMock

import pytest

from aurum.exceptions import TransientFeedError
from aurum.price_feeds.bridge_feed import BridgeIndicatorFeed


def _recent_candles(sample_candles, prices, age_seconds=0):
    """Candles whose last bar opened one minute (plus age) ago."""
    start = int(time.time()) - 60 * len(prices) - age_seconds
    return sample_candles(prices, start_time=start)


@pytest.fixture
def venue():
    v = MagicMock()
    v.get_candles = AsyncMock()
    v.close = AsyncMock()
    return v


class TestFetchIndicators:
    """Tests for BridgeIndicatorFeed.fetch_indicators()."""

    @pytest.mark.asyncio
    async def test_builds_snapshot_from_candles(self, venue, sample_candles):
        """Happy path: uptrend gives short EMA above long EMA."""
        prices = [1900.0 + i * 0.5 for i in range(60)]
        venue.get_candles.return_value = _recent_candles(sample_candles, prices)
        feed = BridgeIndicatorFeed(venue, timeframe="ONE_MINUTE", lookback=60, max_age_seconds=120)

        snapshot = await feed.fetch_indicators("XAUUSD")

        assert snapshot.symbol == "XAUUSD"
        assert snapshot.price == prices[-1]
        assert snapshot.short_avg > snapshot.long_avg
        assert snapshot.momentum == pytest.approx(100.0)
        assert snapshot.volatility > 0
        venue.get_candles.assert_awaited_once_with("XAUUSD", "ONE_MINUTE", 60)

    @pytest.mark.asyncio
    async def test_connection_error_is_transient(self, venue):
        venue.get_candles.side_effect = ConnectionError("Venue bridge timeout")
        feed = BridgeIndicatorFeed(venue)
        with pytest.raises(TransientFeedError, match="Candle fetch failed"):
            await feed.fetch_indicators("XAUUSD")

    @pytest.mark.asyncio
    async def test_server_error_is_transient(self, venue):
        venue.get_candles.side_effect = RuntimeError("Venue bridge server error (500)")
        feed = BridgeIndicatorFeed(venue)
        with pytest.raises(TransientFeedError):
            await feed.fetch_indicators("XAUUSD")

    @pytest.mark.asyncio
    async def test_insufficient_candles(self, venue, sample_candles):
        """Edge case: fewer candles than the long EMA needs."""
        venue.get_candles.return_value = _recent_candles(sample_candles, [1950.0] * 10)
        feed = BridgeIndicatorFeed(venue)
        with pytest.raises(TransientFeedError, match="Insufficient candles"):
            await feed.fetch_indicators("XAUUSD")

    @pytest.mark.asyncio
    async def test_malformed_candles_are_dropped(self, venue, sample_candles):
        """Malformed bars are discarded; too few usable bars is transient."""
        candles = _recent_candles(sample_candles, [1950.0] * 25)
        for c in candles[:10]:
            del c["close"]
        venue.get_candles.return_value = candles
        feed = BridgeIndicatorFeed(venue)
        with pytest.raises(TransientFeedError, match="Insufficient candles"):
            await feed.fetch_indicators("XAUUSD")

    @pytest.mark.asyncio
    async def test_stale_candles_rejected(self, venue, sample_candles):
        """A snapshot older than max_age_seconds is never used."""
        prices = [1950.0 + (i % 3) for i in range(60)]
        venue.get_candles.return_value = _recent_candles(sample_candles, prices, age_seconds=3600)
        feed = BridgeIndicatorFeed(venue, max_age_seconds=120)
        with pytest.raises(TransientFeedError, match="Stale indicators"):
            await feed.fetch_indicators("XAUUSD")


class TestClose:

    @pytest.mark.asyncio
    async def test_close_releases_venue(self, venue):
        feed = BridgeIndicatorFeed(venue)
        await feed.close()
        venue.close.assert_awaited_once()

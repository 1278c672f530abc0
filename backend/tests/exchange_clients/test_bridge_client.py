"""
Tests for backend/aurum/exchange_clients/bridge_client.py

Tests the venue bridge client that talks to the terminal's Expert Advisor
over HTTP. All HTTP requests are mocked.

Covers:
- Side conversion (to_bridge_side)
- HTTP request handling and error translation
- Heartbeat checking
- Candle retrieval
- Command payloads and submission (OPEN, CLOSE, MODIFY)
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

import httpx

from aurum.exchange_clients.bridge_client import BridgeVenueClient, to_bridge_side
from aurum.models import TradeCommand


# =========================================================
# Pure function tests
# =========================================================


class TestToBridgeSide:
    """Tests for to_bridge_side()"""

    def test_long_is_buy(self):
        assert to_bridge_side("LONG") == "BUY"

    def test_short_is_sell(self):
        assert to_bridge_side("SHORT") == "SELL"


# =========================================================
# Fixtures
# =========================================================


@pytest.fixture
def bridge_client():
    """Create a BridgeVenueClient with a mocked httpx client."""
    client = BridgeVenueClient(bridge_url="http://localhost:8787", timeout=5.0)
    client._client = AsyncMock(spec=httpx.AsyncClient)
    return client


def _make_response(json_data, status_code=200):
    """Create a mock httpx.Response."""
    resp = MagicMock(spec=httpx.Response)
    resp.status_code = status_code
    resp.json.return_value = json_data
    resp.text = str(json_data)
    resp.raise_for_status = MagicMock()
    if status_code >= 400:
        http_error = httpx.HTTPStatusError(
            "error", request=MagicMock(), response=resp,
        )
        resp.raise_for_status.side_effect = http_error
    return resp


def _command(action="OPEN", **overrides):
    fields = dict(
        correlation_id="trade-1",
        account_id=1,
        action=action,
        symbol="XAUUSD",
        side="LONG",
        volume=0.1,
        entry_price=1950.0,
        stop_loss=1944.0,
        take_profit=1958.0,
    )
    fields.update(overrides)
    return TradeCommand(**fields)


# =========================================================
# __init__ / _request() tests
# =========================================================


class TestBridgeClientInit:

    def test_init_strips_trailing_slash(self):
        """Happy path: trailing slash on bridge_url is stripped."""
        client = BridgeVenueClient(bridge_url="http://example.com/")
        assert client._bridge_url == "http://example.com"

    def test_venue_type(self, bridge_client):
        assert bridge_client.get_venue_type() == "bridge"


class TestBridgeRequest:
    """Tests for the _request() HTTP helper."""

    @pytest.mark.asyncio
    async def test_request_success(self, bridge_client):
        """Happy path: successful GET returns parsed JSON."""
        bridge_client._client.request = AsyncMock(return_value=_make_response({"alive": True}))
        result = await bridge_client._request("GET", "/heartbeat")
        assert result == {"alive": True}
        bridge_client._client.request.assert_awaited_once_with("GET", "http://localhost:8787/heartbeat")

    @pytest.mark.asyncio
    async def test_request_timeout_raises_connection_error(self, bridge_client):
        """Failure: httpx timeout raises ConnectionError."""
        bridge_client._client.request = AsyncMock(side_effect=httpx.TimeoutException("timed out"))
        with pytest.raises(ConnectionError, match="Venue bridge timeout"):
            await bridge_client._request("GET", "/heartbeat")

    @pytest.mark.asyncio
    async def test_request_connect_error_raises_connection_error(self, bridge_client):
        """Failure: connection refused raises ConnectionError."""
        bridge_client._client.request = AsyncMock(side_effect=httpx.ConnectError("refused"))
        with pytest.raises(ConnectionError, match="Venue bridge unavailable"):
            await bridge_client._request("GET", "/candles")

    @pytest.mark.asyncio
    async def test_request_4xx_raises_value_error(self, bridge_client):
        """Failure: 4xx HTTP status raises ValueError."""
        bridge_client._client.request = AsyncMock(return_value=_make_response({"error": "bad"}, 400))
        with pytest.raises(ValueError, match="Venue bridge rejected request.*400"):
            await bridge_client._request("POST", "/order")

    @pytest.mark.asyncio
    async def test_request_5xx_raises_runtime_error(self, bridge_client):
        """Failure: 5xx HTTP status raises RuntimeError."""
        bridge_client._client.request = AsyncMock(return_value=_make_response({"error": "internal"}, 500))
        with pytest.raises(RuntimeError, match="Venue bridge server error.*500"):
            await bridge_client._request("GET", "/candles")

    @pytest.mark.asyncio
    async def test_request_malformed_json_raises_runtime_error(self, bridge_client):
        """Failure: a non-JSON body is a server-side problem."""
        resp = _make_response({})
        resp.json.side_effect = ValueError("Expecting value")
        bridge_client._client.request = AsyncMock(return_value=resp)
        with pytest.raises(RuntimeError, match="malformed response"):
            await bridge_client._request("GET", "/candles")


# =========================================================
# heartbeat() tests
# =========================================================


class TestBridgeHeartbeat:

    @pytest.mark.asyncio
    async def test_heartbeat_alive(self, bridge_client):
        bridge_client._client.request = AsyncMock(return_value=_make_response({"alive": True}))
        assert await bridge_client.heartbeat() is True

    @pytest.mark.asyncio
    async def test_heartbeat_dead(self, bridge_client):
        """Edge case: EA responds but alive=False."""
        bridge_client._client.request = AsyncMock(return_value=_make_response({"alive": False}))
        assert await bridge_client.heartbeat() is False

    @pytest.mark.asyncio
    async def test_heartbeat_error_returns_false(self, bridge_client):
        """Failure: connection error returns False."""
        bridge_client._client.request = AsyncMock(side_effect=httpx.TimeoutException("timeout"))
        assert await bridge_client.heartbeat() is False


# =========================================================
# get_candles() tests
# =========================================================


class TestBridgeCandles:

    @pytest.mark.asyncio
    async def test_get_candles_success(self, bridge_client):
        """Happy path: candle list returned and timeframe translated."""
        candles = [{"time": 1, "open": 1, "high": 2, "low": 0.5, "close": 1.5}]
        bridge_client._client.request = AsyncMock(return_value=_make_response({"candles": candles}))

        result = await bridge_client.get_candles("XAUUSD", "FIVE_MINUTE", 50)

        assert result == candles
        kwargs = bridge_client._client.request.call_args.kwargs
        assert kwargs["params"] == {"symbol": "XAUUSD", "timeframe": "M5", "count": 50}

    @pytest.mark.asyncio
    async def test_get_candles_missing_list(self, bridge_client):
        """Failure: response without a candle list raises RuntimeError."""
        bridge_client._client.request = AsyncMock(return_value=_make_response({"error": "no data"}))
        with pytest.raises(RuntimeError, match="no candle list"):
            await bridge_client.get_candles("XAUUSD", "ONE_MINUTE", 50)


# =========================================================
# Command payload / submit() tests
# =========================================================


class TestBridgeBuildPayload:

    def test_open_payload(self, bridge_client):
        path, payload = bridge_client._build_payload(_command("OPEN"))
        assert path == "/order"
        assert payload == {
            "correlation_id": "trade-1",
            "symbol": "XAUUSD",
            "volume": 0.1,
            "action": "BUY",
            "price": 1950.0,
            "stop_loss": 1944.0,
            "take_profit": 1958.0,
        }

    def test_close_payload_includes_ticket(self, bridge_client):
        cmd = _command("CLOSE", side="SHORT", exit_price=1940.0, ticket_id="777")
        path, payload = bridge_client._build_payload(cmd)
        assert path == "/close"
        assert payload["side"] == "SELL"
        assert payload["price"] == 1940.0
        assert payload["ticket"] == "777"
        assert payload["correlation_id"] == "trade-1"

    def test_close_payload_without_ticket(self, bridge_client):
        """Edge case: unknown ticket, bridge resolves by correlation id."""
        path, payload = bridge_client._build_payload(_command("CLOSE", exit_price=1940.0))
        assert "ticket" not in payload

    def test_modify_payload(self, bridge_client):
        path, payload = bridge_client._build_payload(_command("MODIFY", stop_loss=1948.0))
        assert path == "/modify"
        assert payload["stop_loss"] == 1948.0
        assert payload["take_profit"] == 1958.0

    def test_unknown_action_raises(self, bridge_client):
        with pytest.raises(ValueError, match="Unknown command action"):
            bridge_client._build_payload(_command("FLIP"))


class TestBridgeSubmit:

    @pytest.mark.asyncio
    async def test_submit_success(self, bridge_client):
        """Happy path: heartbeat then order, ticket and fill returned."""
        bridge_client._client.request = AsyncMock(side_effect=[
            _make_response({"alive": True}),
            _make_response({"success": True, "ticket": 12345, "price": 1950.2}),
        ])
        response = await bridge_client.submit(_command("OPEN"))

        assert response.ok is True
        assert response.ticket_id == "12345"
        assert response.fill_price == 1950.2
        call = bridge_client._client.request.call_args_list[1]
        assert call.args == ("POST", "http://localhost:8787/order")
        assert call.kwargs["json"]["correlation_id"] == "trade-1"

    @pytest.mark.asyncio
    async def test_submit_rejected(self, bridge_client):
        """Failure: bridge reports success=false, response not ok."""
        bridge_client._client.request = AsyncMock(side_effect=[
            _make_response({"alive": True}),
            _make_response({"success": False, "error": "Market closed"}),
        ])
        response = await bridge_client.submit(_command("OPEN"))
        assert response.ok is False
        assert response.error == "Market closed"

    @pytest.mark.asyncio
    async def test_submit_blocked_when_ea_down(self, bridge_client):
        """Failure: no heartbeat, command never sent."""
        bridge_client._client.request = AsyncMock(return_value=_make_response({"alive": False}))
        with pytest.raises(ConnectionError, match="not responding"):
            await bridge_client.submit(_command("OPEN"))
        assert bridge_client._client.request.await_count == 1

    @pytest.mark.asyncio
    async def test_close_releases_http_client(self, bridge_client):
        await bridge_client.close()
        bridge_client._client.aclose.assert_awaited_once()

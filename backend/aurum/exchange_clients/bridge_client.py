"""
Venue Bridge Client

ExecutionVenue implementation for a trading terminal reached through a
local HTTP bridge (an Expert Advisor listener on the terminal host).

- Uses httpx.AsyncClient for HTTP
- Heartbeat check before every command
- Every command carries its correlation_id so the bridge can dedupe
  redeliveries
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

import httpx

from aurum.constants import CommandAction, TradeSide
from aurum.exchange_clients.base import ExecutionVenue, VenueResponse
from aurum.utils.candle_utils import to_bridge_timeframe

logger = logging.getLogger(__name__)


def to_bridge_side(side: str) -> str:
    """LONG -> BUY, SHORT -> SELL."""
    return "BUY" if side == TradeSide.LONG.value else "SELL"


class BridgeVenueClient(ExecutionVenue):
    """
    ExecutionVenue for the terminal bridge.

    Endpoints expected on the bridge:
      GET  /heartbeat          - Check EA is alive
      GET  /candles            - Recent OHLC candles
      POST /order              - Open a position (OPEN)
      POST /close              - Close a position (CLOSE)
      POST /modify             - Move stop loss / take profit (MODIFY)
    """

    def __init__(
        self,
        bridge_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._bridge_url = bridge_url.rstrip("/")
        self._timeout = timeout
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)
        logger.info(f"BridgeVenueClient initialized (bridge={bridge_url})")

    async def close(self):
        """Close the underlying httpx client to release connections."""
        if self._client:
            await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        """Make HTTP request to bridge.

        Raises:
            ConnectionError: Bridge is unreachable or timed out.
            ValueError: Bridge returned an HTTP client error (4xx)
                indicating bad request data.
            RuntimeError: Bridge returned an HTTP server error (5xx)
                indicating EA-side failure.
        """
        url = f"{self._bridge_url}{path}"
        try:
            resp = await self._client.request(method, url, **kwargs)
            resp.raise_for_status()
            return resp.json()
        except httpx.TimeoutException:
            logger.error(f"Venue bridge timeout: {method} {path}")
            raise ConnectionError("Venue bridge timeout")
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            body = e.response.text[:200]
            logger.error(f"Venue bridge HTTP {status}: {method} {path} - {body}")
            if 400 <= status < 500:
                raise ValueError(f"Venue bridge rejected request ({status}): {body}")
            raise RuntimeError(f"Venue bridge server error ({status}): {body}")
        except (httpx.TransportError, OSError) as e:
            logger.error(f"Venue bridge connection failed: {method} {path}: {e}")
            raise ConnectionError(f"Venue bridge unavailable: {e}")
        except ValueError as e:
            # Body was not JSON
            logger.error(f"Venue bridge returned malformed response: {method} {path}: {e}")
            raise RuntimeError(f"Venue bridge returned malformed response: {e}")

    async def heartbeat(self) -> bool:
        """Check if EA is alive."""
        try:
            resp = await self._request("GET", "/heartbeat")
            return bool(resp.get("alive", False))
        except (ConnectionError, ValueError, RuntimeError):
            return False

    # ==========================================================
    # MARKET DATA
    # ==========================================================

    async def get_candles(
        self,
        symbol: str,
        timeframe: str,
        count: int,
    ) -> List[Dict[str, Any]]:
        resp = await self._request(
            "GET",
            "/candles",
            params={
                "symbol": symbol,
                "timeframe": to_bridge_timeframe(timeframe),
                "count": count,
            },
        )
        candles = resp.get("candles")
        if not isinstance(candles, list):
            raise RuntimeError("Venue bridge returned no candle list")
        return candles

    # ==========================================================
    # COMMAND EXECUTION
    # ==========================================================

    def _build_payload(self, command) -> Tuple[str, Dict[str, Any]]:
        """Return (path, json payload) for a TradeCommand."""
        payload: Dict[str, Any] = {
            "correlation_id": command.correlation_id,
            "symbol": command.symbol,
            "volume": command.volume,
        }

        if command.action == CommandAction.OPEN.value:
            payload.update({
                "action": to_bridge_side(command.side),
                "price": command.entry_price,
                "stop_loss": command.stop_loss,
                "take_profit": command.take_profit,
            })
            return "/order", payload

        if command.action == CommandAction.CLOSE.value:
            payload.update({
                "side": to_bridge_side(command.side),
                "price": command.exit_price,
            })
            if command.ticket_id:
                payload["ticket"] = command.ticket_id
            return "/close", payload

        if command.action == CommandAction.MODIFY.value:
            payload.update({
                "stop_loss": command.stop_loss,
                "take_profit": command.take_profit,
            })
            return "/modify", payload

        raise ValueError(f"Unknown command action: {command.action}")

    async def submit(self, command) -> VenueResponse:
        # Heartbeat check, block if EA down
        if not await self.heartbeat():
            raise ConnectionError("Venue bridge not responding, command blocked")

        path, payload = self._build_payload(command)
        resp = await self._request("POST", path, json=payload)

        # Validate the bridge reported success
        if not resp.get("success", False):
            error_msg = resp.get("error", "Unknown venue bridge error")
            logger.error(
                f"Venue rejected {command.action} {command.correlation_id}: {error_msg}"
            )
            return VenueResponse(ok=False, error=error_msg)

        ticket = resp.get("ticket")
        price = resp.get("price")
        return VenueResponse(
            ok=True,
            ticket_id=str(ticket) if ticket is not None else None,
            fill_price=float(price) if price else None,
        )

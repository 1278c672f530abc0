"""
Paper Venue

Simulates command execution for paper trading accounts without touching the
terminal. Acknowledges every well-formed command, remembers what it was sent,
and dedupes redeliveries by (correlation_id, action). Candle data can be
borrowed from a real venue so paper accounts trade on live indicators.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional, Tuple

from aurum.constants import CommandAction
from aurum.exchange_clients.base import ExecutionVenue, VenueResponse

logger = logging.getLogger(__name__)


class PaperVenue(ExecutionVenue):
    """
    In-process execution venue.

    A CLOSE for a position it never opened (or already closed) is
    acknowledged as a no-op so that redelivered closes stay harmless.
    """

    def __init__(self, candle_source: Optional[ExecutionVenue] = None):
        """
        Args:
            candle_source: Optional real venue used for get_candles()
        """
        self.candle_source = candle_source
        self.submissions: List[Tuple[str, str]] = []  # Every delivery, duplicates included
        self._acks: Dict[Tuple[str, str], VenueResponse] = {}
        self._open_positions: Dict[str, str] = {}  # correlation_id -> ticket

    def get_venue_type(self) -> str:
        return "paper"

    async def heartbeat(self) -> bool:
        return True

    async def close(self):
        if self.candle_source is not None:
            await self.candle_source.close()

    async def get_candles(
        self,
        symbol: str,
        timeframe: str,
        count: int,
    ) -> List[Dict[str, Any]]:
        if self.candle_source is None:
            raise ConnectionError("Paper venue has no candle source configured")
        return await self.candle_source.get_candles(symbol, timeframe, count)

    async def submit(self, command) -> VenueResponse:
        key = (command.correlation_id, command.action)
        self.submissions.append(key)

        if key in self._acks:
            logger.info(f"Paper venue: duplicate {command.action} {command.correlation_id}, returning prior ack")
            return self._acks[key]

        if command.action == CommandAction.OPEN.value:
            ticket = f"paper-{uuid.uuid4().hex[:12]}"
            self._open_positions[command.correlation_id] = ticket
            response = VenueResponse(ok=True, ticket_id=ticket, fill_price=command.entry_price)

        elif command.action == CommandAction.CLOSE.value:
            ticket = self._open_positions.pop(command.correlation_id, None)
            if ticket is None:
                logger.info(f"Paper venue: close for unknown position {command.correlation_id}, no-op")
            response = VenueResponse(ok=True, ticket_id=ticket, fill_price=command.exit_price)

        elif command.action == CommandAction.MODIFY.value:
            response = VenueResponse(ok=True, ticket_id=self._open_positions.get(command.correlation_id))

        else:
            return VenueResponse(ok=False, error=f"Unknown command action: {command.action}")

        self._acks[key] = response
        logger.info(f"Paper venue: acknowledged {command.action} {command.correlation_id} (ticket={response.ticket_id})")
        return response

    def count_submissions(self, correlation_id: str, action: str) -> int:
        return self.submissions.count((correlation_id, action))

    def has_open_position(self, correlation_id: str) -> bool:
        return correlation_id in self._open_positions

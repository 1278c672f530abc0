"""
Execution Venue Interface

Every venue the command channel talks to implements ExecutionVenue. The
channel owns retries, timeouts and ledger updates; a venue only submits one
command and reports what the venue said.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional


@dataclass
class VenueResponse:
    """Result of submitting one command to the venue."""
    ok: bool
    ticket_id: Optional[str] = None
    error: Optional[str] = None
    fill_price: Optional[float] = None


class ExecutionVenue(ABC):
    """
    Abstract execution venue.

    Implementations must treat a repeated submission with the same
    (correlation_id, action) as the same command: the venue dedupes, the
    channel may deliver more than once.
    """

    @abstractmethod
    async def submit(self, command) -> VenueResponse:
        """
        Submit a TradeCommand.

        Returns a VenueResponse with ok=False when the venue explicitly
        rejected the command.

        Raises:
            ConnectionError: venue unreachable or timed out
            ValueError: venue rejected the request as malformed (4xx)
            RuntimeError: venue-side failure (5xx)
        """
        pass

    @abstractmethod
    async def heartbeat(self) -> bool:
        """Return True if the venue is alive."""
        pass

    @abstractmethod
    async def get_candles(
        self,
        symbol: str,
        timeframe: str,
        count: int,
    ) -> List[Dict[str, Any]]:
        """
        Get the most recent OHLC candles for a symbol.

        Raises the same errors as submit().
        """
        pass

    async def close(self):
        """Release any underlying resources."""
        return None

    def get_venue_type(self) -> str:
        return "bridge"

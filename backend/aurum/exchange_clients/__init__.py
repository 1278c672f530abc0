"""
Execution Venue Layer

All venues implement the ExecutionVenue abstract base class so the command
channel can deliver commands to the terminal bridge or to the in-process
paper venue interchangeably.

Usage:
    from aurum.exchange_clients import create_venue

    venue = create_venue(is_paper_trading=False)
"""

from typing import Optional

from aurum.config import settings
from aurum.exchange_clients.base import ExecutionVenue, VenueResponse
from aurum.exchange_clients.bridge_client import BridgeVenueClient
from aurum.exchange_clients.paper_venue import PaperVenue


def create_venue(is_paper_trading: bool = False, bridge_url: Optional[str] = None) -> ExecutionVenue:
    """Create the venue for an account: paper venue fed by bridge candles, or the bridge itself."""
    bridge = BridgeVenueClient(
        bridge_url=bridge_url or settings.bridge_url,
        timeout=settings.bridge_timeout_seconds,
    )
    if is_paper_trading:
        return PaperVenue(candle_source=bridge)
    return bridge


__all__ = ["ExecutionVenue", "VenueResponse", "BridgeVenueClient", "PaperVenue", "create_venue"]

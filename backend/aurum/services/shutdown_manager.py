"""
Graceful Shutdown Manager

Tracks which commands are on their way to the venue. A dispatch that has
started always runs to acknowledgment or timeout; once shutdown begins only
new dispatches are refused, and anything still in flight when the wait
expires is reported by correlation id so reconciliation can pick it up on
the next start.
"""

import asyncio
import logging
from datetime import datetime
from typing import Dict, List, Optional

from aurum.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


class ShutdownInProgress(RuntimeError):
    """Raised when a new dispatch is attempted after shutdown was requested."""


class ShutdownManager:
    """
    Refuses new dispatches during shutdown and waits for the running ones.

    Usage:
        async with shutdown_manager.dispatch_in_flight("OPEN", trade_id):
            await venue.submit(command)

        status = await shutdown_manager.prepare_shutdown(timeout=60)
    """

    def __init__(self):
        self._shutting_down = False
        self._in_flight: Dict[str, datetime] = {}
        self._lock = asyncio.Lock()
        self._drained = asyncio.Event()
        self._shutdown_requested_at: Optional[datetime] = None

    @property
    def is_shutting_down(self) -> bool:
        return self._shutting_down

    @property
    def in_flight_count(self) -> int:
        """Number of dispatches currently awaiting the venue"""
        return len(self._in_flight)

    def in_flight_keys(self) -> List[str]:
        """'ACTION:correlation_id' of every running dispatch, oldest first"""
        return [key for key, _ in sorted(self._in_flight.items(), key=lambda item: item[1])]

    async def begin_dispatch(self, key: str):
        async with self._lock:
            if self._shutting_down:
                raise ShutdownInProgress(f"Cannot start dispatch {key} - shutdown in progress")
            self._in_flight[key] = utcnow()
            logger.debug(f"Dispatch {key} started - in flight: {len(self._in_flight)}")

    async def end_dispatch(self, key: str):
        async with self._lock:
            started = self._in_flight.pop(key, None)
            if started is not None:
                elapsed = (utcnow() - started).total_seconds()
                logger.debug(f"Dispatch {key} finished after {elapsed:.2f}s - in flight: {len(self._in_flight)}")
            if self._shutting_down and not self._in_flight:
                self._drained.set()

    class DispatchInFlight:
        """Context manager around one command delivery"""
        def __init__(self, manager: 'ShutdownManager', key: str):
            self.manager = manager
            self.key = key

        async def __aenter__(self):
            await self.manager.begin_dispatch(self.key)
            return self

        async def __aexit__(self, exc_type, exc_val, exc_tb):
            await self.manager.end_dispatch(self.key)
            return False

    def dispatch_in_flight(self, action: str, correlation_id: str) -> 'DispatchInFlight':
        return self.DispatchInFlight(self, f"{action}:{correlation_id}")

    async def prepare_shutdown(self, timeout: float = 60.0) -> dict:
        """
        Stop accepting dispatches and wait for the running ones.

        Returns:
            dict with ready, in_flight (keys still running), waited_seconds, message
        """
        self._shutting_down = True
        self._shutdown_requested_at = utcnow()
        self._drained.clear()

        if not self._in_flight:
            logger.info("Shutdown requested - no dispatches in flight")
            return {
                "ready": True,
                "in_flight": [],
                "waited_seconds": 0,
                "message": "No dispatches in flight - ready for shutdown",
            }

        logger.info(f"Shutdown requested - waiting up to {timeout}s for {', '.join(self.in_flight_keys())}")

        try:
            await asyncio.wait_for(self._drained.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            stuck = self.in_flight_keys()
            logger.warning(f"Shutdown timeout after {timeout}s - still in flight: {', '.join(stuck)}")
            return {
                "ready": False,
                "in_flight": stuck,
                "waited_seconds": timeout,
                "message": f"Timeout: {len(stuck)} dispatch(es) still in flight after {timeout}s",
            }

        waited = (utcnow() - self._shutdown_requested_at).total_seconds()
        logger.info(f"All dispatches finished after {waited:.1f}s - ready for shutdown")
        return {
            "ready": True,
            "in_flight": [],
            "waited_seconds": waited,
            "message": f"All dispatches finished after {waited:.1f}s - ready for shutdown",
        }

    def get_status(self) -> dict:
        return {
            "shutting_down": self._shutting_down,
            "in_flight": self.in_flight_keys(),
            "shutdown_requested_at": (
                self._shutdown_requested_at.isoformat() if self._shutdown_requested_at else None
            ),
        }


# Global singleton instance
shutdown_manager = ShutdownManager()

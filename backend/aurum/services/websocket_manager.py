"""
WebSocket Connection Manager for real-time notifications

Pushes trade and activity events to connected dashboards. Clients are passive
subscribers; nothing received on the socket drives a trading decision.
"""

import asyncio
import logging
from typing import List, Optional

from fastapi import WebSocket

from aurum.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


class WebSocketManager:
    """Manages WebSocket connections and broadcasts messages to clients"""

    def __init__(self):
        self.active_connections: List[WebSocket] = []
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket):
        """Accept a new WebSocket connection"""
        await websocket.accept()
        async with self._lock:
            self.active_connections.append(websocket)
        logger.info(f"WebSocket connected. Total connections: {len(self.active_connections)}")

    async def disconnect(self, websocket: WebSocket):
        """Remove a WebSocket connection"""
        async with self._lock:
            if websocket in self.active_connections:
                self.active_connections.remove(websocket)
        logger.info(f"WebSocket disconnected. Total connections: {len(self.active_connections)}")

    async def broadcast(self, message: dict):
        """Broadcast a message to all connected clients"""
        if not self.active_connections:
            return

        async with self._lock:
            connections = list(self.active_connections)

        disconnected = []
        for connection in connections:
            try:
                await connection.send_json(message)
            except Exception as e:
                logger.warning(f"Failed to send message to client: {e}")
                disconnected.append(connection)

        if disconnected:
            async with self._lock:
                for conn in disconnected:
                    if conn in self.active_connections:
                        self.active_connections.remove(conn)

    async def broadcast_trade_event(
        self,
        event_type: str,
        account_id: int,
        trade_id: str,
        side: str,
        price: float,
        volume: float,
        profit: Optional[float] = None,
        status: Optional[str] = None,
    ):
        """Broadcast trade_opened / trade_closed"""
        message = {
            "type": event_type,
            "account_id": account_id,
            "trade_id": trade_id,
            "side": side,
            "price": price,
            "volume": volume,
            "profit": profit,
            "status": status,
            "timestamp": utcnow().isoformat(),
        }
        logger.info(f"Broadcasting {event_type} for trade {trade_id}")
        await self.broadcast(message)

    async def broadcast_activity(self, account_id: int, category: str, message: str):
        """Broadcast a new activity log entry"""
        await self.broadcast({
            "type": "activity",
            "account_id": account_id,
            "category": category,
            "message": message,
            "timestamp": utcnow().isoformat(),
        })


# Global singleton instance
ws_manager = WebSocketManager()

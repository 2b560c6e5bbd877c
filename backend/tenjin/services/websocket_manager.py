"""
Tenjin WebSocket Manager
Channel registry for the host UI.

  • ``session``: one socket per live SessionEngine (the socket owns the engine)
  • ``alerts``: passive listeners that mirror every emitted wellness alert
"""

import logging
from typing import Dict, Set

from fastapi import WebSocket

from tenjin.models.session import NotificationEvent

logger = logging.getLogger("tenjin.websocket")

SESSION_CHANNEL = "session"
ALERTS_CHANNEL = "alerts"


class ConnectionManager:
    """Tracks connected host-UI sockets per channel"""

    def __init__(self):
        self.active_connections: Dict[str, Set[WebSocket]] = {
            SESSION_CHANNEL: set(),
            ALERTS_CHANNEL: set(),
        }

    async def connect(self, websocket: WebSocket, channel: str = SESSION_CHANNEL):
        await websocket.accept()
        self.active_connections.setdefault(channel, set()).add(websocket)
        logger.info(f"Client connected to channel: {channel} (total: {len(self.active_connections[channel])})")

    def disconnect(self, websocket: WebSocket, channel: str = SESSION_CHANNEL):
        clients = self.active_connections.get(channel)
        if clients is not None and websocket in clients:
            clients.discard(websocket)
            logger.info(f"Client disconnected from channel: {channel}")

    async def broadcast_to_channel(self, channel: str, message: dict) -> int:
        """Send to every client on a channel; returns how many received it."""
        clients = self.active_connections.get(channel)
        if not clients:
            return 0

        delivered = 0
        for ws in list(clients):
            try:
                await ws.send_json(message)
                delivered += 1
            except Exception as exc:
                logger.debug(f"Dropping dead client on {channel}: {exc}")
                clients.discard(ws)
        return delivered

    async def send_alert(self, event: NotificationEvent, source: str = "session") -> int:
        """Mirror a wellness alert to the alerts channel"""
        return await self.broadcast_to_channel(ALERTS_CHANNEL, {
            "type": "alert",
            "data": {
                **event.to_dict(),
                "alert_type": "wellness_deviation",
                "severity": "warning",
                "source": source,
            },
        })

    def channel_counts(self) -> Dict[str, int]:
        return {channel: len(conns) for channel, conns in self.active_connections.items()}

    @property
    def total_connections(self) -> int:
        return sum(self.channel_counts().values())


# Global instance
ws_manager = ConnectionManager()

import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, Any, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class NotificationHub:
    """Open notification sockets per user and push fan-out"""

    def __init__(self):
        self._connections: Dict[str, Set[WebSocket]] = defaultdict(set)

    async def connect(self, user_id: str, websocket: WebSocket) -> None:
        await websocket.accept()
        self._connections[user_id].add(websocket)
        logger.info("Notification socket opened for %s (%d open)", user_id, len(self._connections[user_id]))
        await websocket.send_json({
            "type": "connected",
            "user_id": user_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })

    def disconnect(self, user_id: str, websocket: WebSocket) -> None:
        sockets = self._connections.get(user_id)
        if not sockets:
            return
        sockets.discard(websocket)
        if not sockets:
            del self._connections[user_id]
        logger.info("Notification socket closed for %s", user_id)

    def is_connected(self, user_id: str) -> bool:
        return bool(self._connections.get(user_id))

    @property
    def connection_count(self) -> int:
        return sum(len(sockets) for sockets in self._connections.values())

    async def send_to_user(self, user_id: str, event_type: str, data: Dict[str, Any]) -> int:
        """Push an event to every socket of a user. Returns how many received it."""
        message = {
            "type": event_type,
            "data": data,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        delivered = 0
        for websocket in list(self._connections.get(user_id, ())):
            try:
                await websocket.send_json(message)
                delivered += 1
            except Exception as e:
                # A failed send means the socket is gone
                logger.warning("Dropping notification socket for %s: %s", user_id, e)
                self.disconnect(user_id, websocket)
        return delivered


# Singleton instance
notification_hub = NotificationHub()

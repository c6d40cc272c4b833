"""
Consumer-side notification state.

Keeps the notification list, unread count and connection status in sync with
the API: a WebSocket subscription when available, polling otherwise.
"""
import asyncio
import json
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

import websockets
from websockets.exceptions import WebSocketException

from .api_client import ApiClient, ApiClientError

logger = logging.getLogger(__name__)


class ConnectionStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"
    OFFLINE = "offline"


NOTIFICATION_FILTERS = ("all", "unread", "read", "high", "medical", "administrative")


class NotificationCenter:
    """Notification list, read state and live updates for one signed-in user"""

    def __init__(
        self,
        client: ApiClient,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        poll_interval: float = 30.0,
        connect: Optional[Callable[[str], Awaitable[Any]]] = None,
    ):
        self.client = client
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.poll_interval = poll_interval
        self._connect = connect or websockets.connect

        self.notifications: List[Dict[str, Any]] = []
        self.unread_count = 0
        self.is_loading = False
        self.error: Optional[str] = None
        self.preferences: Optional[Dict[str, Any]] = None
        self.connection_status = ConnectionStatus.DISCONNECTED

        self._websocket = None
        self._listener: Optional[asyncio.Task] = None
        self._poller: Optional[asyncio.Task] = None

    # ==================== FETCH ====================

    async def fetch_notifications(self, **params) -> List[Dict[str, Any]]:
        """
        Replace the list from the API

        Failures are recorded in `error` and retried up to `max_retries`
        times, waiting `retry_delay * attempt` seconds before each retry.
        """
        self.is_loading = True
        try:
            for attempt in range(self.max_retries + 1):
                if attempt:
                    await asyncio.sleep(self.retry_delay * attempt)
                try:
                    body = await self.client.get("/notifications/user", params=params or None)
                except ApiClientError as e:
                    self.error = e.message
                    logger.warning("Fetching notifications failed (attempt %d): %s", attempt + 1, e.message)
                    if e.error_type == "network" and self.connection_status != ConnectionStatus.CONNECTED:
                        self.connection_status = ConnectionStatus.OFFLINE
                    continue

                self.notifications = list(body["data"]["notifications"])
                self.unread_count = sum(1 for n in self.notifications if not n.get("read_at"))
                self.error = None
                if self.connection_status == ConnectionStatus.OFFLINE:
                    self.connection_status = ConnectionStatus.DISCONNECTED
                return self.notifications
            return self.notifications
        finally:
            self.is_loading = False

    async def refresh(self) -> List[Dict[str, Any]]:
        return await self.fetch_notifications()

    def clear_error(self) -> None:
        self.error = None

    # ==================== READ STATE ====================

    def _find(self, notification_id: str) -> Optional[Dict[str, Any]]:
        return next((n for n in self.notifications if n.get("id") == notification_id), None)

    def _mark_local(self, notification_id: str, read_at: Optional[str]) -> None:
        notification = self._find(notification_id)
        if notification is not None and not notification.get("read_at"):
            notification["read_at"] = read_at
            notification["is_read"] = True
            self.unread_count = max(self.unread_count - 1, 0)

    async def mark_as_read(self, notification_id: str) -> bool:
        try:
            body = await self.client.post(f"/notifications/{notification_id}/read")
        except ApiClientError as e:
            self.error = e.message
            return False
        self._mark_local(notification_id, body["data"]["read_at"])
        return True

    async def mark_all_as_read(self) -> bool:
        try:
            await self.client.post("/notifications/mark-all-read")
        except ApiClientError as e:
            self.error = e.message
            return False
        self._mark_all_local()
        return True

    def _mark_all_local(self, read_at: Optional[str] = None) -> None:
        for notification in self.notifications:
            if not notification.get("read_at"):
                notification["read_at"] = read_at or datetime.now(timezone.utc).isoformat()
                notification["is_read"] = True
        self.unread_count = 0

    # ==================== PREFERENCES ====================

    async def load_preferences(self) -> Optional[Dict[str, Any]]:
        try:
            body = await self.client.get("/notification-preferences")
        except ApiClientError as e:
            self.error = e.message
            return None
        self.preferences = body["data"]
        return self.preferences

    async def update_preferences(self, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        try:
            body = await self.client.put("/notification-preferences", json=updates)
        except ApiClientError as e:
            self.error = e.message
            return None
        self.preferences = body["data"]
        return self.preferences

    async def send_test_notification(self, channels: Optional[List[str]] = None) -> Optional[Dict[str, Any]]:
        try:
            body = await self.client.post("/notifications/test", json={"channels": channels or ["websocket"]})
        except ApiClientError as e:
            self.error = e.message
            return None
        return body["data"]

    # ==================== LIVE UPDATES ====================

    def handle_event(self, event: Dict[str, Any]) -> None:
        """Apply one server push to the local state"""
        event_type = event.get("type")
        data = event.get("data") or {}

        if event_type == "notification_received":
            if self._find(data.get("id")) is None:
                self.notifications.insert(0, data)
                if not data.get("read_at"):
                    self.unread_count += 1
        elif event_type == "notification_read":
            self._mark_local(data.get("notification_id"), data.get("read_at"))
        elif event_type == "all_notifications_read":
            self._mark_all_local(data.get("read_at"))

    async def connect(self) -> ConnectionStatus:
        """Open the WebSocket subscription; polling covers any time it is down"""
        self._start_polling()
        if self.connection_status in (ConnectionStatus.CONNECTING, ConnectionStatus.CONNECTED):
            return self.connection_status

        self.connection_status = ConnectionStatus.CONNECTING
        try:
            self._websocket = await self._connect(self.client.websocket_url("/ws/notifications"))
        except (OSError, WebSocketException) as e:
            logger.warning("Notification socket unavailable, polling instead: %s", e)
            self.connection_status = ConnectionStatus.FAILED
            return self.connection_status

        self.connection_status = ConnectionStatus.CONNECTED
        self._listener = asyncio.create_task(self._listen(self._websocket))
        return self.connection_status

    async def _listen(self, websocket) -> None:
        try:
            async for raw in websocket:
                try:
                    event = json.loads(raw)
                except ValueError:
                    logger.warning("Ignoring malformed notification event")
                    continue
                self.handle_event(event)
            self.connection_status = ConnectionStatus.DISCONNECTED
        except (OSError, WebSocketException) as e:
            logger.warning("Notification socket dropped: %s", e)
            self.connection_status = ConnectionStatus.FAILED

    def _start_polling(self) -> None:
        if self._poller is None or self._poller.done():
            self._poller = asyncio.create_task(self._poll())

    async def _poll(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            if self.connection_status != ConnectionStatus.CONNECTED:
                await self.fetch_notifications()

    async def disconnect(self) -> None:
        if self._listener is not None:
            self._listener.cancel()
            self._listener = None
        if self._websocket is not None:
            await self._websocket.close()
            self._websocket = None
        self.connection_status = ConnectionStatus.DISCONNECTED

    async def close(self) -> None:
        """Disconnect and stop polling"""
        await self.disconnect()
        if self._poller is not None:
            self._poller.cancel()
            self._poller = None

    # ==================== HELPERS ====================

    def get_filtered_notifications(self, filter: str = "all") -> List[Dict[str, Any]]:
        if filter == "unread":
            return [n for n in self.notifications if not n.get("read_at")]
        if filter == "read":
            return [n for n in self.notifications if n.get("read_at")]
        if filter == "high":
            return [n for n in self.notifications if n.get("priority") in ("high", "critical")]
        if filter in ("medical", "administrative"):
            return [n for n in self.notifications if n.get("category") == filter]
        return list(self.notifications)

    def get_notifications_by_type(self, notification_type: str) -> List[Dict[str, Any]]:
        return [n for n in self.notifications if n.get("type") == notification_type]

    def get_notifications_by_priority(self, priority: str) -> List[Dict[str, Any]]:
        return [n for n in self.notifications if n.get("priority") == priority]

import json
import unittest
from datetime import timedelta

import httpx

from telehealth.app import app
from telehealth.client import ApiClient, ApiClientError, ConnectionStatus, NotificationCenter
from tests.helpers import reset_state, seed_notification, seed_user


def asgi_client(token="p1") -> ApiClient:
    return ApiClient("http://testserver", token=token, transport=httpx.ASGITransport(app=app))


def listing(*notifications):
    return {"success": True, "data": {"notifications": list(notifications)}}


class FakeConnection:
    """Async-iterable stand-in for a websockets client connection"""

    def __init__(self, messages, error=None):
        self.messages = messages
        self.error = error
        self.closed = False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for message in self.messages:
            yield message
        if self.error is not None:
            raise self.error

    async def close(self):
        self.closed = True


class TestApiClient(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        reset_state()
        await seed_user("p1")
        await seed_notification()

    async def test_requests_carry_the_bearer_token(self):
        async with asgi_client() as client:
            body = await client.get("/notifications/user")
        assert body["data"]["pagination"]["total"] == 1

    async def test_error_statuses_are_classified(self):
        async with asgi_client() as client:
            with self.assertRaises(ApiClientError) as ctx:
                await client.get("/notifications/missing")
        assert ctx.exception.status_code == 404
        assert ctx.exception.error_type == "not_found"
        assert ctx.exception.message == "Notification not found"

        async with asgi_client(token=None) as client:
            with self.assertRaises(ApiClientError) as ctx:
                await client.get("/notifications/user")
        assert ctx.exception.error_type == "auth"

    async def test_transport_failures_are_network_errors(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = ApiClient("http://api.test", transport=httpx.MockTransport(handler))
        with self.assertRaises(ApiClientError) as ctx:
            await client.get("/notifications/user")
        await client.close()
        assert ctx.exception.error_type == "network"
        assert ctx.exception.status_code is None

    def test_websocket_url(self):
        client = ApiClient("https://api.test/", token="abc 123")
        assert client.websocket_url("/ws/notifications") == "wss://api.test/ws/notifications?token=abc+123"
        assert ApiClient("http://localhost:8000").websocket_url("/ws") == "ws://localhost:8000/ws"


class TestNotificationCenterAgainstApi(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        reset_state()
        await seed_user("p1")
        self.first = await seed_notification(age=timedelta(hours=2))
        self.second = await seed_notification(title="Lab results ready", category="medical", priority="high",
                                              age=timedelta(hours=1))
        await seed_notification(title="Old news", age=timedelta(hours=3))
        self.client = asgi_client()
        self.center = NotificationCenter(self.client, retry_delay=0)

    async def asyncTearDown(self):
        await self.center.close()
        await self.client.close()

    async def test_fetch_and_mark_read(self):
        notifications = await self.center.fetch_notifications()
        assert [n["title"] for n in notifications] == ["Lab results ready", "Appointment tomorrow", "Old news"]
        assert self.center.unread_count == 3
        assert not self.center.is_loading

        assert await self.center.mark_as_read(self.second)
        assert self.center.unread_count == 2
        assert self.center.get_filtered_notifications("read")[0]["id"] == self.second

        assert await self.center.mark_all_as_read()
        assert self.center.unread_count == 0
        await self.center.refresh()
        assert self.center.unread_count == 0

    async def test_failed_mark_sets_error(self):
        await self.center.fetch_notifications()
        assert not await self.center.mark_as_read("missing")
        assert self.center.error == "Notification not found"
        self.center.clear_error()
        assert self.center.error is None

    async def test_preferences_and_test_notification(self):
        preferences = await self.center.load_preferences()
        assert preferences["channels"]["websocket"]["enabled"] is True

        updated = await self.center.update_preferences({"channels": {"email": {"enabled": False}}})
        assert updated["channels"]["email"]["enabled"] is False

        assert await self.center.update_preferences({"quiet_hours": {"start_time": "late"}}) is None
        assert self.center.error == "Invalid notification preferences"

        result = await self.center.send_test_notification()
        assert result["notification"]["type"] == "test_notification"
        assert result["delivery"]["channels"] == ["websocket"]


class TestNotificationCenterResilience(unittest.IsolatedAsyncioTestCase):
    async def test_retries_until_success(self):
        calls = []

        def handler(request):
            calls.append(request.url.path)
            if len(calls) < 3:
                return httpx.Response(503, json={"success": False, "message": "Service unavailable"})
            return httpx.Response(200, json=listing({"id": "n1", "title": "Hi", "read_at": None}))

        client = ApiClient("http://api.test", token="p1", transport=httpx.MockTransport(handler))
        center = NotificationCenter(client, max_retries=3, retry_delay=0)
        notifications = await center.fetch_notifications()
        await client.close()

        assert len(calls) == 3
        assert [n["id"] for n in notifications] == ["n1"]
        assert center.unread_count == 1
        assert center.error is None

    async def test_offline_after_network_failures(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("no route to host", request=request)

        client = ApiClient("http://api.test", token="p1", transport=httpx.MockTransport(handler))
        center = NotificationCenter(client, max_retries=2, retry_delay=0)
        assert await center.fetch_notifications() == []
        await client.close()

        assert len(calls) == 3
        assert center.connection_status == ConnectionStatus.OFFLINE
        assert center.error.startswith("Network error")

    async def test_socket_events_update_state(self):
        events = [
            {"type": "connected", "user_id": "p1"},
            {"type": "notification_received", "data": {"id": "n2", "title": "New", "priority": "critical", "read_at": None}},
            {"type": "notification_received", "data": {"id": "n2", "title": "New", "priority": "critical", "read_at": None}},
            {"type": "notification_read", "data": {"notification_id": "n1", "read_at": "2026-03-10T12:00:00+00:00"}},
        ]
        urls = []

        async def connect(url):
            urls.append(url)
            return FakeConnection([json.dumps(e) for e in events] + ["garbage"])

        client = ApiClient("http://api.test", token="p1")
        center = NotificationCenter(client, poll_interval=3600, connect=connect)
        center.notifications = [{"id": "n1", "title": "Old", "priority": "low", "read_at": None}]
        center.unread_count = 1

        assert await center.connect() == ConnectionStatus.CONNECTED
        await center._listener
        assert urls == ["ws://api.test/ws/notifications?token=p1"]
        assert center.connection_status == ConnectionStatus.DISCONNECTED
        assert [n["id"] for n in center.notifications] == ["n2", "n1"]
        assert center.unread_count == 1
        assert center.get_filtered_notifications("unread")[0]["id"] == "n2"
        assert center.get_filtered_notifications("high")[0]["id"] == "n2"
        assert center.get_notifications_by_priority("low")[0]["read_at"] == "2026-03-10T12:00:00+00:00"

        center.handle_event({"type": "all_notifications_read", "data": {"marked_count": 1}})
        assert center.unread_count == 0
        assert all(n["read_at"] for n in center.notifications)

        await center.close()
        await client.close()

    async def test_connection_reset_marks_the_socket_failed(self):
        event = {"type": "notification_received", "data": {"id": "n2", "title": "New", "read_at": None}}

        async def connect(url):
            return FakeConnection([json.dumps(event)], error=ConnectionResetError("reset by peer"))

        client = ApiClient("http://api.test", token="p1")
        center = NotificationCenter(client, poll_interval=3600, connect=connect)
        assert await center.connect() == ConnectionStatus.CONNECTED
        await center._listener
        assert center._listener.exception() is None
        assert center.connection_status == ConnectionStatus.FAILED
        assert center.unread_count == 1

        await center.close()
        await client.close()

    async def test_unreachable_socket_falls_back_to_polling(self):
        async def connect(url):
            raise OSError("connection refused")

        client = ApiClient("http://api.test", token="p1")
        center = NotificationCenter(client, poll_interval=3600, connect=connect)
        assert await center.connect() == ConnectionStatus.FAILED
        assert center._poller is not None and not center._poller.done()

        await center.close()
        await client.close()
        assert center._poller is None


if __name__ == "__main__":
    unittest.main()

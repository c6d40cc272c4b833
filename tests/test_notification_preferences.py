import unittest
from datetime import datetime, timezone

from telehealth.errors import ValidationFailedError
from telehealth.models.notification import DeliveryChannel, NotificationPreferences, QuietHours
from telehealth.services.base_store import NOTIFICATION_PREFERENCES, get_store
from telehealth.services.notification_preferences import (
    default_preferences,
    evaluate_delivery,
    is_emergency,
    is_in_quiet_hours,
    merge_preferences,
    notification_preferences_service,
    validate_preferences,
)
from tests.helpers import reset_state

MIDNIGHT_UTC = datetime(2026, 3, 10, 23, 30, tzinfo=timezone.utc)
NOON_UTC = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def preferences(**updates) -> NotificationPreferences:
    merged = merge_preferences(default_preferences().model_dump(mode="json"), updates)
    return NotificationPreferences(**merged)


class TestQuietHours(unittest.TestCase):
    def test_disabled_window_never_applies(self):
        assert not is_in_quiet_hours(QuietHours(enabled=False), MIDNIGHT_UTC)

    def test_window_wrapping_midnight(self):
        quiet = QuietHours(enabled=True, start_time="22:00", end_time="07:00")
        assert is_in_quiet_hours(quiet, MIDNIGHT_UTC)
        assert is_in_quiet_hours(quiet, datetime(2026, 3, 10, 7, 0, tzinfo=timezone.utc))
        assert not is_in_quiet_hours(quiet, NOON_UTC)

    def test_same_day_window(self):
        quiet = QuietHours(enabled=True, start_time="12:00", end_time="13:00")
        assert is_in_quiet_hours(quiet, NOON_UTC)
        assert not is_in_quiet_hours(quiet, MIDNIGHT_UTC)

    def test_window_uses_the_users_timezone(self):
        # 12:00 UTC is 17:30 in Kolkata
        quiet = QuietHours(enabled=True, start_time="17:00", end_time="18:00", timezone="Asia/Kolkata")
        assert is_in_quiet_hours(quiet, NOON_UTC)


class TestEvaluateDelivery(unittest.TestCase):
    def test_defaults_skip_sms_for_routine_notifications(self):
        decision = evaluate_delivery(default_preferences(), {"type": "welcome", "priority": "medium"}, NOON_UTC)
        assert decision.should_deliver
        assert decision.channels == [DeliveryChannel.WEBSOCKET, DeliveryChannel.EMAIL]
        assert decision.reason == "preferences_evaluated"
        assert decision.evaluations["sms"] == "sms_emergency_only"

    def test_emergency_reaches_sms(self):
        notification = {"type": "lab_result", "category": "medical", "priority": "critical"}
        assert is_emergency(notification)
        decision = evaluate_delivery(default_preferences(), notification, NOON_UTC)
        assert DeliveryChannel.SMS in decision.channels
        assert decision.reason == "critical_override"

    def test_quiet_hours_hold_routine_notifications(self):
        prefs = preferences(quiet_hours={"enabled": True})
        decision = evaluate_delivery(prefs, {"type": "welcome", "priority": "low"}, MIDNIGHT_UTC)
        assert not decision.should_deliver
        assert decision.reason == "quiet_hours"

        decision = evaluate_delivery(prefs, {"type": "alert", "priority": "emergency"}, MIDNIGHT_UTC)
        assert decision.should_deliver

    def test_category_priority_floor(self):
        prefs = preferences(categories={"administrative": {"priority": "high"}})
        decision = evaluate_delivery(prefs, {"type": "billing", "category": "administrative", "priority": "medium"}, NOON_UTC)
        assert not decision.should_deliver
        assert decision.reason == "no_channels_enabled"
        assert decision.evaluations["websocket"] == "priority_filtered"

    def test_type_and_category_channel_lists(self):
        prefs = preferences(notification_types={"appointment_reminder": {"channels": ["email"]}})
        decision = evaluate_delivery(prefs, {"type": "appointment_reminder", "category": "appointment"}, NOON_UTC)
        assert decision.channels == [DeliveryChannel.EMAIL]
        assert decision.evaluations["websocket"] == "channel_not_enabled_for_type"

        prefs = preferences(categories={"order": {"channels": ["websocket"]}})
        decision = evaluate_delivery(prefs, {"type": "order_shipped", "category": "order"}, NOON_UTC)
        assert decision.channels == [DeliveryChannel.WEBSOCKET]

    def test_critical_always_gets_websocket(self):
        prefs = preferences(channels={"websocket": {"enabled": False}, "email": {"enabled": False}, "sms": {"enabled": False}})
        decision = evaluate_delivery(prefs, {"type": "alert", "priority": "critical"}, NOON_UTC)
        assert decision.should_deliver
        assert decision.channels == [DeliveryChannel.WEBSOCKET]
        assert decision.reason == "critical_minimum_delivery"

    def test_disabled_type(self):
        prefs = preferences(notification_types={"promo": {"enabled": False}})
        decision = evaluate_delivery(prefs, {"type": "promo"}, NOON_UTC)
        assert not decision.should_deliver


class TestValidatePreferences(unittest.TestCase):
    def test_valid_payload(self):
        assert validate_preferences({
            "channels": {"email": {"enabled": False}},
            "categories": {"medical": {"priority": "critical", "channels": ["sms"]}},
            "quiet_hours": {"enabled": True, "start_time": "23:00", "timezone": "Europe/Berlin"},
        }) == []

    def test_collects_every_error(self):
        errors = validate_preferences({
            "channels": {"pager": {"enabled": True}, "email": {"enabled": "yes"}},
            "categories": {"medical": {"priority": "urgent"}},
            "notification_types": {"promo": {"channels": ["fax"]}},
            "quiet_hours": {"start_time": "25:00", "timezone": "Mars/Olympus"},
        })
        assert [e["field"] for e in errors] == [
            "channels.pager",
            "channels.email.enabled",
            "categories.medical.priority",
            "notification_types.promo.channels",
            "quiet_hours.start_time",
            "quiet_hours.timezone",
        ]

    def test_non_object(self):
        assert validate_preferences(["nope"])[0]["field"] == "preferences"


class TestPreferencesService(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        reset_state()

    async def test_defaults_created_on_first_read(self):
        prefs = await notification_preferences_service.get_preferences("p1")
        assert prefs.channels[DeliveryChannel.SMS].emergency_only
        stored = await get_store().get_document(NOTIFICATION_PREFERENCES, "p1")
        assert stored["channels"]["websocket"]["enabled"] is True

    async def test_update_merges_and_reset_restores(self):
        await notification_preferences_service.update_preferences("p1", {"channels": {"email": {"enabled": False}}})
        prefs = await notification_preferences_service.get_preferences("p1")
        assert prefs.channels[DeliveryChannel.EMAIL].enabled is False
        assert prefs.channels[DeliveryChannel.WEBSOCKET].enabled is True

        prefs = await notification_preferences_service.reset_preferences("p1")
        assert prefs.channels[DeliveryChannel.EMAIL].enabled is True

    async def test_invalid_update_is_rejected(self):
        with self.assertRaises(ValidationFailedError) as ctx:
            await notification_preferences_service.update_preferences("p1", {"quiet_hours": {"end_time": "7am"}})
        assert ctx.exception.errors[0]["field"] == "quiet_hours.end_time"


if __name__ == "__main__":
    unittest.main()

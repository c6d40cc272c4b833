import logging
import re
from datetime import datetime
from typing import Optional, Dict, Any, List, Tuple

import pytz

from telehealth.errors import ValidationFailedError
from telehealth.models.notification import (
    CategoryPreference,
    ChannelPreference,
    DeliveryChannel,
    DeliveryDecision,
    NotificationCategory,
    NotificationPreferences,
    NotificationPriority,
    PRIORITY_LEVELS,
    QuietHours,
)
from .base_store import BaseStore, NOTIFICATION_PREFERENCES, get_store, utcnow

logger = logging.getLogger(__name__)

TIME_PATTERN = re.compile(r"^([01]?[0-9]|2[0-3]):[0-5][0-9]$")
VALID_CHANNELS = [c.value for c in DeliveryChannel]
VALID_CATEGORIES = [c.value for c in NotificationCategory]

# Minimum priority level a category floor lets through
PRIORITY_FLOORS = {"all": 1, "high": 3, "critical": 4}


def default_preferences() -> NotificationPreferences:
    return NotificationPreferences(
        channels={
            DeliveryChannel.WEBSOCKET: ChannelPreference(enabled=True),
            DeliveryChannel.EMAIL: ChannelPreference(enabled=True),
            DeliveryChannel.SMS: ChannelPreference(enabled=True, emergency_only=True),
        },
        categories={category: CategoryPreference() for category in NotificationCategory},
        quiet_hours=QuietHours(),
    )


# ==================== VALIDATION ====================

def _error(field: str, message: str) -> Dict[str, str]:
    return {"field": field, "message": message}


def _check_channel_list(field: str, channels: Any, errors: List[Dict[str, str]]) -> None:
    if not isinstance(channels, list):
        errors.append(_error(field, "Channels must be a list"))
        return
    for channel in channels:
        if channel not in VALID_CHANNELS:
            errors.append(_error(field, f"Invalid channel {channel}. Valid channels are: {', '.join(VALID_CHANNELS)}"))


def validate_preferences(data: Any) -> List[Dict[str, str]]:
    """Collect every problem with a preferences payload"""
    if not isinstance(data, dict):
        return [_error("preferences", "Preferences must be a valid object")]

    errors: List[Dict[str, str]] = []

    channels = data.get("channels")
    if channels is not None:
        if not isinstance(channels, dict):
            errors.append(_error("channels", "Channels must be an object"))
        else:
            for channel, prefs in channels.items():
                field = f"channels.{channel}"
                if channel not in VALID_CHANNELS:
                    errors.append(_error(field, f"Invalid channel: {channel}. Valid channels are: {', '.join(VALID_CHANNELS)}"))
                    continue
                if not isinstance(prefs, dict):
                    errors.append(_error(field, f"Channel {channel} preferences must be an object"))
                    continue
                for flag in ("enabled", "emergency_only"):
                    if flag in prefs and not isinstance(prefs[flag], bool):
                        errors.append(_error(f"{field}.{flag}", f"Channel {channel} {flag} setting must be a boolean"))

    categories = data.get("categories")
    if categories is not None:
        if not isinstance(categories, dict):
            errors.append(_error("categories", "Categories must be an object"))
        else:
            for category, prefs in categories.items():
                field = f"categories.{category}"
                if category not in VALID_CATEGORIES:
                    errors.append(_error(field, f"Invalid category: {category}. Valid categories are: {', '.join(VALID_CATEGORIES)}"))
                    continue
                if not isinstance(prefs, dict):
                    errors.append(_error(field, f"Category {category} preferences must be an object"))
                    continue
                if "enabled" in prefs and not isinstance(prefs["enabled"], bool):
                    errors.append(_error(f"{field}.enabled", f"Category {category} enabled setting must be a boolean"))
                if "priority" in prefs and prefs["priority"] not in PRIORITY_FLOORS:
                    errors.append(_error(
                        f"{field}.priority",
                        f"Invalid priority {prefs['priority']} in category {category}. Valid priorities are: all, high, critical",
                    ))
                if "channels" in prefs:
                    _check_channel_list(f"{field}.channels", prefs["channels"], errors)

    types = data.get("notification_types")
    if types is not None:
        if not isinstance(types, dict):
            errors.append(_error("notification_types", "Notification types must be an object"))
        else:
            for type_name, prefs in types.items():
                field = f"notification_types.{type_name}"
                if not isinstance(prefs, dict):
                    errors.append(_error(field, f"Notification type {type_name} preferences must be an object"))
                    continue
                if "enabled" in prefs and not isinstance(prefs["enabled"], bool):
                    errors.append(_error(f"{field}.enabled", f"Notification type {type_name} enabled setting must be a boolean"))
                if "channels" in prefs:
                    _check_channel_list(f"{field}.channels", prefs["channels"], errors)

    quiet = data.get("quiet_hours")
    if quiet is not None:
        if not isinstance(quiet, dict):
            errors.append(_error("quiet_hours", "Quiet hours must be an object"))
        else:
            if "enabled" in quiet and not isinstance(quiet["enabled"], bool):
                errors.append(_error("quiet_hours.enabled", "Quiet hours enabled setting must be a boolean"))
            for key in ("start_time", "end_time"):
                value = quiet.get(key)
                if value is not None and not (isinstance(value, str) and TIME_PATTERN.match(value)):
                    errors.append(_error(f"quiet_hours.{key}", "Invalid time format. Use HH:MM format (e.g., 22:00)"))
            tz = quiet.get("timezone")
            if tz is not None and (not isinstance(tz, str) or tz not in pytz.all_timezones_set):
                errors.append(_error("quiet_hours.timezone", f"Unknown timezone: {tz}"))

    return errors


def merge_preferences(current: Dict[str, Any], updates: Dict[str, Any]) -> Dict[str, Any]:
    """Two-level merge: each channel / category / type entry merges field by field"""
    merged = dict(current)
    for key in ("channels", "categories", "notification_types"):
        if key not in updates:
            continue
        section = dict(merged.get(key) or {})
        for name, prefs in updates[key].items():
            section[name] = {**(section.get(name) or {}), **prefs}
        merged[key] = section
    if "quiet_hours" in updates:
        merged["quiet_hours"] = {**(merged.get("quiet_hours") or {}), **updates["quiet_hours"]}
    return merged


# ==================== DELIVERY EVALUATION ====================

def _minutes(value: str) -> int:
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def is_in_quiet_hours(quiet_hours: QuietHours, now: Optional[datetime] = None) -> bool:
    """Whether `now` falls inside the quiet window; windows may wrap midnight"""
    if not quiet_hours.enabled:
        return False

    tz = pytz.timezone(quiet_hours.timezone)
    local = (now or utcnow()).astimezone(tz)
    current = local.hour * 60 + local.minute
    start = _minutes(quiet_hours.start_time)
    end = _minutes(quiet_hours.end_time)

    if start > end:
        return current >= start or current <= end
    return start <= current <= end


def _priority(notification: Dict[str, Any]) -> NotificationPriority:
    return NotificationPriority(notification.get("priority") or NotificationPriority.MEDIUM)


def is_priority_allowed(floor: str, priority: NotificationPriority) -> bool:
    return PRIORITY_LEVELS[priority] >= PRIORITY_FLOORS.get(floor, 1)


def is_critical(notification: Dict[str, Any]) -> bool:
    return _priority(notification) in (NotificationPriority.CRITICAL, NotificationPriority.EMERGENCY)


def is_emergency(notification: Dict[str, Any]) -> bool:
    priority = _priority(notification)
    if priority == NotificationPriority.EMERGENCY:
        return True
    return notification.get("category") == NotificationCategory.MEDICAL.value and priority == NotificationPriority.CRITICAL


def evaluate_channel(
    preferences: NotificationPreferences,
    notification: Dict[str, Any],
    channel: DeliveryChannel,
) -> Tuple[bool, str]:
    channel_prefs = preferences.channels.get(channel)
    if not channel_prefs or not channel_prefs.enabled:
        return False, "channel_disabled"

    type_prefs = preferences.notification_types.get(notification.get("type"))
    if type_prefs:
        if not type_prefs.enabled:
            return False, "notification_type_disabled"
        if type_prefs.channels and channel not in type_prefs.channels:
            return False, "channel_not_enabled_for_type"

    category = notification.get("category") or NotificationCategory.SYSTEM.value
    category_prefs = preferences.categories.get(NotificationCategory(category))
    if category_prefs:
        if not category_prefs.enabled:
            return False, "category_disabled"
        if not is_priority_allowed(category_prefs.priority, _priority(notification)):
            return False, "priority_filtered"
        if category_prefs.channels and channel not in category_prefs.channels:
            return False, "channel_not_enabled_for_category"

    if channel == DeliveryChannel.SMS and channel_prefs.emergency_only and not is_emergency(notification):
        return False, "sms_emergency_only"

    return True, "all_checks_passed"


def evaluate_delivery(
    preferences: NotificationPreferences,
    notification: Dict[str, Any],
    now: Optional[datetime] = None,
) -> DeliveryDecision:
    """
    Decide whether and where a notification should be delivered.

    Critical and emergency notifications ignore quiet hours and always reach
    at least the websocket channel.
    """
    critical = is_critical(notification)

    if not critical and is_in_quiet_hours(preferences.quiet_hours, now):
        return DeliveryDecision(should_deliver=False, channels=[], reason="quiet_hours")

    channels = []
    evaluations = {}
    for channel in DeliveryChannel:
        use, reason = evaluate_channel(preferences, notification, channel)
        evaluations[channel.value] = reason
        if use:
            channels.append(channel)

    if not channels:
        if critical:
            return DeliveryDecision(
                should_deliver=True,
                channels=[DeliveryChannel.WEBSOCKET],
                reason="critical_minimum_delivery",
                evaluations=evaluations,
            )
        return DeliveryDecision(should_deliver=False, reason="no_channels_enabled", evaluations=evaluations)

    return DeliveryDecision(
        should_deliver=True,
        channels=channels,
        reason="critical_override" if critical else "preferences_evaluated",
        evaluations=evaluations,
    )


class NotificationPreferencesService:
    """Stored per-user notification preferences"""

    def __init__(self, store: Optional[BaseStore] = None):
        self._store = store

    @property
    def store(self) -> BaseStore:
        return self._store or get_store()

    async def get_preferences(self, user_id: str) -> NotificationPreferences:
        """Stored preferences, creating the defaults on first access"""
        doc = await self.store.get_document(NOTIFICATION_PREFERENCES, user_id)
        if doc:
            doc.pop("id", None)
            return NotificationPreferences(**doc)

        preferences = default_preferences()
        preferences.updated_at = utcnow()
        await self.store.set_document(
            NOTIFICATION_PREFERENCES, user_id, preferences.model_dump(mode="json"), merge=False
        )
        logger.info("Created default notification preferences for %s", user_id)
        return preferences

    async def update_preferences(self, user_id: str, updates: Dict[str, Any]) -> NotificationPreferences:
        errors = validate_preferences(updates)
        if errors:
            raise ValidationFailedError("Invalid notification preferences", errors)

        current = await self.get_preferences(user_id)
        merged = merge_preferences(current.model_dump(mode="json"), updates)
        preferences = NotificationPreferences(**merged)
        preferences.updated_at = utcnow()

        await self.store.set_document(
            NOTIFICATION_PREFERENCES, user_id, preferences.model_dump(mode="json"), merge=False
        )
        return preferences

    async def reset_preferences(self, user_id: str) -> NotificationPreferences:
        preferences = default_preferences()
        preferences.updated_at = utcnow()
        await self.store.set_document(
            NOTIFICATION_PREFERENCES, user_id, preferences.model_dump(mode="json"), merge=False
        )
        return preferences

    async def evaluate(self, user_id: str, notification: Dict[str, Any]) -> DeliveryDecision:
        preferences = await self.get_preferences(user_id)
        return evaluate_delivery(preferences, notification)


# Singleton instance
notification_preferences_service = NotificationPreferencesService()

import logging
import math
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any, List

from telehealth.errors import ApiError, NotFoundError, ValidationFailedError
from telehealth.models.notification import (
    BroadcastRequest,
    BulkNotificationRequest,
    DeliveryChannel,
    NotificationCreate,
    NotificationPriority,
    NotificationPublic,
)
from .base_store import BaseStore, NOTIFICATIONS, USERS, get_store, newest_first, utcnow
from .firebase_auth_service import ROLES
from .notification_hub import NotificationHub, notification_hub
from .notification_preferences import NotificationPreferencesService, notification_preferences_service

logger = logging.getLogger(__name__)

STATS_PERIODS = {
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "90d": timedelta(days=90),
}

# Notification type -> sidebar badge
BADGE_TYPES = {
    "prescription_uploaded": "prescription-requests",
    "prescription_ready": "prescription-requests",
    "appointment_reminder": "appointments",
    "appointment_scheduled": "appointments",
    "order_confirmed": "order-tracking",
    "order_delivered": "order-tracking",
    "order_out_for_delivery": "order-tracking",
}


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_expired(notification: Dict[str, Any], now: Optional[datetime] = None) -> bool:
    expires_at = _aware(notification.get("expires_at"))
    return expires_at is not None and expires_at <= (now or utcnow())


def to_public(notification: Dict[str, Any]) -> NotificationPublic:
    return NotificationPublic(
        is_read=notification.get("read_at") is not None,
        **{k: v for k, v in notification.items() if k in NotificationPublic.model_fields and k != "is_read"},
    )


def relevance_score(notification: Dict[str, Any], query: str, now: Optional[datetime] = None) -> int:
    """Title 10, message 5, type 2, urgent priority 3, recency up to 2"""
    needle = query.lower()
    score = 0
    if needle in (notification.get("title") or "").lower():
        score += 10
    if needle in (notification.get("message") or "").lower():
        score += 5
    if needle in (notification.get("type") or "").lower():
        score += 2
    if notification.get("priority") in (NotificationPriority.CRITICAL.value, NotificationPriority.EMERGENCY.value):
        score += 3

    age = (now or utcnow()) - _aware(notification["created_at"])
    if age < timedelta(days=1):
        score += 2
    elif age < timedelta(days=7):
        score += 1
    return score


def _send_summary(results: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {
        "recipient_count": len(results),
        "notification_ids": [r["notification"].id for r in results],
        "delivered_count": sum(1 for r in results if r["delivery"].should_deliver and r["delivery"].channels),
    }


class NotificationService:
    """Per-user notification records: create, list, read state and analytics"""

    def __init__(
        self,
        store: Optional[BaseStore] = None,
        preferences: Optional[NotificationPreferencesService] = None,
        hub: Optional[NotificationHub] = None,
    ):
        self._store = store
        self.preferences = preferences or notification_preferences_service
        self.hub = hub or notification_hub

    @property
    def store(self) -> BaseStore:
        return self._store or get_store()

    async def _visible(self, user_id: str) -> List[Dict[str, Any]]:
        """The user's notifications, newest first, without dismissed or expired ones"""
        docs = newest_first(await self.store.query(NOTIFICATIONS, [("user_id", "==", user_id)]), "created_at")
        now = utcnow()
        return [d for d in docs if not d.get("dismissed") and not is_expired(d, now)]

    async def _get_owned(self, user_id: str, notification_id: str) -> Dict[str, Any]:
        """The caller's notification; dismissed ones count as deleted"""
        notification = await self.store.get_document(NOTIFICATIONS, notification_id)
        if not notification or notification.get("user_id") != user_id or notification.get("dismissed"):
            raise NotFoundError("Notification not found")
        return notification

    # ==================== CREATE ====================

    async def create_notification(
        self,
        payload: NotificationCreate,
        requested_channels: Optional[List[DeliveryChannel]] = None,
    ) -> Dict[str, Any]:
        """
        Store a notification and deliver it on the channels the recipient allows.

        The record is always stored so it shows up in the recipient's list;
        the preference decision only controls the push channels.
        """
        record = payload.model_dump(mode="python")
        record["category"] = payload.category.value
        record["priority"] = payload.priority.value
        record["expires_at"] = _aware(payload.expires_at)

        decision = await self.preferences.evaluate(payload.user_id, record)
        channels = decision.channels
        if requested_channels is not None:
            channels = [c for c in channels if c in requested_channels]

        record.update({
            "created_at": utcnow(),
            "read_at": None,
            "action_taken": None,
            "dismissed": False,
            "delivery_channels": [c.value for c in channels],
        })
        notification_id = await self.store.add_document(NOTIFICATIONS, record)
        if not notification_id:
            raise ApiError("Failed to create notification")
        record["id"] = notification_id

        public = to_public(record)
        delivered = 0
        if decision.should_deliver and DeliveryChannel.WEBSOCKET in channels:
            delivered = await self.hub.send_to_user(
                payload.user_id, "notification_received", public.model_dump(mode="json")
            )
        for channel in channels:
            if channel != DeliveryChannel.WEBSOCKET:
                logger.info("Notification %s queued for %s delivery to %s", notification_id, channel.value, payload.user_id)

        logger.info(
            "Created notification %s for %s (%s, sockets=%d)",
            notification_id, payload.user_id, decision.reason, delivered,
        )
        return {
            "notification": public,
            "delivery": decision.model_copy(update={"channels": channels}),
        }

    async def send_bulk(self, request: BulkNotificationRequest) -> Dict[str, Any]:
        """Admin send to an explicit recipient list; every recipient must exist"""
        if not request.recipients:
            raise ValidationFailedError("Recipients array is required and cannot be empty")
        for recipient in request.recipients:
            if not await self.store.get_user(recipient.user_id):
                raise ValidationFailedError(f"User not found: {recipient.user_id}")

        results = [
            await self.create_notification(
                request.for_user(recipient.user_id), recipient.channels or request.channels
            )
            for recipient in request.recipients
        ]
        return _send_summary(results)

    async def broadcast(self, request: BroadcastRequest) -> Dict[str, Any]:
        """Admin send to every user holding a role"""
        if request.target_role not in ROLES:
            raise ValidationFailedError("Invalid target role")
        excluded = set(request.exclude_user_ids)
        users = await self.store.query(USERS, [("role", "==", request.target_role)])
        user_ids = [u["id"] for u in users if u["id"] not in excluded]
        if not user_ids:
            raise NotFoundError(f"No users found with role: {request.target_role}")

        results = [
            await self.create_notification(request.for_user(user_id), request.channels)
            for user_id in user_ids
        ]
        return {"target_role": request.target_role, **_send_summary(results)}

    # ==================== READ ====================

    async def list_notifications(
        self,
        user_id: str,
        types: Optional[List[str]] = None,
        categories: Optional[List[str]] = None,
        priorities: Optional[List[str]] = None,
        unread_only: bool = False,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Dict[str, Any]:
        visible = await self._visible(user_id)
        start_date = _aware(start_date)
        end_date = _aware(end_date)
        needle = search.lower() if search else None

        def matches(n: Dict[str, Any]) -> bool:
            if types and n.get("type") not in types:
                return False
            if categories and n.get("category") not in categories:
                return False
            if priorities and n.get("priority") not in priorities:
                return False
            if unread_only and n.get("read_at") is not None:
                return False
            created = _aware(n["created_at"])
            if start_date and created < start_date:
                return False
            if end_date and created > end_date:
                return False
            if needle and needle not in (n.get("title") or "").lower() and needle not in (n.get("message") or "").lower():
                return False
            return True

        filtered = [n for n in visible if matches(n)]
        total = len(filtered)
        start = (page - 1) * limit

        return {
            "notifications": [to_public(n) for n in filtered[start:start + limit]],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": math.ceil(total / limit) if limit else 0,
            },
            "summary": {
                "unread_count": sum(1 for n in visible if n.get("read_at") is None),
                "total_count": total,
                "priority_stats": dict(Counter(n.get("priority") for n in visible)),
            },
        }

    async def get_notification(self, user_id: str, notification_id: str) -> NotificationPublic:
        return to_public(await self._get_owned(user_id, notification_id))

    # ==================== READ STATE ====================

    async def mark_as_read(self, user_id: str, notification_id: str) -> Dict[str, Any]:
        """Idempotent: read_at is only set the first time"""
        notification = await self._get_owned(user_id, notification_id)
        if notification.get("read_at") is not None:
            return {"id": notification_id, "read_at": notification["read_at"], "already_read": True}

        read_at = utcnow()
        await self.store.update_document(NOTIFICATIONS, notification_id, {"read_at": read_at})
        await self.hub.send_to_user(user_id, "notification_read", {
            "notification_id": notification_id,
            "read_at": read_at.isoformat(),
        })
        return {"id": notification_id, "read_at": read_at, "already_read": False}

    async def mark_many_as_read(self, user_id: str, notification_ids: List[str]) -> List[Dict[str, Any]]:
        results = []
        for notification_id in notification_ids:
            try:
                outcome = await self.mark_as_read(user_id, notification_id)
            except NotFoundError:
                results.append({"notification_id": notification_id, "success": False, "message": "Notification not found"})
                continue
            entry = {"notification_id": notification_id, "success": True, "read_at": outcome["read_at"]}
            if outcome["already_read"]:
                entry["message"] = "Already read"
            results.append(entry)
        return results

    async def mark_all_as_read(self, user_id: str) -> int:
        read_at = utcnow()
        marked = 0
        for notification in await self._visible(user_id):
            if notification.get("read_at") is None:
                if await self.store.update_document(NOTIFICATIONS, notification["id"], {"read_at": read_at}):
                    marked += 1
        await self.hub.send_to_user(user_id, "all_notifications_read", {
            "marked_count": marked,
            "read_at": read_at.isoformat(),
        })
        return marked

    async def record_action(
        self,
        user_id: str,
        notification_id: str,
        action: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Record the action taken; taking an action also reads the notification"""
        notification = await self._get_owned(user_id, notification_id)
        now = utcnow()
        action_taken = {"action": action, "taken_at": now, "metadata": metadata}
        updates: Dict[str, Any] = {"action_taken": action_taken}
        if notification.get("read_at") is None:
            updates["read_at"] = now
        await self.store.update_document(NOTIFICATIONS, notification_id, updates)
        return action_taken

    async def dismiss(self, user_id: str, notification_id: str) -> None:
        """Soft delete"""
        await self.record_action(user_id, notification_id, "dismissed")
        await self.store.update_document(NOTIFICATIONS, notification_id, {"dismissed": True})

    # ==================== ANALYTICS ====================

    async def stats(self, user_id: str, period: str = "7d") -> Dict[str, Any]:
        window = STATS_PERIODS.get(period, STATS_PERIODS["7d"])
        end_date = utcnow()
        start_date = end_date - window

        docs = await self.store.query(NOTIFICATIONS, [("user_id", "==", user_id)])
        in_period = [d for d in docs if start_date <= _aware(d["created_at"]) <= end_date]

        total = len(in_period)
        unread = sum(1 for d in in_period if d.get("read_at") is None)
        actioned = sum(1 for d in in_period if d.get("action_taken"))

        categories: Dict[str, Dict[str, int]] = {}
        for d in in_period:
            bucket = categories.setdefault(d.get("category"), {"total": 0, "unread": 0, "read": 0})
            bucket["total"] += 1
            bucket["unread" if d.get("read_at") is None else "read"] += 1

        daily = Counter(_aware(d["created_at"]).strftime("%Y-%m-%d") for d in in_period)

        return {
            "period": period,
            "date_range": {"start_date": start_date, "end_date": end_date},
            "summary": {
                "total": total,
                "unread": unread,
                "read": total - unread,
                "actioned": actioned,
                "read_rate": round((total - unread) / total * 100, 1) if total else 0,
                "action_rate": round(actioned / total * 100, 1) if total else 0,
            },
            "category_breakdown": categories,
            "priority_breakdown": dict(Counter(d.get("priority") for d in in_period)),
            "daily_activity": [{"date": day, "count": daily[day]} for day in sorted(daily)],
        }

    async def search(self, user_id: str, query: str, page: int = 1, limit: int = 20) -> Dict[str, Any]:
        needle = query.lower()
        now = utcnow()
        hits = []
        for n in await self._visible(user_id):
            haystacks = (n.get("title") or "", n.get("message") or "", n.get("type") or "")
            if any(needle in h.lower() for h in haystacks):
                hits.append((relevance_score(n, query, now), n))

        # Stable sort keeps newest first within equal scores
        hits.sort(key=lambda hit: hit[0], reverse=True)
        total = len(hits)
        start = (page - 1) * limit
        results = []
        for score, n in hits[start:start + limit]:
            item = to_public(n).model_dump()
            item["relevance_score"] = score
            results.append(item)

        return {
            "query": query,
            "notifications": results,
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": math.ceil(total / limit) if limit else 0,
            },
        }

    async def unread_counts(self, user_id: str) -> Dict[str, int]:
        """Unread badge counts for the sidebar"""
        unread = [n for n in await self._visible(user_id) if n.get("read_at") is None]
        counts = {
            "notifications": len(unread),
            "prescription-requests": 0,
            "appointments": 0,
            "reminders": 0,
            "order-tracking": 0,
        }
        for n in unread:
            notification_type = n.get("type") or ""
            badge = BADGE_TYPES.get(notification_type)
            if badge is None and notification_type.endswith("reminder"):
                badge = "reminders"
            if badge:
                counts[badge] += 1
        return counts


# Singleton instance
notification_service = NotificationService()

"""
Usage analytics for the healthcare assistant.

Everything is computed from the stored chat exchanges and feedback records,
filtered per user with single-field queries and aggregated in Python.
"""
import logging
import re
from collections import Counter
from datetime import datetime, timedelta
from typing import Optional, Dict, Any, List

from telehealth.agent.chatbot_ai import chatbot_ai
from telehealth.errors import ApiError
from telehealth.models.chatbot import ChatFeedbackRequest, MessageType
from .base_store import BaseStore, CHAT_FEEDBACK, CHAT_MESSAGES, get_store, utcnow
from .notification_hub import NotificationHub, notification_hub

logger = logging.getLogger(__name__)

USAGE_TIMEFRAMES = {
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "90d": timedelta(days=90),
}

# period -> number of buckets reported
TREND_PERIODS = {"daily": 14, "weekly": 12, "monthly": 6}

POSITIVE_WORDS = {"good", "great", "excellent", "amazing", "helpful"}
NEGATIVE_WORDS = {"bad", "terrible", "awful", "hate", "useless"}

HIGH_ENGAGEMENT_REQUESTS = 100
LOW_ENGAGEMENT_REQUESTS = 10


def feedback_sentiment(comment: str) -> Dict[str, Any]:
    """Word-list sentiment: positive or negative at 0.8 confidence, else neutral at 0.5"""
    words = re.findall(r"[a-z']+", (comment or "").lower())
    score = sum(1 for w in words if w in POSITIVE_WORDS) - sum(1 for w in words if w in NEGATIVE_WORDS)
    if score > 0:
        return {"label": "positive", "confidence": 0.8}
    if score < 0:
        return {"label": "negative", "confidence": 0.8}
    return {"label": "neutral", "confidence": 0.5}


def _rating(message: Dict[str, Any]) -> Optional[int]:
    entry = message.get("rating")
    return entry.get("rating") if isinstance(entry, dict) else None


def _average(values: List[float]) -> Optional[float]:
    return round(sum(values) / len(values), 2) if values else None


def bucket_label(timestamp: datetime, period: str) -> str:
    if period == "daily":
        return timestamp.strftime("%Y-%m-%d")
    if period == "weekly":
        return timestamp.strftime("%G-W%V")
    return timestamp.strftime("%Y-%m")


def recent_buckets(period: str, now: datetime) -> List[str]:
    """Labels of the most recent buckets for a period, oldest first"""
    count = TREND_PERIODS[period]
    if period == "monthly":
        year, month = now.year, now.month
        labels = []
        for _ in range(count):
            labels.append(f"{year:04d}-{month:02d}")
            month -= 1
            if month == 0:
                year, month = year - 1, 12
        return labels[::-1]
    step = timedelta(days=1) if period == "daily" else timedelta(weeks=1)
    return [bucket_label(now - step * i, period) for i in range(count - 1, -1, -1)]


def usage_prediction(counts: List[int]) -> Dict[str, Any]:
    """Compare the latest bucket with the average of the ones before it"""
    earlier = [c for c in counts[:-1] if c]
    if not counts or not earlier:
        return {"type": "usage_prediction", "confidence": 0.5, "trend": "insufficient_data",
                "prediction": "Not enough history to predict usage"}
    baseline = sum(earlier) / len(earlier)
    latest = counts[-1]
    if latest > baseline * 1.2:
        trend, prediction = "rising", "Usage is likely to keep increasing"
    elif latest < baseline * 0.8:
        trend, prediction = "falling", "Usage is likely to keep decreasing"
    else:
        trend, prediction = "steady", "Steady usage expected"
    return {"type": "usage_prediction", "confidence": 0.8, "trend": trend, "prediction": prediction}


class ChatAnalyticsService:
    def __init__(self, store: Optional[BaseStore] = None, hub: Optional[NotificationHub] = None):
        self._store = store
        self.hub = hub or notification_hub

    @property
    def store(self) -> BaseStore:
        return self._store or get_store()

    async def _user_messages(self, user_id: str, since: Optional[datetime] = None) -> List[Dict[str, Any]]:
        messages = await self.store.query(CHAT_MESSAGES, [("user_id", "==", user_id)])
        if since is not None:
            messages = [m for m in messages if m.get("timestamp") and m["timestamp"] >= since]
        return messages

    # ==================== USAGE ====================

    async def usage(self, user_id: str, timeframe: str = "7d") -> Dict[str, Any]:
        since = utcnow() - USAGE_TIMEFRAMES.get(timeframe, USAGE_TIMEFRAMES["7d"])
        messages = await self._user_messages(user_id, since)

        hourly = Counter(m["timestamp"].hour for m in messages)
        ratings = [r for r in (_rating(m) for m in messages) if r is not None]
        feedback = await self.store.query(CHAT_FEEDBACK, [("user_id", "==", user_id)])

        analytics = {
            "total_requests": len(messages),
            "feature_usage": dict(Counter(m.get("message_type") for m in messages)),
            "urgency_distribution": dict(Counter(m.get("urgency") for m in messages)),
            "hourly_distribution": {hour: hourly.get(hour, 0) for hour in range(24)},
            "daily_distribution": dict(Counter(m["timestamp"].strftime("%A") for m in messages)),
            "peak_usage_hours": [hour for hour, _ in hourly.most_common(3)],
            "average_rating": _average(ratings),
            "rated_responses": len(ratings),
            "feedback_count": len(feedback),
            "feedback_rating": _average([f["rating"] for f in feedback]),
            "last_activity": max((m["timestamp"] for m in messages), default=None),
        }
        analytics["insights"] = self._usage_insights(analytics)
        analytics["recommendations"] = self._usage_recommendations(analytics)
        return analytics

    @staticmethod
    def _usage_insights(analytics: Dict[str, Any]) -> List[Dict[str, str]]:
        insights = []
        if analytics["total_requests"] > HIGH_ENGAGEMENT_REQUESTS:
            insights.append({
                "type": "engagement",
                "level": "high",
                "message": "You're highly engaged with the health platform!",
            })
        if analytics["urgency_distribution"].get("emergency"):
            insights.append({
                "type": "safety",
                "level": "important",
                "message": "Some conversations were flagged as emergencies. Please follow up with a doctor.",
            })
        return insights

    @staticmethod
    def _usage_recommendations(analytics: Dict[str, Any]) -> List[Dict[str, str]]:
        recommendations = []
        features = analytics["feature_usage"]
        if analytics["total_requests"] < LOW_ENGAGEMENT_REQUESTS:
            recommendations.append({
                "title": "Explore More Features",
                "description": "Try our health education library and personalized health tips.",
                "priority": "medium",
            })
        if features.get(MessageType.SYMPTOM_ANALYSIS.value) and not features.get(MessageType.DOCTOR_RECOMMENDATION.value):
            recommendations.append({
                "title": "Find a Specialist",
                "description": "Get doctor recommendations that match your symptom analyses.",
                "priority": "high",
            })
        return recommendations

    # ==================== TRENDS ====================

    async def trends(self, user_id: str, period: str = "monthly") -> Dict[str, Any]:
        if period not in TREND_PERIODS:
            period = "monthly"
        labels = recent_buckets(period, utcnow())
        buckets: Dict[str, List[Dict[str, Any]]] = {label: [] for label in labels}
        for message in await self._user_messages(user_id):
            label = bucket_label(message["timestamp"], period)
            if label in buckets:
                buckets[label].append(message)

        usage = [{"period": label, "messages": len(buckets[label])} for label in labels]
        satisfaction = [
            {"period": label, "average_rating": _average([r for r in map(_rating, buckets[label]) if r is not None])}
            for label in labels
        ]
        engagement = [
            {"period": label, "features_used": len({m.get("message_type") for m in buckets[label]})}
            for label in labels
        ]
        prediction = usage_prediction([u["messages"] for u in usage])

        return {
            "historical": {"usage": usage, "engagement": engagement, "satisfaction": satisfaction},
            "predictions": [prediction],
            "insights": self._trend_insights(prediction),
            "recommendations": self._trend_recommendations(prediction),
        }

    @staticmethod
    def _trend_insights(prediction: Dict[str, Any]) -> List[Dict[str, str]]:
        messages = {
            "rising": "Your health engagement is improving",
            "falling": "You've been using the assistant less than usual",
            "steady": "Your health engagement is consistent",
        }
        message = messages.get(prediction["trend"])
        return [{"type": "trend_analysis", "message": message}] if message else []

    @staticmethod
    def _trend_recommendations(prediction: Dict[str, Any]) -> List[Dict[str, str]]:
        if prediction["trend"] == "falling":
            return [{
                "title": "Check In With Your Health",
                "description": "A quick symptom check or health tip can help you stay on track.",
                "priority": "medium",
            }]
        return [{
            "title": "Continue Your Progress",
            "description": "Keep up the great work with your health journey",
            "priority": "low",
        }]

    # ==================== PERFORMANCE ====================

    async def performance(self, active_conversations: int) -> Dict[str, Any]:
        """System-wide counters for admins"""
        now = utcnow()
        connected = await chatbot_ai.test_connection()
        metrics = {
            "total_messages": await self.store.count(CHAT_MESSAGES),
            "messages_last_hour": await self.store.count(CHAT_MESSAGES, [("timestamp", ">=", now - timedelta(hours=1))]),
            "messages_last_24h": await self.store.count(CHAT_MESSAGES, [("timestamp", ">=", now - timedelta(days=1))]),
            "emergency_messages": await self.store.count(CHAT_MESSAGES, [("message_type", "==", MessageType.EMERGENCY.value)]),
            "feedback_received": await self.store.count(CHAT_FEEDBACK),
            "active_conversations": active_conversations,
            "connected_sockets": self.hub.connection_count,
        }

        if connected:
            insights = [{"type": "system_performance", "level": "info",
                         "message": "System is performing within normal parameters"}]
        else:
            insights = [{"type": "ai_connectivity", "level": "warning",
                         "message": "AI provider is unreachable; replies are using fallbacks"}]
            logger.warning("Performance check found the AI provider unreachable")

        return {
            "ai_connected": connected,
            "real_time_metrics": metrics,
            "insights": insights,
            "health_status": "healthy" if connected else "warning",
        }

    # ==================== FEEDBACK ====================

    async def submit_feedback(self, user_id: str, request: ChatFeedbackRequest) -> Dict[str, Any]:
        sentiment = feedback_sentiment(request.comment)
        record = {
            "user_id": user_id,
            "rating": request.rating,
            "comment": request.comment,
            "category": request.category,
            "features": request.features,
            "sentiment": sentiment,
            "timestamp": utcnow(),
        }
        feedback_id = await self.store.add_document(CHAT_FEEDBACK, record)
        if not feedback_id:
            raise ApiError("Failed to submit feedback")
        logger.info("Feedback %s from %s (%s)", feedback_id, user_id, sentiment["label"])
        return {"id": feedback_id, **sentiment}


# Singleton instance
chat_analytics_service = ChatAnalyticsService()

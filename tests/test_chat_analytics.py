import unittest
from datetime import datetime, timedelta, timezone

from telehealth.models.chatbot import ChatFeedbackRequest
from telehealth.services.base_store import CHAT_MESSAGES, utcnow
from telehealth.services.chat_analytics import (
    ChatAnalyticsService,
    feedback_sentiment,
    recent_buckets,
    usage_prediction,
)
from tests.helpers import IndexStrictStore, reset_state


class TestFeedbackSentiment(unittest.TestCase):
    def test_labels(self):
        assert feedback_sentiment("Great and helpful, but slow") == {"label": "positive", "confidence": 0.8}
        assert feedback_sentiment("Useless. Awful answers") == {"label": "negative", "confidence": 0.8}
        assert feedback_sentiment("good but bad")["label"] == "neutral"
        assert feedback_sentiment("")["confidence"] == 0.5


class TestTrendHelpers(unittest.TestCase):
    def test_monthly_buckets_cross_the_year(self):
        labels = recent_buckets("monthly", datetime(2024, 2, 15, tzinfo=timezone.utc))
        assert labels == ["2023-09", "2023-10", "2023-11", "2023-12", "2024-01", "2024-02"]

    def test_weekly_and_daily_buckets(self):
        now = datetime(2024, 1, 3, tzinfo=timezone.utc)
        weekly = recent_buckets("weekly", now)
        assert len(weekly) == 12
        assert weekly[-2:] == ["2023-W52", "2024-W01"]
        assert recent_buckets("daily", now)[-2:] == ["2024-01-02", "2024-01-03"]

    def test_prediction(self):
        assert usage_prediction([0, 0, 0])["trend"] == "insufficient_data"
        assert usage_prediction([2, 2, 4])["trend"] == "rising"
        assert usage_prediction([4, 4, 1])["trend"] == "falling"
        assert usage_prediction([3, 0, 3])["trend"] == "steady"


class TestChatAnalyticsService(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        reset_state()
        self.store = IndexStrictStore()
        self.service = ChatAnalyticsService(store=self.store)
        self.now = utcnow()

    async def add_message(self, age, message_type="general", urgency="low", rating=None, user_id="p1"):
        doc = {
            "user_id": user_id,
            "user_message": "hi",
            "message_type": message_type,
            "urgency": urgency,
            "timestamp": self.now - age,
        }
        if rating is not None:
            doc["rating"] = {"rating": rating, "feedback": None, "timestamp": self.now}
        await self.store.add_document(CHAT_MESSAGES, doc)

    async def test_usage_window_and_ratings(self):
        await self.add_message(timedelta(minutes=5), rating=4)
        await self.add_message(timedelta(minutes=10), "symptom_analysis", "high", rating=2)
        await self.add_message(timedelta(days=20), "health_tips")
        await self.add_message(timedelta(minutes=1), user_id="p2")

        usage = await self.service.usage("p1", "7d")
        assert usage["total_requests"] == 2
        assert usage["feature_usage"] == {"general": 1, "symptom_analysis": 1}
        assert usage["average_rating"] == 3
        assert usage["rated_responses"] == 2
        assert usage["peak_usage_hours"]
        assert sum(usage["hourly_distribution"].values()) == 2
        assert [r["title"] for r in usage["recommendations"]] == ["Explore More Features", "Find a Specialist"]

        usage = await self.service.usage("p1", "30d")
        assert usage["total_requests"] == 3
        assert self.store.unfiltered_reads == 0

    async def test_trends_by_day(self):
        await self.add_message(timedelta(days=2), rating=3)
        await self.add_message(timedelta(days=1), rating=5)
        for _ in range(3):
            await self.add_message(timedelta(0))

        trends = await self.service.trends("p1", "daily")
        usage = trends["historical"]["usage"]
        assert len(usage) == 14
        assert [u["messages"] for u in usage[-3:]] == [1, 1, 3]
        assert trends["historical"]["satisfaction"][-2]["average_rating"] == 5
        assert trends["predictions"][0]["trend"] == "rising"
        assert trends["insights"][0]["message"] == "Your health engagement is improving"

    async def test_feedback_is_stored(self):
        result = await self.service.submit_feedback("p1", ChatFeedbackRequest(rating=1, comment="terrible"))
        assert result["label"] == "negative"
        assert result["id"]

        performance = await self.service.performance(active_conversations=2)
        assert performance["real_time_metrics"]["feedback_received"] == 1
        assert performance["real_time_metrics"]["active_conversations"] == 2
        assert performance["health_status"] == "healthy"

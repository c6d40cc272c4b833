import logging
import math
from typing import Optional, Dict, Any, List

from telehealth.agent.agent_core import ConversationAgent
from telehealth.agent.chatbot_ai import chatbot_ai
from telehealth.errors import NotFoundError
from telehealth.models.chatbot import (
    DoctorRecommendationRequest,
    MessageType,
    Recommendation,
)
from .base_store import BaseStore, CHAT_MESSAGES, get_store, newest_first, utcnow
from .doctor_matching import DoctorMatchingService, doctor_matching_service
from .risk_assessment import assess_risk, severity_to_urgency

logger = logging.getLogger(__name__)


class ChatbotService:
    """High-level service for patient chatbot operations"""

    def __init__(
        self,
        store: Optional[BaseStore] = None,
        matching: Optional[DoctorMatchingService] = None,
        agent: Optional[ConversationAgent] = None,
    ):
        self._store = store
        self.matching = matching or doctor_matching_service
        self.agent = agent

    @property
    def store(self) -> BaseStore:
        return self._store or get_store()

    def attach_agent(self, agent: ConversationAgent) -> None:
        self.agent = agent

    def _require_agent(self) -> ConversationAgent:
        if self.agent is None:
            # Lifespan normally attaches the checkpointed agent
            self.agent = ConversationAgent()
        return self.agent

    async def _save_exchange(
        self,
        user_id: str,
        user_message: str,
        bot_response: Any,
        message_type: MessageType,
        urgency: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> Optional[str]:
        record = {
            "user_id": user_id,
            "user_message": user_message,
            "bot_response": bot_response,
            "message_type": message_type.value,
            "urgency": urgency,
            "timestamp": utcnow(),
            "context": context or {},
        }
        if message_type == MessageType.DOCTOR_RECOMMENDATION:
            # indexed for the doctor dashboard referral count
            record["referred_doctor_ids"] = [
                doctor["id"] for doctor in bot_response.get("available_doctors", []) if doctor.get("source") == "database"
            ]
        message_id = await self.store.add_document(CHAT_MESSAGES, record)
        if not message_id:
            logger.error("Could not persist %s exchange for %s", message_type.value, user_id)
        return message_id

    # ==================== CHAT ====================

    async def send_message(self, user: Dict[str, Any], message: str, context: Dict[str, Any]) -> Dict[str, Any]:
        """Run one conversation turn and persist it"""
        user_profile = {
            "age": user.get("age"),
            "gender": user.get("gender"),
            "location": user.get("city"),
            "medications": context.get("medications", []),
            "medical_history": context.get("medicalHistory", []),
            "allergies": context.get("allergies", []),
        }

        response = await self._require_agent().chat(user["id"], message, user_profile)
        response = dict(response)

        if response.get("doctor_recommendations"):
            recommendations = [
                Recommendation(specialty=rec["specialty"], reason=rec.get("reason"), match_score=0)
                for rec in response["doctor_recommendations"]
                if rec.get("specialty")
            ]
            doctors = await self.matching.find_available_doctors(
                recommendations, user_profile.get("location"), user_profile
            )
            response["available_doctors"] = [d.model_dump(mode="json") for d in doctors]

        message_type = MessageType.EMERGENCY if response.get("type") == "emergency" else MessageType.GENERAL
        message_id = await self._save_exchange(
            user["id"], message, response, message_type, response.get("urgency", "low"), user_profile
        )
        return {"response": response, "message_id": message_id}

    async def analyze_symptoms(self, user: Dict[str, Any], symptoms: str, additional_info: Dict[str, Any]) -> Dict[str, Any]:
        user_profile = {
            "age": user.get("age"),
            "gender": user.get("gender"),
            "medical_history": additional_info.get("medicalHistory", []),
            "allergies": additional_info.get("allergies", []),
            "current_medications": additional_info.get("medications", []),
        }

        risk = assess_risk(
            symptoms,
            severity=additional_info.get("severity"),
            body_parts=additional_info.get("bodyParts") or additional_info.get("body_parts") or (),
        )
        analysis = await chatbot_ai.analyze_symptoms(symptoms, user_profile)
        analysis["risk_assessment"] = risk.model_dump()

        severity = (analysis.get("symptom_analysis") or {}).get("severity_assessment")
        urgency = severity_to_urgency(severity)
        if risk.recommends_emergency_action:
            urgency = "emergency"

        specialist = (analysis.get("recommendations") or {}).get("specialist_needed")
        if specialist:
            doctors = await self.matching.find_specialist_doctors(specialist, user.get("city"))
            analysis["available_specialists"] = [d.model_dump(mode="json") for d in doctors]

        message_id = await self._save_exchange(
            user["id"], f"Symptom analysis: {symptoms}", analysis, MessageType.SYMPTOM_ANALYSIS, urgency, user_profile
        )
        return {"analysis": analysis, "message_id": message_id}

    async def doctor_recommendations(self, user: Dict[str, Any], request: DoctorRecommendationRequest) -> Dict[str, Any]:
        result = await self.matching.search(request, user)
        search_query = request.condition or request.specialty
        message_id = await self._save_exchange(
            user["id"],
            f"Enhanced doctor search: {search_query} ({request.search_type.value})",
            result,
            MessageType.DOCTOR_RECOMMENDATION,
            request.urgency.value,
            {"search_type": request.search_type.value, "ai_matching": request.ai_matching.enabled},
        )
        result["message_id"] = message_id
        return result

    async def health_education(self, user: Dict[str, Any], topic: str) -> Dict[str, Any]:
        education = await chatbot_ai.provide_health_education(topic)
        message_id = await self._save_exchange(
            user["id"], f"Health education request: {topic}", education, MessageType.HEALTH_EDUCATION, "low"
        )
        return {"education": education, "topic": topic, "message_id": message_id}

    async def health_tips(self, user: Dict[str, Any], lifestyle: Dict[str, Any], goals: List[str], conditions: List[str]) -> Dict[str, Any]:
        user_profile = {
            "age": user.get("age"),
            "gender": user.get("gender"),
            "location": user.get("city"),
            "lifestyle": lifestyle,
            "health_goals": goals,
            "current_conditions": conditions,
        }
        tips = await chatbot_ai.personalized_health_tips(user_profile)
        message_id = await self._save_exchange(
            user["id"], "Personalized health tips request", tips, MessageType.HEALTH_TIPS, "low", user_profile
        )
        return {
            "tips": tips,
            "user_profile": {k: user_profile[k] for k in ("age", "gender", "location")},
            "message_id": message_id,
        }

    # ==================== HISTORY ====================

    async def conversation_history(
        self,
        user_id: str,
        limit: int = 20,
        page: int = 1,
        message_type: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Newest page first, each page in chronological order"""
        filters = [("user_id", "==", user_id)]
        if message_type:
            filters.append(("message_type", "==", message_type))

        messages = newest_first(await self.store.query(CHAT_MESSAGES, filters), "timestamp")
        total = len(messages)
        start = (page - 1) * limit
        page_items = messages[start:start + limit]
        page_items.reverse()
        for item in page_items:
            item.pop("context", None)

        return {
            "messages": page_items,
            "pagination": {
                "current_page": page,
                "total_pages": math.ceil(total / limit) if limit else 0,
                "total_messages": total,
                "has_next": page * limit < total,
                "has_prev": page > 1,
            },
        }

    async def clear_history(self, user_id: str) -> int:
        messages = await self.store.query(CHAT_MESSAGES, [("user_id", "==", user_id)])
        deleted = 0
        for message in messages:
            if await self.store.delete_document(CHAT_MESSAGES, message["id"]):
                deleted += 1
        await self._require_agent().clear(user_id)
        logger.info("Cleared %d chat messages for %s", deleted, user_id)
        return deleted

    async def rate_response(self, user_id: str, message_id: str, rating: int, feedback: Optional[str]) -> Dict[str, Any]:
        message = await self.store.get_document(CHAT_MESSAGES, message_id)
        if not message or message.get("user_id") != user_id:
            raise NotFoundError("Message not found")

        entry = {"rating": rating, "feedback": feedback, "timestamp": utcnow()}
        await self.store.update_document(CHAT_MESSAGES, message_id, {"rating": entry})
        return entry

    # ==================== STATUS ====================

    async def status(self) -> Dict[str, Any]:
        connected = await chatbot_ai.test_connection()
        active = self.agent.active_conversations if self.agent else 0

        today = utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
        total_messages = await self.store.count(CHAT_MESSAGES)
        today_count = await self.store.count(CHAT_MESSAGES, [("timestamp", ">=", today)])

        return {
            "status": {
                "ai_connected": connected,
                "service_available": True,
                "last_check": utcnow().isoformat(),
            },
            "statistics": {
                **chatbot_ai.stats(active),
                "total_messages": total_messages,
                "messages_today": today_count,
            },
            "features": [
                "Healthcare consultation",
                "Symptom analysis",
                "Doctor recommendations",
                "Health education",
                "Personalized tips",
                "Emergency detection",
                "Multi-specialty support",
            ],
        }


# Singleton instance
chatbot_service = ChatbotService()

import logging
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import unquote

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import JSONResponse

from telehealth.config import settings
from telehealth.dependencies import AdminUser, ChatUser, SymptomUser, ChatbotUser, CurrentUser
from telehealth.errors import ApiError, error_body
from telehealth.models.chatbot import (
    ChatFeedbackRequest,
    ChatMessageRequest,
    DoctorRecommendationRequest,
    HealthTipsRequest,
    RateResponseRequest,
    SymptomAnalysisRequest,
)
from telehealth.services.chat_analytics import TREND_PERIODS, USAGE_TIMEFRAMES, chat_analytics_service
from telehealth.services.chatbot_service import chatbot_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chatbot", tags=["chatbot"])

MAX_MESSAGE_LENGTH = 5000


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _failure(action: str, error: Exception) -> JSONResponse:
    """500 with emergency fallback guidance for a failed chatbot operation"""
    logger.exception("Chatbot %s failed: %s", action, error)
    body = error_body(
        500,
        "I apologize, but I'm experiencing technical difficulties. Please try again later, "
        "or if this is urgent, consider contacting emergency services.",
        fallback_support={
            "emergency_number": settings.EMERGENCY_NUMBER,
            "online_support": True,
            "estimated_recovery": "2-5 minutes",
        },
    )
    return JSONResponse(status_code=500, content=body)


@router.post("/message")
async def send_message(request: ChatMessageRequest, user: ChatUser):
    """One conversation turn with the healthcare assistant"""
    message = request.message.strip()
    if not message:
        raise HTTPException(status_code=400, detail="Message is required")
    if len(message) > MAX_MESSAGE_LENGTH:
        raise HTTPException(status_code=400, detail=f"Message is too long (max {MAX_MESSAGE_LENGTH} characters)")

    try:
        result = await chatbot_service.send_message(user, message, request.context)
    except ApiError:
        raise
    except Exception as e:
        return _failure("message", e)

    return {"success": True, **result, "timestamp": _timestamp()}


@router.post("/analyze-symptoms")
async def analyze_symptoms(request: SymptomAnalysisRequest, user: SymptomUser):
    symptoms = request.symptoms.strip()
    if not symptoms:
        raise HTTPException(status_code=400, detail="Symptoms description is required")

    try:
        result = await chatbot_service.analyze_symptoms(user, symptoms, request.additionalInfo)
    except ApiError:
        raise
    except Exception as e:
        return _failure("symptom analysis", e)

    return {"success": True, **result, "timestamp": _timestamp()}


@router.post("/doctor-recommendations")
async def doctor_recommendations(request: DoctorRecommendationRequest, user: ChatbotUser):
    """Database, internet or hybrid doctor search with AI ranking"""
    if not (request.condition or request.specialty):
        raise HTTPException(status_code=400, detail="Either condition or specialty is required")

    try:
        result = await chatbot_service.doctor_recommendations(user, request)
    except ApiError:
        raise
    except Exception as e:
        return _failure("doctor recommendations", e)

    return {"success": True, **result, "timestamp": _timestamp()}


@router.get("/health-education/{topic}")
async def health_education(topic: str, user: ChatbotUser):
    topic = unquote(topic).strip()
    if not topic:
        raise HTTPException(status_code=400, detail="Topic is required")

    try:
        result = await chatbot_service.health_education(user, topic)
    except ApiError:
        raise
    except Exception as e:
        return _failure("health education", e)

    return {"success": True, **result, "timestamp": _timestamp()}


@router.post("/health-tips")
async def health_tips(request: HealthTipsRequest, user: ChatbotUser):
    try:
        result = await chatbot_service.health_tips(
            user, request.lifestyle, request.health_goals, request.current_conditions
        )
    except ApiError:
        raise
    except Exception as e:
        return _failure("health tips", e)

    return {"success": True, **result, "timestamp": _timestamp()}


@router.get("/conversation-history")
async def conversation_history(
    user: CurrentUser,
    limit: int = Query(20, ge=1, le=100),
    page: int = Query(1, ge=1),
    message_type: Optional[str] = None,
):
    """Stored exchanges, newest page first"""
    result = await chatbot_service.conversation_history(user["id"], limit, page, message_type)
    return {"success": True, **result}


@router.delete("/conversation-history")
async def clear_conversation_history(user: CurrentUser):
    deleted = await chatbot_service.clear_history(user["id"])
    return {
        "success": True,
        "message": "Conversation history cleared successfully",
        "deleted_count": deleted,
    }


@router.post("/rate-response")
async def rate_response(request: RateResponseRequest, user: ChatbotUser):
    if not request.message_id or request.rating is None:
        raise HTTPException(status_code=400, detail="Message ID and rating are required")
    if not 1 <= request.rating <= 5:
        raise HTTPException(status_code=400, detail="Rating must be between 1 and 5")

    rating = await chatbot_service.rate_response(user["id"], request.message_id, request.rating, request.feedback)
    return {"success": True, "message": "Thank you for your feedback!", "rating": rating}


@router.get("/status")
async def chatbot_status(user: CurrentUser):
    """AI connectivity and usage statistics"""
    result = await chatbot_service.status()
    return {"success": True, **result, "timestamp": _timestamp()}


# ==================== ANALYTICS ====================

@router.get("/analytics/usage")
async def usage_analytics(user: CurrentUser, timeframe: str = "7d"):
    """The caller's assistant usage with insights"""
    if timeframe not in USAGE_TIMEFRAMES:
        timeframe = "7d"
    analytics = await chat_analytics_service.usage(user["id"], timeframe)
    return {"success": True, "analytics": analytics, "timeframe": timeframe, "timestamp": _timestamp()}


@router.get("/analytics/performance")
async def performance_analytics(admin: AdminUser):
    agent = chatbot_service.agent
    performance = await chat_analytics_service.performance(agent.active_conversations if agent else 0)
    return {"success": True, "performance": performance, "timestamp": _timestamp()}


@router.get("/analytics/trends")
async def trend_analytics(user: CurrentUser, period: str = "monthly"):
    if period not in TREND_PERIODS:
        period = "monthly"
    trends = await chat_analytics_service.trends(user["id"], period)
    return {"success": True, "trends": trends, "period": period, "generated_at": _timestamp()}


@router.post("/analytics/feedback")
async def submit_feedback(request: ChatFeedbackRequest, user: ChatbotUser):
    result = await chat_analytics_service.submit_feedback(user["id"], request)
    return {
        "success": True,
        "message": "Feedback submitted successfully",
        "sentiment": result["label"],
        "confidence": result["confidence"],
    }

"""
Data models for the application
All Pydantic models for request/response validation
"""

from .doctor import (
    WEEKDAYS,
    ProfileSection,
    Doctor,
    SectionUpdateRequest,
    SectionUpdateResponse,
)

from .notification import (
    NotificationPriority,
    NotificationCategory,
    DeliveryChannel,
    PRIORITY_LEVELS,
    NotificationCreate,
    NotificationPublic,
    MarkReadRequest,
    ActionRequest,
    TestNotificationRequest,
    NotificationPreferences,
    DeliveryDecision,
)

from .chatbot import (
    Urgency,
    MessageType,
    SearchType,
    ChatMessageRequest,
    SymptomAnalysisRequest,
    DoctorRecommendationRequest,
    HealthTipsRequest,
    RateResponseRequest,
    Recommendation,
    RiskAssessment,
)


__all__ = [
    # Doctor models
    "WEEKDAYS",
    "ProfileSection",
    "Doctor",
    "SectionUpdateRequest",
    "SectionUpdateResponse",

    # Notification models
    "NotificationPriority",
    "NotificationCategory",
    "DeliveryChannel",
    "PRIORITY_LEVELS",
    "NotificationCreate",
    "NotificationPublic",
    "MarkReadRequest",
    "ActionRequest",
    "TestNotificationRequest",
    "NotificationPreferences",
    "DeliveryDecision",

    # Chatbot models
    "Urgency",
    "MessageType",
    "SearchType",
    "ChatMessageRequest",
    "SymptomAnalysisRequest",
    "DoctorRecommendationRequest",
    "HealthTipsRequest",
    "RateResponseRequest",
    "Recommendation",
    "RiskAssessment",
]

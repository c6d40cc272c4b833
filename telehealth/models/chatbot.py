from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from enum import Enum


class Urgency(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"
    EMERGENCY = "emergency"


class MessageType(str, Enum):
    GENERAL = "general"
    EMERGENCY = "emergency"
    SYMPTOM_ANALYSIS = "symptom_analysis"
    DOCTOR_RECOMMENDATION = "doctor_recommendation"
    HEALTH_EDUCATION = "health_education"
    HEALTH_TIPS = "health_tips"


class SearchType(str, Enum):
    DATABASE = "database"
    INTERNET = "internet"
    HYBRID = "hybrid"


class ChatMessageRequest(BaseModel):
    """POST /chatbot/message body"""
    message: str = ""
    context: Dict[str, Any] = {}


class SymptomAnalysisRequest(BaseModel):
    """POST /chatbot/analyze-symptoms body"""
    symptoms: str = ""
    additionalInfo: Dict[str, Any] = {}


class AIMatchingOptions(BaseModel):
    enabled: bool = True
    user_profile: Dict[str, Any] = {}
    filters: Dict[str, Any] = {}


class InternetSearchOptions(BaseModel):
    radius_km: int = 50
    include_clinic_locations: bool = True
    preferred_languages: List[str] = ["English"]


class DoctorRecommendationRequest(BaseModel):
    """POST /chatbot/doctor-recommendations body"""
    condition: Optional[str] = None
    specialty: Optional[str] = None
    location: Optional[str] = None
    urgency: Urgency = Urgency.MEDIUM
    search_type: SearchType = SearchType.HYBRID
    ai_matching: AIMatchingOptions = AIMatchingOptions()
    internet_search: InternetSearchOptions = InternetSearchOptions()


class HealthTipsRequest(BaseModel):
    lifestyle: Dict[str, Any] = {}
    health_goals: List[str] = []
    current_conditions: List[str] = []


class RateResponseRequest(BaseModel):
    message_id: Optional[str] = None
    rating: Optional[int] = None
    feedback: Optional[str] = Field(None, max_length=1000)


class ChatFeedbackRequest(BaseModel):
    """Feedback on the assistant as a whole, not a single reply"""
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field("", max_length=2000)
    category: Optional[str] = None
    features: List[str] = []


class Recommendation(BaseModel):
    specialty: str
    reason: Optional[str] = None
    match_score: float = 0
    urgency_level: Urgency = Urgency.MEDIUM
    description: Optional[str] = None
    relevant_keywords: List[str] = []
    conditions_treated: List[str] = []
    ai_insights: List[str] = []


class ClinicLocation(BaseModel):
    id: str
    clinic_name: str
    address: Optional[str] = None
    phone: Optional[str] = None
    doctor_name: Optional[str] = None
    hours: Optional[str] = None
    coordinates: Optional[Dict[str, float]] = None


class SearchAnalytics(BaseModel):
    search_type: SearchType
    matching_factors: List[str] = ["specialty", "location", "availability"]
    matching_score: float = 85
    insights: List[str] = []


class DetectedFlag(BaseModel):
    type: str
    keyword: str
    weight: int


class RiskAssessment(BaseModel):
    risk_score: int
    urgency_level: str
    detected_flags: List[DetectedFlag] = []
    recommends_emergency_action: bool = False

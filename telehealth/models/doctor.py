from pydantic import BaseModel
from typing import Optional, List, Any
from enum import Enum


WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


class ProfileSection(str, Enum):
    """Independently saved slices of a doctor profile"""
    PERSONAL_INFO = "personalInfo"
    MEDICAL_LICENSE = "medicalLicense"
    SPECIALIZATIONS = "specializations"
    QUALIFICATIONS = "qualifications"
    EXPERIENCE = "experience"
    CONSULTATION_MODES = "consultationModes"
    WORKING_HOURS = "workingHours"
    AVAILABILITY = "availability"
    BIO = "bio"
    LANGUAGES = "languages"
    NOTIFICATIONS = "notifications"
    NOTIFICATION_PREFERENCES = "notificationPreferences"


class Doctor(BaseModel):
    """Doctor as returned by search and recommendation endpoints"""
    id: str
    name: str
    specialty: Optional[str] = None
    all_specializations: List[str] = []
    experience: float = 0  # years
    fee: Optional[float] = None
    rating: float = 0
    total_reviews: int = 0
    gender: Optional[str] = None
    location: Optional[str] = None
    next_available: Optional[str] = None
    source: str = "database"
    booking_available: bool = True
    verification_status: Optional[str] = None

    # Directory results only
    clinic_name: Optional[str] = None
    clinic_address: Optional[str] = None
    phone: Optional[str] = None
    online_profile: Optional[str] = None

    # Matching
    recommendation_reason: Optional[str] = None
    urgency_level: Optional[str] = None
    match_score: float = 0
    ai_matching_score: Optional[int] = None
    matching_factors: List[str] = []
    ai_recommended: bool = False
    ai_enhancement_score: int = 0
    enhancement_factors: List[str] = []
    total_ai_score: Optional[float] = None


class SectionUpdateRequest(BaseModel):
    """PUT /doctors/{id}/profile/section body"""
    section: ProfileSection
    data: Any


class SectionUpdateResponse(BaseModel):
    success: bool
    section: ProfileSection
    data: Any
    profile_completion_percentage: int
    message: str

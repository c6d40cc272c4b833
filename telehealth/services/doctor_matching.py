import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any, List

from telehealth.models.doctor import Doctor, WEEKDAYS
from telehealth.models.chatbot import (
    DoctorRecommendationRequest,
    Recommendation,
    SearchAnalytics,
    SearchType,
)
from telehealth.agent.chatbot_ai import chatbot_ai
from .base_store import BaseStore, get_store
from .doctor_directory import DoctorDirectory, DirectoryUnavailableError, doctor_directory

logger = logging.getLogger(__name__)

SPECIALIST_LIMIT = 8


def next_available_slot(working_hours: Optional[Dict[str, Any]], now: Optional[datetime] = None) -> Optional[str]:
    """Start of the next working day after today, as an ISO timestamp"""
    if not working_hours:
        return None
    now = now or datetime.now(timezone.utc)
    for offset in range(1, 8):
        day = now + timedelta(days=offset)
        hours = working_hours.get(WEEKDAYS[day.weekday()]) or {}
        if not hours.get("available"):
            continue
        start = hours.get("start")
        if not start and hours.get("slots"):
            start = hours["slots"][0].get("start")
        if not start:
            continue
        hour, minute = (int(part) for part in start.split(":"))
        return day.replace(hour=hour, minute=minute, second=0, microsecond=0).isoformat()
    return None


def doctor_from_profile(profile: Dict[str, Any]) -> Doctor:
    specializations = profile.get("specializations") or []
    rating = profile.get("rating") or {}
    return Doctor(
        id=profile["id"],
        name=profile.get("name", ""),
        specialty=specializations[0] if specializations else None,
        all_specializations=specializations,
        experience=(profile.get("experience") or {}).get("total_years") or 0,
        fee=profile.get("consultation_fee"),
        rating=rating.get("average", 0),
        total_reviews=rating.get("count", 0),
        gender=profile.get("gender"),
        location=profile.get("city"),
        next_available=next_available_slot(profile.get("working_hours")),
        source="database",
        booking_available=True,
        verification_status="verified" if profile.get("verified") else "unverified",
    )


class DoctorMatchingService:
    """Doctor search, AI matching scores and recommendation summaries"""

    def __init__(self, store: Optional[BaseStore] = None, directory: Optional[DoctorDirectory] = None):
        self._store = store
        self._directory = directory

    @property
    def store(self) -> BaseStore:
        return self._store or get_store()

    @property
    def directory(self) -> DoctorDirectory:
        return self._directory or doctor_directory

    # ==================== DATABASE SEARCH ====================

    async def find_specialist_doctors(self, specialty: str, location: Optional[str] = None) -> List[Doctor]:
        """Verified doctors accepting patients whose specializations mention the specialty"""
        needle = specialty.lower()
        city = location.lower() if location else None

        doctors = []
        for profile in await self.store.find_doctors(verified_only=True):
            if not any(needle in s.lower() for s in profile.get("specializations") or []):
                continue
            if city and city not in (profile.get("city") or "").lower():
                continue
            doctors.append(doctor_from_profile(profile))
            if len(doctors) >= SPECIALIST_LIMIT:
                break
        return doctors

    async def find_available_doctors(
        self,
        recommendations: List[Recommendation],
        location: Optional[str] = None,
        user_profile: Optional[Dict[str, Any]] = None,
    ) -> List[Doctor]:
        """Doctors for each recommended specialty, de-duplicated and ranked"""
        user_profile = user_profile or {}
        found: Dict[str, Doctor] = {}

        for rec in recommendations:
            for doctor in await self.find_specialist_doctors(rec.specialty, location):
                if doctor.id in found:
                    continue
                found[doctor.id] = doctor.model_copy(update={
                    "recommendation_reason": rec.reason,
                    "match_score": rec.match_score,
                    "urgency_level": rec.urgency_level.value,
                    "ai_recommended": rec.match_score >= 70,
                })

        doctors = list(found.values())
        if user_profile.get("age") or user_profile.get("gender") or user_profile.get("preferences"):
            return self.enhance_with_ai_matching(doctors, user_profile)
        return sorted(doctors, key=lambda d: d.match_score, reverse=True)

    # ==================== SCORING ====================

    def calculate_ai_matching_scores(
        self,
        doctors: List[Doctor],
        search_query: str,
        user_profile: Dict[str, Any],
        urgency: str,
        preferences: Dict[str, Any],
    ) -> List[Doctor]:
        """Score every doctor out of 100, best first"""
        query = (search_query or "").lower()
        user_location = (user_profile.get("location") or "").lower()
        scored = []

        for doctor in doctors:
            score = 0.0
            factors = []

            if query and doctor.specialty:
                specialty = doctor.specialty.lower()
                if specialty in query or query in specialty:
                    score += 30
                    factors.append("specialty_match")

            if user_location and doctor.location and user_location in doctor.location.lower():
                score += 20
                factors.append("location_proximity")

            if doctor.experience:
                score += min(doctor.experience, 15)
                factors.append("experience_level")

            if doctor.rating:
                score += (doctor.rating / 5) * 15
                factors.append("patient_rating")

            if doctor.source == "database":
                score += 10
                factors.append("verified_database")
            elif doctor.verification_status == "verified":
                score += 5
                factors.append("online_verified")

            if urgency in ("high", "urgent") and doctor.source == "database" and doctor.booking_available:
                score += 10
                factors.append("immediate_booking")

            if preferences.get("gender") and doctor.gender == preferences["gender"]:
                score += 5
                factors.append("gender_preference")

            max_fee = preferences.get("maxFee") or preferences.get("max_fee")
            if max_fee and doctor.fee is not None and doctor.fee <= float(max_fee):
                score += 5
                factors.append("fee_preference")

            scored.append(doctor.model_copy(update={
                "ai_matching_score": min(round(score), 100),
                "matching_factors": factors,
                "ai_recommended": score >= 70,
            }))

        return sorted(scored, key=lambda d: d.ai_matching_score or 0, reverse=True)

    def enhance_with_ai_matching(self, doctors: List[Doctor], user_profile: Dict[str, Any]) -> List[Doctor]:
        """Profile-based bonus on top of the specialty match score"""
        age = user_profile.get("age")
        gender = (user_profile.get("gender") or "").lower()
        enhanced = []

        for doctor in doctors:
            specialty = (doctor.specialty or "").lower()
            bonus = 0
            factors = []

            if age:
                if age > 60 and "cardio" in specialty:
                    bonus += 15
                    factors.append("age_appropriate_specialty")
                if age < 18 and "pediatric" in specialty:
                    bonus += 20
                    factors.append("pediatric_specialist")

            if gender == "female" and ("gyneco" in specialty or "obstetrics" in specialty):
                bonus += 15
                factors.append("gender_appropriate")

            enhanced.append(doctor.model_copy(update={
                "ai_enhancement_score": bonus,
                "enhancement_factors": factors,
                "total_ai_score": doctor.match_score + bonus,
            }))

        return sorted(enhanced, key=lambda d: d.total_ai_score or 0, reverse=True)

    def recommendation_summary(
        self,
        search_query: str,
        database_doctors: List[Doctor],
        internet_doctors: List[Doctor],
        search_location: Optional[str],
        urgency: str,
    ) -> List[Recommendation]:
        total = len(database_doctors) + len(internet_doctors)
        recommended = sum(1 for d in database_doctors + internet_doctors if d.ai_recommended)

        return [Recommendation(
            specialty="General Consultation",
            reason=f'Based on your search for "{search_query}", I found {total} relevant doctors',
            match_score=85 if total > 0 else 0,
            urgency_level=urgency,
            description=(
                f"{len(database_doctors)} available for immediate booking, "
                f"{len(internet_doctors)} additional specialists found online"
            ),
            relevant_keywords=[search_query],
            ai_insights=[
                f"{recommended} doctors are AI-recommended based on your criteria",
                f"Focused search in {search_location}" if search_location else "Location-based matching applied",
                "Prioritized immediate availability" if urgency != "low" else "Comprehensive search performed",
            ],
        )]

    # ==================== SEARCH ====================

    async def search(self, request: DoctorRecommendationRequest, user: Dict[str, Any]) -> Dict[str, Any]:
        """Run a database, internet or hybrid doctor search"""
        search_query = request.condition or request.specialty
        urgency = request.urgency.value
        user_profile = {
            "age": user.get("age"),
            "gender": user.get("gender"),
            "location": user.get("city") or request.location,
            **request.ai_matching.user_profile,
        }
        search_location = request.location or user_profile.get("location")

        database_doctors: List[Doctor] = []
        internet_doctors: List[Doctor] = []
        clinic_locations = []
        analytics = SearchAnalytics(search_type=request.search_type)

        if request.search_type in (SearchType.DATABASE, SearchType.HYBRID):
            recommendations = chatbot_ai.find_specialty_recommendations(search_query, urgency)
            if request.specialty and not any(r.specialty.lower() == request.specialty.lower() for r in recommendations):
                recommendations.insert(0, Recommendation(
                    specialty=request.specialty,
                    reason=f"Requested specialty: {request.specialty}",
                    urgency_level=urgency,
                    description=chatbot_ai.specialty_description(request.specialty),
                ))
            database_doctors = await self.find_available_doctors(recommendations, search_location, user_profile)
            analytics.insights.append(f"Found {len(database_doctors)} doctors in our database")

        if request.search_type in (SearchType.INTERNET, SearchType.HYBRID):
            try:
                results = await self.directory.search(
                    search_query,
                    specialty=request.specialty,
                    location=search_location,
                    radius_km=request.internet_search.radius_km,
                    include_clinic_locations=request.internet_search.include_clinic_locations,
                    preferred_languages=request.internet_search.preferred_languages,
                )
                internet_doctors = results["doctors"]
                clinic_locations = results["clinic_locations"]
                analytics.insights.append(f"Found {len(internet_doctors)} additional doctors online")
                if clinic_locations:
                    analytics.insights.append(f"Located {len(clinic_locations)} clinic addresses")
            except DirectoryUnavailableError as e:
                logger.info("Internet search skipped: %s", e)
                analytics.insights.append("Internet search temporarily unavailable")

        if request.ai_matching.enabled:
            ranked = self.calculate_ai_matching_scores(
                database_doctors + internet_doctors,
                search_query,
                user_profile,
                urgency,
                request.ai_matching.filters,
            )
            database_doctors = [d for d in ranked if d.source == "database"]
            internet_doctors = [d for d in ranked if d.source == "internet"]
            if ranked:
                average = sum(d.ai_matching_score or 0 for d in ranked) / len(ranked)
                analytics.matching_score = round(average)
                analytics.insights.append(f"AI matching completed with {average:.1f}% average relevance")

        summary = self.recommendation_summary(
            search_query, database_doctors, internet_doctors, search_location, urgency
        )

        return {
            "search_type": request.search_type.value,
            "recommendations": [r.model_dump(mode="json") for r in summary],
            "available_doctors": [d.model_dump(mode="json") for d in database_doctors + internet_doctors],
            "database_doctors": [d.model_dump(mode="json") for d in database_doctors],
            "internet_doctors": [d.model_dump(mode="json") for d in internet_doctors],
            "clinic_locations": [c.model_dump(mode="json") for c in clinic_locations],
            "search_analytics": analytics.model_dump(mode="json"),
            "search_location": search_location,
            "total_results": len(database_doctors) + len(internet_doctors),
        }


# Singleton instance
doctor_matching_service = DoctorMatchingService()

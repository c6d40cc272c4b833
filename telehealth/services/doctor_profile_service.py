import copy
import logging
from typing import Optional, Dict, Any, List

from telehealth.errors import ApiError, ForbiddenError, NotFoundError, ValidationFailedError
from telehealth.models.doctor import ProfileSection
from .base_store import BaseStore, CHAT_MESSAGES, PROFILE_CHANGE_LOGS, get_store, newest_first, utcnow
from .profile_validation import validate_section, business_rule_review

logger = logging.getLogger(__name__)

PERSONAL_INFO_FIELDS = ["name", "first_name", "last_name", "email", "phone", "gender", "city", "profile_image"]
AVAILABILITY_FIELDS = ["time_slot_duration", "break_between_slots", "max_advance_booking_days"]

# Section -> stored field for sections that map onto a single field
SECTION_FIELDS = {
    ProfileSection.MEDICAL_LICENSE: "medical_license",
    ProfileSection.SPECIALIZATIONS: "specializations",
    ProfileSection.QUALIFICATIONS: "qualifications",
    ProfileSection.EXPERIENCE: "experience",
    ProfileSection.CONSULTATION_MODES: "consultation_modes",
    ProfileSection.WORKING_HOURS: "working_hours",
    ProfileSection.BIO: "bio",
    ProfileSection.LANGUAGES: "languages",
    ProfileSection.NOTIFICATIONS: "notifications",
    ProfileSection.NOTIFICATION_PREFERENCES: "notifications",
}

COMPLETION_WEIGHTS = {
    "medical_license": 15,
    "specializations": 15,
    "qualifications": 15,
    "experience": 10,
    "bio": 10,
    "consultation_modes": 15,
    "working_hours": 10,
    "languages": 5,
    "profile_image": 5,
}


def calculate_profile_completion(profile: Dict[str, Any]) -> int:
    """Weighted completion percentage (0-100)"""
    experience = profile.get("experience") or {}
    total_years = experience.get("total_years") if isinstance(experience, dict) else None
    checks = {
        "medical_license": bool((profile.get("medical_license") or {}).get("license_number")),
        "specializations": bool(profile.get("specializations")),
        "qualifications": bool(profile.get("qualifications")),
        "experience": isinstance(total_years, (int, float)) and total_years >= 0,
        "bio": len(profile.get("bio") or "") > 10,
        "consultation_modes": any(
            isinstance(mode, dict) and mode.get("available")
            for mode in (profile.get("consultation_modes") or {}).values()
        ),
        "working_hours": any(
            isinstance(day, dict) and day.get("available")
            for day in (profile.get("working_hours") or {}).values()
        ),
        "languages": bool(profile.get("languages")),
        "profile_image": bool(profile.get("profile_image")),
    }
    return sum(weight for name, weight in COMPLETION_WEIGHTS.items() if checks[name])


def extract_section(profile: Dict[str, Any], section: ProfileSection) -> Any:
    """Pull one section out of a stored profile"""
    if section == ProfileSection.PERSONAL_INFO:
        info = {field: profile.get(field) for field in PERSONAL_INFO_FIELDS}
        name_parts = (profile.get("name") or "").split(" ")
        info["first_name"] = info["first_name"] or name_parts[0]
        info["last_name"] = info["last_name"] or " ".join(name_parts[1:])
        return info
    if section == ProfileSection.AVAILABILITY:
        data = {"working_hours": profile.get("working_hours") or {}}
        data.update({field: profile.get(field) for field in AVAILABILITY_FIELDS})
        return data
    return copy.deepcopy(profile.get(SECTION_FIELDS[section]))


def _merge(current: Any, data: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(current) if isinstance(current, dict) else {}
    merged.update(data)
    return merged


def apply_section(profile: Dict[str, Any], section: ProfileSection, data: Any) -> Dict[str, Any]:
    """
    Fields to write for a section update

    Object sections merge into the stored value, list and scalar sections replace it.
    """
    if section == ProfileSection.PERSONAL_INFO:
        updates = {field: data[field] for field in PERSONAL_INFO_FIELDS if field in data}
        if "name" not in updates and ("first_name" in data or "last_name" in data):
            first = data.get("first_name", profile.get("first_name") or "")
            last = data.get("last_name", profile.get("last_name") or "")
            updates["name"] = f"{first} {last}".strip()
        return updates

    if section == ProfileSection.AVAILABILITY:
        updates = {field: data[field] for field in AVAILABILITY_FIELDS if field in data}
        if "working_hours" in data:
            updates["working_hours"] = _merge(profile.get("working_hours"), data["working_hours"])
        return updates

    field = SECTION_FIELDS[section]
    if isinstance(data, dict):
        updates = {field: _merge(profile.get(field), data)}
    else:
        updates = {field: data}

    if section == ProfileSection.CONSULTATION_MODES:
        fees = [
            mode["fee"] for mode in updates[field].values()
            if isinstance(mode, dict) and mode.get("available") and isinstance(mode.get("fee"), (int, float))
        ]
        updates["consultation_fee"] = min(fees) if fees else None
    return updates


class DoctorProfileService:
    """High-level service for doctor profile operations"""

    def __init__(self, store: Optional[BaseStore] = None):
        self._store = store

    @property
    def store(self) -> BaseStore:
        return self._store or get_store()

    async def _get_doctor_or_404(self, doctor_id: str) -> Dict[str, Any]:
        doctor = await self.store.get_doctor(doctor_id)
        if not doctor:
            raise NotFoundError("Doctor profile not found")
        return doctor

    async def get_full_profile(self, doctor_id: str, include_stats: bool = False) -> Dict[str, Any]:
        """Get doctor profile with computed completion fields"""
        profile = await self._get_doctor_or_404(doctor_id)

        completion = calculate_profile_completion(profile)
        profile["profile_completion_percentage"] = completion
        profile["is_fully_setup"] = completion == 100

        if include_stats:
            profile["statistics"] = await self.get_doctor_statistics(doctor_id, profile)
        return profile

    async def get_section(self, doctor_id: str, section: ProfileSection) -> Any:
        profile = await self._get_doctor_or_404(doctor_id)
        return extract_section(profile, section)

    @staticmethod
    def can_edit(profile: Dict[str, Any], user: Dict[str, Any]) -> bool:
        if user.get("role") == "admin":
            return True
        return user["id"] in (profile.get("user_id"), profile.get("id"))

    async def update_section(
        self,
        doctor_id: str,
        section: ProfileSection,
        data: Any,
        user: Dict[str, Any],
    ) -> Dict[str, Any]:
        """
        Validate and save one profile section

        Raises:
            NotFoundError: unknown doctor
            ForbiddenError: caller is neither the doctor nor an admin
            ValidationFailedError: section data breaks a validation rule
        """
        profile = await self._get_doctor_or_404(doctor_id)
        if not self.can_edit(profile, user):
            raise ForbiddenError("You can only update your own profile")

        errors = validate_section(section.value, data)
        if errors:
            raise ValidationFailedError("Validation failed", errors)

        previous = extract_section(profile, section)
        updates = apply_section(profile, section, data)
        if not await self.store.save_doctor(doctor_id, updates):
            raise ApiError("Failed to update profile section")

        await self.store.add_document(PROFILE_CHANGE_LOGS, {
            "doctor_id": doctor_id,
            "section": section.value,
            "changes": data,
            "previous_values": previous,
            "user_id": user["id"],
            "timestamp": utcnow(),
        })
        logger.info("Doctor %s updated section %s (by %s)", doctor_id, section.value, user["id"])

        profile.update(updates)
        completion = calculate_profile_completion(profile)
        return {
            "success": True,
            "section": section.value,
            "data": extract_section(profile, section),
            "profile_completion_percentage": completion,
            "message": f"{section.value} updated successfully",
        }

    async def get_change_history(self, doctor_id: str, user: Dict[str, Any], limit: int = 50) -> List[Dict[str, Any]]:
        profile = await self._get_doctor_or_404(doctor_id)
        if not self.can_edit(profile, user):
            raise ForbiddenError("You can only view your own profile history")
        logs = await self.store.query(PROFILE_CHANGE_LOGS, [("doctor_id", "==", doctor_id)])
        return newest_first(logs, "timestamp")[:limit]

    async def get_doctor_statistics(self, doctor_id: str, profile: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        profile = profile or await self._get_doctor_or_404(doctor_id)
        rating = profile.get("rating") or {}

        referrals = await self.store.count(CHAT_MESSAGES, [("referred_doctor_ids", "array_contains", doctor_id)])
        profile_updates = await self.store.count(PROFILE_CHANGE_LOGS, [("doctor_id", "==", doctor_id)])
        return {
            "average_rating": rating.get("average", 0),
            "total_reviews": rating.get("count", 0),
            "chat_referrals": referrals,
            "profile_updates": profile_updates,
        }

    async def review_profile(self, doctor_id: str) -> Dict[str, Any]:
        """Activation review: blocking errors, warnings and completion"""
        profile = await self._get_doctor_or_404(doctor_id)
        review = business_rule_review(profile)
        return {
            "can_activate_profile": not review["errors"],
            "errors": review["errors"],
            "warnings": review["warnings"],
            "profile_completion_percentage": calculate_profile_completion(profile),
        }


# Singleton instance
doctor_profile_service = DoctorProfileService()

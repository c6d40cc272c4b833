from fastapi import APIRouter

from telehealth.dependencies import CurrentDoctor
from telehealth.services.doctor_profile_service import doctor_profile_service
from telehealth.services.notification_service import notification_service


router = APIRouter(prefix="/doctor", tags=["doctor-dashboard"])


@router.get("/api/dashboard")
async def get_dashboard_data(doctor: CurrentDoctor):
    """Get doctor dashboard data (API endpoint)"""
    doctor_id = doctor["id"]
    profile = await doctor_profile_service.get_full_profile(doctor_id, include_stats=True)
    counts = await notification_service.unread_counts(doctor_id)

    return {
        "success": True,
        "doctor": {
            "id": doctor_id,
            "name": profile.get("name"),
            "email": profile.get("email"),
            "specializations": profile.get("specializations", []),
            "verified": profile.get("verified", False),
            "accepting_patients": profile.get("accepting_patients", False),
            "profile_image": profile.get("profile_image"),
        },
        "profile_completion_percentage": profile["profile_completion_percentage"],
        "is_fully_setup": profile["is_fully_setup"],
        "notification_counts": counts,
        "statistics": profile["statistics"],
    }

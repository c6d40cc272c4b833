from fastapi import APIRouter, Query

from telehealth.dependencies import CurrentUser
from telehealth.models.doctor import ProfileSection, SectionUpdateRequest, SectionUpdateResponse
from telehealth.services.doctor_profile_service import doctor_profile_service

router = APIRouter(prefix="/doctors", tags=["doctor-profile"])


@router.get("/{doctor_id}/profile")
async def get_doctor_profile(doctor_id: str, user: CurrentUser, include_stats: bool = False):
    """Full profile with completion percentage"""
    profile = await doctor_profile_service.get_full_profile(doctor_id, include_stats=include_stats)
    return {"success": True, "data": profile}


@router.put("/{doctor_id}/profile/section", response_model=SectionUpdateResponse)
async def update_profile_section(doctor_id: str, request: SectionUpdateRequest, user: CurrentUser):
    """Validate and save one profile section (doctor themself or admin)"""
    return await doctor_profile_service.update_section(doctor_id, request.section, request.data, user)


@router.get("/{doctor_id}/profile/section/{section}")
async def get_profile_section(doctor_id: str, section: ProfileSection, user: CurrentUser):
    data = await doctor_profile_service.get_section(doctor_id, section)
    return {"success": True, "section": section.value, "data": data}


@router.get("/{doctor_id}/profile/history")
async def get_profile_history(doctor_id: str, user: CurrentUser, limit: int = Query(50, ge=1, le=200)):
    """Change log, newest first"""
    history = await doctor_profile_service.get_change_history(doctor_id, user, limit)
    return {"success": True, "data": history}


@router.get("/{doctor_id}/profile/review")
async def review_profile(doctor_id: str, user: CurrentUser):
    """Activation readiness: blocking errors and advisory warnings"""
    review = await doctor_profile_service.review_profile(doctor_id)
    return {"success": True, "data": review}

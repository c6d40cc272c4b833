from typing import Any, Dict

from fastapi import APIRouter, Body

from telehealth.dependencies import CurrentUser
from telehealth.services.notification_preferences import notification_preferences_service

router = APIRouter(prefix="/notification-preferences", tags=["notification-preferences"])


@router.get("")
async def get_preferences(user: CurrentUser):
    """Stored preferences, created with defaults on first access"""
    preferences = await notification_preferences_service.get_preferences(user["id"])
    return {"success": True, "data": preferences}


@router.put("")
async def update_preferences(user: CurrentUser, updates: Dict[str, Any] = Body(...)):
    preferences = await notification_preferences_service.update_preferences(user["id"], updates)
    return {"success": True, "message": "Notification preferences updated successfully", "data": preferences}


@router.post("/reset")
async def reset_preferences(user: CurrentUser):
    preferences = await notification_preferences_service.reset_preferences(user["id"])
    return {"success": True, "message": "Notification preferences reset to defaults", "data": preferences}

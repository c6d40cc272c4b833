import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query

from telehealth.dependencies import AdminUser, CurrentUser
from telehealth.models.notification import (
    ActionRequest,
    BroadcastRequest,
    BulkNotificationRequest,
    MarkReadRequest,
    NotificationCategory,
    NotificationCreate,
    NotificationPriority,
    TestNotificationRequest,
)
from telehealth.services.notification_service import STATS_PERIODS, notification_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["notifications"])


# ==================== LIST & ANALYTICS ====================

@router.get("")
@router.get("/user")
async def get_user_notifications(
    user: CurrentUser,
    type: Optional[List[str]] = Query(None),
    category: Optional[List[NotificationCategory]] = Query(None),
    priority: Optional[List[NotificationPriority]] = Query(None),
    unread_only: bool = False,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    """The caller's notifications, newest first"""
    data = await notification_service.list_notifications(
        user["id"],
        types=type,
        categories=[c.value for c in category] if category else None,
        priorities=[p.value for p in priority] if priority else None,
        unread_only=unread_only,
        start_date=start_date,
        end_date=end_date,
        search=search,
        page=page,
        limit=limit,
    )
    return {"success": True, "data": data}


@router.get("/stats")
async def get_notification_stats(user: CurrentUser, period: str = "7d"):
    if period not in STATS_PERIODS:
        period = "7d"
    data = await notification_service.stats(user["id"], period)
    return {"success": True, "data": data}


@router.get("/search")
async def search_notifications(
    user: CurrentUser,
    q: str = "",
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    query = q.strip()
    if len(query) < 2:
        raise HTTPException(status_code=400, detail="Search query must be at least 2 characters long")
    data = await notification_service.search(user["id"], query, page, limit)
    return {"success": True, "data": data}


@router.get("/notification-counts")
async def get_notification_counts(user: CurrentUser):
    """Unread badge counts for the sidebar"""
    data = await notification_service.unread_counts(user["id"])
    return {"success": True, "data": data}


# ==================== READ STATE ====================

@router.post("/mark-read")
async def mark_multiple_as_read(request: MarkReadRequest, user: CurrentUser):
    if not request.notification_ids:
        raise HTTPException(status_code=400, detail="Notification IDs array is required")

    results = await notification_service.mark_many_as_read(user["id"], request.notification_ids)
    marked = sum(1 for r in results if r["success"] and "message" not in r)
    return {
        "success": True,
        "message": f"Marked {marked} notifications as read",
        "data": {"results": results},
    }


@router.post("/mark-all-read")
async def mark_all_as_read(user: CurrentUser):
    marked = await notification_service.mark_all_as_read(user["id"])
    return {
        "success": True,
        "message": f"Marked {marked} notifications as read",
        "data": {"marked_count": marked},
    }


# ==================== SEND ====================

@router.post("")
async def create_notification(payload: NotificationCreate, admin: AdminUser):
    """Admin: create a notification for one user"""
    result = await notification_service.create_notification(payload)
    logger.info("Admin %s sent notification to %s", admin["id"], payload.user_id)
    return {"success": True, "data": result}


@router.post("/admin/bulk")
async def send_bulk_notification(request: BulkNotificationRequest, admin: AdminUser):
    data = await notification_service.send_bulk(request)
    logger.info("Admin %s sent bulk notification to %d recipients", admin["id"], data["recipient_count"])
    return {
        "success": True,
        "message": f"Bulk notification sent to {data['recipient_count']} recipients",
        "data": data,
    }


@router.post("/admin/broadcast")
async def broadcast_notification(request: BroadcastRequest, admin: AdminUser):
    """Admin: notify every user with the target role"""
    data = await notification_service.broadcast(request)
    logger.info("Admin %s broadcast to %d %s users", admin["id"], data["recipient_count"], request.target_role)
    return {
        "success": True,
        "message": f"Notification broadcast to {data['recipient_count']} {request.target_role} users",
        "data": data,
    }


@router.post("/test")
async def send_test_notification(request: TestNotificationRequest, user: CurrentUser):
    """Send the caller a test notification through their preference filter"""
    payload = NotificationCreate(
        user_id=user["id"],
        type="test_notification",
        category=NotificationCategory.SYSTEM,
        priority=NotificationPriority.MEDIUM,
        title="Test Notification",
        message="This is a test notification to verify your notification settings.",
    )
    result = await notification_service.create_notification(payload, requested_channels=request.channels)
    return {"success": True, "message": "Test notification sent", "data": result}


# ==================== SINGLE NOTIFICATION ====================

@router.get("/{notification_id}")
async def get_notification(notification_id: str, user: CurrentUser):
    notification = await notification_service.get_notification(user["id"], notification_id)
    return {"success": True, "data": notification}


@router.post("/{notification_id}/read")
async def mark_as_read(notification_id: str, user: CurrentUser):
    outcome = await notification_service.mark_as_read(user["id"], notification_id)
    return {
        "success": True,
        "message": "Already read" if outcome["already_read"] else "Notification marked as read",
        "data": {"notification_id": notification_id, "read_at": outcome["read_at"]},
    }


@router.post("/{notification_id}/action")
async def record_action(notification_id: str, request: ActionRequest, user: CurrentUser):
    if not request.action:
        raise HTTPException(status_code=400, detail="Action is required")

    action_taken = await notification_service.record_action(
        user["id"], notification_id, request.action, request.metadata
    )
    return {"success": True, "message": "Action recorded successfully", "data": {"action_taken": action_taken}}


@router.delete("/{notification_id}")
async def delete_notification(notification_id: str, user: CurrentUser):
    await notification_service.dismiss(user["id"], notification_id)
    return {"success": True, "message": "Notification deleted successfully"}

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime
from enum import Enum


class NotificationPriority(str, Enum):
    """Notification priority, ordered from least to most urgent"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"
    EMERGENCY = "emergency"


class NotificationCategory(str, Enum):
    MEDICAL = "medical"
    ADMINISTRATIVE = "administrative"
    APPOINTMENT = "appointment"
    PRESCRIPTION = "prescription"
    ORDER = "order"
    SYSTEM = "system"


class DeliveryChannel(str, Enum):
    WEBSOCKET = "websocket"
    EMAIL = "email"
    SMS = "sms"


PRIORITY_LEVELS = {
    NotificationPriority.LOW: 1,
    NotificationPriority.MEDIUM: 2,
    NotificationPriority.HIGH: 3,
    NotificationPriority.CRITICAL: 4,
    NotificationPriority.EMERGENCY: 5,
}


class ActionTaken(BaseModel):
    action: str
    taken_at: datetime
    metadata: Optional[Dict[str, Any]] = None


class NotificationCreate(BaseModel):
    """Model for creating a notification (admin / system senders)"""
    user_id: str
    type: str = Field(..., min_length=1, max_length=100)
    category: NotificationCategory = NotificationCategory.SYSTEM
    priority: NotificationPriority = NotificationPriority.MEDIUM
    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field("", max_length=2000)
    action_url: Optional[str] = None
    action_text: Optional[str] = None
    data: Dict[str, Any] = {}
    expires_at: Optional[datetime] = None


class NotificationPublic(BaseModel):
    """Notification as returned to its recipient"""
    id: str
    type: str
    category: NotificationCategory
    priority: NotificationPriority
    title: str
    message: str
    action_url: Optional[str] = None
    action_text: Optional[str] = None
    data: Dict[str, Any] = {}
    created_at: datetime
    expires_at: Optional[datetime] = None
    read_at: Optional[datetime] = None
    is_read: bool = False
    action_taken: Optional[ActionTaken] = None
    delivery_channels: List[DeliveryChannel] = []


class MarkReadRequest(BaseModel):
    notification_ids: List[str] = []


class ActionRequest(BaseModel):
    action: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class TestNotificationRequest(BaseModel):
    channels: List[DeliveryChannel] = [DeliveryChannel.WEBSOCKET]


# ==================== PREFERENCES ====================

class ChannelPreference(BaseModel):
    enabled: bool = True
    emergency_only: bool = False


class CategoryPreference(BaseModel):
    enabled: bool = True
    priority: str = "all"  # all | high | critical
    channels: List[DeliveryChannel] = []


class TypePreference(BaseModel):
    enabled: bool = True
    channels: List[DeliveryChannel] = []


class QuietHours(BaseModel):
    enabled: bool = False
    start_time: str = "22:00"
    end_time: str = "07:00"
    timezone: str = "UTC"


class NotificationPreferences(BaseModel):
    channels: Dict[DeliveryChannel, ChannelPreference] = {}
    categories: Dict[NotificationCategory, CategoryPreference] = {}
    notification_types: Dict[str, TypePreference] = {}
    quiet_hours: QuietHours = QuietHours()
    updated_at: Optional[datetime] = None


class DeliveryDecision(BaseModel):
    should_deliver: bool
    channels: List[DeliveryChannel] = []
    reason: str
    evaluations: Dict[str, str] = {}


# ==================== ADMIN SENDS ====================

class NotificationContent(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1, max_length=2000)
    action_url: Optional[str] = None
    action_text: Optional[str] = None
    data: Dict[str, Any] = {}


class BulkRecipient(BaseModel):
    user_id: str
    channels: Optional[List[DeliveryChannel]] = None


class AdminSendBase(BaseModel):
    type: str = Field(..., min_length=1, max_length=100)
    content: NotificationContent
    category: NotificationCategory = NotificationCategory.ADMINISTRATIVE
    priority: NotificationPriority = NotificationPriority.MEDIUM
    channels: List[DeliveryChannel] = [DeliveryChannel.WEBSOCKET]
    expires_at: Optional[datetime] = None

    def for_user(self, user_id: str) -> NotificationCreate:
        return NotificationCreate(
            user_id=user_id,
            type=self.type,
            category=self.category,
            priority=self.priority,
            title=self.content.title,
            message=self.content.message,
            action_url=self.content.action_url,
            action_text=self.content.action_text,
            data=self.content.data,
            expires_at=self.expires_at,
        )


class BulkNotificationRequest(AdminSendBase):
    recipients: List[BulkRecipient] = []


class BroadcastRequest(AdminSendBase):
    target_role: str
    exclude_user_ids: List[str] = []

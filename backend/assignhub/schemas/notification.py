from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime


class NotificationOut(BaseModel):
    id: int
    recipient_id: int
    title: str
    message: Optional[str] = None
    type: str
    related_entity_id: Optional[int] = None
    is_read: bool
    created_at: datetime
    related_exists: bool = True
    related_deleted_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class NotificationListOut(BaseModel):
    notifications: List[NotificationOut] = Field(default_factory=list)
    unread_count: int = 0


class NotificationSend(BaseModel):
    user_ids: List[int]
    title: str
    message: str = ""
    type: str = "GENERAL"
    related_entity_id: Optional[int] = None


class FanoutOut(BaseModel):
    saved: int
    pushed: int
    failed: int
    degraded: bool


class BulkUpdateOut(BaseModel):
    detail: str
    count: int


class DeviceTokenIn(BaseModel):
    token: str

from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field


class NotificationResponse(BaseModel):
    """Schema for notification response"""
    id: int
    user_id: str
    title: str
    message: str
    type: str
    read: bool
    is_archived: bool
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class NotificationList(BaseModel):
    notifications: List[NotificationResponse] = Field(..., description="Newest first")
    total: int


class UnreadCount(BaseModel):
    count: int


class MarkAllResult(BaseModel):
    success: bool = True
    updated: int

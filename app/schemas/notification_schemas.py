# app/schemas/notification_schemas.py
"""Pydantic schemas for notifications and push tokens."""
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field

from ..models.notification import NotificationType, NotificationPriority


class NotificationCreate(BaseModel):
    """Broadcast one notification to a set of users (HR/admin only)"""
    model_config = ConfigDict(populate_by_name=True)

    user_ids: List[str] = Field(..., alias='userIds', min_length=1, max_length=1000)
    notification_type: NotificationType = Field(..., alias='type')
    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1, max_length=2000)
    related_id: Optional[str] = Field(default=None, alias='relatedId', max_length=64)
    action_url: Optional[str] = Field(default=None, alias='actionUrl', max_length=500)
    priority: NotificationPriority = NotificationPriority.NORMAL


class PushTokenRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=500)
    platform: Optional[str] = Field(default=None, pattern='^(web|ios|android)$')

"""
Notification schemas
"""
from datetime import datetime
from typing import Optional, List, Any, Dict
from pydantic import BaseModel, ConfigDict, Field, field_serializer
from app.utils.datetime_utils import iso_8601_utc


class NotificationOut(BaseModel):
    id: int
    type: str
    title: str
    message: str
    sender_user_id: Optional[int] = None
    related_entity_type: Optional[str] = None
    related_entity_id: Optional[int] = None
    priority: str
    action_url: Optional[str] = None
    meta: Optional[Dict[str, Any]] = Field(None, validation_alias="meta_json")
    is_read: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("created_at")
    def _ser_datetime(self, dt: Optional[datetime]) -> Optional[str]:
        return iso_8601_utc(dt)


class NotificationListResponse(BaseModel):
    items: List[NotificationOut]
    total: int
    unread: int


class UnreadCountResponse(BaseModel):
    unread: int

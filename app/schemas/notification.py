from pydantic import Field
from typing import List, Optional
from datetime import datetime
from enum import Enum

from .common import CamelModel

class NotificationChannel(str, Enum):
    EMAIL = "email"
    SYSTEM = "system"

class NotificationResponse(CamelModel):
    id: int
    user_id: int
    organization_id: Optional[int] = None
    template_id: Optional[int] = None
    channel: NotificationChannel
    category: str
    subject: str
    body: str
    status: str
    delivery_attempt_count: int = 0
    sent_at: Optional[datetime] = None
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None

class NotificationStats(CamelModel):
    total: int
    pending: int
    sent: int
    failed: int
    email: int
    system: int

class SystemAlertRequest(CamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1, max_length=2000)
    # 未指定用戶時發送給組織管理員
    user_ids: Optional[List[int]] = None

class TemplateCreate(CamelModel):
    template_name: str = Field(..., min_length=1, max_length=100)
    subject: str = Field(..., min_length=1, max_length=255)
    body: str = Field(..., min_length=1)
    channel: NotificationChannel = NotificationChannel.SYSTEM
    trigger_event: Optional[str] = Field(None, max_length=50)
    category: Optional[str] = Field(None, max_length=30)
    is_active: bool = True
    is_default: bool = False

class TemplateUpdate(CamelModel):
    subject: Optional[str] = Field(None, min_length=1, max_length=255)
    body: Optional[str] = Field(None, min_length=1)
    channel: Optional[NotificationChannel] = None
    trigger_event: Optional[str] = Field(None, max_length=50)
    category: Optional[str] = Field(None, max_length=30)
    is_active: Optional[bool] = None
    is_default: Optional[bool] = None

class TemplateResponse(CamelModel):
    id: int
    template_name: str
    subject: str
    body: str
    channel: NotificationChannel
    trigger_event: str
    category: str
    is_active: bool
    is_default: bool
    version: int
    last_used_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

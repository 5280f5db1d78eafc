"""Pydantic schemas for notifications."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from workpulse.models.notification import NotificationCategory, NotificationPriority


class NotificationCreate(BaseModel):
    receiver_id: int
    title: str = Field(min_length=1, max_length=100)
    message: str = Field(min_length=1, max_length=500)
    category: NotificationCategory = NotificationCategory.GENERAL
    priority: NotificationPriority = NotificationPriority.NORMAL
    link: str = Field(default="", max_length=300)
    meta: dict[str, Any] = {}


class BroadcastCreate(BaseModel):
    title: str = Field(min_length=1, max_length=100)
    message: str = Field(min_length=1, max_length=500)
    category: NotificationCategory = NotificationCategory.ANNOUNCEMENT
    priority: NotificationPriority = NotificationPriority.NORMAL
    link: str = Field(default="", max_length=300)
    meta: dict[str, Any] = {}


class NotificationRead(BaseModel):
    id: int
    receiver_id: int
    sender_id: int | None
    title: str
    message: str
    category: str
    priority: str
    link: str
    is_read: bool
    read_at: datetime | None
    meta: dict[str, Any]
    created_at: datetime | None

    model_config = {"from_attributes": True}


class NotificationPageResponse(BaseModel):
    success: bool = True
    page: int
    limit: int
    total: int
    data: list[NotificationRead]


class NotificationResponse(BaseModel):
    success: bool = True
    message: str
    data: NotificationRead | None = None


class BroadcastResponse(BaseModel):
    success: bool = True
    message: str
    count: int


class UnreadCountResponse(BaseModel):
    success: bool = True
    unread: int


class BulkReadResponse(BaseModel):
    success: bool = True
    message: str
    updated: int

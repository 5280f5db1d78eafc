"""
Notification model — one fact delivered to one receiver.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Index, Integer, String

from workpulse.db.base import Base


class NotificationCategory(str, enum.Enum):
    LEAVE = "leave"
    ATTENDANCE = "attendance"
    SALARY = "salary"
    GENERAL = "general"
    ANNOUNCEMENT = "announcement"
    SYSTEM = "system"


class NotificationPriority(str, enum.Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class Notification(Base):
    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_receiver_feed", "receiver_id", "is_deleted", "created_at"),
    )

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    receiver_id: int = Column(  # type: ignore[assignment]
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # NULL sender means system-generated
    sender_id: int | None = Column(  # type: ignore[assignment]
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    title: str = Column(String(100), nullable=False)  # type: ignore[assignment]
    message: str = Column(String(500), nullable=False)  # type: ignore[assignment]
    category: str = Column(  # type: ignore[assignment]
        String(20), nullable=False, default=NotificationCategory.GENERAL.value, index=True
    )
    priority: str = Column(  # type: ignore[assignment]
        String(10), nullable=False, default=NotificationPriority.NORMAL.value
    )
    link: str = Column(String(300), nullable=False, default="")  # type: ignore[assignment]
    is_read: bool = Column(Boolean, nullable=False, default=False, index=True)  # type: ignore[assignment]
    read_at: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]
    meta: dict = Column(JSON, nullable=False, default=dict)  # type: ignore[assignment]
    is_deleted: bool = Column(Boolean, nullable=False, default=False)  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    def to_event(self) -> dict:
        """Payload pushed over the live channel."""
        return {
            "event": "newNotification",
            "id": self.id,
            "receiver_id": self.receiver_id,
            "sender_id": self.sender_id,
            "title": self.title,
            "message": self.message,
            "category": self.category,
            "priority": self.priority,
            "link": self.link,
            "meta": self.meta or {},
            "is_read": self.is_read,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

"""
Task models — workflow state, assignment and review history.

Assignees and reviewers are plain association rows that cascade on user
delete, so removing an account never leaves a task pointing at nothing.
"""

from __future__ import annotations

import enum
from datetime import date, datetime, timezone

from sqlalchemy import (JSON, BigInteger, Boolean, Column, Date, DateTime, Float,
                        ForeignKey, Integer, String, Table, Text)
from sqlalchemy.orm import relationship

from workpulse.db.base import Base


class TaskStatus(str, enum.Enum):
    NOT_STARTED = "NotStarted"
    IN_PROGRESS = "InProgress"
    IN_REVIEW = "InReview"
    COMPLETED = "Completed"
    REVERTED = "Reverted"


class TaskPriority(str, enum.Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class TaskCategory(str, enum.Enum):
    DEVELOPMENT = "Development"
    DESIGN = "Design"
    TESTING = "Testing"
    DOCUMENTATION = "Documentation"
    MEETING = "Meeting"
    RESEARCH = "Research"


task_assignees = Table(
    "task_assignees",
    Base.metadata,
    Column("task_pk", Integer, ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)

task_reviewers = Table(
    "task_reviewers",
    Base.metadata,
    Column("task_pk", Integer, ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)


class Task(Base):
    __tablename__ = "tasks"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    task_id: int = Column(BigInteger, unique=True, nullable=False, index=True)  # type: ignore[assignment]  # YYMMDD + 5 digits
    title: str = Column(String(200), nullable=False)  # type: ignore[assignment]
    description: str | None = Column(Text, nullable=True)  # type: ignore[assignment]
    team_id: int | None = Column(Integer, nullable=True, index=True)  # type: ignore[assignment]
    due_date: date = Column(Date, nullable=False)  # type: ignore[assignment]
    estimated_hours: float | None = Column(Float, nullable=True)  # type: ignore[assignment]
    priority: str = Column(String(20), nullable=False, default=TaskPriority.MEDIUM.value)  # type: ignore[assignment]
    category: str = Column(String(30), nullable=False, default=TaskCategory.DEVELOPMENT.value)  # type: ignore[assignment]
    status: str = Column(  # type: ignore[assignment]
        String(20),
        nullable=False,
        default=TaskStatus.NOT_STARTED.value,
        index=True,
    )
    tags: str | None = Column(String(500), nullable=True)  # type: ignore[assignment]
    notes: str | None = Column(Text, nullable=True)  # type: ignore[assignment]
    attachments: list = Column(JSON, nullable=False, default=list)  # type: ignore[assignment]
    notify_assignee: bool = Column(Boolean, default=True, nullable=False)  # type: ignore[assignment]
    created_by: int | None = Column(  # type: ignore[assignment]
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    creator = relationship("User", foreign_keys=[created_by], lazy="selectin")
    assignees = relationship("User", secondary=task_assignees, lazy="selectin")
    reviewers = relationship("User", secondary=task_reviewers, lazy="selectin")
    review_history = relationship(
        "TaskReviewEntry",
        back_populates="task",
        cascade="all, delete-orphan",
        order_by="TaskReviewEntry.id",
        lazy="selectin",
    )

    @property
    def progress_status(self) -> str:
        # Older clients read the mirrored name
        return self.status

    @property
    def assignee_ids(self) -> list[int]:
        return [u.id for u in self.assignees]

    @property
    def reviewer_ids(self) -> list[int]:
        return [u.id for u in self.reviewers]


class TaskReviewEntry(Base):
    __tablename__ = "task_review_entries"

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    task_pk: int = Column(  # type: ignore[assignment]
        Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    author_id: int | None = Column(  # type: ignore[assignment]
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    action: str = Column(String(20), nullable=False)  # type: ignore[assignment]  # approve | revert
    comment: str | None = Column(String(1000), nullable=True)  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    task = relationship("Task", back_populates="review_history")

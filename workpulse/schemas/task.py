"""Pydantic schemas for the task workflow."""

from __future__ import annotations

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, Field, computed_field, field_validator

from workpulse.models.task import TaskCategory, TaskPriority, TaskStatus


class Attachment(BaseModel):
    filename: str = Field(min_length=1, max_length=255)
    storage_path: str = Field(min_length=1, max_length=1000)


def _unique_ids(v: list[int] | None) -> list[int] | None:
    if v is None:
        return v
    seen: list[int] = []
    for uid in v:
        if uid <= 0:
            raise ValueError("User ids must be positive integers")
        if uid not in seen:
            seen.append(uid)
    return seen


class TaskCreate(BaseModel):
    title: str
    description: str | None = None
    assignee_ids: list[int]
    team_id: int | None = None
    due_date: date
    estimated_hours: float | None = Field(default=None, ge=0)
    priority: TaskPriority = TaskPriority.MEDIUM
    category: TaskCategory = TaskCategory.DEVELOPMENT
    tags: str | None = None
    notes: str | None = None
    attachments: list[Attachment] = []
    notify_assignee: bool = True
    additional_reviewer_ids: list[int] = []

    @field_validator("title")
    @classmethod
    def _title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Title must not be empty")
        if len(v) > 200:
            raise ValueError("Title must not exceed 200 characters")
        return v

    @field_validator("assignee_ids")
    @classmethod
    def _assignees(cls, v: list[int]) -> list[int]:
        v = _unique_ids(v) or []
        if not v:
            raise ValueError("At least one employee must be assigned")
        return v

    @field_validator("additional_reviewer_ids")
    @classmethod
    def _reviewers(cls, v: list[int]) -> list[int]:
        return _unique_ids(v) or []


class TaskUpdate(BaseModel):
    title: str | None = None
    description: str | None = None
    assignee_ids: list[int] | None = None
    team_id: int | None = None
    due_date: date | None = None
    estimated_hours: float | None = Field(default=None, ge=0)
    priority: TaskPriority | None = None
    category: TaskCategory | None = None
    tags: str | None = None
    notes: str | None = None
    notify_assignee: bool | None = None
    additional_reviewer_ids: list[int] | None = None
    attachments: list[Attachment] | None = None
    # False appends the given attachments, True replaces the whole list
    replace_attachments: bool = False

    @field_validator("title")
    @classmethod
    def _title(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("Title must not be empty")
        return v

    @field_validator("assignee_ids")
    @classmethod
    def _assignees(cls, v: list[int] | None) -> list[int] | None:
        v = _unique_ids(v)
        if v is not None and not v:
            raise ValueError("At least one employee must be assigned")
        return v

    @field_validator("additional_reviewer_ids")
    @classmethod
    def _reviewers(cls, v: list[int] | None) -> list[int] | None:
        return _unique_ids(v)


class ReviewRequest(BaseModel):
    action: Literal["approve", "revert"]
    comment: str | None = Field(default=None, max_length=1000)


class UserBrief(BaseModel):
    id: int
    email: str
    full_name: str | None = None
    employee_id: str | None = None

    model_config = {"from_attributes": True}


class ReviewEntryRead(BaseModel):
    author_id: int | None
    action: str
    comment: str | None
    created_at: datetime | None

    model_config = {"from_attributes": True}


class TaskRead(BaseModel):
    id: int
    task_id: int
    title: str
    description: str | None
    team_id: int | None
    due_date: date
    estimated_hours: float | None
    priority: str
    category: str
    status: TaskStatus
    tags: str | None
    notes: str | None
    attachments: list[Attachment]
    notify_assignee: bool
    created_by: int | None
    creator: UserBrief | None = None
    assignees: list[UserBrief]
    reviewers: list[UserBrief]
    review_history: list[ReviewEntryRead] = []
    created_at: datetime | None
    updated_at: datetime | None

    model_config = {"from_attributes": True}

    @computed_field  # type: ignore[prop-decorator]
    @property
    def progress_status(self) -> TaskStatus:
        return self.status


class TaskActionResponse(BaseModel):
    success: bool = True
    message: str
    task: TaskRead

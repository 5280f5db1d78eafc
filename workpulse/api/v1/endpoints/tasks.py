"""
Task endpoints — creation, owner edits and the review workflow.

Authorization lives in the engine (one predicate check per operation), so
these handlers only resolve the caller and shape responses.
"""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from workpulse.api.v1.deps import get_current_user, get_db
from workpulse.models.task import TaskPriority, TaskStatus
from workpulse.models.user import User
from workpulse.schemas.attendance import DeleteResponse
from workpulse.schemas.task import (ReviewRequest, TaskActionResponse, TaskCreate,
                                    TaskRead, TaskUpdate)
from workpulse.services import tasks as engine

router = APIRouter(prefix="/tasks", tags=["tasks"])


@router.get("", response_model=list[TaskRead])
async def list_tasks(
    status: TaskStatus | None = None,
    priority: TaskPriority | None = None,
    sort_by: str = "created_at",
    sort_order: Literal["asc", "desc"] = "desc",
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return await engine.list_tasks(
        db,
        user,
        status=status.value if status else None,
        priority=priority.value if priority else None,
        sort_by=sort_by,
        sort_order=sort_order,
    )


@router.get("/mine", response_model=list[TaskRead])
async def my_tasks(
    status: TaskStatus | None = None,
    priority: TaskPriority | None = None,
    sort_by: str = "created_at",
    sort_order: Literal["asc", "desc"] = "desc",
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return await engine.list_tasks(
        db,
        user,
        mine=True,
        status=status.value if status else None,
        priority=priority.value if priority else None,
        sort_by=sort_by,
        sort_order=sort_order,
    )


@router.post("", response_model=TaskActionResponse, status_code=201)
async def create_task(
    body: TaskCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> TaskActionResponse:
    task = await engine.create_task(db, user, body)
    return TaskActionResponse(message="Task created successfully", task=TaskRead.model_validate(task))


@router.get("/{task_id}", response_model=TaskRead)
async def get_task(
    task_id: int,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return await engine.get_task(db, user, task_id)


@router.put("/{task_id}", response_model=TaskActionResponse)
async def update_task(
    task_id: int,
    body: TaskUpdate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> TaskActionResponse:
    task = await engine.update_task(db, user, task_id, body)
    return TaskActionResponse(message="Task updated successfully", task=TaskRead.model_validate(task))


@router.delete("/{task_id}", response_model=DeleteResponse)
async def delete_task(
    task_id: int,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> DeleteResponse:
    await engine.delete_task(db, user, task_id)
    return DeleteResponse(success=True, message="Task deleted successfully")


# ── Workflow ────────────────────────────────────────────────────────
@router.post("/{task_id}/accept", response_model=TaskActionResponse)
async def accept_task(
    task_id: int,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> TaskActionResponse:
    task = await engine.accept_task(db, user, task_id)
    return TaskActionResponse(
        message="Task accepted. Status is now 'InProgress'.", task=TaskRead.model_validate(task)
    )


@router.post("/{task_id}/submit", response_model=TaskActionResponse)
async def submit_task(
    task_id: int,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> TaskActionResponse:
    task = await engine.submit_task_for_review(db, user, task_id)
    return TaskActionResponse(message="Task submitted for review.", task=TaskRead.model_validate(task))


@router.post("/{task_id}/review", response_model=TaskActionResponse)
async def review_task(
    task_id: int,
    body: ReviewRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> TaskActionResponse:
    task = await engine.review_task(db, user, task_id, body.action, body.comment)
    return TaskActionResponse(message=f"Task {body.action}d.", task=TaskRead.model_validate(task))

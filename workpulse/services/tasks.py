"""
Task workflow state machine.

    NotStarted ──accept──▶ InProgress ──submit──▶ InReview ──approve──▶ Completed
         ▲                                           │
         └──────────── Reverted ◀────revert──────────┘   (Reverted ──accept──▶ InProgress)

Every operation checks authorization once, then the state guard, and then
moves the status with a compare-and-set ``UPDATE ... WHERE status IN (...)``
so two concurrent transitions on the same task cannot both succeed.
"""

from __future__ import annotations

import logging
import random
from datetime import date, datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from workpulse.core import timeutils
from workpulse.core.config import settings
from workpulse.core.exceptions import IdExhausted, InvalidTransition, NotFound, ValidationError
from workpulse.core.permissions import authorize
from workpulse.models.notification import NotificationCategory, NotificationPriority
from workpulse.models.task import Task, TaskReviewEntry, TaskStatus
from workpulse.models.user import User
from workpulse.schemas.task import TaskCreate, TaskUpdate
from workpulse.services import directory
from workpulse.services.dispatcher import NotificationIntent, dispatcher
from workpulse.services.notifications import NotificationContent

logger = logging.getLogger(__name__)

TASKS_LINK = "/tasks"

# action → (allowed source states, target state, permission)
TRANSITIONS: dict[str, tuple[tuple[TaskStatus, ...], TaskStatus, str]] = {
    "accept": ((TaskStatus.NOT_STARTED, TaskStatus.REVERTED), TaskStatus.IN_PROGRESS, "task.accept"),
    "submit": ((TaskStatus.IN_PROGRESS,), TaskStatus.IN_REVIEW, "task.submit"),
    "approve": ((TaskStatus.IN_REVIEW,), TaskStatus.COMPLETED, "task.review"),
    "revert": ((TaskStatus.IN_REVIEW,), TaskStatus.REVERTED, "task.review"),
}

SORTABLE_FIELDS = {"created_at", "updated_at", "due_date", "priority", "status", "title", "task_id"}


def _task_note(title: str, message: str, *, sender_id: int | None, priority: str = "normal") -> NotificationContent:
    return NotificationContent(
        title=title,
        message=message,
        category=NotificationCategory.GENERAL.value,
        priority=priority,
        link=TASKS_LINK,
        sender_id=sender_id,
    )


# ── Id generation ───────────────────────────────────────────────────
def candidate_task_id(today: date, rng: random.Random | None = None) -> int:
    """``YYMMDD`` civil-date prefix followed by a random 5-digit suffix."""
    suffix = (rng or random).randint(10000, 99999)
    return int(f"{today:%y%m%d}{suffix}")


async def _task_id_taken(db: AsyncSession, task_id: int) -> bool:
    return await db.scalar(select(Task.id).where(Task.task_id == task_id)) is not None


async def generate_task_id(
    db: AsyncSession,
    *,
    today: date | None = None,
    rng: random.Random | None = None,
) -> int:
    """Find a free task id within ``TASK_ID_MAX_ATTEMPTS`` tries."""
    today = today or timeutils.now_local().date()
    for _ in range(settings.TASK_ID_MAX_ATTEMPTS):
        candidate = candidate_task_id(today, rng)
        if not await _task_id_taken(db, candidate):
            return candidate
    raise IdExhausted(
        f"Could not allocate a task id after {settings.TASK_ID_MAX_ATTEMPTS} attempts"
    )


# ── Loading ─────────────────────────────────────────────────────────
async def _load(db: AsyncSession, task_id: int) -> Task:
    result = await db.execute(
        select(Task).where(Task.task_id == task_id).execution_options(populate_existing=True)
    )
    task = result.scalar_one_or_none()
    if task is None:
        raise NotFound("Task not found")
    return task


async def _users(db: AsyncSession, ids: list[int], label: str) -> list[User]:
    valid = await directory.existing_user_ids(db, ids)
    missing = [uid for uid in ids if uid not in valid]
    if missing:
        raise ValidationError(f"Unknown or inactive {label}: {', '.join(map(str, missing))}")
    if not valid:
        return []
    result = await db.execute(select(User).where(User.id.in_(valid)))
    by_id = {u.id: u for u in result.scalars().all()}
    return [by_id[uid] for uid in valid]


# ── Create / read ───────────────────────────────────────────────────
async def create_task(
    db: AsyncSession,
    actor: User,
    data: TaskCreate,
    *,
    rng: random.Random | None = None,
) -> Task:
    authorize("task.create", actor)
    # A rollback expires every loaded object, so keep plain values around
    actor_id, actor_name = actor.id, actor.display_name
    reviewer_ids = [actor_id, *(uid for uid in data.additional_reviewer_ids if uid != actor_id)]
    today = timeutils.now_local().date()

    for _ in range(settings.TASK_ID_MAX_ATTEMPTS):
        assignees = await _users(db, data.assignee_ids, "assignee(s)")
        reviewers = await _users(db, reviewer_ids, "reviewer(s)")
        task_id = await generate_task_id(db, today=today, rng=rng)
        task = Task(
            task_id=task_id,
            title=data.title,
            description=data.description,
            team_id=data.team_id,
            due_date=data.due_date,
            estimated_hours=data.estimated_hours,
            priority=data.priority.value,
            category=data.category.value,
            status=TaskStatus.NOT_STARTED.value,
            tags=data.tags,
            notes=data.notes,
            attachments=[a.model_dump() for a in data.attachments],
            notify_assignee=data.notify_assignee,
            created_by=actor_id,
        )
        task.assignees = assignees
        task.reviewers = reviewers
        db.add(task)
        try:
            await db.commit()
            break
        except IntegrityError:
            await db.rollback()
            if not await _task_id_taken(db, task_id):
                raise
            logger.warning("Task id %d taken concurrently, retrying", task_id)
    else:
        raise IdExhausted(
            f"Could not allocate a task id after {settings.TASK_ID_MAX_ATTEMPTS} attempts"
        )

    task = await _load(db, task_id)
    logger.info("Task %d '%s' created by user %d", task.task_id, task.title, actor_id)

    if data.notify_assignee:
        dispatcher.enqueue(
            NotificationIntent.to_users(
                task.assignee_ids,
                _task_note(
                    "New Task Assigned",
                    f"You have been assigned a new task: {task.title}",
                    sender_id=actor_id,
                ),
            )
        )
    # Oversight copy for every admin, independent of notify_assignee
    dispatcher.enqueue(
        NotificationIntent.to_roles(
            ("admin",),
            _task_note(
                "New Task Created in System",
                f'A new task "{task.title}" was created by {actor_name}.',
                sender_id=actor_id,
            ),
            exclude_ids={actor_id},
        )
    )
    return task


async def get_task(db: AsyncSession, actor: User, task_id: int) -> Task:
    task = await _load(db, task_id)
    authorize("task.view", actor, task=task)
    return task


async def list_tasks(
    db: AsyncSession,
    actor: User,
    *,
    mine: bool = False,
    status: str | None = None,
    priority: str | None = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> list[Task]:
    """Role-scoped listing.

    Employees (or ``mine=True``) see tasks assigned to them; admins and
    managers see tasks they created or were asked to review.
    """
    if sort_by not in SORTABLE_FIELDS:
        raise ValidationError(f"Cannot sort by '{sort_by}'")
    column = getattr(Task, sort_by)
    query = select(Task).order_by(column.asc() if sort_order == "asc" else column.desc())

    role = (actor.role or "").lower()
    if mine or role not in ("admin", "manager"):
        query = query.where(Task.assignees.any(User.id == actor.id))
    else:
        query = query.where(
            (Task.created_by == actor.id) | Task.reviewers.any(User.id == actor.id)
        )
    if status:
        query = query.where(Task.status == status)
    if priority:
        query = query.where(Task.priority == priority)

    result = await db.execute(query)
    return list(result.scalars().unique().all())


# ── Workflow transitions ────────────────────────────────────────────
async def _transition(db: AsyncSession, actor: User, task_id: int, action: str) -> Task:
    """Authorize, guard and compare-and-set. Leaves the commit to the caller."""
    sources, target, permission = TRANSITIONS[action]
    allowed = [s.value for s in sources]

    task = await _load(db, task_id)
    authorize(permission, actor, task=task)
    if task.status not in allowed:
        raise InvalidTransition(action, task.status, allowed)

    result = await db.execute(
        update(Task)
        .where(Task.id == task.id, Task.status.in_(allowed))
        .values(status=target.value, updated_at=datetime.now(timezone.utc))
    )
    if result.rowcount != 1:
        await db.rollback()
        current = await _load(db, task_id)
        raise InvalidTransition(action, current.status, allowed)
    return task


async def accept_task(db: AsyncSession, actor: User, task_id: int) -> Task:
    task = await _transition(db, actor, task_id, "accept")
    await db.commit()
    task = await _load(db, task_id)
    logger.info("Task %d accepted by user %d", task_id, actor.id)

    dispatcher.enqueue(
        NotificationIntent.to_users(
            [task.created_by, *task.reviewer_ids],
            _task_note(
                "Task Started",
                f"{actor.display_name} has started working on task: {task.title}",
                sender_id=actor.id,
            ),
        )
    )
    return task


async def submit_task_for_review(db: AsyncSession, actor: User, task_id: int) -> Task:
    task = await _transition(db, actor, task_id, "submit")
    await db.commit()
    task = await _load(db, task_id)
    logger.info("Task %d submitted for review by user %d", task_id, actor.id)

    dispatcher.enqueue(
        NotificationIntent.to_users(
            [task.created_by, *task.reviewer_ids],
            _task_note(
                "Task Submitted for Review",
                f'{actor.display_name} submitted task "{task.title}" for review.',
                sender_id=actor.id,
                priority=NotificationPriority.HIGH.value,
            ),
        )
    )
    return task


async def review_task(
    db: AsyncSession,
    actor: User,
    task_id: int,
    action: str,
    comment: str | None = None,
) -> Task:
    if action not in ("approve", "revert"):
        raise ValidationError("Invalid review action")
    comment = (comment or "").strip() or None

    task = await _transition(db, actor, task_id, action)
    db.add(TaskReviewEntry(task_pk=task.id, author_id=actor.id, action=action, comment=comment))
    if action == "revert" and comment:
        line = f"Reverted by {actor.display_name}: {comment}"
        await db.execute(
            update(Task)
            .where(Task.id == task.id)
            .values(notes=f"{task.notes}\n\n{line}" if task.notes else line)
        )
    await db.commit()
    task = await _load(db, task_id)
    logger.info("Task %d %sd by user %d", task_id, action, actor.id)

    if action == "approve":
        note = _task_note(
            "Task Approved",
            f'Great work! Your task "{task.title}" was approved.',
            sender_id=actor.id,
        )
    else:
        note = _task_note(
            "Task Reverted",
            f'Your task "{task.title}" has been reverted. Please check comments.',
            sender_id=actor.id,
            priority=NotificationPriority.HIGH.value,
        )
    dispatcher.enqueue(NotificationIntent.to_users(task.assignee_ids, note))
    return task


# ── Owner-only edits ────────────────────────────────────────────────
_PLAIN_FIELDS = ("title", "description", "team_id", "due_date", "estimated_hours", "tags", "notes", "notify_assignee")
# Columns that may be changed but never cleared
_REQUIRED_FIELDS = ("title", "due_date", "priority", "category", "notify_assignee")


async def update_task(db: AsyncSession, actor: User, task_id: int, changes: TaskUpdate) -> Task:
    task = await _load(db, task_id)
    authorize("task.update", actor, task=task)

    provided = changes.model_dump(exclude_unset=True)
    cleared = [name for name in _REQUIRED_FIELDS if name in provided and provided[name] is None]
    if cleared:
        raise ValidationError(f"Cannot clear required field(s): {', '.join(cleared)}")

    for name in _PLAIN_FIELDS:
        if name in provided:
            setattr(task, name, provided[name])
    if changes.priority is not None:
        task.priority = changes.priority.value
    if changes.category is not None:
        task.category = changes.category.value
    if changes.assignee_ids is not None:
        task.assignees = await _users(db, changes.assignee_ids, "assignee(s)")
    if changes.additional_reviewer_ids is not None:
        extra = [uid for uid in changes.additional_reviewer_ids if uid != task.created_by]
        creator = [task.creator] if task.creator is not None else []
        task.reviewers = creator + await _users(db, extra, "reviewer(s)")
    if changes.attachments is not None:
        incoming = [a.model_dump() for a in changes.attachments]
        task.attachments = incoming if changes.replace_attachments else [*(task.attachments or []), *incoming]

    await db.commit()
    task = await _load(db, task_id)
    logger.info("Task %d updated by user %d", task_id, actor.id)

    dispatcher.enqueue(
        NotificationIntent.to_users(
            task.assignee_ids,
            _task_note(
                "Task Updated",
                f'Task "{task.title}" details have been updated.',
                sender_id=actor.id,
            ),
        )
    )
    return task


async def delete_task(db: AsyncSession, actor: User, task_id: int) -> None:
    task = await _load(db, task_id)
    authorize("task.delete", actor, task=task)
    assignee_ids, title = task.assignee_ids, task.title

    await db.delete(task)
    await db.commit()
    logger.info("Task %d deleted by user %d", task_id, actor.id)

    dispatcher.enqueue(
        NotificationIntent.to_users(
            assignee_ids,
            _task_note(
                "Task Deleted",
                f'Task "{title}" has been deleted.',
                sender_id=actor.id,
                priority=NotificationPriority.HIGH.value,
            ),
        )
    )

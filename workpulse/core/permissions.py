"""
Authorization predicates, one entry per guarded action.

Every engine operation calls :func:`authorize` exactly once with the
resolved caller (and the task, where ownership matters). A failed check
raises :class:`Forbidden`, which callers can tell apart from a state guard
failure (:class:`InvalidTransition`).
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from workpulse.core.exceptions import Forbidden
from workpulse.models.task import Task
from workpulse.models.user import SUPERVISOR_ROLES, User

Predicate = Callable[..., bool]


def _has_role(*roles: str) -> Predicate:
    def check(actor: User, **_: Any) -> bool:
        return (actor.role or "").lower() in roles

    return check


def _is_creator(actor: User, task: Task | None = None, **_: Any) -> bool:
    return task is not None and task.created_by == actor.id


def _is_assignee(actor: User, task: Task | None = None, **_: Any) -> bool:
    return task is not None and actor.id in task.assignee_ids


def _is_reviewer(actor: User, task: Task | None = None, **_: Any) -> bool:
    return _is_creator(actor, task) or (task is not None and actor.id in task.reviewer_ids)


def _can_view_task(actor: User, task: Task | None = None, **_: Any) -> bool:
    return _is_reviewer(actor, task) or _is_assignee(actor, task)


def _punches_for_self(actor: User, employee_id: str | None = None, **_: Any) -> bool:
    if (actor.role or "").lower() in SUPERVISOR_ROLES:
        return True
    return employee_id is not None and actor.employee_id == employee_id


_RULES: dict[str, tuple[Predicate, str]] = {
    "attendance.punch": (_punches_for_self, "You can only punch in or out for yourself"),
    "attendance.mark": (_has_role(*SUPERVISOR_ROLES), "Only admin, HR or managers can mark attendance"),
    "attendance.edit": (_has_role("admin", "hr"), "Only admin or HR can edit attendance records"),
    "attendance.delete": (_has_role("admin"), "Admin privileges required"),
    "attendance.read_all": (_has_role(*SUPERVISOR_ROLES), "Not authorized to view all attendance"),
    "attendance.reconcile": (_has_role("admin"), "Admin privileges required"),
    "task.create": (_has_role("admin", "manager"), "Not authorized to create tasks"),
    "task.view": (_can_view_task, "Not authorized to view this task"),
    "task.update": (_is_creator, "You are not authorized to edit this task"),
    "task.delete": (_is_creator, "You are not authorized to delete this task"),
    "task.accept": (_is_assignee, "You can only accept your assigned tasks"),
    "task.submit": (_is_assignee, "You can only submit your assigned tasks"),
    "task.review": (_is_reviewer, "You are not authorized to review this task"),
    "notification.send": (_has_role(*SUPERVISOR_ROLES), "Not authorized to send notifications"),
    "notification.broadcast": (_has_role("admin"), "Admin privileges required"),
}


def is_allowed(action: str, actor: User, **context: Any) -> bool:
    predicate, _ = _RULES[action]
    return actor.is_active is not False and predicate(actor, **context)


def authorize(action: str, actor: User, **context: Any) -> None:
    """Raise :class:`Forbidden` unless *actor* may perform *action*."""
    _, message = _RULES[action]
    if not is_allowed(action, actor, **context):
        raise Forbidden(message)

"""
Authorization predicate table.
"""

import pytest

from workpulse.core.exceptions import Forbidden
from workpulse.core.permissions import authorize, is_allowed
from workpulse.models.task import Task
from workpulse.models.user import User


def person(uid: int, role: str = "employee", employee_id: str | None = None, active: bool = True) -> User:
    return User(id=uid, email=f"u{uid}@test.local", role=role, employee_id=employee_id, is_active=active)


@pytest.fixture
def cast():
    creator = person(1, "manager")
    assignee = person(2)
    reviewer = person(3, "hr")
    outsider = person(4)
    task = Task(title="t", created_by=creator.id)
    task.assignees = [assignee]
    task.reviewers = [creator, reviewer]
    return creator, assignee, reviewer, outsider, task


@pytest.mark.parametrize(
    "action, allowed_roles",
    [
        ("attendance.mark", {"admin", "hr", "manager"}),
        ("attendance.edit", {"admin", "hr"}),
        ("attendance.delete", {"admin"}),
        ("attendance.reconcile", {"admin"}),
        ("task.create", {"admin", "manager"}),
        ("notification.send", {"admin", "hr", "manager"}),
        ("notification.broadcast", {"admin"}),
    ],
)
def test_role_gated_actions(action, allowed_roles):
    for role in ("admin", "hr", "manager", "employee"):
        assert is_allowed(action, person(1, role)) is (role in allowed_roles)


def test_inactive_users_are_never_allowed():
    assert not is_allowed("attendance.delete", person(1, "admin", active=False))


def test_punch_for_self_or_as_supervisor():
    staff = person(1, employee_id="EMP1")
    assert is_allowed("attendance.punch", staff, employee_id="EMP1")
    assert not is_allowed("attendance.punch", staff, employee_id="EMP2")
    assert not is_allowed("attendance.punch", person(2), employee_id="EMP2")
    assert is_allowed("attendance.punch", person(3, "hr"), employee_id="EMP2")


def test_task_ownership(cast):
    creator, assignee, reviewer, outsider, task = cast

    assert is_allowed("task.accept", assignee, task=task)
    assert is_allowed("task.submit", assignee, task=task)
    assert not is_allowed("task.accept", creator, task=task)

    assert is_allowed("task.review", creator, task=task)
    assert is_allowed("task.review", reviewer, task=task)
    assert not is_allowed("task.review", assignee, task=task)

    assert is_allowed("task.update", creator, task=task)
    assert not is_allowed("task.update", reviewer, task=task)
    assert not is_allowed("task.delete", assignee, task=task)

    for member in (creator, assignee, reviewer):
        assert is_allowed("task.view", member, task=task)
    assert not is_allowed("task.view", outsider, task=task)


def test_authorize_raises_forbidden_with_reason(cast):
    *_, outsider, task = cast
    with pytest.raises(Forbidden) as excinfo:
        authorize("task.accept", outsider, task=task)
    assert excinfo.value.status_code == 403
    assert "assigned" in excinfo.value.detail


async def test_api_me_resolves_bearer_and_cookie(async_client, make_user, auth_headers):
    staff = await make_user("employee", employee_id="EMP1")
    resp = await async_client.get("/api/v1/users/me", headers=auth_headers(staff))
    assert resp.status_code == 200
    assert resp.json()["employee_id"] == "EMP1"

    token = auth_headers(staff)["Authorization"].split(" ", 1)[1]
    resp = await async_client.get("/api/v1/users/me", headers={"Cookie": f"access_token={token}"})
    assert resp.status_code == 200

    resp = await async_client.get("/api/v1/users/me", headers={"Authorization": "Bearer junk"})
    assert resp.status_code == 401


async def test_api_inactive_user_is_rejected(async_client, make_user, auth_headers):
    retired = await make_user("admin", is_active=False)
    resp = await async_client.get("/api/v1/users/me", headers=auth_headers(retired))
    assert resp.status_code == 401


async def test_api_rejects_non_bearer_scheme(async_client, make_user, auth_headers):
    staff = await make_user("employee")
    token = auth_headers(staff)["Authorization"].split(" ", 1)[1]
    resp = await async_client.get("/api/v1/users/me", headers={"Authorization": f"Basic {token}"})
    assert resp.status_code == 401
    assert resp.headers["www-authenticate"] == "Bearer"

"""
Notification fan-out, inbox state and the intent dispatcher.
"""

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from workpulse.core.exceptions import InvalidReceiver, NotFound, NoValidReceivers, ValidationError
from workpulse.models.notification import Notification
from workpulse.services import notifications as fanout
from workpulse.services.dispatcher import NotificationDispatcher, NotificationIntent, dispatcher
from workpulse.services.live import ConnectionManager, LiveChannel
from workpulse.services.notifications import NotificationContent


class RecordingSocket:
    def __init__(self) -> None:
        self.sent: list[dict] = []

    async def send_json(self, data) -> None:
        self.sent.append(data)


class BrokenChannel:
    async def publish(self, receiver_id: int, payload: dict) -> None:
        raise ConnectionError("relay down")


def hello(**kw) -> NotificationContent:
    return NotificationContent(title=kw.pop("title", "Hello"), message=kw.pop("message", "World"), **kw)


async def _count(db: AsyncSession, receiver_id: int | None = None) -> int:
    query = select(func.count(Notification.id))
    if receiver_id is not None:
        query = query.where(Notification.receiver_id == receiver_id)
    return await db.scalar(query)


# ── Creation ────────────────────────────────────────────────────────
async def test_notify_many_skips_invalid_receivers(db_session: AsyncSession, make_user):
    user = await make_user()
    created = await fanout.notify_many(db_session, [user.id, 9999, user.id, "junk"], hello())
    assert [n.receiver_id for n in created] == [user.id]
    assert await _count(db_session) == 1


async def test_notify_many_with_no_valid_receivers(db_session: AsyncSession):
    with pytest.raises(NoValidReceivers):
        await fanout.notify_many(db_session, [9999, None], hello())
    assert await _count(db_session) == 0


async def test_inactive_users_are_not_valid_receivers(db_session: AsyncSession, make_user):
    retired = await make_user(is_active=False)
    with pytest.raises(InvalidReceiver):
        await fanout.notify_one(db_session, retired.id, hello())


async def test_notify_one_rejects_unknown_receiver(db_session: AsyncSession):
    with pytest.raises(InvalidReceiver):
        await fanout.notify_one(db_session, 4242, hello())


async def test_content_is_validated(db_session: AsyncSession, make_user):
    user = await make_user()
    with pytest.raises(ValidationError):
        await fanout.notify_one(db_session, user.id, hello(title="x" * 101))
    with pytest.raises(ValidationError):
        await fanout.notify_one(db_session, user.id, hello(message="   "))
    with pytest.raises(ValidationError):
        await fanout.notify_one(db_session, user.id, hello(category="gossip"))
    with pytest.raises(ValidationError):
        await fanout.notify_one(db_session, user.id, hello(priority="whenever"))
    assert await _count(db_session) == 0


async def test_broadcast_reaches_every_active_user(db_session: AsyncSession, make_user):
    users = [await make_user() for _ in range(3)]
    await make_user(is_active=False)
    created = await fanout.broadcast(db_session, hello(category="announcement"))
    assert sorted(n.receiver_id for n in created) == sorted(u.id for u in users)


# ── Delivery ────────────────────────────────────────────────────────
async def test_deliver_pushes_to_every_open_socket(db_session: AsyncSession, make_user):
    user = await make_user()
    manager = ConnectionManager()
    laptop, phone = RecordingSocket(), RecordingSocket()
    manager.connect(user.id, laptop)
    manager.connect(user.id, phone)

    notif = await fanout.notify_one(db_session, user.id, hello(priority="high"))
    assert await fanout.deliver(notif, LiveChannel(manager)) is True
    for socket in (laptop, phone):
        assert socket.sent[0]["event"] == "newNotification"
        assert socket.sent[0]["id"] == notif.id
        assert socket.sent[0]["priority"] == "high"


async def test_delivery_failure_is_swallowed(db_session: AsyncSession, make_user):
    user = await make_user()
    notif = await fanout.notify_one(db_session, user.id, hello())
    assert await fanout.deliver(notif, BrokenChannel()) is False
    # the stored record is untouched
    page = await fanout.list_for_receiver(db_session, user.id)
    assert [n.id for n in page.items] == [notif.id]


# ── Read state ──────────────────────────────────────────────────────
async def test_mark_read_is_owner_scoped(db_session: AsyncSession, make_user):
    owner = await make_user()
    stranger = await make_user()
    notif = await fanout.notify_one(db_session, owner.id, hello())

    with pytest.raises(NotFound):
        await fanout.mark_read(db_session, stranger.id, notif.id)

    notif = await fanout.mark_read(db_session, owner.id, notif.id)
    assert notif.is_read is True
    assert notif.read_at is not None
    assert await fanout.unread_count(db_session, owner.id) == 0


async def test_mark_all_read_counts_only_unread(db_session: AsyncSession, make_user):
    user = await make_user()
    created = await fanout.notify_many(db_session, [user.id], hello())
    await fanout.notify_one(db_session, user.id, hello(title="Second"))
    await fanout.notify_one(db_session, user.id, hello(title="Third"))
    await fanout.mark_read(db_session, user.id, created[0].id)

    assert await fanout.mark_all_read(db_session, user.id) == 2
    assert await fanout.mark_all_read(db_session, user.id) == 0


async def test_soft_delete_hides_notification(db_session: AsyncSession, make_user):
    user = await make_user()
    notif = await fanout.notify_one(db_session, user.id, hello())
    await fanout.soft_delete(db_session, user.id, notif.id)

    page = await fanout.list_for_receiver(db_session, user.id)
    assert page.total == 0
    assert await fanout.unread_count(db_session, user.id) == 0
    with pytest.raises(NotFound):
        await fanout.soft_delete(db_session, user.id, notif.id)
    with pytest.raises(NotFound):
        await fanout.mark_read(db_session, user.id, notif.id)


async def test_list_pagination_and_filters(db_session: AsyncSession, make_user):
    user = await make_user()
    for i in range(12):
        await fanout.notify_one(db_session, user.id, hello(title=f"N{i}", category="general"))
    for i in range(3):
        await fanout.notify_one(db_session, user.id, hello(title=f"S{i}", category="salary"))

    first = await fanout.list_for_receiver(db_session, user.id, page=1, page_size=10)
    second = await fanout.list_for_receiver(db_session, user.id, page=2, page_size=10)
    assert first.total == 15
    assert len(first.items) == 10
    assert len(second.items) == 5
    assert first.items[0].title == "S2"  # newest first

    salary = await fanout.list_for_receiver(db_session, user.id, category="salary")
    assert salary.total == 3
    unread = await fanout.list_for_receiver(db_session, user.id, is_read=False, page_size=500)
    assert unread.page_size == fanout.MAX_PAGE_SIZE

    with pytest.raises(ValidationError):
        await fanout.list_for_receiver(db_session, user.id, page=0)


# ── Dispatcher ──────────────────────────────────────────────────────
async def test_intent_resolution_dedupes_and_excludes(db_session: AsyncSession, make_user):
    admin = await make_user("admin")
    hr = await make_user("hr")
    staff = await make_user("employee", employee_id="EMP1")

    dispatcher.enqueue(
        NotificationIntent(
            content=hello(),
            receiver_ids=[admin.id, staff.id],
            roles=("admin", "hr"),
            employee_id="EMP1",
            exclude_ids={hr.id},
        )
    )
    assert await dispatcher.drain() == 1

    assert await _count(db_session, admin.id) == 1
    assert await _count(db_session, staff.id) == 1
    assert await _count(db_session, hr.id) == 0


async def test_intent_without_audience_is_dropped_quietly(db_session: AsyncSession):
    dispatcher.enqueue(NotificationIntent.to_employee("NOBODY", hello()))
    dispatcher.enqueue(NotificationIntent.to_users([9999], hello()))
    assert await dispatcher.drain() == 2
    assert await _count(db_session) == 0


async def test_background_worker_processes_queue(db_session: AsyncSession, make_user):
    user = await make_user()
    await dispatcher.start()
    assert dispatcher.running
    dispatcher.enqueue(NotificationIntent.to_users([user.id], hello()))
    await dispatcher.join()
    await dispatcher.stop()
    assert not dispatcher.running
    assert await _count(db_session, user.id) == 1


def test_enqueue_never_refuses_an_intent():
    backlog = NotificationDispatcher()
    for uid in range(1, 2501):
        backlog.enqueue(NotificationIntent.to_users([uid], hello()))
    assert backlog._queue.qsize() == 2500


async def test_process_requires_a_session_factory():
    with pytest.raises(RuntimeError):
        await NotificationDispatcher().process(NotificationIntent.to_users([1], hello()))


# ── HTTP ────────────────────────────────────────────────────────────
async def test_api_send_and_read_flow(async_client: AsyncClient, make_user, auth_headers):
    manager = await make_user("manager")
    staff = await make_user("employee")

    resp = await async_client.post(
        "/api/v1/notifications",
        json={"receiver_id": staff.id, "title": "Payslip", "message": "Ready", "category": "salary"},
        headers=auth_headers(manager),
    )
    assert resp.status_code == 201
    notif_id = resp.json()["data"]["id"]
    assert resp.json()["data"]["sender_id"] == manager.id

    resp = await async_client.get("/api/v1/notifications/unread-count", headers=auth_headers(staff))
    assert resp.json()["unread"] == 1

    resp = await async_client.get("/api/v1/notifications?category=salary", headers=auth_headers(staff))
    body = resp.json()
    assert body["total"] == 1
    assert body["data"][0]["title"] == "Payslip"

    # someone else's notification looks like it does not exist
    resp = await async_client.patch(f"/api/v1/notifications/{notif_id}/read", headers=auth_headers(manager))
    assert resp.status_code == 404

    resp = await async_client.patch(f"/api/v1/notifications/{notif_id}/read", headers=auth_headers(staff))
    assert resp.status_code == 200
    assert resp.json()["data"]["is_read"] is True

    resp = await async_client.delete(f"/api/v1/notifications/{notif_id}", headers=auth_headers(staff))
    assert resp.status_code == 200
    resp = await async_client.get("/api/v1/notifications", headers=auth_headers(staff))
    assert resp.json()["total"] == 0


async def test_api_send_rules(async_client: AsyncClient, make_user, auth_headers):
    hr = await make_user("hr")
    staff = await make_user("employee")

    resp = await async_client.post(
        "/api/v1/notifications",
        json={"receiver_id": hr.id, "title": "Hi", "message": "There"},
        headers=auth_headers(staff),
    )
    assert resp.status_code == 403

    resp = await async_client.post(
        "/api/v1/notifications",
        json={"receiver_id": 9999, "title": "Hi", "message": "There"},
        headers=auth_headers(hr),
    )
    assert resp.status_code == 400
    assert resp.json()["code"] == "invalid_receiver"


async def test_api_broadcast_and_read_all(async_client: AsyncClient, make_user, auth_headers):
    admin = await make_user("admin")
    hr = await make_user("hr")
    staff = await make_user("employee")

    resp = await async_client.post(
        "/api/v1/notifications/broadcast",
        json={"title": "Holiday", "message": "Office closed Friday"},
        headers=auth_headers(hr),
    )
    assert resp.status_code == 403

    resp = await async_client.post(
        "/api/v1/notifications/broadcast",
        json={"title": "Holiday", "message": "Office closed Friday"},
        headers=auth_headers(admin),
    )
    assert resp.status_code == 201
    assert resp.json()["count"] == 3

    resp = await async_client.patch("/api/v1/notifications/read-all", headers=auth_headers(staff))
    assert resp.json()["updated"] == 1
    resp = await async_client.get("/api/v1/notifications?is_read=false", headers=auth_headers(staff))
    assert resp.json()["total"] == 0


async def test_api_health(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["db"] is True
    assert set(body) == {"db", "redis", "dispatcher", "live_connections"}

"""
Notification fan-out: persistence, read state and live delivery.

Persistence is the durability guarantee. ``deliver`` is a latency
optimisation layered on top and never raises: a receiver that misses a
live push still sees the stored notification in ``list_for_receiver``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from workpulse.core.exceptions import InvalidReceiver, NoValidReceivers, NotFound, ValidationError
from workpulse.models.notification import Notification, NotificationCategory, NotificationPriority
from workpulse.services import directory
from workpulse.services.live import LiveChannel, live_channel

logger = logging.getLogger(__name__)

TITLE_MAX = 100
MESSAGE_MAX = 500
MAX_PAGE_SIZE = 100


@dataclass
class NotificationContent:
    title: str
    message: str
    category: str = NotificationCategory.GENERAL.value
    priority: str = NotificationPriority.NORMAL.value
    link: str = ""
    meta: dict = field(default_factory=dict)
    sender_id: int | None = None

    def validated(self) -> NotificationContent:
        title = (self.title or "").strip()
        message = (self.message or "").strip()
        if not title or not message:
            raise ValidationError("Notification title and message are required")
        if len(title) > TITLE_MAX:
            raise ValidationError(f"Title must not exceed {TITLE_MAX} characters")
        if len(message) > MESSAGE_MAX:
            raise ValidationError(f"Message must not exceed {MESSAGE_MAX} characters")
        category = _enum_value(NotificationCategory, self.category, "category")
        priority = _enum_value(NotificationPriority, self.priority, "priority")
        return NotificationContent(
            title=title,
            message=message,
            category=category,
            priority=priority,
            link=self.link or "",
            meta=dict(self.meta or {}),
            sender_id=self.sender_id,
        )

    def build(self, receiver_id: int) -> Notification:
        return Notification(
            receiver_id=receiver_id,
            sender_id=self.sender_id,
            title=self.title,
            message=self.message,
            category=self.category,
            priority=self.priority,
            link=self.link,
            meta=dict(self.meta),
            is_read=False,
            is_deleted=False,
        )


@dataclass
class NotificationPage:
    items: list[Notification]
    total: int
    page: int
    page_size: int


def _enum_value(enum_cls, value, label: str) -> str:
    try:
        return enum_cls(value).value
    except ValueError:
        allowed = ", ".join(e.value for e in enum_cls)
        raise ValidationError(f"Invalid {label} '{value}'. Must be one of: {allowed}") from None


# ── Creation ────────────────────────────────────────────────────────
async def notify_one(
    db: AsyncSession,
    receiver_id: object,
    content: NotificationContent,
) -> Notification:
    """Persist exactly one notification for a validated receiver."""
    content = content.validated()
    valid = await directory.existing_user_ids(db, [receiver_id])
    if not valid:
        raise InvalidReceiver(f"Invalid receiverId '{receiver_id}'")

    notif = content.build(valid[0])
    db.add(notif)
    await db.commit()
    await db.refresh(notif)
    return notif


async def notify_many(
    db: AsyncSession,
    receiver_ids: Iterable[object],
    content: NotificationContent,
) -> list[Notification]:
    """Persist one record per valid receiver; invalid ids are skipped."""
    content = content.validated()
    receiver_ids = list(receiver_ids)
    valid = await directory.existing_user_ids(db, receiver_ids)
    if not valid:
        raise NoValidReceivers("No valid receiverIds provided")
    skipped = len(receiver_ids) - len(valid)
    if skipped:
        logger.debug("notify_many skipped %d invalid or duplicate receiver(s)", skipped)

    notifs = [content.build(uid) for uid in valid]
    db.add_all(notifs)
    await db.commit()
    for notif in notifs:
        await db.refresh(notif)
    return notifs


async def broadcast(db: AsyncSession, content: NotificationContent) -> list[Notification]:
    """Fan a notification out to every active user."""
    return await notify_many(db, await directory.all_active_user_ids(db), content)


# ── Delivery ────────────────────────────────────────────────────────
async def deliver(notification: Notification, channel: LiveChannel | None = None) -> bool:
    """Best-effort live push. Returns ``False`` instead of raising on failure."""
    channel = channel or live_channel
    try:
        await channel.publish(notification.receiver_id, notification.to_event())
        return True
    except Exception as exc:
        logger.warning(
            "Live delivery failed for notification %s (receiver %s): %s",
            notification.id,
            notification.receiver_id,
            exc,
        )
        return False


async def deliver_all(notifications: Iterable[Notification], channel: LiveChannel | None = None) -> int:
    delivered = 0
    for notif in notifications:
        if await deliver(notif, channel):
            delivered += 1
    return delivered


# ── Read state ──────────────────────────────────────────────────────
async def _owned(db: AsyncSession, receiver_id: int, notification_id: int) -> Notification:
    result = await db.execute(
        select(Notification).where(
            Notification.id == notification_id,
            Notification.receiver_id == receiver_id,
            Notification.is_deleted.is_(False),
        )
    )
    notif = result.scalar_one_or_none()
    if notif is None:
        raise NotFound("Notification not found")
    return notif


async def mark_read(db: AsyncSession, receiver_id: int, notification_id: int) -> Notification:
    notif = await _owned(db, receiver_id, notification_id)
    if not notif.is_read:
        notif.is_read = True
        notif.read_at = datetime.now(timezone.utc)
        await db.commit()
        await db.refresh(notif)
    return notif


async def mark_all_read(db: AsyncSession, receiver_id: int) -> int:
    """Mark every unread, non-deleted notification read. Zero matches is fine."""
    result = await db.execute(
        update(Notification)
        .where(
            Notification.receiver_id == receiver_id,
            Notification.is_read.is_(False),
            Notification.is_deleted.is_(False),
        )
        .values(is_read=True, read_at=datetime.now(timezone.utc))
    )
    await db.commit()
    return result.rowcount or 0


async def soft_delete(db: AsyncSession, receiver_id: int, notification_id: int) -> Notification:
    notif = await _owned(db, receiver_id, notification_id)
    notif.is_deleted = True
    await db.commit()
    return notif


# ── Queries ─────────────────────────────────────────────────────────
async def list_for_receiver(
    db: AsyncSession,
    receiver_id: int,
    *,
    category: str | None = None,
    is_read: bool | None = None,
    page: int = 1,
    page_size: int = 10,
) -> NotificationPage:
    if page < 1 or page_size < 1:
        raise ValidationError("page and page_size must be positive")
    page_size = min(page_size, MAX_PAGE_SIZE)

    conditions = [
        Notification.receiver_id == receiver_id,
        Notification.is_deleted.is_(False),
    ]
    if category:
        conditions.append(
            Notification.category == _enum_value(NotificationCategory, category, "category")
        )
    if is_read is not None:
        conditions.append(Notification.is_read.is_(is_read))

    total = await db.scalar(select(func.count(Notification.id)).where(*conditions))
    result = await db.execute(
        select(Notification)
        .where(*conditions)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return NotificationPage(
        items=list(result.scalars().all()),
        total=total or 0,
        page=page,
        page_size=page_size,
    )


async def unread_count(db: AsyncSession, receiver_id: int) -> int:
    count = await db.scalar(
        select(func.count(Notification.id)).where(
            Notification.receiver_id == receiver_id,
            Notification.is_read.is_(False),
            Notification.is_deleted.is_(False),
        )
    )
    return count or 0

"""
Notification endpoints — send, broadcast, inbox listing and read state.

Every inbox operation is scoped to the caller: a notification owned by
someone else (or soft-deleted) is reported as 404, never 403.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from workpulse.api.v1.deps import get_current_user, get_db
from workpulse.core.permissions import authorize
from workpulse.models.notification import NotificationCategory
from workpulse.models.user import User
from workpulse.schemas.notification import (BroadcastCreate, BroadcastResponse,
                                            BulkReadResponse, NotificationCreate,
                                            NotificationPageResponse,
                                            NotificationRead,
                                            NotificationResponse,
                                            UnreadCountResponse)
from workpulse.services import notifications as fanout
from workpulse.services.notifications import NotificationContent

router = APIRouter(prefix="/notifications", tags=["notifications"])
logger = logging.getLogger(__name__)


def _content(body: NotificationCreate | BroadcastCreate, sender_id: int) -> NotificationContent:
    return NotificationContent(
        title=body.title,
        message=body.message,
        category=body.category.value,
        priority=body.priority.value,
        link=body.link,
        meta=body.meta,
        sender_id=sender_id,
    )


# ── Send ────────────────────────────────────────────────────────────
@router.post("", response_model=NotificationResponse, status_code=201)
async def send_notification(
    body: NotificationCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> NotificationResponse:
    """Persist one notification and push it to the receiver's open sockets."""
    authorize("notification.send", user)
    notif = await fanout.notify_one(db, body.receiver_id, _content(body, user.id))
    await fanout.deliver(notif)
    return NotificationResponse(
        message="Notification sent successfully",
        data=NotificationRead.model_validate(notif),
    )


@router.post("/broadcast", response_model=BroadcastResponse, status_code=201)
async def broadcast(
    body: BroadcastCreate,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> BroadcastResponse:
    authorize("notification.broadcast", user)
    notifs = await fanout.broadcast(db, _content(body, user.id))
    delivered = await fanout.deliver_all(notifs)
    logger.info("Broadcast by user %d: %d stored, %d pushed live", user.id, len(notifs), delivered)
    return BroadcastResponse(message="Broadcast sent", count=len(notifs))


# ── Inbox ───────────────────────────────────────────────────────────
@router.get("", response_model=NotificationPageResponse)
async def list_notifications(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    category: NotificationCategory | None = None,
    is_read: bool | None = None,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> NotificationPageResponse:
    """Newest first; soft-deleted notifications are never listed."""
    result = await fanout.list_for_receiver(
        db,
        user.id,
        category=category.value if category else None,
        is_read=is_read,
        page=page,
        page_size=limit,
    )
    return NotificationPageResponse(
        page=result.page,
        limit=result.page_size,
        total=result.total,
        data=[NotificationRead.model_validate(n) for n in result.items],
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> UnreadCountResponse:
    return UnreadCountResponse(unread=await fanout.unread_count(db, user.id))


# /read-all must be declared before /{notification_id}/...
@router.patch("/read-all", response_model=BulkReadResponse)
async def mark_all_read(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> BulkReadResponse:
    updated = await fanout.mark_all_read(db, user.id)
    return BulkReadResponse(message="All notifications marked as read", updated=updated)


@router.patch("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: int,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> NotificationResponse:
    notif = await fanout.mark_read(db, user.id, notification_id)
    return NotificationResponse(
        message="Notification marked as read",
        data=NotificationRead.model_validate(notif),
    )


@router.delete("/{notification_id}", response_model=NotificationResponse)
async def delete_notification(
    notification_id: int,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> NotificationResponse:
    await fanout.soft_delete(db, user.id, notification_id)
    return NotificationResponse(message="Notification deleted successfully")

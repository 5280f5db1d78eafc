"""
Live notification socket.

Clients connect to ``/ws/notifications?token=<jwt>`` and receive every
``newNotification`` event addressed to them while the socket is open.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status
from sqlalchemy.ext.asyncio import AsyncSession

from workpulse.api.v1.deps import get_db, resolve_user
from workpulse.services.live import connections

router = APIRouter(tags=["live"])
logger = logging.getLogger(__name__)


@router.websocket("/ws/notifications")
async def notifications_socket(
    websocket: WebSocket,
    token: str | None = None,
    db: AsyncSession = Depends(get_db),
) -> None:
    user = await resolve_user(db, token)
    if user is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return
    user_id = user.id
    # the socket may stay open for hours; don't pin a pooled connection
    await db.close()

    await websocket.accept()
    connections.connect(user_id, websocket)
    try:
        # inbound frames are ignored; the loop only detects disconnects
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        connections.disconnect(user_id, websocket)
        logger.debug("Live channel closed for receiver %d", user_id)

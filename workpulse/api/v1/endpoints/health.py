"""
Health endpoint.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from workpulse.api.v1.deps import get_db
from workpulse.core.config import settings
from workpulse.schemas.user import HealthResponse
from workpulse.services.dispatcher import dispatcher
from workpulse.services.live import connections

router = APIRouter(tags=["health"])
logger = logging.getLogger(__name__)


@router.get("/health", response_model=HealthResponse)
async def health(db: AsyncSession = Depends(get_db)) -> HealthResponse:
    """Public health check — DB and Redis connectivity, notification worker state."""
    result = HealthResponse(
        db=False,
        redis=False,
        dispatcher=dispatcher.running,
        live_connections=connections.total,
    )

    try:
        await db.execute(select(1))
        result.db = True
    except Exception as e:
        logger.error("Health check DB failure: %s", e)

    try:
        import redis.asyncio as aioredis

        r = aioredis.from_url(settings.REDIS_URL)
        await r.ping()
        await r.aclose()
        result.redis = True
    except Exception as e:
        logger.error("Health check Redis failure: %s", e)

    return result

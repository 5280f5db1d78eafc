"""
Daily reconciliation loop.

Runs inside the application lifespan. On start it sweeps the previous
civil day, so sessions left open across a restart still get closed, and
then wakes once a day at ``RECONCILE_AT`` local time. ``reconcile_day`` is
idempotent, so an extra or repeated sweep is harmless.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, time, timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from workpulse.core import timeutils
from workpulse.core.config import settings
from workpulse.services.attendance import ReconcileResult, reconcile_day

logger = logging.getLogger(__name__)


def next_run(at: time, now: datetime) -> datetime:
    """The next local instant matching *at*, strictly after *now*."""
    candidate = now.replace(hour=at.hour, minute=at.minute, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


def seconds_until(at: time, now: datetime) -> float:
    return (next_run(at, now) - now).total_seconds()


async def sweep(session_factory: async_sessionmaker[AsyncSession], date: str) -> ReconcileResult | None:
    """One guarded reconciliation pass; failures are logged, never raised."""
    try:
        async with session_factory() as db:
            return await reconcile_day(db, date)
    except Exception:
        logger.error("Reconciliation sweep for %s failed", date, exc_info=True)
        return None


async def run_daily_reconciliation(session_factory: async_sessionmaker[AsyncSession]) -> None:
    at = timeutils.parse_hhmm(settings.RECONCILE_AT)
    yesterday = timeutils.format_date(timeutils.now_local() - timedelta(days=1))
    await sweep(session_factory, yesterday)

    while True:
        now = timeutils.now_local()
        delay = seconds_until(at, now)
        logger.info("Next attendance reconciliation in %.0f s", delay)
        await asyncio.sleep(delay)
        await sweep(session_factory, timeutils.today_str())

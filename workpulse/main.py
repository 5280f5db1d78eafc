"""
WorkPulse — Application entry point.

This is the **only** file that assembles the app.  All business logic
lives in the `services/` package; `api/` only maps HTTP onto it.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import select

from workpulse.api.v1.api import api_router
from workpulse.core.config import settings
from workpulse.core.exceptions import register_exception_handlers
from workpulse.db.base import Base
from workpulse.db.session import async_session_factory, engine

# Ensure all models are imported so metadata.create_all can see them
from workpulse.models.attendance import AttendanceRecord  # noqa: F401
from workpulse.models.notification import Notification  # noqa: F401
from workpulse.models.task import Task, TaskReviewEntry  # noqa: F401
from workpulse.models.user import User
from workpulse.services.dispatcher import dispatcher
from workpulse.services.live import start_live_channel, stop_live_channel
from workpulse.services.scheduler import run_daily_reconciliation

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan ────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(_app: FastAPI):
    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialised")

    # Seed default admin user on first run
    async with async_session_factory() as session:
        result = await session.execute(
            select(User).where(User.email == settings.FIRST_ADMIN_EMAIL)
        )
        if result.scalar_one_or_none() is None:
            session.add(
                User(
                    email=settings.FIRST_ADMIN_EMAIL,
                    full_name="System Administrator",
                    role="admin",
                )
            )
            await session.commit()
            logger.info("Default admin created: %s", settings.FIRST_ADMIN_EMAIL)

    dispatcher.configure(async_session_factory)
    await dispatcher.start()
    await start_live_channel()

    reconciler: asyncio.Task | None = None
    if settings.RECONCILE_ENABLED:
        reconciler = asyncio.create_task(
            run_daily_reconciliation(async_session_factory), name="attendance-reconciler"
        )

    logger.info("🚀 WorkPulse v%s started", settings.VERSION)
    yield

    if reconciler is not None:
        reconciler.cancel()
        try:
            await reconciler
        except asyncio.CancelledError:
            pass
    await dispatcher.stop()
    await stop_live_channel()
    await engine.dispose()
    logger.info("Shutdown complete")


# ── App factory ─────────────────────────────────────────────────────
def create_app() -> FastAPI:
    application = FastAPI(
        title=settings.PROJECT_NAME,
        description="Attendance, task workflow and notification service",
        version=settings.VERSION,
        openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # CORS
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Global exception handlers (prevent stack-trace leakage)
    register_exception_handlers(application)

    # Mount API v1
    application.include_router(api_router, prefix=settings.API_V1_PREFIX)

    return application


app = create_app()

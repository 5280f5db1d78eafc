"""
Shared test fixtures for the WorkPulse test suite.

Each test gets its own aiosqlite database file, a notification
dispatcher bound to it (drained by hand), and helpers to mint users and
Bearer headers.
"""

import os
from collections.abc import Callable
from datetime import datetime
from typing import AsyncGenerator

import pytest

# Override environment BEFORE importing application modules
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["CORS_ORIGINS"] = '["*"]'
os.environ["RECONCILE_ENABLED"] = "false"
os.environ["LIVE_RELAY_ENABLED"] = "false"

from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from workpulse.api.v1.deps import get_db
from workpulse.core import timeutils
from workpulse.core.security import create_access_token
from workpulse.db.base import Base
from workpulse.db.session import build_session_factory
from workpulse.main import app
from workpulse.models.user import User
from workpulse.services.dispatcher import dispatcher


@pytest.fixture
async def test_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'workpulse_test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def session_factory(test_engine) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Session factory for the test database.

    The notification dispatcher is pointed at the same database but no
    worker is started; tests call ``dispatcher.drain()`` to process the
    queued intents in their own task.
    """
    factory = build_session_factory(test_engine)
    dispatcher.configure(factory)

    async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with factory() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    yield factory
    app.dependency_overrides.pop(get_db, None)
    await dispatcher.stop()
    await dispatcher.drain()


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Return a raw database session for direct queries in tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def async_client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Return a httpx AsyncClient wired to the app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


# ── Identity helpers ────────────────────────────────────────────────
@pytest.fixture
def make_user(db_session: AsyncSession):
    counter = {"n": 0}

    async def _make(role: str = "employee", employee_id: str | None = None, **kw) -> User:
        counter["n"] += 1
        user = User(
            email=kw.pop("email", f"{role}{counter['n']}@test.local"),
            full_name=kw.pop("full_name", f"{role.title()} {counter['n']}"),
            role=role,
            employee_id=employee_id,
            is_active=kw.pop("is_active", True),
        )
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _make


@pytest.fixture
def auth_headers() -> Callable[[User], dict[str, str]]:
    def _headers(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}

    return _headers


@pytest.fixture
def freeze_clock(monkeypatch) -> Callable[[datetime], None]:
    """Pin ``timeutils.now_local`` to a fixed local instant."""

    def _freeze(moment: datetime) -> None:
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=timeutils.local_zone())
        monkeypatch.setattr(timeutils, "now_local", lambda: moment)

    return _freeze

"""
FastAPI dependencies — caller identity and database session.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Optional

from fastapi import Cookie, Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from workpulse.core.security import decode_access_token, subject_id
from workpulse.db.session import async_session_factory
from workpulse.models.user import User

# Tokens are issued by the identity service; auto_error=False so we can fall back to the cookie
bearer_scheme = HTTPBearer(auto_error=False)


# ── Database session ────────────────────────────────────────────────
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


def _token_from(header_token: str | None, cookie_token: str | None) -> str | None:
    # Priority: Header > Cookie ("Bearer <token>" or bare token)
    if header_token:
        return header_token
    if cookie_token:
        return cookie_token.split(" ", 1)[1] if cookie_token.startswith("Bearer ") else cookie_token
    return None


async def resolve_user(db: AsyncSession, token: str | None) -> User | None:
    """Token → active ``User`` row, or ``None``. Shared with the WebSocket route."""
    if not token:
        return None
    user_id = subject_id(decode_access_token(token))
    if user_id is None:
        return None
    user = await db.get(User, user_id)
    if user is None or not user.is_active:
        return None
    return user


# ── Auth dependencies ───────────────────────────────────────────────
async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    access_token: Optional[str] = Cookie(default=None),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Decode JWT from Header OR Cookie, look up user."""
    header_token = credentials.credentials if credentials else None
    user = await resolve_user(db, _token_from(header_token, access_token))
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user

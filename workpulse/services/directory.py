"""
Identity lookups used for notification targeting.
"""

from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from workpulse.models.user import User


def coerce_user_id(value: object) -> int | None:
    """Return a positive int id, or ``None`` when *value* cannot be one."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, str) and value.strip().isdigit():
        parsed = int(value.strip())
        return parsed if parsed > 0 else None
    return None


async def existing_user_ids(db: AsyncSession, candidates: Iterable[object]) -> list[int]:
    """Filter *candidates* down to ids of active users, keeping first-seen order."""
    ordered: list[int] = []
    for raw in candidates:
        uid = coerce_user_id(raw)
        if uid is not None and uid not in ordered:
            ordered.append(uid)
    if not ordered:
        return []
    result = await db.execute(
        select(User.id).where(User.id.in_(ordered), User.is_active.is_(True))
    )
    found = set(result.scalars().all())
    return [uid for uid in ordered if uid in found]


async def user_ids_with_roles(db: AsyncSession, roles: Iterable[str]) -> list[int]:
    result = await db.execute(
        select(User.id)
        .where(User.role.in_(list(roles)), User.is_active.is_(True))
        .order_by(User.id)
    )
    return list(result.scalars().all())


async def all_active_user_ids(db: AsyncSession) -> list[int]:
    result = await db.execute(select(User.id).where(User.is_active.is_(True)).order_by(User.id))
    return list(result.scalars().all())


async def find_by_employee_id(db: AsyncSession, employee_id: str) -> User | None:
    result = await db.execute(select(User).where(User.employee_id == employee_id))
    return result.scalar_one_or_none()

"""
Caller identity endpoint.
"""

from fastapi import APIRouter, Depends

from workpulse.api.v1.deps import get_current_user
from workpulse.models.user import User
from workpulse.schemas.user import UserRead

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me", response_model=UserRead)
async def read_current_user(
    current_user: User = Depends(get_current_user),
) -> User:
    """Return the resolved caller (role and attendance identity included)."""
    return current_user

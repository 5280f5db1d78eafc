"""Pydantic schemas for the resolved caller and system status."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class UserRead(BaseModel):
    id: int
    email: str
    full_name: str | None
    role: str
    employee_id: str | None
    is_active: bool
    created_at: datetime | None

    model_config = {"from_attributes": True}


class HealthResponse(BaseModel):
    db: bool
    redis: bool
    dispatcher: bool
    live_connections: int = 0

"""Pydantic schemas for attendance records."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Annotated

from pydantic import AfterValidator, BaseModel, field_validator

from workpulse.models.attendance import AttendanceStatus

_EMPLOYEE_ID_RE = re.compile(r"^[A-Za-z0-9:_-]{1,64}$")
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _employee_id(v: str) -> str:
    v = v.strip()
    if not _EMPLOYEE_ID_RE.match(v):
        raise ValueError("employeeId must be 1-64 alphanumeric chars (colons / hyphens allowed)")
    return v


def _name(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("Name must not be empty")
    if len(v) > 200:
        raise ValueError("Name must not exceed 200 characters")
    return v


EmployeeId = Annotated[str, AfterValidator(_employee_id)]
Name = Annotated[str, AfterValidator(_name)]


# ── Punch in / out ──────────────────────────────────────────────────
class PunchInRequest(BaseModel):
    employee_id: EmployeeId
    name: Name


class PunchOutRequest(BaseModel):
    employee_id: EmployeeId


# ── Manual / admin ──────────────────────────────────────────────────
class ManualMarkRequest(BaseModel):
    employee_id: EmployeeId
    name: str | None = None
    date: str
    status: AttendanceStatus

    @field_validator("date")
    @classmethod
    def _date(cls, v: str) -> str:
        v = v.strip()
        if not _DATE_RE.match(v):
            raise ValueError("date must be YYYY-MM-DD")
        return v


class AttendanceEdit(BaseModel):
    name: str | None = None
    punch_in: str | None = None
    punch_out: str | None = None
    status: AttendanceStatus | None = None


class AttendanceRead(BaseModel):
    id: int
    employee_id: str
    name: str
    date: str
    punch_in: str | None
    punch_out: str | None
    status: AttendanceStatus
    working_hours: str | None
    created_at: datetime | None
    updated_at: datetime | None

    model_config = {"from_attributes": True}


class ReconcileResponse(BaseModel):
    date: str
    closed: int
    failed: int
    employee_ids: list[str]


class DeleteResponse(BaseModel):
    success: bool
    message: str

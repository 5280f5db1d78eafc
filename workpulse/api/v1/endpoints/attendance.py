"""
Attendance endpoints — punch in/out, manual marks, admin edits, reconciliation.

- Employees punch for themselves; supervisors may punch on behalf of anyone.
- Manual marks need admin / HR / manager; edits admin / HR; delete and
  on-demand reconciliation admin only.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from workpulse.api.v1.deps import get_current_user, get_db
from workpulse.core.permissions import authorize
from workpulse.models.attendance import AttendanceRecord
from workpulse.models.user import User
from workpulse.schemas.attendance import (AttendanceEdit, AttendanceRead,
                                          DeleteResponse, ManualMarkRequest,
                                          PunchInRequest, PunchOutRequest,
                                          ReconcileResponse)
from workpulse.services import attendance as engine

router = APIRouter(prefix="/attendance", tags=["attendance"])
logger = logging.getLogger(__name__)


# ── Punch in / out ──────────────────────────────────────────────────
@router.post("", response_model=AttendanceRead, status_code=201)
async def punch_in(
    body: PunchInRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> AttendanceRecord:
    """Open today's attendance record; status comes from the arrival window."""
    authorize("attendance.punch", user, employee_id=body.employee_id)
    return await engine.punch_in(db, body.employee_id, body.name, sender_id=user.id)


@router.put("/logout", response_model=AttendanceRead)
async def punch_out(
    body: PunchOutRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> AttendanceRecord:
    """Close today's record and apply the punch-out override rule."""
    authorize("attendance.punch", user, employee_id=body.employee_id)
    return await engine.punch_out(db, body.employee_id, sender_id=user.id)


# ── Manual / admin ──────────────────────────────────────────────────
@router.put("/mark", response_model=AttendanceRead)
async def mark_attendance(
    body: ManualMarkRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> AttendanceRecord:
    authorize("attendance.mark", user)
    return await engine.mark_manual(
        db, body.employee_id, body.name, body.date, body.status.value, sender_id=user.id
    )


@router.post("/reconcile", response_model=ReconcileResponse)
async def reconcile(
    date: str | None = Query(default=None, description="YYYY-MM-DD, defaults to today"),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> ReconcileResponse:
    """Run the end-of-day auto punch-out sweep now (idempotent)."""
    authorize("attendance.reconcile", user)
    result = await engine.reconcile_day(db, date)
    return ReconcileResponse(
        date=result.date,
        closed=len(result.closed),
        failed=len(result.failed),
        employee_ids=result.closed,
    )


@router.get("", response_model=list[AttendanceRead])
async def list_attendance(
    date: str | None = Query(default=None),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> list[AttendanceRecord]:
    authorize("attendance.read_all", user)
    return await engine.list_attendance(db, date=date)


@router.get("/employee/{employee_id}", response_model=list[AttendanceRead])
async def employee_attendance(
    employee_id: str,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> list[AttendanceRecord]:
    if user.employee_id != employee_id:
        authorize("attendance.read_all", user)
    return await engine.list_attendance(db, employee_id=employee_id)


@router.put("/{record_id}", response_model=AttendanceRead)
async def edit_attendance(
    record_id: int,
    body: AttendanceEdit,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> AttendanceRecord:
    authorize("attendance.edit", user)
    changes = body.model_dump(exclude_unset=True)
    if changes.get("status") is not None:
        changes["status"] = body.status.value  # type: ignore[union-attr]
    return await engine.edit_attendance(db, record_id, changes, sender_id=user.id)


@router.delete("/{record_id}", response_model=DeleteResponse)
async def delete_attendance(
    record_id: int,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> DeleteResponse:
    authorize("attendance.delete", user)
    record = await engine.delete_attendance(db, record_id, actor_id=user.id)
    return DeleteResponse(success=True, message=f"Attendance for {record.name} ({record.date}) deleted")

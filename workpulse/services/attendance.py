"""
Attendance status engine.

Status is a pure function of the punch times:

* punch-in sets a provisional status from the arrival window table;
* punch-out can only downgrade it to ``Absent`` (leaving after the
  workday cutoff), never upgrade it;
* manual marks (``Absent`` / ``Leave``) and the end-of-day reconciliation
  bypass both rules.

Uniqueness of (employee_id, date) is enforced by the store; the
read-check-write paths below also use compare-and-set updates so two
concurrent calls can never both succeed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, time, timezone

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from workpulse.core import timeutils
from workpulse.core.config import settings
from workpulse.core.exceptions import Conflict, NotFound, ValidationError
from workpulse.models.attendance import MANUAL_STATUSES, AttendanceRecord, AttendanceStatus
from workpulse.models.notification import NotificationCategory, NotificationPriority
from workpulse.models.user import SUPERVISOR_ROLES
from workpulse.services.dispatcher import NotificationIntent, dispatcher
from workpulse.services.notifications import NotificationContent

logger = logging.getLogger(__name__)

ATTENDANCE_LINK = "/attendance"

# (start inclusive, end exclusive, status), evaluated on the punch-in clock
PUNCH_IN_WINDOWS: tuple[tuple[time, time, AttendanceStatus], ...] = (
    (time(10, 0), time(11, 0), AttendanceStatus.PRESENT),
    (time(11, 0), time(14, 0), AttendanceStatus.LATE),
    (time(14, 0), time(15, 0), AttendanceStatus.HALF_DAY),
)

EDITABLE_FIELDS = ("name", "punch_in", "punch_out", "status")


# ── Rule engine ─────────────────────────────────────────────────────
def calculate_status(punch_in: str | time) -> AttendanceStatus:
    """Arrival window table; anything outside every window is ``Absent``."""
    clock = timeutils.parse_clock(punch_in) if isinstance(punch_in, str) else punch_in
    for start, end, status in PUNCH_IN_WINDOWS:
        if start <= clock < end:
            return status
    return AttendanceStatus.ABSENT


def apply_punch_out_rule(punch_out: str | time, current_status: str) -> str:
    """Leaving strictly after the workday cutoff forces ``Absent``."""
    clock = timeutils.parse_clock(punch_out) if isinstance(punch_out, str) else punch_out
    if clock > timeutils.parse_clock(settings.WORKDAY_CUTOFF):
        return AttendanceStatus.ABSENT.value
    return current_status


def _attendance_note(title: str, message: str, *, sender_id: int | None, priority: str = "normal") -> NotificationContent:
    return NotificationContent(
        title=title,
        message=message,
        category=NotificationCategory.ATTENDANCE.value,
        priority=priority,
        link=ATTENDANCE_LINK,
        sender_id=sender_id,
    )


def _require(value: str | None, label: str) -> str:
    value = (value or "").strip()
    if not value:
        raise ValidationError(f"{label} is required")
    return value


async def _find(db: AsyncSession, employee_id: str, date: str) -> AttendanceRecord | None:
    result = await db.execute(
        select(AttendanceRecord)
        .where(AttendanceRecord.employee_id == employee_id, AttendanceRecord.date == date)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _get(db: AsyncSession, record_id: int) -> AttendanceRecord:
    record = await db.get(AttendanceRecord, record_id)
    if record is None:
        raise NotFound("Record not found")
    return record


# ── Punch in / out ──────────────────────────────────────────────────
async def punch_in(
    db: AsyncSession,
    employee_id: str,
    name: str,
    *,
    sender_id: int | None = None,
    now: datetime | None = None,
) -> AttendanceRecord:
    employee_id = _require(employee_id, "employeeId")
    name = _require(name, "name")
    now = now or timeutils.now_local()
    date = timeutils.format_date(now)
    clock = timeutils.format_clock(now)

    if await _find(db, employee_id, date) is not None:
        raise Conflict("Already punched in today")

    record = AttendanceRecord(
        employee_id=employee_id,
        name=name,
        date=date,
        punch_in=clock,
        status=calculate_status(clock).value,
    )
    db.add(record)
    try:
        await db.commit()
    except IntegrityError:
        # Lost the race against a concurrent punch-in for the same day
        await db.rollback()
        raise Conflict("Already punched in today") from None
    await db.refresh(record)
    logger.info("Punch in %s on %s at %s → %s", employee_id, date, clock, record.status)

    dispatcher.enqueue(
        NotificationIntent.to_roles(
            SUPERVISOR_ROLES,
            _attendance_note("Punch In", f"{name} has punched in at {clock}.", sender_id=sender_id),
        )
    )
    return record


async def punch_out(
    db: AsyncSession,
    employee_id: str,
    *,
    sender_id: int | None = None,
    now: datetime | None = None,
) -> AttendanceRecord:
    employee_id = _require(employee_id, "employeeId")
    now = now or timeutils.now_local()
    date = timeutils.format_date(now)
    clock = timeutils.format_clock(now)

    record = await _find(db, employee_id, date)
    if record is None:
        raise NotFound("No active session found for today")
    if record.punch_out is not None:
        raise Conflict("Already punched out today")
    if record.punch_in is None:
        raise Conflict(f"Attendance for {date} was marked {record.status}; nothing to punch out")

    working_hours = timeutils.working_duration(record.punch_in, clock)
    final_status = apply_punch_out_rule(clock, record.status)

    result = await db.execute(
        update(AttendanceRecord)
        .where(AttendanceRecord.id == record.id, AttendanceRecord.punch_out.is_(None))
        .values(
            punch_out=clock,
            working_hours=working_hours,
            status=final_status,
            updated_at=datetime.now(timezone.utc),
        )
    )
    if result.rowcount != 1:
        await db.rollback()
        raise Conflict("Already punched out today")
    await db.commit()
    await db.refresh(record)
    logger.info("Punch out %s on %s at %s (%s) → %s", employee_id, date, clock, working_hours, final_status)

    dispatcher.enqueue(
        NotificationIntent.to_roles(
            SUPERVISOR_ROLES,
            _attendance_note(
                "Punch Out",
                f"{record.name} has punched out at {clock}. Duration: {working_hours}",
                sender_id=sender_id,
            ),
        )
    )
    return record


# ── Manual / administrative paths ───────────────────────────────────
def _clear_punches(record: AttendanceRecord) -> None:
    record.punch_in = None
    record.punch_out = None
    record.working_hours = None


async def mark_manual(
    db: AsyncSession,
    employee_id: str,
    name: str | None,
    date: str,
    status: str,
    *,
    sender_id: int | None = None,
) -> AttendanceRecord:
    """Upsert an ``Absent`` / ``Leave`` fact for *date*."""
    employee_id = _require(employee_id, "employeeId")
    timeutils.parse_date(date)
    try:
        manual = AttendanceStatus(status)
    except ValueError:
        manual = None
    if manual not in MANUAL_STATUSES:
        allowed = ", ".join(s.value for s in MANUAL_STATUSES)
        raise ValidationError(f"Manual status must be one of: {allowed}")

    record = await _find(db, employee_id, date)
    if record is None:
        record = AttendanceRecord(employee_id=employee_id, name=_require(name, "name"), date=date)
        db.add(record)
    elif name:
        record.name = name.strip()
    record.status = manual.value
    _clear_punches(record)

    try:
        await db.commit()
    except IntegrityError:
        # A punch-in created the row meanwhile; overwrite it
        await db.rollback()
        record = await _find(db, employee_id, date)
        if record is None:
            raise
        record.status = manual.value
        _clear_punches(record)
        await db.commit()
    await db.refresh(record)
    logger.info("Manual mark %s on %s → %s", employee_id, date, manual.value)

    dispatcher.enqueue(
        NotificationIntent.to_employee(
            employee_id,
            _attendance_note(
                "Attendance Updated",
                f"Your attendance for {date} was marked as: {manual.value}.",
                sender_id=sender_id,
            ),
        )
    )
    return record


async def edit_attendance(
    db: AsyncSession,
    record_id: int,
    changes: dict,
    *,
    sender_id: int | None = None,
) -> AttendanceRecord:
    """Administrative edit that keeps the record consistent with the rules.

    A supplied ``Absent`` / ``Leave`` behaves like a manual mark. Otherwise,
    whenever the record carries a punch-in the status is re-derived from
    the punch times; a supplied status is only trusted without one.
    """
    unknown = set(changes) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")

    record = await _get(db, record_id)

    status = changes.get("status")
    if status is not None:
        try:
            status = AttendanceStatus(status).value
        except ValueError:
            raise ValidationError(f"Invalid status '{status}'") from None

    if changes.get("name"):
        record.name = changes["name"].strip()

    if status in {s.value for s in MANUAL_STATUSES}:
        record.status = status
        _clear_punches(record)
    else:
        for key in ("punch_in", "punch_out"):
            if key in changes:
                value = changes[key]
                setattr(record, key, timeutils.normalize_clock(value) if value else None)

        if record.punch_in:
            record.status = calculate_status(record.punch_in).value
            if record.punch_out:
                record.working_hours = timeutils.working_duration(record.punch_in, record.punch_out)
                record.status = apply_punch_out_rule(record.punch_out, record.status)
            else:
                record.working_hours = None
        else:
            if record.punch_out:
                raise ValidationError("punch_out requires a punch_in")
            if status is not None:
                record.status = status
            record.working_hours = None

    await db.commit()
    await db.refresh(record)
    logger.info("Attendance record %d edited → %s", record.id, record.status)

    dispatcher.enqueue(
        NotificationIntent.to_employee(
            record.employee_id,
            _attendance_note(
                "Attendance Record Modified",
                f"Your attendance for {record.date} has been updated.",
                sender_id=sender_id,
            ),
        )
    )
    return record


async def delete_attendance(db: AsyncSession, record_id: int, *, actor_id: int | None = None) -> AttendanceRecord:
    record = await _get(db, record_id)
    await db.delete(record)
    await db.commit()
    logger.info("Attendance record %d (%s, %s) deleted", record_id, record.employee_id, record.date)

    dispatcher.enqueue(
        NotificationIntent.to_roles(
            SUPERVISOR_ROLES,
            _attendance_note(
                "Attendance Record Deleted",
                f"Attendance for {record.name} ({record.date}) was deleted.",
                sender_id=actor_id,
                priority=NotificationPriority.HIGH.value,
            ),
            exclude_ids={actor_id} if actor_id else set(),
        )
    )
    return record


async def list_attendance(
    db: AsyncSession,
    *,
    employee_id: str | None = None,
    date: str | None = None,
) -> list[AttendanceRecord]:
    query = select(AttendanceRecord).order_by(
        AttendanceRecord.date.desc(), AttendanceRecord.employee_id
    )
    if employee_id:
        query = query.where(AttendanceRecord.employee_id == employee_id)
    if date:
        timeutils.parse_date(date)
        query = query.where(AttendanceRecord.date == date)
    result = await db.execute(query)
    return list(result.scalars().all())


# ── End-of-day reconciliation ───────────────────────────────────────
@dataclass
class ReconcileResult:
    date: str
    closed: list[str] = field(default_factory=list)  # employee ids
    failed: list[str] = field(default_factory=list)


async def reconcile_day(db: AsyncSession, date: str | None = None) -> ReconcileResult:
    """Close every session on *date* that was punched in but never out.

    Safe to re-run: only rows still missing a punch-out are touched, and
    each row is closed with its own compare-and-set.
    """
    date = date or timeutils.today_str()
    timeutils.parse_date(date)
    cutoff = timeutils.normalize_clock(settings.AUTO_PUNCH_OUT_TIME)
    outcome = ReconcileResult(date=date)

    result = await db.execute(
        select(AttendanceRecord).where(
            AttendanceRecord.date == date,
            AttendanceRecord.punch_in.is_not(None),
            AttendanceRecord.punch_out.is_(None),
        )
    )
    open_sessions = [(r.id, r.employee_id, r.name, r.punch_in) for r in result.scalars().all()]

    for record_id, employee_id, name, punched_in in open_sessions:
        try:
            working_hours = timeutils.working_duration(punched_in, cutoff)
            closed = await db.execute(
                update(AttendanceRecord)
                .where(AttendanceRecord.id == record_id, AttendanceRecord.punch_out.is_(None))
                .values(
                    punch_out=cutoff,
                    working_hours=working_hours,
                    status=AttendanceStatus.AUTO_PUNCH_OUT.value,
                    updated_at=datetime.now(timezone.utc),
                )
            )
            await db.commit()
        except (SQLAlchemyError, ValidationError):
            await db.rollback()
            logger.error("Auto punch-out failed for %s on %s", employee_id, date, exc_info=True)
            outcome.failed.append(employee_id)
            continue

        if closed.rowcount != 1:
            continue  # closed by someone else in between
        outcome.closed.append(employee_id)
        logger.info("Auto punch-out for %s (%s): %s", name, employee_id, working_hours)

        dispatcher.enqueue(
            NotificationIntent.to_employee(
                employee_id,
                _attendance_note(
                    "Auto Punch Out",
                    f"You forgot to punch out. You were auto-logged out at {cutoff}. Hours: {working_hours}",
                    sender_id=None,
                    priority=NotificationPriority.HIGH.value,
                ),
            )
        )

    logger.info(
        "Reconciliation for %s: %d closed, %d failed",
        date,
        len(outcome.closed),
        len(outcome.failed),
    )
    return outcome

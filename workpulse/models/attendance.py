"""
AttendanceRecord model — one row per employee per civil day.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Index, Integer, String, UniqueConstraint

from workpulse.db.base import Base


class AttendanceStatus(str, enum.Enum):
    PRESENT = "Present"
    LATE = "Late"
    HALF_DAY = "HalfDay"
    ABSENT = "Absent"
    LEAVE = "Leave"
    AUTO_PUNCH_OUT = "AutoPunchOut"


MANUAL_STATUSES = (AttendanceStatus.ABSENT, AttendanceStatus.LEAVE)


class AttendanceRecord(Base):
    __tablename__ = "attendance_records"
    __table_args__ = (
        UniqueConstraint("employee_id", "date", name="uq_attendance_emp_date"),
        Index("ix_attendance_date_punch_out", "date", "punch_out"),
    )

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    employee_id: str = Column(String(64), nullable=False, index=True)  # type: ignore[assignment]
    name: str = Column(String(200), nullable=False)  # type: ignore[assignment]
    date: str = Column(String(10), nullable=False)  # type: ignore[assignment]  # YYYY-MM-DD
    punch_in: str | None = Column(String(11), nullable=True)  # type: ignore[assignment]  # hh:mm:ss AM
    punch_out: str | None = Column(String(11), nullable=True)  # type: ignore[assignment]
    status: str = Column(  # type: ignore[assignment]
        String(20),
        nullable=False,
        default=AttendanceStatus.PRESENT.value,
    )
    working_hours: str | None = Column(String(20), nullable=True)  # type: ignore[assignment]
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

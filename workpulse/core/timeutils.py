"""
Civil date / clock helpers for the fixed attendance timezone.

Punch times travel and rest as 12-hour ``hh:mm:ss AM/PM`` strings. All
arithmetic happens on same-day instants anchored to a fixed reference
date, so a punch-out that reads earlier than its punch-in is simply a
non-positive duration and never rolls over midnight.
"""

from __future__ import annotations

from datetime import date, datetime, time
from functools import lru_cache
from zoneinfo import ZoneInfo

from workpulse.core.config import settings
from workpulse.core.exceptions import ValidationError

CLOCK_FORMAT = "%I:%M:%S %p"
_INPUT_FORMATS = ("%I:%M:%S %p", "%I:%M %p")
DATE_FORMAT = "%Y-%m-%d"
_REFERENCE_DATE = date(2000, 1, 1)


@lru_cache(maxsize=None)
def _zone(name: str) -> ZoneInfo:
    return ZoneInfo(name)


def local_zone() -> ZoneInfo:
    return _zone(settings.TIMEZONE)


def now_local() -> datetime:
    """Current instant in the attendance timezone."""
    return datetime.now(local_zone())


def today_str() -> str:
    return now_local().strftime(DATE_FORMAT)


def format_date(value: date | datetime) -> str:
    return value.strftime(DATE_FORMAT)


def parse_date(value: str) -> date:
    """Validate a ``YYYY-MM-DD`` civil date."""
    try:
        return datetime.strptime(value, DATE_FORMAT).date()
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid date '{value}', expected YYYY-MM-DD") from None


def format_clock(value: time | datetime) -> str:
    """``time`` → ``"hh:mm:ss AM/PM"``."""
    if isinstance(value, datetime):
        value = value.time()
    # %p is locale dependent, build the suffix explicitly
    suffix = "AM" if value.hour < 12 else "PM"
    hour = value.hour % 12 or 12
    return f"{hour:02d}:{value.minute:02d}:{value.second:02d} {suffix}"


def parse_clock(value: str) -> time:
    """``"hh:mm[:ss] AM/PM"`` → ``time``. Raises ``ValidationError``."""
    if not isinstance(value, str):
        raise ValidationError(f"Invalid time '{value}', expected hh:mm:ss AM/PM")
    text = " ".join(value.strip().upper().split())
    for fmt in _INPUT_FORMATS:
        try:
            return datetime.strptime(text, fmt).time()
        except ValueError:
            continue
    raise ValidationError(f"Invalid time '{value}', expected hh:mm:ss AM/PM")


def normalize_clock(value: str) -> str:
    return format_clock(parse_clock(value))


def to_instant(value: str | time) -> datetime:
    """Anchor a clock reading on the fixed reference date."""
    if isinstance(value, str):
        value = parse_clock(value)
    return datetime.combine(_REFERENCE_DATE, value)


def working_duration(punch_in: str | None, punch_out: str | None) -> str:
    """Elapsed ``"{h}h {m}m"`` between two clock readings, floored at ``"0h"``."""
    if not punch_in or not punch_out:
        return "0h"
    elapsed = to_instant(punch_out) - to_instant(punch_in)
    total_seconds = int(elapsed.total_seconds())
    if total_seconds <= 0:
        return "0h"
    hours, rest = divmod(total_seconds, 3600)
    return f"{hours}h {rest // 60}m"


def parse_hhmm(value: str) -> time:
    """``"HH:MM"`` 24-hour schedule setting → ``time``."""
    try:
        return datetime.strptime(value.strip(), "%H:%M").time()
    except (AttributeError, ValueError):
        raise ValidationError(f"Invalid schedule time '{value}', expected HH:MM") from None

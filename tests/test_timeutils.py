"""
Clock / date helpers.
"""

from datetime import datetime, time

import pytest

from workpulse.core import timeutils
from workpulse.core.exceptions import ValidationError


def test_format_clock_is_zero_padded_12_hour():
    assert timeutils.format_clock(time(10, 5, 7)) == "10:05:07 AM"
    assert timeutils.format_clock(time(0, 0, 0)) == "12:00:00 AM"
    assert timeutils.format_clock(time(12, 0, 1)) == "12:00:01 PM"
    assert timeutils.format_clock(datetime(2024, 1, 1, 18, 30, 0)) == "06:30:00 PM"


def test_parse_clock_accepts_optional_seconds_and_lowercase():
    assert timeutils.parse_clock("06:00:00 PM") == time(18, 0, 0)
    assert timeutils.parse_clock("6:00 pm") == time(18, 0, 0)
    assert timeutils.parse_clock("12:15:30 AM") == time(0, 15, 30)


@pytest.mark.parametrize("bad", ["", "25:00:00 PM", "10:00", "noon", None])
def test_parse_clock_rejects_garbage(bad):
    with pytest.raises(ValidationError):
        timeutils.parse_clock(bad)


def test_working_duration():
    assert timeutils.working_duration("10:00:00 AM", "06:30:00 PM") == "8h 30m"
    assert timeutils.working_duration("10:00:00 AM", "10:00:59 AM") == "0h 0m"


def test_working_duration_floors_at_zero():
    # punch-out earlier than punch-in never rolls over midnight
    assert timeutils.working_duration("06:00:00 PM", "10:00:00 AM") == "0h"
    assert timeutils.working_duration("10:00:00 AM", "10:00:00 AM") == "0h"
    assert timeutils.working_duration(None, "10:00:00 AM") == "0h"
    assert timeutils.working_duration("10:00:00 AM", None) == "0h"


def test_parse_date():
    assert timeutils.parse_date("2024-02-29").day == 29
    with pytest.raises(ValidationError):
        timeutils.parse_date("2023-02-29")
    with pytest.raises(ValidationError):
        timeutils.parse_date("29/02/2024")


def test_now_local_is_in_attendance_zone():
    assert timeutils.now_local().utcoffset() == timeutils.local_zone().utcoffset(datetime(2024, 1, 1))


def test_parse_hhmm():
    assert timeutils.parse_hhmm("23:55") == time(23, 55)
    with pytest.raises(ValidationError):
        timeutils.parse_hhmm("11:55 PM")

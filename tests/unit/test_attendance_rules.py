"""
Unit tests for the attendance rules: overtime split, working days, shift length.
"""

from datetime import date

import pytest

from backend.app.core.error_handler import ValidationError
from backend.app.models.hr import WorkShift
from backend.app.services.attendance_service import calculate_breakdown, is_rest_day, working_days_between
from backend.app.services.employee_service import parse_hhmm, shift_minutes

MONDAY = date(2025, 1, 13)
SATURDAY = date(2025, 1, 18)
SUNDAY = date(2025, 1, 19)


@pytest.mark.unit
@pytest.mark.p0
def test_weekday_overtime_beyond_standard_minutes():
    assert calculate_breakdown(600, MONDAY, 480) == (480, 120, 0)


@pytest.mark.unit
def test_short_weekday_is_all_normal():
    assert calculate_breakdown(300, MONDAY, 480) == (300, 0, 0)


@pytest.mark.unit
@pytest.mark.p0
def test_saturday_is_single_rate_overtime_in_a_five_day_week():
    assert calculate_breakdown(300, SATURDAY, 480, work_days_per_week=5) == (0, 300, 0)


@pytest.mark.unit
def test_saturday_is_a_working_day_in_a_six_day_week():
    assert calculate_breakdown(300, SATURDAY, 480, work_days_per_week=6) == (300, 0, 0)


@pytest.mark.unit
@pytest.mark.p0
def test_sunday_and_holidays_are_double_rate():
    assert calculate_breakdown(240, SUNDAY, 480) == (0, 0, 240)
    assert calculate_breakdown(240, MONDAY, 480, is_holiday=True) == (0, 0, 240)


@pytest.mark.unit
def test_negative_minutes_are_clamped():
    assert calculate_breakdown(-10, MONDAY, 480) == (0, 0, 0)


@pytest.mark.unit
def test_rest_day_detection():
    assert is_rest_day(SATURDAY, 5) is True
    assert is_rest_day(SATURDAY, 6) is False
    assert is_rest_day(SUNDAY, 5) is False
    assert is_rest_day(MONDAY, 5) is False


@pytest.mark.unit
def test_working_days_skip_weekend_and_holidays():
    # Mon 13 .. Sun 19 January 2025, Wednesday is a holiday
    days = working_days_between(MONDAY, SUNDAY, 5, {date(2025, 1, 15)})

    assert days == [date(2025, 1, 13), date(2025, 1, 14), date(2025, 1, 16), date(2025, 1, 17)]


@pytest.mark.unit
def test_shift_minutes_deduct_the_break():
    assert shift_minutes(WorkShift(start_time="08:00", end_time="17:00", break_minutes=60)) == 480


@pytest.mark.unit
def test_overnight_shift_minutes():
    assert shift_minutes(WorkShift(start_time="22:00", end_time="06:00", break_minutes=30)) == 450


@pytest.mark.unit
def test_parse_hhmm_rejects_bad_values():
    assert parse_hhmm("07:45") == 465
    with pytest.raises(ValidationError):
        parse_hhmm("25:00")
    with pytest.raises(ValidationError):
        parse_hhmm("8h")

"""
Attendance: badge scans, manual check-in/out and the daily overtime breakdown.

Each scan is stored as an AttendanceLog; the DailyAttendance row of that day keeps the
earliest check-in and the latest check-out and is recalculated after every scan.
"""

from __future__ import annotations

import calendar
import logging
import uuid
from dataclasses import dataclass, asdict
from datetime import date, datetime, timedelta

from sqlalchemy.orm import Session

from ..core.error_handler import BusinessRuleError, ValidationError
from ..models.hr import (
    ATTENDANCE_SOURCES,
    ATTENDANCE_STATUSES,
    LOG_TYPES,
    AttendanceLog,
    DailyAttendance,
    Employee,
    WorkShift,
)
from . import hr_settings_service
from .employee_service import get_employee, get_employee_by_qr_token, parse_hhmm, shift_minutes

logger = logging.getLogger(__name__)

SUNDAY = 6


@dataclass
class PeriodSummary:
    worked_mins: int = 0
    normal_mins: int = 0
    overtime_1x_mins: int = 0
    overtime_2x_mins: int = 0
    present_days: int = 0
    late_days: int = 0
    absent_days: int = 0
    leave_days: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


def is_rest_day(work_date: date, work_days_per_week: int) -> bool:
    """True for weekdays outside the working week (Mon..Fri for a 5 day week)."""
    return work_date.weekday() != SUNDAY and work_date.weekday() >= work_days_per_week


def calculate_breakdown(
    worked_mins: int,
    work_date: date,
    standard_mins: int,
    is_holiday: bool = False,
    work_days_per_week: int = 5,
) -> tuple[int, int, int]:
    """
    Split worked minutes into (normal, overtime 1x, overtime 2x).

    - Sunday / public holiday: all minutes are 2x overtime
    - Rest day of the working week (e.g. Saturday): all minutes are 1x overtime
    - Working day: up to the standard minutes are normal, the rest 1x overtime
    """
    worked_mins = max(worked_mins, 0)
    if is_holiday or work_date.weekday() == SUNDAY:
        return 0, 0, worked_mins
    if is_rest_day(work_date, work_days_per_week):
        return 0, worked_mins, 0
    normal = min(worked_mins, standard_mins)
    return normal, worked_mins - normal, 0


def _standard_minutes(db: Session, tenant_id: uuid.UUID, shift: WorkShift | None) -> int:
    if shift is not None:
        return shift_minutes(shift)
    daily_hours = hr_settings_service.get_decimal_setting(db, tenant_id, "DailyWorkHours", 8)
    return int(daily_hours * 60)


def _is_late(db: Session, tenant_id: uuid.UUID, shift: WorkShift | None, check_in: datetime) -> bool:
    if shift is None:
        return False
    tolerance = hr_settings_service.get_int_setting(db, tenant_id, "LateToleranceMinutes", 10)
    shift_start = parse_hhmm(shift.start_time)
    check_in_mins = check_in.hour * 60 + check_in.minute
    return check_in_mins > shift_start + tolerance


def recalculate(db: Session, record: DailyAttendance) -> DailyAttendance:
    """Recompute worked minutes, overtime split and Present/Late status of a day."""
    if record.status in ("Absent", "Leave", "Holiday") and record.check_in_time is None:
        return record

    shift = record.shift
    if record.check_in_time and record.check_out_time:
        worked = int((record.check_out_time - record.check_in_time).total_seconds() // 60)
        # Shift breaks are unpaid
        if shift is not None and worked > (shift.break_minutes or 0):
            worked -= shift.break_minutes or 0
        record.total_worked_mins = max(worked, 0)
    else:
        record.total_worked_mins = 0

    holidays = hr_settings_service.holiday_dates(db, record.tenant_id, record.work_date, record.work_date)
    work_days = hr_settings_service.get_int_setting(db, record.tenant_id, "WorkDaysPerWeek", 5)
    normal, ot1, ot2 = calculate_breakdown(
        record.total_worked_mins,
        record.work_date,
        _standard_minutes(db, record.tenant_id, shift),
        is_holiday=record.work_date in holidays,
        work_days_per_week=work_days,
    )
    record.normal_mins = normal
    record.overtime_1x_mins = ot1
    record.overtime_2x_mins = ot2

    if record.check_in_time is not None:
        record.status = "Late" if _is_late(db, record.tenant_id, shift, record.check_in_time) else "Present"
    return record


def get_daily_record(db: Session, employee: Employee, work_date: date) -> DailyAttendance | None:
    return (
        db.query(DailyAttendance)
        .filter(
            DailyAttendance.employee_id == employee.id,
            DailyAttendance.work_date == work_date,
            DailyAttendance.is_deleted.is_(False),
        )
        .first()
    )


def _get_or_create_daily(db: Session, employee: Employee, work_date: date, source: str) -> DailyAttendance:
    record = get_daily_record(db, employee, work_date)
    if record is None:
        record = DailyAttendance(
            tenant_id=employee.tenant_id,
            employee_id=employee.id,
            work_date=work_date,
            shift_id=employee.work_shift_id,
            status="Present",
            source=source,
        )
        db.add(record)
        db.flush()
    return record


def _open_record_for_check_out(db: Session, employee: Employee, log_time: datetime) -> DailyAttendance:
    """Day a check-out belongs to: the same day, or yesterday for a shift crossing midnight."""
    record = get_daily_record(db, employee, log_time.date())
    if record is None or record.check_in_time is None:
        shift = employee.work_shift
        if shift is not None and parse_hhmm(shift.end_time) <= parse_hhmm(shift.start_time):
            previous = get_daily_record(db, employee, log_time.date() - timedelta(days=1))
            if previous is not None and previous.check_in_time is not None:
                record = previous
    if record is None or record.check_in_time is None:
        raise BusinessRuleError(f"No check-in found on {log_time.date().isoformat()}")
    if log_time < record.check_in_time:
        raise BusinessRuleError("Check-out cannot be before check-in")
    return record


def record_scan(
    db: Session,
    tenant_id: uuid.UUID,
    log_type: str,
    log_time: datetime,
    employee_id: uuid.UUID | None = None,
    qr_token: str | None = None,
    supervisor_id: uuid.UUID | None = None,
    location: str | None = None,
    latitude: float | None = None,
    longitude: float | None = None,
    source: str = "Device",
) -> tuple[AttendanceLog, DailyAttendance]:
    """
    Store a scan and fold it into the day's attendance.

    Args:
        db: Database session
        tenant_id: Tenant of the scanner
        log_type: CheckIn or CheckOut
        log_time: Scan time (local)
        employee_id / qr_token: Who was scanned; one of them is required
        supervisor_id: Supervisor operating the scanner
        location, latitude, longitude: Where the scan happened
        source: Device or Manual

    Returns:
        (AttendanceLog, DailyAttendance)
    """
    if log_type not in LOG_TYPES:
        raise ValidationError(f"log_type must be one of {', '.join(LOG_TYPES)}")
    if source not in ATTENDANCE_SOURCES:
        raise ValidationError(f"source must be one of {', '.join(ATTENDANCE_SOURCES)}")
    if qr_token:
        employee = get_employee_by_qr_token(db, tenant_id, qr_token)
    elif employee_id:
        employee = get_employee(db, tenant_id, employee_id)
    else:
        raise ValidationError("employee_id or qr_token is required")

    log = AttendanceLog(
        tenant_id=tenant_id,
        employee_id=employee.id,
        supervisor_id=supervisor_id,
        log_type=log_type,
        log_time=log_time,
        location=location,
        latitude=latitude,
        longitude=longitude,
        source=source,
    )
    if log_type == "CheckIn":
        record = _get_or_create_daily(db, employee, log_time.date(), source)
        if record.check_in_time is None or log_time < record.check_in_time:
            record.check_in_time = log_time
    else:
        record = _open_record_for_check_out(db, employee, log_time)
        if record.check_out_time is None or log_time > record.check_out_time:
            record.check_out_time = log_time
    db.add(log)

    recalculate(db, record)
    db.flush()
    logger.info("%s scan for employee %s at %s", log_type, employee.id, log_time.isoformat())
    return log, record


def check_in(db: Session, tenant_id: uuid.UUID, employee_id: uuid.UUID, time: datetime) -> DailyAttendance:
    """Manual check-in; only one per day."""
    employee = get_employee(db, tenant_id, employee_id)
    record = get_daily_record(db, employee, time.date())
    if record is not None and record.check_in_time is not None:
        raise BusinessRuleError("Employee already checked in today")
    _, record = record_scan(db, tenant_id, "CheckIn", time, employee_id=employee.id, source="Manual")
    return record


def check_out(db: Session, tenant_id: uuid.UUID, employee_id: uuid.UUID, time: datetime) -> DailyAttendance:
    """Manual check-out; requires an earlier check-in, as a scanned one does."""
    _, record = record_scan(db, tenant_id, "CheckOut", time, employee_id=employee_id, source="Manual")
    return record


def _mark_day(db: Session, employee: Employee, work_date: date, status: str) -> DailyAttendance:
    record = get_daily_record(db, employee, work_date)
    if record is None:
        record = DailyAttendance(
            tenant_id=employee.tenant_id,
            employee_id=employee.id,
            work_date=work_date,
            shift_id=employee.work_shift_id,
            source="Manual",
        )
        db.add(record)
    elif record.check_in_time is not None:
        raise BusinessRuleError(f"Employee has a check-in on {work_date.isoformat()}")
    record.status = status
    record.total_worked_mins = 0
    record.normal_mins = 0
    record.overtime_1x_mins = 0
    record.overtime_2x_mins = 0
    db.flush()
    return record


def mark_absent(db: Session, tenant_id: uuid.UUID, employee_id: uuid.UUID, work_date: date) -> DailyAttendance:
    return _mark_day(db, get_employee(db, tenant_id, employee_id), work_date, "Absent")


def mark_leave(db: Session, employee: Employee, work_date: date) -> DailyAttendance:
    return _mark_day(db, employee, work_date, "Leave")


def clear_leave(db: Session, employee: Employee, work_date: date, user_id: uuid.UUID | None = None) -> None:
    """Drop the Leave mark of a cancelled leave; the day goes back to having no record."""
    record = get_daily_record(db, employee, work_date)
    if record is not None and record.status == "Leave" and record.check_in_time is None:
        record.soft_delete(user_id)
        db.flush()


def list_daily_attendance(
    db: Session,
    tenant_id: uuid.UUID,
    employee_id: uuid.UUID | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    status: str | None = None,
    limit: int = 500,
) -> list[DailyAttendance]:
    query = db.query(DailyAttendance).filter(
        DailyAttendance.tenant_id == tenant_id, DailyAttendance.is_deleted.is_(False)
    )
    if employee_id:
        query = query.filter(DailyAttendance.employee_id == employee_id)
    if start_date:
        query = query.filter(DailyAttendance.work_date >= start_date)
    if end_date:
        query = query.filter(DailyAttendance.work_date <= end_date)
    if status:
        if status not in ATTENDANCE_STATUSES:
            raise ValidationError(f"status must be one of {', '.join(ATTENDANCE_STATUSES)}")
        query = query.filter(DailyAttendance.status == status)
    return query.order_by(DailyAttendance.work_date.desc()).limit(limit).all()


def period_bounds(year: int, month: int) -> tuple[date, date]:
    if not 1 <= month <= 12:
        raise ValidationError("month must be between 1 and 12")
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def summarize_period(db: Session, employee: Employee, year: int, month: int) -> PeriodSummary:
    """Totals of a month used by the payroll run."""
    start, end = period_bounds(year, month)
    records = list_daily_attendance(
        db, employee.tenant_id, employee_id=employee.id, start_date=start, end_date=end, limit=62
    )
    summary = PeriodSummary()
    for record in records:
        summary.worked_mins += record.total_worked_mins or 0
        summary.normal_mins += record.normal_mins or 0
        summary.overtime_1x_mins += record.overtime_1x_mins or 0
        summary.overtime_2x_mins += record.overtime_2x_mins or 0
        if record.status == "Present":
            summary.present_days += 1
        elif record.status == "Late":
            summary.present_days += 1
            summary.late_days += 1
        elif record.status == "Absent":
            summary.absent_days += 1
        elif record.status == "Leave":
            summary.leave_days += 1
    return summary


def working_days_between(start: date, end: date, work_days_per_week: int, holidays: set[date]) -> list[date]:
    """Working days in [start, end], skipping rest days, Sundays and holidays."""
    days = []
    current = start
    while current <= end:
        if (
            current.weekday() != SUNDAY
            and not is_rest_day(current, work_days_per_week)
            and current not in holidays
        ):
            days.append(current)
        current += timedelta(days=1)
    return days

"""
API for attendance: badge scans, manual check-in/out, daily records and holidays.
"""

from __future__ import annotations

from typing import Any

from robyn import Request, Response

from ..core.auth import HR_ADMIN_ROLES, HR_STAFF_ROLES, get_request_context, require_roles
from ..core.error_handler import ValidationError, json_response, parse_json_body, require_fields
from ..models.hr import DailyAttendance, PublicHoliday
from ..services import attendance_service, employee_service, hr_settings_service, qr_service
from .common import local_now, parse_date, parse_datetime, parse_int, parse_uuid, path_uuid, query_param, session_for


def daily_to_dict(r: DailyAttendance) -> dict[str, Any]:
    return {
        "id": str(r.id),
        "employee_id": str(r.employee_id),
        "work_date": r.work_date.isoformat(),
        "shift_id": str(r.shift_id) if r.shift_id else None,
        "check_in_time": r.check_in_time.isoformat() if r.check_in_time else None,
        "check_out_time": r.check_out_time.isoformat() if r.check_out_time else None,
        "total_worked_mins": r.total_worked_mins,
        "normal_mins": r.normal_mins,
        "overtime_1x_mins": r.overtime_1x_mins,
        "overtime_2x_mins": r.overtime_2x_mins,
        "status": r.status,
        "source": r.source,
    }


def holiday_to_dict(h: PublicHoliday) -> dict[str, Any]:
    return {"id": str(h.id), "date": h.holiday_date.isoformat(), "name": h.name}


def scan(request: Request) -> Response:
    """
    POST /api/attendance/scan

    Called by the supervisor's scanner.

    Payload:
    {
      "qr": "<badge JSON or token>",      // or "employee_id"
      "log_type": "CheckIn",
      "log_time": "2025-01-15T08:02:00",  // optional, defaults to now
      "location": "Gate 1",
      "latitude": 35.18, "longitude": 33.36
    }
    """
    ctx = get_request_context(request)
    data = parse_json_body(request)
    require_fields(data, ["log_type"])
    if not data.get("qr") and not data.get("employee_id"):
        raise ValidationError("qr or employee_id is required")

    log_time = parse_datetime(data["log_time"], "log_time") if data.get("log_time") else local_now()
    with session_for(ctx) as db:
        log, record = attendance_service.record_scan(
            db,
            ctx.tenant_id,
            data["log_type"],
            log_time,
            employee_id=parse_uuid(data["employee_id"], "employee_id") if data.get("employee_id") else None,
            qr_token=qr_service.parse_scan_payload(data["qr"]) if data.get("qr") else None,
            supervisor_id=ctx.user_id,
            location=data.get("location"),
            latitude=data.get("latitude"),
            longitude=data.get("longitude"),
            source=data.get("source", "Device"),
        )
        return json_response({"log_id": str(log.id), "daily": daily_to_dict(record)}, 201)


def check_in(request: Request) -> Response:
    """POST /api/attendance/check-in  {"employee_id": "...", "time": "..."}"""
    ctx = require_roles(request, HR_STAFF_ROLES)
    data = parse_json_body(request)
    require_fields(data, ["employee_id"])
    time = parse_datetime(data["time"], "time") if data.get("time") else local_now()
    with session_for(ctx) as db:
        record = attendance_service.check_in(db, ctx.tenant_id, parse_uuid(data["employee_id"], "employee_id"), time)
        return json_response(daily_to_dict(record), 201)


def check_out(request: Request) -> Response:
    """POST /api/attendance/check-out  {"employee_id": "...", "time": "..."}"""
    ctx = require_roles(request, HR_STAFF_ROLES)
    data = parse_json_body(request)
    require_fields(data, ["employee_id"])
    time = parse_datetime(data["time"], "time") if data.get("time") else local_now()
    with session_for(ctx) as db:
        record = attendance_service.check_out(db, ctx.tenant_id, parse_uuid(data["employee_id"], "employee_id"), time)
        return json_response(daily_to_dict(record))


def mark_absent(request: Request) -> Response:
    """POST /api/attendance/absent  {"employee_id": "...", "work_date": "2025-01-15"}"""
    ctx = require_roles(request, HR_STAFF_ROLES)
    data = parse_json_body(request)
    require_fields(data, ["employee_id", "work_date"])
    with session_for(ctx) as db:
        record = attendance_service.mark_absent(
            db,
            ctx.tenant_id,
            parse_uuid(data["employee_id"], "employee_id"),
            parse_date(data["work_date"], "work_date"),
        )
        return json_response(daily_to_dict(record))


def list_daily(request: Request) -> Response:
    """
    GET /api/attendance/daily?employee_id=...&start_date=...&end_date=...&status=...
    """
    ctx = get_request_context(request)
    employee_id = query_param(request, "employee_id")
    start_date = query_param(request, "start_date")
    end_date = query_param(request, "end_date")
    with session_for(ctx) as db:
        records = attendance_service.list_daily_attendance(
            db,
            ctx.tenant_id,
            employee_id=parse_uuid(employee_id, "employee_id") if employee_id else None,
            start_date=parse_date(start_date, "start_date") if start_date else None,
            end_date=parse_date(end_date, "end_date") if end_date else None,
            status=query_param(request, "status"),
        )
        return json_response([daily_to_dict(r) for r in records])


def period_summary(request: Request) -> Response:
    """GET /api/attendance/summary/:employee_id?year=2025&month=1"""
    ctx = get_request_context(request)
    year = parse_int(query_param(request, "year"), "year")
    month = parse_int(query_param(request, "month"), "month")
    with session_for(ctx) as db:
        employee = employee_service.get_employee(db, ctx.tenant_id, path_uuid(request, "employee_id"))
        summary = attendance_service.summarize_period(db, employee, year, month)
        return json_response({"employee_id": str(employee.id), "year": year, "month": month, **summary.to_dict()})


def list_holidays(request: Request) -> Response:
    """GET /api/attendance/holidays?year=2025"""
    ctx = get_request_context(request)
    year = query_param(request, "year")
    with session_for(ctx) as db:
        holidays = hr_settings_service.list_public_holidays(
            db, ctx.tenant_id, parse_int(year, "year") if year else None
        )
        return json_response([holiday_to_dict(h) for h in holidays])


def create_holiday(request: Request) -> Response:
    """POST /api/attendance/holidays  {"date": "2025-04-23", "name": "National Sovereignty Day"}"""
    ctx = require_roles(request, HR_ADMIN_ROLES)
    data = parse_json_body(request)
    require_fields(data, ["date", "name"])
    with session_for(ctx) as db:
        holiday = hr_settings_service.create_public_holiday(
            db, ctx.tenant_id, parse_date(data["date"], "date"), data["name"]
        )
        return json_response(holiday_to_dict(holiday), 201)


def delete_holiday(request: Request) -> Response:
    """DELETE /api/attendance/holidays/:id"""
    ctx = require_roles(request, HR_ADMIN_ROLES)
    with session_for(ctx) as db:
        hr_settings_service.delete_reference_item(db, ctx.tenant_id, PublicHoliday, path_uuid(request), ctx.user_id)
    return json_response({"deleted": True})

"""
API for the HR organisation: departments, work shifts and employees.
"""

from __future__ import annotations

from typing import Any

from robyn import Request, Response

from ..core.auth import HR_ADMIN_ROLES, HR_STAFF_ROLES, PAYROLL_ROLES, get_request_context, require_roles
from ..core.error_handler import json_response, parse_json_body, require_fields
from ..models.hr import Department, Employee, SalaryHistory, WorkShift
from ..services import employee_service, qr_service
from .common import coerce_fields, parse_uuid, path_uuid, query_param, session_for

EMPLOYEE_UUID_FIELDS = ["department_id", "supervisor_id", "work_shift_id", "sgk_risk_profile_id"]
EMPLOYEE_DATE_FIELDS = ["hire_date", "work_permit_expiry", "health_report_expiry"]
EMPLOYEE_DECIMAL_FIELDS = ["current_salary", "transport_amount"]


def department_to_dict(d: Department) -> dict[str, Any]:
    return {
        "id": str(d.id),
        "name": d.name,
        "description": d.description,
        "manager_id": str(d.manager_id) if d.manager_id else None,
        "sgk_risk_profile_id": str(d.sgk_risk_profile_id) if d.sgk_risk_profile_id else None,
    }


def shift_to_dict(s: WorkShift) -> dict[str, Any]:
    return {
        "id": str(s.id),
        "name": s.name,
        "start_time": s.start_time,
        "end_time": s.end_time,
        "break_minutes": s.break_minutes,
    }


def employee_to_dict(e: Employee) -> dict[str, Any]:
    return {
        "id": str(e.id),
        "identity_number": e.identity_number,
        "first_name": e.first_name,
        "last_name": e.last_name,
        "full_name": e.full_name,
        "email": e.email,
        "job_title": e.job_title,
        "department_id": str(e.department_id),
        "supervisor_id": str(e.supervisor_id) if e.supervisor_id else None,
        "work_shift_id": str(e.work_shift_id) if e.work_shift_id else None,
        "hire_date": e.hire_date.isoformat() if e.hire_date else None,
        "current_salary": float(e.current_salary),
        "transport_amount": float(e.transport_amount or 0),
        "citizenship": e.citizenship,
        "social_security_type": e.social_security_type,
        "sgk_risk_profile_id": str(e.sgk_risk_profile_id) if e.sgk_risk_profile_id else None,
        "marital_status": e.marital_status,
        "is_spouse_working": e.is_spouse_working,
        "child_count": e.child_count,
        "is_pensioner": e.is_pensioner,
        "work_permit_number": e.work_permit_number,
        "work_permit_expiry": e.work_permit_expiry.isoformat() if e.work_permit_expiry else None,
        "passport_number": e.passport_number,
        "health_report_expiry": e.health_report_expiry.isoformat() if e.health_report_expiry else None,
        "bank_name": e.bank_name,
        "iban": e.iban,
        "status": e.status,
    }


def salary_history_to_dict(h: SalaryHistory) -> dict[str, Any]:
    return {
        "id": str(h.id),
        "old_salary": float(h.old_salary),
        "new_salary": float(h.new_salary),
        "effective_date": h.effective_date.isoformat(),
        "reason": h.reason,
    }


# Departments
def list_departments(request: Request) -> Response:
    """GET /api/hr/departments"""
    ctx = get_request_context(request)
    with session_for(ctx) as db:
        return json_response([department_to_dict(d) for d in employee_service.list_departments(db, ctx.tenant_id)])


def create_department(request: Request) -> Response:
    """
    POST /api/hr/departments

    Payload: {"name": "Production", "description": "...", "sgk_risk_profile_id": "..."}
    """
    ctx = require_roles(request, HR_ADMIN_ROLES)
    data = coerce_fields(parse_json_body(request), uuids=["manager_id", "sgk_risk_profile_id"])
    require_fields(data, ["name"])
    with session_for(ctx) as db:
        department = employee_service.create_department(
            db,
            ctx.tenant_id,
            data["name"],
            description=data.get("description"),
            manager_id=data.get("manager_id"),
            sgk_risk_profile_id=data.get("sgk_risk_profile_id"),
        )
        return json_response(department_to_dict(department), 201)


def update_department(request: Request) -> Response:
    """PUT /api/hr/departments/:id"""
    ctx = require_roles(request, HR_ADMIN_ROLES)
    data = coerce_fields(parse_json_body(request), uuids=["manager_id", "sgk_risk_profile_id"])
    with session_for(ctx) as db:
        department = employee_service.update_department(db, ctx.tenant_id, path_uuid(request), data)
        return json_response(department_to_dict(department))


def delete_department(request: Request) -> Response:
    """DELETE /api/hr/departments/:id"""
    ctx = require_roles(request, HR_ADMIN_ROLES)
    with session_for(ctx) as db:
        employee_service.delete_department(db, ctx.tenant_id, path_uuid(request), ctx.user_id)
    return json_response({"deleted": True})


# Work shifts
def list_work_shifts(request: Request) -> Response:
    """GET /api/hr/work-shifts"""
    ctx = get_request_context(request)
    with session_for(ctx) as db:
        return json_response([shift_to_dict(s) for s in employee_service.list_work_shifts(db, ctx.tenant_id)])


def create_work_shift(request: Request) -> Response:
    """
    POST /api/hr/work-shifts

    Payload: {"name": "Day", "start_time": "08:00", "end_time": "17:00", "break_minutes": 60}
    """
    ctx = require_roles(request, HR_ADMIN_ROLES)
    data = parse_json_body(request)
    require_fields(data, ["name", "start_time", "end_time"])
    with session_for(ctx) as db:
        shift = employee_service.create_work_shift(
            db,
            ctx.tenant_id,
            data["name"],
            data["start_time"],
            data["end_time"],
            break_minutes=int(data.get("break_minutes", 0)),
        )
        return json_response(shift_to_dict(shift), 201)


def update_work_shift(request: Request) -> Response:
    """PUT /api/hr/work-shifts/:id"""
    ctx = require_roles(request, HR_ADMIN_ROLES)
    data = parse_json_body(request)
    with session_for(ctx) as db:
        shift = employee_service.update_work_shift(db, ctx.tenant_id, path_uuid(request), data)
        return json_response(shift_to_dict(shift))


def delete_work_shift(request: Request) -> Response:
    """DELETE /api/hr/work-shifts/:id"""
    ctx = require_roles(request, HR_ADMIN_ROLES)
    with session_for(ctx) as db:
        employee_service.delete_work_shift(db, ctx.tenant_id, path_uuid(request), ctx.user_id)
    return json_response({"deleted": True})


# Employees
def list_employees(request: Request) -> Response:
    """
    GET /api/hr/employees?department_id=...&status=Active&search=...
    """
    ctx = get_request_context(request)
    department_id = query_param(request, "department_id")
    with session_for(ctx) as db:
        employees = employee_service.list_employees(
            db,
            ctx.tenant_id,
            department_id=parse_uuid(department_id, "department_id") if department_id else None,
            status=query_param(request, "status"),
            search=query_param(request, "search"),
        )
        return json_response([employee_to_dict(e) for e in employees])


def get_employee(request: Request) -> Response:
    """GET /api/hr/employees/:id"""
    ctx = get_request_context(request)
    with session_for(ctx) as db:
        return json_response(employee_to_dict(employee_service.get_employee(db, ctx.tenant_id, path_uuid(request))))


def create_employee(request: Request) -> Response:
    """
    POST /api/hr/employees

    Required: identity_number, first_name, last_name, department_id, current_salary.
    """
    ctx = require_roles(request, HR_STAFF_ROLES)
    data = parse_json_body(request)
    require_fields(data, ["identity_number", "first_name", "last_name", "department_id", "current_salary"])
    coerce_fields(data, uuids=EMPLOYEE_UUID_FIELDS, dates=EMPLOYEE_DATE_FIELDS, decimals=EMPLOYEE_DECIMAL_FIELDS)
    with session_for(ctx) as db:
        employee = employee_service.create_employee(db, ctx.tenant_id, data)
        return json_response(employee_to_dict(employee), 201)


def update_employee(request: Request) -> Response:
    """PUT /api/hr/employees/:id"""
    ctx = require_roles(request, HR_STAFF_ROLES)
    data = coerce_fields(
        parse_json_body(request),
        uuids=EMPLOYEE_UUID_FIELDS,
        dates=EMPLOYEE_DATE_FIELDS,
        decimals=EMPLOYEE_DECIMAL_FIELDS,
    )
    if "current_salary" in data:
        # Salary changes go through HR managers only
        ctx = require_roles(request, HR_ADMIN_ROLES)
    with session_for(ctx) as db:
        employee = employee_service.update_employee(db, ctx.tenant_id, path_uuid(request), data)
        return json_response(employee_to_dict(employee))


def change_salary(request: Request) -> Response:
    """
    POST /api/hr/employees/:id/salary

    Payload: {"new_salary": 45000, "effective_date": "2025-02-01", "reason": "Promotion"}
    """
    ctx = require_roles(request, HR_ADMIN_ROLES)
    data = parse_json_body(request)
    require_fields(data, ["new_salary"])
    coerce_fields(data, dates=["effective_date"], decimals=["new_salary"])
    with session_for(ctx) as db:
        employee = employee_service.get_employee(db, ctx.tenant_id, path_uuid(request))
        history = employee_service.change_salary(
            db, employee, data["new_salary"], effective_date=data.get("effective_date"), reason=data.get("reason")
        )
        return json_response(
            {
                "employee": employee_to_dict(employee),
                "history": salary_history_to_dict(history) if history else None,
            }
        )


def get_salary_history(request: Request) -> Response:
    """GET /api/hr/employees/:id/salary-history"""
    ctx = require_roles(request, PAYROLL_ROLES)
    with session_for(ctx) as db:
        rows = employee_service.salary_history(db, ctx.tenant_id, path_uuid(request))
        return json_response([salary_history_to_dict(h) for h in rows])


def terminate_employee(request: Request) -> Response:
    """POST /api/hr/employees/:id/terminate"""
    ctx = require_roles(request, HR_ADMIN_ROLES)
    with session_for(ctx) as db:
        employee = employee_service.terminate_employee(db, ctx.tenant_id, path_uuid(request))
        return json_response(employee_to_dict(employee))


def delete_employee(request: Request) -> Response:
    """DELETE /api/hr/employees/:id"""
    ctx = require_roles(request, HR_ADMIN_ROLES)
    with session_for(ctx) as db:
        employee_service.delete_employee(db, ctx.tenant_id, path_uuid(request), ctx.user_id)
    return json_response({"deleted": True})


def regenerate_qr_token(request: Request) -> Response:
    """POST /api/hr/employees/:id/qr-token

    Issues a new badge token; the old badge stops working.
    """
    ctx = require_roles(request, HR_STAFF_ROLES)
    with session_for(ctx) as db:
        employee = employee_service.get_employee(db, ctx.tenant_id, path_uuid(request))
        token = employee_service.generate_qr_token(db, employee)
        return json_response({"employee_id": str(employee.id), "qr_token": token})


def get_badge(request: Request) -> Response:
    """GET /api/hr/employees/:id/badge - badge payload and QR image as a data URL."""
    ctx = require_roles(request, HR_STAFF_ROLES)
    with session_for(ctx) as db:
        employee = employee_service.get_employee(db, ctx.tenant_id, path_uuid(request))
        payload = qr_service.create_employee_badge_qr_data(employee)
        return json_response(
            {
                "employee_id": str(employee.id),
                "full_name": employee.full_name,
                "payload": payload,
                "qr_code": qr_service.generate_qr_code_data_url(payload),
            }
        )


def badge_context(request: Request) -> dict[str, Any]:
    """Template context of the printable badge page."""
    ctx = require_roles(request, HR_STAFF_ROLES)
    with session_for(ctx) as db:
        employee = employee_service.get_employee(db, ctx.tenant_id, path_uuid(request))
        payload = qr_service.create_employee_badge_qr_data(employee)
        return {
            "employee": employee_to_dict(employee),
            "department": employee.department.name,
            "qr_code": qr_service.generate_qr_code_data_url(payload, size=6),
        }
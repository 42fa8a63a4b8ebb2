"""
API for leave: policies, allocations and requests.
"""

from __future__ import annotations

from datetime import date
from typing import Any

from robyn import Request, Response

from ..core.auth import HR_ADMIN_ROLES, HR_STAFF_ROLES, get_request_context, require_roles
from ..core.error_handler import json_response, parse_json_body, require_fields
from ..models.hr import LeaveAllocation, LeavePolicy, LeaveRequest
from ..services import leave_service
from .common import parse_date, parse_decimal, parse_int, parse_uuid, path_uuid, query_param, session_for


def policy_to_dict(p: LeavePolicy) -> dict[str, Any]:
    return {
        "id": str(p.id),
        "name": p.name,
        "default_days": p.default_days,
        "is_paid": p.is_paid,
        "sgk_missing_day_code": p.sgk_missing_day_code,
        "requires_approval": p.requires_approval,
    }


def allocation_to_dict(a: LeaveAllocation) -> dict[str, Any]:
    return {
        "id": str(a.id),
        "employee_id": str(a.employee_id),
        "leave_policy_id": str(a.leave_policy_id),
        "year": a.year,
        "total_days_allocated": float(a.total_days_allocated),
        "days_used": float(a.days_used),
        "remaining_days": float(a.remaining_days),
    }


def request_to_dict(r: LeaveRequest) -> dict[str, Any]:
    return {
        "id": str(r.id),
        "employee_id": str(r.employee_id),
        "leave_policy_id": str(r.leave_policy_id),
        "start_date": r.start_date.isoformat(),
        "end_date": r.end_date.isoformat(),
        "days_count": float(r.days_count),
        "reason": r.reason,
        "status": r.status,
        "approved_by": str(r.approved_by) if r.approved_by else None,
        "approved_at": r.approved_at.isoformat() if r.approved_at else None,
        "rejection_reason": r.rejection_reason,
    }


# Policies
def list_policies(request: Request) -> Response:
    """GET /api/leave/policies"""
    ctx = get_request_context(request)
    with session_for(ctx) as db:
        return json_response([policy_to_dict(p) for p in leave_service.list_leave_policies(db, ctx.tenant_id)])


def create_policy(request: Request) -> Response:
    """POST /api/leave/policies  {"name": "Annual Leave", "default_days": 14, "is_paid": true}"""
    ctx = require_roles(request, HR_ADMIN_ROLES)
    data = parse_json_body(request)
    require_fields(data, ["name"])
    with session_for(ctx) as db:
        return json_response(policy_to_dict(leave_service.create_leave_policy(db, ctx.tenant_id, data)), 201)


def update_policy(request: Request) -> Response:
    """PUT /api/leave/policies/:id"""
    ctx = require_roles(request, HR_ADMIN_ROLES)
    data = parse_json_body(request)
    with session_for(ctx) as db:
        policy = leave_service.update_leave_policy(db, ctx.tenant_id, path_uuid(request), data)
        return json_response(policy_to_dict(policy))


def delete_policy(request: Request) -> Response:
    """DELETE /api/leave/policies/:id"""
    ctx = require_roles(request, HR_ADMIN_ROLES)
    with session_for(ctx) as db:
        leave_service.delete_leave_policy(db, ctx.tenant_id, path_uuid(request), ctx.user_id)
    return json_response({"deleted": True})


# Allocations
def list_allocations(request: Request) -> Response:
    """GET /api/leave/allocations?employee_id=...&year=2025"""
    ctx = get_request_context(request)
    employee_id = query_param(request, "employee_id")
    year = query_param(request, "year")
    with session_for(ctx) as db:
        allocations = leave_service.list_allocations(
            db,
            ctx.tenant_id,
            employee_id=parse_uuid(employee_id, "employee_id") if employee_id else None,
            year=parse_int(year, "year") if year else None,
        )
        return json_response([allocation_to_dict(a) for a in allocations])


def allocate(request: Request) -> Response:
    """POST /api/leave/allocations  {"employee_id", "leave_policy_id", "year", "days"}"""
    ctx = require_roles(request, HR_ADMIN_ROLES)
    data = parse_json_body(request)
    require_fields(data, ["employee_id", "leave_policy_id", "year", "days"])
    with session_for(ctx) as db:
        allocation = leave_service.allocate_leave(
            db,
            ctx.tenant_id,
            parse_uuid(data["employee_id"], "employee_id"),
            parse_uuid(data["leave_policy_id"], "leave_policy_id"),
            parse_int(data["year"], "year"),
            parse_decimal(data["days"], "days"),
        )
        return json_response(allocation_to_dict(allocation), 201)


def accrue(request: Request) -> Response:
    """POST /api/leave/allocations/accrue  {"year": 2025}"""
    ctx = require_roles(request, HR_ADMIN_ROLES)
    data = parse_json_body(request)
    year = parse_int(data.get("year", date.today().year), "year")
    with session_for(ctx) as db:
        created = leave_service.accrue_annual_allocations(db, ctx.tenant_id, year)
    return json_response({"year": year, "created": created})


def balance(request: Request) -> Response:
    """GET /api/leave/balance/:employee_id?year=2025"""
    ctx = get_request_context(request)
    year = query_param(request, "year")
    with session_for(ctx) as db:
        rows = leave_service.get_leave_balance(
            db,
            ctx.tenant_id,
            path_uuid(request, "employee_id"),
            parse_int(year, "year") if year else date.today().year,
        )
        return json_response(rows)


# Requests
def list_requests(request: Request) -> Response:
    """GET /api/leave/requests?employee_id=...&status=Pending"""
    ctx = get_request_context(request)
    employee_id = query_param(request, "employee_id")
    with session_for(ctx) as db:
        requests = leave_service.list_leave_requests(
            db,
            ctx.tenant_id,
            employee_id=parse_uuid(employee_id, "employee_id") if employee_id else None,
            status=query_param(request, "status"),
        )
        return json_response([request_to_dict(r) for r in requests])


def create_request(request: Request) -> Response:
    """
    POST /api/leave/requests

    Payload:
    {
      "employee_id": "...",
      "leave_policy_id": "...",
      "start_date": "2025-03-03",
      "end_date": "2025-03-07",
      "reason": "Holiday"
    }
    """
    ctx = get_request_context(request)
    data = parse_json_body(request)
    require_fields(data, ["employee_id", "leave_policy_id", "start_date", "end_date"])
    with session_for(ctx) as db:
        leave_request = leave_service.create_leave_request(
            db,
            ctx.tenant_id,
            parse_uuid(data["employee_id"], "employee_id"),
            parse_uuid(data["leave_policy_id"], "leave_policy_id"),
            parse_date(data["start_date"], "start_date"),
            parse_date(data["end_date"], "end_date"),
            reason=data.get("reason"),
            days_count=parse_decimal(data["days_count"], "days_count") if data.get("days_count") else None,
        )
        return json_response(request_to_dict(leave_request), 201)


def approve_request(request: Request) -> Response:
    """POST /api/leave/requests/:id/approve"""
    ctx = require_roles(request, HR_STAFF_ROLES)
    with session_for(ctx) as db:
        leave_request = leave_service.approve_leave_request(db, ctx.tenant_id, path_uuid(request), ctx.user_id)
        return json_response(request_to_dict(leave_request))


def reject_request(request: Request) -> Response:
    """POST /api/leave/requests/:id/reject  {"reason": "..."}"""
    ctx = require_roles(request, HR_STAFF_ROLES)
    data = parse_json_body(request)
    with session_for(ctx) as db:
        leave_request = leave_service.reject_leave_request(
            db, ctx.tenant_id, path_uuid(request), ctx.user_id, reason=data.get("reason")
        )
        return json_response(request_to_dict(leave_request))


def cancel_request(request: Request) -> Response:
    """POST /api/leave/requests/:id/cancel"""
    ctx = get_request_context(request)
    with session_for(ctx) as db:
        leave_request = leave_service.cancel_leave_request(db, ctx.tenant_id, path_uuid(request), ctx.user_id)
        return json_response(request_to_dict(leave_request))

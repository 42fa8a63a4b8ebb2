"""
API for payroll runs, entries and payslips.
"""

from __future__ import annotations

from typing import Any

from robyn import Request, Response

from ..core.auth import HR_ADMIN_ROLES, PAYROLL_ROLES, require_roles
from ..core.error_handler import json_response, parse_json_body, require_fields
from ..models.payroll import Payroll
from ..services import payroll_service
from .common import parse_int, path_uuid, query_param, session_for


def payroll_to_dict(p: Payroll) -> dict[str, Any]:
    return {
        "id": str(p.id),
        "period": p.period,
        "description": p.description,
        "status": p.status,
        "total_amount": float(p.total_amount),
        "currency_code": p.currency_code,
        "approved_by": str(p.approved_by) if p.approved_by else None,
        "approved_at": p.approved_at.isoformat() if p.approved_at else None,
        "paid_at": p.paid_at.isoformat() if p.paid_at else None,
    }


def run_payroll(request: Request) -> Response:
    """
    POST /api/payroll/run

    Payload: {"year": 2025, "month": 1, "description": "January"}
    """
    ctx = require_roles(request, PAYROLL_ROLES)
    data = parse_json_body(request)
    require_fields(data, ["year", "month"])
    with session_for(ctx) as db:
        payroll = payroll_service.run_payroll(
            db,
            ctx.tenant_id,
            parse_int(data["year"], "year"),
            parse_int(data["month"], "month"),
            user_id=ctx.user_id,
            username=ctx.username,
            description=data.get("description"),
        )
        body = payroll_to_dict(payroll)
        body["employee_count"] = len(payroll.entries)
        return json_response(body, 201)


def list_payrolls(request: Request) -> Response:
    """GET /api/payroll?year=2025&status=Draft"""
    ctx = require_roles(request, PAYROLL_ROLES)
    year = query_param(request, "year")
    with session_for(ctx) as db:
        payrolls = payroll_service.list_payrolls(
            db, ctx.tenant_id, year=parse_int(year, "year") if year else None, status=query_param(request, "status")
        )
        return json_response([payroll_to_dict(p) for p in payrolls])


def get_payroll(request: Request) -> Response:
    """GET /api/payroll/:id"""
    ctx = require_roles(request, PAYROLL_ROLES)
    with session_for(ctx) as db:
        return json_response(payroll_to_dict(payroll_service.get_payroll(db, ctx.tenant_id, path_uuid(request))))


def get_entries(request: Request) -> Response:
    """GET /api/payroll/:id/entries"""
    ctx = require_roles(request, PAYROLL_ROLES)
    with session_for(ctx) as db:
        entries = payroll_service.get_payroll_entries(db, ctx.tenant_id, path_uuid(request))
        return json_response([payroll_service.entry_to_dict(e) for e in entries])


def get_payslip(request: Request) -> Response:
    """GET /api/payroll/:id/payslip/:entry_id"""
    return json_response(payslip_context(request))


def payslip_context(request: Request) -> dict[str, Any]:
    ctx = require_roles(request, PAYROLL_ROLES)
    with session_for(ctx) as db:
        return payroll_service.get_payslip(db, ctx.tenant_id, path_uuid(request), path_uuid(request, "entry_id"))


def get_summary(request: Request) -> Response:
    """GET /api/payroll/:id/summary"""
    ctx = require_roles(request, PAYROLL_ROLES)
    with session_for(ctx) as db:
        return json_response(payroll_service.get_payroll_summary(db, ctx.tenant_id, path_uuid(request)))


def approve_payroll(request: Request) -> Response:
    """POST /api/payroll/:id/approve"""
    ctx = require_roles(request, HR_ADMIN_ROLES)
    with session_for(ctx) as db:
        payroll = payroll_service.approve_payroll(db, ctx.tenant_id, path_uuid(request), ctx.user_id)
        return json_response(payroll_to_dict(payroll))


def pay_payroll(request: Request) -> Response:
    """POST /api/payroll/:id/pay"""
    ctx = require_roles(request, PAYROLL_ROLES)
    with session_for(ctx) as db:
        payroll = payroll_service.mark_payroll_paid(db, ctx.tenant_id, path_uuid(request))
        return json_response(payroll_to_dict(payroll))

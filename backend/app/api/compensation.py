"""
API for advances, bonuses and sales commissions.
"""

from __future__ import annotations

from datetime import date
from typing import Any

from robyn import Request, Response

from ..core.auth import HR_STAFF_ROLES, PAYROLL_ROLES, get_request_context, require_roles
from ..core.error_handler import json_response, parse_json_body, require_fields
from ..models.hr import AdvanceRequest, Bonus, CommissionRule, PeriodCommission
from ..services import compensation_service, employee_service
from .common import parse_date, parse_decimal, parse_uuid, path_uuid, query_param, session_for


def advance_to_dict(a: AdvanceRequest) -> dict[str, Any]:
    return {
        "id": str(a.id),
        "employee_id": str(a.employee_id),
        "request_date": a.request_date.isoformat(),
        "amount": float(a.amount),
        "description": a.description,
        "status": a.status,
        "repayment_date": a.repayment_date.isoformat() if a.repayment_date else None,
        "is_paid": a.is_paid,
        "is_deducted": a.is_deducted,
    }


def bonus_to_dict(b: Bonus) -> dict[str, Any]:
    return {
        "id": str(b.id),
        "employee_id": str(b.employee_id),
        "amount": float(b.amount),
        "description": b.description,
        "date": b.bonus_date.isoformat(),
        "period": b.period,
        "is_processed": b.is_processed,
    }


def rule_to_dict(r: CommissionRule) -> dict[str, Any]:
    return {
        "id": str(r.id),
        "role": r.role,
        "min_target": float(r.min_target),
        "commission_percentage": float(r.commission_percentage),
        "is_active": r.is_active,
    }


def commission_to_dict(c: PeriodCommission) -> dict[str, Any]:
    return {
        "id": str(c.id),
        "employee_id": str(c.employee_id),
        "period": c.period,
        "sales_amount": float(c.sales_amount),
        "commission_amount": float(c.commission_amount),
        "is_processed": c.is_processed,
    }


def _optional_uuid(request: Request, name: str):
    value = query_param(request, name)
    return parse_uuid(value, name) if value else None


# Advances
def list_advances(request: Request) -> Response:
    """GET /api/compensation/advances?employee_id=...&status=..."""
    ctx = get_request_context(request)
    with session_for(ctx) as db:
        advances = compensation_service.list_advance_requests(
            db, ctx.tenant_id, employee_id=_optional_uuid(request, "employee_id"), status=query_param(request, "status")
        )
        return json_response([advance_to_dict(a) for a in advances])


def create_advance(request: Request) -> Response:
    """
    POST /api/compensation/advances

    Payload: {"employee_id": "...", "amount": 5000, "request_date": "2025-01-10", "repayment_date": "2025-01-31"}
    """
    ctx = get_request_context(request)
    data = parse_json_body(request)
    require_fields(data, ["employee_id", "amount"])
    with session_for(ctx) as db:
        advance = compensation_service.create_advance_request(
            db,
            ctx.tenant_id,
            parse_uuid(data["employee_id"], "employee_id"),
            data["amount"],
            parse_date(data["request_date"], "request_date") if data.get("request_date") else date.today(),
            description=data.get("description"),
            repayment_date=parse_date(data["repayment_date"], "repayment_date") if data.get("repayment_date") else None,
        )
        return json_response(advance_to_dict(advance), 201)


def approve_advance(request: Request) -> Response:
    """POST /api/compensation/advances/:id/approve"""
    ctx = require_roles(request, HR_STAFF_ROLES)
    with session_for(ctx) as db:
        return json_response(advance_to_dict(compensation_service.approve_advance(db, ctx.tenant_id, path_uuid(request))))


def reject_advance(request: Request) -> Response:
    """POST /api/compensation/advances/:id/reject"""
    ctx = require_roles(request, HR_STAFF_ROLES)
    with session_for(ctx) as db:
        return json_response(advance_to_dict(compensation_service.reject_advance(db, ctx.tenant_id, path_uuid(request))))


def pay_advance(request: Request) -> Response:
    """POST /api/compensation/advances/:id/pay"""
    ctx = require_roles(request, PAYROLL_ROLES)
    with session_for(ctx) as db:
        return json_response(
            advance_to_dict(compensation_service.mark_advance_paid(db, ctx.tenant_id, path_uuid(request)))
        )


# Bonuses
def list_bonuses(request: Request) -> Response:
    """GET /api/compensation/bonuses?employee_id=...&period=2025-01"""
    ctx = get_request_context(request)
    with session_for(ctx) as db:
        bonuses = compensation_service.list_bonuses(
            db, ctx.tenant_id, employee_id=_optional_uuid(request, "employee_id"), period=query_param(request, "period")
        )
        return json_response([bonus_to_dict(b) for b in bonuses])


def create_bonus(request: Request) -> Response:
    """POST /api/compensation/bonuses  {"employee_id", "amount", "description", "date", "period"?}"""
    ctx = require_roles(request, HR_STAFF_ROLES)
    data = parse_json_body(request)
    require_fields(data, ["employee_id", "amount", "description", "date"])
    with session_for(ctx) as db:
        bonus = compensation_service.create_bonus(
            db,
            ctx.tenant_id,
            parse_uuid(data["employee_id"], "employee_id"),
            data["amount"],
            data["description"],
            parse_date(data["date"], "date"),
            period=data.get("period"),
        )
        return json_response(bonus_to_dict(bonus), 201)


# Commission rules
def list_commission_rules(request: Request) -> Response:
    """GET /api/compensation/commission-rules"""
    ctx = get_request_context(request)
    with session_for(ctx) as db:
        rules = compensation_service.list_commission_rules(db, ctx.tenant_id, role=query_param(request, "role"))
        return json_response([rule_to_dict(r) for r in rules])


def create_commission_rule(request: Request) -> Response:
    """POST /api/compensation/commission-rules  {"role": "Sales Rep", "min_target": 100000, "commission_percentage": 2.5}"""
    ctx = require_roles(request, PAYROLL_ROLES)
    data = parse_json_body(request)
    require_fields(data, ["role", "min_target", "commission_percentage"])
    with session_for(ctx) as db:
        rule = compensation_service.create_commission_rule(
            db, ctx.tenant_id, data["role"], data["min_target"], data["commission_percentage"]
        )
        return json_response(rule_to_dict(rule), 201)


def update_commission_rule(request: Request) -> Response:
    """PUT /api/compensation/commission-rules/:id"""
    ctx = require_roles(request, PAYROLL_ROLES)
    data = parse_json_body(request)
    with session_for(ctx) as db:
        rule = compensation_service.update_commission_rule(db, ctx.tenant_id, path_uuid(request), data)
        return json_response(rule_to_dict(rule))


def delete_commission_rule(request: Request) -> Response:
    """DELETE /api/compensation/commission-rules/:id"""
    ctx = require_roles(request, PAYROLL_ROLES)
    with session_for(ctx) as db:
        compensation_service.delete_commission_rule(db, ctx.tenant_id, path_uuid(request), ctx.user_id)
    return json_response({"deleted": True})


# Commissions
def calculate_commission(request: Request) -> Response:
    """POST /api/compensation/commissions/calculate  {"employee_id", "sales_amount"}

    Preview only, nothing is stored.
    """
    ctx = get_request_context(request)
    data = parse_json_body(request)
    require_fields(data, ["employee_id", "sales_amount"])
    with session_for(ctx) as db:
        employee = employee_service.get_employee(db, ctx.tenant_id, parse_uuid(data["employee_id"], "employee_id"))
        amount = compensation_service.calculate_commission(db, employee, parse_decimal(data["sales_amount"], "sales_amount"))
        return json_response({"employee_id": str(employee.id), "commission_amount": float(amount)})


def list_commissions(request: Request) -> Response:
    """GET /api/compensation/commissions?employee_id=...&period=2025-01"""
    ctx = get_request_context(request)
    with session_for(ctx) as db:
        rows = compensation_service.list_period_commissions(
            db, ctx.tenant_id, employee_id=_optional_uuid(request, "employee_id"), period=query_param(request, "period")
        )
        return json_response([commission_to_dict(c) for c in rows])


def record_commission(request: Request) -> Response:
    """POST /api/compensation/commissions  {"employee_id", "period": "2025-01", "sales_amount"}"""
    ctx = require_roles(request, PAYROLL_ROLES)
    data = parse_json_body(request)
    require_fields(data, ["employee_id", "period", "sales_amount"])
    with session_for(ctx) as db:
        commission = compensation_service.record_period_commission(
            db, ctx.tenant_id, parse_uuid(data["employee_id"], "employee_id"), data["period"], data["sales_amount"]
        )
        return json_response(commission_to_dict(commission), 201)

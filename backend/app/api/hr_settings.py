"""
API for payroll reference data: tax and social security rules, minimum wage,
parameters, SGK risk profiles, earning/deduction types, HR settings and the audit log.
"""

from __future__ import annotations

from typing import Any

from robyn import Request, Response

from ..core.audit_service import get_audit_logs
from ..core.auth import HR_ADMIN_ROLES, PAYROLL_ROLES, require_roles
from ..core.error_handler import json_response, parse_json_body, require_fields
from ..models.audit import AuditLog
from ..models.hr import HrSetting, SgkRiskProfile
from ..models.payroll import (
    EarningDeductionType,
    MinimumWage,
    PayrollParameter,
    SocialSecurityRule,
    TaxRule,
)
from ..services import hr_settings_service
from .common import coerce_fields, parse_datetime, parse_int, parse_uuid, path_uuid, query_param, session_for

RATE_FIELDS = [
    "employee_deduction_rate",
    "employer_deduction_rate",
    "provident_fund_employee_rate",
    "provident_fund_employer_rate",
    "unemployment_insurance_employee_rate",
    "unemployment_insurance_employer_rate",
]

# Deletable reference tables by URL segment
REFERENCE_MODELS = {
    "tax-rules": TaxRule,
    "ss-rules": SocialSecurityRule,
    "minimum-wages": MinimumWage,
    "risk-profiles": SgkRiskProfile,
    "earning-types": EarningDeductionType,
}


def _dec(value) -> float | None:
    return float(value) if value is not None else None


def _iso(value) -> str | None:
    return value.isoformat() if value is not None else None


def tax_rule_to_dict(r: TaxRule) -> dict[str, Any]:
    return {
        "id": str(r.id),
        "name": r.name,
        "lower_limit": _dec(r.lower_limit),
        "upper_limit": _dec(r.upper_limit),
        "rate": _dec(r.rate),
        "order": r.order,
        "effective_from": _iso(r.effective_from),
        "effective_to": _iso(r.effective_to),
    }


def ss_rule_to_dict(r: SocialSecurityRule) -> dict[str, Any]:
    data = {
        "id": str(r.id),
        "name": r.name,
        "citizenship_type": r.citizenship_type,
        "social_security_type": r.social_security_type,
        "effective_from": _iso(r.effective_from),
        "effective_to": _iso(r.effective_to),
    }
    data.update({f: _dec(getattr(r, f)) for f in RATE_FIELDS})
    return data


def minimum_wage_to_dict(w: MinimumWage) -> dict[str, Any]:
    return {
        "id": str(w.id),
        "gross_amount": _dec(w.gross_amount),
        "net_amount": _dec(w.net_amount),
        "effective_from": _iso(w.effective_from),
        "effective_to": _iso(w.effective_to),
    }


def parameter_to_dict(p: PayrollParameter) -> dict[str, Any]:
    return {"id": str(p.id), "key": p.key, "value": _dec(p.value), "description": p.description}


def risk_profile_to_dict(p: SgkRiskProfile) -> dict[str, Any]:
    return {
        "id": str(p.id),
        "name": p.name,
        "employer_multiplier": _dec(p.employer_multiplier),
        "description": p.description,
    }


def earning_type_to_dict(t: EarningDeductionType) -> dict[str, Any]:
    return {
        "id": str(t.id),
        "code": t.code,
        "name": t.name,
        "kind": t.kind,
        "is_taxable": t.is_taxable,
        "is_sgk_exempt": t.is_sgk_exempt,
        "exempt_limit": _dec(t.exempt_limit),
        "multiplier": _dec(t.multiplier),
    }


def setting_to_dict(s: HrSetting) -> dict[str, Any]:
    return {"key": s.key, "value": s.value, "description": s.description}


def audit_to_dict(a: AuditLog) -> dict[str, Any]:
    return {
        "id": str(a.id),
        "timestamp": _iso(a.timestamp),
        "user_id": str(a.user_id) if a.user_id else None,
        "username": a.username,
        "action": a.action,
        "entity_type": a.entity_type,
        "entity_id": a.entity_id,
        "old_values": a.old_values,
        "new_values": a.new_values,
        "affected_columns": a.affected_columns,
        "description": a.description,
    }


# Tax rules
def list_tax_rules(request: Request) -> Response:
    """GET /api/hr-settings/tax-rules"""
    ctx = require_roles(request, PAYROLL_ROLES)
    with session_for(ctx) as db:
        return json_response([tax_rule_to_dict(r) for r in hr_settings_service.list_tax_rules(db, ctx.tenant_id)])


def create_tax_rule(request: Request) -> Response:
    """
    POST /api/hr-settings/tax-rules

    Payload: {"name": "Band 1", "lower_limit": 0, "upper_limit": 30000, "rate": 0.1,
              "order": 1, "effective_from": "2025-01-01"}
    """
    ctx = require_roles(request, HR_ADMIN_ROLES)
    data = parse_json_body(request)
    require_fields(data, ["name", "rate", "effective_from"])
    coerce_fields(
        data,
        dates=["effective_from", "effective_to"],
        decimals=["lower_limit", "upper_limit", "rate"],
    )
    with session_for(ctx) as db:
        rule = hr_settings_service.create_tax_rule(
            db,
            ctx.tenant_id,
            data["name"],
            data.get("lower_limit", 0),
            data.get("upper_limit"),
            data["rate"],
            parse_int(data.get("order", 0), "order"),
            data["effective_from"],
            data.get("effective_to"),
        )
        return json_response(tax_rule_to_dict(rule), 201)


def update_tax_rule(request: Request) -> Response:
    """PUT /api/hr-settings/tax-rules/:id"""
    ctx = require_roles(request, HR_ADMIN_ROLES)
    data = coerce_fields(
        parse_json_body(request),
        dates=["effective_from", "effective_to"],
        decimals=["lower_limit", "upper_limit", "rate"],
    )
    with session_for(ctx) as db:
        rule = hr_settings_service.update_tax_rule(db, ctx.tenant_id, path_uuid(request), data)
        return json_response(tax_rule_to_dict(rule))


# Social security rules
def list_ss_rules(request: Request) -> Response:
    """GET /api/hr-settings/ss-rules"""
    ctx = require_roles(request, PAYROLL_ROLES)
    with session_for(ctx) as db:
        return json_response([ss_rule_to_dict(r) for r in hr_settings_service.list_ss_rules(db, ctx.tenant_id)])


def create_ss_rule(request: Request) -> Response:
    """POST /api/hr-settings/ss-rules"""
    ctx = require_roles(request, HR_ADMIN_ROLES)
    data = parse_json_body(request)
    require_fields(data, ["effective_from"])
    coerce_fields(data, dates=["effective_from", "effective_to"])
    with session_for(ctx) as db:
        return json_response(ss_rule_to_dict(hr_settings_service.create_ss_rule(db, ctx.tenant_id, data)), 201)


# Minimum wage
def list_minimum_wages(request: Request) -> Response:
    """GET /api/hr-settings/minimum-wages"""
    ctx = require_roles(request, PAYROLL_ROLES)
    with session_for(ctx) as db:
        return json_response(
            [minimum_wage_to_dict(w) for w in hr_settings_service.list_minimum_wages(db, ctx.tenant_id)]
        )


def create_minimum_wage(request: Request) -> Response:
    """POST /api/hr-settings/minimum-wages  {"gross_amount", "net_amount", "effective_from"}"""
    ctx = require_roles(request, HR_ADMIN_ROLES)
    data = parse_json_body(request)
    require_fields(data, ["gross_amount", "net_amount", "effective_from"])
    coerce_fields(data, dates=["effective_from", "effective_to"], decimals=["gross_amount", "net_amount"])
    with session_for(ctx) as db:
        wage = hr_settings_service.create_minimum_wage(
            db, ctx.tenant_id, data["gross_amount"], data["net_amount"], data["effective_from"], data.get("effective_to")
        )
        return json_response(minimum_wage_to_dict(wage), 201)


# Parameters
def list_parameters(request: Request) -> Response:
    """GET /api/hr-settings/parameters"""
    ctx = require_roles(request, PAYROLL_ROLES)
    with session_for(ctx) as db:
        return json_response(
            [parameter_to_dict(p) for p in hr_settings_service.list_payroll_parameters(db, ctx.tenant_id)]
        )


def set_parameter(request: Request) -> Response:
    """PUT /api/hr-settings/parameters  {"key": "StampTaxRate", "value": 0.002}"""
    ctx = require_roles(request, HR_ADMIN_ROLES)
    data = parse_json_body(request)
    require_fields(data, ["key", "value"])
    coerce_fields(data, decimals=["value"])
    with session_for(ctx) as db:
        param = hr_settings_service.set_payroll_parameter(
            db, ctx.tenant_id, data["key"], data["value"], data.get("description")
        )
        return json_response(parameter_to_dict(param))


# Risk profiles
def list_risk_profiles(request: Request) -> Response:
    """GET /api/hr-settings/risk-profiles"""
    ctx = require_roles(request, PAYROLL_ROLES)
    with session_for(ctx) as db:
        return json_response(
            [risk_profile_to_dict(p) for p in hr_settings_service.list_risk_profiles(db, ctx.tenant_id)]
        )


def create_risk_profile(request: Request) -> Response:
    """POST /api/hr-settings/risk-profiles  {"name", "employer_multiplier", "description"}"""
    ctx = require_roles(request, HR_ADMIN_ROLES)
    data = parse_json_body(request)
    require_fields(data, ["name", "employer_multiplier"])
    coerce_fields(data, decimals=["employer_multiplier"])
    with session_for(ctx) as db:
        profile = hr_settings_service.create_risk_profile(
            db, ctx.tenant_id, data["name"], data["employer_multiplier"], data.get("description")
        )
        return json_response(risk_profile_to_dict(profile), 201)


# Earning / deduction types
def list_earning_types(request: Request) -> Response:
    """GET /api/hr-settings/earning-types"""
    ctx = require_roles(request, PAYROLL_ROLES)
    with session_for(ctx) as db:
        return json_response(
            [earning_type_to_dict(t) for t in hr_settings_service.list_earning_deduction_types(db, ctx.tenant_id)]
        )


def create_earning_type(request: Request) -> Response:
    """POST /api/hr-settings/earning-types  {"code", "name", "kind", "is_taxable", ...}"""
    ctx = require_roles(request, HR_ADMIN_ROLES)
    data = parse_json_body(request)
    require_fields(data, ["code", "name"])
    with session_for(ctx) as db:
        item_type = hr_settings_service.create_earning_deduction_type(db, ctx.tenant_id, data)
        return json_response(earning_type_to_dict(item_type), 201)


def delete_reference_item(request: Request) -> Response:
    """DELETE /api/hr-settings/:kind/:id  (kind: tax-rules, ss-rules, minimum-wages, ...)"""
    ctx = require_roles(request, HR_ADMIN_ROLES)
    kind = request.path_params.get("kind")
    model = REFERENCE_MODELS.get(kind)
    if model is None:
        return json_response({"error": f"Unknown reference type '{kind}'", "error_code": "NOT_FOUND"}, 404)
    with session_for(ctx) as db:
        hr_settings_service.delete_reference_item(db, ctx.tenant_id, model, path_uuid(request), ctx.user_id)
    return json_response({"deleted": True})


# HR settings
def list_settings(request: Request) -> Response:
    """GET /api/hr-settings/settings"""
    ctx = require_roles(request, PAYROLL_ROLES)
    with session_for(ctx) as db:
        return json_response([setting_to_dict(s) for s in hr_settings_service.list_settings(db, ctx.tenant_id)])


def set_setting(request: Request) -> Response:
    """PUT /api/hr-settings/settings  {"key": "WorkDaysPerWeek", "value": "6"}"""
    ctx = require_roles(request, HR_ADMIN_ROLES)
    data = parse_json_body(request)
    require_fields(data, ["key", "value"])
    with session_for(ctx) as db:
        setting = hr_settings_service.set_setting(
            db, ctx.tenant_id, data["key"], str(data["value"]), data.get("description")
        )
        return json_response(setting_to_dict(setting))


def seed_defaults(request: Request) -> Response:
    """POST /api/hr-settings/seed"""
    ctx = require_roles(request, HR_ADMIN_ROLES)
    with session_for(ctx) as db:
        return json_response(hr_settings_service.seed_tenant_defaults(db, ctx.tenant_id))


# Audit
def list_audit_logs(request: Request) -> Response:
    """
    GET /api/audit-logs?entity_type=Employee&entity_id=...&action=Update&start=...&end=...&limit=100&offset=0
    """
    ctx = require_roles(request, HR_ADMIN_ROLES)
    user_id = query_param(request, "user_id")
    start = query_param(request, "start")
    end = query_param(request, "end")
    with session_for(ctx) as db:
        logs = get_audit_logs(
            db,
            ctx.tenant_id,
            entity_type=query_param(request, "entity_type"),
            entity_id=query_param(request, "entity_id"),
            user_id=parse_uuid(user_id, "user_id") if user_id else None,
            action=query_param(request, "action"),
            start_date=parse_datetime(start, "start", zone="UTC") if start else None,
            end_date=parse_datetime(end, "end", zone="UTC") if end else None,
            limit=parse_int(query_param(request, "limit", "100"), "limit"),
            offset=parse_int(query_param(request, "offset", "0"), "offset"),
        )
        return json_response([audit_to_dict(a) for a in logs])

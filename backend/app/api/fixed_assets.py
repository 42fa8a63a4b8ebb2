"""
API for fixed assets: categories, register, assignments, meters, incidents,
maintenance, disposal and the monthly depreciation run.
"""

from __future__ import annotations

from datetime import date
from typing import Any

from robyn import Request, Response

from ..core.auth import ASSET_ROLES, get_request_context, require_roles
from ..core.error_handler import json_response, parse_json_body, require_fields
from ..models.fixed_assets import (
    Asset,
    AssetAssignment,
    AssetCategory,
    AssetDepreciation,
    AssetDisposal,
    AssetIncident,
    AssetMaintenance,
    AssetMeterLog,
)
from ..services import fixed_asset_service
from .common import coerce_fields, money_out, parse_date, parse_int, parse_uuid, path_uuid, query_param, session_for


def _iso(value: date | None) -> str | None:
    return value.isoformat() if value else None


def _id(value) -> str | None:
    return str(value) if value else None


def category_to_dict(c: AssetCategory) -> dict[str, Any]:
    return {
        "id": str(c.id),
        "code": c.code,
        "name": c.name,
        "description": c.description,
        "depreciation_method": c.depreciation_method,
        "useful_life_months": c.useful_life_months,
    }


def asset_to_dict(a: Asset) -> dict[str, Any]:
    return {
        "id": str(a.id),
        "asset_code": a.asset_code,
        "name": a.name,
        "description": a.description,
        "category_id": str(a.category_id),
        "status": a.status,
        "acquisition_date": _iso(a.acquisition_date),
        "acquisition_cost": money_out(a.acquisition_cost),
        "salvage_value": money_out(a.salvage_value),
        "depreciation_method": a.depreciation_method,
        "useful_life_months": a.useful_life_months,
        "accumulated_depreciation": money_out(a.accumulated_depreciation),
        "book_value": money_out(a.book_value),
        "location_description": a.location_description,
        "department_id": _id(a.department_id),
        "assigned_employee_id": _id(a.assigned_employee_id),
        "serial_number": a.serial_number,
        "barcode": a.barcode,
        "disposal_date": _iso(a.disposal_date),
        "disposal_amount": money_out(a.disposal_amount),
        "disposal_reason": a.disposal_reason,
    }


def assignment_to_dict(a: AssetAssignment) -> dict[str, Any]:
    return {
        "id": str(a.id),
        "asset_id": str(a.asset_id),
        "employee_id": _id(a.employee_id),
        "location_description": a.location_description,
        "assigned_date": _iso(a.assigned_date),
        "returned_date": _iso(a.returned_date),
        "start_value": money_out(a.start_value),
        "end_value": money_out(a.end_value),
        "condition": a.condition,
    }


def meter_to_dict(m: AssetMeterLog) -> dict[str, Any]:
    return {
        "id": str(m.id),
        "asset_id": str(m.asset_id),
        "log_date": _iso(m.log_date),
        "meter_value": money_out(m.meter_value),
        "source": m.source,
    }


def depreciation_to_dict(d: AssetDepreciation) -> dict[str, Any]:
    return {"id": str(d.id), "asset_id": str(d.asset_id), "period": d.period, "amount": money_out(d.amount)}


def incident_to_dict(i: AssetIncident) -> dict[str, Any]:
    return {
        "id": str(i.id),
        "asset_id": str(i.asset_id),
        "employee_id": _id(i.employee_id),
        "incident_date": _iso(i.incident_date),
        "description": i.description,
        "status": i.status,
        "is_user_fault": i.is_user_fault,
        "deduct_from_salary": i.deduct_from_salary,
        "deduction_amount": money_out(i.deduction_amount),
        "is_deducted": i.is_deducted,
    }


def maintenance_to_dict(m: AssetMaintenance) -> dict[str, Any]:
    return {
        "id": str(m.id),
        "asset_id": str(m.asset_id),
        "incident_id": _id(m.incident_id),
        "supplier_name": m.supplier_name,
        "service_date": _iso(m.service_date),
        "cost": money_out(m.cost),
        "description": m.description,
        "next_service_date": _iso(m.next_service_date),
        "next_service_meter": money_out(m.next_service_meter),
    }


def disposal_to_dict(d: AssetDisposal) -> dict[str, Any]:
    return {
        "id": str(d.id),
        "asset_id": str(d.asset_id),
        "disposal_date": _iso(d.disposal_date),
        "disposal_type": d.disposal_type,
        "sale_amount": money_out(d.sale_amount),
        "book_value_at_disposal": money_out(d.book_value_at_disposal),
        "profit_loss": money_out(d.profit_loss),
    }


# Categories
def list_categories(request: Request) -> Response:
    """GET /api/fixed-assets/categories"""
    ctx = get_request_context(request)
    with session_for(ctx) as db:
        return json_response([category_to_dict(c) for c in fixed_asset_service.list_categories(db, ctx.tenant_id)])


def create_category(request: Request) -> Response:
    """POST /api/fixed-assets/categories  {"code", "name", "depreciation_method", "useful_life_months"}"""
    ctx = require_roles(request, ASSET_ROLES)
    data = parse_json_body(request)
    require_fields(data, ["code", "name", "useful_life_months"])
    with session_for(ctx) as db:
        return json_response(category_to_dict(fixed_asset_service.create_category(db, ctx.tenant_id, data)), 201)


def update_category(request: Request) -> Response:
    """PUT /api/fixed-assets/categories/:id"""
    ctx = require_roles(request, ASSET_ROLES)
    data = parse_json_body(request)
    with session_for(ctx) as db:
        category = fixed_asset_service.update_category(db, ctx.tenant_id, path_uuid(request), data)
        return json_response(category_to_dict(category))


def delete_category(request: Request) -> Response:
    """DELETE /api/fixed-assets/categories/:id"""
    ctx = require_roles(request, ASSET_ROLES)
    with session_for(ctx) as db:
        fixed_asset_service.delete_category(db, ctx.tenant_id, path_uuid(request), ctx.user_id)
    return json_response({"deleted": True})


# Assets
def list_assets(request: Request) -> Response:
    """GET /api/fixed-assets/assets?status=Assigned&category_id=..."""
    ctx = get_request_context(request)
    category_id = query_param(request, "category_id")
    with session_for(ctx) as db:
        assets = fixed_asset_service.list_assets(
            db,
            ctx.tenant_id,
            status=query_param(request, "status"),
            category_id=parse_uuid(category_id, "category_id") if category_id else None,
        )
        return json_response([asset_to_dict(a) for a in assets])


def get_asset(request: Request) -> Response:
    """GET /api/fixed-assets/assets/:id"""
    ctx = get_request_context(request)
    with session_for(ctx) as db:
        return json_response(asset_to_dict(fixed_asset_service.get_asset(db, ctx.tenant_id, path_uuid(request))))


def create_asset(request: Request) -> Response:
    """
    POST /api/fixed-assets/assets

    Payload:
    {
      "asset_code": "VEH-001",
      "name": "Delivery van",
      "category_id": "...",
      "acquisition_date": "2025-01-01",
      "acquisition_cost": 120000,
      "salvage_value": 12000
    }
    """
    ctx = require_roles(request, ASSET_ROLES)
    data = coerce_fields(
        parse_json_body(request),
        uuids=["category_id", "department_id"],
        dates=["acquisition_date"],
    )
    with session_for(ctx) as db:
        return json_response(asset_to_dict(fixed_asset_service.create_asset(db, ctx.tenant_id, data)), 201)


def update_asset(request: Request) -> Response:
    """PUT /api/fixed-assets/assets/:id"""
    ctx = require_roles(request, ASSET_ROLES)
    data = coerce_fields(parse_json_body(request), uuids=["category_id", "department_id"])
    with session_for(ctx) as db:
        return json_response(
            asset_to_dict(fixed_asset_service.update_asset(db, ctx.tenant_id, path_uuid(request), data))
        )


def delete_asset(request: Request) -> Response:
    """DELETE /api/fixed-assets/assets/:id"""
    ctx = require_roles(request, ASSET_ROLES)
    with session_for(ctx) as db:
        fixed_asset_service.delete_asset(db, ctx.tenant_id, path_uuid(request), ctx.user_id)
    return json_response({"deleted": True})


# Assignments
def assign_asset(request: Request) -> Response:
    """POST /api/fixed-assets/assets/:id/assign  {"employee_id", "assigned_date", "start_value", "condition"}"""
    ctx = require_roles(request, ASSET_ROLES)
    data = coerce_fields(parse_json_body(request), uuids=["employee_id", "department_id"])
    with session_for(ctx) as db:
        assignment = fixed_asset_service.assign_asset(
            db,
            ctx.tenant_id,
            path_uuid(request),
            parse_date(data["assigned_date"], "assigned_date") if data.get("assigned_date") else date.today(),
            employee_id=data.get("employee_id"),
            department_id=data.get("department_id"),
            location_description=data.get("location_description"),
            start_value=data.get("start_value"),
            condition=data.get("condition"),
        )
        return json_response(assignment_to_dict(assignment), 201)


def return_asset(request: Request) -> Response:
    """POST /api/fixed-assets/assets/:id/return  {"returned_date", "end_value", "condition"}"""
    ctx = require_roles(request, ASSET_ROLES)
    data = parse_json_body(request)
    with session_for(ctx) as db:
        assignment = fixed_asset_service.return_asset(
            db,
            ctx.tenant_id,
            path_uuid(request),
            parse_date(data["returned_date"], "returned_date") if data.get("returned_date") else date.today(),
            end_value=data.get("end_value"),
            condition=data.get("condition"),
        )
        return json_response(assignment_to_dict(assignment) if assignment else {"returned": True})


def list_assignments(request: Request) -> Response:
    """GET /api/fixed-assets/assets/:id/assignments"""
    ctx = get_request_context(request)
    with session_for(ctx) as db:
        rows = fixed_asset_service.list_assignments(db, ctx.tenant_id, path_uuid(request))
        return json_response([assignment_to_dict(a) for a in rows])


# Meter
def log_meter(request: Request) -> Response:
    """POST /api/fixed-assets/assets/:id/meter  {"log_date", "meter_value", "source"}"""
    ctx = get_request_context(request)
    data = parse_json_body(request)
    require_fields(data, ["meter_value"])
    with session_for(ctx) as db:
        log = fixed_asset_service.log_meter(
            db,
            ctx.tenant_id,
            path_uuid(request),
            parse_date(data["log_date"], "log_date") if data.get("log_date") else date.today(),
            data["meter_value"],
            source=data.get("source"),
        )
        return json_response(meter_to_dict(log), 201)


def list_meter_logs(request: Request) -> Response:
    """GET /api/fixed-assets/assets/:id/meter"""
    ctx = get_request_context(request)
    with session_for(ctx) as db:
        rows = fixed_asset_service.list_meter_logs(db, ctx.tenant_id, path_uuid(request))
        return json_response([meter_to_dict(m) for m in rows])


# Incidents
def report_incident(request: Request) -> Response:
    """POST /api/fixed-assets/assets/:id/incidents  {"incident_date", "description", "employee_id"?}"""
    ctx = get_request_context(request)
    data = parse_json_body(request)
    require_fields(data, ["description"])
    with session_for(ctx) as db:
        incident = fixed_asset_service.report_incident(
            db,
            ctx.tenant_id,
            path_uuid(request),
            parse_date(data["incident_date"], "incident_date") if data.get("incident_date") else date.today(),
            data["description"],
            employee_id=parse_uuid(data["employee_id"], "employee_id") if data.get("employee_id") else None,
        )
        return json_response(incident_to_dict(incident), 201)


def list_incidents(request: Request) -> Response:
    """GET /api/fixed-assets/assets/:id/incidents"""
    ctx = get_request_context(request)
    with session_for(ctx) as db:
        rows = fixed_asset_service.list_incidents(db, ctx.tenant_id, path_uuid(request))
        return json_response([incident_to_dict(i) for i in rows])


def resolve_incident(request: Request) -> Response:
    """
    POST /api/fixed-assets/incidents/:id/resolve

    Payload: {"is_user_fault": true, "deduct_from_salary": true, "deduction_amount": 1500}
    """
    ctx = require_roles(request, ASSET_ROLES)
    data = parse_json_body(request)
    with session_for(ctx) as db:
        incident = fixed_asset_service.resolve_incident(
            db,
            ctx.tenant_id,
            path_uuid(request),
            is_user_fault=bool(data.get("is_user_fault", False)),
            deduct_from_salary=bool(data.get("deduct_from_salary", False)),
            deduction_amount=data.get("deduction_amount", 0),
        )
        return json_response(incident_to_dict(incident))


# Maintenance
def record_maintenance(request: Request) -> Response:
    """POST /api/fixed-assets/assets/:id/maintenance"""
    ctx = require_roles(request, ASSET_ROLES)
    data = coerce_fields(
        parse_json_body(request),
        uuids=["incident_id"],
        dates=["service_date", "next_service_date"],
    )
    with session_for(ctx) as db:
        maintenance = fixed_asset_service.record_maintenance(db, ctx.tenant_id, path_uuid(request), data)
        return json_response(maintenance_to_dict(maintenance), 201)


def list_maintenances(request: Request) -> Response:
    """GET /api/fixed-assets/assets/:id/maintenance"""
    ctx = get_request_context(request)
    with session_for(ctx) as db:
        rows = fixed_asset_service.list_maintenances(db, ctx.tenant_id, path_uuid(request))
        return json_response([maintenance_to_dict(m) for m in rows])


# Disposal and depreciation
def dispose_asset(request: Request) -> Response:
    """POST /api/fixed-assets/assets/:id/dispose  {"disposal_date", "disposal_type", "sale_amount", "reason"}"""
    ctx = require_roles(request, ASSET_ROLES)
    data = parse_json_body(request)
    require_fields(data, ["disposal_type"])
    with session_for(ctx) as db:
        disposal = fixed_asset_service.dispose_asset(
            db,
            ctx.tenant_id,
            path_uuid(request),
            parse_date(data["disposal_date"], "disposal_date") if data.get("disposal_date") else date.today(),
            data["disposal_type"],
            sale_amount=data.get("sale_amount", 0),
            reason=data.get("reason"),
        )
        return json_response(disposal_to_dict(disposal), 201)


def run_depreciation(request: Request) -> Response:
    """POST /api/fixed-assets/depreciation/run  {"year": 2025, "month": 1}"""
    ctx = require_roles(request, ASSET_ROLES)
    data = parse_json_body(request)
    require_fields(data, ["year", "month"])
    year = parse_int(data["year"], "year")
    month = parse_int(data["month"], "month")
    with session_for(ctx) as db:
        total = fixed_asset_service.run_depreciation(db, ctx.tenant_id, year, month)
    return json_response({"period": f"{year:04d}-{month:02d}", "total": float(total)})


def list_depreciations(request: Request) -> Response:
    """GET /api/fixed-assets/assets/:id/depreciations  (newest period first)"""
    ctx = get_request_context(request)
    with session_for(ctx) as db:
        rows = fixed_asset_service.list_depreciations(db, ctx.tenant_id, path_uuid(request))
        return json_response([depreciation_to_dict(d) for d in rows])

"""
Fixed assets: categories, asset register, assignments, meter readings,
incidents, maintenance, disposal and monthly depreciation.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from decimal import Decimal
from typing import Any

from sqlalchemy.orm import Session

from ..core.error_handler import BusinessRuleError, ConflictError, NotFoundError, ValidationError
from ..models.base import money
from ..models.fixed_assets import (
    ASSET_STATUSES,
    DEPRECIATION_METHODS,
    DISPOSAL_TYPES,
    Asset,
    AssetAssignment,
    AssetCategory,
    AssetDepreciation,
    AssetDisposal,
    AssetIncident,
    AssetMaintenance,
    AssetMeterLog,
)
from .attendance_service import period_bounds
from .compensation_service import period_key
from .employee_service import get_employee
from .hr_settings_service import to_decimal

logger = logging.getLogger(__name__)


# Categories
def _validate_method(method: str | None) -> None:
    if method is not None and method not in DEPRECIATION_METHODS:
        raise ValidationError(f"depreciation_method must be one of {', '.join(DEPRECIATION_METHODS)}")


def _validate_life(months: Any) -> int:
    try:
        months = int(months)
    except (TypeError, ValueError):
        raise ValidationError("useful_life_months must be an integer")
    if months <= 0:
        raise ValidationError("useful_life_months must be greater than zero")
    return months


def create_category(db: Session, tenant_id: uuid.UUID, data: dict[str, Any]) -> AssetCategory:
    if not data.get("code") or not data.get("name"):
        raise ValidationError("code and name are required")
    method = data.get("depreciation_method", "StraightLine")
    _validate_method(method)
    existing = (
        db.query(AssetCategory)
        .filter(
            AssetCategory.tenant_id == tenant_id,
            AssetCategory.code == data["code"],
            AssetCategory.is_deleted.is_(False),
        )
        .first()
    )
    if existing:
        raise ConflictError(f"Asset category '{data['code']}' already exists")

    category = AssetCategory(
        tenant_id=tenant_id,
        code=data["code"],
        name=data["name"],
        description=data.get("description"),
        depreciation_method=method,
        useful_life_months=_validate_life(data.get("useful_life_months")),
    )
    db.add(category)
    db.flush()
    return category


def get_category(db: Session, tenant_id: uuid.UUID, category_id: uuid.UUID) -> AssetCategory:
    category = (
        db.query(AssetCategory)
        .filter(
            AssetCategory.id == category_id,
            AssetCategory.tenant_id == tenant_id,
            AssetCategory.is_deleted.is_(False),
        )
        .first()
    )
    if category is None:
        raise NotFoundError("Asset category not found")
    return category


def list_categories(db: Session, tenant_id: uuid.UUID) -> list[AssetCategory]:
    return (
        db.query(AssetCategory)
        .filter(AssetCategory.tenant_id == tenant_id, AssetCategory.is_deleted.is_(False))
        .order_by(AssetCategory.code)
        .all()
    )


def update_category(db: Session, tenant_id: uuid.UUID, category_id: uuid.UUID, data: dict[str, Any]) -> AssetCategory:
    category = get_category(db, tenant_id, category_id)
    if "depreciation_method" in data:
        _validate_method(data["depreciation_method"])
        category.depreciation_method = data["depreciation_method"]
    if "useful_life_months" in data:
        category.useful_life_months = _validate_life(data["useful_life_months"])
    for field_name in ("name", "description", "is_active"):
        if field_name in data:
            setattr(category, field_name, data[field_name])
    db.flush()
    return category


def delete_category(db: Session, tenant_id: uuid.UUID, category_id: uuid.UUID, user_id: uuid.UUID | None) -> None:
    category = get_category(db, tenant_id, category_id)
    in_use = (
        db.query(Asset)
        .filter(Asset.category_id == category.id, Asset.is_deleted.is_(False))
        .count()
    )
    if in_use:
        raise BusinessRuleError(f"Category has {in_use} assets")
    category.soft_delete(user_id)
    db.flush()


# Assets
def create_asset(db: Session, tenant_id: uuid.UUID, data: dict[str, Any]) -> Asset:
    """
    Register an asset.

    Required: asset_code, name, category_id, acquisition_date, acquisition_cost.
    """
    for field_name in ("asset_code", "name", "category_id", "acquisition_date", "acquisition_cost"):
        if data.get(field_name) in (None, ""):
            raise ValidationError(f"{field_name} is required")

    category = get_category(db, tenant_id, data["category_id"])
    cost = to_decimal(data["acquisition_cost"], "acquisition_cost")
    salvage = to_decimal(data.get("salvage_value", 0), "salvage_value")
    if cost < 0 or salvage < 0:
        raise ValidationError("Cost and salvage value cannot be negative")
    if cost < salvage:
        raise ValidationError("acquisition_cost cannot be below salvage_value")
    _validate_method(data.get("depreciation_method"))
    life = data.get("useful_life_months")

    duplicate = (
        db.query(Asset)
        .filter(Asset.tenant_id == tenant_id, Asset.asset_code == data["asset_code"], Asset.is_deleted.is_(False))
        .first()
    )
    if duplicate:
        raise ConflictError(f"Asset code '{data['asset_code']}' already exists")

    asset = Asset(
        tenant_id=tenant_id,
        asset_code=data["asset_code"],
        name=data["name"],
        description=data.get("description"),
        category_id=category.id,
        status="InStock",
        acquisition_date=data["acquisition_date"],
        acquisition_cost=money(cost),
        salvage_value=money(salvage),
        depreciation_method=data.get("depreciation_method"),
        useful_life_months=_validate_life(life) if life is not None else None,
        accumulated_depreciation=Decimal("0.00"),
        location_description=data.get("location_description"),
        department_id=data.get("department_id"),
        serial_number=data.get("serial_number"),
        barcode=data.get("barcode"),
    )
    db.add(asset)
    db.flush()
    logger.info("Asset %s registered (%s)", asset.asset_code, asset.id)
    return asset


def get_asset(db: Session, tenant_id: uuid.UUID, asset_id: uuid.UUID) -> Asset:
    asset = (
        db.query(Asset)
        .filter(Asset.id == asset_id, Asset.tenant_id == tenant_id, Asset.is_deleted.is_(False))
        .first()
    )
    if asset is None:
        raise NotFoundError("Asset not found")
    return asset


def list_assets(
    db: Session, tenant_id: uuid.UUID, status: str | None = None, category_id: uuid.UUID | None = None
) -> list[Asset]:
    query = db.query(Asset).filter(Asset.tenant_id == tenant_id, Asset.is_deleted.is_(False))
    if status:
        if status not in ASSET_STATUSES:
            raise ValidationError(f"status must be one of {', '.join(ASSET_STATUSES)}")
        query = query.filter(Asset.status == status)
    if category_id:
        query = query.filter(Asset.category_id == category_id)
    return query.order_by(Asset.asset_code).all()


ASSET_UPDATABLE_FIELDS = [
    "name", "description", "location_description", "department_id",
    "serial_number", "barcode", "is_active",
]


def update_asset(db: Session, tenant_id: uuid.UUID, asset_id: uuid.UUID, data: dict[str, Any]) -> Asset:
    asset = get_asset(db, tenant_id, asset_id)
    if asset.status == "Disposed":
        raise BusinessRuleError("A disposed asset cannot be changed")
    for field_name in ASSET_UPDATABLE_FIELDS:
        if field_name in data:
            setattr(asset, field_name, data[field_name])
    if "category_id" in data:
        asset.category_id = get_category(db, tenant_id, data["category_id"]).id
    if "depreciation_method" in data:
        _validate_method(data["depreciation_method"])
        asset.depreciation_method = data["depreciation_method"]
    if "useful_life_months" in data:
        life = data["useful_life_months"]
        asset.useful_life_months = _validate_life(life) if life is not None else None
    db.flush()
    return asset


def delete_asset(db: Session, tenant_id: uuid.UUID, asset_id: uuid.UUID, user_id: uuid.UUID | None) -> None:
    asset = get_asset(db, tenant_id, asset_id)
    if asset.status == "Assigned":
        raise BusinessRuleError("Return the asset before deleting it")
    asset.soft_delete(user_id)
    db.flush()


# Assignments
def _open_assignment(db: Session, asset: Asset) -> AssetAssignment | None:
    return (
        db.query(AssetAssignment)
        .filter(
            AssetAssignment.asset_id == asset.id,
            AssetAssignment.returned_date.is_(None),
            AssetAssignment.is_deleted.is_(False),
        )
        .order_by(AssetAssignment.assigned_date.desc())
        .first()
    )


def _close_assignment(
    db: Session, asset: Asset, returned_date: date, end_value: Decimal | None, condition: str | None
) -> AssetAssignment | None:
    assignment = _open_assignment(db, asset)
    if assignment is not None:
        assignment.returned_date = returned_date
        assignment.end_value = end_value
        if condition:
            assignment.condition = condition
    asset.assigned_employee_id = None
    asset.department_id = None
    asset.status = "InStock"
    return assignment


def assign_asset(
    db: Session,
    tenant_id: uuid.UUID,
    asset_id: uuid.UUID,
    assigned_date: date,
    employee_id: uuid.UUID | None = None,
    department_id: uuid.UUID | None = None,
    location_description: str | None = None,
    start_value: Any = None,
    condition: str | None = None,
) -> AssetAssignment:
    """Hand an asset to an employee or location; an existing assignment is closed first."""
    asset = get_asset(db, tenant_id, asset_id)
    if asset.status == "Disposed":
        raise BusinessRuleError("A disposed asset cannot be assigned")
    if employee_id is None and not location_description and department_id is None:
        raise ValidationError("employee_id, department_id or location_description is required")

    employee = get_employee(db, tenant_id, employee_id) if employee_id else None
    start = to_decimal(start_value, "start_value") if start_value is not None else None

    if asset.status == "Assigned":
        _close_assignment(db, asset, assigned_date, start, None)

    assignment = AssetAssignment(
        tenant_id=tenant_id,
        asset_id=asset.id,
        employee_id=employee.id if employee else None,
        location_description=location_description,
        assigned_date=assigned_date,
        start_value=start,
        condition=condition,
    )
    db.add(assignment)

    asset.status = "Assigned"
    asset.assigned_employee_id = employee.id if employee else None
    asset.department_id = department_id or (employee.department_id if employee else None)
    if location_description:
        asset.location_description = location_description
    db.flush()
    logger.info("Asset %s assigned to %s", asset.asset_code, employee.id if employee else location_description)
    return assignment


def return_asset(
    db: Session,
    tenant_id: uuid.UUID,
    asset_id: uuid.UUID,
    returned_date: date,
    end_value: Any = None,
    condition: str | None = None,
) -> AssetAssignment | None:
    asset = get_asset(db, tenant_id, asset_id)
    if asset.status != "Assigned":
        raise BusinessRuleError(f"Asset is not assigned (status: {asset.status})")
    end = to_decimal(end_value, "end_value") if end_value is not None else None
    assignment = _close_assignment(db, asset, returned_date, end, condition)
    db.flush()
    return assignment


def list_assignments(db: Session, tenant_id: uuid.UUID, asset_id: uuid.UUID) -> list[AssetAssignment]:
    asset = get_asset(db, tenant_id, asset_id)
    return (
        db.query(AssetAssignment)
        .filter(AssetAssignment.asset_id == asset.id, AssetAssignment.is_deleted.is_(False))
        .order_by(AssetAssignment.assigned_date.desc(), AssetAssignment.created_at.desc())
        .all()
    )


# Meter readings
def log_meter(
    db: Session, tenant_id: uuid.UUID, asset_id: uuid.UUID, log_date: date, meter_value: Any, source: str | None = None
) -> AssetMeterLog:
    asset = get_asset(db, tenant_id, asset_id)
    value = to_decimal(meter_value, "meter_value")
    last = (
        db.query(AssetMeterLog)
        .filter(AssetMeterLog.asset_id == asset.id, AssetMeterLog.is_deleted.is_(False))
        .order_by(AssetMeterLog.meter_value.desc())
        .first()
    )
    if last is not None and value < Decimal(last.meter_value):
        raise ValidationError(f"Meter value {value} is below the last reading {last.meter_value}")

    log = AssetMeterLog(tenant_id=tenant_id, asset_id=asset.id, log_date=log_date, meter_value=value, source=source)
    db.add(log)
    db.flush()
    return log


def list_meter_logs(db: Session, tenant_id: uuid.UUID, asset_id: uuid.UUID) -> list[AssetMeterLog]:
    asset = get_asset(db, tenant_id, asset_id)
    return (
        db.query(AssetMeterLog)
        .filter(AssetMeterLog.asset_id == asset.id, AssetMeterLog.is_deleted.is_(False))
        .order_by(AssetMeterLog.log_date.desc(), AssetMeterLog.meter_value.desc())
        .all()
    )


# Incidents
def report_incident(
    db: Session,
    tenant_id: uuid.UUID,
    asset_id: uuid.UUID,
    incident_date: date,
    description: str,
    employee_id: uuid.UUID | None = None,
) -> AssetIncident:
    asset = get_asset(db, tenant_id, asset_id)
    if not description:
        raise ValidationError("description is required")
    if employee_id is not None:
        employee_id = get_employee(db, tenant_id, employee_id).id
    else:
        employee_id = asset.assigned_employee_id

    incident = AssetIncident(
        tenant_id=tenant_id,
        asset_id=asset.id,
        employee_id=employee_id,
        incident_date=incident_date,
        description=description,
        status="Open",
    )
    db.add(incident)
    db.flush()
    logger.info("Incident reported on asset %s", asset.asset_code)
    return incident


def get_incident(db: Session, tenant_id: uuid.UUID, incident_id: uuid.UUID) -> AssetIncident:
    incident = (
        db.query(AssetIncident)
        .filter(
            AssetIncident.id == incident_id,
            AssetIncident.tenant_id == tenant_id,
            AssetIncident.is_deleted.is_(False),
        )
        .first()
    )
    if incident is None:
        raise NotFoundError("Asset incident not found")
    return incident


def resolve_incident(
    db: Session,
    tenant_id: uuid.UUID,
    incident_id: uuid.UUID,
    is_user_fault: bool = False,
    deduct_from_salary: bool = False,
    deduction_amount: Any = 0,
) -> AssetIncident:
    """
    Close an incident, optionally charging the damage to the employee's salary.

    Raises:
        BusinessRuleError: incident already resolved, or a deduction without user fault / employee
        ValidationError: deduction amount not positive
    """
    incident = get_incident(db, tenant_id, incident_id)
    if incident.status == "Resolved":
        raise BusinessRuleError("Incident is already resolved")

    amount = to_decimal(deduction_amount or 0, "deduction_amount")
    if deduct_from_salary:
        if not is_user_fault:
            raise BusinessRuleError("Salary deduction requires user fault")
        if amount <= 0:
            raise ValidationError("deduction_amount must be greater than zero")
        if incident.employee_id is None:
            raise BusinessRuleError("Salary deduction requires an employee on the incident")

    incident.status = "Resolved"
    incident.is_user_fault = bool(is_user_fault)
    incident.deduct_from_salary = bool(deduct_from_salary)
    incident.deduction_amount = money(amount) if deduct_from_salary else Decimal("0.00")
    db.flush()
    return incident


def list_incidents(db: Session, tenant_id: uuid.UUID, asset_id: uuid.UUID) -> list[AssetIncident]:
    asset = get_asset(db, tenant_id, asset_id)
    return (
        db.query(AssetIncident)
        .filter(AssetIncident.asset_id == asset.id, AssetIncident.is_deleted.is_(False))
        .order_by(AssetIncident.incident_date.desc())
        .all()
    )


def pending_salary_deductions(db: Session, employee_id: uuid.UUID) -> list[AssetIncident]:
    """Resolved incidents charged to the employee and not yet deducted by payroll."""
    return (
        db.query(AssetIncident)
        .filter(
            AssetIncident.employee_id == employee_id,
            AssetIncident.status == "Resolved",
            AssetIncident.deduct_from_salary.is_(True),
            AssetIncident.is_deducted.is_(False),
            AssetIncident.is_deleted.is_(False),
        )
        .all()
    )


# Maintenance
def record_maintenance(db: Session, tenant_id: uuid.UUID, asset_id: uuid.UUID, data: dict[str, Any]) -> AssetMaintenance:
    asset = get_asset(db, tenant_id, asset_id)
    if not data.get("service_date"):
        raise ValidationError("service_date is required")
    cost = to_decimal(data.get("cost", 0), "cost")
    if cost < 0:
        raise ValidationError("cost cannot be negative")
    incident_id = data.get("incident_id")
    if incident_id:
        incident_id = get_incident(db, tenant_id, incident_id).id

    maintenance = AssetMaintenance(
        tenant_id=tenant_id,
        asset_id=asset.id,
        incident_id=incident_id,
        supplier_name=data.get("supplier_name"),
        service_date=data["service_date"],
        cost=money(cost),
        description=data.get("description"),
        next_service_date=data.get("next_service_date"),
        next_service_meter=(
            to_decimal(data["next_service_meter"], "next_service_meter")
            if data.get("next_service_meter") is not None
            else None
        ),
    )
    db.add(maintenance)
    db.flush()
    return maintenance


def list_maintenances(db: Session, tenant_id: uuid.UUID, asset_id: uuid.UUID) -> list[AssetMaintenance]:
    asset = get_asset(db, tenant_id, asset_id)
    return (
        db.query(AssetMaintenance)
        .filter(AssetMaintenance.asset_id == asset.id, AssetMaintenance.is_deleted.is_(False))
        .order_by(AssetMaintenance.service_date.desc())
        .all()
    )


# Disposal
def dispose_asset(
    db: Session,
    tenant_id: uuid.UUID,
    asset_id: uuid.UUID,
    disposal_date: date,
    disposal_type: str,
    sale_amount: Any = 0,
    reason: str | None = None,
) -> AssetDisposal:
    asset = get_asset(db, tenant_id, asset_id)
    if asset.status == "Disposed":
        raise BusinessRuleError("Asset is already disposed")
    if disposal_type not in DISPOSAL_TYPES:
        raise ValidationError(f"disposal_type must be one of {', '.join(DISPOSAL_TYPES)}")
    sale = to_decimal(sale_amount or 0, "sale_amount")
    if sale < 0:
        raise ValidationError("sale_amount cannot be negative")

    if asset.status == "Assigned":
        _close_assignment(db, asset, disposal_date, None, None)

    book_value = money(asset.book_value)
    disposal = AssetDisposal(
        tenant_id=tenant_id,
        asset_id=asset.id,
        disposal_date=disposal_date,
        disposal_type=disposal_type,
        sale_amount=money(sale),
        book_value_at_disposal=book_value,
        profit_loss=money(sale - book_value),
    )
    db.add(disposal)

    asset.status = "Disposed"
    asset.disposal_date = disposal_date
    asset.disposal_amount = money(sale)
    asset.disposal_reason = reason
    db.flush()
    logger.info("Asset %s disposed (%s), profit/loss %s", asset.asset_code, disposal_type, disposal.profit_loss)
    return disposal


# Depreciation
def monthly_depreciation(asset: Asset, category: AssetCategory | None = None, period_end: date | None = None) -> Decimal:
    """Depreciation charge of one month; never takes the book value below salvage."""
    category = category or asset.category
    method = asset.depreciation_method or (category.depreciation_method if category else "None")
    life = asset.useful_life_months or (category.useful_life_months if category else 0)
    if method == "None" or not life or asset.status == "Disposed":
        return Decimal("0.00")
    if period_end is not None and asset.acquisition_date > period_end:
        return Decimal("0.00")

    cost = Decimal(asset.acquisition_cost or 0)
    salvage = Decimal(asset.salvage_value or 0)
    remaining = asset.book_value - salvage
    if remaining <= 0:
        return Decimal("0.00")

    if method == "DecliningBalance":
        charge = asset.book_value * Decimal(2) / Decimal(life)
    else:
        charge = (cost - salvage) / Decimal(life)
    return money(min(charge, remaining))


def run_depreciation(db: Session, tenant_id: uuid.UUID, year: int, month: int) -> Decimal:
    """Book one month of depreciation for every asset; assets already booked for the period are skipped."""
    _, period_end = period_bounds(year, month)
    period = period_key(year, month)
    total = Decimal("0.00")
    booked = 0

    for asset in list_assets(db, tenant_id):
        already = (
            db.query(AssetDepreciation)
            .filter(AssetDepreciation.asset_id == asset.id, AssetDepreciation.period == period)
            .first()
        )
        if already:
            continue
        amount = monthly_depreciation(asset, period_end=period_end)
        if amount <= 0:
            continue
        db.add(AssetDepreciation(tenant_id=tenant_id, asset_id=asset.id, period=period, amount=amount))
        asset.accumulated_depreciation = money(Decimal(asset.accumulated_depreciation or 0) + amount)
        total += amount
        booked += 1

    db.flush()
    logger.info("Depreciation %s booked for %s assets (%s)", total, booked, period)
    return money(total)


def list_depreciations(db: Session, tenant_id: uuid.UUID, asset_id: uuid.UUID) -> list[AssetDepreciation]:
    asset = get_asset(db, tenant_id, asset_id)
    return (
        db.query(AssetDepreciation)
        .filter(AssetDepreciation.asset_id == asset.id, AssetDepreciation.is_deleted.is_(False))
        .order_by(AssetDepreciation.period.desc())
        .all()
    )

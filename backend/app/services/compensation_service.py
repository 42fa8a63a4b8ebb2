"""
Advances, bonuses and sales commissions consumed by the payroll run.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from decimal import Decimal
from typing import Any

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..core.error_handler import BusinessRuleError, ConflictError, NotFoundError, ValidationError
from ..models.base import money
from ..models.hr import ADVANCE_STATUSES, AdvanceRequest, Bonus, CommissionRule, Employee, PeriodCommission
from .employee_service import get_employee
from .hr_settings_service import to_decimal

logger = logging.getLogger(__name__)


def period_key(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}"


def _validate_period(period: str) -> str:
    try:
        year, month = period.split("-")
        if len(year) != 4 or not 1 <= int(month) <= 12:
            raise ValueError(period)
    except (AttributeError, ValueError):
        raise ValidationError("period must be formatted as YYYY-MM")
    return f"{year}-{int(month):02d}"


# Advances
def create_advance_request(
    db: Session,
    tenant_id: uuid.UUID,
    employee_id: uuid.UUID,
    amount: Any,
    request_date: date,
    description: str | None = None,
    repayment_date: date | None = None,
) -> AdvanceRequest:
    employee = get_employee(db, tenant_id, employee_id)
    amount = to_decimal(amount, "amount")
    if amount <= 0:
        raise ValidationError("Advance amount must be greater than zero")
    if repayment_date is not None and repayment_date < request_date:
        raise ValidationError("repayment_date cannot be before request_date")

    advance = AdvanceRequest(
        tenant_id=tenant_id,
        employee_id=employee.id,
        request_date=request_date,
        amount=money(amount),
        description=description,
        repayment_date=repayment_date,
        status="Pending",
    )
    db.add(advance)
    db.flush()
    logger.info("Advance request %s for employee %s: %s", advance.id, employee.id, advance.amount)
    return advance


def get_advance_request(db: Session, tenant_id: uuid.UUID, advance_id: uuid.UUID) -> AdvanceRequest:
    advance = (
        db.query(AdvanceRequest)
        .filter(
            AdvanceRequest.id == advance_id,
            AdvanceRequest.tenant_id == tenant_id,
            AdvanceRequest.is_deleted.is_(False),
        )
        .first()
    )
    if advance is None:
        raise NotFoundError("Advance request not found")
    return advance


def list_advance_requests(
    db: Session, tenant_id: uuid.UUID, employee_id: uuid.UUID | None = None, status: str | None = None
) -> list[AdvanceRequest]:
    query = db.query(AdvanceRequest).filter(
        AdvanceRequest.tenant_id == tenant_id, AdvanceRequest.is_deleted.is_(False)
    )
    if employee_id:
        query = query.filter(AdvanceRequest.employee_id == employee_id)
    if status:
        if status not in ADVANCE_STATUSES:
            raise ValidationError(f"status must be one of {', '.join(ADVANCE_STATUSES)}")
        query = query.filter(AdvanceRequest.status == status)
    return query.order_by(AdvanceRequest.request_date.desc()).all()


def _transition(advance: AdvanceRequest, expected: str, new_status: str) -> None:
    if advance.status != expected:
        raise BusinessRuleError(
            f"Advance must be {expected} to become {new_status} (status: {advance.status})"
        )
    advance.status = new_status


def approve_advance(db: Session, tenant_id: uuid.UUID, advance_id: uuid.UUID) -> AdvanceRequest:
    advance = get_advance_request(db, tenant_id, advance_id)
    _transition(advance, "Pending", "Approved")
    db.flush()
    return advance


def reject_advance(db: Session, tenant_id: uuid.UUID, advance_id: uuid.UUID) -> AdvanceRequest:
    advance = get_advance_request(db, tenant_id, advance_id)
    _transition(advance, "Pending", "Rejected")
    db.flush()
    return advance


def mark_advance_paid(db: Session, tenant_id: uuid.UUID, advance_id: uuid.UUID) -> AdvanceRequest:
    advance = get_advance_request(db, tenant_id, advance_id)
    _transition(advance, "Approved", "Paid")
    advance.is_paid = True
    db.flush()
    logger.info("Advance %s paid out", advance.id)
    return advance


def deductible_advances(db: Session, employee: Employee, period_end: date) -> list[AdvanceRequest]:
    """Paid advances not yet deducted whose repayment falls on or before `period_end`."""
    return (
        db.query(AdvanceRequest)
        .filter(
            AdvanceRequest.employee_id == employee.id,
            AdvanceRequest.is_deleted.is_(False),
            AdvanceRequest.status == "Paid",
            AdvanceRequest.is_deducted.is_(False),
            or_(AdvanceRequest.repayment_date.is_(None), AdvanceRequest.repayment_date <= period_end),
        )
        .order_by(AdvanceRequest.request_date)
        .all()
    )


# Bonuses
def create_bonus(
    db: Session,
    tenant_id: uuid.UUID,
    employee_id: uuid.UUID,
    amount: Any,
    description: str,
    bonus_date: date,
    period: str | None = None,
) -> Bonus:
    employee = get_employee(db, tenant_id, employee_id)
    amount = to_decimal(amount, "amount")
    if amount <= 0:
        raise ValidationError("Bonus amount must be greater than zero")
    if not description:
        raise ValidationError("Bonus description is required")

    bonus = Bonus(
        tenant_id=tenant_id,
        employee_id=employee.id,
        amount=money(amount),
        description=description,
        bonus_date=bonus_date,
        period=_validate_period(period) if period else period_key(bonus_date.year, bonus_date.month),
    )
    db.add(bonus)
    db.flush()
    return bonus


def list_bonuses(
    db: Session, tenant_id: uuid.UUID, employee_id: uuid.UUID | None = None, period: str | None = None
) -> list[Bonus]:
    query = db.query(Bonus).filter(Bonus.tenant_id == tenant_id, Bonus.is_deleted.is_(False))
    if employee_id:
        query = query.filter(Bonus.employee_id == employee_id)
    if period:
        query = query.filter(Bonus.period == period)
    return query.order_by(Bonus.bonus_date.desc()).all()


def unprocessed_bonuses(db: Session, employee: Employee, period: str) -> list[Bonus]:
    return (
        db.query(Bonus)
        .filter(
            Bonus.employee_id == employee.id,
            Bonus.period == period,
            Bonus.is_processed.is_(False),
            Bonus.is_deleted.is_(False),
        )
        .all()
    )


# Commission rules
def create_commission_rule(
    db: Session, tenant_id: uuid.UUID, role: str, min_target: Any, commission_percentage: Any
) -> CommissionRule:
    if not role:
        raise ValidationError("role is required")
    min_target = to_decimal(min_target, "min_target")
    pct = to_decimal(commission_percentage, "commission_percentage")
    if min_target < 0:
        raise ValidationError("min_target cannot be negative")
    if pct < 0 or pct > 100:
        raise ValidationError("commission_percentage must be between 0 and 100")

    rule = CommissionRule(tenant_id=tenant_id, role=role, min_target=min_target, commission_percentage=pct)
    db.add(rule)
    db.flush()
    return rule


def get_commission_rule(db: Session, tenant_id: uuid.UUID, rule_id: uuid.UUID) -> CommissionRule:
    rule = (
        db.query(CommissionRule)
        .filter(
            CommissionRule.id == rule_id,
            CommissionRule.tenant_id == tenant_id,
            CommissionRule.is_deleted.is_(False),
        )
        .first()
    )
    if rule is None:
        raise NotFoundError("Commission rule not found")
    return rule


def list_commission_rules(db: Session, tenant_id: uuid.UUID, role: str | None = None) -> list[CommissionRule]:
    query = db.query(CommissionRule).filter(
        CommissionRule.tenant_id == tenant_id, CommissionRule.is_deleted.is_(False)
    )
    if role:
        query = query.filter(CommissionRule.role == role)
    return query.order_by(CommissionRule.role, CommissionRule.min_target).all()


def update_commission_rule(
    db: Session, tenant_id: uuid.UUID, rule_id: uuid.UUID, data: dict[str, Any]
) -> CommissionRule:
    rule = get_commission_rule(db, tenant_id, rule_id)
    if "role" in data:
        rule.role = data["role"]
    if "min_target" in data:
        rule.min_target = to_decimal(data["min_target"], "min_target")
    if "commission_percentage" in data:
        pct = to_decimal(data["commission_percentage"], "commission_percentage")
        if pct < 0 or pct > 100:
            raise ValidationError("commission_percentage must be between 0 and 100")
        rule.commission_percentage = pct
    if "is_active" in data:
        rule.is_active = bool(data["is_active"])
    db.flush()
    return rule


def delete_commission_rule(db: Session, tenant_id: uuid.UUID, rule_id: uuid.UUID, user_id: uuid.UUID | None) -> None:
    get_commission_rule(db, tenant_id, rule_id).soft_delete(user_id)
    db.flush()


def select_commission_rule(rules: list[CommissionRule], role: str | None, sales_amount: Decimal) -> CommissionRule | None:
    """Highest-target active rule of the role that the sales amount reaches."""
    candidates = [
        r for r in rules
        if r.is_active and r.role == role and Decimal(r.min_target) <= sales_amount
    ]
    if not candidates:
        return None
    return max(candidates, key=lambda r: Decimal(r.min_target))


def calculate_commission(db: Session, employee: Employee, sales_amount: Any) -> Decimal:
    sales_amount = to_decimal(sales_amount, "sales_amount")
    if sales_amount < 0:
        raise ValidationError("sales_amount cannot be negative")
    rule = select_commission_rule(list_commission_rules(db, employee.tenant_id), employee.job_title, sales_amount)
    if rule is None:
        return Decimal("0.00")
    return money(sales_amount * Decimal(rule.commission_percentage) / Decimal("100"))


def record_period_commission(
    db: Session, tenant_id: uuid.UUID, employee_id: uuid.UUID, period: str, sales_amount: Any
) -> PeriodCommission:
    employee = get_employee(db, tenant_id, employee_id)
    period = _validate_period(period)
    existing = (
        db.query(PeriodCommission)
        .filter(
            PeriodCommission.employee_id == employee.id,
            PeriodCommission.period == period,
            PeriodCommission.is_deleted.is_(False),
        )
        .first()
    )
    if existing:
        raise ConflictError(f"Commission for {period} already recorded")

    sales = to_decimal(sales_amount, "sales_amount")
    commission = PeriodCommission(
        tenant_id=tenant_id,
        employee_id=employee.id,
        period=period,
        sales_amount=money(sales),
        commission_amount=calculate_commission(db, employee, sales),
    )
    db.add(commission)
    db.flush()
    logger.info("Commission %s recorded for employee %s (%s)", commission.commission_amount, employee.id, period)
    return commission


def list_period_commissions(
    db: Session, tenant_id: uuid.UUID, employee_id: uuid.UUID | None = None, period: str | None = None
) -> list[PeriodCommission]:
    query = db.query(PeriodCommission).filter(
        PeriodCommission.tenant_id == tenant_id, PeriodCommission.is_deleted.is_(False)
    )
    if employee_id:
        query = query.filter(PeriodCommission.employee_id == employee_id)
    if period:
        query = query.filter(PeriodCommission.period == period)
    return query.order_by(PeriodCommission.period.desc()).all()


def unprocessed_commissions(db: Session, employee: Employee, period: str) -> list[PeriodCommission]:
    return (
        db.query(PeriodCommission)
        .filter(
            PeriodCommission.employee_id == employee.id,
            PeriodCommission.period == period,
            PeriodCommission.is_processed.is_(False),
            PeriodCommission.is_deleted.is_(False),
        )
        .all()
    )

"""
Monthly payroll run and its lifecycle (Draft -> Approved -> Paid).

The run gathers everything owed to or by each active employee for the period
(overtime from attendance, bonuses, commissions, advances, asset damage), feeds it
to the payroll calculator and stores one entry per employee with its detail lines.
"""

from __future__ import annotations

import logging
import uuid
from decimal import Decimal
from typing import Any

from sqlalchemy.orm import Session

from ..core.audit_service import create_audit_log
from ..core.config import settings
from ..core.error_handler import BusinessRuleError, ConflictError, NotFoundError
from ..models.base import money, utcnow
from ..models.hr import Employee
from ..models.payroll import (
    EarningDeductionType,
    EmployeeCumulative,
    Payroll,
    PayrollEntry,
    PayrollEntryDetail,
)
from ..models.system import Tenant
from . import (
    attendance_service,
    compensation_service,
    fixed_asset_service,
    hr_settings_service,
    notification_service,
)
from .employee_service import active_employees
from .payroll_calculator import (
    ContributionRates,
    EmployeeProfile,
    PayrollItem,
    PayrollResult,
    calculate_payroll,
)

logger = logging.getLogger(__name__)

WORK_DAYS_PER_MONTH = Decimal("22")
DEFAULT_OT_MULTIPLIERS = {"OT15": Decimal("1.5"), "OT20": Decimal("2.0")}


def hourly_rate(salary: Decimal, daily_hours: Decimal) -> Decimal:
    if not daily_hours:
        return Decimal("0")
    return Decimal(salary or 0) / (Decimal(daily_hours) * WORK_DAYS_PER_MONTH)


def _item(types: dict[str, EarningDeductionType], code: str, amount: Decimal, description: str, kind: str = "Earning") -> PayrollItem:
    edt = types.get(code)
    if edt is None:
        return PayrollItem(code=code, amount=money(amount), kind=kind, description=description)
    return PayrollItem(
        code=code,
        amount=money(amount),
        kind=edt.kind,
        is_taxable=edt.is_taxable,
        is_sgk_exempt=edt.is_sgk_exempt,
        exempt_limit=edt.exempt_limit,
        description=description,
        type_id=edt.id,
    )


def overtime_items(
    employee: Employee,
    summary: attendance_service.PeriodSummary,
    daily_hours: Decimal,
    types: dict[str, EarningDeductionType],
) -> list[PayrollItem]:
    """OT15 / OT20 earnings from the month's overtime minutes."""
    rate = hourly_rate(employee.current_salary, daily_hours)
    items = []
    for code, minutes in (("OT15", summary.overtime_1x_mins), ("OT20", summary.overtime_2x_mins)):
        if minutes <= 0:
            continue
        edt = types.get(code)
        multiplier = Decimal(edt.multiplier) if edt is not None and edt.multiplier else DEFAULT_OT_MULTIPLIERS[code]
        hours = Decimal(minutes) / Decimal(60)
        amount = money(hours * rate * multiplier)
        if amount > 0:
            items.append(_item(types, code, amount, f"{hours.quantize(Decimal('0.01'))} h x {multiplier}"))
    return items


def _ytd_ledger(db: Session, employee: Employee, year: int) -> EmployeeCumulative:
    ledger = (
        db.query(EmployeeCumulative)
        .filter(
            EmployeeCumulative.employee_id == employee.id,
            EmployeeCumulative.year == year,
            EmployeeCumulative.is_deleted.is_(False),
        )
        .first()
    )
    if ledger is None:
        ledger = EmployeeCumulative(
            tenant_id=employee.tenant_id, employee_id=employee.id, year=year, ytd_tax_base=Decimal("0.00")
        )
        db.add(ledger)
        db.flush()
    return ledger


def _entry_from_result(payroll: Payroll, employee: Employee, result: PayrollResult, items: list[PayrollItem]) -> PayrollEntry:
    def total(code: str) -> Decimal:
        return money(sum((i.amount for i in items if i.code == code), Decimal("0")))

    return PayrollEntry(
        tenant_id=payroll.tenant_id,
        payroll_id=payroll.id,
        employee_id=employee.id,
        base_salary=result.gross_salary,
        overtime_pay=total("OT15") + total("OT20"),
        bonus_pay=total("BONUS"),
        commission_pay=total("COMMISSION"),
        transport_amount=result.transport_amount,
        cumulative_tax_base_before=result.cumulative_tax_base_before,
        total_taxable_earnings=result.total_taxable_earnings,
        total_sgk_exempt_earnings=result.total_sgk_exempt_earnings,
        social_security_employee=result.social_security_employee,
        provident_fund_employee=result.provident_fund_employee,
        unemployment_insurance_employee=result.unemployment_insurance_employee,
        personal_allowance_deduction=result.personal_allowance_deduction,
        income_tax=result.income_tax,
        stamp_tax=result.stamp_tax,
        social_security_employer=result.social_security_employer,
        provident_fund_employer=result.provident_fund_employer,
        unemployment_insurance_employer=result.unemployment_insurance_employer,
        advance_deduction=result.advance_deduction,
        other_deductions=result.other_deductions,
        net_payable=result.net_payable,
        exchange_rate=Decimal("1"),
    )


def run_payroll(
    db: Session,
    tenant_id: uuid.UUID,
    year: int,
    month: int,
    user_id: uuid.UUID | None = None,
    username: str | None = None,
    description: str | None = None,
) -> Payroll:
    """
    Create the Draft payroll of a period for every active employee.

    Raises:
        ValidationError: month out of range
        ConflictError: payroll already exists for the period
    """
    period_start, period_end = attendance_service.period_bounds(year, month)
    period = compensation_service.period_key(year, month)

    existing = (
        db.query(Payroll)
        .filter(Payroll.tenant_id == tenant_id, Payroll.period == period, Payroll.is_deleted.is_(False))
        .first()
    )
    if existing:
        raise ConflictError(f"Payroll for {period} already exists")

    tenant = db.get(Tenant, tenant_id)
    currency = tenant.base_currency if tenant is not None and tenant.base_currency else settings.base_currency

    # Rules in force on the first day of the period
    tax_rules = hr_settings_service.effective_tax_rules(db, tenant_id, period_start)
    ss_rules = hr_settings_service.effective_ss_rules(db, tenant_id, period_start)
    minimum_wage = hr_settings_service.effective_minimum_wage(db, tenant_id, period_start)
    parameters = hr_settings_service.payroll_parameters_map(db, tenant_id)
    types = hr_settings_service.earning_types_by_code(db, tenant_id)
    daily_hours = hr_settings_service.get_decimal_setting(db, tenant_id, "DailyWorkHours", Decimal("8"))

    payroll = Payroll(
        tenant_id=tenant_id,
        period=period,
        description=description or f"Payroll {period}",
        status="Draft",
        currency_code=currency,
        total_amount=Decimal("0.00"),
    )
    db.add(payroll)
    db.flush()

    total_net = Decimal("0.00")
    employees = active_employees(db, tenant_id)
    for employee in employees:
        summary = attendance_service.summarize_period(db, employee, year, month)
        items = overtime_items(employee, summary, daily_hours, types)

        bonuses = compensation_service.unprocessed_bonuses(db, employee, period)
        items += [_item(types, "BONUS", b.amount, b.description) for b in bonuses]

        commissions = compensation_service.unprocessed_commissions(db, employee, period)
        items += [
            _item(types, "COMMISSION", c.commission_amount, f"Sales {c.sales_amount}")
            for c in commissions
            if c.commission_amount > 0
        ]

        incidents = fixed_asset_service.pending_salary_deductions(db, employee.id)
        items += [
            _item(types, "ASSET_DAMAGE", i.deduction_amount, i.description[:250], kind="Deduction")
            for i in incidents
        ]

        advances = compensation_service.deductible_advances(db, employee, period_end)
        advance_total = sum((Decimal(a.amount) for a in advances), Decimal("0"))

        rule = hr_settings_service.match_ss_rule(ss_rules, employee.citizenship, employee.social_security_type)
        risk_profile = employee.sgk_risk_profile or employee.department.sgk_risk_profile
        ledger = _ytd_ledger(db, employee, year)

        result = calculate_payroll(
            EmployeeProfile(
                marital_status=employee.marital_status,
                is_spouse_working=employee.is_spouse_working,
                child_count=employee.child_count or 0,
            ),
            Decimal(employee.current_salary or 0),
            items=items,
            tax_rules=tax_rules,
            rates=ContributionRates.from_rule(rule) if rule is not None else None,
            minimum_wage_gross=minimum_wage.gross_amount if minimum_wage is not None else None,
            parameters=parameters,
            ytd_tax_base=Decimal(ledger.ytd_tax_base or 0),
            risk_employer_multiplier=risk_profile.employer_multiplier if risk_profile is not None else None,
            advance=advance_total,
            transport=Decimal(employee.transport_amount or 0),
        )

        entry = _entry_from_result(payroll, employee, result, items)
        db.add(entry)
        db.flush()

        for item in items:
            db.add(
                PayrollEntryDetail(
                    tenant_id=tenant_id,
                    entry_id=entry.id,
                    earning_deduction_type_id=item.type_id,
                    code=item.code,
                    description=item.description,
                    amount=item.amount,
                    kind=item.kind,
                )
            )
        if result.advance_deduction > 0:
            advance_type = types.get("ADVANCE")
            db.add(
                PayrollEntryDetail(
                    tenant_id=tenant_id,
                    entry_id=entry.id,
                    earning_deduction_type_id=advance_type.id if advance_type is not None else None,
                    code="ADVANCE",
                    description="Salary advance",
                    amount=result.advance_deduction,
                    kind="Deduction",
                )
            )

        ledger.ytd_tax_base = money(Decimal(ledger.ytd_tax_base or 0) + result.taxable_income)
        for bonus in bonuses:
            bonus.is_processed = True
        for commission in commissions:
            commission.is_processed = True
        for advance in advances:
            advance.is_deducted = True
        for incident in incidents:
            incident.is_deducted = True

        total_net += result.net_payable

    payroll.total_amount = money(total_net)
    db.flush()

    create_audit_log(
        db,
        "PayrollRun",
        "Payroll",
        tenant_id=tenant_id,
        entity_id=str(payroll.id),
        user_id=user_id,
        username=username,
        new_values={"period": period, "employees": len(employees), "total_amount": str(payroll.total_amount)},
        description=f"Payroll run {period}",
    )
    logger.info("Payroll %s created: %s employees, total %s %s", period, len(employees), payroll.total_amount, currency)
    notification_service.send_telegram_notification(
        notification_service.format_payroll_run_notification(
            period, len(employees), payroll.total_amount, currency, username
        )
    )
    return payroll


def get_payroll(db: Session, tenant_id: uuid.UUID, payroll_id: uuid.UUID) -> Payroll:
    payroll = (
        db.query(Payroll)
        .filter(Payroll.id == payroll_id, Payroll.tenant_id == tenant_id, Payroll.is_deleted.is_(False))
        .first()
    )
    if payroll is None:
        raise NotFoundError("Payroll not found")
    return payroll


def list_payrolls(db: Session, tenant_id: uuid.UUID, year: int | None = None, status: str | None = None) -> list[Payroll]:
    query = db.query(Payroll).filter(Payroll.tenant_id == tenant_id, Payroll.is_deleted.is_(False))
    if year:
        query = query.filter(Payroll.period.like(f"{year:04d}-%"))
    if status:
        query = query.filter(Payroll.status == status)
    return query.order_by(Payroll.period.desc()).all()


def approve_payroll(db: Session, tenant_id: uuid.UUID, payroll_id: uuid.UUID, user_id: uuid.UUID | None) -> Payroll:
    payroll = get_payroll(db, tenant_id, payroll_id)
    if payroll.status != "Draft":
        raise BusinessRuleError(f"Only draft payrolls can be approved (status: {payroll.status})")
    payroll.status = "Approved"
    payroll.approved_by = user_id
    payroll.approved_at = utcnow()
    db.flush()
    logger.info("Payroll %s approved", payroll.period)
    return payroll


def mark_payroll_paid(db: Session, tenant_id: uuid.UUID, payroll_id: uuid.UUID) -> Payroll:
    payroll = get_payroll(db, tenant_id, payroll_id)
    if payroll.status != "Approved":
        raise BusinessRuleError(f"Only approved payrolls can be paid (status: {payroll.status})")
    payroll.status = "Paid"
    payroll.paid_at = utcnow()
    db.flush()
    logger.info("Payroll %s paid", payroll.period)
    return payroll


def get_payroll_entries(db: Session, tenant_id: uuid.UUID, payroll_id: uuid.UUID) -> list[PayrollEntry]:
    payroll = get_payroll(db, tenant_id, payroll_id)
    return (
        db.query(PayrollEntry)
        .filter(PayrollEntry.payroll_id == payroll.id, PayrollEntry.is_deleted.is_(False))
        .all()
    )


def get_payroll_entry(db: Session, tenant_id: uuid.UUID, payroll_id: uuid.UUID, entry_id: uuid.UUID) -> PayrollEntry:
    entry = (
        db.query(PayrollEntry)
        .filter(
            PayrollEntry.id == entry_id,
            PayrollEntry.payroll_id == payroll_id,
            PayrollEntry.tenant_id == tenant_id,
            PayrollEntry.is_deleted.is_(False),
        )
        .first()
    )
    if entry is None:
        raise NotFoundError("Payroll entry not found")
    return entry


def entry_to_dict(entry: PayrollEntry) -> dict[str, Any]:
    return {
        "id": str(entry.id),
        "payroll_id": str(entry.payroll_id),
        "employee_id": str(entry.employee_id),
        "employee_name": entry.employee.full_name,
        "base_salary": float(entry.base_salary),
        "overtime_pay": float(entry.overtime_pay),
        "bonus_pay": float(entry.bonus_pay),
        "commission_pay": float(entry.commission_pay),
        "transport_amount": float(entry.transport_amount),
        "cumulative_tax_base_before": float(entry.cumulative_tax_base_before),
        "total_taxable_earnings": float(entry.total_taxable_earnings),
        "total_sgk_exempt_earnings": float(entry.total_sgk_exempt_earnings),
        "social_security_employee": float(entry.social_security_employee),
        "provident_fund_employee": float(entry.provident_fund_employee),
        "unemployment_insurance_employee": float(entry.unemployment_insurance_employee),
        "personal_allowance_deduction": float(entry.personal_allowance_deduction),
        "income_tax": float(entry.income_tax),
        "stamp_tax": float(entry.stamp_tax),
        "social_security_employer": float(entry.social_security_employer),
        "provident_fund_employer": float(entry.provident_fund_employer),
        "unemployment_insurance_employer": float(entry.unemployment_insurance_employer),
        "advance_deduction": float(entry.advance_deduction),
        "other_deductions": float(entry.other_deductions),
        "net_payable": float(entry.net_payable),
        "exchange_rate": float(entry.exchange_rate),
    }


def get_payslip(db: Session, tenant_id: uuid.UUID, payroll_id: uuid.UUID, entry_id: uuid.UUID) -> dict[str, Any]:
    """Entry with its earning / deduction lines, ready for JSON or the HTML payslip."""
    payroll = get_payroll(db, tenant_id, payroll_id)
    entry = get_payroll_entry(db, tenant_id, payroll.id, entry_id)
    details = [d for d in entry.details if not d.is_deleted]
    return {
        "period": payroll.period,
        "status": payroll.status,
        "currency": payroll.currency_code,
        "entry": entry_to_dict(entry),
        "employee": {
            "id": str(entry.employee.id),
            "name": entry.employee.full_name,
            "identity_number": entry.employee.identity_number,
            "job_title": entry.employee.job_title,
            "department": entry.employee.department.name,
            "iban": entry.employee.iban,
        },
        "earnings": [
            {"code": d.code, "description": d.description, "amount": float(d.amount)}
            for d in details if d.kind == "Earning"
        ],
        "deductions": [
            {"code": d.code, "description": d.description, "amount": float(d.amount)}
            for d in details if d.kind == "Deduction"
        ],
    }


def get_payroll_summary(db: Session, tenant_id: uuid.UUID, payroll_id: uuid.UUID) -> dict[str, Any]:
    """Totals of a payroll; a missing payroll yields zeros."""
    payroll = (
        db.query(Payroll)
        .filter(Payroll.id == payroll_id, Payroll.tenant_id == tenant_id, Payroll.is_deleted.is_(False))
        .first()
    )
    if payroll is None:
        return {
            "period": None,
            "total_gross": 0.0,
            "total_deductions": 0.0,
            "total_net": 0.0,
            "employee_count": 0,
            "currency": settings.base_currency,
        }

    gross = deductions = net = Decimal("0")
    entries = [e for e in payroll.entries if not e.is_deleted]
    for e in entries:
        gross += e.base_salary + e.total_taxable_earnings + e.total_sgk_exempt_earnings
        deductions += (
            e.social_security_employee
            + e.provident_fund_employee
            + e.unemployment_insurance_employee
            + e.income_tax
            + e.stamp_tax
        )
        net += e.net_payable

    return {
        "period": payroll.period,
        "total_gross": float(money(gross)),
        "total_deductions": float(money(deductions)),
        "total_net": float(money(net)),
        "employee_count": len(entries),
        "currency": payroll.currency_code,
    }

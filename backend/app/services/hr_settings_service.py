"""
HR reference data: statutory rule tables, HR settings and tenant seeding.

Covers:
- Tax brackets, social security rules, minimum wages, payroll parameters
- SGK risk profiles, earning/deduction types, public holidays
- Key/value HR settings
- Idempotent default data for a new tenant
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..core.error_handler import ConflictError, NotFoundError, ValidationError
from ..models.hr import (
    CITIZENSHIP_TYPES,
    SOCIAL_SECURITY_TYPES,
    HrSetting,
    LeavePolicy,
    PublicHoliday,
    SgkRiskProfile,
)
from ..models.payroll import (
    EarningDeductionType,
    MinimumWage,
    PayrollParameter,
    SocialSecurityRule,
    TaxRule,
)

logger = logging.getLogger(__name__)


DEFAULT_HR_SETTINGS = [
    ("WorkDaysPerWeek", "5", "Standard working days per week"),
    ("DailyWorkHours", "8", "Standard working hours per day"),
    ("MinimumWageNet", "35180", "Current net minimum wage"),
    ("MinimumWageGross", "40436", "Current gross minimum wage"),
    ("PersonalAllowanceFactor", "0.1", "Personal allowance multiplier"),
    ("LateToleranceMinutes", "10", "Minutes after shift start before a check-in counts as late"),
]

DEFAULT_PAYROLL_PARAMETERS = [
    ("PersonalAllowanceMultiplier", Decimal("1.0"), "Personal allowance x minimum wage"),
    ("SpouseAllowanceMultiplier", Decimal("0.5"), "Non-working spouse allowance x minimum wage"),
    ("ChildAllowanceMultiplier", Decimal("0.1"), "Per child allowance x minimum wage"),
    ("SsCeilingMultiplier", Decimal("7"), "Social security basis ceiling x minimum wage"),
    ("StampTaxRate", Decimal("0"), "Stamp tax rate on gross pay"),
]

DEFAULT_LEAVE_POLICIES = [
    # name, default days, paid, SGK missing-day code
    ("Annual Leave", 14, True, None),
    ("Sick Leave", 0, True, "01"),
    ("Maternity Leave", 112, True, None),
    ("Paternity Leave", 3, True, None),
    ("Bereavement Leave", 3, True, None),
    ("Unpaid Leave", 0, False, "21"),
]

DEFAULT_EARNING_DEDUCTION_TYPES = [
    # code, name, kind, taxable, sgk exempt, exempt limit, multiplier
    ("OT15", "Overtime 1.5x", "Earning", True, False, None, Decimal("1.5")),
    ("OT20", "Overtime 2.0x", "Earning", True, False, None, Decimal("2.0")),
    ("FOOD", "Food Allowance", "Earning", True, False, Decimal("500"), None),
    ("BONUS", "Performance Bonus", "Earning", True, False, None, None),
    ("COMMISSION", "Sales Commission", "Earning", True, False, None, None),
    ("ADVANCE", "Advance Deduction", "Deduction", False, False, None, None),
    ("ASSET_DAMAGE", "Asset Damage Deduction", "Deduction", False, False, None, None),
]

DEFAULT_RISK_PROFILES = [
    ("Low Risk", Decimal("0.09"), "Office work"),
    ("Medium Risk", Decimal("0.11"), "Workshop / field work"),
    ("High Risk", Decimal("0.13"), "Construction / heavy industry"),
]


def to_decimal(value: Any, field_name: str) -> Decimal:
    """Parse a number coming from JSON; raise ValidationError otherwise."""
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"{field_name} must be a number")


def _effective_on(model, on_date: date):
    return [
        model.effective_from <= on_date,
        or_(model.effective_to.is_(None), model.effective_to >= on_date),
    ]


def _active(model, tenant_id: uuid.UUID):
    return [model.tenant_id == tenant_id, model.is_deleted.is_(False)]


def _get_or_404(db: Session, model, tenant_id: uuid.UUID, entity_id: uuid.UUID, label: str):
    obj = db.query(model).filter(model.id == entity_id, *_active(model, tenant_id)).first()
    if obj is None:
        raise NotFoundError(f"{label} not found")
    return obj


def _apply(obj: Any, data: dict[str, Any], fields: list[str]) -> None:
    for name in fields:
        if name in data:
            setattr(obj, name, data[name])


# Tax rules
def _validate_tax_rule(lower: Decimal, upper: Decimal | None, rate: Decimal) -> None:
    if rate < 0 or rate > 1:
        raise ValidationError("rate must be between 0 and 1")
    if lower < 0:
        raise ValidationError("lower_limit cannot be negative")
    if upper is not None and upper > 0 and lower >= upper:
        raise ValidationError("lower_limit must be below upper_limit")


def create_tax_rule(
    db: Session,
    tenant_id: uuid.UUID,
    name: str,
    lower_limit: Decimal,
    upper_limit: Decimal | None,
    rate: Decimal,
    order: int,
    effective_from: date,
    effective_to: date | None = None,
) -> TaxRule:
    _validate_tax_rule(lower_limit, upper_limit, rate)
    rule = TaxRule(
        tenant_id=tenant_id,
        name=name,
        lower_limit=lower_limit,
        upper_limit=upper_limit,
        rate=rate,
        order=order,
        effective_from=effective_from,
        effective_to=effective_to,
    )
    db.add(rule)
    db.flush()
    return rule


def update_tax_rule(db: Session, tenant_id: uuid.UUID, rule_id: uuid.UUID, data: dict[str, Any]) -> TaxRule:
    rule = _get_or_404(db, TaxRule, tenant_id, rule_id, "Tax rule")
    _apply(rule, data, ["name", "lower_limit", "upper_limit", "rate", "order", "effective_from", "effective_to"])
    _validate_tax_rule(Decimal(rule.lower_limit), rule.upper_limit, Decimal(rule.rate))
    db.flush()
    return rule


def list_tax_rules(db: Session, tenant_id: uuid.UUID) -> list[TaxRule]:
    return (
        db.query(TaxRule)
        .filter(*_active(TaxRule, tenant_id))
        .order_by(TaxRule.effective_from.desc(), TaxRule.order)
        .all()
    )


def effective_tax_rules(db: Session, tenant_id: uuid.UUID, on_date: date) -> list[TaxRule]:
    """Brackets in force on `on_date`, ordered."""
    return (
        db.query(TaxRule)
        .filter(*_active(TaxRule, tenant_id), TaxRule.is_active.is_(True), *_effective_on(TaxRule, on_date))
        .order_by(TaxRule.order, TaxRule.lower_limit)
        .all()
    )


# Social security rules
def create_ss_rule(db: Session, tenant_id: uuid.UUID, data: dict[str, Any]) -> SocialSecurityRule:
    citizenship = data.get("citizenship_type", "TRNC")
    ss_type = data.get("social_security_type", "Standard")
    if citizenship not in CITIZENSHIP_TYPES:
        raise ValidationError(f"citizenship_type must be one of {', '.join(CITIZENSHIP_TYPES)}")
    if ss_type not in SOCIAL_SECURITY_TYPES:
        raise ValidationError(f"social_security_type must be one of {', '.join(SOCIAL_SECURITY_TYPES)}")

    rate_fields = [
        "employee_deduction_rate",
        "employer_deduction_rate",
        "provident_fund_employee_rate",
        "provident_fund_employer_rate",
        "unemployment_insurance_employee_rate",
        "unemployment_insurance_employer_rate",
    ]
    rates = {f: to_decimal(data.get(f, 0), f) for f in rate_fields}
    for name, value in rates.items():
        if value < 0 or value > 1:
            raise ValidationError(f"{name} must be between 0 and 1")

    rule = SocialSecurityRule(
        tenant_id=tenant_id,
        name=data.get("name") or f"{citizenship} {ss_type}",
        citizenship_type=citizenship,
        social_security_type=ss_type,
        effective_from=data["effective_from"],
        effective_to=data.get("effective_to"),
        **rates,
    )
    db.add(rule)
    db.flush()
    return rule


def list_ss_rules(db: Session, tenant_id: uuid.UUID) -> list[SocialSecurityRule]:
    return (
        db.query(SocialSecurityRule)
        .filter(*_active(SocialSecurityRule, tenant_id))
        .order_by(SocialSecurityRule.effective_from.desc())
        .all()
    )


def effective_ss_rules(db: Session, tenant_id: uuid.UUID, on_date: date) -> list[SocialSecurityRule]:
    return (
        db.query(SocialSecurityRule)
        .filter(
            *_active(SocialSecurityRule, tenant_id),
            SocialSecurityRule.is_active.is_(True),
            *_effective_on(SocialSecurityRule, on_date),
        )
        .order_by(SocialSecurityRule.effective_from.desc())
        .all()
    )


def match_ss_rule(
    rules: list[SocialSecurityRule], citizenship: str, social_security_type: str
) -> SocialSecurityRule | None:
    """Exact (citizenship, type) match, else the TRNC/Standard rule."""
    for rule in rules:
        if rule.citizenship_type == citizenship and rule.social_security_type == social_security_type:
            return rule
    for rule in rules:
        if rule.citizenship_type == "TRNC" and rule.social_security_type == "Standard":
            return rule
    return None


# Minimum wage
def create_minimum_wage(
    db: Session,
    tenant_id: uuid.UUID,
    gross_amount: Decimal,
    net_amount: Decimal,
    effective_from: date,
    effective_to: date | None = None,
) -> MinimumWage:
    if gross_amount <= 0 or net_amount <= 0:
        raise ValidationError("Minimum wage amounts must be positive")
    if net_amount > gross_amount:
        raise ValidationError("net_amount cannot exceed gross_amount")
    wage = MinimumWage(
        tenant_id=tenant_id,
        gross_amount=gross_amount,
        net_amount=net_amount,
        effective_from=effective_from,
        effective_to=effective_to,
    )
    db.add(wage)
    db.flush()
    return wage


def list_minimum_wages(db: Session, tenant_id: uuid.UUID) -> list[MinimumWage]:
    return (
        db.query(MinimumWage)
        .filter(*_active(MinimumWage, tenant_id))
        .order_by(MinimumWage.effective_from.desc())
        .all()
    )


def effective_minimum_wage(db: Session, tenant_id: uuid.UUID, on_date: date) -> MinimumWage | None:
    """Latest minimum wage in force on `on_date`."""
    return (
        db.query(MinimumWage)
        .filter(*_active(MinimumWage, tenant_id), *_effective_on(MinimumWage, on_date))
        .order_by(MinimumWage.effective_from.desc())
        .first()
    )


# Payroll parameters
def set_payroll_parameter(
    db: Session, tenant_id: uuid.UUID, key: str, value: Decimal, description: str | None = None
) -> PayrollParameter:
    param = (
        db.query(PayrollParameter)
        .filter(*_active(PayrollParameter, tenant_id), PayrollParameter.key == key)
        .first()
    )
    if param is None:
        param = PayrollParameter(tenant_id=tenant_id, key=key, value=value, description=description)
        db.add(param)
    else:
        param.value = value
        if description is not None:
            param.description = description
    db.flush()
    return param


def list_payroll_parameters(db: Session, tenant_id: uuid.UUID) -> list[PayrollParameter]:
    return (
        db.query(PayrollParameter)
        .filter(*_active(PayrollParameter, tenant_id))
        .order_by(PayrollParameter.key)
        .all()
    )


def payroll_parameters_map(db: Session, tenant_id: uuid.UUID) -> dict[str, Decimal]:
    return {p.key: Decimal(p.value) for p in list_payroll_parameters(db, tenant_id)}


# SGK risk profiles
def create_risk_profile(
    db: Session, tenant_id: uuid.UUID, name: str, employer_multiplier: Decimal, description: str | None = None
) -> SgkRiskProfile:
    if employer_multiplier < 0 or employer_multiplier > 1:
        raise ValidationError("employer_multiplier must be between 0 and 1")
    profile = SgkRiskProfile(
        tenant_id=tenant_id, name=name, employer_multiplier=employer_multiplier, description=description
    )
    db.add(profile)
    db.flush()
    return profile


def list_risk_profiles(db: Session, tenant_id: uuid.UUID) -> list[SgkRiskProfile]:
    return (
        db.query(SgkRiskProfile)
        .filter(*_active(SgkRiskProfile, tenant_id))
        .order_by(SgkRiskProfile.employer_multiplier)
        .all()
    )


# Earning / deduction types
def create_earning_deduction_type(db: Session, tenant_id: uuid.UUID, data: dict[str, Any]) -> EarningDeductionType:
    kind = data.get("kind", "Earning")
    if kind not in ("Earning", "Deduction"):
        raise ValidationError("kind must be Earning or Deduction")
    existing = (
        db.query(EarningDeductionType)
        .filter(*_active(EarningDeductionType, tenant_id), EarningDeductionType.code == data["code"])
        .first()
    )
    if existing:
        raise ConflictError(f"Earning/deduction type {data['code']} already exists")

    item_type = EarningDeductionType(
        tenant_id=tenant_id,
        code=data["code"],
        name=data["name"],
        kind=kind,
        is_taxable=bool(data.get("is_taxable", True)),
        is_sgk_exempt=bool(data.get("is_sgk_exempt", False)),
        exempt_limit=to_decimal(data["exempt_limit"], "exempt_limit") if data.get("exempt_limit") is not None else None,
        multiplier=to_decimal(data["multiplier"], "multiplier") if data.get("multiplier") is not None else None,
    )
    db.add(item_type)
    db.flush()
    return item_type


def list_earning_deduction_types(db: Session, tenant_id: uuid.UUID) -> list[EarningDeductionType]:
    return (
        db.query(EarningDeductionType)
        .filter(*_active(EarningDeductionType, tenant_id))
        .order_by(EarningDeductionType.code)
        .all()
    )


def earning_types_by_code(db: Session, tenant_id: uuid.UUID) -> dict[str, EarningDeductionType]:
    return {t.code: t for t in list_earning_deduction_types(db, tenant_id)}


# Public holidays
def create_public_holiday(db: Session, tenant_id: uuid.UUID, holiday_date: date, name: str) -> PublicHoliday:
    existing = (
        db.query(PublicHoliday)
        .filter(*_active(PublicHoliday, tenant_id), PublicHoliday.holiday_date == holiday_date)
        .first()
    )
    if existing:
        raise ConflictError(f"A public holiday already exists on {holiday_date.isoformat()}")
    holiday = PublicHoliday(tenant_id=tenant_id, holiday_date=holiday_date, name=name)
    db.add(holiday)
    db.flush()
    return holiday


def list_public_holidays(db: Session, tenant_id: uuid.UUID, year: int | None = None) -> list[PublicHoliday]:
    query = db.query(PublicHoliday).filter(*_active(PublicHoliday, tenant_id))
    if year:
        query = query.filter(
            PublicHoliday.holiday_date >= date(year, 1, 1),
            PublicHoliday.holiday_date <= date(year, 12, 31),
        )
    return query.order_by(PublicHoliday.holiday_date).all()


def holiday_dates(db: Session, tenant_id: uuid.UUID, start: date, end: date) -> set[date]:
    rows = (
        db.query(PublicHoliday.holiday_date)
        .filter(
            *_active(PublicHoliday, tenant_id),
            PublicHoliday.holiday_date >= start,
            PublicHoliday.holiday_date <= end,
        )
        .all()
    )
    return {row[0] for row in rows}


def delete_reference_item(db: Session, tenant_id: uuid.UUID, model, item_id: uuid.UUID, user_id: uuid.UUID | None) -> None:
    """Soft-delete a reference row (tax rule, SS rule, holiday...)."""
    obj = _get_or_404(db, model, tenant_id, item_id, model.__name__)
    obj.soft_delete(user_id)
    db.flush()


# HR settings
def get_setting(db: Session, tenant_id: uuid.UUID, key: str, default: str | None = None) -> str | None:
    setting = (
        db.query(HrSetting)
        .filter(*_active(HrSetting, tenant_id), HrSetting.key == key)
        .first()
    )
    return setting.value if setting else default


def get_decimal_setting(db: Session, tenant_id: uuid.UUID, key: str, default: Decimal) -> Decimal:
    raw = get_setting(db, tenant_id, key)
    if raw is None:
        return default
    try:
        return Decimal(raw)
    except InvalidOperation:
        logger.warning("HR setting %s has non-numeric value %r, using %s", key, raw, default)
        return default


def get_int_setting(db: Session, tenant_id: uuid.UUID, key: str, default: int) -> int:
    return int(get_decimal_setting(db, tenant_id, key, Decimal(default)))


def set_setting(
    db: Session, tenant_id: uuid.UUID, key: str, value: str, description: str | None = None
) -> HrSetting:
    setting = (
        db.query(HrSetting)
        .filter(*_active(HrSetting, tenant_id), HrSetting.key == key)
        .first()
    )
    if setting is None:
        setting = HrSetting(tenant_id=tenant_id, key=key, value=str(value), description=description)
        db.add(setting)
    else:
        setting.value = str(value)
        if description is not None:
            setting.description = description
    db.flush()
    return setting


def list_settings(db: Session, tenant_id: uuid.UUID) -> list[HrSetting]:
    return db.query(HrSetting).filter(*_active(HrSetting, tenant_id)).order_by(HrSetting.key).all()


def seed_tenant_defaults(db: Session, tenant_id: uuid.UUID) -> dict[str, int]:
    """Insert the default reference data a tenant is missing.

    Safe to run repeatedly: existing rows (matched by key / code / name) are left untouched.

    Returns:
        Number of rows created per kind.
    """
    created = {"settings": 0, "parameters": 0, "leave_policies": 0, "earning_types": 0, "risk_profiles": 0}

    existing_settings = {s.key for s in list_settings(db, tenant_id)}
    for key, value, description in DEFAULT_HR_SETTINGS:
        if key not in existing_settings:
            db.add(HrSetting(tenant_id=tenant_id, key=key, value=value, description=description))
            created["settings"] += 1

    existing_params = {p.key for p in list_payroll_parameters(db, tenant_id)}
    for key, value, description in DEFAULT_PAYROLL_PARAMETERS:
        if key not in existing_params:
            db.add(PayrollParameter(tenant_id=tenant_id, key=key, value=value, description=description))
            created["parameters"] += 1

    existing_policies = {
        p.name for p in db.query(LeavePolicy).filter(*_active(LeavePolicy, tenant_id)).all()
    }
    for name, days, is_paid, sgk_code in DEFAULT_LEAVE_POLICIES:
        if name not in existing_policies:
            db.add(
                LeavePolicy(
                    tenant_id=tenant_id,
                    name=name,
                    default_days=days,
                    is_paid=is_paid,
                    sgk_missing_day_code=sgk_code,
                )
            )
            created["leave_policies"] += 1

    existing_types = set(earning_types_by_code(db, tenant_id))
    for code, name, kind, taxable, sgk_exempt, exempt_limit, multiplier in DEFAULT_EARNING_DEDUCTION_TYPES:
        if code not in existing_types:
            db.add(
                EarningDeductionType(
                    tenant_id=tenant_id,
                    code=code,
                    name=name,
                    kind=kind,
                    is_taxable=taxable,
                    is_sgk_exempt=sgk_exempt,
                    exempt_limit=exempt_limit,
                    multiplier=multiplier,
                )
            )
            created["earning_types"] += 1

    existing_profiles = {p.name for p in list_risk_profiles(db, tenant_id)}
    for name, multiplier, description in DEFAULT_RISK_PROFILES:
        if name not in existing_profiles:
            db.add(
                SgkRiskProfile(
                    tenant_id=tenant_id, name=name, employer_multiplier=multiplier, description=description
                )
            )
            created["risk_profiles"] += 1

    db.flush()
    logger.info("Seeded tenant %s defaults: %s", tenant_id, created)
    return created

"""
Payroll calculation for one employee and one month (TRNC / KKTC rules).

Pure functions, no database access: the payroll run loads the rules and passes them in.

Order of operations:
1. Split extra earnings into taxable / SGK-exempt parts.
2. Social security basis = salary + SGK-liable earnings, capped at N x minimum wage.
3. Employee contributions (SS, provident fund, unemployment insurance).
4. Tax base = salary + taxable earnings - employee contributions.
5. Personal allowance from the minimum wage and family situation.
6. Income tax with cumulative (year-to-date) bracket application.
7. Net = gross - contributions - taxes - advance - other deductions + transport.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Mapping, Protocol, Sequence

from ..models.base import money

ZERO = Decimal("0")
DEFAULT_SS_CEILING_MULTIPLIER = Decimal("7")


class TaxBracket(Protocol):
    lower_limit: Decimal
    upper_limit: Decimal | None
    rate: Decimal
    order: int


@dataclass
class EmployeeProfile:
    """Family and status data the calculator needs."""

    marital_status: str = "Single"
    is_spouse_working: bool = False
    child_count: int = 0


@dataclass
class ContributionRates:
    """Rates of a social security rule (all as fractions, e.g. 0.09)."""

    employee_ss: Decimal = ZERO
    employer_ss: Decimal = ZERO
    employee_pf: Decimal = ZERO
    employer_pf: Decimal = ZERO
    employee_ui: Decimal = ZERO
    employer_ui: Decimal = ZERO

    @classmethod
    def from_rule(cls, rule) -> "ContributionRates":
        return cls(
            employee_ss=Decimal(rule.employee_deduction_rate or 0),
            employer_ss=Decimal(rule.employer_deduction_rate or 0),
            employee_pf=Decimal(rule.provident_fund_employee_rate or 0),
            employer_pf=Decimal(rule.provident_fund_employer_rate or 0),
            employee_ui=Decimal(rule.unemployment_insurance_employee_rate or 0),
            employer_ui=Decimal(rule.unemployment_insurance_employer_rate or 0),
        )


@dataclass
class PayrollItem:
    """An extra earning (bonus, overtime...) or deduction line."""

    code: str
    amount: Decimal
    kind: str = "Earning"
    is_taxable: bool = True
    is_sgk_exempt: bool = False
    exempt_limit: Decimal | None = None
    description: str | None = None
    type_id: object | None = None


@dataclass
class PayrollResult:
    gross_salary: Decimal
    total_gross: Decimal
    total_taxable_earnings: Decimal
    total_sgk_exempt_earnings: Decimal
    social_security_basis: Decimal
    social_security_employee: Decimal
    provident_fund_employee: Decimal
    unemployment_insurance_employee: Decimal
    social_security_employer: Decimal
    provident_fund_employer: Decimal
    unemployment_insurance_employer: Decimal
    tax_base: Decimal
    personal_allowance_deduction: Decimal
    taxable_income: Decimal
    cumulative_tax_base_before: Decimal
    income_tax: Decimal
    stamp_tax: Decimal
    advance_deduction: Decimal
    other_deductions: Decimal
    transport_amount: Decimal
    net_payable: Decimal
    items: list[PayrollItem] = field(default_factory=list)


def _d(value) -> Decimal:
    if value is None:
        return ZERO
    return value if isinstance(value, Decimal) else Decimal(str(value))


def sorted_brackets(tax_rules: Iterable[TaxBracket]) -> list[TaxBracket]:
    return sorted(tax_rules, key=lambda r: (r.order, _d(r.lower_limit)))


def tax_for(amount: Decimal, tax_rules: Sequence[TaxBracket]) -> Decimal:
    """Progressive tax on `amount`. An upper limit of 0 or None is unbounded."""
    amount = _d(amount)
    if amount <= 0:
        return ZERO

    tax = ZERO
    for rule in sorted_brackets(tax_rules):
        lower = _d(rule.lower_limit)
        upper = _d(rule.upper_limit)
        if amount <= lower:
            break
        top = amount if upper <= 0 else min(amount, upper)
        if top > lower:
            tax += (top - lower) * _d(rule.rate)
    return tax


def split_earnings(items: Iterable[PayrollItem]) -> tuple[Decimal, Decimal, Decimal, Decimal]:
    """Return (total earnings, taxable part, SGK-liable part, SGK-exempt part).

    The part of an item up to its exempt_limit is free of both tax and SGK; the remainder
    follows the item's own flags.
    """
    total = taxable = sgk_liable = sgk_exempt = ZERO
    for item in items:
        if item.kind != "Earning":
            continue
        amount = _d(item.amount)
        total += amount
        exempt_part = min(amount, _d(item.exempt_limit)) if item.exempt_limit is not None else ZERO
        rest = amount - exempt_part
        sgk_exempt += exempt_part
        if item.is_taxable:
            taxable += rest
        if item.is_sgk_exempt:
            sgk_exempt += rest
        else:
            sgk_liable += rest
    return total, taxable, sgk_liable, sgk_exempt


def personal_allowance(
    profile: EmployeeProfile,
    minimum_wage_gross: Decimal | None,
    parameters: Mapping[str, Decimal] | None,
) -> Decimal:
    """Monthly allowance deducted from the tax base."""
    if not minimum_wage_gross or not parameters:
        return ZERO

    multiplier = _d(parameters.get("PersonalAllowanceMultiplier"))
    if profile.marital_status == "Married" and not profile.is_spouse_working:
        multiplier += _d(parameters.get("SpouseAllowanceMultiplier"))
    multiplier += _d(parameters.get("ChildAllowanceMultiplier")) * max(profile.child_count or 0, 0)
    return _d(minimum_wage_gross) * multiplier


def calculate_payroll(
    profile: EmployeeProfile,
    gross_salary: Decimal,
    items: Sequence[PayrollItem] = (),
    tax_rules: Sequence[TaxBracket] = (),
    rates: ContributionRates | None = None,
    minimum_wage_gross: Decimal | None = None,
    parameters: Mapping[str, Decimal] | None = None,
    ytd_tax_base: Decimal = ZERO,
    risk_employer_multiplier: Decimal | None = None,
    advance: Decimal = ZERO,
    transport: Decimal = ZERO,
) -> PayrollResult:
    """Compute one payroll entry.

    Args:
        profile: Marital status / children of the employee.
        gross_salary: Monthly base salary.
        items: Extra earnings and deductions for the month.
        tax_rules: Income tax brackets in force.
        rates: Social security rates; None means no contributions.
        minimum_wage_gross: Gross minimum wage in force (ceiling and allowance base).
        parameters: Payroll parameters by key.
        ytd_tax_base: Taxable income already taxed this year.
        risk_employer_multiplier: Employer SS rate from the SGK risk profile, if any.
        advance: Salary advance to recover.
        transport: Untaxed transport allowance added to net.

    Returns:
        PayrollResult with every amount rounded to 2 decimals.
    """
    params = parameters or {}
    gross_salary = _d(gross_salary)
    ytd_tax_base = _d(ytd_tax_base)

    earnings, taxable_earnings, sgk_liable_earnings, sgk_exempt = split_earnings(items)
    other_deductions = sum((_d(i.amount) for i in items if i.kind == "Deduction"), ZERO)
    total_gross = gross_salary + earnings

    basis = gross_salary + sgk_liable_earnings
    if minimum_wage_gross:
        ceiling_multiplier = _d(params.get("SsCeilingMultiplier")) or DEFAULT_SS_CEILING_MULTIPLIER
        basis = min(basis, _d(minimum_wage_gross) * ceiling_multiplier)

    rates = rates or ContributionRates()
    employer_ss_rate = rates.employer_ss
    if risk_employer_multiplier is not None:
        employer_ss_rate = _d(risk_employer_multiplier)

    ss_employee = money(basis * rates.employee_ss)
    pf_employee = money(basis * rates.employee_pf)
    ui_employee = money(basis * rates.employee_ui)
    ss_employer = money(basis * employer_ss_rate)
    pf_employer = money(basis * rates.employer_pf)
    ui_employer = money(basis * rates.employer_ui)

    tax_base = gross_salary + taxable_earnings - (ss_employee + pf_employee + ui_employee)
    allowance = money(personal_allowance(profile, minimum_wage_gross, params))
    taxable_income = max(ZERO, tax_base - allowance)

    income_tax = money(
        tax_for(ytd_tax_base + taxable_income, tax_rules) - tax_for(ytd_tax_base, tax_rules)
    )
    stamp_tax = money(total_gross * _d(params.get("StampTaxRate")))

    advance = money(advance)
    transport = money(transport)
    net = (
        total_gross
        - ss_employee
        - pf_employee
        - ui_employee
        - income_tax
        - stamp_tax
        - advance
        - other_deductions
        + transport
    )

    return PayrollResult(
        gross_salary=money(gross_salary),
        total_gross=money(total_gross),
        total_taxable_earnings=money(taxable_earnings),
        total_sgk_exempt_earnings=money(sgk_exempt),
        social_security_basis=money(basis),
        social_security_employee=ss_employee,
        provident_fund_employee=pf_employee,
        unemployment_insurance_employee=ui_employee,
        social_security_employer=ss_employer,
        provident_fund_employer=pf_employer,
        unemployment_insurance_employer=ui_employer,
        tax_base=money(tax_base),
        personal_allowance_deduction=allowance,
        taxable_income=money(taxable_income),
        cumulative_tax_base_before=money(ytd_tax_base),
        income_tax=income_tax,
        stamp_tax=stamp_tax,
        advance_deduction=advance,
        other_deductions=money(other_deductions),
        transport_amount=transport,
        net_payable=money(net),
        items=list(items),
    )

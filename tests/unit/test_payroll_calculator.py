"""
Unit tests for the payroll calculator (pure functions, no database).

Priority: P0
"""

from decimal import Decimal
from types import SimpleNamespace

import pytest

from backend.app.services.payroll_calculator import (
    ContributionRates,
    EmployeeProfile,
    PayrollItem,
    calculate_payroll,
    split_earnings,
    tax_for,
)

BRACKETS = [
    SimpleNamespace(lower_limit=Decimal("0"), upper_limit=Decimal("30000"), rate=Decimal("0.10"), order=1),
    SimpleNamespace(lower_limit=Decimal("30000"), upper_limit=Decimal("60000"), rate=Decimal("0.20"), order=2),
    SimpleNamespace(lower_limit=Decimal("60000"), upper_limit=None, rate=Decimal("0.30"), order=3),
]

RATES = ContributionRates(
    employee_ss=Decimal("0.04"),
    employer_ss=Decimal("0.10"),
    employee_pf=Decimal("0.05"),
    employer_pf=Decimal("0.05"),
    employee_ui=Decimal("0.01"),
    employer_ui=Decimal("0.01"),
)

PARAMETERS = {
    "PersonalAllowanceMultiplier": Decimal("1.0"),
    "SpouseAllowanceMultiplier": Decimal("0.5"),
    "ChildAllowanceMultiplier": Decimal("0.1"),
    "SsCeilingMultiplier": Decimal("7"),
    "StampTaxRate": Decimal("0"),
}

MIN_WAGE = Decimal("20000")


def _standard(gross, profile=None, **kwargs):
    return calculate_payroll(
        profile or EmployeeProfile(),
        Decimal(gross),
        tax_rules=BRACKETS,
        rates=RATES,
        minimum_wage_gross=MIN_WAGE,
        parameters=PARAMETERS,
        **kwargs,
    )


@pytest.mark.unit
@pytest.mark.p0
def test_standard_employee():
    """
    Given: 40 000 gross, single, SS 4 % / PF 5 % / UI 1 %, minimum wage 20 000
    When: the payroll is calculated
    Then: contributions 1 600 / 2 000 / 400, tax 1 600 on 16 000 taxable, net 34 400
    """
    result = _standard("40000")

    assert result.social_security_employee == Decimal("1600.00")
    assert result.provident_fund_employee == Decimal("2000.00")
    assert result.unemployment_insurance_employee == Decimal("400.00")
    assert result.personal_allowance_deduction == Decimal("20000.00")
    assert result.taxable_income == Decimal("16000.00")
    assert result.income_tax == Decimal("1600.00")
    assert result.net_payable == Decimal("34400.00")
    assert result.social_security_employer == Decimal("4000.00")


@pytest.mark.unit
@pytest.mark.p0
def test_married_with_children_gets_larger_allowance():
    """
    Given: married, spouse not working, two children
    Then: allowance 20 000 x (1 + 0.5 + 0.2) = 34 000, tax 200, net 35 800
    """
    profile = EmployeeProfile(marital_status="Married", is_spouse_working=False, child_count=2)
    result = _standard("40000", profile)

    assert result.personal_allowance_deduction == Decimal("34000.00")
    assert result.income_tax == Decimal("200.00")
    assert result.net_payable == Decimal("35800.00")


@pytest.mark.unit
def test_working_spouse_gives_no_spouse_allowance():
    profile = EmployeeProfile(marital_status="Married", is_spouse_working=True, child_count=0)
    result = _standard("40000", profile)

    assert result.personal_allowance_deduction == Decimal("20000.00")


@pytest.mark.unit
@pytest.mark.p0
def test_high_salary_is_capped_at_social_security_ceiling():
    """
    Given: 200 000 gross, ceiling 7 x 20 000
    Then: basis 140 000 and the bracket tax reaches the 30 % band
    """
    result = _standard("200000")

    assert result.social_security_basis == Decimal("140000.00")
    assert result.social_security_employee == Decimal("5600.00")
    assert result.provident_fund_employee == Decimal("7000.00")
    assert result.unemployment_insurance_employee == Decimal("1400.00")
    assert result.income_tax == Decimal("40800.00")


@pytest.mark.unit
def test_transport_is_added_to_net_untaxed():
    result = _standard("30000", transport=Decimal("2000"))

    assert result.income_tax == Decimal("700.00")
    assert result.transport_amount == Decimal("2000.00")
    assert result.net_payable == Decimal("28300.00")


@pytest.mark.unit
def test_without_minimum_wage_or_parameters():
    """
    Given: 50 000 gross, SS 9 %, PF 5 %, no minimum wage, no parameters
    Then: no ceiling, no allowance, tax 5 600, net 37 400
    """
    rates = ContributionRates(employee_ss=Decimal("0.09"), employee_pf=Decimal("0.05"))
    result = calculate_payroll(EmployeeProfile(), Decimal("50000"), tax_rules=BRACKETS, rates=rates)

    assert result.personal_allowance_deduction == Decimal("0.00")
    assert result.income_tax == Decimal("5600.00")
    assert result.net_payable == Decimal("37400.00")


@pytest.mark.unit
def test_no_rule_means_no_contributions():
    result = calculate_payroll(EmployeeProfile(), Decimal("10000"), tax_rules=BRACKETS)

    assert result.social_security_employee == Decimal("0.00")
    assert result.provident_fund_employee == Decimal("0.00")
    assert result.social_security_employer == Decimal("0.00")
    assert result.income_tax == Decimal("1000.00")


@pytest.mark.unit
@pytest.mark.p0
def test_income_tax_is_cumulative_over_the_year():
    """
    Given: 25 000 already taxed this year, 16 000 taxable this month
    Then: tax = tax(41 000) - tax(25 000) = 5 200 - 2 500
    """
    result = _standard("40000", ytd_tax_base=Decimal("25000"))

    assert result.cumulative_tax_base_before == Decimal("25000.00")
    assert result.income_tax == Decimal("2700.00")


@pytest.mark.unit
def test_tax_for_brackets():
    assert tax_for(Decimal("0"), BRACKETS) == Decimal("0")
    assert tax_for(Decimal("30000"), BRACKETS) == Decimal("3000.00")
    assert tax_for(Decimal("70000"), BRACKETS) == Decimal("12000.00")


@pytest.mark.unit
def test_upper_limit_zero_is_unbounded():
    brackets = [SimpleNamespace(lower_limit=Decimal("0"), upper_limit=Decimal("0"), rate=Decimal("0.2"), order=1)]

    assert tax_for(Decimal("1000"), brackets) == Decimal("200.0")


@pytest.mark.unit
def test_exempt_limit_splits_an_earning():
    """The first 500 of the food allowance is free of tax and SGK, the rest follows the flags."""
    items = [PayrollItem(code="FOOD", amount=Decimal("800"), exempt_limit=Decimal("500"))]

    total, taxable, sgk_liable, sgk_exempt = split_earnings(items)

    assert total == Decimal("800")
    assert taxable == Decimal("300")
    assert sgk_liable == Decimal("300")
    assert sgk_exempt == Decimal("500")


@pytest.mark.unit
def test_deductions_and_advance_reduce_net_only():
    items = [PayrollItem(code="ASSET_DAMAGE", amount=Decimal("250"), kind="Deduction")]
    result = _standard("40000", items=items, advance=Decimal("1000"))

    assert result.total_gross == Decimal("40000.00")
    assert result.income_tax == Decimal("1600.00")
    assert result.other_deductions == Decimal("250.00")
    assert result.advance_deduction == Decimal("1000.00")
    assert result.net_payable == Decimal("33150.00")


@pytest.mark.unit
def test_risk_profile_replaces_employer_rate_and_stamp_tax_applies():
    params = dict(PARAMETERS, StampTaxRate=Decimal("0.01"))
    result = calculate_payroll(
        EmployeeProfile(),
        Decimal("40000"),
        tax_rules=BRACKETS,
        rates=RATES,
        minimum_wage_gross=MIN_WAGE,
        parameters=params,
        risk_employer_multiplier=Decimal("0.13"),
    )

    assert result.social_security_employer == Decimal("5200.00")
    assert result.stamp_tax == Decimal("400.00")
    assert result.net_payable == Decimal("34000.00")

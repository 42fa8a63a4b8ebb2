"""
Unit tests for commission rule selection, overtime pay, depreciation and badge payloads.
"""

import json
import uuid
from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest

from backend.app.core.error_handler import ValidationError
from backend.app.models.fixed_assets import Asset, AssetCategory
from backend.app.models.hr import CommissionRule, Employee
from backend.app.services.attendance_service import PeriodSummary
from backend.app.services.compensation_service import period_key, select_commission_rule
from backend.app.services.fixed_asset_service import monthly_depreciation
from backend.app.services.payroll_service import hourly_rate, overtime_items
from backend.app.services.qr_service import create_employee_badge_qr_data, parse_scan_payload


def _rule(role, target, pct, active=True):
    return CommissionRule(role=role, min_target=Decimal(target), commission_percentage=Decimal(pct), is_active=active)


RULES = [
    _rule("Sales Rep", "0", "1"),
    _rule("Sales Rep", "50000", "3"),
    _rule("Sales Rep", "100000", "5"),
    _rule("Sales Rep", "80000", "10", active=False),
    _rule("Manager", "0", "2"),
]


@pytest.mark.unit
@pytest.mark.parametrize(
    "sales, expected_pct",
    [("10000", "1"), ("50000", "3"), ("99999", "3"), ("250000", "5")],
)
def test_highest_reached_target_wins(sales, expected_pct):
    rule = select_commission_rule(RULES, "Sales Rep", Decimal(sales))

    assert rule.commission_percentage == Decimal(expected_pct)


@pytest.mark.unit
def test_no_rule_for_other_roles():
    assert select_commission_rule(RULES, "Driver", Decimal("100000")) is None
    assert select_commission_rule(RULES, None, Decimal("100000")) is None


@pytest.mark.unit
def test_period_key_is_zero_padded():
    assert period_key(2025, 3) == "2025-03"


@pytest.mark.unit
@pytest.mark.p0
def test_overtime_pay_uses_salary_over_22_days():
    """
    Given: salary 44 000, 8 h days -> hourly rate 250
    When: 2 h of 1x and 3 h of 2x overtime
    Then: OT15 = 2 x 250 x 1.5 = 750 and OT20 = 3 x 250 x 2 = 1 500
    """
    employee = Employee(current_salary=Decimal("44000"))
    summary = PeriodSummary(overtime_1x_mins=120, overtime_2x_mins=180)

    items = overtime_items(employee, summary, Decimal("8"), {})

    assert hourly_rate(Decimal("44000"), Decimal("8")) == Decimal("250")
    assert [(i.code, i.amount) for i in items] == [("OT15", Decimal("750.00")), ("OT20", Decimal("1500.00"))]


@pytest.mark.unit
def test_overtime_multiplier_comes_from_the_earning_type():
    employee = Employee(current_salary=Decimal("44000"))
    types = {
        "OT15": SimpleNamespace(
            id=uuid.uuid4(), kind="Earning", is_taxable=True, is_sgk_exempt=False,
            exempt_limit=None, multiplier=Decimal("1.25"),
        )
    }

    items = overtime_items(employee, PeriodSummary(overtime_1x_mins=60), Decimal("8"), types)

    assert items[0].amount == Decimal("312.50")
    assert items[0].type_id == types["OT15"].id


def _asset(cost="120000", salvage="0", accumulated="0", method=None, life=None, status="InStock"):
    category = AssetCategory(depreciation_method="StraightLine", useful_life_months=60)
    asset = Asset(
        acquisition_date=date(2025, 1, 1),
        acquisition_cost=Decimal(cost),
        salvage_value=Decimal(salvage),
        accumulated_depreciation=Decimal(accumulated),
        depreciation_method=method,
        useful_life_months=life,
        status=status,
    )
    return asset, category


@pytest.mark.unit
@pytest.mark.p1
def test_straight_line_depreciation():
    asset, category = _asset(cost="120000", salvage="12000")

    assert monthly_depreciation(asset, category) == Decimal("1800.00")


@pytest.mark.unit
def test_declining_balance_uses_book_value():
    asset, category = _asset(cost="120000", accumulated="20000", method="DecliningBalance")

    # 100 000 x 2 / 60
    assert monthly_depreciation(asset, category) == Decimal("3333.33")


@pytest.mark.unit
def test_depreciation_never_goes_below_salvage():
    asset, category = _asset(cost="120000", salvage="12000", accumulated="107000")

    assert monthly_depreciation(asset, category) == Decimal("1000.00")


@pytest.mark.unit
def test_no_depreciation_for_disposed_none_or_future_assets():
    disposed, category = _asset(status="Disposed")
    no_method, _ = _asset(method="None")
    future, _ = _asset()

    assert monthly_depreciation(disposed, category) == Decimal("0.00")
    assert monthly_depreciation(no_method, category) == Decimal("0.00")
    assert monthly_depreciation(future, category, period_end=date(2024, 12, 31)) == Decimal("0.00")


@pytest.mark.unit
def test_badge_payload_round_trips_through_the_scanner():
    employee = Employee(tenant_id=uuid.uuid4(), qr_token="tok-123")

    payload = create_employee_badge_qr_data(employee)

    assert json.loads(payload)["type"] == "employee"
    assert parse_scan_payload(payload) == "tok-123"
    assert parse_scan_payload("  tok-456 ") == "tok-456"


@pytest.mark.unit
@pytest.mark.parametrize("raw", ["", "   ", '{"type": "asset", "token": "x"}', "{not json"])
def test_invalid_scan_payloads(raw):
    with pytest.raises(ValidationError):
        parse_scan_payload(raw)

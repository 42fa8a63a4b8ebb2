"""
E2E tests for the monthly payroll.

Covers: running a period, the Draft -> Approved -> Paid lifecycle, payslips, the period
summary and the earnings / deductions collected from attendance, compensation and assets.
"""

import uuid

import pytest

from backend.app.api import attendance as attendance_api
from backend.app.api import compensation as compensation_api
from backend.app.api import fixed_assets as fixed_assets_api
from backend.app.api import payroll as payroll_api
from backend.app.models.hr import AdvanceRequest, Bonus
from backend.app.models.payroll import EmployeeCumulative
from tests.utils.factories import (
    create_test_asset,
    create_test_employee,
    create_test_payroll_rules,
)


def _run(api_client, year=2025, month=1):
    return api_client.post(payroll_api.run_payroll, json={"year": year, "month": month})


@pytest.mark.e2e
@pytest.mark.p0
def test_run_payroll_for_standard_employee(api_client, test_db, tenant):
    """
    Given:
    - Brackets 10/20/30 %, SS 4 %, PF 5 %, UI 1 %, minimum wage 20 000
    - One single employee earning 40 000

    When:
    - POST /api/payroll/run for January 2025

    Then:
    - A Draft payroll with one entry is created
    - The entry nets 34 400 after 1 600 income tax
    """
    create_test_payroll_rules(test_db, tenant)
    employee = create_test_employee(test_db, tenant, salary=40000)
    test_db.commit()

    response = _run(api_client)

    assert response.status_code == 201, response.text
    payroll = response.json()
    assert payroll["period"] == "2025-01"
    assert payroll["status"] == "Draft"
    assert payroll["employee_count"] == 1
    assert payroll["total_amount"] == 34400.0

    entries = api_client.get(payroll_api.get_entries, path_params={"id": payroll["id"]}).json()
    assert len(entries) == 1
    entry = entries[0]
    assert entry["employee_id"] == str(employee.id)
    assert entry["social_security_employee"] == 1600.0
    assert entry["provident_fund_employee"] == 2000.0
    assert entry["unemployment_insurance_employee"] == 400.0
    assert entry["personal_allowance_deduction"] == 20000.0
    assert entry["income_tax"] == 1600.0
    assert entry["net_payable"] == 34400.0

    ledger = test_db.query(EmployeeCumulative).filter_by(employee_id=employee.id, year=2025).one()
    assert float(ledger.ytd_tax_base) == 16000.0


@pytest.mark.e2e
@pytest.mark.p0
def test_second_month_taxes_cumulatively(api_client, test_db, tenant):
    """
    Given: January already taxed 16 000 of taxable income
    When: February runs with the same salary
    Then: the tax is tax(32 000) - tax(16 000) = 3 400 - 1 600 = 1 800
    """
    create_test_payroll_rules(test_db, tenant)
    create_test_employee(test_db, tenant, salary=40000)
    test_db.commit()

    assert _run(api_client, month=1).status_code == 201
    response = _run(api_client, month=2)

    assert response.status_code == 201, response.text
    entry = api_client.get(payroll_api.get_entries, path_params={"id": response.json()["id"]}).json()[0]
    assert entry["cumulative_tax_base_before"] == 16000.0
    assert entry["income_tax"] == 1800.0


@pytest.mark.e2e
@pytest.mark.p0
def test_duplicate_period_is_rejected(api_client, test_db, tenant):
    create_test_payroll_rules(test_db, tenant)
    create_test_employee(test_db, tenant)
    test_db.commit()

    assert _run(api_client).status_code == 201
    response = _run(api_client)

    assert response.status_code == 409
    assert response.json()["error_code"] == "CONFLICT"


@pytest.mark.e2e
@pytest.mark.p1
def test_invalid_month_is_rejected(api_client, tenant):
    response = _run(api_client, month=13)

    assert response.status_code == 400


@pytest.mark.e2e
@pytest.mark.p0
def test_payroll_lifecycle(api_client, test_db, tenant):
    """
    Given: a Draft payroll
    When: it is paid before approval, then approved, then paid
    Then: paying a Draft is refused with 422; approval and payment move the status on
    """
    create_test_payroll_rules(test_db, tenant)
    create_test_employee(test_db, tenant)
    test_db.commit()
    payroll_id = _run(api_client).json()["id"]

    early = api_client.post(payroll_api.pay_payroll, path_params={"id": payroll_id})
    assert early.status_code == 422

    approved = api_client.post(payroll_api.approve_payroll, path_params={"id": payroll_id})
    assert approved.status_code == 200
    assert approved.json()["status"] == "Approved"
    assert approved.json()["approved_by"] is not None

    again = api_client.post(payroll_api.approve_payroll, path_params={"id": payroll_id})
    assert again.status_code == 422

    paid = api_client.post(payroll_api.pay_payroll, path_params={"id": payroll_id})
    assert paid.status_code == 200
    assert paid.json()["status"] == "Paid"
    assert paid.json()["paid_at"] is not None

    listed = api_client.get(payroll_api.list_payrolls, query={"year": 2025, "status": "Paid"}).json()
    assert [p["id"] for p in listed] == [payroll_id]


@pytest.mark.e2e
@pytest.mark.p1
def test_payslip_and_summary(api_client, test_db, tenant):
    create_test_payroll_rules(test_db, tenant)
    employee = create_test_employee(test_db, tenant, salary=40000, first_name="Mehmet", last_name="Kaya")
    create_test_employee(test_db, tenant, salary=30000)
    test_db.commit()

    payroll_id = _run(api_client).json()["id"]
    entries = api_client.get(payroll_api.get_entries, path_params={"id": payroll_id}).json()
    entry = next(e for e in entries if e["employee_id"] == str(employee.id))

    payslip = api_client.get(payroll_api.get_payslip, path_params={"id": payroll_id, "entry_id": entry["id"]})
    assert payslip.status_code == 200
    body = payslip.json()
    assert body["period"] == "2025-01"
    assert body["employee"]["name"] == "Mehmet Kaya"
    assert body["entry"]["net_payable"] == 34400.0
    assert body["earnings"] == []

    summary = api_client.get(payroll_api.get_summary, path_params={"id": payroll_id}).json()
    assert summary["employee_count"] == 2
    assert summary["total_net"] == pytest.approx(sum(e["net_payable"] for e in entries))


@pytest.mark.e2e
@pytest.mark.p1
def test_summary_of_unknown_payroll_is_zero(api_client, tenant):
    response = api_client.get(payroll_api.get_summary, path_params={"id": uuid.uuid4()})

    assert response.status_code == 200
    assert response.json()["employee_count"] == 0
    assert response.json()["total_net"] == 0.0


@pytest.mark.e2e
@pytest.mark.p1
def test_unknown_payroll_is_not_found(api_client, tenant):
    response = api_client.get(payroll_api.get_payroll, path_params={"id": uuid.uuid4()})

    assert response.status_code == 404


@pytest.mark.e2e
@pytest.mark.p0
def test_payroll_collects_overtime_bonus_advance_and_asset_damage(api_client, test_db, tenant):
    """
    Given:
    - Employee earning 44 000 (hourly rate 44 000 / (8 x 22) = 250)
    - 10 hours worked on Monday 13 January: 2 hours of 1.5x overtime
    - A 1 000 bonus for January
    - A 2 000 advance paid out, repayable on 31 January
    - A 1 500 damage charge on a resolved asset incident

    When:
    - The January payroll runs

    Then:
    - Overtime 750, bonus 1 000, advance 2 000 and other deductions 1 500 are on the entry
    - Net = 45 750 - 4 575 contributions - 2 117.50 tax - 2 000 - 1 500 = 35 557.50
    - Bonus, advance and incident are marked as processed
    """
    create_test_payroll_rules(test_db, tenant)
    employee = create_test_employee(test_db, tenant, salary=44000)
    asset = create_test_asset(test_db, tenant)
    test_db.commit()
    employee_id = str(employee.id)

    assert api_client.post(
        attendance_api.check_in, json={"employee_id": employee_id, "time": "2025-01-13T08:00:00"}
    ).status_code == 201
    assert api_client.post(
        attendance_api.check_out, json={"employee_id": employee_id, "time": "2025-01-13T18:00:00"}
    ).status_code == 200

    bonus = api_client.post(
        compensation_api.create_bonus,
        json={"employee_id": employee_id, "amount": 1000, "description": "Target reached", "date": "2025-01-20"},
    )
    assert bonus.status_code == 201
    assert bonus.json()["period"] == "2025-01"

    advance = api_client.post(
        compensation_api.create_advance,
        json={"employee_id": employee_id, "amount": 2000, "request_date": "2025-01-05", "repayment_date": "2025-01-31"},
    ).json()
    api_client.post(compensation_api.approve_advance, path_params={"id": advance["id"]})
    assert api_client.post(compensation_api.pay_advance, path_params={"id": advance["id"]}).status_code == 200

    api_client.post(
        fixed_assets_api.assign_asset,
        path_params={"id": asset.id},
        json={"employee_id": employee_id, "assigned_date": "2025-01-02"},
    )
    incident = api_client.post(
        fixed_assets_api.report_incident,
        path_params={"id": asset.id},
        json={"incident_date": "2025-01-10", "description": "Broken mirror"},
    ).json()
    assert incident["employee_id"] == employee_id
    resolved = api_client.post(
        fixed_assets_api.resolve_incident,
        path_params={"id": incident["id"]},
        json={"is_user_fault": True, "deduct_from_salary": True, "deduction_amount": 1500},
    )
    assert resolved.status_code == 200

    response = _run(api_client)
    assert response.status_code == 201, response.text

    entries = api_client.get(payroll_api.get_entries, path_params={"id": response.json()["id"]}).json()
    entry = entries[0]
    assert entry["overtime_pay"] == 750.0
    assert entry["bonus_pay"] == 1000.0
    assert entry["advance_deduction"] == 2000.0
    assert entry["other_deductions"] == 1500.0
    assert entry["income_tax"] == 2117.5
    assert entry["net_payable"] == 35557.5

    payslip = api_client.get(
        payroll_api.get_payslip, path_params={"id": response.json()["id"], "entry_id": entry["id"]}
    ).json()
    assert {e["code"] for e in payslip["earnings"]} == {"OT15", "BONUS"}
    assert {d["code"] for d in payslip["deductions"]} == {"ADVANCE", "ASSET_DAMAGE"}

    test_db.expire_all()
    assert test_db.get(Bonus, uuid.UUID(bonus.json()["id"])).is_processed is True
    assert test_db.get(AdvanceRequest, uuid.UUID(advance["id"])).is_deducted is True
    incidents = api_client.get(fixed_assets_api.list_incidents, path_params={"id": asset.id}).json()
    assert incidents[0]["is_deducted"] is True


@pytest.mark.e2e
@pytest.mark.p1
def test_terminated_employees_are_not_paid(api_client, test_db, tenant):
    create_test_payroll_rules(test_db, tenant)
    create_test_employee(test_db, tenant)
    create_test_employee(test_db, tenant, status="Terminated")
    test_db.commit()

    response = _run(api_client)

    assert response.json()["employee_count"] == 1


@pytest.mark.e2e
@pytest.mark.p1
def test_accountant_cannot_approve(api_client, test_db, tenant):
    from tests.utils.factories import create_test_user

    create_test_payroll_rules(test_db, tenant)
    create_test_employee(test_db, tenant)
    accountant = create_test_user(test_db, tenant, role="accountant")
    test_db.commit()

    payroll_id = _run(api_client.as_user(accountant.username)).json()["id"]
    response = api_client.as_user(accountant.username).post(payroll_api.approve_payroll, path_params={"id": payroll_id})

    assert response.status_code == 403

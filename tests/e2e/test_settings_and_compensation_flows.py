"""
E2E tests for HR reference data and sales commissions.
"""

import pytest

from backend.app.api import compensation as compensation_api
from backend.app.api import hr_settings as hr_settings_api
from backend.app.api import payroll as payroll_api
from tests.utils.factories import create_test_employee, create_test_payroll_rules


@pytest.mark.e2e
@pytest.mark.p1
def test_seeding_defaults_is_idempotent(api_client, tenant):
    response = api_client.post(hr_settings_api.seed_defaults)

    assert response.status_code == 200
    assert set(response.json().values()) == {0}


@pytest.mark.e2e
@pytest.mark.p1
def test_tax_rule_validation(api_client, tenant):
    ok = api_client.post(
        hr_settings_api.create_tax_rule,
        json={"name": "Band 1", "lower_limit": 0, "upper_limit": 30000, "rate": 0.1, "order": 1,
              "effective_from": "2025-01-01"},
    )
    bad_rate = api_client.post(
        hr_settings_api.create_tax_rule,
        json={"name": "Band X", "rate": 1.5, "effective_from": "2025-01-01"},
    )
    bad_limits = api_client.post(
        hr_settings_api.create_tax_rule,
        json={"name": "Band Y", "lower_limit": 50000, "upper_limit": 10000, "rate": 0.2,
              "effective_from": "2025-01-01"},
    )

    assert ok.status_code == 201, ok.text
    assert bad_rate.status_code == 400
    assert bad_limits.status_code == 400
    assert [r["name"] for r in api_client.get(hr_settings_api.list_tax_rules).json()] == ["Band 1"]


@pytest.mark.e2e
@pytest.mark.p1
def test_parameter_is_updated_in_place(api_client, tenant):
    api_client.put(hr_settings_api.set_parameter, json={"key": "StampTaxRate", "value": 0.002})

    params = {p["key"]: p["value"] for p in api_client.get(hr_settings_api.list_parameters).json()}

    assert params["StampTaxRate"] == 0.002
    assert list(params).count("StampTaxRate") == 1


@pytest.mark.e2e
@pytest.mark.p0
def test_commission_uses_the_highest_reached_target(api_client, test_db, tenant):
    """
    Given: Sales Rep rules of 2% from 50 000 and 3% from 100 000
    When: 120 000 of sales is recorded for January, then recorded again
    Then: 3 600 commission is stored once and paid out by the January payroll
    """
    create_test_payroll_rules(test_db, tenant)
    employee = create_test_employee(test_db, tenant, job_title="Sales Rep")
    test_db.commit()

    for target, pct in ((50000, 2), (100000, 3)):
        rule = api_client.post(
            compensation_api.create_commission_rule,
            json={"role": "Sales Rep", "min_target": target, "commission_percentage": pct},
        )
        assert rule.status_code == 201, rule.text

    preview = api_client.post(
        compensation_api.calculate_commission, json={"employee_id": str(employee.id), "sales_amount": 60000}
    )
    assert preview.json()["commission_amount"] == 1200.0

    payload = {"employee_id": str(employee.id), "period": "2025-01", "sales_amount": 120000}
    recorded = api_client.post(compensation_api.record_commission, json=payload)
    assert recorded.status_code == 201, recorded.text
    assert recorded.json()["commission_amount"] == 3600.0
    assert api_client.post(compensation_api.record_commission, json=payload).status_code == 409

    payroll = api_client.post(payroll_api.run_payroll, json={"year": 2025, "month": 1}).json()
    entry = api_client.get(payroll_api.get_entries, path_params={"id": payroll["id"]}).json()[0]
    payslip = api_client.get(
        payroll_api.get_payslip, path_params={"id": payroll["id"], "entry_id": entry["id"]}
    ).json()

    assert "COMMISSION" in {item["code"] for item in payslip["earnings"]}
    processed = api_client.get(compensation_api.list_commissions, query={"period": "2025-01"}).json()
    assert processed[0]["is_processed"] is True


@pytest.mark.e2e
@pytest.mark.p1
def test_commission_rule_rejects_bad_percentage(api_client, tenant):
    response = api_client.post(
        compensation_api.create_commission_rule,
        json={"role": "Sales Rep", "min_target": 0, "commission_percentage": 120},
    )

    assert response.status_code == 400


@pytest.mark.e2e
@pytest.mark.p1
def test_rejected_advance_cannot_be_paid(api_client, test_db, tenant):
    employee = create_test_employee(test_db, tenant)
    test_db.commit()

    advance = api_client.post(
        compensation_api.create_advance, json={"employee_id": str(employee.id), "amount": 3000}
    ).json()
    assert advance["status"] == "Pending"

    rejected = api_client.post(compensation_api.reject_advance, path_params={"id": advance["id"]})
    assert rejected.json()["status"] == "Rejected"

    paid = api_client.post(compensation_api.pay_advance, path_params={"id": advance["id"]})
    assert paid.status_code == 422


@pytest.mark.e2e
@pytest.mark.p1
def test_unknown_advance_status_filter_is_refused(api_client, tenant):
    assert api_client.get(compensation_api.list_advances, query={"status": "Paid"}).status_code == 200
    assert api_client.get(compensation_api.list_advances, query={"status": "Settled"}).status_code == 400

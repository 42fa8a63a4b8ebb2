"""
E2E tests for login, role checks and the audit trail.
"""

import pytest

from backend.app.api import auth as auth_api
from backend.app.api import employees as employees_api
from backend.app.api import hr_settings as hr_settings_api
from backend.app.api import payroll as payroll_api
from tests.utils.factories import create_test_department, create_test_employee, create_test_payroll_rules


@pytest.mark.e2e
@pytest.mark.p0
def test_login_sets_the_user_cookie(api_client, admin_user):
    response = api_client.as_user(None).post(auth_api.login, json={"username": "admin", "password": "secret"})

    assert response.status_code == 200
    assert response.json()["role"] == "admin"
    cookie = response.headers.get("Set-Cookie") or response.headers.get("set-cookie")
    assert cookie.startswith("x-user=admin;")


@pytest.mark.e2e
@pytest.mark.p0
def test_wrong_password_is_refused(api_client, admin_user):
    response = api_client.as_user(None).post(auth_api.login, json={"username": "admin", "password": "nope"})

    assert response.status_code == 401
    assert response.json()["error_code"] == "UNAUTHORIZED"


@pytest.mark.e2e
@pytest.mark.p0
def test_unknown_or_missing_user_is_unauthorized(api_client, tenant):
    assert api_client.as_user("ghost").get(employees_api.list_employees).status_code == 401
    assert api_client.as_user(None).get(auth_api.me).status_code == 401


@pytest.mark.e2e
@pytest.mark.p1
def test_me_returns_the_caller(api_client, admin_user):
    response = api_client.get(auth_api.me)

    assert response.json()["username"] == "admin"
    assert response.json()["tenant_id"] == str(admin_user.tenant_id)


@pytest.mark.e2e
@pytest.mark.p0
def test_roles_gate_sensitive_operations(api_client, test_db, tenant):
    """
    Given: an asset manager
    When: running a payroll, reading tax rules and reading employees
    Then: payroll and HR settings are forbidden, the employee list is readable
    """
    from tests.utils.factories import create_test_user

    manager = create_test_user(test_db, tenant, role="asset_manager")
    test_db.commit()
    client = api_client.as_user(manager.username)

    assert client.post(payroll_api.run_payroll, json={"year": 2025, "month": 1}).status_code == 403
    assert client.get(hr_settings_api.list_tax_rules).status_code == 403
    assert client.get(employees_api.list_employees).status_code == 200


@pytest.mark.e2e
@pytest.mark.p1
def test_tenants_are_isolated(api_client, test_db, tenant):
    from tests.utils.factories import create_test_tenant, create_test_user

    other = create_test_tenant(test_db, seed=True)
    outsider = create_test_user(test_db, other, role="admin")
    employee = create_test_employee(test_db, tenant)
    test_db.commit()

    response = api_client.as_user(outsider.username).get(employees_api.get_employee, path_params={"id": employee.id})

    assert response.status_code == 404


@pytest.mark.e2e
@pytest.mark.p0
def test_changes_are_audited_with_the_acting_user(api_client, test_db, tenant, admin_user):
    """
    Given: an admin creating, updating and deleting an employee
    When: the audit log is queried for that employee
    Then: Insert, Update and SoftDelete entries name the admin and the changed columns
    """
    department = create_test_department(test_db, tenant)
    test_db.commit()

    created = api_client.post(
        employees_api.create_employee,
        json={
            "identity_number": "20000000002",
            "first_name": "Can",
            "last_name": "Ozturk",
            "department_id": str(department.id),
            "current_salary": 30000,
        },
    ).json()
    api_client.put(employees_api.update_employee, path_params={"id": created["id"]}, json={"job_title": "Driver"})
    api_client.delete(employees_api.delete_employee, path_params={"id": created["id"]})

    logs = api_client.get(
        hr_settings_api.list_audit_logs, query={"entity_type": "Employee", "entity_id": created["id"]}
    ).json()
    actions = sorted(log["action"] for log in logs)

    assert actions == ["Insert", "SoftDelete", "Update"]
    assert {log["username"] for log in logs} == {"admin"}
    update = next(log for log in logs if log["action"] == "Update")
    assert update["affected_columns"] == ["job_title"]
    assert update["new_values"] == {"job_title": "Driver"}
    assert update["old_values"] == {"job_title": None}


@pytest.mark.e2e
@pytest.mark.p1
def test_payroll_run_is_audited(api_client, test_db, tenant):
    create_test_payroll_rules(test_db, tenant)
    create_test_employee(test_db, tenant)
    test_db.commit()

    payroll = api_client.post(payroll_api.run_payroll, json={"year": 2025, "month": 3}).json()

    logs = api_client.get(hr_settings_api.list_audit_logs, query={"action": "PayrollRun"}).json()
    assert len(logs) == 1
    assert logs[0]["entity_id"] == payroll["id"]
    assert logs[0]["new_values"]["period"] == "2025-03"
    assert logs[0]["username"] == "admin"

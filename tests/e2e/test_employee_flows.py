"""
E2E tests for the HR organisation: departments, shifts, employees, salary history and badges.
"""

import pytest

from backend.app.api import attendance as attendance_api
from backend.app.api import employees as employees_api
from tests.utils.factories import create_test_department, create_test_employee


def _employee_payload(department_id, **overrides):
    payload = {
        "identity_number": "10000000001",
        "first_name": "Elif",
        "last_name": "Demir",
        "department_id": department_id,
        "current_salary": 42000,
        "job_title": "Sales Rep",
        "hire_date": "2024-06-01",
        "marital_status": "Married",
        "child_count": 1,
    }
    payload.update(overrides)
    return payload


@pytest.mark.e2e
@pytest.mark.p0
def test_create_department_shift_and_employee(api_client, tenant):
    """
    Given: an empty organisation
    When: a department, a day shift and an employee on both are created
    Then: the employee is Active, linked to both and has a badge token
    """
    department = api_client.post(employees_api.create_department, json={"name": "Sales"})
    assert department.status_code == 201, department.text

    shift = api_client.post(
        employees_api.create_work_shift,
        json={"name": "Day", "start_time": "08:00", "end_time": "17:00", "break_minutes": 60},
    )
    assert shift.status_code == 201, shift.text

    response = api_client.post(
        employees_api.create_employee,
        json=_employee_payload(department.json()["id"], work_shift_id=shift.json()["id"]),
    )

    assert response.status_code == 201, response.text
    employee = response.json()
    assert employee["status"] == "Active"
    assert employee["full_name"] == "Elif Demir"
    assert employee["department_id"] == department.json()["id"]
    assert employee["work_shift_id"] == shift.json()["id"]
    assert employee["current_salary"] == 42000.0
    assert employee["hire_date"] == "2024-06-01"

    listed = api_client.get(employees_api.list_employees, query={"search": "Demir"}).json()
    assert [e["id"] for e in listed] == [employee["id"]]


@pytest.mark.e2e
@pytest.mark.p0
def test_duplicate_identity_number_is_refused(api_client, test_db, tenant):
    department = create_test_department(test_db, tenant)
    test_db.commit()

    first = api_client.post(employees_api.create_employee, json=_employee_payload(str(department.id)))
    second = api_client.post(
        employees_api.create_employee, json=_employee_payload(str(department.id), first_name="Other")
    )

    assert first.status_code == 201
    assert second.status_code == 409


@pytest.mark.e2e
@pytest.mark.p1
def test_invalid_employee_input(api_client, test_db, tenant):
    department = create_test_department(test_db, tenant)
    test_db.commit()

    bad_choice = api_client.post(
        employees_api.create_employee, json=_employee_payload(str(department.id), citizenship="Martian")
    )
    missing = api_client.post(employees_api.create_employee, json={"first_name": "Elif"})
    bad_shift = api_client.post(
        employees_api.create_work_shift, json={"name": "Broken", "start_time": "25:00", "end_time": "17:00"}
    )

    assert bad_choice.status_code == 400
    assert missing.status_code == 400
    assert "identity_number" in missing.json()["error"]
    assert bad_shift.status_code == 400


@pytest.mark.e2e
@pytest.mark.p0
def test_salary_change_keeps_history(api_client, test_db, tenant):
    """
    Given: an employee earning 40 000
    When: the salary is raised to 45 000, set to 45 000 again, then changed via update
    Then: two history rows, newest first; the unchanged call adds nothing
    """
    employee = create_test_employee(test_db, tenant, salary=40000)
    test_db.commit()

    raised = api_client.post(
        employees_api.change_salary,
        path_params={"id": employee.id},
        json={"new_salary": 45000, "effective_date": "2025-02-01", "reason": "Promotion"},
    )
    assert raised.status_code == 200
    assert raised.json()["employee"]["current_salary"] == 45000.0
    assert raised.json()["history"]["old_salary"] == 40000.0

    unchanged = api_client.post(
        employees_api.change_salary, path_params={"id": employee.id}, json={"new_salary": 45000}
    )
    assert unchanged.json()["history"] is None

    updated = api_client.put(
        employees_api.update_employee,
        path_params={"id": employee.id},
        json={"current_salary": 47000, "salary_change_reason": "Indexation"},
    )
    assert updated.status_code == 200

    history = api_client.get(employees_api.get_salary_history, path_params={"id": employee.id}).json()
    assert [(h["old_salary"], h["new_salary"]) for h in history] == [(45000.0, 47000.0), (40000.0, 45000.0)]


@pytest.mark.e2e
@pytest.mark.p1
def test_clerk_cannot_change_salary(api_client, test_db, tenant):
    from tests.utils.factories import create_test_user

    employee = create_test_employee(test_db, tenant)
    clerk = create_test_user(test_db, tenant, role="hr_clerk")
    test_db.commit()
    clerk_client = api_client.as_user(clerk.username)

    salary = clerk_client.put(
        employees_api.update_employee, path_params={"id": employee.id}, json={"current_salary": 99999}
    )
    title = clerk_client.put(employees_api.update_employee, path_params={"id": employee.id}, json={"job_title": "Lead"})

    assert salary.status_code == 403
    assert title.status_code == 200
    assert title.json()["job_title"] == "Lead"


@pytest.mark.e2e
@pytest.mark.p0
def test_terminate_employee(api_client, test_db, tenant):
    employee = create_test_employee(test_db, tenant)
    test_db.commit()

    response = api_client.post(employees_api.terminate_employee, path_params={"id": employee.id})
    again = api_client.post(employees_api.terminate_employee, path_params={"id": employee.id})

    assert response.status_code == 200
    assert response.json()["status"] == "Terminated"
    assert again.status_code == 422

    active = api_client.get(employees_api.list_employees, query={"status": "Active"}).json()
    assert str(employee.id) not in [e["id"] for e in active]


@pytest.mark.e2e
@pytest.mark.p1
def test_department_with_active_employees_cannot_be_deleted(api_client, test_db, tenant):
    department = create_test_department(test_db, tenant, name="Logistics")
    create_test_employee(test_db, tenant, department=department)
    empty = create_test_department(test_db, tenant, name="Archive")
    test_db.commit()

    busy = api_client.delete(employees_api.delete_department, path_params={"id": department.id})
    deleted = api_client.delete(employees_api.delete_department, path_params={"id": empty.id})

    assert busy.status_code == 422
    assert deleted.status_code == 200
    names = [d["name"] for d in api_client.get(employees_api.list_departments).json()]
    assert names == ["Logistics"]


@pytest.mark.e2e
@pytest.mark.p1
def test_regenerated_badge_invalidates_the_old_one(api_client, test_db, tenant):
    employee = create_test_employee(test_db, tenant)
    test_db.commit()
    old_token = employee.qr_token

    response = api_client.post(employees_api.regenerate_qr_token, path_params={"id": employee.id})
    new_token = response.json()["qr_token"]

    assert new_token != old_token
    old_scan = api_client.post(attendance_api.scan, json={"qr": old_token, "log_type": "CheckIn"})
    new_scan = api_client.post(
        attendance_api.scan, json={"qr": new_token, "log_type": "CheckIn", "log_time": "2025-01-13T08:00:00"}
    )
    assert old_scan.status_code == 404
    assert new_scan.status_code == 201


@pytest.mark.e2e
@pytest.mark.p1
def test_deleted_employee_disappears(api_client, test_db, tenant):
    employee = create_test_employee(test_db, tenant)
    test_db.commit()

    assert api_client.delete(employees_api.delete_employee, path_params={"id": employee.id}).status_code == 200

    assert api_client.get(employees_api.get_employee, path_params={"id": employee.id}).status_code == 404


@pytest.mark.e2e
@pytest.mark.p0
def test_deleted_records_free_their_unique_keys(api_client, test_db, tenant):
    """
    Given: a department "Sales" and an employee, both deleted
    When: a department with the same name and an employee with the same identity number are created
    Then: both are accepted, the deleted rows no longer hold the name or the identity number
    """
    department = api_client.post(employees_api.create_department, json={"name": "Sales"}).json()
    assert api_client.delete(employees_api.delete_department, path_params={"id": department["id"]}).status_code == 200

    recreated = api_client.post(employees_api.create_department, json={"name": "Sales"})
    assert recreated.status_code == 201, recreated.text
    assert recreated.json()["id"] != department["id"]

    first = api_client.post(employees_api.create_employee, json=_employee_payload(recreated.json()["id"]))
    assert first.status_code == 201
    assert api_client.delete(employees_api.delete_employee, path_params={"id": first.json()["id"]}).status_code == 200

    rehired = api_client.post(employees_api.create_employee, json=_employee_payload(recreated.json()["id"]))
    assert rehired.status_code == 201, rehired.text


@pytest.mark.e2e
@pytest.mark.p1
def test_non_numeric_child_count_is_refused(api_client, test_db, tenant):
    department = create_test_department(test_db, tenant)
    test_db.commit()

    response = api_client.post(
        employees_api.create_employee, json=_employee_payload(str(department.id), child_count="two")
    )

    assert response.status_code == 400
    assert "child_count" in response.json()["error"]

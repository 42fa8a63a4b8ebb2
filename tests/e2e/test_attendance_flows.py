"""
E2E tests for attendance: badge scans, manual check-in/out and the daily overtime split.
"""

import json

import pytest

from backend.app.api import attendance as attendance_api
from backend.app.api import employees as employees_api
from tests.utils.factories import create_test_employee, create_test_work_shift


def _employee_on_day_shift(test_db, tenant):
    shift = create_test_work_shift(test_db, tenant, start_time="08:00", end_time="17:00", break_minutes=60)
    return create_test_employee(test_db, tenant, work_shift_id=shift.id)


def _check(api_client, handler, employee, time):
    return api_client.post(handler, json={"employee_id": str(employee.id), "time": time})


@pytest.mark.e2e
@pytest.mark.p0
def test_badge_scan_records_a_full_day(api_client, test_db, tenant):
    """
    Given:
    - Employee on the 08:00-17:00 shift with a 60 minute break
    - The badge payload printed on the employee's card

    When:
    - The supervisor scans the badge at 08:05 and 17:05 on Monday

    Then:
    - The day is Present (within the 10 minute tolerance)
    - 540 minutes on site minus the unpaid break = 480 normal minutes, no overtime
    """
    employee = _employee_on_day_shift(test_db, tenant)
    test_db.commit()

    badge = api_client.get(employees_api.get_badge, path_params={"id": employee.id})
    assert badge.status_code == 200
    payload = badge.json()["payload"]
    assert badge.json()["qr_code"].startswith("data:image/png;base64,")

    check_in = api_client.post(
        attendance_api.scan,
        json={"qr": payload, "log_type": "CheckIn", "log_time": "2025-01-13T08:05:00", "location": "Gate 1"},
    )
    assert check_in.status_code == 201, check_in.text
    assert check_in.json()["daily"]["status"] == "Present"
    assert check_in.json()["daily"]["total_worked_mins"] == 0

    check_out = api_client.post(
        attendance_api.scan,
        json={"qr": json.loads(payload)["token"], "log_type": "CheckOut", "log_time": "2025-01-13T17:05:00"},
    )
    assert check_out.status_code == 201
    daily = check_out.json()["daily"]
    assert daily["total_worked_mins"] == 480
    assert daily["normal_mins"] == 480
    assert daily["overtime_1x_mins"] == 0
    assert daily["overtime_2x_mins"] == 0


@pytest.mark.e2e
@pytest.mark.p0
def test_late_check_in(api_client, test_db, tenant):
    employee = _employee_on_day_shift(test_db, tenant)
    test_db.commit()

    response = _check(api_client, attendance_api.check_in, employee, "2025-01-14T08:25:00")

    assert response.status_code == 201
    assert response.json()["status"] == "Late"
    assert response.json()["source"] == "Manual"


@pytest.mark.e2e
@pytest.mark.p0
def test_weekday_overtime(api_client, test_db, tenant):
    """08:00-19:00 with a 60 minute break: 600 minutes, 120 of them 1x overtime."""
    employee = _employee_on_day_shift(test_db, tenant)
    test_db.commit()

    _check(api_client, attendance_api.check_in, employee, "2025-01-13T08:00:00")
    response = _check(api_client, attendance_api.check_out, employee, "2025-01-13T19:00:00")

    assert response.status_code == 200
    assert response.json()["normal_mins"] == 480
    assert response.json()["overtime_1x_mins"] == 120


@pytest.mark.e2e
@pytest.mark.p0
def test_saturday_and_sunday_overtime(api_client, test_db, tenant):
    """
    Given: a five day working week
    When: the employee works Saturday 09:00-14:00 and Sunday 09:00-13:00
    Then: Saturday is all 1x overtime (240) and Sunday all 2x overtime (180)
    """
    employee = _employee_on_day_shift(test_db, tenant)
    test_db.commit()

    _check(api_client, attendance_api.check_in, employee, "2025-01-18T09:00:00")
    saturday = _check(api_client, attendance_api.check_out, employee, "2025-01-18T14:00:00").json()
    _check(api_client, attendance_api.check_in, employee, "2025-01-19T09:00:00")
    sunday = _check(api_client, attendance_api.check_out, employee, "2025-01-19T13:00:00").json()

    assert (saturday["normal_mins"], saturday["overtime_1x_mins"], saturday["overtime_2x_mins"]) == (0, 240, 0)
    assert (sunday["normal_mins"], sunday["overtime_1x_mins"], sunday["overtime_2x_mins"]) == (0, 0, 180)


@pytest.mark.e2e
@pytest.mark.p1
def test_public_holiday_is_double_overtime(api_client, test_db, tenant):
    employee = create_test_employee(test_db, tenant)
    test_db.commit()

    holiday = api_client.post(attendance_api.create_holiday, json={"date": "2025-01-15", "name": "Founding Day"})
    assert holiday.status_code == 201

    _check(api_client, attendance_api.check_in, employee, "2025-01-15T08:00:00")
    response = _check(api_client, attendance_api.check_out, employee, "2025-01-15T12:00:00")

    assert response.json()["overtime_2x_mins"] == 240
    assert response.json()["normal_mins"] == 0

    holidays = api_client.get(attendance_api.list_holidays, query={"year": 2025}).json()
    assert [h["name"] for h in holidays] == ["Founding Day"]


@pytest.mark.e2e
@pytest.mark.p0
def test_second_check_in_and_orphan_check_out_are_refused(api_client, test_db, tenant):
    employee = create_test_employee(test_db, tenant)
    test_db.commit()

    orphan = _check(api_client, attendance_api.check_out, employee, "2025-01-13T17:00:00")
    assert orphan.status_code == 422

    assert _check(api_client, attendance_api.check_in, employee, "2025-01-13T08:00:00").status_code == 201
    second = _check(api_client, attendance_api.check_in, employee, "2025-01-13T09:00:00")
    assert second.status_code == 422
    assert second.json()["error_code"] == "BUSINESS_RULE_VIOLATION"

    before = _check(api_client, attendance_api.check_out, employee, "2025-01-13T07:00:00")
    assert before.status_code == 422


@pytest.mark.e2e
@pytest.mark.p1
def test_scan_rejects_unknown_or_malformed_badges(api_client, test_db, tenant):
    create_test_employee(test_db, tenant)
    test_db.commit()

    unknown = api_client.post(attendance_api.scan, json={"qr": "no-such-token", "log_type": "CheckIn"})
    assert unknown.status_code == 404

    foreign = api_client.post(
        attendance_api.scan, json={"qr": '{"type": "asset", "token": "x"}', "log_type": "CheckIn"}
    )
    assert foreign.status_code == 400

    missing = api_client.post(attendance_api.scan, json={"log_type": "CheckIn"})
    assert missing.status_code == 400


@pytest.mark.e2e
@pytest.mark.p1
def test_terminated_employee_badge_is_refused(api_client, test_db, tenant):
    employee = create_test_employee(test_db, tenant, status="Terminated")
    test_db.commit()

    response = api_client.post(attendance_api.scan, json={"qr": employee.qr_token, "log_type": "CheckIn"})

    assert response.status_code == 422


@pytest.mark.e2e
@pytest.mark.p1
def test_absence_and_monthly_summary(api_client, test_db, tenant):
    employee = _employee_on_day_shift(test_db, tenant)
    test_db.commit()

    _check(api_client, attendance_api.check_in, employee, "2025-01-13T08:00:00")
    _check(api_client, attendance_api.check_out, employee, "2025-01-13T19:00:00")
    _check(api_client, attendance_api.check_in, employee, "2025-01-14T08:30:00")
    _check(api_client, attendance_api.check_out, employee, "2025-01-14T17:30:00")
    absent = api_client.post(
        attendance_api.mark_absent, json={"employee_id": str(employee.id), "work_date": "2025-01-15"}
    )
    assert absent.status_code == 200
    assert absent.json()["status"] == "Absent"

    conflict = api_client.post(
        attendance_api.mark_absent, json={"employee_id": str(employee.id), "work_date": "2025-01-13"}
    )
    assert conflict.status_code == 422

    summary = api_client.get(
        attendance_api.period_summary, path_params={"employee_id": employee.id}, query={"year": 2025, "month": 1}
    ).json()
    assert summary["present_days"] == 2
    assert summary["late_days"] == 1
    assert summary["absent_days"] == 1
    assert summary["overtime_1x_mins"] == 120
    assert summary["normal_mins"] == 960

    daily = api_client.get(
        attendance_api.list_daily,
        query={"employee_id": employee.id, "start_date": "2025-01-01", "end_date": "2025-01-31", "status": "Late"},
    ).json()
    assert [d["work_date"] for d in daily] == ["2025-01-14"]


@pytest.mark.e2e
@pytest.mark.p0
def test_scan_with_utc_offset_is_stored_in_site_time(api_client, test_db, tenant):
    """
    Given:
    - Employee on the 08:00-17:00 shift, site clock on Europe/Istanbul (UTC+3)

    When:
    - A scanner sends 05:45Z, which is 08:45 on the site clock
    - Another sends 2025-01-14T01:30+03:00, just after local midnight

    Then:
    - The first check-in is Late at 08:45 local
    - The second lands on 14 January, not on the UTC date
    """
    employee = _employee_on_day_shift(test_db, tenant)
    test_db.commit()

    late = api_client.post(
        attendance_api.scan,
        json={"employee_id": str(employee.id), "log_type": "CheckIn", "log_time": "2025-01-13T05:45:00Z"},
    )
    assert late.status_code == 201, late.text
    assert late.json()["daily"]["check_in_time"] == "2025-01-13T08:45:00"
    assert late.json()["daily"]["status"] == "Late"

    night = api_client.post(
        attendance_api.scan,
        json={"employee_id": str(employee.id), "log_type": "CheckIn", "log_time": "2025-01-14T01:30:00+03:00"},
    )
    assert night.status_code == 201
    assert night.json()["daily"]["work_date"] == "2025-01-14"


@pytest.mark.e2e
@pytest.mark.p0
def test_device_check_out_without_check_in_is_refused(api_client, test_db, tenant):
    employee = _employee_on_day_shift(test_db, tenant)
    test_db.commit()

    orphan = api_client.post(
        attendance_api.scan,
        json={"employee_id": str(employee.id), "log_type": "CheckOut", "log_time": "2025-01-13T17:00:00"},
    )
    assert orphan.status_code == 422
    assert orphan.json()["error_code"] == "BUSINESS_RULE_VIOLATION"

    summary = api_client.get(
        attendance_api.period_summary, path_params={"employee_id": employee.id}, query={"year": 2025, "month": 1}
    ).json()
    assert summary["present_days"] == 0


@pytest.mark.e2e
@pytest.mark.p1
def test_night_shift_check_out_closes_previous_day(api_client, test_db, tenant):
    shift = create_test_work_shift(test_db, tenant, start_time="22:00", end_time="06:00", break_minutes=0)
    employee = create_test_employee(test_db, tenant, work_shift_id=shift.id)
    test_db.commit()

    assert _check(api_client, attendance_api.check_in, employee, "2025-01-13T22:00:00").status_code == 201
    check_out = api_client.post(
        attendance_api.scan,
        json={"employee_id": str(employee.id), "log_type": "CheckOut", "log_time": "2025-01-14T06:00:00"},
    )

    assert check_out.status_code == 201, check_out.text
    assert check_out.json()["daily"]["work_date"] == "2025-01-13"
    assert check_out.json()["daily"]["check_out_time"] == "2025-01-14T06:00:00"


@pytest.mark.e2e
@pytest.mark.p1
def test_scan_and_filters_reject_unknown_values(api_client, test_db, tenant):
    employee = _employee_on_day_shift(test_db, tenant)
    test_db.commit()

    bad_source = api_client.post(
        attendance_api.scan,
        json={"employee_id": str(employee.id), "log_type": "CheckIn", "source": "Carrier pigeon"},
    )
    assert bad_source.status_code == 400

    bad_status = api_client.get(attendance_api.list_daily, query={"status": "Sleeping"})
    assert bad_status.status_code == 400


@pytest.mark.e2e
@pytest.mark.p1
def test_deleted_holiday_can_be_declared_again(api_client, test_db, tenant):
    holiday = api_client.post(attendance_api.create_holiday, json={"date": "2025-04-23", "name": "Sovereignty Day"})
    assert holiday.status_code == 201
    assert api_client.delete(attendance_api.delete_holiday, path_params={"id": holiday.json()["id"]}).status_code == 200

    again = api_client.post(attendance_api.create_holiday, json={"date": "2025-04-23", "name": "Sovereignty Day"})

    assert again.status_code == 201, again.text

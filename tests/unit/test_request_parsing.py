"""
Unit tests for request parsing helpers and the error decorator.
"""

from datetime import datetime

import pytest
from sqlalchemy.exc import IntegrityError

from backend.app.api.common import local_now, parse_datetime
from backend.app.core.config import settings
from backend.app.core.error_handler import ValidationError
from tests.utils.test_client import APIClient


@pytest.mark.unit
@pytest.mark.p0
def test_aware_times_are_converted_to_the_site_zone(monkeypatch):
    monkeypatch.setattr(settings, "timezone", "Europe/Istanbul")

    assert parse_datetime("2025-01-13T05:45:00Z") == datetime(2025, 1, 13, 8, 45)
    assert parse_datetime("2025-01-13T08:45:00+03:00") == datetime(2025, 1, 13, 8, 45)
    assert parse_datetime("2025-01-13T22:30:00-05:00") == datetime(2025, 1, 14, 6, 30)


@pytest.mark.unit
def test_naive_times_are_taken_as_site_time():
    assert parse_datetime("2025-01-13T08:45:00") == datetime(2025, 1, 13, 8, 45)


@pytest.mark.unit
def test_explicit_zone_overrides_the_site_zone():
    assert parse_datetime("2025-01-13T08:45:00+03:00", zone="UTC") == datetime(2025, 1, 13, 5, 45)


@pytest.mark.unit
def test_malformed_time_is_a_validation_error():
    with pytest.raises(ValidationError):
        parse_datetime("13/01/2025 08:45", "log_time")


@pytest.mark.unit
def test_local_now_follows_the_configured_zone(monkeypatch):
    monkeypatch.setattr(settings, "timezone", "UTC")
    utc_now = local_now()
    monkeypatch.setattr(settings, "timezone", "Asia/Tokyo")
    tokyo_now = local_now()

    assert utc_now.tzinfo is None
    # Tokyo is UTC+9 all year
    assert abs((tokyo_now - utc_now).total_seconds() - 9 * 3600) < 60


@pytest.mark.unit
@pytest.mark.p0
def test_integrity_error_becomes_a_conflict():
    def insert_duplicate(request):
        raise IntegrityError("INSERT INTO department", {}, Exception("UNIQUE constraint failed"))

    response = APIClient().post(insert_duplicate, json={})

    assert response.status_code == 409
    assert response.json()["error_code"] == "CONFLICT"

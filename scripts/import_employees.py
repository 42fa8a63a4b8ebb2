"""
Bulk import of employees from an Excel (.xlsx) or CSV sheet.

Expected columns (header row, case-insensitive):
    identity_number, first_name, last_name, department, current_salary
Optional columns:
    email, job_title, hire_date, transport_amount, citizenship, social_security_type,
    marital_status, is_spouse_working, child_count, iban, bank_name

Departments are created on the fly when missing. Rows whose identity number is already
registered are skipped.

Usage:
    python scripts/import_employees.py data/employees.xlsx --tenant DEFAULT
    python scripts/import_employees.py data/employees.csv --dry-run
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import pandas as pd

# Make the backend package importable when run as a plain script
sys.path.insert(0, str(Path(__file__).parent.parent))

from backend.app.core.config import settings
from backend.app.core.db import get_session, init_db
from backend.app.core.error_handler import AppError
from backend.app.core.logging_config import setup_logging
from backend.app.models.hr import Department
from backend.app.models.system import Tenant
from backend.app.services import employee_service

logger = logging.getLogger("scripts.import_employees")

REQUIRED_COLUMNS = ["identity_number", "first_name", "last_name", "department", "current_salary"]
TEXT_COLUMNS = ["email", "job_title", "citizenship", "social_security_type", "marital_status", "iban", "bank_name"]


def safe_str(value: Any) -> str | None:
    if value is None or pd.isna(value):
        return None
    result = str(value).strip()
    return result or None


def safe_decimal(value: Any) -> Decimal | None:
    if value is None or pd.isna(value):
        return None
    try:
        return Decimal(str(value).replace(",", ""))
    except InvalidOperation:
        return None


def safe_date(value: Any) -> date | None:
    if value is None or pd.isna(value):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return pd.to_datetime(value, dayfirst=True).date()
    except (ValueError, TypeError):
        return None


def safe_bool(value: Any) -> bool:
    if value is None or pd.isna(value):
        return False
    return str(value).strip().lower() in ("1", "true", "yes", "y", "x")


def read_sheet(path: Path) -> pd.DataFrame:
    if path.suffix.lower() in (".xlsx", ".xls"):
        df = pd.read_excel(path, engine="openpyxl")
    else:
        df = pd.read_csv(path)
    df.columns = [str(c).strip().lower() for c in df.columns]
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise SystemExit(f"Missing columns: {', '.join(missing)}")
    return df


def row_to_data(row: pd.Series, department_id) -> dict[str, Any]:
    data: dict[str, Any] = {
        "identity_number": safe_str(row["identity_number"]),
        "first_name": safe_str(row["first_name"]),
        "last_name": safe_str(row["last_name"]),
        "department_id": department_id,
        "current_salary": safe_decimal(row["current_salary"]) or Decimal("0"),
    }
    for column in TEXT_COLUMNS:
        if column in row and safe_str(row[column]):
            data[column] = safe_str(row[column])
    if "hire_date" in row and safe_date(row["hire_date"]):
        data["hire_date"] = safe_date(row["hire_date"])
    if "transport_amount" in row and safe_decimal(row["transport_amount"]) is not None:
        data["transport_amount"] = safe_decimal(row["transport_amount"])
    if "is_spouse_working" in row:
        data["is_spouse_working"] = safe_bool(row["is_spouse_working"])
    if "child_count" in row and safe_decimal(row["child_count"]) is not None:
        data["child_count"] = int(safe_decimal(row["child_count"]))
    return data


def department_for(db, tenant_id, name: str, cache: dict[str, Any]):
    if name in cache:
        return cache[name]
    department = (
        db.query(Department)
        .filter(Department.tenant_id == tenant_id, Department.name == name, Department.is_deleted.is_(False))
        .first()
    )
    if department is None:
        department = employee_service.create_department(db, tenant_id, name)
        logger.info("Created department %s", name)
    cache[name] = department.id
    return department.id


def import_employees(path: Path, tenant_code: str, dry_run: bool = False) -> tuple[int, int]:
    """Import the sheet; returns (created, skipped)."""
    df = read_sheet(path)
    logger.info("Read %s rows from %s", len(df), path)
    created = skipped = 0

    with get_session() as db:
        tenant = db.query(Tenant).filter(Tenant.code == tenant_code).first()
        if tenant is None:
            raise SystemExit(f"Tenant {tenant_code} does not exist; start the server once to create it")

        departments: dict[str, Any] = {}
        for index, row in df.iterrows():
            department_name = safe_str(row["department"])
            if not safe_str(row["identity_number"]) or not department_name:
                logger.warning("Row %s: missing identity number or department, skipped", index + 2)
                skipped += 1
                continue
            data = row_to_data(row, department_for(db, tenant.id, department_name, departments))
            try:
                with db.begin_nested():
                    employee_service.create_employee(db, tenant.id, data)
                created += 1
            except AppError as e:
                logger.warning("Row %s: %s", index + 2, e.message)
                skipped += 1

        if dry_run:
            db.rollback()
            logger.info("Dry run: nothing saved")

    return created, skipped


def main() -> None:
    parser = argparse.ArgumentParser(description="Import employees from an Excel or CSV sheet")
    parser.add_argument("path", type=Path, help="Excel (.xlsx) or CSV file")
    parser.add_argument("--tenant", default=settings.default_tenant_code, help="Tenant code")
    parser.add_argument("--dry-run", action="store_true", help="Validate without saving")
    args = parser.parse_args()

    setup_logging()
    init_db()
    created, skipped = import_employees(args.path, args.tenant, args.dry_run)
    print(f"Created {created} employees, skipped {skipped}")


if __name__ == "__main__":
    main()

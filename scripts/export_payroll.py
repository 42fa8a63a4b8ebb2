"""
Export the entries of a payroll run to CSV or Excel.

Usage:
    python scripts/export_payroll.py 2025-01 --output payroll_2025_01.xlsx
    python scripts/export_payroll.py 2025-01 --output payroll_2025_01.csv --tenant DEFAULT
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

import pandas as pd

sys.path.insert(0, str(Path(__file__).parent.parent))

from backend.app.core.config import settings
from backend.app.core.db import get_session
from backend.app.core.logging_config import setup_logging
from backend.app.models.payroll import Payroll
from backend.app.models.system import Tenant
from backend.app.services import payroll_service

COLUMNS = [
    "employee_name",
    "base_salary",
    "overtime_pay",
    "bonus_pay",
    "commission_pay",
    "transport_amount",
    "social_security_employee",
    "provident_fund_employee",
    "unemployment_insurance_employee",
    "personal_allowance_deduction",
    "income_tax",
    "stamp_tax",
    "advance_deduction",
    "other_deductions",
    "net_payable",
    "social_security_employer",
    "provident_fund_employer",
    "unemployment_insurance_employer",
]


def payroll_frame(period: str, tenant_code: str) -> pd.DataFrame:
    with get_session() as db:
        tenant = db.query(Tenant).filter(Tenant.code == tenant_code).first()
        if tenant is None:
            raise SystemExit(f"Tenant {tenant_code} not found")
        payroll = (
            db.query(Payroll)
            .filter(Payroll.tenant_id == tenant.id, Payroll.period == period, Payroll.is_deleted.is_(False))
            .first()
        )
        if payroll is None:
            raise SystemExit(f"No payroll for {period}")
        rows = [payroll_service.entry_to_dict(e) for e in payroll_service.get_payroll_entries(db, tenant.id, payroll.id)]

    df = pd.DataFrame(rows, columns=COLUMNS)
    df = df.sort_values("employee_name").reset_index(drop=True)
    totals = df[COLUMNS[1:]].sum()
    totals["employee_name"] = "TOTAL"
    return pd.concat([df, totals.to_frame().T], ignore_index=True)


def main() -> None:
    parser = argparse.ArgumentParser(description="Export a payroll run")
    parser.add_argument("period", help="Period as YYYY-MM")
    parser.add_argument("--output", type=Path, required=True, help="Target .csv or .xlsx file")
    parser.add_argument("--tenant", default=settings.default_tenant_code)
    args = parser.parse_args()

    setup_logging()
    df = payroll_frame(args.period, args.tenant)
    if args.output.suffix.lower() == ".xlsx":
        df.to_excel(args.output, index=False, sheet_name=args.period, engine="openpyxl")
    else:
        df.to_csv(args.output, index=False)
    print(f"Wrote {len(df) - 1} entries to {args.output}")


if __name__ == "__main__":
    main()

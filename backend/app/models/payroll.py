"""
Payroll models: statutory rule tables, payroll runs and their entries.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    String,
    Date,
    DateTime,
    Boolean,
    Numeric,
    Integer,
    ForeignKey,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TenantEntity, active_unique, uuid_pk
from .hr import Employee


PAYROLL_STATUSES = ("Draft", "Approved", "Paid")
ITEM_KINDS = ("Earning", "Deduction")


class TaxRule(TenantEntity, Base):
    """Income tax bracket. upper_limit 0 or NULL means no upper bound."""

    __tablename__ = "tax_rule"

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(100))
    lower_limit: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=0)
    upper_limit: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    rate: Mapped[Decimal] = mapped_column(Numeric(7, 4))
    order: Mapped[int] = mapped_column(Integer, default=0)
    effective_from: Mapped[date] = mapped_column(Date)
    effective_to: Mapped[date | None] = mapped_column(Date, nullable=True)


class SocialSecurityRule(TenantEntity, Base):
    """Contribution rates for one (citizenship, social security type) pair."""

    __tablename__ = "social_security_rule"

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(100))
    citizenship_type: Mapped[str] = mapped_column(String(20), default="TRNC")
    social_security_type: Mapped[str] = mapped_column(String(20), default="Standard")
    employee_deduction_rate: Mapped[Decimal] = mapped_column(Numeric(7, 4), default=0)
    employer_deduction_rate: Mapped[Decimal] = mapped_column(Numeric(7, 4), default=0)
    provident_fund_employee_rate: Mapped[Decimal] = mapped_column(Numeric(7, 4), default=0)
    provident_fund_employer_rate: Mapped[Decimal] = mapped_column(Numeric(7, 4), default=0)
    unemployment_insurance_employee_rate: Mapped[Decimal] = mapped_column(Numeric(7, 4), default=0)
    unemployment_insurance_employer_rate: Mapped[Decimal] = mapped_column(Numeric(7, 4), default=0)
    effective_from: Mapped[date] = mapped_column(Date)
    effective_to: Mapped[date | None] = mapped_column(Date, nullable=True)


class MinimumWage(TenantEntity, Base):
    __tablename__ = "minimum_wage"

    id: Mapped[uuid.UUID] = uuid_pk()
    gross_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2))
    net_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2))
    effective_from: Mapped[date] = mapped_column(Date)
    effective_to: Mapped[date | None] = mapped_column(Date, nullable=True)


class PayrollParameter(TenantEntity, Base):
    """Numeric payroll parameter (allowance multipliers, ceiling, stamp tax)."""

    __tablename__ = "payroll_parameter"
    __table_args__ = (active_unique("tenant_id", "key", name="uq_payroll_parameter_tenant_key"),)

    id: Mapped[uuid.UUID] = uuid_pk()
    key: Mapped[str] = mapped_column(String(100))
    value: Mapped[Decimal] = mapped_column(Numeric(18, 4))
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)


class EarningDeductionType(TenantEntity, Base):
    __tablename__ = "earning_deduction_type"
    __table_args__ = (
        active_unique("tenant_id", "code", name="uq_earning_deduction_type_tenant_code"),
    )

    id: Mapped[uuid.UUID] = uuid_pk()
    code: Mapped[str] = mapped_column(String(30))
    name: Mapped[str] = mapped_column(String(100))
    kind: Mapped[str] = mapped_column(String(10), default="Earning")  # Earning, Deduction
    is_taxable: Mapped[bool] = mapped_column(Boolean, default=True)
    is_sgk_exempt: Mapped[bool] = mapped_column(Boolean, default=False)
    exempt_limit: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    multiplier: Mapped[Decimal | None] = mapped_column(Numeric(7, 4), nullable=True)


class EmployeeCumulative(TenantEntity, Base):
    """Year-to-date taxable income ledger used for cumulative bracket application."""

    __tablename__ = "employee_cumulative"
    __table_args__ = (
        active_unique("employee_id", "year", name="uq_employee_cumulative_employee_year"),
    )

    id: Mapped[uuid.UUID] = uuid_pk()
    employee_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("employee.id"), index=True)
    year: Mapped[int] = mapped_column(Integer)
    ytd_tax_base: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=0)


class Payroll(TenantEntity, Base):
    __table_args__ = (active_unique("tenant_id", "period", name="uq_payroll_tenant_period"),)

    id: Mapped[uuid.UUID] = uuid_pk()
    period: Mapped[str] = mapped_column(String(7))  # YYYY-MM
    description: Mapped[str | None] = mapped_column(String(200), nullable=True)
    status: Mapped[str] = mapped_column(String(10), default="Draft")
    total_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=0)
    currency_code: Mapped[str] = mapped_column(String(3), default="TRY")
    approved_by: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    entries: Mapped[list["PayrollEntry"]] = relationship(back_populates="payroll")


class PayrollEntry(TenantEntity, Base):
    __tablename__ = "payroll_entry"
    __table_args__ = (
        active_unique("payroll_id", "employee_id", name="uq_payroll_entry_payroll_employee"),
    )

    id: Mapped[uuid.UUID] = uuid_pk()
    payroll_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("payroll.id"), index=True)
    employee_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("employee.id"), index=True)

    base_salary: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=0)
    overtime_pay: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=0)
    bonus_pay: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=0)
    commission_pay: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=0)
    transport_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=0)

    cumulative_tax_base_before: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=0)
    total_taxable_earnings: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=0)
    total_sgk_exempt_earnings: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=0)

    social_security_employee: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=0)
    provident_fund_employee: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=0)
    unemployment_insurance_employee: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=0)
    personal_allowance_deduction: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=0)
    income_tax: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=0)
    stamp_tax: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=0)

    social_security_employer: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=0)
    provident_fund_employer: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=0)
    unemployment_insurance_employer: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=0)

    advance_deduction: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=0)
    other_deductions: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=0)
    net_payable: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=0)
    exchange_rate: Mapped[Decimal] = mapped_column(Numeric(18, 4), default=1)

    payroll: Mapped[Payroll] = relationship(back_populates="entries")
    employee: Mapped[Employee] = relationship()
    details: Mapped[list["PayrollEntryDetail"]] = relationship(back_populates="entry")


class PayrollEntryDetail(TenantEntity, Base):
    """Single earning or deduction line of a payroll entry."""

    __tablename__ = "payroll_entry_detail"

    id: Mapped[uuid.UUID] = uuid_pk()
    entry_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("payroll_entry.id"), index=True)
    earning_deduction_type_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("earning_deduction_type.id"), nullable=True
    )
    code: Mapped[str] = mapped_column(String(30))
    description: Mapped[str | None] = mapped_column(String(250), nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2))
    kind: Mapped[str] = mapped_column(String(10))  # Earning, Deduction

    entry: Mapped[PayrollEntry] = relationship(back_populates="details")

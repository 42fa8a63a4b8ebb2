"""
HR module models: organisation, attendance, leave and compensation.

Notes:
- Every table carries the TenantEntity columns (tenant, soft delete, audit stamps).
- Enumerations are stored as short strings; the allowed values are listed next to each model.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    String,
    Text,
    Date,
    DateTime,
    Boolean,
    Numeric,
    Integer,
    Float,
    ForeignKey,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TenantEntity, active_unique, uuid_pk


CITIZENSHIP_TYPES = ("TRNC", "Turkey", "Other")
SOCIAL_SECURITY_TYPES = ("Standard", "Pensioner", "Student", "Exempt", "Foreigner", "PartTime")
MARITAL_STATUSES = ("Single", "Married", "Divorced", "Widowed")
EMPLOYMENT_STATUSES = ("Active", "Terminated", "OnLeave")

ATTENDANCE_STATUSES = ("Present", "Absent", "Late", "Leave", "Holiday")
ATTENDANCE_SOURCES = ("Device", "Manual")
LOG_TYPES = ("CheckIn", "CheckOut")

LEAVE_STATUSES = ("Pending", "Approved", "Rejected", "Cancelled")
ADVANCE_STATUSES = ("Pending", "Approved", "Rejected", "Paid")


class SgkRiskProfile(TenantEntity, Base):
    """Workplace risk class; overrides the employer social security rate."""

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(100))
    employer_multiplier: Mapped[Decimal] = mapped_column(Numeric(7, 4))
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)


class Department(TenantEntity, Base):
    """Organisational unit."""

    __table_args__ = (active_unique("tenant_id", "name", name="uq_department_tenant_name"),)

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(100))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    manager_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    sgk_risk_profile_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("sgkriskprofile.id"), nullable=True
    )

    sgk_risk_profile: Mapped[SgkRiskProfile | None] = relationship()


class WorkShift(TenantEntity, Base):
    """Shift with start/end times stored as "HH:MM"."""

    __tablename__ = "work_shift"

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(100))
    start_time: Mapped[str] = mapped_column(String(5))
    end_time: Mapped[str] = mapped_column(String(5))
    break_minutes: Mapped[int] = mapped_column(Integer, default=0)


class Employee(TenantEntity, Base):
    """Employee master record."""

    __table_args__ = (
        active_unique("tenant_id", "identity_number", name="uq_employee_tenant_identity"),
    )

    id: Mapped[uuid.UUID] = uuid_pk()
    identity_number: Mapped[str] = mapped_column(String(20), index=True)
    first_name: Mapped[str] = mapped_column(String(100))
    last_name: Mapped[str] = mapped_column(String(100))
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    job_title: Mapped[str | None] = mapped_column(String(100), nullable=True)
    department_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("department.id"), index=True)
    supervisor_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("employee.id"), nullable=True
    )
    work_shift_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("work_shift.id"), nullable=True
    )
    hire_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    current_salary: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=0)
    transport_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), default=0)

    citizenship: Mapped[str] = mapped_column(String(20), default="TRNC")
    social_security_type: Mapped[str] = mapped_column(String(20), default="Standard")
    sgk_risk_profile_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("sgkriskprofile.id"), nullable=True
    )
    marital_status: Mapped[str] = mapped_column(String(20), default="Single")
    is_spouse_working: Mapped[bool] = mapped_column(Boolean, default=False)
    child_count: Mapped[int] = mapped_column(Integer, default=0)
    is_pensioner: Mapped[bool] = mapped_column(Boolean, default=False)

    work_permit_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    work_permit_expiry: Mapped[date | None] = mapped_column(Date, nullable=True)
    passport_number: Mapped[str | None] = mapped_column(String(50), nullable=True)
    health_report_expiry: Mapped[date | None] = mapped_column(Date, nullable=True)
    bank_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    iban: Mapped[str | None] = mapped_column(String(34), nullable=True)

    status: Mapped[str] = mapped_column(String(20), default="Active")
    qr_token: Mapped[str | None] = mapped_column(String(64), nullable=True, unique=True)

    department: Mapped[Department] = relationship()
    work_shift: Mapped[WorkShift | None] = relationship()
    sgk_risk_profile: Mapped[SgkRiskProfile | None] = relationship()

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class SalaryHistory(TenantEntity, Base):
    """One row per salary change."""

    __tablename__ = "salary_history"

    id: Mapped[uuid.UUID] = uuid_pk()
    employee_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("employee.id"), index=True)
    old_salary: Mapped[Decimal] = mapped_column(Numeric(18, 2))
    new_salary: Mapped[Decimal] = mapped_column(Numeric(18, 2))
    effective_date: Mapped[date] = mapped_column(Date)
    reason: Mapped[str | None] = mapped_column(String(250), nullable=True)


# Attendance
class PublicHoliday(TenantEntity, Base):
    __tablename__ = "public_holiday"
    __table_args__ = (active_unique("tenant_id", "holiday_date", name="uq_public_holiday_tenant_date"),)

    id: Mapped[uuid.UUID] = uuid_pk()
    holiday_date: Mapped[date] = mapped_column(Date)
    name: Mapped[str] = mapped_column(String(100))


class AttendanceLog(TenantEntity, Base):
    """Raw scan or manual entry. DailyAttendance is derived from these."""

    __tablename__ = "attendance_log"

    id: Mapped[uuid.UUID] = uuid_pk()
    employee_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("employee.id"), index=True)
    supervisor_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    log_type: Mapped[str] = mapped_column(String(10))  # CheckIn, CheckOut
    log_time: Mapped[datetime] = mapped_column(DateTime)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    source: Mapped[str] = mapped_column(String(10), default="Device")


class DailyAttendance(TenantEntity, Base):
    """Per employee per day attendance with the overtime breakdown in minutes."""

    __tablename__ = "daily_attendance"
    __table_args__ = (
        active_unique("employee_id", "work_date", name="uq_daily_attendance_employee_date"),
    )

    id: Mapped[uuid.UUID] = uuid_pk()
    employee_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("employee.id"), index=True)
    work_date: Mapped[date] = mapped_column(Date, index=True)
    shift_id: Mapped[uuid.UUID | None] = mapped_column(ForeignKey("work_shift.id"), nullable=True)
    check_in_time: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    check_out_time: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    total_worked_mins: Mapped[int] = mapped_column(Integer, default=0)
    normal_mins: Mapped[int] = mapped_column(Integer, default=0)
    overtime_1x_mins: Mapped[int] = mapped_column(Integer, default=0)  # weekday / rest day
    overtime_2x_mins: Mapped[int] = mapped_column(Integer, default=0)  # Sunday / holiday
    status: Mapped[str] = mapped_column(String(10), default="Present")
    source: Mapped[str] = mapped_column(String(10), default="Device")

    employee: Mapped[Employee] = relationship()
    shift: Mapped[WorkShift | None] = relationship()


# Leave
class LeavePolicy(TenantEntity, Base):
    __tablename__ = "leave_policy"
    __table_args__ = (active_unique("tenant_id", "name", name="uq_leave_policy_tenant_name"),)

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(100))
    default_days: Mapped[int] = mapped_column(Integer, default=0)
    is_paid: Mapped[bool] = mapped_column(Boolean, default=True)
    sgk_missing_day_code: Mapped[str | None] = mapped_column(String(5), nullable=True)
    requires_approval: Mapped[bool] = mapped_column(Boolean, default=True)


class LeaveAllocation(TenantEntity, Base):
    __tablename__ = "leave_allocation"
    __table_args__ = (
        active_unique(
            "employee_id", "leave_policy_id", "year", name="uq_leave_allocation_employee_policy_year"
        ),
    )

    id: Mapped[uuid.UUID] = uuid_pk()
    employee_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("employee.id"), index=True)
    leave_policy_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("leave_policy.id"))
    year: Mapped[int] = mapped_column(Integer)
    total_days_allocated: Mapped[Decimal] = mapped_column(Numeric(6, 2), default=0)
    days_used: Mapped[Decimal] = mapped_column(Numeric(6, 2), default=0)

    leave_policy: Mapped[LeavePolicy] = relationship()

    @property
    def remaining_days(self) -> Decimal:
        return Decimal(self.total_days_allocated or 0) - Decimal(self.days_used or 0)


class LeaveRequest(TenantEntity, Base):
    __tablename__ = "leave_request"

    id: Mapped[uuid.UUID] = uuid_pk()
    employee_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("employee.id"), index=True)
    leave_policy_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("leave_policy.id"))
    start_date: Mapped[date] = mapped_column(Date)
    end_date: Mapped[date] = mapped_column(Date)
    days_count: Mapped[Decimal] = mapped_column(Numeric(6, 2))
    reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    status: Mapped[str] = mapped_column(String(10), default="Pending")
    approved_by: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    employee: Mapped[Employee] = relationship()
    leave_policy: Mapped[LeavePolicy] = relationship()


# Compensation
class AdvanceRequest(TenantEntity, Base):
    __tablename__ = "advance_request"

    id: Mapped[uuid.UUID] = uuid_pk()
    employee_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("employee.id"), index=True)
    request_date: Mapped[date] = mapped_column(Date)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2))
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    status: Mapped[str] = mapped_column(String(10), default="Pending")
    repayment_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    is_paid: Mapped[bool] = mapped_column(Boolean, default=False)
    is_deducted: Mapped[bool] = mapped_column(Boolean, default=False)

    employee: Mapped[Employee] = relationship()


class Bonus(TenantEntity, Base):
    id: Mapped[uuid.UUID] = uuid_pk()
    employee_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("employee.id"), index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2))
    description: Mapped[str] = mapped_column(String(250))
    bonus_date: Mapped[date] = mapped_column(Date)
    period: Mapped[str] = mapped_column(String(7), index=True)  # YYYY-MM
    is_processed: Mapped[bool] = mapped_column(Boolean, default=False)


class CommissionRule(TenantEntity, Base):
    __tablename__ = "commission_rule"

    id: Mapped[uuid.UUID] = uuid_pk()
    role: Mapped[str] = mapped_column(String(100))
    min_target: Mapped[Decimal] = mapped_column(Numeric(18, 2))
    commission_percentage: Mapped[Decimal] = mapped_column(Numeric(7, 4))


class PeriodCommission(TenantEntity, Base):
    __tablename__ = "period_commission"
    __table_args__ = (
        active_unique("employee_id", "period", name="uq_period_commission_employee_period"),
    )

    id: Mapped[uuid.UUID] = uuid_pk()
    employee_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("employee.id"), index=True)
    period: Mapped[str] = mapped_column(String(7))
    sales_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2))
    commission_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2))
    is_processed: Mapped[bool] = mapped_column(Boolean, default=False)


class HrSetting(TenantEntity, Base):
    """Key/value HR setting (work days per week, daily hours...)."""

    __tablename__ = "hr_setting"
    __table_args__ = (active_unique("tenant_id", "key", name="uq_hr_setting_tenant_key"),)

    id: Mapped[uuid.UUID] = uuid_pk()
    key: Mapped[str] = mapped_column(String(100))
    value: Mapped[str] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)

"""
Business logic for the HR organisation: departments, work shifts, employees.
"""

from __future__ import annotations

import logging
import secrets
import uuid
from datetime import date
from decimal import Decimal
from typing import Any

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..core.error_handler import BusinessRuleError, ConflictError, NotFoundError, ValidationError
from ..models.hr import (
    CITIZENSHIP_TYPES,
    EMPLOYMENT_STATUSES,
    MARITAL_STATUSES,
    SOCIAL_SECURITY_TYPES,
    Department,
    Employee,
    SalaryHistory,
    WorkShift,
)

logger = logging.getLogger(__name__)

EMPLOYEE_UPDATABLE_FIELDS = [
    "first_name",
    "last_name",
    "email",
    "job_title",
    "department_id",
    "supervisor_id",
    "work_shift_id",
    "hire_date",
    "transport_amount",
    "citizenship",
    "social_security_type",
    "sgk_risk_profile_id",
    "marital_status",
    "is_spouse_working",
    "child_count",
    "is_pensioner",
    "work_permit_number",
    "work_permit_expiry",
    "passport_number",
    "health_report_expiry",
    "bank_name",
    "iban",
]


# Work shifts
def parse_hhmm(value: str) -> int:
    """Convert "HH:MM" to minutes after midnight.

    Raises:
        ValidationError: when the value is not a valid 24h time.
    """
    try:
        hours_str, minutes_str = str(value).split(":")
        hours, minutes = int(hours_str), int(minutes_str)
    except (ValueError, AttributeError):
        raise ValidationError(f"Invalid time '{value}', expected HH:MM")
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        raise ValidationError(f"Invalid time '{value}', expected HH:MM")
    return hours * 60 + minutes


def shift_minutes(shift: WorkShift) -> int:
    """Paid minutes of a shift (end - start - break); handles overnight shifts."""
    start = parse_hhmm(shift.start_time)
    end = parse_hhmm(shift.end_time)
    span = end - start if end > start else end + 24 * 60 - start
    return max(span - (shift.break_minutes or 0), 0)


def _validate_shift(start_time: str, end_time: str, break_minutes: int) -> None:
    start = parse_hhmm(start_time)
    end = parse_hhmm(end_time)
    if start == end:
        raise ValidationError("Shift start and end cannot be equal")
    if break_minutes < 0:
        raise ValidationError("break_minutes cannot be negative")
    span = end - start if end > start else end + 24 * 60 - start
    if break_minutes >= span:
        raise ValidationError("Break is longer than the shift")


def create_work_shift(
    db: Session, tenant_id: uuid.UUID, name: str, start_time: str, end_time: str, break_minutes: int = 0
) -> WorkShift:
    _validate_shift(start_time, end_time, break_minutes)
    shift = WorkShift(
        tenant_id=tenant_id,
        name=name,
        start_time=start_time,
        end_time=end_time,
        break_minutes=break_minutes,
    )
    db.add(shift)
    db.flush()
    return shift


def get_work_shift(db: Session, tenant_id: uuid.UUID, shift_id: uuid.UUID) -> WorkShift:
    shift = (
        db.query(WorkShift)
        .filter(WorkShift.id == shift_id, WorkShift.tenant_id == tenant_id, WorkShift.is_deleted.is_(False))
        .first()
    )
    if shift is None:
        raise NotFoundError("Work shift not found")
    return shift


def list_work_shifts(db: Session, tenant_id: uuid.UUID) -> list[WorkShift]:
    return (
        db.query(WorkShift)
        .filter(WorkShift.tenant_id == tenant_id, WorkShift.is_deleted.is_(False))
        .order_by(WorkShift.start_time)
        .all()
    )


def update_work_shift(db: Session, tenant_id: uuid.UUID, shift_id: uuid.UUID, data: dict[str, Any]) -> WorkShift:
    shift = get_work_shift(db, tenant_id, shift_id)
    start_time = data.get("start_time", shift.start_time)
    end_time = data.get("end_time", shift.end_time)
    break_minutes = int(data.get("break_minutes", shift.break_minutes))
    _validate_shift(start_time, end_time, break_minutes)
    shift.name = data.get("name", shift.name)
    shift.start_time = start_time
    shift.end_time = end_time
    shift.break_minutes = break_minutes
    db.flush()
    return shift


def delete_work_shift(db: Session, tenant_id: uuid.UUID, shift_id: uuid.UUID, user_id: uuid.UUID | None) -> None:
    shift = get_work_shift(db, tenant_id, shift_id)
    shift.soft_delete(user_id)
    db.flush()


# Departments
def create_department(
    db: Session,
    tenant_id: uuid.UUID,
    name: str,
    description: str | None = None,
    manager_id: uuid.UUID | None = None,
    sgk_risk_profile_id: uuid.UUID | None = None,
) -> Department:
    if not name or not name.strip():
        raise ValidationError("Department name is required")
    existing = (
        db.query(Department)
        .filter(Department.tenant_id == tenant_id, Department.name == name.strip(), Department.is_deleted.is_(False))
        .first()
    )
    if existing:
        raise ConflictError(f"Department '{name}' already exists")

    department = Department(
        tenant_id=tenant_id,
        name=name.strip(),
        description=description,
        manager_id=manager_id,
        sgk_risk_profile_id=sgk_risk_profile_id,
    )
    db.add(department)
    db.flush()
    return department


def get_department(db: Session, tenant_id: uuid.UUID, department_id: uuid.UUID) -> Department:
    department = (
        db.query(Department)
        .filter(
            Department.id == department_id,
            Department.tenant_id == tenant_id,
            Department.is_deleted.is_(False),
        )
        .first()
    )
    if department is None:
        raise NotFoundError("Department not found")
    return department


def list_departments(db: Session, tenant_id: uuid.UUID) -> list[Department]:
    return (
        db.query(Department)
        .filter(Department.tenant_id == tenant_id, Department.is_deleted.is_(False))
        .order_by(Department.name)
        .all()
    )


def update_department(db: Session, tenant_id: uuid.UUID, department_id: uuid.UUID, data: dict[str, Any]) -> Department:
    department = get_department(db, tenant_id, department_id)
    if "name" in data and data["name"] != department.name:
        clash = (
            db.query(Department)
            .filter(
                Department.tenant_id == tenant_id,
                Department.name == data["name"],
                Department.is_deleted.is_(False),
                Department.id != department.id,
            )
            .first()
        )
        if clash:
            raise ConflictError(f"Department '{data['name']}' already exists")
        department.name = data["name"]
    for field_name in ("description", "manager_id", "sgk_risk_profile_id"):
        if field_name in data:
            setattr(department, field_name, data[field_name])
    db.flush()
    return department


def delete_department(db: Session, tenant_id: uuid.UUID, department_id: uuid.UUID, user_id: uuid.UUID | None) -> None:
    department = get_department(db, tenant_id, department_id)
    active_count = (
        db.query(Employee)
        .filter(
            Employee.department_id == department.id,
            Employee.is_deleted.is_(False),
            Employee.status != "Terminated",
        )
        .count()
    )
    if active_count:
        raise BusinessRuleError(f"Department has {active_count} active employees")
    department.soft_delete(user_id)
    db.flush()


# Employees
def _validate_employee_choices(data: dict[str, Any]) -> None:
    choices = {
        "citizenship": CITIZENSHIP_TYPES,
        "social_security_type": SOCIAL_SECURITY_TYPES,
        "marital_status": MARITAL_STATUSES,
        "status": EMPLOYMENT_STATUSES,
    }
    for field_name, allowed in choices.items():
        if field_name in data and data[field_name] not in allowed:
            raise ValidationError(f"{field_name} must be one of {', '.join(allowed)}")
    if data.get("child_count") is not None:
        try:
            data["child_count"] = int(data["child_count"])
        except (TypeError, ValueError):
            raise ValidationError("child_count must be an integer")
        if data["child_count"] < 0:
            raise ValidationError("child_count cannot be negative")


def create_employee(db: Session, tenant_id: uuid.UUID, data: dict[str, Any]) -> Employee:
    """Create an employee.

    Args:
        db: Database session
        tenant_id: Owning tenant
        data: Field values; identity_number, first_name, last_name, department_id and
            current_salary are required.

    Returns:
        The new Employee (flushed)

    Raises:
        ValidationError: bad salary or enumeration value
        ConflictError: identity number already used in the tenant
        NotFoundError: department / shift does not exist
    """
    salary = Decimal(str(data.get("current_salary", 0)))
    if salary < 0:
        raise ValidationError("current_salary cannot be negative")
    _validate_employee_choices(data)

    duplicate = (
        db.query(Employee)
        .filter(
            Employee.tenant_id == tenant_id,
            Employee.identity_number == data["identity_number"],
            Employee.is_deleted.is_(False),
        )
        .first()
    )
    if duplicate:
        raise ConflictError(f"Identity number {data['identity_number']} is already registered")

    get_department(db, tenant_id, data["department_id"])
    if data.get("work_shift_id"):
        get_work_shift(db, tenant_id, data["work_shift_id"])

    employee = Employee(
        tenant_id=tenant_id,
        identity_number=data["identity_number"],
        current_salary=salary,
        status=data.get("status", "Active"),
    )
    for field_name in EMPLOYEE_UPDATABLE_FIELDS:
        if field_name in data:
            setattr(employee, field_name, data[field_name])
    employee.transport_amount = Decimal(str(data.get("transport_amount", 0)))
    employee.qr_token = secrets.token_urlsafe(24)

    db.add(employee)
    db.flush()
    logger.info("Created employee %s (%s)", employee.id, employee.full_name)
    return employee


def get_employee(db: Session, tenant_id: uuid.UUID, employee_id: uuid.UUID) -> Employee:
    employee = (
        db.query(Employee)
        .filter(Employee.id == employee_id, Employee.tenant_id == tenant_id, Employee.is_deleted.is_(False))
        .first()
    )
    if employee is None:
        raise NotFoundError("Employee not found")
    return employee


def list_employees(
    db: Session,
    tenant_id: uuid.UUID,
    department_id: uuid.UUID | None = None,
    status: str | None = None,
    search: str | None = None,
) -> list[Employee]:
    query = db.query(Employee).filter(Employee.tenant_id == tenant_id, Employee.is_deleted.is_(False))
    if department_id:
        query = query.filter(Employee.department_id == department_id)
    if status:
        query = query.filter(Employee.status == status)
    if search:
        pattern = f"%{search}%"
        query = query.filter(
            or_(
                Employee.first_name.ilike(pattern),
                Employee.last_name.ilike(pattern),
                Employee.identity_number.ilike(pattern),
                Employee.email.ilike(pattern),
            )
        )
    return query.order_by(Employee.last_name, Employee.first_name).all()


def active_employees(db: Session, tenant_id: uuid.UUID) -> list[Employee]:
    return list_employees(db, tenant_id, status="Active")


def change_salary(
    db: Session,
    employee: Employee,
    new_salary: Decimal,
    effective_date: date | None = None,
    reason: str | None = None,
) -> SalaryHistory | None:
    """Set a new salary and keep the old one in SalaryHistory. No-op if unchanged."""
    new_salary = Decimal(str(new_salary))
    if new_salary < 0:
        raise ValidationError("Salary cannot be negative")
    old_salary = Decimal(employee.current_salary or 0)
    if new_salary == old_salary:
        return None

    history = SalaryHistory(
        tenant_id=employee.tenant_id,
        employee_id=employee.id,
        old_salary=old_salary,
        new_salary=new_salary,
        effective_date=effective_date or date.today(),
        reason=reason,
    )
    employee.current_salary = new_salary
    db.add(history)
    db.flush()
    logger.info("Salary of employee %s changed %s -> %s", employee.id, old_salary, new_salary)
    return history


def salary_history(db: Session, tenant_id: uuid.UUID, employee_id: uuid.UUID) -> list[SalaryHistory]:
    return (
        db.query(SalaryHistory)
        .filter(
            SalaryHistory.tenant_id == tenant_id,
            SalaryHistory.employee_id == employee_id,
            SalaryHistory.is_deleted.is_(False),
        )
        .order_by(SalaryHistory.effective_date.desc(), SalaryHistory.created_at.desc())
        .all()
    )


def update_employee(db: Session, tenant_id: uuid.UUID, employee_id: uuid.UUID, data: dict[str, Any]) -> Employee:
    employee = get_employee(db, tenant_id, employee_id)
    _validate_employee_choices(data)

    if data.get("department_id") and data["department_id"] != employee.department_id:
        get_department(db, tenant_id, data["department_id"])
    if data.get("work_shift_id"):
        get_work_shift(db, tenant_id, data["work_shift_id"])
    if data.get("supervisor_id") == employee.id:
        raise ValidationError("An employee cannot supervise themselves")

    for field_name in EMPLOYEE_UPDATABLE_FIELDS:
        if field_name in data:
            setattr(employee, field_name, data[field_name])

    if "current_salary" in data:
        change_salary(db, employee, data["current_salary"], reason=data.get("salary_change_reason"))

    db.flush()
    return employee


def terminate_employee(db: Session, tenant_id: uuid.UUID, employee_id: uuid.UUID) -> Employee:
    employee = get_employee(db, tenant_id, employee_id)
    if employee.status == "Terminated":
        raise BusinessRuleError("Employee is already terminated")
    employee.status = "Terminated"
    db.flush()
    logger.info("Terminated employee %s", employee.id)
    return employee


def delete_employee(db: Session, tenant_id: uuid.UUID, employee_id: uuid.UUID, user_id: uuid.UUID | None) -> None:
    employee = get_employee(db, tenant_id, employee_id)
    employee.soft_delete(user_id)
    employee.qr_token = None
    db.flush()


def generate_qr_token(db: Session, employee: Employee) -> str:
    """Issue a new badge token; the previous badge stops working."""
    employee.qr_token = secrets.token_urlsafe(24)
    db.flush()
    return employee.qr_token


def get_employee_by_qr_token(db: Session, tenant_id: uuid.UUID, token: str) -> Employee:
    employee = (
        db.query(Employee)
        .filter(
            Employee.tenant_id == tenant_id,
            Employee.qr_token == token,
            Employee.is_deleted.is_(False),
        )
        .first()
    )
    if employee is None:
        raise NotFoundError("No employee matches this badge")
    if employee.status != "Active":
        raise BusinessRuleError(f"Employee is {employee.status}")
    return employee

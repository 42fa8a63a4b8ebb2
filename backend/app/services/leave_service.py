"""
Leave management: policies, yearly allocations and the request workflow.

Request lifecycle: Pending -> Approved | Rejected; Pending/Approved -> Cancelled.
Approving consumes allocation days and marks the covered working days as Leave in attendance.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date
from decimal import Decimal
from typing import Any

from sqlalchemy.orm import Session

from ..core.error_handler import BusinessRuleError, ConflictError, NotFoundError, ValidationError
from ..models.base import utcnow
from ..models.hr import LEAVE_STATUSES, Employee, LeaveAllocation, LeavePolicy, LeaveRequest
from . import attendance_service, hr_settings_service, notification_service
from .employee_service import active_employees, get_employee

logger = logging.getLogger(__name__)


# Policies
def create_leave_policy(db: Session, tenant_id: uuid.UUID, data: dict[str, Any]) -> LeavePolicy:
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("Leave policy name is required")
    if int(data.get("default_days", 0)) < 0:
        raise ValidationError("default_days cannot be negative")
    existing = (
        db.query(LeavePolicy)
        .filter(LeavePolicy.tenant_id == tenant_id, LeavePolicy.name == name, LeavePolicy.is_deleted.is_(False))
        .first()
    )
    if existing:
        raise ConflictError(f"Leave policy '{name}' already exists")

    policy = LeavePolicy(
        tenant_id=tenant_id,
        name=name,
        default_days=int(data.get("default_days", 0)),
        is_paid=bool(data.get("is_paid", True)),
        sgk_missing_day_code=data.get("sgk_missing_day_code"),
        requires_approval=bool(data.get("requires_approval", True)),
    )
    db.add(policy)
    db.flush()
    return policy


def get_leave_policy(db: Session, tenant_id: uuid.UUID, policy_id: uuid.UUID) -> LeavePolicy:
    policy = (
        db.query(LeavePolicy)
        .filter(LeavePolicy.id == policy_id, LeavePolicy.tenant_id == tenant_id, LeavePolicy.is_deleted.is_(False))
        .first()
    )
    if policy is None:
        raise NotFoundError("Leave policy not found")
    return policy


def list_leave_policies(db: Session, tenant_id: uuid.UUID) -> list[LeavePolicy]:
    return (
        db.query(LeavePolicy)
        .filter(LeavePolicy.tenant_id == tenant_id, LeavePolicy.is_deleted.is_(False))
        .order_by(LeavePolicy.name)
        .all()
    )


def update_leave_policy(db: Session, tenant_id: uuid.UUID, policy_id: uuid.UUID, data: dict[str, Any]) -> LeavePolicy:
    policy = get_leave_policy(db, tenant_id, policy_id)
    if "name" in data and data["name"] != policy.name:
        clash = (
            db.query(LeavePolicy)
            .filter(
                LeavePolicy.tenant_id == tenant_id,
                LeavePolicy.name == data["name"],
                LeavePolicy.is_deleted.is_(False),
            )
            .first()
        )
        if clash:
            raise ConflictError(f"Leave policy '{data['name']}' already exists")
        policy.name = data["name"]
    if "default_days" in data:
        if int(data["default_days"]) < 0:
            raise ValidationError("default_days cannot be negative")
        policy.default_days = int(data["default_days"])
    for field_name in ("is_paid", "sgk_missing_day_code", "requires_approval"):
        if field_name in data:
            setattr(policy, field_name, data[field_name])
    db.flush()
    return policy


def delete_leave_policy(db: Session, tenant_id: uuid.UUID, policy_id: uuid.UUID, user_id: uuid.UUID | None) -> None:
    policy = get_leave_policy(db, tenant_id, policy_id)
    policy.soft_delete(user_id)
    db.flush()


# Allocations
def get_allocation(db: Session, employee_id: uuid.UUID, policy_id: uuid.UUID, year: int) -> LeaveAllocation | None:
    return (
        db.query(LeaveAllocation)
        .filter(
            LeaveAllocation.employee_id == employee_id,
            LeaveAllocation.leave_policy_id == policy_id,
            LeaveAllocation.year == year,
            LeaveAllocation.is_deleted.is_(False),
        )
        .first()
    )


def allocate_leave(
    db: Session, tenant_id: uuid.UUID, employee_id: uuid.UUID, policy_id: uuid.UUID, year: int, days: Decimal
) -> LeaveAllocation:
    """Create or resize the (employee, policy, year) allocation."""
    employee = get_employee(db, tenant_id, employee_id)
    policy = get_leave_policy(db, tenant_id, policy_id)
    days = Decimal(str(days))
    if days < 0:
        raise ValidationError("Allocated days cannot be negative")

    allocation = get_allocation(db, employee.id, policy.id, year)
    if allocation is None:
        allocation = LeaveAllocation(
            tenant_id=tenant_id,
            employee_id=employee.id,
            leave_policy_id=policy.id,
            year=year,
            total_days_allocated=days,
            days_used=Decimal("0"),
        )
        db.add(allocation)
    else:
        if days < Decimal(allocation.days_used or 0):
            raise BusinessRuleError(
                f"Cannot allocate {days} days, {allocation.days_used} already used"
            )
        allocation.total_days_allocated = days
    db.flush()
    return allocation


def accrue_annual_allocations(db: Session, tenant_id: uuid.UUID, year: int) -> int:
    """Give every active employee the default days of each policy for `year`.

    Existing allocations are kept. Returns the number of allocations created.
    """
    policies = [p for p in list_leave_policies(db, tenant_id) if p.default_days > 0 and p.is_active]
    created = 0
    for employee in active_employees(db, tenant_id):
        for policy in policies:
            if get_allocation(db, employee.id, policy.id, year) is None:
                db.add(
                    LeaveAllocation(
                        tenant_id=tenant_id,
                        employee_id=employee.id,
                        leave_policy_id=policy.id,
                        year=year,
                        total_days_allocated=Decimal(policy.default_days),
                        days_used=Decimal("0"),
                    )
                )
                created += 1
    db.flush()
    logger.info("Accrued %s leave allocations for %s", created, year)
    return created


def list_allocations(
    db: Session, tenant_id: uuid.UUID, employee_id: uuid.UUID | None = None, year: int | None = None
) -> list[LeaveAllocation]:
    query = db.query(LeaveAllocation).filter(
        LeaveAllocation.tenant_id == tenant_id, LeaveAllocation.is_deleted.is_(False)
    )
    if employee_id:
        query = query.filter(LeaveAllocation.employee_id == employee_id)
    if year:
        query = query.filter(LeaveAllocation.year == year)
    return query.order_by(LeaveAllocation.year.desc()).all()


def get_leave_balance(db: Session, tenant_id: uuid.UUID, employee_id: uuid.UUID, year: int) -> list[dict[str, Any]]:
    """Allocated / used / remaining days per policy for one employee and year."""
    get_employee(db, tenant_id, employee_id)
    return [
        {
            "leave_policy_id": str(a.leave_policy_id),
            "policy_name": a.leave_policy.name,
            "year": a.year,
            "allocated": float(a.total_days_allocated),
            "used": float(a.days_used),
            "remaining": float(a.remaining_days),
        }
        for a in list_allocations(db, tenant_id, employee_id=employee_id, year=year)
    ]


# Requests
def _working_days(db: Session, tenant_id: uuid.UUID, start: date, end: date) -> list[date]:
    work_days = hr_settings_service.get_int_setting(db, tenant_id, "WorkDaysPerWeek", 5)
    holidays = hr_settings_service.holiday_dates(db, tenant_id, start, end)
    return attendance_service.working_days_between(start, end, work_days, holidays)


def create_leave_request(
    db: Session,
    tenant_id: uuid.UUID,
    employee_id: uuid.UUID,
    policy_id: uuid.UUID,
    start_date: date,
    end_date: date,
    reason: str | None = None,
    days_count: Decimal | None = None,
) -> LeaveRequest:
    """
    Submit a leave request.

    Raises:
        ValidationError: end before start, spans two years, or no working day in range
        ConflictError: overlaps a pending/approved request
        BusinessRuleError: not enough allocation left
    """
    if end_date < start_date:
        raise ValidationError("end_date cannot be before start_date")
    # Allocations are yearly; a request is charged to one year only
    if end_date.year != start_date.year:
        raise ValidationError("A leave request cannot span two calendar years; split it at 31 December")
    employee = get_employee(db, tenant_id, employee_id)
    policy = get_leave_policy(db, tenant_id, policy_id)

    if days_count is None:
        days_count = Decimal(len(_working_days(db, tenant_id, start_date, end_date)))
    days_count = Decimal(str(days_count))
    if days_count <= 0:
        raise ValidationError("The requested range contains no working days")

    overlap = (
        db.query(LeaveRequest)
        .filter(
            LeaveRequest.employee_id == employee.id,
            LeaveRequest.is_deleted.is_(False),
            LeaveRequest.status.in_(["Pending", "Approved"]),
            LeaveRequest.start_date <= end_date,
            LeaveRequest.end_date >= start_date,
        )
        .first()
    )
    if overlap:
        raise ConflictError("Leave request overlaps an existing request")

    allocation = get_allocation(db, employee.id, policy.id, start_date.year)
    if allocation is not None and allocation.remaining_days < days_count:
        raise BusinessRuleError(
            f"Insufficient leave balance: {allocation.remaining_days} days left, {days_count} requested"
        )

    request = LeaveRequest(
        tenant_id=tenant_id,
        employee_id=employee.id,
        leave_policy_id=policy.id,
        start_date=start_date,
        end_date=end_date,
        days_count=days_count,
        reason=reason,
        status="Pending",
    )
    db.add(request)
    db.flush()
    logger.info("Leave request %s submitted by employee %s", request.id, employee.id)
    notification_service.send_telegram_notification(
        notification_service.format_leave_request_notification(
            employee.full_name, policy.name, start_date.isoformat(), end_date.isoformat(), days_count
        )
    )
    return request


def get_leave_request(db: Session, tenant_id: uuid.UUID, request_id: uuid.UUID) -> LeaveRequest:
    request = (
        db.query(LeaveRequest)
        .filter(LeaveRequest.id == request_id, LeaveRequest.tenant_id == tenant_id, LeaveRequest.is_deleted.is_(False))
        .first()
    )
    if request is None:
        raise NotFoundError("Leave request not found")
    return request


def list_leave_requests(
    db: Session,
    tenant_id: uuid.UUID,
    employee_id: uuid.UUID | None = None,
    status: str | None = None,
) -> list[LeaveRequest]:
    query = db.query(LeaveRequest).filter(LeaveRequest.tenant_id == tenant_id, LeaveRequest.is_deleted.is_(False))
    if employee_id:
        query = query.filter(LeaveRequest.employee_id == employee_id)
    if status:
        if status not in LEAVE_STATUSES:
            raise ValidationError(f"status must be one of {', '.join(LEAVE_STATUSES)}")
        query = query.filter(LeaveRequest.status == status)
    return query.order_by(LeaveRequest.start_date.desc()).all()


def _covered_days(db: Session, request: LeaveRequest) -> list[date]:
    return _working_days(db, request.tenant_id, request.start_date, request.end_date)


def approve_leave_request(
    db: Session, tenant_id: uuid.UUID, request_id: uuid.UUID, approver_id: uuid.UUID | None
) -> LeaveRequest:
    request = get_leave_request(db, tenant_id, request_id)
    if request.status != "Pending":
        raise BusinessRuleError(f"Only pending requests can be approved (status: {request.status})")

    allocation = get_allocation(db, request.employee_id, request.leave_policy_id, request.start_date.year)
    if allocation is not None:
        if allocation.remaining_days < Decimal(request.days_count):
            raise BusinessRuleError("Insufficient leave balance")
        allocation.days_used = Decimal(allocation.days_used or 0) + Decimal(request.days_count)

    employee: Employee = request.employee
    for day in _covered_days(db, request):
        attendance_service.mark_leave(db, employee, day)

    request.status = "Approved"
    request.approved_by = approver_id
    request.approved_at = utcnow()
    db.flush()
    logger.info("Leave request %s approved", request.id)
    return request


def reject_leave_request(
    db: Session, tenant_id: uuid.UUID, request_id: uuid.UUID, approver_id: uuid.UUID | None, reason: str | None = None
) -> LeaveRequest:
    request = get_leave_request(db, tenant_id, request_id)
    if request.status != "Pending":
        raise BusinessRuleError(f"Only pending requests can be rejected (status: {request.status})")
    request.status = "Rejected"
    request.approved_by = approver_id
    request.approved_at = utcnow()
    request.rejection_reason = reason
    db.flush()
    logger.info("Leave request %s rejected", request.id)
    return request


def cancel_leave_request(
    db: Session, tenant_id: uuid.UUID, request_id: uuid.UUID, user_id: uuid.UUID | None
) -> LeaveRequest:
    request = get_leave_request(db, tenant_id, request_id)
    if request.status in ("Rejected", "Cancelled"):
        raise BusinessRuleError(f"A {request.status.lower()} request cannot be cancelled")

    if request.status == "Approved":
        allocation = get_allocation(db, request.employee_id, request.leave_policy_id, request.start_date.year)
        if allocation is not None:
            allocation.days_used = max(
                Decimal("0"), Decimal(allocation.days_used or 0) - Decimal(request.days_count)
            )
        for day in _covered_days(db, request):
            attendance_service.clear_leave(db, request.employee, day, user_id)

    request.status = "Cancelled"
    request.touch(user_id)
    db.flush()
    logger.info("Leave request %s cancelled", request.id)
    return request

"""
Audit trail service.

Every flush of a session records one AuditLog row per inserted, updated, soft-deleted or
hard-deleted TenantEntity. Manual entries (payroll runs, logins...) go through `create_audit_log`.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

from ..models.audit import AuditLog
from ..models.base import TenantEntity, utcnow

logger = logging.getLogger(__name__)

_SKIPPED_COLUMNS = {"created_at", "updated_at", "deleted_at", "created_by", "updated_by", "deleted_by"}


def set_session_actor(db: Session, user_id: uuid.UUID | None, username: str | None = None) -> None:
    """Stamp the acting user on the session so audit rows can name them."""
    db.info["audit_user_id"] = user_id
    db.info["audit_username"] = username


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    return value


def _column_values(obj: TenantEntity) -> dict[str, Any]:
    mapper = inspect(obj).mapper
    return {
        attr.key: _jsonable(getattr(obj, attr.key))
        for attr in mapper.column_attrs
        if attr.key not in _SKIPPED_COLUMNS
    }


def _changed_values(obj: TenantEntity) -> tuple[dict[str, Any], dict[str, Any]]:
    state = inspect(obj)
    old_values: dict[str, Any] = {}
    new_values: dict[str, Any] = {}
    for attr in state.mapper.column_attrs:
        if attr.key in _SKIPPED_COLUMNS:
            continue
        history = state.attrs[attr.key].history
        if not history.has_changes():
            continue
        old_values[attr.key] = _jsonable(history.deleted[0]) if history.deleted else None
        new_values[attr.key] = _jsonable(history.added[0]) if history.added else None
    return old_values, new_values


def _audit_before_flush(db: Session, flush_context: Any, instances: Any) -> None:
    user_id = db.info.get("audit_user_id")
    username = db.info.get("audit_username")
    entries: list[AuditLog] = []

    for obj in db.new:
        if not isinstance(obj, TenantEntity):
            continue
        if obj.id is None:
            obj.id = uuid.uuid4()
        if obj.created_by is None:
            obj.created_by = user_id
        new_values = _column_values(obj)
        entries.append(
            AuditLog(
                tenant_id=obj.tenant_id,
                user_id=user_id,
                username=username,
                action="Insert",
                entity_type=type(obj).__name__,
                entity_id=str(obj.id),
                new_values=new_values,
                affected_columns=sorted(new_values),
            )
        )

    for obj in db.dirty:
        if not isinstance(obj, TenantEntity) or not db.is_modified(obj, include_collections=False):
            continue
        old_values, new_values = _changed_values(obj)
        if not new_values:
            continue
        action = "SoftDelete" if new_values.get("is_deleted") is True else "Update"
        obj.updated_at = utcnow()
        if user_id is not None:
            obj.updated_by = user_id
        entries.append(
            AuditLog(
                tenant_id=obj.tenant_id,
                user_id=user_id,
                username=username,
                action=action,
                entity_type=type(obj).__name__,
                entity_id=str(obj.id),
                old_values=old_values,
                new_values=new_values,
                affected_columns=sorted(new_values),
            )
        )

    for obj in db.deleted:
        if not isinstance(obj, TenantEntity):
            continue
        entries.append(
            AuditLog(
                tenant_id=obj.tenant_id,
                user_id=user_id,
                username=username,
                action="HardDelete",
                entity_type=type(obj).__name__,
                entity_id=str(obj.id),
                old_values=_column_values(obj),
            )
        )

    if entries:
        db.add_all(entries)


def register_audit_listeners() -> None:
    """Attach the audit trail to every Session (idempotent)."""
    if not event.contains(Session, "before_flush", _audit_before_flush):
        event.listen(Session, "before_flush", _audit_before_flush)


def create_audit_log(
    db: Session,
    action: str,
    entity_type: str,
    tenant_id: uuid.UUID | None = None,
    entity_id: str | None = None,
    user_id: uuid.UUID | None = None,
    username: str | None = None,
    old_values: dict[str, Any] | None = None,
    new_values: dict[str, Any] | None = None,
    description: str | None = None,
) -> AuditLog:
    """Write a manual audit entry (business events that are not plain row changes)."""
    audit_log = AuditLog(
        timestamp=utcnow(),
        tenant_id=tenant_id,
        user_id=user_id if user_id is not None else db.info.get("audit_user_id"),
        username=username if username is not None else db.info.get("audit_username"),
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        old_values=old_values,
        new_values=new_values,
        description=description,
    )
    db.add(audit_log)
    db.flush()
    logger.info("Audit %s %s %s", action, entity_type, entity_id)
    return audit_log


def get_audit_logs(
    db: Session,
    tenant_id: uuid.UUID,
    entity_type: str | None = None,
    entity_id: str | None = None,
    user_id: uuid.UUID | None = None,
    action: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[AuditLog]:
    """List a tenant's audit logs, newest first."""
    query = db.query(AuditLog).filter(AuditLog.tenant_id == tenant_id)

    if entity_type:
        query = query.filter(AuditLog.entity_type == entity_type)
    if entity_id:
        query = query.filter(AuditLog.entity_id == entity_id)
    if user_id:
        query = query.filter(AuditLog.user_id == user_id)
    if action:
        query = query.filter(AuditLog.action == action)
    if start_date:
        query = query.filter(AuditLog.timestamp >= start_date)
    if end_date:
        query = query.filter(AuditLog.timestamp <= end_date)

    return query.order_by(AuditLog.timestamp.desc()).limit(limit).offset(offset).all()

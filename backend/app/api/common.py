"""
Helpers shared by the API modules: parameter parsing and the request session.
"""

from __future__ import annotations

import uuid
from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Iterator
from zoneinfo import ZoneInfo

from robyn import Request
from sqlalchemy.orm import Session

from ..core.audit_service import set_session_actor
from ..core.auth import RequestContext
from ..core.config import settings
from ..core.db import get_session
from ..core.error_handler import ValidationError


@contextmanager
def session_for(ctx: RequestContext) -> Iterator[Session]:
    """Session whose audit entries are attributed to the calling user."""
    with get_session() as db:
        set_session_actor(db, ctx.user_id, ctx.username)
        yield db


def parse_uuid(value: Any, field_name: str = "id") -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (ValueError, TypeError, AttributeError):
        raise ValidationError(f"{field_name} is not a valid id")


def parse_date(value: Any, field_name: str = "date") -> date:
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        raise ValidationError(f"{field_name} must be a date (YYYY-MM-DD)")


def local_now() -> datetime:
    """Current wall-clock time of the site, naive."""
    return datetime.now(ZoneInfo(settings.timezone)).replace(tzinfo=None)


def parse_datetime(value: Any, field_name: str = "time", zone: str | None = None) -> datetime:
    """Naive ISO datetime; aware values are converted to `zone` (the site zone by default)."""
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except (ValueError, TypeError):
            raise ValidationError(f"{field_name} must be an ISO datetime")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(ZoneInfo(zone or settings.timezone)).replace(tzinfo=None)
    return parsed


def parse_decimal(value: Any, field_name: str) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"{field_name} must be a number")


def parse_int(value: Any, field_name: str) -> int:
    try:
        return int(value)
    except (ValueError, TypeError):
        raise ValidationError(f"{field_name} must be an integer")


def path_uuid(request: Request, name: str = "id") -> uuid.UUID:
    return parse_uuid(request.path_params.get(name), name)


def query_param(request: Request, name: str, default: str | None = None) -> str | None:
    value = request.query_params.get(name, default)
    if isinstance(value, list):
        value = value[0] if value else default
    return value or default


def coerce_fields(
    data: dict[str, Any],
    uuids: Iterable[str] = (),
    dates: Iterable[str] = (),
    decimals: Iterable[str] = (),
) -> dict[str, Any]:
    """Convert JSON strings of the given keys to UUID / date / Decimal in place."""
    for name in uuids:
        if data.get(name) not in (None, ""):
            data[name] = parse_uuid(data[name], name)
        elif name in data:
            data[name] = None
    for name in dates:
        if data.get(name) not in (None, ""):
            data[name] = parse_date(data[name], name)
        elif name in data:
            data[name] = None
    for name in decimals:
        if data.get(name) not in (None, ""):
            data[name] = parse_decimal(data[name], name)
    return data


def money_out(value: Decimal | None) -> float | None:
    return float(value) if value is not None else None

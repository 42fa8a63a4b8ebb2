"""
Basic auth, tenancy & RBAC.

- The caller is identified by the `x-user` header (or cookie) holding a username.
- The user's tenant scopes every query; the role gates sensitive operations.
"""

from __future__ import annotations

import hashlib
import hmac
import uuid
from dataclasses import dataclass

from robyn import Request

from .db import get_session
from .error_handler import ConflictError, ForbiddenError, UnauthorizedError, ValidationError
from ..models.system import User

ROLES = ("admin", "hr_manager", "hr_clerk", "accountant", "asset_manager")

HR_ADMIN_ROLES = ["admin", "hr_manager"]
HR_STAFF_ROLES = ["admin", "hr_manager", "hr_clerk"]
PAYROLL_ROLES = ["admin", "hr_manager", "accountant"]
ASSET_ROLES = ["admin", "asset_manager"]


@dataclass(frozen=True)
class RequestContext:
    tenant_id: uuid.UUID
    user_id: uuid.UUID
    username: str
    role: str


def hash_password(plain: str) -> str:
    """Hash a password (demo; use bcrypt/argon2 in production)."""

    return hashlib.sha256(plain.encode("utf-8")).hexdigest()


def verify_password(plain: str, hashed: str) -> bool:
    return hmac.compare_digest(hash_password(plain), hashed)


def _username_from_request(request: Request) -> str | None:
    headers = getattr(request, "headers", None)
    username = headers.get("x-user") if headers is not None else None
    if not username:
        cookies = getattr(request, "cookies", None) or {}
        username = cookies.get("x-user")
    return username or None


def get_current_user(request: Request) -> User | None:
    """Load the active user named by the `x-user` header or cookie."""

    username = _username_from_request(request)
    if not username:
        return None
    with get_session() as db:
        user = (
            db.query(User)
            .filter(User.username == username, User.is_active.is_(True))
            .first()
        )
        if user is not None:
            db.expunge(user)
        return user


def get_request_context(request: Request) -> RequestContext:
    """Resolve tenant and user for the request; raise UnauthorizedError if unknown."""

    user = get_current_user(request)
    if user is None:
        raise UnauthorizedError("Missing or unknown user")
    return RequestContext(
        tenant_id=user.tenant_id,
        user_id=user.id,
        username=user.username,
        role=user.role,
    )


def require_roles(request: Request, roles: list[str]) -> RequestContext:
    """Return the request context if the user holds one of `roles`."""

    ctx = get_request_context(request)
    if ctx.role != "admin" and ctx.role not in roles:
        raise ForbiddenError(f"Role '{ctx.role}' is not allowed to perform this action")
    return ctx


def create_user(db, tenant_id: uuid.UUID, username: str, password: str, role: str, employee_id: uuid.UUID | None = None) -> User:
    """Create a login user; raise ConflictError if the username is taken."""

    if role not in ROLES:
        raise ValidationError(f"role must be one of {', '.join(ROLES)}")
    if db.query(User).filter(User.username == username).first():
        raise ConflictError(f"Username '{username}' is already taken")
    user = User(
        tenant_id=tenant_id,
        username=username,
        password_hash=hash_password(password),
        role=role,
        employee_id=employee_id,
    )
    db.add(user)
    db.flush()
    return user

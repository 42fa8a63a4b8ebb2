"""
API for login and the current user.
"""

from __future__ import annotations

from robyn import Request, Response

from ..core.auth import get_request_context, verify_password
from ..core.db import get_session
from ..core.error_handler import UnauthorizedError, json_response, parse_json_body, require_fields
from ..models.system import User


def login(request: Request) -> Response:
    """
    POST /api/auth/login

    Payload: {"username": "hr", "password": "..."}
    Sets the `x-user` cookie used to identify later requests.
    """
    data = parse_json_body(request)
    require_fields(data, ["username", "password"])

    with get_session() as db:
        user = (
            db.query(User)
            .filter(User.username == data["username"], User.is_active.is_(True))
            .first()
        )
        if user is None or not verify_password(data["password"], user.password_hash):
            raise UnauthorizedError("Invalid username or password")
        body = {
            "id": str(user.id),
            "username": user.username,
            "role": user.role,
            "tenant_id": str(user.tenant_id),
        }

    return json_response(
        body,
        headers={"Set-Cookie": f"x-user={body['username']}; Path=/; HttpOnly; SameSite=Lax"},
    )


def me(request: Request) -> Response:
    """GET /api/auth/me"""
    ctx = get_request_context(request)
    return json_response(
        {
            "id": str(ctx.user_id),
            "username": ctx.username,
            "role": ctx.role,
            "tenant_id": str(ctx.tenant_id),
        }
    )

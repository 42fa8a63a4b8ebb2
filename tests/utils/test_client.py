"""
Test client for the API handlers.

Robyn routes are thin async wrappers around the plain functions in `backend.app.api`, so
the client calls those functions directly with a request stub, wrapped in `handle_errors`
exactly as the routes are. No server or socket is involved.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Callable

from backend.app.core.error_handler import handle_errors


@dataclass
class RequestStub:
    """The subset of robyn.Request the handlers read."""

    body: str = ""
    path_params: dict[str, str] = field(default_factory=dict)
    query_params: dict[str, str] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)
    cookies: dict[str, str] = field(default_factory=dict)
    method: str = "GET"


@dataclass
class APIResponse:
    status_code: int
    headers: Any
    text: str

    def json(self) -> Any:
        if not self.text:
            return {}
        return json.loads(self.text)


class APIClient:
    """Calls API handlers as a given user.

    Usage:
        client = APIClient().as_user("admin")
        response = client.post(payroll_api.run_payroll, json={"year": 2025, "month": 1})
        assert response.status_code == 201
    """

    def __init__(self, username: str | None = None):
        self.username = username

    def as_user(self, username: str | None) -> "APIClient":
        return APIClient(username)

    def _call(
        self,
        method: str,
        handler: Callable,
        json_body: Any = None,
        path_params: dict[str, Any] | None = None,
        query: dict[str, Any] | None = None,
        raw_body: str | None = None,
    ) -> APIResponse:
        headers = {"x-user": self.username} if self.username else {}
        if raw_body is not None:
            body = raw_body
        else:
            body = json.dumps(json_body, default=str) if json_body is not None else ""
        request = RequestStub(
            body=body,
            path_params={k: str(v) for k, v in (path_params or {}).items()},
            query_params={k: str(v) for k, v in (query or {}).items()},
            headers=headers,
            method=method,
        )
        response = handle_errors(handler)(request)

        description = response.description
        if isinstance(description, bytes):
            description = description.decode("utf-8")
        return APIResponse(status_code=response.status_code, headers=response.headers, text=description or "")

    def get(self, handler: Callable, path_params: dict[str, Any] | None = None, query: dict[str, Any] | None = None) -> APIResponse:
        return self._call("GET", handler, path_params=path_params, query=query)

    def post(
        self,
        handler: Callable,
        json: Any = None,
        path_params: dict[str, Any] | None = None,
        raw_body: str | None = None,
    ) -> APIResponse:
        return self._call("POST", handler, json_body=json, path_params=path_params, raw_body=raw_body)

    def put(self, handler: Callable, json: Any = None, path_params: dict[str, Any] | None = None) -> APIResponse:
        return self._call("PUT", handler, json_body=json, path_params=path_params)

    def delete(self, handler: Callable, path_params: dict[str, Any] | None = None) -> APIResponse:
        return self._call("DELETE", handler, path_params=path_params)

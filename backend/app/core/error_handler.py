"""
Error handling and JSON responses for the backend.
"""

from __future__ import annotations

import inspect
import json
import logging
from functools import wraps
from typing import Callable, Any

from robyn import Request, Response
from sqlalchemy.exc import IntegrityError

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base exception for the application."""

    def __init__(self, message: str, status_code: int = 500, error_code: str | None = None):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(self.message)


class ValidationError(AppError):
    """Invalid input data."""

    def __init__(self, message: str, error_code: str = "VALIDATION_ERROR"):
        super().__init__(message, status_code=400, error_code=error_code)


class NotFoundError(AppError):
    """Resource not found."""

    def __init__(self, message: str = "Resource not found", error_code: str = "NOT_FOUND"):
        super().__init__(message, status_code=404, error_code=error_code)


class UnauthorizedError(AppError):
    """No authenticated user."""

    def __init__(self, message: str = "Unauthorized", error_code: str = "UNAUTHORIZED"):
        super().__init__(message, status_code=401, error_code=error_code)


class ForbiddenError(AppError):
    """User lacks the required role."""

    def __init__(self, message: str = "Forbidden", error_code: str = "FORBIDDEN"):
        super().__init__(message, status_code=403, error_code=error_code)


class ConflictError(AppError):
    """Duplicate or overlapping record."""

    def __init__(self, message: str, error_code: str = "CONFLICT"):
        super().__init__(message, status_code=409, error_code=error_code)


class BusinessRuleError(AppError):
    """Operation not allowed in the current state of the entity."""

    def __init__(self, message: str, error_code: str = "BUSINESS_RULE_VIOLATION"):
        super().__init__(message, status_code=422, error_code=error_code)


def error_response(error: AppError | Exception) -> Response:
    """Build a response from an exception."""
    if isinstance(error, AppError):
        status_code = error.status_code
        error_data = {
            "error": error.message,
            "error_code": error.error_code or "UNKNOWN_ERROR",
        }
    else:
        status_code = 500
        error_data = {
            "error": "Internal server error",
            "error_code": "INTERNAL_ERROR",
        }

    return Response(
        status_code=status_code,
        headers={"Content-Type": "application/json"},
        description=json.dumps(error_data, ensure_ascii=False),
    )


def handle_errors(func: Callable) -> Callable:
    """Decorator turning exceptions raised by API handlers into JSON error responses.

    Works for the async route wrappers in main.py and for the plain API functions.
    """

    if inspect.iscoroutinefunction(func):

        @wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Response:
            try:
                return await func(*args, **kwargs)
            except AppError as e:
                logger.warning("AppError in %s: %s", func.__name__, e.message)
                return error_response(e)
            except IntegrityError as e:
                logger.warning("Integrity error in %s: %s", func.__name__, e.orig)
                return error_response(ConflictError("Record conflicts with an existing one"))
            except Exception as e:
                logger.error("Unhandled error in %s: %s", func.__name__, str(e), exc_info=True)
                return error_response(e)

        return async_wrapper

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Response:
        try:
            return func(*args, **kwargs)
        except AppError as e:
            logger.warning("AppError in %s: %s", func.__name__, e.message)
            return error_response(e)
        except IntegrityError as e:
            logger.warning("Integrity error in %s: %s", func.__name__, e.orig)
            return error_response(ConflictError("Record conflicts with an existing one"))
        except Exception as e:
            logger.error("Unhandled error in %s: %s", func.__name__, str(e), exc_info=True)
            return error_response(e)

    return wrapper


def json_response(data: object, status_code: int = 200, headers: dict[str, str] | None = None) -> Response:
    """Helper building a JSON response."""
    response_headers = {"Content-Type": "application/json"}
    if headers:
        response_headers.update(headers)
    return Response(
        status_code=status_code,
        headers=response_headers,
        description=json.dumps(data, default=str, ensure_ascii=False),
    )


def parse_json_body(request: Request) -> dict[str, Any]:
    """Decode the request body as a JSON object."""
    try:
        data = json.loads(request.body or "{}")
    except (json.JSONDecodeError, TypeError):
        raise ValidationError("Request body is not valid JSON")
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def require_fields(data: dict[str, Any], fields: list[str]) -> None:
    """Raise ValidationError listing the missing required fields."""
    missing = [f for f in fields if data.get(f) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

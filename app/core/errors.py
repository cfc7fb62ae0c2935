"""
Domain errors.

Every failure the core can report is an ERPError carrying a machine-readable
code and the HTTP status it maps to. Routers let them propagate; the handler
registered in app.main renders them with error_response().
"""

from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse
from postgrest.exceptions import APIError

from app.utils.response import error_response

UNIQUE_VIOLATION = "23505"
EXCLUSION_VIOLATION = "23P01"


class ERPError(Exception):
    code = "ERROR"
    status_code = 400

    def __init__(self, message: str, data: Any = None):
        super().__init__(message)
        self.message = message
        self.data = data


class ValidationError(ERPError):
    code = "VALIDATION_ERROR"
    status_code = 400


class ScheduleConflict(ERPError):
    code = "SCHEDULE_CONFLICT"
    status_code = 409


class InvalidSignature(ERPError):
    code = "INVALID_SIGNATURE"
    status_code = 400

    def __init__(self, message: str = "Invalid webhook signature"):
        super().__init__(message)


class InvalidState(ERPError):
    code = "INVALID_STATE"
    status_code = 409


class NotFound(ERPError):
    code = "NOT_FOUND"
    status_code = 404


class UnsupportedProvider(ERPError):
    code = "UNSUPPORTED_PROVIDER"
    status_code = 400


class NoDefaultGateway(ERPError):
    code = "NO_DEFAULT_GATEWAY"
    status_code = 404


class ProviderError(ERPError):
    code = "PROVIDER_ERROR"
    status_code = 502


def is_constraint_violation(exc: Exception, *codes: str) -> bool:
    """True when a PostgREST error was raised by one of the given Postgres codes."""
    if not isinstance(exc, APIError):
        return False
    return getattr(exc, "code", None) in (codes or (UNIQUE_VIOLATION, EXCLUSION_VIOLATION))


async def erp_error_handler(request: Request, exc: ERPError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(message=exc.message, data=exc.data, code=exc.code),
    )


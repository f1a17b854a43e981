"""Domain errors raised by the pipeline, invitation, unlock and ledger services.

Routes never translate these by hand: the handler registered in ``main`` turns
every ``ServiceError`` into ``{"error": {"code": ..., "message": ...}}`` with the
status code carried by the class.
"""

from typing import Any, Optional

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


def build_error_payload(code: str, message: str, details: Optional[dict[str, Any]] = None) -> dict[str, Any]:
    payload: dict[str, Any] = {"error": {"code": code, "message": message}}
    if details is not None:
        payload["error"]["details"] = details
    return payload


class ServiceError(Exception):
    code = "service_error"
    status_code = 500

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_payload(self) -> dict[str, Any]:
        return build_error_payload(self.code, self.message, self.details)


class Unauthorized(ServiceError):
    """Missing or unknown identity header."""

    code = "unauthorized"
    status_code = 401


class NotFound(ServiceError):
    """Entity absent, or owned by another company. The two are never told apart."""

    code = "not_found"
    status_code = 404


class Conflict(ServiceError):
    code = "conflict"
    status_code = 409


class InvalidTransition(ServiceError):
    """Requested stage is not one a company may set by hand."""

    code = "invalid_transition"
    status_code = 422


class InvalidState(ServiceError):
    """Entry or invitation is in a state that forbids the operation."""

    code = "invalid_state"
    status_code = 409


class InsufficientCredits(ServiceError):
    code = "insufficient_credits"
    status_code = 402


class InvalidToken(ServiceError):
    code = "invalid_token"
    status_code = 400

    def __init__(self, message: str, reason: str = "invalid"):
        super().__init__(message, details={"reason": reason})
        self.reason = reason


class ValidationFailure(ServiceError):
    code = "validation_failed"
    status_code = 422


class InvalidSignature(ServiceError):
    code = "invalid_signature"
    status_code = 400


class Unavailable(ServiceError):
    """Storage failed mid-operation; nothing was applied and the call may be retried."""

    code = "unavailable"
    status_code = 503


async def service_error_handler(_: Request, exc: ServiceError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


async def request_validation_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    failure = ValidationFailure("Request validation failed", details={"errors": jsonable_errors(exc)})
    return JSONResponse(status_code=failure.status_code, content=failure.to_payload())


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    return [
        {"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg", "")}
        for err in exc.errors()
    ]

"""Error taxonomy and the HTTP handlers that render it.

Services raise these exceptions; routers never catch them. Data that is
merely unavailable (no prices, no method version) is reported in-band by the
preview and is not an exception.
"""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .config import settings
from .logging import get_logger


logger = get_logger("errors")


class AppException(Exception):
    """Base error rendered as `{error, message, status, details?}`."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code: str = "INTERNAL_ERROR"
    message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: str | None = None,
        error_code: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message or self.message
        self.error_code = error_code or self.error_code
        self.status_code = status_code or self.status_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Problem+json style body; `details` is omitted when empty."""
        return {
            "error": self.error_code,
            "message": self.message,
            "status": self.status_code,
            **({"details": self.details} if self.details else {}),
        }


class NotFoundError(AppException):
    """An insight, rule, channel, point, fact, method or snapshot does not exist."""

    status_code = status.HTTP_404_NOT_FOUND
    error_code = "NOT_FOUND"
    message = "Not found"


class ValidationError(AppException):
    """Input rejected before anything was written."""

    status_code = status.HTTP_422_UNPROCESSABLE_CONTENT
    error_code = "VALIDATION_ERROR"
    message = "Validation failed"


class ConflictError(AppException):
    """A unique key (method key, natural rule key, channel date) is already taken."""

    status_code = status.HTTP_409_CONFLICT
    error_code = "CONFLICT"
    message = "Resource conflict"


class InvariantViolationError(AppException):
    """Operation would break a catalog invariant (e.g. editing a built-in method)."""

    status_code = status.HTTP_409_CONFLICT
    error_code = "INVARIANT_VIOLATION"
    message = "Operation not allowed"


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or "unknown"


def _error_response(request: Request, status_code: int, body: dict[str, Any]) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=body,
        headers={"X-Request-ID": _request_id(request)},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Map domain errors, request-body errors and crashes to one JSON error shape."""

    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
        return _error_response(request, exc.status_code, exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        # Malformed bodies and query params share the VALIDATION_ERROR shape
        error = ValidationError(
            "Request is malformed.",
            details={"errors": jsonable_encoder(exc.errors())},
        )
        return _error_response(request, error.status_code, error.to_dict())

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(
            "Unhandled exception",
            extra={
                "request_id": _request_id(request),
                "path": request.url.path,
                "method": request.method,
            },
        )
        message = str(exc) if settings.debug else AppException.message
        return _error_response(
            request,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            {"error": AppException.error_code, "message": message, "status": 500},
        )

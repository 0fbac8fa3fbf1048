"""Application error kinds and their HTTP rendering.

Services raise these; routers let them propagate and the handlers
registered in ``register_exception_handlers`` turn them into responses.
"""

import logging
import uuid
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base exception for application errors."""

    status_code = 500

    def __init__(self, message: str, details: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(AppError):
    """Request or state transition violates a contract."""

    status_code = 400


class AuthenticationError(AppError):
    """Caller is not authenticated."""

    status_code = 401


class AuthorizationError(AppError):
    """Caller is authenticated but out of scope."""

    status_code = 403


class NotFoundError(AppError):
    """Identifier did not resolve."""

    status_code = 404


class DuplicateError(AppError):
    """Unique constraint collision (email, phone, license, ticket)."""

    status_code = 409


class StorageError(AppError):
    """Infrastructure fault in the store."""

    status_code = 500

    def __init__(self, message: str = "Storage failure", details: list[dict[str, Any]] | None = None):
        super().__init__(message, details)
        self.error_id = uuid.uuid4().hex


class ExternalServiceError(AppError):
    """Email/SMS transport failure. Recorded, never surfaced by enquiry operations."""

    status_code = 502

    def __init__(self, message: str, service: str | None = None):
        super().__init__(message)
        self.service = service


def field_error(field: str, message: str) -> dict[str, str]:
    """Build one entry of a field-level error list."""
    return {"field": field, "message": message}


async def _app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    body: dict[str, Any] = {"detail": exc.message}
    if exc.details:
        body["errors"] = exc.details
    if isinstance(exc, StorageError):
        logger.error("Storage error %s on %s %s", exc.error_id, request.method, request.url.path)
        body = {"detail": "Internal server error", "error_id": exc.error_id}
    return JSONResponse(status_code=exc.status_code, content=body)


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part != "body"]
        errors.append(field_error(".".join(loc) or "body", err.get("msg", "Invalid value")))
    return JSONResponse(
        status_code=400,
        content={"detail": "Validation failed", "errors": errors},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install handlers for AppError subclasses and request validation."""
    app.add_exception_handler(AppError, _app_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)

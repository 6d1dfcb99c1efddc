"""Error taxonomy for the record engine and its HTTP translation.

Services raise these exceptions; the handlers registered in ``main.py``
render them as ``{"success": false, "message", "error_code", ...}``.
Raw driver messages and stack traces only reach the client when
``settings.debug`` is on.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from reservation_engine.core.config import settings

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base class for errors that map to a stable error code."""

    status_code = 500
    default_code = "INTERNAL_ERROR"
    # Whether ``details`` is safe to show outside debug mode
    public_details = False

    def __init__(self, message: str, error_code: Optional[str] = None, details: Any = None):
        self.message = message
        self.error_code = error_code or self.default_code
        self.details = details
        super().__init__(message)


class ValidationError(AppError):
    """Input failed schema, type, range or pattern checks."""

    status_code = 400
    default_code = "VALIDATION_ERROR"
    public_details = True


class NotFoundError(AppError):
    status_code = 404
    default_code = "NOT_FOUND"

    def __init__(self, resource: str = "Resource", identifier: Any = None):
        self.resource = resource
        self.identifier = identifier
        message = f"{resource} not found" if identifier is None else f"{resource} {identifier} not found"
        super().__init__(message)


class ConflictError(AppError):
    """Duplicate key or stale version. The caller must re-fetch and retry."""

    status_code = 409
    default_code = "CONFLICT"
    public_details = True


class ForbiddenError(AppError):
    status_code = 403
    default_code = "FORBIDDEN"
    public_details = True


class BusinessRuleError(AppError):
    status_code = 422
    default_code = "BUSINESS_RULE_VIOLATION"
    public_details = True


class InternalError(AppError):
    status_code = 500
    default_code = "INTERNAL_ERROR"


# PostgreSQL SQLSTATE codes for constraint violations
_PG_UNIQUE_VIOLATION = "23505"
_PG_VALIDATION_CODES = {"23503", "23502", "23514"}


def translate_integrity_error(exc: IntegrityError, context: str = "record") -> AppError:
    """Map a database constraint violation onto the error taxonomy."""
    orig = getattr(exc, "orig", None)
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    raw = str(orig) if orig is not None else str(exc)
    lowered = raw.lower()

    if code == _PG_UNIQUE_VIOLATION or "unique constraint" in lowered or "duplicate key" in lowered:
        return ConflictError(
            f"Duplicate {context}", error_code="DUPLICATE_ENTRY",
            details={"db_error": raw} if settings.debug else None,
        )
    if code in _PG_VALIDATION_CODES or any(
        marker in lowered for marker in ("not null constraint", "foreign key constraint", "check constraint")
    ):
        return ValidationError(
            f"Invalid {context}: constraint violation",
            error_code="CONSTRAINT_VIOLATION",
            details=[{"field": None, "code": "format", "message": "Database constraint violated"}],
        )
    return InternalError(f"Database error while saving {context}", details={"db_error": raw})


def _error_body(exc: AppError) -> dict:
    body: dict[str, Any] = {
        "success": False,
        "message": exc.message,
        "error_code": exc.error_code,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if exc.details is not None and (exc.public_details or settings.debug):
        if isinstance(exc, ValidationError):
            body["errors"] = exc.details
        else:
            body["details"] = exc.details
    return body


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render an AppError as the standard error envelope."""
    if exc.status_code >= 500:
        logger.error(f"{exc.error_code} on {request.method} {request.url.path}: {exc.message}")
    else:
        logger.info(f"{exc.error_code} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc))


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    """Last-resort translation for constraint violations that escaped a service."""
    return await app_error_handler(request, translate_integrity_error(exc))


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    error = InternalError(
        "Internal server error",
        details={"exception": type(exc).__name__, "detail": str(exc)},
    )
    return JSONResponse(status_code=500, content=_error_body(error))

import logging
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from payout_ledger.exceptions import BaseAPIException, InvalidStateException
from payout_ledger.schemas.common import ErrorDetail, ErrorResponse

logger = logging.getLogger(__name__)


def _error_response(
    request: Request, status_code: int, code: str, message: str, details=None
) -> JSONResponse:
    error_response = ErrorResponse(
        error=ErrorDetail(code=code, message=message, details=details or None),
        meta={
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "path": request.url.path,
        },
    )
    return JSONResponse(
        status_code=status_code, content=error_response.model_dump(exclude_none=True)
    )


async def api_exception_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """
    Global handler for custom API exceptions.

    Returns structured error response with status code and error details.
    """
    assert isinstance(exc, BaseAPIException)
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "API Exception: %s - %s",
        exc.error_code,
        exc.message,
        extra={
            "error_code": exc.error_code,
            "path": request.url.path,
            "method": request.method,
            "details": exc.details,
        },
    )
    return _error_response(
        request, exc.status_code, exc.error_code, exc.message, exc.details
    )


async def validation_exception_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """Request body or query parameters failed schema validation."""
    assert isinstance(exc, RequestValidationError)
    errors = [
        {
            "loc": [str(part) for part in error.get("loc", ())],
            "msg": error.get("msg", ""),
            "type": error.get("type", ""),
        }
        for error in exc.errors()
    ]
    logger.warning(
        "Request validation failed path=%s",
        request.url.path,
        extra={"path": request.url.path, "method": request.method, "errors": errors},
    )
    return _error_response(
        request,
        422,
        "VALIDATION_ERROR",
        "Request validation failed",
        {"errors": errors},
    )


async def integrity_error_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """
    Handle database integrity constraint violations.

    A unique violation on earning events means the same event_id was
    delivered twice concurrently; it is reported as a state conflict.
    """
    assert isinstance(exc, IntegrityError)
    error_message = str(exc.orig).lower()

    if "event_id" in error_message or "earning_events" in error_message:
        api_exception = InvalidStateException(
            message="Event is already being processed",
            error_code="EVENT_CONFLICT",
        )
        return await api_exception_handler(request, api_exception)

    logger.warning(
        "Database integrity error",
        extra={
            "error": str(exc.orig),
            "path": request.url.path,
            "method": request.method,
        },
    )
    return _error_response(
        request, 409, "INTEGRITY_ERROR", "Database constraint violation"
    )


async def unhandled_exception_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """
    Catch-all handler for unexpected errors.

    Returns generic 500 error without exposing internal details.
    """
    logger.error(
        "Unhandled exception: %s",
        type(exc).__name__,
        exc_info=exc,
        extra={
            "path": request.url.path,
            "method": request.method,
        },
    )
    return _error_response(
        request, 500, "INTERNAL_ERROR", "An unexpected error occurred"
    )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register all global exception handlers to the FastAPI application.

    Handlers are registered in order of specificity:
    1. Custom API exceptions (BaseAPIException)
    2. Request schema validation (RequestValidationError)
    3. Database integrity errors (IntegrityError)
    4. Unhandled exceptions (Exception)
    """
    app.add_exception_handler(
        BaseAPIException,
        api_exception_handler,
    )
    app.add_exception_handler(
        RequestValidationError,
        validation_exception_handler,
    )
    app.add_exception_handler(
        IntegrityError,
        integrity_error_handler,
    )
    app.add_exception_handler(Exception, unhandled_exception_handler)

"""Translation of errors into ``ErrorResponse`` JSON.

Collection errors map to status codes by class:

- ``ValidationError`` -> 400
- ``NotFoundError`` -> 404
- ``IdentityError`` -> 422
- any other ``HorizonError`` (including ``PersistenceError``) -> 500

FastAPI's own request validation (malformed path parameters) answers 422,
Starlette ``HTTPException`` keeps its status, and anything else is a 500
whose details are hidden in production. Error context is sanitized before
it is logged or returned.
"""

import traceback
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import Response
from loguru import logger
from starlette.exceptions import HTTPException

from src.api.constants import (
    HTTP_400_BAD_REQUEST,
    HTTP_404_NOT_FOUND,
    HTTP_422_UNPROCESSABLE,
    HTTP_500_INTERNAL_SERVER_ERROR,
)
from src.api.schemas.errors import ErrorResponse, ServiceInfo
from src.api.utils.responses import ORJSONResponse
from src.core.config import Settings, get_settings
from src.core.context import RequestContext, generate_request_id
from src.core.error_context import sanitize_dict, sanitize_error_context
from src.core.exceptions import (
    ErrorCode,
    HorizonError,
    IdentityError,
    NotFoundError,
    ValidationError,
)

_STATUS_BY_ERROR: tuple[tuple[type[HorizonError], int], ...] = (
    (ValidationError, HTTP_400_BAD_REQUEST),
    (NotFoundError, HTTP_404_NOT_FOUND),
    (IdentityError, HTTP_422_UNPROCESSABLE),
)


def get_service_info(settings: Settings) -> ServiceInfo:
    return ServiceInfo(
        name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )


def status_code_for(exc: HorizonError) -> int:
    """HTTP status for an application error."""
    for error_class, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_class):
            return status_code
    return HTTP_500_INTERNAL_SERVER_ERROR


def _respond(
    status_code: int,
    settings: Settings,
    *,
    error_code: str,
    message: str,
    severity: str,
    details: dict[str, Any] | None = None,
    debug_info: dict[str, Any] | None = None,
) -> Response:
    body = ErrorResponse(
        error_code=error_code,
        message=message,
        details=details,
        correlation_id=RequestContext.get_correlation_id(),
        request_id=generate_request_id(),
        severity=severity,
        service_info=get_service_info(settings),
        debug_info=debug_info,
    )
    return ORJSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


async def horizon_error_handler(request: Request, exc: Exception) -> Response:
    """Answer a ``HorizonError`` with its mapped status.

    HIGH and CRITICAL errors are logged at ERROR, the rest at WARNING. In
    development the response also carries the stack trace and the cause.

    Raises:
        TypeError: If ``exc`` is not a ``HorizonError``.
    """
    if not isinstance(exc, HorizonError):
        raise TypeError(f"Expected HorizonError, got {type(exc).__name__}")

    settings = get_settings()
    status_code = status_code_for(exc)
    log = logger.error if exc.should_alert else logger.warning
    log(
        "Handling {exception_type}: {message}",
        exception_type=type(exc).__name__,
        message=exc.message,
        status_code=status_code,
        **sanitize_error_context(
            exc,
            {
                "request_method": request.method,
                "request_path": request.url.path,
                "error_code": exc.error_code,
            },
        ),
    )

    details = sanitize_dict(exc.context) if exc.context else None
    debug_info = None
    if settings.environment == "development":
        debug_info = {
            "exception_type": type(exc).__name__,
            "stack_trace": exc.stack_trace,
            "error_context": details or {},
        }
        if exc.cause is not None:
            debug_info["cause"] = {
                "type": type(exc.cause).__name__,
                "message": str(exc.cause),
            }

    return _respond(
        status_code,
        settings,
        error_code=exc.error_code,
        message=exc.message,
        severity=exc.severity.value,
        details=details,
        debug_info=debug_info,
    )


async def validation_error_handler(request: Request, exc: Exception) -> Response:
    """Answer FastAPI's path and query validation errors with 422.

    Raises:
        TypeError: If ``exc`` is not a ``RequestValidationError``.
    """
    if not isinstance(exc, RequestValidationError):
        raise TypeError(f"Expected RequestValidationError, got {type(exc).__name__}")

    field_errors: dict[str, list[str]] = {}
    for error in exc.errors():
        # First loc entry is the source: path, query, header or body
        field = ".".join(str(part) for part in error.get("loc", ())[1:]) or "root"
        field_errors.setdefault(field, []).append(error.get("msg", "Invalid value"))

    logger.warning(
        "Request validation failed on {} {}",
        request.method,
        request.url.path,
        validation_errors=sanitize_dict(field_errors),
    )
    return _respond(
        HTTP_422_UNPROCESSABLE,
        get_settings(),
        error_code=ErrorCode.VALIDATION_ERROR.value,
        message="Request validation failed",
        severity="LOW",
        details={"validation_errors": field_errors},
    )


async def http_exception_handler(request: Request, exc: Exception) -> Response:
    """Answer Starlette HTTP exceptions (unknown routes, wrong methods).

    Raises:
        TypeError: If ``exc`` is not an ``HTTPException``.
    """
    if not isinstance(exc, HTTPException):
        raise TypeError(f"Expected HTTPException, got {type(exc).__name__}")

    if exc.status_code == HTTP_404_NOT_FOUND:
        error_code, severity = ErrorCode.NOT_FOUND, "LOW"
    elif exc.status_code == HTTP_400_BAD_REQUEST:
        error_code, severity = ErrorCode.VALIDATION_ERROR, "LOW"
    elif exc.status_code >= HTTP_500_INTERNAL_SERVER_ERROR:
        error_code, severity = ErrorCode.INTERNAL_ERROR, "HIGH"
    else:
        error_code, severity = ErrorCode.INTERNAL_ERROR, "MEDIUM"

    logger.warning(
        "HTTP {} on {} {}: {}",
        exc.status_code,
        request.method,
        request.url.path,
        exc.detail,
    )
    return _respond(
        exc.status_code,
        get_settings(),
        error_code=error_code.value,
        message=str(exc.detail),
        severity=severity,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> Response:
    """Answer any other exception with 500; production hides what failed."""
    settings = get_settings()
    exception_type = type(exc).__name__
    logger.opt(exception=exc).error(
        "Unhandled exception: {exception_type}",
        exception_type=exception_type,
        **sanitize_error_context(
            exc,
            {"request_method": request.method, "request_path": request.url.path},
        ),
    )

    if settings.environment == "production":
        return _respond(
            HTTP_500_INTERNAL_SERVER_ERROR,
            settings,
            error_code=ErrorCode.INTERNAL_ERROR.value,
            message="An internal server error occurred",
            severity="CRITICAL",
        )
    return _respond(
        HTTP_500_INTERNAL_SERVER_ERROR,
        settings,
        error_code=ErrorCode.INTERNAL_ERROR.value,
        message=f"Internal server error: {exception_type}",
        severity="CRITICAL",
        details={"error": str(exc), "type": exception_type},
        debug_info={
            "exception_type": exception_type,
            "stack_trace": traceback.format_tb(exc.__traceback__),
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(HorizonError, horizon_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

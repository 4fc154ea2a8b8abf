"""Domain exceptions and the handlers that turn them into error responses.

Services raise these; routers let them propagate. The request-scoped
session dependency rolls back before the handler renders the response,
so a raised error never leaves partial writes behind.

Response format (every error):
    {"error": {"code": "ERROR_CODE", "message": "...", "details": {...}}}
"""

import logging
import traceback
from typing import Union

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class CodexException(Exception):
    """Base exception for application errors."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: str = "INTERNAL_ERROR",
        details: dict | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)


class BusinessLogicError(CodexException):
    """Exception for business rule violations."""

    def __init__(
        self,
        message: str,
        error_code: str = "BUSINESS_LOGIC_ERROR",
        details: dict | None = None,
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code=error_code,
            details=details,
        )


class ValidationFailedError(BusinessLogicError):
    """Bad input shape, type mismatch, or out-of-range value."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, error_code="VALIDATION_ERROR", details=details)


class IllegalTransitionError(BusinessLogicError):
    """Requested workflow state is not reachable in one hop."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, error_code="ILLEGAL_TRANSITION", details=details)


class UnknownStateError(BusinessLogicError):
    """A referenced state id does not belong to the workflow."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, error_code="UNKNOWN_STATE", details=details)


class NoWorkflowError(BusinessLogicError):
    """The model has no workflow assigned."""

    def __init__(self, model_name: str):
        super().__init__(
            f'Model "{model_name}" does not have an assigned workflow',
            error_code="NO_WORKFLOW",
        )


class ResourceNotFoundError(CodexException):
    """Exception for resources not found."""

    def __init__(self, resource: str, identifier: str):
        super().__init__(
            message=f"{resource} not found: {identifier}",
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="RESOURCE_NOT_FOUND",
        )


class PermissionDeniedError(CodexException):
    """Exception for permission denied."""

    def __init__(self, message: str = "Permission denied"):
        super().__init__(
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            error_code="PERMISSION_DENIED",
        )


class ConflictError(CodexException):
    """Uniqueness violation or a request that collides with current state."""

    def __init__(
        self,
        message: str,
        error_code: str = "CONFLICT",
        details: dict | None = None,
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            error_code=error_code,
            details=details,
        )


class AlreadyTerminalError(ConflictError):
    """The wizard run is already completed or abandoned."""

    def __init__(self, run_id: str, run_status: str):
        super().__init__(
            f"Wizard run {run_id} has already been {run_status.lower()}",
            error_code="ALREADY_TERMINAL",
            details={"run_id": run_id, "status": run_status},
        )


class InvalidStepOrderError(ConflictError):
    """A wizard step was submitted out of sequence."""

    def __init__(self, expected_index: int, submitted_index: int):
        super().__init__(
            f"Invalid step submission. Expected step {expected_index + 1}, "
            f"but got {submitted_index + 1}",
            error_code="INVALID_STEP_ORDER",
            details={
                "expected_step_index": expected_index,
                "submitted_step_index": submitted_index,
            },
        )


class StoreFailureError(CodexException):
    """The underlying transaction or connection failed."""

    def __init__(self, message: str = "Store operation failed"):
        super().__init__(
            message=message,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            error_code="STORE_FAILURE",
        )


def create_error_response(
    status_code: int,
    message: str,
    error_code: str = "ERROR",
    details: Union[dict, list, None] = None,
) -> JSONResponse:
    """Create standardized error response.

    Format:
    {
        "error": {
            "code": "ERROR_CODE",
            "message": "Human-readable error message",
            "details": {...}  // Optional additional details
        }
    }
    """
    content = {
        "error": {
            "code": error_code,
            "message": message,
        }
    }

    if details:
        content["error"]["details"] = details

    return JSONResponse(
        status_code=status_code,
        content=content,
    )


async def codex_exception_handler(
    request: Request,
    exc: CodexException,
) -> JSONResponse:
    """Handle application exceptions."""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "Codex exception: %s - %s",
        exc.error_code,
        exc.message,
        extra={
            "error_code": exc.error_code,
            "path": request.url.path,
            "method": request.method,
        },
    )

    return create_error_response(
        status_code=exc.status_code,
        message=exc.message,
        error_code=exc.error_code,
        details=exc.details,
    )


async def http_exception_handler(
    request: Request,
    exc: Union[HTTPException, StarletteHTTPException],
) -> JSONResponse:
    """Handle FastAPI HTTP exceptions."""
    if exc.status_code >= 500:
        logger.error(
            "HTTP %s: %s",
            exc.status_code,
            exc.detail,
            extra={
                "path": request.url.path,
                "method": request.method,
            },
        )

    response = create_error_response(
        status_code=exc.status_code,
        message=str(exc.detail),
        error_code=f"HTTP_{exc.status_code}",
    )
    if getattr(exc, "headers", None):
        response.headers.update(exc.headers)
    return response


async def validation_exception_handler(
    request: Request,
    exc: Union[RequestValidationError, ValidationError],
) -> JSONResponse:
    """Handle Pydantic validation errors."""
    logger.warning(
        "Validation error on %s",
        request.url.path,
        extra={
            "path": request.url.path,
            "method": request.method,
            "errors": exc.errors(),
        },
    )

    errors = []
    for error in exc.errors():
        field = " -> ".join(str(loc) for loc in error["loc"])
        errors.append({
            "field": field,
            "message": error["msg"],
            "type": error["type"],
        })

    return create_error_response(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        message="Validation error",
        error_code="VALIDATION_ERROR",
        details={"errors": errors},
    )


async def database_exception_handler(
    request: Request,
    exc: IntegrityError,
) -> JSONResponse:
    """Handle database integrity errors (unique violations, foreign key, etc.)."""
    logger.error(
        "Database integrity error on %s: %s",
        request.url.path,
        exc,
        extra={
            "path": request.url.path,
            "method": request.method,
        },
    )

    error_msg = str(exc.orig) if hasattr(exc, "orig") else str(exc)

    if "unique" in error_msg.lower():
        message = "A record with this value already exists"
        error_code = "DUPLICATE_RECORD"
        status_code = status.HTTP_409_CONFLICT
    elif "foreign key" in error_msg.lower():
        message = "Referenced record does not exist"
        error_code = "FOREIGN_KEY_VIOLATION"
        status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    elif "not null" in error_msg.lower():
        message = "Required field is missing"
        error_code = "NULL_VALUE_NOT_ALLOWED"
        status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    else:
        message = "Database constraint violation"
        error_code = "INTEGRITY_ERROR"
        status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    return create_error_response(
        status_code=status_code,
        message=message,
        error_code=error_code,
    )


async def operational_exception_handler(
    request: Request,
    exc: OperationalError,
) -> JSONResponse:
    """Handle database operational errors (connection issues, etc.)."""
    logger.error(
        "Database operational error on %s: %s",
        request.url.path,
        exc,
        extra={
            "path": request.url.path,
            "method": request.method,
        },
    )

    return create_error_response(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        message="Database temporarily unavailable. Please try again.",
        error_code="STORE_FAILURE",
    )


async def general_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Handle all other unhandled exceptions."""
    logger.error(
        "Unhandled exception on %s: %s",
        request.url.path,
        exc,
        extra={
            "path": request.url.path,
            "method": request.method,
            "traceback": traceback.format_exc(),
        },
        exc_info=True,
    )

    return create_error_response(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        message="An unexpected error occurred. Please try again later.",
        error_code="INTERNAL_SERVER_ERROR",
    )


def register_exception_handlers(app):
    """Register all custom exception handlers with FastAPI app."""
    app.add_exception_handler(CodexException, codex_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(ValidationError, validation_exception_handler)
    app.add_exception_handler(IntegrityError, database_exception_handler)
    app.add_exception_handler(OperationalError, operational_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

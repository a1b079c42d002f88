"""Custom exceptions and FastAPI exception handlers.

Implements RFC 7807 Problem Details for machine-readable error responses.

Taxonomy:
- ValidationError / MissingFieldError: client input defects (400), raised
  before any store resource is acquired.
- UpsertError / StoreUnavailableError: store-layer defects (500) raised at
  the transaction boundary after rollback.
"""

from http import HTTPStatus
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.logging import get_logger
from app.core.problem_details import (
    ERROR_TYPES,
    ProblemDetailResponse,
    problem_response,
)

logger = get_logger(__name__)


# =============================================================================
# Exception Classes
# =============================================================================


class CallIngestError(Exception):
    """Base exception for CallIngest application errors.

    Each exception type maps to an RFC 7807 problem type URI.
    """

    error_type_uri: str = ERROR_TYPES["INTERNAL_ERROR"]

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        status_code: int = 500,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize application error.

        Args:
            message: Human-readable error message.
            code: Machine-readable error code.
            status_code: HTTP status code.
            details: Additional error context.
        """
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}

    @property
    def title(self) -> str:
        """RFC 7807 title - short summary of problem type."""
        return self.code.replace("_", " ").title()


class ValidationError(CallIngestError):
    """Client input defect. Never retried, always a 400."""

    error_type_uri: str = ERROR_TYPES["VALIDATION_ERROR"]

    def __init__(
        self,
        message: str = "Validation failed",
        code: str = "VALIDATION_ERROR",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            code=code,
            status_code=400,
            details=details,
        )


class MissingFieldError(ValidationError):
    """A required canonical field or localized header is absent.

    ``missing_field`` holds the name as the client sent it: the canonical
    key for JSON rows, the localized header text for spreadsheets and the
    query parameter name for call-sheet pushes.
    """

    error_type_uri: str = ERROR_TYPES["MISSING_FIELD"]

    def __init__(self, missing_field: str, row_index: int | None = None) -> None:
        details: dict[str, Any] = {"missing_field": missing_field}
        if row_index is not None:
            details["row_index"] = row_index
        super().__init__(
            message=f"Missing required field: {missing_field}",
            code="MISSING_FIELD",
            details=details,
        )
        self.missing_field = missing_field
        self.row_index = row_index


class BadRequestError(CallIngestError):
    """Malformed request (absent key parameter, unreadable upload)."""

    error_type_uri: str = ERROR_TYPES["BAD_REQUEST"]

    def __init__(
        self,
        message: str = "Bad request",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            code="BAD_REQUEST",
            status_code=400,
            details=details,
        )


class UpsertError(CallIngestError):
    """Store-layer failure during a batch upsert.

    Raised after the transaction has been rolled back. ``cause`` is the
    triggering exception (constraint violation, driver error, timeout).
    """

    error_type_uri: str = ERROR_TYPES["DATABASE_ERROR"]

    def __init__(
        self,
        cause: BaseException,
        message: str | None = None,
        code: str = "DATABASE_ERROR",
        details: dict[str, Any] | None = None,
    ) -> None:
        cause_text = str(cause) or type(cause).__name__
        super().__init__(
            message=message or f"Failed to import call records: {cause_text}",
            code=code,
            status_code=500,
            details={"cause": cause_text, "cause_type": type(cause).__name__, **(details or {})},
        )
        self.cause = cause


class StoreUnavailableError(UpsertError):
    """Connection acquisition failed before any statement was issued."""

    error_type_uri: str = ERROR_TYPES["STORE_UNAVAILABLE"]

    def __init__(self, cause: BaseException) -> None:
        super().__init__(
            cause,
            message=f"Could not acquire a database connection: {str(cause) or type(cause).__name__}",
            code="STORE_UNAVAILABLE",
        )


# =============================================================================
# Exception Handlers (RFC 7807)
# =============================================================================


async def callingest_exception_handler(
    _request: Request,
    exc: CallIngestError,
) -> ProblemDetailResponse:
    """Handle CallIngestError exceptions with RFC 7807 Problem Details.

    Args:
        _request: FastAPI request object.
        exc: The raised exception.

    Returns:
        RFC 7807 Problem Detail response.
    """
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "app.error_handled",
        error=exc.message,
        error_type=type(exc).__name__,
        error_code=exc.code,
        status_code=exc.status_code,
        details=exc.details,
        exc_info=exc.status_code >= 500,
    )

    return problem_response(
        status=exc.status_code,
        title=exc.title,
        detail=exc.message,
        error_code=exc.code,
        missing_field=getattr(exc, "missing_field", None),
    )


async def http_exception_handler(
    request: Request,
    exc: StarletteHTTPException,
) -> ProblemDetailResponse:
    """Render routing errors (404, 405) as problem details.

    Args:
        request: FastAPI request object.
        exc: Starlette HTTP exception raised by the router.

    Returns:
        RFC 7807 Problem Detail response, keeping the ``Allow`` header on 405.
    """
    phrase = HTTPStatus(exc.status_code).phrase
    error_code = phrase.upper().replace(" ", "_")

    logger.info(
        "app.http_error",
        status_code=exc.status_code,
        method=request.method,
        path=str(request.url.path),
    )

    return problem_response(
        status=exc.status_code,
        title=phrase,
        detail=str(exc.detail) if exc.detail else phrase,
        error_code=error_code,
        headers=dict(exc.headers) if exc.headers else None,
    )


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> ProblemDetailResponse:
    """Handle Pydantic request validation errors (malformed bodies).

    Args:
        request: FastAPI request object.
        exc: Pydantic validation error.

    Returns:
        RFC 7807 Problem Detail response with field-level errors.
    """
    field_errors: list[dict[str, str]] = []
    for error in exc.errors():
        loc = error.get("loc", [])
        field_path = ".".join(str(part) for part in loc if part != "body")
        field_errors.append(
            {
                "field": field_path,
                "message": str(error.get("msg", "Validation failed")),
                "type": str(error.get("type", "unknown")),
            }
        )

    logger.warning(
        "app.validation_error",
        error_count=len(field_errors),
        path=str(request.url.path),
        fields=[e["field"] for e in field_errors],
    )

    return problem_response(
        status=422,
        title="Validation Error",
        detail=f"Request validation failed with {len(field_errors)} error(s). "
        "Check the 'errors' field for details.",
        error_code="VALIDATION_ERROR",
        errors=field_errors,
    )


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> ProblemDetailResponse:
    """Handle unexpected exceptions with RFC 7807 Problem Details.

    Args:
        request: FastAPI request object.
        exc: The raised exception.

    Returns:
        RFC 7807 Problem Detail response.
    """
    logger.error(
        "app.unhandled_error",
        error=str(exc),
        error_type=type(exc).__name__,
        path=str(request.url.path),
        exc_info=True,
    )

    return problem_response(
        status=500,
        title="Internal Server Error",
        detail="An unexpected error occurred. Please try again later or "
        "contact support with the request_id.",
        error_code="INTERNAL_ERROR",
    )


# =============================================================================
# Handler Registration
# =============================================================================


def register_exception_handlers(app: FastAPI) -> None:
    """Register exception handlers with FastAPI app.

    Args:
        app: FastAPI application instance.
    """
    app.add_exception_handler(CallIngestError, callingest_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_exception_handler)

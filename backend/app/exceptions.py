"""Standardized exceptions and error handling for the WB Desk API."""

import logging
from collections.abc import Awaitable, Callable
from uuid import uuid4

from fastapi import FastAPI, HTTPException, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

logger = logging.getLogger(__name__)

# =============================================================================
# Error Response Model
# =============================================================================


class ErrorDetail(BaseModel):
    """Detailed error information."""

    field: str | None = None
    message: str
    code: str | None = None


class ErrorResponse(BaseModel):
    """Standardized error response format."""

    error: str  # Error type/category
    message: str  # Human-readable message
    code: str  # Machine-readable error code
    status_code: int  # HTTP status code
    request_id: str  # Unique request identifier
    details: list[ErrorDetail] | None = None  # Additional error details
    path: str | None = None  # Request path


# =============================================================================
# Custom Exceptions
# =============================================================================


class WbException(Exception):
    """Base exception for WB Desk errors."""

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: list[ErrorDetail] | None = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details
        super().__init__(message)


class NotFoundError(WbException):
    """Resource not found error.

    Also raised when an identified reporter addresses a case they do not own,
    so that the response never confirms the case exists.
    """

    def __init__(
        self,
        resource: str,
        identifier: str | None = None,
        details: list[ErrorDetail] | None = None,
    ):
        message = f"{resource} not found"
        if identifier:
            message = f"{resource} '{identifier}' not found"
        super().__init__(
            message=message,
            code="NOT_FOUND",
            status_code=status.HTTP_404_NOT_FOUND,
            details=details,
        )


class ValidationError(WbException):
    """Validation error."""

    def __init__(
        self,
        message: str = "Validation failed",
        details: list[ErrorDetail] | None = None,
    ):
        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details,
        )


class AuthError(WbException):
    """Base class for identity, token and role failures."""


class AuthenticationError(AuthError):
    """Authentication error."""

    def __init__(
        self,
        message: str = "Authentication required",
        details: list[ErrorDetail] | None = None,
    ):
        super().__init__(
            message=message,
            code="AUTHENTICATION_REQUIRED",
            status_code=status.HTTP_401_UNAUTHORIZED,
            details=details,
        )


class AuthorizationError(AuthError):
    """Authorization error.

    Reply-token failures use this with a generic message whether the protocol
    is unknown or the token does not match.
    """

    def __init__(
        self,
        message: str = "Permission denied",
        details: list[ErrorDetail] | None = None,
    ):
        super().__init__(
            message=message,
            code="PERMISSION_DENIED",
            status_code=status.HTTP_403_FORBIDDEN,
            details=details,
        )


class RateLimitError(WbException):
    """Rate limit exceeded error."""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        retry_after: int | None = None,
        details: list[ErrorDetail] | None = None,
    ):
        self.retry_after = retry_after
        super().__init__(
            message=message,
            code="RATE_LIMIT_EXCEEDED",
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            details=details,
        )


class ConfigurationError(WbException):
    """Deployment defect, such as a missing manager user or a bad key.

    The message is logged server-side; clients only get a generic 500.
    """

    def __init__(self, message: str):
        super().__init__(
            message=message,
            code="CONFIGURATION_ERROR",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )


class StorageError(WbException):
    """Attachment bytes could not be written or read."""

    def __init__(self, message: str = "Attachment storage failed"):
        super().__init__(
            message=message,
            code="STORAGE_ERROR",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )


class DependencyError(WbException):
    """Recoverable failure of an outbound collaborator (mail, antivirus).

    Always caught where it is raised and turned into a fallback.
    """

    def __init__(self, service: str, message: str | None = None):
        self.service = service
        super().__init__(
            message=message or f"Service '{service}' is unavailable",
            code="DEPENDENCY_ERROR",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )


class DecryptionError(WbException):
    """Encrypted payload failed authentication."""

    def __init__(self, message: str = "Encrypted payload could not be verified"):
        super().__init__(
            message=message,
            code="DECRYPTION_ERROR",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )


# Errors whose message must never reach the client
_OPAQUE_ERRORS = (ConfigurationError, StorageError, DecryptionError)


# =============================================================================
# Exception Handlers
# =============================================================================


def create_error_response(
    request: Request,
    error: str,
    message: str,
    code: str,
    status_code: int,
    details: list[ErrorDetail] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Create a standardized error response."""
    request_id = getattr(request.state, "request_id", str(uuid4()))

    response = ErrorResponse(
        error=error,
        message=message,
        code=code,
        status_code=status_code,
        request_id=request_id,
        details=details,
        path=str(request.url.path),
    )

    return JSONResponse(
        status_code=status_code,
        content=response.model_dump(exclude_none=True),
        headers=headers,
    )


async def wb_exception_handler(request: Request, exc: WbException) -> JSONResponse:
    """Handle WB Desk custom exceptions."""
    if isinstance(exc, _OPAQUE_ERRORS):
        logger.error(
            "%s on %s %s: %s",
            exc.__class__.__name__,
            request.method,
            request.url.path,
            exc.message,
        )
        return create_error_response(
            request=request,
            error="InternalServerError",
            message="An unexpected error occurred",
            code="INTERNAL_ERROR",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    headers = None
    if isinstance(exc, RateLimitError) and exc.retry_after is not None:
        headers = {"Retry-After": str(exc.retry_after)}
    elif isinstance(exc, AuthenticationError):
        headers = {"WWW-Authenticate": "Bearer"}

    return create_error_response(
        request=request,
        error=exc.__class__.__name__,
        message=exc.message,
        code=exc.code,
        status_code=exc.status_code,
        details=exc.details,
        headers=headers,
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle Pydantic validation errors."""
    details = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"])
        details.append(
            ErrorDetail(
                field=field,
                message=error["msg"],
                code=error["type"],
            )
        )

    return create_error_response(
        request=request,
        error="ValidationError",
        message="Request validation failed",
        code="VALIDATION_ERROR",
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        details=details,
    )


async def http_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle generic HTTP exceptions."""
    if isinstance(exc, HTTPException):
        error_map = {
            400: ("BadRequest", "BAD_REQUEST"),
            401: ("AuthenticationError", "AUTHENTICATION_REQUIRED"),
            403: ("AuthorizationError", "PERMISSION_DENIED"),
            404: ("NotFound", "NOT_FOUND"),
            405: ("MethodNotAllowed", "METHOD_NOT_ALLOWED"),
            413: ("PayloadTooLarge", "PAYLOAD_TOO_LARGE"),
            429: ("RateLimitExceeded", "RATE_LIMIT_EXCEEDED"),
            500: ("InternalServerError", "INTERNAL_ERROR"),
        }

        error_type, code = error_map.get(exc.status_code, ("HTTPError", f"HTTP_{exc.status_code}"))

        return create_error_response(
            request=request,
            error=error_type,
            message=str(exc.detail),
            code=code,
            status_code=exc.status_code,
            headers=getattr(exc, "headers", None),
        )

    return create_error_response(
        request=request,
        error="InternalServerError",
        message="An unexpected error occurred",
        code="INTERNAL_ERROR",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle uncaught exceptions."""
    logger.exception("Unhandled exception: %s", exc)

    return create_error_response(
        request=request,
        error="InternalServerError",
        message="An unexpected error occurred",
        code="INTERNAL_ERROR",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


# =============================================================================
# Middleware
# =============================================================================


async def request_id_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Add request ID to each request for tracing."""
    request_id = request.headers.get("X-Request-ID", str(uuid4()))
    request.state.request_id = request_id

    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# =============================================================================
# Setup Function
# =============================================================================


def setup_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app."""
    app.add_exception_handler(WbException, wb_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.middleware("http")(request_id_middleware)

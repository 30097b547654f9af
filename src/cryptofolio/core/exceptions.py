"""Centralized exception hierarchy and handlers for the application.

Every error raised by services and routes maps to an HTTP status code and a
stable machine-readable code. Services raise these instead of generic
exceptions or HTTPException so the same rules apply whether an operation is
called from a route, a test or a maintenance script.

Exception Hierarchy:
    AppException (base)
    ├── ValidationError (400)
    │   └── InsufficientHoldingsError (400)
    ├── AuthenticationError (401)
    ├── NotFoundError (404)
    ├── ConflictError (409)
    ├── DataIntegrityError (500)
    └── ExternalAPIError (503)

Usage in Services:
    from cryptofolio.core.exceptions import InsufficientHoldingsError

    if sell_quantity > held_quantity:
        raise InsufficientHoldingsError(
            f"Cannot sell {sell_quantity} {symbol}: only {held_quantity} held"
        )

The exception handler automatically converts these to HTTP responses.
"""

import logging
from typing import Any

from fastapi import Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppException(Exception):
    """
    Base exception class for all application errors.

    Attributes:
        status_code: HTTP status code for this error type
        detail: User-facing error message
        error_code: Machine-readable error code (optional)
    """

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    detail: str = "Internal server error"
    error_code: str | None = None

    def __init__(
        self,
        detail: str | None = None,
        *,
        error_code: str | None = None,
    ) -> None:
        """
        Initialize the exception.

        Args:
            detail: Custom error message (overrides class default)
            error_code: Machine-readable error identifier
        """
        self.detail = detail or self.__class__.detail
        self.error_code = error_code or self.__class__.error_code
        super().__init__(self.detail)


class ValidationError(AppException):
    """
    Raised when input validation fails.

    Used for non-positive quantities or prices, blank asset identity and
    other rule violations detected by the service layer.
    Maps to HTTP 400 Bad Request.
    """

    status_code = status.HTTP_400_BAD_REQUEST
    detail = "Validation error"
    error_code = "VALIDATION_ERROR"


class InsufficientHoldingsError(ValidationError):
    """
    Raised when a sell would take the held quantity below zero.

    The offending write is rejected and nothing is persisted.
    Maps to HTTP 400 Bad Request.
    """

    detail = "Sell quantity exceeds the quantity held"
    error_code = "INSUFFICIENT_HOLDINGS"


class AuthenticationError(AppException):
    """
    Raised when authentication fails.

    Used for invalid credentials, expired tokens, or missing authentication.
    Maps to HTTP 401 Unauthorized.
    """

    status_code = status.HTTP_401_UNAUTHORIZED
    detail = "Authentication failed"
    error_code = "AUTHENTICATION_ERROR"


class NotFoundError(AppException):
    """
    Raised when a requested resource is not found.

    Also used for resources owned by another user, which must be
    indistinguishable from missing ones.
    Maps to HTTP 404 Not Found.
    """

    status_code = status.HTTP_404_NOT_FOUND
    detail = "Resource not found"
    error_code = "NOT_FOUND"


class ConflictError(AppException):
    """
    Raised when there's a conflict in the operation.

    Used for duplicate registrations or state conflicts.
    Maps to HTTP 409 Conflict.
    """

    status_code = status.HTTP_409_CONFLICT
    detail = "Resource conflict"
    error_code = "CONFLICT"


class DataIntegrityError(AppException):
    """
    Raised when stored transactions cannot be aggregated.

    A row with a non-positive quantity or price, or an unknown kind, should
    never reach storage. Finding one during aggregation is a server fault.
    Maps to HTTP 500 Internal Server Error.
    """

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    detail = "Stored transaction data is inconsistent"
    error_code = "DATA_INTEGRITY_ERROR"


class ExternalAPIError(AppException):
    """
    Raised when an external API call fails.

    Used when the market data provider is unavailable or returns errors.
    Maps to HTTP 503 Service Unavailable.
    """

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    detail = "External service unavailable"
    error_code = "EXTERNAL_API_ERROR"


async def app_exception_handler(
    request: Request,
    exc: AppException,
) -> JSONResponse:
    """
    Handle application exceptions and convert to HTTP responses.

    Args:
        request: FastAPI request object
        exc: The exception instance

    Returns:
        JSONResponse with error details and HTTP status code

    Response Format:
        {
            "detail": "User-facing error message",
            "error_code": "MACHINE_READABLE_CODE"  # optional
        }
    """
    log_extra = {
        "status_code": exc.status_code,
        "error_code": exc.error_code,
        "request_path": request.url.path,
    }
    if exc.status_code >= 500:
        logger.error(
            f"{exc.__class__.__name__}: {exc.detail}",
            exc_info=True,
            extra=log_extra,
        )
    else:
        logger.warning(f"{exc.__class__.__name__}: {exc.detail}", extra=log_extra)

    response_body: dict[str, Any] = {"detail": exc.detail}
    if exc.error_code:
        response_body["error_code"] = exc.error_code

    return JSONResponse(
        status_code=exc.status_code,
        content=response_body,
    )

"""
Custom exceptions and error handlers for consistent error responses.

Provides standardized error codes and global exception handlers.
"""

import logging

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from typing import Any, Dict

logger = logging.getLogger("saferoute.errors")


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ValidationError(AppException):
    """Raised when a request is missing or has malformed required fields."""

    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_VALIDATION_001",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details
        )


class InsufficientPermissionsError(AppException):
    """Raised when a user acts on a trip or alert that is not theirs."""

    def __init__(self, message: str = "Insufficient permissions", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_PERM_001",
            status_code=status.HTTP_403_FORBIDDEN,
            details=details
        )


class ResourceNotFoundError(AppException):
    """Raised when requested resource is not found."""

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code="ERR_NOT_FOUND_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


class PreconditionError(AppException):
    """Raised when an entity is not in the state an operation requires."""

    def __init__(self, message: str, error_code: str = "ERR_STATE_001", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=status.HTTP_409_CONFLICT,
            details=details
        )


class TripNotActiveError(PreconditionError):
    """Raised when a location sample targets a trip that is not ACTIVE."""

    def __init__(self, trip_id: str, current_status: str):
        super().__init__(
            message="Trip is not active",
            error_code="ERR_TRIP_NOT_ACTIVE",
            details={"trip_id": trip_id, "status": current_status}
        )


class ActiveTripExistsError(PreconditionError):
    """Raised when a user tries to start a second ACTIVE trip."""

    def __init__(self, user_id: str, active_trip_id: str = None):
        super().__init__(
            message="User already has an active trip",
            error_code="ERR_TRIP_ALREADY_ACTIVE",
            details={"user_id": user_id, "active_trip_id": active_trip_id}
        )


class InvalidTransitionError(PreconditionError):
    """Raised when a trip status change is not in the transition table."""

    def __init__(self, trip_id: str, current_status: str, target_status: str):
        super().__init__(
            message=f"Cannot move trip from {current_status} to {target_status}",
            error_code="ERR_TRIP_TRANSITION",
            details={"trip_id": trip_id, "from": current_status, "to": target_status}
        )


class AlertNotCancellableError(PreconditionError):
    """Raised when cancelling a non-SOS or already cancelled alert."""

    def __init__(self, alert_id: str, reason: str):
        super().__init__(
            message=reason,
            error_code="ERR_ALERT_NOT_CANCELLABLE",
            details={"alert_id": alert_id}
        )


class AuthenticationError(AppException):
    """Raised for authentication failures."""

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(
            message=message,
            error_code="ERR_AUTH_001",
            status_code=status.HTTP_401_UNAUTHORIZED
        )


class DeliveryError(Exception):
    """Raised by a messaging provider when a single send attempt fails.

    Never leaves the dispatcher: it is converted into a fallback attempt
    or a failed delivery record.
    """

    def __init__(self, message: str, channel: str = None, retryable: bool = True):
        self.channel = channel
        self.retryable = retryable
        super().__init__(message)


class ProviderUnavailableError(DeliveryError):
    """Raised when the messaging provider is not configured."""

    def __init__(self, message: str = "Messaging provider not configured"):
        super().__init__(message, retryable=False)


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details
        }
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    # Map status code to error code
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        401: "ERR_UNAUTHORIZED",
        403: "ERR_FORBIDDEN",
        404: "ERR_NOT_FOUND",
        409: "ERR_CONFLICT",
        500: "ERR_INTERNAL_SERVER"
    }

    error_code = error_code_map.get(exc.status_code, "ERR_UNKNOWN")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": error_code,
            "message": exc.detail,
            "details": {}
        },
        headers=getattr(exc, "headers", None)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error_code": "ERR_VALIDATION",
            "message": "Validation error",
            "details": {
                "errors": jsonable_errors(exc)
            }
        }
    )


def jsonable_errors(exc: RequestValidationError):
    # ctx may carry exception instances that JSONResponse cannot encode
    errors = []
    for error in exc.errors():
        error = dict(error)
        if "ctx" in error:
            error["ctx"] = {key: str(value) for key, value in error["ctx"].items()}
        errors.append(error)
    return errors


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path, exc_info=exc)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "ERR_INTERNAL_SERVER",
            "message": "An internal server error occurred",
            "details": {}
        }
    )

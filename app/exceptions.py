from typing import Any, Dict, Optional
from fastapi import Request, status
from fastapi.responses import JSONResponse
import logging

logger = logging.getLogger(__name__)


class BookingAPIError(Exception):
    """Base class for errors surfaced to API callers"""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationFailed(BookingAPIError):
    """Missing or malformed input, rejected before any write"""

    def __init__(self, message: str = "Validation failed", error_code: str = "validation-failed", details=None):
        super().__init__(message, status.HTTP_400_BAD_REQUEST, error_code, details)


class NotAuthenticated(BookingAPIError):
    def __init__(self, message: str = "Unauthorized", error_code: str = "unauthorized"):
        super().__init__(message, status.HTTP_401_UNAUTHORIZED, error_code)


class AccessDenied(BookingAPIError):
    def __init__(self, message: str = "Access denied", error_code: str = "access-denied"):
        super().__init__(message, status.HTTP_403_FORBIDDEN, error_code)


class OutsideCallWindow(AccessDenied):
    def __init__(self, message: str = "Call is not available at this time"):
        super().__init__(message, "call-time-invalid")


class NotFound(BookingAPIError):
    def __init__(self, message: str = "Resource not found", error_code: str = "not-found"):
        super().__init__(message, status.HTTP_404_NOT_FOUND, error_code)


class Conflict(BookingAPIError):
    def __init__(self, message: str = "Resource conflict", error_code: str = "conflict"):
        super().__init__(message, status.HTTP_409_CONFLICT, error_code)


class InvalidTransition(Conflict):
    """Status change not allowed by the appointment lifecycle"""

    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot move appointment from {current} to {target}", "invalid-transition")
        self.details = {"from": current, "to": target}


async def booking_error_handler(request: Request, exc: BookingAPIError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    content = {"error": exc.message, "code": exc.error_code}
    if exc.details:
        content["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content=content)

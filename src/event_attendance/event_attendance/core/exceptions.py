from __future__ import annotations

from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    VALIDATION_ERROR = "VALIDATION_ERROR"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    EVENT_NOT_FOUND = "EVENT_NOT_FOUND"
    ATTENDANCE_NOT_FOUND = "ATTENDANCE_NOT_FOUND"
    NOT_REGISTERED = "NOT_REGISTERED"
    EVENT_CANCELLED = "EVENT_CANCELLED"
    EVENT_ALREADY_ENDED = "EVENT_ALREADY_ENDED"
    EVENT_NOT_STARTED = "EVENT_NOT_STARTED"
    ATTENDANCE_WINDOW_CLOSED = "ATTENDANCE_WINDOW_CLOSED"
    ALREADY_MARKED_ATTENDANCE = "ALREADY_MARKED_ATTENDANCE"
    ALREADY_VALIDATED = "ALREADY_VALIDATED"
    ALREADY_CHECKED_OUT = "ALREADY_CHECKED_OUT"
    INVALID_QR_CODE = "INVALID_QR_CODE"
    LOCATION_TOO_FAR = "LOCATION_TOO_FAR"
    LOCATION_ACCURACY_LOW = "LOCATION_ACCURACY_LOW"
    METHOD_NOT_ACCEPTED = "METHOD_NOT_ACCEPTED"
    INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"


class DomainError(Exception):
    """Base exception for business rule violations."""

    default_code = ErrorCode.INTERNAL_SERVER_ERROR

    def __init__(self, message: str = "", *, code: Optional[ErrorCode] = None):
        self.code = code or self.default_code
        super().__init__(message or self.code.value)

    @property
    def message(self) -> str:
        return str(self)


class ValidationError(DomainError):
    """Raised when input data is invalid or violates domain rules."""

    default_code = ErrorCode.VALIDATION_ERROR


class NotFoundError(DomainError):
    """Raised when an event, user or attendance record does not exist."""

    default_code = ErrorCode.ATTENDANCE_NOT_FOUND


class AuthorizationError(DomainError):
    """Raised when a user lacks permission for an action."""

    default_code = ErrorCode.INSUFFICIENT_PERMISSIONS


class ConflictError(DomainError):
    """Duplicate check-in, already validated, already checked out, wrong event state."""

    default_code = ErrorCode.ALREADY_MARKED_ATTENDANCE


class WindowClosedError(DomainError):
    default_code = ErrorCode.ATTENDANCE_WINDOW_CLOSED


class LocationError(DomainError):
    default_code = ErrorCode.LOCATION_TOO_FAR


class MethodError(DomainError):
    """Raised when a verifier rejects the proof or the method is not accepted."""

    default_code = ErrorCode.METHOD_NOT_ACCEPTED


class InternalError(DomainError):
    """Wraps unexpected failures at the check-in boundary."""

    default_code = ErrorCode.INTERNAL_SERVER_ERROR

"""
Custom exception classes and error handling.

Provides consistent error responses across the API. Services raise these
directly so the same taxonomy reaches HTTP clients, Celery tasks and tests.
"""
from datetime import date
from fastapi import HTTPException, status
from typing import Optional, Dict, Any


class APIException(HTTPException):
    """Base API exception with consistent structure."""

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: Optional[str] = None,
        headers: Optional[Dict[str, Any]] = None,
        extra: Optional[Dict[str, Any]] = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code
        self.extra = extra or {}

    def to_dict(self) -> Dict[str, Any]:
        body = {"detail": self.detail, "error_code": self.error_code}
        body.update(self.extra)
        return body


class NotFoundError(APIException):
    """Resource not found."""

    def __init__(self, resource: str, identifier: str):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{resource} not found: {identifier}",
            error_code="NOT_FOUND"
        )


class ValidationError(APIException):
    """Validation error."""

    def __init__(self, detail: str, field: Optional[str] = None):
        error_code = f"VALIDATION_ERROR_{field.upper()}" if field else "VALIDATION_ERROR"
        super().__init__(
            status_code=422,
            detail=detail,
            error_code=error_code
        )


class IncompleteProfileError(ValidationError):
    """The student has not told us when they can study."""

    def __init__(self, detail: str = "Availability profile is required before planning"):
        super().__init__(detail)
        self.error_code = "INCOMPLETE_PROFILE"


class UnauthorizedError(APIException):
    """Authentication required."""

    def __init__(self, detail: str = "Authentication required"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            error_code="UNAUTHORIZED",
            headers={"WWW-Authenticate": "Bearer"}
        )


class AuthorizationError(APIException):
    """Caller does not own the resource."""

    def __init__(self, detail: str = "Access denied"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
            error_code="FORBIDDEN"
        )


class ConflictError(APIException):
    """Resource conflict (e.g., slot taken by a concurrent planning pass)."""

    def __init__(self, detail: str):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            error_code="CONFLICT"
        )


class GateViolationError(APIException):
    """Target week may not be planned yet."""

    def __init__(self, detail: str, earliest_permitted: Optional[date] = None):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            error_code="GATE_VIOLATION",
            extra={
                "earliest_permitted": earliest_permitted.isoformat() if earliest_permitted else None
            }
        )
        self.earliest_permitted = earliest_permitted


class UpstreamUnavailable(APIException):
    """Backing store failed."""

    def __init__(self, detail: str = "Storage temporarily unavailable"):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=detail,
            error_code="UPSTREAM_UNAVAILABLE"
        )

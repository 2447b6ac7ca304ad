"""Exceptions raised by the school administration API.

Every class maps to one HTTP status and carries a short ``error`` code that
ends up in the response envelope next to the human readable message.
"""
from fastapi import HTTPException
from typing import Any, Dict, Optional


class SchoolAdminException(HTTPException):
    """Base exception for the application."""
    status_code = 500
    error = "internal_error"

    def __init__(
        self,
        detail: str,
        error: Optional[str] = None,
        headers: Optional[Dict[str, Any]] = None
    ):
        super().__init__(status_code=self.status_code, detail=detail, headers=headers)
        if error is not None:
            self.error = error


class ValidationError(SchoolAdminException):
    """Missing or out-of-range field."""
    status_code = 400
    error = "validation_error"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class ConflictError(SchoolAdminException):
    """Duplicate unique field, duplicate active enrollment or full group."""
    status_code = 400
    error = "conflict"


class AuthError(SchoolAdminException):
    """Missing, invalid or expired credentials."""
    status_code = 401
    error = "unauthorized"

    EXPIRED = "expired"
    INVALID = "invalid"

    def __init__(self, message: str = "Invalid token", reason: str = INVALID):
        error = "token_expired" if reason == self.EXPIRED else "token_invalid"
        super().__init__(message, error=error, headers={"WWW-Authenticate": "Bearer"})
        self.reason = reason


class ForbiddenError(SchoolAdminException):
    status_code = 403
    error = "forbidden"

    def __init__(self, message: str = "Permission denied"):
        super().__init__(message)


class NotFoundError(SchoolAdminException):
    status_code = 404
    error = "not_found"

    def __init__(self, resource: str, id: Any = None):
        message = f"{resource} not found"
        if id is not None:
            message += f" with id: {id}"
        super().__init__(message)


class ServerError(SchoolAdminException):
    """Unexpected failure; ``error`` holds the underlying message."""
    status_code = 500

    def __init__(self, message: str, exc: Optional[BaseException] = None):
        super().__init__(message, error=str(exc) if exc is not None else None)

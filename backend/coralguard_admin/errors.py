"""Error taxonomy shared by services and the HTTP layer.

Services raise these; ``main.py`` renders every :class:`AppError` as
``{"error": {"code", "message", "details"}}`` with the class' HTTP status.
Messages are stable and never say which credential field was wrong.
"""
from typing import Any, Dict, Optional

from fastapi import status


class AppError(Exception):
    code: str = "APP_ERROR"
    message: str = "Application error"
    status_code: int = status.HTTP_400_BAD_REQUEST
    details: Optional[Any] = None

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        code: Optional[str] = None,
        details: Optional[Any] = None,
    ):
        if message is not None:
            self.message = message
        if code is not None:
            self.code = code
        if details is not None:
            self.details = details
        super().__init__(self.message)


class ValidationError(AppError):
    code = "VALIDATION_ERROR"
    message = "Validation error"
    status_code = status.HTTP_400_BAD_REQUEST


class AuthenticationError(AppError):
    code = "INVALID_CREDENTIALS"
    message = "Invalid email or password"
    status_code = status.HTTP_401_UNAUTHORIZED


class AuthorizationError(AppError):
    code = "PERMISSION_DENIED"
    message = "Insufficient permissions"
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(AppError):
    code = "NOT_FOUND"
    message = "Resource not found"
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(AppError):
    code = "CONFLICT"
    message = "Resource conflict"
    status_code = status.HTTP_409_CONFLICT


class DependencyError(AppError):
    code = "DEPENDENCY_FAILURE"
    message = "A backing service failed"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


# AuthenticationError codes
INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
ACCOUNT_LOCKED = "ACCOUNT_LOCKED"
ACCOUNT_INACTIVE = "ACCOUNT_INACTIVE"
INVALID_TOKEN = "INVALID_TOKEN"
TOKEN_EXPIRED = "TOKEN_EXPIRED"
AUTH_REQUIRED = "AUTH_REQUIRED"


def error_payload(code: str, message: str, details: Optional[Any] = None) -> Dict[str, Any]:
    return {"error": {"code": code, "message": message, "details": details}}

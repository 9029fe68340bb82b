"""Operational error types raised across the API and worker."""

from __future__ import annotations

from typing import Any, Optional


class AppError(Exception):
    """Error with an HTTP status and a machine readable code.

    Anything that is not an ``AppError`` is treated as a programming error
    and rendered as a generic 500 in production.
    """

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        code: Optional[str] = None,
        details: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "success": False,
            "error": self.message,
            "code": self.code,
        }
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationError(AppError):
    def __init__(self, message: str, code: str = "VALIDATION_ERROR", details: Any = None):
        super().__init__(message, 400, code, details)


class AuthenticationError(AppError):
    def __init__(self, message: str = "Authentication required", code: str = "UNAUTHORIZED"):
        super().__init__(message, 401, code)


class AuthorizationError(AppError):
    def __init__(self, message: str = "Access denied", code: str = "FORBIDDEN"):
        super().__init__(message, 403, code)


class NotFoundError(AppError):
    def __init__(self, message: str = "Resource not found", code: str = "NOT_FOUND"):
        super().__init__(message, 404, code)


class ConflictError(AppError):
    def __init__(self, message: str, code: str = "CONFLICT"):
        super().__init__(message, 409, code)


class EncryptionError(AppError):
    def __init__(self, message: str, code: str = "ENCRYPTION_ERROR"):
        super().__init__(message, 500, code)


class GeminiAPIError(AppError):
    """Failure talking to the image generation API."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        status_code: int = 500,
        retryable: bool = True,
    ) -> None:
        super().__init__(message, status_code, code)
        self.retryable = retryable

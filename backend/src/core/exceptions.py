"""Custom exceptions for the session gateway"""

import math
from typing import Any


class AppException(Exception):
    """Base exception for application errors."""

    error_code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.headers = headers
        super().__init__(self.message)


class InternalError(AppException):
    error_code = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message=message, status_code=500, details=details)


class NotFoundError(AppException):
    error_code = "NOT_FOUND"

    def __init__(self, resource: str, identifier: str | None = None):
        message = f"{resource} not found"
        if identifier:
            message = f"{resource} with id '{identifier}' not found"
        super().__init__(message=message, status_code=404)


class SessionNotFound(NotFoundError):
    def __init__(self, session_id: str):
        super().__init__("Session", session_id)


class MessageNotFound(NotFoundError):
    def __init__(self, message_id: str):
        super().__init__("Message", message_id)


class ValidationError(AppException):
    error_code = "VALIDATION_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message=message, status_code=400, details=details)


class AuthenticationError(AppException):
    error_code = "UNAUTHORIZED"

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message=message, status_code=401)


class AuthorizationError(AppException):
    error_code = "FORBIDDEN"

    def __init__(self, message: str = "Access denied"):
        super().__init__(message=message, status_code=403)


class ServiceUnavailableError(AppException):
    error_code = "SERVICE_UNAVAILABLE"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message=message, status_code=503, details=details)


class SessionNotConnected(ServiceUnavailableError):
    def __init__(self, session_id: str, status: str):
        super().__init__(
            f"Session not connected (status: {status})",
            details={"session_id": session_id, "status": status},
        )


class ClientNotReady(ServiceUnavailableError):
    def __init__(self, session_id: str):
        super().__init__(
            "WhatsApp client not ready",
            details={"session_id": session_id},
        )


class RateLimitExceeded(AppException):
    error_code = "RATE_LIMIT_EXCEEDED"

    def __init__(self, limit: int, window: float, retry_after: float, current: int):
        self.retry_after = retry_after
        super().__init__(
            message=f"Rate limit exceeded. Max {limit} messages per {window:g} seconds.",
            status_code=429,
            details={
                "retry_after": retry_after,
                "current_count": current,
                "limit": limit,
            },
            headers={"Retry-After": str(max(1, math.ceil(retry_after)))},
        )


class ExternalServiceError(AppException):
    error_code = "EXTERNAL_SERVICE_ERROR"

    def __init__(self, service: str, message: str):
        super().__init__(
            message=f"{service} error: {message}",
            status_code=502,
            details={"service": service},
        )


class ClientInitError(AppException):
    error_code = "CLIENT_INIT_ERROR"

    def __init__(self, session_id: str, cause: str):
        super().__init__(
            message=f"Failed to initialize WhatsApp client: {cause}",
            status_code=502,
            details={"session_id": session_id},
        )


class SendFailed(AppException):
    error_code = "SEND_FAILED"

    def __init__(self, message_id: str, cause: str):
        self.message_id = message_id
        super().__init__(
            message=f"Failed to send message: {cause}",
            status_code=502,
            details={"message_id": message_id},
        )

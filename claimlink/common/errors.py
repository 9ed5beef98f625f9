from typing import Any, List, Optional


class ErrorCode:
    VALIDATION_ERROR = "VALIDATION_ERROR"
    AUTHENTICATION_ERROR = "AUTHENTICATION_ERROR"
    AUTHORIZATION_ERROR = "AUTHORIZATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"


class AppError(Exception):
    """Error with a stable code and HTTP status, rendered by the app error handler."""

    code = ErrorCode.INTERNAL_ERROR
    status_code = 500

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body = {"success": False, "message": self.message, "code": self.code}
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationError(AppError):
    code = ErrorCode.VALIDATION_ERROR
    status_code = 400

    def __init__(self, errors: List[str]):
        super().__init__("Validation failed", details=list(errors))
        self.errors = list(errors)


class AuthenticationError(AppError):
    code = ErrorCode.AUTHENTICATION_ERROR
    status_code = 401

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class AuthorizationError(AppError):
    code = ErrorCode.AUTHORIZATION_ERROR
    status_code = 403

    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(message)


class NotFoundError(AppError):
    code = ErrorCode.NOT_FOUND
    status_code = 404

    def __init__(self, resource: str = "Resource", details: Optional[Any] = None):
        super().__init__(f"{resource} not found", details=details)


class ConflictError(AppError):
    code = ErrorCode.CONFLICT
    status_code = 409

    def __init__(self, message: str = "Resource conflict", details: Optional[Any] = None):
        super().__init__(message, details=details)


class RateLimitError(AppError):
    code = ErrorCode.RATE_LIMIT_EXCEEDED
    status_code = 429

    def __init__(self, retry_after: int):
        super().__init__(f"Rate limit exceeded. Try again in {retry_after} seconds.")
        self.retry_after = retry_after

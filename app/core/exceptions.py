"""
Custom Exception Hierarchy

Provides structured exceptions for consistent error handling across the application.

The three failure signals of the relay pipeline map to:
- StorageError      : the event store could not accept a write or serve a read
- UnauthorizedError : the caller lacks the capability an operation requires
- ForwardingError   : the forward target could not be reached or rejected the call
                       (raised and contained inside the forwarding service only)
"""
from typing import Any
from enum import Enum


class ErrorCode(str, Enum):
    """Standard error codes for API responses"""

    # General errors (1xxx)
    INTERNAL_ERROR = "ERR_1000"
    VALIDATION_ERROR = "ERR_1001"
    NOT_FOUND = "ERR_1002"
    UNAUTHORIZED = "ERR_1004"
    FORBIDDEN = "ERR_1005"

    # External service errors (5xxx)
    EXTERNAL_SERVICE_UNAVAILABLE = "ERR_5003"
    EXTERNAL_SERVICE_TIMEOUT = "ERR_5004"

    # Relay pipeline errors (7xxx)
    STORAGE_FAILURE = "ERR_7001"
    FORWARDING_FAILURE = "ERR_7002"
    WEBHOOK_NOT_FOUND = "ERR_7003"


class AppException(Exception):
    """Base exception for all application errors"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        details: dict[str, Any] | None = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API response"""
        return {
            "error": {
                "code": self.error_code.value,
                "message": self.message,
                "details": self.details
            }
        }


class ValidationException(AppException):
    """Raised when input validation fails"""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict[str, Any] | None = None
    ):
        super().__init__(
            message=message,
            error_code=ErrorCode.VALIDATION_ERROR,
            status_code=400,
            details=details
        )
        if field:
            self.details["field"] = field


class NotFoundException(AppException):
    """Raised when a requested resource is not found"""

    def __init__(
        self,
        resource: str,
        identifier: Any,
        error_code: ErrorCode = ErrorCode.NOT_FOUND
    ):
        super().__init__(
            message=f"{resource} not found: {identifier}",
            error_code=error_code,
            status_code=404,
            details={"resource": resource, "identifier": str(identifier)}
        )


class WebhookNotFoundError(NotFoundException):
    """Raised when a webhook event does not exist for the tenant"""

    def __init__(self, webhook_id: str):
        super().__init__("Webhook", webhook_id, error_code=ErrorCode.WEBHOOK_NOT_FOUND)


class UnauthorizedError(AppException):
    """Raised when the caller's capability does not satisfy an operation.

    Anonymous callers get 401 (no proof offered), authenticated callers with
    the wrong level or tenant binding get 403.
    """

    def __init__(
        self,
        message: str,
        *,
        required: str,
        authenticated: bool,
        details: dict[str, Any] | None = None
    ):
        super().__init__(
            message=message,
            error_code=ErrorCode.FORBIDDEN if authenticated else ErrorCode.UNAUTHORIZED,
            status_code=403 if authenticated else 401,
            details=details
        )
        self.required = required
        self.details["required_capability"] = required


class StorageError(AppException):
    """Raised when the webhook store cannot durably write or read"""

    def __init__(self, operation: str, error: Exception | str | None = None):
        super().__init__(
            message=f"Webhook store failed during {operation}",
            error_code=ErrorCode.STORAGE_FAILURE,
            status_code=503,
            details={"operation": operation}
        )
        # פרטי השגיאה הפנימית נשמרים ללוג בלבד: לא נחשפים בתשובה
        self.cause = str(error) if error else None


class ExternalServiceException(AppException):
    """Base exception for external service errors"""

    def __init__(
        self,
        service_name: str,
        message: str,
        error_code: ErrorCode = ErrorCode.EXTERNAL_SERVICE_UNAVAILABLE,
        details: dict[str, Any] | None = None
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=503,
            details=details
        )
        self.details["service"] = service_name


class ForwardingError(ExternalServiceException):
    """Raised when the forward target rejects or cannot receive a replicated webhook"""

    def __init__(
        self,
        target_url: str,
        message: str,
        status_code: int | None = None,
        details: dict[str, Any] | None = None
    ):
        super().__init__(
            service_name="forward_target",
            message=f"Forwarding to {target_url} failed: {message}",
            error_code=ErrorCode.FORWARDING_FAILURE,
            details=details
        )
        self.target_url = target_url
        self.target_status_code = status_code
        self.details["target_url"] = target_url
        if status_code is not None:
            self.details["target_status_code"] = status_code

    @classmethod
    def from_response(
        cls,
        target_url: str,
        response: Any,
        *,
        max_response_chars: int = 500
    ) -> "ForwardingError":
        """
        יצירת ForwardingError מתוך HTTP response של היעד.

        Args:
            target_url: כתובת היעד שאליה הועבר ה-webhook
            response: אובייקט response (למשל httpx.Response)
            max_response_chars: אורך מקסימלי לשמירת response_text (מניעת לוגים גדולים)
        """
        status_code = getattr(response, "status_code", None)
        response_text = getattr(response, "text", "") or ""
        return cls(
            target_url=target_url,
            message=f"target returned status {status_code}",
            status_code=status_code,
            details={"response_text": response_text[:max_response_chars]},
        )


class ServiceTimeoutError(ExternalServiceException):
    """Raised when external service times out"""

    def __init__(self, service_name: str, timeout_seconds: float):
        super().__init__(
            service_name=service_name,
            message=f"{service_name} request timed out after {timeout_seconds}s",
            error_code=ErrorCode.EXTERNAL_SERVICE_TIMEOUT,
            details={"timeout_seconds": timeout_seconds}
        )


class CircuitBreakerOpenError(ExternalServiceException):
    """Raised when circuit breaker is open"""

    def __init__(self, service_name: str, retry_after_seconds: float):
        super().__init__(
            service_name=service_name,
            message=f"{service_name} is temporarily unavailable (circuit breaker open)",
            error_code=ErrorCode.EXTERNAL_SERVICE_UNAVAILABLE,
            details={"retry_after_seconds": retry_after_seconds}
        )

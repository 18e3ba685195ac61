"""
Custom Exception Hierarchy

Structured exceptions shared by the cron pipeline, the chat flows and the API.
"""
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Standard error codes for API responses and operator alerts"""

    # General errors (1xxx)
    INTERNAL_ERROR = "ERR_1000"
    VALIDATION_ERROR = "ERR_1001"
    NOT_FOUND = "ERR_1002"

    # Massif / bulletin errors (2xxx)
    MASSIF_NOT_FOUND = "ERR_2001"
    MASSIF_DIRECTORY_UNAVAILABLE = "ERR_2002"
    BULLETIN_METADATA_INVALID = "ERR_2004"

    # Storage errors (3xxx)
    STORAGE_UPLOAD_FAILED = "ERR_3001"

    # External service errors (5xxx)
    TELEGRAM_ERROR = "ERR_5001"
    WHATSAPP_ERROR = "ERR_5002"
    EXTERNAL_SERVICE_UNAVAILABLE = "ERR_5003"
    EXTERNAL_SERVICE_TIMEOUT = "ERR_5004"
    METEOFRANCE_ERROR = "ERR_5005"
    GEOCODING_ERROR = "ERR_5006"


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


class MassifNotFoundError(NotFoundException):
    """Raised when a massif code is not in the directory"""

    def __init__(self, code: int):
        super().__init__("Massif", code, error_code=ErrorCode.MASSIF_NOT_FOUND)


class MassifDirectoryError(AppException):
    """Raised when the massif directory cannot be loaded or is used before loading"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            message=message,
            error_code=ErrorCode.MASSIF_DIRECTORY_UNAVAILABLE,
            status_code=503,
            details=details
        )


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

    @classmethod
    def _response_details(
        cls,
        operation: str,
        response: Any,
        max_response_chars: int,
    ) -> tuple[Any, dict[str, Any]]:
        status_code = getattr(response, "status_code", None)
        response_text = getattr(response, "text", "") or ""
        return status_code, {
            "operation": operation,
            "status_code": status_code,
            "response_text": response_text[:max_response_chars],
        }


class TelegramError(ExternalServiceException):
    """Raised when Telegram API fails"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            service_name="telegram",
            message=f"Telegram API error: {message}",
            error_code=ErrorCode.TELEGRAM_ERROR,
            details=details
        )

    @classmethod
    def from_response(
        cls,
        operation: str,
        response: Any,
        *,
        message: str | None = None,
        max_response_chars: int = 500
    ) -> "TelegramError":
        """
        Build a TelegramError from an HTTP response.

        Args:
            operation: Bot API method (sendDocument, sendMediaGroup...)
            response: httpx.Response or any object with status_code/text
            message: custom message; defaults to "<operation> returned status <code>"
            max_response_chars: cap on the stored response body
        """
        status_code, details = cls._response_details(operation, response, max_response_chars)
        return cls(message=message or f"{operation} returned status {status_code}", details=details)


class WhatsAppError(ExternalServiceException):
    """Raised when WhatsApp Cloud API fails"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            service_name="whatsapp",
            message=f"WhatsApp API error: {message}",
            error_code=ErrorCode.WHATSAPP_ERROR,
            details=details
        )


class BulletinSourceError(ExternalServiceException):
    """Raised when the Météo-France bulletin API returns an error or unusable data"""

    def __init__(
        self,
        message: str,
        massif: int | None = None,
        error_code: ErrorCode = ErrorCode.METEOFRANCE_ERROR,
        details: dict[str, Any] | None = None
    ):
        super().__init__(
            service_name="meteofrance",
            message=message,
            error_code=error_code,
            details=details
        )
        if massif is not None:
            self.details["massif"] = massif

    @classmethod
    def from_response(
        cls,
        operation: str,
        response: Any,
        *,
        massif: int | None = None,
        max_response_chars: int = 300
    ) -> "BulletinSourceError":
        status_code, details = cls._response_details(operation, response, max_response_chars)
        return cls(
            message=f"Météo-France {operation} returned status {status_code}",
            massif=massif,
            details=details,
        )


class GeocodingError(ExternalServiceException):
    """Raised when the geocoding API fails"""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            service_name="geocoding",
            message=f"Geocoding error: {message}",
            error_code=ErrorCode.GEOCODING_ERROR,
            details=details
        )


class StorageError(ExternalServiceException):
    """Raised when an object storage upload fails"""

    def __init__(self, key: str, reason: str):
        super().__init__(
            service_name="storage",
            message=f"Upload of '{key}' failed: {reason}",
            error_code=ErrorCode.STORAGE_UPLOAD_FAILED,
            details={"key": key}
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

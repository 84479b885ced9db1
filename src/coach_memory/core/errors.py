"""Specific error types for the memory engine."""

from .base import (
    ApplicationError,
    ErrorCode,
    ErrorDetails,
    ErrorLevel,
    ServiceErrorDetails,
    ValidationErrorDetails,
)


class ServiceError(ApplicationError):
    """Error from external service calls."""

    def __init__(self, message: str, details: ServiceErrorDetails | dict | None = None):
        super().__init__(
            message=message,
            code=ErrorCode.SERVICE_UNAVAILABLE,
            level=ErrorLevel.ERROR,
            details=details or ServiceErrorDetails(
                source="service",
                operation="external_call",
                service_name="unknown"
            )
        )


class ConfigurationError(ApplicationError):
    """Missing or invalid engine configuration (credentials, endpoints)."""

    def __init__(self, message: str, details: ErrorDetails | dict | None = None):
        super().__init__(
            message=message,
            code=ErrorCode.CONFIG_MISSING,
            level=ErrorLevel.CRITICAL,
            details=details
        )


class AuthenticationError(ApplicationError):
    """Authentication-related errors."""

    def __init__(self, message: str, details: ServiceErrorDetails | dict | None = None):
        super().__init__(
            message=message,
            code=ErrorCode.AUTHENTICATION_FAILED,
            level=ErrorLevel.ERROR,
            details=details
        )


class ProcessingError(ApplicationError):
    """General processing errors."""

    def __init__(self, message: str, details: ErrorDetails | dict | None = None):
        super().__init__(
            message=message,
            code=ErrorCode.PROCESSING_FAILED,
            level=ErrorLevel.ERROR,
            details=details
        )


class MalformedResponseError(ApplicationError):
    """A model answered, but not with the JSON payload we asked for."""

    def __init__(self, message: str, details: ErrorDetails | dict | None = None):
        super().__init__(
            message=message,
            code=ErrorCode.MALFORMED_MODEL_OUTPUT,
            level=ErrorLevel.WARNING,
            details=details
        )


class MemoryValidationError(ApplicationError):
    """Data integrity violation caught before anything is persisted."""

    def __init__(
        self,
        message: str,
        details: ValidationErrorDetails | dict | None = None,
        code: ErrorCode = ErrorCode.INVALID_INPUT,
    ):
        super().__init__(
            message=message,
            code=code,
            level=ErrorLevel.WARNING,
            details=details
        )


class VersionConflictError(ApplicationError):
    """Optimistic concurrency check failed: the item changed under us."""

    def __init__(self, message: str, details: ErrorDetails | dict | None = None):
        super().__init__(
            message=message,
            code=ErrorCode.DB_CONFLICT,
            level=ErrorLevel.WARNING,
            details=details
        )


class RateLimitError(ApplicationError):
    """Rate limiting errors."""

    def __init__(self, message: str, details: ServiceErrorDetails | dict | None = None):
        super().__init__(
            message=message,
            code=ErrorCode.RATE_LIMITED,
            level=ErrorLevel.WARNING,
            details=details
        )


class TimeoutError(ApplicationError):
    """Timeout errors."""

    def __init__(self, message: str, details: ErrorDetails | dict | None = None):
        super().__init__(
            message=message,
            code=ErrorCode.TIMEOUT,
            level=ErrorLevel.ERROR,
            details=details
        )

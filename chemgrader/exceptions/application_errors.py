"""Application-specific exception classes with standardized error handling."""

import traceback
import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from chemgrader.models.api_responses import ErrorCode


class ErrorSeverity(Enum):
    """Error severity levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ApplicationError(Exception):
    """Base application error class with enhanced error tracking.

    Every error raised by the grading core derives from this class so the web
    layer and the pipeline can report it with a stable code and a
    user-friendly message.
    """

    http_status = 500

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        user_message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
        field: Optional[str] = None,
        recoverable: bool = False,
    ):
        """Initialize application error.

        Args:
            message: Technical error message for developers
            error_code: Standardized error code
            user_message: User-friendly error message
            details: Additional error details
            severity: Error severity level
            context: Context information where error occurred
            original_error: Original exception that caused this error
            field: Field name for validation errors
            recoverable: Whether the error is recoverable
        """
        super().__init__(message)

        self.message = message
        self.error_code = error_code
        self.user_message = user_message or self._get_default_user_message()
        self.details = details or {}
        self.severity = severity
        self.context = context or {}
        self.original_error = original_error
        self.field = field
        self.recoverable = recoverable

        self.timestamp = datetime.utcnow()
        self.error_id = f"ERR_{uuid.uuid4().hex[:8].upper()}"
        self.traceback_info = traceback.format_exc() if original_error else None

        if original_error:
            self.details["original_error"] = {
                "type": type(original_error).__name__,
                "message": str(original_error),
            }

    def _get_default_user_message(self) -> str:
        """Get default user-friendly message based on error code."""
        user_messages = {
            ErrorCode.VALIDATION_ERROR: "Please check your input and try again.",
            ErrorCode.NOT_FOUND: "The requested resource was not found.",
            ErrorCode.CONFIGURATION_ERROR: "A configuration error occurred. Please contact support.",
            ErrorCode.PROVIDER_UNAVAILABLE: "An external service is temporarily unavailable. Please try again later.",
            ErrorCode.PROVIDER_TIMEOUT: "An external service took too long to respond.",
            ErrorCode.PROVIDER_REJECTED: "The document could not be processed.",
            ErrorCode.MALFORMED_RESPONSE: "An external service returned an unexpected response.",
            ErrorCode.INTERNAL_ERROR: "An unexpected error occurred. Please try again later.",
        }
        return user_messages.get(
            self.error_code, "An error occurred. Please try again."
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging and API responses."""
        return {
            "error_id": self.error_id,
            "timestamp": self.timestamp.isoformat(),
            "error_code": self.error_code.value,
            "message": self.message,
            "user_message": self.user_message,
            "severity": self.severity.value,
            "field": self.field,
            "recoverable": self.recoverable,
            "details": self.details,
            "context": self.context,
        }

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message='{self.message}', "
            f"error_code={self.error_code}, "
            f"error_id='{self.error_id}'"
            f")"
        )


class ValidationError(ApplicationError):
    """Bad caller input: wrong file type, missing mark scheme, bad payload."""

    http_status = 400

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        validation_errors: Optional[List[Dict[str, str]]] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if validation_errors:
            details["validation_errors"] = validation_errors

        super().__init__(
            message=message,
            error_code=ErrorCode.VALIDATION_ERROR,
            field=field,
            details=details,
            severity=ErrorSeverity.LOW,
            recoverable=True,
            **kwargs,
        )


class NotFoundError(ApplicationError):
    """Not found error for missing resources."""

    http_status = 404

    def __init__(
        self,
        message: str,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if resource_type:
            details["resource_type"] = resource_type
        if resource_id:
            details["resource_id"] = resource_id

        super().__init__(
            message=message,
            error_code=ErrorCode.NOT_FOUND,
            details=details,
            severity=ErrorSeverity.LOW,
            **kwargs,
        )


class ConfigurationError(ApplicationError):
    """Configuration error for invalid or missing configuration."""

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key

        super().__init__(
            message=message,
            error_code=ErrorCode.CONFIGURATION_ERROR,
            details=details,
            severity=ErrorSeverity.HIGH,
            **kwargs,
        )


class StateTransitionError(ApplicationError):
    """Raised when a submission is asked to move to a state it cannot reach."""

    http_status = 409

    def __init__(self, current: str, target: str, **kwargs):
        super().__init__(
            message=f"Illegal status transition {current} -> {target}",
            error_code=ErrorCode.INVALID_STATE,
            details={"current": current, "target": target},
            severity=ErrorSeverity.HIGH,
            **kwargs,
        )


class ProviderError(ApplicationError):
    """Base class for failures of an external provider (extraction or LLM)."""

    http_status = 502
    default_code = ErrorCode.PROVIDER_UNAVAILABLE

    def __init__(self, message: str, provider: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if provider:
            details["provider"] = provider
        self.provider = provider
        error_code = kwargs.pop("error_code", self.default_code)

        super().__init__(
            message=message,
            error_code=error_code,
            details=details,
            severity=ErrorSeverity.HIGH,
            **kwargs,
        )


class ProviderUnavailable(ProviderError):
    """The provider could not be reached or answered with a server error."""

    http_status = 503


class ProviderTimeout(ProviderError):
    """The provider did not finish within the attempt or time budget."""

    http_status = 504
    default_code = ErrorCode.PROVIDER_TIMEOUT

    def __init__(self, message: str, timeout_duration: Optional[float] = None, **kwargs):
        details = kwargs.pop("details", {})
        if timeout_duration is not None:
            details["timeout_duration"] = timeout_duration
        super().__init__(message, details=details, **kwargs)


class ProviderRejected(ProviderError):
    """The provider refused the input (malformed, unsupported or too large)."""

    http_status = 422
    default_code = ErrorCode.PROVIDER_REJECTED


class MalformedProviderResponse(ProviderError):
    """The provider answered but the payload broke the expected schema."""

    default_code = ErrorCode.MALFORMED_RESPONSE


class GradingDegraded(ApplicationError):
    """A single question could not be graded and was routed to manual review.

    Never pipeline-fatal: the grading engine records it and moves on.
    """

    def __init__(self, message: str, question_id: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if question_id:
            details["question_id"] = question_id
        self.question_id = question_id

        super().__init__(
            message=message,
            error_code=ErrorCode.GRADING_DEGRADED,
            details=details,
            severity=ErrorSeverity.LOW,
            recoverable=True,
            **kwargs,
        )

"""Exception hierarchy and failure classification for the grading core."""

from .application_errors import (
    ApplicationError,
    ConfigurationError,
    ErrorSeverity,
    GradingDegraded,
    MalformedProviderResponse,
    NotFoundError,
    ProviderError,
    ProviderRejected,
    ProviderTimeout,
    ProviderUnavailable,
    StateTransitionError,
    ValidationError,
)
from .error_mapper import ClassifiedFailure, FailureCategory, classify_failure

__all__ = [
    "ApplicationError",
    "ConfigurationError",
    "ErrorSeverity",
    "GradingDegraded",
    "MalformedProviderResponse",
    "NotFoundError",
    "ProviderError",
    "ProviderRejected",
    "ProviderTimeout",
    "ProviderUnavailable",
    "StateTransitionError",
    "ValidationError",
    "ClassifiedFailure",
    "FailureCategory",
    "classify_failure",
]

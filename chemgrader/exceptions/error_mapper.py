"""Classification of pipeline failures into user-facing messages.

A failed submission must always carry a readable message telling the user
which part of the pipeline broke. The category comes from the exception
type where it is known and from the error text otherwise.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from .application_errors import (
    ApplicationError,
    ConfigurationError,
    ProviderError,
    ProviderTimeout,
    ValidationError,
)


class FailureCategory(Enum):
    """Buckets exposed to callers for FAILED submissions."""
    CONFIGURATION = "configuration"
    AI = "ai"
    OCR = "ocr"
    TIMEOUT = "timeout"
    VALIDATION = "validation"
    INTERNAL = "internal"


@dataclass
class ClassifiedFailure:
    """A failure reduced to a category and a non-empty message."""
    category: FailureCategory
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"category": self.category.value, "message": self.message}


# Order matters: a missing OpenAI key is a configuration problem, not an AI one.
CONFIGURATION_MARKERS: Tuple[str, ...] = (
    "api key",
    "not configured",
    "configuration",
    "credentials",
)
AI_MARKERS: Tuple[str, ...] = (
    "openai",
    "language model",
    "llm",
    "structuring",
    "grading stage",
)
OCR_MARKERS: Tuple[str, ...] = (
    "ocr",
    "extraction",
    "mathpix",
    "document",
)
TIMEOUT_MARKERS: Tuple[str, ...] = ("timed out", "timeout")
AI_PROVIDERS: Tuple[str, ...] = ("openai",)
MAX_DETAIL_LENGTH = 200

PREFIXES = {
    FailureCategory.CONFIGURATION: "Configuration error",
    FailureCategory.AI: "AI marking failed",
    FailureCategory.OCR: "OCR processing failed",
    FailureCategory.VALIDATION: "Invalid submission",
    FailureCategory.INTERNAL: "Processing failed",
}
TIMEOUT_PREFIXES = {
    FailureCategory.AI: "AI marking timed out",
    FailureCategory.OCR: "OCR processing timed out",
}


def _provider_category(error: BaseException) -> Optional[FailureCategory]:
    provider = getattr(error, "provider", None)
    if not isinstance(error, ProviderError) or not provider:
        return None
    return FailureCategory.AI if provider in AI_PROVIDERS else FailureCategory.OCR


def _text_source(text: str) -> Optional[FailureCategory]:
    if any(marker in text for marker in OCR_MARKERS):
        return FailureCategory.OCR
    if any(marker in text for marker in AI_MARKERS):
        return FailureCategory.AI
    return None


def _detail(error: BaseException) -> str:
    """User-facing detail; foreign exceptions are cut to their first line."""
    if isinstance(error, SQLAlchemyError):
        return f"database error ({type(error).__name__})"
    detail = str(error).strip()
    if not isinstance(error, ApplicationError):
        detail = detail.splitlines()[0] if detail else ""
        if len(detail) > MAX_DETAIL_LENGTH:
            detail = detail[:MAX_DETAIL_LENGTH].rstrip() + "..."
    return detail or type(error).__name__


def classify_failure(error: BaseException) -> ClassifiedFailure:
    """Map an exception to a failure category and a prefixed message.

    The exception type decides first: configuration and validation errors,
    provider errors by provider name, and database errors. Untyped
    exceptions fall back to matching their text.

    Args:
        error: The exception that terminated a pipeline stage

    Returns:
        ClassifiedFailure with a message that is never empty
    """
    detail = _detail(error)
    text = detail.lower()

    if isinstance(error, ConfigurationError):
        return ClassifiedFailure(FailureCategory.CONFIGURATION,
                                 f"{PREFIXES[FailureCategory.CONFIGURATION]}: {detail}")
    if isinstance(error, ValidationError):
        return ClassifiedFailure(FailureCategory.VALIDATION,
                                 f"{PREFIXES[FailureCategory.VALIDATION]}: {detail}")
    if isinstance(error, SQLAlchemyError):
        return ClassifiedFailure(FailureCategory.INTERNAL,
                                 f"{PREFIXES[FailureCategory.INTERNAL]}: {detail}")

    source = _provider_category(error) or _text_source(text)
    if isinstance(error, ProviderTimeout) or any(marker in text for marker in TIMEOUT_MARKERS):
        prefix = TIMEOUT_PREFIXES.get(source, "Processing timed out")
        return ClassifiedFailure(FailureCategory.TIMEOUT, f"{prefix}: {detail}")

    if any(marker in text for marker in CONFIGURATION_MARKERS):
        category = FailureCategory.CONFIGURATION
    else:
        category = source or FailureCategory.INTERNAL
    return ClassifiedFailure(category, f"{PREFIXES[category]}: {detail}")

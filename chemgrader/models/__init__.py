"""Domain and API models."""

from .api_responses import APIResponse, ErrorCode, ResponseStatus
from .documents import Document, ExtractionResult, JobState, ProviderJobStatus
from .markscheme import (
    FormulaTolerance,
    MarkingPoint,
    MarkingRules,
    MarkScheme,
    MarkSchemeQuestion,
    MetadataHints,
    QuestionType,
    SpellingTolerance,
    StructuringResult,
    ValidationWarning,
)
from .results import (
    MarkingPointAward,
    QuestionResult,
    ResultsView,
    SubmissionScore,
    SubmissionSummary,
)
from .status import ProgressRecord, StatusView, SubmissionStatus

__all__ = [
    "APIResponse",
    "ErrorCode",
    "ResponseStatus",
    "Document",
    "ExtractionResult",
    "JobState",
    "ProviderJobStatus",
    "FormulaTolerance",
    "MarkingPoint",
    "MarkingRules",
    "MarkScheme",
    "MarkSchemeQuestion",
    "MetadataHints",
    "QuestionType",
    "SpellingTolerance",
    "StructuringResult",
    "ValidationWarning",
    "MarkingPointAward",
    "QuestionResult",
    "ResultsView",
    "SubmissionScore",
    "SubmissionSummary",
    "ProgressRecord",
    "StatusView",
    "SubmissionStatus",
]

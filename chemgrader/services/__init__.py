"""Service layer: providers, structuring, grading and the submission pipeline."""

from .grading_service import GradingService
from .llm_service import LLMService
from .markscheme_service import MarkSchemeService
from .ocr_service import ExtractionProvider, MathpixProvider, OCRService
from .pipeline_service import PipelineService

__all__ = [
    "GradingService",
    "LLMService",
    "MarkSchemeService",
    "ExtractionProvider",
    "MathpixProvider",
    "OCRService",
    "PipelineService",
]

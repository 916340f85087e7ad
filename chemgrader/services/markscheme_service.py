"""
Mark Scheme Service: turns raw mark-scheme text into a validated MarkScheme.

The language model is asked for a single JSON document. A malformed reply is
retried once and then raised. Totals are always recomputed from the returned
questions and cross-checked against caller hints; discrepancies and renamed
duplicate ids come back as warnings next to the scheme, never as errors.
"""

import re
from dataclasses import replace
from typing import List, Optional, Set, Tuple

from chemgrader.config.unified_config import config
from chemgrader.database import repository
from chemgrader.exceptions.application_errors import (
    ConfigurationError,
    MalformedProviderResponse,
    ValidationError,
)
from chemgrader.models.documents import Document
from chemgrader.models.markscheme import (
    FormulaTolerance,
    MarkingRules,
    MarkScheme,
    MetadataHints,
    SpellingTolerance,
    StructuringResult,
    ValidationWarning,
)
from chemgrader.services.llm_service import PROVIDER as LLM_PROVIDER
from utils.logger import logger
from utils.retry import retry

MARK_TOLERANCE = 5
COUNT_TOLERANCE = 3

STRUCTURING_SYSTEM_PROMPT = (
    "You are an expert at analyzing AQA A-Level Chemistry mark schemes. Extract structured "
    "marking information with maximum accuracy and completeness. Return valid JSON only."
)

UNASSIGNED_PAPER = "unassigned"
MAIN_QUESTION = re.compile(r"^\D*0*(\d+)")


def build_structuring_prompt(raw_text: str, hints: MetadataHints) -> str:
    guidance = ""
    if not hints.is_empty():
        guidance = f"""
METADATA GUIDANCE (from user):
- Expected total marks: {hints.expected_total_marks or 'Not specified'}
- Expected main questions: {hints.expected_questions or 'Not specified'}
- Expected subparts: {hints.expected_subparts or 'Not specified'}

Use this metadata to check that no questions or marks were missed.
"""
    return f"""This is a chemistry MARKSCHEME document containing answers and marking criteria only.
{guidance}
OCR TEXT:
{raw_text}

Return JSON with this exact structure:
{{
  "paperCode": "[extract from document]",
  "session": "[extract from document]",
  "questions": [
    {{
      "id": "01.1",
      "text": "Question reference and brief topic",
      "maxMarks": 1,
      "type": "multiple_choice|calculation|chemical_equation|short_answer|extended_response",
      "correctAnswer": "Model answer, option letter or numeric value if there is one",
      "correctEquation": "Model equation for chemical_equation questions",
      "balanceRequired": false,
      "stateSymbolsRequired": false,
      "acceptedAnswers": ["alternative answer"],
      "markingPoints": [
        {{
          "id": "M1",
          "marks": 1,
          "description": "Complete marking criteria from markscheme",
          "keywords": ["essential", "terms"],
          "acceptableAnswers": ["correct answer", "alternative answer"]
        }}
      ]
    }}
  ],
  "markingRules": {{
    "listPenalty": true,
    "allowECF": true,
    "spellingTolerance": "moderate",
    "chemicalFormulaTolerance": "moderate"
  }}
}}

EXTRACTION REQUIREMENTS:
- Extract ALL marking points, acceptable answers, and ECF rules
- Preserve exact mark allocations as shown in the markscheme
- One entry per question part, in paper order"""


def default_rules() -> MarkingRules:
    return MarkingRules(
        spelling_tolerance=SpellingTolerance(config.grading.spelling_tolerance),
        formula_tolerance=FormulaTolerance(config.grading.formula_tolerance),
    )


def count_main_questions(mark_scheme: MarkScheme) -> int:
    numbers = set()
    for question_id in mark_scheme.question_ids:
        match = MAIN_QUESTION.match(question_id)
        numbers.add(match.group(1) if match else question_id)
    return len(numbers)


def _unique_id(value: str, seen: Set[str]) -> str:
    candidate = value
    suffix = 2
    while candidate in seen:
        candidate = f"{value}_{suffix}"
        suffix += 1
    seen.add(candidate)
    return candidate


def deduplicate_ids(mark_scheme: MarkScheme) -> Tuple[MarkScheme, List[ValidationWarning]]:
    """Rename repeated question ids, and repeated marking-point ids within a question.

    The first occurrence keeps its id; later ones get a numeric suffix.
    """
    warnings: List[ValidationWarning] = []
    seen_questions: Set[str] = set()
    questions = []
    for question in mark_scheme.questions:
        question_id = _unique_id(question.question_id, seen_questions)
        if question_id != question.question_id:
            warnings.append(ValidationWarning(
                "duplicate_question_id",
                f"Question id {question.question_id} appears more than once; renamed to {question_id}",
            ))

        seen_points: Set[str] = set()
        points = []
        for point in question.marking_points:
            point_id = _unique_id(point.point_id, seen_points)
            if point_id != point.point_id:
                warnings.append(ValidationWarning(
                    "duplicate_marking_point_id",
                    f"Marking point {point.point_id} of question {question_id} appears more "
                    f"than once; renamed to {point_id}",
                ))
                point = replace(point, point_id=point_id)
            points.append(point)

        questions.append(replace(question, question_id=question_id, marking_points=tuple(points)))
    return replace(mark_scheme, questions=tuple(questions)), warnings


def validate_structure(mark_scheme: MarkScheme, hints: MetadataHints) -> List[ValidationWarning]:
    """Cross-check a structured scheme against hints and its own marking points."""
    warnings: List[ValidationWarning] = []

    if not mark_scheme.questions:
        warnings.append(ValidationWarning("no_questions", "No questions were found in the mark scheme"))

    total = mark_scheme.total_marks
    if hints.expected_total_marks is not None and abs(total - hints.expected_total_marks) > MARK_TOLERANCE:
        warnings.append(ValidationWarning(
            "total_marks_mismatch",
            f"Parsed marks ({total}) differ significantly from expected ({hints.expected_total_marks})",
            expected=hints.expected_total_marks, actual=total,
        ))

    main_questions = count_main_questions(mark_scheme)
    if hints.expected_questions is not None and abs(main_questions - hints.expected_questions) > COUNT_TOLERANCE:
        warnings.append(ValidationWarning(
            "question_count_mismatch",
            f"Parsed main questions ({main_questions}) differ from expected ({hints.expected_questions})",
            expected=hints.expected_questions, actual=main_questions,
        ))

    subparts = mark_scheme.question_count
    if hints.expected_subparts is not None and abs(subparts - hints.expected_subparts) > COUNT_TOLERANCE:
        warnings.append(ValidationWarning(
            "subpart_count_mismatch",
            f"Parsed questions ({subparts}) differ from expected subparts ({hints.expected_subparts})",
            expected=hints.expected_subparts, actual=subparts,
        ))

    for question in mark_scheme.questions:
        if question.marking_point_total > question.max_marks:
            warnings.append(ValidationWarning(
                "marking_points_exceed_max",
                f"Marking points of {question.question_id} sum to "
                f"{question.marking_point_total}, above its {question.max_marks} marks",
                expected=question.max_marks, actual=question.marking_point_total,
            ))

    return warnings


class MarkSchemeService:
    """Structures, validates and activates mark schemes."""

    def __init__(self, llm_service, extraction_service=None):
        self.llm_service = llm_service
        self.extraction_service = extraction_service

    def structure(self, raw_text: str, hints: Optional[MetadataHints] = None,
                  paper_id: str = UNASSIGNED_PAPER) -> StructuringResult:
        """
        Structure raw mark-scheme text.

        Raises:
            ValidationError: if ``raw_text`` is empty
            MalformedProviderResponse: if both structuring attempts were malformed
            ProviderError: for any other provider failure (not retried)
        """
        if not raw_text or not raw_text.strip():
            raise ValidationError("Mark scheme text is empty", field="text")
        if self.llm_service is None:
            raise ConfigurationError(
                "OpenAI API key not configured; mark scheme structuring is unavailable",
                config_key="OPENAI_API_KEY",
            )
        hints = hints or MetadataHints()

        payload = self._request_structure(raw_text, hints)
        mark_scheme, warnings = deduplicate_ids(MarkScheme.from_dict(paper_id, payload, default_rules()))
        warnings.extend(validate_structure(mark_scheme, hints))

        if warnings:
            logger.warning(
                f"Mark scheme validation warnings for paper {paper_id}: "
                + "; ".join(warning.message for warning in warnings)
            )
        else:
            logger.info(
                f"Mark scheme for paper {paper_id} structured: "
                f"{mark_scheme.question_count} questions, {mark_scheme.total_marks} marks"
            )
        return StructuringResult(mark_scheme=mark_scheme, warnings=warnings)

    @retry(max_attempts=2, delay=0, exceptions=(MalformedProviderResponse,))
    def _request_structure(self, raw_text: str, hints: MetadataHints):
        payload = self.llm_service.complete_json(
            STRUCTURING_SYSTEM_PROMPT,
            build_structuring_prompt(raw_text, hints),
            purpose="structuring",
            required_fields=("questions",),
            model=config.api.structuring_model,
        )
        questions = payload.get("questions")
        if not isinstance(questions, list) or not questions:
            raise MalformedProviderResponse(
                "OpenAI structuring reply has no question list", provider=LLM_PROVIDER
            )
        if not all(isinstance(question, dict) for question in questions):
            raise MalformedProviderResponse(
                "OpenAI structuring reply has question entries that are not objects",
                provider=LLM_PROVIDER,
            )
        return payload

    def structure_document(self, document: Document, hints: Optional[MetadataHints] = None,
                           paper_id: str = UNASSIGNED_PAPER) -> StructuringResult:
        """Extract a mark-scheme document, then structure its text."""
        if self.extraction_service is None:
            raise ConfigurationError(
                "Mathpix credentials not configured; document extraction is unavailable",
                config_key="MATHPIX_APP_KEY",
            )
        extraction = self.extraction_service.extract(document)
        return self.structure(extraction.text, hints, paper_id=paper_id)

    def activate(self, paper_id: str, result: StructuringResult):
        """Persist the scheme as the paper's new active version."""
        scheme = replace(result.mark_scheme, paper_id=paper_id)
        return repository.save_mark_scheme_version(
            paper_id=scheme.paper_id,
            content=scheme.to_dict(),
            total_marks=scheme.total_marks,
            question_count=scheme.question_count,
            warnings=[warning.to_dict() for warning in result.warnings],
        )

    def get_active(self, paper_id: str) -> Optional[MarkScheme]:
        record = repository.get_active_mark_scheme(paper_id)
        if record is None:
            return None
        return MarkScheme.from_dict(paper_id, record.content, default_rules())

"""
Unit tests for mark scheme models, lifecycle states and configuration
"""

import pytest

from chemgrader.config.unified_config import FileConfig, GradingConfig, PipelineConfig
from chemgrader.exceptions import ConfigurationError
from chemgrader.models.markscheme import (
    FormulaTolerance,
    MarkingRules,
    MarkScheme,
    MetadataHints,
    QuestionType,
    SpellingTolerance,
)
from chemgrader.models.status import (
    STAGE_PROGRESS,
    StatusView,
    SubmissionStatus,
    can_transition,
)


class TestMarkSchemeModels:

    def test_totals_are_derived_from_questions(self):
        scheme = MarkScheme.from_dict("p1", {
            "totalMarks": 40,
            "questions": [
                {"id": "1", "type": "short_answer", "maxMarks": 2},
                {"id": "2", "type": "calculation", "maxMarks": 3},
            ],
        })

        assert scheme.total_marks == 5
        assert scheme.question_count == 2
        assert scheme.question_ids == ["1", "2"]

    def test_unknown_type_becomes_short_answer(self):
        scheme = MarkScheme.from_dict("p1", {"questions": [{"id": "1", "type": "essay"}]})

        question = scheme.questions[0]
        assert question.question_type is QuestionType.SHORT_ANSWER
        assert question.max_marks == 1

    def test_non_dict_entries_are_skipped(self):
        scheme = MarkScheme.from_dict("p1", {"questions": ["junk", {"id": "1"}]})
        assert scheme.question_ids == ["1"]

    def test_accepted_answers_include_point_alternatives(self):
        scheme = MarkScheme.from_dict("p1", {"questions": [{
            "id": "1", "correctAnswer": "ethanol", "acceptedAnswers": ["ethyl alcohol"],
            "markingPoints": [{"id": "M1", "acceptableAnswers": ["C2H5OH", " "]}],
        }]})

        assert scheme.questions[0].all_accepted_answers == ["ethanol", "ethyl alcohol", "C2H5OH"]

    def test_rules_fall_back_to_defaults(self):
        defaults = MarkingRules(spelling_tolerance=SpellingTolerance.LENIENT)

        rules = MarkingRules.from_dict(
            {"listPenalty": False, "spellingTolerance": "sloppy", "chemicalFormulaTolerance": "STRICT"},
            defaults,
        )

        assert rules.list_penalty is False
        assert rules.spelling_tolerance is SpellingTolerance.LENIENT
        assert rules.formula_tolerance is FormulaTolerance.STRICT

    def test_round_trip_keeps_questions(self):
        scheme = MarkScheme.from_dict("p1", {"questions": [
            {"id": "1.3", "type": "chemical_equation", "correctEquation": "2H2 + O2 = 2H2O",
             "balanceRequired": True},
        ]})

        restored = MarkScheme.from_dict("p1", scheme.to_dict())

        assert restored == scheme

    def test_metadata_hints_from_form_strings(self):
        hints = MetadataHints.from_dict({"totalMarks": "80", "totalQuestions": "", "totalSubparts": "x"})

        assert hints.expected_total_marks == 80
        assert hints.expected_questions is None
        assert hints.expected_subparts is None
        assert MetadataHints.from_dict(None).is_empty()


class TestSubmissionStatus:

    def test_forward_transitions(self):
        assert can_transition(SubmissionStatus.UPLOADED, SubmissionStatus.PROCESSING)
        assert can_transition(SubmissionStatus.MARKING, SubmissionStatus.MARKING_COMPLETE)
        assert not can_transition(SubmissionStatus.UPLOADED, SubmissionStatus.MARKING)
        assert not can_transition(SubmissionStatus.OCR_COMPLETE, SubmissionStatus.PROCESSING)

    def test_failed_reachable_from_every_non_terminal_state(self):
        for status in SubmissionStatus:
            if status.is_terminal:
                assert not can_transition(status, SubmissionStatus.FAILED)
            else:
                assert can_transition(status, SubmissionStatus.FAILED)

    def test_every_state_has_progress(self):
        assert set(STAGE_PROGRESS) == set(SubmissionStatus)

    def test_status_view_exposes_errors_only_when_failed(self):
        running = StatusView("s1", SubmissionStatus.MARKING, "Marking answers", 60, "grading")
        failed = StatusView("s1", SubmissionStatus.FAILED, "Processing failed", 100, "failed",
                            error_message="OCR processing failed: boom", error_category="ocr")

        assert "error_message" not in running.to_dict()
        assert failed.to_dict()["error_message"] == "OCR processing failed: boom"


class TestConfiguration:

    def test_missing_tolerances_default_to_moderate(self):
        grading = GradingConfig()

        assert grading.spelling_tolerance == "moderate"
        assert grading.formula_tolerance == "moderate"

    def test_strict_mode_rejects_missing_tolerance(self):
        with pytest.raises(ConfigurationError):
            GradingConfig(strict=True)

    def test_unknown_tolerance_level_is_rejected(self):
        with pytest.raises(ConfigurationError):
            GradingConfig(spelling_tolerance="relaxed", formula_tolerance="moderate")

    def test_tolerance_values_are_normalized(self):
        grading = GradingConfig(spelling_tolerance=" Lenient ", formula_tolerance="STRICT")

        assert grading.spelling_tolerance == "lenient"
        assert grading.formula_tolerance == "strict"

    def test_pipeline_executor_must_be_known(self):
        with pytest.raises(ConfigurationError):
            PipelineConfig(executor="process")

    def test_file_config_size_limit(self):
        files = FileConfig(max_file_size_mb=2)

        assert files.max_content_length == 2 * 1024 * 1024
        with pytest.raises(ConfigurationError):
            FileConfig(max_file_size_mb=0)

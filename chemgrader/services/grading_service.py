"""
Grading Service: one QuestionResult per mark-scheme question.

Questions are dispatched to the deterministic policy for their type, or to
the language model when LLM marking is enabled. A failure on one question
never stops the others: it is logged as GradingDegraded and the question is
recorded with zero marks for manual review.
"""

from typing import Dict, List, Mapping, Optional

from chemgrader.config.unified_config import config
from chemgrader.exceptions.application_errors import GradingDegraded
from chemgrader.grading.marking_policies import CONFIDENCE, MarkingPolicy, default_policies
from chemgrader.models.markscheme import MarkingRules, MarkScheme, MarkSchemeQuestion
from chemgrader.models.results import MarkingPointAward, QuestionResult
from utils.logger import logger

NO_ANSWER_FEEDBACK = "No answer provided"
MANUAL_REVIEW_FEEDBACK = "Manual review required"


class GradingService:
    """Marks extracted answers against a mark scheme."""

    def __init__(self, llm_service=None, use_llm_marking: Optional[bool] = None,
                 policies: Optional[Dict] = None, numeric_tolerance: Optional[float] = None):
        """Initialize the grading service.

        Args:
            llm_service: LLMService used for fallback marking, if any
            use_llm_marking: Route every question to the LLM instead of the policies
            policies: Policy per QuestionType; defaults to the deterministic set
            numeric_tolerance: Absolute tolerance for calculation answers
        """
        self.llm_service = llm_service
        if use_llm_marking is None:
            use_llm_marking = config.grading.use_llm_marking
        self.use_llm_marking = use_llm_marking and llm_service is not None
        if use_llm_marking and llm_service is None:
            logger.warning("LLM marking requested but no LLM service configured; using policies")
        tolerance = config.grading.numeric_tolerance if numeric_tolerance is None else numeric_tolerance
        self.policies = policies or default_policies(tolerance)

    def grade_submission(self, mark_scheme: MarkScheme,
                         answers: Mapping[str, str]) -> List[QuestionResult]:
        """Grade every question of ``mark_scheme``, in scheme order."""
        results = []
        for question in mark_scheme.questions:
            answer = answers.get(question.question_id, "") or ""
            results.append(self.grade_question(question, answer, mark_scheme.rules))

        degraded = sum(1 for result in results if result.degraded)
        logger.info(
            f"Graded {len(results)} questions for paper {mark_scheme.paper_id}"
            + (f" ({degraded} need manual review)" if degraded else "")
        )
        return results

    def grade_question(self, question: MarkSchemeQuestion, answer: str,
                       rules: MarkingRules) -> QuestionResult:
        if not answer.strip():
            result = self._no_answer(question, answer)
        else:
            try:
                if self.use_llm_marking:
                    result = self._grade_with_llm(question, answer, rules)
                else:
                    result = self._policy_for(question).mark(question, answer, rules)
            except Exception as e:
                degraded = GradingDegraded(
                    f"Could not grade question {question.question_id}: {e}",
                    question_id=question.question_id,
                    original_error=e,
                )
                logger.warning(str(degraded))
                result = self._degraded(question, answer, e)

        logger.log_grading_operation(
            question.question_id, result.strategy, result.marks_awarded,
            result.max_marks, degraded=result.degraded,
        )
        return result

    def _policy_for(self, question: MarkSchemeQuestion) -> MarkingPolicy:
        policy = self.policies.get(question.question_type)
        if policy is None:
            raise ValueError(f"No marking policy for {question.question_type.value}")
        return policy

    def _grade_with_llm(self, question: MarkSchemeQuestion, answer: str,
                        rules: MarkingRules) -> QuestionResult:
        marking = self.llm_service.mark_answer(question, answer, rules)
        marks = int(round(marking["score"]))
        marks = max(0, min(marks, question.max_marks))

        points = {point.point_id: point for point in question.marking_points}
        awards = []
        for entry in marking["breakdown"]:
            point = points.get(entry["point"])
            awards.append(MarkingPointAward(
                point_id=entry["point"],
                awarded=entry["awarded"],
                marks=(point.marks if point else 1) if entry["awarded"] else 0,
                reason=entry["reason"],
            ))

        return QuestionResult(
            question_id=question.question_id,
            student_answer=answer,
            marks_awarded=marks,
            max_marks=question.max_marks,
            is_correct=marks == question.max_marks,
            confidence=CONFIDENCE["llm"],
            feedback=marking["feedback"] or f"Awarded {marks}/{question.max_marks}.",
            strategy="llm",
            marking_points=awards,
        )

    @staticmethod
    def _no_answer(question: MarkSchemeQuestion, answer: str) -> QuestionResult:
        return QuestionResult(
            question_id=question.question_id,
            student_answer=answer,
            marks_awarded=0,
            max_marks=question.max_marks,
            is_correct=False,
            confidence=CONFIDENCE["no_answer"],
            feedback=NO_ANSWER_FEEDBACK,
            strategy="no_answer",
            marking_points=[
                MarkingPointAward(point.point_id, False, 0, NO_ANSWER_FEEDBACK)
                for point in question.marking_points
            ],
        )

    @staticmethod
    def _degraded(question: MarkSchemeQuestion, answer: str, error: Exception) -> QuestionResult:
        return QuestionResult(
            question_id=question.question_id,
            student_answer=answer,
            marks_awarded=0,
            max_marks=question.max_marks,
            is_correct=False,
            confidence=CONFIDENCE["degraded"],
            feedback=f"{MANUAL_REVIEW_FEEDBACK}: {error}",
            strategy="degraded",
            degraded=True,
        )

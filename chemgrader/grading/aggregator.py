"""
Scoring and feedback aggregation for a complete result set.
"""

from typing import List, Sequence, Tuple

from chemgrader.models.results import QuestionResult, SubmissionScore, SubmissionSummary

GRADE_BOUNDARIES: Tuple[Tuple[float, str], ...] = (
    (80, "A*"),
    (70, "A"),
    (60, "B"),
    (50, "C"),
    (40, "D"),
    (30, "E"),
)
FAIL_GRADE = "U"
LOW_SCORE_FRACTION = 0.5


def calculate_grade(percentage: float) -> str:
    """Letter grade for a percentage using fixed boundaries."""
    for boundary, grade in GRADE_BOUNDARIES:
        if percentage >= boundary:
            return grade
    return FAIL_GRADE


class ScoreAggregator:
    """Turns per-question results into a score, a grade and advisory feedback."""

    def aggregate(self, results: Sequence[QuestionResult]) -> SubmissionScore:
        total_score = sum(result.marks_awarded for result in results)
        max_score = sum(result.max_marks for result in results)
        percentage = (total_score / max_score) * 100 if max_score > 0 else 0.0

        return SubmissionScore(
            total_score=total_score,
            max_score=max_score,
            percentage=round(percentage, 2),
            grade=calculate_grade(percentage),
            summary=self.summarize(results, percentage),
        )

    def summarize(self, results: Sequence[QuestionResult], percentage: float) -> SubmissionSummary:
        total_questions = len(results)
        correct_answers = sum(1 for result in results if result.is_correct)
        accuracy = correct_answers / total_questions if total_questions else 0.0
        low_scoring = [
            result for result in results
            if result.max_marks and result.marks_awarded / result.max_marks < LOW_SCORE_FRACTION
        ]
        low_fraction = len(low_scoring) / total_questions if total_questions else 0.0

        strengths: List[str] = []
        if percentage >= 80:
            strengths.append("Excellent overall performance")
        elif percentage >= 60:
            strengths.append("Good understanding of key concepts")
        if total_questions and accuracy >= 0.8:
            strengths.append("Strong accuracy across most question types")

        improvements: List[str] = []
        if percentage < 60:
            improvements.append("Review fundamental concepts and practice more questions")
        if low_fraction >= 0.5:
            improvements.append("Most questions scored below half marks; revisit the core topics")
        elif low_scoring:
            ids = ", ".join(result.question_id for result in low_scoring)
            improvements.append(f"Revisit questions scoring below half marks: {ids}")
        degraded = [result.question_id for result in results if result.degraded]
        if degraded:
            improvements.append(
                f"Questions {', '.join(degraded)} need manual review before the grade is final"
            )

        return SubmissionSummary(
            correct_answers=correct_answers,
            total_questions=total_questions,
            accuracy_rate=round(accuracy * 100, 2),
            strengths=strengths,
            improvements=improvements,
        )

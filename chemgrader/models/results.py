"""
Grading result models.

These are plain values handed from the grading engine to the pipeline, which
owns persistence.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class MarkingPointAward:
    """Whether one marking point was awarded, and why."""
    point_id: str
    awarded: bool
    marks: int = 0
    reason: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class QuestionResult:
    """Outcome of grading one question of one submission."""
    question_id: str
    student_answer: str
    marks_awarded: int
    max_marks: int
    is_correct: bool
    confidence: float
    feedback: str
    strategy: str
    marking_points: List[MarkingPointAward] = field(default_factory=list)
    degraded: bool = False

    def __post_init__(self):
        self.marks_awarded = max(0, min(int(self.marks_awarded), int(self.max_marks)))
        self.confidence = max(0.0, min(float(self.confidence), 1.0))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "question_id": self.question_id,
            "student_answer": self.student_answer,
            "marks_awarded": self.marks_awarded,
            "max_marks": self.max_marks,
            "is_correct": self.is_correct,
            "confidence": self.confidence,
            "feedback": self.feedback,
            "strategy": self.strategy,
            "degraded": self.degraded,
            "marking_points": [point.to_dict() for point in self.marking_points],
        }


@dataclass
class SubmissionSummary:
    correct_answers: int
    total_questions: int
    accuracy_rate: float
    strengths: List[str] = field(default_factory=list)
    improvements: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SubmissionScore:
    """Aggregated score for a full result set."""
    total_score: int
    max_score: int
    percentage: float
    grade: str
    summary: SubmissionSummary

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_score": self.total_score,
            "max_score": self.max_score,
            "percentage": self.percentage,
            "grade": self.grade,
            "summary": self.summary.to_dict(),
        }


@dataclass
class ResultsView:
    """Caller-facing results. ``available`` is False until marking completes."""
    submission_id: str
    status: str
    available: bool
    message: str = ""
    score: Optional[SubmissionScore] = None
    results: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "submission_id": self.submission_id,
            "status": self.status,
            "available": self.available,
            "message": self.message,
            "results": self.results,
        }
        if self.score is not None:
            data.update(self.score.to_dict())
        return data

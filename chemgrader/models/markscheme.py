"""
Structured mark scheme models.

A mark scheme is immutable once activated, so every class here is a frozen
dataclass. Collections are stored as tuples; ``from_dict`` accepts the
loosely-typed JSON produced by the structuring call or read back from the
database.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class QuestionType(str, Enum):
    """Question types with a dedicated marking policy."""
    MULTIPLE_CHOICE = "multiple_choice"
    CALCULATION = "calculation"
    CHEMICAL_EQUATION = "chemical_equation"
    SHORT_ANSWER = "short_answer"
    EXTENDED_RESPONSE = "extended_response"

    @classmethod
    def parse(cls, value: Any, default: "QuestionType" = None) -> "QuestionType":
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            if default is None:
                raise
            return default


class SpellingTolerance(str, Enum):
    STRICT = "strict"
    MODERATE = "moderate"
    LENIENT = "lenient"


class FormulaTolerance(str, Enum):
    STRICT = "strict"
    MODERATE = "moderate"


@dataclass(frozen=True)
class MarkingPoint:
    """An atomic, separately awardable criterion within a question."""
    point_id: str
    marks: int = 1
    criteria: str = ""
    keywords: Tuple[str, ...] = ()
    acceptable_answers: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any], index: int = 0) -> "MarkingPoint":
        marks = _positive_int(data.get("marks"), 1)
        return cls(
            point_id=str(data.get("id") or data.get("point_id") or f"M{index + 1}"),
            marks=marks,
            criteria=str(data.get("description") or data.get("criteria") or ""),
            keywords=_str_tuple(data.get("keywords")),
            acceptable_answers=_str_tuple(
                data.get("acceptableAnswers", data.get("acceptable_answers"))
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.point_id,
            "marks": self.marks,
            "description": self.criteria,
            "keywords": list(self.keywords),
            "acceptableAnswers": list(self.acceptable_answers),
        }


@dataclass(frozen=True)
class MarkSchemeQuestion:
    """One question of a mark scheme with its marking points."""
    question_id: str
    question_type: QuestionType
    max_marks: int
    marking_points: Tuple[MarkingPoint, ...] = ()
    text: str = ""
    accepted_answers: Tuple[str, ...] = ()
    correct_answer: Optional[str] = None
    correct_equation: Optional[str] = None
    balance_required: bool = False
    state_symbols_required: bool = False

    @property
    def marking_point_total(self) -> int:
        return sum(point.marks for point in self.marking_points)

    @property
    def all_accepted_answers(self) -> List[str]:
        """Question-level accepted answers followed by every point's alternatives."""
        answers = list(self.accepted_answers)
        if self.correct_answer:
            answers.insert(0, self.correct_answer)
        for point in self.marking_points:
            answers.extend(point.acceptable_answers)
        return [answer for answer in answers if answer and answer.strip()]

    @classmethod
    def from_dict(cls, data: Dict[str, Any], index: int = 0) -> "MarkSchemeQuestion":
        points = data.get("markingPoints", data.get("marking_points")) or []
        if not isinstance(points, list):
            points = []
        return cls(
            question_id=str(data.get("id") or data.get("question_id") or f"Q{index + 1}"),
            question_type=QuestionType.parse(
                data.get("type", data.get("question_type")), QuestionType.SHORT_ANSWER
            ),
            max_marks=_positive_int(data.get("maxMarks", data.get("max_marks")), 1),
            marking_points=tuple(
                MarkingPoint.from_dict(point, i)
                for i, point in enumerate(points)
                if isinstance(point, dict)
            ),
            text=str(data.get("text") or ""),
            accepted_answers=_str_tuple(
                data.get("acceptedAnswers", data.get("accepted_answers"))
            ),
            correct_answer=data.get("correctAnswer", data.get("correct_answer")) or None,
            correct_equation=data.get("correctEquation", data.get("correct_equation")) or None,
            balance_required=bool(
                data.get("balanceRequired", data.get("balance_required", False))
            ),
            state_symbols_required=bool(
                data.get("stateSymbolsRequired", data.get("state_symbols_required", False))
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.question_id,
            "type": self.question_type.value,
            "maxMarks": self.max_marks,
            "text": self.text,
            "markingPoints": [point.to_dict() for point in self.marking_points],
            "acceptedAnswers": list(self.accepted_answers),
            "correctAnswer": self.correct_answer,
            "correctEquation": self.correct_equation,
            "balanceRequired": self.balance_required,
            "stateSymbolsRequired": self.state_symbols_required,
        }


@dataclass(frozen=True)
class MarkingRules:
    """Global rules applied to every question of a mark scheme."""
    list_penalty: bool = True
    allow_ecf: bool = True
    spelling_tolerance: SpellingTolerance = SpellingTolerance.MODERATE
    formula_tolerance: FormulaTolerance = FormulaTolerance.MODERATE

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]],
                  defaults: Optional["MarkingRules"] = None) -> "MarkingRules":
        defaults = defaults or cls()
        data = data or {}
        return cls(
            list_penalty=bool(data.get("listPenalty", defaults.list_penalty)),
            allow_ecf=bool(
                data.get("allowECF", data.get("consequentialMarking", defaults.allow_ecf))
            ),
            spelling_tolerance=_enum_or(
                SpellingTolerance, data.get("spellingTolerance"), defaults.spelling_tolerance
            ),
            formula_tolerance=_enum_or(
                FormulaTolerance,
                data.get("chemicalFormulaTolerance", data.get("formulaTolerance")),
                defaults.formula_tolerance,
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "listPenalty": self.list_penalty,
            "allowECF": self.allow_ecf,
            "spellingTolerance": self.spelling_tolerance.value,
            "chemicalFormulaTolerance": self.formula_tolerance.value,
        }


@dataclass(frozen=True)
class MarkScheme:
    """The authoritative answer key for one paper.

    ``total_marks`` and ``question_count`` are always derived from the
    questions; totals reported by the structuring model are never trusted.
    """
    paper_id: str
    questions: Tuple[MarkSchemeQuestion, ...]
    rules: MarkingRules = field(default_factory=MarkingRules)
    paper_code: str = "Unknown"
    session: str = "Unknown"

    @property
    def total_marks(self) -> int:
        return sum(question.max_marks for question in self.questions)

    @property
    def question_count(self) -> int:
        return len(self.questions)

    @property
    def question_ids(self) -> List[str]:
        return [question.question_id for question in self.questions]

    @classmethod
    def from_dict(cls, paper_id: str, data: Dict[str, Any],
                  default_rules: Optional[MarkingRules] = None) -> "MarkScheme":
        raw_questions = data.get("questions") or []
        if not isinstance(raw_questions, list):
            raw_questions = []
        return cls(
            paper_id=paper_id,
            questions=tuple(
                MarkSchemeQuestion.from_dict(question, i)
                for i, question in enumerate(raw_questions)
                if isinstance(question, dict)
            ),
            rules=MarkingRules.from_dict(
                data.get("markingRules", data.get("rules")), default_rules
            ),
            paper_code=str(data.get("paperCode") or "Unknown"),
            session=str(data.get("session") or "Unknown"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "paperId": self.paper_id,
            "paperCode": self.paper_code,
            "session": self.session,
            "totalMarks": self.total_marks,
            "questionCount": self.question_count,
            "questions": [question.to_dict() for question in self.questions],
            "markingRules": self.rules.to_dict(),
        }


@dataclass(frozen=True)
class ValidationWarning:
    """A non-fatal structuring discrepancy, returned next to the mark scheme."""
    code: str
    message: str
    expected: Optional[int] = None
    actual: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "expected": self.expected,
            "actual": self.actual,
        }


@dataclass(frozen=True)
class MetadataHints:
    """Caller-supplied expectations used to cross-check a structured scheme."""
    expected_total_marks: Optional[int] = None
    expected_questions: Optional[int] = None
    expected_subparts: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "MetadataHints":
        data = data or {}
        return cls(
            expected_total_marks=_optional_int(data.get("totalMarks", data.get("expected_total_marks"))),
            expected_questions=_optional_int(data.get("totalQuestions", data.get("expected_questions"))),
            expected_subparts=_optional_int(data.get("totalSubparts", data.get("expected_subparts"))),
        )

    def is_empty(self) -> bool:
        return (
            self.expected_total_marks is None
            and self.expected_questions is None
            and self.expected_subparts is None
        )


@dataclass
class StructuringResult:
    mark_scheme: MarkScheme
    warnings: List[ValidationWarning] = field(default_factory=list)


def _positive_int(value: Any, default: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


def _optional_int(value: Any) -> Optional[int]:
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _str_tuple(value: Any) -> Tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        return ()
    return tuple(str(item) for item in value if item is not None and str(item).strip())


def _enum_or(enum_cls, value, default):
    if value is None:
        return default
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        return default

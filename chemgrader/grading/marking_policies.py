"""
Per-question-type marking policies.

Each policy turns (question, student answer, marking rules) into a
QuestionResult. Policies never see an empty answer; the grading service
short-circuits those before dispatch.
"""

import math
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional, Tuple

from chemgrader.grading import chemistry_utils as chem
from chemgrader.grading import text_matching as text
from chemgrader.models.markscheme import (
    FormulaTolerance,
    MarkingPoint,
    MarkingRules,
    MarkSchemeQuestion,
    QuestionType,
)
from chemgrader.models.results import MarkingPointAward, QuestionResult

CONFIDENCE = {
    "multiple_choice": 1.0,
    "calculation": 0.8,
    "chemical_equation": 0.85,
    "short_answer": 0.75,
    "extended_response": 0.65,
    "llm": 0.9,
    "no_answer": 1.0,
    "degraded": 0.0,
}

EXTENDED_KEYWORD_FRACTION = 0.6
EXTENDED_CORRECT_FRACTION = 0.8


class MarkingPolicy(ABC):
    """Base class for a deterministic marking strategy."""

    strategy: str = ""

    @property
    def confidence(self) -> float:
        return CONFIDENCE[self.strategy]

    @abstractmethod
    def mark(self, question: MarkSchemeQuestion, answer: str,
             rules: MarkingRules) -> QuestionResult:
        """Grade ``answer`` for ``question``."""

    def _result(self, question: MarkSchemeQuestion, answer: str, marks: int,
                awards: List[MarkingPointAward], feedback: str,
                is_correct: Optional[bool] = None) -> QuestionResult:
        marks = max(0, min(marks, question.max_marks))
        return QuestionResult(
            question_id=question.question_id,
            student_answer=answer,
            marks_awarded=marks,
            max_marks=question.max_marks,
            is_correct=(marks == question.max_marks) if is_correct is None else is_correct,
            confidence=self.confidence,
            feedback=feedback,
            strategy=self.strategy,
            marking_points=awards,
        )


def award_all(points: Iterable[MarkingPoint], awarded: bool, reason: str) -> List[MarkingPointAward]:
    return [
        MarkingPointAward(
            point_id=point.point_id,
            awarded=awarded,
            marks=point.marks if awarded else 0,
            reason=reason,
        )
        for point in points
    ]


class MultipleChoicePolicy(MarkingPolicy):
    """All-or-nothing exact option match."""

    strategy = "multiple_choice"

    @staticmethod
    def _clean(option: str) -> str:
        return option.strip().strip("()[].").strip().upper()

    def mark(self, question, answer, rules):
        options = question.all_accepted_answers
        if not options:
            raise ValueError(f"Question {question.question_id} has no correct option")
        correct = options[0]

        if self._clean(answer) == self._clean(correct):
            return self._result(
                question, answer, question.max_marks,
                award_all(question.marking_points, True, "Correct option selected"),
                "Correct.",
            )
        return self._result(
            question, answer, 0,
            award_all(question.marking_points, False, f"Selected {answer.strip()}"),
            f"Incorrect. The correct answer is {correct}.",
        )


class CalculationPolicy(MarkingPolicy):
    """Numeric answer within tolerance, with method marks for shown working."""

    strategy = "calculation"

    def __init__(self, tolerance: float = text.NUMERIC_TOLERANCE):
        self.tolerance = tolerance

    def mark(self, question, answer, rules):
        expected_values = [
            value for value in (
                text.extract_numeric_value(text.normalize_units(candidate))
                for candidate in question.all_accepted_answers
            )
            if value is not None
        ]
        if not expected_values:
            raise ValueError(f"Question {question.question_id} has no numeric accepted answer")

        student_value = text.extract_numeric_value(text.normalize_units(answer))
        if any(text.numeric_match(student_value, expected, self.tolerance) for expected in expected_values):
            return self._result(
                question, answer, question.max_marks,
                award_all(question.marking_points, True, "Correct final answer"),
                f"Correct answer: {student_value:g}.",
            )

        expected_text = f"{expected_values[0]:g}"
        if text.has_working_shown(answer):
            partial = math.floor(question.max_marks * 0.5)
            awards = award_all(question.marking_points, False, "Final answer incorrect")
            if partial and awards:
                first = question.marking_points[0]
                awards[0] = MarkingPointAward(
                    point_id=first.point_id, awarded=True,
                    marks=min(first.marks, partial), reason="Method shown",
                )
            return self._result(
                question, answer, partial, awards,
                f"Method shown but final answer incorrect. Expected {expected_text}.",
            )

        return self._result(
            question, answer, 0,
            award_all(question.marking_points, False, "Incorrect final answer, no working"),
            f"Incorrect answer. Expected {expected_text}.",
        )


class ChemicalEquationPolicy(MarkingPolicy):
    """Whole-equation match, else independent formula/balance/state-symbol marks."""

    strategy = "chemical_equation"

    def mark(self, question, answer, rules):
        correct = question.correct_equation or next(iter(question.all_accepted_answers), None)
        if not correct:
            raise ValueError(f"Question {question.question_id} has no model equation")
        case_sensitive = rules.formula_tolerance == FormulaTolerance.STRICT

        parsed = chem.parse_equation(answer)
        if parsed is None:
            return self._result(
                question, answer, 0,
                award_all(question.marking_points, False, "No equation found"),
                f"Could not read a chemical equation in the answer. Expected: {correct}",
            )

        # Equality is compound identity per side; coefficients do not count.
        if chem.compare_equations(answer, correct, case_sensitive=case_sensitive):
            balanced = question.balance_required and parsed.is_balanced
            return self._result(
                question, answer, question.max_marks,
                award_all(question.marking_points, True, "Correct chemical equation"),
                "Correct balanced equation." if balanced else "Correct equation.",
            )

        formulas_ok = _formulas_match(parsed, correct, case_sensitive)
        criteria = self._criteria(question, parsed, formulas_ok)
        awards, marks = self._allocate(question, criteria)

        issues = [issue for _, met, issue in criteria if not met]
        if formulas_ok:
            issues.insert(0, "reactants and products are on the wrong sides")
        if marks:
            feedback = f"Partially correct, but {' and '.join(issues)}."
        else:
            feedback = f"Incorrect equation. Expected: {correct}"
        return self._result(question, answer, marks, awards, feedback, is_correct=False)

    @staticmethod
    def _criteria(question: MarkSchemeQuestion, parsed: chem.ParsedEquation,
                  formulas_ok: bool) -> List[Tuple[str, bool, str]]:
        """Independently assessable sub-points, in marking-point order."""
        criteria = [("Correct chemical formulas", formulas_ok, "formulas are incorrect")]
        if question.balance_required:
            criteria.append(("Equation is balanced", parsed.is_balanced, "it is not balanced"))
        if question.state_symbols_required:
            criteria.append(("State symbols included", parsed.has_state_symbols,
                             "state symbols are missing"))
        return criteria

    @staticmethod
    def _allocate(question: MarkSchemeQuestion,
                  criteria: List[Tuple[str, bool, str]]) -> Tuple[List[MarkingPointAward], int]:
        points = list(question.marking_points) or [
            MarkingPoint(point_id=f"M{i + 1}") for i in range(len(criteria))
        ]
        awards: List[MarkingPointAward] = []
        marks = 0
        for index, point in enumerate(points):
            if index >= len(criteria):
                awards.append(MarkingPointAward(point.point_id, False, 0, "Not assessed"))
                continue
            reason, met, issue = criteria[index]
            if met:
                awards.append(MarkingPointAward(point.point_id, True, point.marks, reason))
                marks += point.marks
            else:
                awards.append(MarkingPointAward(point.point_id, False, 0, issue))
        return awards, marks


def _formulas_match(parsed: chem.ParsedEquation, correct: str, case_sensitive: bool) -> bool:
    expected = chem.parse_equation(correct)
    if expected is None:
        return False

    def forms(equation: chem.ParsedEquation) -> List[str]:
        values = [chem.canonical_compound(c) for c in equation.reactants + equation.products]
        return sorted(values if case_sensitive else [v.lower() for v in values])

    return forms(parsed) == forms(expected)


class ShortAnswerPolicy(MarkingPolicy):
    """Fuzzy match against accepted answers, then keyword credit per marking point."""

    strategy = "short_answer"

    def mark(self, question, answer, rules):
        threshold = text.tolerance_threshold(rules.spelling_tolerance.value)
        accepted = question.all_accepted_answers

        if accepted and text.matches_any(answer, accepted, threshold):
            return self._result(
                question, answer, question.max_marks,
                award_all(question.marking_points, True, "Matches an accepted answer"),
                "Correct answer.",
            )

        items = text.split_list_answer(answer)
        if accepted and len(items) > 1:
            matched = [item for item in items if text.matches_any(item, accepted, threshold)]
            if matched and rules.list_penalty and len(matched) < len(items):
                return self._result(
                    question, answer, 0,
                    award_all(question.marking_points, False, "List penalty"),
                    "List penalty applied: a correct answer was given alongside an incorrect one.",
                )
            if matched:
                return self._result(
                    question, answer, question.max_marks,
                    award_all(question.marking_points, True, "Matches an accepted answer"),
                    "Correct answer.",
                )

        awards: List[MarkingPointAward] = []
        marks = 0
        for point in question.marking_points:
            found = text.keywords_found(answer, point.keywords)
            if found:
                awards.append(MarkingPointAward(point.point_id, True, point.marks,
                                                f"Mentions {', '.join(found)}"))
                marks += point.marks
            else:
                awards.append(MarkingPointAward(point.point_id, False, 0, "Key terms missing"))

        if marks >= question.max_marks:
            feedback = "Correct answer."
        elif marks:
            credited = [award.point_id for award in awards if award.awarded]
            feedback = f"Partially correct: credit for {', '.join(credited)}."
        else:
            expected = accepted[0] if accepted else "the key points in the mark scheme"
            feedback = f"Answer does not match the mark scheme. Expected: {expected}"
        return self._result(question, answer, marks, awards, feedback)


class ExtendedResponsePolicy(MarkingPolicy):
    """Award a marking point when at least 60% of its keywords appear."""

    strategy = "extended_response"

    def mark(self, question, answer, rules):
        awards: List[MarkingPointAward] = []
        marks = 0
        missing: List[str] = []
        for point in question.marking_points:
            if not point.keywords:
                awards.append(MarkingPointAward(point.point_id, False, 0, "No keywords to assess"))
                continue
            found = text.keywords_found(answer, point.keywords)
            needed = math.ceil(len(point.keywords) * EXTENDED_KEYWORD_FRACTION)
            if len(found) >= needed:
                awards.append(MarkingPointAward(
                    point.point_id, True, point.marks,
                    f"Covers {len(found)}/{len(point.keywords)} key terms",
                ))
                marks += point.marks
            else:
                awards.append(MarkingPointAward(
                    point.point_id, False, 0,
                    f"Only {len(found)}/{len(point.keywords)} key terms",
                ))
                missing.append(point.criteria or point.point_id)

        marks = min(marks, question.max_marks)
        is_correct = marks >= EXTENDED_CORRECT_FRACTION * question.max_marks
        ratio = marks / question.max_marks
        if ratio >= EXTENDED_CORRECT_FRACTION:
            feedback = "Excellent answer covering the key marking points."
        elif ratio >= 0.5:
            feedback = "Good answer, but some key points are missing."
        else:
            feedback = "Answer needs more detail."
        if missing:
            feedback += f" Missing: {'; '.join(missing)}."
        return self._result(question, answer, marks, awards, feedback, is_correct=is_correct)


def default_policies(numeric_tolerance: float = text.NUMERIC_TOLERANCE) -> Dict[QuestionType, MarkingPolicy]:
    return {
        QuestionType.MULTIPLE_CHOICE: MultipleChoicePolicy(),
        QuestionType.CALCULATION: CalculationPolicy(numeric_tolerance),
        QuestionType.CHEMICAL_EQUATION: ChemicalEquationPolicy(),
        QuestionType.SHORT_ANSWER: ShortAnswerPolicy(),
        QuestionType.EXTENDED_RESPONSE: ExtendedResponsePolicy(),
    }

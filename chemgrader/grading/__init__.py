"""Deterministic chemistry marking: evaluation utilities, policies and scoring."""

from .aggregator import ScoreAggregator, calculate_grade
from .answer_segmenter import AnswerSegmenter
from .chemistry_utils import (
    FormulaError,
    compare_equations,
    compare_formulas,
    is_balanced,
    normalize_formula,
    parse_equation,
)
from .marking_policies import MarkingPolicy, default_policies
from .text_matching import extract_numeric_value, fuzzy_compare

__all__ = [
    "ScoreAggregator",
    "calculate_grade",
    "AnswerSegmenter",
    "FormulaError",
    "compare_equations",
    "compare_formulas",
    "is_balanced",
    "normalize_formula",
    "parse_equation",
    "MarkingPolicy",
    "default_policies",
    "extract_numeric_value",
    "fuzzy_compare",
]

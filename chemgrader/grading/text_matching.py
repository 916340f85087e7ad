"""
Text matching helpers used by the marking policies.

Fuzzy comparison with Levenshtein similarity, keyword lookup, numeric
extraction and unit normalization.
"""

import re
from typing import Iterable, List, Optional

TOLERANCE_THRESHOLDS = {
    "strict": 0.95,
    "moderate": 0.8,
    "lenient": 0.7,
}
DEFAULT_THRESHOLD = TOLERANCE_THRESHOLDS["moderate"]
NUMERIC_TOLERANCE = 0.01

NUMBER_PATTERN = re.compile(r"-?\d+(?:\.\d+)?|-?\.\d+")
WORKING_PATTERN = re.compile(r"=|\d\s*[-+*/×÷xX]\s*\(?\s*\d")
NON_ALNUM = re.compile(r"[^a-z0-9]")
LIST_SPLIT = re.compile(r"\s*(?:,|;|/|\n|\band\b|\bor\b)\s*", re.IGNORECASE)

UNIT_REPLACEMENTS = (
    (re.compile(r"g\s*mol\s*(?:\^?-1|⁻¹)", re.IGNORECASE), "g/mol"),
    (re.compile(r"g\s*/\s*mol", re.IGNORECASE), "g/mol"),
    (re.compile(r"mol\s*dm\s*(?:\^?-3|⁻³)", re.IGNORECASE), "mol/dm³"),
    (re.compile(r"mol\s*/\s*dm\s*(?:\^?3|³)", re.IGNORECASE), "mol/dm³"),
    (re.compile(r"kj\s*mol\s*(?:\^?-1|⁻¹)", re.IGNORECASE), "kJ/mol"),
    (re.compile(r"kj\s*/\s*mol", re.IGNORECASE), "kJ/mol"),
)


def tolerance_threshold(level: Optional[str]) -> float:
    """Map a spelling tolerance level to a similarity threshold."""
    if level is None:
        return DEFAULT_THRESHOLD
    return TOLERANCE_THRESHOLDS.get(str(level).lower(), DEFAULT_THRESHOLD)


def levenshtein_distance(first: str, second: str) -> int:
    """Edit distance with unit cost insertions, deletions and substitutions."""
    if first == second:
        return 0
    if len(first) < len(second):
        first, second = second, first
    if not second:
        return len(first)

    previous = list(range(len(second) + 1))
    for i, char_a in enumerate(first, start=1):
        current = [i]
        for j, char_b in enumerate(second, start=1):
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (char_a != char_b),
            ))
        previous = current
    return previous[-1]


def clean_text(text: str) -> str:
    return NON_ALNUM.sub("", (text or "").lower())


def similarity(first: str, second: str) -> float:
    """Normalized similarity ``(longer - distance) / longer`` on cleaned text."""
    a, b = clean_text(first), clean_text(second)
    longer = max(len(a), len(b))
    if longer == 0:
        return 1.0
    return (longer - levenshtein_distance(a, b)) / longer


def fuzzy_compare(student: str, expected: str, threshold: float = DEFAULT_THRESHOLD) -> bool:
    """True when the cleaned strings are identical or similar enough."""
    a, b = clean_text(student), clean_text(expected)
    if a == b:
        return True
    return similarity(a, b) >= threshold


def matches_any(answer: str, candidates: Iterable[str], threshold: float) -> Optional[str]:
    """Return the first candidate that fuzzily matches ``answer``."""
    for candidate in candidates:
        if fuzzy_compare(answer, candidate, threshold):
            return candidate
    return None


def contains_keyword(answer: str, keyword: str) -> bool:
    keyword = (keyword or "").strip().lower()
    return bool(keyword) and keyword in (answer or "").lower()


def keywords_found(answer: str, keywords: Iterable[str]) -> List[str]:
    return [keyword for keyword in keywords if contains_keyword(answer, keyword)]


def split_list_answer(answer: str) -> List[str]:
    """Split a list-style answer ("A, B and C") into its items."""
    return [item.strip() for item in LIST_SPLIT.split(answer or "") if item and item.strip()]


def extract_numeric_value(text: str) -> Optional[float]:
    """First decimal-capable number in ``text``, or None."""
    match = NUMBER_PATTERN.search((text or "").replace(",", ""))
    if not match:
        return None
    try:
        return float(match.group(0))
    except ValueError:
        return None


def numeric_match(student: Optional[float], expected: Optional[float],
                  tolerance: float = NUMERIC_TOLERANCE) -> bool:
    if student is None or expected is None:
        return False
    return abs(student - expected) <= tolerance


def has_working_shown(answer: str) -> bool:
    """True when the answer contains an arithmetic step between numbers."""
    return bool(WORKING_PATTERN.search(answer or ""))


def normalize_units(text: str) -> str:
    """Rewrite common chemistry unit spellings to one form."""
    result = text or ""
    for pattern, replacement in UNIT_REPLACEMENTS:
        result = pattern.sub(replacement, result)
    return result

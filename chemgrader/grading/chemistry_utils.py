"""
Chemistry evaluation utilities.

Formula normalization, equation parsing, mass-balance checking and formula
or equation equality. Everything here is pure and deterministic.
"""

import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

PERIODIC_TABLE = frozenset({
    "H", "He", "Li", "Be", "B", "C", "N", "O", "F", "Ne",
    "Na", "Mg", "Al", "Si", "P", "S", "Cl", "Ar", "K", "Ca",
    "Sc", "Ti", "V", "Cr", "Mn", "Fe", "Co", "Ni", "Cu", "Zn",
    "Ga", "Ge", "As", "Se", "Br", "Kr", "Rb", "Sr", "Y", "Zr",
    "Nb", "Mo", "Tc", "Ru", "Rh", "Pd", "Ag", "Cd", "In", "Sn",
    "Sb", "Te", "I", "Xe", "Cs", "Ba", "La", "Ce", "Pr", "Nd",
    "Pm", "Sm", "Eu", "Gd", "Tb", "Dy", "Ho", "Er", "Tm", "Yb",
    "Lu", "Hf", "Ta", "W", "Re", "Os", "Ir", "Pt", "Au", "Hg",
    "Tl", "Pb", "Bi", "Po", "At", "Rn", "Fr", "Ra", "Ac", "Th",
    "Pa", "U", "Np", "Pu", "Am", "Cm", "Bk", "Cf", "Es", "Fm",
    "Md", "No", "Lr", "Rf", "Db", "Sg", "Bh", "Hs", "Mt", "Ds",
    "Rg", "Cn", "Nh", "Fl", "Mc", "Lv", "Ts", "Og",
})

ELEMENT_PATTERN = re.compile(r"([A-Z][a-z]?)(\d*)")
STRIP_PATTERN = re.compile(r"[\s()\[\]{}]")
STATE_SYMBOL_PATTERN = re.compile(r"\((?:s|l|g|aq)\)", re.IGNORECASE)
COEFFICIENT_PATTERN = re.compile(r"^(\d+)\s*(.*)$")
EQUATION_SEPARATOR = re.compile(r"<=>|<->|->|=>|→|⟶|⇌|=")
GROUP_TOKEN = re.compile(r"([A-Z][a-z]?)|([(\[])|([)\]])|(\d+)")
CANDIDATE_FORMULA = re.compile(r"(?<![A-Za-z])(?:[A-Z][a-z]?\d*|\([A-Za-z0-9]+\)\d*){1,}(?![a-z])")

SUBSCRIPT_DIGITS = str.maketrans("₀₁₂₃₄₅₆₇₈₉", "0123456789")
SUPERSCRIPT_CHARGES = str.maketrans("⁰¹²³⁴⁵⁶⁷⁸⁹⁺⁻", "0123456789+-")


class FormulaError(ValueError):
    """Raised when a formula cannot be normalized."""

    def __init__(self, formula: str, errors: List[str]):
        super().__init__(f"Invalid formula '{formula}': {'; '.join(errors)}")
        self.formula = formula
        self.errors = errors


@dataclass
class FormulaValidation:
    formula: str
    is_valid: bool
    standard_form: Optional[str] = None
    elements: List[Tuple[str, int]] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


@dataclass
class ParsedEquation:
    """An equation split into compounds with their stoichiometric coefficients."""
    reactants: List[str]
    products: List[str]
    reactant_coefficients: List[int]
    product_coefficients: List[int]
    has_state_symbols: bool = False

    @property
    def is_balanced(self) -> bool:
        return check_balance(self)


def to_ascii(text: str) -> str:
    """Replace Unicode subscript and superscript digits with ASCII ones."""
    return text.translate(SUBSCRIPT_DIGITS).translate(SUPERSCRIPT_CHARGES)


def _tokenize(formula: str) -> Tuple[List[Tuple[str, int]], List[str]]:
    cleaned = STRIP_PATTERN.sub("", to_ascii(formula))
    tokens: List[Tuple[str, int]] = []
    errors: List[str] = []

    if not cleaned:
        return tokens, ["Empty formula"]

    position = 0
    for match in ELEMENT_PATTERN.finditer(cleaned):
        if match.start() > position:
            errors.append(
                f"Unexpected characters '{cleaned[position:match.start()]}' at position {position}"
            )
        symbol, digits = match.groups()
        if symbol not in PERIODIC_TABLE:
            errors.append(f"Unknown element: {symbol}")
        tokens.append((symbol, int(digits) if digits else 1))
        position = match.end()

    if position < len(cleaned):
        errors.append(
            f"Unexpected characters '{cleaned[position:]}' at position {position}"
        )
    return tokens, errors


def validate_formula(formula: str) -> FormulaValidation:
    """Validate a formula without raising."""
    tokens, errors = _tokenize(formula)
    if errors:
        return FormulaValidation(formula=formula, is_valid=False, elements=tokens, errors=errors)
    return FormulaValidation(
        formula=formula,
        is_valid=True,
        standard_form=_render(tokens),
        elements=tokens,
    )


def normalize_formula(formula: str) -> str:
    """Return the canonical form of ``formula``.

    Whitespace and brackets are removed, then the formula is rewritten as
    element symbols followed by their counts (a count of 1 is omitted).
    ``normalize_formula(normalize_formula(f)) == normalize_formula(f)``.

    Raises:
        FormulaError: listing unknown elements and leftover characters
    """
    tokens, errors = _tokenize(formula)
    if errors:
        raise FormulaError(formula, errors)
    return _render(tokens)


def _render(tokens: List[Tuple[str, int]]) -> str:
    return "".join(symbol if count == 1 else f"{symbol}{count}" for symbol, count in tokens)


def element_counts(compound: str) -> Dict[str, int]:
    """Count atoms in a compound, expanding bracketed groups and hydrates.

    ``element_counts("Ca(OH)2")`` gives ``{"Ca": 1, "O": 2, "H": 2}``.

    Raises:
        FormulaError: for unknown symbols, stray characters or unbalanced brackets
    """
    text = STATE_SYMBOL_PATTERN.sub("", to_ascii(compound)).replace(" ", "")
    total: Counter = Counter()
    for part in re.split(r"[·•.*]", text):
        if not part:
            continue
        multiplier = 1
        match = COEFFICIENT_PATTERN.match(part)
        if match and match.group(2):
            multiplier, part = int(match.group(1)), match.group(2)
        for symbol, count in _expand_groups(compound, part).items():
            total[symbol] += count * multiplier
    if not total:
        raise FormulaError(compound, ["Empty formula"])
    return dict(total)


def _expand_groups(original: str, text: str) -> Counter:
    stack: List[Counter] = [Counter()]
    last: Optional[Counter] = None
    position = 0
    for match in GROUP_TOKEN.finditer(text):
        if match.start() != position:
            raise FormulaError(original, [f"Unexpected characters '{text[position:match.start()]}'"])
        position = match.end()
        symbol, opening, closing, digits = match.groups()
        if symbol:
            if symbol not in PERIODIC_TABLE:
                raise FormulaError(original, [f"Unknown element: {symbol}"])
            last = Counter({symbol: 1})
            stack[-1].update(last)
        elif opening:
            stack.append(Counter())
            last = None
        elif closing:
            if len(stack) == 1:
                raise FormulaError(original, ["Unbalanced brackets"])
            last = stack.pop()
            stack[-1].update(last)
        elif digits:
            if last is None:
                raise FormulaError(original, [f"Misplaced count '{digits}'"])
            # The token already counted once; add the remaining multiples.
            for symbol_name, count in last.items():
                stack[-1][symbol_name] += count * (int(digits) - 1)
            last = None
    if position != len(text):
        raise FormulaError(original, [f"Unexpected characters '{text[position:]}'"])
    if len(stack) != 1:
        raise FormulaError(original, ["Unbalanced brackets"])
    return stack[0]


def has_state_symbols(text: str) -> bool:
    return bool(STATE_SYMBOL_PATTERN.search(text or ""))


def _split_side(side: str) -> Tuple[List[str], List[int]]:
    compounds: List[str] = []
    coefficients: List[int] = []
    for raw in side.split("+"):
        compound = raw.strip()
        if not compound:
            continue
        coefficient = 1
        match = COEFFICIENT_PATTERN.match(compound)
        if match and match.group(2):
            coefficient = int(match.group(1)) or 1
            compound = match.group(2).strip()
        compound = STATE_SYMBOL_PATTERN.sub("", compound).replace(" ", "")
        if compound:
            compounds.append(compound)
            coefficients.append(coefficient)
    return compounds, coefficients


def parse_equation(equation: str) -> Optional[ParsedEquation]:
    """Parse ``equation`` into reactants and products.

    Accepts ``=`` or an arrow as the separator. Returns None when the text
    is not a two-sided equation or either side has no compounds.
    """
    if not equation:
        return None
    text = to_ascii(equation).strip()
    sides = EQUATION_SEPARATOR.split(text)
    if len(sides) != 2:
        return None

    reactants, reactant_coefficients = _split_side(sides[0])
    products, product_coefficients = _split_side(sides[1])
    if not reactants or not products:
        return None

    return ParsedEquation(
        reactants=reactants,
        products=products,
        reactant_coefficients=reactant_coefficients,
        product_coefficients=product_coefficients,
        has_state_symbols=has_state_symbols(text),
    )


def _side_totals(compounds: List[str], coefficients: List[int]) -> Counter:
    totals: Counter = Counter()
    for compound, coefficient in zip(compounds, coefficients):
        for symbol, count in element_counts(compound).items():
            totals[symbol] += count * (coefficient or 1)
    return totals


def check_balance(parsed: ParsedEquation) -> bool:
    """True iff every element appears equally often on both sides."""
    try:
        left = _side_totals(parsed.reactants, parsed.reactant_coefficients)
        right = _side_totals(parsed.products, parsed.product_coefficients)
    except FormulaError:
        return False
    return left == right


def is_balanced(equation: str) -> bool:
    parsed = parse_equation(equation)
    return parsed is not None and check_balance(parsed)


def canonical_compound(compound: str) -> str:
    """Canonical form used for equality; unparseable text is kept as written."""
    stripped = STATE_SYMBOL_PATTERN.sub("", compound)
    try:
        return normalize_formula(stripped)
    except FormulaError:
        return STRIP_PATTERN.sub("", to_ascii(stripped))


def compare_formulas(first: str, second: str, case_sensitive: bool = False) -> bool:
    """Formulas are equal when their canonical forms match."""
    a, b = canonical_compound(first or ""), canonical_compound(second or "")
    if not a or not b:
        return False
    if not case_sensitive:
        a, b = a.lower(), b.lower()
    return a == b


def _canonical_side(compounds: List[str], case_sensitive: bool) -> List[str]:
    forms = [canonical_compound(compound) for compound in compounds]
    if not case_sensitive:
        forms = [form.lower() for form in forms]
    return sorted(forms)


def compare_equations(first: str, second: str, case_sensitive: bool = False) -> bool:
    """Equations are equal when they contain the same compounds on each side.

    Order, spacing and coefficients are ignored.
    """
    a, b = parse_equation(first), parse_equation(second)
    if a is None or b is None:
        return False
    return (
        _canonical_side(a.reactants, case_sensitive) == _canonical_side(b.reactants, case_sensitive)
        and _canonical_side(a.products, case_sensitive) == _canonical_side(b.products, case_sensitive)
    )


def find_formulas(text: str) -> List[str]:
    """Pick out substrings of free text that look like valid formulas.

    Single bare elements without a count (``C``, ``I``) are skipped since
    they are indistinguishable from ordinary capital letters.
    """
    found: List[str] = []
    for match in CANDIDATE_FORMULA.finditer(to_ascii(text or "")):
        candidate = match.group(0)
        result = validate_formula(candidate)
        if not result.is_valid:
            continue
        if len(result.elements) == 1 and result.elements[0][1] == 1:
            continue
        if candidate not in found:
            found.append(candidate)
    return found

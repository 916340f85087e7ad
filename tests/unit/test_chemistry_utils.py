"""
Unit tests for formula normalization and equation handling
"""

import pytest

from chemgrader.grading import chemistry_utils as chem
from chemgrader.grading.chemistry_utils import FormulaError


class TestNormalizeFormula:
    """Test canonical formula rendering"""

    def test_removes_whitespace_and_subscripts(self):
        assert chem.normalize_formula("H2 O") == "H2O"
        assert chem.normalize_formula("C₆H₁₂O₆") == "C6H12O6"

    def test_is_idempotent(self):
        for formula in ["Ca(OH)2", "H2SO4", "NaCl", "C6H12O6", "Fe2(SO4)3"]:
            once = chem.normalize_formula(formula)
            assert chem.normalize_formula(once) == once

    def test_unknown_element_raises(self):
        with pytest.raises(FormulaError) as exc_info:
            chem.normalize_formula("Xx2")
        assert "Unknown element: Xx" in exc_info.value.errors

    def test_leftover_characters_raise(self):
        with pytest.raises(FormulaError):
            chem.normalize_formula("H2O!")

    def test_validate_formula_does_not_raise(self):
        valid = chem.validate_formula("NaCl")
        assert valid.is_valid
        assert valid.standard_form == "NaCl"

        invalid = chem.validate_formula("Qz")
        assert not invalid.is_valid
        assert invalid.errors


class TestElementCounts:
    """Test atom counting"""

    def test_expands_bracketed_groups(self):
        assert chem.element_counts("Ca(OH)2") == {"Ca": 1, "O": 2, "H": 2}

    def test_expands_hydrates(self):
        assert chem.element_counts("CuSO4·5H2O") == {"Cu": 1, "S": 1, "O": 9, "H": 10}

    def test_ignores_state_symbols(self):
        assert chem.element_counts("H2O(l)") == {"H": 2, "O": 1}

    def test_unbalanced_brackets_raise(self):
        with pytest.raises(FormulaError):
            chem.element_counts("Ca(OH2")


class TestEquations:
    """Test equation parsing, balance and comparison"""

    def test_parse_equation_with_arrow(self):
        parsed = chem.parse_equation("CH4 + 2O2 → CO2 + 2H2O")

        assert parsed.reactants == ["CH4", "O2"]
        assert parsed.reactant_coefficients == [1, 2]
        assert parsed.products == ["CO2", "H2O"]
        assert parsed.product_coefficients == [1, 2]
        assert parsed.is_balanced

    def test_parse_equation_strips_state_symbols(self):
        parsed = chem.parse_equation("2H2(g) + O2(g) → 2H2O(l)")

        assert parsed.has_state_symbols
        assert parsed.reactants == ["H2", "O2"]

    def test_one_sided_text_is_not_an_equation(self):
        assert chem.parse_equation("H2 + O2") is None
        assert chem.parse_equation("= H2O") is None
        assert chem.parse_equation("") is None

    def test_is_balanced(self):
        assert chem.is_balanced("2H2 + O2 = 2H2O")
        assert not chem.is_balanced("H2 + O2 = H2O")
        assert not chem.is_balanced("not an equation")

    def test_compare_equations_ignores_order_and_coefficients(self):
        assert chem.compare_equations("2H2 + O2 = 2H2O", "O2 + 2H2 → 2H2O")
        assert chem.compare_equations("H2 + O2 = H2O", "2H2 + O2 = 2H2O")

    def test_compare_equations_respects_sides(self):
        assert not chem.compare_equations("2H2O = 2H2 + O2", "2H2 + O2 = 2H2O")


class TestCompareFormulas:
    """Test formula equality"""

    def test_case_insensitive_by_default(self):
        assert chem.compare_formulas("h2o", "H2O")

    def test_case_sensitive_when_strict(self):
        assert not chem.compare_formulas("h2o", "H2O", case_sensitive=True)
        assert chem.compare_formulas("H2 O", "H2O", case_sensitive=True)

    def test_different_formulas(self):
        assert not chem.compare_formulas("H2O", "H2O2")
        assert not chem.compare_formulas("", "H2O")

    def test_missing_atom_is_a_different_formula(self):
        assert not chem.compare_formulas("H2SO4", "HSO4")


def test_find_formulas_in_free_text():
    found = chem.find_formulas("Water is H2O and salt is NaCl")
    assert found == ["H2O", "NaCl"]

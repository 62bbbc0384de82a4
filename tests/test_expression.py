"""Tests for formula substitution and restricted arithmetic."""

import pytest

from reconciler.errors import ExpressionSyntaxError, UnsafeExpression
from reconciler.expression import format_number, replace_date_tokens, safe_eval_formula, substitute_row_values
from reconciler.schema import ColumnSpec


@pytest.fixture
def columns():
    return [
        ColumnSpec("Rate", "rate", "data", "rate"),
        ColumnSpec("Maturity", "maturity_date", "data", "date"),
        ColumnSpec("Average", "averageBalance", "function", "currency"),
    ]


class TestSafeEvalFormula:
    """Tests for safe_eval_formula."""

    def test_date_difference(self):
        assert safe_eval_formula("DATE(2024-01-01) - DATE(2023-01-01)") == 365

    @pytest.mark.parametrize("formula, expected", [
        ("2 + 3 * 4", 14),
        ("(2 + 3) * 4", 20),
        ("-3 + 5", 2),
        ("10 / 4", 2.5),
        ("2 - -1", 3),
        ("8 - 2 - 1", 5),
        (".5 * 4", 2),
    ])
    def test_arithmetic(self, formula, expected):
        assert safe_eval_formula(formula) == pytest.approx(expected)

    @pytest.mark.parametrize("formula", [
        "1; 2",
        "abc + 1",
        "1 == 1",
        "DATE(Invalid) + 1",
        "__import__('os')",
    ])
    def test_rejects_unsafe_text(self, formula):
        with pytest.raises(UnsafeExpression):
            safe_eval_formula(formula)

    @pytest.mark.parametrize("formula", ["1 +", "(1 + 2", "1 2", "* 3"])
    def test_rejects_malformed_arithmetic(self, formula):
        with pytest.raises(ExpressionSyntaxError):
            safe_eval_formula(formula)

    def test_division_by_zero_raises(self):
        with pytest.raises(ZeroDivisionError):
            safe_eval_formula("1 / 0")

    def test_date_result(self):
        assert safe_eval_formula("DATE(2024-01-01) + 30", "date") == "2024-01-31"


class TestSubstitution:
    def test_numbers_substituted(self, columns):
        formula = substitute_row_values("averageBalance * 0.1", columns, {"averageBalance": 1000.0})
        assert formula == "1000 * 0.1"

    def test_dates_become_date_tokens(self, columns):
        formula = substitute_row_values(
            "maturity_date - DATE(2024-01-01)", columns, {"maturity_date": "2024-03-01"})

        assert formula == "DATE(2024-03-01) - DATE(2024-01-01)"
        assert safe_eval_formula(formula) == 60

    def test_unreadable_date(self, columns):
        formula = substitute_row_values("maturity_date + 1", columns, {"maturity_date": "soon"})
        assert formula == "DATE(Invalid) + 1"

    def test_empty_date_left_in_place(self, columns):
        formula = substitute_row_values("maturity_date + 1", columns, {"maturity_date": ""})
        assert formula == "maturity_date + 1"

    def test_missing_value_left_in_place(self, columns):
        formula = substitute_row_values("averageBalance * 0.1", columns, {})

        assert formula == "averageBalance * 0.1"
        with pytest.raises(UnsafeExpression):
            safe_eval_formula(formula)

    def test_text_becomes_zero(self, columns):
        assert substitute_row_values("rate * 2", columns, {"rate": "n/a"}) == "0 * 2"

    def test_whole_words_only(self, columns):
        formula = substitute_row_values("rate_adj + rate", columns, {"rate": "0.05"})
        assert formula == "rate_adj + 0.05"


class TestHelpers:
    def test_format_number(self):
        assert format_number(650.0) == "650"
        assert format_number(0.05) == "0.05"

    def test_replace_date_tokens(self):
        assert replace_date_tokens("DATE(1970-01-02) + DATE(Invalid)") == "1 + NaN"

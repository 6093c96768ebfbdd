"""
Tests for the expression evaluator and its helper functions.
"""

from datetime import datetime, timezone

import pytest

from sheetsync.engine.expressions import ExpressionEvaluator
from sheetsync.engine.helpers import coalesce, format_date, to_number
from sheetsync.exceptions import ExpressionError


@pytest.fixture
def evaluator():
    return ExpressionEvaluator()


class TestEvaluation:
    """Tests for evaluating expressions."""

    def test_arithmetic(self, evaluator):
        assert evaluator.evaluate("(a + b) * 2 - c % 3", {"a": 1, "b": 2, "c": 5}) == 4

    def test_comparison_chain(self, evaluator):
        assert evaluator.evaluate("0 < x <= 10", {"x": 10}) is True
        assert evaluator.evaluate("0 < x <= 10", {"x": 11}) is False

    def test_boolean_logic_and_constants(self, evaluator):
        assert evaluator.evaluate("closed or offBudget", {"closed": False, "offBudget": True}) is True
        assert evaluator.evaluate("true and not false", {}) is True
        assert evaluator.evaluate("null", {}) is None

    def test_conditional(self, evaluator):
        assert evaluator.evaluate("'in' if amount > 0 else 'out'", {"amount": -4}) == "out"

    def test_membership(self, evaluator):
        assert evaluator.evaluate("type in ('checking', 'savings')", {"type": "savings"}) is True

    def test_missing_variables_default_to_zero(self, evaluator):
        assert evaluator.evaluate("missing * 5 + 1", {}) == 1

    def test_helper_call(self, evaluator):
        context = evaluator.build_context({"amount": "12.5"})
        assert evaluator.evaluate("to_number(amount) * 2", context) == 25.0
        assert evaluator.evaluate("toNumber(amount)", context) == 12.5

    def test_build_context_nulls_become_zero(self, evaluator):
        context = evaluator.build_context({"amount": None, "name": "x"}, {"sheetId": "s"})
        assert context["amount"] == 0
        assert context["name"] == "x"
        assert context["sheetId"] == "s"
        assert callable(context["format_date"])

    def test_variables_exclude_function_names(self, evaluator):
        assert evaluator.variables("formatDate(date, fmt) + offset") == {"date", "fmt", "offset"}


class TestRejectedExpressions:
    """Constructs outside the whitelist are refused before evaluation."""

    @pytest.mark.parametrize("expression", [
        "__import__('os').system('true')",
        "record.__class__",
        "values[0]",
        "(lambda: 1)()",
        "[x for x in range(3)]",
        "format_date(value, fmt='iso')",
        "a = 1",
        "amount \x00 1",
        "",
    ])
    def test_rejected(self, evaluator, expression):
        with pytest.raises(ExpressionError):
            evaluator.evaluate(expression, {"values": [1], "record": {}, "value": 1})

    def test_unknown_function(self, evaluator):
        with pytest.raises(ExpressionError, match="Unknown function"):
            evaluator.evaluate("shout(name)", {"name": "x"})

    def test_huge_exponent(self, evaluator):
        with pytest.raises(ExpressionError):
            evaluator.evaluate("10 ** 100000", {})

    def test_runtime_error_is_wrapped(self, evaluator):
        with pytest.raises(ExpressionError):
            evaluator.evaluate("'a' - 1", {})


class TestHelpers:
    """Tests for the helper functions."""

    def test_format_date_default(self):
        assert format_date("2024-01-31") == "2024-01-31"

    def test_format_date_tokens(self):
        assert format_date(datetime(2024, 7, 4, 9, 5, 3), "dd MMM yyyy HH:mm:ss") == "04 Jul 2024 09:05:03"

    def test_format_date_epoch_millis(self):
        millis = int(datetime(2024, 2, 29, tzinfo=timezone.utc).timestamp() * 1000)
        assert format_date(millis) == "2024-02-29"

    def test_format_date_iso(self):
        assert format_date("2024-01-31T10:00:00", "iso") == "2024-01-31T10:00:00"

    @pytest.mark.parametrize("value", [None, "", "not a date", 0])
    def test_format_date_blank(self, value):
        assert format_date(value) == ""

    def test_coalesce(self):
        assert coalesce(None, "", 0, "x") == 0
        assert coalesce(None, "") == ""

    @pytest.mark.parametrize("value, expected", [
        ("42", 42),
        (" 1.5 ", 1.5),
        ("abc", 0),
        (None, 0),
        (float("nan"), 0),
        ("inf", 0),
        (True, 1),
        (7, 7),
    ])
    def test_to_number(self, value, expected):
        assert to_number(value) == expected

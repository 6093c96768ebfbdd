"""
Tests for row transformation: value resolution, filtering and sorting.
"""

import logging

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from sheetsync.engine.transforms import RowTransformer
from sheetsync.models.config import TransformSpec


def spec(**data) -> TransformSpec:
    return TransformSpec.model_validate(data)


@pytest.fixture
def transformer():
    return RowTransformer()


class TestValueResolution:
    """Tests for resolving one column value."""

    def test_field_reference(self, transformer):
        assert transformer.evaluate_value("accountName", {"accountName": "Checking"}) == "Checking"

    def test_null_field_becomes_blank(self, transformer):
        assert transformer.evaluate_value("memo", {"memo": None}) == ""

    def test_unknown_name_is_literal(self, transformer):
        assert transformer.evaluate_value("Budget", {"accountName": "Checking"}) == "Budget"

    def test_formula_passes_through(self, transformer):
        assert transformer.evaluate_value("=SUM(B2:B10)", {"B2": 1}) == "=SUM(B2:B10)"

    def test_expression(self, transformer):
        assert transformer.evaluate_value("${balance / 100}", {"balance": 1250}) == 12.5

    def test_expression_missing_field_defaults_to_zero(self, transformer):
        assert transformer.evaluate_value("${missing + 1}", {}) == 1

    def test_expression_null_field_defaults_to_zero(self, transformer):
        assert transformer.evaluate_value("${amount * 2}", {"amount": None}) == 0

    def test_failed_expression_is_blank(self, transformer, caplog):
        with caplog.at_level(logging.WARNING):
            assert transformer.evaluate_value("${balance / 0}", {"balance": 5}) == ""
        assert "Failed to evaluate transform expression" in caplog.text

    def test_null_byte_expression_is_blank(self, transformer, caplog):
        with caplog.at_level(logging.WARNING):
            assert transformer.evaluate_value("${balance\x00}", {"balance": 5}) == ""
        assert "Failed to evaluate transform expression" in caplog.text

    def test_expression_helpers(self, transformer):
        record = {"date": "2024-03-05", "payee": None, "fallback": "Unknown"}
        assert transformer.evaluate_value("${formatDate(date, 'dd/MM/yyyy')}", record) == "05/03/2024"
        assert transformer.evaluate_value("${coalesce('', fallback)}", record) == "Unknown"

    def test_callable(self, transformer):
        def doubled(record, helpers, context):
            return helpers.to_number(record["amount"]) * 2

        assert transformer.evaluate_value(doubled, {"amount": "21"}) == 42

    def test_non_string_literal(self, transformer):
        assert transformer.evaluate_value(7, {}) == 7


class TestTransform:
    """Tests for full record to row transformation."""

    def test_no_columns_gives_empty_result(self, transformer):
        result = transformer.transform(spec(columns=[]), [{"a": 1}])
        assert result.header == []
        assert result.rows == []
        assert result.is_empty

    def test_header_and_rows(self, transformer):
        result = transformer.transform(
            spec(columns=[{"label": "Account", "value": "accountName"}, {"value": "balance"}]),
            [{"accountName": "Checking", "balance": 10}, {"accountName": "Savings"}],
        )
        assert result.header == ["Account", "balance"]
        assert result.rows == [["Checking", 10], ["Savings", "balance"]]

    def test_expression_filter(self, transformer):
        result = transformer.transform(
            spec(columns=[{"label": "Amount", "value": "amount"}], filter="${amount > 0}"),
            [{"amount": 5}, {"amount": -3}, {"amount": 0}, {"amount": 12}],
        )
        assert result.rows == [[5], [12]]

    def test_bare_filter_expression(self, transformer):
        result = transformer.transform(
            spec(columns=[{"label": "Amount", "value": "amount"}], filter="not closed"),
            [{"amount": 1, "closed": True}, {"amount": 2, "closed": False}],
        )
        assert result.rows == [[2]]

    def test_failing_filter_drops_record(self, transformer):
        def explode(record, helpers, context):
            if record["amount"] == 2:
                raise KeyError("boom")
            return True

        result = transformer.transform(
            spec(columns=[{"label": "Amount", "value": "amount"}], filter=explode),
            [{"amount": 1}, {"amount": 2}, {"amount": 3}],
        )
        assert result.rows == [[1], [3]]

    def test_context_visible_to_expressions(self, transformer):
        result = transformer.transform(
            spec(columns=[{"label": "Sheet", "value": "${sheetId}"}]),
            [{"amount": 1}],
            context={"sheetId": "balances"},
        )
        assert result.rows == [["balances"]]

    @settings(max_examples=50)
    @given(st.lists(st.integers(min_value=-1000, max_value=1000), max_size=30))
    def test_filter_keeps_exactly_matching_records(self, amounts):
        records = [{"amount": amount} for amount in amounts]
        result = RowTransformer().transform(
            spec(columns=[{"label": "Amount", "value": "amount"}], filter="${amount >= 0}"),
            records,
        )
        assert len(result.rows) == len([amount for amount in amounts if amount >= 0])
        assert [row[0] for row in result.rows] == [amount for amount in amounts if amount >= 0]


class TestSorting:
    """Tests for post-process sorting."""

    columns = [
        {"label": "Account", "value": "accountName"},
        {"label": "Group", "value": "group"},
        {"label": "Balance", "value": "balance"},
    ]

    def test_single_rule_desc(self, transformer):
        result = transformer.transform(
            spec(columns=self.columns, postProcess={"sortBy": {"column": "Balance", "direction": "DESC"}}),
            [{"accountName": "A", "balance": 1}, {"accountName": "B", "balance": 3}, {"accountName": "C", "balance": 2}],
        )
        assert [row[0] for row in result.rows] == ["B", "C", "A"]

    def test_multiple_rules_fall_through_on_ties(self, transformer):
        records = [
            {"accountName": "A", "group": "x", "balance": 1},
            {"accountName": "B", "group": "y", "balance": 5},
            {"accountName": "C", "group": "x", "balance": 9},
        ]
        result = transformer.transform(
            spec(columns=self.columns, postProcess={"sortBy": [
                {"column": "group"},
                {"column": "Balance", "direction": "desc"},
            ]}),
            records,
        )
        assert [row[0] for row in result.rows] == ["C", "A", "B"]

    def test_ties_keep_input_order(self, transformer):
        records = [{"accountName": name, "group": "same", "balance": 0} for name in "DCBA"]
        result = transformer.transform(
            spec(columns=self.columns, postProcess={"sortBy": [{"column": "Group"}]}),
            records,
        )
        assert [row[0] for row in result.rows] == ["D", "C", "B", "A"]

    def test_unresolved_rule_is_skipped(self, transformer):
        records = [{"accountName": "B", "balance": 1}, {"accountName": "A", "balance": 2}]
        result = transformer.transform(
            spec(columns=self.columns, postProcess={"sortBy": [{"column": "Nope"}, {"column": "Account"}]}),
            records,
        )
        assert [row[0] for row in result.rows] == ["A", "B"]

    def test_mixed_types_do_not_fail(self, transformer):
        records = [
            {"accountName": "A", "balance": 3},
            {"accountName": "B", "balance": None},
            {"accountName": "C", "balance": 1},
        ]
        result = transformer.transform(
            spec(columns=self.columns, postProcess={"sortBy": {"column": "Balance"}}),
            records,
        )
        assert [row[0] for row in result.rows] == ["B", "C", "A"]

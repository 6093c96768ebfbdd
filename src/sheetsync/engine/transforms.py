"""
Row transformation: turns extracted ledger records into sheet rows.
"""

import functools
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ..exceptions import ExpressionError
from ..models.config import ColumnSpec, SortRule, TransformSpec
from ..models.sync import TransformResult
from .expressions import ExpressionEvaluator
from .helpers import helpers

logger = logging.getLogger(__name__)

EXPRESSION_PREFIX = "${"
EXPRESSION_SUFFIX = "}"
FORMULA_PREFIX = "="


def unwrap_expression(text: str) -> Optional[str]:
    """Return the body of a ``${...}`` string, or None when it is not one."""
    if text.startswith(EXPRESSION_PREFIX) and text.endswith(EXPRESSION_SUFFIX):
        return text[len(EXPRESSION_PREFIX):-len(EXPRESSION_SUFFIX)]
    return None


def _compare(left: Any, right: Any) -> int:
    try:
        if left < right:
            return -1
        if left > right:
            return 1
        return 0
    except TypeError:
        # Mixed types (e.g. "" against a number) compare by their text
        left_text, right_text = str(left), str(right)
        return (left_text > right_text) - (left_text < right_text)


class RowTransformer:
    """
    Maps records to rows using column definitions, with optional filtering
    and sorting.
    """

    def __init__(self, evaluator: Optional[ExpressionEvaluator] = None):
        """Initialize the transformer."""
        self.evaluator = evaluator or ExpressionEvaluator()

    def evaluate_expression(
        self,
        expression: str,
        record: Mapping[str, Any],
        context: Optional[Mapping[str, Any]] = None
    ) -> Any:
        """
        Evaluate an expression against a record.

        Returns:
            The result, or None when evaluation fails (a warning is logged)
        """
        try:
            scope = self.evaluator.build_context(record, context)
            return self.evaluator.evaluate(expression, scope)
        except ExpressionError as e:
            logger.warning(f"Failed to evaluate transform expression {expression!r}: {e}")
            return None

    def evaluate_value(
        self,
        definition: Any,
        record: Mapping[str, Any],
        context: Optional[Mapping[str, Any]] = None
    ) -> Any:
        """
        Resolve one column value for a record.

        Args:
            definition: The column's value spec
            record: The source record
            context: Extra names visible to expressions and callables

        Returns:
            The resolved value ("" for blanks)
        """
        if definition is None:
            return ""
        if callable(definition):
            return definition(record, helpers, context or {})
        if isinstance(definition, str):
            trimmed = definition.strip()
            expression = unwrap_expression(trimmed)
            if expression is not None:
                result = self.evaluate_expression(expression, record, context)
                return "" if result is None else result
            if trimmed.startswith(FORMULA_PREFIX):
                return trimmed
            if record is not None and trimmed in record:
                value = record[trimmed]
                return "" if value is None else value
            return trimmed
        return definition

    def evaluate_filter(
        self,
        filter_def: Any,
        record: Mapping[str, Any],
        context: Optional[Mapping[str, Any]] = None
    ) -> bool:
        """Decide whether a record is kept. Failures drop the record."""
        if filter_def is None:
            return True
        if callable(filter_def):
            try:
                return bool(filter_def(record, helpers, context or {}))
            except Exception as e:
                logger.warning(f"Transform filter function raised: {e}")
                return False
        if isinstance(filter_def, str):
            trimmed = filter_def.strip()
            if not trimmed:
                return True
            expression = unwrap_expression(trimmed)
            if expression is None:
                expression = trimmed
            return bool(self.evaluate_expression(expression, record, context))
        return bool(filter_def)

    def map_record(
        self,
        columns: Sequence[ColumnSpec],
        record: Mapping[str, Any],
        context: Optional[Mapping[str, Any]] = None
    ) -> List[Any]:
        """Build one row, one value per column."""
        row = []
        for column in columns:
            value = self.evaluate_value(column.value, record, context)
            row.append("" if value is None else value)
        return row

    def sort_rows(
        self,
        rows: List[List[Any]],
        columns: Sequence[ColumnSpec],
        rules: Sequence[SortRule]
    ) -> List[List[Any]]:
        """Stable multi-key sort; rules whose column cannot be resolved are skipped."""
        resolved = []
        for rule in rules:
            if not rule.column:
                continue
            index = next(
                (i for i, column in enumerate(columns)
                 if column.label == rule.column or column.value == rule.column),
                None
            )
            if index is None:
                logger.debug(f"Sort column {rule.column!r} not found; ignoring rule")
                continue
            resolved.append((index, rule.direction == "desc"))

        if not resolved:
            return list(rows)

        def compare_rows(a: List[Any], b: List[Any]) -> int:
            for index, descending in resolved:
                result = _compare(a[index], b[index])
                if result == 0:
                    continue
                return -result if descending else result
            return 0

        return sorted(rows, key=functools.cmp_to_key(compare_rows))

    def transform(
        self,
        spec: TransformSpec,
        records: Sequence[Mapping[str, Any]],
        context: Optional[Dict[str, Any]] = None
    ) -> TransformResult:
        """
        Transform records into a header and rows.

        Args:
            spec: Columns, filter and post-processing rules
            records: Extracted records
            context: Extra names visible to expressions and callables

        Returns:
            TransformResult; empty when no columns are configured
        """
        columns = list(spec.columns)
        if not columns:
            return TransformResult()

        if spec.filter is None:
            kept = list(records)
        else:
            kept = [
                record for record in records
                if self.evaluate_filter(spec.filter, record, context)
            ]
            logger.debug(f"Filter kept {len(kept)} of {len(records)} records")

        rows = [self.map_record(columns, record, context) for record in kept]

        if spec.post_process and spec.post_process.sort_by:
            rows = self.sort_rows(rows, columns, spec.post_process.sort_by)

        return TransformResult(
            header=[column.header for column in columns],
            rows=rows
        )

"""
Sandboxed evaluation of the small expression language used in column specs.

Expressions use Python expression syntax and are parsed with ``ast``; only a
whitelist of nodes is walked, so attribute access, subscripts, lambdas and
comprehensions are rejected before anything is evaluated. Calls are limited
to callables present in the evaluation context (the helper functions).
"""

import ast
import functools
import logging
import operator
from typing import Any, Callable, Dict, Mapping, Optional, Set

from ..exceptions import ExpressionError
from .helpers import HELPER_FUNCTIONS

logger = logging.getLogger(__name__)

_BINARY_OPERATORS: Dict[type, Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

_UNARY_OPERATORS: Dict[type, Callable[[Any], Any]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
    ast.Not: operator.not_,
}

_COMPARISON_OPERATORS: Dict[type, Callable[[Any, Any], bool]] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda left, right: left in right,
    ast.NotIn: lambda left, right: left not in right,
}

_ALLOWED_NODES = (
    ast.Expression, ast.Constant, ast.Name, ast.Load,
    ast.BinOp, ast.UnaryOp, ast.BoolOp, ast.Compare, ast.IfExp, ast.Call,
    ast.Tuple, ast.List, ast.And, ast.Or,
    *_BINARY_OPERATORS, *_UNARY_OPERATORS, *_COMPARISON_OPERATORS,
)

CONSTANTS = {"true": True, "false": False, "null": None}

MAX_EXPONENT = 1000


class ExpressionEvaluator:
    """Parses and evaluates expressions against a key-value context."""

    def __init__(self, functions: Optional[Mapping[str, Callable[..., Any]]] = None):
        self.functions = dict(HELPER_FUNCTIONS if functions is None else functions)
        self._parse_cached = functools.lru_cache(maxsize=512)(self._parse)

    def parse(self, expression: str) -> ast.Expression:
        """
        Parse and validate an expression.

        Raises:
            ExpressionError: On syntax errors or disallowed constructs
        """
        return self._parse_cached(expression.strip())

    def _parse(self, expression: str) -> ast.Expression:
        if not expression:
            raise ExpressionError("Empty expression")
        try:
            tree = ast.parse(expression, mode="eval")
        except SyntaxError as e:
            raise ExpressionError(f"Invalid expression {expression!r}: {e.msg}") from e
        except ValueError as e:
            # Source containing null bytes
            raise ExpressionError(f"Invalid expression {expression!r}: {e}") from e

        for node in ast.walk(tree):
            if not isinstance(node, _ALLOWED_NODES):
                raise ExpressionError(
                    f"Unsupported syntax in expression {expression!r}: {type(node).__name__}"
                )
            if isinstance(node, ast.Call):
                if not isinstance(node.func, ast.Name) or node.keywords:
                    raise ExpressionError(
                        f"Only plain helper calls are allowed in expression {expression!r}"
                    )
        return tree

    def variables(self, expression: str) -> Set[str]:
        """Names referenced by an expression, excluding called function names."""
        tree = self.parse(expression)
        called = {
            id(node.func) for node in ast.walk(tree) if isinstance(node, ast.Call)
        }
        return {
            node.id for node in ast.walk(tree)
            if isinstance(node, ast.Name) and id(node) not in called
        }

    def build_context(self, record: Optional[Mapping[str, Any]], extra: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """Helpers, extra globals and record fields; null fields become 0."""
        context: Dict[str, Any] = dict(self.functions)
        if extra:
            context.update(extra)
        for key, value in (record or {}).items():
            context[key] = 0 if value is None else value
        return context

    def evaluate(self, expression: str, context: Mapping[str, Any]) -> Any:
        """
        Evaluate an expression. Variables referenced but absent from the
        context are treated as 0 so a missing field never fails evaluation.

        Raises:
            ExpressionError: When parsing or evaluation fails
        """
        tree = self.parse(expression)
        scope = dict(context)
        for name in self.variables(expression):
            if name not in scope and name not in CONSTANTS:
                scope[name] = 0
        try:
            return self._eval(tree.body, scope)
        except ExpressionError:
            raise
        except Exception as e:
            raise ExpressionError(f"Failed to evaluate {expression!r}: {e}") from e

    def _eval(self, node: ast.AST, scope: Mapping[str, Any]) -> Any:
        if isinstance(node, ast.Constant):
            return node.value

        if isinstance(node, ast.Name):
            if node.id in scope:
                return scope[node.id]
            return CONSTANTS[node.id]

        if isinstance(node, ast.BinOp):
            left = self._eval(node.left, scope)
            right = self._eval(node.right, scope)
            if isinstance(node.op, ast.Pow) and isinstance(right, (int, float)) and abs(right) > MAX_EXPONENT:
                raise ExpressionError(f"Exponent too large: {right}")
            return _BINARY_OPERATORS[type(node.op)](left, right)

        if isinstance(node, ast.UnaryOp):
            return _UNARY_OPERATORS[type(node.op)](self._eval(node.operand, scope))

        if isinstance(node, ast.BoolOp):
            result = None
            for value_node in node.values:
                result = self._eval(value_node, scope)
                if isinstance(node.op, ast.And) and not result:
                    return result
                if isinstance(node.op, ast.Or) and result:
                    return result
            return result

        if isinstance(node, ast.Compare):
            left = self._eval(node.left, scope)
            for op, comparator in zip(node.ops, node.comparators):
                right = self._eval(comparator, scope)
                if not _COMPARISON_OPERATORS[type(op)](left, right):
                    return False
                left = right
            return True

        if isinstance(node, ast.IfExp):
            if self._eval(node.test, scope):
                return self._eval(node.body, scope)
            return self._eval(node.orelse, scope)

        if isinstance(node, ast.Call):
            func = scope.get(node.func.id)
            if not callable(func):
                raise ExpressionError(f"Unknown function: {node.func.id}")
            return func(*(self._eval(arg, scope) for arg in node.args))

        if isinstance(node, (ast.Tuple, ast.List)):
            return tuple(self._eval(element, scope) for element in node.elts)

        raise ExpressionError(f"Unsupported node: {type(node).__name__}")

"""Sandboxed evaluation of ``condition`` step expressions.

Expressions are parsed with :mod:`ast` and only a small whitelist of node
types is interpreted: literals, context variable names, boolean logic,
comparisons and arithmetic. Attribute access, subscripts, calls, lambdas and
comprehensions are rejected, so a condition can never reach the Python
runtime.
"""

from __future__ import annotations

import ast
import logging
import operator
import re
from typing import Any, Callable, Mapping

from .errors import ExpressionError

logger = logging.getLogger(__name__)

_BIN_OPS: dict[type, Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
}

_UNARY_OPS: dict[type, Callable[[Any], Any]] = {
    ast.Not: operator.not_,
    ast.USub: operator.neg,
    ast.UAdd: operator.pos,
}

_COMPARE_OPS: dict[type, Callable[[Any, Any], bool]] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
}

_CONSTANT_NAMES = {
    "true": True,
    "false": False,
    "True": True,
    "False": False,
    "null": None,
    "None": None,
}

_STRING_LITERAL = re.compile(r"""("(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')""")

_MAX_EXPRESSION_LENGTH = 2000


def _coerce(value: Any) -> Any:
    """Interpret context strings as numbers or booleans where they look like one."""
    if not isinstance(value, str):
        return value
    lowered = value.strip().lower()
    if lowered in ("true", "false"):
        return lowered == "true"
    for cast in (int, float):
        try:
            return cast(value)
        except ValueError:
            continue
    return value


def normalize_operators(expression: str) -> str:
    """Translate ``&&``/``||``/``!``/``===`` into their Python spelling."""
    parts = _STRING_LITERAL.split(expression)
    for index in range(0, len(parts), 2):
        chunk = parts[index]
        # placeholders keep existing == and != intact
        chunk = chunk.replace("!==", "\x00ne\x00").replace("===", "\x00eq\x00")
        chunk = chunk.replace("!=", "\x00ne\x00").replace("==", "\x00eq\x00")
        chunk = chunk.replace("&&", " and ").replace("||", " or ")
        chunk = chunk.replace("!", " not ")
        chunk = chunk.replace("\x00ne\x00", "!=").replace("\x00eq\x00", "==")
        parts[index] = chunk
    return "".join(parts)


class SafeExpressionEvaluator:
    """Evaluate boolean expressions over a string-keyed context."""

    def __init__(self, max_length: int = _MAX_EXPRESSION_LENGTH) -> None:
        self.max_length = max_length

    def evaluate(self, expression: str, context: Mapping[str, str]) -> bool:
        if len(expression) > self.max_length:
            raise ExpressionError("Expression is too long")
        source = normalize_operators(expression).strip()
        if not source:
            raise ExpressionError("Expression is empty")
        try:
            tree = ast.parse(source, mode="eval")
        except SyntaxError as exc:
            raise ExpressionError(f"Invalid expression {expression!r}: {exc.msg}") from exc

        try:
            value = self._eval(tree.body, context)
        except ExpressionError:
            raise
        except (TypeError, ValueError, ZeroDivisionError) as exc:
            raise ExpressionError(f"Cannot evaluate {expression!r}: {exc}") from exc
        logger.debug(f"Condition {expression!r} evaluated to {value!r}")
        return bool(value)

    def _eval(self, node: ast.AST, context: Mapping[str, str]) -> Any:
        if isinstance(node, ast.Constant):
            if isinstance(node.value, (str, int, float, bool)) or node.value is None:
                return node.value
            raise ExpressionError(f"Unsupported literal: {node.value!r}")

        if isinstance(node, ast.Name):
            if node.id in context:
                return _coerce(context[node.id])
            if node.id in _CONSTANT_NAMES:
                return _CONSTANT_NAMES[node.id]
            raise ExpressionError(f"Unknown variable: {node.id}")

        if isinstance(node, ast.BoolOp):
            if isinstance(node.op, ast.And):
                result: Any = True
                for value in node.values:
                    result = self._eval(value, context)
                    if not result:
                        return result
                return result
            result = False
            for value in node.values:
                result = self._eval(value, context)
                if result:
                    return result
            return result

        if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
            return _UNARY_OPS[type(node.op)](self._eval(node.operand, context))

        if isinstance(node, ast.BinOp) and type(node.op) in _BIN_OPS:
            left = self._eval(node.left, context)
            right = self._eval(node.right, context)
            if isinstance(node.op, ast.Mult) and not (
                isinstance(left, (int, float)) and isinstance(right, (int, float))
            ):
                raise ExpressionError("Only numbers can be multiplied")
            return _BIN_OPS[type(node.op)](left, right)

        if isinstance(node, ast.Compare):
            left = self._eval(node.left, context)
            for op, comparator in zip(node.ops, node.comparators):
                if type(op) not in _COMPARE_OPS:
                    raise ExpressionError(f"Unsupported comparison: {type(op).__name__}")
                right = self._eval(comparator, context)
                if not _COMPARE_OPS[type(op)](left, right):
                    return False
                left = right
            return True

        if isinstance(node, (ast.List, ast.Tuple)):
            return [self._eval(item, context) for item in node.elts]

        raise ExpressionError(f"Unsupported expression element: {type(node).__name__}")

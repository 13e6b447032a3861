"""Sandboxed expression evaluator for logic nodes.

Expressions are parsed with Python's ast module and evaluated by walking a
whitelisted subset of node types. Nothing is ever passed to eval(); names
resolve only against the mapping supplied by the caller plus a fixed table
of pure helper functions.

Supported:
- literals (numbers, strings, lists, dicts, tuples), true/false/null aliases
- names, attribute access and subscripts into dicts and lists
- comparisons (including `in` / `not in`), and/or/not, arithmetic
- conditional expressions: `a if cond else b`
- calls to whitelisted helper functions only

JavaScript-style operators (`===`, `!==`, `&&`, `||`, `!`) are accepted and
rewritten to their Python equivalents before parsing.

Missing keys and attributes evaluate to None; ordering comparisons against
None are False. Unknown top-level names are errors.
"""

from __future__ import annotations

import ast
import operator
import re
from typing import Any, Callable, Mapping

from .basenode import ExpressionError


_COMPARISON_OPS: dict[type[ast.cmpop], Callable[[Any, Any], bool]] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
}

_ORDERING_OPS = (ast.Lt, ast.LtE, ast.Gt, ast.GtE)

_BINARY_OPS: dict[type[ast.operator], Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
}

_UNARY_OPS: dict[type[ast.unaryop], Callable[[Any], Any]] = {
    ast.Not: operator.not_,
    ast.USub: operator.neg,
    ast.UAdd: operator.pos,
}

_CONSTANT_NAMES: dict[str, Any] = {
    "true": True,
    "false": False,
    "null": None,
    "True": True,
    "False": False,
    "None": None,
}


def _contains(container: Any, value: Any) -> bool:
    if container is None:
        return False
    if isinstance(container, (list, tuple, dict)):
        return value in container
    return str(value) in str(container)


def _exists(value: Any) -> bool:
    return value is not None


def _empty(value: Any) -> bool:
    return not value


_FUNCTIONS: dict[str, Callable[..., Any]] = {
    "len": len,
    "str": str,
    "int": int,
    "float": float,
    "bool": bool,
    "abs": abs,
    "min": min,
    "max": max,
    "round": round,
    "sum": sum,
    "lower": lambda s: str(s).lower(),
    "upper": lambda s: str(s).upper(),
    "contains": _contains,
    "startswith": lambda s, prefix: str(s).startswith(str(prefix)),
    "endswith": lambda s, suffix: str(s).endswith(str(suffix)),
    "exists": _exists,
    "empty": _empty,
}

_ALLOWED_NODES: tuple[type[ast.AST], ...] = (
    ast.Expression,
    ast.Constant,
    ast.Name,
    ast.Load,
    ast.Attribute,
    ast.Subscript,
    ast.Slice,
    ast.Compare,
    ast.BoolOp,
    ast.And,
    ast.Or,
    ast.BinOp,
    ast.UnaryOp,
    ast.IfExp,
    ast.Call,
    ast.List,
    ast.Tuple,
    ast.Dict,
    *_COMPARISON_OPS.keys(),
    *_BINARY_OPS.keys(),
    *_UNARY_OPS.keys(),
)

_STRING_LITERAL = re.compile(r"(\"(?:\\.|[^\"\\])*\"|'(?:\\.|[^'\\])*')")
_JS_REWRITES = (
    (re.compile(r"==="), "=="),
    (re.compile(r"!=="), "!="),
    (re.compile(r"&&"), " and "),
    (re.compile(r"\|\|"), " or "),
    (re.compile(r"!(?!=)"), " not "),
)


def _normalize(expression: str) -> str:
    """Rewrite JavaScript-style operators outside string literals."""
    parts = _STRING_LITERAL.split(expression)
    for i in range(0, len(parts), 2):
        chunk = parts[i]
        for pattern, replacement in _JS_REWRITES:
            chunk = pattern.sub(replacement, chunk)
        parts[i] = chunk
    return "".join(parts).strip()


class _Validator(ast.NodeVisitor):
    """Reject any construct outside the whitelist."""

    def generic_visit(self, node: ast.AST) -> None:
        if not isinstance(node, _ALLOWED_NODES):
            raise ExpressionError(
                f"Unsupported construct in expression: {type(node).__name__}"
            )
        super().generic_visit(node)

    def visit_Attribute(self, node: ast.Attribute) -> None:
        if node.attr.startswith("_"):
            raise ExpressionError(f"Access to '{node.attr}' is not allowed")
        self.generic_visit(node)

    def visit_Name(self, node: ast.Name) -> None:
        if node.id.startswith("__"):
            raise ExpressionError(f"Access to '{node.id}' is not allowed")

    def visit_Call(self, node: ast.Call) -> None:
        if not isinstance(node.func, ast.Name) or node.func.id not in _FUNCTIONS:
            raise ExpressionError(
                "Only these functions may be called: " + ", ".join(sorted(_FUNCTIONS))
            )
        if node.keywords:
            raise ExpressionError("Keyword arguments are not supported")
        for arg in node.args:
            self.visit(arg)


class _Evaluator:
    """Evaluate a validated AST against a names mapping."""

    def __init__(self, names: Mapping[str, Any]) -> None:
        self._names = names

    def eval(self, node: ast.AST) -> Any:
        method = getattr(self, f"_eval_{type(node).__name__}")
        return method(node)

    def _eval_Expression(self, node: ast.Expression) -> Any:
        return self.eval(node.body)

    def _eval_Constant(self, node: ast.Constant) -> Any:
        return node.value

    def _eval_Name(self, node: ast.Name) -> Any:
        if node.id in self._names:
            return self._names[node.id]
        if node.id in _CONSTANT_NAMES:
            return _CONSTANT_NAMES[node.id]
        raise ExpressionError(f"Unknown name '{node.id}' in expression")

    def _eval_Attribute(self, node: ast.Attribute) -> Any:
        value = self.eval(node.value)
        if isinstance(value, dict):
            return value.get(node.attr)
        if node.attr == "length" and isinstance(value, (list, str)):
            return len(value)
        return None

    def _eval_Subscript(self, node: ast.Subscript) -> Any:
        value = self.eval(node.value)
        if isinstance(node.slice, ast.Slice):
            lower = self.eval(node.slice.lower) if node.slice.lower else None
            upper = self.eval(node.slice.upper) if node.slice.upper else None
            if not isinstance(value, (list, str)):
                return None
            return value[lower:upper]
        key = self.eval(node.slice)
        if isinstance(value, dict):
            return value.get(key)
        if isinstance(value, (list, str)) and isinstance(key, int):
            if -len(value) <= key < len(value):
                return value[key]
        return None

    def _eval_Compare(self, node: ast.Compare) -> bool:
        left = self.eval(node.left)
        for op, comparator in zip(node.ops, node.comparators):
            right = self.eval(comparator)
            if isinstance(op, _ORDERING_OPS):
                result = _ordered(_COMPARISON_OPS[type(op)], left, right)
            elif isinstance(op, (ast.In, ast.NotIn)):
                result = _contains(right, left)
                if isinstance(op, ast.NotIn):
                    result = not result
            else:
                result = _COMPARISON_OPS[type(op)](left, right)
            if not result:
                return False
            left = right
        return True

    def _eval_BoolOp(self, node: ast.BoolOp) -> Any:
        if isinstance(node.op, ast.And):
            result: Any = True
            for value in node.values:
                result = self.eval(value)
                if not result:
                    return result
            return result
        result = False
        for value in node.values:
            result = self.eval(value)
            if result:
                return result
        return result

    def _eval_BinOp(self, node: ast.BinOp) -> Any:
        left = self.eval(node.left)
        right = self.eval(node.right)
        try:
            return _BINARY_OPS[type(node.op)](left, right)
        except (TypeError, ZeroDivisionError) as e:
            raise ExpressionError(f"Cannot evaluate arithmetic: {e}") from e

    def _eval_UnaryOp(self, node: ast.UnaryOp) -> Any:
        operand = self.eval(node.operand)
        try:
            return _UNARY_OPS[type(node.op)](operand)
        except TypeError as e:
            raise ExpressionError(f"Cannot evaluate unary operator: {e}") from e

    def _eval_IfExp(self, node: ast.IfExp) -> Any:
        return self.eval(node.body) if self.eval(node.test) else self.eval(node.orelse)

    def _eval_Call(self, node: ast.Call) -> Any:
        func = _FUNCTIONS[node.func.id]  # type: ignore[attr-defined]
        args = [self.eval(arg) for arg in node.args]
        try:
            return func(*args)
        except (TypeError, ValueError) as e:
            raise ExpressionError(f"{node.func.id}() failed: {e}") from e  # type: ignore[attr-defined]

    def _eval_List(self, node: ast.List) -> list[Any]:
        return [self.eval(element) for element in node.elts]

    def _eval_Tuple(self, node: ast.Tuple) -> tuple[Any, ...]:
        return tuple(self.eval(element) for element in node.elts)

    def _eval_Dict(self, node: ast.Dict) -> dict[Any, Any]:
        if any(key is None for key in node.keys):
            raise ExpressionError("Dict unpacking is not supported")
        return {
            self.eval(key): self.eval(value)  # type: ignore[arg-type]
            for key, value in zip(node.keys, node.values)
        }


def _ordered(op: Callable[[Any, Any], bool], left: Any, right: Any) -> bool:
    """Ordering comparison with numeric coercion; None never compares."""
    if left is None or right is None:
        return False
    try:
        return op(left, right)
    except TypeError:
        try:
            return op(float(left), float(right))
        except (TypeError, ValueError):
            return False


class Expression:
    """
    A parsed, validated expression ready for repeated evaluation.

    Example:
        expr = Expression("item.score > 80 && item.active")
        expr.evaluate({"item": {"score": 91, "active": True}})  # -> True
    """

    def __init__(self, source: str) -> None:
        if not source or not source.strip():
            raise ExpressionError("Expression is empty")
        self._source = source
        try:
            self._tree = ast.parse(_normalize(source), mode="eval")
        except SyntaxError as e:
            raise ExpressionError(f"Invalid expression syntax: {source!r}") from e
        _Validator().visit(self._tree)

    @property
    def source(self) -> str:
        return self._source

    def evaluate(self, names: Mapping[str, Any]) -> Any:
        """Evaluate against `names`. Raises ExpressionError on failure."""
        try:
            return _Evaluator(names).eval(self._tree)
        except ExpressionError:
            raise
        except (RecursionError, MemoryError) as e:
            raise ExpressionError(f"Expression too complex: {self._source!r}") from e

    def __repr__(self) -> str:
        return f"Expression({self._source!r})"


def evaluate(source: str, names: Mapping[str, Any]) -> Any:
    """Parse and evaluate an expression in one step."""
    return Expression(source).evaluate(names)

"""Restricted condition language used by edges and choices.

Conditions are parsed by a small recursive-descent parser. The grammar only
knows variable references, literals, comparison and boolean operators, so
there is nothing to call, assign or import::

    expression := or_expr
    or_expr    := and_expr (("||" | "or") and_expr)*
    and_expr   := equality (("&&" | "and") equality)*
    equality   := relational (("==" | "!=" | "===" | "!==") relational)*
    relational := unary (("<" | "<=" | ">" | ">=") unary)*
    unary      := ("!" | "not" | "-") unary | primary
    primary    := NUMBER | STRING | "true" | "false" | "null" | "undefined"
                | IDENTIFIER | "(" expression ")"

Values follow the loose rules authors know from JavaScript: missing variables
are ``None``, ``None == None`` holds, booleans and numeric strings coerce to
numbers when compared with numbers, and ordering against ``None`` is false.
"""
from __future__ import annotations

import math
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Mapping, Union

from storyloom.core.logger import get_logger

logger = get_logger(__name__)

_MAX_DEPTH = 64
_MAX_OPERATORS = 256

_KEYWORD_LITERALS: Mapping[str, object] = {
    "true": True,
    "false": False,
    "null": None,
    "undefined": None,
}
_KEYWORD_OPERATORS: Mapping[str, str] = {"and": "&&", "or": "||", "not": "!"}
_ESCAPES: Mapping[str, str] = {"n": "\n", "t": "\t", "r": "\r"}

_NUMBER_RE = re.compile(r"\d+(?:\.\d*)?|\.\d+")
_STRING_RE = re.compile(r""""(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*'""")
_NAME_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_OPERATOR_RE = re.compile(r"===|!==|==|!=|<=|>=|&&|\|\||[<>!()\-]")


class ExpressionError(ValueError):
    """Raised when a condition cannot be tokenized or parsed."""


@dataclass(frozen=True, slots=True)
class _Token:
    kind: str
    value: object
    position: int


@dataclass(frozen=True, slots=True)
class LiteralExpr:
    value: object


@dataclass(frozen=True, slots=True)
class VariableExpr:
    name: str


@dataclass(frozen=True, slots=True)
class UnaryExpr:
    operator: str
    operand: "Expr"


@dataclass(frozen=True, slots=True)
class BinaryExpr:
    operator: str
    left: "Expr"
    right: "Expr"


Expr = Union[LiteralExpr, VariableExpr, UnaryExpr, BinaryExpr]


def _tokenize(text: str) -> List[_Token]:
    tokens: List[_Token] = []
    position = 0
    length = len(text)
    while position < length:
        if text[position].isspace():
            position += 1
            continue
        match = _NUMBER_RE.match(text, position)
        if match:
            raw = match.group()
            value: object = float(raw) if "." in raw else int(raw)
            tokens.append(_Token("number", value, position))
            position = match.end()
            continue
        match = _STRING_RE.match(text, position)
        if match:
            body = match.group()[1:-1]
            value = re.sub(r"\\(.)", lambda m: _ESCAPES.get(m.group(1), m.group(1)), body)
            tokens.append(_Token("string", value, position))
            position = match.end()
            continue
        match = _NAME_RE.match(text, position)
        if match:
            name = match.group()
            if name in _KEYWORD_LITERALS:
                tokens.append(_Token("literal", _KEYWORD_LITERALS[name], position))
            elif name in _KEYWORD_OPERATORS:
                tokens.append(_Token("op", _KEYWORD_OPERATORS[name], position))
            else:
                tokens.append(_Token("name", name, position))
            position = match.end()
            continue
        match = _OPERATOR_RE.match(text, position)
        if match:
            tokens.append(_Token("op", match.group(), position))
            position = match.end()
            continue
        raise ExpressionError(f"Unexpected character {text[position]!r} at position {position}.")
    tokens.append(_Token("end", None, length))
    return tokens


class _Parser:
    def __init__(self, tokens: List[_Token]) -> None:
        self._tokens = tokens
        self._index = 0
        self._depth = 0
        self._operators = 0

    def parse(self) -> Expr:
        expr = self._parse_or()
        token = self._peek()
        if token.kind != "end":
            raise ExpressionError(f"Unexpected token {token.value!r} at position {token.position}.")
        return expr

    def _peek(self) -> _Token:
        return self._tokens[self._index]

    def _take(self) -> _Token:
        token = self._tokens[self._index]
        self._index += 1
        return token

    def _match_op(self, *operators: str) -> str | None:
        token = self._peek()
        if token.kind == "op" and token.value in operators:
            self._index += 1
            if token.value not in ("(", ")"):
                self._count_operator()
            return str(token.value)
        return None

    def _parse_or(self) -> Expr:
        left = self._parse_and()
        while self._match_op("||"):
            left = BinaryExpr("||", left, self._parse_and())
        return left

    def _parse_and(self) -> Expr:
        left = self._parse_equality()
        while self._match_op("&&"):
            left = BinaryExpr("&&", left, self._parse_equality())
        return left

    def _parse_equality(self) -> Expr:
        left = self._parse_relational()
        while True:
            operator = self._match_op("==", "!=", "===", "!==")
            if operator is None:
                return left
            left = BinaryExpr(operator, left, self._parse_relational())

    def _parse_relational(self) -> Expr:
        left = self._parse_unary()
        while True:
            operator = self._match_op("<", "<=", ">", ">=")
            if operator is None:
                return left
            left = BinaryExpr(operator, left, self._parse_unary())

    def _parse_unary(self) -> Expr:
        operator = self._match_op("!", "-")
        if operator is None:
            return self._parse_primary()
        self._enter()
        operand = self._parse_unary()
        self._depth -= 1
        return UnaryExpr(operator, operand)

    def _parse_primary(self) -> Expr:
        token = self._take()
        if token.kind in ("number", "string", "literal"):
            return LiteralExpr(token.value)
        if token.kind == "name":
            return VariableExpr(str(token.value))
        if token.kind == "op" and token.value == "(":
            self._enter()
            expr = self._parse_or()
            self._depth -= 1
            if not self._match_op(")"):
                closing = self._peek()
                raise ExpressionError(f"Expected ')' at position {closing.position}.")
            return expr
        if token.kind == "end":
            raise ExpressionError("Unexpected end of expression.")
        raise ExpressionError(f"Unexpected token {token.value!r} at position {token.position}.")

    def _count_operator(self) -> None:
        self._operators += 1
        if self._operators > _MAX_OPERATORS:
            raise ExpressionError(f"Expression uses more than {_MAX_OPERATORS} operators.")

    def _enter(self) -> None:
        self._depth += 1
        if self._depth > _MAX_DEPTH:
            raise ExpressionError(f"Expression nests deeper than {_MAX_DEPTH} levels.")


@lru_cache(maxsize=512)
def compile_expression(text: str) -> Expr:
    """Parse a condition into an expression tree, raising ExpressionError."""
    if not isinstance(text, str):
        raise ExpressionError("Condition must be a string.")
    return _Parser(_tokenize(text)).parse()


def is_truthy(value: object) -> bool:
    if value is None:
        return False
    if isinstance(value, float) and math.isnan(value):
        return False
    return bool(value)


def _to_number(value: object) -> float:
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return 0.0
        try:
            return float(stripped)
        except ValueError:
            return math.nan
    return math.nan


def _category(value: object) -> str:
    if value is None:
        return "none"
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    return "other"


def loose_equals(left: object, right: object) -> bool:
    if left is None or right is None:
        return left is None and right is None
    left_kind, right_kind = _category(left), _category(right)
    if left_kind == right_kind:
        return left == right
    if "other" in (left_kind, right_kind):
        return False
    return _to_number(left) == _to_number(right)


def strict_equals(left: object, right: object) -> bool:
    return _category(left) == _category(right) and left == right


def _compare(operator: str, left: object, right: object) -> bool:
    if left is None or right is None:
        return False
    if isinstance(left, str) and isinstance(right, str):
        a: object = left
        b: object = right
    else:
        a, b = _to_number(left), _to_number(right)
        if math.isnan(a) or math.isnan(b):
            return False
    if operator == "<":
        return a < b  # type: ignore[operator]
    if operator == "<=":
        return a <= b  # type: ignore[operator]
    if operator == ">":
        return a > b  # type: ignore[operator]
    return a >= b  # type: ignore[operator]


def evaluate_expression(expr: Expr, variables: Mapping[str, object]) -> object:
    """Evaluate a compiled expression tree and return the raw value."""
    if isinstance(expr, LiteralExpr):
        return expr.value
    if isinstance(expr, VariableExpr):
        return variables.get(expr.name)
    if isinstance(expr, UnaryExpr):
        operand = evaluate_expression(expr.operand, variables)
        if expr.operator == "!":
            return not is_truthy(operand)
        return -_to_number(operand)
    if isinstance(expr, BinaryExpr):
        left = evaluate_expression(expr.left, variables)
        if expr.operator == "&&":
            return evaluate_expression(expr.right, variables) if is_truthy(left) else left
        if expr.operator == "||":
            return left if is_truthy(left) else evaluate_expression(expr.right, variables)
        right = evaluate_expression(expr.right, variables)
        if expr.operator == "==":
            return loose_equals(left, right)
        if expr.operator == "!=":
            return not loose_equals(left, right)
        if expr.operator == "===":
            return strict_equals(left, right)
        if expr.operator == "!==":
            return not strict_equals(left, right)
        return _compare(expr.operator, left, right)
    raise ExpressionError(f"Unsupported expression node: {expr!r}")


class ConditionEvaluator:
    """Evaluates authored conditions against a variable store, failing closed."""

    def __init__(self) -> None:
        self.last_error: str | None = None

    def evaluate(self, expression: str | None, variables: Mapping[str, object]) -> bool:
        """Return the truth of ``expression``; blank means always true, errors mean false."""
        if expression is None:
            return True
        if not isinstance(expression, str):
            self.last_error = f"{expression!r}: condition must be a string"
            logger.warning("Condition %r treated as false: not a string", expression)
            return False
        if not expression.strip():
            return True
        try:
            return is_truthy(evaluate_expression(compile_expression(expression), variables))
        except (ExpressionError, RecursionError) as exc:
            self.last_error = f"{expression!r}: {exc}"
            logger.warning("Condition %r treated as false: %s", expression, exc)
            return False


def evaluate_condition(expression: str | None, variables: Mapping[str, object]) -> bool:
    """Convenience wrapper around a throwaway ConditionEvaluator."""
    return ConditionEvaluator().evaluate(expression, variables)

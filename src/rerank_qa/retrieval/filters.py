"""rerank_qa.retrieval.filters

Parser for portable metadata filter expressions.

Filter expressions arrive as opaque text in the advise context and are handed
verbatim to every data source. Sources backed by a LlamaIndex vector index use
this module to turn that text into :class:`MetadataFilters`.

Grammar
-------
::

    expr       := or_expr
    or_expr    := and_expr (("OR" | "||") and_expr)*
    and_expr   := term (("AND" | "&&") term)*
    term       := "(" expr ")" | comparison
    comparison := KEY op VALUE | KEY ["NOT"] "IN" "[" VALUE ("," VALUE)* "]"
    op         := "==" | "!=" | ">" | ">=" | "<" | "<="

Values are single- or double-quoted strings, integers or floats. Keywords
are case-insensitive. Inside strings ``\\n``, ``\\t`` and ``\\r`` stand for
newline, tab and carriage return; a backslash before any other character
keeps that character, so ``\\\\`` and ``\\'`` give a backslash and a quote.

Examples
--------
>>> filters = parse_filter_expression("source == 'docs' AND year >= 2023")
>>> filters.condition
<FilterCondition.AND: 'and'>

Functions
---------
parse_filter_expression
    Parse expression text into :class:`MetadataFilters`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from llama_index.core.vector_stores.types import (
    FilterCondition,
    FilterOperator,
    MetadataFilter,
    MetadataFilters,
)

from rerank_qa.errors import FilterExpressionError

_TOKEN_PATTERN = re.compile(
    r"""
    (?P<ws>\s+)
    | (?P<string>'(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*")
    | (?P<number>-?\d+(?:\.\d+)?(?:[eE][-+]?\d+)?)
    | (?P<op>==|!=|>=|<=|>|<|&&|\|\||\(|\)|\[|\]|,)
    | (?P<word>[A-Za-z_][A-Za-z0-9_.]*)
    """,
    re.VERBOSE,
)

_COMPARISON_OPERATORS = {
    "==": FilterOperator.EQ,
    "!=": FilterOperator.NE,
    ">": FilterOperator.GT,
    ">=": FilterOperator.GTE,
    "<": FilterOperator.LT,
    "<=": FilterOperator.LTE,
}

_KEYWORDS = {"and", "or", "not", "in"}


@dataclass(frozen=True)
class _Token:
    kind: str
    value: str
    position: int


def _tokenize(expression: str) -> list[_Token]:
    tokens: list[_Token] = []
    position = 0
    while position < len(expression):
        match = _TOKEN_PATTERN.match(expression, position)
        if match is None:
            raise FilterExpressionError("Unexpected character", expression, position)

        kind = match.lastgroup
        value = match.group(kind)
        if kind == "word" and value.lower() in _KEYWORDS:
            kind = "keyword"
            value = value.lower()
        if kind != "ws":
            tokens.append(_Token(kind=kind, value=value, position=position))
        position = match.end()

    return tokens


class _Parser:
    """Recursive-descent parser over the token stream."""

    def __init__(self, expression: str):
        self.expression = expression
        self.tokens = _tokenize(expression)
        self.pos = 0

    def parse(self) -> MetadataFilters:
        result = self._or_expr()
        if self._peek() is not None:
            self._fail("Unexpected token")
        if isinstance(result, MetadataFilter):
            return MetadataFilters(filters=[result])
        return result

    def _peek(self) -> _Token | None:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _advance(self) -> _Token:
        token = self._peek()
        if token is None:
            raise FilterExpressionError("Unexpected end of expression", self.expression, len(self.expression))
        self.pos += 1
        return token

    def _fail(self, message: str):
        token = self._peek()
        position = token.position if token is not None else len(self.expression)
        raise FilterExpressionError(message, self.expression, position)

    def _accept(self, *values: str) -> bool:
        token = self._peek()
        if token is not None and token.kind in {"op", "keyword"} and token.value in values:
            self.pos += 1
            return True
        return False

    def _expect(self, value: str):
        if not self._accept(value):
            self._fail(f"Expected {value!r}")

    def _or_expr(self) -> MetadataFilters | MetadataFilter:
        parts = [self._and_expr()]
        while self._accept("or", "||"):
            parts.append(self._and_expr())
        return _combine(parts, FilterCondition.OR)

    def _and_expr(self) -> MetadataFilters | MetadataFilter:
        parts = [self._term()]
        while self._accept("and", "&&"):
            parts.append(self._term())
        return _combine(parts, FilterCondition.AND)

    def _term(self) -> MetadataFilters | MetadataFilter:
        if self._accept("("):
            inner = self._or_expr()
            self._expect(")")
            return inner
        return self._comparison()

    def _comparison(self) -> MetadataFilter:
        token = self._peek()
        if token is None or token.kind != "word":
            self._fail("Expected a metadata key")
        key = self._advance().value

        if self._accept("not"):
            self._expect("in")
            return MetadataFilter(key=key, value=self._value_list(), operator=FilterOperator.NIN)
        if self._accept("in"):
            return MetadataFilter(key=key, value=self._value_list(), operator=FilterOperator.IN)

        token = self._peek()
        if token is None or token.kind != "op" or token.value not in _COMPARISON_OPERATORS:
            self._fail("Expected a comparison operator")
        operator = _COMPARISON_OPERATORS[self._advance().value]
        return MetadataFilter(key=key, value=self._value(), operator=operator)

    def _value_list(self) -> list[Any]:
        self._expect("[")
        values = [self._value()]
        while self._accept(","):
            values.append(self._value())
        self._expect("]")
        return values

    def _value(self) -> Any:
        token = self._peek()
        if token is None:
            self._fail("Expected a value")

        if token.kind == "string":
            self._advance()
            return _unquote(token.value)
        if token.kind == "number":
            self._advance()
            text = token.value
            if any(c in text for c in ".eE"):
                return float(text)
            return int(text)
        self._fail("Expected a value")


_ESCAPES = {"n": "\n", "t": "\t", "r": "\r"}


def _unquote(literal: str) -> str:
    body = literal[1:-1]
    return re.sub(r"\\(.)", lambda m: _ESCAPES.get(m.group(1), m.group(1)), body)


def _combine(parts: list, condition: FilterCondition) -> MetadataFilters | MetadataFilter:
    if len(parts) == 1:
        return parts[0]
    return MetadataFilters(filters=parts, condition=condition)


def parse_filter_expression(expression: str | None) -> MetadataFilters | None:
    """Parse a filter expression into LlamaIndex metadata filters.

    Parameters
    ----------
    expression : str or None
        Filter expression text. ``None`` or blank text means "no filter".

    Returns
    -------
    MetadataFilters or None
        Parsed filters, or ``None`` when no filter was given.

    Raises
    ------
    FilterExpressionError
        If the expression is not valid under the grammar above.
    """
    if expression is None or not str(expression).strip():
        return None
    return _Parser(str(expression)).parse()


__all__ = ["parse_filter_expression"]

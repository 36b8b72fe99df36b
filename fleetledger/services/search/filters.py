"""Parser for the resource search language.

Examples::

    name = 'prod-east'
    labels.environment = 'production' and status.conditions.Ready = 'True'
    (labels.tier in ('gold', 'silver') or name like 'edge-%') and not id = 'abc'

Keywords are case-insensitive. ``not`` binds tighter than ``and``, which binds
tighter than ``or``. The result is a small immutable expression tree that the
search compiler walks.
"""
from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Union

from fleetledger.core.errors import FilterSyntaxError


OP_EQ = "="
OP_NE = "!="
OP_LT = "<"
OP_LE = "<="
OP_GT = ">"
OP_GE = ">="
OP_LIKE = "like"
OP_ILIKE = "ilike"
OP_IN = "in"
OP_NOT_IN = "not in"
OP_NOT_LIKE = "not like"

COMPARISON_OPERATORS = frozenset({OP_EQ, OP_NE, OP_LT, OP_LE, OP_GT, OP_GE})

Value = Union[str, int, float]


@dataclass(frozen=True)
class Comparison:
    field: str
    operator: str
    value: Value | tuple[Value, ...]


@dataclass(frozen=True)
class BooleanOp:
    operator: str
    operands: tuple["Node", ...]


@dataclass(frozen=True)
class Not:
    operand: "Node"


@dataclass(frozen=True)
class AlwaysTrue:
    # Stands in for a term that was lifted out of the tree.
    pass


Node = Union[Comparison, BooleanOp, Not, AlwaysTrue]


_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<string>'(?:[^']|'')*')
  | (?P<number>-?\d+(?:\.\d+)?(?![A-Za-z_.]))
  | (?P<op><=|>=|!=|<>|=|<|>)
  | (?P<lparen>\()
  | (?P<rparen>\))
  | (?P<comma>,)
  | (?P<ident>[A-Za-z_][A-Za-z0-9_.\-/]*)
    """,
    re.VERBOSE,
)

_KEYWORDS = {"and", "or", "not", "in", "like", "ilike"}


@dataclass(frozen=True)
class _Token:
    kind: str
    text: str
    pos: int


def tokenize(search: str) -> list[_Token]:
    tokens: list[_Token] = []
    pos = 0
    while pos < len(search):
        match = _TOKEN_RE.match(search, pos)
        if match is None:
            raise FilterSyntaxError(
                f"Unexpected character {search[pos]!r} at position {pos}", position=pos
            )
        kind = match.lastgroup or ""
        text = match.group()
        if kind == "ident" and text.lower() in _KEYWORDS:
            kind = "keyword"
            text = text.lower()
        if kind != "ws":
            tokens.append(_Token(kind=kind, text=text, pos=pos))
        pos = match.end()
    return tokens


class _Parser:
    def __init__(self, search: str) -> None:
        self._search = search
        self._tokens = tokenize(search)
        self._index = 0

    def parse(self) -> Node:
        if not self._tokens:
            raise FilterSyntaxError("Search expression is empty", position=0)
        node = self._parse_or()
        token = self._peek()
        if token is not None:
            self._fail(f"Unexpected {token.text!r}", token)
        return node

    def _peek(self) -> _Token | None:
        if self._index < len(self._tokens):
            return self._tokens[self._index]
        return None

    def _advance(self) -> _Token:
        token = self._peek()
        if token is None:
            raise FilterSyntaxError("Unexpected end of search expression", position=len(self._search))
        self._index += 1
        return token

    def _accept_keyword(self, word: str) -> bool:
        token = self._peek()
        if token is not None and token.kind == "keyword" and token.text == word:
            self._index += 1
            return True
        return False

    def _expect(self, kind: str, description: str) -> _Token:
        token = self._advance()
        if token.kind != kind:
            self._fail(f"Expected {description}, found {token.text!r}", token)
        return token

    def _fail(self, message: str, token: _Token) -> None:
        raise FilterSyntaxError(f"{message} at position {token.pos}", position=token.pos)

    def _parse_or(self) -> Node:
        operands = [self._parse_and()]
        while self._accept_keyword("or"):
            operands.append(self._parse_and())
        return _combine("or", operands)

    def _parse_and(self) -> Node:
        operands = [self._parse_not()]
        while self._accept_keyword("and"):
            operands.append(self._parse_not())
        return _combine("and", operands)

    def _parse_not(self) -> Node:
        if self._accept_keyword("not"):
            return Not(self._parse_not())
        return self._parse_primary()

    def _parse_primary(self) -> Node:
        token = self._peek()
        if token is not None and token.kind == "lparen":
            self._advance()
            node = self._parse_or()
            self._expect("rparen", "')'")
            return node
        return self._parse_comparison()

    def _parse_comparison(self) -> Comparison:
        field = self._expect("ident", "a field name").text
        token = self._advance()
        if token.kind == "op":
            operator = OP_NE if token.text == "<>" else token.text
            return Comparison(field=field, operator=operator, value=self._parse_value())
        if token.kind == "keyword" and token.text in {OP_LIKE, OP_ILIKE}:
            return Comparison(field=field, operator=token.text, value=self._parse_string())
        if token.kind == "keyword" and token.text == "in":
            return Comparison(field=field, operator=OP_IN, value=self._parse_list())
        if token.kind == "keyword" and token.text == "not":
            if self._accept_keyword("in"):
                return Comparison(field=field, operator=OP_NOT_IN, value=self._parse_list())
            if self._accept_keyword("like"):
                return Comparison(field=field, operator=OP_NOT_LIKE, value=self._parse_string())
        self._fail(f"Expected an operator after {field!r}, found {token.text!r}", token)
        raise AssertionError("unreachable")

    def _parse_value(self) -> Value:
        token = self._advance()
        if token.kind == "string":
            return _unquote(token.text)
        if token.kind == "number":
            return float(token.text) if "." in token.text else int(token.text)
        self._fail(f"Expected a quoted value or number, found {token.text!r}", token)
        raise AssertionError("unreachable")

    def _parse_string(self) -> str:
        token = self._expect("string", "a quoted pattern")
        return _unquote(token.text)

    def _parse_list(self) -> tuple[Value, ...]:
        self._expect("lparen", "'('")
        values = [self._parse_value()]
        while True:
            token = self._advance()
            if token.kind == "rparen":
                return tuple(values)
            if token.kind != "comma":
                self._fail(f"Expected ',' or ')', found {token.text!r}", token)
            values.append(self._parse_value())


def _unquote(text: str) -> str:
    return text[1:-1].replace("''", "'")


def _combine(operator: str, operands: list[Node]) -> Node:
    if len(operands) == 1:
        return operands[0]
    # Flatten chains such as a AND (b AND c) into one n-ary node.
    flat: list[Node] = []
    for operand in operands:
        if isinstance(operand, BooleanOp) and operand.operator == operator:
            flat.extend(operand.operands)
        else:
            flat.append(operand)
    return BooleanOp(operator=operator, operands=tuple(flat))


def parse_filter(search: str, *, max_length: int | None = None) -> Node:
    if max_length is not None and len(search) > max_length:
        raise FilterSyntaxError(
            f"Search expression exceeds {max_length} characters", position=max_length
        )
    return _Parser(search).parse()

"""Boolean conditions over recorded answers.

Workflow definitions use small conditions such as ``transport_mode==air`` or
``permit==no || qty_per_pkg!=1`` in ``required_if``, ``actions_if`` and
``next`` rules. The grammar is deliberately tiny::

    expr       := and_expr ( "||" and_expr )*
    and_expr   := term ( "&&" term )*
    term       := IDENT ( ("==" | "!=") literal )?
                | "true" | "false" | "null"
    literal    := WORD | 'quoted' | "quoted"

Bare literals are strings unless they are ``true``, ``false`` or ``null``.
``&&`` binds tighter than ``||``. A term without a comparison tests the
truthiness of the answer. Unknown identifiers resolve to ``None`` which only
equals ``null``.

Expressions are tokenized and parsed into a tree; nothing is ever executed.
"""

from __future__ import annotations

import re
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from functools import lru_cache

from guided_workflow.errors import ExpressionError

ALWAYS = "always"

_KEYWORDS: dict[str, bool | None] = {"true": True, "false": False, "null": None}

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
    | (?P<op>==|!=|&&|\|\|)
    | (?P<string>'[^']*'|"[^"]*")
    | (?P<word>[A-Za-z0-9_.\-]+)
    """,
    re.VERBOSE,
)

_IDENT_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_.]*")

Scalar = str | int | float | bool | None


@dataclass(frozen=True, slots=True)
class _Token:
    kind: str
    text: str
    pos: int


@dataclass(frozen=True, slots=True)
class Constant:
    value: bool | None


@dataclass(frozen=True, slots=True)
class Truthy:
    name: str


@dataclass(frozen=True, slots=True)
class Comparison:
    name: str
    negate: bool
    literal: Scalar


@dataclass(frozen=True, slots=True)
class AllOf:
    terms: tuple[Node, ...]


@dataclass(frozen=True, slots=True)
class AnyOf:
    terms: tuple[Node, ...]


Node = Constant | Truthy | Comparison | AllOf | AnyOf


def _tokenize(expression: str) -> list[_Token]:
    tokens: list[_Token] = []
    pos = 0
    while pos < len(expression):
        match = _TOKEN_RE.match(expression, pos)
        if match is None:
            raise ExpressionError(
                f"Unsupported character {expression[pos]!r} at {pos} in {expression!r}"
            )
        kind = match.lastgroup or ""
        if kind != "ws":
            tokens.append(_Token(kind=kind, text=match.group(), pos=pos))
        pos = match.end()
    return tokens


class _Parser:
    def __init__(self, expression: str) -> None:
        self._expression = expression
        self._tokens = _tokenize(expression)
        self._index = 0

    def parse(self) -> Node:
        if not self._tokens:
            raise ExpressionError("Empty expression")
        node = self._or()
        if self._index != len(self._tokens):
            tok = self._tokens[self._index]
            raise self._error(f"Unexpected {tok.text!r} at {tok.pos}")
        return node

    def _error(self, message: str) -> ExpressionError:
        return ExpressionError(f"{message} in {self._expression!r}")

    def _peek(self) -> _Token | None:
        if self._index < len(self._tokens):
            return self._tokens[self._index]
        return None

    def _take(self) -> _Token:
        tok = self._peek()
        if tok is None:
            raise self._error("Unexpected end of expression")
        self._index += 1
        return tok

    def _or(self) -> Node:
        terms = [self._and()]
        while (tok := self._peek()) is not None and tok.text == "||":
            self._index += 1
            terms.append(self._and())
        return terms[0] if len(terms) == 1 else AnyOf(tuple(terms))

    def _and(self) -> Node:
        terms = [self._term()]
        while (tok := self._peek()) is not None and tok.text == "&&":
            self._index += 1
            terms.append(self._term())
        return terms[0] if len(terms) == 1 else AllOf(tuple(terms))

    def _term(self) -> Node:
        tok = self._take()
        if tok.kind != "word":
            raise self._error(f"Expected an answer name at {tok.pos}, got {tok.text!r}")

        nxt = self._peek()
        if nxt is None or nxt.text not in {"==", "!="}:
            if tok.text in _KEYWORDS:
                return Constant(_KEYWORDS[tok.text])
            return Truthy(self._ident(tok))

        name = self._ident(tok)
        self._index += 1
        return Comparison(name=name, negate=nxt.text == "!=", literal=self._literal())

    def _ident(self, tok: _Token) -> str:
        if tok.text in _KEYWORDS or not _IDENT_RE.fullmatch(tok.text):
            raise self._error(f"{tok.text!r} at {tok.pos} is not a valid answer name")
        return tok.text

    def _literal(self) -> Scalar:
        tok = self._take()
        if tok.kind == "string":
            return tok.text[1:-1]
        if tok.kind != "word":
            raise self._error(f"Expected a literal at {tok.pos}, got {tok.text!r}")
        if tok.text in _KEYWORDS:
            return _KEYWORDS[tok.text]
        return tok.text


@lru_cache(maxsize=1024)
def parse(expression: str) -> Node:
    """Parse an expression into an immutable tree.

    Raises:
        ExpressionError: If the expression does not match the grammar.
    """

    return _Parser(expression).parse()


def _equals(value: object, literal: Scalar) -> bool:
    if literal is None:
        return value is None
    if isinstance(literal, bool):
        return isinstance(value, bool) and value is literal
    if value is None or isinstance(value, bool):
        return False
    if isinstance(value, int | float):
        try:
            return float(str(literal)) == value
        except ValueError:
            return False
    return str(value) == literal


def _resolve(name: str, answers: Mapping[str, object]) -> object:
    return answers.get(name)


def _evaluate(node: Node, answers: Mapping[str, object]) -> bool:
    if isinstance(node, Constant):
        return bool(node.value)
    if isinstance(node, Truthy):
        return bool(_resolve(node.name, answers))
    if isinstance(node, Comparison):
        result = _equals(_resolve(node.name, answers), node.literal)
        return not result if node.negate else result
    if isinstance(node, AllOf):
        return all(_evaluate(term, answers) for term in node.terms)
    return any(_evaluate(term, answers) for term in node.terms)


def evaluate(expression: str, answers: Mapping[str, object]) -> bool:
    """Evaluate ``expression`` against the answer mapping."""

    return _evaluate(parse(expression), answers)


def comparisons(node: Node) -> Iterator[Comparison]:
    """Yield every ``name==literal`` / ``name!=literal`` term in ``node``."""

    if isinstance(node, Comparison):
        yield node
    elif isinstance(node, AllOf | AnyOf):
        for term in node.terms:
            yield from comparisons(term)

"""A small predicate language over a flat fact map.

Grammar, lowest precedence first::

    or_expr    := and_expr (("or" | "||") and_expr)*
    and_expr   := not_expr (("and" | "&&") not_expr)*
    not_expr   := ("not" | "!") not_expr | comparison
    comparison := additive (("<" | "<=" | ">" | ">=" | "==" | "!=" | "in") additive)?
    additive   := term (("+" | "-") term)*
    term       := unary (("*" | "/" | "%") unary)*
    unary      := "-" unary | primary
    primary    := NUMBER | STRING | "true" | "false" | IDENT | "(" or_expr ")"
                | "[" [or_expr ("," or_expr)*] "]"

Expressions compile to nested closures taking the fact map. Compilation
errors raise RuleCompileError; lookups of unknown facts raise
RuleEvaluationError at evaluation time.
"""

import operator
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from ..errors import RuleCompileError, RuleEvaluationError

Facts = Mapping[str, Any]
Node = Callable[[Facts], Any]

_TOKEN_RE = re.compile(
    r"""
    \s*(?:
        (?P<number>\d+(?:\.\d+)?)
      | (?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
      | (?P<op>&&|\|\||==|!=|>=|<=|[-+*/%<>!()\[\],])
      | (?P<name>[A-Za-z_][A-Za-z0-9_]*)
    )
    """,
    re.VERBOSE,
)

_KEYWORDS = {"and", "or", "not", "in", "true", "false"}

MAX_NESTING = 64

_COMPARISONS: dict[str, Callable[[Any, Any], Any]] = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "==": operator.eq,
    "!=": operator.ne,
    "in": lambda left, right: left in right,
}

_ARITHMETIC: dict[str, Callable[[Any, Any], Any]] = {
    "+": operator.add,
    "-": operator.sub,
    "*": operator.mul,
    "/": operator.truediv,
    "%": operator.mod,
}


@dataclass(frozen=True)
class Token:
    kind: str  # "number" | "string" | "op" | "name" | "end"
    value: str
    pos: int


def tokenize(source: str) -> list[Token]:
    tokens: list[Token] = []
    pos = 0
    length = len(source)
    while pos < length:
        if source[pos:].strip() == "":
            break
        match = _TOKEN_RE.match(source, pos)
        if match is None or match.end() == pos:
            raise RuleCompileError(f"Unexpected character {source[pos:].lstrip()[:1]!r} at {pos}")
        kind = match.lastgroup or ""
        tokens.append(Token(kind=kind, value=match.group(kind), pos=match.start(kind)))
        pos = match.end()
    tokens.append(Token(kind="end", value="", pos=length))
    return tokens


def _unquote(literal: str) -> str:
    body = literal[1:-1]
    return re.sub(r"\\(.)", r"\1", body)


def _lookup(name: str) -> Node:
    def node(facts: Facts) -> Any:
        try:
            return facts[name]
        except KeyError:
            raise RuleEvaluationError(f"Unknown fact {name!r}") from None

    return node


def _constant(value: Any) -> Node:
    return lambda facts: value


def _truth(value: Any) -> bool:
    if not isinstance(value, bool):
        raise RuleEvaluationError(f"Expected a boolean, got {type(value).__name__}")
    return value


class _Parser:
    def __init__(self, source: str) -> None:
        self._source = source
        self._tokens = tokenize(source)
        self._pos = 0
        self._depth = 0

    # --- token helpers ---

    def _peek(self) -> Token:
        return self._tokens[self._pos]

    def _advance(self) -> Token:
        token = self._tokens[self._pos]
        self._pos += 1
        return token

    def _accept(self, *values: str) -> Token | None:
        token = self._peek()
        if token.kind in ("op", "name") and token.value in values:
            return self._advance()
        return None

    def _descend(self) -> None:
        self._depth += 1
        if self._depth > MAX_NESTING:
            raise RuleCompileError(f"Expression nested deeper than {MAX_NESTING} levels")

    def _expect(self, value: str) -> Token:
        token = self._accept(value)
        if token is None:
            found = self._peek()
            raise RuleCompileError(f"Expected {value!r} at {found.pos}, found {found.value!r}")
        return token

    # --- grammar ---

    def parse(self) -> Node:
        if self._peek().kind == "end":
            raise RuleCompileError("Empty expression")
        node = self._or_expr()
        trailing = self._peek()
        if trailing.kind != "end":
            raise RuleCompileError(f"Unexpected {trailing.value!r} at {trailing.pos}")
        return node

    def _or_expr(self) -> Node:
        operands = [self._and_expr()]
        while self._accept("or", "||"):
            operands.append(self._and_expr())
        if len(operands) == 1:
            return operands[0]
        return lambda facts: any(_truth(op(facts)) for op in operands)

    def _and_expr(self) -> Node:
        operands = [self._not_expr()]
        while self._accept("and", "&&"):
            operands.append(self._not_expr())
        if len(operands) == 1:
            return operands[0]
        return lambda facts: all(_truth(op(facts)) for op in operands)

    def _not_expr(self) -> Node:
        if self._accept("not", "!"):
            self._descend()
            inner = self._not_expr()
            self._depth -= 1
            return lambda facts: not _truth(inner(facts))
        return self._comparison()

    def _comparison(self) -> Node:
        left = self._additive()
        token = self._accept(*_COMPARISONS)
        if token is None:
            return left
        right = self._additive()
        compare = _COMPARISONS[token.value]
        return lambda facts: compare(left(facts), right(facts))

    def _additive(self) -> Node:
        node = self._term()
        while token := self._accept("+", "-"):
            node = self._binary(node, self._term(), _ARITHMETIC[token.value])
        return node

    def _term(self) -> Node:
        node = self._unary()
        while token := self._accept("*", "/", "%"):
            node = self._binary(node, self._unary(), _ARITHMETIC[token.value])
        return node

    @staticmethod
    def _binary(left: Node, right: Node, fn: Callable[[Any, Any], Any]) -> Node:
        return lambda facts: fn(left(facts), right(facts))

    def _unary(self) -> Node:
        if self._accept("-"):
            self._descend()
            inner = self._unary()
            self._depth -= 1
            return lambda facts: -inner(facts)
        return self._primary()

    def _primary(self) -> Node:
        token = self._advance()
        if token.kind == "number":
            value = float(token.value) if "." in token.value else int(token.value)
            return _constant(value)
        if token.kind == "string":
            return _constant(_unquote(token.value))
        if token.kind == "name":
            if token.value == "true":
                return _constant(True)
            if token.value == "false":
                return _constant(False)
            if token.value in _KEYWORDS:
                raise RuleCompileError(f"Unexpected keyword {token.value!r} at {token.pos}")
            return _lookup(token.value)
        if token.kind == "op" and token.value == "(":
            self._descend()
            node = self._or_expr()
            self._expect(")")
            self._depth -= 1
            return node
        if token.kind == "op" and token.value == "[":
            self._descend()
            node = self._list_literal()
            self._depth -= 1
            return node
        if token.kind == "end":
            raise RuleCompileError("Unexpected end of expression")
        raise RuleCompileError(f"Unexpected {token.value!r} at {token.pos}")

    def _list_literal(self) -> Node:
        items: list[Node] = []
        if not self._accept("]"):
            items.append(self._or_expr())
            while self._accept(","):
                items.append(self._or_expr())
            self._expect("]")
        return lambda facts: [item(facts) for item in items]


def compile_expression(source: str) -> Node:
    """Compile an expression string into a callable over a fact map."""
    return _Parser(source).parse()

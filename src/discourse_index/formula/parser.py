"""Tokenizer and recursive-descent parser for attribute formulas.

    expr    := term (('+'|'-') term)*
    term    := factor (('*'|'/') factor)*
    factor  := NUMBER | '(' expr ')' | '-' factor | FUNCCALL
    FUNCCALL:= '{' OP ':' RELATION_NAME [':' NODE_TYPE [':' ATTR_NAME]] '}'
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal

from ..errors import FormulaParseError
from .expr import Aggregate, Binary, Expr, Negate, Number

TokenKind = Literal["number", "op", "lparen", "rparen", "call", "end"]

_NUMBER = re.compile(r"\d+(?:\.\d*)?|\.\d+")
_NAME = re.compile(r"[A-Za-z_][A-Za-z0-9_\-]*")
_AGGREGATES = ("count", "sum", "avg")
_ANY_TYPE = ("", "*")


@dataclass(frozen=True, slots=True)
class Token:
    kind: TokenKind
    text: str
    pos: int


def tokenize(source: str) -> list[Token]:
    tokens: list[Token] = []
    i = 0
    n = len(source)
    while i < n:
        ch = source[i]
        if ch.isspace():
            i += 1
            continue
        if ch in "+-*/":
            tokens.append(Token("op", ch, i))
            i += 1
            continue
        if ch == "(":
            tokens.append(Token("lparen", ch, i))
            i += 1
            continue
        if ch == ")":
            tokens.append(Token("rparen", ch, i))
            i += 1
            continue
        if ch == "{":
            end = source.find("}", i + 1)
            if end < 0:
                raise FormulaParseError("unterminated '{'", source=source, position=i)
            tokens.append(Token("call", source[i + 1 : end], i))
            i = end + 1
            continue
        m = _NUMBER.match(source, i)
        if m:
            tokens.append(Token("number", m.group(0), i))
            i = m.end()
            continue
        raise FormulaParseError(f"unexpected character {ch!r}", source=source, position=i)
    tokens.append(Token("end", "", n))
    return tokens


class _Parser:
    def __init__(self, source: str):
        self.source = source
        self.tokens = tokenize(source)
        self.i = 0

    def _peek(self) -> Token:
        return self.tokens[self.i]

    def _next(self) -> Token:
        tok = self.tokens[self.i]
        self.i += 1
        return tok

    def _error(self, message: str, tok: Token) -> FormulaParseError:
        return FormulaParseError(message, source=self.source, position=tok.pos)

    def parse(self) -> Expr:
        if self._peek().kind == "end":
            raise self._error("empty formula", self._peek())
        expr = self._expr()
        tok = self._peek()
        if tok.kind != "end":
            raise self._error(f"unexpected {tok.text!r}", tok)
        return expr

    def _expr(self) -> Expr:
        left = self._term()
        while self._peek().kind == "op" and self._peek().text in "+-":
            op = self._next().text
            left = Binary(op, left, self._term())  # type: ignore[arg-type]
        return left

    def _term(self) -> Expr:
        left = self._factor()
        while self._peek().kind == "op" and self._peek().text in "*/":
            op = self._next().text
            left = Binary(op, left, self._factor())  # type: ignore[arg-type]
        return left

    def _factor(self) -> Expr:
        tok = self._next()
        if tok.kind == "number":
            return Number(float(tok.text))
        if tok.kind == "op" and tok.text == "-":
            return Negate(self._factor())
        if tok.kind == "lparen":
            inner = self._expr()
            close = self._next()
            if close.kind != "rparen":
                raise self._error("expected ')'", close)
            return inner
        if tok.kind == "call":
            return self._call(tok)
        if tok.kind == "end":
            raise self._error("unexpected end of formula", tok)
        raise self._error(f"unexpected {tok.text!r}", tok)

    def _call(self, tok: Token) -> Aggregate:
        parts = [p.strip() for p in tok.text.split(":")]
        if not 2 <= len(parts) <= 4:
            raise self._error("expected {op:relation[:type[:attribute]]}", tok)
        op, relation, *rest = parts
        if op not in _AGGREGATES:
            raise self._error(f"unknown aggregate {op!r}", tok)
        if not _NAME.fullmatch(relation):
            raise self._error(f"invalid relation name {relation!r}", tok)

        node_type = rest[0] if rest else ""
        attribute = rest[1] if len(rest) > 1 else ""
        if node_type not in _ANY_TYPE and not _NAME.fullmatch(node_type):
            raise self._error(f"invalid node type {node_type!r}", tok)
        if attribute and not _NAME.fullmatch(attribute):
            raise self._error(f"invalid attribute name {attribute!r}", tok)

        if op == "count" and attribute:
            raise self._error("count takes no attribute", tok)
        if op != "count" and not attribute:
            raise self._error(f"{op} requires an attribute", tok)

        return Aggregate(
            op=op,  # type: ignore[arg-type]
            relation=relation,
            node_type=None if node_type in _ANY_TYPE else node_type,
            attribute=attribute or None,
        )


def parse_formula(source: str) -> Expr:
    """Parse `source` into an AST; raises FormulaParseError."""
    return _Parser(source).parse()

"""Immutable formula AST."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Union

AggregateOp = Literal["count", "sum", "avg"]
BinaryOp = Literal["+", "-", "*", "/"]


@dataclass(frozen=True, slots=True)
class Number:
    value: float


@dataclass(frozen=True, slots=True)
class Negate:
    operand: Expr


@dataclass(frozen=True, slots=True)
class Binary:
    op: BinaryOp
    left: Expr
    right: Expr


@dataclass(frozen=True, slots=True)
class Aggregate:
    """`{op:relation[:node_type[:attribute]]}`.

    `relation` is the human-facing name (own name or inverse); `node_type` None
    matches any neighbor type.
    """

    op: AggregateOp
    relation: str
    node_type: str | None = None
    attribute: str | None = None


Expr = Union[Number, Negate, Binary, Aggregate]


def aggregates(expr: Expr) -> list[Aggregate]:
    """All aggregate calls in `expr`, left to right."""
    if isinstance(expr, Aggregate):
        return [expr]
    if isinstance(expr, Negate):
        return aggregates(expr.operand)
    if isinstance(expr, Binary):
        return aggregates(expr.left) + aggregates(expr.right)
    return []

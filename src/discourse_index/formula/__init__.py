from .engine import Badge, FormulaEngine
from .expr import Aggregate, Binary, Expr, Negate, Number
from .parser import parse_formula, tokenize

__all__ = [
    "Aggregate",
    "Badge",
    "Binary",
    "Expr",
    "FormulaEngine",
    "Negate",
    "Number",
    "parse_formula",
    "tokenize",
]

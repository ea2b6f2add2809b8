from __future__ import annotations

import logging
from dataclasses import dataclass

from ..errors import FormulaError, FormulaEvalError, FormulaParseError
from ..graph.models import Node
from ..graph.store import SQLiteGraphStore
from ..registry import TypeRegistry
from .expr import Aggregate, Binary, Expr, Negate, Number, aggregates
from .parser import parse_formula

logger = logging.getLogger(__name__)

AttributeKey = tuple[str, str]


@dataclass(frozen=True, slots=True)
class Badge:
    attribute: str
    value: float


class FormulaEngine:
    """Evaluates per-type attribute formulas against the graph store.

    Parsed formulas are cached on the engine. Each top-level request gets its own
    memo keyed by (node_id, attribute), so evaluation is safe to run for several
    nodes concurrently.
    """

    def __init__(self, store: SQLiteGraphStore, registry: TypeRegistry, *, max_depth: int = 32):
        self.store = store
        self.registry = registry
        self.max_depth = max_depth
        self._compiled: dict[str, Expr] = {}

        for problem in self.formula_problems():
            logger.warning("Formula problem: %s", problem)
        for cycle in self.formula_cycles():
            chain = " -> ".join(f"{t}.{a}" for t, a in cycle)
            logger.warning("Formula dependency cycle: %s", chain)

    def compile(self, source: str) -> Expr:
        """Parse `source` and check its relation names; results are cached."""
        expr = self._compiled.get(source)
        if expr is not None:
            return expr
        expr = parse_formula(source)
        for agg in aggregates(expr):
            if self.registry.resolve_relation(agg.relation) is None:
                raise FormulaParseError(f"unknown relation {agg.relation!r}", source=source)
        self._compiled[source] = expr
        return expr

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def compute_attribute(self, node_id: str, name: str) -> float:
        node = self.store.get(node_id)
        if node is None:
            logger.warning("Cannot compute %s: no node %s", name, node_id)
            return 0.0
        return _Evaluation(self).attribute(node, name, 0)

    def compute_all_attributes(self, node_id: str) -> dict[str, float]:
        node = self.store.get(node_id)
        if node is None:
            return {}
        ev = _Evaluation(self)
        return {name: ev.attribute(node, name, 0) for name in self.registry.formulas(node.type)}

    def badge(self, node_id: str) -> Badge | None:
        node = self.store.get(node_id)
        if node is None:
            return None
        attribute = self.registry.badge_attribute(node.type)
        if attribute is None:
            return None
        return Badge(attribute=attribute, value=_Evaluation(self).attribute(node, attribute, 0))

    # ------------------------------------------------------------------
    # Configuration checks
    # ------------------------------------------------------------------

    def formula_problems(self) -> list[str]:
        problems: list[str] = []
        for node_type in self.registry.node_types:
            for attribute, source in self.registry.formulas(node_type).items():
                try:
                    self.compile(source)
                except FormulaParseError as e:
                    problems.append(f"{node_type}.{attribute}: {e}")
        return problems

    def dependencies(self) -> dict[AttributeKey, set[AttributeKey]]:
        """Type-level graph: (type, attribute) -> attributes its formula reads."""
        graph: dict[AttributeKey, set[AttributeKey]] = {}
        for node_type in self.registry.node_types:
            for attribute, source in self.registry.formulas(node_type).items():
                deps: set[AttributeKey] = set()
                try:
                    expr = self.compile(source)
                except FormulaParseError:
                    expr = Number(0.0)
                for agg in aggregates(expr):
                    if agg.attribute is None:
                        continue
                    targets = [agg.node_type] if agg.node_type else self.registry.node_types
                    for t in targets:
                        if self.registry.formula(t, agg.attribute) is not None:
                            deps.add((t, agg.attribute))
                graph[(node_type, attribute)] = deps
        return graph

    def formula_cycles(self) -> list[list[AttributeKey]]:
        """Strongly connected components of the dependency graph that form cycles."""
        graph = self.dependencies()
        index: dict[AttributeKey, int] = {}
        low: dict[AttributeKey, int] = {}
        stack: list[AttributeKey] = []
        on_stack: set[AttributeKey] = set()
        cycles: list[list[AttributeKey]] = []

        def visit(v: AttributeKey) -> None:
            index[v] = low[v] = len(index)
            stack.append(v)
            on_stack.add(v)
            for w in graph.get(v, ()):
                if w not in index:
                    visit(w)
                    low[v] = min(low[v], low[w])
                elif w in on_stack:
                    low[v] = min(low[v], index[w])
            if low[v] == index[v]:
                component: list[AttributeKey] = []
                while True:
                    w = stack.pop()
                    on_stack.discard(w)
                    component.append(w)
                    if w == v:
                        break
                if len(component) > 1 or v in graph.get(v, ()):
                    cycles.append(sorted(component))

        for v in sorted(graph):
            if v not in index:
                visit(v)
        return cycles


class _Evaluation:
    """State for one top-level request: memo plus the attributes being computed."""

    def __init__(self, engine: FormulaEngine):
        self.engine = engine
        self.memo: dict[AttributeKey, float] = {}
        self.active: set[AttributeKey] = set()

    def attribute(self, node: Node, name: str, depth: int) -> float:
        key = (node.id, name)
        if key in self.memo:
            return self.memo[key]
        if key in self.active:
            raise FormulaEvalError(f"cyclic dependency on {name} of {node.id}")
        if depth > self.engine.max_depth:
            raise FormulaEvalError(f"maximum formula depth {self.engine.max_depth} exceeded")

        try:
            value = self._evaluate(node, name, depth)
        except FormulaError as e:
            logger.warning("Attribute %s of %s defaults to 0: %s", name, node.id, e)
            value = 0.0
        self.memo[key] = value
        return value

    def _evaluate(self, node: Node, name: str, depth: int) -> float:
        source = self.engine.registry.formula(node.type, name)
        if source is None:
            raise FormulaEvalError(f"type {node.type!r} has no attribute {name!r}")
        expr = self.engine.compile(source)
        key = (node.id, name)
        self.active.add(key)
        try:
            return self._eval(expr, node, depth)
        finally:
            self.active.discard(key)

    def _eval(self, expr: Expr, node: Node, depth: int) -> float:
        if isinstance(expr, Number):
            return expr.value
        if isinstance(expr, Negate):
            return -self._eval(expr.operand, node, depth)
        if isinstance(expr, Binary):
            left = self._eval(expr.left, node, depth)
            right = self._eval(expr.right, node, depth)
            if expr.op == "+":
                return left + right
            if expr.op == "-":
                return left - right
            if expr.op == "*":
                return left * right
            return left / right if right != 0 else 0.0
        return self._aggregate(expr, node, depth)

    def _aggregate(self, agg: Aggregate, node: Node, depth: int) -> float:
        resolved = self.engine.registry.resolve_relation(agg.relation)
        if resolved is None:
            raise FormulaEvalError(f"unknown relation {agg.relation!r}")
        rel_type, direction = resolved
        store = self.engine.store
        if agg.op == "count":
            return float(store.count_relations(node.id, direction, rel_type, agg.node_type))

        if agg.attribute is None:
            raise FormulaEvalError(f"{agg.op} over {agg.relation!r} needs an attribute")
        values = [
            self.attribute(neighbor, agg.attribute, depth + 1)
            for neighbor in store.neighbors(node.id, direction, rel_type, agg.node_type)
        ]
        if agg.op == "sum":
            return float(sum(values))
        return float(sum(values) / len(values)) if values else 0.0

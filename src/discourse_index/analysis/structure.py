"""Structural checks on the argument graph: gaps, answer strength, anomalies."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from ..graph.models import Node, Relation
from ..graph.store import SQLiteGraphStore
from ..registry import NodeType, RelationType, TypeRegistry


class GapKind(str, Enum):
    NO_SUPPORT = "no-support"
    NO_SOURCE = "no-source"
    UNANSWERED_OPPOSITION = "unanswered-opposition"


class AnswerStrength(str, Enum):
    SUPPORTED = "supported"
    CONTESTED = "contested"
    CHALLENGED = "challenged"
    UNSUPPORTED = "unsupported"
    UNKNOWN = "unknown"

    @property
    def rank(self) -> int:
        """Display order, strongest first."""
        return _STRENGTH_ORDER.index(self)


_STRENGTH_ORDER = list(AnswerStrength)


@dataclass(slots=True)
class AnswerAssessment:
    claim: Node
    strength: AnswerStrength
    supporting: int
    opposing: int
    gaps: list[GapKind] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class Anomaly:
    """A relation whose endpoint types fall outside its canonical pattern."""

    relation: Relation
    source_type: str
    target_type: str
    source_mismatch: bool
    target_mismatch: bool
    expected_sources: frozenset[str] = frozenset()
    expected_targets: frozenset[str] = frozenset()


def classify(gaps: list[GapKind], supporting: int, opposing: int) -> AnswerStrength:
    if GapKind.NO_SUPPORT in gaps:
        return AnswerStrength.UNSUPPORTED
    if GapKind.UNANSWERED_OPPOSITION in gaps:
        return AnswerStrength.CHALLENGED
    if opposing > 0:
        return AnswerStrength.CONTESTED
    if supporting > 0:
        return AnswerStrength.SUPPORTED
    return AnswerStrength.UNKNOWN


class StructuralAnalyzer:
    def __init__(self, store: SQLiteGraphStore, registry: TypeRegistry):
        self.store = store
        self.registry = registry

    def _counts(self, claim_id: str) -> tuple[int, int]:
        supporting = self.store.count_relations(claim_id, "in", RelationType.SUPPORTS.value)
        opposing = self.store.count_relations(claim_id, "in", RelationType.OPPOSES.value)
        return supporting, opposing

    def argument_gaps(self, claim_id: str) -> list[GapKind]:
        supporting, opposing = self._counts(claim_id)
        return self._gaps(claim_id, supporting, opposing)

    def _gaps(self, claim_id: str, supporting: int, opposing: int) -> list[GapKind]:
        gaps: list[GapKind] = []
        if supporting == 0:
            gaps.append(GapKind.NO_SUPPORT)
        else:
            evidence = self.store.neighbors(
                claim_id, "in", RelationType.SUPPORTS.value, NodeType.EVIDENCE.value
            )
            if evidence and not any(
                self.store.count_relations(e.id, "out", RelationType.INFORMS.value) for e in evidence
            ):
                gaps.append(GapKind.NO_SOURCE)
        if opposing > 0 and supporting <= opposing:
            gaps.append(GapKind.UNANSWERED_OPPOSITION)
        return gaps

    def assess(self, claim: Node) -> AnswerAssessment:
        supporting, opposing = self._counts(claim.id)
        gaps = self._gaps(claim.id, supporting, opposing)
        return AnswerAssessment(
            claim=claim,
            strength=classify(gaps, supporting, opposing),
            supporting=supporting,
            opposing=opposing,
            gaps=gaps,
        )

    def answer_analysis(self, question_id: str) -> list[AnswerAssessment]:
        """Claims answering the question, strongest first."""
        claims = self.store.neighbors(
            question_id, "in", RelationType.ANSWERS.value, NodeType.CLAIM.value
        )
        assessments = [self.assess(c) for c in claims]
        assessments.sort(key=lambda a: (a.strength.rank, a.claim.title.lower(), a.claim.id))
        return assessments

    def check_relation(self, source_type: str, rel_type: str, target_type: str) -> Anomaly | None:
        return self._check(Relation("", "", rel_type), source_type, target_type)

    def _check(self, relation: Relation, source_type: str, target_type: str) -> Anomaly | None:
        pattern = self.registry.pattern(relation.rel_type)
        if pattern is None:
            return None
        source_bad = bool(pattern.source_types) and source_type not in pattern.source_types
        target_bad = bool(pattern.target_types) and target_type not in pattern.target_types
        if not (source_bad or target_bad):
            return None
        return Anomaly(
            relation=relation,
            source_type=source_type,
            target_type=target_type,
            source_mismatch=source_bad,
            target_mismatch=target_bad,
            expected_sources=pattern.source_types,
            expected_targets=pattern.target_types,
        )

    def find_anomalies(self) -> list[Anomaly]:
        types = {n.id: n.type for n in self.store.all_nodes()}
        found: list[Anomaly] = []
        for rel in self.store.all_relations():
            source_type = types.get(rel.source_id)
            target_type = types.get(rel.target_id)
            if source_type is None or target_type is None:
                continue
            anomaly = self._check(rel, source_type, target_type)
            if anomaly is not None:
                found.append(anomaly)
        return found

"""Facade over the store, indexer, formula engine and analyzers.

Presentation layers talk to `DiscourseIndex` only: a query surface, an analysis
surface and a maintenance surface, all sharing one explicit store handle.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field

from .analysis.structure import AnswerAssessment, Anomaly, GapKind, StructuralAnalyzer
from .analysis.validation import ValidationIssue, validate_graph
from .formula.engine import Badge, FormulaEngine
from .graph.models import DocumentRecord, Node, RelationsOf, ScanResult, StoreStats
from .graph.store import SQLiteGraphStore
from .indexing.change_detection import ChangeDetector, ProbeFn, prefix_probe
from .indexing.indexer import Indexer, RebuildReport
from .indexing.sources import DocumentCollector, GlobCollector, OrgScanner, Scanner
from .registry import NodeType, TypeRegistry, load_registry
from .settings import DiscourseIndexSettings, settings

logger = logging.getLogger(__name__)


@dataclass
class NodeAnalysis:
    """Everything a side panel shows for one node."""

    node: Node
    relations: RelationsOf
    attributes: dict[str, float] = field(default_factory=dict)
    badge: Badge | None = None
    gaps: list[GapKind] = field(default_factory=list)
    answers: list[AnswerAssessment] = field(default_factory=list)


class DiscourseIndex:
    def __init__(
        self,
        store: SQLiteGraphStore,
        registry: TypeRegistry,
        *,
        scanner: Scanner | None = None,
        collector: DocumentCollector | None = None,
        probe_bytes: int = 8192,
        formula_max_depth: int = 32,
    ):
        self.store = store
        self.registry = registry
        self.scanner = scanner or OrgScanner(registry.relation_types)
        self.collector = collector or GlobCollector(search_paths=["."])
        self.detector = ChangeDetector(store, prefix_probe(self.scanner.type_marker, probe_bytes))
        self.indexer = Indexer(store, self.scanner, self.detector)
        self.formulas = FormulaEngine(store, registry, max_depth=formula_max_depth)
        self.analyzer = StructuralAnalyzer(store, registry)
        self._executor: ThreadPoolExecutor | None = None

    @classmethod
    def from_settings(cls, cfg: DiscourseIndexSettings | None = None) -> DiscourseIndex:
        cfg = cfg or settings
        registry = load_registry(cfg.registry_path)
        return cls(
            SQLiteGraphStore(cfg.db_path),
            registry,
            scanner=OrgScanner(registry.relation_types, type_marker=cfg.type_marker),
            collector=GlobCollector(search_paths=list(cfg.search_paths), patterns=list(cfg.file_patterns)),
            probe_bytes=cfg.probe_bytes,
            formula_max_depth=cfg.formula_max_depth,
        )

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def __enter__(self) -> DiscourseIndex:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Query surface
    # ------------------------------------------------------------------

    def get(self, node_id: str) -> Node | None:
        return self.store.get(node_id)

    def find_by_type(self, node_type: str) -> list[Node]:
        return self.store.find_by_type(node_type)

    def find_by_title(self, pattern: str) -> list[Node]:
        return self.store.find_by_title_substring(pattern)

    def find_outgoing(self, node_id: str, rel_type: str | None = None) -> list[Node]:
        return self.store.find_outgoing(node_id, rel_type)

    def find_incoming(self, node_id: str, rel_type: str | None = None) -> list[Node]:
        return self.store.find_incoming(node_id, rel_type)

    def relations_of(self, node_id: str) -> RelationsOf:
        return self.store.relations_of(node_id)

    def stats(self) -> StoreStats:
        return self.store.stats()

    # ------------------------------------------------------------------
    # Analysis surface
    # ------------------------------------------------------------------

    def compute_attribute(self, node_id: str, name: str) -> float:
        return self.formulas.compute_attribute(node_id, name)

    def compute_all_attributes(self, node_id: str) -> dict[str, float]:
        return self.formulas.compute_all_attributes(node_id)

    def badge(self, node_id: str) -> Badge | None:
        return self.formulas.badge(node_id)

    def argument_gaps(self, claim_id: str) -> list[GapKind]:
        return self.analyzer.argument_gaps(claim_id)

    def answer_analysis(self, question_id: str) -> list[AnswerAssessment]:
        return self.analyzer.answer_analysis(question_id)

    def check_relation(self, source_type: str, rel_type: str, target_type: str) -> Anomaly | None:
        return self.analyzer.check_relation(source_type, rel_type, target_type)

    def find_anomalies(self) -> list[Anomaly]:
        return self.analyzer.find_anomalies()

    def analyze_node(self, node_id: str) -> NodeAnalysis | None:
        node = self.store.get(node_id)
        if node is None:
            return None
        analysis = NodeAnalysis(
            node=node,
            relations=self.store.relations_of(node_id),
            attributes=self.formulas.compute_all_attributes(node_id),
            badge=self.formulas.badge(node_id),
        )
        if node.type == NodeType.CLAIM.value:
            analysis.gaps = self.analyzer.argument_gaps(node_id)
        elif node.type == NodeType.QUESTION.value:
            analysis.answers = self.analyzer.answer_analysis(node_id)
        return analysis

    # ------------------------------------------------------------------
    # Maintenance surface
    # ------------------------------------------------------------------

    def update_document(self, path: str, scan_result: ScanResult | None = None) -> DocumentRecord | None:
        return self.indexer.update_document(path, scan_result)

    def smart_rebuild(
        self, documents: Iterable[str] | None = None, probe: ProbeFn | None = None
    ) -> RebuildReport:
        docs = self.collector.collect_documents() if documents is None else documents
        return self.indexer.smart_rebuild(docs, probe=probe)

    def full_rebuild(self, documents: Iterable[str] | None = None) -> RebuildReport:
        docs = self.collector.collect_documents() if documents is None else documents
        return self.indexer.full_rebuild(docs)

    def rebuild_in_background(self, *, smart: bool = True) -> Future[RebuildReport]:
        """Run a rebuild on the single maintenance worker.

        Readers keep seeing the last committed state until each write commits.
        """
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="discourse-rebuild")
        job = self.smart_rebuild if smart else self.full_rebuild
        logger.debug("Scheduling %s rebuild", "smart" if smart else "full")
        return self._executor.submit(job)

    def validate(self) -> list[ValidationIssue]:
        return validate_graph(self.store)

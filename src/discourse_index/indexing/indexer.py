from __future__ import annotations

import logging
import os
import time
from collections.abc import Iterable
from dataclasses import dataclass, field

from ..errors import ScanError
from ..graph.models import DocumentRecord, ScannedDocument, ScanResult
from ..graph.store import SQLiteGraphStore
from .change_detection import ChangeDetector, ProbeFn
from .sources import Scanner

logger = logging.getLogger(__name__)


@dataclass
class RebuildReport:
    scanned: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    purged: list[str] = field(default_factory=list)
    nodes: int = 0
    relations: int = 0
    elapsed_ms: float = 0.0


class Indexer:
    """Feeds scanner output into the store, one atomic unit per document."""

    def __init__(self, store: SQLiteGraphStore, scanner: Scanner, detector: ChangeDetector):
        self.store = store
        self.scanner = scanner
        self.detector = detector

    def scan_document(self, path: str) -> ScannedDocument:
        try:
            modified_at = os.stat(path).st_mtime
        except OSError as e:
            raise ScanError(path, f"cannot stat: {e}") from e
        try:
            result = self.scanner.scan(path)
        except ScanError:
            raise
        except Exception as e:
            raise ScanError(path, f"{type(e).__name__}: {e}") from e
        return ScannedDocument(path=path, result=result, modified_at=modified_at)

    def update_document(
        self, path: str, result: ScanResult | None = None, *, modified_at: float | None = None
    ) -> DocumentRecord | None:
        """Replace one document's data with `result`, scanning it when not given."""
        if result is None:
            doc = self.scan_document(path)
        else:
            if modified_at is None:
                try:
                    modified_at = os.stat(path).st_mtime
                except OSError:
                    modified_at = time.time()
            doc = ScannedDocument(path=path, result=result, modified_at=modified_at)
        record = self.store.replace_document(doc.path, doc.result, modified_at=doc.modified_at)
        if record is None:
            self.detector.remember_empty(doc.path, doc.modified_at)
        return record

    def smart_rebuild(self, documents: Iterable[str], *, probe: ProbeFn | None = None) -> RebuildReport:
        t0 = time.perf_counter()
        report = RebuildReport()
        plan = self.detector.plan(documents, probe=probe)
        report.skipped = plan.skipped

        for path in plan.to_scan:
            try:
                doc = self.scan_document(path)
            except ScanError as e:
                logger.warning("Skipping %s: %s", path, e)
                report.failed[path] = str(e)
                continue
            record = self.store.replace_document(doc.path, doc.result, modified_at=doc.modified_at)
            if record is None:
                self.detector.remember_empty(doc.path, doc.modified_at)
            report.scanned.append(path)

        report.purged = self.purge_missing()
        self._finish(report, t0, "Smart rebuild")
        return report

    def full_rebuild(self, documents: Iterable[str]) -> RebuildReport:
        """Re-scan everything and swap the store content in one transaction.

        Documents that fail to scan are left out of the rebuilt store.
        """
        t0 = time.perf_counter()
        report = RebuildReport()
        scanned: list[ScannedDocument] = []
        for path in documents:
            try:
                scanned.append(self.scan_document(path))
            except ScanError as e:
                logger.warning("Skipping %s: %s", path, e)
                report.failed[path] = str(e)
                continue
            report.scanned.append(path)

        self.store.rebuild_all(scanned)
        for doc in scanned:
            if not doc.result.nodes:
                self.detector.remember_empty(doc.path, doc.modified_at)
        self._finish(report, t0, "Full rebuild")
        return report

    def purge_missing(self) -> list[str]:
        purged = self.detector.vanished_documents()
        for path in purged:
            removed = self.store.purge_document(path)
            logger.info("Purged %s (%d nodes)", path, removed)
        return purged

    def _finish(self, report: RebuildReport, t0: float, label: str) -> None:
        stats = self.store.stats()
        report.nodes = stats.nodes
        report.relations = stats.relations
        report.elapsed_ms = (time.perf_counter() - t0) * 1000.0
        logger.info(
            "%s: %d scanned, %d skipped, %d failed, %d purged; %d nodes, %d relations in %.0f ms",
            label,
            len(report.scanned),
            len(report.skipped),
            len(report.failed),
            len(report.purged),
            report.nodes,
            report.relations,
            report.elapsed_ms,
        )

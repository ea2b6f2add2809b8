"""Incremental indexing: document collection, smart scan and store updates."""

from .change_detection import ChangeDetector, ScanDecision, ScanPlan, ScanReason, prefix_probe
from .indexer import Indexer, RebuildReport
from .sources import DocumentCollector, GlobCollector, OrgScanner, Scanner

__all__ = [
    "ChangeDetector",
    "DocumentCollector",
    "GlobCollector",
    "Indexer",
    "OrgScanner",
    "RebuildReport",
    "ScanDecision",
    "ScanPlan",
    "ScanReason",
    "Scanner",
    "prefix_probe",
]

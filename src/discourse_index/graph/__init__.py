"""Graph store: nodes, relations and per-document scan bookkeeping."""

from .models import (
    DocumentRecord,
    Location,
    Neighbor,
    Node,
    Relation,
    RelationsOf,
    ScannedDocument,
    ScanResult,
    StoreStats,
)
from .store import SQLiteGraphStore

__all__ = [
    "DocumentRecord",
    "Location",
    "Neighbor",
    "Node",
    "Relation",
    "RelationsOf",
    "SQLiteGraphStore",
    "ScanResult",
    "ScannedDocument",
    "StoreStats",
]

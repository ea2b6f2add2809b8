"""Incremental index and analysis engine for typed research notes."""

from .errors import DiscourseIndexError, FormulaError, RegistryError, ScanError, StoreError
from .graph import Location, Node, Relation, SQLiteGraphStore
from .registry import TypeRegistry, build_registry, load_registry
from .service import DiscourseIndex, NodeAnalysis

__version__ = "0.1.0"

__all__ = [
    "DiscourseIndex",
    "DiscourseIndexError",
    "FormulaError",
    "Location",
    "Node",
    "NodeAnalysis",
    "Relation",
    "RegistryError",
    "SQLiteGraphStore",
    "ScanError",
    "StoreError",
    "TypeRegistry",
    "build_registry",
    "load_registry",
    "__version__",
]

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

Direction = Literal["out", "in"]


@dataclass(frozen=True, slots=True)
class Location:
    """Where a node lives in its backing document. Opaque to the index."""

    file: str
    pos: int = 0
    outline: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class Node:
    """A typed unit of research content.

    `id` is stable and globally unique; re-indexing the same id overwrites it.
    """

    id: str
    type: str
    title: str
    location: Location
    is_container: bool = False
    modified_at: float | None = None

    @property
    def file(self) -> str:
        return self.location.file


@dataclass(frozen=True, slots=True)
class Relation:
    """A directed, typed edge. Unique on (source_id, target_id, rel_type)."""

    source_id: str
    target_id: str
    rel_type: str
    note: str | None = None

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.source_id, self.target_id, self.rel_type)


@dataclass(frozen=True, slots=True)
class DocumentRecord:
    """Smart-scan bookkeeping for a document that yielded at least one node."""

    path: str
    modified_at: float
    node_count: int
    last_scanned_at: float


@dataclass(slots=True)
class ScanResult:
    """Node and relation drafts produced by a scanner for one document."""

    nodes: list[Node] = field(default_factory=list)
    relations: list[Relation] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class Neighbor:
    """A relation seen from one endpoint, with the node at the other end.

    `node` is None when the relation points at an id with no stored node.
    """

    relation: Relation
    node: Node | None


@dataclass(slots=True)
class RelationsOf:
    outgoing: list[Neighbor] = field(default_factory=list)
    incoming: list[Neighbor] = field(default_factory=list)


@dataclass(slots=True)
class StoreStats:
    nodes: int
    relations: int
    documents: int
    node_types: dict[str, int] = field(default_factory=dict)
    relation_types: dict[str, int] = field(default_factory=dict)


@dataclass(slots=True)
class ScannedDocument:
    """A document's fresh scan result, ready to be written to the store."""

    path: str
    result: ScanResult
    modified_at: float

from __future__ import annotations

import os
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from ..graph.store import SQLiteGraphStore


class IssueKind(str, Enum):
    DANGLING_SOURCE = "dangling-source"
    DANGLING_TARGET = "dangling-target"
    ORPHAN = "orphan"
    MISSING_DOCUMENT = "missing-document"


@dataclass(frozen=True, slots=True)
class ValidationIssue:
    """Informational finding; validation never blocks or raises on these."""

    kind: IssueKind
    node_id: str
    message: str
    file: str | None = None


def validate_graph(
    store: SQLiteGraphStore, *, exists: Callable[[str], bool] = os.path.exists
) -> list[ValidationIssue]:
    """Whole-graph sweep in O(nodes + relations)."""
    nodes = store.all_nodes()
    relations = store.all_relations()
    ids = {n.id for n in nodes}
    connected: set[str] = set()
    issues: list[ValidationIssue] = []

    for rel in relations:
        connected.add(rel.source_id)
        connected.add(rel.target_id)
        if rel.source_id not in ids:
            issues.append(
                ValidationIssue(
                    IssueKind.DANGLING_SOURCE,
                    rel.source_id,
                    f"{rel.rel_type} relation to {rel.target_id} starts at unknown node {rel.source_id}",
                )
            )
        if rel.target_id not in ids:
            issues.append(
                ValidationIssue(
                    IssueKind.DANGLING_TARGET,
                    rel.target_id,
                    f"{rel.rel_type} relation from {rel.source_id} points at unknown node {rel.target_id}",
                )
            )

    present: dict[str, bool] = {}
    for node in nodes:
        if node.id not in connected:
            issues.append(
                ValidationIssue(IssueKind.ORPHAN, node.id, f"{node.type} '{node.title}' has no relations", node.file)
            )
        if node.file not in present:
            present[node.file] = exists(node.file)
        if not present[node.file]:
            issues.append(
                ValidationIssue(
                    IssueKind.MISSING_DOCUMENT,
                    node.id,
                    f"backing document {node.file} no longer exists",
                    node.file,
                )
            )
    return issues

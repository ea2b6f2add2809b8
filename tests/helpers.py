"""Builders for small fixture graphs and org documents."""

import os
from pathlib import Path

from discourse_index.graph import Location, Node, Relation, ScanResult


def node(node_id, node_type, title=None, file="notes.org"):
    return Node(id=node_id, type=node_type, title=title or node_id, location=Location(file=file))


def rel(source_id, target_id, rel_type, note=None):
    return Relation(source_id, target_id, rel_type, note)


def load(store, path, nodes, relations=(), modified_at=1.0):
    """Index `nodes` and `relations` as the content of document `path`."""
    return store.replace_document(
        path, ScanResult(list(nodes), list(relations)), modified_at=modified_at
    )


def org_entry(node_id, node_type, title=None, **relations):
    lines = [
        f"* {title or node_id}",
        ":PROPERTIES:",
        f":ID:       {node_id}",
        f":TYPE:     {node_type}",
    ]
    for rel_type, targets in relations.items():
        lines.append(f":{rel_type.upper()}: {targets}")
    lines.append(":END:")
    return "\n".join(lines) + "\n\n"


def write_doc(path: Path, *entries, mtime=None):
    path.write_text("".join(entries), encoding="utf-8")
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return str(path.resolve())

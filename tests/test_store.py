"""Tests for the SQLite graph store."""

import sqlite3
import threading

import pytest

from discourse_index.errors import StoreError
from discourse_index.graph import (
    DocumentRecord,
    Location,
    Node,
    ScannedDocument,
    ScanResult,
    SQLiteGraphStore,
)

from helpers import load, node, rel


def test_upsert_same_id_keeps_latest_title(store):
    store.upsert_node(node("c1", "claim", "First"))
    store.upsert_node(node("c1", "claim", "Second"))

    assert store.get("c1").title == "Second"
    assert len(store.all_nodes()) == 1


def test_upsert_same_triple_keeps_one_edge(store):
    store.upsert_relation(rel("e1", "c1", "supports", "first"))
    store.upsert_relation(rel("e1", "c1", "supports", "second"))

    relations = store.all_relations()
    assert len(relations) == 1
    assert relations[0].note == "second"


def test_get_missing_node(store):
    assert store.get("nope") is None


def test_node_location_survives_storage(store):
    n = Node(
        id="c1",
        type="claim",
        title="A claim",
        location=Location(file="/notes/a.org", pos=42, outline=("Top", "Sub")),
        is_container=True,
        modified_at=12.5,
    )
    store.upsert_node(n)

    got = store.get("c1")
    assert got == n


def test_find_by_type_and_title(store):
    load(
        store,
        "a.org",
        [node("c1", "claim", "Coffee helps"), node("c2", "claim", "Tea helps"), node("q1", "question", "Coffee?")],
    )

    assert [n.id for n in store.find_by_type("claim")] == ["c1", "c2"]
    assert [n.id for n in store.find_by_title_substring("COFFEE")] == ["c1", "q1"]
    assert store.find_by_title_substring("cocoa") == []


def test_outgoing_and_incoming_with_filter(store):
    load(
        store,
        "a.org",
        [node("e1", "evidence"), node("c1", "claim"), node("s1", "source")],
        [rel("e1", "c1", "supports"), rel("e1", "s1", "informs")],
    )

    assert {n.id for n in store.find_outgoing("e1")} == {"c1", "s1"}
    assert [n.id for n in store.find_outgoing("e1", "informs")] == ["s1"]
    assert [n.id for n in store.find_incoming("c1", "supports")] == ["e1"]
    assert store.find_incoming("c1", "opposes") == []


def test_dangling_relations(store):
    load(store, "a.org", [node("e1", "evidence")], [rel("e1", "ghost", "supports")])

    assert store.find_outgoing("e1") == []
    assert store.count_relations("e1", "out", "supports") == 1
    assert store.count_relations("e1", "out", "supports", "claim") == 0

    rels = store.relations_of("e1")
    assert len(rels.outgoing) == 1
    assert rels.outgoing[0].node is None
    assert rels.outgoing[0].relation.target_id == "ghost"
    assert rels.incoming == []


def test_delete_document_data_leaves_no_dangling_edges(store):
    load(store, "a.org", [node("c1", "claim", file="a.org")])
    load(
        store,
        "b.org",
        [node("e1", "evidence", file="b.org"), node("e2", "evidence", file="b.org")],
        [rel("e1", "c1", "supports"), rel("e2", "e1", "informs")],
    )
    store.upsert_relation(rel("c1", "e2", "informs"), file="a.org")

    removed = store.delete_document_data("b.org")

    assert removed == 2
    assert store.nodes_in_document("b.org") == []
    assert store.all_relations() == []
    assert store.get("c1") is not None


def test_replace_document_tracks_record(store):
    record = load(store, "a.org", [node("c1", "claim"), node("c2", "claim")], modified_at=5.0)

    assert record.node_count == 2
    assert record.modified_at == 5.0
    assert store.get_document("a.org") == record
    # nodes are relocated to the document they were indexed from
    assert store.get("c1").file == "a.org"


def test_replace_document_drops_removed_nodes(store):
    load(store, "a.org", [node("c1", "claim"), node("c2", "claim")])
    load(store, "a.org", [node("c1", "claim", "Renamed")])

    assert store.get("c2") is None
    assert store.get("c1").title == "Renamed"
    assert store.get_document("a.org").node_count == 1


def test_replace_document_with_no_nodes_forgets_record(store):
    load(store, "a.org", [node("c1", "claim")])

    assert load(store, "a.org", []) is None
    assert store.get_document("a.org") is None
    assert store.get("c1") is None


def test_reindex_preserves_relations_declared_elsewhere(store):
    load(store, "claims.org", [node("c1", "claim")])
    load(store, "evidence.org", [node("e1", "evidence")], [rel("e1", "c1", "supports", "strong")])

    load(store, "claims.org", [node("c1", "claim", "Edited title")])

    assert [n.id for n in store.find_incoming("c1", "supports")] == ["e1"]
    assert store.all_relations()[0].note == "strong"


def test_reindex_drops_foreign_relation_when_endpoint_removed(store):
    load(store, "claims.org", [node("c1", "claim")])
    load(store, "evidence.org", [node("e1", "evidence")], [rel("e1", "c1", "supports")])

    load(store, "claims.org", [node("c2", "claim")])

    assert store.all_relations() == []


def test_purge_document(store):
    load(store, "a.org", [node("c1", "claim")])

    assert store.purge_document("a.org") == 1
    assert store.get_document("a.org") is None
    assert store.list_documents() == []


def test_rebuild_all_swaps_content(store):
    load(store, "old.org", [node("x", "claim")])
    docs = [
        ScannedDocument("a.org", ScanResult([node("c1", "claim")], [rel("e1", "c1", "supports")]), 1.0),
        ScannedDocument("b.org", ScanResult([node("e1", "evidence")]), 2.0),
        ScannedDocument("empty.org", ScanResult(), 3.0),
    ]

    stats = store.rebuild_all(docs)

    assert store.get("x") is None
    assert stats.nodes == 2
    assert stats.relations == 1
    assert stats.documents == 2
    assert stats.node_types == {"claim": 1, "evidence": 1}
    assert [d.path for d in store.list_documents()] == ["a.org", "b.org"]


def test_failed_write_rolls_back(store, monkeypatch):
    load(store, "a.org", [node("c1", "claim")])

    def boom(self, con, doc, scanned_at):
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(SQLiteGraphStore, "_insert_document", boom)
    with pytest.raises(StoreError):
        load(store, "a.org", [node("c2", "claim")])

    assert store.get("c1") is not None
    assert store.get("c2") is None
    assert store.get_document("a.org").node_count == 1


def test_document_bookkeeping(store):
    record = DocumentRecord("a.org", modified_at=1.0, node_count=3, last_scanned_at=2.0)
    store.upsert_document(record)
    assert store.get_document("a.org") == record

    store.delete_document("a.org")
    assert store.get_document("a.org") is None


def test_readers_never_see_half_written_rebuild(store):
    load(store, "a.org", [node("e1", "evidence"), node("c1", "claim")], [rel("e1", "c1", "supports")])
    docs = [
        ScannedDocument(
            f"doc{i}.org",
            ScanResult(
                [node(f"e{i}x", "evidence"), node(f"c{i}x", "claim")],
                [rel(f"e{i}x", f"c{i}x", "supports")],
            ),
            1.0,
        )
        for i in range(50)
    ]
    seen = []
    stop = threading.Event()

    def reader():
        while not stop.is_set():
            s = store.stats()
            seen.append((s.nodes, s.relations))

    t = threading.Thread(target=reader)
    t.start()
    try:
        store.rebuild_all(docs)
    finally:
        stop.set()
        t.join()

    assert seen
    assert all(nodes > 0 and nodes == 2 * relations for nodes, relations in seen)
    assert set(seen) <= {(2, 1), (100, 50)}
    assert store.stats().nodes == 100

"""Tests for the whole-graph consistency sweep."""

from discourse_index.analysis import IssueKind, validate_graph

from helpers import load, node, rel


def _kinds(issues):
    return {(i.kind, i.node_id) for i in issues}


def test_clean_graph(store):
    load(store, "a.org", [node("e1", "evidence"), node("c1", "claim")], [rel("e1", "c1", "supports")])

    assert validate_graph(store, exists=lambda p: True) == []


def test_dangling_target_and_orphan(store):
    load(
        store,
        "a.org",
        [node("e1", "evidence"), node("lonely", "claim")],
        [rel("e1", "ghost", "supports")],
    )

    kinds = _kinds(validate_graph(store, exists=lambda p: True))

    assert (IssueKind.DANGLING_TARGET, "ghost") in kinds
    assert (IssueKind.ORPHAN, "lonely") in kinds
    assert (IssueKind.ORPHAN, "e1") not in kinds


def test_dangling_source(store):
    load(store, "a.org", [node("c1", "claim")])
    store.upsert_relation(rel("phantom", "c1", "supports"))

    kinds = _kinds(validate_graph(store, exists=lambda p: True))

    assert kinds == {(IssueKind.DANGLING_SOURCE, "phantom")}


def test_missing_document_checked_once_per_file(store):
    load(store, "gone.org", [node("c1", "claim"), node("c2", "claim")], [rel("c1", "c2", "supports")])
    checked = []

    def exists(path):
        checked.append(path)
        return False

    issues = validate_graph(store, exists=exists)

    missing = [i for i in issues if i.kind is IssueKind.MISSING_DOCUMENT]
    assert {i.node_id for i in missing} == {"c1", "c2"}
    assert all(i.file == "gone.org" for i in missing)
    assert checked == ["gone.org"]

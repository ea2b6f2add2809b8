"""Tests for the org-mode scanner and the glob collector."""

import logging

import pytest

from discourse_index.errors import ScanError
from discourse_index.graph import Relation
from discourse_index.indexing import GlobCollector, OrgScanner

DOC = """\
#+title: Caffeine notes
:PROPERTIES:
:ID:       doc1
:TYPE:     source
:END:

* Questions
** Does caffeine help?
:PROPERTIES:
:ID:       q1
:TYPE:     Question
:END:
** Moderate doses help                                  :coffee:
:PROPERTIES:
:ID:       c1
:TYPE:     claim
:ANSWERS:  [[id:q1][Does caffeine help?]]
:END:
* Trial A
:PROPERTIES:
:ID:       e1
:TYPE:     evidence
:SUPPORTS: c1 id:c2
:SUPPORTS: c3
:SUPPORTS_NOTE: double blind
:MENTIONS: c1
:END:
Some body text.
:PROPERTIES:
:ID:       late
:TYPE:     claim
:END:
* Plain heading
"""


@pytest.fixture
def scanner(registry):
    return OrgScanner(registry.relation_types)


def test_nodes(scanner):
    result = scanner.scan_text(DOC, path="/notes/caffeine.org")
    by_id = {n.id: n for n in result.nodes}

    assert list(by_id) == ["doc1", "q1", "c1", "e1"]
    assert by_id["doc1"].is_container
    assert by_id["doc1"].title == "Caffeine notes"
    assert by_id["q1"].type == "question"
    assert by_id["q1"].location.outline == ("Questions",)
    assert by_id["c1"].title == "Moderate doses help"
    assert by_id["e1"].location.outline == ()
    assert all(n.file == "/notes/caffeine.org" for n in result.nodes)
    assert DOC[by_id["q1"].location.pos :].startswith("** Does caffeine help?")


def test_relations(scanner):
    result = scanner.scan_text(DOC, path="/notes/caffeine.org")

    assert sorted(result.relations, key=lambda r: r.key) == [
        Relation("c1", "q1", "answers"),
        Relation("e1", "c1", "supports", "double blind"),
        Relation("e1", "c2", "supports", "double blind"),
        Relation("e1", "c3", "supports", "double blind"),
    ]


def test_container_titled_by_file_name(scanner):
    text = ":PROPERTIES:\n:ID: s1\n:TYPE: source\n:END:\n* Heading\n"

    result = scanner.scan_text(text, path="/notes/smith-2020.org")

    assert [(n.id, n.title, n.is_container) for n in result.nodes] == [("s1", "smith-2020", True)]


def test_duplicate_ids_keep_first(scanner, caplog):
    text = (
        "* First\n:PROPERTIES:\n:ID: c1\n:TYPE: claim\n:END:\n"
        "* Second\n:PROPERTIES:\n:ID: c1\n:TYPE: claim\n:END:\n"
    )

    with caplog.at_level(logging.WARNING):
        result = scanner.scan_text(text, path="a.org")

    assert [n.title for n in result.nodes] == ["First"]
    assert "Duplicate id c1" in caplog.text


def test_scan_reads_file(scanner, tmp_path):
    path = tmp_path / "a.org"
    path.write_text("* C\n:PROPERTIES:\n:ID: c1\n:TYPE: claim\n:END:\n", encoding="utf-8")

    result = scanner.scan(str(path))

    assert [n.id for n in result.nodes] == ["c1"]


def test_scan_missing_file(scanner, tmp_path):
    with pytest.raises(ScanError) as exc:
        scanner.scan(str(tmp_path / "nope.org"))
    assert exc.value.path.endswith("nope.org")


def test_glob_collector(tmp_path):
    (tmp_path / "a.org").write_text("")
    (tmp_path / "sub").mkdir()
    (tmp_path / "sub" / "b.org").write_text("")
    (tmp_path / "sub" / "c.txt").write_text("")
    (tmp_path / ".hidden").mkdir()
    (tmp_path / ".hidden" / "d.org").write_text("")
    single = tmp_path / "single.txt"
    single.write_text("")

    collector = GlobCollector(search_paths=[str(tmp_path), str(single), str(tmp_path / "missing")])
    found = collector.collect_documents()

    root = tmp_path.resolve()
    assert found == sorted([str(root / "a.org"), str(root / "single.txt"), str(root / "sub" / "b.org")])

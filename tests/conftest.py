"""Shared fixtures for discourse_index tests."""

import pytest

from discourse_index.graph import SQLiteGraphStore
from discourse_index.indexing import GlobCollector
from discourse_index.registry import build_registry
from discourse_index.service import DiscourseIndex

from helpers import load, node, rel


@pytest.fixture
def store(tmp_path):
    """Empty store in a temporary directory."""
    return SQLiteGraphStore(str(tmp_path / "state" / "index.db"))


@pytest.fixture
def registry():
    return build_registry()


@pytest.fixture
def notes_dir(tmp_path):
    notes = tmp_path / "notes"
    notes.mkdir()
    return notes


@pytest.fixture
def index(store, registry, notes_dir):
    idx = DiscourseIndex(store, registry, collector=GlobCollector(search_paths=[str(notes_dir)]))
    yield idx
    idx.close()


@pytest.fixture
def debate(store):
    """A question with three answering claims of different strength.

    c_strong: 2 supports (one sourced), 1 opposition   -> contested
    c_weak:   2 supports, 3 oppositions                -> challenged
    c_bare:   1 opposition, no support                 -> unsupported
    """
    nodes = [
        node("q1", "question", "Does caffeine improve recall?"),
        node("c_strong", "claim", "Moderate doses help"),
        node("c_weak", "claim", "High doses help"),
        node("c_bare", "claim", "Any dose helps"),
        node("e1", "evidence", "Trial A"),
        node("e2", "evidence", "Trial B"),
        node("e3", "evidence", "Trial C"),
        node("e4", "evidence", "Trial D"),
        node("e5", "evidence", "Trial E"),
        node("s1", "source", "Smith 2020"),
    ]
    relations = [
        rel("c_strong", "q1", "answers"),
        rel("c_weak", "q1", "answers"),
        rel("c_bare", "q1", "answers"),
        rel("e1", "c_strong", "supports"),
        rel("e2", "c_strong", "supports"),
        rel("e3", "c_strong", "opposes"),
        rel("e1", "s1", "informs"),
        rel("e2", "c_weak", "supports"),
        rel("e4", "c_weak", "supports"),
        rel("e3", "c_weak", "opposes"),
        rel("e5", "c_weak", "opposes"),
        rel("e1", "c_weak", "opposes"),
        rel("e5", "c_bare", "opposes"),
    ]
    load(store, "debate.org", nodes, relations)
    return store

"""Tests for navigation history, debounced refresh and the session object."""

import logging
import threading
import time

import pytest

from discourse_index.analysis import AnswerStrength, GapKind
from discourse_index.session import Debouncer, NavigationHistory, Session

from helpers import org_entry, write_doc


def test_history_back_and_forward():
    history = NavigationHistory()
    for node_id in ("a", "b", "c"):
        history.visit(node_id)

    assert history.back() == "b"
    assert history.back() == "a"
    assert history.back() is None
    assert history.current == "a"
    assert history.forward() == "b"
    assert history.can_go_forward


def test_visit_clears_forward_stack():
    history = NavigationHistory()
    history.visit("a")
    history.visit("b")
    history.back()

    history.visit("c")

    assert not history.can_go_forward
    assert history.back() == "a"


def test_revisiting_current_is_a_no_op():
    history = NavigationHistory()
    history.visit("a")
    history.visit("a")

    assert not history.can_go_back


def test_history_is_bounded():
    history = NavigationHistory(max_size=2)
    for node_id in ("a", "b", "c", "d"):
        history.visit(node_id)

    assert history.back() == "c"
    assert history.back() == "b"
    assert history.back() is None


def test_debouncer_last_request_wins():
    calls = []
    fired = threading.Event()

    def fn(value):
        calls.append(value)
        fired.set()

    debouncer = Debouncer(0.05, fn)
    debouncer.schedule("first")
    debouncer.schedule("second")

    assert fired.wait(2)
    time.sleep(0.1)
    assert calls == ["second"]
    assert not debouncer.pending


def test_debouncer_cancel():
    calls = []
    debouncer = Debouncer(0.05, calls.append)
    debouncer.schedule("x")
    assert debouncer.pending

    debouncer.cancel()
    time.sleep(0.15)

    assert calls == []


@pytest.fixture
def session(index, debate):
    received = []
    done = threading.Event()

    def listener(analysis):
        received.append(analysis)
        done.set()

    s = Session(index, refresh_delay=0.05, on_refresh=listener)
    s.received = received
    s.done = done
    yield s
    s.close()


def test_refresh_twice_runs_once_for_latest_node(session):
    session.request_refresh("c_weak")
    session.request_refresh("q1")

    assert session.done.wait(2)
    time.sleep(0.1)
    assert [a.node.id for a in session.received] == ["q1"]
    assert session.latest.node.id == "q1"


def test_open_visits_and_refreshes(session):
    assert session.open("c_strong")
    assert session.done.wait(2)

    assert session.history.current == "c_strong"
    assert not session.open("missing")
    assert session.history.current == "c_strong"


def test_refresh_now_for_claim(session):
    analysis = session.refresh_now("c_weak")

    assert analysis.attributes["evidence_score"] == -1.0
    assert analysis.badge.attribute == "evidence_score"
    assert analysis.gaps == [GapKind.NO_SOURCE, GapKind.UNANSWERED_OPPOSITION]
    assert {nb.relation.source_id for nb in analysis.relations.incoming} == {"e2", "e4", "e3", "e5", "e1"}
    assert analysis.answers == []


def test_refresh_now_for_question(session):
    analysis = session.refresh_now("q1")

    assert [a.strength for a in analysis.answers] == [
        AnswerStrength.CONTESTED,
        AnswerStrength.CHALLENGED,
        AnswerStrength.UNSUPPORTED,
    ]
    assert analysis.gaps == []


def test_refresh_missing_node(session):
    assert session.refresh_now("missing") is None
    assert session.received == []


def test_close_cancels_pending_refresh(session):
    session.request_refresh("q1")
    session.close()

    assert not session.done.wait(0.2)
    assert session.received == []


def test_document_saved_reindexes_and_refreshes(session, index, notes_dir):
    assert session.open("c_bare")
    assert session.done.wait(2)
    session.done.clear()
    session.received.clear()

    path = write_doc(notes_dir / "new.org", org_entry("e9", "evidence", "Trial Z", supports="c_bare"))
    session.document_saved(path)

    assert session.done.wait(2)
    assert index.get("e9") is not None
    assert [a.node.id for a in session.received] == ["c_bare"]
    assert session.latest.attributes["support_count"] == 1.0


def test_document_saved_with_unreadable_file_still_refreshes(session, notes_dir, caplog):
    assert session.open("c_strong")
    assert session.done.wait(2)
    session.done.clear()
    session.received.clear()

    with caplog.at_level(logging.WARNING):
        session.document_saved(str(notes_dir / "deleted.org"))

    assert "Skipping" in caplog.text
    assert session.done.wait(2)
    assert [a.node.id for a in session.received] == ["c_strong"]

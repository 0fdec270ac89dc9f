# tests/test_persistence.py
import logging

import pytest

from exam_engine.engine import ExamSession
from exam_engine.models import ExamConfiguration
from exam_engine.persistence import SessionPersistence
from exam_engine.store import MemoryStore, open_store


@pytest.fixture
def persistence(tmp_db, clock):
    return SessionPersistence(open_store(tmp_db), clock=clock)


def _session(make_question, clock, user_id="u1", session_id="s1"):
    config = ExamConfiguration("physiology", ("renal",), 3)
    questions = [make_question(f"q{n}", difficulty=n) for n in (1, 2, 3)]
    return ExamSession.build(config, questions, user_id, clock=clock, session_id=session_id)


def test_saved_state_round_trips(persistence, make_question, clock):
    session = _session(make_question, clock)
    session.start()
    session.submit_answer("B")
    clock.advance(9)
    session.next()
    session.toggle_flag()
    assert persistence.auto_save(session.state)
    loaded = persistence.load_most_recent_unfinished("u1")
    assert loaded == session.state
    assert loaded.last_saved_at == clock()


def test_auto_save_overwrites(persistence, make_question, clock):
    session = _session(make_question, clock)
    session.start()
    persistence.auto_save(session.state)
    session.submit_answer("C")
    clock.advance(5)
    persistence.auto_save(session.state)
    records = persistence.store.get_all("sessions")
    assert len(records) == 1
    assert persistence.load_most_recent_unfinished("u1").answers[0].selected_option == "C"


def test_most_recent_unfinished(persistence, make_question, clock):
    older = _session(make_question, clock, session_id="old")
    persistence.auto_save(older.state)
    clock.advance(60)
    newer = _session(make_question, clock, session_id="new")
    persistence.auto_save(newer.state)
    other = _session(make_question, clock, user_id="u2", session_id="other")
    clock.advance(60)
    persistence.auto_save(other.state)
    assert persistence.load_most_recent_unfinished("u1").session_id == "new"
    assert persistence.load_most_recent_unfinished("u2").session_id == "other"
    assert persistence.load_most_recent_unfinished("nobody") is None


def test_finished_sessions_are_not_resumable(persistence, make_question, clock):
    session = _session(make_question, clock)
    session.start()
    persistence.auto_save(session.state)
    session.end()
    persistence.auto_save(session.state)
    assert persistence.load_most_recent_unfinished("u1") is None


def test_delete_saved(persistence, make_question, clock):
    session = _session(make_question, clock)
    persistence.auto_save(session.state)
    assert persistence.delete_saved("s1")
    assert persistence.load_most_recent_unfinished("u1") is None


def test_saved_state_survives_new_process(tmp_db, make_question, clock):
    session = _session(make_question, clock)
    session.start()
    session.submit_answer("A")
    SessionPersistence(open_store(tmp_db), clock=clock).auto_save(session.state)
    loaded = SessionPersistence(open_store(tmp_db), clock=clock).load_most_recent_unfinished("u1")
    assert loaded == session.state


def test_results_newest_first(persistence, make_question, clock):
    for sid in ("a", "b", "c"):
        session = _session(make_question, clock, session_id=sid)
        session.start()
        clock.advance(30)
        assert persistence.save_result(session.end())
    results = persistence.list_results("u1")
    assert [r.session_id for r in results] == ["c", "b", "a"]
    assert all(r.saved for r in results)
    assert [r.session_id for r in persistence.list_results("u1", limit=2)] == ["c", "b"]
    assert persistence.list_results("u1", subject="anatomy") == []
    assert persistence.get_result("b").total == 3
    assert persistence.get_result("zzz") is None


def test_unavailable_store_keeps_state_in_memory(broken_store, make_question, clock, caplog):
    persistence = SessionPersistence(broken_store, clock=clock)
    session = _session(make_question, clock)
    session.start()
    with caplog.at_level(logging.WARNING, logger="exam_engine.persistence"):
        assert persistence.auto_save(session.state) is False
    assert "Store write to sessions failed" in caplog.text
    assert persistence.load_most_recent_unfinished("u1") == session.state
    assert SessionPersistence(broken_store, clock=clock).load_most_recent_unfinished("u1") is None


def test_unsaved_result_is_marked(broken_store, make_question, clock):
    persistence = SessionPersistence(broken_store, clock=clock)
    session = _session(make_question, clock)
    session.start()
    result = session.end()
    assert persistence.save_result(result) is False
    cached = persistence.get_result("s1")
    assert cached.saved is False
    assert cached.total == 3


def test_cache_entry_dropped_once_store_recovers(make_question, clock):
    persistence = SessionPersistence(None, clock=clock)
    session = _session(make_question, clock)
    assert persistence.auto_save(session.state) is False
    persistence.store = MemoryStore()
    assert persistence.auto_save(session.state) is True
    assert persistence.cache.get_all("sessions") == []
    assert persistence.load_most_recent_unfinished("u1").session_id == "s1"


def test_unfinished_session_ids(persistence, make_question, clock):
    for sid in ("a", "b"):
        persistence.auto_save(_session(make_question, clock, session_id=sid).state)
    persistence.auto_save(_session(make_question, clock, user_id="u2", session_id="c").state)
    done = _session(make_question, clock, session_id="d")
    done.start()
    done.end()
    persistence.auto_save(done.state)
    assert sorted(persistence.unfinished_session_ids("u1")) == ["a", "b"]
    persistence.delete_saved("a")
    assert persistence.unfinished_session_ids("u1") == ["b"]

# tests/test_manager.py
import random

import pytest

from exam_engine.errors import InvalidConfiguration, NoQuestionsAvailable
from exam_engine.manager import ExamManager
from exam_engine.models import ExamConfiguration
from exam_engine.questions import QuestionSource
from exam_engine.store import open_store


@pytest.fixture
def store(seeded_db):
    return open_store(seeded_db)


@pytest.fixture
def manager(seeded_db, store, clock):
    return ExamManager(store, QuestionSource(seeded_db), clock=clock, rng=random.Random(11))


def _restart(seeded_db, store, clock):
    return ExamManager(store, QuestionSource(seeded_db), clock=clock, rng=random.Random(12))


RENAL = ExamConfiguration("physiology", ("renal",), 4)


def test_create_session(manager):
    session = manager.create_session(RENAL, "u1")
    assert session.status == "created"
    assert len(session.state.questions) == 4
    assert all(q.topic == "renal" for q in session.state.questions)
    assert manager.get_live("u1") is session
    assert manager.persistence.load_most_recent_unfinished("u1").session_id == session.state.session_id


def test_create_session_all_topics(manager):
    config = ExamConfiguration.from_preset("quick", "physiology")
    session = manager.create_session(config, "u1")
    assert len(session.state.questions) == 10
    assert {q.subject for q in session.state.questions} == {"physiology"}


def test_create_session_validates(manager):
    with pytest.raises(InvalidConfiguration):
        manager.create_session(ExamConfiguration("physiology", ("renal",), 0), "u1")
    with pytest.raises(InvalidConfiguration):
        manager.create_session(RENAL, "")
    assert manager.get_live("u1") is None


def test_create_session_without_questions(manager):
    with pytest.raises(NoQuestionsAvailable):
        manager.create_session(ExamConfiguration("pharmacology", ("all",), 5), "u1")
    no_level_three = ExamConfiguration("physiology", ("renal",), 5, difficulty="intermediate")
    with pytest.raises(NoQuestionsAvailable):
        manager.create_session(no_level_three, "u1")


def test_failed_create_keeps_live_session(manager):
    first = manager.create_session(RENAL, "u1")
    with pytest.raises(NoQuestionsAvailable):
        manager.create_session(ExamConfiguration("pharmacology", ("all",), 5), "u1")
    assert manager.get_live("u1") is first


def test_new_session_replaces_live_one(manager, clock):
    first = manager.create_session(RENAL, "u1")
    first.start()
    first.submit_answer("A")
    clock.advance(5)
    second = manager.create_session(RENAL, "u1")
    assert manager.get_live("u1") is second
    # Saved once more before being replaced, then dropped from storage
    assert first.state.last_saved_at == clock()
    assert first.state.answers[0].time_spent == 5
    assert manager.persistence.store.get("sessions", first.state.session_id) is None
    assert manager.persistence.unfinished_session_ids("u1") == [second.state.session_id]


def test_replaced_session_not_resumable_after_new_one_ends(manager):
    first = manager.create_session(RENAL, "u1")
    first.start()
    first.submit_answer("A")
    second = manager.create_session(RENAL, "u1")
    second.start()
    second.end()
    assert manager.resume_from_storage("u1") is None


def test_session_saved_by_earlier_process_is_replaced(seeded_db, store, manager, clock):
    old = manager.create_session(RENAL, "u1")
    old.start()
    old.auto_save()
    clock.advance(60)

    fresh = _restart(seeded_db, store, clock)
    session = fresh.create_session(RENAL, "u1")
    assert fresh.persistence.unfinished_session_ids("u1") == [session.state.session_id]
    session.start()
    session.end()
    assert fresh.resume_from_storage("u1") is None
    assert _restart(seeded_db, store, clock).resume_from_storage("u1") is None


def test_replacing_leaves_other_users_alone(manager):
    alice = manager.create_session(RENAL, "alice")
    manager.create_session(RENAL, "bob")
    manager.create_session(RENAL, "bob")
    assert manager.persistence.unfinished_session_ids("alice") == [alice.state.session_id]


def test_users_are_independent(manager):
    a = manager.create_session(RENAL, "alice")
    b = manager.create_session(RENAL, "bob")
    assert manager.get_live("alice") is a
    assert manager.get_live("bob") is b


def test_resume_is_idempotent(manager):
    session = manager.create_session(RENAL, "u1")
    assert manager.resume_from_storage("u1") is session
    assert manager.resume_from_storage("u1") is session


def test_resume_without_saved_session(manager):
    assert manager.resume_from_storage("u1") is None


def test_resume_after_restart(seeded_db, store, manager, clock):
    session = manager.create_session(RENAL, "u1")
    session.start()
    session.submit_answer("B")
    clock.advance(20)
    session.next()
    budget = session.state.total_budget_ms / 1000
    assert session.auto_save()
    clock.advance(3600)

    fresh = _restart(seeded_db, store, clock)
    resumed = fresh.resume_from_storage("u1")
    assert resumed.status == "paused"
    assert resumed.state.current_index == 1
    assert resumed.state.answers[0].selected_option == "B"
    assert resumed.time_remaining() == budget - 20
    assert fresh.resume_from_storage("u1") is resumed
    resumed.start()
    clock.advance(4)
    assert resumed.time_remaining() == budget - 24


def test_finished_session_is_not_resumed(seeded_db, store, manager):
    session = manager.create_session(RENAL, "u1")
    session.start()
    result = session.end()
    assert result.saved
    assert manager.get_live("u1") is None
    assert manager.resume_from_storage("u1") is None
    assert _restart(seeded_db, store, None).persistence.get_result(session.state.session_id).saved


def test_repeat_exams_avoid_seen_questions(manager):
    def run():
        session = manager.create_session(RENAL, "u1")
        session.start()
        session.end()
        return {q.id for q in session.state.questions}

    first = run()
    second = run()
    assert not first & second
    assert manager.registry.get_seen("physiology", "renal") == first | second
    third = run()
    # Only two unseen renal questions were left, so the rotation starts over
    assert manager.registry.get_seen("physiology", "renal") == third


def test_autosave_all(manager, clock):
    manager.create_session(RENAL, "alice").start()
    finished = manager.create_session(RENAL, "bob")
    finished.start()
    finished.end()
    clock.advance(30)
    assert manager.autosave_all() == 1


def test_manager_without_store(seeded_db, clock):
    manager = ExamManager(None, QuestionSource(seeded_db), clock=clock)
    session = manager.create_session(RENAL, "u1")
    session.start()
    session.submit_answer("A")
    result = session.end()
    assert not result.saved
    assert manager.persistence.get_result(session.state.session_id).total == 4

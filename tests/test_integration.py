# tests/test_integration.py
"""End-to-end: seed, take an exam, leave, resume after a restart, finish."""
import random

from exam_engine.dashboard import get_history_stats
from exam_engine.db import init_db
from exam_engine.manager import ExamManager
from exam_engine.models import ExamConfiguration
from exam_engine.questions import QuestionSource
from exam_engine.review import get_weak_topics
from exam_engine.seed import seed_all
from exam_engine.store import open_store


def test_full_exam_flow(tmp_db, clock):
    init_db(tmp_db)
    seed_all(tmp_db)
    source = QuestionSource(tmp_db)
    config = ExamConfiguration("physiology", ("renal", "cardiovascular"), 8, timing_mode="fixed", fixed_seconds=60)

    manager = ExamManager(open_store(tmp_db), source, clock=clock, rng=random.Random(1))
    session = manager.create_session(config, "student")
    session.start()
    answered_right = 0
    for _ in range(4):
        q = session.state.questions[session.state.current_index]
        session.submit_answer(q.correct_option)
        answered_right += 1
        clock.advance(25)
        session.next()
    session.pause()
    session.auto_save()
    clock.advance(24 * 3600)

    # Process restart
    manager = ExamManager(open_store(tmp_db), source, clock=clock, rng=random.Random(2))
    session = manager.resume_from_storage("student")
    assert session.status == "paused"
    assert session.progress()["answered"] == 4
    assert session.time_remaining() == 8 * 60 - 100
    session.start()
    for _ in range(4):
        q = session.state.questions[session.state.current_index]
        wrong = next(o for o in q.option_ids if o != q.correct_option)
        session.submit_answer(wrong)
        clock.advance(25)
        session.next()
    result = session.end()

    assert result.saved
    assert result.correct == answered_right
    assert result.score_percentage == 50.0
    assert result.time_spent == 200
    assert manager.resume_from_storage("student") is None

    seen = set()
    for topic in ("renal", "cardiovascular"):
        seen |= manager.registry.get_seen("physiology", topic)
    assert seen == {q.id for q in session.state.questions}

    stats = get_history_stats(manager.persistence, "student")
    assert stats["exams_taken"] == 1
    assert stats["questions_answered"] == 8
    weak = get_weak_topics(manager.persistence, "student")
    assert all(w["score"] < 70 for w in weak)

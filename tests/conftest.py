import pytest

from exam_engine.db import init_db
from exam_engine.errors import StoreUnavailable
from exam_engine.models import Question
from exam_engine.seed import seed_all


@pytest.fixture
def tmp_db(tmp_path):
    """Provide a temporary SQLite database path for tests."""
    db_path = str(tmp_path / "test_exam.db")
    return db_path


@pytest.fixture
def seeded_db(tmp_db):
    """Temporary database holding the bundled sample questions."""
    init_db(tmp_db)
    seed_all(tmp_db)
    return tmp_db


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += int(seconds * 1000)


@pytest.fixture
def clock():
    return FakeClock()


class BrokenStore:
    """Store whose medium is gone."""

    def __getattr__(self, name):
        def fail(*args, **kwargs):
            raise StoreUnavailable("disk on fire")
        return fail


@pytest.fixture
def broken_store():
    return BrokenStore()


@pytest.fixture
def make_question():
    def make(qid, topic="renal", difficulty=1, correct="A", subject="physiology", options=4):
        return Question(
            id=qid,
            subject=subject,
            topic=topic,
            difficulty=difficulty,
            prompt=f"Prompt for {qid}",
            options=tuple(f"Option {n}" for n in range(options)),
            correct_option=correct,
            explanation=f"Because {correct}",
        )
    return make

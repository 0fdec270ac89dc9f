"""Seed the database with the bundled sample question bank."""
import json
from pathlib import Path

from exam_engine.db import get_connection
from exam_engine.models import Question
from exam_engine.questions import save_questions

CONTENT_DIR = Path(__file__).parent / "content"


def is_seeded(db_path: str) -> bool:
    """Check whether the question bank has any questions yet."""
    conn = get_connection(db_path)
    count = conn.execute("SELECT COUNT(*) FROM questions").fetchone()[0]
    conn.close()
    return count > 0


def load_sample_questions() -> list[Question]:
    data = json.loads((CONTENT_DIR / "questions.json").read_text())
    return [Question.from_dict(q) for q in data["questions"]]


def seed_questions(db_path: str) -> int:
    """Insert the sample questions from questions.json."""
    return save_questions(db_path, load_sample_questions())


def seed_all(db_path: str) -> None:
    """Seed everything (idempotent)."""
    if is_seeded(db_path):
        return
    seed_questions(db_path)

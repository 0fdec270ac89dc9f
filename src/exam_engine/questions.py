"""Question bank queries."""
import json

from exam_engine.db import get_connection
from exam_engine.models import Question


def _row_to_question(row) -> Question:
    return Question(
        id=row["id"],
        subject=row["subject"],
        topic=row["topic"],
        difficulty=row["difficulty"],
        prompt=row["prompt"],
        options=tuple(json.loads(row["options"])),
        correct_option=row["correct_option"],
        explanation=row["explanation"] or "",
        image=row["image"],
    )


class QuestionSource:
    """Read access to the locally cached question bank."""

    def __init__(self, db_path: str):
        self.db_path = db_path

    def query_questions(self, subject: str, topics=None, difficulty_levels=None) -> list[Question]:
        """Questions for a subject, optionally narrowed to topics and levels.

        ``topics`` of None means every topic. Results are ordered by id.
        """
        sql = "SELECT * FROM questions WHERE subject = ?"
        params: list = [subject]
        if topics:
            sql += f" AND topic IN ({','.join('?' * len(topics))})"
            params.extend(topics)
        if difficulty_levels:
            sql += f" AND difficulty IN ({','.join('?' * len(difficulty_levels))})"
            params.extend(int(level) for level in difficulty_levels)
        sql += " ORDER BY id"
        conn = get_connection(self.db_path)
        rows = conn.execute(sql, params).fetchall()
        conn.close()
        return [_row_to_question(r) for r in rows]

    def get_question_by_id(self, question_id: str) -> Question | None:
        conn = get_connection(self.db_path)
        row = conn.execute("SELECT * FROM questions WHERE id = ?", (str(question_id),)).fetchone()
        conn.close()
        return _row_to_question(row) if row else None

    def count_questions(self, subject: str = None, topic: str = None) -> int:
        sql = "SELECT COUNT(*) FROM questions WHERE 1=1"
        params = []
        if subject:
            sql += " AND subject = ?"
            params.append(subject)
        if topic:
            sql += " AND topic = ?"
            params.append(topic)
        conn = get_connection(self.db_path)
        count = conn.execute(sql, params).fetchone()[0]
        conn.close()
        return count

    def list_subjects(self) -> list[str]:
        conn = get_connection(self.db_path)
        rows = conn.execute("SELECT DISTINCT subject FROM questions ORDER BY subject").fetchall()
        conn.close()
        return [r["subject"] for r in rows]

    def list_topics(self, subject: str) -> list[str]:
        conn = get_connection(self.db_path)
        rows = conn.execute(
            "SELECT DISTINCT topic FROM questions WHERE subject = ? ORDER BY topic", (subject,)
        ).fetchall()
        conn.close()
        return [r["topic"] for r in rows]


def save_questions(db_path: str, questions: list[Question]) -> int:
    """Insert or replace question records. Returns the number written."""
    conn = get_connection(db_path)
    for q in questions:
        conn.execute(
            """INSERT OR REPLACE INTO questions
            (id, subject, topic, difficulty, prompt, options, correct_option, explanation, image)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (q.id, q.subject, q.topic, q.difficulty, q.prompt, json.dumps(list(q.options)),
             q.correct_option, q.explanation, q.image),
        )
    conn.commit()
    conn.close()
    return len(questions)

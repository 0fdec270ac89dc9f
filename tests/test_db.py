# tests/test_db.py
from exam_engine.db import get_connection, init_db


def test_init_db_creates_tables(tmp_db):
    init_db(tmp_db)
    conn = get_connection(tmp_db)
    tables = {r["name"] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()}
    conn.close()
    assert {"questions", "records"} <= tables


def test_init_db_is_idempotent(tmp_db):
    init_db(tmp_db)
    init_db(tmp_db)
    conn = get_connection(tmp_db)
    count = conn.execute("SELECT COUNT(*) FROM questions").fetchone()[0]
    conn.close()
    assert count == 0


def test_init_db_creates_parent_directory(tmp_path):
    db_path = tmp_path / "nested" / "dir" / "exam.db"
    init_db(str(db_path))
    assert db_path.exists()


def test_connection_returns_rows_by_name(tmp_db):
    init_db(tmp_db)
    conn = get_connection(tmp_db)
    row = conn.execute("SELECT 1 AS one").fetchone()
    conn.close()
    assert row["one"] == 1

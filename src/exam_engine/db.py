"""Database initialization and connection management."""
import sqlite3
from pathlib import Path

from exam_engine.config import DEFAULT_DB_PATH

SCHEMA = """
CREATE TABLE IF NOT EXISTS questions (
    id TEXT PRIMARY KEY,
    subject TEXT NOT NULL,
    topic TEXT NOT NULL,
    difficulty INTEGER NOT NULL DEFAULT 3,
    prompt TEXT NOT NULL,
    options TEXT NOT NULL,
    correct_option TEXT NOT NULL,
    explanation TEXT,
    image TEXT
);

CREATE INDEX IF NOT EXISTS idx_questions_subject_topic
    ON questions (subject, topic);

CREATE TABLE IF NOT EXISTS records (
    collection TEXT NOT NULL,
    id TEXT NOT NULL,
    body TEXT NOT NULL,
    updated_at TEXT,
    PRIMARY KEY (collection, id)
);
"""


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Return a SQLite connection with row factory and foreign keys enabled."""
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def init_db(db_path: str = DEFAULT_DB_PATH) -> None:
    """Initialize the database, creating all tables if they don't exist."""
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = get_connection(db_path)
    conn.executescript(SCHEMA)
    conn.commit()
    conn.close()

"""Key/value record storage by named collection.

Every store exposes the same five operations (``get``, ``get_all``, ``put``,
``delete``, ``clear``) and reports any failure of its medium as
``StoreUnavailable``. Records are plain JSON-compatible dicts whose key is
their ``id`` field.
"""
import copy
import json
import logging
import sqlite3
from datetime import datetime

from exam_engine.db import get_connection, init_db
from exam_engine.errors import StoreUnavailable

logger = logging.getLogger(__name__)


def _record_key(record: dict) -> str:
    try:
        return str(record["id"])
    except (KeyError, TypeError):
        raise ValueError("Stored records need an 'id' field")


class SqliteStore:
    """Collections kept in the ``records`` table of the engine database."""

    def __init__(self, db_path: str):
        self.db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        try:
            return get_connection(self.db_path)
        except sqlite3.Error as e:
            raise StoreUnavailable(f"Cannot open {self.db_path}: {e}") from e

    def get(self, collection: str, key: str) -> dict | None:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT body FROM records WHERE collection = ? AND id = ?",
                (collection, str(key)),
            ).fetchone()
        except sqlite3.Error as e:
            raise StoreUnavailable(f"Read from {collection} failed: {e}") from e
        finally:
            conn.close()
        return json.loads(row["body"]) if row else None

    def get_all(self, collection: str) -> list[dict]:
        conn = self._connect()
        try:
            rows = conn.execute(
                "SELECT body FROM records WHERE collection = ? ORDER BY id",
                (collection,),
            ).fetchall()
        except sqlite3.Error as e:
            raise StoreUnavailable(f"Read from {collection} failed: {e}") from e
        finally:
            conn.close()
        return [json.loads(row["body"]) for row in rows]

    def put(self, collection: str, record: dict) -> None:
        key = _record_key(record)
        body = json.dumps(record)
        conn = self._connect()
        try:
            conn.execute(
                """INSERT INTO records (collection, id, body, updated_at) VALUES (?, ?, ?, ?)
                ON CONFLICT(collection, id) DO UPDATE SET body=excluded.body, updated_at=excluded.updated_at""",
                (collection, key, body, datetime.now().isoformat()),
            )
            conn.commit()
        except sqlite3.Error as e:
            raise StoreUnavailable(f"Write to {collection} failed: {e}") from e
        finally:
            conn.close()

    def delete(self, collection: str, key: str) -> None:
        conn = self._connect()
        try:
            conn.execute(
                "DELETE FROM records WHERE collection = ? AND id = ?",
                (collection, str(key)),
            )
            conn.commit()
        except sqlite3.Error as e:
            raise StoreUnavailable(f"Delete from {collection} failed: {e}") from e
        finally:
            conn.close()

    def clear(self, collection: str) -> None:
        conn = self._connect()
        try:
            conn.execute("DELETE FROM records WHERE collection = ?", (collection,))
            conn.commit()
        except sqlite3.Error as e:
            raise StoreUnavailable(f"Clear of {collection} failed: {e}") from e
        finally:
            conn.close()


class MemoryStore:
    """Process-local store with no durability."""

    def __init__(self):
        self._collections: dict[str, dict[str, dict]] = {}

    def get(self, collection: str, key: str) -> dict | None:
        record = self._collections.get(collection, {}).get(str(key))
        return copy.deepcopy(record) if record is not None else None

    def get_all(self, collection: str) -> list[dict]:
        records = self._collections.get(collection, {})
        return [copy.deepcopy(records[k]) for k in sorted(records)]

    def put(self, collection: str, record: dict) -> None:
        key = _record_key(record)
        self._collections.setdefault(collection, {})[key] = copy.deepcopy(record)

    def delete(self, collection: str, key: str) -> None:
        self._collections.get(collection, {}).pop(str(key), None)

    def clear(self, collection: str) -> None:
        self._collections.pop(collection, None)


class FallbackStore:
    """Use ``primary`` until it fails, then ``fallback`` for the rest of the process."""

    def __init__(self, primary, fallback=None):
        self.primary = primary
        self.fallback = fallback if fallback is not None else MemoryStore()
        self.degraded = False

    def _call(self, op: str, *args):
        if not self.degraded:
            try:
                return getattr(self.primary, op)(*args)
            except StoreUnavailable as e:
                logger.warning("Primary store failed (%s); using %s from now on",
                               e, type(self.fallback).__name__)
                self.degraded = True
        return getattr(self.fallback, op)(*args)

    def get(self, collection: str, key: str) -> dict | None:
        return self._call("get", collection, key)

    def get_all(self, collection: str) -> list[dict]:
        return self._call("get_all", collection)

    def put(self, collection: str, record: dict) -> None:
        self._call("put", collection, record)

    def delete(self, collection: str, key: str) -> None:
        self._call("delete", collection, key)

    def clear(self, collection: str) -> None:
        self._call("clear", collection)


def open_store(db_path: str) -> FallbackStore:
    """SQLite-backed store that degrades to memory if the file is unusable."""
    try:
        init_db(db_path)
    except (sqlite3.Error, OSError) as e:
        logger.warning("Database %s unavailable (%s); sessions will not survive a restart", db_path, e)
        return FallbackStore(_UnavailableStore(str(e)))
    return FallbackStore(SqliteStore(db_path))


class _UnavailableStore:
    def __init__(self, reason: str):
        self.reason = reason

    def __getattr__(self, name):
        def fail(*args):
            raise StoreUnavailable(self.reason)
        return fail

"""Auto-save, resume lookup and result storage for exam sessions."""
import logging

from exam_engine.config import RESULTS_COLLECTION, SESSIONS_COLLECTION
from exam_engine.errors import StoreUnavailable
from exam_engine.models import FINISHED, ExamResult, SessionState
from exam_engine.store import MemoryStore
from exam_engine.timing import now_ms

logger = logging.getLogger(__name__)


class SessionPersistence:
    """Reads and writes sessions and results through a store.

    Writes that the store rejects land in an in-process cache instead, so a
    broken store costs durability but never an exam. ``store`` may be None
    to run without any durable medium at all.
    """

    def __init__(self, store=None, clock=None):
        self.store = store
        self.cache = MemoryStore()
        self.clock = clock or now_ms

    def _put(self, collection: str, record: dict) -> bool:
        if self.store is not None:
            try:
                self.store.put(collection, record)
                self.cache.delete(collection, record["id"])
                return True
            except StoreUnavailable as e:
                logger.warning("Store write to %s failed for %s: %s", collection, record["id"], e)
        self.cache.put(collection, record)
        return False

    def _get_all(self, collection: str) -> list[dict]:
        records = {}
        if self.store is not None:
            try:
                records = {r["id"]: r for r in self.store.get_all(collection)}
            except StoreUnavailable as e:
                logger.warning("Store read of %s failed: %s", collection, e)
        for r in self.cache.get_all(collection):
            records[r["id"]] = r
        return list(records.values())

    def _delete(self, collection: str, key: str) -> bool:
        self.cache.delete(collection, key)
        if self.store is None:
            return False
        try:
            self.store.delete(collection, key)
            return True
        except StoreUnavailable as e:
            logger.warning("Store delete from %s failed for %s: %s", collection, key, e)
            return False

    # -- in-progress sessions ----------------------------------------------

    def auto_save(self, state: SessionState, now: int = None) -> bool:
        """Overwrite the saved copy of ``state``. True if it reached the store."""
        state.last_saved_at = now if now is not None else self.clock()
        record = {
            "id": state.session_id,
            "user_id": state.user_id,
            "status": state.status,
            "saved_at": state.last_saved_at,
            "state": state.to_dict(),
        }
        saved = self._put(SESSIONS_COLLECTION, record)
        if saved:
            logger.debug("Auto-saved session %s", state.session_id)
        return saved

    def _unfinished(self, user_id: str) -> list[dict]:
        return [
            r for r in self._get_all(SESSIONS_COLLECTION)
            if r["user_id"] == user_id and r["status"] != FINISHED
        ]

    def unfinished_session_ids(self, user_id: str) -> list[str]:
        return [r["id"] for r in self._unfinished(user_id)]

    def load_most_recent_unfinished(self, user_id: str) -> SessionState | None:
        candidates = self._unfinished(user_id)
        if not candidates:
            return None
        # Saves in the same millisecond go to the session created last
        latest = max(candidates, key=lambda r: (r["saved_at"] or 0, r["state"]["created_at"]))
        return SessionState.from_dict(latest["state"])

    def delete_saved(self, session_id: str) -> bool:
        return self._delete(SESSIONS_COLLECTION, session_id)

    # -- results -------------------------------------------------------------

    def save_result(self, result: ExamResult) -> bool:
        """Store a completed result. True if it reached the store."""
        data = result.to_dict()
        data["saved"] = True
        record = {
            "id": result.session_id,
            "user_id": result.user_id,
            "subject": result.subject,
            "completed_at": result.completed_at,
            "result": data,
        }
        saved = self._put(RESULTS_COLLECTION, record)
        if not saved:
            record["result"]["saved"] = False
            self.cache.put(RESULTS_COLLECTION, record)
            logger.error("Result for session %s kept in memory only", result.session_id)
        return saved

    def get_result(self, session_id: str) -> ExamResult | None:
        for r in self._get_all(RESULTS_COLLECTION):
            if r["id"] == session_id:
                return ExamResult.from_dict(r["result"])
        return None

    def list_results(self, user_id: str, subject: str = None, limit: int = None) -> list[ExamResult]:
        """Completed results for ``user_id``, newest first."""
        records = [
            r for r in self._get_all(RESULTS_COLLECTION)
            if r["user_id"] == user_id and (subject is None or r["subject"] == subject)
        ]
        records.sort(key=lambda r: r["completed_at"], reverse=True)
        if limit is not None:
            records = records[:limit]
        return [ExamResult.from_dict(r["result"]) for r in records]

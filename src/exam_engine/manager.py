"""Session creation, replacement and resume for each user."""
import logging
import random

from exam_engine.engine import ExamSession
from exam_engine.errors import InvalidConfiguration
from exam_engine.models import FINISHED
from exam_engine.persistence import SessionPersistence
from exam_engine.registry import SeenQuestionRegistry
from exam_engine.selector import select_questions
from exam_engine.store import MemoryStore
from exam_engine.timing import now_ms

logger = logging.getLogger(__name__)


class ExamManager:
    """Keeps at most one live (unfinished) session per user.

    Construct one per process and hand it the store and question source;
    ``clock`` and ``rng`` can be replaced for reproducible runs.
    """

    def __init__(self, store, source, clock=None, rng: random.Random = None):
        self.clock = clock or now_ms
        self.rng = rng or random.Random()
        self.source = source
        self.persistence = SessionPersistence(store, clock=self.clock)
        self.registry = SeenQuestionRegistry(store if store is not None else MemoryStore())
        self._live: dict[str, ExamSession] = {}

    def _wrap(self) -> dict:
        return dict(persistence=self.persistence, registry=self.registry, clock=self.clock)

    def create_session(self, config, user_id: str) -> ExamSession:
        """Select questions for ``config`` and build a new session for ``user_id``.

        A session already live for the user is saved (best effort) and
        replaced, but only once the new one has been built. The new session
        is then the only one of the user left in storage.
        """
        if not user_id:
            raise InvalidConfiguration("A user id is required")
        config.validate()
        topics = None if config.all_topics else list(config.topics)
        pool = self.source.query_questions(config.subject, topics, config.difficulty_levels())
        questions = select_questions(config, pool, self.registry, self.rng)

        self.discard(user_id)
        session = ExamSession.build(config, questions, user_id, **self._wrap())
        self._live[user_id] = session
        session.auto_save()
        self._drop_saved(user_id, keep=session.state.session_id)
        logger.info("Created session %s for %s: %d questions (%s, %s timing)",
                    session.state.session_id, user_id, len(questions),
                    config.difficulty, config.timing_mode)
        return session

    def get_live(self, user_id: str) -> ExamSession | None:
        session = self._live.get(user_id)
        if session is None or session.status == FINISHED:
            return None
        return session

    def discard(self, user_id: str) -> None:
        """Forget the user's live session after trying to save it."""
        session = self._live.pop(user_id, None)
        if session is None or session.status == FINISHED:
            return
        logger.info("Replacing live session %s for %s", session.state.session_id, user_id)
        if not session.auto_save():
            logger.warning("Could not save session %s before replacing it; progress kept in memory only",
                           session.state.session_id)

    def _drop_saved(self, user_id: str, keep: str) -> None:
        """Delete every saved unfinished session of ``user_id`` except ``keep``."""
        for session_id in self.persistence.unfinished_session_ids(user_id):
            if session_id != keep:
                self.persistence.delete_saved(session_id)
                logger.info("Dropped replaced session %s for %s", session_id, user_id)

    def resume_from_storage(self, user_id: str) -> ExamSession | None:
        """The user's most recent unfinished session, or None.

        Calling it again returns the same live session.
        """
        live = self.get_live(user_id)
        if live is not None:
            return live
        state = self.persistence.load_most_recent_unfinished(user_id)
        if state is None:
            return None
        session = ExamSession.rehydrate(state, **self._wrap())
        self._live[user_id] = session
        logger.info("Resumed session %s for %s at question %d (%s)",
                    state.session_id, user_id, state.current_index + 1, state.status)
        return session

    def autosave_all(self) -> int:
        """Save every live session; called by the external scheduler."""
        saved = 0
        for session in list(self._live.values()):
            if session.status != FINISHED and session.auto_save():
                saved += 1
        return saved

"""Exam session state machine, time accounting and scoring.

A session moves ``created -> active <-> paused -> finished``. Time is read
from one logical clock: wall time since ``start()`` minus every paused
interval. Per-question time accrues on that clock whenever the current
question changes, the session pauses or is saved, or the session ends, so
nothing is ever counted twice and nothing runs in the background.
"""
import logging
import math
import uuid
from collections import defaultdict

from exam_engine.config import (
    MAX_REALISTIC_SECONDS, MIN_REALISTIC_SECONDS, WEAK_AREA_THRESHOLD,
)
from exam_engine.errors import (
    IndexOutOfRange, InvalidAnswer, InvalidSessionState, NoQuestionsAvailable,
    SessionFinished, StoreUnavailable,
)
from exam_engine.models import (
    ACTIVE, CREATED, FINISHED, PAUSED, AnswerRecord, ExamResult,
    QuestionOutcome, SessionState, TopicScore,
)
from exam_engine.timing import (
    check_clock_drift, now_ms, pace_color, time_for_question, total_budget_ms,
)

logger = logging.getLogger(__name__)


class ExamSession:
    """Owns one SessionState and every mutation of it."""

    def __init__(self, state: SessionState, persistence=None, registry=None, clock=None):
        self.state = state
        self.persistence = persistence
        self.registry = registry
        self.clock = clock or now_ms
        self.result = None
        self._last_now = state.last_saved_at

    @classmethod
    def build(cls, config, questions, user_id: str, clock=None, session_id: str = None, **kwargs) -> "ExamSession":
        """Create a session in ``created`` status with default answer records."""
        if not questions:
            raise NoQuestionsAvailable("Cannot build a session without questions")
        clock = clock or now_ms
        questions = list(questions)
        state = SessionState(
            session_id=session_id or uuid.uuid4().hex,
            user_id=user_id,
            config=config,
            questions=questions,
            answers=[AnswerRecord() for _ in questions],
            created_at=clock(),
            total_budget_ms=total_budget_ms(questions, config),
        )
        return cls(state, clock=clock, **kwargs)

    @classmethod
    def rehydrate(cls, state: SessionState, **kwargs) -> "ExamSession":
        """Wrap a stored state. A session saved while active comes back paused
        from its last save, so downtime is never charged to the exam. A clock
        reading well behind the last save is logged as drift."""
        session = cls(state, **kwargs)
        if state.last_saved_at is not None:
            now = session.clock()
            if now < state.last_saved_at:
                drift = check_clock_drift(now, state.last_saved_at)
                if drift["status"] != "ok":
                    logger.warning("Clock is %d ms behind the last save of session %s (%s)",
                                   drift["drift_ms"], state.session_id, drift["status"])
        if state.status == ACTIVE:
            state.status = PAUSED
            state.pause_started_at = state.last_saved_at or session._now()
        return session

    # -- clock --------------------------------------------------------------

    def _now(self) -> int:
        now = self.clock()
        if self._last_now is not None and now < self._last_now:
            logger.warning("Clock moved backwards by %d ms in session %s; holding at last reading",
                           self._last_now - now, self.state.session_id)
            now = self._last_now
        self._last_now = now
        return now

    def _elapsed_ms(self, now: int) -> int:
        s = self.state
        if s.start_time is None:
            return 0
        end = s.finished_at if s.finished_at is not None else now
        paused = s.paused_ms
        if s.pause_started_at is not None:
            paused += max(0, end - s.pause_started_at)
        return max(0, end - s.start_time - paused)

    def _accrue(self, now: int) -> None:
        s = self.state
        if s.start_time is None:
            return
        elapsed = self._elapsed_ms(now)
        delta = elapsed - s.question_entered_ms
        if delta > 0:
            record = s.answers[s.current_index]
            record.time_spent += delta / 1000
            seconds = delta / 1000
            if seconds > MAX_REALISTIC_SECONDS:
                logger.warning("Excessive time on question %s: %.0fs",
                               s.questions[s.current_index].id, seconds)
            elif record.answered and seconds < MIN_REALISTIC_SECONDS:
                logger.warning("Suspiciously fast answer on question %s: %.1fs",
                               s.questions[s.current_index].id, seconds)
        s.question_entered_ms = elapsed

    def _require(self, *allowed: str) -> None:
        status = self.state.status
        if status == FINISHED:
            raise SessionFinished(f"Session {self.state.session_id} has finished")
        if status not in allowed:
            raise InvalidSessionState(f"Not allowed while session is {status}")

    # -- lifecycle ----------------------------------------------------------

    @property
    def status(self) -> str:
        return self.state.status

    def start(self) -> None:
        s = self.state
        if s.status == FINISHED:
            raise SessionFinished(f"Session {s.session_id} has finished")
        if s.status == PAUSED:
            self.resume()
            return
        if s.status == ACTIVE:
            return
        s.start_time = self._now()
        s.status = ACTIVE
        s.question_entered_ms = 0
        s.answers[s.current_index].visited = True

    def pause(self) -> None:
        s = self.state
        if s.status == PAUSED:
            return
        self._require(ACTIVE)
        now = self._now()
        self._accrue(now)
        s.pause_started_at = now
        s.status = PAUSED

    def resume(self) -> None:
        s = self.state
        if s.status == ACTIVE:
            return
        self._require(PAUSED)
        now = self._now()
        s.paused_ms += max(0, now - s.pause_started_at)
        s.pause_started_at = None
        s.status = ACTIVE

    # -- navigation ---------------------------------------------------------

    def _move(self, index: int) -> int:
        s = self.state
        self._accrue(self._now())
        s.current_index = index
        s.answers[index].visited = True
        return index

    def next(self) -> int:
        self._require(ACTIVE, PAUSED)
        s = self.state
        if s.current_index + 1 < len(s.questions):
            self._move(s.current_index + 1)
        return s.current_index

    def prev(self) -> int:
        self._require(ACTIVE, PAUSED)
        s = self.state
        if s.current_index > 0:
            self._move(s.current_index - 1)
        return s.current_index

    def goto(self, index: int) -> int:
        """Jump to ``index``. Out-of-range indexes raise and change nothing."""
        self._require(ACTIVE, PAUSED)
        if not 0 <= index < len(self.state.questions):
            raise IndexOutOfRange(f"Question index {index} outside 0..{len(self.state.questions) - 1}")
        return self._move(index)

    def goto_question(self, question_id: str) -> int:
        for index, q in enumerate(self.state.questions):
            if q.id == question_id:
                return self.goto(index)
        raise IndexOutOfRange(f"Question {question_id} is not part of this session")

    # -- answers and flags --------------------------------------------------

    def submit_answer(self, option) -> None:
        """Record ``option`` for the current question; None clears it."""
        self._require(ACTIVE)
        s = self.state
        question = s.questions[s.current_index]
        if option is not None:
            option = str(option).strip().upper()
            if option not in question.option_ids:
                raise InvalidAnswer(f"{option!r} is not an option of question {question.id}")
        record = s.answers[s.current_index]
        record.selected_option = option
        record.visited = True

    def clear_answer(self) -> None:
        self.submit_answer(None)

    def set_flag(self, flagged: bool = True) -> bool:
        self._require(ACTIVE)
        s = self.state
        s.answers[s.current_index].flagged = bool(flagged)
        return s.answers[s.current_index].flagged

    def toggle_flag(self) -> bool:
        self._require(ACTIVE)
        s = self.state
        return self.set_flag(not s.answers[s.current_index].flagged)

    # -- reads --------------------------------------------------------------

    def current_question(self) -> dict:
        """The current question as shown to the candidate.

        The correct option and explanation are withheld until the session
        has finished.
        """
        s = self.state
        q = s.questions[s.current_index]
        record = s.answers[s.current_index]
        view = {
            "id": q.id,
            "number": s.current_index + 1,
            "total": len(s.questions),
            "subject": q.subject,
            "topic": q.topic,
            "difficulty": q.difficulty,
            "prompt": q.prompt,
            "options": dict(zip(q.option_ids, q.options)),
            "image": q.image,
            "allotted_seconds": time_for_question(q, s.config.timing_mode, s.config.fixed_seconds),
            "selected_option": record.selected_option,
            "flagged": record.flagged,
            "visited": record.visited,
        }
        if s.status == FINISHED:
            view["correct_option"] = q.correct_option
            view["explanation"] = q.explanation
        return view

    def progress(self) -> dict:
        answers = self.state.answers
        total = len(answers)
        answered = sum(1 for a in answers if a.answered)
        visited = sum(1 for a in answers if a.visited)
        return {
            "current": self.state.current_index + 1,
            "total": total,
            "answered": answered,
            "unanswered": total - answered,
            "flagged": sum(1 for a in answers if a.flagged),
            "visited": visited,
            "not_visited": total - visited,
            "percent_complete": round(answered / total * 100, 1),
        }

    def flagged_indices(self) -> list[int]:
        return [i for i, a in enumerate(self.state.answers) if a.flagged]

    def unanswered_indices(self) -> list[int]:
        return [i for i, a in enumerate(self.state.answers) if not a.answered]

    def elapsed_seconds(self) -> float:
        return self._elapsed_ms(self._now()) / 1000

    def time_remaining(self) -> float | None:
        """Seconds left in the whole exam, or None for an untimed exam."""
        s = self.state
        if s.config.timing_mode == "none" or not s.total_budget_ms:
            return None
        remaining = s.total_budget_ms - self._elapsed_ms(self._now())
        return max(0, remaining) / 1000

    def is_time_up(self) -> bool:
        remaining = self.time_remaining()
        return remaining is not None and remaining <= 0

    def question_time_remaining(self) -> dict | None:
        """Pacing signal for the current question; never changes state."""
        s = self.state
        q = s.questions[s.current_index]
        allotted = time_for_question(q, s.config.timing_mode, s.config.fixed_seconds)
        if allotted is None:
            return None
        spent = s.answers[s.current_index].time_spent
        if s.status in (ACTIVE, PAUSED):
            spent += max(0, self._elapsed_ms(self._now()) - s.question_entered_ms) / 1000
        remaining = max(0.0, allotted - spent)
        return {
            "allotted": allotted,
            "spent": spent,
            "remaining": remaining,
            "color": pace_color(remaining / allotted),
        }

    # -- persistence --------------------------------------------------------

    def auto_save(self) -> bool:
        """Persist the current state. Failures are logged, never raised."""
        if self.persistence is None or self.state.status == FINISHED:
            return False
        if self.state.status == ACTIVE:
            self._accrue(self._now())
        return self.persistence.auto_save(self.state, now=self._now())

    def end(self) -> ExamResult:
        """Finish the session, score it, store the result and mark questions seen.

        The returned result is authoritative even when storage fails; in that
        case ``result.saved`` is False and the caller may retry with
        ``persistence.save_result``.
        """
        self._require(ACTIVE, PAUSED)
        s = self.state
        now = self._now()
        self._accrue(now)
        if s.pause_started_at is not None:
            s.paused_ms += max(0, now - s.pause_started_at)
            s.pause_started_at = None
        s.status = FINISHED
        s.finished_at = now

        result = compute_result(s, completed_at=now)
        self.result = result
        if self.persistence is not None:
            result.saved = self.persistence.save_result(result)
            self.persistence.delete_saved(s.session_id)
        if self.registry is not None:
            self._mark_seen()
        return result

    def _mark_seen(self) -> None:
        s = self.state
        by_topic = defaultdict(list)
        for q in s.questions:
            by_topic[(q.subject, q.topic)].append(q.id)
        for (subject, topic), ids in by_topic.items():
            try:
                self.registry.add_seen(subject, topic, ids)
            except StoreUnavailable as e:
                logger.error("Could not record seen questions for %s:%s: %s", subject, topic, e)


def _topic_score(count: int, correct: int, time_spent: float) -> TopicScore:
    return TopicScore(
        count=count,
        correct=correct,
        percentage=100 * correct / count if count else 0.0,
        average_time=time_spent / count if count else 0.0,
    )


def _consistency(percentages: list[float]) -> str:
    if len(percentages) < 2:
        return "unknown"
    mean = sum(percentages) / len(percentages)
    std_dev = math.sqrt(sum((p - mean) ** 2 for p in percentages) / len(percentages))
    if std_dev < 10:
        return "high"
    elif std_dev < 20:
        return "moderate"
    return "low"


def compute_result(state: SessionState, completed_at: int, threshold: float = WEAK_AREA_THRESHOLD) -> ExamResult:
    """Score a session. Pure function of the state."""
    outcomes = []
    topic_totals = defaultdict(lambda: [0, 0, 0.0])
    level_totals = defaultdict(lambda: [0, 0, 0.0])
    for q, a in zip(state.questions, state.answers):
        is_correct = a.selected_option is not None and a.selected_option == q.correct_option
        outcomes.append(QuestionOutcome(
            question_id=q.id,
            topic=q.topic,
            difficulty=q.difficulty,
            chosen_option=a.selected_option,
            correct_option=q.correct_option,
            is_correct=is_correct,
            time_spent=a.time_spent,
            flagged=a.flagged,
        ))
        for totals in (topic_totals[q.topic], level_totals[q.difficulty]):
            totals[0] += 1
            totals[1] += int(is_correct)
            totals[2] += a.time_spent

    topics = {t: _topic_score(*v) for t, v in sorted(topic_totals.items())}
    difficulties = {lvl: _topic_score(*v) for lvl, v in sorted(level_totals.items())}
    weak = sorted(
        (t for t, score in topics.items() if score.count > 0 and score.percentage < threshold),
        key=lambda t: (topics[t].percentage, t),
    )

    total = len(outcomes)
    correct = sum(1 for o in outcomes if o.is_correct)
    unanswered = sum(1 for o in outcomes if o.chosen_option is None)
    time_spent = sum(o.time_spent for o in outcomes)
    score = 100 * correct / total if total else 0.0
    average_time = time_spent / total if total else 0.0

    if average_time < 30:
        speed = "fast"
    elif average_time < 45:
        speed = "moderate"
    else:
        speed = "slow"
    if score >= 80:
        accuracy = "high"
    elif score >= 60:
        accuracy = "moderate"
    else:
        accuracy = "low"

    return ExamResult(
        session_id=state.session_id,
        user_id=state.user_id,
        subject=state.config.subject,
        mode=state.config.timing_mode,
        completed_at=completed_at,
        total=total,
        correct=correct,
        incorrect=total - correct - unanswered,
        unanswered=unanswered,
        score_percentage=score,
        time_spent=time_spent,
        average_time=average_time,
        outcomes=outcomes,
        topics=topics,
        difficulties=difficulties,
        weak_areas=weak,
        performance={
            "speed": speed,
            "accuracy": accuracy,
            "consistency": _consistency([s.percentage for s in topics.values()]),
        },
    )

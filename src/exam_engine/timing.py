"""Time allotments, exam budgets and clock helpers.

All timestamps are integer milliseconds since the epoch. Durations shown to
the user are seconds.
"""
import time

from exam_engine.config import (
    CLOCK_DRIFT_WARNING_MS, DEFAULT_FIXED_SECONDS, DEFAULT_QUESTION_SECONDS,
    MAX_CLOCK_DRIFT_MS, QUESTION_TIME_SECONDS,
)


def now_ms() -> int:
    return int(time.time() * 1000)


def time_for_question(question, timing_mode: str = "adaptive", fixed_seconds: int = None) -> int | None:
    """Seconds allotted to one question, or None when untimed."""
    if timing_mode == "none":
        return None
    if timing_mode == "fixed":
        return fixed_seconds or DEFAULT_FIXED_SECONDS
    return QUESTION_TIME_SECONDS.get(question.difficulty, DEFAULT_QUESTION_SECONDS)


def total_budget_ms(questions, config) -> int:
    """Whole-exam budget; 0 means untimed."""
    if config.timing_mode == "none":
        return 0
    return sum(
        time_for_question(q, config.timing_mode, config.fixed_seconds) for q in questions
    ) * 1000


def pace_color(fraction_remaining: float) -> str:
    if fraction_remaining > 0.7:
        return "green"
    elif fraction_remaining > 0.3:
        return "yellow"
    return "red"


def format_time(seconds: float) -> str:
    """Format seconds as MM:SS."""
    seconds = max(0, int(seconds))
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


def check_clock_drift(local_ms: int, reference_ms: int) -> dict:
    """Compare the local clock with a trusted reference.

    Returns ``{"status": "ok" | "warning" | "violation", "drift_ms": int}``.
    """
    drift = abs(local_ms - reference_ms)
    if drift > MAX_CLOCK_DRIFT_MS:
        status = "violation"
    elif drift > CLOCK_DRIFT_WARNING_MS:
        status = "warning"
    else:
        status = "ok"
    return {"status": status, "drift_ms": drift}

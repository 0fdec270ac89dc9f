"""Readiness labels and exam history statistics."""

RECENT_EXAMS = 5


def get_readiness_label(score: float) -> str:
    if score >= 80:
        return "READY"
    elif score >= 65:
        return "LIKELY"
    elif score >= 50:
        return "NEEDS WORK"
    return "NOT READY"


def get_readiness_color(score: float) -> str:
    if score >= 80:
        return "green"
    elif score >= 65:
        return "yellow"
    elif score >= 50:
        return "dark_orange"
    return "red"


def calc_readiness_score(persistence, user_id: str, subject: str = None) -> float:
    """Mean score of the most recent exams."""
    recent = persistence.list_results(user_id, subject=subject, limit=RECENT_EXAMS)
    if not recent:
        return 0.0
    return round(sum(r.score_percentage for r in recent) / len(recent), 1)


def get_history_stats(persistence, user_id: str, subject: str = None) -> dict:
    results = persistence.list_results(user_id, subject=subject)
    if not results:
        return {
            "exams_taken": 0,
            "questions_answered": 0,
            "avg_score": 0.0,
            "best_score": 0.0,
            "total_time": 0.0,
            "last_completed_at": None,
        }
    return {
        "exams_taken": len(results),
        "questions_answered": sum(r.total - r.unanswered for r in results),
        "avg_score": round(sum(r.score_percentage for r in results) / len(results), 1),
        "best_score": round(max(r.score_percentage for r in results), 1),
        "total_time": round(sum(r.time_spent for r in results), 1),
        "last_completed_at": results[0].completed_at,
    }

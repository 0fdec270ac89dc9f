"""Weak area identification across completed exams."""
from collections import defaultdict

from exam_engine.config import WEAK_AREA_THRESHOLD


def get_topic_scores(persistence, user_id: str, subject: str = None) -> list[dict]:
    """Accuracy per (subject, topic) over every stored result of the user."""
    totals = defaultdict(lambda: {"total": 0, "correct": 0, "time": 0.0})
    for result in persistence.list_results(user_id, subject=subject):
        for outcome in result.outcomes:
            t = totals[(result.subject, outcome.topic)]
            t["total"] += 1
            t["correct"] += int(outcome.is_correct)
            t["time"] += outcome.time_spent
    return [
        {
            "subject": subj,
            "topic": topic,
            "total": t["total"],
            "correct": t["correct"],
            "score": round(t["correct"] / t["total"] * 100, 1),
            "average_time": round(t["time"] / t["total"], 1),
        }
        for (subj, topic), t in sorted(totals.items())
    ]


def get_weak_topics(persistence, user_id: str, subject: str = None,
                    threshold: float = WEAK_AREA_THRESHOLD) -> list[dict]:
    """Topics scoring below threshold across all exams (sorted worst first)."""
    weak = [s for s in get_topic_scores(persistence, user_id, subject) if s["score"] < threshold]
    return sorted(weak, key=lambda s: (s["score"], s["subject"], s["topic"]))

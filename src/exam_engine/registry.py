"""Per-topic memory of questions already presented to the user."""
from exam_engine.config import SEEN_COLLECTION


def seen_key(subject: str, topic: str) -> str:
    return f"{subject}:{topic}"


class SeenQuestionRegistry:
    """Seen-question sets keyed by ``subject:topic`` in the store."""

    def __init__(self, store, collection: str = SEEN_COLLECTION):
        self.store = store
        self.collection = collection

    def get_seen(self, subject: str, topic: str) -> set[str]:
        record = self.store.get(self.collection, seen_key(subject, topic))
        return set(record["question_ids"]) if record else set()

    def add_seen(self, subject: str, topic: str, question_ids) -> set[str]:
        """Union ``question_ids`` into the topic's set and return the new set."""
        seen = self.get_seen(subject, topic) | {str(qid) for qid in question_ids}
        self.store.put(self.collection, {
            "id": seen_key(subject, topic),
            "subject": subject,
            "topic": topic,
            "question_ids": sorted(seen),
        })
        return seen

    def clear_seen(self, subject: str, topic: str) -> None:
        self.store.delete(self.collection, seen_key(subject, topic))

    def seen_counts(self, subject: str) -> dict[str, int]:
        """Number of seen questions per topic of ``subject``."""
        return {
            r["topic"]: len(r["question_ids"])
            for r in self.store.get_all(self.collection)
            if r["subject"] == subject
        }

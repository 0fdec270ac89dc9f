"""Question selection with difficulty balancing and repetition avoidance."""
import logging
import random

from exam_engine.config import DIFFICULTY_DISTRIBUTION
from exam_engine.errors import NoQuestionsAvailable, StoreUnavailable

logger = logging.getLogger(__name__)


def difficulty_targets(count: int, distribution: dict = None) -> dict[int, int]:
    """Questions wanted per difficulty level for a balanced exam of ``count``.

    Each share is rounded half-up; any rounding drift is then taken from or
    given to the largest bucket so the targets sum to ``count`` exactly.
    """
    distribution = distribution or DIFFICULTY_DISTRIBUTION
    targets = {level: int(count * share + 0.5) for level, share in distribution.items()}
    drift = count - sum(targets.values())
    while drift:
        largest = max(targets, key=lambda level: (targets[level], -level))
        step = 1 if drift > 0 else -1
        if step < 0 and targets[largest] == 0:
            break
        targets[largest] += step
        drift -= step
    return targets


def _balanced_sample(candidates: list, count: int, rng: random.Random) -> list:
    by_level: dict[int, list] = {}
    for q in candidates:
        by_level.setdefault(q.difficulty, []).append(q)

    selected = []
    for level, target in difficulty_targets(count).items():
        bucket = by_level.get(level, [])
        selected.extend(rng.sample(bucket, min(target, len(bucket))))

    if len(selected) < count:
        chosen = {q.id for q in selected}
        remaining = [q for q in candidates if q.id not in chosen]
        selected.extend(rng.sample(remaining, count - len(selected)))
    return selected


def _filter_pool(config, pool) -> list:
    levels = config.difficulty_levels()
    unique = {}
    for q in pool:
        if q.subject != config.subject:
            continue
        if not config.all_topics and q.topic not in config.topics:
            continue
        if levels and q.difficulty not in levels:
            continue
        unique.setdefault(q.id, q)
    return [unique[qid] for qid in sorted(unique)]


def _seen_by_topic(registry, subject: str, topics) -> dict[str, set]:
    seen = {}
    for topic in topics:
        try:
            seen[topic] = registry.get_seen(subject, topic)
        except StoreUnavailable as e:
            logger.warning("Seen questions for %s:%s unavailable (%s); treating all as unseen",
                           subject, topic, e)
            seen[topic] = set()
    return seen


def _rotation_reset(registry, subject: str, topics) -> None:
    logger.info("Rotation reset for %s: clearing seen questions for topics %s",
                subject, ", ".join(topics))
    for topic in topics:
        try:
            registry.clear_seen(subject, topic)
        except StoreUnavailable as e:
            logger.warning("Could not clear seen questions for %s:%s: %s", subject, topic, e)


def select_questions(config, pool, registry=None, rng: random.Random = None) -> list:
    """Pick an ordered question list for ``config`` from ``pool``.

    Unseen questions are preferred; when too few remain, the seen sets of the
    configured topics are cleared and the whole pool is eligible again.
    Pass a seeded ``random.Random`` for reproducible selections.
    """
    rng = rng or random.Random()
    candidates = _filter_pool(config, pool)
    if not candidates:
        raise NoQuestionsAvailable(
            f"No questions for subject={config.subject!r} topics={list(config.topics)} "
            f"difficulty={config.difficulty!r}"
        )

    count = config.count
    if count > len(candidates):
        logger.warning("Requested %d questions but only %d available; using all of them",
                       count, len(candidates))
        count = len(candidates)

    if registry is not None:
        pool_topics = sorted({q.topic for q in candidates})
        seen = _seen_by_topic(registry, config.subject, pool_topics)
        unseen = [q for q in candidates if q.id not in seen[q.topic]]
        if len(unseen) >= count:
            candidates = unseen
        else:
            reset_topics = pool_topics if config.all_topics else list(config.topics)
            _rotation_reset(registry, config.subject, reset_topics)

    if config.difficulty_levels() is None and config.balance and count < len(candidates):
        selected = _balanced_sample(candidates, count, rng)
    else:
        selected = rng.sample(candidates, count)

    rng.shuffle(selected)
    return selected

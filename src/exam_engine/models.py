"""Data classes for the exam domain model."""
import string
from dataclasses import asdict, dataclass, field
from typing import Optional

from exam_engine.config import (
    ALL_TOPICS, DIFFICULTY_LEVELS, EXAM_PRESETS, MIXED, TIMING_MODES,
)
from exam_engine.errors import InvalidConfiguration

CREATED = "created"
ACTIVE = "active"
PAUSED = "paused"
FINISHED = "finished"
STATUSES = (CREATED, ACTIVE, PAUSED, FINISHED)

OPTION_LETTERS = string.ascii_uppercase


@dataclass(frozen=True)
class Question:
    id: str
    subject: str
    topic: str
    difficulty: int
    prompt: str
    options: tuple
    correct_option: str
    explanation: str = ""
    image: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "options", tuple(self.options))

    @property
    def option_ids(self) -> list[str]:
        """Option identifiers are letters by position: A, B, C, ..."""
        return list(OPTION_LETTERS[: len(self.options)])

    def to_dict(self) -> dict:
        data = asdict(self)
        data["options"] = list(self.options)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Question":
        return cls(
            id=str(data["id"]),
            subject=data["subject"],
            topic=data["topic"],
            difficulty=int(data["difficulty"]),
            prompt=data["prompt"],
            options=tuple(data["options"]),
            correct_option=data["correct_option"],
            explanation=data.get("explanation") or "",
            image=data.get("image"),
        )


@dataclass(frozen=True)
class ExamConfiguration:
    """What to ask and how to time it. Immutable once a session uses it.

    ``topics`` is a tuple of topic ids, or ``("all",)`` for every topic of
    the subject. ``difficulty`` is ``"mixed"``, a named difficulty from
    ``DIFFICULTY_LEVELS``, or a single level 1-5.
    """
    subject: str
    topics: tuple
    count: int
    difficulty: object = MIXED
    timing_mode: str = "adaptive"
    fixed_seconds: Optional[int] = None
    balance: bool = True

    def __post_init__(self):
        topics = self.topics
        if isinstance(topics, str):
            topics = (topics,)
        object.__setattr__(self, "topics", tuple(topics or ()))

    @classmethod
    def from_preset(cls, preset: str, subject: str, topics=ALL_TOPICS, **kwargs) -> "ExamConfiguration":
        if preset not in EXAM_PRESETS:
            raise InvalidConfiguration(f"Unknown exam preset: {preset}")
        return cls(subject=subject, topics=topics, count=EXAM_PRESETS[preset], **kwargs)

    @property
    def all_topics(self) -> bool:
        return ALL_TOPICS in self.topics

    def difficulty_levels(self) -> Optional[tuple]:
        """Levels to filter to, or None for a mixed exam."""
        difficulty = self.difficulty
        if difficulty == MIXED:
            return None
        if isinstance(difficulty, str) and difficulty in DIFFICULTY_LEVELS:
            return DIFFICULTY_LEVELS[difficulty]
        try:
            level = int(difficulty)
        except (TypeError, ValueError):
            raise InvalidConfiguration(f"Unknown difficulty: {difficulty!r}")
        if not 1 <= level <= 5:
            raise InvalidConfiguration(f"Difficulty level out of range: {level}")
        return (level,)

    def validate(self) -> None:
        if not self.subject:
            raise InvalidConfiguration("Subject is required")
        if not self.topics or not all(self.topics):
            raise InvalidConfiguration("At least one topic (or 'all') is required")
        if isinstance(self.count, bool) or not isinstance(self.count, int) or self.count < 1:
            raise InvalidConfiguration(f"Question count must be a positive integer, got {self.count!r}")
        if self.timing_mode not in TIMING_MODES:
            raise InvalidConfiguration(f"Unknown timing mode: {self.timing_mode!r}")
        if self.fixed_seconds is not None and self.fixed_seconds <= 0:
            raise InvalidConfiguration("Fixed seconds per question must be positive")
        self.difficulty_levels()

    def to_dict(self) -> dict:
        data = asdict(self)
        data["topics"] = list(self.topics)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ExamConfiguration":
        return cls(
            subject=data["subject"],
            topics=tuple(data["topics"]),
            count=data["count"],
            difficulty=data.get("difficulty", MIXED),
            timing_mode=data.get("timing_mode", "adaptive"),
            fixed_seconds=data.get("fixed_seconds"),
            balance=data.get("balance", True),
        )


@dataclass
class AnswerRecord:
    selected_option: Optional[str] = None
    time_spent: float = 0.0
    flagged: bool = False
    visited: bool = False

    @property
    def answered(self) -> bool:
        return self.selected_option is not None


@dataclass
class SessionState:
    session_id: str
    user_id: str
    config: ExamConfiguration
    questions: list
    answers: list
    created_at: int
    total_budget_ms: int = 0
    current_index: int = 0
    status: str = CREATED
    start_time: Optional[int] = None
    paused_ms: int = 0
    pause_started_at: Optional[int] = None
    last_saved_at: Optional[int] = None
    finished_at: Optional[int] = None
    # Logical-clock offset (ms) at which the current question was entered
    question_entered_ms: int = 0

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "user_id": self.user_id,
            "config": self.config.to_dict(),
            "questions": [q.to_dict() for q in self.questions],
            "answers": [asdict(a) for a in self.answers],
            "created_at": self.created_at,
            "total_budget_ms": self.total_budget_ms,
            "current_index": self.current_index,
            "status": self.status,
            "start_time": self.start_time,
            "paused_ms": self.paused_ms,
            "pause_started_at": self.pause_started_at,
            "last_saved_at": self.last_saved_at,
            "finished_at": self.finished_at,
            "question_entered_ms": self.question_entered_ms,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SessionState":
        return cls(
            session_id=data["session_id"],
            user_id=data["user_id"],
            config=ExamConfiguration.from_dict(data["config"]),
            questions=[Question.from_dict(q) for q in data["questions"]],
            answers=[AnswerRecord(**a) for a in data["answers"]],
            created_at=data["created_at"],
            total_budget_ms=data.get("total_budget_ms", 0),
            current_index=data.get("current_index", 0),
            status=data.get("status", CREATED),
            start_time=data.get("start_time"),
            paused_ms=data.get("paused_ms", 0),
            pause_started_at=data.get("pause_started_at"),
            last_saved_at=data.get("last_saved_at"),
            finished_at=data.get("finished_at"),
            question_entered_ms=data.get("question_entered_ms", 0),
        )


@dataclass(frozen=True)
class QuestionOutcome:
    question_id: str
    topic: str
    difficulty: int
    chosen_option: Optional[str]
    correct_option: str
    is_correct: bool
    time_spent: float
    flagged: bool


@dataclass(frozen=True)
class TopicScore:
    count: int
    correct: int
    percentage: float
    average_time: float


@dataclass
class ExamResult:
    session_id: str
    user_id: str
    subject: str
    mode: str
    completed_at: int
    total: int
    correct: int
    incorrect: int
    unanswered: int
    score_percentage: float
    time_spent: float
    average_time: float
    outcomes: list = field(default_factory=list)
    topics: dict = field(default_factory=dict)
    difficulties: dict = field(default_factory=dict)
    weak_areas: list = field(default_factory=list)
    performance: dict = field(default_factory=dict)
    saved: bool = False

    def to_dict(self) -> dict:
        data = asdict(self)
        data["difficulties"] = {str(k): v for k, v in data["difficulties"].items()}
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ExamResult":
        data = dict(data)
        data["outcomes"] = [QuestionOutcome(**o) for o in data.get("outcomes", [])]
        data["topics"] = {k: TopicScore(**v) for k, v in data.get("topics", {}).items()}
        data["difficulties"] = {
            int(k): TopicScore(**v) for k, v in data.get("difficulties", {}).items()
        }
        return cls(**data)

"""Engine constants and environment overrides."""
import os
from pathlib import Path

BASE_DIR = Path.home() / ".exam_engine"

# Paths
DEFAULT_DB_PATH = os.getenv("EXAM_ENGINE_DB", str(BASE_DIR / "exam.db"))
LOG_FILE = os.getenv("EXAM_ENGINE_LOG", str(BASE_DIR / "exam_engine.log"))
LOG_LEVEL = os.getenv("EXAM_ENGINE_LOG_LEVEL", "INFO")

# Seconds allotted per question, by difficulty level
QUESTION_TIME_SECONDS = {
    1: 21,
    2: 30,
    3: 42,
    4: 54,
    5: 54,
}
DEFAULT_QUESTION_SECONDS = 30
DEFAULT_FIXED_SECONDS = 30

# Target share of each difficulty level in a balanced mixed exam
DIFFICULTY_DISTRIBUTION = {
    1: 0.20,
    2: 0.30,
    3: 0.25,
    4: 0.15,
    5: 0.10,
}

# Named difficulty -> internal levels. "hard" covers the expert tier too.
DIFFICULTY_LEVELS = {
    "easy": (1,),
    "medium": (2,),
    "intermediate": (3,),
    "hard": (4, 5),
}
MIXED = "mixed"
ALL_TOPICS = "all"

TIMING_MODES = ("adaptive", "fixed", "none")

EXAM_PRESETS = {
    "quick": 10,
    "standard": 25,
    "full": 50,
}

WEAK_AREA_THRESHOLD = 70.0

# External scheduler interval for auto-save
AUTO_SAVE_INTERVAL_SECONDS = 30

# Per-visit time outside this window is logged as suspicious
MIN_REALISTIC_SECONDS = 3
MAX_REALISTIC_SECONDS = 120

MAX_CLOCK_DRIFT_MS = 5 * 60 * 1000
CLOCK_DRIFT_WARNING_MS = 2 * 60 * 1000

# Store collections
SESSIONS_COLLECTION = "sessions"
RESULTS_COLLECTION = "results"
SEEN_COLLECTION = "seen_questions"

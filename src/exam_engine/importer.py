"""Import question records from JSON or YAML files."""
import json
import logging
import re
from pathlib import Path

from exam_engine.models import OPTION_LETTERS, Question
from exam_engine.questions import save_questions

logger = logging.getLogger(__name__)

# "A. text" / "B) text" prefixes used by exported question banks
OPTION_PREFIX = re.compile(r"^\s*([A-Z])[.)]\s+")


def read_records(file_path: str) -> list[dict]:
    """Question dicts from a file holding a list or ``{"questions": [...]}``."""
    path = Path(file_path)
    suffix = path.suffix.lower()
    if suffix == ".json":
        data = json.loads(path.read_text())
    elif suffix in (".yaml", ".yml"):
        import yaml
        data = yaml.safe_load(path.read_text())
    else:
        raise ValueError(f"Unsupported question file type: {suffix}")
    if isinstance(data, dict):
        data = data.get("questions", [])
    if not isinstance(data, list):
        raise ValueError(f"{path.name} does not contain a list of questions")
    return data


def validate_question(record: dict) -> list[str]:
    """Problems with a raw question record; empty when it can be imported."""
    errors = []
    prompt = record.get("prompt") or record.get("question")
    correct = record.get("correct_option") or record.get("correct")
    options = record.get("options")
    if not prompt:
        errors.append("missing prompt")
    if not record.get("subject"):
        errors.append("missing subject")
    if not record.get("topic"):
        errors.append("missing topic")
    if not isinstance(options, list) or len(options) < 2:
        errors.append("needs at least two options")
    elif not correct or str(correct).strip().upper() not in OPTION_LETTERS[: len(options)]:
        errors.append(f"correct option {correct!r} not among options")
    difficulty = record.get("difficulty", 3)
    if not isinstance(difficulty, int) or not 1 <= difficulty <= 5:
        errors.append(f"difficulty {difficulty!r} outside 1-5")
    return errors


def to_question(record: dict, index: int = 0) -> Question:
    subject = record["subject"]
    topic = record["topic"]
    return Question(
        id=str(record.get("id") or f"{subject}_{topic}_{index}"),
        subject=subject,
        topic=topic,
        difficulty=record.get("difficulty", 3),
        prompt=record.get("prompt") or record["question"],
        options=tuple(OPTION_PREFIX.sub("", opt) for opt in record["options"]),
        correct_option=str(record.get("correct_option") or record["correct"]).strip().upper(),
        explanation=record.get("explanation") or "",
        image=record.get("image"),
    )


def import_file(db_path: str, file_path: str, subject: str | None = None, topic: str | None = None) -> dict:
    """Import a question file into the bank.

    ``subject`` / ``topic`` fill in records that omit them. Invalid records
    are skipped and reported, valid ones are inserted or replaced by id.
    """
    questions = []
    errors = {}
    for index, record in enumerate(read_records(file_path)):
        record = dict(record)
        if subject:
            record.setdefault("subject", subject)
        if topic:
            record.setdefault("topic", topic)
        problems = validate_question(record)
        if problems:
            errors[index] = problems
            logger.warning("Skipping question %d in %s: %s", index, file_path, "; ".join(problems))
            continue
        questions.append(to_question(record, index))
    save_questions(db_path, questions)
    return {
        "filename": Path(file_path).name,
        "imported": len(questions),
        "skipped": len(errors),
        "errors": errors,
    }

"""Interactive CLI application."""
import logging
import os
import sys
import time
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table

from exam_engine.config import (
    AUTO_SAVE_INTERVAL_SECONDS, DEFAULT_DB_PATH, EXAM_PRESETS, LOG_FILE, LOG_LEVEL,
)
from exam_engine.dashboard import (
    calc_readiness_score, get_history_stats, get_readiness_color, get_readiness_label,
)
from exam_engine.errors import ExamEngineError, InvalidAnswer
from exam_engine.importer import import_file
from exam_engine.manager import ExamManager
from exam_engine.models import PAUSED, ExamConfiguration
from exam_engine.questions import QuestionSource
from exam_engine.review import get_weak_topics
from exam_engine.seed import is_seeded, seed_all
from exam_engine.store import open_store
from exam_engine.timing import format_time

console = Console()
logger = logging.getLogger(__name__)


class SessionExitRequested(Exception):
    """User asked to leave the running exam (it stays resumable)."""


def session_prompt(prompt: str, **kwargs) -> str:
    answer = Prompt.ask(prompt, **kwargs)
    if answer.strip().lower() in ("q", "menu"):
        raise SessionExitRequested()
    return answer


def session_int_prompt(prompt: str, choices: list[str] = None, default: int = None) -> int:
    while True:
        raw = session_prompt(prompt, default=None if default is None else str(default)).strip()
        if (choices and raw not in choices) or not raw.isdigit():
            console.print("[red]Please enter one of the listed numbers.[/red]")
            continue
        return int(raw)


def configure_logging(log_file: str = LOG_FILE, level: str = LOG_LEVEL) -> None:
    handlers = [RichHandler(console=console, show_path=False)]
    try:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    except OSError:
        pass  # console only
    logging.basicConfig(level=level, format="%(name)s: %(message)s", handlers=handlers)


class AutoSaver:
    """Calls ``manager.autosave_all()`` at most once per interval."""

    def __init__(self, manager: ExamManager, interval: float = AUTO_SAVE_INTERVAL_SECONDS):
        self.manager = manager
        self.interval = interval
        self._last = time.monotonic()

    def tick(self) -> None:
        if time.monotonic() - self._last >= self.interval:
            self.manager.autosave_all()
            self._last = time.monotonic()


def show_welcome():
    console.print(Panel(
        "[bold]Exam Engine[/bold]\n[dim]Timed multiple-choice practice, offline[/dim]",
        title="Welcome", border_style="blue",
    ))


def show_menu():
    console.print("\n[bold]Commands:[/bold]")
    commands = [
        ("exam", "Start a new exam"),
        ("resume", "Continue your unfinished exam"),
        ("dashboard", "Score history + readiness"),
        ("review", "Weak topics across exams"),
        ("import", "Add questions from a JSON/YAML file"),
        ("quit", "Exit"),
    ]
    for cmd, desc in commands:
        console.print(f"  [cyan]{cmd:<14}[/cyan] {desc}")


def show_question(session) -> None:
    view = session.current_question()
    progress = session.progress()
    remaining = session.time_remaining()
    header = f"Question {view['number']}/{view['total']}  ·  {view['topic']}  ·  level {view['difficulty']}"
    if remaining is not None:
        header += f"  ·  exam {format_time(remaining)} left"
    pacing = session.question_time_remaining()
    if pacing:
        header += f"  ·  [{pacing['color']}]{format_time(pacing['remaining'])}[/{pacing['color']}]"
    lines = [view["prompt"], ""]
    for letter, text in view["options"].items():
        marker = "[green]●[/green]" if view["selected_option"] == letter else " "
        lines.append(f"{marker} [cyan]{letter})[/cyan] {text}")
    if view["flagged"]:
        lines.append("\n[yellow]⚑ flagged for review[/yellow]")
    console.print(Panel("\n".join(lines), title=header,
                        subtitle=f"answered {progress['answered']}/{progress['total']}"))


def show_exam_help():
    console.print("[dim]Letter = answer · n/p = next/previous · g N = go to question · "
                  "flag · clear · pause · end · q = leave (resumable)[/dim]")


def show_result(result) -> None:
    color = get_readiness_color(result.score_percentage)
    console.print(Panel(
        f"[bold]{result.correct}/{result.total}[/bold] correct  "
        f"[{color}]{result.score_percentage:.1f}%[/{color}]\n"
        f"Incorrect {result.incorrect} · Unanswered {result.unanswered} · "
        f"Time {format_time(result.time_spent)} (avg {result.average_time:.0f}s)\n"
        f"Speed {result.performance['speed']} · Accuracy {result.performance['accuracy']} · "
        f"Consistency {result.performance['consistency']}",
        title="Exam Result", border_style=color,
    ))
    table = Table(title="By Topic")
    table.add_column("Topic", style="cyan")
    table.add_column("Correct", justify="right")
    table.add_column("Score", justify="right")
    table.add_column("Avg time", justify="right")
    for topic, score in result.topics.items():
        table.add_row(topic, f"{score.correct}/{score.count}", f"{score.percentage:.0f}%",
                      f"{score.average_time:.0f}s")
    console.print(table)
    if result.weak_areas:
        console.print(f"[yellow]Weak areas: {', '.join(result.weak_areas)}[/yellow]")
    if not result.saved:
        console.print("[red]Result could not be saved to disk; it is kept for this run only.[/red]")


def run_exam(session, autosaver: AutoSaver | None = None):
    """Drive a session from the keyboard. Returns the result, or None if the user left."""
    session.start()
    show_exam_help()
    while True:
        if autosaver:
            autosaver.tick()
        if session.status == PAUSED:
            try:
                session_prompt("[yellow]Paused.[/yellow] Press Enter to resume", default="")
            except SessionExitRequested:
                session.auto_save()
                console.print("[dim]Exam saved. Use 'resume' to continue.[/dim]")
                return None
            session.resume()
            continue
        if session.is_time_up():
            console.print("[red]Time is up.[/red]")
            break
        show_question(session)
        try:
            choice = session_prompt("Answer / command", default="n").strip().lower()
        except SessionExitRequested:
            session.pause()
            session.auto_save()
            console.print("[dim]Exam saved. Use 'resume' to continue.[/dim]")
            return None
        if choice == "end":
            unanswered = session.progress()["unanswered"]
            if not unanswered or Confirm.ask(f"{unanswered} unanswered. Submit anyway?"):
                break
        elif choice == "n":
            session.next()
        elif choice == "p":
            session.prev()
        elif choice == "flag":
            session.toggle_flag()
        elif choice == "clear":
            session.clear_answer()
        elif choice == "pause":
            session.pause()
            session.auto_save()
        elif choice.startswith("g"):
            try:
                session.goto(int(choice[1:].strip()) - 1)
            except (ValueError, IndexError):
                console.print("[red]No such question.[/red]")
        else:
            try:
                session.submit_answer(choice)
            except InvalidAnswer:
                console.print("[red]Unknown option or command.[/red]")
                show_exam_help()
                continue
            session.next()
    result = session.end()
    show_result(result)
    return result


def cmd_exam(manager: ExamManager, source: QuestionSource, user_id: str, autosaver: AutoSaver):
    subjects = source.list_subjects()
    if not subjects:
        console.print("[yellow]The question bank is empty. Use 'import' first.[/yellow]")
        return
    subject = Prompt.ask("Subject", choices=subjects, default=subjects[0])
    topics = source.list_topics(subject)
    topic = Prompt.ask("Topic", choices=["all"] + topics, default="all")
    preset = Prompt.ask("Length", choices=list(EXAM_PRESETS) + ["custom"], default="quick")
    difficulty = Prompt.ask("Difficulty", choices=["mixed", "easy", "medium", "intermediate", "hard"],
                            default="mixed")
    timing = Prompt.ask("Timing", choices=["adaptive", "fixed", "none"], default="adaptive")
    fixed_seconds = None
    if timing == "fixed":
        fixed_seconds = session_int_prompt("Seconds per question", default=30)
    options = dict(difficulty=difficulty, timing_mode=timing, fixed_seconds=fixed_seconds)
    if preset == "custom":
        count = session_int_prompt("Number of questions", default=10)
        config = ExamConfiguration(subject=subject, topics=(topic,), count=count, **options)
    else:
        config = ExamConfiguration.from_preset(preset, subject, topics=(topic,), **options)
    session = manager.create_session(config, user_id)
    run_exam(session, autosaver)


def cmd_resume(manager: ExamManager, user_id: str, autosaver: AutoSaver):
    session = manager.resume_from_storage(user_id)
    if session is None:
        console.print("[yellow]No unfinished exam to resume.[/yellow]")
        return
    progress = session.progress()
    console.print(f"[green]Resuming at question {progress['current']}/{progress['total']} "
                  f"({progress['answered']} answered).[/green]")
    run_exam(session, autosaver)


def cmd_dashboard(manager: ExamManager, user_id: str):
    stats = get_history_stats(manager.persistence, user_id)
    score = calc_readiness_score(manager.persistence, user_id)
    label = get_readiness_label(score)
    color = get_readiness_color(score)
    console.print(Panel(f"[bold]{user_id}[/bold]", title="Readiness Dashboard", border_style="blue"))
    bar_filled = int(score / 5)
    bar = f"[{color}]{'█' * bar_filled}{'░' * (20 - bar_filled)}[/{color}]"
    console.print(f"\n  Recent average: [bold]{score}%[/bold] {bar} [{color}]{label}[/{color}]\n")
    console.print(f"  Exams: [bold]{stats['exams_taken']}[/bold]  |  "
                  f"Answered: [bold]{stats['questions_answered']}[/bold]  |  "
                  f"Avg: [bold]{stats['avg_score']}%[/bold]  |  "
                  f"Best: [bold]{stats['best_score']}%[/bold]")
    results = manager.persistence.list_results(user_id, limit=10)
    if results:
        table = Table(title="Recent Exams")
        table.add_column("Completed")
        table.add_column("Subject", style="cyan")
        table.add_column("Score", justify="right")
        table.add_column("Questions", justify="right")
        for r in results:
            completed = time.strftime("%Y-%m-%d %H:%M", time.localtime(r.completed_at / 1000))
            table.add_row(completed, r.subject, f"{r.score_percentage:.0f}%", str(r.total))
        console.print(table)


def cmd_review(manager: ExamManager, user_id: str):
    console.print("\n[bold]Weak Topic Review[/bold]\n")
    weak = get_weak_topics(manager.persistence, user_id)
    if not weak:
        console.print("[green]No weak topics detected! Keep up the good work.[/green]")
        return
    table = Table(title="Weak Topics")
    table.add_column("Subject")
    table.add_column("Topic", style="cyan")
    table.add_column("Score", justify="right")
    table.add_column("Questions Attempted", justify="right")
    for w in weak:
        table.add_row(w["subject"], w["topic"], f"{w['score']}%", str(w["total"]))
    console.print(table)


def cmd_import(db_path: str):
    file_path = Prompt.ask("File path")
    if not Path(file_path).exists():
        console.print(f"[red]File not found: {file_path}[/red]")
        return
    result = import_file(db_path, file_path)
    console.print(f"[green]Imported {result['imported']} questions from {result['filename']}[/green]")
    if result["skipped"]:
        console.print(f"[yellow]Skipped {result['skipped']} invalid records (see log).[/yellow]")


def main():
    db_path = DEFAULT_DB_PATH
    configure_logging()
    store = open_store(db_path)
    source = QuestionSource(db_path)
    first_run = not is_seeded(db_path)
    if first_run:
        console.print("[dim]Setting up for first use...[/dim]")
    seed_all(db_path)
    if first_run:
        console.print("[green]Ready![/green]\n")

    manager = ExamManager(store, source)
    autosaver = AutoSaver(manager)
    show_welcome()
    user_id = Prompt.ask("User", default=os.getenv("USER", "student"))

    if manager.persistence.load_most_recent_unfinished(user_id):
        console.print("[cyan]You have an unfinished exam. Type 'resume' to continue it.[/cyan]")

    while True:
        show_menu()
        choice = Prompt.ask("\n[bold]>[/bold]", default="exam").strip().lower()
        try:
            if choice == "exam":
                cmd_exam(manager, source, user_id, autosaver)
            elif choice == "resume":
                cmd_resume(manager, user_id, autosaver)
            elif choice == "dashboard":
                cmd_dashboard(manager, user_id)
            elif choice == "review":
                cmd_review(manager, user_id)
            elif choice == "import":
                cmd_import(db_path)
            elif choice in ("quit", "exit", "q"):
                manager.autosave_all()
                console.print("[dim]Good luck on your exam![/dim]")
                break
            else:
                console.print("[red]Unknown command. Try again.[/red]")
        except SessionExitRequested:
            console.print("[dim]Back to menu.[/dim]")
        except KeyboardInterrupt:
            manager.autosave_all()
            console.print("\n[dim]Use 'quit' to exit.[/dim]")
        except ExamEngineError as e:
            console.print(f"[red]{e}[/red]")


if __name__ == "__main__":
    sys.exit(main())

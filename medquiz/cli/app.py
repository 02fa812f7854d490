"""Typer CLI application for medical quizzes."""

import asyncio
import logging
from typing import Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.markdown import Markdown
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.prompt import Confirm, IntPrompt, Prompt
from rich.table import Table
from sqlalchemy.exc import SQLAlchemyError

from medquiz.agents.feedback import FeedbackSynthesizer
from medquiz.agents.generator import QuestionGenerator
from medquiz.agents.grader import AnswerGrader, count_words
from medquiz.config.settings import Settings, get_settings
from medquiz.exceptions import AnswerValidationError, ConfigurationError
from medquiz.export.docx_report import export_quiz_report, format_duration
from medquiz.gemini_client import GeminiClient
from medquiz.models.quiz import (
    FeedbackReport,
    MultipleChoiceQuestion,
    QuestionStyle,
    QuizMode,
    QuizResult,
    QuizSettings,
)
from medquiz.session.controller import QuizSessionController, SessionState
from medquiz.storage.store import ResultStore, record_quiz

app = typer.Typer(
    name="medquiz",
    help="AI-powered medical education quizzes",
    add_completion=False,
)

console = Console()
logger = logging.getLogger(__name__)

MEDICAL_TOPICS = ["Cardiology", "Neurology", "Dermatology", "Pediatrics", "Oncology", "Orthopedics"]
QUESTION_COUNTS = [5, 10, 15, 20]
PREPARATION_SUGGESTIONS = ["Final Exams", "Board Certification", "Clinical Rotations", "General Knowledge"]


def load_settings() -> Settings:
    """Load settings or exit with a readable error."""
    try:
        settings = get_settings()
    except ValidationError as e:
        missing = [".".join(str(p) for p in err["loc"]) for err in e.errors()]
        console.print(f"[red]Error:[/red] invalid configuration: {', '.join(missing)}", style="bold")
        console.print("\nPlease set your API key:\n  export GEMINI_API_KEY='your-key-here'")
        raise typer.Exit(code=1)
    configure_logging(settings.log_level)
    return settings


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )
    # Request lines carry full URLs
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(max(logging.WARNING, logging.getLogger().level))


def choose(label: str, options: list[str], default: int = 1) -> str:
    """Numbered menu prompt."""
    for i, option in enumerate(options, 1):
        console.print(f"  [cyan]{i}[/cyan]. {option}")
    index = IntPrompt.ask(label, choices=[str(i) for i in range(1, len(options) + 1)], default=default)
    return options[index - 1]


def prompt_settings(topic: str) -> QuizSettings:
    """Ask for the pre-quiz settings."""
    console.print(Panel(f"Quiz settings for [bold]{topic}[/bold]", border_style="cyan"))
    preparation = Prompt.ask(
        f"What are you preparing for? (e.g. {', '.join(PREPARATION_SUGGESTIONS)})",
        default="",
    )
    style = choose("Question style", [s.value for s in QuestionStyle])
    count = int(choose("Number of questions", [str(c) for c in QUESTION_COUNTS]))
    mode = choose("Quiz mode", [m.value for m in QuizMode])
    return QuizSettings(
        preparation_context=preparation.strip()[:100],
        question_style=QuestionStyle(style),
        question_count=count,
        mode=QuizMode(mode),
    )


@app.command()
def quiz(
    topic: Optional[str] = typer.Option(
        None,
        "--topic",
        "-t",
        help="Medical topic (prompted if omitted)",
    ),
    user: Optional[str] = typer.Option(
        None,
        "--user",
        "-u",
        help="User id to save results under (results are not saved if omitted)",
    ),
    export: bool = typer.Option(
        False,
        "--export/--no-export",
        help="Export the results and feedback to DOCX",
    ),
    output: str = typer.Option(
        "quiz_report",
        "--output",
        "-o",
        help="Report file name (without extension)",
    ),
) -> None:
    """
    Take an AI-generated quiz.

    Example:
        medquiz quiz -t Cardiology -u alice --export
    """
    settings = load_settings()
    try:
        asyncio.run(run_quiz(settings, topic, user, export, output))
    except ConfigurationError as e:
        console.print(f"[red]Error:[/red] {e}", style="bold")
        raise typer.Exit(code=1)


async def run_quiz(
    settings: Settings,
    topic: Optional[str],
    user: Optional[str],
    export: bool,
    output: str,
) -> None:
    async with GeminiClient.from_settings(settings) as client:
        controller = QuizSessionController(
            QuestionGenerator.from_settings(client, settings),
            AnswerGrader.from_settings(client, settings),
            FeedbackSynthesizer.from_settings(client, settings),
            strict_word_limit=settings.strict_word_limit,
            pass_score=settings.open_ended_pass_score,
        )

        while True:
            if not topic:
                console.print("\n[bold]Choose a Medical Specialty[/bold]")
                topic = choose("Topic", MEDICAL_TOPICS)
            try:
                controller.select_topic(topic)
            except ValueError as e:
                console.print(f"[red]Error:[/red] {e}")
                raise typer.Exit(code=1)
            controller.continue_to_settings()

            try:
                quiz_settings = prompt_settings(topic)
            except ValidationError as e:
                console.print(f"[red]Invalid settings:[/red] {e}")
                return

            with Progress(SpinnerColumn(), TextColumn("[progress.description]{task.description}"), console=console) as progress:
                progress.add_task("[cyan]Generating your personalized quiz...", total=None)
                state = await controller.start(quiz_settings)

            if state == SessionState.ERROR:
                console.print(f"[red]Error:[/red] {controller.error}")
                if not Confirm.ask("Try again?", default=True):
                    return
                controller.restart()
                topic = None
                continue
            break

        await answer_questions(controller)

        result = controller.result
        display_result(result)

        with Progress(SpinnerColumn(), TextColumn("[progress.description]{task.description}"), console=console) as progress:
            progress.add_task("[cyan]Writing your study plan...", total=None)
            report = await controller.generate_feedback()
        display_feedback(report)

    if user:
        saved = await save_result(settings, user, result)
        if saved:
            console.print("[green]✓[/green] Results saved to your profile.")
        else:
            console.print("[yellow]Could not save your results.[/yellow]")

    if export:
        path = export_quiz_report(result, report, output)
        console.print(f"[green]✓[/green] Report exported to: {path}")


async def save_result(settings: Settings, user: str, result: QuizResult) -> bool:
    """Save a finished quiz; a store that cannot be opened counts as a failed save."""
    try:
        store = ResultStore.from_settings(settings)
    except SQLAlchemyError as e:
        logger.error("Could not open results store: %s", e)
        return False
    return await record_quiz(
        store,
        user,
        result,
        max_retries=settings.storage_max_retries,
        base_delay=settings.storage_retry_delay,
        timeout=settings.storage_timeout_seconds,
    )


async def answer_questions(controller: QuizSessionController) -> None:
    """Loop over questions until the session finishes."""
    rubric = controller.grader.rubric
    while controller.state == SessionState.ACTIVE:
        question = controller.current_question
        console.print(
            f"\n[cyan]{controller.request.topic}[/cyan]  "
            f"Question {controller.question_number} of {controller.total_questions}"
        )

        if isinstance(question, MultipleChoiceQuestion):
            console.print(Panel(question.text, subtitle=f"{question.difficulty.value} · {question.points} pts"))
            for i, option in enumerate(question.options):
                console.print(f"  [cyan]{'ABCD'[i]}[/cyan]. {option}")
            choice = Prompt.ask("Your answer (or S to skip)", choices=["A", "B", "C", "D", "S"], case_sensitive=False)
            if choice.upper() == "S":
                controller.skip()
                continue
            answered = await controller.submit_answer("ABCD".index(choice.upper()))
            if answered.is_correct:
                console.print(f"[green]Correct! +{answered.points} pts[/green]")
            else:
                console.print(f"[red]Incorrect.[/red] Answer: {'ABCD'[answered.correct_index]}. {question.correct_option}")
            if answered.explanation:
                console.print(f"[dim]{answered.explanation}[/dim]")
            continue

        console.print(Panel(question))
        text = Prompt.ask(f"Your answer ({rubric.band}, blank to skip)", default="")
        if not text.strip():
            controller.skip()
            continue
        try:
            with Progress(SpinnerColumn(), TextColumn("[progress.description]{task.description}"), console=console) as progress:
                progress.add_task("[cyan]Grading...", total=None)
                answered = await controller.submit_answer(text)
        except AnswerValidationError as e:
            console.print(f"[yellow]{e}[/yellow] ({count_words(text)} words)")
            continue
        console.print(f"[bold]Score: {answered.score}/10[/bold]")
        console.print(answered.feedback)


def display_result(result: QuizResult) -> None:
    """Display a summary of the finished quiz."""
    console.print("\n[bold green]Quiz Complete![/bold green]")

    pct = result.percentage
    color = "green" if pct >= 75 else "yellow" if pct >= 60 else "red"

    table = Table(title="Quiz Results", border_style="green")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Topic", result.topic)
    table.add_row("Score", f"{result.score} / {result.total_points}")
    table.add_row("Percentage", f"[{color}]{pct}%[/{color}]")
    table.add_row("Performance", result.performance_label)
    table.add_row("Correct", f"{result.correct_answers} / {result.total_questions}")
    if result.skipped_count:
        table.add_row("Skipped", str(result.skipped_count))
    table.add_row("Time", format_duration(result.time_spent))

    console.print()
    console.print(table)


def display_feedback(report: FeedbackReport) -> None:
    console.print()
    console.print(Panel(Markdown(report.text), title="Feedback & Study Plan", border_style="cyan"))


@app.command()
def leaderboard(
    limit: int = typer.Option(20, "--limit", "-n", help="Number of users to show", min=1, max=100),
) -> None:
    """Show the top users by average rating."""
    settings = load_settings()
    store = ResultStore.from_settings(settings)
    profiles = store.get_leaderboard(limit)
    if not profiles:
        console.print("[yellow]No results yet.[/yellow]")
        return

    table = Table(title="Leaderboard", border_style="cyan")
    table.add_column("#", style="cyan")
    table.add_column("User", style="white")
    table.add_column("Quizzes", justify="right")
    table.add_column("Total Score", justify="right")
    table.add_column("Avg Rating", justify="right")
    for rank, profile in enumerate(profiles, 1):
        table.add_row(
            str(rank),
            profile.username,
            str(profile.quiz_count),
            str(profile.total_score),
            f"{profile.average_rating:.1f}",
        )
    console.print(table)


@app.command()
def profile(
    user: str = typer.Option(..., "--user", "-u", help="User id"),
) -> None:
    """Show a user's stats and recent quizzes."""
    settings = load_settings()
    store = ResultStore.from_settings(settings)
    found = store.get_profile(user)
    if found is None:
        console.print(f"[yellow]No profile for {user}.[/yellow]")
        raise typer.Exit(code=1)

    console.print(
        Panel(
            f"[bold]{found.username}[/bold]\n"
            f"Quizzes: {found.quiz_count}  |  Total score: {found.total_score}  |  "
            f"Average: {found.average_rating:.1f}",
            title="Profile",
            border_style="cyan",
        )
    )

    recent = store.recent_results(user)
    if recent:
        table = Table(title="Recent Quizzes", border_style="cyan")
        table.add_column("Date")
        table.add_column("Topic")
        table.add_column("Mode")
        table.add_column("Score", justify="right")
        table.add_column("Correct", justify="right")
        for record in recent:
            table.add_row(
                record.completed_at.strftime("%Y-%m-%d %H:%M"),
                record.topic,
                record.mode,
                f"{record.score}/{record.total_points}",
                f"{record.correct_answers}/{record.total_questions}",
            )
        console.print(table)


@app.command()
def info() -> None:
    """Display information about the quiz app."""
    info_text = """
[bold cyan]MedQuiz[/bold cyan]
Version: 0.1.0

[bold]Pipeline:[/bold]
  • Prompt Builder - Turns your settings into instructions
  • Question Generator - Gemini with model fallback
  • Answer Grader - Scores open-ended answers 0-10
  • Feedback Synthesizer - Writes a personalized study plan

[bold]Quiz modes:[/bold]
  • Multiple choice - 4 options, points by difficulty (10/15/20)
  • Open-ended - free text answers graded for accuracy and concision
    """
    console.print(Panel(info_text, title="MedQuiz Info", border_style="cyan"))


@app.callback()
def callback() -> None:
    """
    MedQuiz - AI-generated medical quizzes with grading and study plans.
    """
    pass


if __name__ == "__main__":
    app()

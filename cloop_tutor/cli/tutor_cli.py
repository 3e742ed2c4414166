"""
Cloop Tutor CLI - adaptive tutoring sessions in the terminal.

Loads a topic from a JSON file into the in-memory store and walks the learner
through its goals: each answer is evaluated, wrong answers offer "Got it" or
"Explain", and the session ends with a summary table.

Usage:
    cloop-tutor run topic.json              # Study a topic as the default user
    cloop-tutor run topic.json --user alice
    cloop-tutor config                      # Show effective settings
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Annotated, Any, Awaitable, Callable

import typer
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from config import get_settings
from cloop_tutor.generation.client import GenerationClient
from cloop_tutor.tutoring.engine import SessionOrchestrator
from cloop_tutor.tutoring.errors import TutorError
from cloop_tutor.tutoring.models import FEEDBACK_OPTIONS, OPTION_GOT_IT, Topic
from cloop_tutor.tutoring.persistence import InMemoryPersistence
from cloop_tutor.tutoring.sweeper import SessionSweeper

# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="cloop-tutor",
    help="📚 Cloop Tutor - adaptive tutoring sessions in the terminal",
    add_completion=False,
    rich_markup_mode="rich",
)

console = Console()

QUIT_WORDS = {"quit", "exit", ":q"}

AskFn = Callable[[str], Awaitable[str]]


def configure_logging(level: str | None = None) -> None:
    """Route loguru output to stderr (and the configured log file, if any)."""
    settings = get_settings()
    logger.remove()
    logger.add(
        sys.stderr,
        level=level or settings.log_level,
        format="<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {message}",
    )
    if settings.log_file:
        logger.add(settings.log_file, level="DEBUG", rotation="10 MB")


def load_topic(path: Path) -> Topic:
    """
    Read a topic JSON file ``{id, title, content}``.

    Raises:
        ValueError: If the file is not valid JSON or lacks id/title
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ValueError(f"{path.name} is not valid JSON: {e}") from e

    if not isinstance(data, dict) or "id" not in data or "title" not in data:
        raise ValueError(f"{path.name} must be an object with 'id' and 'title'")
    return Topic.from_dict(data)


async def _ask(prompt: str) -> str:
    # Prompt in a worker thread so background tasks keep running while we wait
    return await asyncio.to_thread(Prompt.ask, prompt)


# =============================================================================
# Rendering
# =============================================================================


def render_evaluation(evaluation: dict[str, Any]) -> Panel:
    correct = evaluation["is_correct"]
    lines = [
        f"[bold]{'✓ Correct' if correct else '✗ Not quite'}[/] ({evaluation['score_percent']}%)",
        "",
        evaluation["feedback"],
    ]
    if not correct:
        if evaluation.get("error_type") and evaluation["error_type"] != "None":
            lines.append(f"[dim]Error type: {evaluation['error_type']}[/]")
        lines.append(f"\n[bold]Complete answer:[/] {evaluation['complete_answer']}")

    return Panel(
        "\n".join(lines),
        title="Evaluation",
        border_style=evaluation.get("bubble_color", "green" if correct else "red"),
    )


def render_resources(resources: dict[str, Any], title: str = "Resources") -> Panel:
    lines = []
    text = resources.get("explanation") or resources.get("text")
    if text:
        lines.append(text)
    links = resources.get("resources", resources)
    for kind in ("videos", "articles", "images"):
        for item in links.get(kind, []):
            lines.append(f"• [cyan]{item['title']}[/]: {item['url']}")
    return Panel("\n".join(lines), title=title, border_style="cyan")


def render_summary(summary: dict[str, Any]) -> Table:
    overall = summary["overallPerformance"]
    table = Table(title=f"Session Summary: {summary['topic']}", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="white")

    table.add_row("Rating", "⭐" * summary["starRating"])
    table.add_row("Goals completed", f"{summary['completedGoals']}/{summary['totalGoals']}")
    table.add_row(
        "Accuracy",
        f"{overall['accuracyPercent']}% ({overall['correctAnswers']}/{overall['totalQuestions']})",
    )
    table.add_row("Time spent", f"{summary['timeSpent']} min")
    table.add_row("Learning gaps", ", ".join(summary["learningGaps"]) or "None")
    table.add_row("Next steps", "\n".join(f"• {r}" for r in summary["recommendations"]))
    return table


def _show_progress(turn: dict[str, Any]) -> None:
    if "goalCompleted" in turn:
        done = turn["goalCompleted"]
        perf = done["performance"]
        console.print(
            f"\n[green]🎯 Goal completed: {done['goal']}[/] "
            f"[dim]({perf['correctAnswers']}/{perf['totalQuestions']}, {perf['accuracyPercent']}%)[/]"
        )
    if "sessionCompleted" in turn:
        console.print()
        console.print(render_summary(turn["sessionCompleted"]["summary"]))


# =============================================================================
# Session Loop
# =============================================================================


async def run_session(
    orchestrator: SessionOrchestrator,
    user_id: str,
    topic_id: str,
    ask: AskFn = _ask,
) -> dict[str, Any] | None:
    """
    Drive one interactive session until it completes or the learner quits.

    Returns:
        The final summary dict, or None if the learner quit early
    """
    start = await orchestrator.start_session(user_id, topic_id)
    for message in start["messages"]:
        console.print(f"[bold blue]Tutor:[/] {message['message']}")

    question = start["currentQuestion"]
    while True:
        console.print(Panel(question["question"], title=question["goal"], border_style="blue"))
        answer = (await ask("[bold]Your answer[/]")).strip()
        if answer.lower() in QUIT_WORDS:
            console.print("[yellow]Session paused. Run again to continue where you left off.[/]")
            return None
        if not answer:
            continue

        turn = await orchestrator.process_answer(user_id, topic_id, answer)
        console.print(render_evaluation(turn["evaluation"]))
        if "resources" in turn:
            console.print(render_resources(turn["resources"]))

        if turn["evaluation"].get("options"):
            choice = (await ask(f"[bold]{' / '.join(FEEDBACK_OPTIONS)}[/] (or press Enter to retry)")).strip()
            matched = next((o for o in FEEDBACK_OPTIONS if o.lower() == choice.lower()), None)
            if matched is None:
                continue
            turn = await orchestrator.handle_feedback_option(user_id, topic_id, matched)
            if "explanation" in turn:
                console.print(render_resources(turn["explanation"], title="Explanation"))
            elif matched == OPTION_GOT_IT:
                console.print("[dim]Moving on.[/]")

        _show_progress(turn)
        if "sessionCompleted" in turn:
            return turn["sessionCompleted"]["summary"]
        if "nextQuestion" in turn:
            question = turn["nextQuestion"]


async def _run(topic: Topic, user_id: str, ask: AskFn = _ask) -> None:
    settings = get_settings()
    persistence = InMemoryPersistence()
    persistence.add_topic(topic)

    async with GenerationClient() as client:
        orchestrator = SessionOrchestrator(persistence, client)
        sweeper = SessionSweeper(orchestrator.registry, settings.sweep_interval_seconds)
        sweeper.start()
        try:
            await run_session(orchestrator, user_id, topic.id, ask=ask)
        finally:
            console.print(f"[dim]{sweeper.get_status_line()}[/]")
            await sweeper.stop()


# =============================================================================
# Commands
# =============================================================================


@app.command("run")
def run_command(
    topic_file: Annotated[Path, typer.Argument(help="Topic JSON file with id, title and content")],
    user: Annotated[str, typer.Option("--user", "-u", help="Learner id")] = "learner",
) -> None:
    """Study a topic interactively."""
    if not topic_file.exists():
        console.print(f"[red]File not found: {topic_file}[/]")
        raise typer.Exit(1)

    try:
        topic = load_topic(topic_file)
    except ValueError as e:
        console.print(f"[red]{e}[/]")
        raise typer.Exit(1)

    if not get_settings().llm_api_key:
        console.print("[yellow]⚠ LLM_API_KEY is not set; answers will get fallback evaluations.[/]")

    console.print(
        Panel(
            f"[bold]{topic.title}[/]\n[dim]Type 'quit' to stop at any time.[/]",
            title="📚 Cloop Tutor",
            border_style="blue",
        )
    )

    try:
        asyncio.run(_run(topic, user))
    except TutorError as e:
        console.print(f"[red]Session error: {e}[/]")
        raise typer.Exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted.[/]")


@app.command("config")
def config_command() -> None:
    """Show the effective configuration (API key masked)."""
    config = get_settings().get_tutoring_config()

    table = Table(title="Cloop Tutor Configuration")
    table.add_column("Section", style="cyan")
    table.add_column("Setting", style="white")
    table.add_column("Value", style="green")

    for section, values in config.items():
        for name, value in values.items():
            table.add_row(section, name, str(value))

    console.print(table)


# =============================================================================
# Entry Point
# =============================================================================


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Verbose output")] = False,
) -> None:
    """
    📚 Cloop Tutor - adaptive tutoring sessions in the terminal

    \b
    Quick Start:
      cloop-tutor run topic.json
      cloop-tutor config
    """
    configure_logging("DEBUG" if verbose else None)


def run() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    run()

"""Rich console helpers for CLI output."""

from __future__ import annotations

from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..analytics.stats import format_clock, format_duration
from ..models.schemas import (
    PerformanceAnalysis,
    Question,
    RecommendationSet,
    ResultRecord,
    SessionSummary,
)

console = Console()

_PRIORITY_STYLE = {"High": "bold red", "Medium": "yellow", "Low": "green"}


def print_banner() -> None:
    console.print(
        Panel(
            "[bold cyan]prepcore — Exam Practice[/bold cyan]\n"
            "[dim]Timed mock tests  •  Performance analytics  •  Study recommendations[/dim]",
            border_style="bright_blue",
        )
    )


def print_step(step: str, description: str) -> None:
    console.print(f"\n[bold green]▶ {step}[/bold green]  {description}")


def print_question(
    position: int,
    total: int,
    question: Question,
    remaining_seconds: int,
    selected: Optional[str] = None,
    marked: bool = False,
) -> None:
    flag = "  [magenta]⚑ marked[/magenta]" if marked else ""
    console.print(
        f"\n[bold yellow]Q{position}/{total}[/bold yellow] "
        f"[dim]{question.chapter} · {question.difficulty} · "
        f"⏱ {format_clock(remaining_seconds)}[/dim]{flag}"
    )
    console.print(f"  {question.question}")
    for i, option in enumerate(question.options, 1):
        pointer = "[bold cyan]●[/bold cyan]" if option == selected else " "
        console.print(f"   {pointer} {i}) {option}")


def print_summary(summary: SessionSummary) -> None:
    table = Table(title="Before you submit", show_header=False)
    table.add_row("Total questions", str(summary.total))
    table.add_row("Attempted", str(summary.attempted))
    table.add_row("Unattempted", str(summary.unattempted))
    table.add_row("Marked for review", str(summary.marked))
    table.add_row("Time remaining", format_clock(summary.remaining_seconds))
    console.print(table)
    if summary.cheat_detected:
        console.print("[bold red]Integrity limit reached — the test will be submitted.[/bold red]")
    elif summary.reason == "timeout":
        console.print("[bold red]Time is up — the test will be submitted.[/bold red]")


def print_result(record: ResultRecord) -> None:
    table = Table(title=f"{record.config.subject} — Result", show_lines=True)
    table.add_column("Score", justify="right", style="bold")
    table.add_column("Correct", justify="right", style="green")
    table.add_column("Incorrect", justify="right", style="red")
    table.add_column("Unattempted", justify="right")
    table.add_column("Time")
    table.add_row(
        f"{record.score}%",
        str(record.correct),
        str(record.incorrect),
        str(record.unattempted),
        format_duration(record.time_taken),
    )
    console.print(table)
    if record.integrity.cheat_detected:
        console.print("[red]Submitted after repeated tab switches.[/red]")


def print_analysis(analysis: PerformanceAnalysis) -> None:
    overall = analysis.overall
    console.print(
        Panel(
            f"Tests: [bold]{overall.total_tests}[/bold]   "
            f"Average: [bold]{overall.average_score}%[/bold]   "
            f"Accuracy: [bold]{overall.average_accuracy}%[/bold]   "
            f"Best: {overall.highest_score}%   "
            f"Time: {format_duration(overall.total_time_spent)}",
            title="Overall",
            border_style="cyan",
        )
    )

    if analysis.subjects:
        table = Table(title="By subject")
        table.add_column("Subject", style="bold")
        table.add_column("Tests", justify="right")
        table.add_column("Avg score", justify="right")
        table.add_column("Accuracy", justify="right")
        for subject, stats in analysis.subjects.items():
            table.add_row(
                subject,
                str(stats.tests_taken),
                f"{stats.average_score}%",
                f"{stats.accuracy}%",
            )
        console.print(table)

    table = Table(title="By difficulty")
    table.add_column("Level", style="bold")
    table.add_column("Correct / Total", justify="right")
    table.add_column("Accuracy", justify="right")
    for level, stats in analysis.difficulty.items():
        table.add_row(level.capitalize(), f"{stats.correct}/{stats.total}", f"{stats.accuracy}%")
    console.print(table)

    for label, chapters, style in (
        ("Weak chapters", analysis.weak_chapters, "red"),
        ("Strong chapters", analysis.strong_chapters, "green"),
    ):
        if chapters:
            names = ", ".join(f"{c.chapter} ({c.accuracy}%)" for c in chapters)
            console.print(f"[bold {style}]{label}:[/bold {style}] {names}")

    if analysis.trend:
        points = "  ".join(f"{p.date}: {p.score}%" for p in analysis.trend)
        console.print(f"[dim]Trend[/dim] {points}")


def print_recommendations(recommendations: RecommendationSet) -> None:
    source = (
        f"AI ({recommendations.model})"
        if recommendations.source == "ai"
        else "rule-based"
    )
    console.print(f"\n[bold cyan]📚 Recommendations[/bold cyan] [dim]{source}[/dim]")
    for rec in recommendations.items:
        style = _PRIORITY_STYLE.get(rec.priority, "white")
        impact = f" [dim]{rec.estimated_impact}[/dim]" if rec.estimated_impact else ""
        console.print(f"\n  [{style}]{rec.priority}[/{style}] [bold]{rec.title}[/bold]{impact}")
        console.print(f"    {rec.description}")
        if rec.actionable:
            console.print(f"    → {rec.actionable}")

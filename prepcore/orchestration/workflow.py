"""End-to-end CLI orchestration: intake → timed session → result → report."""

from __future__ import annotations

from typing import List, Optional

from ..analytics.recommendations import RecommendationEngine
from ..config import DEFAULT_TEST_DURATION, Settings
from ..content.catalog import Catalog, QuestionBank
from ..models.schemas import TestConfiguration
from ..observability.context import bound_session
from ..session.clock import PolledScheduler
from ..session.controller import Phase, SessionCapabilities, SessionController
from ..session.errors import SessionError
from ..session.snapshot import LocalSnapshotStore, SessionSnapshot
from ..util.console import (
    console,
    print_analysis,
    print_banner,
    print_question,
    print_recommendations,
    print_result,
    print_step,
    print_summary,
)
from .dashboard import DashboardAnalytics
from .result_store import LocalResultStore

_HELP = (
    "[dim]1-4 answer · n next · p prev · g N go to · m mark · "
    "c clear · s submit · q quit (progress is kept)[/dim]"
)


def _choose(prompt: str, options: List[str], allow_empty: bool = False) -> Optional[str]:
    for i, option in enumerate(options, 1):
        console.print(f"   {i}) {option}")
    while True:
        raw = input(f"{prompt}: ").strip()
        if not raw and allow_empty:
            return None
        try:
            choice = int(raw)
            if 1 <= choice <= len(options):
                return options[choice - 1]
        except ValueError:
            pass
        console.print(f"  [red]Enter a number 1-{len(options)}[/red]")


def _prompt_intake(catalog: Catalog, bank: QuestionBank) -> TestConfiguration:
    """Ask for subject, chapters, difficulty and duration."""
    subjects = [s for s in catalog.subjects if bank.questions_for(s)] or bank.subjects
    console.print("\n[bold]Subject:[/bold]")
    subject = _choose("Subject (number)", subjects)

    chapters = catalog.chapters_for(subject)
    selected: List[str] = []
    if chapters:
        console.print("\n[bold]Optional:[/bold] chapters (comma-separated numbers) or Enter for all:")
        for i, chapter in enumerate(chapters, 1):
            console.print(f"   {i}) {chapter}")
        raw = input("> ").strip()
        for part in raw.split(","):
            if part.strip().isdigit() and 1 <= int(part) <= len(chapters):
                selected.append(chapters[int(part) - 1])

    console.print("\n[bold]Optional:[/bold] difficulty, Enter for any:")
    difficulty = _choose("Difficulty (number)", ["Easy", "Medium", "Hard"], allow_empty=True)

    default_minutes = max(1, DEFAULT_TEST_DURATION // 60)
    console.print(f"[bold]Optional:[/bold] Duration in minutes (default {default_minutes}):")
    raw_mins = input("> ").strip()
    try:
        minutes = int(raw_mins) if raw_mins else default_minutes
    except ValueError:
        minutes = default_minutes

    return TestConfiguration(
        subject=subject,
        scope="chapterwise" if selected else "complete",
        selected_chapters=selected,
        difficulty=difficulty,
        duration_seconds=minutes * 60,
    )


def _show_current(controller: SessionController) -> None:
    state = controller.state
    index = state.current_index
    print_question(
        index + 1,
        state.question_count,
        controller.current_question,
        state.remaining_seconds,
        selected=state.answers.get(index),
        marked=index in state.marked,
    )


def _handle_command(controller: SessionController, raw: str) -> bool:
    """Apply one typed command; returns False when the user quits."""
    state = controller.state
    command, _, arg = raw.partition(" ")
    command = command.lower()
    if command == "q":
        return False
    if command == "n":
        controller.next()
    elif command == "p":
        controller.previous()
    elif command == "g" and arg.strip().isdigit():
        controller.navigate(int(arg) - 1)
    elif command == "m":
        controller.toggle_mark()
    elif command == "c":
        controller.clear_option(state.current_index)
    elif command == "s":
        print_summary(controller.request_submit())
        if input("Submit now? [y/N] ").strip().lower() == "y":
            controller.submit()
        else:
            controller.resume()
    elif command.isdigit():
        options = controller.current_question.options
        choice = int(command)
        if 1 <= choice <= len(options):
            controller.select_option(state.current_index, options[choice - 1])
        else:
            console.print(f"  [red]Enter a number 1-{len(options)}[/red]")
    else:
        console.print(_HELP)
    return True


def _run_session(controller: SessionController, scheduler: PolledScheduler) -> None:
    controller.start_session()
    console.print(_HELP)
    while True:
        scheduler.run_due()
        if controller.phase is Phase.FINALIZED:
            return
        if controller.phase is Phase.SUMMARIZING:
            print_summary(controller.summary())
            input("Press Enter to submit.")
            controller.submit()
            return

        _show_current(controller)
        raw = input("> ").strip()
        # Time that passed while waiting for input is applied before the command.
        scheduler.run_due()
        if controller.phase is not Phase.ACTIVE:
            continue
        try:
            if not _handle_command(controller, raw):
                controller.close()
                console.print("[dim]Session paused. Run again to continue.[/dim]")
                return
        except (SessionError, IndexError) as exc:
            console.print(f"  [red]{exc}[/red]")


def show_report(
    settings: Settings,
    engine: RecommendationEngine,
    user_id: str,
) -> None:
    """Print analytics and recommendations for every stored result."""
    dashboard = DashboardAnalytics(LocalResultStore(settings.results_dir), engine)
    try:
        view = dashboard.refresh(user_id)
    finally:
        dashboard.close()
    if view is None or not view.records:
        console.print("[dim]No completed tests yet.[/dim]")
        return
    print_analysis(view.analysis)
    if view.recommendations is not None:
        print_recommendations(view.recommendations)


def run_workflow(
    settings: Settings,
    engine: RecommendationEngine,
    user_id: str = "default",
    report_only: bool = False,
) -> None:
    """Execute one practice session and print the updated report."""
    print_banner()
    if report_only:
        show_report(settings, engine, user_id)
        return

    catalog = Catalog.load()
    bank = QuestionBank.load()

    print_step("1/3", "Test setup")
    config = _prompt_intake(catalog, bank)

    scheduler = PolledScheduler()
    snapshot = SessionSnapshot(LocalSnapshotStore(settings.snapshot_dir, namespace=user_id))
    controller = SessionController(
        config,
        bank.questions_for(config.subject),
        scheduler=scheduler,
        snapshot=snapshot,
        result_store=LocalResultStore(settings.results_dir),
        user_id=user_id,
        capabilities=SessionCapabilities(resume_policy=settings.resume_policy),
    )

    print_step("2/3", f"{config.subject} — {config.test_type}")
    with bound_session(controller.session_id, user_id):
        _run_session(controller, scheduler)

    record = controller.result
    if record is None:
        return
    print_result(record)
    if controller.result_id is None:
        console.print("[yellow]Result could not be saved.[/yellow]")

    print_step("3/3", "Performance report")
    show_report(settings, engine, user_id)

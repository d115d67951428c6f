"""SessionController lifecycle tests, driven by a fake time source."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from prepcore.models.schemas import Question, TestConfiguration
from prepcore.session.clock import PolledScheduler
from prepcore.session.controller import (
    Phase,
    SessionCapabilities,
    SessionController,
    filter_questions,
)
from prepcore.session.errors import (
    EmptyQuestionPoolError,
    InvalidOptionError,
    InvalidTransitionError,
    SessionClosedError,
)
from prepcore.session.snapshot import MemorySnapshotStore, SessionSnapshot


class _FakeTime:
    def __init__(self, start: float = 1000.0):
        self.value = start

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


class _RecordingStore:
    def __init__(self):
        self.saved = []

    def save_result(self, user_id, record):
        self.saved.append((user_id, record))
        return f"test_{len(self.saved)}"


class _BrokenStore:
    def save_result(self, user_id, record):
        raise RuntimeError("backend unavailable")


def _questions():
    return [
        Question(
            id=f"q{i}",
            question=f"Question {i}?",
            options=["A", "B", "C", "D"],
            answer="A",
            difficulty=difficulty,
            chapter=chapter,
        )
        for i, (difficulty, chapter) in enumerate(
            [
                ("Easy", "Atomic Structure"),
                ("Medium", "Atomic Structure"),
                ("Medium", "Equilibrium"),
                ("Hard", "Equilibrium"),
            ]
        )
    ]


def _config(**overrides) -> TestConfiguration:
    payload = {"subject": "Chemistry", "scope": "complete", "duration_seconds": 900}
    payload.update(overrides)
    return TestConfiguration(**payload)


def _controller(config=None, questions=None, **kwargs):
    fake = kwargs.pop("time", None) or _FakeTime()
    scheduler = PolledScheduler(fake)
    events = []
    controller = SessionController(
        config or _config(),
        _questions() if questions is None else questions,
        scheduler=scheduler,
        listener=lambda event, payload: events.append((event, payload)),
        **kwargs,
    )
    return controller, scheduler, fake, events


def test_full_session_produces_tallied_record():
    store = _RecordingStore()
    snapshot_store = MemorySnapshotStore()
    controller, scheduler, fake, _ = _controller(
        result_store=store,
        snapshot=SessionSnapshot(snapshot_store),
        user_id="asha",
    )
    controller.start_session()
    assert controller.phase is Phase.ACTIVE

    controller.select_option(0, "A")
    controller.select_option(1, "C")
    controller.toggle_mark(2)
    fake.advance(100)
    scheduler.run_due()

    summary = controller.request_submit()
    assert summary.attempted == 2
    assert summary.unattempted == 2
    assert summary.marked == 1
    assert summary.can_return

    record = controller.submit()
    assert controller.phase is Phase.FINALIZED
    assert (record.total_questions, record.attempted, record.correct) == (4, 2, 1)
    assert (record.incorrect, record.unattempted, record.marked) == (1, 2, 1)
    assert record.score == 25.0
    assert record.time_taken == 100
    assert record.time_remaining == 800
    assert record.submission_reason == "user"
    assert record.question_results[1].user_answer == "C"
    assert not record.question_results[1].is_correct
    assert store.saved == [("asha", record)]
    assert controller.result_id == "test_1"
    assert snapshot_store.values == {}


def test_two_right_one_wrong_one_blank_scores_fifty():
    controller, scheduler, fake, _ = _controller(config=_config(duration_seconds=900))
    controller.start_session()
    controller.select_option(0, "A")
    controller.select_option(1, "B")
    controller.select_option(2, "A")
    fake.advance(780)
    scheduler.run_due()
    assert controller.state.remaining_seconds == 120

    record = controller.submit()
    assert (record.total_questions, record.attempted, record.correct) == (4, 3, 2)
    assert (record.incorrect, record.unattempted) == (1, 1)
    assert record.score == 50.0
    assert record.time_taken == 780
    assert record.time_remaining == 120
    assert record.question_results[3].user_answer is None


def test_empty_filter_result_falls_back_to_unfiltered_pool():
    config = _config(scope="chapterwise", selected_chapters=["Kinematics"], difficulty="Hard")
    controller, *_ = _controller(config=config)
    controller.start_session()
    assert len(controller.questions) == 4


def test_filters_apply_when_they_match():
    config = _config(scope="chapterwise", selected_chapters=["Equilibrium"])
    assert [q.id for q in filter_questions(_questions(), config)] == ["q2", "q3"]
    config = _config(difficulty="medium")
    assert [q.id for q in filter_questions(_questions(), config)] == ["q1", "q2"]


def test_no_questions_at_all_is_an_error():
    controller, *_ = _controller(questions=[])
    with pytest.raises(EmptyQuestionPoolError):
        controller.start_session()


def test_last_selection_wins():
    store = MemorySnapshotStore()
    controller, *_ = _controller(snapshot=SessionSnapshot(store))
    controller.start_session()
    controller.select_option(0, "A")
    controller.select_option(0, "B")
    assert controller.state.answers == {0: "B"}
    assert json.loads(store.values["answers"]) == {"0": "B"}


def test_invalid_option_and_index_are_rejected():
    controller, *_ = _controller()
    controller.start_session()
    with pytest.raises(InvalidOptionError):
        controller.select_option(0, "Z")
    with pytest.raises(IndexError):
        controller.select_option(9, "A")


def test_navigation_is_clamped():
    controller, *_ = _controller()
    controller.start_session()
    assert controller.previous() == 0
    assert controller.navigate(99) == 3
    assert controller.next() == 3
    assert controller.navigate(1) == 1


def test_fourth_incident_warns_fifth_schedules_integrity_submit():
    controller, scheduler, fake, events = _controller()
    controller.start_session()

    for _ in range(4):
        controller.report_visibility_lost()
    assert controller.phase is Phase.ACTIVE
    assert controller.state.integrity_incidents == 4
    assert 10.0 not in scheduler.pending_delays()
    assert [e for e, _ in events].count("integrity_warning") == 4

    controller.report_visibility_lost()
    assert controller.phase is Phase.SUMMARIZING
    assert scheduler.pending_delays() == [10.0]
    summary = controller.summary()
    assert summary.cheat_detected
    assert not summary.can_return
    with pytest.raises(InvalidTransitionError):
        controller.resume()

    fake.advance(9)
    scheduler.run_due()
    assert controller.phase is Phase.SUMMARIZING
    fake.advance(1)
    scheduler.run_due()
    assert controller.phase is Phase.FINALIZED
    assert controller.result.submission_reason == "integrity"
    assert controller.result.integrity.cheat_detected
    assert controller.result.integrity.incidents == 5


def test_expiry_auto_submits_without_return_path():
    controller, scheduler, fake, events = _controller(config=_config(duration_seconds=3))
    controller.start_session()
    controller.select_option(0, "A")

    fake.advance(3)
    scheduler.run_due()
    assert controller.phase is Phase.SUMMARIZING
    assert ("expired", {"auto_submit_in": 5.0}) in events
    assert not controller.summary().can_return
    with pytest.raises(InvalidTransitionError):
        controller.select_option(1, "A")

    fake.advance(4)
    scheduler.run_due()
    assert controller.phase is Phase.SUMMARIZING
    fake.advance(1)
    scheduler.run_due()

    record = controller.result
    assert record.submission_reason == "timeout"
    assert record.time_remaining == 0
    assert record.time_taken == 3
    assert record.correct == 1


def test_summary_pauses_and_resume_continues_clock():
    controller, scheduler, fake, _ = _controller()
    controller.start_session()
    fake.advance(10)
    scheduler.run_due()
    controller.request_submit()

    fake.advance(60)
    scheduler.run_due()
    assert controller.state.remaining_seconds == 890

    controller.resume()
    assert controller.phase is Phase.ACTIVE
    fake.advance(5)
    scheduler.run_due()
    assert controller.state.remaining_seconds == 885


def test_submit_is_idempotent():
    store = _RecordingStore()
    controller, *_ = _controller(result_store=store)
    controller.start_session()
    first = controller.submit()
    assert controller.submit() is first
    assert len(store.saved) == 1
    with pytest.raises(SessionClosedError):
        controller.select_option(0, "A")


def test_persistence_failure_still_finalizes():
    controller, *_ = _controller(result_store=_BrokenStore())
    controller.start_session()
    record = controller.submit()
    assert controller.phase is Phase.FINALIZED
    assert record.total_questions == 4
    assert controller.result_id is None


def test_persist_results_capability_off_skips_store():
    store = _RecordingStore()
    controller, *_ = _controller(
        result_store=store, capabilities=SessionCapabilities(persist_results=False)
    )
    controller.start_session()
    controller.submit()
    assert store.saved == []


def test_reload_restores_answers_and_wall_clock_time():
    store = MemorySnapshotStore()
    wall = _FakeTime(0.0)
    first, *_ = _controller(snapshot=SessionSnapshot(store), wall_time=wall)
    first.start_session()
    first.select_option(2, "D")
    first.toggle_mark(3)
    first.navigate(3)
    first.close()

    wall.advance(120)
    second, *_ = _controller(snapshot=SessionSnapshot(store), wall_time=wall)
    state = second.start_session()
    assert state.answers == {2: "D"}
    assert state.marked == {3}
    assert state.current_index == 3
    assert state.remaining_seconds == 780


def test_restart_policy_keeps_answers_but_resets_time():
    store = MemorySnapshotStore()
    wall = _FakeTime(0.0)
    first, *_ = _controller(snapshot=SessionSnapshot(store), wall_time=wall)
    first.start_session()
    first.select_option(0, "A")
    first.close()

    wall.advance(120)
    second, *_ = _controller(
        snapshot=SessionSnapshot(store),
        wall_time=wall,
        capabilities=SessionCapabilities(resume_policy="restart"),
    )
    state = second.start_session()
    assert state.answers == {0: "A"}
    assert state.remaining_seconds == 900


def test_reload_after_violation_goes_straight_to_integrity_summary():
    store = MemorySnapshotStore()
    first, *_ = _controller(snapshot=SessionSnapshot(store))
    first.start_session()
    for _ in range(5):
        first.report_visibility_lost()
    first.close()

    second, scheduler, fake, _ = _controller(snapshot=SessionSnapshot(store))
    second.start_session()
    assert second.phase is Phase.SUMMARIZING
    assert second.summary().cheat_detected
    assert scheduler.pending_delays() == [10.0]
    fake.advance(10)
    scheduler.run_due()
    assert second.result.submission_reason == "integrity"


def test_close_cancels_timers():
    controller, scheduler, fake, _ = _controller()
    controller.start_session()
    controller.close()
    assert scheduler.pending_delays() == []
    with pytest.raises(SessionClosedError):
        controller.submit()


def test_fullscreen_exits_reach_the_record():
    controller, *_ = _controller()
    controller.start_session()
    controller.report_fullscreen_change(True)
    controller.report_fullscreen_change(False)
    record = controller.submit()
    assert record.integrity.fullscreen_exits == 1
    assert not record.integrity.cheat_detected

"""SessionController — drives one timed, integrity-monitored test session.

Lifecycle: initializing -> active -> summarizing -> finalized.

User input is streamed into a ``SessionState``; every mutation is mirrored
to the local snapshot so a reload can recover. Time expiry, an integrity
violation or a user submit move the session into the summary; from there
``submit()`` compiles the ``ResultRecord`` exactly once.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence
from uuid import uuid4

from ..models.schemas import (
    Question,
    ResultRecord,
    SessionSummary,
    SubmissionReason,
    TestConfiguration,
)
from ..models.state import SessionState
from ..orchestration.result_store import ResultStore
from .clock import Clock, Scheduler, TimerHandle
from .errors import (
    EmptyQuestionPoolError,
    InvalidOptionError,
    InvalidTransitionError,
    SessionClosedError,
)
from .integrity import IntegrityMonitor
from .results import compile_result
from .snapshot import SessionSnapshot

EXPIRY_AUTO_SUBMIT_SECONDS = 5.0

_session_logger = logging.getLogger("prepcore.session")

SessionListener = Callable[[str, Dict[str, Any]], None]


class Phase(str, Enum):
    INITIALIZING = "initializing"
    ACTIVE = "active"
    SUMMARIZING = "summarizing"
    FINALIZED = "finalized"


@dataclass(frozen=True)
class SessionCapabilities:
    persist_results: bool = True
    resume_policy: str = "wall_clock"


def filter_questions(
    questions: Sequence[Question], config: TestConfiguration
) -> List[Question]:
    """Apply the difficulty and chapter filters of ``config``.

    No difficulty means any difficulty; an empty chapter selection, or a
    complete-syllabus test, means every chapter.
    """
    difficulty = (config.difficulty or "").lower()
    chapters = set(config.selected_chapters) if config.scope != "complete" else set()
    return [
        q
        for q in questions
        if (not difficulty or q.difficulty.lower() == difficulty)
        and (not chapters or q.chapter in chapters)
    ]


class SessionController:
    def __init__(
        self,
        config: TestConfiguration,
        questions: Sequence[Question],
        *,
        scheduler: Scheduler,
        snapshot: Optional[SessionSnapshot] = None,
        result_store: Optional[ResultStore] = None,
        user_id: str = "default",
        capabilities: SessionCapabilities = SessionCapabilities(),
        listener: Optional[SessionListener] = None,
        wall_time: Callable[[], float] = time.time,
    ) -> None:
        self.config = config
        self.session_id = uuid4().hex
        self._bank = list(questions)
        self._scheduler = scheduler
        self._snapshot = snapshot
        self._store = result_store
        self._user_id = user_id
        self._capabilities = capabilities
        self._listener = listener
        self._wall_time = wall_time

        self._phase = Phase.INITIALIZING
        self._closed = False
        self._questions: List[Question] = []
        self._state: Optional[SessionState] = None
        self._clock = Clock(scheduler, self._on_tick, self._on_expired)
        self._monitor: Optional[IntegrityMonitor] = None
        self._reason: SubmissionReason = "user"
        self._can_return = True
        self._auto_submit: Optional[TimerHandle] = None
        self._result: Optional[ResultRecord] = None
        self._result_id: Optional[str] = None

    # ── Read-only views ─────────────────────────────────────────────
    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def questions(self) -> List[Question]:
        return list(self._questions)

    @property
    def state(self) -> SessionState:
        if self._state is None:
            raise InvalidTransitionError("session has not been started")
        return self._state

    @property
    def current_question(self) -> Question:
        return self._questions[self.state.current_index]

    @property
    def integrity(self) -> IntegrityMonitor:
        if self._monitor is None:
            raise InvalidTransitionError("session has not been started")
        return self._monitor

    @property
    def result(self) -> Optional[ResultRecord]:
        return self._result

    @property
    def result_id(self) -> Optional[str]:
        return self._result_id

    # ── Initializing ────────────────────────────────────────────────
    def start_session(self) -> SessionState:
        if self._closed:
            raise SessionClosedError("session was torn down")
        if self._phase is not Phase.INITIALIZING:
            raise InvalidTransitionError(f"cannot start from {self._phase.value}")

        pool = filter_questions(self._bank, self.config)
        if not pool:
            _session_logger.info(
                "question_filter_fallback",
                extra={
                    "event": "question_filter_fallback",
                    "subject": self.config.subject,
                    "difficulty": self.config.difficulty,
                    "chapters": len(self.config.selected_chapters),
                },
            )
            pool = list(self._bank)
        if not pool:
            raise EmptyQuestionPoolError(
                f"no questions available for subject {self.config.subject!r}"
            )
        self._questions = pool

        duration = self.config.duration_seconds
        state = SessionState(question_count=len(pool), remaining_seconds=duration)
        started_at = self._wall_time()
        remaining = duration
        incidents = 0

        restored = (
            self._snapshot.restore(self.config, len(pool)) if self._snapshot else None
        )
        if restored is not None:
            state.restore(restored.answers, restored.marked, restored.current_index)
            incidents = restored.integrity_incidents
            if (
                self._capabilities.resume_policy == "wall_clock"
                and restored.started_at is not None
            ):
                started_at = restored.started_at
                elapsed = max(0, int(self._wall_time() - started_at))
                remaining = min(duration, max(0, duration - elapsed))

        state.remaining_seconds = remaining
        state.integrity_incidents = incidents
        self._state = state
        self._monitor = IntegrityMonitor(
            on_warning=self._on_integrity_warning,
            on_violation=self._on_integrity_violation,
            initial_incidents=incidents,
        )

        if self._snapshot is not None:
            self._snapshot.begin(self.config, started_at)
            self._snapshot.persist(state)

        self._set_phase(Phase.ACTIVE)
        _session_logger.info(
            "session_started",
            extra={
                "event": "session_started",
                "session_id": self.session_id,
                "questions": len(pool),
                "remaining_seconds": remaining,
                "restored": restored is not None,
            },
        )
        if self._monitor.cheat_detected:
            self._enter_integrity_summary(self._monitor.grace_seconds)
        else:
            self._clock.start(remaining)
        return state

    # ── Active ──────────────────────────────────────────────────────
    def select_option(self, index: int, option: str) -> None:
        self._require_active()
        state = self.state
        state.check_index(index)
        if option not in self._questions[index].options:
            raise InvalidOptionError(f"{option!r} is not an option of question {index}")
        state.select(index, option)
        self._persist()

    def clear_option(self, index: int) -> None:
        self._require_active()
        self.state.clear(index)
        self._persist()

    def toggle_mark(self, index: Optional[int] = None) -> bool:
        self._require_active()
        state = self.state
        flagged = state.toggle_mark(state.current_index if index is None else index)
        self._persist()
        return flagged

    def navigate(self, index: int) -> int:
        self._require_active()
        position = self.state.move_to(index)
        self._persist()
        return position

    def next(self) -> int:
        return self.navigate(self.state.current_index + 1)

    def previous(self) -> int:
        return self.navigate(self.state.current_index - 1)

    def report_visibility_lost(self) -> int:
        if self._phase in (Phase.ACTIVE, Phase.SUMMARIZING) and not self._closed:
            count = self.integrity.on_visibility_lost()
            self.state.integrity_incidents = count
            self._persist()
            return count
        return self._monitor.incidents if self._monitor else 0

    def report_fullscreen_change(self, active: bool) -> None:
        if self._phase in (Phase.ACTIVE, Phase.SUMMARIZING) and not self._closed:
            self.integrity.on_fullscreen_change(active)

    # ── Summarizing ─────────────────────────────────────────────────
    def request_submit(self) -> SessionSummary:
        self._require_active()
        self._clock.stop()
        self._reason = "user"
        self._can_return = True
        self._set_phase(Phase.SUMMARIZING)
        return self.summary()

    def resume(self) -> None:
        if self._closed or self._phase is Phase.FINALIZED:
            raise SessionClosedError("session is closed")
        if self._phase is not Phase.SUMMARIZING or not self._can_return:
            raise InvalidTransitionError("no return path to the active session")
        self._set_phase(Phase.ACTIVE)
        self._clock.start(self.state.remaining_seconds)

    def summary(self) -> SessionSummary:
        state = self.state
        return SessionSummary(
            total=state.question_count,
            attempted=state.attempted,
            unattempted=state.unattempted,
            marked=len(state.marked),
            remaining_seconds=state.remaining_seconds,
            reason=self._reason,
            can_return=self._phase is Phase.SUMMARIZING and self._can_return,
            cheat_detected=self._monitor.cheat_detected if self._monitor else False,
        )

    # ── Finalized ───────────────────────────────────────────────────
    def submit(self) -> ResultRecord:
        """Finalize the session; later calls return the same record."""
        if self._result is not None:
            return self._result
        if self._closed:
            raise SessionClosedError("session was torn down")
        if self._phase not in (Phase.ACTIVE, Phase.SUMMARIZING):
            raise InvalidTransitionError(f"cannot submit from {self._phase.value}")
        return self._finalize()

    def close(self) -> None:
        """Tear down without finalizing. The snapshot is kept for recovery."""
        self._teardown()
        self._closed = True

    # ── Internals ───────────────────────────────────────────────────
    def _finalize(self) -> ResultRecord:
        self._teardown()
        state = self.state
        record = compile_result(
            config=self.config,
            questions=self._questions,
            state=state,
            integrity=self.integrity.report(),
            reason=self._reason,
        )
        self._result = record
        self._set_phase(Phase.FINALIZED)

        if self._capabilities.persist_results and self._store is not None:
            try:
                self._result_id = self._store.save_result(self._user_id, record)
            except Exception as exc:
                _session_logger.warning(
                    "result_persist_failed",
                    extra={
                        "event": "result_persist_failed",
                        "session_id": self.session_id,
                        "error": str(exc),
                    },
                )
        if self._snapshot is not None:
            self._snapshot.clear()

        _session_logger.info(
            "session_finalized",
            extra={
                "event": "session_finalized",
                "session_id": self.session_id,
                "reason": record.submission_reason,
                "score": record.score,
                "attempted": record.attempted,
                "time_taken": record.time_taken,
            },
        )
        self._emit("finalized", {"score": record.score, "result_id": self._result_id})
        return record

    def _teardown(self) -> None:
        self._clock.stop()
        self._cancel_auto_submit()
        if self._monitor is not None:
            self._monitor.disarm()

    def _require_active(self) -> None:
        if self._closed or self._phase is Phase.FINALIZED:
            raise SessionClosedError("session is closed")
        if self._phase is not Phase.ACTIVE:
            raise InvalidTransitionError(f"action not allowed while {self._phase.value}")

    def _persist(self) -> None:
        if self._snapshot is not None and self._state is not None:
            self._snapshot.persist(self._state)

    def _set_phase(self, phase: Phase) -> None:
        self._phase = phase
        self._emit("phase", {"phase": phase.value, "reason": self._reason})

    def _emit(self, event: str, payload: Dict[str, Any]) -> None:
        if self._listener is not None:
            self._listener(event, payload)

    def _schedule_auto_submit(self, delay: float) -> None:
        self._cancel_auto_submit()
        self._auto_submit = self._scheduler.call_later(delay, self._on_auto_submit)

    def _cancel_auto_submit(self) -> None:
        if self._auto_submit is not None:
            self._auto_submit.cancel()
            self._auto_submit = None

    def _on_auto_submit(self) -> None:
        self._auto_submit = None
        if self._phase is Phase.SUMMARIZING and not self._closed:
            self._finalize()

    def _on_tick(self, remaining: int) -> None:
        if self._state is None:
            return
        self._state.tick(remaining)
        self._persist()
        self._emit("tick", {"remaining_seconds": self._state.remaining_seconds})

    def _on_expired(self) -> None:
        if self._phase is not Phase.ACTIVE:
            return
        _session_logger.info(
            "session_time_expired",
            extra={"event": "session_time_expired", "session_id": self.session_id},
        )
        self._reason = "timeout"
        self._can_return = False
        self._set_phase(Phase.SUMMARIZING)
        self._emit("expired", {"auto_submit_in": EXPIRY_AUTO_SUBMIT_SECONDS})
        self._schedule_auto_submit(EXPIRY_AUTO_SUBMIT_SECONDS)

    def _on_integrity_warning(self, count: int) -> None:
        self._emit("integrity_warning", {"incidents": count})

    def _on_integrity_violation(self, count: int, grace_seconds: float) -> None:
        self._emit("integrity_violation", {"incidents": count, "auto_submit_in": grace_seconds})
        self._enter_integrity_summary(grace_seconds)

    def _enter_integrity_summary(self, grace_seconds: float) -> None:
        already_pending = self._phase is Phase.SUMMARIZING and not self._can_return
        self._clock.stop()
        self._reason = "integrity"
        self._can_return = False
        if self._phase is not Phase.SUMMARIZING:
            self._set_phase(Phase.SUMMARIZING)
        if not already_pending:
            self._schedule_auto_submit(grace_seconds)

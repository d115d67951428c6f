"""Compile the one-time result record at the end of a session."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional, Sequence

from ..models.schemas import (
    IntegrityReport,
    Question,
    QuestionOutcome,
    ResultRecord,
    SubmissionReason,
    TestConfiguration,
)
from ..models.state import SessionState
from ..util.numbers import percent


def compile_result(
    *,
    config: TestConfiguration,
    questions: Sequence[Question],
    state: SessionState,
    integrity: IntegrityReport,
    reason: SubmissionReason = "user",
    completed_at: Optional[datetime] = None,
) -> ResultRecord:
    outcomes: List[QuestionOutcome] = []
    correct = 0
    incorrect = 0
    for index, question in enumerate(questions):
        chosen = state.answers.get(index)
        is_correct = chosen is not None and chosen == question.answer
        if is_correct:
            correct += 1
        elif chosen is not None:
            incorrect += 1
        outcomes.append(
            QuestionOutcome(
                question_id=question.id,
                chapter=question.chapter,
                difficulty=question.difficulty,
                user_answer=chosen,
                correct_answer=question.answer,
                is_correct=is_correct,
                was_marked=index in state.marked,
            )
        )

    total = len(questions)
    attempted = correct + incorrect
    return ResultRecord(
        config=config,
        total_questions=total,
        attempted=attempted,
        correct=correct,
        incorrect=incorrect,
        unattempted=total - attempted,
        marked=len(state.marked),
        score=percent(correct, total),
        time_taken=max(0, config.duration_seconds - state.remaining_seconds),
        time_remaining=state.remaining_seconds,
        question_results=outcomes,
        integrity=integrity,
        submission_reason=reason,
        completed_at=completed_at or datetime.now(timezone.utc),
    )

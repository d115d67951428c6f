"""Pydantic schemas for session inputs, results, analytics and recommendations."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..config import DEFAULT_TEST_DURATION

_schema_logger = logging.getLogger("prepcore.config")

TestScope = Literal["chapterwise", "subcategorywise", "complete"]
Priority = Literal["High", "Medium", "Low"]
SubmissionReason = Literal["user", "timeout", "integrity"]
RecommendationSource = Literal["ai", "rule_based"]

DIFFICULTY_LEVELS = ("easy", "medium", "hard")
MAX_RECOMMENDATIONS = 5


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ── Session input ──────────────────────────────────────────────────
class TestConfiguration(BaseModel):
    model_config = ConfigDict(frozen=True)

    subject: str = Field(..., min_length=1)
    scope: TestScope = "chapterwise"
    selected_chapters: List[str] = Field(default_factory=list)
    selected_subcategories: List[str] = Field(default_factory=list)
    difficulty: Optional[str] = Field(
        default=None, description="Easy/Medium/Hard, or None for any"
    )
    test_type: str = "Mock Test"
    duration_seconds: int = DEFAULT_TEST_DURATION

    @field_validator("duration_seconds", mode="before")
    @classmethod
    def _recover_duration(cls, value: Any) -> int:
        try:
            seconds = int(value)
        except (TypeError, ValueError):
            seconds = 0
        if seconds <= 0:
            _schema_logger.warning(
                "config_duration_defaulted",
                extra={
                    "event": "config_duration_defaulted",
                    "value": repr(value),
                    "default": DEFAULT_TEST_DURATION,
                },
            )
            return DEFAULT_TEST_DURATION
        return seconds

    @field_validator("difficulty", mode="before")
    @classmethod
    def _normalize_difficulty(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        text = str(value).strip()
        return text.capitalize() if text else None


class Question(BaseModel):
    id: str
    question: str
    options: List[str] = Field(..., min_length=2)
    answer: str
    difficulty: str = "Medium"
    chapter: str

    @model_validator(mode="after")
    def _validate_answer(self) -> "Question":
        if self.answer not in self.options:
            raise ValueError("answer must be one of the options")
        return self


# ── Results ────────────────────────────────────────────────────────
class QuestionOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    question_id: str
    chapter: str
    difficulty: str
    user_answer: Optional[str] = None
    correct_answer: str
    is_correct: bool
    was_marked: bool = False


class IntegrityReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    incidents: int = Field(0, ge=0)
    fullscreen_exits: int = Field(0, ge=0)
    cheat_detected: bool = False


class ResultRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    config: TestConfiguration
    total_questions: int = Field(..., ge=0)
    attempted: int = Field(..., ge=0)
    correct: int = Field(..., ge=0)
    incorrect: int = Field(..., ge=0)
    unattempted: int = Field(..., ge=0)
    marked: int = Field(0, ge=0)
    score: float
    time_taken: int = Field(..., ge=0)
    time_remaining: int = Field(..., ge=0)
    question_results: List[QuestionOutcome] = Field(default_factory=list)
    integrity: IntegrityReport = Field(default_factory=IntegrityReport)
    submission_reason: SubmissionReason = "user"
    completed_at: datetime = Field(default_factory=_utc_now)

    @model_validator(mode="after")
    def _validate_tallies(self) -> "ResultRecord":
        if self.attempted + self.unattempted != self.total_questions:
            raise ValueError("attempted + unattempted must equal total_questions")
        if self.correct + self.incorrect != self.attempted:
            raise ValueError("correct + incorrect must equal attempted")
        return self


class SessionSummary(BaseModel):
    total: int
    attempted: int
    unattempted: int
    marked: int
    remaining_seconds: int
    reason: SubmissionReason
    can_return: bool
    cheat_detected: bool = False


# ── Analytics ──────────────────────────────────────────────────────
class OverallStats(BaseModel):
    total_tests: int = 0
    average_score: float = 0.0
    average_accuracy: float = 0.0
    highest_score: float = 0.0
    lowest_score: float = 0.0
    total_time_spent: int = 0
    total_questions_attempted: int = 0


class SubjectStats(BaseModel):
    tests_taken: int = 0
    total_score: float = 0.0
    total_questions: int = 0
    total_correct: int = 0
    total_incorrect: int = 0
    total_unattempted: int = 0
    average_score: float = 0.0
    accuracy: float = 0.0


class ChapterStats(BaseModel):
    chapter: str
    total_questions: int = 0
    correct: int = 0
    incorrect: int = 0
    accuracy: float = 0.0


class DifficultyStats(BaseModel):
    total: int = 0
    correct: int = 0
    incorrect: int = 0
    accuracy: float = 0.0

    @property
    def attempted(self) -> int:
        return self.correct + self.incorrect


class TrendPoint(BaseModel):
    test_number: int
    score: float
    accuracy: float
    date: str
    full_date: datetime


class PerformanceAnalysis(BaseModel):
    overall: OverallStats = Field(default_factory=OverallStats)
    subjects: Dict[str, SubjectStats] = Field(default_factory=dict)
    chapters: List[ChapterStats] = Field(default_factory=list)
    weak_chapters: List[ChapterStats] = Field(default_factory=list)
    strong_chapters: List[ChapterStats] = Field(default_factory=list)
    difficulty: Dict[str, DifficultyStats] = Field(default_factory=dict)
    trend: List[TrendPoint] = Field(default_factory=list)


# ── Recommendations ────────────────────────────────────────────────
class Recommendation(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    priority: Priority
    actionable: str = ""
    estimated_impact: Optional[str] = Field(default=None, alias="estimatedImpact")

    @field_validator("priority", mode="before")
    @classmethod
    def _normalize_priority(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().capitalize()
        return value

    @field_validator("actionable", mode="before")
    @classmethod
    def _default_actionable(cls, value: Any) -> Any:
        return "" if value is None else value


class RecommendationSet(BaseModel):
    source: RecommendationSource
    items: List[Recommendation] = Field(
        default_factory=list, max_length=MAX_RECOMMENDATIONS
    )
    model: Optional[str] = None

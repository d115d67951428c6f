"""Mutable session state and persisted user profile."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Iterable, Optional, Set

from pydantic import BaseModel, Field

from .schemas import ResultRecord


class SessionState(BaseModel):
    """Live state of one session. Owned by exactly one controller."""

    question_count: int = Field(..., ge=1)
    current_index: int = 0
    answers: Dict[int, str] = Field(default_factory=dict)
    marked: Set[int] = Field(default_factory=set)
    remaining_seconds: int = Field(0, ge=0)
    integrity_incidents: int = Field(0, ge=0)

    def check_index(self, index: int) -> None:
        if not 0 <= index < self.question_count:
            raise IndexError(
                f"question index {index} outside 0..{self.question_count - 1}"
            )

    def select(self, index: int, option: str) -> None:
        self.check_index(index)
        self.answers[index] = option

    def clear(self, index: int) -> None:
        self.check_index(index)
        self.answers.pop(index, None)

    def toggle_mark(self, index: int) -> bool:
        """Flip the review flag; returns the new flag."""
        self.check_index(index)
        if index in self.marked:
            self.marked.discard(index)
            return False
        self.marked.add(index)
        return True

    def move_to(self, index: int) -> int:
        self.current_index = min(max(index, 0), self.question_count - 1)
        return self.current_index

    def tick(self, remaining: int) -> None:
        self.remaining_seconds = min(self.remaining_seconds, max(0, remaining))

    def restore(
        self,
        answers: Dict[int, str],
        marked: Iterable[int],
        current_index: int = 0,
    ) -> None:
        """Adopt recovered progress, dropping indices outside the pool."""
        self.answers = {
            i: option
            for i, option in answers.items()
            if 0 <= i < self.question_count
        }
        self.marked = {i for i in marked if 0 <= i < self.question_count}
        self.move_to(current_index)

    @property
    def attempted(self) -> int:
        return len(self.answers)

    @property
    def unattempted(self) -> int:
        return self.question_count - len(self.answers)


class ProfilePreferences(BaseModel):
    favorite_subject: Optional[str] = None
    preferred_difficulty: str = "Medium"
    study_goal: str = "JEE Main"
    target_score: int = Field(90, ge=0, le=100)


class ProfileStatistics(BaseModel):
    total_tests: int = 0
    total_time_spent: int = 0
    average_score: float = 0.0
    last_test_date: Optional[datetime] = None


class UserProfile(BaseModel):
    user_id: str
    display_name: Optional[str] = None
    preferences: ProfilePreferences = Field(default_factory=ProfilePreferences)
    statistics: ProfileStatistics = Field(default_factory=ProfileStatistics)

    def update_from_result(self, record: ResultRecord) -> None:
        """Fold one finalized result into the running statistics."""
        stats = self.statistics
        total = stats.total_tests + 1
        average = (stats.average_score * (total - 1) + record.score) / total
        stats.total_tests = total
        stats.total_time_spent += record.time_taken
        stats.average_score = round(average, 2)
        stats.last_test_date = record.completed_at

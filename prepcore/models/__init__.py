"""Pydantic data models for sessions, results and analytics."""

from .schemas import (
    TestConfiguration,
    Question,
    QuestionOutcome,
    IntegrityReport,
    ResultRecord,
    SessionSummary,
    OverallStats,
    SubjectStats,
    ChapterStats,
    DifficultyStats,
    TrendPoint,
    PerformanceAnalysis,
    Recommendation,
    RecommendationSet,
)
from .state import SessionState, UserProfile

__all__ = [
    "TestConfiguration",
    "Question",
    "QuestionOutcome",
    "IntegrityReport",
    "ResultRecord",
    "SessionSummary",
    "OverallStats",
    "SubjectStats",
    "ChapterStats",
    "DifficultyStats",
    "TrendPoint",
    "PerformanceAnalysis",
    "Recommendation",
    "RecommendationSet",
    "SessionState",
    "UserProfile",
]

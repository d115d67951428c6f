"""Aggregate statistics over finalized results.

Every function here is pure: it recomputes from the records it is given and
keeps no history. Percentages are rounded once, at the point they are
published, never in intermediate sums.
"""

from __future__ import annotations

from typing import Dict, List, Sequence

from ..models.schemas import (
    DIFFICULTY_LEVELS,
    ChapterStats,
    DifficultyStats,
    OverallStats,
    PerformanceAnalysis,
    ResultRecord,
    SubjectStats,
    TrendPoint,
)
from ..util.numbers import percent, round_percent

WEAK_ACCURACY_THRESHOLD = 60.0
STRONG_ACCURACY_THRESHOLD = 80.0
MIN_CHAPTER_QUESTIONS = 3
MAX_LISTED_CHAPTERS = 5
TREND_WINDOW = 10


def calculate_overall_stats(records: Sequence[ResultRecord]) -> OverallStats:
    if not records:
        return OverallStats()

    scores = [r.score for r in records]
    total_attempted = sum(r.attempted for r in records)
    total_correct = sum(r.correct for r in records)
    return OverallStats(
        total_tests=len(records),
        average_score=round_percent(sum(scores) / len(scores)),
        average_accuracy=percent(total_correct, total_attempted),
        highest_score=round_percent(max(scores)),
        lowest_score=round_percent(min(scores)),
        total_time_spent=sum(r.time_taken for r in records),
        total_questions_attempted=total_attempted,
    )


def calculate_subject_stats(records: Sequence[ResultRecord]) -> Dict[str, SubjectStats]:
    """Per-subject totals; accuracy leaves unattempted questions out."""
    stats: Dict[str, SubjectStats] = {}
    for record in records:
        entry = stats.setdefault(record.config.subject, SubjectStats())
        entry.tests_taken += 1
        entry.total_score += record.score
        entry.total_questions += record.total_questions
        entry.total_correct += record.correct
        entry.total_incorrect += record.incorrect
        entry.total_unattempted += record.unattempted

    for entry in stats.values():
        entry.average_score = round_percent(entry.total_score / entry.tests_taken)
        entry.accuracy = percent(
            entry.total_correct, entry.total_questions - entry.total_unattempted
        )
    return stats


def calculate_chapter_stats(records: Sequence[ResultRecord]) -> List[ChapterStats]:
    """Per-chapter accuracy from question outcomes, weakest first."""
    stats: Dict[str, ChapterStats] = {}
    for record in records:
        for outcome in record.question_results:
            entry = stats.get(outcome.chapter)
            if entry is None:
                entry = stats[outcome.chapter] = ChapterStats(chapter=outcome.chapter)
            entry.total_questions += 1
            if outcome.is_correct:
                entry.correct += 1
            elif outcome.user_answer is not None:
                entry.incorrect += 1

    for entry in stats.values():
        entry.accuracy = percent(entry.correct, entry.correct + entry.incorrect)
    return sorted(stats.values(), key=lambda c: c.accuracy)


def identify_weak_chapters(chapters: Sequence[ChapterStats]) -> List[ChapterStats]:
    """Chapters under 60% with enough questions to mean something."""
    weak = [
        c
        for c in sorted(chapters, key=lambda c: c.accuracy)
        if c.accuracy < WEAK_ACCURACY_THRESHOLD
        and c.total_questions >= MIN_CHAPTER_QUESTIONS
    ]
    return weak[:MAX_LISTED_CHAPTERS]


def identify_strong_chapters(chapters: Sequence[ChapterStats]) -> List[ChapterStats]:
    strong = [
        c
        for c in chapters
        if c.accuracy > STRONG_ACCURACY_THRESHOLD
        and c.total_questions >= MIN_CHAPTER_QUESTIONS
    ]
    strong.sort(key=lambda c: c.accuracy, reverse=True)
    return strong[:MAX_LISTED_CHAPTERS]


def calculate_difficulty_stats(
    records: Sequence[ResultRecord],
) -> Dict[str, DifficultyStats]:
    stats = {level: DifficultyStats() for level in DIFFICULTY_LEVELS}
    for record in records:
        for outcome in record.question_results:
            level = (outcome.difficulty or "").strip().lower()
            entry = stats.get(level) or stats["medium"]
            entry.total += 1
            if outcome.is_correct:
                entry.correct += 1
            elif outcome.user_answer is not None:
                entry.incorrect += 1

    for entry in stats.values():
        entry.accuracy = percent(entry.correct, entry.correct + entry.incorrect)
    return stats


def calculate_performance_trend(records: Sequence[ResultRecord]) -> List[TrendPoint]:
    """The last ten results, oldest first, shaped for a chart."""
    return [
        TrendPoint(
            test_number=number,
            score=record.score,
            accuracy=percent(record.correct, record.attempted),
            date=f"{record.completed_at:%b} {record.completed_at.day}",
            full_date=record.completed_at,
        )
        for number, record in enumerate(records[-TREND_WINDOW:], 1)
    ]


def build_analysis(records: Sequence[ResultRecord]) -> PerformanceAnalysis:
    """Full analytics pass; ``records`` may arrive in any order."""
    ordered = sorted(records, key=lambda r: r.completed_at)
    chapters = calculate_chapter_stats(ordered)
    return PerformanceAnalysis(
        overall=calculate_overall_stats(ordered),
        subjects=calculate_subject_stats(ordered),
        chapters=chapters,
        weak_chapters=identify_weak_chapters(chapters),
        strong_chapters=identify_strong_chapters(chapters),
        difficulty=calculate_difficulty_stats(ordered),
        trend=calculate_performance_trend(ordered),
    )


def format_duration(seconds: int) -> str:
    """``3725`` -> ``"1h 2m"``, ``200`` -> ``"3m 20s"``, ``45`` -> ``"45s"``."""
    seconds = max(0, int(seconds))
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h {minutes}m"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def format_clock(seconds: int) -> str:
    minutes, secs = divmod(max(0, int(seconds)), 60)
    return f"{minutes:02d}:{secs:02d}"

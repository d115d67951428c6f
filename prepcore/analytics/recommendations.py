"""Study recommendations: remote model tier with a deterministic rule fallback."""

from __future__ import annotations

import logging
import math
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from ..models.schemas import (
    MAX_RECOMMENDATIONS,
    PerformanceAnalysis,
    Recommendation,
    RecommendationSet,
)
from ..provider_client import ModelUnavailableError, ProviderError, RateLimitedError
from ..util.jsonio import extract_json_array
from .stats import format_duration

_recommend_logger = logging.getLogger("prepcore.recommend")

RECOMMENDER_SYSTEM_PROMPT = """\
You are an expert educational advisor for competitive exam preparation.
Analyze the student's performance data and provide 4-5 highly personalized,
actionable recommendations.

Output ONLY a JSON array with this exact structure:
[
  {
    "title": "Brief title (max 40 chars)",
    "description": "Detailed description (2-3 sentences)",
    "priority": "High|Medium|Low",
    "actionable": "Specific action to take",
    "estimatedImpact": "Expected improvement (e.g. '+5%')"
  }
]

Requirements:
1. Each recommendation must address actual performance gaps from the data.
2. Prioritize weak chapters and difficult topics.
3. Consider performance trends and patterns.
4. Make recommendations specific and actionable.
5. Return ONLY valid JSON, no markdown or extra text.
"""

CONSISTENCY_VARIANCE_LIMIT = 15.0


def build_prompt(analysis: PerformanceAnalysis) -> str:
    """Render the student profile sent alongside the system prompt."""
    overall = analysis.overall
    lines = [
        "STUDENT DATA",
        "",
        "OVERALL:",
        f"- Total Tests Taken: {overall.total_tests}",
        f"- Average Score: {overall.average_score:.1f}%",
        f"- Overall Accuracy: {overall.average_accuracy:.1f}%",
        f"- Total Study Time: {format_duration(overall.total_time_spent)}",
        "",
        "SUBJECT-WISE BREAKDOWN:",
    ]
    for subject, stats in analysis.subjects.items():
        lines.append(
            f"- {subject}: {stats.tests_taken} tests, "
            f"avg score {stats.average_score:.1f}%, accuracy {stats.accuracy:.1f}%"
        )

    lines += ["", "WEAK CHAPTERS (< 60% accuracy):"]
    if analysis.weak_chapters:
        lines += [f"- {c.chapter}: {c.accuracy:.1f}%" for c in analysis.weak_chapters]
    else:
        lines.append("- None (student is doing well)")

    lines += ["", "STRONG CHAPTERS (> 80% accuracy):"]
    if analysis.strong_chapters:
        lines += [f"- {c.chapter}: {c.accuracy:.1f}%" for c in analysis.strong_chapters]
    else:
        lines.append("- None yet")

    lines += ["", "DIFFICULTY-WISE PERFORMANCE:"]
    for level, stats in analysis.difficulty.items():
        lines.append(
            f"- {level}: {stats.accuracy:.1f}% accuracy ({stats.correct}/{stats.total})"
        )

    lines += ["", "RECENT PERFORMANCE TREND:"]
    lines += [f"- Test {p.test_number}: {p.score}% ({p.date})" for p in analysis.trend[-5:]]
    return "\n".join(lines)


def validate_reply(raw: str) -> List[Recommendation]:
    """Parse a model reply into recommendations.

    Raises ``ValueError`` when no array can be extracted, the array is empty,
    or any element lacks title, description or priority.
    """
    strategy, items = extract_json_array(raw)
    if not items:
        raise ValueError("reply contained an empty array")
    recommendations = []
    for item in items:
        if not isinstance(item, dict):
            raise ValueError("reply element is not an object")
        try:
            recommendations.append(Recommendation.model_validate(item))
        except ValidationError as exc:
            raise ValueError(f"invalid recommendation: {exc.errors()[:1]}") from exc
    _recommend_logger.debug(
        "reply_parsed",
        extra={"event": "reply_parsed", "strategy": strategy, "count": len(items)},
    )
    return recommendations[:MAX_RECOMMENDATIONS]


def _score_spread(analysis: PerformanceAnalysis) -> Optional[float]:
    """Root-mean-square distance of the last three scores from the average."""
    if len(analysis.trend) < 3:
        return None
    average = analysis.overall.average_score
    recent = [p.score for p in analysis.trend[-3:]]
    return math.sqrt(sum((s - average) ** 2 for s in recent) / len(recent))


def generate_fallback_recommendations(
    analysis: PerformanceAnalysis,
) -> List[Recommendation]:
    """Rule-based recommendations, in fixed rule order."""
    overall = analysis.overall
    recs: List[Recommendation] = []

    if analysis.weak_chapters:
        weakest = analysis.weak_chapters[0]
        recs.append(
            Recommendation(
                title=f"Master {weakest.chapter}",
                description=(
                    f"Your accuracy in {weakest.chapter} is {weakest.accuracy:.1f}%. "
                    "Focus on understanding the core concepts and solving "
                    "practice problems."
                ),
                priority="High",
                actionable="Solve 10-15 questions from this chapter daily",
                estimated_impact="+10-15%",
            )
        )

    if analysis.difficulty:
        level, stats = min(analysis.difficulty.items(), key=lambda item: item[1].accuracy)
        if stats.accuracy < 70:
            label = level.capitalize()
            recs.append(
                Recommendation(
                    title=f"Build {label} Level Skills",
                    description=(
                        f"Your accuracy on {level} questions is {stats.accuracy:.1f}%. "
                        "Strengthen fundamentals before moving to harder problems."
                    ),
                    priority="High",
                    actionable=f"Practice 20 {level} level questions focusing on concepts",
                    estimated_impact="+8-12%",
                )
            )

    spread = _score_spread(analysis)
    if spread is not None and spread > CONSISTENCY_VARIANCE_LIMIT:
        recs.append(
            Recommendation(
                title="Improve Consistency",
                description=(
                    "Your recent scores vary significantly. Work on a steady "
                    "preparation routine and revise regularly."
                ),
                priority="High",
                actionable="Take one full-length test every 3 days and review every mistake",
                estimated_impact="+5-10%",
            )
        )

    if analysis.strong_chapters:
        strongest = analysis.strong_chapters[0]
        recs.append(
            Recommendation(
                title=f"Continue Excelling in {strongest.chapter}",
                description=(
                    f"You have {strongest.accuracy:.1f}% accuracy in "
                    f"{strongest.chapter}. Keep it sharp with periodic revision."
                ),
                priority="Medium",
                actionable="Attempt advanced problems from this chapter weekly",
                estimated_impact="Maintain +0%",
            )
        )

    if overall.average_accuracy > 75 and overall.average_score < 70:
        recs.append(
            Recommendation(
                title="Improve Speed Without Sacrificing Accuracy",
                description=(
                    "Your accuracy is good but you leave questions unattempted. "
                    "Work on time management to attempt more questions."
                ),
                priority="Medium",
                actionable="Practice timed sections and skip questions that take too long",
                estimated_impact="+5-8%",
            )
        )

    if overall.average_accuracy < 60:
        recs.append(
            Recommendation(
                title="Focus on Accuracy First",
                description=(
                    f"Your accuracy is {overall.average_accuracy:.1f}%. Slow down "
                    "and make sure you understand each question before answering."
                ),
                priority="High",
                actionable="Review the solution of every incorrect answer",
                estimated_impact="+15-20%",
            )
        )

    if overall.total_tests < 5:
        recs.append(
            Recommendation(
                title="Increase Practice Volume",
                description=(
                    f"You have taken {overall.total_tests} tests so far. More "
                    "practice builds exam temperament and reveals patterns."
                ),
                priority="Medium",
                actionable="Take at least 3 tests per week",
                estimated_impact="+5-10%",
            )
        )

    if overall.average_score >= 80 and len(recs) < 3:
        recs.append(
            Recommendation(
                title="Excellent Performance - Fine Tuning",
                description=(
                    "You are performing very well. Focus on the remaining gaps "
                    "and attempt the hardest problems available."
                ),
                priority="Medium",
                actionable="Solve previous years' hardest questions",
                estimated_impact="+2-5%",
            )
        )

    return recs[:MAX_RECOMMENDATIONS]


class RecommendationEngine:
    """Produce a ``RecommendationSet`` for an analysis; never raises.

    ``runner`` is a callable ``(model, system_prompt, user_prompt) -> str``
    with a ``models`` attribute listing candidate model ids in priority
    order. Without a runner only the rule-based tier is used.
    """

    def __init__(self, runner: Optional[Callable[..., str]] = None) -> None:
        self._runner = runner

    @property
    def models(self) -> List[str]:
        return list(getattr(self._runner, "models", []) or [])

    def service_status(self) -> Dict[str, Any]:
        configured = self._runner is not None
        return {
            "mode": "configured" if configured else "not_configured",
            "provider": getattr(self._runner, "label", "unknown") if configured else None,
            "models": len(self.models),
        }

    def _try_remote(self, analysis: PerformanceAnalysis) -> Optional[RecommendationSet]:
        prompt = build_prompt(analysis)
        last_error: Optional[Exception] = None
        for model in self.models:
            try:
                raw = self._runner(model, RECOMMENDER_SYSTEM_PROMPT, prompt)
            except (ModelUnavailableError, RateLimitedError) as exc:
                _recommend_logger.info(
                    "model_skipped",
                    extra={
                        "event": "model_skipped",
                        "model": model,
                        "reason": type(exc).__name__,
                    },
                )
                continue
            except ProviderError as exc:
                last_error = exc
                _recommend_logger.warning(
                    "model_call_failed",
                    extra={"event": "model_call_failed", "model": model, "error": str(exc)},
                )
                continue
            except Exception as exc:
                last_error = exc
                _recommend_logger.exception(
                    "model_call_error",
                    extra={"event": "model_call_error", "model": model},
                )
                continue

            try:
                items = validate_reply(raw)
            except ValueError as exc:
                _recommend_logger.warning(
                    "model_reply_rejected",
                    extra={"event": "model_reply_rejected", "model": model, "error": str(exc)},
                )
                continue
            return RecommendationSet(source="ai", items=items, model=model)

        _recommend_logger.warning(
            "remote_tier_exhausted",
            extra={
                "event": "remote_tier_exhausted",
                "models_tried": len(self.models),
                "last_error": str(last_error) if last_error else None,
            },
        )
        return None

    def generate(self, analysis: PerformanceAnalysis) -> RecommendationSet:
        if self._runner is not None:
            result = self._try_remote(analysis)
            if result is not None:
                return result
        else:
            _recommend_logger.info(
                "recommender_not_configured",
                extra={"event": "recommender_not_configured"},
            )
        return RecommendationSet(
            source="rule_based", items=generate_fallback_recommendations(analysis)
        )

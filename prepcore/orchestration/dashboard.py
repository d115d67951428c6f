"""Dashboard analytics pass with discard-on-stale publication."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from itertools import count
from typing import List, Optional

from ..analytics.recommendations import RecommendationEngine
from ..analytics.stats import build_analysis
from ..models.schemas import PerformanceAnalysis, RecommendationSet, ResultRecord
from .result_store import ResultStore

_dashboard_logger = logging.getLogger("prepcore.dashboard")


@dataclass
class DashboardView:
    """What the dashboard currently shows."""

    user_id: Optional[str] = None
    records: List[ResultRecord] = field(default_factory=list)
    analysis: PerformanceAnalysis = field(default_factory=PerformanceAnalysis)
    recommendations: Optional[RecommendationSet] = None


class DashboardAnalytics:
    """Load results, compute stats and recommendations for one user.

    Every ``refresh`` starts a new pass. A pass publishes only while it is
    the latest one and the dashboard is still open; otherwise its output is
    dropped.
    """

    def __init__(
        self,
        store: ResultStore,
        engine: RecommendationEngine,
        limit: Optional[int] = None,
    ) -> None:
        self._store = store
        self._engine = engine
        self._limit = limit
        self._passes = count(1)
        self._current_pass = 0
        self._closed = False
        self.view = DashboardView()

    @property
    def closed(self) -> bool:
        return self._closed

    def begin_pass(self) -> int:
        self._current_pass = next(self._passes)
        return self._current_pass

    def is_current(self, pass_id: int) -> bool:
        return not self._closed and pass_id == self._current_pass

    def _load(self, user_id: str) -> List[ResultRecord]:
        try:
            return self._store.list_results(user_id, limit=self._limit)
        except Exception as exc:
            _dashboard_logger.warning(
                "dashboard_load_failed",
                extra={"event": "dashboard_load_failed", "user_id": user_id, "error": str(exc)},
            )
            return []

    def refresh(self, user_id: str) -> Optional[DashboardView]:
        """Run one pass; returns the published view, or None if it went stale."""
        pass_id = self.begin_pass()
        records = self._load(user_id)
        analysis = build_analysis(records)

        if not self.is_current(pass_id):
            return self._discard(pass_id, "analysis")
        self.view = DashboardView(user_id=user_id, records=records, analysis=analysis)

        recommendations = self._engine.generate(analysis) if records else None
        if not self.is_current(pass_id):
            return self._discard(pass_id, "recommendations")
        self.view.recommendations = recommendations
        _dashboard_logger.info(
            "dashboard_published",
            extra={
                "event": "dashboard_published",
                "user_id": user_id,
                "tests": analysis.overall.total_tests,
                "source": recommendations.source if recommendations else None,
            },
        )
        return self.view

    def _discard(self, pass_id: int, stage: str) -> None:
        _dashboard_logger.info(
            "dashboard_pass_discarded",
            extra={"event": "dashboard_pass_discarded", "pass_id": pass_id, "stage": stage},
        )
        return None

    def close(self) -> None:
        self._closed = True

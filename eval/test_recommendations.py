"""RecommendationEngine: reply parsing, model fallback and rule-based tier."""

from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from types import SimpleNamespace

import httpx
import openai
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from prepcore.analytics.recommendations import (
    RecommendationEngine,
    build_prompt,
    generate_fallback_recommendations,
    validate_reply,
)
from prepcore.config import Settings
from prepcore.models.schemas import (
    ChapterStats,
    DifficultyStats,
    OverallStats,
    PerformanceAnalysis,
    SubjectStats,
    TrendPoint,
)
from prepcore.provider_client import (
    ModelUnavailableError,
    ProviderError,
    ProviderRunner,
    ProviderTimeoutError,
    RateLimitedError,
    get_provider_runner,
)
from prepcore.util.jsonio import extract_json_array

_ITEMS = [
    {
        "title": "Revisit Kinematics",
        "description": "Accuracy is low in projectile motion.",
        "priority": "High",
        "actionable": "Solve 10 projectile problems",
        "estimatedImpact": "+6%",
    },
    {
        "title": "Keep a steady pace",
        "description": "Scores dip late in tests.",
        "priority": "medium",
    },
]
_REPLY = json.dumps(_ITEMS)


def _trend(scores):
    day = datetime(2024, 2, 1, tzinfo=timezone.utc)
    return [
        TrendPoint(test_number=i, score=s, accuracy=s, date="Feb 1", full_date=day)
        for i, s in enumerate(scores, 1)
    ]


def _analysis(**overrides) -> PerformanceAnalysis:
    payload = {
        "overall": OverallStats(
            total_tests=2, average_score=50.0, average_accuracy=55.0, total_time_spent=1200
        ),
        "subjects": {"Physics": SubjectStats(tests_taken=2, average_score=50.0, accuracy=55.0)},
        "weak_chapters": [
            ChapterStats(chapter="Kinematics", total_questions=6, correct=2, incorrect=4, accuracy=33.33)
        ],
        "difficulty": {
            "easy": DifficultyStats(total=4, correct=3, incorrect=1, accuracy=75.0),
            "medium": DifficultyStats(total=3, correct=2, incorrect=1, accuracy=66.67),
            "hard": DifficultyStats(total=5, correct=2, incorrect=3, accuracy=40.0),
        },
        "trend": _trend([45.0, 55.0]),
    }
    payload.update(overrides)
    return PerformanceAnalysis(**payload)


class _FakeRunner:
    def __init__(self, replies, models=("m1", "m2", "m3")):
        self.models = list(models)
        self.label = "fake"
        self._replies = dict(replies)
        self.calls = []

    def __call__(self, model, system_prompt, user_prompt):
        self.calls.append(model)
        reply = self._replies.get(model, ModelUnavailableError(model, "404"))
        if isinstance(reply, Exception):
            raise reply
        return reply


# ── Reply parsing ──────────────────────────────────────────────────
@pytest.mark.parametrize(
    "raw, strategy",
    [
        (_REPLY, "raw"),
        (f"Here you go:\n```json\n{_REPLY}\n```", "json_fence"),
        (f"```\n{_REPLY}\n```\nGood luck!", "generic_fence"),
        (f"Sure! {_REPLY} Hope this helps.", "embedded_array"),
    ],
)
def test_reply_forms_are_extracted(raw, strategy):
    name, items = extract_json_array(raw)
    assert name == strategy
    assert items == _ITEMS


def test_reply_without_array_is_rejected():
    with pytest.raises(ValueError):
        extract_json_array("I cannot help with that.")


def test_validate_reply_normalizes_fields():
    recs = validate_reply(_REPLY)
    assert recs[0].estimated_impact == "+6%"
    assert recs[1].priority == "Medium"
    assert recs[1].actionable == ""


def test_validate_reply_requires_core_fields():
    with pytest.raises(ValueError):
        validate_reply(json.dumps([{"title": "x", "description": "y"}]))
    with pytest.raises(ValueError):
        validate_reply("[]")


def test_validate_reply_truncates_to_five():
    many = [dict(_ITEMS[0], title=f"T{i}") for i in range(8)]
    assert len(validate_reply(json.dumps(many))) == 5


# ── Remote tier ────────────────────────────────────────────────────
def test_unavailable_and_rate_limited_models_are_skipped():
    runner = _FakeRunner(
        {
            "m1": ModelUnavailableError("m1", "not found"),
            "m2": RateLimitedError("m2", "quota"),
            "m3": _REPLY,
        }
    )
    result = RecommendationEngine(runner).generate(_analysis())
    assert runner.calls == ["m1", "m2", "m3"]
    assert result.source == "ai"
    assert result.model == "m3"
    assert [r.title for r in result.items] == ["Revisit Kinematics", "Keep a steady pace"]


def test_invalid_reply_moves_to_next_model():
    runner = _FakeRunner({"m1": "no json here", "m2": _REPLY})
    result = RecommendationEngine(runner).generate(_analysis())
    assert runner.calls == ["m1", "m2"]
    assert result.model == "m2"


def test_other_failures_do_not_stop_the_loop():
    runner = _FakeRunner(
        {"m1": ProviderTimeoutError("m1", "timed out"), "m2": RuntimeError("boom"), "m3": _REPLY}
    )
    result = RecommendationEngine(runner).generate(_analysis())
    assert result.source == "ai"
    assert result.model == "m3"


def test_every_model_failing_falls_back_to_rules():
    runner = _FakeRunner({"m1": ProviderError("m1", "500"), "m2": "[]", "m3": "nope"})
    result = RecommendationEngine(runner).generate(_analysis())
    assert runner.calls == ["m1", "m2", "m3"]
    assert result.source == "rule_based"
    assert result.model is None
    assert result.items == generate_fallback_recommendations(_analysis())


def test_prompt_carries_the_student_profile():
    prompt = build_prompt(_analysis(trend=_trend([10, 20, 30, 40, 50, 60])))
    assert "Total Tests Taken: 2" in prompt
    assert "Kinematics: 33.3%" in prompt
    assert "hard: 40.0% accuracy (2/5)" in prompt
    assert "Test 1:" not in prompt
    assert "Test 6: 60.0%" in prompt


# ── No credential ──────────────────────────────────────────────────
def test_no_credential_builds_no_client(monkeypatch):
    def _boom(*args, **kwargs):
        raise AssertionError("client must not be constructed")

    monkeypatch.setattr(openai, "OpenAI", _boom)
    runner = get_provider_runner(Settings(api_key=None))
    assert runner is None

    engine = RecommendationEngine(runner)
    result = engine.generate(_analysis())
    assert result.source == "rule_based"
    assert engine.service_status() == {"mode": "not_configured", "provider": None, "models": 0}


def test_credential_builds_client_without_retries(monkeypatch):
    created = {}

    def _fake_openai(**kwargs):
        created.update(kwargs)
        return SimpleNamespace()

    monkeypatch.setattr(openai, "OpenAI", _fake_openai)
    runner = get_provider_runner(Settings(api_key="k", models=["a", "b"]))
    assert created["max_retries"] == 0
    assert created["timeout"] == 30.0
    assert runner.models == ["a", "b"]
    assert runner.label == "gemini"
    assert RecommendationEngine(runner).service_status()["models"] == 2


def _client_raising(exc):
    def create(**kwargs):
        raise exc

    return SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))


def test_provider_runner_maps_sdk_errors():
    request = httpx.Request("POST", "https://example.test/chat/completions")
    not_found = openai.NotFoundError(
        "model not found", response=httpx.Response(404, request=request), body=None
    )
    limited = openai.RateLimitError(
        "quota", response=httpx.Response(429, request=request), body=None
    )
    timeout = openai.APITimeoutError(request=request)

    with pytest.raises(ModelUnavailableError):
        ProviderRunner(client=_client_raising(not_found))("m", "s", "u")
    with pytest.raises(RateLimitedError):
        ProviderRunner(client=_client_raising(limited))("m", "s", "u")
    with pytest.raises(ProviderTimeoutError):
        ProviderRunner(client=_client_raising(timeout))("m", "s", "u")


def test_provider_runner_returns_message_text():
    response = SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=_REPLY))]
    )
    client = SimpleNamespace(
        chat=SimpleNamespace(completions=SimpleNamespace(create=lambda **kw: response))
    )
    assert ProviderRunner(client=client)("m", "s", "u") == _REPLY


# ── Rule-based tier ────────────────────────────────────────────────
def test_rules_for_a_struggling_student():
    recs = generate_fallback_recommendations(_analysis())
    assert [r.title for r in recs] == [
        "Master Kinematics",
        "Build Hard Level Skills",
        "Focus on Accuracy First",
        "Increase Practice Volume",
    ]
    assert recs[0].priority == "High"
    assert recs[0].actionable == "Solve 10-15 questions from this chapter daily"
    assert recs[1].actionable == "Practice 20 hard level questions focusing on concepts"


def test_rules_are_capped_at_five():
    analysis = _analysis(
        overall=OverallStats(total_tests=3, average_score=60.0, average_accuracy=80.0),
        strong_chapters=[ChapterStats(chapter="Optics", total_questions=5, correct=5, accuracy=100.0)],
        trend=_trend([40.0, 90.0, 40.0]),
    )
    titles = [r.title for r in generate_fallback_recommendations(analysis)]
    assert titles == [
        "Master Kinematics",
        "Build Hard Level Skills",
        "Improve Consistency",
        "Continue Excelling in Optics",
        "Improve Speed Without Sacrificing Accuracy",
    ]


def test_rules_for_a_top_student():
    analysis = _analysis(
        overall=OverallStats(total_tests=8, average_score=90.0, average_accuracy=92.0),
        weak_chapters=[],
        difficulty={"easy": DifficultyStats(total=4, correct=4, accuracy=100.0)},
        trend=_trend([88.0, 90.0, 92.0]),
    )
    recs = generate_fallback_recommendations(analysis)
    assert [r.title for r in recs] == ["Excellent Performance - Fine Tuning"]
    assert recs[0].estimated_impact == "+2-5%"


def test_unattempted_difficulty_bucket_counts_as_weakest():
    analysis = _analysis(
        difficulty={
            "easy": DifficultyStats(total=4, correct=4, accuracy=100.0),
            "medium": DifficultyStats(),
            "hard": DifficultyStats(),
        }
    )
    recs = generate_fallback_recommendations(analysis)
    level_recs = [r for r in recs if r.title.endswith("Level Skills")]
    assert [r.title for r in level_recs] == ["Build Medium Level Skills"]
    assert level_recs[0].priority == "High"
    assert "0.0%" in level_recs[0].description

"""Runtime settings read from the environment (and an optional .env file)."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()
_config_logger = logging.getLogger("prepcore.config")

DEFAULT_TEST_DURATION = 900
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"

# Tried in this order until one answers with a usable reply.
DEFAULT_MODELS = (
    "gemini-2.0-flash-exp",
    "gemini-1.5-flash",
    "gemini-2.0-flash",
    "gemini-2.0-flash-lite",
    "gemini-2.5-flash-lite",
    "gemini-pro",
    "gemini-1.0-pro",
)

RESUME_POLICIES = ("wall_clock", "restart")


def _get_env(name: str, default: Optional[str] = None) -> Optional[str]:
    val = os.environ.get(name)
    if val is None or not val.strip():
        return default
    return val.strip()


def _parse_models(raw: Optional[str]) -> List[str]:
    if not raw:
        return list(DEFAULT_MODELS)
    models = [m.strip() for m in raw.split(",") if m.strip()]
    return models or list(DEFAULT_MODELS)


def _parse_positive_float(name: str, default: float) -> float:
    raw = _get_env(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        _config_logger.warning(
            "config_invalid_number",
            extra={"event": "config_invalid_number", "setting": name, "value": raw},
        )
        return default
    return value if value > 0 else default


@dataclass
class Settings:
    api_key: Optional[str] = None
    base_url: str = DEFAULT_BASE_URL
    models: List[str] = field(default_factory=lambda: list(DEFAULT_MODELS))
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    snapshot_dir: Path = Path(".data/snapshot")
    results_dir: Path = Path(".data/results")
    resume_policy: str = "wall_clock"

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key)


def load_settings() -> Settings:
    """Build settings from the current environment."""
    policy = (_get_env("SESSION_RESUME_POLICY", "wall_clock") or "").lower()
    if policy not in RESUME_POLICIES:
        _config_logger.warning(
            "config_invalid_resume_policy",
            extra={"event": "config_invalid_resume_policy", "value": policy},
        )
        policy = "wall_clock"

    return Settings(
        api_key=_get_env("RECOMMENDER_API_KEY") or _get_env("GEMINI_API_KEY"),
        base_url=_get_env("RECOMMENDER_BASE_URL", DEFAULT_BASE_URL),
        models=_parse_models(_get_env("RECOMMENDER_MODELS")),
        timeout_seconds=_parse_positive_float(
            "RECOMMENDER_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS
        ),
        snapshot_dir=Path(_get_env("SNAPSHOT_DIR", ".data/snapshot")),
        results_dir=Path(_get_env("RESULTS_DIR", ".data/results")),
        resume_policy=policy,
    )

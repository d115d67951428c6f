"""Chat-completions wrapper for the recommendation provider.

Isolates every ``openai`` SDK call. The default endpoint is Gemini's
OpenAI-compatible surface, but any compatible base URL works.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from time import perf_counter
from typing import Any, List, Optional

from .config import DEFAULT_MODELS, DEFAULT_TIMEOUT_SECONDS, Settings

_provider_logger = logging.getLogger("prepcore.provider")


class ProviderError(RuntimeError):
    """Base class for remote call failures. Never fatal to callers."""

    def __init__(self, model: str, message: str) -> None:
        super().__init__(f"{model}: {message}")
        self.model = model


class ModelUnavailableError(ProviderError):
    pass


class RateLimitedError(ProviderError):
    pass


class ProviderTimeoutError(ProviderError):
    pass


def _short_error(exc: Exception, max_len: int = 240) -> str:
    text = " ".join(str(exc).split())
    if len(text) <= max_len:
        return text
    return f"{text[: max_len - 3].rstrip()}..."


def _extract_response_text(response: Any) -> str:
    """First choice's message text, or an empty string."""
    choices = getattr(response, "choices", None) or []
    if not choices:
        return ""
    message = getattr(choices[0], "message", None)
    content = getattr(message, "content", None)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = [
            part.get("text", "") if isinstance(part, dict) else getattr(part, "text", "")
            for part in content
        ]
        return "\n".join(p for p in parts if p)
    return ""


@dataclass
class ProviderRunner:
    """Callable ``(model, system_prompt, user_prompt) -> str``."""

    client: Any
    models: List[str] = field(default_factory=lambda: list(DEFAULT_MODELS))
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    label: str = "gemini"

    def __call__(self, model: str, system_prompt: str, user_prompt: str) -> str:
        import openai

        started = perf_counter()
        try:
            response = self.client.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=0.7,
                max_tokens=2048,
                timeout=self.timeout_seconds,
            )
        except openai.NotFoundError as exc:
            raise ModelUnavailableError(model, _short_error(exc)) from exc
        except openai.RateLimitError as exc:
            raise RateLimitedError(model, _short_error(exc)) from exc
        except openai.APITimeoutError as exc:
            raise ProviderTimeoutError(model, "request timed out") from exc
        except openai.OpenAIError as exc:
            raise ProviderError(model, _short_error(exc)) from exc

        _provider_logger.info(
            "provider_call_success",
            extra={
                "event": "provider_call_success",
                "model": model,
                "latency_ms": round((perf_counter() - started) * 1000, 2),
            },
        )
        return _extract_response_text(response)


def get_provider_runner(settings: Settings) -> Optional[ProviderRunner]:
    """Return a runner, or None when no credential is configured.

    Without a key no client is constructed, so nothing touches the network.
    """
    if not settings.has_credentials:
        _provider_logger.info(
            "provider_not_configured",
            extra={"event": "provider_not_configured"},
        )
        return None

    from openai import OpenAI

    client = OpenAI(
        api_key=settings.api_key,
        base_url=settings.base_url,
        timeout=settings.timeout_seconds,
        max_retries=0,
    )
    label = "gemini" if "googleapis.com" in settings.base_url else "openai-compatible"
    return ProviderRunner(
        client=client,
        models=list(settings.models),
        timeout_seconds=settings.timeout_seconds,
        label=label,
    )

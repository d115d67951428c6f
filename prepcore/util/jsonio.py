"""Defensive JSON extraction from model replies."""

from __future__ import annotations

import json
import re
from typing import Any, Callable, List, Optional, Sequence, Tuple

_JSON_FENCE_RE = re.compile(r"```json\s*([\s\S]*?)\s*```")
_GENERIC_FENCE_RE = re.compile(r"```\s*([\s\S]*?)\s*```")
_ARRAY_RE = re.compile(r"\[\s*\{[\s\S]*\}\s*\]")


def _try_array(text: str) -> Optional[List[Any]]:
    try:
        parsed = json.loads(text.strip())
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, list) else None


def _from_raw(raw: str) -> Optional[List[Any]]:
    return _try_array(raw)


def _from_json_fence(raw: str) -> Optional[List[Any]]:
    match = _JSON_FENCE_RE.search(raw)
    return _try_array(match.group(1)) if match else None


def _from_generic_fence(raw: str) -> Optional[List[Any]]:
    match = _GENERIC_FENCE_RE.search(raw)
    return _try_array(match.group(1)) if match else None


def _from_embedded_array(raw: str) -> Optional[List[Any]]:
    match = _ARRAY_RE.search(raw)
    return _try_array(match.group(0)) if match else None


ARRAY_STRATEGIES: Sequence[Tuple[str, Callable[[str], Optional[List[Any]]]]] = (
    ("raw", _from_raw),
    ("json_fence", _from_json_fence),
    ("generic_fence", _from_generic_fence),
    ("embedded_array", _from_embedded_array),
)


def extract_json_array(raw: str) -> Tuple[str, List[Any]]:
    """Extract the first JSON array from a possibly-noisy model reply.

    Strategies are tried in order: the whole text, a ```json fence, a
    generic ``` fence, then a bare ``[{...}]`` substring. Returns the name of
    the strategy that matched together with the parsed list.
    Raises ``ValueError`` if no strategy yields an array.
    """
    text = (raw or "").strip()
    for name, strategy in ARRAY_STRATEGIES:
        parsed = strategy(text)
        if parsed is not None:
            return name, parsed
    raise ValueError(f"Could not extract JSON array from reply: {text[:200]}")

"""Durable local snapshot of an in-progress session, for reload recovery."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Protocol

from pydantic import ValidationError

from ..models.schemas import TestConfiguration
from ..models.state import SessionState

SNAPSHOT_KEYS = ("config", "answers", "marked", "progress")

_snapshot_logger = logging.getLogger("prepcore.snapshot")


def _sanitize_key(key: str) -> str:
    cleaned = re.sub(r"[^A-Za-z0-9._-]+", "_", key.strip())
    cleaned = cleaned.strip("._")
    return cleaned or "default"


class SnapshotStore(Protocol):
    """String key/value store that survives a reload."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class MemorySnapshotStore:
    def __init__(self) -> None:
        self.values: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self.values.get(key)

    def set(self, key: str, value: str) -> None:
        self.values[key] = value

    def delete(self, key: str) -> None:
        self.values.pop(key, None)


class LocalSnapshotStore:
    """One file per key under ``<directory>/<namespace>/``."""

    def __init__(self, directory: Path, namespace: str = "default") -> None:
        self._dir = Path(directory) / _sanitize_key(namespace)

    def _path(self, key: str) -> Path:
        return self._dir / f"{_sanitize_key(key)}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            return None

    def set(self, key: str, value: str) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)
        self._path(key).write_text(value, encoding="utf-8")

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


@dataclass
class RestoredSession:
    answers: Dict[int, str] = field(default_factory=dict)
    marked: List[int] = field(default_factory=list)
    current_index: int = 0
    integrity_incidents: int = 0
    started_at: Optional[float] = None


class SessionSnapshot:
    """The one serialize/deserialize boundary for session progress.

    Writes are fire-and-forget: a failing store is logged and ignored so the
    session itself keeps going.
    """

    def __init__(self, store: SnapshotStore) -> None:
        self._store = store
        self._started_at: Optional[float] = None

    def begin(self, config: TestConfiguration, started_at: float) -> None:
        self._started_at = started_at
        self._write("config", config.model_dump_json())

    def persist(self, state: SessionState) -> None:
        self._write(
            "answers",
            json.dumps({str(i): option for i, option in sorted(state.answers.items())}),
        )
        self._write("marked", json.dumps(sorted(state.marked)))
        self._write(
            "progress",
            json.dumps(
                {
                    "current_index": state.current_index,
                    "remaining_seconds": state.remaining_seconds,
                    "integrity_incidents": state.integrity_incidents,
                    "started_at": self._started_at,
                }
            ),
        )

    def restore(
        self, config: TestConfiguration, question_count: int
    ) -> Optional[RestoredSession]:
        """Return saved progress for ``config``, or None to start fresh."""
        raw_config = self._store.get("config")
        if raw_config is None:
            if self._store.get("answers") is not None:
                self.clear()
            return None

        try:
            saved_config = TestConfiguration.model_validate_json(raw_config)
        except (ValidationError, ValueError):
            _snapshot_logger.warning(
                "snapshot_config_corrupt", extra={"event": "snapshot_config_corrupt"}
            )
            self.clear()
            return None
        if saved_config != config:
            _snapshot_logger.info(
                "snapshot_config_mismatch", extra={"event": "snapshot_config_mismatch"}
            )
            self.clear()
            return None

        try:
            answers_raw = json.loads(self._store.get("answers") or "{}")
            marked_raw = json.loads(self._store.get("marked") or "[]")
            progress = json.loads(self._store.get("progress") or "{}")
            answers = {int(k): str(v) for k, v in dict(answers_raw).items()}
            marked = [int(i) for i in list(marked_raw)]
            started_at = progress.get("started_at")
            restored = RestoredSession(
                answers={i: v for i, v in answers.items() if 0 <= i < question_count},
                marked=[i for i in marked if 0 <= i < question_count],
                current_index=int(progress.get("current_index", 0)),
                integrity_incidents=max(0, int(progress.get("integrity_incidents", 0))),
                started_at=float(started_at) if started_at is not None else None,
            )
        except (json.JSONDecodeError, TypeError, ValueError, AttributeError):
            _snapshot_logger.warning(
                "snapshot_payload_corrupt", extra={"event": "snapshot_payload_corrupt"}
            )
            self.clear()
            return None

        _snapshot_logger.info(
            "snapshot_restored",
            extra={
                "event": "snapshot_restored",
                "answers": len(restored.answers),
                "marked": len(restored.marked),
            },
        )
        return restored

    def clear(self) -> None:
        for key in SNAPSHOT_KEYS:
            try:
                self._store.delete(key)
            except OSError as exc:
                _snapshot_logger.warning(
                    "snapshot_clear_failed",
                    extra={"event": "snapshot_clear_failed", "key": key, "error": str(exc)},
                )

    def _write(self, key: str, value: str) -> None:
        try:
            self._store.set(key, value)
        except OSError as exc:
            _snapshot_logger.warning(
                "snapshot_write_failed",
                extra={"event": "snapshot_write_failed", "key": key, "error": str(exc)},
            )

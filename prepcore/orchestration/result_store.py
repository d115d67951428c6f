"""Result and profile persistence for finalized sessions."""

from __future__ import annotations

import json
import logging
import re
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol
from uuid import uuid4

from pydantic import ValidationError

from ..models.schemas import ResultRecord
from ..models.state import UserProfile

_store_logger = logging.getLogger("prepcore.store")


def _sanitize_user_id(user_id: str) -> str:
    cleaned = re.sub(r"[^A-Za-z0-9._-]+", "_", user_id.strip())
    cleaned = cleaned.strip("._")
    return cleaned or "default"


def _new_result_id() -> str:
    return f"test_{int(time.time() * 1000)}_{uuid4().hex[:9]}"


def _merge_patch(base: Dict[str, Any], patch: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = {**merged[key], **value}
        else:
            merged[key] = value
    return merged


class ResultStore(Protocol):
    """Durable store for results and profiles. Every call may fail."""

    def save_result(self, user_id: str, record: ResultRecord) -> str:
        ...

    def list_results(
        self, user_id: str, limit: Optional[int] = None
    ) -> List[ResultRecord]:
        ...

    def get_profile(self, user_id: str) -> Optional[UserProfile]:
        ...

    def upsert_profile(self, user_id: str, patch: Dict[str, Any]) -> UserProfile:
        ...


class LocalResultStore:
    """One JSON document per user under ``RESULTS_DIR``."""

    def __init__(self, directory: Path) -> None:
        self._dir = Path(directory)

    def _path(self, user_id: str) -> Path:
        return self._dir / f"{_sanitize_user_id(user_id)}.json"

    def _load_doc(self, user_id: str) -> Dict[str, Any]:
        path = self._path(user_id)
        if not path.exists():
            return {}
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError, UnicodeDecodeError):
            _store_logger.warning(
                "result_doc_unreadable",
                extra={"event": "result_doc_unreadable", "path": str(path)},
            )
            return {}
        return data if isinstance(data, dict) else {}

    def _save_doc(self, user_id: str, doc: Dict[str, Any]) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)
        self._path(user_id).write_text(
            json.dumps(doc, indent=2, ensure_ascii=False), encoding="utf-8"
        )

    def _profile_from_doc(self, user_id: str, doc: Dict[str, Any]) -> Optional[UserProfile]:
        raw = doc.get("profile")
        if not raw:
            return None
        try:
            return UserProfile.model_validate(raw)
        except ValidationError:
            return UserProfile(user_id=user_id)

    def save_result(self, user_id: str, record: ResultRecord) -> str:
        doc = self._load_doc(user_id)
        result_id = _new_result_id()
        entries = doc.setdefault("results", [])
        entries.append({"result_id": result_id, "record": record.model_dump(mode="json")})

        profile = self._profile_from_doc(user_id, doc)
        if profile is not None:
            profile.update_from_result(record)
            doc["profile"] = profile.model_dump(mode="json")

        self._save_doc(user_id, doc)
        _store_logger.info(
            "result_saved",
            extra={"event": "result_saved", "result_id": result_id, "score": record.score},
        )
        return result_id

    def list_results(
        self, user_id: str, limit: Optional[int] = None
    ) -> List[ResultRecord]:
        """Results newest first, optionally capped to ``limit``."""
        records: List[ResultRecord] = []
        for entry in self._load_doc(user_id).get("results", []):
            try:
                records.append(ResultRecord.model_validate(entry.get("record", {})))
            except (ValidationError, AttributeError):
                _store_logger.warning(
                    "result_entry_invalid",
                    extra={"event": "result_entry_invalid"},
                )
        records.sort(key=lambda r: r.completed_at, reverse=True)
        if limit is not None:
            records = records[: max(0, limit)]
        return records

    def get_profile(self, user_id: str) -> Optional[UserProfile]:
        return self._profile_from_doc(user_id, self._load_doc(user_id))

    def upsert_profile(self, user_id: str, patch: Dict[str, Any]) -> UserProfile:
        doc = self._load_doc(user_id)
        current = self._profile_from_doc(user_id, doc) or UserProfile(user_id=user_id)
        merged = _merge_patch(current.model_dump(mode="json"), patch)
        merged["user_id"] = user_id
        profile = UserProfile.model_validate(merged)
        doc["profile"] = profile.model_dump(mode="json")
        self._save_doc(user_id, doc)
        return profile

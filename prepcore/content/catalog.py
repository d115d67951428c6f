"""Read-only subject catalog and question bank."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from ..models.schemas import Question

DATA_DIR = Path(__file__).resolve().parent.parent / "data"
DEFAULT_CATALOG_PATH = DATA_DIR / "catalog.json"
DEFAULT_QUESTIONS_PATH = DATA_DIR / "questions.json"


def _read_json(path: Path) -> Any:
    return json.loads(Path(path).read_text(encoding="utf-8"))


class QuestionBank:
    """Questions keyed by subject: ``{subject: [{question, options, ...}]}``."""

    def __init__(self, by_subject: Dict[str, List[Question]]) -> None:
        self._by_subject = by_subject
        self._index = {name.lower(): name for name in by_subject}

    @classmethod
    def load(cls, path: Path = DEFAULT_QUESTIONS_PATH) -> "QuestionBank":
        raw = _read_json(path)
        by_subject: Dict[str, List[Question]] = {}
        for subject, entries in raw.items():
            questions = []
            for position, entry in enumerate(entries, 1):
                payload = dict(entry)
                payload.setdefault("id", f"{subject.lower()}-{position}")
                questions.append(Question.model_validate(payload))
            by_subject[subject] = questions
        return cls(by_subject)

    @property
    def subjects(self) -> List[str]:
        return list(self._by_subject)

    def questions_for(self, subject: str) -> List[Question]:
        name = self._index.get(subject.strip().lower())
        return list(self._by_subject.get(name, [])) if name else []


class Catalog:
    """Subjects -> subcategories -> chapters."""

    def __init__(self, subjects: List[Dict[str, Any]]) -> None:
        self._subjects = subjects

    @classmethod
    def load(cls, path: Path = DEFAULT_CATALOG_PATH) -> "Catalog":
        return cls(list(_read_json(path)))

    def _find(self, subject: str) -> Optional[Dict[str, Any]]:
        wanted = subject.strip().lower()
        return next(
            (s for s in self._subjects if str(s.get("name", "")).lower() == wanted),
            None,
        )

    @property
    def subjects(self) -> List[str]:
        return [s["name"] for s in self._subjects]

    def subcategories(self, subject: str) -> List[str]:
        entry = self._find(subject) or {}
        return [sc["name"] for sc in entry.get("subcategories", [])]

    def chapters_for(
        self, subject: str, subcategories: Optional[Iterable[str]] = None
    ) -> List[str]:
        """All chapters of ``subject``, or only those under ``subcategories``."""
        entry = self._find(subject) or {}
        wanted = set(subcategories) if subcategories else None
        chapters: List[str] = []
        for sub in entry.get("subcategories", []):
            if wanted is not None and sub["name"] not in wanted:
                continue
            chapters.extend(ch for ch in sub.get("chapters", []) if ch not in chapters)
        return chapters

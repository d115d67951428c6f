"""Log output for the prepcore CLI.

Loggers across the package emit event-style records
(``extra={"event": ...}``). This module installs one stderr handler that
renders them as JSON lines, or as plain text when ``APP_LOG_FORMAT=text``,
so log output never interleaves with the rich console on stdout.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone

from .context import current_session_fields

_CONFIGURED_FLAG = "_prepcore_logging_configured"

# Attributes every LogRecord has; anything else came in through ``extra``.
_STANDARD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__
) | {"message", "asctime"}


class _SessionContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in current_session_fields().items():
            if getattr(record, key, None) is None:
                setattr(record, key, value)
        return True


class _JsonFormatter(logging.Formatter):
    """One JSON object per line; session fields lead, other extras follow."""

    _leading = ("event", "session_id", "user_id", "model")

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        extras = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _STANDARD_ATTRS and not key.startswith("_") and value is not None
        }
        for key in self._leading:
            if key in extras:
                payload[key] = extras.pop(key)
        payload.update(extras)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(stream=None) -> None:
    """Install the handler on the root logger; later calls are no-ops."""
    root = logging.getLogger()
    if getattr(root, _CONFIGURED_FLAG, False):
        return

    level = getattr(logging, os.environ.get("APP_LOG_LEVEL", "WARNING").upper(), None)
    if not isinstance(level, int):
        level = logging.WARNING
    text_mode = os.environ.get("APP_LOG_FORMAT", "json").strip().lower() == "text"

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.addFilter(_SessionContextFilter())
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
        if text_mode
        else _JsonFormatter()
    )

    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # openai's transport logs every request at INFO.
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))

    setattr(root, _CONFIGURED_FLAG, True)

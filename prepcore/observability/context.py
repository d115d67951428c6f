"""Which practice session (and which student) the current log lines belong to.

The CLI binds a session for the duration of one test; the logging filter in
``logging_setup`` copies whatever is bound onto every record.
"""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Dict, Iterator, Optional

_session_ctx: ContextVar[Optional[Dict[str, str]]] = ContextVar(
    "prepcore_session",
    default=None,
)


@contextmanager
def bound_session(session_id: str, user_id: Optional[str] = None) -> Iterator[None]:
    fields = {"session_id": session_id}
    if user_id:
        fields["user_id"] = user_id
    token = _session_ctx.set(fields)
    try:
        yield
    finally:
        _session_ctx.reset(token)


def current_session_fields() -> Dict[str, str]:
    return dict(_session_ctx.get() or {})

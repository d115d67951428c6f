"""Errors raised by the session API on caller misuse."""

from __future__ import annotations


class SessionError(RuntimeError):
    """Base class for session lifecycle errors."""


class InvalidTransitionError(SessionError):
    """The requested action is not valid in the session's current phase."""


class SessionClosedError(SessionError):
    """The session was finalized or torn down; no further actions apply."""


class EmptyQuestionPoolError(SessionError):
    """The subject has no questions at all, filtered or not."""


class InvalidOptionError(ValueError):
    """The chosen option is not one of the question's options."""

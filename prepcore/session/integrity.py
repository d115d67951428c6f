"""Counts focus-loss incidents and raises warning / violation signals."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from ..models.schemas import IntegrityReport

INCIDENT_THRESHOLD = 5
VIOLATION_GRACE_SECONDS = 10.0

_integrity_logger = logging.getLogger("prepcore.integrity")


class IntegrityMonitor:
    """Observes visibility and full-screen changes during a session.

    The monitor never ends a session; it only reports. Incidents below the
    threshold raise ``on_warning(count)``; reaching the threshold sets
    ``cheat_detected`` and raises ``on_violation(count, grace_seconds)`` once.
    """

    def __init__(
        self,
        on_warning: Optional[Callable[[int], None]] = None,
        on_violation: Optional[Callable[[int, float], None]] = None,
        *,
        threshold: int = INCIDENT_THRESHOLD,
        grace_seconds: float = VIOLATION_GRACE_SECONDS,
        initial_incidents: int = 0,
    ) -> None:
        if threshold < 1:
            raise ValueError("threshold must be >= 1")
        self._on_warning = on_warning
        self._on_violation = on_violation
        self._threshold = threshold
        self._grace_seconds = grace_seconds
        self._incidents = max(0, initial_incidents)
        self._cheat_detected = self._incidents >= threshold
        self._fullscreen = False
        self._fullscreen_exits = 0
        self._armed = True

    @property
    def incidents(self) -> int:
        return self._incidents

    @property
    def cheat_detected(self) -> bool:
        return self._cheat_detected

    @property
    def fullscreen(self) -> bool:
        return self._fullscreen

    @property
    def grace_seconds(self) -> float:
        return self._grace_seconds

    def on_visibility_lost(self) -> int:
        """Record one incident; returns the running count."""
        if not self._armed:
            return self._incidents
        self._incidents += 1
        _integrity_logger.info(
            "integrity_incident",
            extra={"event": "integrity_incident", "incidents": self._incidents},
        )
        if self._incidents >= self._threshold:
            if not self._cheat_detected:
                self._cheat_detected = True
                _integrity_logger.warning(
                    "integrity_violation",
                    extra={
                        "event": "integrity_violation",
                        "incidents": self._incidents,
                        "grace_seconds": self._grace_seconds,
                    },
                )
                if self._on_violation is not None:
                    self._on_violation(self._incidents, self._grace_seconds)
        elif self._on_warning is not None:
            self._on_warning(self._incidents)
        return self._incidents

    def on_fullscreen_change(self, active: bool) -> None:
        if not self._armed:
            return
        if self._fullscreen and not active:
            self._fullscreen_exits += 1
        self._fullscreen = bool(active)

    def disarm(self) -> None:
        self._armed = False

    def report(self) -> IntegrityReport:
        return IntegrityReport(
            incidents=self._incidents,
            fullscreen_exits=self._fullscreen_exits,
            cheat_detected=self._cheat_detected,
        )

"""Percentage rounding shared by result compilation and analytics."""

from __future__ import annotations

import math


def round_percent(value: float) -> float:
    """Round half-up to two decimals, applied once when a figure is published."""
    return math.floor(value * 100 + 0.5) / 100


def percent(part: float, whole: float) -> float:
    """``part / whole * 100`` rounded to two decimals; 0 when whole is 0."""
    if whole <= 0:
        return 0.0
    return round_percent(part / whole * 100)

"""Rounding helpers for derived scores."""

from __future__ import annotations

import math


def round_half_up(value: float) -> int:
    """Round .5 away from zero (Python's round() is banker's rounding)."""
    if value < 0:
        return -math.floor(-value + 0.5)
    return math.floor(value + 0.5)


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    """Bound value to [low, high]."""
    return max(low, min(high, value))

"""
Rounding helpers shared by the pricing and metrics code.

Python's built-in ``round`` uses banker's rounding; every rate and price in
this project rounds halves up instead (12.5 -> 13, 22.5 -> 23).
"""

from __future__ import annotations

import math
from typing import Iterable, Union

Number = Union[int, float]


def round_half_up(value: Number) -> int:
    """Round to the nearest integer, halves towards positive infinity."""
    return int(math.floor(value + 0.5))


def round_to_step(value: Number, step: int) -> int:
    """Round to the nearest multiple of ``step`` (halves up)."""
    return round_half_up(value / step) * step


def percent(part: Number, whole: Number, *, default: int = 0) -> int:
    """Integer percentage of ``part`` in ``whole``; ``default`` when whole is 0."""
    if not whole:
        return default
    return round_half_up(part / whole * 100)


def mean(values: Iterable[Number]) -> float:
    """Arithmetic mean, 0.0 for an empty iterable."""
    items = list(values)
    if not items:
        return 0.0
    return sum(items) / len(items)


def reduction_percent(original: Number | None, final: Number | None) -> int | None:
    """
    Percent by which ``final`` undercuts ``original``.

    None unless both prices are present (non-zero) and ``final`` is strictly lower.
    """
    if not original or not final or final >= original:
        return None
    return round_half_up((original - final) / original * 100)

"""Rounding and clamping shared by the scoring engines."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero.

    The value is first rounded to 9 decimals so binary float noise such as
    ``56.49999999999999`` resolves to its intended decimal.
    """
    return int(Decimal(str(round(value, 9))).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def clamp_score(value: float) -> int:
    """Half-up rounded score clamped to 0-100."""
    return max(0, min(100, round_half_up(value)))


def clamp_float(value: float, lo: float = 0.0, hi: float = 100.0) -> float:
    return max(lo, min(hi, value))

"""
Adherence calculations.

Pure functions over dose counters; no side effects and no error conditions.
"""

from typing import Iterable

EXCELLENT_THRESHOLD = 0.9
GOOD_THRESHOLD = 0.8
FAIR_THRESHOLD = 0.7


def adherence_rate(doses_taken: int, doses_missed: int) -> float:
    """Fraction of recorded doses that were taken, 0.0 when nothing is recorded."""
    total = doses_taken + doses_missed
    if total == 0:
        return 0.0
    return doses_taken / total


def adherence_percentage(rate: float) -> str:
    return "%.1f%%" % (rate * 100)


def adherence_status(rate: float) -> str:
    # Band boundaries are inclusive
    if rate >= EXCELLENT_THRESHOLD:
        return "Excellent"
    if rate >= GOOD_THRESHOLD:
        return "Good"
    if rate >= FAIR_THRESHOLD:
        return "Fair"
    return "Poor"


def is_poor(rate: float) -> bool:
    return rate < FAIR_THRESHOLD


def is_excellent(rate: float) -> bool:
    return rate >= EXCELLENT_THRESHOLD


def overall_adherence(rates: Iterable[float]) -> float:
    """Unweighted mean of per-medication rates, 0.0 for an empty collection."""
    rates = list(rates)
    if not rates:
        return 0.0
    return sum(rates) / len(rates)

"""
Aggregation primitives shared by the domain calculators.

Every ratio goes through safe_div / pct so a zero or missing denominator
resolves to 0 instead of raising or producing NaN/inf.
"""

import math
from collections import defaultdict
from typing import Callable, Iterable, Optional, TypeVar

T = TypeVar("T")


# ── Helper functions ──────────────────────────────────────────────────────────

def safe_div(numerator, denominator, default: float = 0.0) -> float:
    if numerator is None or denominator is None:
        return default
    if denominator == 0:
        return default
    result = numerator / denominator
    return result if math.isfinite(result) else default


def pct(numerator, denominator, default: float = 0.0) -> float:
    if numerator is None or denominator is None or denominator == 0:
        return default
    return safe_div(numerator, denominator) * 100


def round_half_up(value: float) -> int:
    """Round .5 towards +inf, matching spreadsheet/JS rounding rather than banker's rounding."""
    return int(math.floor(value + 0.5))


def round_to(value: float, digits: int) -> float:
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def is_finite(value) -> bool:
    return value is not None and math.isfinite(value)


# ── Grouping ──────────────────────────────────────────────────────────────────

def group_by(records: Iterable[T], key: Callable[[T], str], skip_empty: bool = True) -> dict[str, list[T]]:
    """Group records by key() preserving first-seen order; empty keys are dropped unless skip_empty=False."""
    groups: dict[str, list[T]] = {}
    for r in records:
        k = key(r)
        if skip_empty and not k:
            continue
        groups.setdefault(k, []).append(r)
    return groups


def sum_field(records: Iterable[T], value: Callable[[T], Optional[float]]) -> float:
    return sum((value(r) or 0) for r in records)


def sum_by(records: Iterable[T], key: Callable[[T], str], value: Callable[[T], float],
           skip_empty: bool = True) -> dict[str, float]:
    totals: dict[str, float] = defaultdict(float)
    for r in records:
        k = key(r)
        if skip_empty and not k:
            continue
        totals[k] += value(r) or 0
    return dict(totals)


def weighted_margin(records: Iterable[T], profit: Callable[[T], float], sales: Callable[[T], float]) -> float:
    """Σprofit / Σsales × 100: the sales-weighted average margin, not the mean of per-row margins."""
    records = list(records)
    return pct(sum_field(records, profit), sum_field(records, sales))


def mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0

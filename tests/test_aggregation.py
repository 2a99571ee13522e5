import math

import pytest

from erpsight.metrics.aggregation import (
    clamp, group_by, is_finite, mean, pct, round_half_up, round_to, safe_div, sum_by, sum_field, weighted_margin,
)


def test_division_guards():
    assert safe_div(1, 4) == 0.25
    assert safe_div(1, 0) == 0.0
    assert safe_div(None, 2) == 0.0
    assert safe_div(1, 0, default=-1) == -1
    assert safe_div(math.inf, 1) == 0.0
    assert pct(1, 4) == 25.0
    assert pct(5, 0) == 0.0


def test_rounding():
    assert round_half_up(2.5) == 3
    assert round_half_up(-2.5) == -2
    assert round_half_up(2.49) == 2
    assert round_to(1.2345, 2) == pytest.approx(1.23)
    assert clamp(5, 0, 3) == 3
    assert clamp(-1, 0, 3) == 0


def test_is_finite():
    assert is_finite(1.0)
    assert not is_finite(None)
    assert not is_finite(math.inf)
    assert not is_finite(math.nan)


ROWS = [("a", 10, 100), ("", 99, 100), ("b", 30, 100), ("a", -5, 0), ("b", None, 50)]


def test_group_by_keeps_first_seen_order():
    groups = group_by(ROWS, key=lambda r: r[0])
    assert list(groups) == ["a", "b"]
    assert len(groups["a"]) == 2
    assert "" in group_by(ROWS, key=lambda r: r[0], skip_empty=False)


def test_sums_treat_missing_values_as_zero():
    assert sum_field(ROWS, lambda r: r[1]) == 134
    assert sum_by(ROWS, lambda r: r[0], lambda r: r[1]) == {"a": 5, "b": 30}


def test_weighted_margin_is_not_a_mean_of_ratios():
    rows = [(10, 100), (30, 100), (-5, 0)]
    assert weighted_margin(rows, profit=lambda r: r[0], sales=lambda r: r[1]) == pytest.approx(17.5)
    assert weighted_margin([], profit=lambda r: r[0], sales=lambda r: r[1]) == 0.0


def test_mean():
    assert mean([1, 2, 3]) == 2
    assert mean([]) == 0.0

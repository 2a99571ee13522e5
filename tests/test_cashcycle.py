import math

import pytest

from erpsight.metrics.cashcycle import (
    DSOMetric, calc_ccc_analysis, calc_ccc_by_org, calc_dso, calc_dso_by_org, calc_dso_trend,
    calc_overall_dso, classify_ccc, classify_dso, estimate_dpo, estimate_dpo_by_org,
)


@pytest.fixture
def receivables(make_aging):
    return [make_aging("C1", org="A", month1=300), make_aging("C2", org="B", month1=100)]


@pytest.fixture
def sales(make_sale):
    return [
        make_sale(100, "2024-01-10", org="A"),
        make_sale(200, "2024-02-10", org="A"),
        make_sale(100, "2024-01-20", org="C"),
    ]


def test_calc_dso_sentinel():
    assert calc_dso(100, 0) == math.inf
    assert calc_dso(0, 0) == 0
    assert calc_dso(300, 150) == 60


def test_dso_by_org_drops_unmeasurable_orgs(receivables, sales):
    result = calc_dso_by_org(receivables, sales)
    assert [m.org for m in result] == ["C", "A"]
    a = result[1]
    assert a.dso == 60
    assert a.avg_monthly_sales == pytest.approx(150)
    assert a.classification == "fair"
    assert all(math.isfinite(m.dso) for m in result)


def test_overall_dso(receivables, sales):
    assert calc_overall_dso(receivables, sales) == 60


@pytest.mark.parametrize("dso, expected", [
    (10, "excellent"), (30, "good"), (45, "good"), (46, "fair"), (60, "fair"), (61, "poor"), (math.inf, "poor"),
])
def test_classify_dso(dso, expected):
    assert classify_dso(dso) == expected


def test_dso_trend_is_synthetic(make_aging, make_sale):
    points = calc_dso_trend(
        [make_aging(month1=300)],
        [make_sale(100, "2024-01-10"), make_sale(200, "2024-02-10")],
    )
    assert [(p.month, p.dso) for p in points] == [("2024-01", 60), ("2024-02", 80)]
    assert all(p.is_synthetic for p in points)
    assert calc_dso_trend([], [make_sale(1)]) == []


@pytest.mark.parametrize("cost, expected", [(850, 45), (700, 35), (500, 30), (0, 0)])
def test_estimate_dpo_tiers(make_team, cost, expected):
    assert estimate_dpo([make_team(sales=1000, cost=cost)]) == expected


def test_estimate_dpo_empty():
    assert estimate_dpo([]) == 0


def test_dpo_by_org_skips_blank_org(make_team):
    result = estimate_dpo_by_org([make_team("A", sales=1000, cost=900), make_team("", sales=1, cost=1)])
    assert result == {"A": 45}


@pytest.mark.parametrize("ccc, expected", [(-5, "excellent"), (0, "good"), (30, "good"), (60, "fair"), (61, "poor")])
def test_classify_ccc(ccc, expected):
    assert classify_ccc(ccc) == expected


def test_ccc_by_org_matches_team_names_fuzzily(make_team):
    metrics = [DSOMetric("A", 60, 300, 150, "fair"), DSOMetric("B팀", 100, 100, 30, "poor")]
    team = [make_team("A", sales=1000, cost=850), make_team("B", sales=1000, cost=100)]

    result = calc_ccc_by_org(metrics, team)

    by_org = {m.org: m for m in result}
    assert by_org["A"].dpo == 45
    assert by_org["A"].ccc == 15
    assert by_org["A"].classification == "good"
    assert "DSO(60일)" in by_org["A"].recommendation
    assert by_org["B팀"].dpo == 30
    assert by_org["B팀"].classification == "poor"
    assert [m.org for m in result] == ["A", "B팀"]

    analysis = calc_ccc_analysis(result)
    assert analysis.avg_ccc == 43
    assert analysis.avg_dso == 80
    assert analysis.avg_dpo == 38


def test_ccc_analysis_empty():
    analysis = calc_ccc_analysis([])
    assert analysis.avg_ccc == 0
    assert analysis.metrics == []

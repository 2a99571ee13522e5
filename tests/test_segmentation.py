import pytest

from erpsight.metrics.customer_profit import interpret_hhi_points
from erpsight.metrics.segmentation import (
    calc_customer_hhi, calc_overall_hhi, calc_pareto_analysis, calc_product_group_analysis, calc_rfm_scores,
    calc_rfm_segment_summary, calc_sales_pareto, classify_rfm_segment, get_segment_action, pareto_analysis,
    predict_churn,
)
from erpsight.records.models import PlanActualDiff


# ── Pareto ────────────────────────────────────────────────────────────────────

def test_pareto_grade_boundaries_are_inclusive():
    items = pareto_analysis([("c", "c", 5), ("a", "a", 80), ("b", "b", 15)])
    assert [(i.code, i.grade) for i in items] == [("a", "A"), ("b", "B"), ("c", "C")]
    assert items[1].cum_share == pytest.approx(95.0)
    assert items[2].cum_share == pytest.approx(100.0)


def test_pareto_negative_values_use_absolute_share():
    items = pareto_analysis([("a", "a", 90), ("b", "b", -10)])
    assert items[0].grade == "B"
    assert items[1].share == pytest.approx(10.0)
    assert items[1].cum_share == pytest.approx(100.0)


def test_pareto_zero_total_grades_everything_c():
    items = pareto_analysis([("a", "a", 0), ("b", "b", 0)])
    assert {i.grade for i in items} == {"C"}


def test_pareto_over_detail_rows(make_profit_row):
    rows = [
        make_profit_row("C1", "P1", sales=(0, 70), customer_name="일번"),
        make_profit_row("C1", "P2", sales=(0, 20), customer_name="일번"),
        make_profit_row("C2", "P2", sales=(0, 10)),
        make_profit_row("", "P3", sales=(0, 999)),
    ]
    customers = calc_pareto_analysis(rows, "customer")
    assert [(c.code, c.name, c.value) for c in customers] == [("C1", "일번", 90), ("C2", "C2", 10)]
    products = calc_pareto_analysis(rows, "product")
    assert products[0].code == "P3"


def test_sales_pareto_by_customer(make_sale):
    items = calc_sales_pareto([make_sale(30, customer="C1"), make_sale(70, customer="C2")])
    assert [i.code for i in items] == ["C2", "C1"]
    assert items[0].name == "C2 상사"


def test_product_group_analysis(make_profit_row):
    rows = [
        make_profit_row("C1", "P1", sales=(100, 100), gp=(0, 30), product_group="밸브",
                        export_sales=PlanActualDiff(0, 40, 40)),
        make_profit_row("C2", "P2", sales=(0, 100), gp=(0, 10), product_group="밸브"),
        make_profit_row("C3", "P3", sales=(0, 50)),
    ]
    result = calc_product_group_analysis(rows)
    assert [g.group for g in result] == ["밸브", "(미분류)"]
    valve = result[0]
    assert valve.gross_margin == pytest.approx(20.0)
    assert valve.export_ratio == pytest.approx(20.0)
    assert valve.product_count == 2
    assert valve.plan_achievement == pytest.approx(200.0)


# ── RFM ───────────────────────────────────────────────────────────────────────

@pytest.mark.parametrize("scores, expected", [
    ((5, 5, 5), "VIP"),
    ((3, 3, 3), "Loyal"),
    ((5, 1, 3), "Potential"),
    ((2, 4, 2), "At-risk"),
    ((1, 1, 4), "Dormant"),
    ((2, 1, 1), "Lost"),
    ((3, 1, 1), "Potential"),
])
def test_classify_rfm_segment(scores, expected):
    assert classify_rfm_segment(*scores) == expected


def test_rfm_scores_small_population(make_sale):
    sales = [
        make_sale(100, "2024-01-05", customer="X"),
        make_sale(100, "2024-02-05", customer="X"),
        make_sale(100, "2024-03-05", customer="X"),
        make_sale(50, "2024-03-09", customer="Y"),
        make_sale(250, "2024-01-07", customer="Z"),
        make_sale(250, "2024-01-08", customer="Z"),
    ]
    scores = calc_rfm_scores(sales)
    assert [s.customer for s in scores] == ["X", "Z", "Y"]
    x, z, y = scores
    assert (x.r_score, x.f_score, x.m_score, x.segment) == (5, 5, 3, "Loyal")
    assert (z.recency, z.r_score, z.f_score, z.m_score) == (2, 1, 3, 5)
    assert y.segment == "Potential"

    summary = calc_rfm_segment_summary(scores)
    assert [(s.segment, s.count) for s in summary] == [("Loyal", 2), ("Potential", 1)]
    assert summary[0].share == pytest.approx(800 / 850 * 100)


def test_rfm_without_dated_sales(make_sale):
    assert calc_rfm_scores([make_sale(10, "")]) == []


def test_segment_action_falls_back_to_monitoring():
    assert get_segment_action("VIP").priority == "high"
    assert get_segment_action("unknown").action == "모니터링"


# ── Churn ─────────────────────────────────────────────────────────────────────

def test_predict_churn_signals(make_sale):
    sales = [
        make_sale(500, "2023-01-10", customer="A"),
        make_sale(100, "2023-10-10", customer="B"),
        make_sale(100, "2023-11-10", customer="B"),
        make_sale(10, "2023-12-10", customer="B"),
        make_sale(10, "2024-01-10", customer="B"),
    ]
    summary = predict_churn(sales)
    assert summary.total_customers == 2
    a, b = summary.customers
    assert a.customer == "A"
    assert a.churn_score == 70
    assert a.risk_level == "critical"
    assert a.signals == ["12개월 이상 미거래", "단발 거래"]
    assert b.churn_score == 30
    assert b.risk_level == "medium"
    assert b.signals == ["거래 금액 90% 감소"]
    assert summary.at_risk_customers == 1
    assert summary.at_risk_revenue == 500
    assert [(d.level, d.count) for d in summary.risk_distribution] == [
        ("critical", 1), ("high", 0), ("medium", 1), ("low", 0),
    ]


def test_predict_churn_empty():
    assert predict_churn([]).total_customers == 0


# ── Concentration ─────────────────────────────────────────────────────────────

def test_overall_hhi(make_sale):
    hhi = calc_overall_hhi([make_sale(60, customer="C1"), make_sale(40, customer="C2")])
    assert hhi.hhi == pytest.approx(0.52)
    assert hhi.top_customer_share == pytest.approx(0.6)
    assert hhi.risk_level == "high"


def test_hhi_points_use_the_10000_scale(make_sale):
    hhi = calc_overall_hhi([make_sale(60, customer="C1"), make_sale(40, customer="C2")])
    assert hhi.hhi_points == pytest.approx(5200)
    assert interpret_hhi_points(hhi.hhi_points) == "높은 집중도"
    borderline = calc_overall_hhi([make_sale(50, customer="C1"), make_sale(50, customer="C2"),
                                   make_sale(50, customer="C3"), make_sale(50, customer="C4")])
    assert borderline.hhi_points == pytest.approx(2500)
    assert borderline.risk_level == "medium"


def test_customer_hhi_per_rep(make_sale):
    sales = [make_sale(25, customer=f"C{i}", rep="R1") for i in range(5)] + [make_sale(10, rep="")]
    result = calc_customer_hhi(sales)
    assert list(result) == ["R1"]
    assert result["R1"].hhi == pytest.approx(0.2)
    assert result["R1"].risk_level == "medium"


def test_hhi_zero_total(make_sale):
    assert calc_overall_hhi([make_sale(0)]).hhi == 0.0

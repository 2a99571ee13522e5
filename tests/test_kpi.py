import pytest

from erpsight.metrics.kpi import (
    calc_cost_efficiency, calc_cost_structure, calc_item_sales, calc_monthly_trends, calc_org_ranking,
    calc_org_ratio_metrics, calc_overview_kpis, calc_plan_vs_actual_heatmap, calc_sales_by_type,
    calc_top_customers, classify_cost_profile, heatmap_tier,
)


def test_overview_kpis(make_sale, make_order, make_collection, make_org_profit):
    kpis = calc_overview_kpis(
        [make_sale(600), make_sale(400)],
        [make_order(1500)],
        [make_collection(800)],
        [make_org_profit(sales=(2000, 1000), op=(0, 100))],
    )
    assert kpis.total_sales == 1000
    assert kpis.total_orders == 1500
    assert kpis.collection_rate == pytest.approx(80.0)
    assert kpis.total_receivables == 200
    assert kpis.operating_profit_rate == pytest.approx(10.0)
    assert kpis.sales_plan_achievement == pytest.approx(50.0)


def test_overview_kpis_empty_inputs():
    kpis = calc_overview_kpis([], [], [], [])
    assert kpis.collection_rate == 0.0
    assert kpis.sales_plan_achievement == 0.0


def test_monthly_trends_skip_undated(make_sale, make_order, make_collection):
    trends = calc_monthly_trends(
        [make_sale(100, "2024-02-01"), make_sale(50, "2024-01-01"), make_sale(999, "")],
        [make_order(70, "2024-01-05")],
        [make_collection(30, "2024-02-09")],
    )
    assert [t.month for t in trends] == ["2024-01", "2024-02"]
    assert trends[0].sales == 50
    assert trends[0].orders == 70
    assert trends[1].collections == 30


def test_rankings(make_sale):
    sales = [
        make_sale(100, customer="C1", org="A", category="밸브"),
        make_sale(300, customer="C2", org="B", item="I9"),
        make_sale(50, customer="C1", org="A", category="밸브"),
    ]
    assert [(r.key, r.amount) for r in calc_org_ranking(sales)] == [("B", 300), ("A", 150)]

    top = calc_top_customers(sales, top_n=1)
    assert len(top) == 1
    assert top[0].key == "C2"
    assert top[0].name == "C2 상사"

    items = calc_item_sales(sales)
    assert [i.key for i in items] == ["I9", "밸브"]


def test_sales_by_type(make_sale):
    result = calc_sales_by_type([
        make_sale(100),
        make_sale(200, order_type="수출"),
        make_sale(50, currency="USD"),
    ])
    assert result.domestic == 100
    assert result.exported == 250


@pytest.mark.parametrize("rate, is_cost, expected", [
    (120, False, "excellent"),
    (100, False, "good"),
    (80, False, "caution"),
    (50, False, "warning"),
    (49, False, "critical"),
    (80, True, "excellent"),
    (90, True, "good"),
    (120, True, "caution"),
    (150, True, "warning"),
    (151, True, "critical"),
])
def test_heatmap_tier_inverts_for_costs(rate, is_cost, expected):
    assert heatmap_tier(rate, is_cost) == expected


def test_heatmap_tier_without_plan():
    assert heatmap_tier(0, True, has_plan=False, actual=10) == "critical"
    assert heatmap_tier(0, True, has_plan=False, actual=0) == "none"
    assert heatmap_tier(0, False, has_plan=False, actual=10) == "none"


def test_plan_vs_actual_heatmap(make_org_profit):
    rows = calc_plan_vs_actual_heatmap([
        make_org_profit("A", sales=(100, 110), cogs=(100, 90), sga=(0, 5)),
    ])
    (row,) = rows
    cells = {c.name: c for c in row.metrics}
    assert cells["매출액"].achievement_rate == pytest.approx(110.0)
    assert cells["매출액"].tier == "good"
    assert cells["실적매출원가"].tier == "good"
    assert cells["실적매출원가"].gap == -10
    assert not cells["판매관리비"].has_plan
    assert cells["판매관리비"].achievement_rate == 0.0
    assert cells["판매관리비"].tier == "critical"


def test_org_ratio_metrics_weighted_and_sorted(make_org_profit):
    result = calc_org_ratio_metrics([
        make_org_profit("A", sales=(0, 100), gp=(0, 20)),
        make_org_profit("A", sales=(0, 300), gp=(0, 100)),
        make_org_profit("B", sales=(0, 1000), op=(0, -50)),
        make_org_profit("C"),
    ])
    assert [m.org for m in result] == ["B", "A"]
    assert result[1].gross_margin_rate == pytest.approx(30.0)
    assert result[0].operating_margin_rate == pytest.approx(-5.0)


def test_classify_cost_profile():
    assert classify_cost_profile({"purchase_rate": 55}) == "구매직납형"
    assert classify_cost_profile({"raw_material_rate": 40}) == "자체생산형"
    assert classify_cost_profile({"outsourcing_rate": 36}) == "외주의존형"
    assert classify_cost_profile({"purchase_rate": 10}) == "혼합형"


def test_cost_structure(make_team):
    team = [
        make_team(sales=1000, cost_lines={"변동_상품매입": 600, "판관고정_노무비": 50, "판관변동_노무비": 20}),
        make_team(employee="E02", sales=0),
    ]
    (row,) = calc_cost_structure(team)
    assert row.purchase_rate == pytest.approx(60.0)
    assert row.profile == "구매직납형"
    assert row.labor == 70
    assert row.other_variable == 0.0


def test_cost_efficiency_maps_names(make_team):
    (row,) = calc_cost_efficiency(
        [make_team(employee="홍길동", sales=200, cost_lines={"판관고정_감가상각비": 20, "제조변동_원재료비": 40})],
        name_to_id={"홍길동": "E77"},
    )
    assert row.rep == "E77"
    assert row.fixed_cost_rate == pytest.approx(10.0)
    assert row.mfg_variable_cost_rate == pytest.approx(20.0)
    assert row.raw_material_rate == pytest.approx(20.0)

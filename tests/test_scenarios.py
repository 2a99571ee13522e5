import math

import pytest

from erpsight.metrics.scenarios import (
    ScenarioParams, calc_breakeven_chart, calc_org_breakeven, calc_org_breakeven_from_team, calc_scenario_summary,
    calc_sensitivity, calc_sensitivity_grid, calc_team_breakeven, calc_what_if_scenario,
    generate_sensitivity_insight,
)
from erpsight.records.models import OrgProfitRecord, PlanActualDiff


def actual(value):
    return PlanActualDiff(0, value, 0)


@pytest.fixture
def org_profit():
    # 20 of other expenses sit between gross profit and operating profit
    return [OrgProfitRecord(org_team="A", sales=actual(1000), gross_profit=actual(300), sga=actual(200),
                            operating_profit=actual(80), cogs_rate=actual(70))]


# ── What-if ───────────────────────────────────────────────────────────────────

def test_zero_scenario_reproduces_base(org_profit):
    (result,) = calc_what_if_scenario(org_profit, ScenarioParams())
    assert result.scenario_sales == result.base_sales == 1000
    assert result.scenario_gross_profit == 300
    assert result.scenario_operating_profit == 80
    assert result.margin_delta == 0


@pytest.mark.parametrize("params, gp, op", [
    (ScenarioParams(sales_change_pct=10), 330, 110),
    (ScenarioParams(cost_rate_change_pts=2), 280, 60),
    (ScenarioParams(sga_change_pct=-10), 300, 100),
    (ScenarioParams(cost_rate_change_pts=200), -1000, -1220),
])
def test_scenario_levers(org_profit, params, gp, op):
    (result,) = calc_what_if_scenario(org_profit, params)
    assert result.scenario_gross_profit == pytest.approx(gp)
    assert result.scenario_operating_profit == pytest.approx(op)


def test_scenario_summary(org_profit):
    summary = calc_scenario_summary(calc_what_if_scenario(org_profit, ScenarioParams(sales_change_pct=10)))
    assert summary.base_avg_margin == pytest.approx(8.0)
    assert summary.scenario_avg_margin == pytest.approx(10.0)
    assert calc_scenario_summary([]).base_total_sales == 0.0


def test_sensitivity_sorts_values(org_profit):
    points = calc_sensitivity(org_profit, "sales", [10, -10, 0])
    assert [(p.param_value, p.operating_profit) for p in points] == [
        (-10, pytest.approx(50)), (0, pytest.approx(80)), (10, pytest.approx(110)),
    ]


def test_sensitivity_rejects_unknown_lever(org_profit):
    with pytest.raises(ValueError):
        calc_sensitivity(org_profit, "price", [1])


# ── Price × volume grid ───────────────────────────────────────────────────────

def test_sensitivity_grid_cells():
    grid = calc_sensitivity_grid(1000, 300, 100)
    assert len(grid.grid) == 81
    price_up = grid.cell(10, 0)
    assert price_up.result_op_profit == pytest.approx(200)
    assert price_up.op_change == pytest.approx(100.0)
    volume_up = grid.cell(0, 10)
    assert volume_up.result_gross_profit == pytest.approx(330)
    assert volume_up.op_change == pytest.approx(30.0)
    assert grid.cell(0, 0).op_change == pytest.approx(0.0)


@pytest.mark.parametrize("steps", [[], [0, math.nan], [math.inf]])
def test_sensitivity_grid_rejects_bad_steps(steps):
    with pytest.raises(ValueError):
        calc_sensitivity_grid(1000, 300, 100, price_steps=steps)


def test_sensitivity_insight_price_dominant():
    insight = generate_sensitivity_insight(calc_sensitivity_grid(1000, 300, 100), "op")
    assert insight.dominant_factor == "price"
    assert insight.price_drop_10_impact == pytest.approx(-100.0)
    assert "약 100.0% 감소" in insight.risk_warning
    assert "반드시 물량 증가" in insight.risk_warning


def test_sensitivity_insight_on_sales_is_balanced():
    insight = generate_sensitivity_insight(calc_sensitivity_grid(1000, 300, 100), "sales")
    assert insight.dominant_factor == "balanced"
    assert "물량이 10% 이상 증가하면" in insight.balance_point


# ── Break-even ────────────────────────────────────────────────────────────────

def test_team_breakeven(make_team):
    fixed = {"판관고정_감가상각비": 100, "판관고정_기타경비": 50, "판관고정_노무비": 50}
    rows = [
        make_team("A", "E01", sales=1000, cost_lines=fixed, variable_cost_total=actual(600),
                  contribution_margin=actual(400), operating_profit=actual(200)),
        make_team("A", "E02", sales=100, variable_cost_total=actual(120), contribution_margin=actual(-20)),
        make_team("A", "E03", sales=0),
    ]
    ok, loss = calc_team_breakeven(rows)
    assert ok.person == "E01"
    assert ok.fixed_costs == 200
    assert ok.bep_sales == pytest.approx(500)
    assert ok.safety_margin_rate == pytest.approx(50.0)
    assert ok.operating_leverage == pytest.approx(2.0)
    assert loss.bep_sales is None
    assert loss.safety_margin_rate is None
    assert loss.operating_leverage is None


def test_org_breakeven_from_report():
    (result,) = calc_org_breakeven([
        OrgProfitRecord(org_team="A", sales=actual(1000), contribution_margin_rate=actual(40),
                        contribution_margin=actual(400), operating_profit=actual(150)),
        OrgProfitRecord(org_team="B"),
    ])
    assert result.fixed_costs == 250
    assert result.bep_sales == pytest.approx(625)
    assert result.safety_margin_rate == pytest.approx(37.5)


def test_org_breakeven_from_team_skips_subtotal_rows(make_team):
    rows = [
        make_team("A", "E01", sales=500, variable_cost_total=actual(250)),
        make_team("A", "E02", sales=500, variable_cost_total=actual(250)),
        make_team("A", "", sales=1000, variable_cost_total=actual(500)),
    ]
    (result,) = calc_org_breakeven_from_team(rows)
    assert result.sales == 1000
    assert result.contribution_margin_ratio == pytest.approx(0.5)
    assert result.bep_sales == 0


def test_breakeven_chart():
    points = calc_breakeven_chart(100, 0.5, 2000)
    assert len(points) == 21
    assert points[-1].revenue == pytest.approx(2000)
    assert points[-1].total_cost == pytest.approx(1100)
    assert calc_breakeven_chart(100, 0.5, 0) == []

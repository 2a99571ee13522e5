"""
What-if scenarios, sensitivity analysis and break-even (CVP) on org/team profit.

Scenario figures are computed as base + delta so that a scenario with every
change at zero reproduces the base figures exactly, whatever other lines sit
between gross profit and operating profit in the source report.
"""

from dataclasses import dataclass, field
import math
from typing import Optional

from erpsight.metrics.aggregation import clamp, pct
from erpsight.records.models import OrgProfitRecord, TeamContributionRecord

DEFAULT_STEPS = [-20, -15, -10, -5, 0, 5, 10, 15, 20]
SENSITIVITY_PARAMS = ("sales", "cost", "sga")
METRIC_LABELS = {"sales": "매출액", "gp": "매출총이익", "op": "영업이익"}

COST_RATE_FLOOR = 0
COST_RATE_CEILING = 200
CHART_STEPS = 20


# ── Data structures ───────────────────────────────────────────────────────────

@dataclass
class ScenarioParams:
    sales_change_pct: float = 0.0        # +10 = sales up 10%
    cost_rate_change_pts: float = 0.0    # +2 = cost-of-sales rate up 2 points
    sga_change_pct: float = 0.0          # -5 = SG&A down 5%


@dataclass
class ScenarioResult:
    org: str
    base_sales: float
    base_gross_profit: float
    base_operating_profit: float
    base_operating_margin: float
    scenario_sales: float
    scenario_gross_profit: float
    scenario_operating_profit: float
    scenario_operating_margin: float

    @property
    def sales_delta(self) -> float:
        return self.scenario_sales - self.base_sales

    @property
    def gross_profit_delta(self) -> float:
        return self.scenario_gross_profit - self.base_gross_profit

    @property
    def operating_profit_delta(self) -> float:
        return self.scenario_operating_profit - self.base_operating_profit

    @property
    def margin_delta(self) -> float:
        return self.scenario_operating_margin - self.base_operating_margin


@dataclass
class ScenarioSummary:
    base_total_sales: float = 0.0
    base_total_operating_profit: float = 0.0
    base_avg_margin: float = 0.0
    scenario_total_sales: float = 0.0
    scenario_total_operating_profit: float = 0.0
    scenario_avg_margin: float = 0.0


@dataclass
class SensitivityPoint:
    param_value: float
    operating_profit: float
    operating_margin: float


@dataclass
class SensitivityCell:
    price_change: float
    volume_change: float
    result_sales: float
    result_gross_profit: float
    result_op_profit: float
    sales_change: float
    gp_change: float
    op_change: float

    def change(self, metric: str) -> float:
        return {"sales": self.sales_change, "gp": self.gp_change, "op": self.op_change}[metric]


@dataclass
class SensitivityGrid:
    base_sales: float
    base_gross_profit: float
    base_op_profit: float
    grid: list[SensitivityCell] = field(default_factory=list)
    price_range: list[float] = field(default_factory=list)
    volume_range: list[float] = field(default_factory=list)

    def cell(self, price_change: float, volume_change: float) -> Optional[SensitivityCell]:
        for c in self.grid:
            if c.price_change == price_change and c.volume_change == volume_change:
                return c
        return None


@dataclass
class SensitivityInsight:
    dominant_factor: str     # 'price', 'volume', 'balanced'
    price_impact_10: float
    volume_impact_10: float
    price_drop_10_impact: float
    recommendation: str
    risk_warning: str
    balance_point: Optional[str] = None


@dataclass
class BreakevenResult:
    """bep_sales / safety_margin_rate are None when the unit cannot break even."""
    org: str
    sales: float
    variable_costs: float
    fixed_costs: float
    variable_cost_ratio: float           # 0~1
    contribution_margin_ratio: float     # 0~1
    bep_sales: Optional[float]
    safety_margin_rate: Optional[float]
    operating_leverage: Optional[float]  # None when OP is 0 but CM is not
    person: str = ""


@dataclass
class BreakevenChartPoint:
    revenue: float
    total_cost: float
    fixed_cost: float
    variable_cost: float


# ── What-if ───────────────────────────────────────────────────────────────────

def _scenario(record: OrgProfitRecord, params: ScenarioParams) -> ScenarioResult:
    base_sales = record.sales.actual
    base_gp = record.gross_profit.actual
    base_sga = record.sga.actual
    base_op = record.operating_profit.actual

    sales_factor = 1 + params.sales_change_pct / 100
    scenario_sales = base_sales * sales_factor

    rate_shift = params.cost_rate_change_pts
    if rate_shift:
        base_rate = record.cogs_rate.actual
        rate_shift = clamp(base_rate + rate_shift, COST_RATE_FLOOR, COST_RATE_CEILING) - base_rate
    scenario_gp = base_gp * sales_factor - scenario_sales * rate_shift / 100
    scenario_sga = base_sga * (1 + params.sga_change_pct / 100)
    scenario_op = base_op + (scenario_gp - base_gp) - (scenario_sga - base_sga)

    return ScenarioResult(
        org=record.org_team,
        base_sales=base_sales,
        base_gross_profit=base_gp,
        base_operating_profit=base_op,
        base_operating_margin=pct(base_op, base_sales),
        scenario_sales=scenario_sales,
        scenario_gross_profit=scenario_gp,
        scenario_operating_profit=scenario_op,
        scenario_operating_margin=pct(scenario_op, scenario_sales),
    )


def calc_what_if_scenario(org_profit: list[OrgProfitRecord], params: ScenarioParams) -> list[ScenarioResult]:
    """Per-org scenario, most improved operating profit first."""
    results = [_scenario(r, params) for r in org_profit]
    return sorted(results, key=lambda r: r.operating_profit_delta, reverse=True)


def calc_scenario_summary(results: list[ScenarioResult]) -> ScenarioSummary:
    if not results:
        return ScenarioSummary()
    base_sales = sum(r.base_sales for r in results)
    base_op = sum(r.base_operating_profit for r in results)
    scenario_sales = sum(r.scenario_sales for r in results)
    scenario_op = sum(r.scenario_operating_profit for r in results)
    return ScenarioSummary(base_sales, base_op, pct(base_op, base_sales),
                           scenario_sales, scenario_op, pct(scenario_op, scenario_sales))


def calc_sensitivity(org_profit: list[OrgProfitRecord], param: str, values: list[float]) -> list[SensitivityPoint]:
    """Vary one lever ('sales', 'cost' or 'sga') across `values`, the others held at 0."""
    if param not in SENSITIVITY_PARAMS:
        raise ValueError(f"Unknown sensitivity parameter: {param}")
    if not org_profit or not values:
        return []

    points = []
    for value in sorted(values):
        params = ScenarioParams(
            sales_change_pct=value if param == "sales" else 0.0,
            cost_rate_change_pts=value if param == "cost" else 0.0,
            sga_change_pct=value if param == "sga" else 0.0,
        )
        summary = calc_scenario_summary(calc_what_if_scenario(org_profit, params))
        points.append(SensitivityPoint(value, summary.scenario_total_operating_profit, summary.scenario_avg_margin))
    return points


# ── Price × volume grid ───────────────────────────────────────────────────────

def _validate_steps(name: str, steps: list[float]) -> None:
    if not steps:
        raise ValueError(f"{name} steps must not be empty")
    if not all(math.isfinite(s) for s in steps):
        raise ValueError(f"{name} steps must be finite: {steps}")


def _relative_change(result: float, base: float) -> float:
    return (result - base) / abs(base) * 100 if base != 0 else 0.0


def calc_sensitivity_grid(
    base_sales: float,
    base_gross_profit: float,
    base_op_profit: float,
    price_steps: Optional[list[float]] = None,
    volume_steps: Optional[list[float]] = None,
) -> SensitivityGrid:
    """
    Two-variable sensitivity. Sales scale with price and volume, cost of
    sales with volume only, and SG&A stays fixed.
    """
    price_steps = list(DEFAULT_STEPS if price_steps is None else price_steps)
    volume_steps = list(DEFAULT_STEPS if volume_steps is None else volume_steps)
    _validate_steps("price", price_steps)
    _validate_steps("volume", volume_steps)

    base_cogs = base_sales - base_gross_profit
    base_sga = base_gross_profit - base_op_profit

    grid = []
    for price in price_steps:
        for volume in volume_steps:
            volume_factor = 1 + volume / 100
            sales = base_sales * (1 + price / 100) * volume_factor
            gp = sales - base_cogs * volume_factor
            op = gp - base_sga
            grid.append(SensitivityCell(
                price_change=price,
                volume_change=volume,
                result_sales=sales,
                result_gross_profit=gp,
                result_op_profit=op,
                sales_change=_relative_change(sales, base_sales),
                gp_change=_relative_change(gp, base_gross_profit),
                op_change=_relative_change(op, base_op_profit),
            ))
    return SensitivityGrid(base_sales, base_gross_profit, base_op_profit, grid, price_steps, volume_steps)


def generate_sensitivity_insight(result: SensitivityGrid, metric: str = "op") -> SensitivityInsight:
    label = METRIC_LABELS[metric]

    def impact(price: float, volume: float) -> float:
        cell = result.cell(price, volume)
        return cell.change(metric) if cell else 0.0

    price_up = impact(10, 0)
    volume_up = impact(0, 10)
    price_down = impact(-10, 0)

    abs_price, abs_volume = abs(price_up), abs(volume_up)
    if abs_volume > 0:
        ratio = abs_price / abs_volume
    else:
        ratio = 999 if abs_price > 0 else 1
    if ratio >= 1.2:
        dominant = "price"
        recommendation = (f"{label} 관점에서 가격이 물량보다 영향력이 큽니다. 가격 방어(인하 최소화)에 우선 집중하고, "
                          f"불가피한 인하 시 물량 증가로 보전하는 전략이 효과적입니다.")
    elif ratio <= 0.8:
        dominant = "volume"
        recommendation = (f"{label} 관점에서 물량이 가격보다 영향력이 큽니다. 신규 거래처 확보나 기존 거래처 "
                          f"물량 확대에 집중하는 것이 이익 개선에 더 효과적입니다.")
    else:
        dominant = "balanced"
        recommendation = ("가격과 물량의 영향력이 비슷합니다. 가격 인상+물량 유지 또는 가격 유지+물량 확대 모두 "
                          "유사한 효과가 있으므로, 실현 가능성이 높은 쪽을 선택하세요.")

    risk_warning = f"가격이 10% 하락하면 {label}이 약 {abs(price_down):.1f}% 감소합니다."
    if abs(price_down) > 15:
        risk_warning += " 영향이 크므로 가격 인하 시 반드시 물량 증가 조건을 확보하세요."

    balance_point = None
    candidates = sorted((c for c in result.grid if c.price_change == -5 and c.volume_change > 0),
                        key=lambda c: c.volume_change)
    for c in candidates:
        if c.change(metric) >= 0:
            balance_point = (f"가격을 5% 인하하더라도 물량이 {c.volume_change:g}% 이상 증가하면 "
                             f"{label}을 현재 수준으로 유지할 수 있습니다.")
            break

    return SensitivityInsight(dominant, price_up, volume_up, price_down, recommendation, risk_warning, balance_point)


# ── Break-even ────────────────────────────────────────────────────────────────

def _fixed_lines(record: TeamContributionRecord) -> float:
    return (record.line("판관고정_감가상각비").actual
            + record.line("판관고정_기타경비").actual
            + record.line("판관고정_노무비").actual)


def _breakeven(org: str, sales: float, variable: float, fixed: float, cm: float, op: float,
               cm_ratio: Optional[float] = None, person: str = "") -> BreakevenResult:
    if cm_ratio is None:
        cm_ratio = 1 - variable / sales
    bep = fixed / cm_ratio if cm_ratio > 0 else None
    safety = (sales - bep) / sales * 100 if bep is not None else None
    if op == 0:
        leverage = 0.0 if cm == 0 else None
    else:
        leverage = cm / op
    return BreakevenResult(org, sales, variable, fixed, 1 - cm_ratio, cm_ratio, bep, safety, leverage, person)


def calc_team_breakeven(team: list[TeamContributionRecord]) -> list[BreakevenResult]:
    """Per-rep break-even; fixed costs are the three 판관고정 lines."""
    return [
        _breakeven(r.org_team, r.sales.actual, r.variable_cost_total.actual, _fixed_lines(r),
                   r.contribution_margin.actual, r.operating_profit.actual, person=r.employee_id)
        for r in team
        if r.sales.actual != 0
    ]


def calc_org_breakeven(org_profit: list[OrgProfitRecord]) -> list[BreakevenResult]:
    """Org break-even from the org profit report: CM ratio from 공헌이익율, fixed = CM − OP."""
    results = []
    for r in org_profit:
        sales = r.sales.actual
        if sales == 0:
            continue
        cm_ratio = r.contribution_margin_rate.actual / 100
        results.append(_breakeven(r.org_team, sales, sales * (1 - cm_ratio),
                                  r.contribution_margin.actual - r.operating_profit.actual,
                                  r.contribution_margin.actual, r.operating_profit.actual, cm_ratio=cm_ratio))
    return results


def calc_org_breakeven_from_team(team: list[TeamContributionRecord]) -> list[BreakevenResult]:
    """Org break-even rolled up from rep rows; rows without an employee id are subtotals and skipped."""
    totals: dict[str, list[float]] = {}
    for r in team:
        if not r.org_team or not str(r.employee_id or "").strip():
            continue
        t = totals.setdefault(r.org_team, [0.0, 0.0, 0.0, 0.0, 0.0])
        t[0] += r.sales.actual
        t[1] += r.variable_cost_total.actual
        t[2] += _fixed_lines(r)
        t[3] += r.contribution_margin.actual
        t[4] += r.operating_profit.actual
    return [
        _breakeven(org, sales, variable, fixed, cm, op)
        for org, (sales, variable, fixed, cm, op) in totals.items()
        if sales != 0
    ]


def calc_breakeven_chart(fixed_costs: float, variable_cost_ratio: float,
                         max_revenue: float) -> list[BreakevenChartPoint]:
    if max_revenue <= 0 or not math.isfinite(max_revenue) or not math.isfinite(fixed_costs):
        return []
    step = max_revenue / CHART_STEPS
    points = []
    for i in range(CHART_STEPS + 1):
        revenue = step * i
        variable = revenue * variable_cost_ratio
        points.append(BreakevenChartPoint(revenue, fixed_costs + variable, fixed_costs, variable))
    return points

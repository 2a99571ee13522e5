"""
Plan achievement analysis on the profitability-analysis report.

SAP quantity plans are mostly empty, so achievement is measured on amounts:
sales, gross profit and operating profit against plan, per org and per
customer, plus the drift between planned and actual gross margin rates.
"""

from dataclasses import dataclass, field

from erpsight.metrics.aggregation import pct
from erpsight.records.models import ProfitabilityRecord

UNCLASSIFIED = "(미분류)"

MEANINGFUL_COVERAGE_PCT = 30
GOOD_COVERAGE_PCT = 70


# ── Data structures ───────────────────────────────────────────────────────────

@dataclass
class _Totals:
    sales_plan: float = 0.0
    sales_actual: float = 0.0
    gp_plan: float = 0.0
    gp_actual: float = 0.0
    op_plan: float = 0.0
    op_actual: float = 0.0

    def add(self, r: ProfitabilityRecord) -> None:
        self.sales_plan += r.sales.plan
        self.sales_actual += r.sales.actual
        self.gp_plan += r.gross_profit.plan
        self.gp_actual += r.gross_profit.actual
        self.op_plan += r.operating_profit.plan
        self.op_actual += r.operating_profit.actual


@dataclass
class PlanAchievementSummary:
    total_sales_plan: float = 0.0
    total_sales_actual: float = 0.0
    sales_achievement: float = 0.0
    sales_gap: float = 0.0
    total_gp_plan: float = 0.0
    total_gp_actual: float = 0.0
    gp_achievement: float = 0.0
    total_op_plan: float = 0.0
    total_op_actual: float = 0.0
    op_achievement: float = 0.0
    planned_gp_rate: float = 0.0
    actual_gp_rate: float = 0.0
    margin_drift: float = 0.0        # percentage points
    planned_op_rate: float = 0.0
    actual_op_rate: float = 0.0
    op_margin_drift: float = 0.0


@dataclass
class OrgAchievement:
    org: str
    sales_plan: float
    sales_actual: float
    sales_achievement: float
    sales_gap: float
    gp_plan: float
    gp_actual: float
    gp_achievement: float
    planned_gp_rate: float
    actual_gp_rate: float
    margin_drift: float
    op_plan: float
    op_actual: float
    op_achievement: float


@dataclass
class CustomerContributor:
    customer: str
    sales_plan: float
    sales_actual: float
    sales_gap: float
    gp_actual: float
    gp_margin: float
    op_actual: float
    op_margin: float


@dataclass
class MarginDriftItem:
    customer: str
    sales_actual: float
    planned_gp_rate: float
    actual_gp_rate: float
    margin_drift: float
    drift_impact: float      # sales × drift, estimated profit effect


@dataclass
class MarginDriftResult:
    worsened: list[MarginDriftItem] = field(default_factory=list)
    improved: list[MarginDriftItem] = field(default_factory=list)
    total_worsened_impact: float = 0.0
    total_improved_impact: float = 0.0
    net_impact: float = 0.0


@dataclass
class PlanDataQuality:
    total_records: int
    records_with_sales_plan: int
    sales_plan_coverage: float
    has_meaningful_plan: bool
    level: str               # 'good', 'partial', 'poor', 'none'


@dataclass
class OrgGapContribution:
    org: str
    sales_gap: float
    gp_gap: float
    op_gap: float
    sales_plan: float
    sales_actual: float


# ── Helpers ───────────────────────────────────────────────────────────────────

def _ratio(numerator: float, denominator: float) -> float:
    return pct(numerator, denominator) if denominator != 0 else 0.0


def _totals_by(data: list[ProfitabilityRecord], key) -> dict[str, _Totals]:
    groups: dict[str, _Totals] = {}
    for r in data:
        groups.setdefault(key(r) or UNCLASSIFIED, _Totals()).add(r)
    return groups


# ── Calculators ───────────────────────────────────────────────────────────────

def calc_plan_achievement_summary(data: list[ProfitabilityRecord]) -> PlanAchievementSummary:
    t = _Totals()
    for r in data:
        t.add(r)
    planned_gp = _ratio(t.gp_plan, t.sales_plan)
    actual_gp = _ratio(t.gp_actual, t.sales_actual)
    planned_op = _ratio(t.op_plan, t.sales_plan)
    actual_op = _ratio(t.op_actual, t.sales_actual)
    return PlanAchievementSummary(
        total_sales_plan=t.sales_plan,
        total_sales_actual=t.sales_actual,
        sales_achievement=_ratio(t.sales_actual, t.sales_plan),
        sales_gap=t.sales_actual - t.sales_plan,
        total_gp_plan=t.gp_plan,
        total_gp_actual=t.gp_actual,
        gp_achievement=_ratio(t.gp_actual, t.gp_plan),
        total_op_plan=t.op_plan,
        total_op_actual=t.op_actual,
        op_achievement=_ratio(t.op_actual, t.op_plan),
        planned_gp_rate=planned_gp,
        actual_gp_rate=actual_gp,
        margin_drift=actual_gp - planned_gp,
        planned_op_rate=planned_op,
        actual_op_rate=actual_op,
        op_margin_drift=actual_op - planned_op,
    )


def calc_org_achievement(data: list[ProfitabilityRecord]) -> list[OrgAchievement]:
    result = []
    for org, t in _totals_by(data, lambda r: r.org_team).items():
        planned_gp = _ratio(t.gp_plan, t.sales_plan)
        actual_gp = _ratio(t.gp_actual, t.sales_actual)
        result.append(OrgAchievement(
            org=org,
            sales_plan=t.sales_plan,
            sales_actual=t.sales_actual,
            sales_achievement=_ratio(t.sales_actual, t.sales_plan),
            sales_gap=t.sales_actual - t.sales_plan,
            gp_plan=t.gp_plan,
            gp_actual=t.gp_actual,
            gp_achievement=_ratio(t.gp_actual, t.gp_plan),
            planned_gp_rate=planned_gp,
            actual_gp_rate=actual_gp,
            margin_drift=actual_gp - planned_gp,
            op_plan=t.op_plan,
            op_actual=t.op_actual,
            op_achievement=_ratio(t.op_actual, t.op_plan),
        ))
    return sorted(result, key=lambda o: o.sales_actual, reverse=True)


def calc_top_contributors(data: list[ProfitabilityRecord], top_n: int = 10) -> dict[str, list[CustomerContributor]]:
    """Customers ranked by sales gap to plan: {'top': over-plan, 'bottom': under-plan}."""
    everyone = [
        CustomerContributor(
            customer=customer,
            sales_plan=t.sales_plan,
            sales_actual=t.sales_actual,
            sales_gap=t.sales_actual - t.sales_plan,
            gp_actual=t.gp_actual,
            gp_margin=_ratio(t.gp_actual, t.sales_actual),
            op_actual=t.op_actual,
            op_margin=_ratio(t.op_actual, t.sales_actual),
        )
        for customer, t in _totals_by(data, lambda r: r.customer).items()
    ]
    top = sorted((c for c in everyone if c.sales_gap > 0), key=lambda c: c.sales_gap, reverse=True)
    bottom = sorted((c for c in everyone if c.sales_gap < 0), key=lambda c: c.sales_gap)
    return {"top": top[:top_n], "bottom": bottom[:top_n]}


def calc_margin_drift(data: list[ProfitabilityRecord], top_n: int = 15) -> MarginDriftResult:
    items = []
    for customer, t in _totals_by(data, lambda r: r.customer).items():
        # no basis for comparison without both a plan and an actual
        if t.sales_actual == 0 or t.sales_plan == 0:
            continue
        planned = t.gp_plan / t.sales_plan * 100
        actual = t.gp_actual / t.sales_actual * 100
        drift = actual - planned
        items.append(MarginDriftItem(customer, t.sales_actual, planned, actual, drift, t.sales_actual * drift / 100))

    worsened = sorted((i for i in items if i.margin_drift < 0), key=lambda i: i.drift_impact)[:top_n]
    improved = sorted((i for i in items if i.margin_drift > 0), key=lambda i: i.drift_impact, reverse=True)[:top_n]
    total_worsened = sum(i.drift_impact for i in worsened)
    total_improved = sum(i.drift_impact for i in improved)
    return MarginDriftResult(worsened, improved, total_worsened, total_improved, total_worsened + total_improved)


def check_plan_data_quality(data: list[ProfitabilityRecord]) -> PlanDataQuality:
    total = len(data)
    with_plan = sum(1 for r in data if r.sales.plan != 0)
    coverage = with_plan / total * 100 if total > 0 else 0.0
    if with_plan == 0:
        level = "none"
    elif coverage < MEANINGFUL_COVERAGE_PCT:
        level = "poor"
    elif coverage < GOOD_COVERAGE_PCT:
        level = "partial"
    else:
        level = "good"
    return PlanDataQuality(total, with_plan, coverage, coverage >= MEANINGFUL_COVERAGE_PCT, level)


def calc_org_gap_contribution(data: list[ProfitabilityRecord]) -> list[OrgGapContribution]:
    result = [
        OrgGapContribution(
            org=org,
            sales_gap=t.sales_actual - t.sales_plan,
            gp_gap=t.gp_actual - t.gp_plan,
            op_gap=t.op_actual - t.op_plan,
            sales_plan=t.sales_plan,
            sales_actual=t.sales_actual,
        )
        for org, t in _totals_by(data, lambda r: r.org_team).items()
    ]
    return sorted(result, key=lambda o: o.sales_gap, reverse=True)


def generate_plan_insight(
    summary: PlanAchievementSummary,
    orgs: list[OrgAchievement],
    quality: PlanDataQuality,
) -> str:
    """One-paragraph Korean diagnosis of plan coverage, sales vs GP achievement and org spread."""
    if quality.level == "none":
        return ("계획 데이터가 전혀 입력되어 있지 않아 달성율 분석이 불가합니다. "
                "SAP에서 계획 데이터를 포함한 보고서를 다시 추출해주세요.")

    parts = []
    if quality.level == "poor":
        parts.append(
            f"전체 {quality.total_records}건 중 {quality.records_with_sales_plan}건"
            f"({quality.sales_plan_coverage:.0f}%)에만 계획값이 존재하여 분석 신뢰성이 제한됩니다."
        )

    sales_ach = summary.sales_achievement
    gp_ach = summary.gp_achievement
    if sales_ach > 0 and gp_ach > 0:
        if sales_ach >= 100 and gp_ach >= 100:
            parts.append(f"매출 {sales_ach:.0f}%, 매출총이익 {gp_ach:.0f}% 달성으로 전체적으로 양호합니다.")
        elif sales_ach >= 100:
            parts.append(
                f"매출은 {sales_ach:.0f}% 달성했으나 매출총이익이 {gp_ach:.0f}%에 그쳐, "
                f"원가율 상승 또는 저마진 판매 비중 증가가 의심됩니다."
            )
        elif gp_ach >= sales_ach:
            parts.append(
                f"매출은 {sales_ach:.0f}%로 미달이나 이익율은 개선되어(GP 달성 {gp_ach:.0f}%), "
                f"고마진 거래 중심의 선별 영업이 이루어지고 있습니다."
            )
        else:
            parts.append(
                f"매출 {sales_ach:.0f}%, 매출총이익 {gp_ach:.0f}%로 모두 미달입니다. "
                f"영업량 확대와 원가 관리가 동시에 필요합니다."
            )

    achieved = [o for o in orgs if o.sales_achievement >= 100]
    missed = [o for o in orgs if o.sales_achievement < 100 and o.sales_plan > 0]
    if orgs:
        if not missed:
            parts.append("모든 조직이 매출 계획을 달성하여 균형 잡힌 실적을 보이고 있습니다.")
        elif not achieved:
            parts.append("전 조직이 매출 계획 미달로, 전사적 영업 전략 재검토가 필요합니다.")
        else:
            worst = min(missed, key=lambda o: o.sales_achievement)
            parts.append(
                f"{len(achieved)}개 조직 달성, {len(missed)}개 조직 미달. "
                f"가장 저조한 \"{worst.org}\"({worst.sales_achievement:.0f}%)에 대한 집중 관리가 필요합니다."
            )

    return " ".join(parts)

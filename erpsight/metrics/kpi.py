"""
Headline KPIs, monthly trends, rankings, cost structure and plan-vs-actual views.

Plan-vs-actual achievement is actual / plan × 100 for every line. For cost
lines (COGS, SG&A) a value at or below 100 means the org spent less than
planned, so the heatmap colour tiers are inverted for them. A line with no
plan reports an achievement of 0 and has_plan=False.
"""

from dataclasses import dataclass, field
from typing import Optional

from erpsight.metrics.aggregation import group_by, pct, sum_field
from erpsight.records.models import (
    CollectionRecord, MFG_VARIABLE_LINES, OrderRecord, OrgProfitRecord,
    SGA_FIXED_LINES, SGA_VARIABLE_LINES, SalesRecord, TeamContributionRecord,
)
from erpsight.utils.dates import extract_month

EXPORT_ORDER_TYPE = "수출"
DOMESTIC_CURRENCY = "KRW"

# (label, record attribute, is_cost_item)
HEATMAP_LINES = [
    ("매출액", "sales", False),
    ("실적매출원가", "cogs", True),
    ("매출총이익", "gross_profit", False),
    ("판매관리비", "sga", True),
    ("영업이익", "operating_profit", False),
    ("공헌이익", "contribution_margin", False),
]

HEATMAP_COLORS = {
    "excellent": "#059669",
    "good": "#34D399",
    "caution": "#FBBF24",
    "warning": "#F97316",
    "critical": "#EF4444",
    "none": "#6B7280",
}

COST_PROFILE_THRESHOLDS = [
    ("purchase_rate", 50, "구매직납형"),
    ("raw_material_rate", 40, "자체생산형"),
    ("outsourcing_rate", 35, "외주의존형"),
]
MIXED_PROFILE = "혼합형"


# ── Data structures ───────────────────────────────────────────────────────────

@dataclass
class OverviewKpis:
    total_sales: float = 0.0
    total_orders: float = 0.0
    total_collection: float = 0.0
    collection_rate: float = 0.0
    total_receivables: float = 0.0
    operating_profit_rate: float = 0.0
    sales_plan_achievement: float = 0.0


@dataclass
class MonthlyTrend:
    month: str
    sales: float = 0.0
    orders: float = 0.0
    collections: float = 0.0


@dataclass
class RankedAmount:
    key: str
    name: str
    amount: float
    category: str = ""


@dataclass
class SalesByType:
    domestic: float = 0.0
    exported: float = 0.0


@dataclass
class HeatmapCell:
    name: str
    plan: float
    actual: float
    gap: float
    achievement_rate: float
    is_cost_item: bool
    has_plan: bool
    tier: str


@dataclass
class HeatmapRow:
    org: str
    metrics: list[HeatmapCell] = field(default_factory=list)


@dataclass
class OrgRatioMetric:
    org: str
    sales: float
    cogs_rate: float
    gross_margin_rate: float
    sga_rate: float
    operating_margin_rate: float
    contribution_margin_rate: float


@dataclass
class CostStructure:
    rep: str
    org: str
    sales: float
    raw_material: float
    purchase: float
    outsourcing: float
    freight: float
    commission: float
    labor: float
    other_variable: float
    fixed: float
    raw_material_rate: float
    purchase_rate: float
    outsourcing_rate: float
    profile: str


@dataclass
class CostEfficiency:
    rep: str
    org: str
    sales: float
    raw_material_rate: float
    purchase_rate: float
    outsourcing_rate: float
    variable_cost_rate: float        # SG&A variable lines
    mfg_variable_cost_rate: float    # manufacturing variable lines
    fixed_cost_rate: float           # SG&A fixed lines
    contribution_margin_rate: float
    operating_margin_rate: float


# ── Overview / trends ─────────────────────────────────────────────────────────

def calc_overview_kpis(
    sales: list[SalesRecord],
    orders: list[OrderRecord],
    collections: list[CollectionRecord],
    org_profit: list[OrgProfitRecord],
) -> OverviewKpis:
    total_sales = sum_field(sales, lambda r: r.book_amount)
    total_collection = sum_field(collections, lambda r: r.book_amount)
    op_sum = sum_field(org_profit, lambda r: r.operating_profit.actual)
    sales_sum = sum_field(org_profit, lambda r: r.sales.actual)
    plan_sum = sum_field(org_profit, lambda r: r.sales.plan)
    return OverviewKpis(
        total_sales=total_sales,
        total_orders=sum_field(orders, lambda r: r.book_amount),
        total_collection=total_collection,
        collection_rate=pct(total_collection, total_sales) if total_sales > 0 else 0.0,
        total_receivables=total_sales - total_collection,
        operating_profit_rate=pct(op_sum, sales_sum) if sales_sum > 0 else 0.0,
        sales_plan_achievement=pct(sales_sum, plan_sum) if plan_sum > 0 else 0.0,
    )


def calc_monthly_trends(
    sales: list[SalesRecord],
    orders: list[OrderRecord],
    collections: list[CollectionRecord],
) -> list[MonthlyTrend]:
    months: dict[str, MonthlyTrend] = {}
    for r in sales:
        m = extract_month(r.sales_date)
        if m:
            months.setdefault(m, MonthlyTrend(m)).sales += r.book_amount
    for r in orders:
        m = extract_month(r.order_date)
        if m:
            months.setdefault(m, MonthlyTrend(m)).orders += r.book_amount
    for r in collections:
        m = extract_month(r.collection_date)
        if m:
            months.setdefault(m, MonthlyTrend(m)).collections += r.book_amount
    return [months[m] for m in sorted(months)]


def calc_org_ranking(sales: list[SalesRecord]) -> list[RankedAmount]:
    result = [
        RankedAmount(org, org, sum_field(recs, lambda r: r.book_amount))
        for org, recs in group_by(sales, lambda r: r.org).items()
    ]
    return sorted(result, key=lambda r: r.amount, reverse=True)


def calc_top_customers(sales: list[SalesRecord], top_n: int = 10) -> list[RankedAmount]:
    result = [
        RankedAmount(code, recs[0].customer_name, sum_field(recs, lambda r: r.book_amount))
        for code, recs in group_by(sales, lambda r: r.customer).items()
    ]
    return sorted(result, key=lambda r: r.amount, reverse=True)[:top_n]


def calc_item_sales(sales: list[SalesRecord]) -> list[RankedAmount]:
    """Sales per category (대분류), falling back to the item code when no category is set."""
    result = [
        RankedAmount(key, key, sum_field(recs, lambda r: r.book_amount), recs[0].category)
        for key, recs in group_by(sales, lambda r: r.category or r.item).items()
    ]
    return sorted(result, key=lambda r: r.amount, reverse=True)


def is_domestic(record: SalesRecord) -> bool:
    return record.order_type != EXPORT_ORDER_TYPE and record.currency == DOMESTIC_CURRENCY


def calc_sales_by_type(sales: list[SalesRecord]) -> SalesByType:
    result = SalesByType()
    for r in sales:
        if is_domestic(r):
            result.domestic += r.book_amount
        else:
            result.exported += r.book_amount
    return result


# ── Plan vs actual heatmap / ratios ───────────────────────────────────────────

def heatmap_tier(rate: float, is_cost_item: bool, has_plan: bool = True, actual: float = 0.0) -> str:
    if not has_plan:
        return "critical" if is_cost_item and actual > 0 else "none"
    if is_cost_item:
        if rate <= 80:
            return "excellent"
        if rate <= 100:
            return "good"
        if rate <= 120:
            return "caution"
        if rate <= 150:
            return "warning"
        return "critical"
    if rate >= 120:
        return "excellent"
    if rate >= 100:
        return "good"
    if rate >= 80:
        return "caution"
    if rate >= 50:
        return "warning"
    return "critical"


def calc_plan_vs_actual_heatmap(org_profit: list[OrgProfitRecord]) -> list[HeatmapRow]:
    rows = []
    for org, recs in group_by(org_profit, lambda r: r.org_team.strip()).items():
        row = HeatmapRow(org)
        for label, attr, is_cost in HEATMAP_LINES:
            plan = sum_field(recs, lambda r, a=attr: getattr(r, a).plan)
            actual = sum_field(recs, lambda r, a=attr: getattr(r, a).actual)
            has_plan = plan != 0
            rate = actual / plan * 100 if has_plan else 0.0
            row.metrics.append(HeatmapCell(
                name=label,
                plan=plan,
                actual=actual,
                gap=actual - plan,
                achievement_rate=rate,
                is_cost_item=is_cost,
                has_plan=has_plan,
                tier=heatmap_tier(rate, is_cost, has_plan, actual),
            ))
        rows.append(row)
    return rows


def calc_org_ratio_metrics(org_profit: list[OrgProfitRecord]) -> list[OrgRatioMetric]:
    """Sales-weighted margin ratios per org team, largest org first."""
    result = []
    for org, recs in group_by(org_profit, lambda r: r.org_team.strip()).items():
        sales = sum_field(recs, lambda r: r.sales.actual)
        if sales == 0:
            continue
        result.append(OrgRatioMetric(
            org=org,
            sales=sales,
            cogs_rate=pct(sum_field(recs, lambda r: r.cogs.actual), sales),
            gross_margin_rate=pct(sum_field(recs, lambda r: r.gross_profit.actual), sales),
            sga_rate=pct(sum_field(recs, lambda r: r.sga.actual), sales),
            operating_margin_rate=pct(sum_field(recs, lambda r: r.operating_profit.actual), sales),
            contribution_margin_rate=pct(sum_field(recs, lambda r: r.contribution_margin.actual), sales),
        ))
    return sorted(result, key=lambda m: m.sales, reverse=True)


# ── Cost structure ────────────────────────────────────────────────────────────

def _lines(record: TeamContributionRecord, names) -> float:
    return sum(record.line(n).actual for n in names)


def classify_cost_profile(rates: dict[str, float]) -> str:
    for key, threshold, label in COST_PROFILE_THRESHOLDS:
        if rates.get(key, 0) >= threshold:
            return label
    return MIXED_PROFILE


def calc_cost_structure(team: list[TeamContributionRecord]) -> list[CostStructure]:
    """Per-rep variable/fixed cost split from the granular team contribution lines."""
    result = []
    for r in team:
        sales = r.sales.actual
        if sales <= 0:
            continue
        raw_material = _lines(r, ["제조변동_원재료비", "제조변동_부재료비"])
        purchase = r.line("변동_상품매입").actual
        outsourcing = _lines(r, ["제조변동_외주가공비", "판관변동_외주가공비"])
        freight = _lines(r, ["제조변동_운반비", "판관변동_운반비"]) + r.direct_selling_freight.actual
        commission = _lines(r, ["제조변동_지급수수료", "판관변동_지급수수료"])
        variable_labor = _lines(r, ["제조변동_노무비", "판관변동_노무비"])
        labor = variable_labor + r.line("판관고정_노무비").actual
        fixed = _lines(r, ["판관고정_감가상각비", "판관고정_기타경비"])
        itemised = raw_material + purchase + outsourcing + freight + commission + variable_labor
        variable_total = r.variable_cost_total.actual or (
            _lines(r, MFG_VARIABLE_LINES + SGA_VARIABLE_LINES) + r.direct_selling_freight.actual
        )
        other_variable = max(0.0, variable_total - itemised)
        rates = {
            "raw_material_rate": pct(raw_material, sales),
            "purchase_rate": pct(purchase, sales),
            "outsourcing_rate": pct(outsourcing, sales),
        }
        result.append(CostStructure(
            rep=r.employee_id,
            org=r.org_team,
            sales=sales,
            raw_material=raw_material,
            purchase=purchase,
            outsourcing=outsourcing,
            freight=freight,
            commission=commission,
            labor=labor,
            other_variable=other_variable,
            fixed=fixed,
            profile=classify_cost_profile(rates),
            **rates,
        ))
    return result


def calc_cost_efficiency(team: list[TeamContributionRecord],
                         name_to_id: Optional[dict[str, str]] = None) -> list[CostEfficiency]:
    result = []
    for r in team:
        sales = r.sales.actual
        if sales <= 0:
            continue
        sga_variable = _lines(r, SGA_VARIABLE_LINES) + r.direct_selling_freight.actual
        result.append(CostEfficiency(
            rep=(name_to_id or {}).get(r.employee_id, r.employee_id),
            org=r.org_team,
            sales=sales,
            raw_material_rate=pct(r.line("제조변동_원재료비").actual, sales),
            purchase_rate=pct(r.line("변동_상품매입").actual, sales),
            outsourcing_rate=pct(r.line("제조변동_외주가공비").actual, sales),
            variable_cost_rate=pct(sga_variable, sales),
            mfg_variable_cost_rate=pct(_lines(r, MFG_VARIABLE_LINES), sales),
            fixed_cost_rate=pct(_lines(r, SGA_FIXED_LINES), sales),
            contribution_margin_rate=r.contribution_margin_rate.actual,
            operating_margin_rate=r.operating_margin_rate.actual,
        ))
    return result

"""
Profitability by product, customer and product × customer, CO-PA style
price / volume / mix variance, and the org profit × receivable-risk matrix.
"""

from dataclasses import dataclass

from erpsight.metrics.aggregation import clamp, pct
from erpsight.metrics.receivables import OVERDUE_BUCKETS
from erpsight.records.models import OrgProfitRecord, ProfitabilityRecord, ReceivableAgingRecord, SalesRecord
from erpsight.utils.orgs import fuzzy_match_org

MARGIN_BENCHMARK = 5     # operating margin reference line (%)
RISK_BENCHMARK = 40      # risk score reference line

QUADRANTS = [
    ("star", "스타", "핵심 조직으로 투자 확대 및 성과 유지"),
    ("cash_cow", "안정형", "수익성 개선을 위한 원가 절감 및 고부가가치 전환"),
    ("problem_child", "주의 필요", "미수금 관리 강화 및 여신 한도 재검토"),
    ("dog", "위험", "수익성 개선과 미수금 회수 동시 추진 필요"),
]


# ── Data structures ───────────────────────────────────────────────────────────

@dataclass
class ProductProfitability:
    product: str
    sales: float
    cost: float
    gross_profit: float
    gross_margin: float
    operating_profit: float
    operating_margin: float


@dataclass
class CustomerProfitability:
    customer: str
    sales: float
    gross_profit: float
    gross_margin: float
    operating_profit: float
    operating_margin: float
    product_count: int


@dataclass
class ProfitabilityCell:
    customer: str
    product: str
    sales: float
    gross_profit: float
    gross_margin: float


@dataclass
class MarginErosionItem:
    code: str
    name: str
    dimension: str           # 'product', 'customer'
    planned_margin: float
    actual_margin: float
    erosion: float           # actual − planned, negative = worse
    sales: float
    impact_amount: float     # sales × erosion, estimated profit effect


@dataclass
class OrgProductSummary:
    org: str
    total_sales: float
    total_gross_profit: float
    gross_margin: float
    product_count: int
    customer_count: int
    top_product: str
    top_customer: str
    domestic_ratio: float


@dataclass
class VarianceItem:
    org: str
    customer: str
    product: str
    plan_qty: float
    actual_qty: float
    plan_amount: float
    actual_amount: float
    plan_price: float
    actual_price: float
    total_variance: float
    price_variance: float
    volume_variance: float
    mix_variance: float


@dataclass
class VarianceSummary:
    total_variance: float = 0.0
    price_variance: float = 0.0
    volume_variance: float = 0.0
    mix_variance: float = 0.0
    item_count: int = 0


@dataclass
class OrgVarianceSummary:
    org: str
    total_variance: float = 0.0
    price_variance: float = 0.0
    volume_variance: float = 0.0
    mix_variance: float = 0.0


@dataclass
class ProfitRiskPoint:
    name: str
    profit_margin: float
    risk_score: float        # 0-100
    risk_grade: str          # 'low', 'medium', 'high'
    sales: float
    receivables: float
    quadrant: str            # 'star', 'cash_cow', 'problem_child', 'dog'


@dataclass
class QuadrantSummary:
    name: str
    korean_name: str
    count: int
    total_sales: float
    recommendation: str


# ── Profitability ─────────────────────────────────────────────────────────────

def calc_product_profitability(data: list[ProfitabilityRecord]) -> list[ProductProfitability]:
    totals: dict[str, list[float]] = {}
    for r in data:
        if not r.item:
            continue
        t = totals.setdefault(r.item, [0.0, 0.0, 0.0, 0.0])
        t[0] += r.sales.actual
        t[1] += r.cost.actual
        t[2] += r.gross_profit.actual
        t[3] += r.operating_profit.actual

    result = [
        ProductProfitability(product, sales, cost, gp, pct(gp, sales), op, pct(op, sales))
        for product, (sales, cost, gp, op) in totals.items()
    ]
    return sorted(result, key=lambda p: p.sales, reverse=True)


def calc_customer_profitability(data: list[ProfitabilityRecord]) -> list[CustomerProfitability]:
    totals: dict[str, dict] = {}
    for r in data:
        if not r.customer:
            continue
        t = totals.setdefault(r.customer, {"sales": 0.0, "gp": 0.0, "op": 0.0, "products": set()})
        t["sales"] += r.sales.actual
        t["gp"] += r.gross_profit.actual
        t["op"] += r.operating_profit.actual
        if r.item:
            t["products"].add(r.item)

    result = [
        CustomerProfitability(customer, t["sales"], t["gp"], pct(t["gp"], t["sales"]),
                              t["op"], pct(t["op"], t["sales"]), len(t["products"]))
        for customer, t in totals.items()
    ]
    return sorted(result, key=lambda c: c.sales, reverse=True)


def calc_profitability_matrix(data: list[ProfitabilityRecord]) -> list[ProfitabilityCell]:
    cells: dict[tuple[str, str], list[float]] = {}
    for r in data:
        if not r.customer or not r.item:
            continue
        c = cells.setdefault((r.customer, r.item), [0.0, 0.0])
        c[0] += r.sales.actual
        c[1] += r.gross_profit.actual

    result = [
        ProfitabilityCell(customer, product, sales, gp, pct(gp, sales))
        for (customer, product), (sales, gp) in cells.items()
    ]
    return sorted(result, key=lambda c: c.sales, reverse=True)


def calc_margin_erosion(data: list[ProfitabilityRecord], dimension: str = "product",
                        top_n: int = 20) -> list[MarginErosionItem]:
    """
    Planned vs actual gross margin per product or customer, worst estimated
    profit impact first. A side with zero sales counts as a 0% margin, so
    unplanned items still show up.
    """
    totals: dict[str, dict] = {}
    for r in data:
        if dimension == "product":
            code, name = r.item, r.item_name
        else:
            code, name = r.customer, r.customer_name
        if not code:
            continue
        t = totals.setdefault(code, {"name": name or code, "sales_plan": 0.0, "sales": 0.0,
                                     "gp_plan": 0.0, "gp": 0.0})
        t["sales_plan"] += r.sales.plan
        t["sales"] += r.sales.actual
        t["gp_plan"] += r.gross_profit.plan
        t["gp"] += r.gross_profit.actual

    items = []
    for code, t in totals.items():
        planned = pct(t["gp_plan"], t["sales_plan"])
        actual = pct(t["gp"], t["sales"])
        erosion = actual - planned
        items.append(MarginErosionItem(code, t["name"], dimension, planned, actual, erosion,
                                       t["sales"], t["sales"] * erosion / 100))
    return sorted(items, key=lambda i: i.impact_amount)[:top_n]


def calc_org_product_summary(data: list[ProfitabilityRecord]) -> list[OrgProductSummary]:
    orgs: dict[str, dict] = {}
    for r in data:
        if not r.org_team:
            continue
        o = orgs.setdefault(r.org_team, {"sales": 0.0, "gp": 0.0, "domestic": 0.0, "products": {}, "customers": {}})
        sales = r.sales.actual
        o["sales"] += sales
        o["gp"] += r.gross_profit.actual
        o["domestic"] += r.domestic_sales.actual
        if r.item:
            o["products"].setdefault(r.item, [r.display_item, 0.0])[1] += sales
        if r.customer:
            o["customers"].setdefault(r.customer, [r.display_customer, 0.0])[1] += sales

    def top_name(entries: dict[str, list]) -> str:
        return max(entries.values(), key=lambda e: e[1])[0] if entries else ""

    result = [
        OrgProductSummary(org, o["sales"], o["gp"], pct(o["gp"], o["sales"]), len(o["products"]),
                          len(o["customers"]), top_name(o["products"]), top_name(o["customers"]),
                          pct(o["domestic"], o["sales"]))
        for org, o in orgs.items()
    ]
    return sorted(result, key=lambda o: o.total_sales, reverse=True)


# ── Price / volume / mix variance ─────────────────────────────────────────────

def calc_variance_analysis(data: list[ProfitabilityRecord]) -> list[VarianceItem]:
    """
    Split each row's sales variance into:
      price  = (actual price − plan price) × actual qty
      volume = (actual qty − plan qty) × plan price
      mix    = total − price − volume
    Rows with no plan and no actual quantity are skipped.
    """
    items = []
    for r in data:
        plan_qty = r.quantity.plan
        actual_qty = r.quantity.actual
        if plan_qty == 0 and actual_qty == 0:
            continue
        plan_amount = r.sales.plan
        actual_amount = r.sales.actual
        plan_price = plan_amount / plan_qty if plan_qty != 0 else 0.0
        actual_price = actual_amount / actual_qty if actual_qty != 0 else 0.0

        total = actual_amount - plan_amount
        price = (actual_price - plan_price) * actual_qty
        volume = (actual_qty - plan_qty) * plan_price
        items.append(VarianceItem(
            org=r.org_team,
            customer=r.customer,
            product=r.item,
            plan_qty=plan_qty,
            actual_qty=actual_qty,
            plan_amount=plan_amount,
            actual_amount=actual_amount,
            plan_price=plan_price,
            actual_price=actual_price,
            total_variance=total,
            price_variance=price,
            volume_variance=volume,
            mix_variance=total - price - volume,
        ))
    return items


def calc_variance_summary(items: list[VarianceItem]) -> VarianceSummary:
    return VarianceSummary(
        total_variance=sum(i.total_variance for i in items),
        price_variance=sum(i.price_variance for i in items),
        volume_variance=sum(i.volume_variance for i in items),
        mix_variance=sum(i.mix_variance for i in items),
        item_count=len(items),
    )


def calc_org_variance_summaries(items: list[VarianceItem]) -> list[OrgVarianceSummary]:
    orgs: dict[str, OrgVarianceSummary] = {}
    for i in items:
        if not i.org:
            continue
        o = orgs.setdefault(i.org, OrgVarianceSummary(i.org))
        o.total_variance += i.total_variance
        o.price_variance += i.price_variance
        o.volume_variance += i.volume_variance
        o.mix_variance += i.mix_variance
    return sorted(orgs.values(), key=lambda o: abs(o.total_variance), reverse=True)


# ── Profit × risk matrix ──────────────────────────────────────────────────────

def classify_quadrant(profit_margin: float, risk_score: float) -> str:
    high_profit = profit_margin >= MARGIN_BENCHMARK
    high_risk = risk_score >= RISK_BENCHMARK
    if high_profit and not high_risk:
        return "star"
    if not high_profit and not high_risk:
        return "cash_cow"
    if high_profit:
        return "problem_child"
    return "dog"


def classify_risk_score(risk_score: float) -> str:
    if risk_score >= 60:
        return "high"
    if risk_score >= 30:
        return "medium"
    return "low"


def calc_org_risk_scores(receivables: list[ReceivableAgingRecord]) -> dict[str, tuple[float, float]]:
    """{org: (risk score, total receivables)}; the score is the 90-day+ share of receivables, 0-100."""
    totals: dict[str, list[float]] = {}
    for r in receivables:
        if not r.org:
            continue
        t = totals.setdefault(r.org, [0.0, 0.0])
        t[0] += r.total.book
        t[1] += sum(r.bucket(b).book for b in OVERDUE_BUCKETS)
    return {
        org: (clamp(long_term / total * 100, 0, 100) if total > 0 else 0.0, total)
        for org, (total, long_term) in totals.items()
    }


def calc_profit_risk_matrix(
    org_profit: list[OrgProfitRecord],
    receivables: list[ReceivableAgingRecord],
    sales: list[SalesRecord],
) -> list[ProfitRiskPoint]:
    risk_scores = calc_org_risk_scores(receivables)
    org_sales: dict[str, float] = {}
    for s in sales:
        if s.org:
            org_sales[s.org] = org_sales.get(s.org, 0.0) + s.book_amount

    points = []
    for r in org_profit:
        if not r.org_team or r.sales.actual == 0:
            continue
        margin = r.operating_margin_rate.actual
        risk_score, receivable_total = fuzzy_match_org(risk_scores, r.org_team) or (0.0, 0.0)
        matched_sales = fuzzy_match_org(org_sales, r.org_team)
        points.append(ProfitRiskPoint(
            name=r.org_team,
            profit_margin=margin,
            risk_score=risk_score,
            risk_grade=classify_risk_score(risk_score),
            sales=matched_sales if matched_sales is not None else r.sales.actual,
            receivables=receivable_total,
            quadrant=classify_quadrant(margin, risk_score),
        ))
    return points


def calc_quadrant_summary(points: list[ProfitRiskPoint]) -> list[QuadrantSummary]:
    summaries = []
    for key, korean_name, recommendation in QUADRANTS:
        members = [p for p in points if p.quadrant == key]
        summaries.append(QuadrantSummary(key, korean_name, len(members), sum(p.sales for p in members),
                                         recommendation))
    return summaries

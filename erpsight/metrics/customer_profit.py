"""
Customer profitability by customer classification: a 대분류 → 중분류 → 소분류
→ customer tree, sales concentration (HHI on the 0~10,000 scale), customer
ranking and a per-segment summary.
"""

from dataclasses import dataclass, field

from erpsight.metrics.aggregation import pct
from erpsight.metrics.segmentation import HHI_POINTS
from erpsight.records.models import ProfitabilityRecord

UNCLASSIFIED = "(미분류)"
ROOT_NAME = "전체"

HHI_HIGH_POINTS = 2500
HHI_MEDIUM_POINTS = 1500

RANKING_METRICS = {
    "sales": lambda c: c.sales,
    "gross_profit": lambda c: c.gross_profit,
    "operating_profit": lambda c: c.operating_profit,
}

HIERARCHY_LEVELS = [
    lambda r: r.customer_category or UNCLASSIFIED,
    lambda r: r.customer_mid_category or UNCLASSIFIED,
    lambda r: r.customer_sub_category or UNCLASSIFIED,
    lambda r: r.customer_name or UNCLASSIFIED,
]


@dataclass
class CustomerHierarchyNode:
    name: str
    value: float                 # actual sales
    gross_profit: float
    operating_profit: float
    gross_margin: float
    op_margin: float
    children: list["CustomerHierarchyNode"] = field(default_factory=list)


@dataclass
class CustomerConcentration:
    hhi: float = 0.0             # 0~10,000
    top5_share: float = 0.0
    top10_share: float = 0.0
    total_customers: int = 0
    interpretation: str = "낮은 집중도"


@dataclass
class CustomerRanking:
    customer: str
    customer_name: str
    org: str
    category: str
    sales: float
    gross_profit: float
    operating_profit: float
    gross_margin: float
    op_margin: float
    plan_achievement: float


@dataclass
class CustomerSegmentSummary:
    segment: str
    customer_count: int
    total_sales: float
    total_gross_profit: float
    total_operating_profit: float
    avg_gross_margin: float
    avg_op_margin: float
    sales_share: float


# ── Hierarchy ─────────────────────────────────────────────────────────────────

def _node(name: str, records: list[ProfitabilityRecord], levels) -> CustomerHierarchyNode:
    children = []
    if levels:
        groups: dict[str, list[ProfitabilityRecord]] = {}
        for r in records:
            groups.setdefault(levels[0](r), []).append(r)
        children = [_node(key, recs, levels[1:]) for key, recs in groups.items()]
    sales = sum(r.sales.actual for r in records)
    gp = sum(r.gross_profit.actual for r in records)
    op = sum(r.operating_profit.actual for r in records)
    return CustomerHierarchyNode(name, sales, gp, op, pct(gp, sales), pct(op, sales), children)


def calc_customer_hierarchy(data: list[ProfitabilityRecord]) -> CustomerHierarchyNode:
    """Tree rooted at "전체"; blank classification levels are grouped under "(미분류)"."""
    return _node(ROOT_NAME, data, HIERARCHY_LEVELS)


# ── Concentration ─────────────────────────────────────────────────────────────

def interpret_hhi_points(hhi: float) -> str:
    if hhi > HHI_HIGH_POINTS:
        return "높은 집중도"
    if hhi >= HHI_MEDIUM_POINTS:
        return "보통 집중도"
    return "낮은 집중도"


def calc_customer_concentration(data: list[ProfitabilityRecord]) -> CustomerConcentration:
    totals: dict[str, float] = {}
    for r in data:
        if r.customer:
            totals[r.customer] = totals.get(r.customer, 0.0) + r.sales.actual
    total = sum(totals.values())
    if total == 0 or not totals:
        return CustomerConcentration(total_customers=len(totals))

    ranked = sorted(totals.values(), reverse=True)
    hhi = sum((s / total) ** 2 for s in ranked) * HHI_POINTS
    return CustomerConcentration(
        hhi=hhi,
        top5_share=sum(ranked[:5]) / total * 100,
        top10_share=sum(ranked[:10]) / total * 100,
        total_customers=len(totals),
        interpretation=interpret_hhi_points(hhi),
    )


# ── Ranking / segments ────────────────────────────────────────────────────────

def calc_customer_ranking(data: list[ProfitabilityRecord], sort_by: str = "sales") -> list[CustomerRanking]:
    """Customers summed across orgs; the first non-empty org and category are kept."""
    customers: dict[str, dict] = {}
    for r in data:
        if not r.customer:
            continue
        c = customers.setdefault(r.customer, {"name": r.customer_name or r.customer, "org": "", "category": "",
                                              "sales": 0.0, "gp": 0.0, "op": 0.0, "plan": 0.0})
        c["sales"] += r.sales.actual
        c["gp"] += r.gross_profit.actual
        c["op"] += r.operating_profit.actual
        c["plan"] += r.sales.plan
        c["org"] = c["org"] or r.org_team
        c["category"] = c["category"] or r.customer_category

    result = [
        CustomerRanking(code, c["name"], c["org"], c["category"], c["sales"], c["gp"], c["op"],
                        pct(c["gp"], c["sales"]), pct(c["op"], c["sales"]), pct(c["sales"], c["plan"]))
        for code, c in customers.items()
    ]
    return sorted(result, key=RANKING_METRICS[sort_by], reverse=True)


def calc_customer_segments(data: list[ProfitabilityRecord]) -> list[CustomerSegmentSummary]:
    segments: dict[str, dict] = {}
    for r in data:
        s = segments.setdefault(r.customer_category or UNCLASSIFIED,
                                {"customers": set(), "sales": 0.0, "gp": 0.0, "op": 0.0})
        if r.customer:
            s["customers"].add(r.customer)
        s["sales"] += r.sales.actual
        s["gp"] += r.gross_profit.actual
        s["op"] += r.operating_profit.actual

    grand_total = sum(s["sales"] for s in segments.values())
    result = [
        CustomerSegmentSummary(segment, len(s["customers"]), s["sales"], s["gp"], s["op"],
                               pct(s["gp"], s["sales"]), pct(s["op"], s["sales"]), pct(s["sales"], grand_total))
        for segment, s in segments.items()
    ]
    return sorted(result, key=lambda s: s.total_sales, reverse=True)

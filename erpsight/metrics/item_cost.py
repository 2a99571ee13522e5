"""
Product-level manufacturing cost analysis.

Cost lines are keyed by their Korean category name on ItemCostRecord.cost_lines.
The two subtotal rows (제조변동비소계, 제조고정비소계) are shown in variance
tables but never summed into totals or counts, or the categories under them
would be counted twice.
"""

from dataclasses import dataclass, field

from erpsight.metrics.aggregation import pct
from erpsight.metrics.segmentation import grade_by_cum_share
from erpsight.records.models import ItemCostRecord

VARIABLE_COST_CATEGORIES = [
    "원재료비", "부재료비", "상품매입", "노무비", "복리후생비",
    "소모품비", "수도광열비", "수선비", "연료비", "외주가공비",
    "운반비", "전력비", "지급수수료", "견본비",
]
FIXED_COST_CATEGORIES = ["제조고정노무비", "감가상각비", "기타경비"]
COST_CATEGORIES = VARIABLE_COST_CATEGORIES + FIXED_COST_CATEGORIES

VARIABLE_SUBTOTAL = "제조변동비소계"
FIXED_SUBTOTAL = "제조고정비소계"
SUBTOTAL_CATEGORIES = {VARIABLE_SUBTOTAL, FIXED_SUBTOTAL}
COST_CATEGORIES_WITH_SUBTOTAL = (
    VARIABLE_COST_CATEGORIES + [VARIABLE_SUBTOTAL] + FIXED_COST_CATEGORIES + [FIXED_SUBTOTAL]
)

COST_BUCKETS = {
    "재료비": ["원재료비", "부재료비"],
    "상품매입비": ["상품매입"],
    "인건비": ["노무비", "복리후생비", "제조고정노무비"],
    "설비비": ["수도광열비", "전력비", "연료비", "감가상각비"],
    "외주비": ["외주가공비"],
    "물류비": ["운반비"],
    "일반경비": ["소모품비", "수선비", "지급수수료", "견본비", "기타경비"],
}

# first match wins, otherwise 혼합형
PROFILE_RULES = [
    ("상품매입비", 50, "구매직납형"),
    ("재료비", 40, "자체생산형"),
    ("외주비", 35, "외주의존형"),
    ("인건비", 35, "인건비집중형"),
    ("설비비", 30, "설비집중형"),
]
MIXED_PROFILE = "혼합형"

LOW_CONTRIBUTION_RATE = 15

WATERFALL_COLORS = {
    "revenue": "#2E86DE",
    "cost": "#E74C3C",
    "subtotal_positive": "#27AE60",
    "subtotal_negative": "#E74C3C",
    "fixed": "#E67E22",
}


# ── Data structures ───────────────────────────────────────────────────────────

@dataclass
class ItemCostSummary:
    product_count: int = 0
    total_sales: float = 0.0
    total_cost: float = 0.0
    avg_gross_margin: float = 0.0
    avg_contribution_rate: float = 0.0
    top_cost_category: str = "-"
    top_cost_amount: float = 0.0
    top_cost_ratio: float = 0.0


@dataclass
class CostCategoryVariance:
    category: str
    plan: float
    actual: float
    variance: float
    variance_pct: float
    is_over_budget: bool
    is_subtotal: bool
    contribution_to_total: float = 0.0


@dataclass
class CostVarianceSummary:
    categories: list[CostCategoryVariance] = field(default_factory=list)
    total_plan_cost: float = 0.0
    total_actual_cost: float = 0.0
    total_variance: float = 0.0
    total_variance_pct: float = 0.0
    over_budget_count: int = 0


@dataclass
class ProductContribution:
    rank: int
    product: str
    org: str
    sales: float
    variable_cost: float
    fixed_cost: float
    contribution_margin: float
    contribution_rate: float
    gross_profit: float
    gross_margin: float
    cum_share: float
    grade: str


@dataclass
class TeamCostEfficiency:
    team: str
    total_sales: float
    total_cost: float
    cost_rate: float
    gross_margin: float
    contribution_rate: float
    product_count: int
    bucket_ratios: dict[str, float] = field(default_factory=dict)


@dataclass
class WaterfallItem:
    name: str
    base: float
    value: float
    fill: str
    type: str                # 'start', 'decrease', 'subtotal'


@dataclass
class CostBucketItem:
    name: str
    amount: float
    ratio: float = 0.0


@dataclass
class ItemVarianceEntry:
    product: str
    org: str
    plan_cost: float
    actual_cost: float
    variance: float
    variance_pct: float
    margin_drift: float


@dataclass
class ItemCostProfile:
    product: str
    org: str
    profile_type: str
    dominant_bucket: str
    dominant_ratio: float
    sales: float
    total_cost: float


@dataclass
class CostProfileDistribution:
    type: str
    count: int
    total_sales: float
    avg_cost_rate: float


@dataclass
class UnitCostEntry:
    product: str
    org: str
    plan_unit_price: float
    actual_unit_price: float
    plan_unit_cost: float
    actual_unit_cost: float
    plan_unit_contrib: float
    actual_unit_contrib: float
    price_drift: float
    cost_drift: float
    quantity: float


@dataclass
class CostDriverEntry:
    category: str
    cost_share: float
    variance_pct: float
    impact_score: float
    direction: str           # 'increase', 'decrease', 'neutral'
    plan: float
    actual: float


# ── Helpers ───────────────────────────────────────────────────────────────────

def _actual(r: ItemCostRecord, categories) -> float:
    return sum(r.line(c).actual for c in categories)


def _plan(r: ItemCostRecord, categories) -> float:
    return sum(r.line(c).plan for c in categories)


def _bucket_amounts(r: ItemCostRecord) -> dict[str, float]:
    return {bucket: _actual(r, cats) for bucket, cats in COST_BUCKETS.items()}


def _change_pct(actual: float, plan: float) -> float:
    return (actual - plan) / abs(plan) * 100 if plan != 0 else 0.0


def _by_product(data: list[ItemCostRecord]) -> dict[tuple[str, str], list[ItemCostRecord]]:
    groups: dict[tuple[str, str], list[ItemCostRecord]] = {}
    for r in data:
        groups.setdefault((r.org_team, r.product), []).append(r)
    return groups


def classify_item_profile(bucket_ratios: dict[str, float]) -> str:
    for bucket, threshold, profile in PROFILE_RULES:
        if bucket_ratios.get(bucket, 0.0) >= threshold:
            return profile
    return MIXED_PROFILE


# ── Calculators ───────────────────────────────────────────────────────────────

def calc_item_cost_summary(data: list[ItemCostRecord]) -> ItemCostSummary:
    if not data:
        return ItemCostSummary()
    total_sales = sum(r.sales.actual for r in data)
    total_cost = sum(r.cogs.actual for r in data)
    total_gp = sum(r.gross_profit.actual for r in data)
    total_variable = sum(_actual(r, VARIABLE_COST_CATEGORIES) for r in data)

    top_category, top_amount = COST_CATEGORIES[0], 0.0
    for category in COST_CATEGORIES:
        amount = sum(r.line(category).actual for r in data)
        if amount > top_amount:
            top_category, top_amount = category, amount

    return ItemCostSummary(
        product_count=len({r.product for r in data}),
        total_sales=total_sales,
        total_cost=total_cost,
        avg_gross_margin=total_gp / total_sales * 100 if total_sales > 0 else 0.0,
        avg_contribution_rate=(total_sales - total_variable) / total_sales * 100 if total_sales > 0 else 0.0,
        top_cost_category=top_category,
        top_cost_amount=top_amount,
        top_cost_ratio=top_amount / total_cost * 100 if total_cost > 0 else 0.0,
    )


def calc_cost_category_variance(data: list[ItemCostRecord]) -> CostVarianceSummary:
    """Plan vs actual per cost category, subtotal rows listed but excluded from totals."""
    if not data:
        return CostVarianceSummary()

    categories = []
    for category in COST_CATEGORIES_WITH_SUBTOTAL:
        plan = sum(r.line(category).plan for r in data)
        actual = sum(r.line(category).actual for r in data)
        categories.append(CostCategoryVariance(
            category=category,
            plan=plan,
            actual=actual,
            variance=actual - plan,
            variance_pct=_change_pct(actual, plan),
            is_over_budget=actual > plan,
            is_subtotal=category in SUBTOTAL_CATEGORIES,
        ))
    categories.sort(key=lambda c: abs(c.variance), reverse=True)

    independent = [c for c in categories if not c.is_subtotal]
    total_plan = sum(c.plan for c in independent)
    total_actual = sum(c.actual for c in independent)
    total_variance = total_actual - total_plan
    for c in categories:
        c.contribution_to_total = c.variance / abs(total_variance) * 100 if total_variance != 0 else 0.0

    return CostVarianceSummary(
        categories=categories,
        total_plan_cost=total_plan,
        total_actual_cost=total_actual,
        total_variance=total_variance,
        total_variance_pct=_change_pct(total_actual, total_plan),
        over_budget_count=sum(1 for c in independent if c.is_over_budget),
    )


def calc_product_contribution_ranking(data: list[ItemCostRecord]) -> list[ProductContribution]:
    """
    ABC on contribution margin rather than sales. A contribution rate under
    15% demotes one grade (A→B, B→C); non-positive sales or contribution is
    always C and ranked after the rest.
    """
    items = []
    for (org, product), records in _by_product(data).items():
        sales = sum(r.sales.actual for r in records)
        variable = sum(_actual(r, VARIABLE_COST_CATEGORIES) for r in records)
        gp = sum(r.gross_profit.actual for r in records)
        items.append({
            "product": product, "org": org, "sales": sales, "variable": variable,
            "fixed": sum(_actual(r, FIXED_COST_CATEGORIES) for r in records),
            "gp": gp, "cm": sales - variable,
        })

    positive = sorted((i for i in items if i["sales"] > 0 and i["cm"] > 0), key=lambda i: i["cm"], reverse=True)
    negative = sorted((i for i in items if i["sales"] <= 0 or i["cm"] <= 0), key=lambda i: i["cm"])
    positive_total = sum(i["cm"] for i in positive)

    def build(rank: int, item: dict, cum_share: float, grade: str) -> ProductContribution:
        return ProductContribution(
            rank=rank, product=item["product"], org=item["org"], sales=item["sales"],
            variable_cost=item["variable"], fixed_cost=item["fixed"],
            contribution_margin=item["cm"], contribution_rate=pct(item["cm"], item["sales"]),
            gross_profit=item["gp"], gross_margin=pct(item["gp"], item["sales"]),
            cum_share=cum_share, grade=grade,
        )

    result = []
    running = 0.0
    for idx, item in enumerate(positive):
        running += item["cm"]
        cum_share = running / positive_total * 100 if positive_total > 0 else 0.0
        grade = grade_by_cum_share(cum_share)
        if pct(item["cm"], item["sales"]) < LOW_CONTRIBUTION_RATE:
            grade = {"A": "B", "B": "C"}.get(grade, grade)
        result.append(build(idx + 1, item, cum_share, grade))
    for idx, item in enumerate(negative):
        result.append(build(len(positive) + idx + 1, item, 100.0, "C"))
    return result


def calc_team_cost_efficiency(data: list[ItemCostRecord]) -> list[TeamCostEfficiency]:
    teams: dict[str, dict] = {}
    for r in data:
        t = teams.setdefault(r.org_team, {"sales": 0.0, "cost": 0.0, "gp": 0.0, "variable": 0.0,
                                          "products": set(), "buckets": dict.fromkeys(COST_BUCKETS, 0.0)})
        t["sales"] += r.sales.actual
        t["cost"] += r.cogs.actual
        t["gp"] += r.gross_profit.actual
        t["variable"] += _actual(r, VARIABLE_COST_CATEGORIES)
        t["products"].add(r.product)
        for bucket, amount in _bucket_amounts(r).items():
            t["buckets"][bucket] += amount

    result = []
    for team, t in teams.items():
        bucket_total = sum(t["buckets"].values())
        result.append(TeamCostEfficiency(
            team=team,
            total_sales=t["sales"],
            total_cost=t["cost"],
            cost_rate=pct(t["cost"], t["sales"]),
            gross_margin=pct(t["gp"], t["sales"]),
            contribution_rate=pct(t["sales"] - t["variable"], t["sales"]),
            product_count=len(t["products"]),
            bucket_ratios={b: (a / bucket_total * 100 if bucket_total > 0 else 0.0) for b, a in t["buckets"].items()},
        ))
    return sorted(result, key=lambda t: t.total_sales, reverse=True)


def calc_contribution_waterfall(data: list[ItemCostRecord]) -> list[WaterfallItem]:
    """Sales → variable cost → contribution margin → fixed cost → gross profit bars."""
    if not data:
        return []
    sales = sum(r.sales.actual for r in data)
    variable = sum(_actual(r, VARIABLE_COST_CATEGORIES) for r in data)
    fixed = sum(_actual(r, FIXED_COST_CATEGORIES) for r in data)
    gp = sum(r.gross_profit.actual for r in data)
    cm = sales - variable

    def subtotal_fill(value: float) -> str:
        return WATERFALL_COLORS["subtotal_positive"] if value >= 0 else WATERFALL_COLORS["subtotal_negative"]

    return [
        WaterfallItem("매출액", min(0.0, sales), abs(sales), WATERFALL_COLORS["revenue"], "start"),
        WaterfallItem("변동비", min(sales, cm), abs(variable), WATERFALL_COLORS["cost"], "decrease"),
        WaterfallItem("공헌이익", min(0.0, cm), abs(cm), subtotal_fill(cm), "subtotal"),
        WaterfallItem("고정비", min(cm, gp), abs(fixed), WATERFALL_COLORS["fixed"], "decrease"),
        WaterfallItem("매출총이익", min(0.0, gp), abs(gp), subtotal_fill(gp), "subtotal"),
    ]


def calc_cost_bucket_breakdown(data: list[ItemCostRecord]) -> list[CostBucketItem]:
    if not data:
        return []
    buckets = [CostBucketItem(b, sum(_actual(r, cats) for r in data)) for b, cats in COST_BUCKETS.items()]
    total = sum(b.amount for b in buckets)
    for b in buckets:
        b.ratio = b.amount / total * 100 if total > 0 else 0.0
    return sorted(buckets, key=lambda b: b.amount, reverse=True)


def calc_item_variance_ranking(data: list[ItemCostRecord], top_n: int = 15) -> list[ItemVarianceEntry]:
    result = []
    for (org, product), records in _by_product(data).items():
        plan_cost = sum(_plan(r, COST_CATEGORIES) for r in records)
        actual_cost = sum(_actual(r, COST_CATEGORIES) for r in records)
        plan_sales = sum(r.sales.plan for r in records)
        actual_sales = sum(r.sales.actual for r in records)
        plan_margin = (plan_sales - plan_cost) / plan_sales * 100 if plan_sales > 0 else 0.0
        actual_margin = (actual_sales - actual_cost) / actual_sales * 100 if actual_sales > 0 else 0.0
        result.append(ItemVarianceEntry(product, org, plan_cost, actual_cost, actual_cost - plan_cost,
                                        _change_pct(actual_cost, plan_cost), actual_margin - plan_margin))
    result.sort(key=lambda e: abs(e.variance), reverse=True)
    return result[:top_n]


def calc_item_cost_profile(data: list[ItemCostRecord]) -> tuple[list[ItemCostProfile], list[CostProfileDistribution]]:
    """Classify each product's cost structure and tally the profile distribution."""
    items = []
    for (org, product), records in _by_product(data).items():
        buckets = dict.fromkeys(COST_BUCKETS, 0.0)
        for r in records:
            for bucket, amount in _bucket_amounts(r).items():
                buckets[bucket] += amount
        bucket_total = sum(buckets.values())
        ratios = {b: (a / bucket_total * 100 if bucket_total > 0 else 0.0) for b, a in buckets.items()}

        dominant, dominant_amount = "재료비", 0.0
        for bucket, amount in buckets.items():
            if amount > dominant_amount:
                dominant, dominant_amount = bucket, amount

        items.append(ItemCostProfile(
            product=product,
            org=org,
            profile_type=classify_item_profile(ratios),
            dominant_bucket=dominant,
            dominant_ratio=ratios[dominant],
            sales=sum(r.sales.actual for r in records),
            total_cost=sum(r.cogs.actual for r in records),
        ))

    tallies: dict[str, list] = {}
    for item in items:
        t = tallies.setdefault(item.profile_type, [0, 0.0, 0.0])
        t[0] += 1
        t[1] += item.sales
        t[2] += item.total_cost
    distribution = sorted(
        (CostProfileDistribution(kind, count, sales, cost / sales * 100 if sales > 0 else 0.0)
         for kind, (count, sales, cost) in tallies.items()),
        key=lambda d: d.count, reverse=True,
    )
    return items, distribution


def calc_unit_cost_analysis(data: list[ItemCostRecord], top_n: int = 30) -> list[UnitCostEntry]:
    result = []
    for (org, product), records in _by_product(data).items():
        actual_qty = sum(r.quantity.actual for r in records)
        if actual_qty <= 0:
            continue
        plan_qty = sum(r.quantity.plan for r in records)
        plan_price = sum(r.sales.plan for r in records) / plan_qty if plan_qty > 0 else 0.0
        plan_cost = sum(_plan(r, COST_CATEGORIES) for r in records) / plan_qty if plan_qty > 0 else 0.0
        actual_price = sum(r.sales.actual for r in records) / actual_qty
        actual_cost = sum(_actual(r, COST_CATEGORIES) for r in records) / actual_qty
        result.append(UnitCostEntry(
            product=product,
            org=org,
            plan_unit_price=plan_price,
            actual_unit_price=actual_price,
            plan_unit_cost=plan_cost,
            actual_unit_cost=actual_cost,
            plan_unit_contrib=plan_price - plan_cost,
            actual_unit_contrib=actual_price - actual_cost,
            price_drift=_change_pct(actual_price, plan_price),
            cost_drift=_change_pct(actual_cost, plan_cost),
            quantity=actual_qty,
        ))
    result.sort(key=lambda e: abs(e.actual_unit_contrib * e.quantity), reverse=True)
    return result[:top_n]


def calc_cost_driver_analysis(data: list[ItemCostRecord]) -> list[CostDriverEntry]:
    """Rank the 17 independent categories by cost share × |variance %|."""
    if not data:
        return []
    rows = [(c, sum(r.line(c).plan for r in data), sum(r.line(c).actual for r in data)) for c in COST_CATEGORIES]
    total_actual = sum(actual for _, _, actual in rows)

    result = []
    for category, plan, actual in rows:
        share = actual / total_actual * 100 if total_actual > 0 else 0.0
        variance_pct = _change_pct(actual, plan)
        if actual > plan:
            direction = "increase"
        elif actual < plan:
            direction = "decrease"
        else:
            direction = "neutral"
        result.append(CostDriverEntry(category, share, variance_pct, share * abs(variance_pct) / 100,
                                      direction, plan, actual))
    return sorted(result, key=lambda e: e.impact_score, reverse=True)

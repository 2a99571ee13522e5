"""
Sales-rep profiling: a weighted performance score per rep, monthly trend with
momentum, product portfolio mix, and receivable health as a score axis.

Sales and orders key reps by employee number; collections, team contribution
and aging exports key them by name. The name ↔ id map built from sales and
orders translates the name-keyed sources before they are joined.
"""

from dataclasses import dataclass, field
import logging
from typing import Optional

from erpsight.metrics.aggregation import clamp, pct
from erpsight.metrics.receivables import overdue_amount
from erpsight.metrics.segmentation import calc_customer_hhi
from erpsight.records.models import (
    CollectionRecord, OrderRecord, ProfitabilityRecord, ReceivableAgingRecord, SalesRecord, TeamContributionRecord,
)
from erpsight.utils.dates import extract_month

logger = logging.getLogger(__name__)

TOTAL_SCORE = 100
AXES = ["sales", "profit", "collection", "growth", "diversity"]
RECEIVABLE_MAX_SCORE = 20
TOP_CUSTOMERS = 5
TOP_PRODUCTS = 10
MOMENTUM_THRESHOLD = 0.1
UNKNOWN = "기타"


# ── Data structures ───────────────────────────────────────────────────────────

@dataclass
class ProfilingWeights:
    """Relative axis weights; unset axes default to an equal share. `growth` scores orders, `diversity` receivable health."""
    sales: Optional[float] = None
    profit: Optional[float] = None
    collection: Optional[float] = None
    growth: Optional[float] = None
    diversity: Optional[float] = None


@dataclass
class PerformanceScore:
    sales_score: float = 0.0
    order_score: float = 0.0
    profit_score: float = 0.0
    collection_score: float = 0.0
    receivable_score: float = 0.0
    total_score: float = 0.0
    rank: int = 0
    percentile: float = 0.0


@dataclass
class CustomerShareEntry:
    name: str
    amount: float
    share: float


@dataclass
class SalesRepProfile:
    id: str
    name: str
    org: str
    score: PerformanceScore
    sales_amount: float = 0.0
    order_amount: float = 0.0
    collection_amount: float = 0.0
    contribution_margin_rate: float = 0.0
    customer_count: int = 0
    item_count: int = 0
    hhi: float = 0.0
    hhi_risk_level: str = "low"
    top_customer_share: float = 0.0
    top_customers: list[CustomerShareEntry] = field(default_factory=list)


@dataclass
class PerformanceScoresResult:
    profiles: list[SalesRepProfile] = field(default_factory=list)
    id_to_name: dict[str, str] = field(default_factory=dict)
    name_to_id: dict[str, str] = field(default_factory=dict)


@dataclass
class MonthlyRepPoint:
    month: str
    sales: float = 0.0
    orders: float = 0.0
    collections: float = 0.0


@dataclass
class RepTrend:
    person_id: str
    name: str
    monthly: list[MonthlyRepPoint]
    avg_monthly_sales: float
    avg_monthly_orders: float
    avg_monthly_collections: float
    sales_mom: float                 # latest month-over-month %
    momentum: str                    # 'accelerating', 'stable', 'decelerating'


@dataclass
class ProductMixItem:
    product: str
    product_name: str
    product_group: str
    sales: float
    gross_profit: float
    gross_margin_rate: float
    share: float


@dataclass
class RepProductPortfolio:
    person_id: str
    product_mix: list[ProductMixItem]
    top_products: list[ProductMixItem]
    product_hhi: float               # 0~1
    avg_margin: float
    total_products: int
    total_product_groups: int


# ── Receivable axis ───────────────────────────────────────────────────────────

def calc_receivable_risk_score(records: list[ReceivableAgingRecord],
                               max_score: float = RECEIVABLE_MAX_SCORE) -> dict[str, float]:
    """
    Per-rep receivable health: (1 − 90-day+ share of receivables) × max_score.
    A rep whose receivables net to zero scores full marks.
    """
    totals: dict[str, list[float]] = {}
    for r in records:
        if not r.rep:
            continue
        t = totals.setdefault(r.rep, [0.0, 0.0])
        t[0] += r.total.book
        t[1] += overdue_amount(r)
    return {
        rep: max_score if total == 0 else clamp((1 - late / total) * max_score, 0, max_score)
        for rep, (total, late) in totals.items()
    }


# ── Performance scores ────────────────────────────────────────────────────────

def normalize_weights(weights: Optional[ProfilingWeights], total: float = TOTAL_SCORE) -> dict[str, float]:
    """Scale the axis weights so they sum to `total`; a non-positive sum falls back to equal weights."""
    equal = total / len(AXES)
    raw = {axis: getattr(weights, axis) if weights and getattr(weights, axis) is not None else equal
           for axis in AXES}
    weight_sum = sum(raw.values())
    if weight_sum <= 0:
        return dict.fromkeys(AXES, equal)
    return {axis: value * total / weight_sum for axis, value in raw.items()}


def build_rep_name_maps(sales: list[SalesRecord], orders: list[OrderRecord]) -> tuple[dict[str, str], dict[str, str]]:
    """(id → name, name → id). Sales win over orders; the first id seen for a name is kept."""
    id_to_name: dict[str, str] = {}
    name_to_id: dict[str, str] = {}
    for source, records in (("sales", sales), ("orders", orders)):
        for r in records:
            if not r.rep or not r.rep_name:
                continue
            existing = name_to_id.get(r.rep_name)
            if existing and existing != r.rep:
                logger.warning(f"Duplicate rep name {r.rep_name!r}: {existing} and {r.rep}")
            if source == "sales" or r.rep not in id_to_name:
                id_to_name[r.rep] = r.rep_name
            name_to_id.setdefault(r.rep_name, r.rep)
    return id_to_name, name_to_id


def calc_performance_scores(
    sales: list[SalesRecord],
    orders: list[OrderRecord],
    collections: list[CollectionRecord],
    team: list[TeamContributionRecord],
    receivables: Optional[list[ReceivableAgingRecord]] = None,
    weights: Optional[ProfilingWeights] = None,
) -> PerformanceScoresResult:
    """
    Score every rep out of 100 on sales, orders, contribution margin rate,
    collection rate and (when aging data is given) receivable health. Sales,
    orders and margin are scored relative to the best rep; the collection rate
    is capped at 100%. Without aging data the receivable axis is dropped and
    the other four are re-weighted to 100.
    """
    five_axis = bool(receivables)
    if not five_axis:
        base = weights or ProfilingWeights()
        weights = ProfilingWeights(base.sales, base.profit, base.collection, base.growth, 0)
    w = normalize_weights(weights)

    id_to_name, name_to_id = build_rep_name_maps(sales, orders)

    def to_id(key: str) -> str:
        return name_to_id.get(key, key)

    rep_sales: dict[str, dict] = {}
    for s in sales:
        if not s.rep:
            continue
        entry = rep_sales.setdefault(s.rep, {"name": s.rep_name, "org": s.org, "amount": 0.0,
                                             "customers": set(), "items": set()})
        entry["amount"] += s.book_amount
        if s.customer:
            entry["customers"].add(s.customer)
        if s.item:
            entry["items"].add(s.item)

    rep_orders: dict[str, float] = {}
    for o in orders:
        if o.rep:
            rep_orders[o.rep] = rep_orders.get(o.rep, 0.0) + o.book_amount

    rep_collections: dict[str, float] = {}
    for c in collections:
        if c.rep:
            rep_collections[to_id(c.rep)] = rep_collections.get(to_id(c.rep), 0.0) + c.book_amount

    contribution_rates = {to_id(t.employee_id): t.contribution_margin_rate.actual for t in team if t.employee_id}

    receivable_scores: dict[str, float] = {}
    if five_axis:
        for rep, score in calc_receivable_risk_score(receivables, w["diversity"]).items():
            receivable_scores[to_id(rep)] = score

    hhi = calc_customer_hhi(sales)

    max_sales = max([1.0] + [e["amount"] for e in rep_sales.values()])
    max_orders = max([1.0] + list(rep_orders.values()))
    max_rate = max([1.0] + list(contribution_rates.values()))

    profiles = []
    for rep in dict.fromkeys([*rep_sales, *rep_orders, *rep_collections]):
        s = rep_sales.get(rep)
        sales_amount = s["amount"] if s else 0.0
        order_amount = rep_orders.get(rep, 0.0)
        collection_amount = rep_collections.get(rep, 0.0)
        rate = contribution_rates.get(rep, 0.0)
        collection_rate = collection_amount / sales_amount if sales_amount > 0 else 0.0

        score = PerformanceScore(
            sales_score=sales_amount / max_sales * w["sales"],
            order_score=order_amount / max_orders * w["growth"],
            profit_score=rate / max_rate * w["profit"] if max_rate > 0 else 0.0,
            collection_score=min(collection_rate, 1.0) * w["collection"],
            receivable_score=receivable_scores.get(rep, w["diversity"]) if five_axis else 0.0,
        )
        score.total_score = (score.sales_score + score.order_score + score.profit_score
                             + score.collection_score + score.receivable_score)

        concentration = hhi.get(rep)
        profiles.append(SalesRepProfile(
            id=rep,
            name=(s["name"] if s else "") or rep,
            org=s["org"] if s else "",
            score=score,
            sales_amount=sales_amount,
            order_amount=order_amount,
            collection_amount=collection_amount,
            contribution_margin_rate=rate,
            customer_count=len(s["customers"]) if s else 0,
            item_count=len(s["items"]) if s else 0,
            hhi=concentration.hhi if concentration else 0.0,
            hhi_risk_level=concentration.risk_level if concentration else "low",
            top_customer_share=concentration.top_customer_share if concentration else 0.0,
            top_customers=[CustomerShareEntry(c.name, c.amount, c.share)
                           for c in (concentration.customers[:TOP_CUSTOMERS] if concentration else [])],
        ))

    profiles.sort(key=lambda p: p.score.total_score, reverse=True)
    for i, p in enumerate(profiles):
        p.score.rank = i + 1
        p.score.percentile = (len(profiles) - i) / len(profiles) * 100
    return PerformanceScoresResult(profiles, id_to_name, name_to_id)


# ── Trend ─────────────────────────────────────────────────────────────────────

def classify_momentum(monthly_sales: list[float]) -> str:
    """Compare the last of three months with the first, relative to the average month."""
    n = len(monthly_sales)
    if n < 3:
        return "stable"
    avg = sum(monthly_sales) / n
    if avg <= 0:
        return "stable"
    trend_rate = (monthly_sales[-1] - monthly_sales[-3]) / avg
    if trend_rate > MOMENTUM_THRESHOLD:
        return "accelerating"
    if trend_rate < -MOMENTUM_THRESHOLD:
        return "decelerating"
    return "stable"


def calc_rep_trend(
    sales: list[SalesRecord],
    orders: list[OrderRecord],
    collections: list[CollectionRecord],
    person_id: str,
    id_to_name: Optional[dict[str, str]] = None,
) -> Optional[RepTrend]:
    """Monthly sales / orders / collections for one rep; None when the rep has no sales or orders."""
    person_name = (id_to_name or {}).get(person_id)
    rep_sales = [s for s in sales if s.rep == person_id]
    rep_orders = [o for o in orders if o.rep == person_id]
    rep_collections = [c for c in collections if c.rep == person_id or (person_name and c.rep == person_name)]
    if not rep_sales and not rep_orders:
        return None

    months: dict[str, MonthlyRepPoint] = {}
    for date, attr, amount in (
        *((s.sales_date, "sales", s.book_amount) for s in rep_sales),
        *((o.order_date, "orders", o.book_amount) for o in rep_orders),
        *((c.collection_date, "collections", c.book_amount) for c in rep_collections),
    ):
        month = extract_month(date)
        if not month:
            continue
        point = months.setdefault(month, MonthlyRepPoint(month))
        setattr(point, attr, getattr(point, attr) + amount)
    if not months:
        return None

    monthly = [months[m] for m in sorted(months)]
    n = len(monthly)
    sales_series = [p.sales for p in monthly]
    sales_mom = 0.0
    if n >= 2 and monthly[-2].sales > 0:
        sales_mom = (monthly[-1].sales - monthly[-2].sales) / monthly[-2].sales * 100

    return RepTrend(
        person_id=person_id,
        name=(rep_sales[0].rep_name if rep_sales else "") or person_id,
        monthly=monthly,
        avg_monthly_sales=sum(sales_series) / n,
        avg_monthly_orders=sum(p.orders for p in monthly) / n,
        avg_monthly_collections=sum(p.collections for p in monthly) / n,
        sales_mom=sales_mom,
        momentum=classify_momentum(sales_series),
    )


# ── Product portfolio ─────────────────────────────────────────────────────────

def calc_rep_product_portfolio(
    data: list[ProfitabilityRecord],
    person_id: str,
    id_to_name: Optional[dict[str, str]] = None,
) -> Optional[RepProductPortfolio]:
    """Product mix of one rep from the customer-item report (keyed by id or name); None without rows."""
    person_name = (id_to_name or {}).get(person_id)
    rows = [r for r in data if r.employee_id == person_id or (person_name and r.employee_id == person_name)]
    if not rows:
        return None

    products: dict[str, dict] = {}
    for r in rows:
        code = r.item or UNKNOWN
        p = products.setdefault(code, {"name": r.item_name or code, "group": r.product_group or UNKNOWN,
                                       "sales": 0.0, "gp": 0.0})
        p["sales"] += r.sales.actual
        p["gp"] += r.gross_profit.actual

    total = sum(p["sales"] for p in products.values())
    mix = sorted(
        (ProductMixItem(code, p["name"], p["group"], p["sales"], p["gp"],
                        pct(p["gp"], p["sales"]) if p["sales"] > 0 else 0.0,
                        pct(p["sales"], total) if total > 0 else 0.0)
         for code, p in products.items()),
        key=lambda m: m.sales, reverse=True,
    )
    product_hhi = sum((m.sales / total) ** 2 for m in mix) if total > 0 else 0.0
    total_gp = sum(m.gross_profit for m in mix)

    return RepProductPortfolio(
        person_id=person_id,
        product_mix=mix,
        top_products=mix[:TOP_PRODUCTS],
        product_hhi=product_hhi,
        avg_margin=pct(total_gp, total) if total > 0 else 0.0,
        total_products=len(mix),
        total_product_groups=len({m.product_group for m in mix}),
    )

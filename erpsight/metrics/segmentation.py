"""
Customer and product segmentation: Pareto/ABC grading, product-group roll-up,
RFM scoring, rule-based churn risk and customer concentration (HHI).
"""

from dataclasses import dataclass, field
from typing import Iterable

from erpsight.metrics.aggregation import pct, round_half_up
from erpsight.records.models import ProfitabilityRecord, SalesRecord
from erpsight.utils.dates import extract_month, month_distance

UNCLASSIFIED = "(미분류)"

GRADE_A_CUTOFF = 80
GRADE_B_CUTOFF = 95

PARETO_METRICS = {
    "sales": lambda r: r.sales.actual,
    "gross_profit": lambda r: r.gross_profit.actual,
    "operating_profit": lambda r: r.operating_profit.actual,
}

RFM_SEGMENT_ORDER = ["VIP", "Loyal", "Potential", "At-risk", "Dormant", "Lost"]

RFM_SEGMENT_ACTIONS = {
    "VIP": ("VIP 전용 혜택 유지", "개인화된 서비스와 우선 지원으로 이탈 방지", "high"),
    "Loyal": ("크로스셀/업셀 추진", "신규 제품군 제안 및 주문량 확대 유도", "high"),
    "Potential": ("육성 프로그램 적용", "정기 방문 및 샘플 제공으로 거래 빈도 증가 유도", "medium"),
    "At-risk": ("긴급 리텐션 캠페인", "할인 또는 특별 조건 제안, 이탈 원인 파악", "high"),
    "Dormant": ("재활성화 캠페인", "한정 프로모션으로 재구매 유도", "medium"),
    "Lost": ("원인 분석 후 선별 접근", "이탈 원인 분석, ROI 높은 고객만 선별 재접근", "low"),
}
DEFAULT_SEGMENT_ACTION = ("모니터링", "정기적인 거래 현황 모니터링", "low")

CHURN_LEVELS = ["critical", "high", "medium", "low"]
# HHI on the 0~1 share scale; 0.25 and 0.15 are 2,500 and 1,500 points
HHI_HIGH = 0.25
HHI_MEDIUM = 0.15
HHI_POINTS = 10_000


# ── Data structures ───────────────────────────────────────────────────────────

@dataclass
class ParetoItem:
    code: str
    name: str
    value: float
    share: float
    cum_share: float
    grade: str           # 'A', 'B', 'C'


@dataclass
class ProductGroupSummary:
    group: str
    sales: float
    cost: float
    gross_profit: float
    gross_margin: float
    operating_profit: float
    op_margin: float
    domestic_sales: float
    export_sales: float
    export_ratio: float
    product_count: int
    customer_count: int
    plan_achievement: float


@dataclass
class RfmScore:
    customer: str
    customer_name: str
    recency: int             # months since last purchase
    frequency: int
    monetary: float
    r_score: int
    f_score: int
    m_score: int
    segment: str

    @property
    def total_score(self) -> int:
        return self.r_score + self.f_score + self.m_score


@dataclass
class RfmSegmentSummary:
    segment: str
    count: int
    total_sales: float
    avg_sales: float
    share: float


@dataclass
class SegmentAction:
    action: str
    description: str
    priority: str            # 'high', 'medium', 'low'


@dataclass
class ChurnRiskCustomer:
    customer: str
    customer_name: str
    last_purchase_month: str
    months_since_last_purchase: int
    purchase_frequency: int
    avg_monthly_amount: float
    total_amount: float
    churn_score: int
    risk_level: str          # 'critical', 'high', 'medium', 'low'
    signals: list[str] = field(default_factory=list)


@dataclass
class ChurnLevelBucket:
    level: str
    count: int
    revenue: float


@dataclass
class ChurnSummary:
    total_customers: int = 0
    at_risk_customers: int = 0
    at_risk_revenue: float = 0.0
    risk_distribution: list[ChurnLevelBucket] = field(default_factory=list)
    customers: list[ChurnRiskCustomer] = field(default_factory=list)


@dataclass
class CustomerShare:
    name: str
    amount: float
    share: float             # 0~1


@dataclass
class CustomerHHI:
    """
    Customer concentration as Σ share² with shares on a 0~1 scale, so `hhi`
    runs from 0 to 1 (1 = a single customer). `hhi_points` gives the same
    index on the 0~10,000 scale used by antitrust thresholds.
    """
    hhi: float               # 0~1, 1 = single customer
    top_customer_share: float
    customer_count: int
    customers: list[CustomerShare] = field(default_factory=list)
    risk_level: str = "low"

    @property
    def hhi_points(self) -> float:
        return self.hhi * HHI_POINTS


# ── Pareto / ABC ──────────────────────────────────────────────────────────────

def grade_by_cum_share(cum_share: float) -> str:
    if cum_share <= GRADE_A_CUTOFF:
        return "A"
    if cum_share <= GRADE_B_CUTOFF:
        return "B"
    return "C"


def pareto_analysis(entries: Iterable[tuple[str, str, float]]) -> list[ParetoItem]:
    """
    Grade (code, name, value) entries A/B/C by cumulative share.

    Items are ranked by raw value descending; shares use absolute values so a
    negative item still counts towards the total without turning the
    cumulative share back down. A zero total grades everything C.
    """
    items = sorted(entries, key=lambda e: e[2], reverse=True)
    total = sum(abs(v) for _, _, v in items)

    result = []
    running = 0.0
    for code, name, value in items:
        running += abs(value)
        share = abs(value) / total * 100 if total != 0 else 0.0
        cum_share = running / total * 100 if total != 0 else 0.0
        grade = "C" if total == 0 else grade_by_cum_share(cum_share)
        result.append(ParetoItem(code, name, value, share, cum_share, grade))
    return result


def calc_pareto_analysis(data: list[ProfitabilityRecord], dimension: str = "customer",
                         metric: str = "sales") -> list[ParetoItem]:
    """Pareto over customer-item detail rows. dimension: 'customer' | 'product'."""
    value_of = PARETO_METRICS[metric]
    totals: dict[str, list] = {}
    for r in data:
        if dimension == "customer":
            code, name = r.customer, r.customer_name
        else:
            code, name = r.item, r.item_name
        if not code:
            continue
        entry = totals.setdefault(code, [name or code, 0.0])
        entry[1] += value_of(r)
    return pareto_analysis((code, name, value) for code, (name, value) in totals.items())


def calc_sales_pareto(sales: list[SalesRecord], dimension: str = "customer") -> list[ParetoItem]:
    """Pareto over the sales list by customer or item, on book amount."""
    totals: dict[str, list] = {}
    for s in sales:
        code, name = (s.customer, s.customer_name) if dimension == "customer" else (s.item, s.item_name)
        if not code:
            continue
        entry = totals.setdefault(code, [name or code, 0.0])
        if name:
            entry[0] = name
        entry[1] += s.book_amount
    return pareto_analysis((code, name, value) for code, (name, value) in totals.items())


def calc_product_group_analysis(data: list[ProfitabilityRecord]) -> list[ProductGroupSummary]:
    groups: dict[str, dict] = {}
    for r in data:
        g = groups.setdefault(r.product_group or UNCLASSIFIED, {
            "sales": 0.0, "sales_plan": 0.0, "cost": 0.0, "gp": 0.0, "op": 0.0,
            "domestic": 0.0, "export": 0.0, "products": set(), "customers": set(),
        })
        g["sales"] += r.sales.actual
        g["sales_plan"] += r.sales.plan
        g["cost"] += r.cost.actual
        g["gp"] += r.gross_profit.actual
        g["op"] += r.operating_profit.actual
        g["domestic"] += r.domestic_sales.actual
        g["export"] += r.export_sales.actual
        if r.item:
            g["products"].add(r.item)
        if r.customer:
            g["customers"].add(r.customer)

    result = []
    for group, g in groups.items():
        sales = g["sales"]
        export_ratio = max(0.0, min(100.0, g["export"] / sales * 100)) if sales != 0 else 0.0
        result.append(ProductGroupSummary(
            group=group,
            sales=sales,
            cost=g["cost"],
            gross_profit=g["gp"],
            gross_margin=pct(g["gp"], sales),
            operating_profit=g["op"],
            op_margin=pct(g["op"], sales),
            domestic_sales=g["domestic"],
            export_sales=g["export"],
            export_ratio=export_ratio,
            product_count=len(g["products"]),
            customer_count=len(g["customers"]),
            plan_achievement=pct(sales, g["sales_plan"]),
        ))
    return sorted(result, key=lambda p: p.sales, reverse=True)


# ── RFM ───────────────────────────────────────────────────────────────────────

def _quintiles(values: list[float], invert: bool) -> list[int]:
    """
    Rank-based 1-5 scores aligned with `values`. Fewer than five values are
    spread evenly (n=2 → 1,5; n=3 → 1,3,5; a single value scores 3).
    """
    n = len(values)
    scores = [3] * n
    order = sorted(range(n), key=lambda i: values[i])
    for rank, idx in enumerate(order):
        if n < 5:
            raw = 3 if n == 1 else round_half_up(1 + rank / (n - 1) * 4)
        else:
            raw = min(5, rank * 5 // n + 1)
        scores[idx] = 6 - raw if invert else raw
    return scores


def classify_rfm_segment(r: int, f: int, m: int) -> str:
    if r >= 4 and f >= 4 and m >= 4:
        return "VIP"
    if f >= 3 and m >= 3:
        return "Loyal"
    if r >= 4 and m >= 2 and f < 3:
        return "Potential"
    if r <= 2 and f >= 3:
        return "At-risk"
    if r <= 2 and f <= 2 and m >= 3:
        return "Dormant"
    if r <= 2 and f <= 2 and m <= 2:
        return "Lost"
    return "Potential"


def calc_rfm_scores(sales: list[SalesRecord]) -> list[RfmScore]:
    months = [m for m in (extract_month(s.sales_date) for s in sales) if m]
    if not months:
        return []
    latest = max(months)

    customers: dict[str, dict] = {}
    for s in sales:
        if not s.customer:
            continue
        month = extract_month(s.sales_date)
        c = customers.get(s.customer)
        if c is None:
            customers[s.customer] = {"name": s.customer_name, "last": month, "frequency": 1,
                                     "monetary": s.book_amount}
            continue
        c["frequency"] += 1
        c["monetary"] += s.book_amount
        if month and month > c["last"]:
            c["last"] = month
        if s.customer_name.strip():
            c["name"] = s.customer_name
    if not customers:
        return []

    codes = list(customers)
    recency = [month_distance(customers[c]["last"], latest) if customers[c]["last"] else 999 for c in codes]
    frequency = [customers[c]["frequency"] for c in codes]
    monetary = [customers[c]["monetary"] for c in codes]
    r_scores = _quintiles(recency, invert=True)
    f_scores = _quintiles(frequency, invert=False)
    m_scores = _quintiles(monetary, invert=False)

    result = [
        RfmScore(code, customers[code]["name"], recency[i], frequency[i], monetary[i],
                 r_scores[i], f_scores[i], m_scores[i],
                 classify_rfm_segment(r_scores[i], f_scores[i], m_scores[i]))
        for i, code in enumerate(codes)
    ]
    return sorted(result, key=lambda s: (-s.total_score, -s.monetary))


def calc_rfm_segment_summary(scores: list[RfmScore]) -> list[RfmSegmentSummary]:
    if not scores:
        return []
    grand_total = sum(s.monetary for s in scores)
    buckets: dict[str, list[float]] = {}
    for s in scores:
        buckets.setdefault(s.segment, []).append(s.monetary)

    def order(segment: str) -> int:
        return RFM_SEGMENT_ORDER.index(segment) if segment in RFM_SEGMENT_ORDER else 999

    return [
        RfmSegmentSummary(segment, len(amounts), sum(amounts), sum(amounts) / len(amounts),
                          sum(amounts) / grand_total * 100 if grand_total > 0 else 0.0)
        for segment, amounts in sorted(buckets.items(), key=lambda kv: order(kv[0]))
    ]


def get_segment_action(segment: str) -> SegmentAction:
    return SegmentAction(*RFM_SEGMENT_ACTIONS.get(segment, DEFAULT_SEGMENT_ACTION))


# ── Churn ─────────────────────────────────────────────────────────────────────

def _recency_signal(months_since: int) -> tuple[int, str]:
    # B2B project cycles run 6-12 months, so recency thresholds are wide
    if months_since >= 12:
        return 40, "12개월 이상 미거래"
    if months_since >= 9:
        return 30, "9~11개월 미거래"
    if months_since >= 6:
        return 20, "6~8개월 미거래"
    if months_since >= 3:
        return 10, "3~5개월 미거래"
    return 0, ""


def _churn_level(score: int) -> str:
    if score >= 60:
        return "critical"
    if score >= 40:
        return "high"
    if score >= 20:
        return "medium"
    return "low"


def predict_churn(sales: list[SalesRecord]) -> ChurnSummary:
    """Rule-based churn score (0-100) from recency, frequency and a half-over-half amount decline."""
    customers: dict[str, dict] = {}
    for s in sales:
        month = extract_month(s.sales_date)
        if not s.customer or not month:
            continue
        c = customers.setdefault(s.customer, {"name": s.customer_name or s.customer, "last": "",
                                              "total": 0.0, "frequency": 0, "monthly": {}})
        c["total"] += s.book_amount
        c["frequency"] += 1
        c["monthly"][month] = c["monthly"].get(month, 0.0) + s.book_amount
        if month > c["last"]:
            c["last"] = month
    if not customers:
        return ChurnSummary()
    latest = max(c["last"] for c in customers.values())

    result = []
    for code, c in customers.items():
        months_since = month_distance(c["last"], latest)
        signals = []
        score, label = _recency_signal(months_since)
        if label:
            signals.append(label)

        if c["frequency"] <= 1:
            score += 30
            signals.append("단발 거래")
        elif c["frequency"] <= 3:
            score += 15
            signals.append("거래 빈도 낮음")

        months = sorted(c["monthly"])
        if len(months) >= 3:
            mid = len(months) // 2
            first = sum(c["monthly"][m] for m in months[:mid]) / mid
            second = sum(c["monthly"][m] for m in months[mid:]) / (len(months) - mid)
            if first > 0 and second < first * 0.8:
                decline = (first - second) / first * 100
                score += 30 if decline >= 50 else 20
                signals.append(f"거래 금액 {decline:.0f}% 감소")

        result.append(ChurnRiskCustomer(
            customer=code,
            customer_name=c["name"],
            last_purchase_month=c["last"],
            months_since_last_purchase=months_since,
            purchase_frequency=c["frequency"],
            avg_monthly_amount=c["total"] / len(c["monthly"]),
            total_amount=c["total"],
            churn_score=min(100, score),
            risk_level=_churn_level(score),
            signals=signals,
        ))

    result.sort(key=lambda c: c.churn_score, reverse=True)
    at_risk = [c for c in result if c.risk_level in ("critical", "high")]
    distribution = [
        ChurnLevelBucket(level,
                         sum(1 for c in result if c.risk_level == level),
                         sum(c.total_amount for c in result if c.risk_level == level))
        for level in CHURN_LEVELS
    ]
    return ChurnSummary(len(result), len(at_risk), sum(c.total_amount for c in at_risk), distribution, result)


# ── Concentration ─────────────────────────────────────────────────────────────

def _hhi_level(hhi: float) -> str:
    if hhi > HHI_HIGH:
        return "high"
    if hhi > HHI_MEDIUM:
        return "medium"
    return "low"


def customer_hhi(amounts: dict[str, tuple[str, float]]) -> CustomerHHI:
    """HHI over {code: (name, amount)}: Σ share², share on a 0~1 scale."""
    total = sum(amount for _, amount in amounts.values())
    if total == 0:
        return CustomerHHI(0.0, 0.0, len(amounts))
    customers = sorted(
        (CustomerShare(name, amount, amount / total) for name, amount in amounts.values()),
        key=lambda c: c.amount, reverse=True,
    )
    hhi = sum(c.share * c.share for c in customers)
    return CustomerHHI(hhi, customers[0].share, len(customers), customers, _hhi_level(hhi))


def calc_customer_hhi(sales: list[SalesRecord], person_field: str = "rep") -> dict[str, CustomerHHI]:
    """Customer concentration per sales rep (or any other SalesRecord field)."""
    per_person: dict[str, dict[str, tuple[str, float]]] = {}
    for s in sales:
        person = getattr(s, person_field, "")
        if not person:
            continue
        customers = per_person.setdefault(person, {})
        code = s.customer or "기타"
        name, amount = customers.get(code, (s.customer_name or code, 0.0))
        customers[code] = (name, amount + s.book_amount)
    return {person: customer_hhi(customers) for person, customers in per_person.items()}


def calc_overall_hhi(sales: list[SalesRecord]) -> CustomerHHI:
    customers: dict[str, tuple[str, float]] = {}
    for s in sales:
        code = s.customer or "기타"
        name, amount = customers.get(code, (s.customer_name or code, 0.0))
        customers[code] = (name, amount + s.book_amount)
    return customer_hhi(customers)

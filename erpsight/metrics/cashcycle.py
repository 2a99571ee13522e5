"""
Cash-cycle metrics: DSO, estimated DPO and CCC.

DSO = receivables / average monthly sales × 30. An org with receivables but no
sales has an unmeasurable DSO; calc_dso returns math.inf for it and the
per-org calculators drop it from their output.

No payables ledger is available, so DPO is a three-tier estimate from the
cost-of-goods ratio (≥80% → 45 days, ≥60% → 35, otherwise 30). CCC is
DSO − DPO with no inventory term.
"""

from dataclasses import dataclass, field
import logging
import math

from erpsight.metrics.aggregation import mean, round_half_up
from erpsight.records.models import ReceivableAgingRecord, SalesRecord, TeamContributionRecord
from erpsight.utils.dates import extract_month

logger = logging.getLogger(__name__)

DPO_TIERS = [(0.8, 45), (0.6, 35)]
DPO_DEFAULT = 30

CCC_RECOMMENDATIONS = {
    "excellent": "현금 회전이 매우 우수합니다. 매입 결제 전에 매출 회수가 이루어지고 있어 운전자본 관리가 효율적입니다.",
    "good": "현금 회전이 양호합니다. DSO({dso}일) 단축을 통해 추가 개선이 가능합니다. 조기 수금 인센티브 도입을 검토해 보세요.",
    "fair": "현금 회전 개선이 필요합니다. DSO({dso}일)가 높아 매출채권 회수 속도를 높이고, 매입 결제조건(DPO {dpo}일) 연장을 협의해 보세요.",
    "poor": "현금 회전이 매우 느립니다. DSO({dso}일) 대폭 단축이 시급합니다. 연체 거래처 집중 관리, 결제조건 재협상, 팩토링 활용을 권장합니다.",
}


# ── Data structures ───────────────────────────────────────────────────────────

@dataclass
class DSOMetric:
    org: str
    dso: float
    total_receivables: float
    avg_monthly_sales: float
    classification: str      # 'excellent', 'good', 'fair', 'poor'


@dataclass
class DSOTrendPoint:
    month: str
    dso: int
    total_receivables: int
    monthly_sales: float
    is_synthetic: bool = True   # receivables apportioned from a single snapshot


@dataclass
class CCCMetric:
    org: str
    dso: float
    dpo: int
    ccc: float
    classification: str
    recommendation: str


@dataclass
class CCCAnalysis:
    avg_ccc: int = 0
    avg_dso: int = 0
    avg_dpo: int = 0
    metrics: list[CCCMetric] = field(default_factory=list)


# ── DSO ───────────────────────────────────────────────────────────────────────

def calc_dso(receivables_total: float, avg_monthly_sales: float) -> float:
    if avg_monthly_sales <= 0:
        return math.inf if receivables_total > 0 else 0
    return round_half_up(receivables_total / avg_monthly_sales * 30)


def classify_dso(dso: float) -> str:
    if not math.isfinite(dso) or dso > 60:
        return "poor"
    if dso < 30:
        return "excellent"
    if dso <= 45:
        return "good"
    return "fair"


def _monthly_sales(sales: list[SalesRecord]) -> dict[str, float]:
    by_month: dict[str, float] = {}
    for s in sales:
        month = extract_month(s.sales_date)
        if month:
            by_month[month] = by_month.get(month, 0.0) + s.book_amount
    return by_month


def calc_dso_by_org(receivables: list[ReceivableAgingRecord], sales: list[SalesRecord]) -> list[DSOMetric]:
    sales_by_org: dict[str, list[SalesRecord]] = {}
    for s in sales:
        org = s.org.strip()
        if org:
            sales_by_org.setdefault(org, []).append(s)
    avg_sales = {org: mean(list(_monthly_sales(recs).values())) for org, recs in sales_by_org.items()}

    receivables_by_org: dict[str, float] = {}
    for r in receivables:
        org = r.org.strip()
        if org:
            receivables_by_org[org] = receivables_by_org.get(org, 0.0) + r.total.book

    results = []
    for org in list(dict.fromkeys(list(receivables_by_org) + list(avg_sales))):
        total_receivables = receivables_by_org.get(org, 0.0)
        avg = avg_sales.get(org, 0.0)
        if total_receivables == 0 and avg == 0:
            continue
        dso = calc_dso(total_receivables, avg)
        if not math.isfinite(dso):
            logger.debug(f"DSO not measurable for {org}: receivables without sales")
            continue
        results.append(DSOMetric(org, dso, total_receivables, avg, classify_dso(dso)))
    return sorted(results, key=lambda m: m.dso)


def calc_dso_trend(receivables: list[ReceivableAgingRecord], sales: list[SalesRecord]) -> list[DSOTrendPoint]:
    """
    Synthetic monthly DSO. The aging file is a single snapshot, so total
    receivables are apportioned to each month by its share of sales and set
    against a trailing 3-month average of sales.
    """
    if not receivables or not sales:
        return []
    total_receivables = sum(r.total.book for r in receivables)
    by_month = _monthly_sales(sales)
    months = sorted(by_month)
    if not months:
        return []
    total_sales = sum(by_month.values())
    n = len(months)
    avg_monthly = total_sales / n

    result = []
    for i, month in enumerate(months):
        monthly = by_month[month]
        window = [by_month[m] for m in months[max(0, i - 2):i + 1]]
        rolling = sum(window) / len(window)
        if avg_monthly > 0:
            monthly_receivables = total_receivables * (monthly / total_sales * n)
        else:
            monthly_receivables = total_receivables / n
        dso = round_half_up(monthly_receivables / rolling * 30) if rolling > 0 else 0
        if dso >= 0:
            result.append(DSOTrendPoint(month, dso, round_half_up(monthly_receivables), monthly))
    return result


def calc_overall_dso(receivables: list[ReceivableAgingRecord], sales: list[SalesRecord]) -> float:
    total_receivables = sum(r.total.book for r in receivables)
    return calc_dso(total_receivables, mean(list(_monthly_sales(sales).values())))


# ── DPO / CCC ─────────────────────────────────────────────────────────────────

def _dpo_from_ratio(revenue: float, cogs: float) -> int:
    if cogs <= 0:
        return 0
    ratio = cogs / revenue if revenue > 0 else 0
    for threshold, days in DPO_TIERS:
        if ratio >= threshold:
            return days
    return DPO_DEFAULT


def estimate_dpo(team: list[TeamContributionRecord]) -> int:
    if not team:
        return 0
    revenue = sum(r.sales.actual for r in team)
    cogs = sum(r.cost.actual for r in team)
    return _dpo_from_ratio(revenue, cogs)


def estimate_dpo_by_org(team: list[TeamContributionRecord]) -> dict[str, int]:
    totals: dict[str, list[float]] = {}
    for r in team:
        org = r.org_team.strip()
        if not org:
            continue
        entry = totals.setdefault(org, [0.0, 0.0])
        entry[0] += r.sales.actual
        entry[1] += r.cost.actual
    return {org: _dpo_from_ratio(rev, cogs) for org, (rev, cogs) in totals.items()}


def classify_ccc(ccc: float) -> str:
    if ccc < 0:
        return "excellent"
    if ccc <= 30:
        return "good"
    if ccc <= 60:
        return "fair"
    return "poor"


def ccc_recommendation(classification: str, dso: float, dpo: int) -> str:
    return CCC_RECOMMENDATIONS[classification].format(dso=dso, dpo=dpo)


def calc_ccc_by_org(dso_metrics: list[DSOMetric], team: list[TeamContributionRecord]) -> list[CCCMetric]:
    dpo_by_org = estimate_dpo_by_org(team)
    overall_dpo = estimate_dpo(team)

    results = []
    for dm in dso_metrics:
        dpo = overall_dpo
        if dm.org in dpo_by_org:
            dpo = dpo_by_org[dm.org]
        else:
            for org_team, org_dpo in dpo_by_org.items():
                if org_team in dm.org or dm.org in org_team:
                    dpo = org_dpo
                    break
        ccc = dm.dso - dpo
        grade = classify_ccc(ccc)
        results.append(CCCMetric(dm.org, dm.dso, dpo, ccc, grade, ccc_recommendation(grade, dm.dso, dpo)))
    return sorted(results, key=lambda m: m.ccc)


def calc_ccc_analysis(metrics: list[CCCMetric]) -> CCCAnalysis:
    if not metrics:
        return CCCAnalysis()
    return CCCAnalysis(
        avg_ccc=round_half_up(mean([m.ccc for m in metrics])),
        avg_dso=round_half_up(mean([m.dso for m in metrics])),
        avg_dpo=round_half_up(mean([m.dpo for m in metrics])),
        metrics=metrics,
    )

"""
Monthly time-series analysis of sales: additive decomposition, IQR anomaly
detection (plain and enriched with customer drivers) and cohort retention.
"""

from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from erpsight.metrics.aggregation import pct
from erpsight.records.models import SalesRecord
from erpsight.utils.dates import extract_month, month_distance
from erpsight.utils.formatters import format_won

SEASON_LENGTH = 12
MIN_MONTHS_FULL = 24
DEFAULT_MULTIPLIER = 1.5
MIN_ANOMALY_POINTS = 4
TOP_CONTRIBUTORS = 5

SEVERITY_EXTREME = "극심"
SEVERITY_HIGH = "높음"
SEVERITY_MODERATE = "보통"


# ── Data structures ───────────────────────────────────────────────────────────

@dataclass
class MonthlyValue:
    month: str
    value: float


@dataclass
class DecompositionPoint:
    month: str
    original: float
    trend: float
    seasonal: float
    residual: float


@dataclass
class DecompositionResult:
    points: list[DecompositionPoint] = field(default_factory=list)
    seasonal_pattern: list[tuple[int, float]] = field(default_factory=list)   # (1-12, factor)
    trend_direction: str = "flat"        # 'up', 'down', 'flat'
    seasonal_strength: float = 0.0       # 0~1
    data_quality: str = "insufficient"   # 'insufficient', 'limited', 'sufficient'


@dataclass
class Anomaly:
    month: str
    value: float
    type: str            # 'upper', 'lower'
    deviation: float     # distance past the fence


@dataclass
class AnomalyStats:
    q1: float = 0.0
    q3: float = 0.0
    iqr: float = 0.0
    lower_fence: float = 0.0
    upper_fence: float = 0.0
    anomalies: list[Anomaly] = field(default_factory=list)
    anomaly_rate: float = 0.0


@dataclass
class CustomerContribution:
    customer: str
    name: str
    current: float
    previous: float

    @property
    def change(self) -> float:
        return self.current - self.previous


@dataclass
class EnhancedAnomaly:
    month: str
    value: float
    type: str
    deviation: float
    transaction_count: int
    mom_change_pct: Optional[float]      # None when there is no prior month to compare
    sigma: float
    severity: str                        # 극심 / 높음 / 보통
    top_contributors: list[CustomerContribution] = field(default_factory=list)
    description: str = ""


@dataclass
class CohortCell:
    cohort_month: str
    period_month: str
    period_index: int
    active_customers: int
    total_customers: int
    retention_rate: float
    revenue: float


@dataclass
class Cohort:
    month: str
    size: int
    first_month_revenue: float


@dataclass
class CohortAnalysisResult:
    cells: list[CohortCell] = field(default_factory=list)
    cohorts: list[Cohort] = field(default_factory=list)
    avg_retention_by_period: list[tuple[int, float]] = field(default_factory=list)


# ── Helpers ───────────────────────────────────────────────────────────────────

def monthly_sales_totals(sales: list[SalesRecord]) -> list[MonthlyValue]:
    totals: dict[str, float] = {}
    for s in sales:
        month = extract_month(s.sales_date)
        if month:
            totals[month] = totals.get(month, 0.0) + s.book_amount
    return [MonthlyValue(m, totals[m]) for m in sorted(totals)]


def _calendar_month(month: str) -> Optional[int]:
    try:
        idx = int(month.split("-")[1]) - 1
    except (IndexError, ValueError):
        return None
    return idx if 0 <= idx < 12 else None


# ── Decomposition ─────────────────────────────────────────────────────────────

def decompose_time_series(monthly: list[MonthlyValue], period: int = SEASON_LENGTH) -> DecompositionResult:
    """
    Additive decomposition: original = trend + seasonal + residual.

    Trend is a centred moving average (edges held flat), seasonal is the mean
    detrended value per calendar month shifted to sum to zero, and seasonal
    strength is 1 − Var(residual) / Var(detrended), clamped to 0~1.
    """
    if len(monthly) < period + 1:
        return DecompositionResult()

    data = sorted(monthly, key=lambda d: d.month)
    values = np.array([d.value for d in data], dtype=float)
    n = len(values)

    half = period // 2
    window = period + 1 if period % 2 == 0 else period
    trend = np.full(n, np.nan)
    for i in range(half, n - half):
        trend[i] = values[i - half:i + half + 1].sum() / window
    defined = np.flatnonzero(~np.isnan(trend))
    trend[:defined[0]] = trend[defined[0]]
    trend[defined[-1] + 1:] = trend[defined[-1]]

    detrended = values - trend
    sums = np.zeros(12)
    counts = np.zeros(12)
    for d, v in zip(data, detrended):
        idx = _calendar_month(d.month)
        if idx is not None:
            sums[idx] += v
            counts[idx] += 1
    averages = np.divide(sums, counts, out=np.zeros(12), where=counts > 0)
    seasonal = averages - averages.mean()

    points = []
    for i, d in enumerate(data):
        idx = _calendar_month(d.month)
        s = float(seasonal[idx]) if idx is not None else 0.0
        points.append(DecompositionPoint(d.month, d.value, float(trend[i]), s, d.value - float(trend[i]) - s))

    trend_values = [p.trend for p in points if p.trend != 0]
    direction = "flat"
    if len(trend_values) >= 2:
        mid = len(trend_values) // 2
        first = float(np.mean(trend_values[:mid]))
        second = float(np.mean(trend_values[mid:]))
        change = (second - first) / abs(first) if first != 0 else 0.0
        if change > 0.05:
            direction = "up"
        elif change < -0.05:
            direction = "down"

    var_detrended = float(np.mean(detrended ** 2))
    var_residual = float(np.mean(np.array([p.residual for p in points]) ** 2))
    strength = min(1.0, max(0.0, 1 - var_residual / var_detrended)) if var_detrended > 0 else 0.0

    return DecompositionResult(
        points=points,
        seasonal_pattern=[(i + 1, float(f)) for i, f in enumerate(seasonal)],
        trend_direction=direction,
        seasonal_strength=strength,
        data_quality="limited" if n < MIN_MONTHS_FULL else "sufficient",
    )


# ── Anomalies ─────────────────────────────────────────────────────────────────

def detect_anomalies(monthly: list[MonthlyValue], multiplier: float = DEFAULT_MULTIPLIER) -> AnomalyStats:
    """IQR fences with Q1/Q3 taken at index floor(n·0.25) / floor(n·0.75) of the sorted values."""
    if len(monthly) < MIN_ANOMALY_POINTS:
        return AnomalyStats()

    ordered = sorted(d.value for d in monthly)
    n = len(ordered)
    q1 = ordered[int(n * 0.25)]
    q3 = ordered[int(n * 0.75)]
    iqr = q3 - q1
    lower = q1 - multiplier * iqr
    upper = q3 + multiplier * iqr

    anomalies = []
    for d in monthly:
        if d.value > upper:
            anomalies.append(Anomaly(d.month, d.value, "upper", d.value - upper))
        elif d.value < lower:
            anomalies.append(Anomaly(d.month, d.value, "lower", lower - d.value))
    return AnomalyStats(q1, q3, iqr, lower, upper, anomalies, len(anomalies) / n * 100)


def detect_sales_anomalies(sales: list[SalesRecord], multiplier: float = DEFAULT_MULTIPLIER) -> AnomalyStats:
    return detect_anomalies(monthly_sales_totals(sales), multiplier)


def classify_sigma(sigma: float) -> str:
    if sigma >= 3:
        return SEVERITY_EXTREME
    if sigma >= 2:
        return SEVERITY_HIGH
    return SEVERITY_MODERATE


def _describe(anomaly: EnhancedAnomaly) -> str:
    direction = "급증" if anomaly.type == "upper" else "급감"
    if anomaly.mom_change_pct is None:
        text = f"{anomaly.month} 매출이 {format_won(anomaly.value)}으로 정상 범위를 벗어났습니다({direction})."
    else:
        text = (f"{anomaly.month} 매출이 전월 대비 {anomaly.mom_change_pct:+.1f}% {direction}하여 "
                f"{format_won(anomaly.value)}을 기록했습니다.")
    text += f" 평균 대비 {anomaly.sigma:.1f}σ 수준의 {anomaly.severity} 이상치입니다."
    movers = [c for c in anomaly.top_contributors if c.change != 0]
    if movers:
        names = ", ".join(f"{c.name}({'+' if c.change > 0 else '-'}{format_won(abs(c.change))})" for c in movers[:3])
        text += f" 주요 변동 거래처: {names}."
    return text


def detect_enhanced_anomalies(sales: list[SalesRecord],
                              multiplier: float = DEFAULT_MULTIPLIER) -> list[EnhancedAnomaly]:
    """IQR anomalies on monthly sales, each explained by MoM change, σ distance and customer drivers."""
    monthly = monthly_sales_totals(sales)
    stats = detect_anomalies(monthly, multiplier)
    if not stats.anomalies:
        return []

    values = np.array([d.value for d in monthly], dtype=float)
    mean, std = float(values.mean()), float(values.std())
    months = [d.month for d in monthly]
    by_month = {d.month: d.value for d in monthly}

    counts: dict[str, int] = {}
    customer_month: dict[tuple[str, str], float] = {}
    names: dict[str, str] = {}
    for s in sales:
        month = extract_month(s.sales_date)
        if not month:
            continue
        counts[month] = counts.get(month, 0) + 1
        code = s.customer or s.customer_name or "(미분류)"
        customer_month[(code, month)] = customer_month.get((code, month), 0.0) + s.book_amount
        if s.customer_name:
            names[code] = s.customer_name

    result = []
    for a in stats.anomalies:
        idx = months.index(a.month)
        previous_month = months[idx - 1] if idx > 0 else None
        previous = by_month[previous_month] if previous_month else None
        mom = pct(a.value - previous, abs(previous)) if previous else None

        contributors = []
        if previous_month:
            codes = {c for (c, m) in customer_month if m in (a.month, previous_month)}
            contributors = [
                CustomerContribution(code, names.get(code, code),
                                     customer_month.get((code, a.month), 0.0),
                                     customer_month.get((code, previous_month), 0.0))
                for code in codes
            ]
            contributors.sort(key=lambda c: abs(c.change), reverse=True)
            contributors = contributors[:TOP_CONTRIBUTORS]

        sigma = abs(a.value - mean) / std if std > 0 else 0.0
        enhanced = EnhancedAnomaly(
            month=a.month,
            value=a.value,
            type=a.type,
            deviation=a.deviation,
            transaction_count=counts.get(a.month, 0),
            mom_change_pct=mom,
            sigma=sigma,
            severity=classify_sigma(sigma),
            top_contributors=contributors,
        )
        enhanced.description = _describe(enhanced)
        result.append(enhanced)
    return result


# ── Cohorts ───────────────────────────────────────────────────────────────────

def calc_cohort_analysis(sales: list[SalesRecord]) -> CohortAnalysisResult:
    """Customers grouped by first purchase month and tracked for repurchase in later months."""
    first_month: dict[str, str] = {}
    revenue: dict[str, dict[str, float]] = {}
    for s in sales:
        month = extract_month(s.sales_date)
        if not s.customer or not month:
            continue
        if s.customer not in first_month or month < first_month[s.customer]:
            first_month[s.customer] = month
        months = revenue.setdefault(s.customer, {})
        months[month] = months.get(month, 0.0) + s.book_amount
    if not first_month:
        return CohortAnalysisResult()

    cohorts_by_month: dict[str, list[str]] = {}
    for customer, month in first_month.items():
        cohorts_by_month.setdefault(month, []).append(customer)

    cells = []
    cohorts = []
    for cohort_month in sorted(cohorts_by_month):
        members = cohorts_by_month[cohort_month]
        periods: dict[str, list] = {}
        for customer in members:
            for month, amount in revenue[customer].items():
                if month_distance(cohort_month, month) < 0:
                    continue
                p = periods.setdefault(month, [set(), 0.0])
                p[0].add(customer)
                p[1] += amount
        for period_month in sorted(periods):
            active, amount = periods[period_month]
            cells.append(CohortCell(cohort_month, period_month, month_distance(cohort_month, period_month),
                                    len(active), len(members), len(active) / len(members) * 100, amount))
        first = periods.get(cohort_month)
        cohorts.append(Cohort(cohort_month, len(members), first[1] if first else 0.0))

    weighted: dict[int, list[float]] = {}
    for c in cells:
        w = weighted.setdefault(c.period_index, [0.0, 0.0])
        w[0] += c.retention_rate * c.total_customers
        w[1] += c.total_customers
    avg_retention = [(period, rate_sum / weight if weight > 0 else 0.0)
                     for period, (rate_sum, weight) in sorted(weighted.items())]
    return CohortAnalysisResult(cells, cohorts, avg_retention)

"""
Month-over-month customer grade migration.

Every customer-month is graded A/B/C/D against percentile cut-offs taken over
all positive customer-month amounts (A ≥ p80, B ≥ p60, C ≥ p40, D below);
a month without sales is grade N. Consecutive months are then compared to
count upgrades, downgrades, new and churned customers.
"""

from dataclasses import dataclass, field

import numpy as np

from erpsight.records.models import SalesRecord
from erpsight.utils.dates import extract_month

GRADE_ORDER = {"A": 4, "B": 3, "C": 2, "D": 1, "N": 0}
ACTIVE_GRADES = ["A", "B", "C", "D"]
PERCENTILES = (80, 60, 40)


@dataclass
class GradeThresholds:
    a: float = 0.0
    b: float = 0.0
    c: float = 0.0


@dataclass
class MigrationFlow:
    from_grade: str
    to_grade: str
    count: int
    customers: list[str] = field(default_factory=list)


@dataclass
class MigrationMatrix:
    month: str
    flows: list[MigrationFlow] = field(default_factory=list)


@dataclass
class MigrationSummary:
    month: str
    upgraded: int = 0
    maintained: int = 0
    downgraded: int = 0
    churned: int = 0
    new_customers: int = 0
    total_active: int = 0


@dataclass
class MigrationResult:
    matrices: list[MigrationMatrix] = field(default_factory=list)
    summaries: list[MigrationSummary] = field(default_factory=list)
    thresholds: GradeThresholds = field(default_factory=GradeThresholds)


@dataclass
class GradeDistribution:
    month: str
    counts: dict[str, int] = field(default_factory=dict)


# ── Grading ───────────────────────────────────────────────────────────────────

def _monthly_customer_sales(sales: list[SalesRecord]) -> dict[str, dict[str, float]]:
    months: dict[str, dict[str, float]] = {}
    for s in sales:
        month = extract_month(s.sales_date)
        if not month or not s.customer:
            continue
        customers = months.setdefault(month, {})
        customers[s.customer] = customers.get(s.customer, 0.0) + s.amount
    return months


def grade_thresholds(monthly: dict[str, dict[str, float]]) -> GradeThresholds:
    """Linear-interpolated percentiles of the positive customer-month amounts."""
    positive = [amount for customers in monthly.values() for amount in customers.values() if amount > 0]
    if not positive:
        return GradeThresholds()
    a, b, c = (float(v) for v in np.percentile(positive, PERCENTILES))
    return GradeThresholds(a, b, c)


def assign_grade(amount: float, thresholds: GradeThresholds) -> str:
    if amount <= 0:
        return "N"
    if amount >= thresholds.a:
        return "A"
    if amount >= thresholds.b:
        return "B"
    if amount >= thresholds.c:
        return "C"
    return "D"


# ── Migration ─────────────────────────────────────────────────────────────────

def calc_customer_migration(sales: list[SalesRecord]) -> MigrationResult:
    monthly = _monthly_customer_sales(sales)
    if not monthly:
        return MigrationResult()
    months = sorted(monthly)
    thresholds = grade_thresholds(monthly)
    customers = sorted({c for month_sales in monthly.values() for c in month_sales})
    grades = {
        month: {c: assign_grade(monthly[month].get(c, 0.0), thresholds) for c in customers}
        for month in months
    }

    result = MigrationResult(thresholds=thresholds)
    for prev_month, month in zip(months, months[1:]):
        summary = MigrationSummary(month)
        flows: dict[tuple[str, str], list[str]] = {}
        for c in customers:
            before, after = grades[prev_month][c], grades[month][c]
            if before == "N" and after == "N":
                continue
            flows.setdefault((before, after), []).append(c)
            if before == "N":
                summary.new_customers += 1
                summary.total_active += 1
            elif after == "N":
                summary.churned += 1
            else:
                summary.total_active += 1
                if GRADE_ORDER[after] > GRADE_ORDER[before]:
                    summary.upgraded += 1
                elif GRADE_ORDER[after] < GRADE_ORDER[before]:
                    summary.downgraded += 1
                else:
                    summary.maintained += 1

        ordered = sorted(flows.items(), key=lambda kv: (-GRADE_ORDER[kv[0][0]], -GRADE_ORDER[kv[0][1]]))
        result.matrices.append(MigrationMatrix(month, [
            MigrationFlow(before, after, len(members), members) for (before, after), members in ordered
        ]))
        result.summaries.append(summary)
    return result


def calc_grade_distribution(sales: list[SalesRecord]) -> list[GradeDistribution]:
    """Customers per active grade per month; customers without sales that month are not counted."""
    monthly = _monthly_customer_sales(sales)
    thresholds = grade_thresholds(monthly)
    result = []
    for month in sorted(monthly):
        counts = dict.fromkeys(ACTIVE_GRADES, 0)
        for amount in monthly[month].values():
            grade = assign_grade(amount, thresholds)
            if grade in counts:
                counts[grade] += 1
        result.append(GradeDistribution(month, counts))
    return result

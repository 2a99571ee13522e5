"""
Receivables aging, risk grading, credit utilisation, long-term / bad-debt
provisioning and prepayment analysis.

Risk grading follows the SAP FI-AR convention: anything aged 90 days or more
(month3 onwards, plus the overdue bucket) counts as overdue.
"""

from dataclasses import dataclass
import logging

from erpsight.metrics.aggregation import group_by, pct, sum_field
from erpsight.records.models import AGING_BUCKETS, CollectionRecord, ReceivableAgingRecord
from erpsight.utils.dates import extract_month

logger = logging.getLogger(__name__)

RISK_THRESHOLDS = {
    "high_overdue_ratio": 0.5,
    "medium_overdue_ratio": 0.2,
    "high_overdue_amount": 100_000_000,   # 1억원, overdue bucket only
    "medium_overdue_amount": 50_000_000,  # 5천만원, month3+ total
}

OVERDUE_BUCKETS = ["month3", "month4", "month5", "month6", "overdue"]

PROVISION_RATES = {
    "month4": 0.01,
    "month5": 0.05,
    "month6": 0.10,
    "overdue": 0.50,
}

BAD_DEBT_LABELS = {
    "month4": "91~120일",
    "month5": "121~150일",
    "month6": "151~180일",
    "overdue": "180일+",
}

CREDIT_WARNING_PCT = 80
CREDIT_DANGER_PCT = 100

UNASSIGNED_ORG = "미지정"
UNCLASSIFIED_ORG = "미분류"

_GRADE_ORDER = {"low": 0, "medium": 1, "high": 2}


# ── Data structures ───────────────────────────────────────────────────────────

@dataclass
class AgingSummary:
    month1: float = 0.0
    month2: float = 0.0
    month3: float = 0.0
    month4: float = 0.0
    month5: float = 0.0
    month6: float = 0.0
    overdue: float = 0.0
    total: float = 0.0


@dataclass
class GroupAging:
    key: str
    summary: AgingSummary


@dataclass
class RiskAssessment:
    customer: str
    customer_name: str
    org: str
    rep: str
    total: float
    overdue_ratio: float     # %
    risk_grade: str          # 'low', 'medium', 'high'


@dataclass
class CreditUtilization:
    customer: str
    customer_name: str
    org: str
    rep: str
    total: float
    credit_limit: float
    utilization: float       # %
    status: str              # 'normal', 'warning', 'danger'


@dataclass
class CreditSummary:
    org: str
    total_limit: float
    total_used: float
    utilization_rate: float
    danger_count: int
    warning_count: int


@dataclass
class LongTermSummary:
    long_term_total: float
    long_term_ratio: float
    total_provision: float
    long_term_customer_count: int


@dataclass
class LongTermCustomer:
    customer: str
    customer_name: str
    rep: str
    org: str
    month4: float
    month5: float
    month6: float
    overdue: float
    long_term_total: float
    total: float
    long_term_share: float
    provision: float
    credit_limit: float
    risk_grade: str


@dataclass
class LongTermByOrg:
    org: str
    month6: float
    overdue: float
    long_term_total: float
    total_receivable: float
    long_term_ratio: float
    provision: float
    customer_count: int


@dataclass
class BadDebtProvision:
    bucket: str
    principal: float
    rate: float
    provision: float


@dataclass
class PrepaymentSummary:
    total_prepayment: float = 0.0
    total_book_prepayment: float = 0.0
    prepayment_to_sales_ratio: float = 0.0
    org_count: int = 0


@dataclass
class OrgPrepayment:
    org: str
    prepayment: float = 0.0
    book_prepayment: float = 0.0
    collection_count: int = 0


@dataclass
class MonthlyPrepayment:
    month: str
    prepayment: float = 0.0
    book_prepayment: float = 0.0


# ── Aging ─────────────────────────────────────────────────────────────────────

def calc_aging_summary(records: list[ReceivableAgingRecord]) -> AgingSummary:
    summary = AgingSummary()
    for r in records:
        for name in AGING_BUCKETS:
            setattr(summary, name, getattr(summary, name) + r.bucket(name).book)
        summary.total += r.total.book
    return summary


def calc_aging_by_org(aging_by_source: dict[str, list[ReceivableAgingRecord]]) -> list[GroupAging]:
    """Aging per source/org key (one aging export per org), largest total first."""
    result = [GroupAging(org, calc_aging_summary(recs)) for org, recs in aging_by_source.items()]
    return sorted(result, key=lambda g: g.summary.total, reverse=True)


def calc_aging_by_person(records: list[ReceivableAgingRecord]) -> list[GroupAging]:
    groups = group_by(records, lambda r: r.rep)
    result = [GroupAging(person, calc_aging_summary(recs)) for person, recs in groups.items()]
    return sorted(result, key=lambda g: g.summary.total, reverse=True)


def group_by_source(records: list[ReceivableAgingRecord]) -> dict[str, list[ReceivableAgingRecord]]:
    """Split a flat aging list back into per-file groups (source name, falling back to org)."""
    return group_by(records, lambda r: r.source_name or r.org)


# ── Risk grading ──────────────────────────────────────────────────────────────

def overdue_amount(record: ReceivableAgingRecord) -> float:
    return sum(record.bucket(b).book for b in OVERDUE_BUCKETS)


def assess_risk(record: ReceivableAgingRecord) -> str:
    """
    Grade a single aging row.
      total == 0                                   → low
      overdue ratio > 50% or overdue bucket > 1억   → high
      overdue ratio > 20% or month3+ > 5천만       → medium
    """
    total = record.total.book
    if total == 0:
        return "low"
    overdue_amt = overdue_amount(record)
    ratio = overdue_amt / total
    if ratio > RISK_THRESHOLDS["high_overdue_ratio"] or record.overdue.book > RISK_THRESHOLDS["high_overdue_amount"]:
        return "high"
    if ratio > RISK_THRESHOLDS["medium_overdue_ratio"] or overdue_amt > RISK_THRESHOLDS["medium_overdue_amount"]:
        return "medium"
    return "low"


def calc_risk_assessments(records: list[ReceivableAgingRecord]) -> list[RiskAssessment]:
    result = []
    for r in records:
        total = r.total.book
        if total == 0:
            continue
        result.append(RiskAssessment(
            customer=r.customer,
            customer_name=r.customer_name,
            org=r.org,
            rep=r.rep,
            total=total,
            overdue_ratio=pct(overdue_amount(r), total) if total > 0 else 0.0,
            risk_grade=assess_risk(r),
        ))
    return sorted(result, key=lambda a: a.total, reverse=True)


def worst_grade(grades) -> str:
    worst = "low"
    for g in grades:
        if _GRADE_ORDER.get(g, 0) > _GRADE_ORDER[worst]:
            worst = g
    return worst


# ── Credit ────────────────────────────────────────────────────────────────────

def _credit_status(utilization: float) -> str:
    if utilization >= CREDIT_DANGER_PCT:
        return "danger"
    if utilization >= CREDIT_WARNING_PCT:
        return "warning"
    return "normal"


def calc_credit_utilization(records: list[ReceivableAgingRecord]) -> list[CreditUtilization]:
    """Receivables against credit limit per customer; customers without a limit are skipped."""
    result = []
    for customer, recs in group_by(records, lambda r: r.customer).items():
        first = recs[0]
        limit = first.credit_limit
        if not limit:
            continue
        total = sum_field(recs, lambda r: r.total.book)
        utilization = total / limit * 100
        result.append(CreditUtilization(
            customer=customer,
            customer_name=first.customer_name,
            org=first.org,
            rep=first.rep,
            total=total,
            credit_limit=limit,
            utilization=utilization,
            status=_credit_status(utilization),
        ))
    return sorted(result, key=lambda c: c.utilization, reverse=True)


def calc_credit_summary_by_org(records: list[ReceivableAgingRecord]) -> list[CreditSummary]:
    result = []
    for org, items in group_by(calc_credit_utilization(records), lambda u: u.org).items():
        total_limit = sum(u.credit_limit for u in items)
        total_used = sum(u.total for u in items)
        result.append(CreditSummary(
            org=org,
            total_limit=total_limit,
            total_used=total_used,
            utilization_rate=pct(total_used, total_limit) if total_limit > 0 else 0.0,
            danger_count=sum(1 for u in items if u.status == "danger"),
            warning_count=sum(1 for u in items if u.status == "warning"),
        ))
    return sorted(result, key=lambda s: s.utilization_rate, reverse=True)


# ── Long-term receivables / provisioning ──────────────────────────────────────

def estimate_provision(record: ReceivableAgingRecord) -> float:
    return sum(record.bucket(b).book * rate for b, rate in PROVISION_RATES.items())


def calc_long_term_summary(records: list[ReceivableAgingRecord]) -> LongTermSummary:
    summary = calc_aging_summary(records)
    long_term = summary.month6 + summary.overdue
    customers = {r.customer for r in records if r.month6.book + r.overdue.book > 0}
    return LongTermSummary(
        long_term_total=long_term,
        long_term_ratio=pct(long_term, summary.total) if summary.total > 0 else 0.0,
        total_provision=sum(estimate_provision(r) for r in records),
        long_term_customer_count=len(customers),
    )


def calc_long_term_customers(records: list[ReceivableAgingRecord]) -> list[LongTermCustomer]:
    result = []
    for customer, recs in group_by(records, lambda r: r.customer).items():
        first = recs[0]
        m4 = sum_field(recs, lambda r: r.month4.book)
        m5 = sum_field(recs, lambda r: r.month5.book)
        m6 = sum_field(recs, lambda r: r.month6.book)
        ov = sum_field(recs, lambda r: r.overdue.book)
        total = sum_field(recs, lambda r: r.total.book)
        long_term = m6 + ov
        if long_term <= 0:
            continue
        provision = (m4 * PROVISION_RATES["month4"] + m5 * PROVISION_RATES["month5"]
                     + m6 * PROVISION_RATES["month6"] + ov * PROVISION_RATES["overdue"])
        result.append(LongTermCustomer(
            customer=customer,
            customer_name=first.customer_name,
            rep=first.rep,
            org=first.org,
            month4=m4, month5=m5, month6=m6, overdue=ov,
            long_term_total=long_term,
            total=total,
            long_term_share=pct(long_term, total) if total > 0 else 0.0,
            provision=provision,
            credit_limit=first.credit_limit or 0.0,
            risk_grade=worst_grade(assess_risk(r) for r in recs),
        ))
    return sorted(result, key=lambda c: c.long_term_total, reverse=True)


def calc_long_term_by_org(records: list[ReceivableAgingRecord]) -> list[LongTermByOrg]:
    groups = group_by(records, lambda r: r.org or UNASSIGNED_ORG)
    result = []
    for org, recs in groups.items():
        m6 = sum_field(recs, lambda r: r.month6.book)
        ov = sum_field(recs, lambda r: r.overdue.book)
        total = sum_field(recs, lambda r: r.total.book)
        result.append(LongTermByOrg(
            org=org,
            month6=m6,
            overdue=ov,
            long_term_total=m6 + ov,
            total_receivable=total,
            long_term_ratio=pct(m6 + ov, total) if total > 0 else 0.0,
            provision=sum(estimate_provision(r) for r in recs),
            customer_count=len({r.customer for r in recs if r.month6.book + r.overdue.book > 0}),
        ))
    return sorted(result, key=lambda o: o.long_term_total, reverse=True)


def calc_bad_debt_provision(records: list[ReceivableAgingRecord]) -> list[BadDebtProvision]:
    rows = []
    for bucket, rate in PROVISION_RATES.items():
        principal = sum_field(records, lambda r, b=bucket: r.bucket(b).book)
        rows.append(BadDebtProvision(BAD_DEBT_LABELS[bucket], principal, rate, principal * rate))
    return rows


# ── Prepayments ───────────────────────────────────────────────────────────────

def calc_prepayment_summary(collections: list[CollectionRecord], total_sales: float) -> PrepaymentSummary:
    total = sum_field(collections, lambda r: r.prepayment)
    return PrepaymentSummary(
        total_prepayment=total,
        total_book_prepayment=sum_field(collections, lambda r: r.book_prepayment),
        prepayment_to_sales_ratio=pct(total, total_sales),
        org_count=len({r.org.strip() for r in collections if r.org.strip()}),
    )


def calc_org_prepayments(collections: list[CollectionRecord]) -> list[OrgPrepayment]:
    orgs: dict[str, OrgPrepayment] = {}
    for r in collections:
        org = r.org.strip() or UNCLASSIFIED_ORG
        entry = orgs.setdefault(org, OrgPrepayment(org))
        entry.prepayment += r.prepayment
        entry.book_prepayment += r.book_prepayment
        entry.collection_count += 1
    return sorted(orgs.values(), key=lambda o: o.prepayment, reverse=True)


def calc_monthly_prepayments(collections: list[CollectionRecord]) -> list[MonthlyPrepayment]:
    months: dict[str, MonthlyPrepayment] = {}
    for r in collections:
        month = extract_month(r.collection_date)
        if not month:
            continue
        entry = months.setdefault(month, MonthlyPrepayment(month))
        entry.prepayment += r.prepayment
        entry.book_prepayment += r.book_prepayment
    return [months[m] for m in sorted(months)]

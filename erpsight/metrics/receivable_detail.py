"""
Receivable drill-downs: per-rep portfolio and health, customer × rep detail,
per-customer aging profile, currency exposure, shipment-vs-book gap and the
amount-weighted average receivable age.
"""

from dataclasses import dataclass

from erpsight.metrics.aggregation import group_by, pct
from erpsight.metrics.receivables import (
    UNASSIGNED_ORG, assess_risk, calc_credit_utilization, calc_risk_assessments, overdue_amount,
)
from erpsight.records.models import AGING_BUCKETS, ReceivableAgingRecord

# Bucket midpoints in days, used for the weighted average age
BUCKET_MIDPOINTS = {
    "month1": 15,
    "month2": 45,
    "month3": 75,
    "month4": 105,
    "month5": 135,
    "month6": 165,
    "overdue": 270,
}

NORMAL_BUCKETS = ["month1", "month2"]
CAUTION_BUCKETS = ["month3", "month4", "month5"]
LATE_BUCKETS = ["month6", "overdue"]

EFFICIENCY_GRADES = [(80, "A"), (60, "B"), (40, "C")]


# ── Data structures ───────────────────────────────────────────────────────────

@dataclass
class PersonPortfolio:
    person: str
    customer_count: int
    total_receivable: float
    overdue_amount: float
    overdue_ratio: float         # %
    high_risk_count: int
    hhi: float                   # 0~1
    top_customer: str
    top_customer_share: float    # %
    normal_ratio: float          # % in month1 + month2
    efficiency_grade: str        # 'A'..'D'


@dataclass
class PersonHealth:
    person: str
    normal: float                # month1 + month2
    caution: float               # month3 ~ month5
    overdue: float               # month6 + overdue
    total: float
    normal_pct: float
    caution_pct: float
    overdue_pct: float


@dataclass
class CustomerRepDetail:
    customer: str
    customer_name: str
    person: str
    org: str
    total_receivable: float
    overdue_ratio: float
    risk_grade: str
    credit_limit: float
    credit_usage: float


@dataclass
class CustomerAgingProfile:
    customer: str
    customer_name: str
    rep: str
    org: str
    currency: str
    buckets: dict[str, float]
    total: float                 # book amount
    shipment_total: float
    gap: float                   # shipment − book
    gap_rate: float              # % of book
    weighted_days: float


@dataclass
class CurrencyExposure:
    currency: str
    book_amount: float
    shipment_amount: float
    share: float
    customer_count: int


@dataclass
class OrgInvoiceBookGap:
    org: str
    shipment_total: float
    book_total: float
    gap: float
    gap_rate: float


@dataclass
class WeightedAging:
    weighted_avg_days: float = 0.0
    total_amount: float = 0.0


# ── Helpers ───────────────────────────────────────────────────────────────────

def _book(records: list[ReceivableAgingRecord], buckets) -> float:
    return sum(r.bucket(b).book for r in records for b in buckets)


def _weighted_days(amounts: dict[str, float]) -> tuple[float, float]:
    """(Σ|amount|·midpoint, Σ|amount|) over the aging buckets; negative balances count by size."""
    weighted = total = 0.0
    for bucket, amount in amounts.items():
        size = abs(amount)
        if size > 0:
            weighted += size * BUCKET_MIDPOINTS[bucket]
            total += size
    return weighted, total


def efficiency_grade(normal_ratio: float) -> str:
    for cutoff, grade in EFFICIENCY_GRADES:
        if normal_ratio >= cutoff:
            return grade
    return "D"


# ── Per-rep views ─────────────────────────────────────────────────────────────

def calc_person_portfolio(records: list[ReceivableAgingRecord]) -> list[PersonPortfolio]:
    result = []
    for person, recs in group_by(records, lambda r: r.rep).items():
        total = sum(r.total.book for r in recs)
        customers: dict[str, list] = {}
        for r in recs:
            entry = customers.setdefault(r.customer or r.customer_name, [r.customer_name or r.customer, 0.0])
            entry[1] += r.total.book

        hhi = 0.0
        top_name, top_amount = "", 0.0
        if total > 0:
            for name, amount in customers.values():
                hhi += (amount / total) ** 2
                if amount > top_amount:
                    top_name, top_amount = name, amount

        normal_ratio = pct(_book(recs, NORMAL_BUCKETS), total) if total > 0 else 0.0
        overdue_amt = sum(overdue_amount(r) for r in recs)
        result.append(PersonPortfolio(
            person=person,
            customer_count=len(customers),
            total_receivable=total,
            overdue_amount=overdue_amt,
            overdue_ratio=pct(overdue_amt, total) if total > 0 else 0.0,
            high_risk_count=sum(1 for r in recs if assess_risk(r) == "high"),
            hhi=hhi,
            top_customer=top_name,
            top_customer_share=pct(top_amount, total) if total > 0 else 0.0,
            normal_ratio=normal_ratio,
            efficiency_grade=efficiency_grade(normal_ratio),
        ))
    return sorted(result, key=lambda p: p.total_receivable, reverse=True)


def calc_person_health(records: list[ReceivableAgingRecord]) -> list[PersonHealth]:
    result = []
    for person, recs in group_by(records, lambda r: r.rep).items():
        normal = _book(recs, NORMAL_BUCKETS)
        caution = _book(recs, CAUTION_BUCKETS)
        late = _book(recs, LATE_BUCKETS)
        total = sum(r.total.book for r in recs)

        def share(amount: float) -> float:
            return pct(amount, total) if total > 0 else 0.0

        result.append(PersonHealth(person, normal, caution, late, total, share(normal), share(caution), share(late)))
    return sorted(result, key=lambda p: p.total, reverse=True)


def calc_customer_rep_detail(records: list[ReceivableAgingRecord]) -> list[CustomerRepDetail]:
    """One row per (customer, rep) with a non-zero balance, joined to the customer's risk and credit figures."""
    risk = {a.customer: a for a in calc_risk_assessments(records)}
    credit = {c.customer: c for c in calc_credit_utilization(records)}

    result = []
    for recs in group_by(records, lambda r: f"{r.customer}||{r.rep}", skip_empty=False).values():
        total = sum(r.total.book for r in recs)
        if total == 0:
            continue
        first = recs[0]
        assessment = risk.get(first.customer)
        utilization = credit.get(first.customer)
        result.append(CustomerRepDetail(
            customer=first.customer,
            customer_name=first.customer_name or first.customer,
            person=first.rep,
            org=first.org,
            total_receivable=total,
            overdue_ratio=assessment.overdue_ratio if assessment else 0.0,
            risk_grade=assessment.risk_grade if assessment else "low",
            credit_limit=utilization.credit_limit if utilization else 0.0,
            credit_usage=utilization.utilization if utilization else 0.0,
        ))
    return sorted(result, key=lambda d: d.total_receivable, reverse=True)


# ── Customer / currency / org views ───────────────────────────────────────────

def calc_customer_aging_profile(records: list[ReceivableAgingRecord]) -> list[CustomerAgingProfile]:
    result = []
    for customer, recs in group_by(records, lambda r: r.customer).items():
        first = recs[0]
        buckets = {b: sum(r.bucket(b).book for r in recs) for b in AGING_BUCKETS}
        shipment = sum(r.bucket(b).shipment for r in recs for b in AGING_BUCKETS)
        book = sum(r.total.book for r in recs)
        weighted, amount = _weighted_days(buckets)
        gap = shipment - book
        result.append(CustomerAgingProfile(
            customer=customer,
            customer_name=first.customer_name,
            rep=first.rep,
            org=first.org,
            currency=first.currency or "KRW",
            buckets=buckets,
            total=book,
            shipment_total=shipment,
            gap=gap,
            gap_rate=pct(gap, book),
            weighted_days=weighted / amount if amount > 0 else 0.0,
        ))
    return sorted(result, key=lambda p: p.total, reverse=True)


def calc_currency_exposure(records: list[ReceivableAgingRecord]) -> list[CurrencyExposure]:
    groups = group_by(records, lambda r: r.currency or "KRW")
    total_book = sum(r.total.book for r in records)
    result = [
        CurrencyExposure(
            currency=currency,
            book_amount=sum(r.total.book for r in recs),
            shipment_amount=sum(r.total.shipment for r in recs),
            share=pct(sum(r.total.book for r in recs), total_book) if total_book > 0 else 0.0,
            customer_count=len({r.customer for r in recs}),
        )
        for currency, recs in groups.items()
    ]
    return sorted(result, key=lambda c: c.book_amount, reverse=True)


def calc_org_invoice_book_gap(records: list[ReceivableAgingRecord]) -> list[OrgInvoiceBookGap]:
    result = []
    for org, recs in group_by(records, lambda r: r.org or UNASSIGNED_ORG).items():
        shipment = sum(r.total.shipment for r in recs)
        book = sum(r.total.book for r in recs)
        result.append(OrgInvoiceBookGap(org, shipment, book, shipment - book, pct(shipment - book, book)))
    return sorted(result, key=lambda g: abs(g.gap), reverse=True)


def calc_weighted_aging_days(records: list[ReceivableAgingRecord]) -> WeightedAging:
    weighted = total = 0.0
    for r in records:
        w, t = _weighted_days({b: r.bucket(b).book for b in AGING_BUCKETS})
        weighted += w
        total += t
    return WeightedAging(weighted / total if total > 0 else 0.0, total)

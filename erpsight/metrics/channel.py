"""Sales mix by payment term, distribution channel and product group (transaction-currency amounts)."""

from dataclasses import dataclass, field

from erpsight.metrics.aggregation import pct
from erpsight.records.models import SalesRecord
from erpsight.utils.dates import extract_month

UNCLASSIFIED = "미분류"


@dataclass
class SalesShare:
    key: str
    amount: float
    count: int
    share: float             # %


@dataclass
class ProductGroupTrend:
    month: str
    amounts: dict[str, float] = field(default_factory=dict)


def _label(value: str) -> str:
    return (value or "").strip() or UNCLASSIFIED


def _sales_share_by(sales: list[SalesRecord], key) -> list[SalesShare]:
    buckets: dict[str, list] = {}
    for s in sales:
        b = buckets.setdefault(_label(key(s)), [0.0, 0])
        b[0] += s.amount
        b[1] += 1
    total = sum(amount for amount, _ in buckets.values())
    result = [SalesShare(k, amount, count, pct(amount, total)) for k, (amount, count) in buckets.items()]
    return sorted(result, key=lambda r: r.amount, reverse=True)


def calc_sales_by_payment_term(sales: list[SalesRecord]) -> list[SalesShare]:
    return _sales_share_by(sales, lambda s: s.payment_term)


def calc_sales_by_channel(sales: list[SalesRecord]) -> list[SalesShare]:
    return _sales_share_by(sales, lambda s: s.channel)


def calc_product_group_trends(sales: list[SalesRecord]) -> list[ProductGroupTrend]:
    """One point per month with every product group present (0 where the group had no sales that month)."""
    months: dict[str, dict[str, float]] = {}
    groups: list[str] = []
    for s in sales:
        month = extract_month(s.sales_date)
        if not month:
            continue
        group = _label(s.product_group)
        if group not in groups:
            groups.append(group)
        amounts = months.setdefault(month, {})
        amounts[group] = amounts.get(group, 0.0) + s.amount
    return [
        ProductGroupTrend(month, {g: months[month].get(g, 0.0) for g in groups})
        for month in sorted(months)
    ]

"""
Currency mix of sales and an FX gain/loss estimate against the period average rate.
"""

from dataclasses import dataclass, field

from erpsight.metrics.aggregation import pct, round_to
from erpsight.records.models import SalesRecord
from erpsight.utils.dates import extract_month

BASE_CURRENCY = "KRW"


@dataclass
class CurrencySales:
    currency: str
    transaction_amount: float    # in the transaction currency
    book_amount: float           # in KRW
    avg_exchange_rate: float     # book / transaction
    count: int
    share: float


@dataclass
class FxImpactSummary:
    total_book_amount: float = 0.0
    domestic_amount: float = 0.0
    foreign_amount: float = 0.0
    foreign_share_pct: float = 0.0
    currency_breakdown: list[CurrencySales] = field(default_factory=list)


@dataclass
class MonthlyFxTrend:
    month: str
    domestic: float = 0.0
    foreign: float = 0.0
    foreign_share: float = 0.0


@dataclass
class FxPnLItem:
    currency: str
    avg_rate: float
    book_amount: float
    estimated_at_avg_rate: float
    fx_gain_loss: float


def normalize_currency(currency: str) -> str:
    return (currency or BASE_CURRENCY).strip().upper() or BASE_CURRENCY


def _avg_rate(book: float, transaction: float) -> float:
    return book / transaction if transaction != 0 else 0.0


def calc_currency_sales(sales: list[SalesRecord]) -> FxImpactSummary:
    totals: dict[str, list] = {}
    for s in sales:
        t = totals.setdefault(normalize_currency(s.currency), [0.0, 0.0, 0])
        t[0] += s.amount or 0
        t[1] += s.book_amount or 0
        t[2] += 1

    total_book = sum(t[1] for t in totals.values())
    breakdown = [
        CurrencySales(
            currency=currency,
            transaction_amount=txn,
            book_amount=book,
            avg_exchange_rate=1.0 if currency == BASE_CURRENCY else _avg_rate(book, txn),
            count=count,
            share=book / total_book * 100 if total_book > 0 else 0.0,
        )
        for currency, (txn, book, count) in totals.items()
    ]
    breakdown.sort(key=lambda c: c.book_amount, reverse=True)

    domestic = totals.get(BASE_CURRENCY, [0.0, 0.0, 0])[1]
    foreign = total_book - domestic
    return FxImpactSummary(total_book, domestic, foreign,
                           foreign / total_book * 100 if total_book > 0 else 0.0, breakdown)


def calc_monthly_fx_trend(sales: list[SalesRecord]) -> list[MonthlyFxTrend]:
    months: dict[str, MonthlyFxTrend] = {}
    for s in sales:
        month = extract_month(s.sales_date)
        if not month:
            continue
        entry = months.setdefault(month, MonthlyFxTrend(month))
        if normalize_currency(s.currency) == BASE_CURRENCY:
            entry.domestic += s.book_amount or 0
        else:
            entry.foreign += s.book_amount or 0
    for entry in months.values():
        entry.foreign_share = pct(entry.foreign, entry.domestic + entry.foreign)
    return sorted(months.values(), key=lambda m: m.month)


def calc_fx_pnl(sales: list[SalesRecord]) -> list[FxPnLItem]:
    """
    Per foreign currency: the sum of each sale's book amount minus its
    transaction amount valued at the currency's weighted average rate.
    """
    foreign = [s for s in sales if normalize_currency(s.currency) != BASE_CURRENCY]
    if not foreign:
        return []

    totals: dict[str, list[float]] = {}
    for s in foreign:
        t = totals.setdefault(normalize_currency(s.currency), [0.0, 0.0])
        t[0] += s.amount or 0
        t[1] += s.book_amount or 0
    avg_rates = {currency: _avg_rate(book, txn) for currency, (txn, book) in totals.items()}

    gains: dict[str, float] = {}
    for s in foreign:
        currency = normalize_currency(s.currency)
        effect = (s.book_amount or 0) - (s.amount or 0) * avg_rates[currency]
        gains[currency] = gains.get(currency, 0.0) + effect

    result = [
        FxPnLItem(currency, round_to(avg_rates[currency], 2), book, txn * avg_rates[currency], gains[currency])
        for currency, (txn, book) in totals.items()
    ]
    return sorted(result, key=lambda i: i.book_amount, reverse=True)

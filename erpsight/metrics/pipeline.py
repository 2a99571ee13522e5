"""
Order-to-Cash pipeline: orders → sales conversion → collections → outstanding balance.
"""

from dataclasses import dataclass

from erpsight.metrics.aggregation import pct, sum_field
from erpsight.records.models import CollectionRecord, OrderRecord, SalesRecord
from erpsight.utils.dates import extract_month

STAGE_ORDER = "수주"
STAGE_SALES = "매출전환"
STAGE_COLLECTED = "수금완료"
STAGE_OUTSTANDING = "미수잔액"


@dataclass
class PipelineStage:
    stage: str
    amount: float
    percentage: float    # of the first (order) stage
    count: int


@dataclass
class MonthlyConversion:
    month: str
    orders: float = 0.0
    sales: float = 0.0
    collections: float = 0.0
    conversion_rate: float = 0.0
    collection_rate: float = 0.0


def calc_o2c_pipeline(
    orders: list[OrderRecord],
    sales: list[SalesRecord],
    collections: list[CollectionRecord],
) -> list[PipelineStage]:
    total_orders = sum_field(orders, lambda r: r.book_amount)
    total_sales = sum_field(sales, lambda r: r.book_amount)
    total_collections = sum_field(collections, lambda r: r.book_amount)
    outstanding = max(0.0, total_sales - total_collections)

    def share(amount: float) -> float:
        return pct(amount, total_orders) if total_orders > 0 else 0.0

    return [
        PipelineStage(STAGE_ORDER, total_orders, share(total_orders), len(orders)),
        PipelineStage(STAGE_SALES, total_sales, share(total_sales), len(sales)),
        PipelineStage(STAGE_COLLECTED, total_collections, share(total_collections), len(collections)),
        PipelineStage(STAGE_OUTSTANDING, outstanding, share(outstanding), 0),
    ]


def calc_monthly_conversion(
    orders: list[OrderRecord],
    sales: list[SalesRecord],
    collections: list[CollectionRecord],
) -> list[MonthlyConversion]:
    """Monthly orders/sales/collections with conversion (sales/orders) and collection (collections/sales) rates."""
    months: dict[str, MonthlyConversion] = {}

    def entry(month: str) -> MonthlyConversion:
        if month not in months:
            months[month] = MonthlyConversion(month=month)
        return months[month]

    for r in orders:
        m = extract_month(r.order_date)
        if m:
            entry(m).orders += r.book_amount
    for r in sales:
        m = extract_month(r.sales_date)
        if m:
            entry(m).sales += r.book_amount
    for r in collections:
        m = extract_month(r.collection_date)
        if m:
            entry(m).collections += r.book_amount

    for e in months.values():
        e.conversion_rate = pct(e.sales, e.orders) if e.orders > 0 else 0.0
        e.collection_rate = pct(e.collections, e.sales) if e.sales > 0 else 0.0

    return sorted(months.values(), key=lambda e: e.month)

"""
Customer lifetime value.

CLV = avg transaction value × annual purchase frequency × profit margin ×
expected lifespan, where the lifespan (3 years at full retention) is scaled
by each customer's purchase frequency relative to the average customer.
"""

from dataclasses import dataclass

from erpsight.metrics.aggregation import clamp, mean, safe_div
from erpsight.records.models import OrgProfitRecord, SalesRecord
from erpsight.utils.dates import extract_month, month_index

DEFAULT_PROFIT_MARGIN = 0.10
MARGIN_FLOOR = -0.5
MARGIN_CAP = 1.0
BASE_LIFESPAN_YEARS = 3
BASE_RETENTION = 0.2
RETENTION_WEIGHT = 0.8


@dataclass
class CustomerCLV:
    customer: str
    customer_name: str
    total_sales: float
    transaction_count: int
    avg_transaction_value: float
    purchase_frequency: float    # transactions per year
    customer_value: float        # annual sales value
    estimated_lifespan: float    # years
    clv: float
    clv_to_sales_ratio: float


@dataclass
class CLVSummary:
    total_clv: float = 0.0
    avg_clv: float = 0.0
    top_customer_clv: float = 0.0
    customer_count: int = 0


def detect_years_in_data(sales: list[SalesRecord]) -> float:
    """Calendar span of the sales list in years (month granularity, at least one month)."""
    indexes = [i for i in (month_index(extract_month(s.sales_date)) for s in sales) if i is not None]
    if not indexes:
        return 1.0
    return max(1 / 12, (max(indexes) - min(indexes) + 1) / 12)


def calc_avg_profit_margin(org_profit: list[OrgProfitRecord]) -> float:
    """Σ gross profit / Σ sales as a 0~1 fraction; 10% when there is no usable profit data."""
    total_sales = sum(r.sales.actual for r in org_profit)
    total_gp = sum(r.gross_profit.actual for r in org_profit)
    if not org_profit or total_sales == 0:
        return DEFAULT_PROFIT_MARGIN
    return clamp(total_gp / total_sales, MARGIN_FLOOR, MARGIN_CAP)


def calc_customer_clv(sales: list[SalesRecord], org_profit: list[OrgProfitRecord]) -> list[CustomerCLV]:
    if not sales:
        return []
    years = detect_years_in_data(sales)
    margin = calc_avg_profit_margin(org_profit)

    customers: dict[str, dict] = {}
    for s in sales:
        if not s.customer:
            continue
        c = customers.setdefault(s.customer, {"name": s.customer_name, "total": 0.0, "count": 0})
        c["total"] += s.book_amount
        c["count"] += 1
        if s.customer_name:
            c["name"] = s.customer_name

    avg_frequency = mean([c["count"] / years for c in customers.values()])

    result = []
    for code, c in customers.items():
        avg_tx = safe_div(c["total"], c["count"])
        frequency = c["count"] / years
        value = avg_tx * frequency
        if avg_frequency > 0:
            retention = min(1.0, frequency / avg_frequency) * RETENTION_WEIGHT + BASE_RETENTION
        else:
            retention = 0.5
        lifespan = BASE_LIFESPAN_YEARS * retention
        clv = value * margin * lifespan
        result.append(CustomerCLV(
            customer=code,
            customer_name=c["name"] or code,
            total_sales=c["total"],
            transaction_count=c["count"],
            avg_transaction_value=avg_tx,
            purchase_frequency=frequency,
            customer_value=value,
            estimated_lifespan=lifespan,
            clv=clv,
            clv_to_sales_ratio=safe_div(clv, c["total"]),
        ))
    return sorted(result, key=lambda c: c.clv, reverse=True)


def calc_clv_summary(results: list[CustomerCLV]) -> CLVSummary:
    if not results:
        return CLVSummary()
    total = sum(c.clv for c in results)
    return CLVSummary(total, total / len(results), results[0].clv, len(results))

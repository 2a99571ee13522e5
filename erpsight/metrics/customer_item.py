"""
Customer × item views over the customer-item profit report: cross
profitability cells, item ABC grading, per-customer product portfolio and a
top-N product × customer sales matrix.
"""

from dataclasses import dataclass, field

from erpsight.metrics.aggregation import pct
from erpsight.metrics.segmentation import grade_by_cum_share
from erpsight.records.models import ProfitabilityRecord

PORTFOLIO_TOP_PRODUCTS = 3
MATRIX_TOP_N = 15


@dataclass
class CrossProfitCell:
    customer: str
    customer_name: str
    product: str
    product_name: str
    sales: float
    gross_profit: float
    gross_margin: float
    operating_profit: float
    op_margin: float
    quantity: float


@dataclass
class AbcItem:
    product: str
    product_name: str
    sales: float
    cumulative_share: float
    grade: str               # 'A' (≤80%), 'B' (≤95%), 'C'
    gross_profit: float
    gross_margin: float
    customer_count: int


@dataclass
class PortfolioProduct:
    name: str
    sales: float
    margin: float


@dataclass
class CustomerPortfolio:
    customer: str
    customer_name: str
    total_sales: float
    total_gross_profit: float
    avg_gross_margin: float
    product_count: int
    top_products: list[PortfolioProduct] = field(default_factory=list)


@dataclass
class MatrixCell:
    product_idx: int
    customer_idx: int
    sales: float
    gross_margin: float


@dataclass
class ProductCustomerMatrix:
    products: list[str] = field(default_factory=list)
    customers: list[str] = field(default_factory=list)
    cells: list[MatrixCell] = field(default_factory=list)


def calc_cross_profitability(data: list[ProfitabilityRecord]) -> list[CrossProfitCell]:
    cells: dict[tuple[str, str], dict] = {}
    for r in data:
        c = cells.setdefault((r.customer, r.item), {
            "customer_name": r.customer_name, "product_name": r.item_name,
            "sales": 0.0, "gp": 0.0, "op": 0.0, "qty": 0.0,
        })
        c["sales"] += r.sales.actual
        c["gp"] += r.gross_profit.actual
        c["op"] += r.operating_profit.actual
        c["qty"] += r.quantity.actual

    result = [
        CrossProfitCell(customer, c["customer_name"], item, c["product_name"], c["sales"], c["gp"],
                        pct(c["gp"], c["sales"]), c["op"], pct(c["op"], c["sales"]), c["qty"])
        for (customer, item), c in cells.items()
    ]
    return sorted(result, key=lambda c: c.sales, reverse=True)


def calc_abc_analysis(data: list[ProfitabilityRecord]) -> list[AbcItem]:
    """Item ABC grading on cumulative actual sales; rows without an item code are ignored."""
    items: dict[str, dict] = {}
    for r in data:
        if not r.item:
            continue
        i = items.setdefault(r.item, {"name": r.item_name, "sales": 0.0, "gp": 0.0, "customers": set()})
        i["sales"] += r.sales.actual
        i["gp"] += r.gross_profit.actual
        i["customers"].add(r.customer)

    ranked = sorted(items.items(), key=lambda kv: kv[1]["sales"], reverse=True)
    total = sum(i["sales"] for _, i in ranked)
    result = []
    running = 0.0
    for code, i in ranked:
        running += i["sales"]
        cum_share = pct(running, total)
        result.append(AbcItem(code, i["name"], i["sales"], cum_share, grade_by_cum_share(cum_share),
                              i["gp"], pct(i["gp"], i["sales"]), len(i["customers"])))
    return result


def calc_customer_portfolio(data: list[ProfitabilityRecord]) -> list[CustomerPortfolio]:
    customers: dict[str, dict] = {}
    for r in data:
        if not r.customer:
            continue
        c = customers.setdefault(r.customer, {"name": r.customer_name, "sales": 0.0, "gp": 0.0, "products": {}})
        c["sales"] += r.sales.actual
        c["gp"] += r.gross_profit.actual
        p = c["products"].setdefault(r.item, [r.item_name, 0.0, 0.0])
        p[1] += r.sales.actual
        p[2] += r.gross_profit.actual

    result = []
    for code, c in customers.items():
        top = sorted(c["products"].values(), key=lambda p: p[1], reverse=True)[:PORTFOLIO_TOP_PRODUCTS]
        result.append(CustomerPortfolio(
            customer=code,
            customer_name=c["name"],
            total_sales=c["sales"],
            total_gross_profit=c["gp"],
            avg_gross_margin=pct(c["gp"], c["sales"]),
            product_count=len(c["products"]),
            top_products=[PortfolioProduct(name, sales, pct(gp, sales)) for name, sales, gp in top],
        ))
    return sorted(result, key=lambda c: c.total_sales, reverse=True)


def calc_product_customer_matrix(data: list[ProfitabilityRecord], top_n: int = MATRIX_TOP_N) -> ProductCustomerMatrix:
    """Dense top-N products × top-N customers grid (by sales); empty combinations are 0."""
    products: dict[str, list] = {}
    customers: dict[str, list] = {}
    cells: dict[tuple[str, str], list[float]] = {}
    for r in data:
        sales = r.sales.actual
        products.setdefault(r.item, [r.item_name, 0.0])[1] += sales
        customers.setdefault(r.customer, [r.customer_name, 0.0])[1] += sales
        cell = cells.setdefault((r.item, r.customer), [0.0, 0.0])
        cell[0] += sales
        cell[1] += r.gross_profit.actual

    top_products = sorted(products.items(), key=lambda kv: kv[1][1], reverse=True)[:top_n]
    top_customers = sorted(customers.items(), key=lambda kv: kv[1][1], reverse=True)[:top_n]

    matrix = ProductCustomerMatrix(
        products=[name for _, (name, _) in top_products],
        customers=[name for _, (name, _) in top_customers],
    )
    for pi, (item, _) in enumerate(top_products):
        for ci, (customer, _) in enumerate(top_customers):
            sales, gp = cells.get((item, customer), (0.0, 0.0))
            matrix.cells.append(MatrixCell(pi, ci, sales, pct(gp, sales)))
    return matrix

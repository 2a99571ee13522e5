"""
Record shapes handed from the ingestion layer to the calculators.

Every financial cell on the SAP profit reports is a plan / actual / variance
triple (PlanActualDiff). Transactional lists (sales, orders, collections) carry
plain floats. Records are treated as read-only once parsed.
"""

from dataclasses import dataclass, field
from typing import Optional


# ── Atomic cells ──────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class PlanActualDiff:
    """Plan / actual / variance triple. `diff` comes from the source file and may be stale."""
    plan: float = 0.0
    actual: float = 0.0
    diff: float = 0.0

    @classmethod
    def zero(cls) -> "PlanActualDiff":
        return cls(0.0, 0.0, 0.0)

    @property
    def has_plan(self) -> bool:
        return self.plan != 0


@dataclass(frozen=True)
class AgingAmounts:
    shipment: float = 0.0
    book: float = 0.0
    transaction: float = 0.0


def _pad() -> PlanActualDiff:
    return PlanActualDiff()


def _aging() -> AgingAmounts:
    return AgingAmounts()


# ── Transactional records ─────────────────────────────────────────────────────

@dataclass
class OrganizationRecord:
    code: str
    name: str = ""
    is_leaf: str = ""
    start_date: str = ""
    end_date: str = ""
    integrated: str = ""


@dataclass
class SalesRecord:
    sales_date: str = ""
    customer: str = ""
    customer_name: str = ""
    item: str = ""
    item_name: str = ""
    category: str = ""           # 대분류
    quantity: float = 0.0
    currency: str = "KRW"
    exchange_rate: float = 1.0
    amount: float = 0.0          # transaction currency
    book_amount: float = 0.0     # KRW
    org: str = ""
    channel: str = ""
    product_group: str = ""
    sales_group: str = ""
    rep: str = ""
    rep_name: str = ""
    order_type: str = ""
    payment_term: str = ""       # 결제조건


@dataclass
class OrderRecord:
    order_no: str = ""
    order_date: str = ""
    customer: str = ""
    customer_name: str = ""
    rep: str = ""
    rep_name: str = ""
    order_type: str = ""
    org: str = ""
    item: str = ""
    item_name: str = ""
    quantity: float = 0.0
    amount: float = 0.0
    exchange_rate: float = 1.0
    book_amount: float = 0.0
    category: str = ""


@dataclass
class CollectionRecord:
    collection_type: str = ""
    customer_name: str = ""
    org: str = ""
    rep: str = ""
    collection_date: str = ""
    currency: str = "KRW"
    amount: float = 0.0
    book_amount: float = 0.0
    prepayment: float = 0.0
    book_prepayment: float = 0.0


@dataclass
class ReceivableAgingRecord:
    """One row per (org, rep, customer). Buckets are 30-day windows; `overdue` is beyond month6."""
    org: str = ""
    rep: str = ""
    customer: str = ""
    customer_name: str = ""
    currency: str = "KRW"
    month1: AgingAmounts = field(default_factory=_aging)
    month2: AgingAmounts = field(default_factory=_aging)
    month3: AgingAmounts = field(default_factory=_aging)
    month4: AgingAmounts = field(default_factory=_aging)
    month5: AgingAmounts = field(default_factory=_aging)
    month6: AgingAmounts = field(default_factory=_aging)
    overdue: AgingAmounts = field(default_factory=_aging)
    total: AgingAmounts = field(default_factory=_aging)
    credit_limit: Optional[float] = None
    source_name: str = ""

    def bucket(self, name: str) -> AgingAmounts:
        return getattr(self, name)


AGING_BUCKETS = ["month1", "month2", "month3", "month4", "month5", "month6", "overdue"]


@dataclass
class CustomerLedgerRecord:
    """One voucher line of the customer ledger (거래처원장). `balance` is the running balance from the export."""
    customer: str = ""
    customer_name: str = ""
    account_code: str = ""
    account_name: str = ""
    posting_date: str = ""
    memo: str = ""
    debit: float = 0.0
    credit: float = 0.0
    balance: float = 0.0
    currency: str = "KRW"
    transaction_amount: float = 0.0
    voucher_no: str = ""
    cost_center: str = ""
    project_name: str = ""


# ── Profit report records ─────────────────────────────────────────────────────

@dataclass
class OrgProfitRecord:
    division: str = ""
    business_unit: str = ""
    org_team: str = ""
    sales: PlanActualDiff = field(default_factory=_pad)
    cogs: PlanActualDiff = field(default_factory=_pad)
    gross_profit: PlanActualDiff = field(default_factory=_pad)
    direct_selling_freight: PlanActualDiff = field(default_factory=_pad)
    freight: PlanActualDiff = field(default_factory=_pad)
    sga: PlanActualDiff = field(default_factory=_pad)
    operating_profit: PlanActualDiff = field(default_factory=_pad)
    contribution_margin: PlanActualDiff = field(default_factory=_pad)
    cogs_rate: PlanActualDiff = field(default_factory=_pad)
    gross_margin_rate: PlanActualDiff = field(default_factory=_pad)
    sga_rate: PlanActualDiff = field(default_factory=_pad)
    operating_margin_rate: PlanActualDiff = field(default_factory=_pad)
    contribution_margin_rate: PlanActualDiff = field(default_factory=_pad)


# Granular cost lines on the team contribution report, in column order.
SGA_VARIABLE_LINES = [
    "판관변동_노무비", "판관변동_복리후생비", "판관변동_소모품비", "판관변동_수도광열비",
    "판관변동_수선비", "판관변동_외주가공비", "판관변동_운반비", "판관변동_지급수수료",
    "판관변동_견본비",
]
SGA_FIXED_LINES = ["판관고정_노무비", "판관고정_감가상각비", "판관고정_기타경비"]
MFG_VARIABLE_LINES = [
    "제조변동_원재료비", "제조변동_부재료비", "변동_상품매입", "제조변동_노무비",
    "제조변동_복리후생비", "제조변동_소모품비", "제조변동_수도광열비", "제조변동_수선비",
    "제조변동_연료비", "제조변동_외주가공비", "제조변동_운반비", "제조변동_전력비",
    "제조변동_견본비", "제조변동_지급수수료",
]
TEAM_COST_LINES = SGA_VARIABLE_LINES + SGA_FIXED_LINES + MFG_VARIABLE_LINES


@dataclass
class TeamContributionRecord:
    sales_group: str = ""
    org_team: str = ""
    employee_id: str = ""
    sales: PlanActualDiff = field(default_factory=_pad)
    cost: PlanActualDiff = field(default_factory=_pad)
    gross_profit: PlanActualDiff = field(default_factory=_pad)
    gross_margin_rate: PlanActualDiff = field(default_factory=_pad)
    direct_selling_freight: PlanActualDiff = field(default_factory=_pad)
    sga: PlanActualDiff = field(default_factory=_pad)
    operating_profit: PlanActualDiff = field(default_factory=_pad)
    operating_margin_rate: PlanActualDiff = field(default_factory=_pad)
    variable_cost_total: PlanActualDiff = field(default_factory=_pad)
    contribution_margin: PlanActualDiff = field(default_factory=_pad)
    contribution_margin_rate: PlanActualDiff = field(default_factory=_pad)
    cost_lines: dict[str, PlanActualDiff] = field(default_factory=dict)

    def line(self, name: str) -> PlanActualDiff:
        return self.cost_lines.get(name) or PlanActualDiff.zero()


@dataclass
class ProfitabilityRecord:
    """
    Canonical row for the profitability-analysis and customer-item detail reports.
    Both reports are normalised into this shape by the parser; the name fields
    are empty when the source report has no name columns.
    """
    org_team: str = ""
    employee_id: str = ""
    customer: str = ""
    item: str = ""
    customer_name: str = ""
    item_name: str = ""
    customer_category: str = ""        # 거래처대분류
    customer_mid_category: str = ""    # 거래처중분류
    customer_sub_category: str = ""    # 거래처소분류
    product_group: str = ""
    domestic_sales: PlanActualDiff = field(default_factory=_pad)
    export_sales: PlanActualDiff = field(default_factory=_pad)
    quantity: PlanActualDiff = field(default_factory=_pad)
    converted_quantity: PlanActualDiff = field(default_factory=_pad)
    sales: PlanActualDiff = field(default_factory=_pad)
    cost: PlanActualDiff = field(default_factory=_pad)
    gross_profit: PlanActualDiff = field(default_factory=_pad)
    sga: PlanActualDiff = field(default_factory=_pad)
    direct_selling_freight: PlanActualDiff = field(default_factory=_pad)
    operating_profit: PlanActualDiff = field(default_factory=_pad)

    @property
    def display_customer(self) -> str:
        return self.customer_name or self.customer

    @property
    def display_item(self) -> str:
        return self.item_name or self.item


@dataclass
class ItemCostRecord:
    """Product-level manufacturing cost detail; `cost_lines` holds the 17 categories plus 2 subtotals."""
    division: str = ""
    org_team: str = ""
    product: str = ""
    quantity: PlanActualDiff = field(default_factory=_pad)
    sales: PlanActualDiff = field(default_factory=_pad)
    cogs: PlanActualDiff = field(default_factory=_pad)
    gross_profit: PlanActualDiff = field(default_factory=_pad)
    contribution_margin: PlanActualDiff = field(default_factory=_pad)
    contribution_margin_rate: PlanActualDiff = field(default_factory=_pad)
    cost_lines: dict[str, PlanActualDiff] = field(default_factory=dict)

    def line(self, name: str) -> PlanActualDiff:
        return self.cost_lines.get(name) or PlanActualDiff.zero()


# ── Dataset bundle ────────────────────────────────────────────────────────────

@dataclass
class ErpDataset:
    """All record lists for one session; each list is replaced wholesale on re-upload."""
    organizations: list[OrganizationRecord] = field(default_factory=list)
    sales: list[SalesRecord] = field(default_factory=list)
    orders: list[OrderRecord] = field(default_factory=list)
    collections: list[CollectionRecord] = field(default_factory=list)
    receivables: list[ReceivableAgingRecord] = field(default_factory=list)
    org_profit: list[OrgProfitRecord] = field(default_factory=list)
    team_contribution: list[TeamContributionRecord] = field(default_factory=list)
    profitability: list[ProfitabilityRecord] = field(default_factory=list)
    customer_item_detail: list[ProfitabilityRecord] = field(default_factory=list)
    item_cost: list[ItemCostRecord] = field(default_factory=list)
    customer_ledger: list[CustomerLedgerRecord] = field(default_factory=list)

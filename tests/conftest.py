import pytest

from erpsight.records.models import (
    AgingAmounts, CollectionRecord, ItemCostRecord, OrderRecord, OrgProfitRecord, PlanActualDiff,
    ProfitabilityRecord, ReceivableAgingRecord, SalesRecord, TeamContributionRecord,
)
from erpsight.utils.orgs import get_org_registry


def pad(plan=0.0, actual=0.0):
    return PlanActualDiff(plan, actual, actual - plan)


def aging(book=0.0):
    return AgingAmounts(book, book, book)


@pytest.fixture(autouse=True)
def clear_org_registry():
    get_org_registry().clear()
    yield
    get_org_registry().clear()


@pytest.fixture
def make_sale():
    def _make(book_amount=0.0, date="2024-01-15", customer="C001", org="인프라1팀", **kwargs):
        kwargs.setdefault("customer_name", f"{customer} 상사")
        kwargs.setdefault("amount", book_amount)
        return SalesRecord(sales_date=date, customer=customer, org=org, book_amount=book_amount, **kwargs)
    return _make


@pytest.fixture
def make_order():
    def _make(amount=0.0, date="2024-01-10", org="인프라1팀", **kwargs):
        return OrderRecord(order_date=date, org=org, book_amount=amount, amount=amount, **kwargs)
    return _make


@pytest.fixture
def make_collection():
    def _make(amount=0.0, date="2024-01-20", org="인프라1팀", **kwargs):
        return CollectionRecord(collection_date=date, org=org, book_amount=amount, amount=amount, **kwargs)
    return _make


@pytest.fixture
def make_aging():
    def _make(customer="C001", org="인프라1팀", rep="R01", credit_limit=None, **buckets):
        fields = {name: aging(value) for name, value in buckets.items()}
        total = sum(buckets.values())
        return ReceivableAgingRecord(org=org, rep=rep, customer=customer, customer_name=f"{customer} 상사",
                                     total=aging(total), credit_limit=credit_limit, **fields)
    return _make


@pytest.fixture
def make_org_profit():
    def _make(org="인프라1팀", sales=(0.0, 0.0), cogs=(0.0, 0.0), gp=(0.0, 0.0), sga=(0.0, 0.0),
              op=(0.0, 0.0), cm=(0.0, 0.0)):
        return OrgProfitRecord(org_team=org, sales=pad(*sales), cogs=pad(*cogs), gross_profit=pad(*gp),
                               sga=pad(*sga), operating_profit=pad(*op), contribution_margin=pad(*cm))
    return _make


@pytest.fixture
def make_team():
    def _make(org="인프라1팀", employee="E01", sales=0.0, cost=0.0, cost_lines=None, **kwargs):
        lines = {name: pad(0.0, value) for name, value in (cost_lines or {}).items()}
        return TeamContributionRecord(org_team=org, employee_id=employee, sales=pad(0.0, sales),
                                      cost=pad(0.0, cost), cost_lines=lines, **kwargs)
    return _make


@pytest.fixture
def make_profit_row():
    def _make(customer="C001", item="P001", org="인프라1팀", sales=(0.0, 0.0), cost=(0.0, 0.0),
              gp=(0.0, 0.0), op=(0.0, 0.0), quantity=(0.0, 0.0), **kwargs):
        return ProfitabilityRecord(org_team=org, customer=customer, item=item, sales=pad(*sales),
                                   cost=pad(*cost), gross_profit=pad(*gp), operating_profit=pad(*op),
                                   quantity=pad(*quantity), **kwargs)
    return _make


@pytest.fixture
def make_item_cost():
    def _make(product="P001", org="인프라1팀", sales=(0.0, 0.0), quantity=(0.0, 0.0), cm=(0.0, 0.0),
              cogs=(0.0, 0.0), gp=(0.0, 0.0), cost_lines=None):
        lines = {name: pad(*values) for name, values in (cost_lines or {}).items()}
        return ItemCostRecord(org_team=org, product=product, sales=pad(*sales), quantity=pad(*quantity),
                              contribution_margin=pad(*cm), cogs=pad(*cogs), gross_profit=pad(*gp),
                              cost_lines=lines)
    return _make

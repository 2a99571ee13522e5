import pytest

from erpsight.metrics.ledger import calc_account_summary, calc_customer_balances, calc_project_summary
from erpsight.records.models import CustomerLedgerRecord


@pytest.fixture
def ledger():
    return [
        CustomerLedgerRecord(customer="C1", customer_name="일번상사", account_code="10800", account_name="외상매출금",
                             posting_date="2024-01-10", debit=1000, project_name="신공장"),
        CustomerLedgerRecord(customer="C1", customer_name="", account_code="10800", account_name="외상매출금",
                             posting_date="2024-03-02", credit=400, project_name="신공장"),
        CustomerLedgerRecord(customer="C2", customer_name="이번상사", account_code="25900", account_name="선수금",
                             posting_date="2024-02-15", credit=2000),
        CustomerLedgerRecord(customer="", account_code="10800", account_name="외상매출금", debit=50,
                             project_name="신공장"),
    ]


def test_account_summary(ledger):
    result = calc_account_summary(ledger)
    assert [(a.account_code, a.balance) for a in result] == [("25900", -2000), ("10800", 650)]
    assert result[1].count == 3
    assert (result[1].debit, result[1].credit) == (1050, 400)


def test_project_summary(ledger):
    result = calc_project_summary(ledger)
    assert [p.project for p in result] == ["(미지정)", "신공장"]
    plant = result[1]
    assert plant.balance == 650
    assert plant.customer_count == 1
    assert plant.count == 3


def test_customer_balances(ledger):
    result = calc_customer_balances(ledger)
    assert [b.customer for b in result] == ["C2", "C1"]
    c1 = result[1]
    assert c1.customer_name == "일번상사"
    assert c1.balance == 600
    assert c1.last_date == "2024-03-02"
    assert c1.count == 2

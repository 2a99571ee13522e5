import pytest

from erpsight.metrics.receivables import (
    assess_risk, calc_aging_by_org, calc_aging_by_person, calc_aging_summary, calc_bad_debt_provision,
    calc_credit_summary_by_org, calc_credit_utilization, calc_long_term_by_org, calc_long_term_customers,
    calc_long_term_summary, calc_monthly_prepayments, calc_org_prepayments, calc_prepayment_summary,
    calc_risk_assessments, group_by_source,
)
from erpsight.records.models import ReceivableAgingRecord


# ── Aging / risk ──────────────────────────────────────────────────────────────

def test_aging_summary_sums_book_amounts(make_aging):
    records = [make_aging(month1=100, month3=50), make_aging("C002", month6=30, overdue=20)]
    summary = calc_aging_summary(records)
    assert summary.month1 == 100
    assert summary.month3 == 50
    assert summary.overdue == 20
    assert summary.total == 200


def test_zero_total_always_grades_low(make_aging):
    record = make_aging(overdue=500_000_000)
    record = ReceivableAgingRecord(overdue=record.overdue, month3=record.month3)
    assert record.total.book == 0
    assert assess_risk(record) == "low"


@pytest.mark.parametrize("buckets, expected", [
    ({"month1": 90, "month3": 10}, "low"),
    ({"month1": 70, "month3": 30}, "medium"),
    ({"month1": 40, "month4": 60}, "high"),
    ({"month1": 1_000_000_000, "overdue": 150_000_000}, "high"),
    ({"month1": 1_000_000_000, "month3": 60_000_000}, "medium"),
])
def test_assess_risk_thresholds(make_aging, buckets, expected):
    assert assess_risk(make_aging(**buckets)) == expected


def test_risk_assessments_skip_zero_totals_and_sort(make_aging):
    records = [make_aging("C1", month1=10), make_aging("C2"), make_aging("C3", month1=50, overdue=50)]
    result = calc_risk_assessments(records)
    assert [r.customer for r in result] == ["C3", "C1"]
    assert result[0].overdue_ratio == pytest.approx(50.0)
    assert result[0].risk_grade == "medium"


def test_aging_by_source_and_person(make_aging):
    a = make_aging("C1", rep="R1", month1=10)
    a.source_name = "인프라"
    b = make_aging("C2", rep="R2", month1=30)
    b.source_name = "플랜트"
    by_source = calc_aging_by_org(group_by_source([a, b]))
    assert [g.key for g in by_source] == ["플랜트", "인프라"]
    by_person = calc_aging_by_person([a, b])
    assert by_person[0].key == "R2"


# ── Credit ────────────────────────────────────────────────────────────────────

def test_credit_utilization_status(make_aging):
    records = [
        make_aging("C1", credit_limit=100, month1=120),
        make_aging("C2", credit_limit=100, month1=85),
        make_aging("C3", credit_limit=100, month1=10),
        make_aging("C4", month1=999),
    ]
    result = calc_credit_utilization(records)
    assert [(c.customer, c.status) for c in result] == [("C1", "danger"), ("C2", "warning"), ("C3", "normal")]

    (summary,) = calc_credit_summary_by_org(records)
    assert summary.total_limit == 300
    assert summary.total_used == 215
    assert summary.danger_count == 1
    assert summary.warning_count == 1


# ── Long-term / bad debt ──────────────────────────────────────────────────────

def test_long_term_summary_and_customers(make_aging):
    records = [
        make_aging("C1", month1=100, month4=100, month6=100, overdue=100),
        make_aging("C2", month1=100),
    ]
    summary = calc_long_term_summary(records)
    assert summary.long_term_total == 200
    assert summary.long_term_ratio == pytest.approx(40.0)
    assert summary.total_provision == pytest.approx(100 * 0.01 + 100 * 0.10 + 100 * 0.50)
    assert summary.long_term_customer_count == 1

    (customer,) = calc_long_term_customers(records)
    assert customer.customer == "C1"
    assert customer.long_term_share == pytest.approx(50.0)
    assert customer.risk_grade == "high"


def test_long_term_by_org_labels_missing_org(make_aging):
    result = calc_long_term_by_org([make_aging("C1", org="", overdue=10)])
    assert result[0].org == "미지정"


def test_bad_debt_rows(make_aging):
    rows = calc_bad_debt_provision([make_aging(month4=1000, overdue=1000)])
    assert [r.bucket for r in rows] == ["91~120일", "121~150일", "151~180일", "180일+"]
    assert rows[0].provision == pytest.approx(10)
    assert rows[3].provision == pytest.approx(500)


# ── Prepayments ───────────────────────────────────────────────────────────────

def test_prepayment_views(make_collection):
    collections = [
        make_collection(100, "2024-01-05", org="A", prepayment=40, book_prepayment=40),
        make_collection(100, "2024-02-05", org="", prepayment=10, book_prepayment=10),
    ]
    summary = calc_prepayment_summary(collections, total_sales=500)
    assert summary.total_prepayment == 50
    assert summary.prepayment_to_sales_ratio == pytest.approx(10.0)
    assert summary.org_count == 1

    orgs = calc_org_prepayments(collections)
    assert [o.org for o in orgs] == ["A", "미분류"]

    months = calc_monthly_prepayments(collections)
    assert [m.month for m in months] == ["2024-01", "2024-02"]


def test_prepayment_summary_without_sales(make_collection):
    assert calc_prepayment_summary([make_collection(10, prepayment=5)], 0).prepayment_to_sales_ratio == 0.0

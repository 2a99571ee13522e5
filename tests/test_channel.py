import pytest

from erpsight.metrics.channel import calc_product_group_trends, calc_sales_by_channel, calc_sales_by_payment_term


def test_sales_by_payment_term(make_sale):
    sales = [
        make_sale(300, payment_term="현금"),
        make_sale(100, payment_term="어음 60일"),
        make_sale(100, payment_term="현금"),
        make_sale(100, payment_term="  "),
    ]
    result = calc_sales_by_payment_term(sales)
    assert [(r.key, r.amount, r.count) for r in result] == [("현금", 400, 2), ("어음 60일", 100, 1), ("미분류", 100, 1)]
    assert result[0].share == pytest.approx(400 / 600 * 100)


def test_sales_by_channel_uses_transaction_amount(make_sale):
    result = calc_sales_by_channel([make_sale(1000, channel="대리점", amount=10)])
    assert result[0].key == "대리점"
    assert result[0].amount == 10
    assert result[0].share == pytest.approx(100.0)


def test_product_group_trends_fill_missing_groups(make_sale):
    sales = [
        make_sale(100, date="2024-02-01", product_group="밸브"),
        make_sale(50, date="2024-01-01", product_group="펌프"),
        make_sale(25, date="2024-01-20", product_group="밸브"),
        make_sale(999, date=""),
    ]
    result = calc_product_group_trends(sales)
    assert [t.month for t in result] == ["2024-01", "2024-02"]
    assert result[0].amounts == {"밸브": 25, "펌프": 50}
    assert result[1].amounts == {"밸브": 100, "펌프": 0}

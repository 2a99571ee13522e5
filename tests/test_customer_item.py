import pytest

from erpsight.metrics.customer_item import (
    calc_abc_analysis, calc_cross_profitability, calc_customer_portfolio, calc_product_customer_matrix,
)


@pytest.fixture
def rows(make_profit_row):
    return [
        make_profit_row("C1", "P1", sales=(0, 800), gp=(0, 200), op=(0, 80), quantity=(0, 8),
                        customer_name="일번상사", item_name="밸브A"),
        make_profit_row("C1", "P1", sales=(0, 200), gp=(0, 50), op=(0, 20), quantity=(0, 2),
                        customer_name="일번상사", item_name="밸브A"),
        make_profit_row("C1", "P2", sales=(0, 150), gp=(0, 15), customer_name="일번상사", item_name="펌프B"),
        make_profit_row("C2", "P3", sales=(0, 50), gp=(0, -5), customer_name="이번상사", item_name="배관C"),
    ]


def test_cross_profitability_merges_duplicate_pairs(rows):
    result = calc_cross_profitability(rows)
    top = result[0]
    assert (top.customer, top.product) == ("C1", "P1")
    assert top.sales == 1000
    assert top.quantity == 10
    assert top.gross_margin == pytest.approx(25.0)
    assert top.op_margin == pytest.approx(10.0)
    assert len(result) == 3


def test_abc_analysis(rows, make_profit_row):
    result = calc_abc_analysis(rows + [make_profit_row("C3", "", sales=(0, 9999))])
    assert [(i.product, i.grade) for i in result] == [("P1", "B"), ("P2", "C"), ("P3", "C")]
    assert result[0].cumulative_share == pytest.approx(1000 / 1200 * 100)
    assert result[2].gross_margin == pytest.approx(-10.0)
    assert result[0].customer_count == 1


def test_customer_portfolio(rows):
    result = calc_customer_portfolio(rows)
    assert [c.customer for c in result] == ["C1", "C2"]
    c1 = result[0]
    assert c1.product_count == 2
    assert c1.total_sales == 1150
    assert [p.name for p in c1.top_products] == ["밸브A", "펌프B"]
    assert c1.top_products[1].margin == pytest.approx(10.0)


def test_product_customer_matrix(rows):
    matrix = calc_product_customer_matrix(rows, top_n=2)
    assert matrix.products == ["밸브A", "펌프B"]
    assert matrix.customers == ["일번상사", "이번상사"]
    assert len(matrix.cells) == 4
    cells = {(c.product_idx, c.customer_idx): c for c in matrix.cells}
    assert cells[(0, 0)].sales == 1000
    assert cells[(0, 1)].sales == 0
    assert cells[(0, 1)].gross_margin == 0

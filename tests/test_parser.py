from datetime import datetime
from io import BytesIO

import pandas as pd
import pytest

from erpsight.parser import erp_parser
from erpsight.parser.erp_parser import (
    MAX_WARNINGS, ParseResult, merge_result, parse_dataframe, parse_file, parse_files,
)
from erpsight.parser.filldown import fill_down, is_blank
from erpsight.parser.schemas import aging_source_name, detect_file_type
from erpsight.records.models import ErpDataset, ReceivableAgingRecord, SalesRecord
from erpsight.utils.orgs import org_names_snapshot


def line(width, cells):
    return [cells.get(i) for i in range(width)]


def sheet(width, header_rows, *rows):
    headers = [[f"H{r}_{c}" for c in range(width)] for r in range(header_rows)]
    return pd.DataFrame(headers + [line(width, cells) for cells in rows])


def write_xlsx(path, df):
    df.to_excel(path, header=False, index=False)
    return path


# ── File recognition ──────────────────────────────────────────────────────────

@pytest.mark.parametrize("filename, expected", [
    ("INFRA_사업본부_담당조직.xlsx", "organization"),
    ("2024 매출리스트.xlsx", "sales"),
    ("수금리스트(3월).xlsx", "collections"),
    ("수주리스트.xls", "orders"),
    ("조직별손익.xlsx", "org_profit"),
    ("조직별 손익(3월).xlsx", "org_profit"),
    ("팀원별 공헌이익.xlsx", "team_contribution"),
    ("거래처별 품목별 손익.xlsx", "customer_item_detail"),
    ("100 거래처.xlsx", "customer_item_detail"),
    ("담당자별 수익성.xlsx", "profitability"),
    ("인프라_미수채권연령.xlsx", "receivables"),
    ("거래처원장_2024.xlsx", "customer_ledger"),
    ("거래처 원장.xls", "customer_ledger"),
    ("조직별 거래처 손익.xlsx", None),
    ("메모.xlsx", None),
])
def test_detect_file_type(filename, expected):
    schema = detect_file_type(filename)
    assert (schema.file_type if schema else None) == expected


@pytest.mark.parametrize("filename, expected", [
    ("인프라_미수채권연령.xlsx", "인프라"),
    ("플랜트_미수채권연령_3월.xls", "플랜트"),
    ("미수채권연령.xlsx", "미수채권연령"),
])
def test_aging_source_name(filename, expected):
    assert aging_source_name(filename) == expected


# ── Fill-down ─────────────────────────────────────────────────────────────────

def test_fill_down_clears_deeper_levels():
    df = pd.DataFrame([
        ["A", "R1", "C1"],
        [None, None, "C2"],
        [None, "R2", None],
        ["B", None, None],
    ])
    filled = fill_down(df, [[0], [1], [2]])

    assert list(filled[0]) == ["A", "A", "A", "B"]
    assert list(filled[1][:3]) == ["R1", "R1", "R2"]
    assert is_blank(filled.at[3, 1])
    assert list(filled[2][:2]) == ["C1", "C2"]
    assert is_blank(filled.at[2, 2]) and is_blank(filled.at[3, 2])
    assert df.at[1, 0] is None


def test_fill_down_groups_columns():
    df = pd.DataFrame([["C1", "고객1", 1], [None, None, 2], ["C2", None, 3]])
    filled = fill_down(df, [[0, 1]])
    assert list(filled[0]) == ["C1", "C1", "C2"]
    assert filled.at[1, 1] == "고객1"
    assert is_blank(filled.at[2, 1])


@pytest.mark.parametrize("value, expected", [
    (None, True), ("", True), ("   ", True), (float("nan"), True), (pd.NaT, True),
    ("x", False), (0, False), (0.0, False),
])
def test_is_blank(value, expected):
    assert is_blank(value) is expected


# ── Row mapping ───────────────────────────────────────────────────────────────

SALES = detect_file_type("매출리스트.xlsx")


@pytest.fixture
def sales_sheet():
    return sheet(
        77, 1,
        {0: 1, 3: "2024-01-15", 7: "C1", 8: "고객1", 13: "어음 60일", 21: "P1", 22: "제품1", 31: "USD", 32: "1,300.5",
         36: "1,000", 38: 1300500, 42: "인프라1팀", 76: "일반"},
        {3: "2024-01-16", 36: 999, 42: "인프라1팀"},
        {0: 3, 3: datetime(2024, 1, 20), 36: 50, 38: 50, 42: "플랜트팀"},
    )


def test_parse_sales_rows(sales_sheet):
    result = parse_dataframe(sales_sheet, SALES)

    assert result.file_type == "sales"
    assert result.row_count == 2
    assert result.warnings == []
    first, second = result.records
    assert isinstance(first, SalesRecord)
    assert (first.customer, first.customer_name, first.item_name) == ("C1", "고객1", "제품1")
    assert first.amount == 1000.0
    assert first.exchange_rate == 1300.5
    assert first.book_amount == 1300500.0
    assert first.currency == "USD"
    assert first.order_type == "일반"
    assert first.payment_term == "어음 60일"
    assert second.sales_date == "2024-01-20"
    assert second.currency == "KRW"
    assert second.quantity == 0.0
    assert second.payment_term == ""


def test_parse_sales_filters_by_org(sales_sheet):
    result = parse_dataframe(sales_sheet, SALES, org_codes={"인프라1팀"})
    assert [r.org for r in result.records] == ["인프라1팀"]
    assert result.row_count == 1


def test_failing_rows_become_capped_warnings(monkeypatch, caplog):
    def broken(row):
        raise ValueError("bad")

    monkeypatch.setitem(erp_parser.ROW_MAPPERS, "sales", broken)
    df = sheet(77, 1, *[{0: i} for i in range(25)])

    result = parse_dataframe(df, SALES)

    assert result.records == []
    assert result.row_count == 0
    assert len(result.warnings) == MAX_WARNINGS
    assert result.warnings[0] == "2행: bad"
    assert result.warnings[-1] == "21행: bad"
    assert caplog.text.count("skipped row") == 25


def test_org_profit_fills_hierarchy():
    df = sheet(
        43, 2,
        {0: "x", 1: "인프라사업부", 2: "인프라BU", 3: "인프라1팀", 4: 100, 5: 120, 6: 20, 22: 10, 23: 15, 24: 5},
        {0: "x", 3: "인프라2팀", 4: 50, 5: 40, 6: -10},
    )
    result = parse_dataframe(df, detect_file_type("조직별 손익.xlsx"))

    first, second = result.records
    assert (second.division, second.business_unit, second.org_team) == ("인프라사업부", "인프라BU", "인프라2팀")
    assert (first.sales.plan, first.sales.actual, first.sales.diff) == (100, 120, 20)
    assert first.operating_profit.actual == 15
    assert (second.sales.plan, second.sales.actual, second.sales.diff) == (50, 40, -10)


def test_team_contribution_cost_line_offsets():
    df = sheet(
        118, 2,
        {0: "x", 1: "SG1", 2: "인프라1팀", 3: "E01", 4: 10, 5: 20, 6: 10,
         28: 1, 29: 2, 30: 1, 64: 5, 65: 6, 66: 1,
         109: 7, 110: 8, 111: 1, 112: 3, 113: 4, 114: 1, 115: 30, 116: 20, 117: -10},
    )
    (record,) = parse_dataframe(df, detect_file_type("팀원별 공헌이익.xlsx")).records

    assert (record.org_team, record.employee_id) == ("인프라1팀", "E01")
    assert record.sales.actual == 20
    assert len(record.cost_lines) == 26
    assert record.cost_lines["판관변동_노무비"].actual == 2
    assert record.cost_lines["제조변동_원재료비"].actual == 6
    assert record.cost_lines["제조변동_지급수수료"].actual == 0
    assert record.variable_cost_total.actual == 8
    assert record.contribution_margin.actual == 4
    assert record.contribution_margin_rate.diff == -10


def test_customer_item_detail_reads_customer_classification():
    df = sheet(
        41, 2,
        {0: "x", 1: "인프라1팀", 2: "E01", 3: "C1", 4: "고객1", 5: "P1", 6: "제품1",
         7: "대리점", 8: "수도권", 9: "서울", 10: "밸브", 23: 100, 24: 120, 25: 20},
        {0: "x", 5: "P2", 6: "제품2", 7: "대리점", 23: 10, 24: 5, 25: -5},
    )
    first, second = parse_dataframe(df, detect_file_type("거래처별 품목별 손익.xlsx")).records

    assert (first.customer_category, first.customer_mid_category, first.customer_sub_category) == \
        ("대리점", "수도권", "서울")
    assert first.product_group == "밸브"
    assert first.sales.actual == 120
    assert (second.customer, second.item, second.customer_mid_category) == ("C1", "P2", "")


def test_customer_ledger_rows():
    df = sheet(
        21, 1,
        {0: "C1", 1: "고객1", 2: "10800", 3: "외상매출금", 6: "2024-03-02", 8: "3월 매출", 9: "1,000",
         10: 0, 11: 1000, 13: 1000, 15: "V-001", 18: "CC10", 20: "신공장"},
        {1: "합계", 9: 1000},
        {0: "C2", 6: datetime(2024, 3, 5), 10: 250, 12: "USD"},
    )
    result = parse_dataframe(df, detect_file_type("거래처원장.xlsx"))

    assert result.file_type == "customer_ledger"
    assert result.row_count == 2
    first, second = result.records
    assert (first.account_code, first.account_name, first.memo) == ("10800", "외상매출금", "3월 매출")
    assert (first.debit, first.credit, first.balance) == (1000, 0, 1000)
    assert (first.voucher_no, first.cost_center, first.project_name) == ("V-001", "CC10", "신공장")
    assert first.currency == "KRW"
    assert second.posting_date == "2024-03-05"
    assert second.currency == "USD"


# ── Files ─────────────────────────────────────────────────────────────────────

def aging_sheet():
    return sheet(
        30, 2,
        {0: 1, 1: "인프라1팀", 2: "R01", 3: "C1", 4: "고객1", 5: "KRW", 6: 100, 7: 100, 8: 100,
         12: 50, 13: 50, 14: 50, 27: 150, 28: 150, 29: 150},
        {0: 2, 3: "C2", 4: "고객2", 6: 10, 7: 10, 8: 10, 27: 10, 28: 10, 29: 10},
    )


def test_parse_receivables_file(tmp_path):
    path = write_xlsx(tmp_path / "인프라_미수채권연령.xlsx", aging_sheet())

    result = parse_file(path)

    assert result.file_type == "receivables"
    assert result.source_name == "인프라"
    first, second = result.records
    assert (second.org, second.rep, second.customer) == ("인프라1팀", "R01", "C2")
    assert first.month3.book == 50
    assert first.total.book == 150
    assert second.currency == "KRW"
    assert {r.source_name for r in result.records} == {"인프라"}


def test_parse_uploaded_buffer(tmp_path):
    path = write_xlsx(tmp_path / "sheet.xlsx", sheet(77, 1, {0: 1, 36: 10, 38: 10, 42: "인프라1팀"}))
    upload = BytesIO(path.read_bytes())
    upload.name = "매출리스트_2024.xlsx"

    result = parse_file(upload)

    assert result.file_type == "sales"
    assert result.records[0].book_amount == 10
    assert upload.tell() == 0


def test_parse_file_rejects_unknown_and_unsupported(tmp_path):
    with pytest.raises(ValueError, match="인식할 수 없는 파일"):
        parse_file(tmp_path / "조직별 거래처 손익.xlsx")
    with pytest.raises(ValueError, match="Unsupported file type"):
        parse_file(tmp_path / "매출리스트.csv")


def test_merge_replaces_receivables_per_source():
    dataset = ErpDataset(receivables=[
        ReceivableAgingRecord(customer="A", source_name="인프라"),
        ReceivableAgingRecord(customer="B", source_name="플랜트"),
    ])
    merge_result(dataset, ParseResult("receivables", [ReceivableAgingRecord(customer="C", source_name="인프라")],
                                      source_name="인프라"))
    assert [r.customer for r in dataset.receivables] == ["B", "C"]

    dataset.sales = [SalesRecord(customer="old")]
    merge_result(dataset, ParseResult("sales", [SalesRecord(customer="new")]))
    assert [s.customer for s in dataset.sales] == ["new"]


def test_parse_files_applies_org_master_first(tmp_path, monkeypatch):
    monkeypatch.delenv("ERPSIGHT_ORG_CODES", raising=False)
    sales_path = write_xlsx(tmp_path / "매출리스트.xlsx", sheet(
        77, 1,
        {0: 1, 36: 10, 38: 10, 42: "인프라1팀"},
        {0: 2, 36: 20, 38: 20, 42: "해외팀"},
    ))
    org_path = write_xlsx(tmp_path / "INFRA_사업본부_담당조직.xlsx", sheet(
        6, 1,
        {0: "ORG1", 1: "인프라1팀", 2: "Y"},
        {0: "ORG2", 1: "플랜트팀", 2: "Y"},
    ))

    dataset = parse_files([sales_path, org_path])

    assert [o.code for o in dataset.organizations] == ["ORG1", "ORG2"]
    assert [s.org for s in dataset.sales] == ["인프라1팀"]
    snapshot = org_names_snapshot()
    assert snapshot.codes == {"ORG1", "ORG2"}
    assert snapshot.names == {"인프라1팀", "플랜트팀"}


def test_parse_files_explicit_codes_win(tmp_path):
    sales_path = write_xlsx(tmp_path / "매출리스트.xlsx", sheet(
        77, 1,
        {0: 1, 36: 10, 38: 10, 42: "인프라1팀"},
        {0: 2, 36: 20, 38: 20, 42: "해외팀"},
    ))
    dataset = parse_files([sales_path], org_codes={"해외팀"})
    assert [s.org for s in dataset.sales] == ["해외팀"]


def test_parse_files_reads_codes_from_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("ERPSIGHT_ORG_CODES", "해외팀, 수출팀")
    sales_path = write_xlsx(tmp_path / "매출리스트.xlsx", sheet(
        77, 1,
        {0: 1, 36: 10, 38: 10, 42: "인프라1팀"},
        {0: 2, 36: 20, 38: 20, 42: "해외팀"},
    ))
    assert [s.org for s in parse_files([sales_path]).sales] == ["해외팀"]

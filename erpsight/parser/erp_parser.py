"""
SAP Excel export parser.

Each recognised report is read with pandas (header=None) and mapped row by
row into the record dataclasses by fixed column index. Profit reports hold
plan / actual / variance in three consecutive columns per field; the aging
report holds shipment / book / transaction amounts the same way.

Rows that fail to map are skipped with a warning; they never abort the file.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from io import BytesIO
import logging
from pathlib import Path
from typing import Optional

import pandas as pd

from erpsight.config import get_settings
from erpsight.parser.filldown import fill_down, is_blank
from erpsight.parser.schemas import FileSchema, aging_source_name, detect_file_type
from erpsight.records.models import (
    AgingAmounts, CollectionRecord, CustomerLedgerRecord, ErpDataset, OrderRecord, OrganizationRecord,
    OrgProfitRecord, PlanActualDiff, ProfitabilityRecord, ReceivableAgingRecord, SalesRecord, TEAM_COST_LINES,
    TeamContributionRecord,
)
from erpsight.utils.orgs import org_names_snapshot, set_org_names

logger = logging.getLogger(__name__)

MAX_WARNINGS = 20

# Team contribution report: granular cost lines start after 영업이익율
TEAM_COST_LINES_START = 28

# ErpDataset attribute per file type where the two differ
DATASET_FIELDS = {"organization": "organizations"}


@dataclass
class ParseResult:
    file_type: str
    records: list = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    row_count: int = 0
    source_name: str = ""


# ── Cell helpers ──────────────────────────────────────────────────────────────

def _cell(row, idx: int):
    return row[idx] if idx < len(row) else None


def _num(value) -> float:
    if is_blank(value):
        return 0.0
    if isinstance(value, str):
        value = value.replace(",", "").strip()
    try:
        result = float(value)
    except (TypeError, ValueError):
        return 0.0
    return 0.0 if pd.isna(result) else result


def _str(value) -> str:
    if is_blank(value):
        return ""
    if isinstance(value, (datetime, date)):
        return value.strftime("%Y-%m-%d")
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _pad(row, start: int) -> PlanActualDiff:
    return PlanActualDiff(_num(_cell(row, start)), _num(_cell(row, start + 1)), _num(_cell(row, start + 2)))


def _aging(row, start: int) -> AgingAmounts:
    return AgingAmounts(_num(_cell(row, start)), _num(_cell(row, start + 1)), _num(_cell(row, start + 2)))


# ── Row mappers ───────────────────────────────────────────────────────────────

def _organization(row) -> OrganizationRecord:
    return OrganizationRecord(
        code=_str(_cell(row, 0)),
        name=_str(_cell(row, 1)),
        is_leaf=_str(_cell(row, 2)),
        start_date=_str(_cell(row, 3)),
        end_date=_str(_cell(row, 4)),
        integrated=_str(_cell(row, 5)),
    )


def _sales(row) -> SalesRecord:
    return SalesRecord(
        sales_date=_str(_cell(row, 3)),
        customer=_str(_cell(row, 7)),
        customer_name=_str(_cell(row, 8)),
        item=_str(_cell(row, 21)),
        item_name=_str(_cell(row, 22)),
        category=_str(_cell(row, 25)),
        quantity=_num(_cell(row, 30)),
        currency=_str(_cell(row, 31)) or "KRW",
        exchange_rate=_num(_cell(row, 32)),
        amount=_num(_cell(row, 36)),
        book_amount=_num(_cell(row, 38)),
        org=_str(_cell(row, 42)),
        channel=_str(_cell(row, 43)),
        product_group=_str(_cell(row, 44)),
        sales_group=_str(_cell(row, 47)),
        rep=_str(_cell(row, 48)),
        rep_name=_str(_cell(row, 49)),
        order_type=_str(_cell(row, 76)),
        payment_term=_str(_cell(row, 13)),
    )


def _collection(row) -> CollectionRecord:
    return CollectionRecord(
        collection_type=_str(_cell(row, 2)),
        customer_name=_str(_cell(row, 5)),
        org=_str(_cell(row, 6)),
        rep=_str(_cell(row, 7)),
        collection_date=_str(_cell(row, 8)),
        currency=_str(_cell(row, 9)) or "KRW",
        amount=_num(_cell(row, 16)),
        book_amount=_num(_cell(row, 17)),
        prepayment=_num(_cell(row, 18)),
        book_prepayment=_num(_cell(row, 19)),
    )


def _order(row) -> OrderRecord:
    return OrderRecord(
        order_no=_str(_cell(row, 1)),
        order_date=_str(_cell(row, 3)),
        customer=_str(_cell(row, 5)),
        customer_name=_str(_cell(row, 6)),
        rep=_str(_cell(row, 8)),
        rep_name=_str(_cell(row, 9)),
        order_type=_str(_cell(row, 12)) or _str(_cell(row, 11)),
        org=_str(_cell(row, 13)),
        item=_str(_cell(row, 18)),
        item_name=_str(_cell(row, 19)),
        quantity=_num(_cell(row, 22)),
        amount=_num(_cell(row, 25)),
        exchange_rate=_num(_cell(row, 26)),
        book_amount=_num(_cell(row, 28)),
        category=_str(_cell(row, 41)),
    )


def _org_profit(row) -> OrgProfitRecord:
    return OrgProfitRecord(
        division=_str(_cell(row, 1)),
        business_unit=_str(_cell(row, 2)),
        org_team=_str(_cell(row, 3)),
        sales=_pad(row, 4),
        cogs=_pad(row, 7),
        gross_profit=_pad(row, 10),
        direct_selling_freight=_pad(row, 13),
        freight=_pad(row, 16),
        sga=_pad(row, 19),
        operating_profit=_pad(row, 22),
        contribution_margin=_pad(row, 25),
        cogs_rate=_pad(row, 28),
        gross_margin_rate=_pad(row, 31),
        sga_rate=_pad(row, 34),
        operating_margin_rate=_pad(row, 37),
        contribution_margin_rate=_pad(row, 40),
    )


def _team_contribution(row) -> TeamContributionRecord:
    cost_lines = {
        name: _pad(row, TEAM_COST_LINES_START + i * 3)
        for i, name in enumerate(TEAM_COST_LINES)
    }
    return TeamContributionRecord(
        sales_group=_str(_cell(row, 1)),
        org_team=_str(_cell(row, 2)),
        employee_id=_str(_cell(row, 3)),
        sales=_pad(row, 4),
        cost=_pad(row, 7),
        gross_profit=_pad(row, 10),
        gross_margin_rate=_pad(row, 13),
        direct_selling_freight=_pad(row, 16),
        sga=_pad(row, 19),
        operating_profit=_pad(row, 22),
        operating_margin_rate=_pad(row, 25),
        variable_cost_total=_pad(row, 109),
        contribution_margin=_pad(row, 112),
        contribution_margin_rate=_pad(row, 115),
        cost_lines=cost_lines,
    )


def _profitability(row) -> ProfitabilityRecord:
    return ProfitabilityRecord(
        org_team=_str(_cell(row, 1)),
        employee_id=_str(_cell(row, 2)),
        customer=_str(_cell(row, 3)),
        item=_str(_cell(row, 4)),
        domestic_sales=_pad(row, 5),
        export_sales=_pad(row, 8),
        quantity=_pad(row, 11),
        converted_quantity=_pad(row, 14),
        sales=_pad(row, 17),
        cost=_pad(row, 20),
        gross_profit=_pad(row, 23),
        sga=_pad(row, 26),
        direct_selling_freight=_pad(row, 29),
        operating_profit=_pad(row, 32),
    )


def _customer_item_detail(row) -> ProfitabilityRecord:
    return ProfitabilityRecord(
        org_team=_str(_cell(row, 1)),
        employee_id=_str(_cell(row, 2)),
        customer=_str(_cell(row, 3)),
        customer_name=_str(_cell(row, 4)),
        item=_str(_cell(row, 5)),
        item_name=_str(_cell(row, 6)),
        customer_category=_str(_cell(row, 7)),
        customer_mid_category=_str(_cell(row, 8)),
        customer_sub_category=_str(_cell(row, 9)),
        product_group=_str(_cell(row, 10)),
        domestic_sales=_pad(row, 11),
        export_sales=_pad(row, 14),
        quantity=_pad(row, 17),
        converted_quantity=_pad(row, 20),
        sales=_pad(row, 23),
        cost=_pad(row, 26),
        gross_profit=_pad(row, 29),
        sga=_pad(row, 32),
        direct_selling_freight=_pad(row, 35),
        operating_profit=_pad(row, 38),
    )


def _receivable(row) -> ReceivableAgingRecord:
    return ReceivableAgingRecord(
        org=_str(_cell(row, 1)),
        rep=_str(_cell(row, 2)),
        customer=_str(_cell(row, 3)),
        customer_name=_str(_cell(row, 4)),
        currency=_str(_cell(row, 5)) or "KRW",
        month1=_aging(row, 6),
        month2=_aging(row, 9),
        month3=_aging(row, 12),
        month4=_aging(row, 15),
        month5=_aging(row, 18),
        month6=_aging(row, 21),
        overdue=_aging(row, 24),
        total=_aging(row, 27),
    )



def _customer_ledger(row) -> CustomerLedgerRecord:
    return CustomerLedgerRecord(
        customer=_str(_cell(row, 0)),
        customer_name=_str(_cell(row, 1)),
        account_code=_str(_cell(row, 2)),
        account_name=_str(_cell(row, 3)),
        posting_date=_str(_cell(row, 6)),
        memo=_str(_cell(row, 8)),
        debit=_num(_cell(row, 9)),
        credit=_num(_cell(row, 10)),
        balance=_num(_cell(row, 11)),
        currency=_str(_cell(row, 12)) or "KRW",
        transaction_amount=_num(_cell(row, 13)),
        voucher_no=_str(_cell(row, 15)),
        cost_center=_str(_cell(row, 18)),
        project_name=_str(_cell(row, 20)),
    )


ROW_MAPPERS = {
    "organization": _organization,
    "sales": _sales,
    "collections": _collection,
    "orders": _order,
    "org_profit": _org_profit,
    "team_contribution": _team_contribution,
    "profitability": _profitability,
    "customer_item_detail": _customer_item_detail,
    "receivables": _receivable,
    "customer_ledger": _customer_ledger,
}


# ── File reading ──────────────────────────────────────────────────────────────

def _file_name(uploaded) -> str:
    if isinstance(uploaded, (str, Path)):
        return Path(uploaded).name
    return Path(getattr(uploaded, "name", "")).name


def _read_file(uploaded) -> pd.DataFrame:
    name = _file_name(uploaded).lower()
    if not name.endswith((".xlsx", ".xls")):
        raise ValueError(f"Unsupported file type: {name}")
    if isinstance(uploaded, (str, Path)):
        content = Path(uploaded).read_bytes()
    else:
        content = uploaded.read()
        uploaded.seek(0)
    return pd.read_excel(BytesIO(content), header=None, engine="openpyxl")


def _data_rows(df: pd.DataFrame, schema: FileSchema) -> list:
    body = df.iloc[schema.header_rows:].reset_index(drop=True)
    if schema.fill_levels:
        body = fill_down(body, schema.fill_levels)
    return [(schema.header_rows + i + 1, list(values))
            for i, values in enumerate(body.itertuples(index=False, name=None))
            if len(values) and not is_blank(values[0])]


def _apply_org_filter(records: list, schema: FileSchema, org_codes) -> list:
    if not org_codes or not schema.org_filter_field:
        return records
    return [r for r in records if getattr(r, schema.org_filter_field, "") in org_codes]


# ── Public API ────────────────────────────────────────────────────────────────

def parse_dataframe(df: pd.DataFrame, schema: FileSchema, org_codes=None) -> ParseResult:
    """Map an already-read sheet (header=None) into records for `schema`."""
    mapper = ROW_MAPPERS[schema.file_type]
    result = ParseResult(file_type=schema.file_type)

    for excel_row, values in _data_rows(df, schema):
        try:
            result.records.append(mapper(values))
        except (TypeError, ValueError, IndexError) as e:
            logger.warning(f"{schema.file_type}: skipped row {excel_row}: {e}")
            if len(result.warnings) < MAX_WARNINGS:
                result.warnings.append(f"{excel_row}행: {e}")

    result.records = _apply_org_filter(result.records, schema, org_codes)
    result.row_count = len(result.records)
    return result


def parse_file(uploaded, org_codes=None) -> ParseResult:
    """
    Parse one SAP export. `uploaded` is a path or a file-like object with `.name`.
    Raises ValueError for unrecognised file names and unsupported extensions.
    """
    name = _file_name(uploaded)
    schema = detect_file_type(name)
    if schema is None:
        raise ValueError(f"인식할 수 없는 파일: {name}")

    result = parse_dataframe(_read_file(uploaded), schema, org_codes)
    if schema.file_type == "receivables":
        result.source_name = aging_source_name(name)
        for record in result.records:
            record.source_name = result.source_name

    logger.info(
        f"Parsed {name} as {schema.file_type}: {result.row_count} rows, {len(result.warnings)} warnings"
    )
    return result


def _schema_order(uploaded) -> int:
    schema = detect_file_type(_file_name(uploaded))
    return 0 if schema is not None and schema.file_type == "organization" else 1


def merge_result(dataset: ErpDataset, result: ParseResult) -> ErpDataset:
    """
    Put a parse result into the dataset. A list is replaced wholesale, except
    receivables, which are replaced per aging source.
    """
    if result.file_type == "receivables":
        kept = [r for r in dataset.receivables if r.source_name != result.source_name]
        dataset.receivables = kept + result.records
    else:
        setattr(dataset, DATASET_FIELDS.get(result.file_type, result.file_type), list(result.records))
    return dataset


def parse_files(files, org_codes=None, dataset: Optional[ErpDataset] = None) -> ErpDataset:
    """
    Parse a batch of uploads into a dataset. Organisation master files go
    first: they replace the org registry, and their codes become the org
    filter for the remaining files unless `org_codes` is given or set
    through ERPSIGHT_ORG_CODES.
    """
    dataset = dataset or ErpDataset()
    org_codes = set(org_codes or get_settings().org_codes)
    for uploaded in sorted(files, key=_schema_order):
        result = parse_file(uploaded, org_codes if org_codes else _registry_codes())
        if result.file_type == "organization":
            set_org_names([o.code for o in result.records], [o.name for o in result.records])
        merge_result(dataset, result)
    return dataset


def _registry_codes():
    """Codes and names from the org master; profit reports carry team names rather than codes."""
    snapshot = org_names_snapshot()
    return (snapshot.codes | snapshot.names) or None

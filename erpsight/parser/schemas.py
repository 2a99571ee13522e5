"""
Upload file recognition.

SAP exports are recognised by file name only. Patterns are tried in order,
so the more specific profit reports come before the generic ones.
"""

from dataclasses import dataclass, field
import re
from typing import Optional


@dataclass(frozen=True)
class FileSchema:
    file_type: str
    pattern: re.Pattern
    header_rows: int                  # rows above the first data row
    org_filter_field: Optional[str] = None
    fill_levels: tuple = field(default_factory=tuple)   # column groups for fill_down, outermost first


FILE_SCHEMAS = [
    FileSchema("organization", re.compile(r"infra.*사업본부.*담당조직", re.IGNORECASE), 1),
    FileSchema("sales", re.compile(r"매출리스트"), 1, "org"),
    FileSchema("collections", re.compile(r"수금리스트"), 1, "org"),
    FileSchema("orders", re.compile(r"수주리스트"), 1, "org"),
    FileSchema("org_profit", re.compile(r"조직별\s*(?!거래처)손익"), 2, "org_team",
               ((1,), (2,), (3,))),
    FileSchema("team_contribution", re.compile(r"팀원별\s*공헌이익"), 2, "org_team",
               ((1,), (2,))),
    FileSchema("customer_item_detail", re.compile(r"거래처별.*품목별\s*손익|100\s*거래처"), 2, "org_team",
               ((1,), (2,), (3, 4))),
    FileSchema("profitability", re.compile(r"(담당자|거래처|품목).*(수익성|분석)|수익성.*분석", re.IGNORECASE),
               2, "org_team", ((1,), (2,), (3,))),
    FileSchema("receivables", re.compile(r"미수채권연령"), 2, "org", ((1,), (2,))),
    FileSchema("customer_ledger", re.compile(r"거래처\s*원장"), 1),
]

_AGING_SOURCE = re.compile(r"^(.+?)_미수채권연령")
_EXCEL_SUFFIX = re.compile(r"\.xlsx?$", re.IGNORECASE)


def detect_file_type(filename: str) -> Optional[FileSchema]:
    for schema in FILE_SCHEMAS:
        if schema.pattern.search(filename):
            return schema
    return None


def aging_source_name(filename: str) -> str:
    """'인프라_미수채권연령.xlsx' → '인프라'; falls back to the file name without extension."""
    match = _AGING_SOURCE.match(filename)
    return match.group(1) if match else _EXCEL_SUFFIX.sub("", filename)

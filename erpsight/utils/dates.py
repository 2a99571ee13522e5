"""
Month extraction and record filters shared by every calculator.

SAP exports encode dates several ways (ISO, slash-separated, compact YYYYMMDD,
or a raw Excel serial). Everything is normalised to a "YYYY-MM" key; values
that match none of the encodings become "" and are left out of month-keyed
aggregation.
"""

import re
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

EXCEL_EPOCH_OFFSET = 25569        # days between 1899-12-30 and 1970-01-01
_SERIAL_MIN = 40000
_SERIAL_MAX = 100000
_ISO_DATE = re.compile(r"^(\d{4})-(\d{1,2})")
_SLASH_DATE = re.compile(r"^(\d{4})/(\d{1,2})")
_COMPACT_DATE = re.compile(r"^\d{8}$")
_UNIX_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def extract_month(value) -> str:
    """Return "YYYY-MM" for a date-like value, or "" when it cannot be read."""
    if value is None or value == "":
        return ""
    d = str(value).strip()
    if not d:
        return ""
    if "-" in d or "/" in d:
        match = _ISO_DATE.match(d) or _SLASH_DATE.match(d)
        return f"{match.group(1)}-{match.group(2).zfill(2)}" if match else ""
    if _COMPACT_DATE.match(d):
        return f"{d[:4]}-{d[4:6]}"
    try:
        serial = float(d)
    except ValueError:
        return ""
    if _SERIAL_MIN < serial < _SERIAL_MAX:
        converted = _UNIX_EPOCH + timedelta(days=serial - EXCEL_EPOCH_OFFSET)
        return f"{converted.year}-{converted.month:02d}"
    return ""


def month_index(month: str) -> Optional[int]:
    """Months since year 0 for a "YYYY-MM" key; None when malformed."""
    try:
        year, mon = month.split("-")[:2]
        return int(year) * 12 + int(mon) - 1
    except (AttributeError, ValueError):
        return None


def month_distance(start: str, end: str) -> int:
    """Whole months from start to end (0 when either key is malformed)."""
    a, b = month_index(start), month_index(end)
    if a is None or b is None:
        return 0
    return b - a


# ── Filters ───────────────────────────────────────────────────────────────────

def filter_by_org(records: Iterable, org_names, field: str = "org") -> list:
    """Keep records whose `field` (trimmed) is in org_names; an empty selection keeps everything."""
    records = list(records)
    if not org_names:
        return records
    return [r for r in records if str(getattr(r, field, "") or "").strip() in org_names]


def filter_by_date_range(records: Iterable, date_range: Optional[dict], field: str) -> list:
    """
    Keep records whose month falls in the inclusive range {"from": "YYYY-MM", "to": "YYYY-MM"}.
    A missing or half-open range keeps everything; undated records are dropped once a range is set.
    """
    records = list(records)
    if not date_range or not date_range.get("from") or not date_range.get("to"):
        return records
    start, end = date_range["from"], date_range["to"]
    kept = []
    for r in records:
        month = extract_month(getattr(r, field, ""))
        if month and start <= month <= end:
            kept.append(r)
    return kept


def calc_change_rate(current: float, previous: float) -> float:
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return (current - previous) / abs(previous) * 100

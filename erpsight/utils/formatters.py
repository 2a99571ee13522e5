"""
Shared number formatting utilities for reports and exports.

Conventions:
  Currency  →  12,345,678      (whole won, thousands separators)
  Compact   →  3.2억 / 450만   (억 = 1e8, 만 = 1e4)
  Percent   →  42.3%           (1 decimal place)
  Days      →  47일            (whole number)

Non-finite values (None, NaN, ±inf) always render as "-".
"""

import math


def _finite(v):
    if v is None:
        return None
    try:
        f = float(v)
    except (TypeError, ValueError):
        return None
    return f if math.isfinite(f) else None


def format_currency(v, compact: bool = False) -> str:
    """Format a KRW amount: 12,345,678, or 1.2억 / 3,400만 when compact."""
    f = _finite(v)
    if f is None:
        return "-"
    if compact:
        if abs(f) >= 1e8:
            return f"{f / 1e8:.1f}억"
        if abs(f) >= 1e4:
            return f"{f / 1e4:.0f}만"
    return f"{math.floor(f + 0.5):,}"


def format_won(v) -> str:
    """Report style amount with unit: 3.2억원, 450만원, 900원."""
    f = _finite(v)
    if f is None:
        return "-"
    if abs(f) >= 1e8:
        return f"{f / 1e8:.1f}억원"
    if abs(f) >= 1e4:
        return f"{f / 1e4:.0f}만원"
    return f"{f:.0f}원"


def format_percent(v, decimals: int = 1) -> str:
    f = _finite(v)
    if f is None:
        return "-"
    return f"{f:.{decimals}f}%"


def format_days(v) -> str:
    f = _finite(v)
    if f is None:
        return "-"
    return f"{int(round(f))}일"


def format_number(v) -> str:
    f = _finite(v)
    if f is None:
        return "-"
    if f == int(f):
        return f"{int(f):,}"
    return f"{f:,.2f}"


def format_metric(v, format_type: str) -> str:
    """
    Dispatch to the correct formatter based on format_type string.
    Recognised types: 'currency', 'percentage', 'days', 'number'
    """
    if format_type == "currency":
        return format_currency(v, compact=True)
    elif format_type == "percentage":
        return format_percent(v)
    elif format_type == "days":
        return format_days(v)
    elif format_type == "number":
        return format_number(v)
    return str(v) if _finite(v) is not None else "-"

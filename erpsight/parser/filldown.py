"""
Multi-level fill-down for hierarchical SAP reports.

SAP prints a parent dimension (org, rep, customer...) only on the first row
of its group and leaves the cells below it blank. fill_down carries the last
seen value of each level down the sheet; a new value at one level clears
everything carried for the levels nested under it.
"""

import pandas as pd


def is_blank(value) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def fill_down(df: pd.DataFrame, levels) -> pd.DataFrame:
    """
    Return a copy of `df` with blank cells filled from the rows above.

    levels: ordered column groups, outermost first, e.g. [["org"], ["rep"], ["cust", "cust_name"]].
    A row with any non-blank cell in group k starts a new group at level k:
    its cells become the carried values for that level and the carried
    values of every deeper level are dropped.
    """
    result = df.copy()
    levels = [list(group) for group in levels]
    carried: list[dict] = [{} for _ in levels]

    for idx in result.index:
        for depth, group in enumerate(levels):
            values = {col: result.at[idx, col] for col in group}
            if any(not is_blank(v) for v in values.values()):
                carried[depth] = {col: v for col, v in values.items() if not is_blank(v)}
                for deeper in range(depth + 1, len(levels)):
                    carried[deeper] = {}
            for col, value in values.items():
                if is_blank(value) and col in carried[depth]:
                    result.at[idx, col] = carried[depth][col]
    return result

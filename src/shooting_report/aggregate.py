"""
Grouped summary statistics over the normalized incident table.

All functions read the table and return new summary frames:
- rate_by: share of true values of a boolean field per group (n, n_true, rate)
- count_by / distribution: group counts and shares
- count_by_period / count_by_hour / night_share_by: temporal summaries
- crosstab: two-way count matrix

Rows whose grouping field is unknown are excluded unless
include_unknown=True, in which case they form an UNKNOWN group ordered last.
Groups are ordered by the category enumeration, never by encounter order.
"""

from typing import List, Optional, Sequence, Union

import pandas as pd

from shooting_report.categories import UNKNOWN_LABEL
from shooting_report.time_utils import is_nighttime

By = Union[str, Sequence[str]]


def _as_list(by: By) -> List[str]:
    return [by] if isinstance(by, str) else list(by)


def with_unknown_label(series: pd.Series) -> pd.Series:
    """Replace the missing marker with an explicit UNKNOWN group label."""
    if isinstance(series.dtype, pd.CategoricalDtype):
        if UNKNOWN_LABEL not in series.cat.categories:
            series = series.cat.add_categories([UNKNOWN_LABEL])
        return series.fillna(UNKNOWN_LABEL)
    return series.astype(object).where(series.notna(), UNKNOWN_LABEL)


def _group_frame(df: pd.DataFrame, by: List[str], extra: List[str], include_unknown: bool) -> pd.DataFrame:
    missing = [c for c in by + extra if c not in df.columns]
    if missing:
        raise KeyError(f"Columns not in table: {missing}")

    sub = df[by + extra].copy()
    if include_unknown:
        for col in by:
            sub[col] = with_unknown_label(sub[col])
    return sub


# =============================================================================
# Rates and Counts
# =============================================================================

def rate_by(
    df: pd.DataFrame,
    by: By,
    value: str,
    include_unknown: bool = False,
) -> pd.DataFrame:
    """
    Rate of true values of a boolean field per group.

    Rows whose value is unknown are not counted in n.

    Args:
        df: Normalized incident table
        by: Grouping field or fields
        value: Boolean field (e.g. "victim_death")
        include_unknown: Keep unknown groups as UNKNOWN

    Returns:
        DataFrame with by columns, n, n_true, rate
    """
    by = _as_list(by)
    sub = _group_frame(df, by, [value], include_unknown)
    sub = sub[sub[value].notna()]
    sub = sub.assign(is_true=sub[value].astype(bool))

    out = (
        sub.groupby(by, observed=True, sort=True)["is_true"]
        .agg(n="size", n_true="sum")
        .reset_index()
    )
    out["n"] = out["n"].astype(int)
    out["n_true"] = out["n_true"].astype(int)
    out["rate"] = out["n_true"] / out["n"]
    return out


def count_by(
    df: pd.DataFrame,
    by: By,
    include_unknown: bool = False,
) -> pd.DataFrame:
    """
    Row counts per observed group.

    Returns:
        DataFrame with by columns and count
    """
    by = _as_list(by)
    sub = _group_frame(df, by, [], include_unknown)
    return (
        sub.groupby(by, observed=True, sort=True)
        .size()
        .rename("count")
        .reset_index()
    )


def distribution(
    df: pd.DataFrame,
    field: str,
    include_unknown: bool = False,
) -> pd.DataFrame:
    """Counts and shares of one field's categories (shares sum to 1)."""
    out = count_by(df, field, include_unknown=include_unknown)
    total = out["count"].sum()
    out["share"] = out["count"] / total if total else 0.0
    return out


def crosstab(
    df: pd.DataFrame,
    index: str,
    columns: str,
    include_unknown: bool = False,
) -> pd.DataFrame:
    """
    Two-way count matrix over the full product of both enumerations.

    Category combinations with no rows appear as 0.
    """
    sub = _group_frame(df, [index, columns], [], include_unknown)
    return (
        sub.groupby([index, columns], observed=False, sort=True)
        .size()
        .unstack(columns, fill_value=0)
    )


# =============================================================================
# Temporal Summaries
# =============================================================================

def count_by_period(
    df: pd.DataFrame,
    freq: str = "year",
    by: Optional[By] = None,
    date_column: str = "occur_date",
) -> pd.DataFrame:
    """
    Incident counts per calendar year or month, optionally per group.

    Rows with unknown dates (or unknown groups) are excluded.

    Args:
        freq: "year" or "month"
        by: Optional grouping field(s)

    Returns:
        DataFrame with period (int year, or "YYYY-MM"), by columns, count
    """
    if freq not in ("year", "month"):
        raise ValueError(f"Unsupported period frequency: {freq}")

    group_cols = _as_list(by) if by is not None else []
    sub = _group_frame(df, group_cols, [date_column], include_unknown=False)
    sub = sub[sub[date_column].notna()]

    if freq == "year":
        period = sub[date_column].dt.year.astype(int)
    else:
        period = sub[date_column].dt.strftime("%Y-%m")

    sub = sub.assign(period=period)
    return (
        sub.groupby(["period", *group_cols], observed=True, sort=True)
        .size()
        .rename("count")
        .reset_index()
    )


def count_by_hour(
    df: pd.DataFrame,
    time_column: str = "occur_datetime",
) -> pd.DataFrame:
    """
    Incident counts per hour of day (0-23, zero-filled).

    Rows with unknown times are excluded.
    """
    hours = df[time_column].dropna().dt.hour.astype(int)
    counts = hours.value_counts().reindex(range(24), fill_value=0)
    return pd.DataFrame({"hour": range(24), "count": counts.to_numpy(dtype=int)})


def night_share_by(
    df: pd.DataFrame,
    by: By,
    start_hour: int = 20,
    end_hour: int = 6,
    time_column: str = "occur_datetime",
) -> pd.DataFrame:
    """
    Share of incidents inside the (cross-midnight) night window per group.

    Returns:
        DataFrame with by columns, n, n_night, night_share
    """
    by = _as_list(by)
    sub = _group_frame(df, by, [time_column], include_unknown=False)
    sub = sub[sub[time_column].notna()]
    sub = sub.assign(is_night=is_nighttime(sub[time_column], start_hour, end_hour))

    out = (
        sub.groupby(by, observed=True, sort=True)["is_night"]
        .agg(n="size", n_night="sum")
        .reset_index()
    )
    out["n_night"] = out["n_night"].astype(int)
    out["night_share"] = out["n_night"] / out["n"]
    return out

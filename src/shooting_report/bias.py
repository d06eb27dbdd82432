"""
Missing-data audit.

Checks whether unknowns in one field are spread evenly across the categories
of other fields. Uneven spread is evidence against "missing completely at
random" and means the complete-case model is conditioned on a skewed
population.

The audit is descriptive: counts, rates and a spread summary. No
statistical test is run.
"""

from typing import Dict, List, Mapping, Optional, Sequence, Union

import numpy as np
import pandas as pd

from shooting_report.categories import FIELD_SPECS, FieldSpec

MAX_BY_FIELDS = 3


def _categorical(series: pd.Series, specs: Mapping[str, FieldSpec]) -> pd.Series:
    """Series as a categorical over its full enumeration."""
    name = series.name
    if name in specs:
        return series.astype(object).astype(specs[name].dtype)
    if isinstance(series.dtype, pd.CategoricalDtype):
        return series
    return series.astype("category")


def missingness_indicators(
    df: pd.DataFrame,
    fields: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """
    Boolean <field>_missing column per field (True where the value is unknown).

    Args:
        fields: Fields to flag (default: every categorical field present)
    """
    fields = list(fields) if fields is not None else [f for f in FIELD_SPECS if f in df.columns]
    return pd.DataFrame(
        {f"{name}_missing": df[name].isna().to_numpy(dtype=bool) for name in fields},
        index=df.index,
    )


def summarize_missingness(
    df: pd.DataFrame,
    fields: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """
    Per-field unknown counts.

    Returns:
        DataFrame with field, n, n_missing, missing_rate
    """
    fields = list(fields) if fields is not None else [f for f in FIELD_SPECS if f in df.columns]
    n = len(df)
    rows = []
    for name in fields:
        n_missing = int(df[name].isna().sum())
        rows.append({
            "field": name,
            "n": n,
            "n_missing": n_missing,
            "missing_rate": n_missing / n if n else 0.0,
        })
    return pd.DataFrame(rows, columns=["field", "n", "n_missing", "missing_rate"])


def _check_by(missing_field: str, by: Union[str, Sequence[str]]) -> List[str]:
    by = [by] if isinstance(by, str) else list(by)
    if not 1 <= len(by) <= MAX_BY_FIELDS:
        raise ValueError(f"Missingness audit needs 1-{MAX_BY_FIELDS} by-fields, got {len(by)}")
    if missing_field in by:
        raise ValueError(f"{missing_field} cannot be both the audited field and a by-field")
    return by


def missing_crosstab(
    df: pd.DataFrame,
    missing_field: str,
    by: Union[str, Sequence[str]],
    specs: Optional[Mapping[str, FieldSpec]] = None,
) -> pd.DataFrame:
    """
    Count rows where missing_field is unknown, over the known categories of by.

    Every combination of by-categories appears, zero-filled. Rows whose
    by-fields are themselves unknown are left out.

    Args:
        df: Normalized incident table
        missing_field: Field whose unknowns are counted
        by: One to three fields to cross-tabulate against

    Returns:
        One field: single n_missing column indexed by its categories.
        Two fields: by[0] x by[1] matrix.
        Three fields: (by[0], by[1]) x by[2] matrix.
    """
    specs = specs or FIELD_SPECS
    by = _check_by(missing_field, by)

    rows = df.loc[df[missing_field].isna(), by]
    rows = pd.DataFrame({name: _categorical(rows[name], specs) for name in by}, index=rows.index)
    counts = rows.groupby(by, observed=False).size()

    if len(by) == 1:
        return counts.rename("n_missing").to_frame()
    return counts.unstack(by[-1], fill_value=0)


def missingness_rates(
    df: pd.DataFrame,
    missing_field: str,
    by: Union[str, Sequence[str]],
) -> pd.DataFrame:
    """
    Share of rows with missing_field unknown, per observed combination of by.

    Returns:
        DataFrame with by columns, n, n_missing, missing_rate
    """
    by = _check_by(missing_field, by)
    sub = df[by].assign(is_missing=df[missing_field].isna().to_numpy(dtype=bool))
    out = (
        sub.groupby(by, observed=True, sort=True)["is_missing"]
        .agg(n="size", n_missing="sum")
        .reset_index()
    )
    out["n_missing"] = out["n_missing"].astype(int)
    out["missing_rate"] = out["n_missing"] / out["n"]
    return out


def cell_spread(table: Union[pd.DataFrame, pd.Series]) -> Dict[str, float]:
    """
    Spread of the cells of a count table.

    A uniform table has cv 0 and max_min_ratio 1.

    Returns:
        Dictionary with n_cells, total, min, max, mean, std, cv and
        max_min_ratio (inf when some cell is 0 and another is not)
    """
    values = np.asarray(table, dtype=float).ravel()
    if values.size == 0:
        raise ValueError("Cannot summarize an empty table")

    vmin, vmax = float(values.min()), float(values.max())
    mean = float(values.mean())
    std = float(values.std())

    if vmin > 0:
        ratio = vmax / vmin
    elif vmax > 0:
        ratio = float("inf")
    else:
        ratio = float("nan")

    return {
        "n_cells": int(values.size),
        "total": float(values.sum()),
        "min": vmin,
        "max": vmax,
        "mean": mean,
        "std": std,
        "cv": std / mean if mean > 0 else float("nan"),
        "max_min_ratio": ratio,
    }

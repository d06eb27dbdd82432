"""
Quality assurance checks for report tables.

- Partition counts must sum to the rows they were computed from.
- Rates and shares must lie in [0, 1].
- Probability vectors must sum to 1.
Failures are hard errors, never warnings.
"""

from typing import Optional

import numpy as np
import pandas as pd


class QAError(Exception):
    """Raised when a report table fails a QA check."""
    pass


# =============================================================================
# Table Checks
# =============================================================================

def check_count_conservation(
    counts: pd.Series,
    expected_total: int,
    context: str = "",
) -> bool:
    """
    Assert that partition counts sum to the expected row total.

    Args:
        counts: Count column of a partition (unknowns included)
        expected_total: Number of rows the partition was computed from
        context: Optional context for error message

    Raises:
        QAError: If the sum differs
    """
    total = int(counts.sum())
    if total != expected_total:
        msg = f"Count conservation failed: partition sums to {total}, expected {expected_total}"
        if context:
            msg = f"{msg} ({context})"
        raise QAError(msg)
    return True


def check_rates_within_bounds(
    values: pd.Series,
    context: str = "",
) -> bool:
    """
    Assert that rates/shares lie in [0, 1] (NA ignored).

    Raises:
        QAError: If any value is out of range
    """
    valid = values.dropna().astype(float)
    bad = (valid < 0) | (valid > 1)
    if bad.any():
        msg = f"{int(bad.sum())} rate values outside [0, 1]"
        if context:
            msg = f"{msg} ({context})"
        raise QAError(msg)
    return True


def check_probabilities_sum_to_one(
    probabilities: pd.DataFrame,
    tolerance: float = 1e-6,
    context: str = "",
) -> bool:
    """
    Assert that every row of a probability table sums to 1.

    Raises:
        QAError: If any row deviates by more than tolerance
    """
    sums = probabilities.sum(axis=1).to_numpy(dtype=float)
    deviation = np.abs(sums - 1.0)
    if len(deviation) and deviation.max() > tolerance:
        msg = f"Probability rows do not sum to 1: max deviation {deviation.max():.2e}"
        if context:
            msg = f"{msg} ({context})"
        raise QAError(msg)
    return True


# =============================================================================
# Data Quality Summaries
# =============================================================================

def compute_na_rates(df: pd.DataFrame, columns: Optional[list] = None) -> dict[str, float]:
    """
    Compute NA (unknown) rates for columns in a DataFrame.

    Returns:
        Dictionary of column_name -> NA rate (0-1)
    """
    frame = df if columns is None else df[columns]
    if len(frame) == 0:
        return {c: 0.0 for c in frame.columns}
    return {k: float(v) for k, v in (frame.isna().sum() / len(frame)).items()}

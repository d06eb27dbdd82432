"""
Timezone-aware time utilities for incident occurrence times.

All occurrence timestamps are local NYC wall-clock times. They are combined
from OCCUR_DATE + OCCUR_TIME and localized to America/New_York; DST edge cases
(nonexistent spring-forward times, ambiguous fall-back times) are handled
explicitly instead of raising.
Nighttime window logic is centralized here and handles cross-midnight windows.
"""

from typing import Optional, Tuple

import pandas as pd
import pytz


# NYC timezone
NYC_TZ = pytz.timezone("America/New_York")


# =============================================================================
# Timestamp Construction
# =============================================================================

def combine_occurrence(
    dates: pd.Series,
    times: pd.Series,
) -> pd.Series:
    """
    Combine calendar dates and times of day into NYC-local timestamps.

    Args:
        dates: datetime64 Series (midnight-normalized dates)
        times: timedelta64 Series (time since midnight)

    Returns:
        Series of timezone-aware timestamps in NYC time. NaT where either
        part is missing.
    """
    naive = dates + times
    return localize_nyc(naive)


def localize_nyc(timestamps: pd.Series) -> pd.Series:
    """
    Attach America/New_York to naive wall-clock timestamps.

    Spring-forward times that do not exist are shifted forward to the first
    valid instant; fall-back times that occur twice take the first (DST)
    occurrence.

    Args:
        timestamps: Series of naive or NYC-aware timestamps

    Returns:
        Series of timezone-aware timestamps in NYC time
    """
    if not pd.api.types.is_datetime64_any_dtype(timestamps):
        timestamps = pd.to_datetime(timestamps, errors="coerce")

    if timestamps.dt.tz is not None:
        return timestamps.dt.tz_convert(NYC_TZ)

    # ambiguous must be an array to pick the DST side for every row
    ambiguous = pd.Series(True, index=timestamps.index).to_numpy()
    return timestamps.dt.tz_localize(
        NYC_TZ,
        ambiguous=ambiguous,
        nonexistent="shift_forward",
    )


# =============================================================================
# Nighttime Windows (Cross-Midnight Aware)
# =============================================================================

def is_nighttime(
    timestamps: pd.Series,
    start_hour: int = 20,
    end_hour: int = 6,
) -> pd.Series:
    """
    Determine if timestamps fall within the nighttime window.

    Handles cross-midnight windows correctly (e.g., 20:00 to 06:00).

    Args:
        timestamps: Series of timestamps (NYC local time)
        start_hour: Start of night window (default 20 = 8 PM)
        end_hour: End of night window (default 6 = 6 AM)

    Returns:
        Boolean Series indicating nighttime (False where the timestamp is NaT)

    Examples:
        - 20:00-06:00: night is 20..23,0..5 (not 6)
        - 01:00-05:00: night is 1,2,3,4 (not 5)
    """
    hours = timestamps.dt.hour

    if start_hour > end_hour:
        # Night is: hour >= start_hour OR hour < end_hour
        mask = (hours >= start_hour) | (hours < end_hour)
    else:
        # Night is: start_hour <= hour < end_hour
        mask = (hours >= start_hour) & (hours < end_hour)

    return mask.fillna(False).astype(bool)


def get_nighttime_window(config: Optional[dict] = None) -> Tuple[int, int]:
    """
    Get nighttime window hours from the `nighttime` config section.

    Returns:
        Tuple of (start_hour, end_hour), default (20, 6)
    """
    night = (config or {}).get("nighttime") or {}
    return int(night.get("start_hour", 20)), int(night.get("end_hour", 6))


# =============================================================================
# Year Range Helpers
# =============================================================================

def get_year_range(
    df: pd.DataFrame,
    timestamp_column: str,
) -> Tuple[int, int]:
    """
    Get the year range covered by the data.

    Raises:
        ValueError: If the column has no valid timestamps
    """
    timestamps = df[timestamp_column].dropna()
    if len(timestamps) == 0:
        raise ValueError(f"No valid timestamps in column {timestamp_column}")
    return int(timestamps.min().year), int(timestamps.max().year)

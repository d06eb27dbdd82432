"""
Tests for time utilities.

Coverage includes:
- DST edge cases (nonexistent and ambiguous wall-clock times)
- Cross-midnight nighttime windows
- Config-driven window and year range helpers
"""

import pandas as pd
import pytest

from shooting_report.time_utils import (
    combine_occurrence,
    get_nighttime_window,
    get_year_range,
    is_nighttime,
    localize_nyc,
)


class TestLocalization:
    """Tests for NYC localization of occurrence times."""

    def test_combine_date_and_time(self):
        dates = pd.Series(pd.to_datetime(["2022-01-15"]))
        times = pd.Series(pd.to_timedelta(["21:30:00"]))
        ts = combine_occurrence(dates, times)

        assert str(ts.dt.tz) == "America/New_York"
        assert ts.iloc[0].hour == 21
        assert ts.iloc[0].minute == 30

    def test_nonexistent_time_shifts_forward(self):
        """02:30 on spring-forward day does not exist; shifted to 03:00."""
        ts = localize_nyc(pd.Series(pd.to_datetime(["2021-03-14 02:30:00"])))
        assert ts.iloc[0].hour == 3
        assert ts.iloc[0].minute == 0

    def test_ambiguous_time_takes_dst_side(self):
        """01:30 on fall-back day happens twice; the first (EDT) is used."""
        ts = localize_nyc(pd.Series(pd.to_datetime(["2021-11-07 01:30:00"])))
        assert ts.iloc[0].utcoffset() == pd.Timedelta(hours=-4)

    def test_missing_parts_give_nat(self):
        dates = pd.Series(pd.to_datetime(["2022-01-15", None]))
        times = pd.Series(pd.to_timedelta(["10:00:00", "11:00:00"]))
        ts = combine_occurrence(dates, times)
        assert ts.notna().tolist() == [True, False]

    def test_aware_input_converted(self):
        utc = pd.Series(pd.to_datetime(["2022-07-01 12:00:00"]).tz_localize("UTC"))
        ts = localize_nyc(utc)
        assert ts.iloc[0].hour == 8


def _hourly():
    return pd.Series(pd.to_datetime([f"2022-01-01 {h:02d}:00" for h in range(24)]))


class TestNighttime:
    """Tests for nighttime window logic."""

    def test_cross_midnight_window(self):
        """20:00-06:00 includes 20..23 and 0..5, not 6 or 19."""
        ts = _hourly()
        night = is_nighttime(ts, start_hour=20, end_hour=6)
        night_hours = [h for h, flag in zip(range(24), night) if flag]
        assert night_hours == [0, 1, 2, 3, 4, 5, 20, 21, 22, 23]

    def test_same_day_window(self):
        ts = _hourly()
        night = is_nighttime(ts, start_hour=1, end_hour=5)
        assert night.sum() == 4
        assert not night.iloc[5]

    def test_nat_is_not_night(self):
        ts = pd.Series(pd.to_datetime(["2022-01-01 23:00", None]))
        assert is_nighttime(ts).tolist() == [True, False]

    def test_window_from_config(self):
        assert get_nighttime_window({"nighttime": {"start_hour": 22, "end_hour": 4}}) == (22, 4)
        assert get_nighttime_window({}) == (20, 6)
        assert get_nighttime_window(None) == (20, 6)


class TestYearRange:
    """Tests for get_year_range."""

    def test_year_range(self, incidents):
        assert get_year_range(incidents, "occur_date") == (2019, 2022)

    def test_no_timestamps(self):
        df = pd.DataFrame({"occur_date": pd.to_datetime([None, None])})
        with pytest.raises(ValueError):
            get_year_range(df, "occur_date")

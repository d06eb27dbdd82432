"""
Tests for normalization of raw incident records.

Coverage includes:
- Sentinels and invalid codes become unknown (never passed through)
- Aliases and case/whitespace variants map to canonical categories
- Dates, times, precincts and the fatality flag
- Totality, idempotence and input immutability
- Unknown breakdown by source
"""

import pandas as pd
import pytest

from shooting_report.categories import (
    CANONICAL_COLUMNS,
    FIELD_SPECS,
    get_field_spec,
    with_extra_sentinels,
)
from shooting_report.normalize import (
    normalize_categorical,
    normalize_flag,
    normalize_incidents,
    normalize_value,
    parse_occur_date,
    parse_occur_time,
    parse_precinct,
    unknown_breakdown,
    unknown_value_counts,
)
from shooting_report.schemas import SchemaError


class TestCategoricalNormalization:
    """Tests for mapping raw tokens onto closed enumerations."""

    def test_invalid_age_codes_and_sentinels_are_unknown(self):
        """1020, 224, empty and (null) become unknown; 25-44 is kept."""
        raw = pd.Series(["1020", "224", "", "(null)", "25-44"])
        result = normalize_categorical(raw, get_field_spec("perp_age"))

        assert result.isna().tolist() == [True, True, True, True, False]
        assert result.iloc[4] == "25-44"

    def test_out_of_set_value_never_passes_through(self):
        """Values outside the enumeration are unknown."""
        raw = pd.Series(["MARTIAN", "BLACK", "black ", "Q"])
        result = normalize_categorical(raw, get_field_spec("victim_race"))

        assert result.isna().tolist() == [True, False, False, True]
        assert set(result.dropna()) <= set(FIELD_SPECS["victim_race"].categories)

    def test_sex_aliases_and_u_sentinel(self):
        """MALE/FEMALE aliases map to M/F, U is unknown."""
        raw = pd.Series(["MALE", "female", "U", "M"])
        result = normalize_categorical(raw, get_field_spec("victim_sex"))

        assert result.iloc[0] == "M"
        assert result.iloc[1] == "F"
        assert pd.isna(result.iloc[2])
        assert result.iloc[3] == "M"

    def test_jurisdiction_codes(self):
        """Numeric jurisdiction codes map to names."""
        raw = pd.Series(["0", "1", "2.0", "7"])
        result = normalize_categorical(raw, get_field_spec("jurisdiction"))

        assert result.iloc[:3].tolist() == ["PATROL", "TRANSIT", "HOUSING"]
        assert pd.isna(result.iloc[3])

    def test_missing_values_are_unknown(self):
        """Real missing values (None/NaN) are unknown."""
        raw = pd.Series([None, float("nan"), "BRONX"], dtype=object)
        result = normalize_categorical(raw, get_field_spec("boro"))
        assert result.isna().tolist() == [True, True, False]

    def test_age_is_ordered(self):
        """Age fields are ordered categoricals, others are not."""
        result = normalize_categorical(pd.Series(["<18", "65+"]), get_field_spec("victim_age"))
        assert result.dtype.ordered
        assert result.cat.codes.tolist() == [0, 4]
        assert result.min() == "<18"

        boro = normalize_categorical(pd.Series(["BRONX"]), get_field_spec("boro"))
        assert not boro.dtype.ordered

    def test_normalize_value_single(self):
        """normalize_value mirrors the column normalizer."""
        spec = get_field_spec("perp_age")
        assert normalize_value("1022", spec) is None
        assert normalize_value(None, spec) is None
        assert normalize_value(" 18-24 ", spec) == "18-24"

    def test_extra_sentinels(self):
        """Configured extra sentinels extend the defaults."""
        specs = with_extra_sentinels({"boro": ["BROOKLYN"]})
        result = normalize_categorical(pd.Series(["BROOKLYN", "BRONX", ""]), specs["boro"])
        assert result.isna().tolist() == [True, False, True]
        # Defaults untouched
        assert "BROOKLYN" not in FIELD_SPECS["boro"].sentinels


class TestScalarParsing:
    """Tests for dates, times, precincts and flags."""

    def test_parse_dates(self):
        """MM/DD/YYYY and ISO dates parse; junk becomes NaT."""
        result = parse_occur_date(pd.Series(["01/15/2022", "2021-07-04", "not a date", ""]))
        assert result.iloc[0] == pd.Timestamp("2022-01-15")
        assert result.iloc[1] == pd.Timestamp("2021-07-04")
        assert result.iloc[2:].isna().all()

    def test_parse_times(self):
        """HH:MM:SS and HH:MM parse; out-of-range times become NaT."""
        result = parse_occur_time(pd.Series(["21:30:00", "7:05", "25:00:00", "(null)"]))
        assert result.iloc[0] == pd.Timedelta(hours=21, minutes=30)
        assert result.iloc[1] == pd.Timedelta(hours=7, minutes=5)
        assert result.iloc[2:].isna().all()

    def test_parse_precinct(self):
        """Integral precincts parse to Int64; other values are NA."""
        result = parse_precinct(pd.Series(["73", "40.0", "abc", ""]))
        assert str(result.dtype) == "Int64"
        assert result.iloc[0] == 73
        assert result.iloc[1] == 40
        assert result.iloc[2:].isna().all()

    def test_parse_flag(self):
        """true/false tokens parse; others are NA."""
        result = normalize_flag(pd.Series(["true", "FALSE", "Y", "maybe"]))
        assert str(result.dtype) == "boolean"
        assert result.iloc[0]
        assert not result.iloc[1]
        assert result.iloc[2]
        assert pd.isna(result.iloc[3])


class TestNormalizeIncidents:
    """Tests for whole-table normalization."""

    def test_one_row_per_input_row(self, raw_incidents):
        """Normalization never drops rows."""
        result = normalize_incidents(raw_incidents)
        assert len(result) == len(raw_incidents)
        assert list(result.columns) == CANONICAL_COLUMNS

    def test_idempotent(self, raw_incidents):
        """Normalizing a normalized table returns an equal table."""
        once = normalize_incidents(raw_incidents)
        twice = normalize_incidents(once)
        pd.testing.assert_frame_equal(once, twice)

    def test_input_not_modified(self, raw_incidents):
        """The raw table is left untouched."""
        before = raw_incidents.copy()
        normalize_incidents(raw_incidents)
        pd.testing.assert_frame_equal(raw_incidents, before)

    def test_occur_datetime_is_nyc_local(self, incidents):
        """Combined timestamps carry the New York timezone."""
        assert str(incidents["occur_datetime"].dt.tz) == "America/New_York"
        first = incidents["occur_datetime"].iloc[0]
        assert first.hour == incidents["occur_time"].iloc[0].components.hours

    def test_missing_column_raises(self, raw_incidents):
        """A missing required column is a schema error."""
        with pytest.raises(SchemaError, match="PERP_RACE|perp_race"):
            normalize_incidents(raw_incidents.drop(columns=["PERP_RACE"]))

    def test_unknown_rows(self, incidents):
        """Sentinel perpetrator ages in the fixture are unknown."""
        assert incidents["perp_age"].isna().sum() == 6
        assert incidents["perp_race"].isna().sum() == 6


class TestUnknownBreakdown:
    """Tests for explaining where unknowns come from."""

    def test_sentinel_vs_unrecognized(self, make_raw):
        """Sentinels and unrecognized values are counted separately."""
        raw = make_raw([
            {"PERP_AGE_GROUP": "1020"},
            {"PERP_AGE_GROUP": ""},
            {"PERP_AGE_GROUP": "30-40"},
            {"PERP_AGE_GROUP": "25-44"},
        ])
        table = unknown_breakdown(raw).set_index("field")

        assert table.loc["perp_age", "n_sentinel"] == 2
        assert table.loc["perp_age", "n_unrecognized"] == 1
        assert table.loc["perp_age", "n_unknown"] == 3
        assert table.loc["perp_age", "unknown_rate"] == pytest.approx(0.75)

    def test_unknown_value_counts(self, make_raw):
        """Raw tokens behind unknowns are listed with counts."""
        raw = make_raw([{"PERP_AGE_GROUP": "1020"}, {"PERP_AGE_GROUP": "1020"}, {"PERP_AGE_GROUP": "<18"}])
        counts = unknown_value_counts(raw, "perp_age")
        assert counts == {"1020": 2}

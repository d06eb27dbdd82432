"""
Normalization of raw incident records onto canonical types.

Every categorical field ends up as a pandas Categorical over its declared
enumeration (categories.py); sentinel tokens, known-invalid codes and any
value outside the enumeration become the missing marker. Dates and times are
parsed into datetime64 / timedelta64, and the fatality flag into a nullable
boolean.

Normalization is total and deterministic: every input row produces exactly
one output row, values never raise, and normalizing an already-normalized
table returns an equal table. Inputs are never modified in place.
"""

from typing import Dict, Mapping, Optional

import pandas as pd

from shooting_report.categories import (
    CANONICAL_COLUMNS,
    FALSE_TOKENS,
    FIELD_SPECS,
    RAW_TO_CANONICAL,
    TRUE_TOKENS,
    FieldSpec,
)
from shooting_report.schemas import NORMALIZED_INCIDENT_SCHEMA, SchemaError, validate_schema
from shooting_report.time_utils import combine_occurrence

ONE_DAY = pd.Timedelta(days=1)


def _tokens(series: pd.Series) -> pd.Series:
    """Stripped, upper-cased string view of a column (missing stays missing)."""
    return series.astype("string").str.strip().str.upper()


# =============================================================================
# Field Normalizers
# =============================================================================

def normalize_value(value, spec: FieldSpec) -> Optional[str]:
    """
    Normalize a single raw value for one categorical field.

    Returns:
        The canonical category, or None for unknown
    """
    if value is None or pd.isna(value):
        return None
    token = str(value).strip().upper()
    if token in spec.sentinels:
        return None
    return spec.lookup().get(token)


def normalize_categorical(series: pd.Series, spec: FieldSpec) -> pd.Series:
    """
    Map a raw column onto the field's closed enumeration.

    Sentinels and unrecognized values become missing; recognized tokens and
    aliases become their canonical category.
    """
    tokens = _tokens(series)
    is_sentinel = tokens.isin(list(spec.sentinels)).fillna(False).astype(bool)
    tokens = tokens.where(~is_sentinel)
    mapped = tokens.map(spec.lookup(), na_action="ignore")
    values = pd.Categorical(mapped.astype(object), dtype=spec.dtype)
    return pd.Series(values, index=series.index, name=spec.name)


def normalize_flag(series: pd.Series) -> pd.Series:
    """Parse a true/false flag column into nullable boolean (unknown -> NA)."""
    if pd.api.types.is_bool_dtype(series):
        return series.astype("boolean")

    tokens = _tokens(series)
    result = pd.Series(pd.NA, index=series.index, dtype="boolean")
    result[tokens.isin(list(TRUE_TOKENS)).fillna(False).to_numpy(dtype=bool)] = True
    result[tokens.isin(list(FALSE_TOKENS)).fillna(False).to_numpy(dtype=bool)] = False
    return result


def parse_occur_date(series: pd.Series) -> pd.Series:
    """
    Parse occurrence dates into midnight-normalized datetime64.

    Accepts the NYPD export format (MM/DD/YYYY) and ISO dates; anything else
    becomes NaT.
    """
    if pd.api.types.is_datetime64_any_dtype(series):
        if series.dt.tz is not None:
            series = series.dt.tz_localize(None)
        return series.dt.normalize()

    text = series.astype("string").str.strip()
    dates = pd.to_datetime(text, format="%m/%d/%Y", errors="coerce")
    iso = pd.to_datetime(text, format="ISO8601", errors="coerce")
    return dates.fillna(iso).dt.normalize()


def parse_occur_time(series: pd.Series) -> pd.Series:
    """
    Parse HH:MM:SS occurrence times into timedelta64 since midnight.

    Values outside [00:00:00, 24:00:00) become NaT.
    """
    if pd.api.types.is_timedelta64_dtype(series):
        times = series
    else:
        text = series.astype("string").str.strip()
        # HH:MM without seconds
        short = text.str.fullmatch(r"\d{1,2}:\d{2}").fillna(False).astype(bool)
        text = text.where(~short, text + ":00")
        times = pd.to_timedelta(text.astype(object).where(text.notna(), None), errors="coerce")

    out_of_range = (times < pd.Timedelta(0)) | (times >= ONE_DAY)
    return times.mask(out_of_range)


def parse_precinct(series: pd.Series) -> pd.Series:
    """Parse precinct numbers into nullable Int64 (non-integers -> NA)."""
    text = series.astype("string").str.strip()
    numbers = pd.to_numeric(text.astype(object).where(text.notna(), None), errors="coerce")
    numbers = numbers.astype("float64")
    numbers = numbers.where(numbers == numbers.round())
    return numbers.astype("Int64")


# =============================================================================
# Table Normalization
# =============================================================================

def canonicalize_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Rename raw NYPD column names to canonical names (canonical names pass through)."""
    return df.rename(columns=lambda c: RAW_TO_CANONICAL.get(str(c).strip(), str(c).strip()))


def normalize_incidents(
    df: pd.DataFrame,
    specs: Optional[Mapping[str, FieldSpec]] = None,
    validate: bool = True,
) -> pd.DataFrame:
    """
    Normalize a raw (or already normalized) incident table.

    Args:
        df: Raw NYPD table (raw column names) or a normalized table
        specs: Field enumerations to use (default: FIELD_SPECS); pass
               categories.with_extra_sentinels(...) to extend sentinel sets
        validate: Validate the result against NORMALIZED_INCIDENT_SCHEMA

    Returns:
        New DataFrame with CANONICAL_COLUMNS, one row per input row

    Raises:
        SchemaError: If a required input column is missing
    """
    specs = specs or FIELD_SPECS
    frame = canonicalize_columns(df)

    required = [c for c in CANONICAL_COLUMNS if c != "occur_datetime"]
    missing = [c for c in required if c not in frame.columns]
    if missing:
        raise SchemaError(f"Cannot normalize incidents, missing columns: {missing}")

    out = pd.DataFrame(index=frame.index)
    out["incident_key"] = frame["incident_key"].astype("string").str.strip()
    out["occur_date"] = parse_occur_date(frame["occur_date"])
    out["occur_time"] = parse_occur_time(frame["occur_time"])
    out["occur_datetime"] = combine_occurrence(out["occur_date"], out["occur_time"])
    out["precinct"] = parse_precinct(frame["precinct"])
    out["victim_death"] = normalize_flag(frame["victim_death"])

    for name, spec in specs.items():
        out[name] = normalize_categorical(frame[name], spec)

    out = out[CANONICAL_COLUMNS]

    if validate:
        validate_schema(out, NORMALIZED_INCIDENT_SCHEMA, context="normalize_incidents")

    return out


def unknown_breakdown(
    raw: pd.DataFrame,
    specs: Optional[Mapping[str, FieldSpec]] = None,
) -> pd.DataFrame:
    """
    Explain where each categorical field's unknowns came from.

    Returns:
        DataFrame with one row per field: n_sentinel (designated sentinel
        tokens or missing cells), n_unrecognized (values outside the
        enumeration), n_unknown, unknown_rate
    """
    specs = specs or FIELD_SPECS
    frame = canonicalize_columns(raw)

    rows = []
    for name, spec in specs.items():
        if name not in frame.columns:
            continue
        tokens = _tokens(frame[name])
        is_sentinel = (tokens.isna() | tokens.isin(list(spec.sentinels))).fillna(True).astype(bool)
        recognized = tokens.isin(list(spec.lookup())).fillna(False).astype(bool)
        n_sentinel = int(is_sentinel.sum())
        n_unrecognized = int((~is_sentinel & ~recognized).sum())
        n_unknown = n_sentinel + n_unrecognized
        rows.append({
            "field": name,
            "n_sentinel": n_sentinel,
            "n_unrecognized": n_unrecognized,
            "n_unknown": n_unknown,
            "unknown_rate": n_unknown / len(frame) if len(frame) else 0.0,
        })

    return pd.DataFrame(rows, columns=["field", "n_sentinel", "n_unrecognized", "n_unknown", "unknown_rate"])


def unknown_value_counts(
    raw: pd.DataFrame,
    field: str,
    specs: Optional[Mapping[str, FieldSpec]] = None,
) -> Dict[str, int]:
    """Raw tokens that normalize to unknown for one field, with their counts."""
    specs = specs or FIELD_SPECS
    spec = specs[field]
    frame = canonicalize_columns(raw)
    normalized = normalize_categorical(frame[field], spec)
    raw_tokens = frame[field].astype("string").fillna("<NA>")
    return raw_tokens[normalized.isna()].value_counts().to_dict()

"""
Schemas for the raw NYPD CSV and the normalized incident table.

- Raw: only column presence is checked (values are free text until
  normalized). A missing column means the published export changed shape,
  which the loader turns into a LoadError.
- Normalized: column dtypes, closed category sets, precinct >= 1.
Validation collects every problem before raising one SchemaError.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, List, Optional

import pandas as pd

from shooting_report.categories import FIELD_SPECS, SCALAR_RAW_COLUMNS


class SchemaError(Exception):
    """Raised when a table does not match its schema."""
    pass


@dataclass(frozen=True)
class ColumnSpec:
    """Expected properties of one column (None = not checked)."""
    name: str
    dtype: Optional[str] = None
    nullable: bool = True
    allowed_values: Optional[FrozenSet[Any]] = None
    min_value: Optional[float] = None


@dataclass
class Schema:
    """Named set of column specs; required_columns defaults to the non-nullable ones."""
    name: str
    columns: List[ColumnSpec]
    required_columns: List[str] = field(default_factory=list)
    min_rows: int = 0

    def __post_init__(self):
        if not self.required_columns:
            self.required_columns = [c.name for c in self.columns if not c.nullable]


_DTYPE_CHECKS: Dict[str, Callable[[pd.Series], bool]] = {
    "Int64": pd.api.types.is_integer_dtype,
    "boolean": pd.api.types.is_bool_dtype,
    "category": lambda s: isinstance(s.dtype, pd.CategoricalDtype),
    "datetime": pd.api.types.is_datetime64_any_dtype,
    "timedelta": pd.api.types.is_timedelta64_dtype,
}


# =============================================================================
# Incident Schemas
# =============================================================================

RAW_INCIDENT_SCHEMA = Schema(
    name="raw_incidents",
    columns=[
        ColumnSpec(raw, nullable=False)
        for raw in [*SCALAR_RAW_COLUMNS.values(), *(s.raw_column for s in FIELD_SPECS.values())]
    ],
    min_rows=1,
)

NORMALIZED_INCIDENT_SCHEMA = Schema(
    name="normalized_incidents",
    columns=[
        ColumnSpec("incident_key", nullable=False),
        ColumnSpec("occur_date", dtype="datetime", nullable=False),
        ColumnSpec("occur_time", dtype="timedelta", nullable=False),
        ColumnSpec("occur_datetime", dtype="datetime", nullable=False),
        ColumnSpec("precinct", dtype="Int64", nullable=False, min_value=1),
        ColumnSpec("victim_death", dtype="boolean", nullable=False),
        *[
            ColumnSpec(name, dtype="category", nullable=False, allowed_values=frozenset(spec.categories))
            for name, spec in FIELD_SPECS.items()
        ],
    ],
)


# =============================================================================
# Validation
# =============================================================================

def validate_column(df: pd.DataFrame, spec: ColumnSpec) -> List[str]:
    """
    Problems with one column of df (empty list if it matches spec).

    nullable=False only makes the column required: unknown values are
    legitimate NA in the normalized table.
    """
    if spec.name not in df.columns:
        return [f"Missing column: {spec.name}"]

    col = df[spec.name]
    errors = []

    check = _DTYPE_CHECKS.get(spec.dtype) if spec.dtype else None
    if check is not None and not check(col):
        errors.append(f"Column {spec.name}: expected {spec.dtype}, got {col.dtype}")

    known = col.dropna()
    if spec.allowed_values is not None:
        invalid = known[~known.isin(list(spec.allowed_values))]
        if len(invalid):
            errors.append(f"Column {spec.name}: invalid values {list(invalid.unique()[:5])}")

    if spec.min_value is not None and pd.api.types.is_numeric_dtype(known):
        n_below = int((known < spec.min_value).sum())
        if n_below:
            errors.append(f"Column {spec.name}: {n_below} values below min {spec.min_value}")

    return errors


def validate_schema(
    df: pd.DataFrame,
    schema: Schema,
    context: str = "",
    raise_on_error: bool = True,
) -> List[str]:
    """
    Validate df against schema.

    Returns:
        List of problems (empty if valid)

    Raises:
        SchemaError: If raise_on_error and any problem was found
    """
    ctx = f" ({context})" if context else ""
    errors = []

    if len(df) < schema.min_rows:
        errors.append(f"Expected at least {schema.min_rows} rows, got {len(df)}{ctx}")

    missing = sorted(set(schema.required_columns) - set(df.columns))
    if missing:
        errors.append(f"Missing required columns: {missing}{ctx}")

    for spec in schema.columns:
        if spec.name not in missing:
            errors.extend(validate_column(df, spec))

    if errors and raise_on_error:
        raise SchemaError(f"Schema validation failed for '{schema.name}':\n" + "\n".join(errors))
    return errors


def validate_raw_columns(df: pd.DataFrame, context: str = "") -> None:
    """
    Check the raw CSV has every NYPD column the normalizer reads and at least one row.

    Raises:
        SchemaError: Listing the missing columns
    """
    validate_schema(df, RAW_INCIDENT_SCHEMA, context=context)

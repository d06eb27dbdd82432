"""
Declared enumerations for every categorical incident field.

One FieldSpec per field holds the canonical categories, whether they are
ordered, the raw-token aliases and the sentinel tokens that mean "unknown".
The same specs drive normalization, model encoding, prediction grids and the
missingness audit.

The unknown marker is the pandas missing value inside a CategoricalDtype.
UNKNOWN_LABEL is only used where a table has to show unknowns as a group.
"""

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

import pandas as pd


UNKNOWN_LABEL = "UNKNOWN"

# Tokens that mean "not recorded" in every NYPD categorical column
COMMON_SENTINELS = frozenset({"", "(NULL)", "NULL", "NAN", "UNKNOWN", "N/A"})

# Age-group codes that appear in the raw data but are data-entry errors.
# They are treated as unknown, never mapped to a guessed bracket.
INVALID_AGE_CODES = frozenset({"1020", "224", "940", "1022", "1028"})

AGE_GROUPS = ("<18", "18-24", "25-44", "45-64", "65+")

SEXES = ("M", "F")

RACES = (
    "AMERICAN INDIAN/ALASKAN NATIVE",
    "ASIAN / PACIFIC ISLANDER",
    "BLACK",
    "BLACK HISPANIC",
    "WHITE",
    "WHITE HISPANIC",
)

BOROUGHS = ("BRONX", "BROOKLYN", "MANHATTAN", "QUEENS", "STATEN ISLAND")

LOC_OF_OCCUR = ("INSIDE", "OUTSIDE")

JURISDICTIONS = ("PATROL", "TRANSIT", "HOUSING")

LOC_CLASSIFICATIONS = (
    "COMMERCIAL",
    "DWELLING",
    "HOUSING",
    "PARKING LOT",
    "PLAYGROUND",
    "STREET",
    "TRANSIT",
    "VEHICLE",
    "OTHER",
)

LOCATION_DESCS = (
    "ATM",
    "BANK",
    "BAR/NIGHT CLUB",
    "BEAUTY/NAIL SALON",
    "CANDY STORE",
    "CHAIN STORE",
    "CHECK CASH",
    "CLOTHING BOUTIQUE",
    "COMMERCIAL BLDG",
    "DEPT STORE",
    "DOCTOR/DENTIST",
    "DRUG STORE",
    "DRY CLEANER/LAUNDRY",
    "FACTORY/WAREHOUSE",
    "FAST FOOD",
    "GAS STATION",
    "GROCERY/BODEGA",
    "GYM/FITNESS FACILITY",
    "HOSPITAL",
    "HOTEL/MOTEL",
    "JEWELRY STORE",
    "LIQUOR STORE",
    "LOAN COMPANY",
    "MULTI DWELL - APT BUILD",
    "MULTI DWELL - PUBLIC HOUS",
    "PHOTO/COPY STORE",
    "PVT HOUSE",
    "RESTAURANT/DINER",
    "SCHOOL",
    "SHOE STORE",
    "SMALL MERCHANT",
    "SOCIAL CLUB/POLICY LOCATI",
    "STORAGE FACILITY",
    "STORE UNCLASSIFIED",
    "SUPERMARKET",
    "TELECOMM. STORE",
    "VARIETY STORE",
    "VIDEO STORE",
)


@dataclass(frozen=True)
class FieldSpec:
    """Closed enumeration for one categorical incident field."""
    name: str
    raw_column: str
    categories: Tuple[str, ...]
    ordered: bool = False
    aliases: Mapping[str, str] = field(default_factory=dict)
    sentinels: FrozenSet[str] = COMMON_SENTINELS

    @property
    def dtype(self) -> pd.CategoricalDtype:
        return pd.CategoricalDtype(categories=list(self.categories), ordered=self.ordered)

    def lookup(self) -> Dict[str, str]:
        """Upper-cased raw token -> canonical category (canonical values map to themselves)."""
        table = {c.upper(): c for c in self.categories}
        for raw, canonical in self.aliases.items():
            if canonical not in self.categories:
                raise ValueError(
                    f"Alias {raw!r} for {self.name} points at unknown category {canonical!r}"
                )
            table[raw.upper()] = canonical
        return table


def _demographic_specs(prefix: str, raw_prefix: str) -> List[FieldSpec]:
    return [
        FieldSpec(
            name=f"{prefix}_age",
            raw_column=f"{raw_prefix}_AGE_GROUP",
            categories=AGE_GROUPS,
            ordered=True,
            sentinels=COMMON_SENTINELS | INVALID_AGE_CODES,
        ),
        FieldSpec(
            name=f"{prefix}_sex",
            raw_column=f"{raw_prefix}_SEX",
            categories=SEXES,
            aliases={"MALE": "M", "FEMALE": "F"},
            sentinels=COMMON_SENTINELS | {"U"},
        ),
        FieldSpec(
            name=f"{prefix}_race",
            raw_column=f"{raw_prefix}_RACE",
            categories=RACES,
        ),
    ]


FIELD_SPECS: Dict[str, FieldSpec] = {
    spec.name: spec
    for spec in [
        FieldSpec("boro", "BORO", BOROUGHS),
        FieldSpec("loc_of_occur", "LOC_OF_OCCUR_DESC", LOC_OF_OCCUR),
        FieldSpec(
            "jurisdiction",
            "JURISDICTION_CODE",
            JURISDICTIONS,
            aliases={"0": "PATROL", "1": "TRANSIT", "2": "HOUSING",
                     "0.0": "PATROL", "1.0": "TRANSIT", "2.0": "HOUSING"},
        ),
        FieldSpec("loc_classification", "LOC_CLASSFCTN_DESC", LOC_CLASSIFICATIONS),
        FieldSpec(
            "location_desc",
            "LOCATION_DESC",
            LOCATION_DESCS,
            sentinels=COMMON_SENTINELS | {"NONE"},
        ),
        *_demographic_specs("perp", "PERP"),
        *_demographic_specs("victim", "VIC"),
    ]
}

# Non-categorical fields: canonical name -> raw NYPD column
SCALAR_RAW_COLUMNS = {
    "incident_key": "INCIDENT_KEY",
    "occur_date": "OCCUR_DATE",
    "occur_time": "OCCUR_TIME",
    "precinct": "PRECINCT",
    "victim_death": "STATISTICAL_MURDER_FLAG",
}

RAW_TO_CANONICAL = {
    **{raw: name for name, raw in SCALAR_RAW_COLUMNS.items()},
    **{spec.raw_column: name for name, spec in FIELD_SPECS.items()},
}

# Column order of the normalized incident table
CANONICAL_COLUMNS = [
    "incident_key",
    "occur_date",
    "occur_time",
    "occur_datetime",
    "boro",
    "loc_of_occur",
    "precinct",
    "jurisdiction",
    "loc_classification",
    "location_desc",
    "victim_death",
    "perp_age",
    "perp_sex",
    "perp_race",
    "victim_age",
    "victim_sex",
    "victim_race",
]

TRUE_TOKENS = frozenset({"TRUE", "Y", "YES", "1"})
FALSE_TOKENS = frozenset({"FALSE", "N", "NO", "0"})


def get_field_spec(name: str) -> FieldSpec:
    """Get the enumeration for a categorical field by canonical name."""
    if name not in FIELD_SPECS:
        raise KeyError(f"Unknown categorical field: {name}. Available: {list(FIELD_SPECS)}")
    return FIELD_SPECS[name]


def with_extra_sentinels(
    extra: Optional[Mapping[str, Iterable[str]]] = None,
) -> Dict[str, FieldSpec]:
    """
    Return field specs with additional sentinel tokens per field.

    Args:
        extra: canonical field name -> raw tokens to treat as unknown
               (typically `normalize.extra_sentinels` from params.yml)
    """
    if not extra:
        return dict(FIELD_SPECS)

    specs = dict(FIELD_SPECS)
    for name, tokens in extra.items():
        spec = get_field_spec(name)
        added = frozenset(str(t).strip().upper() for t in tokens)
        specs[name] = FieldSpec(
            name=spec.name,
            raw_column=spec.raw_column,
            categories=spec.categories,
            ordered=spec.ordered,
            aliases=spec.aliases,
            sentinels=spec.sentinels | added,
        )
    return specs

"""
Shared fixtures: small raw NYPD tables built in memory.

Raw fixtures hold strings only, exactly as read_incidents_csv returns them.
"""

import itertools

import matplotlib
import pandas as pd
import pytest

matplotlib.use("Agg")

from shooting_report.categories import AGE_GROUPS, BOROUGHS, RACES, SEXES
from shooting_report.normalize import normalize_incidents

RAW_DEFAULTS = {
    "INCIDENT_KEY": "0",
    "OCCUR_DATE": "01/15/2022",
    "OCCUR_TIME": "21:30:00",
    "BORO": "BROOKLYN",
    "LOC_OF_OCCUR_DESC": "OUTSIDE",
    "PRECINCT": "73",
    "JURISDICTION_CODE": "0",
    "LOC_CLASSFCTN_DESC": "STREET",
    "LOCATION_DESC": "(null)",
    "STATISTICAL_MURDER_FLAG": "false",
    "PERP_AGE_GROUP": "25-44",
    "PERP_SEX": "M",
    "PERP_RACE": "BLACK",
    "VIC_AGE_GROUP": "25-44",
    "VIC_SEX": "M",
    "VIC_RACE": "BLACK",
}


def _raw_frame(rows):
    frame = pd.DataFrame([{**RAW_DEFAULTS, **row} for row in rows], columns=list(RAW_DEFAULTS))
    frame["INCIDENT_KEY"] = [str(100000 + i) for i in range(len(frame))]
    return frame


@pytest.fixture
def make_raw():
    """Factory: list of per-row overrides -> raw string table."""
    return _raw_frame


@pytest.fixture
def raw_incidents():
    """
    Two incidents per (victim_age, victim_sex, boro) combination plus six
    rows with unknown perpetrator fields.

    perp_race cycles through three races so no predictor separates classes.
    Victims 65+ are always fatalities.
    """
    rows = []
    combos = itertools.product(AGE_GROUPS, SEXES, BOROUGHS)
    for i, (age, sex, boro) in enumerate(combos):
        for r in range(2):
            k = 2 * i + r
            rows.append({
                "OCCUR_DATE": f"{(k % 12) + 1:02d}/{(k % 27) + 1:02d}/{2019 + k % 4}",
                "OCCUR_TIME": f"{k % 24:02d}:{(7 * k) % 60:02d}:00",
                "BORO": boro,
                "PRECINCT": str(40 + k % 80),
                "STATISTICAL_MURDER_FLAG": "true" if age == "65+" else "false",
                "PERP_AGE_GROUP": AGE_GROUPS[(k + 1) % 5],
                "PERP_SEX": SEXES[k % 2],
                "PERP_RACE": RACES[2 + k % 3],
                "VIC_AGE_GROUP": age,
                "VIC_SEX": sex,
                "VIC_RACE": RACES[2 + (k // 2) % 4],
            })

    for age in ("1020", "224", "", "(null)", "UNKNOWN", "940"):
        rows.append({
            "PERP_AGE_GROUP": age,
            "PERP_SEX": "(null)",
            "PERP_RACE": "(null)",
            "VIC_AGE_GROUP": "18-24",
        })

    return _raw_frame(rows)


@pytest.fixture
def incidents(raw_incidents):
    """Normalized version of raw_incidents."""
    return normalize_incidents(raw_incidents)


@pytest.fixture
def report_config():
    """Report configuration that touches every stage."""
    return {
        "source": {"url": "https://example.invalid/rows.csv", "filename": "incidents.csv"},
        "normalize": {"extra_sentinels": {}},
        "aggregations": {
            "fatality_rate_by": ["victim_age", "boro"],
            "count_by": ["boro", "perp_race"],
            "period_freq": "year",
            "night_share_by": ["boro"],
        },
        "nighttime": {"start_hour": 20, "end_hour": 6},
        "model": {
            "outcome": "perp_race",
            "predictors": ["victim_age", "victim_sex", "boro"],
            "maxiter": 100,
            "tol": 1e-8,
        },
        "bias": {
            "audits": [
                {"missing": "perp_age", "by": ["victim_sex", "victim_age"]},
                {"missing": "perp_race", "by": ["boro", "victim_sex", "victim_age"]},
            ],
        },
    }

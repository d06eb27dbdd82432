"""
Scoring of the full predictor grid and comparison with observed data.

- build_prediction_grid: every combination of predictor categories, in
  enumeration order (first predictor varies slowest)
- score_grid: class and probability predictions as a PredictionResult with
  explicit named fields
- compare_class_distribution / detect_class_collapse: predicted-class mix on
  the grid vs the observed class mix of complete cases
- compare_probabilities: predicted probability vs observed share for every
  predictor combination and class

A model that predicts only a few classes over the whole grid is reported as
a ClassCollapse; it is never corrected.
"""

import itertools
from dataclasses import dataclass
from typing import List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from shooting_report.categories import FIELD_SPECS, FieldSpec
from shooting_report.model import MultinomialModel, complete_cases

PROBABILITY_PREFIX = "prob_"


def build_prediction_grid(
    predictors: Sequence[str],
    specs: Optional[Mapping[str, FieldSpec]] = None,
) -> pd.DataFrame:
    """
    Full cross product of the predictors' enumerations.

    Returns:
        DataFrame with one categorical column per predictor and
        prod(len(categories)) rows
    """
    specs = specs or FIELD_SPECS
    predictors = list(predictors)
    rows = list(itertools.product(*(specs[p].categories for p in predictors)))
    grid = pd.DataFrame(rows, columns=predictors)
    for name in predictors:
        grid[name] = grid[name].astype(specs[name].dtype)
    return grid


@dataclass
class PredictionResult:
    """Predictions for a grid of predictor combinations."""
    outcome: str
    predictors: Tuple[str, ...]
    grid: pd.DataFrame
    predicted_class: pd.Series
    probabilities: pd.DataFrame

    @property
    def classes(self) -> List[str]:
        return list(self.probabilities.columns)

    def to_frame(self) -> pd.DataFrame:
        """Grid columns, predicted_class, and one prob_<class> column per class."""
        out = self.grid.copy()
        out["predicted_class"] = self.predicted_class
        probs = self.probabilities.add_prefix(PROBABILITY_PREFIX)
        return pd.concat([out, probs], axis=1)


def score_grid(
    model: MultinomialModel,
    grid: Optional[pd.DataFrame] = None,
) -> PredictionResult:
    """Score a grid (default: the model's full predictor grid) with both prediction kinds."""
    if grid is None:
        grid = build_prediction_grid(model.predictors, model.specs)
    grid = grid.reset_index(drop=True)
    return PredictionResult(
        outcome=model.outcome,
        predictors=tuple(model.predictors),
        grid=grid,
        predicted_class=model.predict(grid, kind="class"),
        probabilities=model.predict(grid, kind="probs"),
    )


# =============================================================================
# Comparison with Observed Data
# =============================================================================

def compare_class_distribution(result: PredictionResult, df: pd.DataFrame) -> pd.DataFrame:
    """
    Observed vs predicted class distribution.

    Observed counts come from complete cases (the training population);
    predicted counts are over grid cells, each weighted equally.

    Returns:
        DataFrame with class, observed_count, observed_share, predicted_count,
        predicted_share, mean_probability (one row per outcome class)
    """
    complete = complete_cases(df, result.outcome, result.predictors)
    classes = result.classes

    observed = complete[result.outcome].astype(object).value_counts().reindex(classes, fill_value=0)
    predicted = result.predicted_class.astype(object).value_counts().reindex(classes, fill_value=0)

    n_observed = int(observed.sum())
    n_grid = int(predicted.sum())

    out = pd.DataFrame({
        "class": classes,
        "observed_count": observed.to_numpy(dtype=int),
        "predicted_count": predicted.to_numpy(dtype=int),
        "mean_probability": result.probabilities[classes].mean(axis=0).to_numpy(),
    })
    out["observed_share"] = out["observed_count"] / n_observed if n_observed else 0.0
    out["predicted_share"] = out["predicted_count"] / n_grid if n_grid else 0.0
    return out[[
        "class", "observed_count", "observed_share",
        "predicted_count", "predicted_share", "mean_probability",
    ]]


@dataclass
class ClassCollapse:
    """How many observed classes the model actually predicts over the grid."""
    observed_classes: Tuple[str, ...]
    predicted_classes: Tuple[str, ...]
    never_predicted: Tuple[str, ...]
    never_predicted_share: float
    collapsed: bool

    def to_dict(self) -> dict:
        return {
            "observed_classes": list(self.observed_classes),
            "predicted_classes": list(self.predicted_classes),
            "never_predicted": list(self.never_predicted),
            "never_predicted_share": self.never_predicted_share,
            "collapsed": self.collapsed,
        }


def detect_class_collapse(result: PredictionResult, df: pd.DataFrame) -> ClassCollapse:
    """
    Flag observed classes that are never the predicted class anywhere on the grid.

    never_predicted_share is the observed share of complete cases that
    belong to those classes.
    """
    table = compare_class_distribution(result, df)
    observed = table[table["observed_count"] > 0]
    predicted = table[table["predicted_count"] > 0]
    never = observed[observed["predicted_count"] == 0]

    return ClassCollapse(
        observed_classes=tuple(observed["class"]),
        predicted_classes=tuple(predicted["class"]),
        never_predicted=tuple(never["class"]),
        never_predicted_share=float(never["observed_share"].sum()),
        collapsed=len(never) > 0,
    )


def compare_probabilities(result: PredictionResult, df: pd.DataFrame) -> pd.DataFrame:
    """
    Predicted probability vs observed share per predictor combination and class.

    Returns:
        Long DataFrame with the predictor columns, class,
        predicted_probability, n_observed (complete cases in the
        combination), n_class, observed_share (NaN where n_observed is 0)
    """
    predictors = list(result.predictors)
    complete = complete_cases(df, result.outcome, predictors).astype(object)

    wide = pd.concat(
        [result.grid[predictors].astype(object), result.probabilities],
        axis=1,
    )
    wide["grid_row"] = np.arange(len(wide))
    long = wide.melt(
        id_vars=["grid_row", *predictors],
        var_name="class",
        value_name="predicted_probability",
    )

    totals = complete.groupby(predictors).size().rename("n_observed").reset_index()
    by_class = (
        complete.groupby([*predictors, result.outcome])
        .size()
        .rename("n_class")
        .reset_index()
        .rename(columns={result.outcome: "class"})
    )

    long = long.merge(totals, on=predictors, how="left")
    long = long.merge(by_class, on=[*predictors, "class"], how="left")
    long["n_observed"] = long["n_observed"].fillna(0).astype(int)
    long["n_class"] = long["n_class"].fillna(0).astype(int)
    long["observed_share"] = np.where(
        long["n_observed"] > 0,
        long["n_class"] / long["n_observed"].where(long["n_observed"] > 0, 1),
        np.nan,
    )

    class_order = {c: i for i, c in enumerate(result.classes)}
    long = (
        long.assign(class_order=long["class"].map(class_order))
        .sort_values(["grid_row", "class_order"])
        .drop(columns=["grid_row", "class_order"])
        .reset_index(drop=True)
    )
    for name in predictors:
        long[name] = long[name].astype(result.grid[name].dtype)

    return long[[
        *predictors, "class", "predicted_probability",
        "n_observed", "n_class", "observed_share",
    ]]

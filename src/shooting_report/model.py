"""
Multinomial logistic regression over categorical incident fields.

Predicts one categorical field (e.g. perp_race) from a tuple of categorical
predictors (e.g. victim_age, victim_sex, boro).

Training:
- Complete cases only (listwise deletion): outcome and every predictor known.
  The number of dropped rows is kept in the fit diagnostics.
- Indicator encoding: intercept + k-1 indicators per predictor, reference is
  the first category of the field's enumeration. The ordinal age fields use
  the same indicators. Training and prediction share one encoder.
- Maximum likelihood by Newton-Raphson (statsmodels MNLogit). Converged when
  no parameter moves by more than `tol` between iterations, capped at
  `maxiter` iterations. Hitting the cap is recorded, not raised.

Fit failures (ModelFitError) are distinct from fits that succeed but predict
few classes; see predict.detect_class_collapse for the latter.
"""

import warnings
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import statsmodels.api as sm

from shooting_report.categories import FIELD_SPECS, FieldSpec

DEFAULT_MAXITER = 100
DEFAULT_TOL = 1e-8


class ModelFitError(Exception):
    """Raised when a multinomial model cannot be fitted."""
    pass


class PredictionInputError(ValueError):
    """Raised when prediction input holds values outside a predictor's enumeration."""
    pass


# =============================================================================
# Encoding
# =============================================================================

def feature_names(predictors: Sequence[str], specs: Mapping[str, FieldSpec]) -> List[str]:
    """Design matrix column names: const, then field[category] indicators."""
    names = ["const"]
    for name in predictors:
        names.extend(f"{name}[{cat}]" for cat in specs[name].categories[1:])
    return names


def encode_predictors(
    frame: pd.DataFrame,
    predictors: Sequence[str],
    specs: Mapping[str, FieldSpec],
) -> np.ndarray:
    """
    Build the indicator design matrix for a predictor frame.

    Values may be strings or categoricals; they must be members of each
    predictor's enumeration.

    Raises:
        PredictionInputError: On a missing column, unknown value or any
            value outside the enumeration
    """
    missing = [p for p in predictors if p not in frame.columns]
    if missing:
        raise PredictionInputError(f"Prediction input lacks predictor columns: {missing}")

    blocks = [np.ones((len(frame), 1))]
    for name in predictors:
        spec = specs[name]
        codes = pd.Categorical(frame[name].astype(object), dtype=spec.dtype).codes
        bad = codes < 0
        if bad.any():
            bad_values = sorted({str(v) for v in frame[name].astype(object)[bad]})
            raise PredictionInputError(
                f"{name}: values outside {list(spec.categories)}: {bad_values[:5]}"
            )
        levels = np.arange(1, len(spec.categories))
        blocks.append((codes[:, None] == levels[None, :]).astype(float))

    return np.hstack(blocks)


def _softmax_with_reference(eta: np.ndarray) -> np.ndarray:
    """Class probabilities from linear predictors of the non-reference classes."""
    eta = np.column_stack([np.zeros(len(eta)), eta])
    eta = eta - eta.max(axis=1, keepdims=True)
    exp = np.exp(eta)
    return exp / exp.sum(axis=1, keepdims=True)


# =============================================================================
# Model
# =============================================================================

@dataclass
class FitDiagnostics:
    """Summary of a multinomial fit."""
    n_train: int
    n_dropped: int
    observed_classes: Tuple[str, ...]
    iterations: int
    converged: bool
    llf: float
    llnull: float
    pseudo_r2: float
    aic: float
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        d = asdict(self)
        d["observed_classes"] = list(self.observed_classes)
        return d


@dataclass
class MultinomialModel:
    """
    A fitted multinomial logistic regression.

    params has one row per design column (feature_names) and one column per
    observed class after the first (the first observed class is the
    reference with linear predictor 0).
    """
    outcome: str
    predictors: Tuple[str, ...]
    classes: Tuple[str, ...]
    observed_classes: Tuple[str, ...]
    params: np.ndarray
    feature_names: List[str]
    diagnostics: FitDiagnostics
    specs: Mapping[str, FieldSpec] = field(default_factory=lambda: FIELD_SPECS, repr=False)

    def coefficients(self) -> pd.DataFrame:
        """Coefficient table (design columns x non-reference observed classes)."""
        return pd.DataFrame(
            self.params,
            index=self.feature_names,
            columns=list(self.observed_classes[1:]),
        )

    def predict_proba(self, frame: pd.DataFrame) -> pd.DataFrame:
        """
        Per-class probabilities, one named column per outcome class.

        Classes never observed in training get probability 0.

        Raises:
            PredictionInputError: On out-of-domain predictor values
        """
        X = encode_predictors(frame, self.predictors, self.specs)
        observed = _softmax_with_reference(X @ self.params)

        probs = pd.DataFrame(0.0, index=frame.index, columns=list(self.classes))
        probs[list(self.observed_classes)] = observed
        return probs

    def predict_class(self, frame: pd.DataFrame) -> pd.Series:
        """Most probable class per row (ties go to the earlier class)."""
        probs = self.predict_proba(frame)
        labels = probs.columns[probs.to_numpy().argmax(axis=1)]
        return pd.Series(
            pd.Categorical(labels, dtype=self.specs[self.outcome].dtype),
            index=frame.index,
            name="predicted_class",
        )

    def predict(self, frame: pd.DataFrame, kind: str = "class"):
        """Dispatch to predict_class ("class") or predict_proba ("probs")."""
        if kind == "class":
            return self.predict_class(frame)
        if kind == "probs":
            return self.predict_proba(frame)
        raise ValueError(f"Unknown prediction kind: {kind} (expected 'class' or 'probs')")


# =============================================================================
# Fitting
# =============================================================================

def _null_loglike(counts: np.ndarray) -> float:
    """Log-likelihood of the intercept-only model (class shares)."""
    counts = counts[counts > 0].astype(float)
    return float((counts * np.log(counts / counts.sum())).sum())


def complete_cases(
    df: pd.DataFrame,
    outcome: str,
    predictors: Sequence[str],
) -> pd.DataFrame:
    """Rows where the outcome and every predictor are known."""
    return df[[outcome, *predictors]].dropna()


def fit_multinomial(
    df: pd.DataFrame,
    outcome: str,
    predictors: Sequence[str],
    maxiter: int = DEFAULT_MAXITER,
    tol: float = DEFAULT_TOL,
    specs: Optional[Mapping[str, FieldSpec]] = None,
    logger=None,
) -> MultinomialModel:
    """
    Fit a multinomial logistic regression on complete cases.

    Args:
        df: Normalized incident table
        outcome: Categorical outcome field
        predictors: Categorical predictor fields
        maxiter: Newton iteration cap
        tol: Parameter-change convergence tolerance
        specs: Field enumerations (default: FIELD_SPECS)
        logger: Optional JSONLLogger

    Returns:
        Fitted MultinomialModel

    Raises:
        ModelFitError: Empty training set, a predictor category with no
            training rows, fewer than two observed outcome classes, or a
            numerical failure
    """
    specs = specs or FIELD_SPECS
    predictors = tuple(predictors)

    unknown_fields = [f for f in (outcome, *predictors) if f not in specs]
    if unknown_fields:
        raise ModelFitError(f"Not categorical fields: {unknown_fields}")
    if outcome in predictors:
        raise ModelFitError(f"Outcome {outcome} cannot also be a predictor")
    absent = [f for f in (outcome, *predictors) if f not in df.columns]
    if absent:
        raise ModelFitError(f"Columns not in table: {absent}")

    train = complete_cases(df, outcome, predictors)
    n_dropped = len(df) - len(train)

    if len(train) == 0:
        raise ModelFitError(
            f"No complete cases for {outcome} ~ {' + '.join(predictors)} "
            f"({n_dropped} rows dropped)"
        )

    for name in predictors:
        spec = specs[name]
        counts = pd.Categorical(train[name].astype(object), dtype=spec.dtype).value_counts()
        empty = [str(c) for c, n in counts.items() if n == 0]
        if empty:
            raise ModelFitError(
                f"Predictor {name} has categories with no training rows: {empty}"
            )

    outcome_spec = specs[outcome]
    y_codes = pd.Categorical(train[outcome].astype(object), dtype=outcome_spec.dtype).codes
    class_counts = np.bincount(y_codes, minlength=len(outcome_spec.categories))
    observed_idx = np.flatnonzero(class_counts)
    if len(observed_idx) < 2:
        raise ModelFitError(
            f"Outcome {outcome} has {len(observed_idx)} observed class(es); need at least 2"
        )

    observed_classes = tuple(outcome_spec.categories[i] for i in observed_idx)
    # Re-index observed classes to 0..J-1 for MNLogit
    endog = np.searchsorted(observed_idx, y_codes)
    exog = encode_predictors(train, predictors, specs)
    names = feature_names(predictors, specs)

    if logger:
        logger.info(
            f"Fitting {outcome} ~ {' + '.join(predictors)}: "
            f"{len(train):,} complete cases, {n_dropped:,} dropped, "
            f"{len(observed_classes)} classes, {exog.shape[1]} design columns"
        )

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        try:
            result = sm.MNLogit(endog, exog).fit(
                method="newton", maxiter=maxiter, tol=tol, disp=False
            )
        except (np.linalg.LinAlgError, ValueError) as e:
            raise ModelFitError(f"Numerical failure fitting {outcome}: {e}") from e

    params = np.asarray(result.params, dtype=float)
    if params.ndim == 1:
        params = params.reshape(exog.shape[1], -1, order="F")
    if not np.all(np.isfinite(params)):
        raise ModelFitError(f"Non-finite coefficients fitting {outcome}")

    retvals = result.mle_retvals or {}
    llf = float(result.llf)
    llnull = _null_loglike(class_counts)
    k_params = params.size

    diagnostics = FitDiagnostics(
        n_train=int(len(train)),
        n_dropped=int(n_dropped),
        observed_classes=observed_classes,
        iterations=int(retvals.get("iterations", 0)),
        converged=bool(retvals.get("converged", False)),
        llf=llf,
        llnull=llnull,
        pseudo_r2=1.0 - llf / llnull if llnull != 0 else float("nan"),
        aic=-2.0 * llf + 2.0 * k_params,
        warnings=sorted({str(w.message) for w in caught}),
    )

    if logger:
        level = logger.info if diagnostics.converged else logger.warning
        level(
            f"Fit {'converged' if diagnostics.converged else 'did NOT converge'} "
            f"after {diagnostics.iterations} iterations "
            f"(llf={llf:.2f}, pseudo R2={diagnostics.pseudo_r2:.4f})"
        )

    return MultinomialModel(
        outcome=outcome,
        predictors=predictors,
        classes=tuple(outcome_spec.categories),
        observed_classes=observed_classes,
        params=params,
        feature_names=names,
        diagnostics=diagnostics,
        specs=specs,
    )


def fit_summary(model: MultinomialModel) -> Dict[str, object]:
    """Flat dictionary of a model's formula and diagnostics for logging."""
    return {
        "outcome": model.outcome,
        "predictors": list(model.predictors),
        **model.diagnostics.to_dict(),
    }

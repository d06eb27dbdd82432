"""
Tests for the multinomial model.

Coverage includes:
- Recovery of a deterministic outcome (probability mass on the right class)
- Complete-case training and dropped-row reporting
- Fit failures: empty training set, single class, unrepresented category
- Prediction input validation and both prediction kinds
- Unobserved outcome classes get probability 0
"""

import itertools

import numpy as np
import pandas as pd
import pytest

from shooting_report.categories import AGE_GROUPS, FIELD_SPECS, SEXES
from shooting_report.model import (
    ModelFitError,
    PredictionInputError,
    encode_predictors,
    feature_names,
    fit_multinomial,
)
from shooting_report.normalize import normalize_incidents


def _demographics(rows):
    """Normalized-style frame from dicts of canonical categorical fields."""
    df = pd.DataFrame(rows)
    for name in df.columns:
        df[name] = df[name].astype(FIELD_SPECS[name].dtype)
    return df


@pytest.fixture
def deterministic():
    """perp_age == victim_age exactly; victim_sex varies independently."""
    rows = [
        {"perp_age": age, "victim_age": age, "victim_sex": sex}
        for age, sex in itertools.product(AGE_GROUPS, SEXES)
        for _ in range(10)
    ]
    return _demographics(rows)


@pytest.fixture
def noisy():
    """perp_age follows victim_age in 6 of 10 rows; each other bracket once."""
    rows = []
    for age, sex in itertools.product(AGE_GROUPS, SEXES):
        others = [a for a in AGE_GROUPS if a != age]
        for r in range(10):
            rows.append({
                "perp_age": age if r < 6 else others[r - 6],
                "victim_age": age,
                "victim_sex": sex,
            })
    return _demographics(rows)


class TestEncoding:
    """Tests for the indicator encoder."""

    def test_design_columns(self):
        """Intercept plus k-1 indicators per predictor."""
        names = feature_names(["victim_age", "victim_sex"], FIELD_SPECS)
        assert names == [
            "const",
            "victim_age[18-24]", "victim_age[25-44]", "victim_age[45-64]", "victim_age[65+]",
            "victim_sex[F]",
        ]

    def test_reference_category_is_all_zero(self):
        """The first category of each predictor encodes as no indicator."""
        frame = pd.DataFrame({"victim_age": ["<18", "65+"], "victim_sex": ["M", "F"]})
        X = encode_predictors(frame, ["victim_age", "victim_sex"], FIELD_SPECS)
        np.testing.assert_array_equal(X[0], [1, 0, 0, 0, 0, 0])
        np.testing.assert_array_equal(X[1], [1, 0, 0, 0, 1, 1])

    def test_out_of_domain_raises(self):
        """Values outside the enumeration are rejected."""
        frame = pd.DataFrame({"victim_age": ["<18", "70-80"]})
        with pytest.raises(PredictionInputError, match="70-80"):
            encode_predictors(frame, ["victim_age"], FIELD_SPECS)


class TestFit:
    """Tests for fitting."""

    def test_recovers_deterministic_outcome(self, deterministic):
        """Probability mass concentrates on the class equal to victim_age."""
        model = fit_multinomial(deterministic, "perp_age", ["victim_age", "victim_sex"])
        grid = _demographics([
            {"victim_age": age, "victim_sex": sex}
            for age, sex in itertools.product(AGE_GROUPS, SEXES)
        ])

        predicted = model.predict(grid, kind="class")
        probs = model.predict(grid, kind="probs")

        assert predicted.astype(str).tolist() == grid["victim_age"].astype(str).tolist()
        for i, age in enumerate(grid["victim_age"].astype(str)):
            assert probs.iloc[i][age] > 0.95

    def test_noisy_fit_converges(self, noisy):
        """A fit with finite MLE converges and reports diagnostics."""
        model = fit_multinomial(noisy, "perp_age", ["victim_age", "victim_sex"])
        diag = model.diagnostics

        assert diag.converged
        assert 0 < diag.iterations <= 100
        assert diag.n_train == len(noisy)
        assert diag.n_dropped == 0
        assert diag.llf < 0
        assert diag.llnull < diag.llf
        assert 0 < diag.pseudo_r2 < 1
        assert diag.aic == pytest.approx(-2 * diag.llf + 2 * model.params.size)

        grid = _demographics([{"victim_age": "45-64", "victim_sex": "F"}])
        assert model.predict_class(grid).iloc[0] == "45-64"
        assert model.predict_proba(grid).iloc[0]["45-64"] == pytest.approx(0.6, abs=0.01)

    def test_probabilities_sum_to_one(self, noisy):
        model = fit_multinomial(noisy, "perp_age", ["victim_age", "victim_sex"])
        grid = _demographics([
            {"victim_age": age, "victim_sex": sex}
            for age, sex in itertools.product(AGE_GROUPS, SEXES)
        ])
        probs = model.predict_proba(grid)
        np.testing.assert_allclose(probs.sum(axis=1), 1.0)
        assert list(probs.columns) == list(AGE_GROUPS)

    def test_complete_cases_only(self, incidents):
        """Rows with any unknown model field are dropped and reported."""
        model = fit_multinomial(incidents, "perp_race", ["victim_age", "victim_sex", "boro"])
        assert model.diagnostics.n_dropped == 6
        assert model.diagnostics.n_train == len(incidents) - 6

    def test_unobserved_class_has_zero_probability(self, incidents):
        """Outcome classes absent from training get probability 0."""
        model = fit_multinomial(incidents, "perp_race", ["victim_age", "victim_sex", "boro"])
        probs = model.predict_proba(pd.DataFrame({
            "victim_age": ["18-24"], "victim_sex": ["M"], "boro": ["QUEENS"],
        }))

        assert set(model.observed_classes) == {"BLACK", "BLACK HISPANIC", "WHITE"}
        assert probs.iloc[0]["WHITE HISPANIC"] == 0.0
        assert probs.iloc[0]["AMERICAN INDIAN/ALASKAN NATIVE"] == 0.0
        assert probs.iloc[0].sum() == pytest.approx(1.0)

    def test_fit_does_not_modify_input(self, noisy):
        before = noisy.copy()
        fit_multinomial(noisy, "perp_age", ["victim_age", "victim_sex"])
        pd.testing.assert_frame_equal(noisy, before)


class TestFitFailures:
    """Tests for fits that must fail with ModelFitError."""

    def test_empty_training_set(self, make_raw):
        """No complete cases is a reported failure."""
        df = normalize_incidents(make_raw([{"PERP_AGE_GROUP": "(null)"}, {"PERP_AGE_GROUP": "1020"}]))
        with pytest.raises(ModelFitError, match="No complete cases"):
            fit_multinomial(df, "perp_age", ["victim_age"])

    def test_single_outcome_class(self, deterministic):
        """Fewer than two observed classes cannot be fitted."""
        df = deterministic.copy()
        df["perp_age"] = pd.Series(["25-44"] * len(df)).astype(FIELD_SPECS["perp_age"].dtype)
        with pytest.raises(ModelFitError, match="at least 2"):
            fit_multinomial(df, "perp_age", ["victim_age", "victim_sex"])

    def test_unrepresented_predictor_category(self, deterministic):
        """A predictor category with no training rows is unidentifiable."""
        df = deterministic[deterministic["victim_age"] != "65+"]
        with pytest.raises(ModelFitError, match="65\\+"):
            fit_multinomial(df, "perp_age", ["victim_sex", "victim_age"])

    def test_outcome_as_predictor(self, deterministic):
        with pytest.raises(ModelFitError):
            fit_multinomial(deterministic, "perp_age", ["perp_age"])


class TestPrediction:
    """Tests for prediction input validation and dispatch."""

    def test_unknown_predictor_value_raises(self, noisy):
        """An unknown (missing) predictor value is rejected, not coerced."""
        model = fit_multinomial(noisy, "perp_age", ["victim_age", "victim_sex"])
        frame = pd.DataFrame({"victim_age": ["<18"], "victim_sex": [None]})
        with pytest.raises(PredictionInputError):
            model.predict_proba(frame)

    def test_out_of_domain_value_raises(self, noisy):
        model = fit_multinomial(noisy, "perp_age", ["victim_age", "victim_sex"])
        frame = pd.DataFrame({"victim_age": ["<18"], "victim_sex": ["X"]})
        with pytest.raises(PredictionInputError):
            model.predict(frame, kind="class")

    def test_prediction_input_error_is_value_error(self):
        assert issubclass(PredictionInputError, ValueError)

    def test_bad_kind(self, noisy):
        model = fit_multinomial(noisy, "perp_age", ["victim_age", "victim_sex"])
        frame = pd.DataFrame({"victim_age": ["<18"], "victim_sex": ["M"]})
        with pytest.raises(ValueError, match="kind"):
            model.predict(frame, kind="link")

    def test_coefficient_table(self, noisy):
        """Coefficients are labelled by design column and non-reference class."""
        model = fit_multinomial(noisy, "perp_age", ["victim_age", "victim_sex"])
        coefs = model.coefficients()
        assert list(coefs.index) == model.feature_names
        assert list(coefs.columns) == list(AGE_GROUPS[1:])

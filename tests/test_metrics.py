"""Tests for classification and regression metrics and metric sets."""

import math

import numpy as np
import pandas as pd
import pytest

from tidy_learn import (
    SchemaMismatch,
    UndefinedMetric,
    accuracy,
    conf_mat,
    f_meas,
    mae,
    metric_set,
    precision,
    rmse,
    roc_auc,
    roc_curve,
    rsq,
    sens,
    spec,
)


def _factor(values, levels=("yes", "no")):
    return pd.Series(pd.Categorical(values, categories=list(levels)))


class TestClassMetrics:
    def setup_method(self):
        self.truth = _factor(["yes", "yes", "yes", "no", "no", "no", "no", "yes"])
        self.estimate = _factor(["yes", "no", "yes", "no", "yes", "no", "no", "yes"])

    def test_conf_mat_orientation(self):
        cm = conf_mat(self.truth, self.estimate)
        assert list(cm.index) == ["yes", "no"]
        assert cm.loc["yes", "yes"] == 3
        assert cm.loc["yes", "no"] == 1
        assert cm.loc["no", "yes"] == 1
        assert cm.loc["no", "no"] == 3

    def test_accuracy_is_correct_over_total(self):
        assert accuracy(self.truth, self.estimate) == pytest.approx(6 / 8)

    def test_first_level_is_the_event(self):
        assert sens(self.truth, self.estimate) == pytest.approx(3 / 4)
        assert spec(self.truth, self.estimate) == pytest.approx(3 / 4)
        assert precision(self.truth, self.estimate) == pytest.approx(3 / 4)
        assert f_meas(self.truth, self.estimate) == pytest.approx(3 / 4)

        flipped_truth = _factor(self.truth, levels=("no", "yes"))
        flipped_estimate = _factor(self.estimate, levels=("no", "yes"))
        assert sens(flipped_truth, flipped_estimate) == pytest.approx(3 / 4)

    def test_sens_undefined_without_events(self):
        truth = _factor(["no", "no", "no"])
        estimate = _factor(["no", "yes", "no"])
        with pytest.warns(UndefinedMetric):
            value = sens(truth, estimate)
        assert math.isnan(value)

    def test_precision_undefined_without_predicted_events(self):
        truth = _factor(["yes", "no"])
        estimate = _factor(["no", "no"])
        with pytest.warns(UndefinedMetric):
            assert math.isnan(precision(truth, estimate))

    def test_integer_levels(self):
        truth = _factor([1, 1, 0, 0], (1, 0))
        estimate = _factor([1, 0, 0, 0], (1, 0))
        assert conf_mat(truth, estimate).loc[1, 1] == 1
        assert accuracy(truth, estimate) == pytest.approx(0.75)
        assert sens(truth, estimate) == pytest.approx(0.5)

    def test_multiclass_macro_average(self):
        levels = ("a", "b", "c")
        truth = _factor(["a", "b", "c", "a", "b", "c"], levels)
        estimate = _factor(["a", "b", "c", "a", "b", "c"], levels)
        assert sens(truth, estimate) == 1.0


class TestRoc:
    def test_perfect_separation(self):
        truth = _factor(["yes", "yes", "no", "no"])
        prob = pd.Series([0.9, 0.8, 0.3, 0.1])
        assert roc_auc(truth, prob) == pytest.approx(1.0)

    def test_constant_probability(self):
        truth = _factor(["yes", "no", "yes", "no"])
        prob = pd.Series([0.5] * 4)
        assert roc_auc(truth, prob) == pytest.approx(0.5)

    def test_reversed_scores(self):
        truth = _factor(["yes", "yes", "no", "no"])
        prob = pd.Series([0.1, 0.2, 0.8, 0.9])
        assert roc_auc(truth, prob) == pytest.approx(0.0)

    def test_single_class_truth(self):
        truth = _factor(["yes", "yes"])
        with pytest.warns(UndefinedMetric):
            assert math.isnan(roc_auc(truth, pd.Series([0.2, 0.7])))

    def test_curve_points(self):
        truth = _factor(["yes", "yes", "no", "no"])
        curve = roc_curve(truth, pd.Series([0.9, 0.8, 0.3, 0.1]))
        assert list(curve.columns) == ["threshold", "specificity", "sensitivity"]
        assert curve["sensitivity"].iloc[0] == 0.0
        assert curve["specificity"].iloc[0] == 1.0
        assert curve["sensitivity"].iloc[-1] == 1.0
        assert curve["specificity"].iloc[-1] == 0.0
        assert curve["sensitivity"].is_monotonic_increasing

    def test_probability_frame(self):
        truth = _factor(["yes", "yes", "no", "no"])
        probs = pd.DataFrame({".pred_yes": [0.9, 0.6, 0.4, 0.2], ".pred_no": [0.1, 0.4, 0.6, 0.8]})
        assert roc_auc(truth, probs) == pytest.approx(1.0)


    def test_multiclass_macro_auc(self):
        truth = _factor(["a", "a", "b", "b", "c", "c"], ("a", "b", "c"))
        perfect = pd.DataFrame(
            {
                ".pred_a": [0.8, 0.7, 0.1, 0.1, 0.1, 0.2],
                ".pred_b": [0.1, 0.2, 0.8, 0.6, 0.1, 0.2],
                ".pred_c": [0.1, 0.1, 0.1, 0.3, 0.8, 0.6],
            }
        )
        assert roc_auc(truth, perfect) == pytest.approx(1.0)
        # Only class c is ranked backwards, so the mean is (1 + 1 + 0) / 3.
        reversed_c = perfect.assign(**{".pred_c": [0.9, 0.9, 0.9, 0.9, 0.0, 0.0]})
        assert roc_auc(truth, reversed_c) == pytest.approx(2 / 3)


class TestRegressionMetrics:
    def test_rmse_mae(self):
        truth = pd.Series([1.0, 2.0, 3.0, 4.0])
        estimate = pd.Series([1.0, 2.0, 3.0, 6.0])
        assert rmse(truth, estimate) == pytest.approx(1.0)
        assert mae(truth, estimate) == pytest.approx(0.5)

    def test_rsq(self):
        truth = pd.Series([1.0, 2.0, 3.0, 4.0])
        assert rsq(truth, truth) == pytest.approx(1.0)
        assert rsq(truth, pd.Series([2.5] * 4)) == pytest.approx(0.0)

    def test_rsq_constant_truth(self):
        with pytest.warns(UndefinedMetric):
            assert math.isnan(rsq(pd.Series([2.0, 2.0]), pd.Series([1.0, 3.0])))


class TestMetricSet:
    def test_scores_prediction_frame(self):
        data = pd.DataFrame(
            {
                "label": _factor(["yes", "yes", "no", "no"]),
                ".pred_class": _factor(["yes", "no", "no", "no"]),
                ".pred_yes": [0.9, 0.4, 0.3, 0.1],
                ".pred_no": [0.1, 0.6, 0.7, 0.9],
            }
        )
        scores = metric_set("accuracy", "sens", "roc_auc")(data, truth="label")
        assert list(scores["metric"]) == ["accuracy", "sens", "roc_auc"]
        assert list(scores["estimator"]) == ["binary"] * 3
        values = dict(zip(scores["metric"], scores["estimate"]))
        assert values["accuracy"] == pytest.approx(0.75)
        assert values["sens"] == pytest.approx(0.5)
        assert values["roc_auc"] == pytest.approx(1.0)

    def test_undefined_metric_noted(self):
        data = pd.DataFrame(
            {"label": _factor(["no", "no"]), ".pred_class": _factor(["no", "no"])}
        )
        scores = metric_set("accuracy", "sens")(data, truth="label")
        row = scores.set_index("metric").loc["sens"]
        assert np.isnan(row["estimate"])
        assert "undefined" in row["note"]

    def test_missing_probability_columns(self):
        data = pd.DataFrame({"label": _factor(["yes", "no"]), ".pred_class": _factor(["yes", "no"])})
        with pytest.raises(SchemaMismatch):
            metric_set("roc_auc")(data, truth="label")

    def test_cannot_mix_modes(self):
        with pytest.raises(ValueError):
            metric_set("accuracy", "rmse")

    def test_unknown_metric(self):
        with pytest.raises(ValueError):
            metric_set("bogus")

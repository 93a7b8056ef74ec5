from __future__ import annotations

"""
Classification and regression metrics over truth/estimate columns, plus metric
sets that score a prediction frame in one call.

Outcome levels come from the truth column's categories; the first level is
the event of interest for every two-class metric.
"""

import logging
import math
import warnings
from dataclasses import dataclass
from typing import Callable, Sequence, Union

import numpy as np
import pandas as pd
from sklearn import metrics

from .constants import (
    CLASSIFICATION,
    DEFAULT_CLASSIFICATION_METRICS,
    DEFAULT_REGRESSION_METRICS,
    PRED_CLASS,
    PRED_NUMERIC,
    PRED_PROB_PREFIX,
)
from .errors import SchemaMismatch, UndefinedMetric

logger = logging.getLogger(__name__)

MAXIMIZE = "maximize"
MINIMIZE = "minimize"


def prob_column(level) -> str:
    return f"{PRED_PROB_PREFIX}{level}"


def _levels(truth: pd.Series) -> list:
    if isinstance(truth.dtype, pd.CategoricalDtype):
        return list(truth.cat.categories)
    return sorted(pd.unique(truth.dropna()).tolist(), key=str)


def _undefined(name: str, reason: str) -> float:
    warnings.warn(f"{name} is undefined: {reason}", UndefinedMetric, stacklevel=3)
    return float("nan")


def conf_mat(truth: pd.Series, estimate: pd.Series) -> pd.DataFrame:
    """Counts of truth (rows) x prediction (columns), in level order."""
    levels = _levels(truth)
    counts = metrics.confusion_matrix(
        np.asarray(truth), np.asarray(estimate), labels=levels
    )
    return pd.DataFrame(
        counts,
        index=pd.Index(levels, name="truth"),
        columns=pd.Index(levels, name="prediction"),
    )


def _one_vs_rest(cm: np.ndarray, k: int) -> tuple[int, int, int, int]:
    tp = int(cm[k, k])
    fn = int(cm[k, :].sum()) - tp
    fp = int(cm[:, k].sum()) - tp
    tn = int(cm.sum()) - tp - fn - fp
    return tp, fn, fp, tn


def _class_metric(name: str, truth, estimate, ratio: Callable[[int, int, int, int], tuple[int, int]]) -> float:
    """
    Binary: evaluated for the first level. Multiclass: macro average over the
    one-vs-rest tables, undefined if any class is.
    """
    cm = conf_mat(truth, estimate).to_numpy()
    classes = [0] if len(cm) == 2 else range(len(cm))
    values = []
    for k in classes:
        num, den = ratio(*_one_vs_rest(cm, k))
        if den == 0:
            return _undefined(name, "zero denominator")
        values.append(num / den)
    return float(np.mean(values))


def accuracy(truth: pd.Series, estimate: pd.Series) -> float:
    if len(truth) == 0:
        return _undefined("accuracy", "no rows")
    return float(metrics.accuracy_score(np.asarray(truth), np.asarray(estimate)))


def sens(truth: pd.Series, estimate: pd.Series) -> float:
    """TP / (TP + FN)."""
    return _class_metric("sens", truth, estimate, lambda tp, fn, fp, tn: (tp, tp + fn))


def spec(truth: pd.Series, estimate: pd.Series) -> float:
    """TN / (TN + FP)."""
    return _class_metric("spec", truth, estimate, lambda tp, fn, fp, tn: (tn, tn + fp))


def precision(truth: pd.Series, estimate: pd.Series) -> float:
    return _class_metric("precision", truth, estimate, lambda tp, fn, fp, tn: (tp, tp + fp))


def f_meas(truth: pd.Series, estimate: pd.Series) -> float:
    return _class_metric("f_meas", truth, estimate, lambda tp, fn, fp, tn: (2 * tp, 2 * tp + fp + fn))


def roc_curve(truth: pd.Series, prob: pd.Series) -> pd.DataFrame:
    """
    One point per distinct threshold, highest first, starting at (0, 0).

    `prob` is the probability of the first level.
    """
    event = truth == _levels(truth)[0]
    if event.all() or not event.any():
        _undefined("roc_curve", "truth has a single class")
        return pd.DataFrame(columns=["threshold", "specificity", "sensitivity"], dtype=float)
    fpr, tpr, thresholds = metrics.roc_curve(
        event.to_numpy(), np.asarray(prob, dtype=float), drop_intermediate=False
    )
    return pd.DataFrame({"threshold": thresholds, "specificity": 1.0 - fpr, "sensitivity": tpr})


def _binary_auc(event: np.ndarray, prob: np.ndarray) -> float:
    if event.all() or not event.any():
        return _undefined("roc_auc", "truth has a single class")
    fpr, tpr, _ = metrics.roc_curve(event, prob, drop_intermediate=False)
    return float(metrics.auc(fpr, tpr))


def roc_auc(truth: pd.Series, prob: Union[pd.Series, pd.DataFrame]) -> float:
    """
    Trapezoidal area under the ROC curve.

    `prob` is either the first level's probability or a frame with one column
    per level (in level order); with more than two levels the result is the
    macro average of the one-vs-rest areas.
    """
    levels = _levels(truth)
    if isinstance(prob, pd.DataFrame):
        if len(levels) > 2:
            aucs = [
                _binary_auc((truth == level).to_numpy(), prob.iloc[:, k].to_numpy(dtype=float))
                for k, level in enumerate(levels)
            ]
            return float(np.mean(aucs))
        prob = prob.iloc[:, 0]
    return _binary_auc((truth == levels[0]).to_numpy(), np.asarray(prob, dtype=float))


def rmse(truth: pd.Series, estimate: pd.Series) -> float:
    if len(truth) == 0:
        return _undefined("rmse", "no rows")
    return math.sqrt(metrics.mean_squared_error(truth, estimate))


def rsq(truth: pd.Series, estimate: pd.Series) -> float:
    """1 - SS_res / SS_tot."""
    y = np.asarray(truth, dtype=float)
    ss_tot = float(((y - y.mean()) ** 2).sum()) if len(y) else 0.0
    if ss_tot == 0:
        return _undefined("rsq", "truth has zero variance")
    return float(metrics.r2_score(y, np.asarray(estimate, dtype=float)))


def mae(truth: pd.Series, estimate: pd.Series) -> float:
    if len(truth) == 0:
        return _undefined("mae", "no rows")
    return float(metrics.mean_absolute_error(truth, estimate))


@dataclass(frozen=True)
class Metric:
    name: str
    kind: str  # "class", "prob" or "numeric"
    direction: str
    fn: Callable

    def __call__(self, truth, estimate) -> float:
        return self.fn(truth, estimate)


METRICS = {
    m.name: m
    for m in (
        Metric("accuracy", "class", MAXIMIZE, accuracy),
        Metric("sens", "class", MAXIMIZE, sens),
        Metric("spec", "class", MAXIMIZE, spec),
        Metric("precision", "class", MAXIMIZE, precision),
        Metric("f_meas", "class", MAXIMIZE, f_meas),
        Metric("roc_auc", "prob", MAXIMIZE, roc_auc),
        Metric("rmse", "numeric", MINIMIZE, rmse),
        Metric("rsq", "numeric", MAXIMIZE, rsq),
        Metric("mae", "numeric", MINIMIZE, mae),
    )
}


def get_metric(metric: Union[str, Callable, Metric]) -> Metric:
    if isinstance(metric, Metric):
        return metric
    name = metric if isinstance(metric, str) else getattr(metric, "__name__", None)
    if name not in METRICS:
        raise ValueError(f"Unknown metric '{name}'. Choose from {sorted(METRICS)}")
    return METRICS[name]


class MetricSet:
    """
    Several metrics scored together on one prediction frame.

    Class metrics read `.pred_class`, probability metrics the `.pred_<level>`
    columns, numeric metrics `.pred`. A metric that comes out undefined is
    reported as NaN with the reason in the `note` column.
    """

    def __init__(self, metrics: Sequence[Union[str, Callable, Metric]]):
        self.metrics = [get_metric(m) for m in metrics]
        if not self.metrics:
            raise ValueError("A metric set needs at least one metric")
        kinds = {m.kind for m in self.metrics}
        if "numeric" in kinds and len(kinds) > 1:
            raise ValueError("Cannot mix regression and classification metrics in one set")

    @property
    def names(self) -> list[str]:
        return [m.name for m in self.metrics]

    @property
    def needs_probabilities(self) -> bool:
        return any(m.kind == "prob" for m in self.metrics)

    def direction(self, name: str) -> str:
        return get_metric(name).direction

    def __call__(self, data: pd.DataFrame, truth: str, estimate: str | None = None) -> pd.DataFrame:
        truth_values = data[truth]
        rows = []
        for metric in self.metrics:
            if metric.kind == "numeric":
                estimator = "standard"
                args = (truth_values, data[estimate or PRED_NUMERIC])
            else:
                levels = _levels(truth_values)
                estimator = "binary" if len(levels) <= 2 else "macro"
                if metric.kind == "class":
                    args = (truth_values, data[estimate or PRED_CLASS])
                else:
                    columns = [prob_column(level) for level in levels]
                    missing = [c for c in columns if c not in data.columns]
                    if missing:
                        raise SchemaMismatch(f"{metric.name} needs probability columns {missing}")
                    args = (truth_values, data[columns])

            with warnings.catch_warnings(record=True) as caught:
                warnings.simplefilter("always", UndefinedMetric)
                value = metric(*args)
            notes = [str(w.message) for w in caught if issubclass(w.category, UndefinedMetric)]
            if notes:
                logger.debug("Metric %s: %s", metric.name, "; ".join(notes))
            rows.append(
                {
                    "metric": metric.name,
                    "estimator": estimator,
                    "estimate": value,
                    "note": "; ".join(notes) or None,
                }
            )
        return pd.DataFrame(rows, columns=["metric", "estimator", "estimate", "note"])

    def __repr__(self) -> str:
        return f"MetricSet({', '.join(self.names)})"


def metric_set(*metrics: Union[str, Callable, Metric]) -> MetricSet:
    return MetricSet(metrics)


def default_metric_set(mode: str) -> MetricSet:
    """Accuracy and ROC AUC for classifiers, RMSE and R^2 for regression."""
    names = DEFAULT_CLASSIFICATION_METRICS if mode == CLASSIFICATION else DEFAULT_REGRESSION_METRICS
    return MetricSet(names)

"""
Resampling: v-fold cross-validation and bootstraps, and refitting a workflow
on every fold.

Each fold is evaluated with a fresh fit on its analysis rows only. Folds are
independent jobs and run in a joblib worker pool when `n_jobs != 1`.
"""

from __future__ import annotations

import logging
import math
import warnings
from dataclasses import dataclass, field
from typing import Iterator, Sequence

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from sklearn.model_selection import KFold, RepeatedKFold, RepeatedStratifiedKFold, StratifiedKFold

from .constants import CLASSIFICATION, DEFAULT_BOOTSTRAPS, DEFAULT_FOLDS, FOLD_COLUMN, NUMERIC
from .data_prep import strata_groups
from .dataset import Dataset
from .errors import DataError, InvalidFoldCount, SchemaMismatch, UnknownCategory
from .metrics import MetricSet, default_metric_set
from .workflow import Workflow, evaluate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Fold:
    """Row positions used to fit (train) and to score (validation)."""

    id: str
    train: np.ndarray
    validation: np.ndarray


class Resamples:
    def __init__(self, data: Dataset, folds: Sequence[Fold], method: str):
        self.data = data
        self.folds = list(folds)
        self.method = method

    def analysis(self, fold: Fold) -> Dataset:
        return self.data.subset(fold.train)

    def assessment(self, fold: Fold) -> Dataset:
        return self.data.subset(fold.validation)

    def __iter__(self) -> Iterator[Fold]:
        return iter(self.folds)

    def __len__(self) -> int:
        return len(self.folds)

    def __getitem__(self, i: int) -> Fold:
        return self.folds[i]

    def __repr__(self) -> str:
        return f"Resamples({self.method}, n={len(self)})"


def vfold_cv(
    dataset: Dataset,
    v: int = DEFAULT_FOLDS,
    repeats: int = 1,
    strata: str | None = None,
    seed: int | None = None,
) -> Resamples:
    """
    Shuffle rows and split them into v groups; group i is fold i's validation set.

    With `strata`, the groups are drawn stratum by stratum, so every fold gets
    each class in proportion (per-class counts differ by at most one row).
    """
    n = len(dataset)
    if v < 2 or v > n:
        raise InvalidFoldCount(f"v must be between 2 and the number of rows ({n}), got {v}")
    if repeats < 1:
        raise InvalidFoldCount(f"repeats must be at least 1, got {repeats}")

    labels = None
    if strata is None:
        splitter = (
            KFold(n_splits=v, shuffle=True, random_state=seed)
            if repeats == 1
            else RepeatedKFold(n_splits=v, n_repeats=repeats, random_state=seed)
        )
    else:
        groups = strata_groups(dataset, strata)
        if max(len(rows) for rows in groups) < v:
            raise InvalidFoldCount(f"v={v} is larger than every '{strata}' stratum")
        labels = np.empty(n, dtype=int)
        for code, rows in enumerate(groups):
            labels[rows] = code
        splitter = (
            StratifiedKFold(n_splits=v, shuffle=True, random_state=seed)
            if repeats == 1
            else RepeatedStratifiedKFold(n_splits=v, n_repeats=repeats, random_state=seed)
        )

    width = len(str(v))
    folds = []
    for k, (train, validation) in enumerate(splitter.split(np.zeros((n, 1)), labels)):
        r, i = divmod(k, v)
        name = f"Fold{i + 1:0{width}d}"
        if repeats > 1:
            name = f"Repeat{r + 1}/{name}"
        folds.append(Fold(name, np.sort(train), np.sort(validation)))
    return Resamples(dataset, folds, f"{v}-fold cross-validation" + (f" x{repeats}" if repeats > 1 else ""))


def bootstraps(
    dataset: Dataset,
    times: int = DEFAULT_BOOTSTRAPS,
    strata: str | None = None,
    seed: int | None = None,
) -> Resamples:
    """Sample N rows with replacement; the out-of-bag rows form the validation set."""
    if times < 1:
        raise InvalidFoldCount(f"times must be at least 1, got {times}")
    n = len(dataset)
    groups = strata_groups(dataset, strata) if strata is not None else [np.arange(n)]
    rng = np.random.default_rng(seed)
    width = len(str(times))
    folds = []
    for b in range(times):
        train = np.sort(np.concatenate([rng.choice(rows, size=len(rows), replace=True) for rows in groups]))
        validation = np.setdiff1d(np.arange(n), train)
        folds.append(Fold(f"Bootstrap{b + 1:0{width}d}", train, validation))
    return Resamples(dataset, folds, "bootstrap sampling")


def resolve_metrics(workflow: Workflow, metrics) -> MetricSet:
    if metrics is None:
        return default_metric_set(workflow.mode)
    if not isinstance(metrics, MetricSet):
        metrics = MetricSet(metrics)
    regression_metrics = all(m.kind == NUMERIC for m in metrics.metrics)
    if regression_metrics == (workflow.mode == CLASSIFICATION):
        raise ValueError(f"{metrics!r} does not fit a {workflow.mode} workflow")
    return metrics


def check_prediction_columns(data: Dataset, extra: Sequence[str]):
    """Saved predictions carry the source columns; `extra` must not clash with them."""
    clash = sorted(set(extra) & set(data.columns))
    if clash:
        raise SchemaMismatch(f"Dataset columns {clash} clash with resampling result columns")


@dataclass
class FoldResult:
    id: str
    metrics: pd.DataFrame | None = None
    predictions: pd.DataFrame | None = None
    notes: list = field(default_factory=list)


def evaluate_fold(
    workflow: Workflow,
    data: Dataset,
    fold: Fold,
    metrics: MetricSet,
    save_pred: bool = False,
) -> FoldResult:
    """
    Fit on the fold's training rows and score its validation rows.

    Data errors are recorded as notes instead of raised, so one bad fold leaves
    the others usable.
    """
    result = FoldResult(fold.id)
    scores = predictions = None
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always", UnknownCategory)
        try:
            fitted = workflow.fit(data.subset(fold.train))
            scores, predictions = evaluate(fitted, data.subset(fold.validation), metrics)
        except DataError as exc:
            logger.warning("%s failed: %s", fold.id, exc)
            result.notes.append({FOLD_COLUMN: fold.id, "type": type(exc).__name__, "message": str(exc)})

    for w in caught:
        if issubclass(w.category, UnknownCategory):
            result.notes.append({FOLD_COLUMN: fold.id, "type": "UnknownCategory", "message": str(w.message)})
        else:
            warnings.warn(w.message, w.category)

    if scores is None:
        return result
    scores.insert(0, FOLD_COLUMN, fold.id)
    result.metrics = scores
    if save_pred:
        predictions.insert(0, FOLD_COLUMN, fold.id)
        result.predictions = predictions.reset_index(drop=True)
    return result


def summarize_metrics(metrics: pd.DataFrame, by: Sequence[str] = ()) -> pd.DataFrame:
    """mean / min / median / max / std_err / n of each metric across folds."""
    keys = [*by, "metric", "estimator"]
    if metrics.empty:
        return pd.DataFrame(columns=[*keys, "mean", "min", "median", "max", "std_err", "n"])

    def _std_err(values: pd.Series) -> float:
        n = values.count()
        return values.std(ddof=1) / math.sqrt(n) if n > 1 else float("nan")

    summary = (
        metrics.groupby(keys, sort=False, dropna=False)["estimate"]
        .agg(
            mean="mean",
            min="min",
            median="median",
            max="max",
            std_err=_std_err,
            n="count",
        )
        .reset_index()
    )
    summary["n"] = summary["n"].astype(int)
    return summary


class ResampleResults:
    def __init__(self, resamples: Resamples, results: Sequence[FoldResult], metric_set: MetricSet):
        self.resamples = resamples
        self.metric_set = metric_set
        frames = [r.metrics for r in results if r.metrics is not None]
        self.metrics = (
            pd.concat(frames, ignore_index=True)
            if frames
            else pd.DataFrame(columns=[FOLD_COLUMN, "metric", "estimator", "estimate", "note"])
        )
        preds = [r.predictions for r in results if r.predictions is not None]
        self.predictions = pd.concat(preds, ignore_index=True) if preds else None
        self.notes = pd.DataFrame(
            [note for r in results for note in r.notes], columns=[FOLD_COLUMN, "type", "message"]
        )

    def collect_metrics(self, summarize: bool = True) -> pd.DataFrame:
        if not summarize:
            return self.metrics.copy()
        return summarize_metrics(self.metrics)

    def collect_predictions(self) -> pd.DataFrame:
        if self.predictions is None:
            raise ValueError("Predictions were not saved; rerun with save_pred=True")
        return self.predictions.copy()

    def __repr__(self) -> str:
        return f"ResampleResults({self.resamples!r}, metrics={self.metric_set.names}, notes={len(self.notes)})"


def fit_resamples(
    workflow: Workflow,
    resamples: Resamples,
    metrics=None,
    save_pred: bool = False,
    n_jobs: int = 1,
) -> ResampleResults:
    """Refit `workflow` on every fold and score each validation set."""
    metric_set = resolve_metrics(workflow, metrics)
    if save_pred:
        check_prediction_columns(resamples.data, [FOLD_COLUMN])
    results = Parallel(n_jobs=n_jobs)(
        delayed(evaluate_fold)(workflow, resamples.data, fold, metric_set, save_pred)
        for fold in resamples
    )
    out = ResampleResults(resamples, results, metric_set)
    logger.info("Resampled %d folds, %d note(s)", len(resamples), len(out.notes))
    return out

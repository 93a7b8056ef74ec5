"""
Grid search over tune() placeholders.

Every (grid point, fold) pair is an independent job: the workflow gets the grid
point's values substituted, is refitted on the fold's training rows and scored
on its validation rows. `iter_tune_grid` hands back each grid point as soon as
all of its folds are done, so a caller can stop early and keep what finished.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterator, Mapping, Sequence, Union

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from scipy import stats
from sklearn.model_selection import ParameterGrid, ParameterSampler

from .constants import FOLD_COLUMN
from .dataset import Dataset
from .errors import UnresolvedParameter
from .metrics import MAXIMIZE, MINIMIZE, MetricSet, get_metric
from .resample import (
    Fold,
    FoldResult,
    Resamples,
    check_prediction_columns,
    evaluate_fold,
    resolve_metrics,
    summarize_metrics,
)
from .workflow import Workflow

logger = logging.getLogger(__name__)

CONFIG_COLUMN = ".config"

Grid = Union[pd.DataFrame, Sequence[Mapping[str, Any]], Mapping[str, Sequence]]


def _is_range(spec) -> bool:
    return isinstance(spec, tuple) and len(spec) == 2 and all(isinstance(v, (int, float)) for v in spec)


def _is_int_range(spec) -> bool:
    return all(isinstance(v, (int, np.integer)) and not isinstance(v, bool) for v in spec)


def grid_regular(
    ranges: Mapping[str, Any],
    levels: int = 3,
    log_scale: Sequence[str] = (),
) -> pd.DataFrame:
    """
    Every combination of `levels` evenly spaced values per parameter.

    A (low, high) tuple is a range (log10-spaced for names in `log_scale`,
    whole numbers when both ends are ints); a list is used as given.
    """
    values = {}
    for name, spec in ranges.items():
        if not _is_range(spec):
            values[name] = list(spec)
        elif name in log_scale:
            values[name] = list(np.logspace(np.log10(spec[0]), np.log10(spec[1]), levels))
        elif _is_int_range(spec):
            values[name] = sorted({int(round(v)) for v in np.linspace(spec[0], spec[1], levels)})
        else:
            values[name] = list(np.linspace(spec[0], spec[1], levels))
    return pd.DataFrame(list(ParameterGrid(values)), columns=list(ranges))


def grid_random(
    ranges: Mapping[str, Any],
    size: int = 10,
    log_scale: Sequence[str] = (),
    seed: int | None = None,
) -> pd.DataFrame:
    """`size` random points; ranges are sampled uniformly (log-uniformly for `log_scale`)."""
    distributions = {}
    for name, spec in ranges.items():
        if not _is_range(spec):
            distributions[name] = list(spec)
        elif name in log_scale:
            distributions[name] = stats.loguniform(spec[0], spec[1])
        elif _is_int_range(spec):
            distributions[name] = stats.randint(spec[0], spec[1] + 1)
        else:
            distributions[name] = stats.uniform(spec[0], spec[1] - spec[0])
    points = list(ParameterSampler(distributions, n_iter=size, random_state=seed))
    return pd.DataFrame(points, columns=list(ranges)).drop_duplicates().reset_index(drop=True)


def _grid_frame(grid: Grid) -> pd.DataFrame:
    if isinstance(grid, pd.DataFrame):
        return grid.reset_index(drop=True)
    if isinstance(grid, Mapping):
        return pd.DataFrame(list(ParameterGrid(dict(grid))), columns=list(grid))
    return pd.DataFrame(list(grid))


@dataclass
class GridPointResult:
    config: str
    params: dict
    folds: list[FoldResult] = field(default_factory=list)


def _evaluate_point(
    workflow: Workflow,
    config: str,
    params: dict,
    data: Dataset,
    fold: Fold,
    metrics: MetricSet,
    save_pred: bool,
) -> FoldResult:
    candidate = workflow.with_parameters(params)
    result = evaluate_fold(candidate, data, fold, metrics, save_pred)
    for frame in (result.metrics, result.predictions):
        if frame is not None:
            for i, (name, value) in enumerate(params.items()):
                frame.insert(i, name, [value] * len(frame))
            frame.insert(len(params), CONFIG_COLUMN, config)
    for note in result.notes:
        note[CONFIG_COLUMN] = config
    return result


def _check_grid(workflow: Workflow, grid: pd.DataFrame):
    tunable = set(workflow.tunable())
    if not tunable:
        raise ValueError("Workflow has no tune() placeholders")
    missing = tunable - set(grid.columns)
    if missing:
        raise UnresolvedParameter(f"Grid has no values for {sorted(missing)}")
    extra = set(grid.columns) - tunable
    if extra:
        raise ValueError(f"Grid columns {sorted(extra)} are not tunable parameters")
    if grid.empty:
        raise ValueError("Grid is empty")


def iter_tune_grid(
    workflow: Workflow,
    resamples: Resamples,
    grid: Grid,
    metrics=None,
    n_jobs: int = 1,
    save_pred: bool = False,
) -> Iterator[GridPointResult]:
    """Yield one GridPointResult per grid point, in grid order."""
    grid = _grid_frame(grid)
    _check_grid(workflow, grid)
    metric_set = resolve_metrics(workflow, metrics)
    if save_pred:
        check_prediction_columns(resamples.data, [*grid.columns, CONFIG_COLUMN, FOLD_COLUMN])
    width = len(str(len(grid)))
    points = [
        GridPointResult(f"Config{i + 1:0{width}d}", params)
        for i, params in enumerate(grid.to_dict(orient="records"))
    ]

    jobs = (
        delayed(_evaluate_point)(
            workflow, point.config, point.params, resamples.data, fold, metric_set, save_pred
        )
        for point in points
        for fold in resamples
    )
    per_point = len(resamples)
    outputs = Parallel(n_jobs=n_jobs, return_as="generator")(jobs)
    for i, result in enumerate(outputs):
        point = points[i // per_point]
        point.folds.append(result)
        if len(point.folds) == per_point:
            logger.debug("%s %s done", point.config, point.params)
            yield point


class TuneResults:
    """Per grid point, per fold, per metric results of a grid search."""

    def __init__(
        self,
        resamples: Resamples,
        points: Sequence[GridPointResult],
        metric_set: MetricSet,
        param_names: Sequence[str],
    ):
        self.resamples = resamples
        self.points = list(points)
        self.metric_set = metric_set
        self.param_names = list(param_names)

        folds = [fold for point in self.points for fold in point.folds]
        frames = [f.metrics for f in folds if f.metrics is not None]
        self.metrics = (
            pd.concat(frames, ignore_index=True)
            if frames
            else pd.DataFrame(columns=[*self.param_names, CONFIG_COLUMN, FOLD_COLUMN, "metric", "estimator", "estimate", "note"])
        )
        preds = [f.predictions for f in folds if f.predictions is not None]
        self.predictions = pd.concat(preds, ignore_index=True) if preds else None
        self.notes = pd.DataFrame(
            [note for f in folds for note in f.notes],
            columns=[CONFIG_COLUMN, FOLD_COLUMN, "type", "message"],
        )

    @property
    def grid(self) -> pd.DataFrame:
        return pd.DataFrame([p.params for p in self.points], columns=self.param_names)

    def collect_metrics(self, summarize: bool = True) -> pd.DataFrame:
        if not summarize:
            return self.metrics.copy()
        return summarize_metrics(self.metrics, by=[*self.param_names, CONFIG_COLUMN])

    def collect_predictions(self) -> pd.DataFrame:
        if self.predictions is None:
            raise ValueError("Predictions were not saved; rerun with save_pred=True")
        return self.predictions.copy()

    def __repr__(self) -> str:
        return f"TuneResults(points={len(self.points)}, folds={len(self.resamples)}, notes={len(self.notes)})"


def tune_grid(
    workflow: Workflow,
    resamples: Resamples,
    grid: Grid,
    metrics=None,
    n_jobs: int = 1,
    save_pred: bool = False,
) -> TuneResults:
    """Evaluate every grid point on every fold."""
    grid = _grid_frame(grid)
    metric_set = resolve_metrics(workflow, metrics)
    points = list(iter_tune_grid(workflow, resamples, grid, metric_set, n_jobs, save_pred))
    results = TuneResults(resamples, points, metric_set, list(grid.columns))
    logger.info(
        "Tuned %d grid points over %d folds, %d note(s)",
        len(points),
        len(resamples),
        len(results.notes),
    )
    return results


def _ranked(results: TuneResults, metric: str | None, direction: str | None) -> pd.DataFrame:
    metric = metric or results.metric_set.names[0]
    if metric not in results.metric_set.names:
        raise ValueError(f"Metric '{metric}' was not computed; have {results.metric_set.names}")
    direction = direction or get_metric(metric).direction
    if direction not in (MAXIMIZE, MINIMIZE):
        raise ValueError(f"direction must be '{MAXIMIZE}' or '{MINIMIZE}', got {direction!r}")

    summary = results.collect_metrics()
    summary = summary[(summary["metric"] == metric) & summary["mean"].notna()]
    if summary.empty:
        raise ValueError(f"No grid point has a defined mean {metric}")
    # Stable sort keeps grid order among ties.
    return summary.sort_values("mean", ascending=direction == MINIMIZE, kind="mergesort")


def show_best(
    results: TuneResults, metric: str | None = None, n: int = 5, direction: str | None = None
) -> pd.DataFrame:
    return _ranked(results, metric, direction).head(n).reset_index(drop=True)


def select_best(
    results: TuneResults, metric: str | None = None, direction: str | None = None
) -> dict[str, Any]:
    """
    Parameters of the grid point with the best mean `metric` across folds.

    `direction` defaults to the metric's own (maximize accuracy and AUC,
    minimize RMSE); ties go to the earliest grid point.
    """
    best = _ranked(results, metric, direction).head(1)
    return best[results.param_names].to_dict(orient="records")[0]

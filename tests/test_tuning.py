"""Tests for grids, grid search and picking the best grid point."""

import numpy as np
import pandas as pd
import pytest

from tidy_learn import (
    Dataset,
    Estimator,
    Recipe,
    SchemaMismatch,
    UnresolvedParameter,
    Workflow,
    grid_random,
    grid_regular,
    iter_tune_grid,
    metric_set,
    select_best,
    show_best,
    tune,
    tune_grid,
    vfold_cv,
)
from tidy_learn.constants import CLASSIFICATION, FOLD_COLUMN
from tidy_learn.params import TuneParameter
from tidy_learn.resample import FoldResult
from tidy_learn.tuning import CONFIG_COLUMN, GridPointResult, TuneResults


def _fake_results(resamples, means, metric="accuracy"):
    """TuneResults whose per-fold estimates average to `means`, one grid point per value."""
    points = []
    for i, (penalty, mean) in enumerate(means):
        config = f"Config{i + 1}"
        folds = []
        for fold, offset in zip(resamples, (-0.01, 0.0, 0.01)):
            frame = pd.DataFrame(
                {
                    "penalty": [penalty],
                    CONFIG_COLUMN: [config],
                    FOLD_COLUMN: [fold.id],
                    "metric": [metric],
                    "estimator": ["binary"],
                    "estimate": [mean + offset],
                    "note": [None],
                }
            )
            folds.append(FoldResult(fold.id, metrics=frame))
        points.append(GridPointResult(config, {"penalty": penalty}, folds))
    return TuneResults(resamples, points, metric_set(metric), ["penalty"])


class TestSelectBest:
    @pytest.fixture(autouse=True)
    def _folds(self, classification_data):
        self.folds = vfold_cv(classification_data, v=3, seed=0)

    def test_highest_mean_accuracy(self):
        results = _fake_results(self.folds, [(0.01, 0.70), (0.1, 0.85), (1.0, 0.77)])
        assert select_best(results, "accuracy") == {"penalty": 0.1}

    def test_show_best_order(self):
        results = _fake_results(self.folds, [(0.01, 0.70), (0.1, 0.85), (1.0, 0.77)])
        best = show_best(results, "accuracy", n=2)
        assert list(best["penalty"]) == [0.1, 1.0]
        assert list(best["mean"]) == pytest.approx([0.85, 0.77])
        assert list(best["n"]) == [3, 3]

    def test_ties_go_to_first_grid_point(self):
        results = _fake_results(self.folds, [(0.01, 0.80), (0.1, 0.80), (1.0, 0.60)])
        assert select_best(results) == {"penalty": 0.01}

    def test_minimized_metric(self):
        results = _fake_results(self.folds, [(0.01, 3.0), (0.1, 1.5), (1.0, 2.0)], metric="rmse")
        assert select_best(results, "rmse") == {"penalty": 0.1}
        assert select_best(results, "rmse", direction="maximize") == {"penalty": 0.01}

    def test_unknown_metric(self):
        results = _fake_results(self.folds, [(0.01, 0.70)])
        with pytest.raises(ValueError):
            select_best(results, "roc_auc")


class TestGrids:
    def test_regular_log_scale(self):
        grid = grid_regular({"penalty": (1e-3, 1.0)}, levels=4, log_scale=["penalty"])
        np.testing.assert_allclose(grid["penalty"], [1e-3, 1e-2, 1e-1, 1.0])

    def test_regular_combinations(self):
        grid = grid_regular({"neighbors": (1, 9), "weight_func": ["uniform", "distance"]}, levels=3)
        assert len(grid) == 6
        assert list(grid.columns) == ["neighbors", "weight_func"]
        assert sorted(grid["neighbors"].unique()) == [1, 5, 9]

    def test_random_within_ranges(self):
        grid = grid_random({"penalty": (1e-4, 1.0), "min_n": (2, 10)}, size=8, log_scale=["penalty"], seed=3)
        assert 0 < len(grid) <= 8
        assert grid["penalty"].between(1e-4, 1.0).all()
        assert grid["min_n"].between(2, 10).all()

    def test_random_reproducible(self):
        a = grid_random({"penalty": (0.0, 1.0)}, size=5, seed=9)
        b = grid_random({"penalty": (0.0, 1.0)}, size=5, seed=9)
        pd.testing.assert_frame_equal(a, b)


class TestTuneGrid:
    def setup_method(self):
        self.workflow = Workflow(
            Recipe().step_dummy().step_normalize(),
            Estimator("logistic_reg", CLASSIFICATION, penalty=tune()),
        )

    def test_end_to_end(self, classification_data):
        folds = vfold_cv(classification_data, v=3, strata="label", seed=1)
        grid = grid_regular({"penalty": (1e-3, 1.0)}, levels=3, log_scale=["penalty"])
        results = tune_grid(self.workflow, folds, grid, metric_set("accuracy", "roc_auc"))

        summary = results.collect_metrics()
        assert len(summary) == 6
        assert list(summary[CONFIG_COLUMN].unique()) == ["Config1", "Config2", "Config3"]
        assert (summary["n"] == 3).all()
        assert len(results.collect_metrics(summarize=False)) == 18

        best = select_best(results, "roc_auc")
        assert set(best) == {"penalty"}
        assert best["penalty"] in list(grid["penalty"])

    def test_recipe_and_model_parameters(self, classification_data):
        workflow = Workflow(
            Recipe().step_dummy().step_corr(threshold=tune()).step_normalize(),
            Estimator("logistic_reg", CLASSIFICATION, penalty=tune()),
        )
        grid = {"threshold": [0.8, 0.95], "penalty": [0.1]}
        results = tune_grid(workflow, vfold_cv(classification_data, v=3, seed=1), grid)
        assert len(results.grid) == 2
        assert set(results.grid.columns) == {"threshold", "penalty"}

    def test_iter_yields_points_in_grid_order(self, classification_data):
        folds = vfold_cv(classification_data, v=3, seed=1)
        points = list(iter_tune_grid(self.workflow, folds, {"penalty": [0.01, 1.0]}))
        assert [p.config for p in points] == ["Config1", "Config2"]
        assert all(len(p.folds) == 3 for p in points)

    def test_grid_missing_parameter(self, classification_data):
        folds = vfold_cv(classification_data, v=3, seed=1)
        with pytest.raises(UnresolvedParameter):
            tune_grid(self.workflow, folds, {"mixture": [0.0]})

    def test_nothing_to_tune(self, classification_data):
        workflow = Workflow(Recipe().step_dummy(), Estimator("logistic_reg", CLASSIFICATION))
        with pytest.raises(ValueError):
            tune_grid(workflow, vfold_cv(classification_data, v=3, seed=1), {"penalty": [0.1]})

    def test_failing_grid_point_recorded_as_notes(self, classification_data):
        workflow = Workflow(
            Recipe().step_dummy().step_normalize(),
            Estimator("nearest_neighbor", CLASSIFICATION, neighbors=tune()),
        )
        folds = vfold_cv(classification_data.subset(np.arange(40)), v=4, seed=0)
        results = tune_grid(workflow, folds, {"neighbors": [5, 35]})
        assert len(results.notes) == 4
        assert set(results.notes[CONFIG_COLUMN]) == {"Config2"}
        assert set(results.notes["type"]) == {"PredictionError"}
        assert list(results.collect_metrics()[CONFIG_COLUMN].unique()) == ["Config1"]
        assert select_best(results) == {"neighbors": 5}

    def test_saved_predictions_with_clashing_column(self, classification_frame):
        frame = classification_frame.rename(columns={"sample_id": "penalty"})
        dataset = Dataset.from_frame(frame, outcome="label", ids=["penalty"])
        with pytest.raises(SchemaMismatch):
            tune_grid(self.workflow, vfold_cv(dataset, v=3, seed=1), {"penalty": [0.1]}, save_pred=True)

    def test_saved_predictions(self, classification_data):
        results = tune_grid(
            self.workflow, vfold_cv(classification_data, v=3, seed=1), {"penalty": [0.1, 1.0]}, save_pred=True
        )
        preds = results.collect_predictions()
        assert list(preds.columns[:3]) == ["penalty", CONFIG_COLUMN, FOLD_COLUMN]
        assert len(preds) == 2 * len(classification_data)


class TestPlaceholderExport:
    def test_package_tune_is_the_placeholder_factory(self):
        import tidy_learn

        assert callable(tidy_learn.tune)
        assert isinstance(tidy_learn.tune("cost"), TuneParameter)
        assert tidy_learn.tune("cost").id == "cost"

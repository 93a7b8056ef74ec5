"""
Workflows: a recipe and an estimator fitted and applied as one unit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import joblib
import pandas as pd

from .constants import CLASSIFICATION, ROW_COLUMN
from .data_prep import Split, testing, training
from .dataset import Dataset
from .errors import UnresolvedParameter
from .metrics import MetricSet, default_metric_set
from .models import Estimator, FittedEstimator
from .recipe import FittedRecipe, Recipe

logger = logging.getLogger(__name__)


class Workflow:
    """Unfitted pairing of a preprocessing recipe and a model specification."""

    def __init__(self, recipe: Recipe | None = None, estimator: Estimator | None = None):
        self.recipe = recipe if recipe is not None else Recipe()
        self.estimator = estimator

    def add_recipe(self, recipe: Recipe) -> "Workflow":
        return Workflow(recipe, self.estimator)

    def add_model(self, estimator: Estimator) -> "Workflow":
        return Workflow(self.recipe, estimator)

    @property
    def mode(self) -> str:
        return self._require_estimator().mode

    def tunable(self) -> dict[str, str]:
        """Placeholder id -> where it lives, for every tune() in the workflow."""
        found = {pid: f"recipe.step{where}" for pid, where in self.recipe.tunable().items()}
        found.update({pid: f"model.{arg}" for pid, arg in self._require_estimator().tunable().items()})
        return found

    def with_parameters(self, values: Mapping[str, Any], strict: bool = True) -> "Workflow":
        return Workflow(
            self.recipe.with_parameters(values, strict=strict),
            self._require_estimator().with_parameters(values, strict=strict),
        )

    def fit(self, dataset: Dataset) -> "FittedWorkflow":
        """Fit the recipe on `dataset`, then the model on the transformed rows."""
        estimator = self._require_estimator()
        fitted_recipe = self.recipe.fit(dataset)
        processed = fitted_recipe.apply(dataset)
        fitted_model = estimator.fit(processed)
        return FittedWorkflow(self, fitted_recipe, fitted_model)

    def _require_estimator(self) -> Estimator:
        if self.estimator is None:
            raise ValueError("Workflow has no model; call add_model first")
        return self.estimator

    def __repr__(self) -> str:
        return f"Workflow({self.recipe!r}, {self.estimator!r})"


class FittedWorkflow:
    def __init__(self, workflow: Workflow, recipe: FittedRecipe, model: FittedEstimator):
        self.workflow = workflow
        self.recipe = recipe
        self.model = model

    @property
    def mode(self) -> str:
        return self.model.mode

    @property
    def outcome(self) -> str:
        return self.model.outcome

    def predict(self, dataset: Dataset, type: str | None = None) -> pd.DataFrame:
        return self.model.predict(self.recipe.apply(dataset), type=type)

    def augment(self, dataset: Dataset) -> pd.DataFrame:
        """
        The original columns of `dataset` plus every prediction column for the
        model's mode, and a `.row` column holding the source row label.
        """
        processed = self.recipe.apply(dataset)
        if self.mode == CLASSIFICATION:
            preds = [self.model.predict(processed, "class"), self.model.predict(processed, "prob")]
        else:
            preds = [self.model.predict(processed, "numeric")]
        out = pd.concat([dataset.data, *preds], axis=1)
        out.insert(0, ROW_COLUMN, dataset.data.index)
        return out

    def save(self, path: Path | str) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        joblib.dump(self, path)
        logger.info("Saved fitted workflow to %s", path)
        return path

    def __repr__(self) -> str:
        return f"FittedWorkflow({self.recipe!r}, {self.model!r})"


def load_workflow(path: Path | str) -> FittedWorkflow:
    fitted = joblib.load(path)
    if not isinstance(fitted, FittedWorkflow):
        raise TypeError(f"{path} does not hold a fitted workflow")
    return fitted


def finalize_workflow(workflow: Workflow, params: Mapping[str, Any]) -> Workflow:
    """Substitute chosen values for every tune() placeholder."""
    finalized = workflow.with_parameters(params, strict=True)
    leftover = finalized.tunable()
    if leftover:
        raise UnresolvedParameter(f"Unresolved tunable parameters: {sorted(leftover)}")
    return finalized


@dataclass
class LastFit:
    """Result of fitting on the training split and scoring the test split."""

    fitted: FittedWorkflow
    metrics: pd.DataFrame
    predictions: pd.DataFrame

    def collect_metrics(self) -> pd.DataFrame:
        return self.metrics.copy()

    def collect_predictions(self) -> pd.DataFrame:
        return self.predictions.copy()


def evaluate(fitted: FittedWorkflow, dataset: Dataset, metrics: MetricSet | None = None) -> tuple[pd.DataFrame, pd.DataFrame]:
    """Predictions for `dataset` and their metric table."""
    metrics = metrics or default_metric_set(fitted.mode)
    predictions = fitted.augment(dataset)
    return metrics(predictions, truth=fitted.outcome), predictions


def last_fit(workflow: Workflow, split: Split, metrics: MetricSet | None = None) -> LastFit:
    """Fit on training(split), then predict and score testing(split)."""
    fitted = workflow.fit(training(split))
    scores, predictions = evaluate(fitted, testing(split), metrics)
    logger.info(
        "Last fit on %d rows, scored on %d: %s",
        len(split.train),
        len(split.test),
        dict(zip(scores["metric"], scores["estimate"].round(4))),
    )
    return LastFit(fitted, scores, predictions)

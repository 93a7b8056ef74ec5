"""
Model specifications and their fitted counterparts.

An `Estimator` names an algorithm, a mode and an engine, with hyperparameters
spelled the same way for every engine. The engine table below translates them
into concrete scikit-learn (or in-house) estimator arguments.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Mapping, Sequence

import numpy as np
import pandas as pd
from sklearn.ensemble import RandomForestClassifier, RandomForestRegressor
from sklearn.linear_model import ElasticNet, LinearRegression, LogisticRegression, Ridge
from sklearn.neighbors import KNeighborsClassifier, KNeighborsRegressor
from sklearn.tree import DecisionTreeClassifier, DecisionTreeRegressor

from .constants import (
    CLASSIFICATION,
    MODES,
    NOMINAL,
    NUMERIC,
    PRED_CLASS,
    PRED_NUMERIC,
    PREDICTION_TYPES,
    REGRESSION,
)
from .dataset import Dataset
from .errors import (
    InvalidPredictionType,
    ModelFitError,
    PredictionError,
    SchemaMismatch,
    UnsupportedModel,
)
from .logreg import LogisticRegressionGD
from .metrics import prob_column
from .params import placeholders, substitute

logger = logging.getLogger(__name__)


def _logistic_sklearn(mode, penalty=None, mixture=0.0, seed=None, **engine_args):
    if not penalty:
        return LogisticRegression(C=np.inf, max_iter=5000, random_state=seed, **engine_args)
    if mixture:
        return LogisticRegression(
            C=1.0 / penalty,
            penalty="elasticnet",
            solver="saga",
            l1_ratio=mixture,
            max_iter=5000,
            random_state=seed,
            **engine_args,
        )
    return LogisticRegression(C=1.0 / penalty, max_iter=5000, random_state=seed, **engine_args)


def _logistic_gd(mode, penalty=None, mixture=0.0, seed=None, **engine_args):
    if mixture:
        raise UnsupportedModel("The gd engine only supports an L2 penalty (mixture = 0)")
    return LogisticRegressionGD(l2=penalty or 0.0, **engine_args)


def _linear_sklearn(mode, penalty=None, mixture=0.0, seed=None, **engine_args):
    if not penalty:
        return LinearRegression(**engine_args)
    if mixture:
        return ElasticNet(alpha=penalty, l1_ratio=mixture, random_state=seed, **engine_args)
    return Ridge(alpha=penalty, random_state=seed, **engine_args)


def _rand_forest(mode, mtry=None, trees=100, min_n=2, seed=None, **engine_args):
    cls = RandomForestClassifier if mode == CLASSIFICATION else RandomForestRegressor
    max_features = int(mtry) if mtry is not None else ("sqrt" if mode == CLASSIFICATION else 1.0)
    return cls(
        n_estimators=int(trees),
        max_features=max_features,
        min_samples_split=int(min_n),
        random_state=seed,
        **engine_args,
    )


def _decision_tree(mode, cost_complexity=0.0, tree_depth=None, min_n=2, seed=None, **engine_args):
    cls = DecisionTreeClassifier if mode == CLASSIFICATION else DecisionTreeRegressor
    return cls(
        ccp_alpha=float(cost_complexity),
        max_depth=int(tree_depth) if tree_depth is not None else None,
        min_samples_split=int(min_n),
        random_state=seed,
        **engine_args,
    )


def _nearest_neighbor(mode, neighbors=5, weight_func="uniform", seed=None, **engine_args):
    cls = KNeighborsClassifier if mode == CLASSIFICATION else KNeighborsRegressor
    return cls(n_neighbors=int(neighbors), weights=weight_func, **engine_args)


# algorithm -> (supported modes, hyperparameter names, {engine: factory})
ALGORITHMS: Dict[str, tuple[tuple[str, ...], tuple[str, ...], Dict[str, Callable]]] = {
    "logistic_reg": (
        (CLASSIFICATION,),
        ("penalty", "mixture"),
        {"sklearn": _logistic_sklearn, "gd": _logistic_gd},
    ),
    "linear_reg": ((REGRESSION,), ("penalty", "mixture"), {"sklearn": _linear_sklearn}),
    "rand_forest": (MODES, ("mtry", "trees", "min_n"), {"sklearn": _rand_forest}),
    "decision_tree": (
        MODES,
        ("cost_complexity", "tree_depth", "min_n"),
        {"sklearn": _decision_tree},
    ),
    "nearest_neighbor": (MODES, ("neighbors", "weight_func"), {"sklearn": _nearest_neighbor}),
}


class Estimator:
    """
    Unfitted model specification.

    Hyperparameters may be tune() placeholders; they must be resolved (see
    `with_parameters`) before `fit`.
    """

    def __init__(
        self,
        algorithm: str,
        mode: str,
        engine: str = "sklearn",
        seed: int | None = None,
        engine_args: Mapping[str, Any] | None = None,
        **hyperparameters,
    ):
        if algorithm not in ALGORITHMS:
            raise UnsupportedModel(f"Unknown algorithm '{algorithm}'. Choose from {sorted(ALGORITHMS)}")
        modes, names, engines = ALGORITHMS[algorithm]
        if mode not in modes:
            raise UnsupportedModel(f"{algorithm} does not support mode '{mode}'")
        if engine not in engines:
            raise UnsupportedModel(f"{algorithm} has no engine '{engine}'. Choose from {sorted(engines)}")
        unknown = set(hyperparameters) - set(names)
        if unknown:
            raise UnsupportedModel(f"{algorithm} has no hyperparameters {sorted(unknown)}")

        self.algorithm = algorithm
        self.mode = mode
        self.engine = engine
        self.seed = seed
        self.engine_args = dict(engine_args or {})
        self.hyperparameters = dict(hyperparameters)

    def tunable(self) -> dict[str, str]:
        return placeholders(self.hyperparameters)

    def with_parameters(self, values: Mapping[str, Any], strict: bool = True) -> "Estimator":
        return Estimator(
            self.algorithm,
            self.mode,
            engine=self.engine,
            seed=self.seed,
            engine_args=self.engine_args,
            **substitute(self.hyperparameters, values, strict=strict),
        )

    def build(self):
        """Instantiate the engine's estimator with resolved hyperparameters."""
        args = substitute(self.hyperparameters, {}, strict=True)
        factory = ALGORITHMS[self.algorithm][2][self.engine]
        return factory(self.mode, seed=self.seed, **args, **self.engine_args)

    def fit(
        self,
        dataset: Dataset,
        outcome: str | None = None,
        predictors: Sequence[str] | None = None,
    ) -> "FittedEstimator":
        outcome = outcome or dataset.outcome
        if outcome is None or outcome not in dataset.columns:
            raise SchemaMismatch(f"Outcome column {outcome!r} not found in dataset")
        predictors = list(predictors) if predictors is not None else dataset.predictors
        _check_predictors(dataset, predictors)

        expected = NOMINAL if self.mode == CLASSIFICATION else NUMERIC
        if dataset.spec(outcome).kind != expected:
            raise SchemaMismatch(
                f"{self.mode} needs a {expected} outcome, '{outcome}' is {dataset.spec(outcome).kind}"
            )

        levels = None
        y = dataset.data[outcome]
        if self.mode == CLASSIFICATION:
            levels = list(y.cat.categories) if isinstance(y.dtype, pd.CategoricalDtype) else sorted(y.unique())
            y = np.asarray(y)
        else:
            y = y.to_numpy(dtype=float)

        model = self.build()
        X = dataset.data[predictors].to_numpy(dtype=float)
        try:
            model.fit(X, y)
        except ValueError as exc:
            raise ModelFitError(f"{self.algorithm}/{self.engine} failed to fit: {exc}") from exc

        logger.debug("Fitted %s on %d rows x %d predictors", self, len(dataset), len(predictors))
        return FittedEstimator(self, model, outcome, predictors, levels)

    def __repr__(self) -> str:
        args = ", ".join(f"{k}={v!r}" for k, v in self.hyperparameters.items())
        return f"Estimator({self.algorithm}, mode={self.mode}, engine={self.engine}{', ' + args if args else ''})"


def _check_predictors(dataset: Dataset, predictors: Sequence[str]):
    missing = [c for c in predictors if c not in dataset.columns]
    if missing:
        raise SchemaMismatch(f"Predictor columns {missing} not found in dataset")
    non_numeric = [c for c in predictors if dataset.spec(c).kind != NUMERIC]
    if non_numeric:
        raise SchemaMismatch(f"Predictors must be numeric after preprocessing, got {non_numeric}")


class FittedEstimator:
    def __init__(
        self,
        spec: Estimator,
        model,
        outcome: str,
        predictors: Sequence[str],
        levels: Sequence | None = None,
    ):
        self.spec = spec
        self.model = model
        self.outcome = outcome
        self.predictors = list(predictors)
        self.levels = list(levels) if levels is not None else None

    @property
    def mode(self) -> str:
        return self.spec.mode

    def predict(self, dataset: Dataset, type: str | None = None) -> pd.DataFrame:
        """
        Row-aligned predictions.

        class -> .pred_class (categorical, declared level order)
        prob -> one .pred_<level> column per level, rows summing to 1
        numeric -> .pred (regression only)
        """
        if type == "probability":
            type = "prob"
        if type is None:
            type = "class" if self.mode == CLASSIFICATION else "numeric"
        if type not in PREDICTION_TYPES:
            raise InvalidPredictionType(f"Unknown prediction type '{type}'")
        if (type == "numeric") != (self.mode == REGRESSION):
            raise InvalidPredictionType(f"Prediction type '{type}' is not available for {self.mode}")

        missing = [c for c in self.predictors if c not in dataset.columns]
        if missing:
            raise SchemaMismatch(f"Predictor columns {missing} not found in new data")
        X = dataset.data[self.predictors].to_numpy(dtype=float)
        index = dataset.data.index

        if type == "numeric":
            return pd.DataFrame({PRED_NUMERIC: self._call(self.model.predict, X)}, index=index)

        if type == "class":
            labels = pd.Categorical(self._call(self.model.predict, X), categories=self.levels)
            return pd.DataFrame({PRED_CLASS: labels}, index=index)

        proba = self._call(self.model.predict_proba, X)
        classes = list(self.model.classes_)
        columns = {}
        for level in self.levels:
            columns[prob_column(level)] = (
                proba[:, classes.index(level)] if level in classes else np.zeros(len(X))
            )
        return pd.DataFrame(columns, index=index)

    def _call(self, method, X: np.ndarray) -> np.ndarray:
        try:
            return method(X)
        except ValueError as exc:
            raise PredictionError(f"{self.spec.algorithm}/{self.spec.engine} failed to predict: {exc}") from exc

    def __repr__(self) -> str:
        return f"FittedEstimator({self.spec!r}, predictors={len(self.predictors)})"

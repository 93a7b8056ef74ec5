"""
Reusable supervised-learning workflow: split a dataset, preprocess it with a
recipe, fit a model, score predictions, resample and tune.

This package contains the dataset/schema layer, preprocessing steps, model
specifications (scikit-learn engines plus a small gradient-descent logistic
regression), metrics, resampling and grid search used by main.py.
"""

from .data_prep import Split, initial_split, read_dataset, testing, training
from .dataset import ColumnSpec, Dataset
from .errors import (
    DataError,
    EmptyStratum,
    InvalidFoldCount,
    InvalidPredictionType,
    InvalidProportion,
    ModelFitError,
    NonPositiveValue,
    PredictionError,
    SchemaMismatch,
    TidyLearnError,
    UndefinedMetric,
    UnknownCategory,
    UnresolvedParameter,
    UnsupportedModel,
    ValidationError,
    ZeroVariance,
)
from .logreg import LogisticRegressionGD
from .metrics import (
    MetricSet,
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
from .models import Estimator, FittedEstimator
from .params import tune
from .recipe import (
    FittedRecipe,
    Recipe,
    all_nominal_predictors,
    all_numeric_predictors,
    all_predictors,
)
from .resample import Fold, ResampleResults, Resamples, bootstraps, fit_resamples, vfold_cv
from .tuning import (
    TuneResults,
    grid_random,
    grid_regular,
    iter_tune_grid,
    select_best,
    show_best,
    tune_grid,
)
from .workflow import FittedWorkflow, LastFit, Workflow, finalize_workflow, last_fit, load_workflow

__version__ = "0.1.0"

__all__ = [
    "ColumnSpec",
    "Dataset",
    "Split",
    "read_dataset",
    "initial_split",
    "training",
    "testing",
    "Recipe",
    "FittedRecipe",
    "all_predictors",
    "all_numeric_predictors",
    "all_nominal_predictors",
    "Estimator",
    "FittedEstimator",
    "LogisticRegressionGD",
    "Workflow",
    "FittedWorkflow",
    "LastFit",
    "finalize_workflow",
    "last_fit",
    "load_workflow",
    "MetricSet",
    "metric_set",
    "conf_mat",
    "accuracy",
    "sens",
    "spec",
    "precision",
    "f_meas",
    "roc_curve",
    "roc_auc",
    "rmse",
    "rsq",
    "mae",
    "Fold",
    "Resamples",
    "ResampleResults",
    "vfold_cv",
    "bootstraps",
    "fit_resamples",
    "tune",
    "TuneResults",
    "grid_regular",
    "grid_random",
    "iter_tune_grid",
    "tune_grid",
    "select_best",
    "show_best",
    "TidyLearnError",
    "ValidationError",
    "DataError",
    "InvalidProportion",
    "EmptyStratum",
    "SchemaMismatch",
    "InvalidFoldCount",
    "UnsupportedModel",
    "InvalidPredictionType",
    "UnresolvedParameter",
    "NonPositiveValue",
    "ZeroVariance",
    "ModelFitError",
    "PredictionError",
    "UndefinedMetric",
    "UnknownCategory",
]

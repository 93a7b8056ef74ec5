"""Shared defaults for splitting, resampling and scoring."""

DEFAULT_PROP = 0.75
DEFAULT_FOLDS = 10
DEFAULT_BOOTSTRAPS = 25
DEFAULT_SEED = 42

# Column roles and kinds understood by the schema.
OUTCOME = "outcome"
PREDICTOR = "predictor"
ID = "id"
ROLES = (OUTCOME, PREDICTOR, ID)

NUMERIC = "numeric"
NOMINAL = "nominal"
KINDS = (NUMERIC, NOMINAL)

CLASSIFICATION = "classification"
REGRESSION = "regression"
MODES = (CLASSIFICATION, REGRESSION)

PREDICTION_TYPES = ("class", "prob", "numeric")

# Prediction column names.
PRED_CLASS = ".pred_class"
PRED_NUMERIC = ".pred"
PRED_PROB_PREFIX = ".pred_"
ROW_COLUMN = ".row"
FOLD_COLUMN = ".fold"

# Metric names computed when the caller does not pass a metric set.
DEFAULT_CLASSIFICATION_METRICS = ("accuracy", "roc_auc")
DEFAULT_REGRESSION_METRICS = ("rmse", "rsq")

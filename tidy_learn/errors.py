"""
Exception and warning types raised across the modelling workflow.

Validation errors abort the call that raised them. Data errors are raised the
same way by direct calls, but resampling and tuning record them per fold and
keep going.
"""

from __future__ import annotations


class TidyLearnError(Exception):
    """Base class for every error raised by tidy_learn."""


class ValidationError(TidyLearnError, ValueError):
    """Bad arguments or a dataset that does not fit the request."""


class DataError(TidyLearnError, ValueError):
    """The values in a dataset make a step or a model fit impossible."""


class InvalidProportion(ValidationError):
    pass


class EmptyStratum(ValidationError):
    pass


class SchemaMismatch(ValidationError):
    """A column is missing or does not have the expected role or kind."""


class InvalidFoldCount(ValidationError):
    pass


class UnsupportedModel(ValidationError):
    pass


class InvalidPredictionType(ValidationError):
    pass


class UnresolvedParameter(ValidationError):
    """A tune() placeholder was left without a value."""


class NonPositiveValue(DataError):
    pass


class ZeroVariance(DataError):
    pass


class ModelFitError(DataError):
    """The underlying engine refused to fit the data it was given."""


class PredictionError(DataError):
    """The fitted engine could not predict on the data it was given."""


class UndefinedMetric(UserWarning):
    """A metric has a zero denominator; the estimate is reported as NaN."""


class UnknownCategory(UserWarning):
    """A nominal value unseen at fit time was encoded as all zeros."""

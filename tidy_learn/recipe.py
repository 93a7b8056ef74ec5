"""
Preprocessing recipes: an ordered list of column-wise steps.

`Recipe.fit` learns every step's state from the training data only, running the
steps in declared order so each one sees the output of the previous one.
`FittedRecipe.apply` replays the same transformations, with the same learned
state, on any dataset.
"""

from __future__ import annotations

import logging
import math
import warnings
from dataclasses import dataclass, field, fields, replace
from typing import Any, Iterable, Mapping, Sequence, Union

import numpy as np
import pandas as pd

from .constants import NOMINAL, NUMERIC, PREDICTOR
from .dataset import ColumnSpec, Dataset
from .errors import (
    NonPositiveValue,
    SchemaMismatch,
    UnknownCategory,
    UnresolvedParameter,
    ZeroVariance,
)
from .params import placeholders, substitute

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Selector:
    """Selects columns by schema role and kind at fit time."""

    role: str | None = PREDICTOR
    kind: str | None = None

    def resolve(self, dataset: Dataset) -> list[str]:
        return dataset.select(role=self.role, kind=self.kind)


def all_predictors() -> Selector:
    return Selector(PREDICTOR)


def all_numeric_predictors() -> Selector:
    return Selector(PREDICTOR, NUMERIC)


def all_nominal_predictors() -> Selector:
    return Selector(PREDICTOR, NOMINAL)


Columns = Union[str, Selector, Sequence[Union[str, Selector]]]


def resolve_columns(columns: Columns, dataset: Dataset) -> list[str]:
    """Expand names and selectors against the schema, keeping first occurrences."""
    if isinstance(columns, (str, Selector)):
        columns = [columns]
    resolved: list[str] = []
    for item in columns:
        names = item.resolve(dataset) if isinstance(item, Selector) else [item]
        for name in names:
            if name not in dataset.columns:
                raise SchemaMismatch(f"Column '{name}' not found in dataset")
            if name not in resolved:
                resolved.append(name)
    return resolved


def _require_columns(dataset: Dataset, columns: Iterable[str], step: str):
    missing = [c for c in columns if c not in dataset.columns]
    if missing:
        raise SchemaMismatch(f"{step}: columns {missing} not found in dataset")


def _require_kind(dataset: Dataset, columns: Iterable[str], kind: str, step: str):
    wrong = [c for c in columns if dataset.spec(c).kind != kind]
    if wrong:
        raise SchemaMismatch(f"{step} needs {kind} columns, got {wrong}")


@dataclass(frozen=True)
class Step:
    """
    Base class for recipe steps.

    Fields ending in an underscore hold learned state and are None until the
    step is fitted; the other fields are user arguments and may be tune()
    placeholders.
    """

    def fit(self, dataset: Dataset) -> "Step":
        raise NotImplementedError

    def apply(self, dataset: Dataset) -> Dataset:
        raise NotImplementedError

    @property
    def name(self) -> str:
        return type(self).__name__

    @property
    def arguments(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self) if not f.name.endswith("_")}

    @property
    def fitted(self) -> bool:
        return all(getattr(self, f.name) is not None for f in fields(self) if f.name.endswith("_"))

    def with_arguments(self, values: Mapping[str, Any], strict: bool = True) -> "Step":
        return replace(self, **substitute(self.arguments, values, strict=strict))

    def _check_fitted(self):
        if not self.fitted:
            raise RuntimeError(f"{self.name} is not fitted.")


@dataclass(frozen=True)
class LogTransform(Step):
    columns: Any = field(default_factory=all_numeric_predictors)
    base: Any = math.e
    offset: Any = 0.0
    selected_: tuple | None = None

    def fit(self, dataset: Dataset) -> "LogTransform":
        cols = resolve_columns(self.columns, dataset)
        _require_kind(dataset, cols, NUMERIC, self.name)
        if self.base <= 0 or self.base == 1:
            raise ValueError(f"Invalid log base: {self.base}")
        return replace(self, selected_=tuple(cols))

    def apply(self, dataset: Dataset) -> Dataset:
        self._check_fitted()
        _require_columns(dataset, self.selected_, self.name)
        data = dataset.data.copy()
        for col in self.selected_:
            shifted = data[col].astype(float) + self.offset
            if (shifted <= 0).any():
                bad = int((shifted <= 0).sum())
                raise NonPositiveValue(f"Column '{col}' has {bad} value(s) <= 0; log is undefined")
            data[col] = np.log(shifted) / math.log(self.base)
        return dataset.replace(data)


@dataclass(frozen=True)
class CorrFilter(Step):
    columns: Any = field(default_factory=all_numeric_predictors)
    threshold: Any = 0.9
    method: str = "pearson"
    removed_: tuple | None = None

    def fit(self, dataset: Dataset) -> "CorrFilter":
        cols = resolve_columns(self.columns, dataset)
        _require_kind(dataset, cols, NUMERIC, self.name)
        corr = dataset.data[cols].astype(float).corr(method=self.method).abs().to_numpy()

        # Later column of every offending pair goes, even if the earlier one is also dropped.
        removed = [
            cols[j]
            for j in range(len(cols))
            if any(corr[i, j] > self.threshold for i in range(j))
        ]
        if removed:
            logger.debug("CorrFilter drops %s (threshold %.3f)", removed, self.threshold)
        return replace(self, removed_=tuple(removed))

    def apply(self, dataset: Dataset) -> Dataset:
        self._check_fitted()
        _require_columns(dataset, self.removed_, self.name)
        return dataset.replace(dataset.data.drop(columns=list(self.removed_)))


@dataclass(frozen=True)
class Normalize(Step):
    columns: Any = field(default_factory=all_numeric_predictors)
    means_: dict | None = None
    sds_: dict | None = None

    def fit(self, dataset: Dataset) -> "Normalize":
        cols = resolve_columns(self.columns, dataset)
        _require_kind(dataset, cols, NUMERIC, self.name)
        values = dataset.data[cols].astype(float)
        means = values.mean()
        sds = values.std(ddof=1)
        flat = [c for c in cols if not sds[c] > 0]
        if flat:
            raise ZeroVariance(f"Cannot normalize zero-variance columns: {flat}")
        return replace(self, means_=means.to_dict(), sds_=sds.to_dict())

    def apply(self, dataset: Dataset) -> Dataset:
        self._check_fitted()
        _require_columns(dataset, self.means_, self.name)
        data = dataset.data.copy()
        for col, mean in self.means_.items():
            data[col] = (data[col].astype(float) - mean) / self.sds_[col]
        return dataset.replace(data)


def _observed_levels(values: pd.Series) -> tuple:
    present = values.dropna()
    if isinstance(values.dtype, pd.CategoricalDtype):
        seen = set(present.unique().tolist())
        return tuple(level for level in values.cat.categories if level in seen)
    return tuple(sorted(present.unique().tolist(), key=str))


@dataclass(frozen=True)
class Dummy(Step):
    """
    Indicator columns for nominal predictors.

    The first observed level is the reference and gets no column unless
    `one_hot` is set. Levels not seen during fit encode as all zeros.
    """

    columns: Any = field(default_factory=all_nominal_predictors)
    one_hot: bool = False
    levels_: dict | None = None

    def fit(self, dataset: Dataset) -> "Dummy":
        cols = resolve_columns(self.columns, dataset)
        _require_kind(dataset, cols, NOMINAL, self.name)
        levels = {col: _observed_levels(dataset.data[col]) for col in cols}
        return replace(self, levels_=levels)

    def indicator_names(self, column: str) -> list[str]:
        levels = self.levels_[column] if self.one_hot else self.levels_[column][1:]
        return [f"{column}_{level}" for level in levels]

    def apply(self, dataset: Dataset) -> Dataset:
        self._check_fitted()
        _require_columns(dataset, self.levels_, self.name)
        data = dataset.data.drop(columns=list(self.levels_))
        new_specs = {}
        for col, levels in self.levels_.items():
            values = dataset.data[col]
            unseen = values.notna() & ~values.isin(levels)
            if unseen.any():
                warnings.warn(
                    f"Column '{col}' has {int(unseen.sum())} value(s) not seen during fit; "
                    "encoded as all zeros",
                    UnknownCategory,
                    stacklevel=2,
                )
            kept = levels if self.one_hot else levels[1:]
            role = dataset.spec(col).role
            for level, name in zip(kept, self.indicator_names(col)):
                if name in data.columns:
                    raise SchemaMismatch(f"Indicator column '{name}' already exists")
                indicator = (values == level).astype(float)
                indicator[values.isna()] = np.nan
                data[name] = indicator
                new_specs[name] = ColumnSpec(role, NUMERIC)
        return dataset.replace(data, new_specs)


@dataclass(frozen=True)
class ZeroVarianceFilter(Step):
    columns: Any = field(default_factory=all_predictors)
    removed_: tuple | None = None

    def fit(self, dataset: Dataset) -> "ZeroVarianceFilter":
        cols = resolve_columns(self.columns, dataset)
        removed = [c for c in cols if dataset.data[c].nunique(dropna=True) <= 1]
        if removed:
            logger.debug("ZeroVarianceFilter drops %s", removed)
        return replace(self, removed_=tuple(removed))

    def apply(self, dataset: Dataset) -> Dataset:
        self._check_fitted()
        _require_columns(dataset, self.removed_, self.name)
        return dataset.replace(dataset.data.drop(columns=list(self.removed_)))


class Recipe:
    """Ordered, immutable list of unfitted steps built with the step_* methods."""

    def __init__(self, steps: Sequence[Step] = ()):
        self.steps = tuple(steps)

    def add_step(self, step: Step) -> "Recipe":
        return Recipe(self.steps + (step,))

    def step_log(self, columns: Columns, base: float = math.e, offset: float = 0.0) -> "Recipe":
        return self.add_step(LogTransform(columns, base=base, offset=offset))

    def step_corr(self, columns: Columns | None = None, threshold: float = 0.9) -> "Recipe":
        return self.add_step(CorrFilter(columns or all_numeric_predictors(), threshold=threshold))

    def step_normalize(self, columns: Columns | None = None) -> "Recipe":
        return self.add_step(Normalize(columns or all_numeric_predictors()))

    def step_dummy(self, columns: Columns | None = None, one_hot: bool = False) -> "Recipe":
        return self.add_step(Dummy(columns or all_nominal_predictors(), one_hot=one_hot))

    def step_zv(self, columns: Columns | None = None) -> "Recipe":
        return self.add_step(ZeroVarianceFilter(columns or all_predictors()))

    def tunable(self) -> dict[str, str]:
        """Placeholder id -> '<step index>.<argument>' for every tune() argument."""
        found = {}
        for i, step in enumerate(self.steps):
            for param_id, arg in placeholders(step.arguments).items():
                found[param_id] = f"{i}.{arg}"
        return found

    def with_parameters(self, values: Mapping[str, Any], strict: bool = True) -> "Recipe":
        return Recipe(step.with_arguments(values, strict=strict) for step in self.steps)

    def fit(self, dataset: Dataset) -> "FittedRecipe":
        unresolved = self.tunable()
        if unresolved:
            raise UnresolvedParameter(f"Recipe has unresolved tune() arguments: {sorted(unresolved)}")

        fitted = []
        current = dataset
        for step in self.steps:
            step = step.fit(current)
            current = step.apply(current)
            fitted.append(step)
        return FittedRecipe(fitted)

    def __len__(self) -> int:
        return len(self.steps)

    def __repr__(self) -> str:
        return f"Recipe({', '.join(step.name for step in self.steps)})"


class FittedRecipe:
    def __init__(self, steps: Sequence[Step]):
        self.steps = tuple(steps)

    def apply(self, dataset: Dataset) -> Dataset:
        for step in self.steps:
            dataset = step.apply(dataset)
        return dataset

    def __repr__(self) -> str:
        return f"FittedRecipe({', '.join(step.name for step in self.steps)})"

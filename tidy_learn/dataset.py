"""
Datasets with an explicit column schema.

Every column carries a role (outcome, predictor, id) and a kind (numeric,
nominal). Steps and models read the schema instead of probing dtypes, so the
same selection rules apply on training data and on new data.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping, Sequence

import numpy as np
import pandas as pd

from .constants import ID, KINDS, NOMINAL, NUMERIC, OUTCOME, PREDICTOR, ROLES
from .errors import SchemaMismatch


@dataclass(frozen=True)
class ColumnSpec:
    role: str
    kind: str

    def __post_init__(self):
        if self.role not in ROLES:
            raise SchemaMismatch(f"Unknown column role: {self.role}")
        if self.kind not in KINDS:
            raise SchemaMismatch(f"Unknown column kind: {self.kind}")


def _infer_kind(series: pd.Series) -> str:
    if pd.api.types.is_bool_dtype(series):
        return NOMINAL
    if pd.api.types.is_numeric_dtype(series):
        return NUMERIC
    return NOMINAL


class Dataset:
    """
    An immutable table plus its schema.

    Row identity is the DataFrame index: subsets keep the original labels so
    predictions can be matched back to their source rows.
    """

    def __init__(self, data: pd.DataFrame, schema: Mapping[str, ColumnSpec]):
        missing = [c for c in data.columns if c not in schema]
        extra = [c for c in schema if c not in data.columns]
        if missing or extra:
            raise SchemaMismatch(
                f"Schema does not match columns (unspecified: {missing}, absent: {extra})"
            )
        outcomes = [c for c, spec in schema.items() if spec.role == OUTCOME]
        if len(outcomes) > 1:
            raise SchemaMismatch(f"At most one outcome column is supported, got {outcomes}")

        self._data = data
        self._schema = {c: schema[c] for c in data.columns}

    @classmethod
    def from_frame(
        cls,
        df: pd.DataFrame,
        outcome: str | None = None,
        levels: Sequence | None = None,
        ids: Iterable[str] = (),
        nominal: Iterable[str] = (),
    ) -> "Dataset":
        """
        Build a Dataset, inferring each column's kind from its values.

        A nominal outcome is stored as a pandas Categorical whose category order
        is `levels` when given; the first level is the event of interest.
        """
        ids = set(ids)
        nominal = set(nominal)
        for col in [outcome, *ids, *nominal]:
            if col is not None and col not in df.columns:
                raise SchemaMismatch(f"Column '{col}' not found in dataset")

        data = df.copy()
        schema = {}
        for col in data.columns:
            kind = NOMINAL if col in nominal else _infer_kind(data[col])
            if col == outcome:
                role = OUTCOME
            elif col in ids:
                role = ID
            else:
                role = PREDICTOR
            schema[col] = ColumnSpec(role, kind)

        if outcome is not None:
            if levels is not None:
                schema[outcome] = ColumnSpec(OUTCOME, NOMINAL)
            if schema[outcome].kind == NOMINAL:
                data[outcome] = _as_categorical(data[outcome], levels)

        return cls(data, schema)

    @property
    def data(self) -> pd.DataFrame:
        """The underlying frame. Treat it as read-only."""
        return self._data

    @property
    def schema(self) -> dict[str, ColumnSpec]:
        return dict(self._schema)

    @property
    def columns(self) -> list[str]:
        return list(self._data.columns)

    @property
    def outcome(self) -> str | None:
        for col, spec in self._schema.items():
            if spec.role == OUTCOME:
                return col
        return None

    @property
    def levels(self) -> list | None:
        """Ordered outcome levels for a nominal outcome, else None."""
        outcome = self.outcome
        if outcome is None or self._schema[outcome].kind != NOMINAL:
            return None
        return list(self._data[outcome].cat.categories)

    @property
    def predictors(self) -> list[str]:
        return self.select(role=PREDICTOR)

    def select(self, role: str | None = None, kind: str | None = None) -> list[str]:
        """Column names with the given role and/or kind, in column order."""
        return [
            col
            for col, spec in self._schema.items()
            if (role is None or spec.role == role) and (kind is None or spec.kind == kind)
        ]

    def spec(self, column: str) -> ColumnSpec:
        if column not in self._schema:
            raise SchemaMismatch(f"Column '{column}' not found in dataset")
        return self._schema[column]

    def subset(self, rows: np.ndarray | Sequence[int]) -> "Dataset":
        """Rows at the given positions, keeping their original index labels."""
        return Dataset(self._data.iloc[np.asarray(rows, dtype=int)], self._schema)

    def replace(self, data: pd.DataFrame, schema: Mapping[str, ColumnSpec] | None = None) -> "Dataset":
        """A new Dataset over `data`, reusing known column specs."""
        merged = dict(self._schema)
        if schema:
            merged.update(schema)
        return Dataset(data, {c: merged[c] for c in data.columns if c in merged})

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"Dataset(rows={len(self)}, columns={len(self._schema)}, outcome={self.outcome!r})"


def _as_categorical(values: pd.Series, levels: Sequence | None) -> pd.Series:
    if levels is None:
        if isinstance(values.dtype, pd.CategoricalDtype):
            return values
        levels = sorted(values.dropna().unique().tolist())
    else:
        levels = _match_levels(values, levels)
    unknown = set(values.dropna().unique().tolist()) - set(levels)
    if unknown:
        raise SchemaMismatch(f"Outcome values {sorted(map(str, unknown))} are not in levels {list(levels)}")
    return pd.Series(
        pd.Categorical(values, categories=list(levels)), index=values.index, name=values.name
    )


def _match_levels(values: pd.Series, levels: Sequence) -> list:
    """Levels given as text (e.g. on the command line) take the matching outcome value."""
    observed = {str(v): v for v in values.dropna().unique().tolist()}
    return [level if level in observed.values() else observed.get(str(level), level) for level in levels]

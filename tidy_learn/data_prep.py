from __future__ import annotations

"""
Data preparation: reading a dataset from disk and the initial train/test split.
"""

import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Sequence

import numpy as np
import pandas as pd

from .constants import DEFAULT_PROP
from .dataset import Dataset
from .errors import EmptyStratum, InvalidProportion, SchemaMismatch

logger = logging.getLogger(__name__)


def read_dataset(
    csv_path: Path | str,
    outcome: str,
    levels: Sequence | None = None,
    ids: Iterable[str] = (),
    nominal: Iterable[str] = (),
) -> Dataset:
    """
    Load a CSV with a header row; column kinds are inferred from the values.

    `levels` fixes the order of a nominal outcome, first level = event.
    """
    df = pd.read_csv(csv_path)
    if outcome not in df.columns:
        raise SchemaMismatch(f"Outcome column '{outcome}' not found in {csv_path}")
    dataset = Dataset.from_frame(df, outcome=outcome, levels=levels, ids=ids, nominal=nominal)
    logger.info("Loaded %s from %s", dataset, csv_path)
    return dataset


@dataclass(frozen=True)
class Split:
    """
    Disjoint train/test row positions into `data`.

    Positions are iloc offsets; the rows keep their original index labels.
    """

    data: Dataset
    train: np.ndarray
    test: np.ndarray
    strata: str | None = None

    def __repr__(self) -> str:
        return f"<Training/Testing/Total> <{len(self.train)}/{len(self.test)}/{len(self.data)}>"


def _check_prop(prop: float):
    if not 0 < prop < 1:
        raise InvalidProportion(f"Proportion must be strictly between 0 and 1, got {prop}")


def strata_groups(dataset: Dataset, strata: str) -> list[np.ndarray]:
    """
    Row positions for each distinct value of `strata`, in order of first appearance.
    """
    if strata not in dataset.columns:
        raise SchemaMismatch(f"Stratification column '{strata}' not found in dataset")
    codes, _ = pd.factorize(dataset.data[strata], use_na_sentinel=False)
    groups = [np.flatnonzero(codes == code) for code in range(codes.max() + 1)] if len(codes) else []
    for values in groups:
        if len(values) < 2:
            value = dataset.data[strata].iloc[values[0]]
            raise EmptyStratum(f"Stratum {strata}={value!r} has fewer than 2 rows")
    return groups


def allocate_strata(sizes: Sequence[int], prop: float) -> list[int]:
    """
    Per-group train counts: floor(prop * n_g), then one extra row per group,
    largest groups first, until the total reaches floor(prop * N).
    """
    counts = [math.floor(prop * n) for n in sizes]
    remainder = math.floor(prop * sum(sizes)) - sum(counts)
    order = sorted(range(len(sizes)), key=lambda g: -sizes[g])
    for g in order[:remainder]:
        counts[g] += 1
    return counts


def initial_split(
    dataset: Dataset,
    prop: float = DEFAULT_PROP,
    strata: str | None = None,
    seed: int | None = None,
) -> Split:
    """Random train/test split, optionally stratified by a column."""
    _check_prop(prop)
    rng = np.random.default_rng(seed)

    if strata is None:
        order = rng.permutation(len(dataset))
        n_train = math.floor(prop * len(dataset))
        train, test = np.sort(order[:n_train]), np.sort(order[n_train:])
    else:
        groups = strata_groups(dataset, strata)
        counts = allocate_strata([len(g) for g in groups], prop)
        train_parts, test_parts = [], []
        for rows, n_train in zip(groups, counts):
            shuffled = rng.permutation(rows)
            train_parts.append(shuffled[:n_train])
            test_parts.append(shuffled[n_train:])
        train = np.sort(np.concatenate(train_parts))
        test = np.sort(np.concatenate(test_parts))

    logger.debug("Split %d rows into %d train / %d test", len(dataset), len(train), len(test))
    return Split(dataset, np.asarray(train, dtype=int), np.asarray(test, dtype=int), strata)


def training(split: Split) -> Dataset:
    return split.data.subset(split.train)


def testing(split: Split) -> Dataset:
    return split.data.subset(split.test)

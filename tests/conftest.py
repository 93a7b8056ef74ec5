"""Shared synthetic datasets for the tidy_learn test suite."""

import numpy as np
import pandas as pd
import pytest

from tidy_learn import Dataset


def make_classification_frame(n: int = 200, seed: int = 0) -> pd.DataFrame:
    rng = np.random.default_rng(seed)
    x1 = rng.normal(size=n)
    x2 = rng.normal(size=n)
    x3 = np.exp(rng.normal(size=n))
    color = rng.choice(["red", "green", "blue"], size=n)
    logit = 2.5 * x1 - 1.5 * x2
    event = rng.random(n) < 1.0 / (1.0 + np.exp(-logit))
    return pd.DataFrame(
        {
            "sample_id": np.arange(n),
            "x1": x1,
            "x2": x2,
            "x3": x3,
            "color": color,
            "label": np.where(event, "yes", "no"),
        }
    )


def make_regression_frame(n: int = 120, seed: int = 1) -> pd.DataFrame:
    rng = np.random.default_rng(seed)
    x1 = rng.normal(size=n)
    x2 = rng.normal(size=n)
    y = 3.0 + 2.0 * x1 - 1.0 * x2 + rng.normal(scale=0.1, size=n)
    return pd.DataFrame({"x1": x1, "x2": x2, "y": y})


@pytest.fixture
def classification_frame():
    return make_classification_frame()


@pytest.fixture
def classification_data(classification_frame):
    """Binary outcome 'label' with levels yes (event) / no."""
    return Dataset.from_frame(
        classification_frame, outcome="label", levels=["yes", "no"], ids=["sample_id"]
    )


@pytest.fixture
def regression_data():
    return Dataset.from_frame(make_regression_frame(), outcome="y")

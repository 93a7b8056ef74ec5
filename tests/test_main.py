"""Smoke tests for the command-line driver and its configuration."""

import pandas as pd
import pytest

import main
from tidy_learn import InvalidProportion
from tidy_learn.config import ExperimentConfig

from conftest import make_classification_frame


@pytest.fixture
def csv_path(tmp_path):
    path = tmp_path / "data.csv"
    make_classification_frame().to_csv(path, index=False)
    return path


def _args(csv_path, *extra):
    return main.build_arg_parser().parse_args(
        ["--csv-path", str(csv_path), "--outcome", "label", "--levels", "yes,no", "--ids", "sample_id", *extra]
    )


class TestConfig:
    def test_from_args(self, csv_path):
        config = ExperimentConfig.from_args(_args(csv_path, "--log-columns", "x3", "--no-strata"))
        assert config.levels == ["yes", "no"]
        assert config.ids == ["sample_id"]
        assert config.log_columns == ["x3"]
        assert config.strata is None
        assert config.metrics is None

    def test_strata_defaults_to_outcome(self, csv_path):
        assert ExperimentConfig.from_args(_args(csv_path)).strata == "label"

    def test_invalid_prop(self, csv_path):
        with pytest.raises(InvalidProportion):
            ExperimentConfig.from_args(_args(csv_path, "--prop", "1.2"))


class TestExperiments:
    def test_holdout_writes_metrics(self, csv_path, tmp_path, capsys):
        output = tmp_path / "out" / "metrics.csv"
        main.main(_args(csv_path, "--log-columns", "x3", "--output", str(output)))
        table = pd.read_csv(output)
        assert list(table["metric"]) == ["accuracy", "roc_auc"]
        assert "Train size: 150, Test size: 50" in capsys.readouterr().out

    def test_resample(self, csv_path, tmp_path):
        output = tmp_path / "cv.csv"
        main.main(_args(csv_path, "--experiment", "resample", "--folds", "3", "--metrics", "accuracy,sens", "--output", str(output)))
        table = pd.read_csv(output)
        assert list(table["metric"]) == ["accuracy", "sens"]
        assert (table["n"] == 3).all()

    def test_tune(self, csv_path, capsys):
        main.main(_args(csv_path, "--experiment", "tune", "--folds", "3", "--grid-levels", "2", "--engine", "gd"))
        out = capsys.readouterr().out
        assert "Selected: {'penalty':" in out
        assert "finalized, test set" in out

    def test_integer_outcome_with_cli_levels(self, tmp_path):
        frame = make_classification_frame()
        frame["label"] = (frame["label"] == "yes").astype(int)
        path = tmp_path / "coded.csv"
        frame.to_csv(path, index=False)
        output = tmp_path / "coded_metrics.csv"
        args = main.build_arg_parser().parse_args(
            ["--csv-path", str(path), "--outcome", "label", "--levels", "1,0", "--ids", "sample_id", "--output", str(output)]
        )
        main.main(args)
        table = pd.read_csv(output)
        assert list(table["metric"]) == ["accuracy", "roc_auc"]
        assert table["estimate"].notna().all()

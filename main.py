from __future__ import annotations

"""
CLI entrypoint for the modelling experiments. Pick one via --experiment:
holdout (split, fit, score the test set), resample (v-fold CV on the training
set) or tune (grid search, select best, finalize, last fit).
"""

import argparse
import logging
from pathlib import Path

import pandas as pd

from tidy_learn import (
    Estimator,
    Recipe,
    Workflow,
    finalize_workflow,
    fit_resamples,
    grid_regular,
    initial_split,
    last_fit,
    metric_set,
    read_dataset,
    select_best,
    show_best,
    training,
    tune,
    tune_grid,
    vfold_cv,
)
from tidy_learn.config import ExperimentConfig, setup_logging
from tidy_learn.constants import CLASSIFICATION, MODES
from tidy_learn.models import ALGORITHMS

logger = logging.getLogger("main")

# Hyperparameter searched by --experiment tune, per algorithm: (range, log scale?)
TUNING_RANGES = {
    "logistic_reg": {"penalty": ((1e-4, 1.0), True)},
    "linear_reg": {"penalty": ((1e-4, 1.0), True)},
    "rand_forest": {"min_n": ((2, 20), False)},
    "decision_tree": {"tree_depth": ((1, 15), False), "cost_complexity": ((1e-5, 1e-1), True)},
    "nearest_neighbor": {"neighbors": ((1, 25), False)},
}


def describe_dataset(dataset, split):
    """Print a short summary of dataset size, outcome balance and split sizes."""
    print(f"Rows: {len(dataset)}, predictors: {len(dataset.predictors)}, outcome: {dataset.outcome}")
    if dataset.levels is not None:
        counts = dataset.data[dataset.outcome].value_counts(normalize=True).reindex(dataset.levels)
        balance = ", ".join(f"{level}={share:.3f}" for level, share in counts.items())
        print(f"Outcome levels (first = event): {balance}")
    print(f"Train size: {len(split.train)}, Test size: {len(split.test)}")


def print_metrics(label: str, table: pd.DataFrame):
    """Format a metric table from a metric set or collect_metrics()."""
    value_col = "estimate" if "estimate" in table.columns else "mean"
    parts = [f"{row.metric} {getattr(row, value_col):.3f}" for row in table.itertuples()]
    print(f"[{label}] " + " | ".join(parts))


def build_recipe(config: ExperimentConfig) -> Recipe:
    recipe = Recipe()
    if config.log_columns:
        recipe = recipe.step_log(config.log_columns, base=10)
    recipe = recipe.step_dummy().step_zv()
    if config.corr_threshold is not None:
        recipe = recipe.step_corr(threshold=config.corr_threshold)
    return recipe.step_normalize()


def build_workflow(config: ExperimentConfig, tuned: bool = False) -> Workflow:
    params = {}
    if tuned:
        params = {name: tune() for name in TUNING_RANGES[config.algorithm]}
    model = Estimator(config.algorithm, config.mode, engine=config.engine, seed=config.seed, **params)
    return Workflow(build_recipe(config), model)


def build_metrics(config: ExperimentConfig):
    return metric_set(*config.metrics) if config.metrics else None


def build_arg_parser():
    """CLI parser with knobs for data, splits, model and experiment choice."""
    parser = argparse.ArgumentParser(
        description="Split, preprocess, fit, resample and tune a model on a CSV dataset."
    )
    parser.add_argument("--csv-path", type=Path, required=True)
    parser.add_argument("--outcome", required=True, help="Outcome column name.")
    parser.add_argument(
        "--experiment",
        choices=["holdout", "resample", "tune"],
        default="holdout",
        help="holdout: fit on train, score test; resample: v-fold CV; tune: grid search + last fit.",
    )
    parser.add_argument("--mode", choices=list(MODES), default=CLASSIFICATION)
    parser.add_argument(
        "--levels",
        help="Comma-separated outcome levels; the first one is the event of interest.",
    )
    parser.add_argument("--ids", help="Comma-separated id columns (kept, not modelled).")
    parser.add_argument("--prop", type=float, default=0.75, help="Training proportion.")
    parser.add_argument("--no-strata", action="store_true", help="Do not stratify by outcome.")
    parser.add_argument("--folds", type=int, default=10)
    parser.add_argument("--repeats", type=int, default=1)
    parser.add_argument("--model", choices=sorted(ALGORITHMS), default="logistic_reg")
    parser.add_argument("--engine", default="sklearn", help="Model engine, e.g. sklearn or gd.")
    parser.add_argument("--metrics", help="Comma-separated metric names (default per mode).")
    parser.add_argument("--log-columns", help="Comma-separated columns to log10-transform.")
    parser.add_argument("--corr-threshold", type=float, default=0.9)
    parser.add_argument("--grid-levels", type=int, default=5, help="Values per tuned parameter.")
    parser.add_argument("--n-jobs", type=int, default=1, help="Worker processes for folds.")
    parser.add_argument(
        "--random-state",
        type=int,
        default=42,
        help="Random seed for splits and folds.",
    )
    parser.add_argument("--output", type=Path, help="Write the final metric table to this CSV.")
    parser.add_argument("--log-level", default="WARNING")
    return parser


def run_holdout(config: ExperimentConfig, dataset, split) -> pd.DataFrame:
    """Fit on the training split and score the held-out rows."""
    result = last_fit(build_workflow(config), split, build_metrics(config))
    print_metrics(f"{config.algorithm} test set", result.metrics)
    return result.metrics


def run_resample(config: ExperimentConfig, dataset, split) -> pd.DataFrame:
    """v-fold cross-validation on the training split."""
    folds = vfold_cv(
        training(split), v=config.folds, repeats=config.repeats, strata=config.strata, seed=config.seed
    )
    results = fit_resamples(build_workflow(config), folds, build_metrics(config), n_jobs=config.n_jobs)
    summary = results.collect_metrics()
    print_metrics(f"{config.algorithm} {folds.method}", summary)
    print(summary.to_string(index=False))
    if len(results.notes):
        print(f"\n{len(results.notes)} fold note(s):")
        print(results.notes.to_string(index=False))
    return summary


def run_tune(config: ExperimentConfig, dataset, split) -> pd.DataFrame:
    """Grid search on v-fold CV, then finalize the best point and score the test set."""
    ranges = TUNING_RANGES[config.algorithm]
    grid = grid_regular(
        {name: spec for name, (spec, _) in ranges.items()},
        levels=config.grid_levels,
        log_scale=[name for name, (_, log) in ranges.items() if log],
    )
    folds = vfold_cv(
        training(split), v=config.folds, repeats=config.repeats, strata=config.strata, seed=config.seed
    )
    workflow = build_workflow(config, tuned=True)
    results = tune_grid(workflow, folds, grid, build_metrics(config), n_jobs=config.n_jobs)

    metric = results.metric_set.names[0]
    print(f"Top grid points by {metric}:")
    print(show_best(results, metric).to_string(index=False))

    best = select_best(results, metric)
    print(f"\nSelected: {best}")
    final = last_fit(finalize_workflow(workflow, best), split, results.metric_set)
    print_metrics(f"{config.algorithm} finalized, test set", final.metrics)
    return final.metrics


def main(args: argparse.Namespace | None = None):
    """Dispatch to the selected experiment."""
    args = args or build_arg_parser().parse_args()
    setup_logging(args.log_level)
    config = ExperimentConfig.from_args(args)

    dataset = read_dataset(config.csv_path, config.outcome, levels=config.levels, ids=config.ids)
    split = initial_split(dataset, prop=config.prop, strata=config.strata, seed=config.seed)
    describe_dataset(dataset, split)

    if args.experiment == "holdout":
        table = run_holdout(config, dataset, split)
    elif args.experiment == "resample":
        table = run_resample(config, dataset, split)
    else:
        table = run_tune(config, dataset, split)

    if config.output:
        config.output.parent.mkdir(parents=True, exist_ok=True)
        table.to_csv(config.output, index=False)
        logger.info("Wrote %s", config.output)


if __name__ == "__main__":
    main()

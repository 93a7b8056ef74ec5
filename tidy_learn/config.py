"""Experiment configuration and logging setup for the command-line driver."""

from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass, field
from pathlib import Path

from .constants import CLASSIFICATION, DEFAULT_FOLDS, DEFAULT_PROP, DEFAULT_SEED, MODES
from .errors import InvalidProportion

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass
class ExperimentConfig:
    """Everything one run of the driver needs."""
    csv_path: Path
    outcome: str
    mode: str = CLASSIFICATION
    levels: list[str] | None = None
    ids: list[str] = field(default_factory=list)
    prop: float = DEFAULT_PROP
    stratify: bool = True
    folds: int = DEFAULT_FOLDS
    repeats: int = 1
    seed: int = DEFAULT_SEED
    n_jobs: int = 1
    algorithm: str = "logistic_reg"
    engine: str = "sklearn"
    metrics: list[str] | None = None
    log_columns: list[str] = field(default_factory=list)
    corr_threshold: float | None = 0.9
    grid_levels: int = 5
    output: Path | None = None

    def __post_init__(self):
        if self.mode not in MODES:
            raise ValueError(f"mode must be one of {MODES}, got {self.mode!r}")
        if not 0 < self.prop < 1:
            raise InvalidProportion(f"Train proportion must be between 0 and 1, got {self.prop}")

    @property
    def strata(self) -> str | None:
        return self.outcome if self.stratify and self.mode == CLASSIFICATION else None

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "ExperimentConfig":
        def _split(value: str | None) -> list[str]:
            return [v.strip() for v in value.split(",") if v.strip()] if value else []

        return cls(
            csv_path=args.csv_path,
            outcome=args.outcome,
            mode=args.mode,
            levels=_split(args.levels) or None,
            ids=_split(args.ids),
            prop=args.prop,
            stratify=not args.no_strata,
            folds=args.folds,
            repeats=args.repeats,
            seed=args.random_state,
            n_jobs=args.n_jobs,
            algorithm=args.model,
            engine=args.engine,
            metrics=_split(args.metrics) or None,
            log_columns=_split(args.log_columns),
            corr_threshold=args.corr_threshold,
            grid_levels=args.grid_levels,
            output=args.output,
        )


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
    # Keep third-party chatter out of experiment output.
    logging.getLogger("joblib").setLevel(logging.WARNING)

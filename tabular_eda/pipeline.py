"""
Stage runner and command-line entry point.

    tabular-eda wine --data data/winequality.csv --output-dir reports/wine
"""

import argparse
import logging
import sys
import time
from dataclasses import replace
from typing import Any, List, Optional

from tabular_eda.config import DATASETS, PipelineConfig, load_config, setup_logging
from tabular_eda.datasets import alzheimer, sleep_health, wine
from tabular_eda.datasets.common import AnalysisReport, Stage
from tabular_eda.errors import ConfigurationError, PipelineError

logger = logging.getLogger(__name__)

DATASET_MODULES = {
    "wine": wine,
    "alzheimer": alzheimer,
    "sleep-health": sleep_health,
}


def run_stages(stages: List[Stage], value: Any) -> Any:
    """
    Feeds ``value`` through each stage in order.

    An exception escaping a stage is re-raised as PipelineError naming it.
    """
    for stage in stages:
        logger.info("Stage '%s' starting...", stage.name)
        start = time.perf_counter()
        try:
            value = stage.func(value)
        except Exception as e:
            raise PipelineError(stage.name, e) from e
        logger.info("Stage '%s' finished in %.2fs", stage.name, time.perf_counter() - start)
    return value


def run(config: PipelineConfig) -> AnalysisReport:
    stages = DATASET_MODULES[config.dataset].build_stages(config)
    return run_stages(stages, config.data_path)


def apply_overrides(config: PipelineConfig, k_max=None, seed=None, train_fraction=None) -> PipelineConfig:
    """Applies the command-line flags that reach into nested sections."""
    sweep, split = config.sweep, config.split
    if k_max is not None:
        sweep = replace(sweep, k_max=k_max)
    if seed is not None:
        sweep = replace(sweep, random_state=seed)
        split = replace(split, random_state=seed)
    if train_fraction is not None:
        split = replace(split, train_fraction=train_fraction)
    return replace(config, sweep=sweep, split=split)


def build_config(args: argparse.Namespace) -> PipelineConfig:
    if args.config:
        config = load_config(args.config, dataset=args.dataset, data_path=args.data,
                             output_dir=args.output_dir)
    else:
        config = PipelineConfig(dataset=args.dataset, data_path=args.data, output_dir=args.output_dir)
    return apply_overrides(config, k_max=args.k_max, seed=args.seed, train_fraction=args.train_fraction)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tabular-eda",
                                     description="Exploratory analysis pipelines for tabular datasets")
    parser.add_argument("dataset", choices=DATASETS, help="Which dataset pipeline to run")
    parser.add_argument("--data", required=True, help="Path to the delimited input file")
    parser.add_argument("--output-dir", default=None, help="Directory for rendered figures")
    parser.add_argument("--config", default=None, help="JSON configuration file")
    parser.add_argument("--k-max", type=int, default=None, help="Largest cluster count in the k-means sweep")
    parser.add_argument("--seed", type=int, default=None, help="Random seed for the sweep and the split")
    parser.add_argument("--train-fraction", type=float, default=None, help="Share of rows used for training")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        setup_logging(args.log_level)
        config = build_config(args)
    except (ConfigurationError, OSError) as e:
        logger.error("Invalid configuration: %s", e)
        return 2

    logger.info("Running '%s' pipeline on %s", config.dataset, config.data_path)
    try:
        report = run(config)
    except PipelineError as e:
        logger.error(str(e))
        return 1

    saved = [path for path in report.figures.values() if path]
    logger.info("Pipeline completed: %d tables, %d figures saved.", len(report.tables), len(saved))
    return 0


if __name__ == "__main__":
    sys.exit(main())

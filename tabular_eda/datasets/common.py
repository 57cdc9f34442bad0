"""Pieces shared by the dataset pipelines."""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import pandas as pd

from tabular_eda.data_preprocessing.data_preprocessing import describe_table
from tabular_eda.errors import DataQualityError
from tabular_eda import visualization as viz

logger = logging.getLogger(__name__)


@dataclass
class Stage:
    """One named step of a pipeline, taking and returning an explicit value."""

    name: str
    func: Callable[[Any], Any]


@dataclass
class AnalysisReport:
    """Summary tables and the figures rendered for them (name -> saved path or None)."""

    tables: Dict[str, Any] = field(default_factory=dict)
    figures: Dict[str, Optional[str]] = field(default_factory=dict)


class FigureWriter:
    """Names figure files under an optional output directory and records them in a report."""

    def __init__(self, report: AnalysisReport, output_dir: Optional[str] = None):
        self.report = report
        self.output_dir = output_dir

    def path(self, name: str) -> Optional[str]:
        path = os.path.join(self.output_dir, f"{name}.png") if self.output_dir else None
        self.report.figures[name] = path
        return path


def coerce_numeric(df: pd.DataFrame, columns: List[str]) -> pd.DataFrame:
    """
    Converts columns to numbers. Entries that were present but do not parse
    raise DataQualityError; entries that were missing stay missing.
    """
    coerced = df.copy()
    for col in columns:
        converted = pd.to_numeric(coerced[col], errors='coerce')
        bad = coerced[col].notna() & converted.isna()
        if bad.any():
            examples = coerced.loc[bad, col].astype(str).unique()[:5].tolist()
            raise DataQualityError(f"Column '{col}' has non-numeric values: {examples}")
        coerced[col] = converted
    return coerced


def drop_constant_columns(df: pd.DataFrame, protected: List[str]) -> pd.DataFrame:
    """Drops columns holding a single value (ignoring missing), except those in ``protected``."""
    constant = [c for c in df.columns if c not in protected and df[c].nunique(dropna=True) <= 1]
    if constant:
        logger.info("Dropping constant columns: %s", constant)
    return df.drop(columns=constant)


def log_table(title: str, table: pd.DataFrame) -> None:
    with pd.option_context("display.width", 160, "display.max_columns", 30, "display.precision", 4):
        logger.info("%s\n%s", title, table.to_string())


def profile(df: pd.DataFrame, output_dir: Optional[str] = None) -> pd.DataFrame:
    """
    Logs descriptive statistics of the loaded table and, when it has gaps and
    ``output_dir`` is set, saves a heatmap of where values are missing.
    The table is passed on unchanged.
    """
    log_table("Descriptive statistics:", describe_table(df))
    if output_dir and df.isnull().any().any():
        viz.missing_values_heatmap(df, output_path=os.path.join(output_dir, "missing_values.png"))
    return df

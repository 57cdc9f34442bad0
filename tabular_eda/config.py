"""Run configuration for the analysis pipelines."""

import json
import logging
import sys
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, Optional, Tuple

from tabular_eda.errors import ConfigurationError

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"

CLASSIFIER_KINDS = ("random_forest", "knn")
IMPUTATION_STRATEGIES = ("drop", "median", "mice")
DATASETS = ("wine", "alzheimer", "sleep-health")


def setup_logging(level: str = "INFO") -> None:
    """Set up logging configuration."""
    numeric_level = logging.getLevelName(level.upper()) if isinstance(level, str) else level
    if not isinstance(numeric_level, int):
        raise ConfigurationError(f"Unknown log level: {level!r}")
    logging.basicConfig(
        level=numeric_level,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )


@dataclass(frozen=True)
class SweepConfig:
    """Parameters of the k-means cluster count sweep."""

    k_max: int = 10
    max_iter: int = 300
    tol: float = 1e-4
    random_state: int = 42
    n_init: int = 10
    n_jobs: Optional[int] = None
    final_k: int = 3

    def __post_init__(self):
        if self.k_max < 1:
            raise ConfigurationError(f"k_max must be >= 1, got {self.k_max}")
        if self.max_iter < 1:
            raise ConfigurationError(f"max_iter must be >= 1, got {self.max_iter}")
        if self.tol < 0:
            raise ConfigurationError(f"tol must be non-negative, got {self.tol}")
        if self.n_init < 1:
            raise ConfigurationError(f"n_init must be >= 1, got {self.n_init}")
        if self.final_k < 1:
            raise ConfigurationError(f"final_k must be >= 1, got {self.final_k}")


@dataclass(frozen=True)
class SplitConfig:
    """Train/test partition settings."""

    train_fraction: float = 0.8
    random_state: int = 42
    stratify: bool = True

    def __post_init__(self):
        if not 0 < self.train_fraction < 1:
            raise ConfigurationError(
                f"train_fraction must lie strictly between 0 and 1, got {self.train_fraction}"
            )


@dataclass(frozen=True)
class ClassifierConfig:
    kind: str = "random_forest"
    params: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.kind not in CLASSIFIER_KINDS:
            raise ConfigurationError(
                f"Unknown classifier kind {self.kind!r}; expected one of {CLASSIFIER_KINDS}"
            )


@dataclass(frozen=True)
class BloodPressureBand:
    """
    One named blood-pressure band.

    Ranges are half-open ``[low, high)`` in mm Hg; ``None`` leaves that side
    unbounded. ``combine`` decides whether both readings ("and") or either
    reading ("or") must fall inside the band.
    """

    name: str
    systolic: Tuple[Optional[float], Optional[float]] = (None, None)
    diastolic: Tuple[Optional[float], Optional[float]] = (None, None)
    combine: str = "and"

    def __post_init__(self):
        if self.combine not in ("and", "or"):
            raise ConfigurationError(f"Band {self.name!r}: combine must be 'and' or 'or'")
        for label, (low, high) in (("systolic", self.systolic), ("diastolic", self.diastolic)):
            if low is not None and high is not None and low >= high:
                raise ConfigurationError(f"Band {self.name!r}: empty {label} range [{low}, {high})")

    @staticmethod
    def _in_range(value, bounds):
        low, high = bounds
        if low is not None and value < low:
            return False
        if high is not None and value >= high:
            return False
        return True

    def contains(self, systolic, diastolic):
        sys_ok = self._in_range(systolic, self.systolic)
        dia_ok = self._in_range(diastolic, self.diastolic)
        return (sys_ok and dia_ok) if self.combine == "and" else (sys_ok or dia_ok)


DEFAULT_BP_BANDS = (
    BloodPressureBand("Normal", systolic=(None, 120), diastolic=(None, 80), combine="and"),
    BloodPressureBand("Elevated", systolic=(120, 130), diastolic=(None, 80), combine="and"),
    BloodPressureBand("Stage 1 Hypertension", systolic=(130, 140), diastolic=(80, 90), combine="or"),
    BloodPressureBand("Stage 2 Hypertension", systolic=(140, None), diastolic=(90, None), combine="or"),
)


@dataclass(frozen=True)
class BloodPressureBands:
    """
    Ordered band list, least to most severe.

    Bands may overlap; ``overlap_policy`` picks the winner when a reading
    matches several: "first_match" keeps the earliest band in the list,
    "most_severe" keeps the latest.
    """

    bands: Tuple[BloodPressureBand, ...] = DEFAULT_BP_BANDS
    overlap_policy: str = "most_severe"

    def __post_init__(self):
        if not self.bands:
            raise ConfigurationError("At least one blood-pressure band is required.")
        if self.overlap_policy not in ("first_match", "most_severe"):
            raise ConfigurationError(
                f"overlap_policy must be 'first_match' or 'most_severe', got {self.overlap_policy!r}"
            )
        names = [band.name for band in self.bands]
        if len(set(names)) != len(names):
            raise ConfigurationError(f"Duplicate blood-pressure band names: {names}")

    @property
    def names(self):
        return [band.name for band in self.bands]

    def categorize(self, systolic, diastolic):
        """Returns the band name for one reading, or None when no band matches."""
        matches = [band.name for band in self.bands if band.contains(systolic, diastolic)]
        if not matches:
            return None
        return matches[0] if self.overlap_policy == "first_match" else matches[-1]


@dataclass(frozen=True)
class HierarchicalConfig:
    n_rows: int = 50
    method: str = "average"
    n_clusters: int = 3
    cut_height: Optional[float] = 30.0

    def __post_init__(self):
        if self.n_rows < 2:
            raise ConfigurationError(f"n_rows must be >= 2, got {self.n_rows}")
        if self.n_clusters < 1:
            raise ConfigurationError(f"n_clusters must be >= 1, got {self.n_clusters}")


def _default_classifier_for(dataset):
    if dataset == "sleep-health":
        return ClassifierConfig(kind="knn", params={"n_neighbors": 5})
    return ClassifierConfig(kind="random_forest", params={"n_estimators": 100})


@dataclass(frozen=True)
class PipelineConfig:
    """Everything one dataset run needs."""

    dataset: str
    data_path: str
    output_dir: Optional[str] = None
    sweep: SweepConfig = field(default_factory=SweepConfig)
    split: SplitConfig = field(default_factory=SplitConfig)
    classifier: Optional[ClassifierConfig] = None
    bp_bands: BloodPressureBands = field(default_factory=BloodPressureBands)
    hierarchical: HierarchicalConfig = field(default_factory=HierarchicalConfig)
    imputation: str = "median"
    fold_converted: bool = False

    def __post_init__(self):
        if self.dataset not in DATASETS:
            raise ConfigurationError(f"Unknown dataset {self.dataset!r}; expected one of {DATASETS}")
        if self.imputation not in IMPUTATION_STRATEGIES:
            raise ConfigurationError(
                f"Unknown imputation strategy {self.imputation!r}; expected one of {IMPUTATION_STRATEGIES}"
            )
        if self.classifier is None:
            object.__setattr__(self, "classifier", _default_classifier_for(self.dataset))

    def with_overrides(self, **overrides):
        """Returns a copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def _build(cls, raw, name):
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Section {name!r} must be a JSON object")
    known = {f.name for f in fields(cls)}
    unknown = set(raw) - known
    if unknown:
        raise ConfigurationError(f"Unknown keys in {name!r}: {sorted(unknown)}")
    return cls(**raw)


def _build_bands(raw):
    raw = dict(raw)
    if "bands" in raw:
        raw["bands"] = tuple(
            BloodPressureBand(
                name=band["name"],
                systolic=tuple(band.get("systolic", (None, None))),
                diastolic=tuple(band.get("diastolic", (None, None))),
                combine=band.get("combine", "and"),
            )
            for band in raw["bands"]
        )
    return _build(BloodPressureBands, raw, "bp_bands")


def config_from_dict(raw: Dict[str, Any]) -> PipelineConfig:
    """Builds a PipelineConfig from plain (JSON-decoded) data."""
    raw = dict(raw)
    sections = {
        "sweep": lambda r: _build(SweepConfig, r, "sweep"),
        "split": lambda r: _build(SplitConfig, r, "split"),
        "classifier": lambda r: _build(ClassifierConfig, r, "classifier"),
        "hierarchical": lambda r: _build(HierarchicalConfig, r, "hierarchical"),
        "bp_bands": _build_bands,
    }
    for key, builder in sections.items():
        if key in raw and raw[key] is not None:
            raw[key] = builder(raw[key])
    try:
        return _build(PipelineConfig, raw, "pipeline")
    except (KeyError, TypeError) as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def load_config(path: str, **overrides) -> PipelineConfig:
    """
    Reads a JSON configuration file.

    Top-level keyword overrides (e.g. ``dataset``, ``data_path``) replace the
    file's values when they are not None.
    """
    with open(path, encoding="utf-8") as fh:
        try:
            raw = json.load(fh)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"{path} is not valid JSON: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigurationError(f"{path} must hold a JSON object")
    raw.update({k: v for k, v in overrides.items() if v is not None})
    return config_from_dict(raw)

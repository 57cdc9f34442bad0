"""
Wine quality: cleaning, scaling and k-means / hierarchical clustering.

Stages: load -> clean -> prepare -> fit -> report.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

import pandas as pd

from tabular_eda.clustering.cluster import ClusterEvaluator
from tabular_eda.clustering.feature_selection import FeatureSelector
from tabular_eda.clustering.sweep import ClusterAssignment, HierarchicalResult, SweepResult, hierarchical_clusters
from tabular_eda.config import HierarchicalConfig, PipelineConfig, SweepConfig
from tabular_eda.data_preprocessing.data_preprocessing import (
    CategoryCodec,
    assert_complete,
    canonicalize_categories,
    compute_missing,
    drop_incomplete_rows,
    load_table,
    min_max_normalize,
    require_columns,
    standardize,
)
from tabular_eda.data_preprocessing.var_dict import (
    WINE_COLOR_CODES,
    WINE_COLOR_VOCAB,
    WINE_GOOD_CODES,
    WINE_NUMERIC_COLS,
    WINE_RENAME,
    WINE_REQUIRED_COLS,
)
from tabular_eda.datasets.common import AnalysisReport, FigureWriter, Stage, coerce_numeric, log_table, profile
from tabular_eda.errors import DataQualityError
from tabular_eda import visualization as viz

logger = logging.getLogger(__name__)

# "good" is a thresholded copy of "quality" and would duplicate it in the distance.
COLLINEAR_DROP = ["good"]


@dataclass
class WinePrepared:
    cleaned: pd.DataFrame
    numeric: pd.DataFrame
    normalized: pd.DataFrame
    scaled: pd.DataFrame
    dropped: List[str] = field(default_factory=list)


@dataclass
class WineFit:
    prepared: WinePrepared
    sweep: SweepResult
    final: ClusterAssignment
    anova: pd.DataFrame
    chi2: pd.DataFrame
    hierarchical: HierarchicalResult
    hierarchical_by_height: Optional[HierarchicalResult] = None


def load(path: str) -> pd.DataFrame:
    df = load_table(path).rename(columns=WINE_RENAME)
    require_columns(df, WINE_REQUIRED_COLS)
    return df


def clean(df: pd.DataFrame) -> pd.DataFrame:
    """Keeps the declared columns, drops incomplete rows and fixes types and vocabularies."""
    missing = compute_missing(df[WINE_REQUIRED_COLS], normalize=False)
    missing = missing[missing['missing'] > 0]
    if not missing.empty:
        log_table("Missing values per column:", missing)

    cleaned = drop_incomplete_rows(df[WINE_REQUIRED_COLS])
    cleaned = coerce_numeric(cleaned, WINE_NUMERIC_COLS + ["quality", "good"])
    cleaned = canonicalize_categories(cleaned, "color", WINE_COLOR_VOCAB)

    unexpected_good = sorted(set(cleaned["good"].unique()) - set(WINE_GOOD_CODES))
    if unexpected_good:
        raise DataQualityError(f"Column 'good' must be 0/1, found {unexpected_good}")
    cleaned["quality"] = cleaned["quality"].astype(int)
    cleaned["good"] = cleaned["good"].astype(int)

    assert_complete(cleaned)
    logger.info("Cleaned wine table: %s; colours %s; qualities %s", cleaned.shape,
                cleaned["color"].value_counts().to_dict(), sorted(cleaned["quality"].unique()))
    return cleaned


def prepare(cleaned: pd.DataFrame) -> WinePrepared:
    """
    Codes the categorical columns, screens features and builds the min-max
    and z-score matrices.
    """
    numeric = cleaned.copy()
    numeric["color"] = CategoryCodec("color", WINE_COLOR_CODES).encode(numeric["color"])
    numeric["good"] = CategoryCodec("good", WINE_GOOD_CODES).encode(numeric["good"])

    keep, dropped = FeatureSelector(numeric).select_features(always_drop=COLLINEAR_DROP)
    normalized = min_max_normalize(numeric)
    scaled = standardize(numeric[keep])
    return WinePrepared(cleaned=cleaned, numeric=numeric, normalized=normalized, scaled=scaled, dropped=dropped)


def fit(prepared: WinePrepared, sweep_config: SweepConfig = SweepConfig(),
        hierarchical_config: HierarchicalConfig = HierarchicalConfig()) -> WineFit:
    evaluator = ClusterEvaluator(
        prepared.scaled,
        k_max=sweep_config.k_max,
        random_state=sweep_config.random_state,
        max_iter=sweep_config.max_iter,
        tol=sweep_config.tol,
        n_init=sweep_config.n_init,
        n_jobs=sweep_config.n_jobs,
        profile_df=prepared.cleaned,
    )
    sweep = evaluator.run_sweep()
    final = evaluator.run_final_model(sweep_config.final_k)
    anova, chi2 = evaluator.calculate_cluster_statistics()

    head = prepared.numeric.head(hierarchical_config.n_rows)
    by_count = hierarchical_clusters(head, n_clusters=min(hierarchical_config.n_clusters, len(head)),
                                     method=hierarchical_config.method)
    by_height = None
    if hierarchical_config.cut_height is not None:
        by_height = hierarchical_clusters(head, height=hierarchical_config.cut_height,
                                          method=hierarchical_config.method)

    return WineFit(prepared=prepared, sweep=sweep, final=final, anova=anova, chi2=chi2,
                   hierarchical=by_count, hierarchical_by_height=by_height)


def report(result: WineFit, output_dir: Optional[str] = None,
           hierarchical_config: HierarchicalConfig = HierarchicalConfig()) -> AnalysisReport:
    out = AnalysisReport()
    figures = FigureWriter(out, output_dir)
    cleaned = result.prepared.cleaned
    summary = result.sweep.summary()

    viz.plot_histogram_by(cleaned, "quality", "color", figures.path("quality_by_color"),
                          title="Wine Quality in Red and White Wine")
    viz.plot_jitter_by(cleaned, "quality", "alcohol", "color", figures.path("alcohol_by_quality"),
                       title="Alcohol content based on wine quality in Red and White wine")
    viz.correlation_heatmap(result.prepared.scaled, figures.path("correlations"))

    assignments = result.sweep.assignments(result.prepared.scaled)
    viz.plot_cluster_assignments(assignments, "citric_acid", "residual_sugar", figures.path("assignments_by_k"))
    viz.plot_elbow(summary, figures.path("elbow"))

    final_assignments = result.prepared.scaled.assign(**{"k": result.final.k, ".cluster": result.final.labels})
    viz.plot_cluster_assignments(final_assignments, "citric_acid", "residual_sugar",
                                 figures.path(f"assignments_k{result.final.k}"))
    viz.plot_cluster_sizes(result.final.labels, figures.path("cluster_sizes"),
                           title=f"K-Means cluster sizes (k={result.final.k})")

    height = result.hierarchical_by_height
    viz.plot_dendrogram(result.hierarchical.linkage, figures.path("dendrogram"),
                        k_cut=hierarchical_config.n_clusters,
                        height=hierarchical_config.cut_height if height is not None else None,
                        method=result.hierarchical.method)

    out.tables["sweep_summary"] = summary
    out.tables["clusters"] = result.sweep.clusters()
    out.tables["final_sizes"] = result.final.labels.value_counts().sort_index()
    out.tables["anova"] = result.anova
    out.tables["chi2"] = result.chi2
    out.tables["hierarchical_sizes"] = result.hierarchical.sizes
    if height is not None:
        out.tables["hierarchical_height_sizes"] = height.sizes

    log_table("K-Means sweep summary:", summary)
    log_table(f"Cluster sizes (k={result.final.k}):", out.tables["final_sizes"].to_frame("size"))
    log_table("Hierarchical cluster sizes:", result.hierarchical.sizes.to_frame("size"))
    return out


def build_stages(config: PipelineConfig) -> List[Stage]:
    return [
        Stage("load", load),
        Stage("profile", lambda df: profile(df, config.output_dir)),
        Stage("clean", clean),
        Stage("prepare", prepare),
        Stage("fit", lambda prepared: fit(prepared, config.sweep, config.hierarchical)),
        Stage("report", lambda result: report(result, config.output_dir, config.hierarchical)),
    ]

"""
OASIS longitudinal MRI table: dementia group classification with a random forest
and rank-based comparisons of clinical and imaging features across groups.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

import pandas as pd

from tabular_eda.classification.classifier import (
    EvaluationReport,
    FittedClassifier,
    TrainTestSplit,
    encode_features,
    evaluate,
    fit_classifier,
    permutation_importances,
    split_train_test,
)
from tabular_eda.config import ClassifierConfig, PipelineConfig, SplitConfig
from tabular_eda.data_preprocessing.data_preprocessing import (
    CategoryCodec,
    assert_complete,
    canonicalize_categories,
    compute_missing,
    drop_incomplete_rows,
    impute_missing,
    load_table,
    require_columns,
)
from tabular_eda.data_preprocessing.var_dict import (
    OASIS_FEATURES,
    OASIS_GROUP_VOCAB,
    OASIS_ID_COLS,
    OASIS_NUMERIC_COLS,
    OASIS_RENAME,
    OASIS_SEX_CODES,
    OASIS_SEX_VOCAB,
    OASIS_TARGET,
)
from tabular_eda.datasets.common import (
    AnalysisReport,
    FigureWriter,
    Stage,
    coerce_numeric,
    drop_constant_columns,
    log_table,
    profile,
)
from tabular_eda.group_statistics import kruskal_by_group, pairwise_mannwhitney
from tabular_eda import visualization as viz

logger = logging.getLogger(__name__)

PAIRWISE_COLUMNS = ["mmse", "nwbv"]


@dataclass
class AlzheimerPrepared:
    cleaned: pd.DataFrame
    X: pd.DataFrame
    y: pd.Series
    split: TrainTestSplit


@dataclass
class AlzheimerFit:
    prepared: AlzheimerPrepared
    classifier: FittedClassifier
    evaluation: EvaluationReport
    importances: pd.DataFrame
    kruskal: pd.DataFrame
    pairwise: Dict[str, pd.DataFrame]


def load(path: str) -> pd.DataFrame:
    df = load_table(path).rename(columns=OASIS_RENAME)
    require_columns(df, OASIS_FEATURES + [OASIS_TARGET])
    return df


def clean(df: pd.DataFrame, imputation: str = "median", fold_converted: bool = False) -> pd.DataFrame:
    """
    Canonicalizes group and sex labels, drops constant columns and fills
    the missing SES / MMSE scores.

    Args:
        df: Raw OASIS table.
        imputation: 'median', 'mice' or 'drop'.
        fold_converted: Relabel 'Converted' subjects as 'Demented'.
    """
    cleaned = canonicalize_categories(df, OASIS_TARGET, OASIS_GROUP_VOCAB)
    cleaned = canonicalize_categories(cleaned, "sex", OASIS_SEX_VOCAB)
    if fold_converted:
        n_converted = int((cleaned[OASIS_TARGET] == "Converted").sum())
        cleaned[OASIS_TARGET] = cleaned[OASIS_TARGET].replace({"Converted": "Demented"})
        logger.info("Relabelled %d 'Converted' rows as 'Demented'.", n_converted)

    cleaned = drop_incomplete_rows(cleaned, subset=[OASIS_TARGET, "sex"])
    cleaned = coerce_numeric(cleaned, OASIS_NUMERIC_COLS)
    cleaned = drop_constant_columns(cleaned, protected=OASIS_FEATURES + [OASIS_TARGET])

    missing = compute_missing(cleaned[OASIS_FEATURES], normalize=False)
    missing = missing[missing["missing"] > 0]
    if not missing.empty:
        log_table("Missing values before imputation:", missing)

    kept_ids = [c for c in OASIS_ID_COLS if c in cleaned.columns]
    table = cleaned[kept_ids + OASIS_FEATURES + [OASIS_TARGET]]
    filled = impute_missing(table[OASIS_FEATURES], strategy=imputation,
                            numerical_cols=OASIS_NUMERIC_COLS, categorical_cols=["sex"])
    table = table.loc[filled.index].copy()
    table[OASIS_FEATURES] = filled[OASIS_FEATURES]
    table = table.reset_index(drop=True)

    assert_complete(table, OASIS_FEATURES + [OASIS_TARGET])
    logger.info("Cleaned OASIS table: %s; groups %s", table.shape, table[OASIS_TARGET].value_counts().to_dict())
    return table


def prepare(cleaned: pd.DataFrame, split_config: SplitConfig = SplitConfig()) -> AlzheimerPrepared:
    X = encode_features(cleaned[OASIS_FEATURES], codecs=[CategoryCodec("sex", OASIS_SEX_CODES)])
    y = cleaned[OASIS_TARGET]
    split = split_train_test(X, y, train_fraction=split_config.train_fraction,
                             random_state=split_config.random_state, stratify=split_config.stratify)
    return AlzheimerPrepared(cleaned=cleaned, X=X, y=y, split=split)


def fit(prepared: AlzheimerPrepared, classifier_config: ClassifierConfig = ClassifierConfig(),
        random_state: int = 42) -> AlzheimerFit:
    split = prepared.split
    fitted = fit_classifier(split.X_train, split.y_train, kind=classifier_config.kind,
                            params=classifier_config.params, random_state=random_state)
    evaluation = evaluate(fitted, split.X_test, split.y_test)
    importances = permutation_importances(fitted, split.X_test, split.y_test, random_state=random_state)

    kruskal = kruskal_by_group(prepared.cleaned, OASIS_TARGET, OASIS_NUMERIC_COLS)
    pairwise = {col: pairwise_mannwhitney(prepared.cleaned, OASIS_TARGET, col) for col in PAIRWISE_COLUMNS}
    return AlzheimerFit(prepared=prepared, classifier=fitted, evaluation=evaluation,
                        importances=importances, kruskal=kruskal, pairwise=pairwise)


def report(result: AlzheimerFit, output_dir: Optional[str] = None) -> AnalysisReport:
    out = AnalysisReport()
    figures = FigureWriter(out, output_dir)
    cleaned = result.prepared.cleaned
    evaluation = result.evaluation

    viz.plot_variables(cleaned[OASIS_FEATURES + [OASIS_TARGET]], output_path=figures.path("variables"))
    viz.correlation_heatmap(result.prepared.X, figures.path("correlations"))
    viz.plot_count_by(cleaned, OASIS_TARGET, "sex", figures.path("group_by_sex"), title="Group by sex")
    viz.plot_confusion_heatmap(evaluation.confusion, figures.path("confusion"),
                               title=f"Random forest confusion matrix (accuracy {evaluation.accuracy:.2f})")
    viz.plot_confusion_heatmap(evaluation.confusion_pct, figures.path("confusion_pct"),
                               title="Confusion matrix (% of true label)", fmt=".1f")
    viz.plot_feature_importance(result.importances, figures.path("importance"))

    out.tables["accuracy"] = evaluation.accuracy
    out.tables["confusion"] = evaluation.confusion
    out.tables["importances"] = result.importances
    out.tables["kruskal"] = result.kruskal
    for col, table in result.pairwise.items():
        out.tables[f"mannwhitney_{col}"] = table

    logger.info("Accuracy on %d held-out rows: %.3f", evaluation.n_test, evaluation.accuracy)
    log_table("Confusion matrix:", evaluation.confusion)
    log_table("Kruskal-Wallis across groups:", result.kruskal)
    for col, table in result.pairwise.items():
        log_table(f"Pairwise Mann-Whitney U ({col}):", table)
    return out


def build_stages(config: PipelineConfig) -> List[Stage]:
    return [
        Stage("load", load),
        Stage("profile", lambda df: profile(df, config.output_dir)),
        Stage("clean", lambda df: clean(df, config.imputation, config.fold_converted)),
        Stage("prepare", lambda cleaned: prepare(cleaned, config.split)),
        Stage("fit", lambda prepared: fit(prepared, config.classifier, config.split.random_state)),
        Stage("report", lambda result: report(result, config.output_dir)),
    ]

"""
Sleep health and lifestyle table: blood-pressure banding and k-nearest-neighbour
classification of sleep disorders. Plots are written to disk.
"""

import logging
import os
from dataclasses import dataclass
from typing import List, Optional

import pandas as pd

from tabular_eda.classification.classifier import (
    EvaluationReport,
    FittedClassifier,
    TrainTestSplit,
    encode_features,
    evaluate,
    fit_classifier,
    split_train_test,
)
from tabular_eda.config import BloodPressureBands, ClassifierConfig, PipelineConfig, SplitConfig
from tabular_eda.data_preprocessing.data_preprocessing import (
    CategoryCodec,
    assert_complete,
    canonicalize_categories,
    drop_incomplete_rows,
    load_table,
    require_columns,
)
from tabular_eda.data_preprocessing.var_dict import (
    SLEEP_BMI_CODES,
    SLEEP_BMI_VOCAB,
    SLEEP_DISORDER_VOCAB,
    SLEEP_GENDER_CODES,
    SLEEP_GENDER_VOCAB,
    SLEEP_NUMERIC_COLS,
    SLEEP_REQUIRED_COLS,
    SLEEP_TARGET,
)
from tabular_eda.datasets.common import AnalysisReport, FigureWriter, Stage, coerce_numeric, log_table, profile
from tabular_eda.errors import DataQualityError
from tabular_eda.group_statistics import kruskal_by_group
from tabular_eda import visualization as viz

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_DIR = os.path.join("reports", "sleep_health")
BP_PATTERN = r"^\s*(\d+(?:\.\d+)?)\s*/\s*(\d+(?:\.\d+)?)\s*$"
FEATURES = SLEEP_NUMERIC_COLS + ["systolic", "diastolic", "gender", "bmi_category", "bp_category", "occupation"]


@dataclass
class SleepPrepared:
    cleaned: pd.DataFrame
    X: pd.DataFrame
    y: pd.Series
    split: TrainTestSplit


@dataclass
class SleepFit:
    prepared: SleepPrepared
    classifier: FittedClassifier
    evaluation: EvaluationReport
    kruskal: pd.DataFrame


def split_blood_pressure(values: pd.Series) -> pd.DataFrame:
    """Splits 'systolic/diastolic' strings into two numeric columns."""
    parsed = values.astype(str).str.extract(BP_PATTERN)
    bad = values.notna() & parsed[0].isna()
    if bad.any():
        examples = values[bad].astype(str).unique()[:5].tolist()
        raise DataQualityError(f"Unparseable blood pressure readings: {examples}")
    return pd.DataFrame({
        "systolic": pd.to_numeric(parsed[0]),
        "diastolic": pd.to_numeric(parsed[1]),
    }, index=values.index)


def categorize_blood_pressure(systolic: pd.Series, diastolic: pd.Series,
                              bands: BloodPressureBands = BloodPressureBands()) -> pd.Series:
    """Names the band of every reading; readings no band covers raise DataQualityError."""
    categories = pd.Series(
        [bands.categorize(s, d) for s, d in zip(systolic, diastolic)],
        index=systolic.index, name="bp_category", dtype=object,
    )
    uncovered = categories.isna()
    if uncovered.any():
        examples = [f"{s:g}/{d:g}" for s, d in zip(systolic[uncovered], diastolic[uncovered])][:5]
        raise DataQualityError(f"Blood pressure readings outside every configured band: {examples}")
    return categories


def load(path: str) -> pd.DataFrame:
    df = load_table(path)
    require_columns(df, SLEEP_REQUIRED_COLS)
    return df


def clean(df: pd.DataFrame, bands: BloodPressureBands = BloodPressureBands()) -> pd.DataFrame:
    """
    Fixes vocabularies, splits and bands blood pressure, and drops incomplete rows.

    A missing sleep disorder means the person has none.
    """
    cleaned = df[[c for c in df.columns if c != "person_id"]].copy()
    n_no_disorder = int(cleaned[SLEEP_TARGET].isna().sum())
    if n_no_disorder:
        logger.info("Treating %d missing '%s' entries as 'None'.", n_no_disorder, SLEEP_TARGET)
    cleaned[SLEEP_TARGET] = cleaned[SLEEP_TARGET].fillna("None")

    cleaned = canonicalize_categories(cleaned, SLEEP_TARGET, SLEEP_DISORDER_VOCAB)
    cleaned = canonicalize_categories(cleaned, "bmi_category", SLEEP_BMI_VOCAB)
    cleaned = canonicalize_categories(cleaned, "gender", SLEEP_GENDER_VOCAB)
    cleaned["occupation"] = cleaned["occupation"].str.strip()
    cleaned = coerce_numeric(cleaned, SLEEP_NUMERIC_COLS)

    cleaned = drop_incomplete_rows(cleaned, subset=SLEEP_REQUIRED_COLS)
    cleaned = cleaned.join(split_blood_pressure(cleaned["blood_pressure"]))
    cleaned["bp_category"] = categorize_blood_pressure(cleaned["systolic"], cleaned["diastolic"], bands)

    assert_complete(cleaned, FEATURES + [SLEEP_TARGET])
    logger.info("Cleaned sleep table: %s; disorders %s; BP bands %s", cleaned.shape,
                cleaned[SLEEP_TARGET].value_counts().to_dict(), cleaned["bp_category"].value_counts().to_dict())
    return cleaned


def prepare(cleaned: pd.DataFrame, split_config: SplitConfig = SplitConfig(),
            bands: BloodPressureBands = BloodPressureBands()) -> SleepPrepared:
    codecs = [
        CategoryCodec("gender", SLEEP_GENDER_CODES),
        CategoryCodec("bmi_category", SLEEP_BMI_CODES),
        CategoryCodec("bp_category", {name: code for code, name in enumerate(bands.names)}),
    ]
    X = encode_features(cleaned[FEATURES], codecs=codecs, one_hot=["occupation"])
    y = cleaned[SLEEP_TARGET]
    split = split_train_test(X, y, train_fraction=split_config.train_fraction,
                             random_state=split_config.random_state, stratify=split_config.stratify)
    return SleepPrepared(cleaned=cleaned, X=X, y=y, split=split)


def fit(prepared: SleepPrepared, classifier_config: ClassifierConfig = ClassifierConfig(kind="knn"),
        random_state: int = 42) -> SleepFit:
    split = prepared.split
    fitted = fit_classifier(split.X_train, split.y_train, kind=classifier_config.kind,
                            params=classifier_config.params, random_state=random_state)
    evaluation = evaluate(fitted, split.X_test, split.y_test)
    kruskal = kruskal_by_group(prepared.cleaned, SLEEP_TARGET, SLEEP_NUMERIC_COLS)
    return SleepFit(prepared=prepared, classifier=fitted, evaluation=evaluation, kruskal=kruskal)


def report(result: SleepFit, output_dir: Optional[str] = None) -> AnalysisReport:
    out = AnalysisReport()
    figures = FigureWriter(out, output_dir or DEFAULT_OUTPUT_DIR)
    cleaned = result.prepared.cleaned
    evaluation = result.evaluation

    viz.plot_variables(cleaned.drop(columns=["blood_pressure"]), output_path=figures.path("variables"))
    viz.correlation_heatmap(cleaned[SLEEP_NUMERIC_COLS + ["systolic", "diastolic"]], figures.path("correlations"))
    viz.plot_count_by(cleaned, "bp_category", SLEEP_TARGET, figures.path("disorder_by_bp_category"),
                      title="Sleep disorder by blood pressure category")
    viz.plot_count_by(cleaned, "bmi_category", SLEEP_TARGET, figures.path("disorder_by_bmi_category"),
                      title="Sleep disorder by BMI category")
    viz.plot_confusion_heatmap(evaluation.confusion, figures.path("confusion"),
                               title=f"KNN confusion matrix (accuracy {evaluation.accuracy:.2f})")

    out.tables["accuracy"] = evaluation.accuracy
    out.tables["confusion"] = evaluation.confusion
    out.tables["confusion_pct"] = evaluation.confusion_pct
    out.tables["kruskal"] = result.kruskal
    out.tables["bp_category_counts"] = cleaned["bp_category"].value_counts()

    logger.info("Accuracy on %d held-out rows: %.3f", evaluation.n_test, evaluation.accuracy)
    log_table("Confusion matrix:", evaluation.confusion)
    log_table("Kruskal-Wallis across sleep disorders:", result.kruskal)
    return out


def build_stages(config: PipelineConfig) -> List[Stage]:
    return [
        Stage("load", load),
        Stage("profile", lambda df: profile(df, config.output_dir or DEFAULT_OUTPUT_DIR)),
        Stage("clean", lambda df: clean(df, config.bp_bands)),
        Stage("prepare", lambda cleaned: prepare(cleaned, config.split, config.bp_bands)),
        Stage("fit", lambda prepared: fit(prepared, config.classifier, config.split.random_state)),
        Stage("report", lambda result: report(result, config.output_dir)),
    ]

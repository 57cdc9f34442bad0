"""
Supervised classifier fit and evaluation.

Model fitting is delegated to scikit-learn estimators behind a narrow
interface: ``fit_classifier(X, y, kind, params)`` returns a
``FittedClassifier`` whose ``predict`` checks the column schema it was
trained on before calling the estimator.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional

import numpy as np
import pandas as pd
from sklearn.ensemble import RandomForestClassifier
from sklearn.inspection import permutation_importance
from sklearn.model_selection import train_test_split
from sklearn.neighbors import KNeighborsClassifier
from sklearn.pipeline import make_pipeline
from sklearn.preprocessing import StandardScaler

from tabular_eda.data_preprocessing.data_preprocessing import CategoryCodec, assert_complete, require_columns
from tabular_eda.errors import ConfigurationError, DataQualityError, SchemaMismatchError

logger = logging.getLogger(__name__)


def make_classifier(kind: str, params: Optional[Mapping[str, Any]] = None, random_state: int = 42):
    """
    Builds an unfitted estimator.

    'random_forest' is a tree ensemble; 'knn' is nearest-neighbour voting on
    z-scored features (the scaler is fitted on the training rows only).
    """
    params = dict(params or {})
    if kind == 'random_forest':
        params.setdefault('n_estimators', 100)
        params.setdefault('random_state', random_state)
        return RandomForestClassifier(**params)
    if kind == 'knn':
        params.setdefault('n_neighbors', 5)
        return make_pipeline(StandardScaler(), KNeighborsClassifier(**params))
    raise ConfigurationError(f"Unknown classifier kind {kind!r}; expected 'random_forest' or 'knn'")


def encode_features(df: pd.DataFrame, codecs: Optional[List[CategoryCodec]] = None,
                    one_hot: Optional[List[str]] = None) -> pd.DataFrame:
    """
    Turns a cleaned feature table into an all-numeric one.

    Columns with a codec get their declared codes; ``one_hot`` columns are
    expanded into indicator columns named '<column>_<value>'.
    """
    encoded = df.copy()
    for codec in codecs or []:
        require_columns(encoded, [codec.column])
        encoded[codec.column] = codec.encode(encoded[codec.column])
    if one_hot:
        require_columns(encoded, one_hot)
        encoded = pd.get_dummies(encoded, columns=one_hot, prefix=one_hot, dtype=int)

    non_numeric = encoded.columns[~encoded.dtypes.map(pd.api.types.is_numeric_dtype)].tolist()
    if non_numeric:
        raise DataQualityError(f"Columns left non-numeric after encoding: {non_numeric}")
    return encoded


@dataclass
class TrainTestSplit:
    X_train: pd.DataFrame
    X_test: pd.DataFrame
    y_train: pd.Series
    y_test: pd.Series


def split_train_test(X: pd.DataFrame, y: pd.Series, train_fraction=0.8, random_state=42,
                     stratify=True) -> TrainTestSplit:
    """
    Randomised train/test partition under a fixed seed.

    Stratification on ``y`` is attempted when requested and skipped (with a
    warning) when some class has fewer than two rows.
    """
    if not 0 < train_fraction < 1:
        raise ConfigurationError(f"train_fraction must lie strictly between 0 and 1, got {train_fraction}")
    if len(X) != len(y):
        raise DataQualityError(f"X has {len(X)} rows but y has {len(y)}")
    if len(X) < 2:
        raise DataQualityError("At least two rows are needed to split into train and test.")

    strata = None
    if stratify:
        if y.value_counts().min() >= 2:
            strata = y
        else:
            logger.warning("Some classes have fewer than two rows; splitting without stratification.")

    try:
        X_train, X_test, y_train, y_test = train_test_split(
            X, y, train_size=train_fraction, random_state=random_state, stratify=strata
        )
    except ValueError as e:
        raise ConfigurationError(f"Cannot split {len(X)} rows with train_fraction={train_fraction}: {e}") from e

    logger.info("Data split sizes: train %d (%.3f), test %d (%.3f)",
                len(X_train), len(X_train) / len(X), len(X_test), len(X_test) / len(X))
    return TrainTestSplit(X_train, X_test, y_train, y_test)


@dataclass
class FittedClassifier:
    """A trained estimator together with the column schema it expects."""

    model: Any
    kind: str
    feature_names: List[str]
    classes: List[Any] = field(default_factory=list)

    def align(self, X: pd.DataFrame) -> pd.DataFrame:
        """Reorders X to the training column order; any other difference is an error."""
        if not isinstance(X, pd.DataFrame):
            raise SchemaMismatchError("Predict input must be a DataFrame with named columns.")
        missing = [c for c in self.feature_names if c not in X.columns]
        extra = [c for c in X.columns if c not in self.feature_names]
        if missing or extra:
            raise SchemaMismatchError(
                f"Columns do not match the training schema (missing: {missing}, unexpected: {extra})"
            )
        return X[self.feature_names]

    def predict(self, X: pd.DataFrame) -> pd.Series:
        X_aligned = self.align(X)
        return pd.Series(self.model.predict(X_aligned), index=X.index, name='predicted')


def fit_classifier(X_train: pd.DataFrame, y_train: pd.Series, kind='random_forest',
                   params: Optional[Mapping[str, Any]] = None, random_state=42) -> FittedClassifier:
    if X_train.empty:
        raise DataQualityError("Cannot fit a classifier on an empty training set.")
    assert_complete(X_train)
    model = make_classifier(kind, params, random_state=random_state)
    logger.info("Training %s on %d rows x %d features...", kind, *X_train.shape)
    model.fit(X_train, y_train)
    return FittedClassifier(model=model, kind=kind, feature_names=list(X_train.columns),
                            classes=sorted(pd.unique(y_train), key=str))


def accuracy(y_true, y_pred) -> float:
    """Fraction of rows where the predicted label equals the true label."""
    y_true = np.asarray(y_true)
    y_pred = np.asarray(y_pred)
    if y_true.shape != y_pred.shape:
        raise DataQualityError(f"Label arrays differ in shape: {y_true.shape} vs {y_pred.shape}")
    if y_true.size == 0:
        raise DataQualityError("Cannot score an empty partition.")
    return float((y_true == y_pred).sum() / y_true.size)


def confusion_table(y_true, y_pred, labels=None) -> pd.DataFrame:
    """Counts of true label (rows) x predicted label (columns)."""
    if labels is None:
        labels = sorted(set(pd.unique(pd.Series(y_true))) | set(pd.unique(pd.Series(y_pred))), key=str)
    table = pd.crosstab(pd.Series(np.asarray(y_true)), pd.Series(np.asarray(y_pred)))
    table = table.reindex(index=labels, columns=labels, fill_value=0)
    table.index.name = 'true'
    table.columns.name = 'predicted'
    return table


@dataclass
class EvaluationReport:
    accuracy: float
    n_test: int
    confusion: pd.DataFrame
    predictions: pd.Series

    @property
    def confusion_pct(self) -> pd.DataFrame:
        """Confusion counts as a percentage of each true-label row."""
        row_totals = self.confusion.sum(axis=1).replace(0, np.nan)
        return (self.confusion.div(row_totals, axis=0) * 100).fillna(0.0)


def evaluate(fitted: FittedClassifier, X_test: pd.DataFrame, y_test: pd.Series) -> EvaluationReport:
    """Predicts the held-out rows and scores them."""
    predictions = fitted.predict(X_test)
    labels = sorted(set(fitted.classes) | set(pd.unique(y_test)), key=str)
    report = EvaluationReport(
        accuracy=accuracy(y_test, predictions),
        n_test=len(y_test),
        confusion=confusion_table(y_test, predictions, labels=labels),
        predictions=predictions,
    )
    logger.info("%s test accuracy: %.3f on %d rows", fitted.kind, report.accuracy, report.n_test)
    return report


def permutation_importances(fitted: FittedClassifier, X: pd.DataFrame, y: pd.Series, n_repeats=10,
                            random_state=42, score_metric='accuracy') -> pd.DataFrame:
    """Drop in score when each feature is shuffled, sorted most important first."""
    X_aligned = fitted.align(X)
    result = permutation_importance(fitted.model, X_aligned, y, n_repeats=n_repeats,
                                    random_state=random_state, scoring=score_metric)
    return pd.DataFrame({
        'feature': fitted.feature_names,
        'importance_mean': result.importances_mean,
        'importance_std': result.importances_std,
    }).sort_values('importance_mean', ascending=False).reset_index(drop=True)

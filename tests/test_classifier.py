import numpy as np
import pandas as pd
import pytest

from tabular_eda.classification.classifier import (
    EvaluationReport,
    accuracy,
    confusion_table,
    encode_features,
    evaluate,
    fit_classifier,
    make_classifier,
    permutation_importances,
    split_train_test,
)
from tabular_eda.data_preprocessing.data_preprocessing import CategoryCodec
from tabular_eda.errors import ConfigurationError, DataQualityError, SchemaMismatchError


def test_accuracy_on_ten_row_toy_set():
    y_true = ["a", "a", "b", "b", "a", "b", "a", "b", "a", "b"]
    y_pred = ["a", "b", "b", "b", "a", "a", "a", "b", "b", "b"]
    expected = sum(t == p for t, p in zip(y_true, y_pred)) / 10
    assert expected == 0.7
    assert accuracy(y_true, y_pred) == pytest.approx(expected)


def test_accuracy_bounds():
    assert accuracy([1, 2, 3], [1, 2, 3]) == 1.0
    assert accuracy([1, 2, 3], [3, 1, 2]) == 0.0


def test_accuracy_rejects_empty_and_mismatched_inputs():
    with pytest.raises(DataQualityError):
        accuracy([], [])
    with pytest.raises(DataQualityError):
        accuracy([1, 2], [1])


@pytest.mark.parametrize("kind", ["random_forest", "knn"])
def test_separable_classes_are_predicted_perfectly(separable, kind):
    X, y = separable
    split = split_train_test(X, y, train_fraction=0.75, random_state=0)
    fitted = fit_classifier(split.X_train, split.y_train, kind=kind)
    report = evaluate(fitted, split.X_test, split.y_test)
    assert report.accuracy == 1.0
    assert report.n_test == len(split.X_test)
    assert np.diag(report.confusion.to_numpy()).sum() == report.n_test


def test_split_is_seeded_and_stratified(separable):
    X, y = separable
    first = split_train_test(X, y, train_fraction=0.8, random_state=3)
    second = split_train_test(X, y, train_fraction=0.8, random_state=3)
    assert list(first.X_train.index) == list(second.X_train.index)
    assert len(first.X_train) == 32
    assert first.y_test.value_counts().to_dict() == {"low": 4, "high": 4}


@pytest.mark.parametrize("fraction", [0, 1, 1.5, -0.2])
def test_split_rejects_invalid_fraction(separable, fraction):
    X, y = separable
    with pytest.raises(ConfigurationError):
        split_train_test(X, y, train_fraction=fraction)


def test_predict_rejects_a_different_schema(separable):
    X, y = separable
    fitted = fit_classifier(X, y, kind="knn")
    with pytest.raises(SchemaMismatchError):
        fitted.predict(X.drop(columns=["f2"]))
    with pytest.raises(SchemaMismatchError):
        fitted.predict(X.assign(f3=0.0))
    with pytest.raises(SchemaMismatchError):
        fitted.predict(X.to_numpy())


def test_predict_reorders_columns(separable):
    X, y = separable
    fitted = fit_classifier(X, y, kind="random_forest")
    pd.testing.assert_series_equal(fitted.predict(X[["f2", "f1"]]), fitted.predict(X))


def test_fit_rejects_missing_values(separable):
    X, y = separable
    X.loc[0, "f1"] = np.nan
    with pytest.raises(DataQualityError):
        fit_classifier(X, y)


def test_unknown_classifier_kind():
    with pytest.raises(ConfigurationError):
        make_classifier("svm")


def test_confusion_table_counts():
    table = confusion_table(["a", "a", "b", "c"], ["a", "b", "b", "a"], labels=["a", "b", "c"])
    assert table.index.name == "true"
    assert table.columns.name == "predicted"
    assert table.loc["a", "a"] == 1
    assert table.loc["a", "b"] == 1
    assert table.loc["b", "b"] == 1
    assert table.loc["c", "a"] == 1
    assert table.loc["c", "c"] == 0
    assert table.to_numpy().sum() == 4


def test_confusion_percentages_sum_to_100_per_true_label():
    confusion = confusion_table(["a", "a", "b", "b"], ["a", "b", "b", "b"])
    report = EvaluationReport(accuracy=0.75, n_test=4, confusion=confusion, predictions=pd.Series(dtype=object))
    pct = report.confusion_pct
    assert pct.loc["a", "a"] == pytest.approx(50.0)
    np.testing.assert_allclose(pct.sum(axis=1), [100.0, 100.0])


def test_encode_features_uses_declared_codes_and_one_hot():
    df = pd.DataFrame({"sex": ["F", "M", "F"], "job": ["x", "y", "x"], "age": [30, 40, 50]})
    encoded = encode_features(df, codecs=[CategoryCodec("sex", {"M": 0, "F": 1})], one_hot=["job"])
    assert encoded["sex"].tolist() == [1, 0, 1]
    assert encoded["job_x"].tolist() == [1, 0, 1]
    assert encoded["job_y"].tolist() == [0, 1, 0]
    assert "job" not in encoded.columns


def test_encode_features_rejects_unknown_categories_and_leftover_text():
    df = pd.DataFrame({"sex": ["F", "X"], "job": ["a", "b"]})
    with pytest.raises(DataQualityError):
        encode_features(df, codecs=[CategoryCodec("sex", {"M": 0, "F": 1})], one_hot=["job"])
    with pytest.raises(DataQualityError):
        encode_features(df[["job"]])


def test_permutation_importances_rank_the_informative_feature(separable):
    X, y = separable
    X = X.assign(noise=np.random.RandomState(0).normal(size=len(X)))
    fitted = fit_classifier(X[["f1", "noise"]], y, kind="random_forest")
    importances = permutation_importances(fitted, X[["f1", "noise"]], y, n_repeats=5)
    assert list(importances.columns) == ["feature", "importance_mean", "importance_std"]
    assert importances.iloc[0]["feature"] == "f1"

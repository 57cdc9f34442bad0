import os

import pandas as pd
import pytest

from tabular_eda.config import HierarchicalConfig, SweepConfig
from tabular_eda.datasets import wine
from tabular_eda.errors import DataQualityError

SWEEP = SweepConfig(k_max=4, n_init=2, final_k=3)
HIERARCHICAL = HierarchicalConfig(n_rows=20, n_clusters=3, cut_height=30.0)


@pytest.fixture
def prepared(wine_csv):
    return wine.prepare(wine.clean(wine.load(wine_csv)))


def test_load_normalizes_column_names(wine_csv):
    df = wine.load(wine_csv)
    assert "ph" in df.columns
    assert "fixed_acidity" in df.columns


def test_load_requires_the_schema(raw_wine, tmp_path):
    path = tmp_path / "wine.csv"
    raw_wine.drop(columns=["alcohol"]).to_csv(path, index=False)
    with pytest.raises(DataQualityError, match="alcohol"):
        wine.load(str(path))


def test_clean(wine_csv):
    cleaned = wine.clean(wine.load(wine_csv))
    assert len(cleaned) == 29
    assert set(cleaned["color"]) == {"red", "white"}
    assert not cleaned.isna().any().any()
    assert cleaned["quality"].dtype.kind == "i"


def test_clean_rejects_unknown_colours(wine_csv):
    df = wine.load(wine_csv)
    df.loc[0, "color"] = "rose"
    with pytest.raises(DataQualityError, match="rose"):
        wine.clean(df)


def test_clean_rejects_non_binary_good(wine_csv):
    df = wine.load(wine_csv)
    df.loc[0, "good"] = 2
    with pytest.raises(DataQualityError):
        wine.clean(df)


def test_prepare(prepared):
    assert prepared.dropped == ["good"]
    assert "good" not in prepared.scaled.columns
    assert prepared.numeric["color"].isin([0, 1]).all()
    assert (prepared.numeric["color"] == 0).sum() == (prepared.cleaned["color"] == "red").sum()
    assert prepared.normalized.min().min() == pytest.approx(0.0)
    assert prepared.normalized.max().max() == pytest.approx(1.0)
    assert prepared.scaled.mean().abs().max() == pytest.approx(0.0, abs=1e-9)


def test_fit(prepared):
    result = wine.fit(prepared, SWEEP, HIERARCHICAL)
    inertia = result.sweep.inertia
    assert list(inertia.index) == [1, 2, 3, 4]
    assert inertia.is_monotonic_decreasing
    assert result.final.k == 3
    assert result.final.labels.index.equals(prepared.scaled.index)
    assert result.hierarchical.labels.nunique() == 3
    assert len(result.hierarchical.labels) == 20
    assert result.hierarchical_by_height is not None
    assert list(result.anova.columns) == ["F-statistic", "P-value", "Significant"]


def test_report_writes_figures(prepared, tmp_path):
    result = wine.fit(prepared, SWEEP, HIERARCHICAL)
    report = wine.report(result, str(tmp_path), HIERARCHICAL)
    assert {"elbow", "dendrogram", "assignments_by_k", "assignments_k3"} <= set(report.figures)
    for path in report.figures.values():
        assert os.path.exists(path)
    assert isinstance(report.tables["sweep_summary"], pd.DataFrame)
    assert report.tables["final_sizes"].sum() == len(prepared.scaled)


def test_report_without_output_dir_saves_nothing(prepared):
    result = wine.fit(prepared, SWEEP, HIERARCHICAL)
    report = wine.report(result, None, HIERARCHICAL)
    assert all(path is None for path in report.figures.values())

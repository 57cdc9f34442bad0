import numpy as np
import pandas as pd
import pytest

from tabular_eda.clustering.cluster import ClusterEvaluator
from tabular_eda.errors import ConfigurationError


@pytest.fixture
def blobs():
    rng = np.random.RandomState(0)
    centres = np.array([[0, 0], [8, 8], [0, 8]])
    points = np.vstack([rng.normal(c, 0.5, size=(20, 2)) for c in centres])
    df = pd.DataFrame(points, columns=["x", "y"])
    profile = df.assign(site=["north"] * 20 + ["south"] * 20 + ["north"] * 20)
    return df, profile


def test_sweep_and_final_model(blobs):
    X, profile = blobs
    evaluator = ClusterEvaluator(X, k_max=5, n_init=3, profile_df=profile)
    sweep = evaluator.run_sweep()
    assert sweep.ks == [1, 2, 3, 4, 5]

    final = evaluator.run_final_model(3)
    assert final is sweep[3]
    assert evaluator.cluster_sizes().tolist() == [20, 20, 20]
    assert "cluster_kmeans" in evaluator.profile_df.columns
    assert evaluator.cluster_profiles()["size"].sum() == 60


def test_final_model_without_sweep(blobs):
    X, _ = blobs
    evaluator = ClusterEvaluator(X)
    assert evaluator.run_final_model(3).k == 3


def test_cluster_statistics_and_effect_sizes(blobs):
    X, profile = blobs
    evaluator = ClusterEvaluator(X, profile_df=profile)
    evaluator.run_final_model(3)
    anova, chi2 = evaluator.calculate_cluster_statistics()
    assert anova.loc["x", "Significant"]
    assert chi2.loc["site", "Significant"]
    cohens_d, cramers_v = evaluator.calculate_effect_sizes()
    assert len(cohens_d) == 2 * 3
    assert cramers_v.loc["site", "Cramér's V"] == pytest.approx(1.0)


def test_profiling_needs_a_final_model(blobs):
    X, _ = blobs
    with pytest.raises(ConfigurationError):
        ClusterEvaluator(X).cluster_sizes()


def test_profile_frame_must_share_the_index(blobs):
    X, profile = blobs
    with pytest.raises(ConfigurationError):
        ClusterEvaluator(X, profile_df=profile.iloc[:10])


def test_scale_features(blobs):
    X, _ = blobs
    evaluator = ClusterEvaluator(X)
    scaled = evaluator.scale_features(method="minmax", columns_to_scale=["x", "absent"])
    assert scaled["x"].min() == pytest.approx(0.0)
    assert scaled["x"].max() == pytest.approx(1.0)
    assert scaled["y"].max() > 1.0
    with pytest.raises(ConfigurationError):
        evaluator.scale_features(method="robust")


def test_stability_by_seed(blobs):
    X, _ = blobs
    scores = ClusterEvaluator(X).evaluate_stability_by_seed(3, [0, 1, 2])
    assert list(scores.index) == [1, 2]
    assert (scores > 0.9).all()
    with pytest.raises(ConfigurationError):
        ClusterEvaluator(X).evaluate_stability_by_seed(3, [0])

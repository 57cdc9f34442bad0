import logging

import numpy as np
import pandas as pd
from sklearn.metrics import adjusted_rand_score
from sklearn.preprocessing import MinMaxScaler, StandardScaler

from tabular_eda.clustering.sweep import as_feature_frame, fit_kmeans, sweep_kmeans
from tabular_eda.errors import ConfigurationError
from tabular_eda.group_statistics import anova_chi2_by_group, effect_sizes_by_group

logger = logging.getLogger(__name__)


class ClusterEvaluator:
    """
    Runs the k-means cluster count sweep on a feature table, fits a final
    model, and profiles the resulting clusters against the original features.
    """
    def __init__(self, X, k_max=10, random_state=42, max_iter=300, tol=1e-4, n_init=10, n_jobs=None,
                 profile_df=None):
        """
        Initializes the ClusterEvaluator.

        Args:
            X (pd.DataFrame or np.ndarray): Numeric features to cluster on.
            k_max (int): Largest number of clusters tested by the sweep.
            random_state (int): Seed for centre initialisation.
            max_iter (int): Iteration cap per k-means fit.
            tol (float): Convergence tolerance per k-means fit.
            n_init (int): Seeded restarts per k.
            n_jobs (int, optional): Parallel workers for the sweep.
            profile_df (pd.DataFrame, optional): Unscaled features, aligned on X's index,
                                                 used when profiling clusters. Defaults to X.
        """
        self.X_df = as_feature_frame(X).copy()
        self._original_X_df = self.X_df.copy()
        self.profile_df = (profile_df if profile_df is not None else self._original_X_df).copy()
        if not self.profile_df.index.equals(self.X_df.index):
            raise ConfigurationError("profile_df must share the index of X.")

        self.k_max = k_max
        self.random_state = random_state
        self.max_iter = max_iter
        self.tol = tol
        self.n_init = n_init
        self.n_jobs = n_jobs

        self.scaler = None
        self.sweep = None
        self.final_model = None

    @property
    def X(self):
        return self.X_df.to_numpy(dtype=float)

    def scale_features(self, method='standard', columns_to_scale=None):
        """
        Scales numeric columns in place.

        Args:
            method (str): 'standard' for z-scores, 'minmax' for [0, 1] rescaling.
            columns_to_scale (list, optional): Columns to scale. Defaults to all.
        """
        scalers = {'standard': StandardScaler, 'minmax': MinMaxScaler}
        if method not in scalers:
            raise ConfigurationError(f"Unknown scaling method {method!r}; expected one of {list(scalers)}")

        cols = list(self.X_df.columns) if columns_to_scale is None else list(columns_to_scale)
        missing_cols = set(cols) - set(self.X_df.columns)
        if missing_cols:
            logger.warning("Columns not found and will be ignored: %s", sorted(missing_cols))
        cols = [c for c in cols if c in self.X_df.columns]
        if not cols:
            logger.warning("No valid columns left to scale.")
            return self.X_df

        self.scaler = scalers[method]()
        logger.info("Scaling %d features (%s): %s", len(cols), method, cols)
        self.X_df[cols] = self.scaler.fit_transform(self.X_df[cols])
        return self.X_df

    def run_sweep(self):
        """Fits k-means for k = 1..k_max and stores the SweepResult."""
        self.sweep = sweep_kmeans(self.X_df, k_max=self.k_max, max_iter=self.max_iter, tol=self.tol,
                                  random_state=self.random_state, n_init=self.n_init, n_jobs=self.n_jobs)
        return self.sweep

    def run_final_model(self, k):
        """Fits k-means with the chosen k and adds 'cluster_kmeans' labels to the profile table."""
        if self.sweep is not None and k in self.sweep.by_k:
            self.final_model = self.sweep[k]
        else:
            logger.info("Running final K-Means model with k=%d...", k)
            self.final_model = fit_kmeans(self.X_df, k, n_init=self.n_init, max_iter=self.max_iter,
                                          tol=self.tol, random_state=self.random_state)
        self.profile_df['cluster_kmeans'] = self.final_model.labels.to_numpy()
        return self.final_model

    def _require_final_model(self):
        if self.final_model is None:
            raise ConfigurationError("Run `run_final_model()` before profiling clusters.")

    def cluster_sizes(self):
        self._require_final_model()
        return self.profile_df['cluster_kmeans'].value_counts().sort_index()

    def cluster_profiles(self):
        """Mean of every numeric profile feature per cluster, with cluster sizes."""
        self._require_final_model()
        profiles = self.profile_df.groupby('cluster_kmeans').mean(numeric_only=True)
        profiles.insert(0, 'size', self.cluster_sizes())
        return profiles

    def calculate_cluster_statistics(self, p_value_threshold=0.05):
        """ANOVA (continuous) and chi-square (categorical) tests across the final clusters."""
        self._require_final_model()
        logger.info("Calculating cluster statistics for k=%d...", self.final_model.k)
        return anova_chi2_by_group(self.profile_df, 'cluster_kmeans', p_value_threshold)

    def calculate_effect_sizes(self):
        """Cohen's d and Cramér's V between the final clusters."""
        self._require_final_model()
        return effect_sizes_by_group(self.profile_df, 'cluster_kmeans')

    def evaluate_stability_by_seed(self, k, random_seeds):
        """
        Adjusted Rand index of k-means labels under each seed against the first seed.

        Returns:
            pd.Series: ARI per non-baseline seed.
        """
        if len(random_seeds) < 2:
            raise ConfigurationError("Please provide at least two random seeds.")
        baseline_seed, other_seeds = random_seeds[0], random_seeds[1:]
        baseline = fit_kmeans(self.X_df, k, n_init=1, max_iter=self.max_iter, tol=self.tol,
                              random_state=baseline_seed).labels
        scores = {}
        for seed in other_seeds:
            labels = fit_kmeans(self.X_df, k, n_init=1, max_iter=self.max_iter, tol=self.tol,
                                random_state=seed).labels
            scores[seed] = adjusted_rand_score(baseline, labels)
        scores = pd.Series(scores, name='ARI').rename_axis('seed')
        logger.info("K-Means (k=%d) seed stability: mean ARI = %.4f, std = %.4f",
                    k, scores.mean(), np.nan_to_num(scores.std()))
        return scores

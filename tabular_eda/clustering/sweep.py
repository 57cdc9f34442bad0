"""
Cluster count sweep (k-means over k = 1..K) and hierarchical clustering.

The partition itself is fitted by scikit-learn's ``KMeans`` (Lloyd
iterations, k-means++ seeding, empty clusters relocated to the points
farthest from their centres). This module validates the inputs, runs one
fit per k, and collects per-k assignment and inertia records.
"""

import logging
import warnings
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np
import pandas as pd
import scipy.cluster.hierarchy as sch
from joblib import Parallel, delayed
from sklearn.cluster import KMeans
from sklearn.metrics import davies_bouldin_score, silhouette_score

from tabular_eda.errors import ConfigurationError, ConvergenceWarning, DataQualityError

logger = logging.getLogger(__name__)


def as_feature_frame(X) -> pd.DataFrame:
    """Wraps a matrix in a DataFrame and checks it is a finite, numeric, non-empty 2-D table."""
    if isinstance(X, pd.DataFrame):
        X_df = X
    else:
        X_arr = np.asarray(X)
        if X_arr.ndim != 2:
            raise DataQualityError(f"Expected a 2-D matrix, got {X_arr.ndim} dimension(s).")
        X_df = pd.DataFrame(X_arr, columns=[f'feature_{i}' for i in range(X_arr.shape[1])])

    if X_df.shape[1] < 1:
        raise DataQualityError("The matrix has no columns to cluster on.")
    if X_df.shape[0] < 1:
        raise DataQualityError("The matrix has no rows to cluster.")
    non_numeric = X_df.columns[~X_df.dtypes.map(pd.api.types.is_numeric_dtype)].tolist()
    if non_numeric:
        raise DataQualityError(f"Non-numeric columns cannot be clustered: {non_numeric}")
    values = X_df.to_numpy(dtype=float)
    if not np.isfinite(values).all():
        raise DataQualityError("The matrix contains missing or infinite values.")
    return X_df


def validate_k_max(k_max, n_rows):
    if isinstance(k_max, bool) or not isinstance(k_max, (int, np.integer)):
        raise ConfigurationError(f"k_max must be an integer, got {k_max!r}")
    if k_max < 1:
        raise ConfigurationError(f"k_max must be at least 1, got {k_max}")
    if k_max > n_rows:
        raise ConfigurationError(f"k_max={k_max} exceeds the number of rows ({n_rows})")


def total_sum_of_squares(X) -> float:
    """Sum of squared deviations from the column means (inertia of a single cluster)."""
    values = np.asarray(X, dtype=float)
    return float(((values - values.mean(axis=0)) ** 2).sum())


@dataclass
class ClusterAssignment:
    """One k-means fit: row labels, centres and within-cluster sums of squares."""

    k: int
    labels: pd.Series
    centers: np.ndarray
    withinss: np.ndarray
    n_iter: int
    converged: bool
    totss: float
    silhouette: float = np.nan
    dbi: float = np.nan
    warm_started: bool = False
    notes: List[str] = field(default_factory=list)
    model: Optional[KMeans] = field(default=None, repr=False)

    @property
    def tot_withinss(self) -> float:
        return float(self.withinss.sum())

    @property
    def inertia(self) -> float:
        return self.tot_withinss

    @property
    def betweenss(self) -> float:
        return self.totss - self.tot_withinss

    @property
    def sizes(self) -> np.ndarray:
        return np.bincount(self.labels.to_numpy(), minlength=self.k)

    def predict(self, X) -> np.ndarray:
        """Nearest-centre labels for new rows with the same columns."""
        values = np.asarray(X, dtype=float)
        if values.ndim != 2 or values.shape[1] != self.centers.shape[1]:
            raise DataQualityError(
                f"Expected rows with {self.centers.shape[1]} columns, got shape {values.shape}"
            )
        distances = ((values[:, None, :] - self.centers[None, :, :]) ** 2).sum(axis=2)
        return distances.argmin(axis=1)


def _within_ss(values, labels, centers, k):
    sq = ((values - centers[labels]) ** 2).sum(axis=1)
    return np.bincount(labels, weights=sq, minlength=k)


def _is_fixed_point(values, labels, k):
    """True when reassigning every row to the mean of its cluster leaves the labels unchanged."""
    centers = np.full((k, values.shape[1]), np.inf)
    for j in np.unique(labels):
        centers[j] = values[labels == j].mean(axis=0)
    reassigned = ((values[:, None, :] - centers[None, :, :]) ** 2).sum(axis=2).argmin(axis=1)
    return bool(np.array_equal(reassigned, labels))


def fit_kmeans(X, k, init='k-means++', n_init=10, max_iter=300, tol=1e-4, random_state=42,
               totss=None) -> ClusterAssignment:
    """
    Fits k-means for a single k and returns its assignment record.

    Library warnings raised during the fit are kept in ``notes`` so they
    survive being run in a worker process.
    """
    X_df = as_feature_frame(X)
    values = X_df.to_numpy(dtype=float)
    if not 1 <= k <= len(values):
        raise ConfigurationError(f"k={k} must lie between 1 and the number of rows ({len(values)})")

    model = KMeans(n_clusters=k, init=init, n_init=n_init, max_iter=max_iter, tol=tol,
                   random_state=random_state)
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        labels = model.fit_predict(values)

    centers = model.cluster_centers_
    n_iter = int(model.n_iter_)
    n_distinct = len(np.unique(labels))
    if 2 <= n_distinct <= len(values) - 1:
        sil = silhouette_score(values, labels)
        dbi = davies_bouldin_score(values, labels)
    else:
        sil, dbi = np.nan, np.nan

    return ClusterAssignment(
        k=k,
        labels=pd.Series(labels, index=X_df.index, name='cluster'),
        centers=centers,
        withinss=_within_ss(values, labels, centers, k),
        n_iter=n_iter,
        # stabilising on the last allowed iteration still counts as converged
        converged=n_iter < max_iter or _is_fixed_point(values, labels, k),
        totss=total_sum_of_squares(values) if totss is None else totss,
        silhouette=sil,
        dbi=dbi,
        notes=[str(w.message) for w in caught],
        model=model,
    )


def _warm_start_centers(values, previous: ClusterAssignment) -> np.ndarray:
    """Centres of the (k-1)-fit plus the row farthest from its own centre (lowest index on ties)."""
    labels = previous.labels.to_numpy()
    sq = ((values - previous.centers[labels]) ** 2).sum(axis=1)
    farthest = int(np.argmax(sq))
    return np.vstack([previous.centers, values[farthest]])


@dataclass
class SweepResult:
    """Per-k k-means records over k = 1..K."""

    by_k: Dict[int, ClusterAssignment]
    columns: List[str]
    index: pd.Index

    def __getitem__(self, k) -> ClusterAssignment:
        return self.by_k[k]

    def __iter__(self):
        return iter(self.by_k[k] for k in self.ks)

    def __len__(self):
        return len(self.by_k)

    @property
    def ks(self) -> List[int]:
        return sorted(self.by_k)

    @property
    def inertia(self) -> pd.Series:
        return pd.Series({k: self.by_k[k].tot_withinss for k in self.ks}, name='tot_withinss').rename_axis('k')

    def summary(self) -> pd.DataFrame:
        """One row per k: totss, tot_withinss, betweenss, iterations and internal validity scores."""
        rows = []
        for a in self:
            rows.append({
                'k': a.k,
                'totss': a.totss,
                'tot_withinss': a.tot_withinss,
                'betweenss': a.betweenss,
                'iter': a.n_iter,
                'converged': a.converged,
                'warm_started': a.warm_started,
                'silhouette': a.silhouette,
                'dbi': a.dbi,
            })
        return pd.DataFrame(rows).set_index('k')

    def clusters(self) -> pd.DataFrame:
        """One row per (k, cluster): size, within-cluster sum of squares and centre coordinates."""
        frames = []
        for a in self:
            df = pd.DataFrame(a.centers, columns=self.columns)
            df.insert(0, 'withinss', a.withinss)
            df.insert(0, 'size', a.sizes)
            df.insert(0, 'cluster', np.arange(a.k))
            df.insert(0, 'k', a.k)
            frames.append(df)
        return pd.concat(frames, ignore_index=True)

    def assignments(self, data: Optional[pd.DataFrame] = None) -> pd.DataFrame:
        """
        Long table with one row per (k, observation) and its '.cluster' label.

        ``data`` (aligned on the sweep's row index) is attached alongside the
        labels; it defaults to nothing but the labels themselves.
        """
        frames = []
        for a in self:
            df = pd.DataFrame({'k': a.k, '.cluster': a.labels.to_numpy()}, index=self.index)
            if data is not None:
                df = data.loc[self.index].join(df)
            frames.append(df.rename_axis('row').reset_index())
        return pd.concat(frames, ignore_index=True)


def sweep_kmeans(X, k_max=10, max_iter=300, tol=1e-4, random_state=42, n_init=10, n_jobs=None) -> SweepResult:
    """
    Fits k-means for every k in 1..k_max and collects assignments and inertia.

    Total within-cluster sum of squares is non-increasing in k: if an
    independent fit for k does not beat k-1, k is refitted starting from the
    k-1 centres plus the row farthest from its centre, and the better of the
    two fits is kept.

    Args:
        X: Scaled numeric matrix (N rows x D columns).
        k_max: Largest cluster count to fit; 1 <= k_max <= N.
        max_iter: Iteration cap per fit.
        tol: Convergence tolerance on centre movement.
        random_state: Seed for centre initialisation.
        n_init: Number of seeded restarts per k; the best is kept.
        n_jobs: Parallel workers for the per-k fits (None runs sequentially).

    Raises:
        ConfigurationError: k_max outside [1, N].
        DataQualityError: non-numeric, missing or infinite entries.
    """
    X_df = as_feature_frame(X)
    validate_k_max(k_max, len(X_df))
    values = X_df.to_numpy(dtype=float)
    totss = total_sum_of_squares(values)
    k_range = range(1, k_max + 1)

    logger.info("Running K-Means for k in %s on a %d x %d matrix...", list(k_range), *values.shape)

    def _process_k(k):
        return fit_kmeans(values, k, n_init=n_init, max_iter=max_iter, tol=tol,
                          random_state=random_state, totss=totss)

    fits = Parallel(n_jobs=n_jobs)(delayed(_process_k)(k) for k in k_range)
    by_k = {a.k: a for a in fits}

    for k in k_range[1:]:
        previous, current = by_k[k - 1], by_k[k]
        if current.tot_withinss <= previous.tot_withinss:
            continue
        logger.info("k=%d (TWSS %.4f) did not improve on k=%d (TWSS %.4f); refitting from k=%d centres.",
                    k, current.tot_withinss, k - 1, previous.tot_withinss, k - 1)
        refit = fit_kmeans(values, k, init=_warm_start_centers(values, previous), n_init=1,
                           max_iter=max_iter, tol=tol, random_state=random_state, totss=totss)
        refit.warm_started = True
        if refit.tot_withinss < current.tot_withinss:
            by_k[k] = refit

    for a in (by_k[k] for k in k_range):
        for note in a.notes:
            logger.warning("k=%d: %s", a.k, note)
        if not a.converged:
            message = f"K-Means with k={a.k} reached max_iter={max_iter} before stabilising; keeping the fit at the cap."
            logger.warning(message)
            warnings.warn(message, ConvergenceWarning, stacklevel=2)
        # re-index labels onto the caller's rows
        a.labels.index = X_df.index

    return SweepResult(by_k=by_k, columns=[str(c) for c in X_df.columns], index=X_df.index)


@dataclass
class HierarchicalResult:
    linkage: np.ndarray
    labels: pd.Series
    method: str

    @property
    def sizes(self) -> pd.Series:
        return self.labels.value_counts().sort_index()


def hierarchical_clusters(X, n_clusters=None, height=None, method='average', metric='euclidean') -> HierarchicalResult:
    """
    Agglomerative clustering cut either into ``n_clusters`` groups or at ``height``.

    Labels are 0-based. Exactly one of ``n_clusters`` and ``height`` must be given.
    """
    if (n_clusters is None) == (height is None):
        raise ConfigurationError("Pass exactly one of n_clusters or height.")
    X_df = as_feature_frame(X)
    if len(X_df) < 2:
        raise ConfigurationError("Hierarchical clustering needs at least two rows.")
    if n_clusters is not None and not 1 <= n_clusters <= len(X_df):
        raise ConfigurationError(f"n_clusters={n_clusters} must lie between 1 and {len(X_df)}")

    logger.info("Running Hierarchical Clustering (linkage='%s') on %d rows...", method, len(X_df))
    Z = sch.linkage(X_df.to_numpy(dtype=float), method=method, metric=metric)
    if n_clusters is not None:
        labels = sch.cut_tree(Z, n_clusters=n_clusters).ravel()
    else:
        labels = sch.cut_tree(Z, height=height).ravel()
    return HierarchicalResult(linkage=Z, labels=pd.Series(labels, index=X_df.index, name='cluster'), method=method)

"""Plots for distributions, correlations, elbow curves, clusters and confusion tables.

Every function takes an optional ``output_path``; when given, the figure is
saved there. Figures are always closed and returned.
"""

import logging
import math
import os
import textwrap

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import scipy.cluster.hierarchy as sch
import seaborn as sns

logger = logging.getLogger(__name__)


def savefig(fig, output_path=None, savefig_kws=None):
    if output_path is not None:
        directory = os.path.dirname(output_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        if savefig_kws is not None:
            fig.savefig(output_path, **savefig_kws)
        else:
            fig.savefig(output_path, bbox_inches='tight', dpi=150)
        logger.info("Plot saved to: %s", output_path)
    plt.close(fig)
    return fig


def missing_values_heatmap(df, output_path=None, savefig_kws=None):
    """Heatmap of missing values (light cells are missing)."""
    fig, ax = plt.subplots(figsize=(18, 10))
    sns.heatmap(df.isnull().astype(int), cbar=False, ax=ax)
    ax.set_title('Missing values')
    fig.tight_layout()
    return savefig(fig, output_path, savefig_kws)


def plot_variables(df, ignore_cols=None, output_path=None):
    """
    Combined boxplot for numeric variables and a grid of count plots for
    categorical variables, in a single figure.
    """
    if ignore_cols is None:
        cols_to_ignore = []
    elif isinstance(ignore_cols, str):
        cols_to_ignore = [ignore_cols]
    else:
        cols_to_ignore = list(ignore_cols)

    numeric_cols = [c for c in df.select_dtypes(include=np.number).columns if c not in cols_to_ignore]
    categorical_cols = [c for c in df.select_dtypes(exclude=np.number).columns if c not in cols_to_ignore]
    logger.info("Plotting %d numeric and %d categorical variables.", len(numeric_cols), len(categorical_cols))

    n_cols = 3
    n_cat_rows = math.ceil(len(categorical_cols) / n_cols)
    n_rows = (1 if numeric_cols else 0) + n_cat_rows
    fig = plt.figure(figsize=(n_cols * 7, max(n_rows, 1) * 5))
    grid = fig.add_gridspec(max(n_rows, 1), n_cols)

    row = 0
    if numeric_cols:
        ax = fig.add_subplot(grid[0, :])
        df_melted = df[numeric_cols].melt(var_name='Variable', value_name='Value')
        sns.boxplot(data=df_melted, x='Variable', y='Value', ax=ax)
        ax.set_title('Distribution of Numeric Variables')
        ax.tick_params(axis='x', rotation=45)
        row = 1

    for i, col in enumerate(categorical_cols):
        ax = fig.add_subplot(grid[row + i // n_cols, i % n_cols])
        order = df[col].value_counts().index
        sns.countplot(data=df, y=col, hue=col, ax=ax, order=order, palette='viridis', legend=False)
        ax.set_title(f'Frequency of {col}')
        ax.set_ylabel('')
        ax.set_xlabel('Count')
        labels = [textwrap.fill(item.get_text(), width=25) for item in ax.get_yticklabels()]
        ax.set_yticks(ax.get_yticks(), labels=labels)

    fig.tight_layout()
    return savefig(fig, output_path)


def plot_histogram_by(df, x, hue, output_path=None, title=None):
    """Histogram of ``x`` faceted by ``hue`` (e.g. wine quality per colour)."""
    grid = sns.displot(data=df, x=x, hue=hue, col=hue, discrete=True, legend=False)
    grid.figure.suptitle(title or f'{x} by {hue}', y=1.03)
    return savefig(grid.figure, output_path)


def plot_jitter_by(df, x, y, hue, output_path=None, title=None):
    """Strip plot of ``y`` against ``x`` faceted by ``hue``."""
    grid = sns.catplot(data=df, x=x, y=y, hue=hue, col=hue, kind='strip', jitter=0.3, alpha=0.5, legend=False)
    grid.figure.suptitle(title or f'{y} by {x} and {hue}', y=1.03)
    return savefig(grid.figure, output_path)


def correlation_heatmap(df, output_path=None, title='Correlation Matrix', annot=True):
    corr = df.select_dtypes(include=np.number).corr()
    fig, ax = plt.subplots(figsize=(max(6, 0.8 * len(corr)), max(5, 0.7 * len(corr))))
    sns.heatmap(corr, ax=ax, cmap='coolwarm', vmin=-1, vmax=1, annot=annot, fmt='.1f', square=True)
    ax.set_title(title)
    fig.tight_layout()
    return savefig(fig, output_path)


def plot_elbow(summary, output_path=None, column='tot_withinss'):
    """Total within-cluster sum of squares against k."""
    fig, ax = plt.subplots(figsize=(8, 5))
    ax.plot(summary.index, summary[column], '-o')
    ax.set_xticks(list(summary.index))
    ax.set_xlim(0, max(summary.index) + 0.5)
    ax.set_xlabel('Number of clusters (k)')
    ax.set_ylabel('Total within-cluster sum of squares')
    ax.set_title('Elbow method')
    ax.grid(True, linestyle='--', alpha=0.7)
    fig.tight_layout()
    return savefig(fig, output_path)


def plot_cluster_assignments(assignments, x, y, output_path=None, col_wrap=4):
    """
    Scatter of two features coloured by cluster, one panel per k.

    ``assignments`` is the long table from ``SweepResult.assignments(data)``.
    """
    data = assignments.assign(**{'.cluster': assignments['.cluster'].astype(str)})
    ks = sorted(data['k'].unique())
    grid = sns.relplot(data=data, x=x, y=y, hue='.cluster', col='k', col_wrap=min(col_wrap, len(ks)),
                       alpha=0.8, s=12, palette='tab10', height=3)
    grid.figure.suptitle(f'{y} vs {x} by cluster', y=1.02)
    return savefig(grid.figure, output_path)


def plot_cluster_sizes(labels, output_path=None, title='Cluster sizes'):
    sizes = pd.Series(labels).value_counts().sort_index()
    fig, ax = plt.subplots(figsize=(6, 5))
    sns.barplot(ax=ax, x=sizes.index.astype(str), y=sizes.values, hue=sizes.index.astype(str),
                palette='viridis', legend=False)
    ax.set_title(title)
    ax.set_xlabel('Cluster')
    ax.set_ylabel('Size')
    for container in ax.containers:
        ax.bar_label(container)
    fig.tight_layout()
    return savefig(fig, output_path)


def plot_dendrogram(linkage, output_path=None, k_cut=None, height=None, method=''):
    """
    Dendrogram of a linkage matrix, optionally coloured for ``k_cut`` clusters
    and with a horizontal line at ``height``.
    """
    fig, ax = plt.subplots(figsize=(15, 7))
    if k_cut is not None and 1 < k_cut <= len(linkage) + 1:
        distances = sorted(linkage[:, 2], reverse=True)
        threshold = distances[k_cut - 2]
        sch.dendrogram(linkage, color_threshold=threshold, ax=ax)
        ax.set_title(f'Dendrogram cut into {k_cut} clusters ({method} linkage)')
    else:
        sch.dendrogram(linkage, ax=ax)
        ax.set_title(f'Dendrogram ({method} linkage)')
    if height is not None:
        ax.axhline(y=height, c='blue', lw=1.5, linestyle='--')
    ax.set_xlabel('Observations')
    ax.set_ylabel('Distance')
    ax.grid(axis='y')
    fig.tight_layout()
    return savefig(fig, output_path)


def plot_confusion_heatmap(confusion, output_path=None, title='Confusion matrix', fmt='d'):
    """Heatmap of a (true label x predicted label) table."""
    fig, ax = plt.subplots(figsize=(7, 6))
    sns.heatmap(confusion, annot=True, fmt=fmt, cmap='Blues', cbar=False, ax=ax)
    ax.set_xlabel('Predicted label')
    ax.set_ylabel('True label')
    ax.set_title(title)
    fig.tight_layout()
    return savefig(fig, output_path)


def plot_feature_importance(importances, output_path=None, title='Permutation feature importance'):
    fig, ax = plt.subplots(figsize=(10, 6))
    sns.barplot(x='importance_mean', y='feature', data=importances, hue='feature',
                palette='viridis', dodge=False, legend=False, ax=ax)
    ax.set_xlabel('Mean importance (accuracy drop)')
    ax.set_ylabel('Feature')
    ax.set_title(title)
    ax.grid(axis='x', linestyle='--', alpha=0.7)
    fig.tight_layout()
    return savefig(fig, output_path)


def plot_count_by(df, x, hue, output_path=None, title=None):
    """Grouped counts of ``x`` split by ``hue``."""
    fig, ax = plt.subplots(figsize=(9, 5))
    sns.countplot(data=df, x=x, hue=hue, ax=ax, palette='viridis')
    ax.set_title(title or f'{x} by {hue}')
    ax.tick_params(axis='x', rotation=20)
    fig.tight_layout()
    return savefig(fig, output_path)

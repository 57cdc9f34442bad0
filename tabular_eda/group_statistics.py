"""Statistical comparisons of numeric and categorical features across groups."""

import logging
from itertools import combinations

import numpy as np
import pandas as pd
import scipy.stats as stats

from tabular_eda.errors import DataQualityError

logger = logging.getLogger(__name__)


def _numeric_columns(df, group_col, columns=None):
    if columns is not None:
        missing = [c for c in columns if c not in df.columns]
        if missing:
            raise DataQualityError(f"Columns not found: {missing}")
        return list(columns)
    return [c for c in df.select_dtypes(include=np.number).columns if c != group_col]


def _groups(df, group_col, var):
    return {g: df.loc[df[group_col] == g, var].dropna() for g in sorted(df[group_col].dropna().unique(), key=str)}


def kruskal_by_group(df, group_col, columns=None, p_value_threshold=0.05):
    """
    Kruskal-Wallis H test of every numeric column across the levels of ``group_col``.

    Columns where fewer than two groups have data, or where every value is
    identical, are skipped.
    """
    if group_col not in df.columns:
        raise DataQualityError(f"Group column '{group_col}' not found.")
    results = []
    for var in _numeric_columns(df, group_col, columns):
        groups = [g for g in _groups(df, group_col, var).values() if len(g) > 0]
        if len(groups) < 2 or pd.concat(groups).nunique() < 2:
            logger.info("Skipping Kruskal-Wallis for '%s': not enough variation across groups.", var)
            continue
        h_stat, p_val = stats.kruskal(*groups)
        results.append({'Variable': var, 'H-statistic': h_stat, 'P-value': p_val,
                        'Significant': p_val < p_value_threshold})
    if not results:
        return pd.DataFrame(columns=['H-statistic', 'P-value', 'Significant'])
    return pd.DataFrame(results).set_index('Variable')


def pairwise_mannwhitney(df, group_col, column, p_value_threshold=0.05):
    """
    Two-sided Mann-Whitney U tests between every pair of groups for one column.

    P-values are Bonferroni-adjusted over the number of pairs.
    """
    if group_col not in df.columns or column not in df.columns:
        raise DataQualityError(f"Columns '{group_col}' and '{column}' must both be present.")
    groups = _groups(df, group_col, column)
    pairs = [(a, b) for a, b in combinations(groups, 2) if len(groups[a]) and len(groups[b])]
    results = []
    for a, b in pairs:
        u_stat, p_val = stats.mannwhitneyu(groups[a], groups[b], alternative='two-sided')
        p_adj = min(p_val * len(pairs), 1.0)
        results.append({'Comparison': f'{a} vs {b}', 'U-statistic': u_stat, 'P-value': p_val,
                        'P-value (adj)': p_adj, 'Significant': p_adj < p_value_threshold})
    if not results:
        return pd.DataFrame(columns=['U-statistic', 'P-value', 'P-value (adj)', 'Significant'])
    return pd.DataFrame(results).set_index('Comparison')


def anova_chi2_by_group(df, group_col, p_value_threshold=0.05):
    """
    One-way ANOVA for numeric columns and chi-square tests of independence for
    categorical columns, each against ``group_col``.

    Returns:
        tuple: (anova_results, chi2_results) DataFrames indexed by variable.
    """
    cluster_ids = sorted(df[group_col].dropna().unique(), key=str)

    anova_results = []
    if len(cluster_ids) > 1:
        for var in _numeric_columns(df, group_col):
            groups = [df[df[group_col] == c][var].dropna() for c in cluster_ids]
            # f_oneway is undefined when every group is constant
            if all(len(g) > 1 for g in groups) and any(g.nunique() > 1 for g in groups):
                f_stat, p_val = stats.f_oneway(*groups)
                anova_results.append({'Variable': var, 'F-statistic': f_stat, 'P-value': p_val,
                                      'Significant': p_val < p_value_threshold})
    if anova_results:
        anova_results = pd.DataFrame(anova_results).set_index('Variable')
    else:
        anova_results = pd.DataFrame(columns=['F-statistic', 'P-value', 'Significant'])

    chi2_results = []
    for var in df.select_dtypes(exclude=np.number).columns:
        if var == group_col:
            continue
        contingency_table = pd.crosstab(df[var], df[group_col])
        if contingency_table.shape[0] > 1 and contingency_table.shape[1] > 1:
            chi2, p_val, _, _ = stats.chi2_contingency(contingency_table)
            chi2_results.append({'Variable': var, 'Chi-Square': chi2, 'P-value': p_val,
                                 'Significant': p_val < p_value_threshold})
    if chi2_results:
        chi2_results = pd.DataFrame(chi2_results).set_index('Variable')
    else:
        chi2_results = pd.DataFrame(columns=['Chi-Square', 'P-value', 'Significant'])

    return anova_results, chi2_results


def effect_sizes_by_group(df, group_col):
    """
    Cohen's d for every pair of groups on each numeric column, and Cramér's V
    for each categorical column against ``group_col``.
    """
    cohens_d_results = []
    cluster_ids = sorted(df[group_col].dropna().unique(), key=str)
    for var in _numeric_columns(df, group_col):
        for c1, c2 in combinations(cluster_ids, 2):
            group1 = df[df[group_col] == c1][var].dropna()
            group2 = df[df[group_col] == c2][var].dropna()
            n1, n2 = len(group1), len(group2)
            if n1 > 1 and n2 > 1:
                s1, s2 = group1.std(), group2.std()
                pooled_std = np.sqrt(((n1 - 1) * s1**2 + (n2 - 1) * s2**2) / (n1 + n2 - 2))
                d = (group1.mean() - group2.mean()) / pooled_std if pooled_std > 0 else 0.0
                cohens_d_results.append({'Variable': var, 'Comparison': f'C{c1} vs C{c2}', "Cohen's d": d})

    cramers_v_results = []
    for var in df.select_dtypes(exclude=np.number).columns:
        if var == group_col:
            continue
        contingency_table = pd.crosstab(df[var], df[group_col])
        if contingency_table.shape[0] > 1 and contingency_table.shape[1] > 1:
            chi2, _, _, _ = stats.chi2_contingency(contingency_table)
            n = contingency_table.sum().sum()
            r, k = contingency_table.shape
            v = np.sqrt((chi2 / n) / min(k - 1, r - 1))
            cramers_v_results.append({'Variable': var, "Cramér's V": v})

    cohens_d = (pd.DataFrame(cohens_d_results).set_index(['Variable', 'Comparison'])
                if cohens_d_results else pd.DataFrame(columns=["Cohen's d"]))
    cramers_v = (pd.DataFrame(cramers_v_results).set_index('Variable')
                 if cramers_v_results else pd.DataFrame(columns=["Cramér's V"]))
    return cohens_d, cramers_v

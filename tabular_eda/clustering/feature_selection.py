import logging

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)


class FeatureSelector:
    """
    Screens numeric features before clustering: near-zero variance and
    pairwise collinearity.
    """
    def __init__(self, df):
        """
        Initializes the FeatureSelector.

        Args:
            df (pd.DataFrame): The input dataframe. Only numeric columns are screened.
        """
        if not isinstance(df, pd.DataFrame):
            raise TypeError("Input 'df' must be a pandas DataFrame.")

        self.df = df.copy()
        self.numerical_cols = self.df.select_dtypes(include=np.number).columns.tolist()
        logger.info("FeatureSelector: %d numerical columns: %s", len(self.numerical_cols), self.numerical_cols)

    def variance_profile(self):
        """
        Frequency ratio and percent of unique values per numeric column.

        The frequency ratio is the count of the most common value divided by
        the count of the second most common one (inf for constant columns).
        """
        rows = []
        n = len(self.df)
        for col in self.numerical_cols:
            counts = self.df[col].value_counts(dropna=True)
            if len(counts) > 1:
                freq_ratio = counts.iloc[0] / counts.iloc[1]
            else:
                freq_ratio = np.inf
            rows.append({
                'feature': col,
                'freq_ratio': freq_ratio,
                'percent_unique': 100.0 * len(counts) / n if n else 0.0,
                'zero_var': len(counts) <= 1,
            })
        return pd.DataFrame(rows, columns=['feature', 'freq_ratio', 'percent_unique', 'zero_var']).set_index('feature')

    def near_zero_variance(self, freq_cut=95 / 5, unique_cut=10):
        """
        Columns with a single value, or with a dominant value and few distinct values.

        A column is flagged when it is constant, or when its frequency ratio
        exceeds ``freq_cut`` AND its percent of unique values is at most
        ``unique_cut``.
        """
        profile = self.variance_profile()
        flagged = profile['zero_var'] | ((profile['freq_ratio'] > freq_cut) & (profile['percent_unique'] <= unique_cut))
        nzv = profile.index[flagged].tolist()
        if nzv:
            logger.info("Near-zero-variance columns: %s", nzv)
        return nzv

    def correlated_features(self, corr_max):
        """
        For each pair of numeric columns with |correlation| above ``corr_max``,
        marks the one with the higher mean absolute correlation for removal.
        """
        features_to_remove = set()
        if len(self.numerical_cols) < 2:
            return []
        corr_matrix = self.df[self.numerical_cols].corr().abs()
        upper_tri = corr_matrix.where(np.triu(np.ones(corr_matrix.shape), k=1).astype(bool))

        for col in upper_tri.columns:
            correlated_partners = upper_tri.index[upper_tri[col] > corr_max].tolist()
            for partner in correlated_partners:
                if col in features_to_remove or partner in features_to_remove:
                    continue
                if corr_matrix[col].mean() >= corr_matrix[partner].mean():
                    features_to_remove.add(col)
                    logger.info("Marking '%s' for removal (highly correlated with '%s')", col, partner)
                else:
                    features_to_remove.add(partner)
                    logger.info("Marking '%s' for removal (highly correlated with '%s')", partner, col)
        return sorted(features_to_remove)

    def select_features(self, freq_cut=95 / 5, unique_cut=10, corr_max=None, always_drop=None):
        """
        Combines the screens above.

        Args:
            freq_cut (float): Frequency-ratio threshold for near-zero variance.
            unique_cut (float): Percent-unique threshold for near-zero variance.
            corr_max (float, optional): Maximum absolute pairwise correlation. Skipped if None.
            always_drop (list, optional): Columns removed unconditionally.

        Returns:
            tuple: (features_to_keep, features_to_remove), both in column order.
        """
        features_to_remove = set(always_drop or [])
        features_to_remove.update(self.near_zero_variance(freq_cut, unique_cut))
        if corr_max is not None:
            remaining = FeatureSelector(self.df.drop(columns=list(features_to_remove), errors='ignore'))
            features_to_remove.update(remaining.correlated_features(corr_max))

        features_to_keep = [c for c in self.df.columns if c not in features_to_remove]
        removed = [c for c in self.df.columns if c in features_to_remove]
        logger.info("Feature selection: keeping %d, removing %d %s", len(features_to_keep), len(removed), removed)
        return features_to_keep, removed

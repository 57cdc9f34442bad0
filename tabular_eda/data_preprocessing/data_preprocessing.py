"""Data loading, cleaning and feature preparation"""

import logging
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional

import lightgbm as lgb
import numpy as np
import pandas as pd
from sklearn.experimental import enable_iterative_imputer  # noqa: F401
from sklearn.impute import IterativeImputer
from sklearn.preprocessing import LabelEncoder

from tabular_eda.errors import ConfigurationError, DataQualityError

logger = logging.getLogger(__name__)


def clean_column_names(df: pd.DataFrame) -> pd.DataFrame:
    """
    Normalizes column names to snake_case.

    Camel-case boundaries are split ("eTIV" -> "e_tiv"), every run of
    non-alphanumeric characters becomes a single underscore, and clashing
    names get numeric suffixes ("x", "x_2", ...).
    """
    seen: Dict[str, int] = {}
    new_cols = []
    for col in df.columns:
        name = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", str(col).strip())
        name = re.sub(r"[^0-9a-zA-Z]+", "_", name).strip("_").lower()
        name = name or "column"
        if name in seen:
            seen[name] += 1
            name = f"{name}_{seen[name]}"
        else:
            seen[name] = 1
        new_cols.append(name)
    renamed = df.copy()
    renamed.columns = new_cols
    return renamed


def load_table(
    file_path: str,
    sep: str = ",",
    encoding: str = "utf-8",
    filter_conditions: Optional[Dict[str, List[Any]]] = None,
    chunk_size: Optional[int] = None,
) -> pd.DataFrame:
    """
    Loads a delimited file, optionally in chunks filtered on column values.

    Args:
        file_path: Path to the delimited file.
        sep: Field separator.
        encoding: Text encoding of the file.
        filter_conditions: A dictionary where keys are column names and values
                           are lists of the values to keep. Rows must satisfy ALL
                           conditions. Example: {'Visit': [1]}
        chunk_size: Rows per chunk. Chunked reading is used whenever
                    filter_conditions is given.

    Returns:
        The loaded DataFrame with column names normalized to snake_case.
    """
    if filter_conditions is not None and not isinstance(filter_conditions, dict):
        raise ConfigurationError("filter_conditions must be a dictionary.")

    if not filter_conditions:
        df = pd.read_csv(file_path, sep=sep, encoding=encoding)
    else:
        filtered_chunks = []
        with pd.read_csv(file_path, sep=sep, encoding=encoding, chunksize=chunk_size or 30_000) as reader:
            for chunk in reader:
                combined_mask = pd.Series(True, index=chunk.index)
                for column, desired_values in filter_conditions.items():
                    if column not in chunk.columns:
                        logger.warning("Column '%s' not found in %s. Skipping this filter condition.", column, file_path)
                        continue
                    combined_mask &= chunk[column].isin(desired_values)
                filtered_chunk = chunk[combined_mask]
                if not filtered_chunk.empty:
                    filtered_chunks.append(filtered_chunk)

        if filtered_chunks:
            df = pd.concat(filtered_chunks, ignore_index=True)
        else:
            logger.warning("No rows in %s match all filter conditions.", file_path)
            df = pd.read_csv(file_path, sep=sep, encoding=encoding, nrows=0)

    df = clean_column_names(df)
    logger.info("Loaded %s with shape %s", file_path, df.shape)
    return df


def require_columns(df: pd.DataFrame, columns: Iterable[str]) -> None:
    missing = [col for col in columns if col not in df.columns]
    if missing:
        raise DataQualityError(f"Missing required columns: {missing}")


def compute_missing(df: pd.DataFrame, normalize: bool = True) -> pd.DataFrame:
    """
    Calculates the pct/count of missing values per column.

    Parameters
    ----------
    df : `pandas.DataFrame`
    normalize : boolean, default=True

    Returns
    ----------
    missing_df : `pandas.DataFrame`
        DataFrame with the pct/counts of missing values per column.
    """
    missing_df = (df.isnull().sum()).to_frame('missing').reset_index().rename(columns={'index': 'var_name'})
    if normalize and len(df):
        missing_df['missing'] = missing_df['missing'] * 100 / df.shape[0]
    missing_df = missing_df.sort_values('missing', ascending=False).reset_index(drop=True)
    return missing_df


def describe_table(df: pd.DataFrame) -> pd.DataFrame:
    """Descriptive statistics for every column, with missing and distinct counts."""
    description = df.describe(include="all").T
    description["missing"] = df.isnull().sum()
    description["distinct"] = df.nunique()
    return description


def drop_incomplete_rows(df: pd.DataFrame, subset: Optional[List[str]] = None, reset_index: bool = True) -> pd.DataFrame:
    before = len(df)
    cleaned = df.dropna(subset=subset)
    if reset_index:
        cleaned = cleaned.reset_index(drop=True)
    dropped = before - len(cleaned)
    if dropped:
        logger.warning("Dropped %d of %d rows with missing values.", dropped, before)
    return cleaned


def assert_complete(df: pd.DataFrame, columns: Optional[List[str]] = None) -> None:
    """Raises DataQualityError if any of the given columns still holds missing values."""
    columns = list(df.columns) if columns is None else columns
    counts = df[columns].isnull().sum()
    counts = counts[counts > 0]
    if not counts.empty:
        raise DataQualityError(f"Unexpected missing values after cleaning: {counts.to_dict()}")


def canonicalize_categories(df: pd.DataFrame, column: str, vocabulary: Mapping[str, str]) -> pd.DataFrame:
    """
    Maps raw spellings of a categorical column onto its canonical vocabulary.

    Lookup is case- and whitespace-insensitive on the keys of ``vocabulary``.
    Missing values stay missing; any other value without a mapping raises
    DataQualityError.
    """
    require_columns(df, [column])
    lookup = {str(k).strip().lower(): v for k, v in vocabulary.items()}
    raw = df[column]
    present = raw.notna()
    keys = raw[present].astype(str).str.strip().str.lower()
    mapped = keys.map(lookup)

    unknown = sorted(raw[present][mapped.isna()].astype(str).unique())
    if unknown:
        raise DataQualityError(f"Column '{column}' has values outside its vocabulary: {unknown}")

    result = df.copy()
    result[column] = mapped.reindex(df.index)
    return result


class CategoryCodec:
    """
    Stable category-to-code mapping for one column.

    Codes come from the declared mapping, never from the order in which
    categories happen to appear in the data.
    """

    def __init__(self, column: str, mapping: Mapping[Any, int]):
        codes = list(mapping.values())
        if len(set(codes)) != len(codes):
            raise ConfigurationError(f"Codec for '{column}' maps two categories to the same code.")
        self.column = column
        self.mapping = dict(mapping)
        self.inverse = {code: category for category, code in self.mapping.items()}

    def __repr__(self):
        return f"CategoryCodec({self.column!r}, {self.mapping!r})"

    def encode(self, values: pd.Series) -> pd.Series:
        unknown = sorted(set(values.dropna().unique()) - set(self.mapping), key=str)
        if unknown:
            raise DataQualityError(f"Column '{self.column}' has categories with no code: {unknown}")
        if values.isna().any():
            raise DataQualityError(f"Column '{self.column}' has missing values and cannot be encoded.")
        return values.map(self.mapping).astype(int)

    def decode(self, codes: pd.Series) -> pd.Series:
        unknown = sorted(set(codes.dropna().unique()) - set(self.inverse), key=str)
        if unknown:
            raise DataQualityError(f"Column '{self.column}' has codes with no category: {unknown}")
        return codes.map(self.inverse)


def min_max_normalize(df: pd.DataFrame) -> pd.DataFrame:
    """Rescales every column to [0, 1] over its own range; constant columns become 0."""
    col_min = df.min()
    col_range = (df.max() - col_min).replace(0, np.nan)
    return ((df - col_min) / col_range).fillna(0.0)


def standardize(df: pd.DataFrame) -> pd.DataFrame:
    """Z-scores every column with the sample standard deviation; constant columns become 0."""
    col_std = df.std(ddof=1).replace(0, np.nan)
    return ((df - df.mean()) / col_std).fillna(0.0)


def impute_missing(
    df: pd.DataFrame,
    strategy: str = "median",
    numerical_cols: Optional[List[str]] = None,
    categorical_cols: Optional[List[str]] = None,
) -> pd.DataFrame:
    """
    Fills or drops missing values.

    Args:
        df: The input DataFrame.
        strategy: 'drop' removes incomplete rows, 'median' fills numeric columns
                  with their median and categorical columns with their mode,
                  'mice' runs chained-equation imputation with LightGBM.
        numerical_cols: Columns treated as numerical. Auto-detected if None.
        categorical_cols: Columns treated as categorical. Auto-detected if None.
    """
    if strategy == "drop":
        subset = (numerical_cols or []) + (categorical_cols or []) or None
        return drop_incomplete_rows(df, subset=subset, reset_index=False)

    if numerical_cols is None:
        numerical_cols = df.select_dtypes(include=np.number).columns.tolist()
    if categorical_cols is None:
        categorical_cols = df.select_dtypes(exclude=np.number).columns.tolist()

    if strategy == "median":
        imputed_df = df.copy()
        for col in numerical_cols:
            n_missing = imputed_df[col].isna().sum()
            if n_missing:
                fill = imputed_df[col].median()
                imputed_df[col] = imputed_df[col].fillna(fill)
                logger.info("Imputed %d missing values in '%s' with median %.3f", n_missing, col, fill)
        for col in categorical_cols:
            n_missing = imputed_df[col].isna().sum()
            if n_missing:
                fill = imputed_df[col].mode().iloc[0]
                imputed_df[col] = imputed_df[col].fillna(fill)
                logger.info("Imputed %d missing values in '%s' with mode %r", n_missing, col, fill)
        return imputed_df

    if strategy == "mice":
        return mice_impute_lightgbm(df, numerical_cols=numerical_cols, categorical_cols=categorical_cols)

    raise ConfigurationError(f"Unknown imputation strategy: {strategy!r}")


def mice_impute_lightgbm(
    df: pd.DataFrame,
    numerical_cols: Optional[List[str]] = None,
    categorical_cols: Optional[List[str]] = None,
    random_state: int = 0,
) -> pd.DataFrame:
    """
    Imputes missing values using MICE with a LightGBM estimator.

    Categorical features are label-encoded before imputation and decoded
    afterwards, with imputed codes rounded and clipped to the known classes.
    """
    imputed_df = df.copy()

    if numerical_cols is None or categorical_cols is None:
        numerical_cols = imputed_df.select_dtypes(include=np.number).columns.tolist()
        categorical_cols = imputed_df.select_dtypes(exclude=np.number).columns.tolist()

    all_cols = numerical_cols + categorical_cols
    if not set(all_cols).issubset(set(df.columns)):
        raise ConfigurationError("One or more provided column names are not in the DataFrame.")
    if set(numerical_cols) & set(categorical_cols):
        raise ConfigurationError("A column cannot be both numerical and categorical.")

    label_encoders = {}
    for col in categorical_cols:
        le = LabelEncoder()
        mask = imputed_df[col].notna()
        le.fit(imputed_df.loc[mask, col])
        label_encoders[col] = le
        transformed_col = pd.Series(np.nan, index=imputed_df.index)
        transformed_col[mask] = le.transform(imputed_df.loc[mask, col])
        imputed_df[col] = transformed_col.astype(float)

    mice_imputer = IterativeImputer(
        estimator=lgb.LGBMRegressor(n_estimators=50, random_state=random_state, verbose=-1),
        max_iter=5,
        random_state=random_state,
        imputation_order='roman',
    )
    imputed_matrix = mice_imputer.fit_transform(imputed_df[all_cols])
    imputed_df[all_cols] = pd.DataFrame(imputed_matrix, columns=all_cols, index=imputed_df.index)

    for col in categorical_cols:
        le = label_encoders[col]
        codes = np.clip(np.round(imputed_df[col]).astype(int), 0, len(le.classes_) - 1)
        imputed_df[col] = le.inverse_transform(codes)

    for col in numerical_cols:
        if pd.api.types.is_integer_dtype(df[col].dtype):
            imputed_df[col] = np.round(imputed_df[col]).astype(df[col].dtype)

    logger.info("MICE imputation complete for %d columns.", len(all_cols))
    return imputed_df

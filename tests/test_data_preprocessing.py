import numpy as np
import pandas as pd
import pytest

from tabular_eda.data_preprocessing.data_preprocessing import (
    CategoryCodec,
    assert_complete,
    canonicalize_categories,
    clean_column_names,
    compute_missing,
    describe_table,
    drop_incomplete_rows,
    impute_missing,
    load_table,
    min_max_normalize,
    standardize,
)
from tabular_eda.errors import ConfigurationError, DataQualityError


def test_clean_column_names():
    df = pd.DataFrame(columns=["Fixed Acidity", "pH", "eTIV", "M/F", "Subject  ID", "a", "A", "%"])
    assert list(clean_column_names(df).columns) == [
        "fixed_acidity", "p_h", "e_tiv", "m_f", "subject_id", "a", "a_2", "column",
    ]


def test_load_table_normalizes_names(tmp_path):
    path = tmp_path / "data.csv"
    path.write_text("Sleep Duration,Quality of Sleep\n6.1,6\n7.8,8\n")
    df = load_table(str(path))
    assert list(df.columns) == ["sleep_duration", "quality_of_sleep"]
    assert df.shape == (2, 2)


def test_load_table_filters_in_chunks(tmp_path):
    path = tmp_path / "data.csv"
    rows = "\n".join(f"{i},{i % 3},{'abc'[i % 3]}" for i in range(50))
    path.write_text("id,Visit,code\n" + rows + "\n")
    df = load_table(str(path), filter_conditions={"Visit": [1], "code": ["b"], "absent": [0]}, chunk_size=7)
    assert len(df) == 17
    assert (df["visit"] == 1).all()


def test_load_table_filter_without_matches_keeps_columns(tmp_path):
    path = tmp_path / "data.csv"
    path.write_text("a,b\n1,2\n")
    df = load_table(str(path), filter_conditions={"a": [99]})
    assert df.empty
    assert list(df.columns) == ["a", "b"]


def test_load_table_rejects_non_dict_filters(tmp_path):
    with pytest.raises(ConfigurationError):
        load_table(str(tmp_path / "x.csv"), filter_conditions=[("a", 1)])


def test_load_table_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_table(str(tmp_path / "nope.csv"))


def test_compute_missing():
    df = pd.DataFrame({"a": [1, np.nan, 3, np.nan], "b": [1, 2, 3, 4]})
    pct = compute_missing(df)
    assert pct.iloc[0].tolist() == ["a", 50.0]
    counts = compute_missing(df, normalize=False).set_index("var_name")["missing"]
    assert counts.to_dict() == {"a": 2, "b": 0}


def test_describe_table_counts_missing_and_distinct():
    df = pd.DataFrame({"a": [1, 1, np.nan], "b": ["x", "y", "y"]})
    description = describe_table(df)
    assert description.loc["a", "missing"] == 1
    assert description.loc["b", "distinct"] == 2


def test_drop_incomplete_rows():
    df = pd.DataFrame({"a": [1, np.nan, 3], "b": [1, 2, np.nan]})
    assert len(drop_incomplete_rows(df)) == 1
    kept = drop_incomplete_rows(df, subset=["a"], reset_index=False)
    assert list(kept.index) == [0, 2]


def test_assert_complete():
    df = pd.DataFrame({"a": [1, np.nan], "b": [1, 2]})
    assert_complete(df, ["b"])
    with pytest.raises(DataQualityError, match="'a'"):
        assert_complete(df)


def test_canonicalize_categories():
    df = pd.DataFrame({"group": ["Nondemented", "Non-demented", " DEMENTED ", None]})
    vocab = {"nondemented": "Nondemented", "non-demented": "Nondemented", "demented": "Demented"}
    result = canonicalize_categories(df, "group", vocab)
    assert result["group"].tolist()[:3] == ["Nondemented", "Nondemented", "Demented"]
    assert pd.isna(result["group"].iloc[3])


def test_canonicalize_categories_rejects_unknown_values():
    df = pd.DataFrame({"group": ["Nondemented", "Mild"]})
    with pytest.raises(DataQualityError, match="Mild"):
        canonicalize_categories(df, "group", {"nondemented": "Nondemented"})


def test_category_codec_codes_do_not_depend_on_row_order():
    codec = CategoryCodec("color", {"red": 0, "white": 1})
    assert codec.encode(pd.Series(["white", "red"])).tolist() == [1, 0]
    assert codec.encode(pd.Series(["white", "white"])).tolist() == [1, 1]
    assert codec.decode(pd.Series([0, 1])).tolist() == ["red", "white"]


def test_category_codec_errors():
    codec = CategoryCodec("color", {"red": 0, "white": 1})
    with pytest.raises(DataQualityError):
        codec.encode(pd.Series(["red", "rose"]))
    with pytest.raises(DataQualityError):
        codec.encode(pd.Series(["red", None]))
    with pytest.raises(DataQualityError):
        codec.decode(pd.Series([2]))
    with pytest.raises(ConfigurationError):
        CategoryCodec("color", {"red": 0, "white": 0})


def test_min_max_normalize():
    df = pd.DataFrame({"a": [1.0, 3.0, 5.0], "c": [2.0, 2.0, 2.0]})
    result = min_max_normalize(df)
    assert result["a"].tolist() == [0.0, 0.5, 1.0]
    assert result["c"].tolist() == [0.0, 0.0, 0.0]


def test_standardize_uses_sample_standard_deviation():
    df = pd.DataFrame({"a": [1.0, 2.0, 3.0], "c": [5.0, 5.0, 5.0]})
    result = standardize(df)
    np.testing.assert_allclose(result["a"], [-1.0, 0.0, 1.0])
    assert result["c"].tolist() == [0.0, 0.0, 0.0]


def test_impute_missing_median_and_mode():
    df = pd.DataFrame({"x": [1.0, np.nan, 3.0, 10.0], "s": ["M", "F", None, "F"]})
    filled = impute_missing(df, strategy="median")
    assert filled.loc[1, "x"] == 3.0
    assert filled.loc[2, "s"] == "F"
    assert df["x"].isna().sum() == 1


def test_impute_missing_drop_keeps_index():
    df = pd.DataFrame({"x": [1.0, np.nan, 3.0]})
    assert list(impute_missing(df, strategy="drop").index) == [0, 2]


def test_impute_missing_mice():
    rng = np.random.RandomState(0)
    df = pd.DataFrame({
        "x": rng.normal(size=40),
        "y": rng.normal(size=40),
        "s": rng.choice(["M", "F"], 40),
    })
    df.loc[[2, 5], "x"] = np.nan
    df.loc[7, "s"] = np.nan
    filled = impute_missing(df, strategy="mice", numerical_cols=["x", "y"], categorical_cols=["s"])
    assert not filled.isna().any().any()
    assert set(filled["s"]) <= {"M", "F"}


def test_impute_missing_unknown_strategy():
    with pytest.raises(ConfigurationError):
        impute_missing(pd.DataFrame({"x": [1.0]}), strategy="mean")

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest


@pytest.fixture
def two_blobs():
    """Six rows forming two well-separated groups of three."""
    return pd.DataFrame({
        "x": [0.0, 0.2, 0.1, 10.0, 10.2, 10.1],
        "y": [0.0, 0.1, 0.2, 10.0, 10.1, 10.2],
    })


@pytest.fixture
def random_matrix():
    rng = np.random.RandomState(0)
    return pd.DataFrame(rng.normal(size=(40, 3)), columns=["a", "b", "c"])


@pytest.fixture
def separable():
    """Two classes split cleanly on both features."""
    rng = np.random.RandomState(1)
    n = 20
    X = pd.DataFrame({
        "f1": np.concatenate([rng.uniform(0, 1, n), rng.uniform(9, 10, n)]),
        "f2": np.concatenate([rng.uniform(0, 1, n), rng.uniform(9, 10, n)]),
    })
    y = pd.Series(["low"] * n + ["high"] * n, name="label")
    return X, y


@pytest.fixture
def raw_wine():
    rng = np.random.RandomState(2)
    n = 30
    red = np.arange(n) < n // 2
    quality = rng.randint(3, 9, n)
    df = pd.DataFrame({
        "fixed acidity": np.where(red, rng.normal(8.3, 1.0, n), rng.normal(6.8, 0.8, n)),
        "volatile acidity": np.where(red, rng.normal(0.53, 0.1, n), rng.normal(0.28, 0.1, n)),
        "citric acid": rng.uniform(0.0, 0.7, n),
        "residual sugar": np.where(red, rng.normal(2.5, 0.8, n), rng.normal(6.4, 3.0, n)).clip(0.5),
        "chlorides": rng.normal(0.06, 0.01, n),
        "free sulfur dioxide": rng.normal(30, 10, n).clip(2),
        "total sulfur dioxide": np.where(red, rng.normal(46, 15, n), rng.normal(138, 30, n)).clip(6),
        "density": rng.normal(0.995, 0.002, n),
        "pH": rng.normal(3.2, 0.15, n),
        "sulphates": rng.normal(0.55, 0.1, n),
        "alcohol": rng.normal(10.5, 1.1, n),
        "quality": quality,
        "good": (quality >= 7).astype(int),
        "color": np.where(red, "red", "white"),
    })
    df.loc[3, "color"] = "Red "
    df.loc[20, "color"] = "WHITE"
    df.loc[7, "alcohol"] = np.nan
    return df


@pytest.fixture
def raw_oasis():
    rng = np.random.RandomState(3)
    groups = ["Nondemented"] * 16 + ["Demented"] * 14 + ["Converted"] * 10
    n = len(groups)
    demented = np.array([g == "Demented" for g in groups])
    converted = np.array([g == "Converted" for g in groups])
    df = pd.DataFrame({
        "Subject ID": [f"OAS2_{i:04d}" for i in range(n)],
        "MRI ID": [f"OAS2_{i:04d}_MR1" for i in range(n)],
        "Group": groups,
        "Visit": 1,
        "MR Delay": 0,
        "M/F": rng.choice(["M", "F"], n),
        "Hand": "R",
        "Age": rng.randint(60, 95, n),
        "EDUC": rng.randint(8, 22, n),
        "SES": rng.randint(1, 6, n).astype(float),
        "MMSE": np.where(demented, rng.randint(15, 26, n), rng.randint(26, 31, n)).astype(float),
        "CDR": np.where(demented, 1.0, np.where(converted, 0.5, 0.0)),
        "eTIV": rng.randint(1200, 2000, n),
        "nWBV": np.where(demented, rng.normal(0.70, 0.02, n), rng.normal(0.75, 0.02, n)),
        "ASF": rng.normal(1.2, 0.1, n),
    })
    df.loc[1, "Group"] = "Non-demented"
    df.loc[[4, 18], "SES"] = np.nan
    df.loc[25, "MMSE"] = np.nan
    return df


@pytest.fixture
def raw_sleep():
    rng = np.random.RandomState(4)
    disorders = [None] * 15 + ["Insomnia"] * 15 + ["Sleep Apnea"] * 15
    n = len(disorders)
    insomnia = np.array([d == "Insomnia" for d in disorders])
    apnea = np.array([d == "Sleep Apnea" for d in disorders])
    systolic = np.where(apnea, rng.randint(135, 145, n), rng.randint(115, 130, n))
    diastolic = np.where(apnea, rng.randint(88, 95, n), rng.randint(75, 85, n))
    return pd.DataFrame({
        "Person ID": np.arange(1, n + 1),
        "Gender": rng.choice(["Male", "Female"], n),
        "Age": rng.randint(27, 60, n),
        "Occupation": rng.choice(["Nurse", "Doctor", "Engineer", "Teacher"], n),
        "Sleep Duration": np.where(insomnia, rng.normal(5.9, 0.2, n), rng.normal(7.4, 0.3, n)).round(1),
        "Quality of Sleep": np.where(insomnia, rng.randint(4, 7, n), rng.randint(7, 10, n)),
        "Physical Activity Level": rng.randint(30, 90, n),
        "Stress Level": np.where(insomnia, rng.randint(6, 9, n), rng.randint(3, 6, n)),
        "BMI Category": np.where(apnea, "Obese", rng.choice(["Normal", "Normal Weight", "Overweight"], n)),
        "Blood Pressure": [f"{s}/{d}" for s, d in zip(systolic, diastolic)],
        "Heart Rate": rng.randint(60, 85, n),
        "Daily Steps": rng.randint(3000, 10000, n),
        "Sleep Disorder": disorders,
    })


def write_csv(df, tmp_path, name):
    path = tmp_path / name
    df.to_csv(path, index=False)
    return str(path)


@pytest.fixture
def wine_csv(raw_wine, tmp_path):
    return write_csv(raw_wine, tmp_path, "wine.csv")


@pytest.fixture
def oasis_csv(raw_oasis, tmp_path):
    return write_csv(raw_oasis, tmp_path, "oasis_longitudinal.csv")


@pytest.fixture
def sleep_csv(raw_sleep, tmp_path):
    return write_csv(raw_sleep, tmp_path, "sleep_health.csv")

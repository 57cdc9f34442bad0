"""Declared column schemas, canonical vocabularies and code mappings."""

# --- Wine quality ---

WINE_NUMERIC_COLS = [
    "fixed_acidity",
    "volatile_acidity",
    "citric_acid",
    "residual_sugar",
    "chlorides",
    "free_sulfur_dioxide",
    "total_sulfur_dioxide",
    "density",
    "ph",
    "sulphates",
    "alcohol",
]
WINE_REQUIRED_COLS = WINE_NUMERIC_COLS + ["quality", "good", "color"]
# "pH" snake-cases to "p_h".
WINE_RENAME = {"p_h": "ph"}

WINE_COLOR_VOCAB = {
    "red": "red",
    "r": "red",
    "white": "white",
    "w": "white",
}
WINE_COLOR_CODES = {"red": 0, "white": 1}
WINE_GOOD_CODES = {0: 0, 1: 1}

# --- OASIS longitudinal (Alzheimer's) ---

OASIS_RENAME = {
    "m_f": "sex",
    "e_tiv": "etiv",
    "n_wbv": "nwbv",
}
OASIS_FEATURES = ["sex", "age", "educ", "ses", "mmse", "cdr", "etiv", "nwbv", "asf"]
OASIS_NUMERIC_COLS = ["age", "educ", "ses", "mmse", "cdr", "etiv", "nwbv", "asf"]
OASIS_ID_COLS = ["subject_id", "mri_id", "visit", "mr_delay"]
OASIS_TARGET = "group"

OASIS_GROUP_VOCAB = {
    "nondemented": "Nondemented",
    "non-demented": "Nondemented",
    "non demented": "Nondemented",
    "demented": "Demented",
    "converted": "Converted",
}
OASIS_SEX_VOCAB = {"m": "M", "male": "M", "f": "F", "female": "F"}
OASIS_SEX_CODES = {"M": 0, "F": 1}

# --- Sleep health and lifestyle ---

SLEEP_NUMERIC_COLS = [
    "age",
    "sleep_duration",
    "quality_of_sleep",
    "physical_activity_level",
    "stress_level",
    "heart_rate",
    "daily_steps",
]
SLEEP_REQUIRED_COLS = SLEEP_NUMERIC_COLS + [
    "gender",
    "occupation",
    "bmi_category",
    "blood_pressure",
    "sleep_disorder",
]
SLEEP_TARGET = "sleep_disorder"

SLEEP_BMI_VOCAB = {
    "normal": "Normal",
    "normal weight": "Normal",
    "overweight": "Overweight",
    "obese": "Obese",
}
SLEEP_BMI_CODES = {"Normal": 0, "Overweight": 1, "Obese": 2}

SLEEP_GENDER_VOCAB = {"male": "Male", "m": "Male", "female": "Female", "f": "Female"}
SLEEP_GENDER_CODES = {"Male": 0, "Female": 1}

SLEEP_DISORDER_VOCAB = {
    "none": "None",
    "insomnia": "Insomnia",
    "sleep apnea": "Sleep Apnea",
    "sleep apnoea": "Sleep Apnea",
}

"""
config.py
Shared constants: column layout, cleaning policy, unit factors, model grids.
"""

import os

RAW_DIR = "data/raw"
PROCESSED_DIR = "data/processed"
RAW_PATH = os.path.join(RAW_DIR, "46053h2022.txt")
DAILY_PATH = os.path.join(PROCESSED_DIR, "buoy_daily.csv")
SAVE_DIR = "outputs"

SEED = 1112

# NDBC standard meteorological header -> internal name
RAW_COLUMN_MAP = {
    "#YY": "year", "YY": "year", "YYYY": "year", "#YYYY": "year",
    "MM": "month", "DD": "day", "hh": "hour", "mm": "minute",
    "WDIR": "wdir", "WD": "wdir",
    "WSPD": "wspd", "GST": "gst",
    "WVHT": "wvht", "DPD": "dpd", "APD": "apd", "MWD": "mwd",
    "PRES": "pres", "BAR": "pres",
    "ATMP": "atmp", "WTMP": "wtmp", "DEWP": "dewp",
    "VIS": "vis", "TIDE": "tide",
}

TIME_FIELDS = ["year", "month", "day", "hour", "minute"]
MEASUREMENT_FIELDS = [
    "wdir", "wspd", "gst", "wvht", "dpd", "apd", "mwd",
    "pres", "atmp", "wtmp", "dewp", "vis", "tide",
]
RAW_FIELDS = TIME_FIELDS + MEASUREMENT_FIELDS

DROP_FIELDS = ["vis", "tide", "dewp", "apd", "gst", "pres"]
KEEP_FIELDS = ["wdir", "wspd", "wvht", "dpd", "mwd", "atmp", "wtmp"]

# "instrument did not record"; compared by exact equality on the raw value
SENTINELS = {
    "wvht": 99,
    "wdir": 999,
    "mwd": 999,
    "wspd": 99,
    "atmp": 999,
    "wtmp": 999,
}

MS_TO_KNOTS = 1.94384
M_TO_FT = 3.28084

TARGET = "wtmp"
PREDICTORS = ["wdir", "wspd", "wvht", "dpd", "mwd", "atmp"]

TRAIN_FRACTION = 0.7
N_FOLDS = 5
STRATA_BREAKS = 4

# (low, high, levels) for regular grids
KNN_NEIGHBORS = (1, 10, 5)
POLY_DEGREE = (1, 10, 5)
RF_MAX_FEATURES = (1, 6, 7)
RF_TREES = (200, 600, 7)
RF_MIN_SPLIT = (3, 15, 7)

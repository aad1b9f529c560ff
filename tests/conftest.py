"""Shared fixtures: synthetic raw buoy rows and daily tables."""

import numpy as np
import pandas as pd
import pytest

from buoy_sst import config


def make_raw_row(day, hour=12, minute=0, **overrides):
    """One plausible hourly reading on 2022-01-<day>, internal field names."""
    row = {
        "year": 2022, "month": 1, "day": day, "hour": hour, "minute": minute,
        "wdir": 180, "wspd": 5.0, "gst": 7.0, "wvht": 1.5, "dpd": 10.0,
        "apd": 6.0, "mwd": 270, "pres": 1015.0, "atmp": 15.0,
        "wtmp": 5.0 + day, "dewp": 10.0,
        # always sentinel-like in real files; must not cause drops
        "vis": 99.0, "tide": 99.0,
    }
    row.update(overrides)
    return row


@pytest.fixture
def ten_day_rows():
    """10 days, one row each: days 3 and 5 carry the wave-height sentinel,
    day 8 has month=13."""
    rows = [make_raw_row(d) for d in range(1, 11)]
    rows[2]["wvht"] = 99
    rows[4]["wvht"] = 99
    rows[7]["month"] = 13
    return rows


@pytest.fixture
def hourly_rows():
    """Three days of several readings each, with a mix of bad rows."""
    rows = []
    for day in (1, 2, 3):
        for hour, wtmp in zip((0, 6, 12, 18), (10.0, 11.0, 12.0, 13.0)):
            rows.append(make_raw_row(day, hour=hour, wtmp=wtmp + day,
                                     atmp=14.0 + hour / 6, wvht=1.0 + hour / 12))
    rows.append(make_raw_row(1, hour=3, wvht=99, wtmp=999))   # two sentinels, one row
    rows.append(make_raw_row(2, hour=3, mwd=999))
    rows.append(make_raw_row(2, hour=4, atmp="MM"))            # missing after coercion
    rows.append(make_raw_row(3, hour=25))                       # invalid hour
    rows.append([2022, 1, 3, 5, 0, 180])                        # wrong field count
    return rows


@pytest.fixture
def daily():
    """120 daily records where water temperature tracks air temperature."""
    rng = np.random.default_rng(0)
    n = 120
    season = np.sin(np.linspace(0, 2 * np.pi, n))
    atmp = 58 + 8 * season + rng.normal(0, 1.5, n)
    df = pd.DataFrame({
        "date": pd.date_range("2022-01-01", periods=n, freq="D"),
        "wdir": rng.uniform(0, 360, n),
        "wspd": rng.uniform(0, 25, n),
        "wvht": rng.uniform(2, 12, n),
        "dpd": rng.uniform(5, 18, n),
        "mwd": rng.uniform(0, 360, n),
        "atmp": atmp,
    })
    df[config.TARGET] = 20 + 0.6 * atmp + rng.normal(0, 0.5, n)
    return df


@pytest.fixture
def small_grids():
    return {
        "knn": {"n_neighbors": [3, 5]},
        "polynomial": {"degree": [1, 2]},
        "random_forest": {"max_features": [2], "n_estimators": [20], "min_samples_split": [2]},
    }

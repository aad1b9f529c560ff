"""
clean_buoy.py
NDBC standard meteorological buoy data cleaning.

- Coerce every field to numeric (unparseable -> missing)
- Drop unneeded columns: visibility, tide, dewpoint, average period, gust, pressure
- Build one timestamp from YY MM DD hh mm
- Drop rows with missing cells, then rows carrying a sentinel value (99 / 999)
- Aggregate to daily means
- Convert units: wave height (m->ft), wind speed (m/s->knots), temperatures (°C->°F)
- Save to data/processed/buoy_daily.csv
"""

import os
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

import pandas as pd

from buoy_sst import config
from buoy_sst.errors import InvalidTimestampError, MalformedRecordError

DROP_REASONS = ["malformed", "timestamp", "missing", "sentinel"]
REQUIRED_FIELDS = config.TIME_FIELDS + config.KEEP_FIELDS


def c_to_f(x):
    """Celsius to Fahrenheit"""
    return x * 9.0 / 5.0 + 32.0

def m_to_ft(x):
    """Meters to feet"""
    return x * config.M_TO_FT

def ms_to_knots(x):
    """Meters per second to knots"""
    return x * config.MS_TO_KNOTS


UNIT_CONVERSIONS = {
    "wvht": m_to_ft,
    "wspd": ms_to_knots,
    "atmp": c_to_f,
    "wtmp": c_to_f,
}


@dataclass
class CleaningReport:
    """Where every raw row went.

    ``dropped`` counts each removed row exactly once, under the first
    reason that removed it. ``sentinel_hits`` counts matches per field
    and can overlap, so it does not add up to ``dropped["sentinel"]``.
    """
    n_raw: int = 0
    n_kept: int = 0
    n_days: int = 0
    dropped: Dict[str, int] = field(default_factory=lambda: dict.fromkeys(DROP_REASONS, 0))
    sentinel_hits: Dict[str, int] = field(default_factory=dict)
    errors: List[Exception] = field(default_factory=list)

    @property
    def n_dropped(self) -> int:
        return sum(self.dropped.values())

    def summary(self) -> str:
        lines = [
            f"[CLEAN] Raw rows: {self.n_raw}",
            f"[CLEAN] Kept rows: {self.n_kept} ({self.n_days} days)",
        ]
        for reason in DROP_REASONS:
            lines.append(f"[CLEAN] Dropped ({reason}): {self.dropped[reason]}")
        hits = ", ".join(f"{k}={v}" for k, v in self.sentinel_hits.items() if v)
        if hits:
            lines.append(f"[CLEAN] Sentinel hits by field (overlapping): {hits}")
        return "\n".join(lines)


def load_raw(path: str = config.RAW_PATH) -> pd.DataFrame:
    """Read an NDBC text file into a frame of raw string cells.

    The first line is the header (``#YY  MM DD hh mm WDIR ...``); further
    ``#`` lines (units) are skipped. Lines whose field count does not match
    the header are kept out of the frame and listed in ``attrs["malformed"]``.
    """
    rows, malformed = [], []
    with open(path, "r") as f:
        header = f.readline().strip()
        sep = "," if "," in header else None
        names = [c.strip() for c in header.split(sep)]
        for lineno, line in enumerate(f, start=2):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            tokens = [t.strip() for t in line.split(sep)]
            if len(tokens) != len(names):
                malformed.append(MalformedRecordError(
                    lineno, f"expected {len(names)} fields, got {len(tokens)}"))
                continue
            rows.append(tokens)

    df = pd.DataFrame(rows, columns=names)
    df.attrs["malformed"] = malformed
    return df


def _rename(columns):
    return {c: config.RAW_COLUMN_MAP.get(c, c) for c in columns}


def to_frame(raw_rows) -> Tuple[pd.DataFrame, List[MalformedRecordError]]:
    """Turn raw rows into a frame keyed by internal field names.

    Accepts a DataFrame, or a sequence whose items are mappings (field ->
    value) or token sequences in ``config.RAW_FIELDS`` order. Rows that do
    not have the required fields are returned as errors instead.
    """
    if isinstance(raw_rows, pd.DataFrame):
        malformed = list(raw_rows.attrs.get("malformed", []))
        df = raw_rows.rename(columns=_rename(raw_rows.columns))
        missing = [c for c in REQUIRED_FIELDS if c not in df.columns]
        if missing:
            raise ValueError(f"raw table is missing required columns: {missing}")
        return df, malformed

    records, index, malformed = [], [], []
    for i, row in enumerate(raw_rows):
        try:
            records.append(_parse_record(i, row))
            index.append(i)
        except MalformedRecordError as exc:
            malformed.append(exc)
    df = pd.DataFrame(records, index=index, columns=config.RAW_FIELDS)
    return df, malformed


def _parse_record(i, row) -> dict:
    if isinstance(row, Mapping):
        record = {config.RAW_COLUMN_MAP.get(k, k): v for k, v in row.items()}
        missing = [c for c in REQUIRED_FIELDS if c not in record]
        if missing:
            raise MalformedRecordError(i, f"missing fields {missing}")
        return record
    if isinstance(row, Sequence) and not isinstance(row, (str, bytes)):
        if len(row) != len(config.RAW_FIELDS):
            raise MalformedRecordError(
                i, f"expected {len(config.RAW_FIELDS)} fields, got {len(row)}")
        return dict(zip(config.RAW_FIELDS, row))
    raise MalformedRecordError(i, f"unsupported row type {type(row).__name__}")


def coerce_numeric(df: pd.DataFrame) -> pd.DataFrame:
    cols = [c for c in config.RAW_FIELDS if c in df.columns]
    return df[cols].apply(pd.to_numeric, errors="coerce").astype(float)


def prune_columns(df: pd.DataFrame) -> pd.DataFrame:
    df = df.drop(columns=config.DROP_FIELDS, errors="ignore")
    return df[REQUIRED_FIELDS]


def synthesize_timestamp(df: pd.DataFrame) -> Tuple[pd.DataFrame, List[InvalidTimestampError]]:
    """Replace the time components with a single ``timestamp`` column.

    Rows whose components are all present but do not form a valid date/time
    are removed and reported. Rows with a missing component get NaT and are
    left for ``drop_missing``.
    """
    parts = df[config.TIME_FIELDS]
    # two-digit years in pre-1999 files
    year = parts["year"].where(parts["year"] >= 100, parts["year"] + 1900)
    complete = parts.notna().all(axis=1)
    plausible = (
        complete
        & (parts.fillna(0) % 1 == 0).all(axis=1)
        & parts["month"].between(1, 12)
        & parts["day"].between(1, 31)
        & parts["hour"].between(0, 23)
        & parts["minute"].between(0, 59)
    )

    ymd = (year * 10000 + parts["month"] * 100 + parts["day"]).where(plausible, 0)
    dates = pd.to_datetime(ymd.astype("int64").astype(str), format="%Y%m%d", errors="coerce")
    stamp = (
        dates
        + pd.to_timedelta(parts["hour"], unit="h")
        + pd.to_timedelta(parts["minute"], unit="min")
    ).where(plausible)

    invalid = complete & stamp.isna()
    errors = [
        InvalidTimestampError(idx, parts.loc[idx].to_dict())
        for idx in parts.index[invalid.to_numpy()]
    ]

    out = df.drop(columns=config.TIME_FIELDS)
    out.insert(0, "timestamp", stamp)
    return out[~invalid], errors


def drop_missing(obs: pd.DataFrame) -> pd.DataFrame:
    return obs.dropna()


def drop_sentinels(obs: pd.DataFrame, sentinels=None) -> Tuple[pd.DataFrame, Dict[str, int]]:
    """Drop every row where any field equals its sentinel (exact match).

    Returns the kept rows and the per-field hit counts.
    """
    sentinels = config.SENTINELS if sentinels is None else sentinels
    flags = pd.DataFrame(
        {col: obs[col] == value for col, value in sentinels.items()},
        index=obs.index,
    )
    hits = {col: int(flags[col].sum()) for col in flags.columns}
    return obs[~flags.any(axis=1)], hits


def aggregate_daily(obs: pd.DataFrame) -> pd.DataFrame:
    """One row per calendar date: the mean of each retained field."""
    fields = [c for c in config.KEEP_FIELDS if c in obs.columns]
    return (obs.assign(date=obs["timestamp"].dt.normalize())
               .groupby("date")[fields]
               .mean()
               .reset_index()
               .sort_values("date")
               .reset_index(drop=True))


def convert_units(daily: pd.DataFrame) -> pd.DataFrame:
    out = daily.copy()
    for col, convert in UNIT_CONVERSIONS.items():
        if col in out.columns:
            out[col] = convert(out[col])
    return out


def clean_observations(raw_rows) -> Tuple[pd.DataFrame, CleaningReport]:
    """Raw rows -> CleanObservation frame (raw units) plus the drop report."""
    report = CleaningReport()
    df, malformed = to_frame(raw_rows)
    report.n_raw = len(df) + len(malformed)
    report.dropped["malformed"] = len(malformed)
    report.errors.extend(malformed)

    obs = prune_columns(coerce_numeric(df))

    obs, bad_stamps = synthesize_timestamp(obs)
    report.dropped["timestamp"] = len(bad_stamps)
    report.errors.extend(bad_stamps)

    before = len(obs)
    obs = drop_missing(obs)
    report.dropped["missing"] = before - len(obs)

    before = len(obs)
    obs, hits = drop_sentinels(obs)
    report.dropped["sentinel"] = before - len(obs)
    report.sentinel_hits = hits

    report.n_kept = len(obs)
    return obs, report


def clean(raw_rows, return_report: bool = False):
    """Raw buoy rows -> daily records in feet / knots / °F, sorted by date."""
    obs, report = clean_observations(raw_rows)
    daily = convert_units(aggregate_daily(obs))
    report.n_days = len(daily)
    if return_report:
        return daily, report
    return daily


def main():
    os.makedirs(config.PROCESSED_DIR, exist_ok=True)
    raw = load_raw(config.RAW_PATH)
    print(f"[NDBC] Raw shape: {raw.shape}")

    daily, report = clean(raw, return_report=True)
    print(report.summary())
    if len(daily):
        print(f"Date range: {daily['date'].min().date()} → {daily['date'].max().date()}")
    print(daily.head(5))

    daily.to_csv(config.DAILY_PATH, index=False)
    print(f"[NDBC] Saved: {config.DAILY_PATH}")

if __name__ == "__main__":
    main()

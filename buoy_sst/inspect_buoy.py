"""
inspect_buoy.py
Read-only inspection for NDBC buoy data at data/raw/.
No cleaning, no file outputs — prints diagnostics to stdout.
"""

import os

import pandas as pd

from buoy_sst import config
from buoy_sst.clean_buoy import coerce_numeric, load_raw, to_frame


def print_header(title: str):
    print("\n" + "=" * 80)
    print(title)
    print("=" * 80)


def sentinel_summary(raw) -> pd.DataFrame:
    """Per retained measurement: missing cells, sentinel cells and sentinel share."""
    df, _ = to_frame(raw)
    num = coerce_numeric(df)
    rows = []
    for col in config.KEEP_FIELDS:
        sentinel = config.SENTINELS.get(col)
        hits = int((num[col] == sentinel).sum()) if sentinel is not None else 0
        rows.append({
            "field": col,
            "sentinel": sentinel,
            "na_count": int(num[col].isna().sum()),
            "sentinel_count": hits,
            "sentinel_pct": round(hits / len(num), 4) if len(num) else 0.0,
        })
    return pd.DataFrame(rows).set_index("field")


def main():
    if not os.path.exists(config.RAW_PATH):
        raise FileNotFoundError(f"File not found: {config.RAW_PATH}")

    print_header("1) Load & Basic Info")
    raw = load_raw(config.RAW_PATH)
    print(f"Shape: {raw.shape}")
    print(f"Columns ({len(raw.columns)}): {list(raw.columns)}")
    print(f"Malformed lines: {len(raw.attrs.get('malformed', []))}")
    print("\nHead:")
    print(raw.head(5))

    print_header("2) Missingness & Sentinels (retained fields)")
    print(sentinel_summary(raw))

    print_header("3) Numeric Columns — Descriptive Stats")
    num = coerce_numeric(to_frame(raw)[0])
    print(num[config.KEEP_FIELDS].describe(percentiles=[0.01, 0.5, 0.99]).T)

    print("\n✅ Buoy inspection completed. (No changes made)")

if __name__ == "__main__":
    main()

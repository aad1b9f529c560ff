"""Unit tests for the buoy cleaning pipeline.

Tests:
- drop accounting: every raw row is kept or dropped for exactly one reason
- sentinel policy: exact match, union of conditions, pruned fields ignored
- timestamp synthesis, daily aggregation and unit conversion
- file loading (whitespace and comma layouts)
"""

import numpy as np
import pandas as pd
import pytest

from buoy_sst import config
from buoy_sst.clean_buoy import (
    aggregate_daily,
    c_to_f,
    clean,
    clean_observations,
    convert_units,
    drop_sentinels,
    load_raw,
    m_to_ft,
    ms_to_knots,
    synthesize_timestamp,
    to_frame,
    coerce_numeric,
    prune_columns,
)
from buoy_sst.errors import InvalidTimestampError, MalformedRecordError

from conftest import make_raw_row


NDBC_HEADER = "#YY  MM DD hh mm WDIR WSPD GST  WVHT   DPD   APD MWD   PRES  ATMP  WTMP  DEWP  VIS  TIDE"
NDBC_UNITS = "#yr  mo dy hr mn degT m/s  m/s     m   sec   sec degT   hPa  degC  degC  degC   mi    ft"


class TestEndToEnd:
    """The ten-day example: two sentinel rows and one impossible month."""

    def test_ten_days_yield_seven_records(self, ten_day_rows):
        daily = clean(ten_day_rows)

        assert len(daily) == 7
        assert daily["wtmp"].between(32, 80).all()

        kept_days = sorted(daily["date"].dt.day)
        assert kept_days == [1, 2, 4, 6, 7, 9, 10]

    def test_report_counts(self, ten_day_rows):
        daily, report = clean(ten_day_rows, return_report=True)

        assert report.n_raw == 10
        assert report.n_kept == 7
        assert report.n_days == len(daily) == 7
        assert report.dropped == {"malformed": 0, "timestamp": 1, "missing": 0, "sentinel": 2}
        assert any(isinstance(e, InvalidTimestampError) for e in report.errors)

    def test_dataframe_input_matches_sequence_input(self, ten_day_rows):
        from_rows = clean(ten_day_rows)
        from_frame = clean(pd.DataFrame(ten_day_rows))
        pd.testing.assert_frame_equal(from_rows, from_frame)


class TestDropAccounting:

    def test_no_silent_loss(self, hourly_rows):
        obs, report = clean_observations(hourly_rows)

        assert report.n_raw == len(hourly_rows)
        assert len(obs) == report.n_kept
        assert report.n_kept == report.n_raw - report.n_dropped
        assert report.dropped == {"malformed": 1, "timestamp": 1, "missing": 1, "sentinel": 2}

    def test_overlapping_sentinels_counted_once(self, hourly_rows):
        _, report = clean_observations(hourly_rows)

        # the wvht=99 / wtmp=999 row hits two fields but is one dropped row
        assert report.sentinel_hits["wvht"] == 1
        assert report.sentinel_hits["wtmp"] == 1
        assert report.sentinel_hits["mwd"] == 1
        assert sum(report.sentinel_hits.values()) == 3
        assert report.dropped["sentinel"] == 2

    def test_summary_mentions_every_reason(self, hourly_rows):
        _, report = clean_observations(hourly_rows)
        text = report.summary()
        for reason in ("malformed", "timestamp", "missing", "sentinel"):
            assert f"Dropped ({reason})" in text


class TestSentinels:

    def test_no_sentinel_survives(self):
        rng = np.random.default_rng(7)
        rows = []
        for i in range(300):
            row = make_raw_row(1 + i % 28, hour=i % 24)
            for col, sentinel in config.SENTINELS.items():
                if rng.random() < 0.1:
                    row[col] = sentinel
            rows.append(row)

        obs, report = clean_observations(rows)

        for col, sentinel in config.SENTINELS.items():
            assert not (obs[col] == sentinel).any()
        assert report.n_kept == report.n_raw - report.dropped["sentinel"]

    def test_exact_match_only(self):
        rows = [
            make_raw_row(1, wvht="99.00"),   # same value as 99
            make_raw_row(1, hour=13, wvht=98.99),
        ]
        obs, report = clean_observations(rows)

        assert report.dropped["sentinel"] == 1
        assert list(obs["wvht"]) == [98.99]

    def test_pruned_fields_do_not_trigger_drops(self):
        obs, report = clean_observations([make_raw_row(1, vis=99, tide=99, pres=9999, gst=99)])
        assert report.n_kept == 1
        assert list(obs.columns) == ["timestamp"] + config.KEEP_FIELDS

    def test_custom_sentinel_table(self):
        obs = pd.DataFrame({"dpd": [99.0, 8.0], "wvht": [99.0, 1.0]})
        kept, hits = drop_sentinels(obs, sentinels={"dpd": 99})
        assert hits == {"dpd": 1}
        assert list(kept["wvht"]) == [1.0]


class TestTimestamp:

    def _stamp(self, **parts):
        row = make_raw_row(parts.pop("day", 1), **parts)
        df = prune_columns(coerce_numeric(to_frame([row])[0]))
        return synthesize_timestamp(df)

    def test_valid_components(self):
        out, errors = self._stamp(day=15, hour=6, minute=50)
        assert errors == []
        assert out["timestamp"].iloc[0] == pd.Timestamp("2022-01-15 06:50")
        assert "year" not in out.columns

    @pytest.mark.parametrize("parts", [
        {"month": 13},
        {"month": 2, "day": 30},
        {"hour": 24},
        {"minute": 60},
        {"day": 0},
        {"month": 1.5},
    ])
    def test_invalid_components_are_dropped(self, parts):
        out, errors = self._stamp(**parts)
        assert len(out) == 0
        assert len(errors) == 1
        assert isinstance(errors[0], InvalidTimestampError)
        assert errors[0].row == 0

    def test_two_digit_year(self):
        out, errors = self._stamp(year=98, month=7, day=4)
        assert errors == []
        assert out["timestamp"].iloc[0] == pd.Timestamp("1998-07-04 12:00")

    def test_missing_component_is_left_for_missing_step(self):
        out, errors = self._stamp(hour="MM")
        assert errors == []
        assert out["timestamp"].isna().all()


class TestMalformed:

    def test_wrong_token_count(self):
        _, malformed = to_frame([[2022, 1, 1]])
        assert len(malformed) == 1
        assert isinstance(malformed[0], MalformedRecordError)
        assert malformed[0].row == 0

    def test_mapping_missing_fields(self):
        row = make_raw_row(1)
        del row["wtmp"]
        _, malformed = to_frame([make_raw_row(1), row])
        assert [e.row for e in malformed] == [1]

    def test_string_row_is_malformed(self):
        _, malformed = to_frame(["2022 01 01 00 00"])
        assert len(malformed) == 1

    def test_frame_without_required_columns(self):
        with pytest.raises(ValueError):
            clean(pd.DataFrame({"year": [2022]}))

    def test_malformed_rows_do_not_stop_the_run(self):
        rows = [make_raw_row(1), "garbage", [1, 2, 3], make_raw_row(2)]
        daily, report = clean(rows, return_report=True)
        assert len(daily) == 2
        assert report.dropped["malformed"] == 2


class TestAggregation:

    def test_daily_mean_matches_observations(self, hourly_rows):
        obs, _ = clean_observations(hourly_rows)
        daily_raw = aggregate_daily(obs)

        for _, rec in daily_raw.iterrows():
            on_day = obs[obs["timestamp"].dt.normalize() == rec["date"]]
            for col in config.KEEP_FIELDS:
                assert rec[col] == pytest.approx(on_day[col].mean(), abs=1e-12)

    def test_one_record_per_date(self, hourly_rows):
        daily = clean(hourly_rows)
        assert daily["date"].is_unique
        assert daily["date"].is_monotonic_increasing
        assert len(daily) == 3

    def test_fully_filtered_day_is_absent(self):
        rows = [make_raw_row(1), make_raw_row(2, wvht=99), make_raw_row(2, hour=13, wdir=999)]
        daily = clean(rows)
        assert list(daily["date"]) == [pd.Timestamp("2022-01-01")]
        assert not daily.isna().any().any()

    def test_conversion_applied_after_mean(self, hourly_rows):
        obs, _ = clean_observations(hourly_rows)
        daily = clean(hourly_rows)
        day2 = obs[obs["timestamp"].dt.day == 2]
        rec = daily[daily["date"].dt.day == 2].iloc[0]

        assert rec["atmp"] == pytest.approx(day2["atmp"].mean() * 9 / 5 + 32)
        assert rec["wtmp"] == pytest.approx(c_to_f(13.5))
        assert rec["wspd"] == pytest.approx(5.0 * 1.94384)

    def test_empty_input(self):
        daily, report = clean([], return_report=True)
        assert len(daily) == 0
        assert report.n_raw == 0
        assert report.n_days == 0


class TestUnits:

    def test_conversions(self):
        assert c_to_f(0) == 32
        assert c_to_f(100) == 212
        assert m_to_ft(1) == pytest.approx(3.28084)
        assert ms_to_knots(1) == pytest.approx(1.94384)

    def test_wave_height_round_trip(self, hourly_rows):
        obs, _ = clean_observations(hourly_rows)
        meters = aggregate_daily(obs)
        feet = convert_units(meters)
        np.testing.assert_allclose(feet["wvht"] / 3.28084, meters["wvht"], rtol=0, atol=1e-9)

    def test_direction_and_period_unchanged(self, hourly_rows):
        obs, _ = clean_observations(hourly_rows)
        meters = aggregate_daily(obs)
        converted = convert_units(meters)
        for col in ("wdir", "mwd", "dpd"):
            np.testing.assert_array_equal(converted[col], meters[col])


class TestLoadRaw:

    def test_whitespace_file(self, tmp_path):
        path = tmp_path / "46053h2022.txt"
        path.write_text("\n".join([
            NDBC_HEADER,
            NDBC_UNITS,
            "2022 01 01 00 00 270  5.0  7.0  1.20 11.00  6.50 280 1016.0  14.0  13.5  10.0 99.0 99.00",
            "2022 01 01 00 10 270  5.2  7.1 99.00 99.00 99.00 999 1016.1  14.1  13.5  10.0 99.0 99.00",
            "2022 01 02 00 00 260  4.0  6.0  1.00 10.00  6.00 275 1017.0    MM  13.0  10.0 99.0 99.00",
            "2022 01 02 00 10 260  4.0",
            "2022 01 03 00 00 250  3.0  5.0  0.80  9.00  5.50 270 1018.0  13.0  12.5   9.0 99.0 99.00",
            "",
        ]))

        raw = load_raw(str(path))
        assert raw.shape == (4, 18)
        assert len(raw.attrs["malformed"]) == 1
        assert raw.attrs["malformed"][0].row == 6

        daily, report = clean(raw, return_report=True)
        assert report.n_raw == 5
        assert report.dropped == {"malformed": 1, "timestamp": 0, "missing": 1, "sentinel": 1}
        assert len(daily) == 2
        assert daily["wvht"].iloc[0] == pytest.approx(1.2 * 3.28084)

    def test_comma_file(self, tmp_path):
        path = tmp_path / "buoy.csv"
        path.write_text("\n".join([
            "YY,MM,DD,hh,mm,WDIR,WSPD,GST,WVHT,DPD,APD,MWD,PRES,ATMP,WTMP,DEWP,VIS,TIDE",
            "2022,6,1,12,0,180,5.0,7.0,1.5,10,6,270,1015,15,16,10,99,99",
        ]))
        daily = clean(load_raw(str(path)))
        assert len(daily) == 1
        assert daily["wtmp"].iloc[0] == pytest.approx(c_to_f(16))

import pandas as pd
import pytest

from rogue_chinook import environment, metadata


def test_weekly_bins_get_real_calendar_dates(tmp_path):
    path = tmp_path / "weekly.tsv"
    path.write_text(
        "year\tjulian_week\tmean_temp_c\tmean_discharge_cfs\n"
        "2019\t10\t8.0\t9000\n"
        "2020\t10\t8.5\t8800\n"
    )
    schedule = environment.load_weekly_environment(path)
    temps = schedule[schedule["measure"] == "temperature_c"].set_index("year")

    # Same julian week, different calendar start across a leap year.
    assert temps.loc[2019, "date"] == pd.Timestamp("2019-03-05")
    assert temps.loc[2020, "date"] == pd.Timestamp("2020-03-04")
    assert temps["week_of_year"].tolist() == [10, 10]
    assert set(schedule["source"]) == {environment.WEEKLY_SOURCE}
    assert list(schedule.columns) == environment.SCHEDULE_COLUMNS


def test_weekly_bins_reject_bad_weeks(tmp_path):
    path = tmp_path / "weekly.tsv"
    path.write_text("year\tjulian_week\tmean_temp_c\tmean_discharge_cfs\n2020\t54\t8.0\t9000\n")
    with pytest.raises(ValueError, match="out of range"):
        environment.load_weekly_environment(path)


def test_usgs_gauge_daily_means(input_files):
    schedule = environment.load_usgs_gauge(input_files["usgs_gauge"])
    wide = schedule.pivot(index="date", columns="measure", values="value")

    assert wide.loc[pd.Timestamp("2020-05-01"), "discharge_cfs"] == pytest.approx(4100)
    assert wide.loc[pd.Timestamp("2020-05-01"), "temperature_c"] == pytest.approx(11.5)
    # Eqp marks an equipment outage: missing, not an error.
    assert pd.isna(wide.loc[pd.Timestamp("2020-05-02"), "temperature_c"])
    assert set(schedule["source"]) == {environment.USGS_SOURCE}
    assert schedule.loc[schedule["date"] == pd.Timestamp("2020-05-08"), "week_of_year"].unique().tolist() == [19]


def test_usgs_gauge_rejects_garbage_values(tmp_path):
    path = tmp_path / "gauge.rdb"
    path.write_text(
        "# header\n"
        "agency_cd\tsite_no\tdatetime\ttz_cd\t1_00060\t1_00060_cd\n"
        "5s\t15s\t20d\t6s\t14n\t10s\n"
        "USGS\t14372300\t2020-05-01 00:00\tPDT\tabc\tP\n"
    )
    with pytest.raises(ValueError, match="non-numeric"):
        environment.load_usgs_gauge(path)


def test_usgs_gauge_requires_format_row(tmp_path):
    path = tmp_path / "gauge.rdb"
    path.write_text(
        "agency_cd\tsite_no\tdatetime\ttz_cd\t1_00060\t1_00060_cd\n"
        "USGS\t14372300\t2020-05-01 00:00\tPDT\t4000\tP\n"
    )
    with pytest.raises(ValueError, match="RDB format row"):
        environment.load_usgs_gauge(path)


def test_usgs_gauge_rejects_bad_timestamps(tmp_path):
    path = tmp_path / "gauge.rdb"
    path.write_text(
        "agency_cd\tsite_no\tdatetime\ttz_cd\t1_00060\t1_00060_cd\n"
        "5s\t15s\t20d\t6s\t14n\t10s\n"
        "USGS\t14372300\t05/01/2020 00:00\tPDT\t4000\tP\n"
    )
    with pytest.raises(ValueError, match="unparseable timestamps"):
        environment.load_usgs_gauge(path)


def test_require_single_source(input_files):
    weekly = environment.load_weekly_environment(input_files["weekly_environment"])
    gauge = environment.load_usgs_gauge(input_files["usgs_gauge"])

    assert environment.require_single_source(weekly) == environment.WEEKLY_SOURCE
    with pytest.raises(ValueError, match="must not be combined"):
        environment.require_single_source(pd.concat([weekly, gauge]))


def test_align_sample_counts_fills_unsampled_weeks(input_files, cohort):
    weekly = environment.load_weekly_environment(input_files["weekly_environment"])
    counts = metadata.weekly_sample_counts(cohort)

    aligned = environment.align_sample_counts(weekly, counts)

    assert len(aligned) == 10
    by_week = aligned.set_index(["year", "week_of_year"])
    assert by_week.loc[(2020, 18), "n_samples"] == 1
    assert by_week.loc[(2020, 21), "n_samples"] == 0
    assert by_week.loc[(2019, 18), "n_samples"] == 0
    assert by_week.loc[(2020, 18), "temperature_c"] == pytest.approx(11.8)
    assert by_week.loc[(2020, 18), "day_of_year"] == 120


def test_align_sample_counts_sums_capture_methods():
    schedule = pd.DataFrame(
        {
            "source": ["s", "s"],
            "year": [2020, 2020],
            "date": pd.to_datetime(["2020-05-01", "2020-05-02"]),
            "day_of_year": [122, 123],
            "week_of_year": [18, 18],
            "measure": ["temperature_c", "temperature_c"],
            "value": [10.0, 12.0],
        }
    )
    counts = pd.DataFrame(
        {"year": [2020, 2020], "week_of_year": [18, 18], "capture_method": ["angler", "seine"], "n_samples": [2, 3]}
    )

    aligned = environment.align_sample_counts(schedule, counts)

    assert aligned["n_samples"].tolist() == [5]
    assert aligned["temperature_c"].tolist() == [pytest.approx(11.0)]

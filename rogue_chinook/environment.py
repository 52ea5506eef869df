"""
River temperature and discharge for the sampling seasons.

Two raw sources are merged into one long-format schedule: a pre-binned weekly
table and a USGS 15-minute gauge export. Julian-week bins start on a different
calendar day in leap and non-leap years, so every reading is tied to an actual
calendar date of its own year and the two sources are never drawn in the same
figure (see `require_single_source`).
"""

import logging
import re
from pathlib import Path

import numpy as np
import pandas as pd

from .metadata import add_calendar_fields
from .utils import read_tsv, require_columns, require_file

WEEKLY_SOURCE = "weekly_binned"
USGS_SOURCE = "usgs_15min"

WEEKLY_MEASURES = {
    "mean_temp_c": "temperature_c",
    "mean_discharge_cfs": "discharge_cfs",
}

USGS_PARAMETERS = {
    "00010": "temperature_c",
    "00060": "discharge_cfs",
}
USGS_DATETIME_FORMAT = "%Y-%m-%d %H:%M"
USGS_MISSING = {"", "Eqp", "Ice", "Ssn", "Dis", "Bkw", "Mnt", "***"}
USGS_FORMAT_FIELD = re.compile(r"^\d+[sdn]$")

SCHEDULE_COLUMNS = ["source", "year", "date", "day_of_year", "week_of_year", "measure", "value"]


def julian_week_start(year: pd.Series, week: pd.Series) -> pd.Series:
    """First calendar date of each julian week in its own year."""
    jan_first = pd.to_datetime(year.astype(str) + "-01-01", format="%Y-%m-%d")
    return jan_first + pd.to_timedelta((week - 1) * 7, unit="D")


def load_weekly_environment(path: Path) -> pd.DataFrame:
    """Load the pre-binned weekly readings into the long schedule format."""
    df = read_tsv(path, "Weekly environmental readings")
    require_columns(df, ["year", "julian_week", *WEEKLY_MEASURES], "Weekly environmental readings")
    for column in ["year", "julian_week"]:
        df[column] = pd.to_numeric(df[column], errors="raise").astype(int)
    bad_weeks = df.loc[~df["julian_week"].between(1, 53), "julian_week"]
    if not bad_weeks.empty:
        raise ValueError(f"Julian weeks out of range: {', '.join(map(str, sorted(set(bad_weeks))))}")

    df["date"] = julian_week_start(df["year"], df["julian_week"])
    df = add_calendar_fields(df.drop(columns=["year"]), "date")
    long_df = df.melt(
        id_vars=["year", "date", "day_of_year", "week_of_year"],
        value_vars=list(WEEKLY_MEASURES),
        var_name="measure",
        value_name="value",
    )
    long_df["measure"] = long_df["measure"].map(WEEKLY_MEASURES)
    long_df["value"] = pd.to_numeric(long_df["value"], errors="raise")
    long_df["source"] = WEEKLY_SOURCE
    logging.info("Loaded %d weekly bins from %s", len(df), path)
    return long_df[SCHEDULE_COLUMNS].sort_values(["measure", "date"]).reset_index(drop=True)


def usgs_parameter_columns(columns) -> dict:
    """Map USGS `<ts_id>_<parameter>` value columns to measure names."""
    found = {}
    for column in columns:
        match = re.fullmatch(r"\d+_(\d{5})", str(column))
        if match and match.group(1) in USGS_PARAMETERS:
            found[column] = USGS_PARAMETERS[match.group(1)]
    return found


def load_usgs_gauge(path: Path) -> pd.DataFrame:
    """
    Load a USGS RDB 15-minute export and return daily means as a long schedule.

    The row after the header holds RDB field formats (e.g. ``20d``) and is
    discarded. Qualifier tokens such as ``Eqp`` mark missing readings; any
    other non-numeric value is an error.
    """
    require_file(path, "USGS gauge readings")
    df = pd.read_csv(path, sep="\t", comment="#", dtype=str, keep_default_na=False)
    require_columns(df, ["datetime"], "USGS gauge readings")
    if df.empty or not all(USGS_FORMAT_FIELD.match(str(v)) for v in df.iloc[0]):
        raise ValueError(f"USGS gauge readings lack the RDB format row: {path}")
    df = df.iloc[1:].reset_index(drop=True)

    parameters = usgs_parameter_columns(df.columns)
    if not parameters:
        raise ValueError("USGS gauge readings contain no temperature or discharge columns.")

    try:
        df["datetime"] = pd.to_datetime(df["datetime"], format=USGS_DATETIME_FORMAT, errors="raise")
    except ValueError as err:
        raise ValueError(f"USGS gauge readings have unparseable timestamps: {err}") from err

    readings = pd.DataFrame({"date": df["datetime"].dt.normalize()})
    for column, measure in parameters.items():
        values = df[column].str.strip()
        values = values.where(~values.isin(USGS_MISSING), np.nan)
        try:
            readings[measure] = pd.to_numeric(values, errors="raise")
        except ValueError as err:
            raise ValueError(f"USGS column {column} has non-numeric readings: {err}") from err

    daily = readings.groupby("date").mean().reset_index()
    daily = add_calendar_fields(daily, "date")
    long_df = daily.melt(
        id_vars=["year", "date", "day_of_year", "week_of_year"],
        value_vars=sorted(set(parameters.values())),
        var_name="measure",
        value_name="value",
    )
    long_df["source"] = USGS_SOURCE
    logging.info("Loaded %d gauge readings (%d days) from %s", len(df), len(daily), path)
    return long_df[SCHEDULE_COLUMNS].sort_values(["measure", "date"]).reset_index(drop=True)


def require_single_source(schedule: pd.DataFrame) -> str:
    """Return the only source in `schedule`; mixed sources are rejected."""
    sources = sorted(schedule["source"].unique())
    if len(sources) != 1:
        raise ValueError(
            "Environmental sources must not be combined in one figure; got: " + ", ".join(sources)
        )
    return sources[0]


def weekly_means(schedule: pd.DataFrame) -> pd.DataFrame:
    """Mean of each measure per source, year and julian week."""
    return (
        schedule.groupby(["source", "year", "week_of_year", "measure"])
        .agg(week_start=("date", "min"), value=("value", "mean"))
        .reset_index()
    )


def align_sample_counts(schedule: pd.DataFrame, counts: pd.DataFrame) -> pd.DataFrame:
    """
    Join weekly environmental means with total samples per julian week.

    `counts` needs `year`, `week_of_year` and `n_samples`; several rows per
    week (e.g. one per capture method) are summed.
    """
    require_columns(counts, ["year", "week_of_year", "n_samples"], "Sample counts")
    keys = ["source", "year", "week_of_year"]
    means = weekly_means(schedule)
    weekly = means.pivot(index=keys, columns="measure", values="value")
    weekly.columns.name = None
    weekly = weekly.reset_index()
    starts = means.groupby(keys)["week_start"].min().reset_index()
    weekly = weekly.merge(starts, on=keys, how="left")
    weekly["day_of_year"] = weekly["week_start"].dt.dayofyear

    totals = counts.groupby(["year", "week_of_year"])["n_samples"].sum().reset_index()
    aligned = weekly.merge(totals, on=["year", "week_of_year"], how="left", validate="many_to_one")
    aligned["n_samples"] = aligned["n_samples"].fillna(0).astype(int)

    unmatched = totals.merge(weekly[["year", "week_of_year"]].drop_duplicates(), how="left", indicator=True)
    unmatched = unmatched[unmatched["_merge"] == "left_only"]
    if not unmatched.empty:
        logging.warning(
            "%d sampled weeks have no environmental readings (%d samples).",
            len(unmatched),
            int(unmatched["n_samples"].sum()),
        )
    return aligned.sort_values(keys).reset_index(drop=True)

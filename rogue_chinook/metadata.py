"""
Sample-intake metadata loading and cleaning.

The intake sheet is hand curated, so every problem found here (missing
columns, unparseable dates, unknown capture methods, duplicated sample ids)
aborts the run instead of being patched over.
"""

import logging
from pathlib import Path
from typing import Dict, Optional

import pandas as pd

from .utils import read_tsv, require_columns

DEFAULT_DATE_FORMAT = "%m/%d/%Y"

# Intake-sheet fields with no bearing on migration timing.
IRRELEVANT_COLUMNS = [
    "Tissue_Type",
    "Vial_Number",
    "Box",
    "Box_Position",
    "Fork_Length_mm",
    "Sex",
    "Adipose_Clip",
    "Sampler",
    "Notes",
]

COLUMN_MAP: Dict[str, str] = {
    "Sample_ID": "sample_id",
    "Date": "collection_date",
    "Method": "capture_method",
    "Location": "location",
    "Detailed_Location": "detailed_location",
}

CAPTURE_METHODS: Dict[str, str] = {
    "angler": "angler",
    "creel": "creel",
    "creel survey": "creel",
    "seine": "seine",
}


def parse_dates(values: pd.Series, date_format: str, label: str) -> pd.Series:
    """Parse date strings with an explicit format; any failure is fatal."""
    stripped = values.astype("string").str.strip()
    if stripped.isna().any() or (stripped == "").any():
        raise ValueError(f"{label} contains empty dates.")
    try:
        return pd.to_datetime(stripped, format=date_format, errors="raise")
    except (ValueError, TypeError) as err:
        raise ValueError(f"{label} has dates not matching {date_format!r}: {err}") from err


def add_calendar_fields(df: pd.DataFrame, date_column: str) -> pd.DataFrame:
    """Derive year, day of year and julian week from each row's own calendar date."""
    out = df.copy()
    dates = out[date_column]
    out["year"] = dates.dt.year.astype(int)
    out["day_of_year"] = dates.dt.dayofyear.astype(int)
    out["week_of_year"] = (out["day_of_year"] - 1) // 7 + 1
    return out


def normalise_capture_method(values: pd.Series) -> pd.Series:
    """Map raw capture-method spellings onto angler, creel or seine."""
    keys = values.astype("string").str.strip().str.lower()
    methods = keys.map(CAPTURE_METHODS)
    unknown = sorted(set(values[methods.isna()].astype(str)))
    if unknown:
        raise ValueError(f"Unknown capture methods in sample metadata: {', '.join(unknown)}")
    return methods.astype(str)


def load_sample_metadata(path: Path, date_format: str = DEFAULT_DATE_FORMAT) -> pd.DataFrame:
    """Load the sample-intake TSV and return the cleaned sample table."""
    raw = read_tsv(path, "Sample metadata", dtype=str, keep_default_na=False)
    raw = raw.drop(columns=IRRELEVANT_COLUMNS, errors="ignore")
    require_columns(raw, COLUMN_MAP, "Sample metadata")
    df = raw[list(COLUMN_MAP)].rename(columns=COLUMN_MAP).copy()

    df["sample_id"] = df["sample_id"].str.strip()
    if (df["sample_id"] == "").any():
        raise ValueError("Sample metadata contains rows without a sample id.")
    duplicated = df.loc[df["sample_id"].duplicated(), "sample_id"]
    if not duplicated.empty:
        raise ValueError(
            f"Duplicated sample ids in sample metadata: {', '.join(sorted(set(duplicated)))}"
        )

    df["collection_date"] = parse_dates(df["collection_date"], date_format, "Sample metadata")
    df["capture_method"] = normalise_capture_method(df["capture_method"])
    for column in ["location", "detailed_location"]:
        df[column] = df[column].str.strip()

    df = add_calendar_fields(df, "collection_date")
    logging.info("Loaded %d samples from %s", len(df), path)
    return df


def filter_cohort(df: pd.DataFrame, year: int) -> pd.DataFrame:
    """Restrict the sample table to the analysis cohort."""
    cohort = df[df["year"] == year].reset_index(drop=True)
    dropped = len(df) - len(cohort)
    if dropped:
        logging.info("Dropped %d samples collected outside %d.", dropped, year)
    if cohort.empty:
        raise ValueError(f"No samples collected in {year}.")
    return cohort


def weekly_sample_counts(df: pd.DataFrame) -> pd.DataFrame:
    """Count samples per julian week and capture method."""
    return (
        df.groupby(["year", "week_of_year", "capture_method"])
        .size()
        .rename("n_samples")
        .reset_index()
    )


def collection_summary(df: pd.DataFrame) -> pd.DataFrame:
    """Sample numbers and collection window per capture method."""
    return (
        df.groupby("capture_method")
        .agg(
            samples=("sample_id", "count"),
            first_day=("day_of_year", "min"),
            median_day=("day_of_year", "median"),
            last_day=("day_of_year", "max"),
        )
        .reset_index()
    )


def load_historical_dates(path: Path, date_format: str = DEFAULT_DATE_FORMAT) -> pd.DataFrame:
    """Load the manually transcribed prior-year sampling dates."""
    df = read_tsv(path, "Historical sample dates", dtype=str, keep_default_na=False)
    require_columns(df, ["date", "n_samples"], "Historical sample dates")
    df = df[["date", "n_samples"]].copy()
    df["date"] = parse_dates(df["date"], date_format, "Historical sample dates")
    try:
        df["n_samples"] = pd.to_numeric(df["n_samples"].str.strip(), errors="raise").astype(int)
    except ValueError as err:
        raise ValueError(f"Historical sample dates has non-integer counts: {err}") from err
    df = add_calendar_fields(df, "date")
    logging.info(
        "Loaded %d historical sampling days (%d samples).", len(df), int(df["n_samples"].sum())
    )
    return df


def angler_count_caveat(df: pd.DataFrame, reported_count: Optional[int]) -> Optional[str]:
    """
    Compare the metadata angler count against an independently reported one.

    The two spreadsheets disagree for 2020 and the source of the difference is
    unknown, so the metadata count is used and the mismatch is only reported.
    """
    if reported_count is None:
        return None
    observed = int((df["capture_method"] == "angler").sum())
    if observed == reported_count:
        return None
    caveat = (
        f"Angler samples in the metadata ({observed}) differ from the independently "
        f"reported count ({reported_count}); the metadata count is used unresolved."
    )
    logging.warning(caveat)
    return caveat

"""Genotype-call loading, cohort filtering and the scikit-allel genotype container."""

import logging
from pathlib import Path
from typing import List, Sequence

import allel
import numpy as np
import pandas as pd

from .utils import read_tsv, require_columns

MISSING_CALLS = {"", "NA", "0", "00", "--"}

MARKER_INFO_COLUMNS = ["marker", "allele_1", "allele_2", "allele_1_reads", "allele_2_reads"]


def load_marker_info(path: Path) -> pd.DataFrame:
    """Load marker alleles and read depths; file order defines `marker_index`."""
    df = read_tsv(path, "Marker information", dtype=str, keep_default_na=False)
    require_columns(df, MARKER_INFO_COLUMNS, "Marker information")
    df = df[MARKER_INFO_COLUMNS].copy()
    df["marker"] = df["marker"].str.strip()
    duplicated = df.loc[df["marker"].duplicated(), "marker"]
    if not duplicated.empty:
        raise ValueError(f"Duplicated markers in marker information: {', '.join(sorted(set(duplicated)))}")
    for column in ["allele_1", "allele_2"]:
        df[column] = df[column].str.strip().str.upper()
        bad = df.loc[df[column].str.len() != 1, "marker"]
        if not bad.empty:
            raise ValueError(f"Markers with malformed {column}: {', '.join(bad)}")
    for column in ["allele_1_reads", "allele_2_reads"]:
        df[column] = pd.to_numeric(df[column], errors="raise").astype(int)
    df.insert(0, "marker_index", np.arange(len(df), dtype=int))
    logging.info("Loaded information for %d markers.", len(df))
    return df


def load_genotype_calls(path: Path) -> pd.DataFrame:
    """Load long-format genotype calls (sample_id, marker, genotype)."""
    df = read_tsv(path, "Genotype calls", dtype=str, keep_default_na=False)
    require_columns(df, ["sample_id", "marker", "genotype"], "Genotype calls")
    df = df[["sample_id", "marker", "genotype"]].copy()
    for column in df.columns:
        df[column] = df[column].str.strip()
    df["genotype"] = df["genotype"].str.upper()
    df["genotype"] = df["genotype"].where(~df["genotype"].isin(MISSING_CALLS), None)

    duplicated = df[df.duplicated(["sample_id", "marker"], keep=False)]
    if not duplicated.empty:
        pairs = sorted(set(zip(duplicated["sample_id"], duplicated["marker"])))
        raise ValueError(
            "Duplicated genotype calls for: " + ", ".join(f"{s}/{m}" for s, m in pairs[:10])
        )
    logging.info(
        "Loaded %d genotype calls for %d samples at %d markers.",
        len(df),
        df["sample_id"].nunique(),
        df["marker"].nunique(),
    )
    return df


def pivot_genotypes(calls: pd.DataFrame) -> pd.DataFrame:
    """Reshape long calls to one row per sample with one column per marker."""
    wide = calls.pivot(index="sample_id", columns="marker", values="genotype")
    wide.columns.name = None
    return wide.reset_index()


def join_sample_metadata(genotypes: pd.DataFrame, metadata: pd.DataFrame) -> pd.DataFrame:
    """Attach sample metadata; genotyped samples outside the cohort are excluded."""
    merged = genotypes.merge(metadata, on="sample_id", how="inner", validate="one_to_one")
    excluded = len(genotypes) - len(merged)
    if excluded:
        logging.info("Excluded %d genotyped samples absent from the cohort metadata.", excluded)
    ungenotyped = len(metadata) - len(merged)
    if ungenotyped:
        logging.info("%d cohort samples have no genotype calls.", ungenotyped)
    return merged


def genotype_markers(genotypes: pd.DataFrame, marker_info: pd.DataFrame) -> List[str]:
    """Markers from `marker_info`, in index order, that must all be genotype columns."""
    markers = marker_info.sort_values("marker_index")["marker"].tolist()
    absent = [marker for marker in markers if marker not in genotypes.columns]
    if absent:
        raise ValueError(f"Markers without genotype calls: {', '.join(absent[:10])}")
    return markers


def to_genotype_array(genotypes: pd.DataFrame, marker_info: pd.DataFrame) -> allel.GenotypeArray:
    """
    Encode genotype strings as a scikit-allel GenotypeArray.

    Rows follow `marker_index`, columns follow the row order of `genotypes`.
    `allele_1` is coded 0 and `allele_2` is coded 1; missing calls are -1.
    """
    genotype_markers(genotypes, marker_info)
    ordered = marker_info.sort_values("marker_index")
    gt = np.full((len(ordered), len(genotypes), 2), -1, dtype="i1")

    for row in ordered.itertuples(index=False):
        calls = genotypes[row.marker].reset_index(drop=True)
        present = calls.notna().to_numpy()
        observed = calls[present].astype(str)
        malformed = observed[observed.str.len() != 2]
        if not malformed.empty:
            raise ValueError(f"Malformed genotype calls at {row.marker}: {', '.join(sorted(set(malformed)))}")
        codes = {row.allele_1: 0, row.allele_2: 1}
        for slot in (0, 1):
            mapped = observed.str[slot].map(codes)
            if mapped.isna().any():
                unknown = sorted(set(observed[mapped.isna()]))
                raise ValueError(
                    f"Genotype calls at {row.marker} use alleles outside "
                    f"{row.allele_1}/{row.allele_2}: {', '.join(unknown)}"
                )
            gt[row.marker_index, present, slot] = mapped.to_numpy(dtype="i1")
    return allel.GenotypeArray(gt)


def sample_missingness(genotypes: pd.DataFrame, markers: Sequence[str]) -> pd.DataFrame:
    """Fraction of missing calls per sample."""
    return pd.DataFrame(
        {
            "sample_id": genotypes["sample_id"].to_numpy(),
            "missing_fraction": genotypes[list(markers)].isna().mean(axis=1).to_numpy(),
        }
    )


def filter_individuals(
    genotypes: pd.DataFrame,
    markers: Sequence[str],
    max_missing: float,
) -> pd.DataFrame:
    """Keep samples whose fraction of missing calls is at most `max_missing`."""
    missing = genotypes[list(markers)].isna().mean(axis=1)
    kept = genotypes[missing <= max_missing].reset_index(drop=True)
    logging.info(
        "Retained %d of %d samples with missing fraction <= %.2f.",
        len(kept),
        len(genotypes),
        max_missing,
    )
    if kept.empty:
        raise ValueError(f"No samples pass the missing-call threshold of {max_missing}.")
    return kept


def marker_depth_summary(marker_info: pd.DataFrame, markers: Sequence[str]) -> pd.DataFrame:
    """Read depth and allele balance for the selected markers."""
    df = marker_info[marker_info["marker"].isin(markers)].copy()
    df["total_reads"] = df["allele_1_reads"] + df["allele_2_reads"]
    df["allele_1_balance"] = df["allele_1_reads"] / df["total_reads"].where(df["total_reads"] > 0)
    return df.reset_index(drop=True)

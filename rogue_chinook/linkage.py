"""
Pairwise linkage disequilibrium across the genotyped markers.

The r statistic itself comes from scikit-allel (Rogers & Huff 2009 estimator
on alternate-allele counts); this module only prepares the input, names the
marker pairs and restricts them to the genomic region shown in the report.
"""

import logging
from pathlib import Path

import allel
import numpy as np
import pandas as pd

from .utils import require_columns, require_file

DEFAULT_CHROMOSOME = "Ots28"
DEFAULT_REGION_START = 10_900_000
DEFAULT_REGION_END = 11_300_000


def pairwise_r2(genotype_array: allel.GenotypeArray) -> pd.DataFrame:
    """R-squared for every marker pair, keyed by integer marker index."""
    n_markers = genotype_array.shape[0]
    if n_markers < 2:
        raise ValueError("At least two markers are required for pairwise linkage.")
    gn = genotype_array.to_n_alt(fill=-1)
    r = allel.rogers_huff_r(gn)
    index_a, index_b = np.triu_indices(n_markers, k=1)
    pairs = pd.DataFrame(
        {
            "marker_index_a": index_a,
            "marker_index_b": index_b,
            "r2": np.square(np.asarray(r, dtype=float)),
        }
    )
    logging.info(
        "Computed %d pairwise r2 values across %d markers and %d samples.",
        len(pairs),
        n_markers,
        genotype_array.shape[1],
    )
    return pairs


def load_marker_positions(path: Path) -> pd.DataFrame:
    """Load marker chromosome positions from a spreadsheet or TSV."""
    require_file(path, "Marker positions")
    if path.suffix.lower() in {".xlsx", ".xls"}:
        df = pd.read_excel(path)
    else:
        df = pd.read_csv(path, sep="\t")
    df.columns = [str(column).strip().lower() for column in df.columns]
    require_columns(df, ["marker", "chromosome", "position"], "Marker positions")
    df = df[["marker", "chromosome", "position"]].copy()
    df["marker"] = df["marker"].astype(str).str.strip()
    df["chromosome"] = df["chromosome"].astype(str).str.strip()
    df["position"] = pd.to_numeric(df["position"], errors="raise").astype(int)
    if df["marker"].duplicated().any():
        raise ValueError("Marker positions list a marker more than once.")
    return df


def attach_marker_info(
    pairs: pd.DataFrame,
    marker_info: pd.DataFrame,
    positions: pd.DataFrame,
) -> pd.DataFrame:
    """Re-attach marker names, chromosomes and positions to index-keyed pairs."""
    markers = marker_info[["marker_index", "marker"]].merge(
        positions, on="marker", how="left", validate="one_to_one"
    )
    out = pairs
    for side in ("a", "b"):
        renamed = markers.rename(columns={column: f"{column}_{side}" for column in markers.columns})
        out = out.merge(renamed, on=f"marker_index_{side}", how="left", validate="many_to_one")
    unnamed = out["marker_a"].isna() | out["marker_b"].isna()
    if unnamed.any():
        raise ValueError(f"{int(unnamed.sum())} linkage pairs reference unknown marker indices.")
    return out


def restrict_region(
    pairs: pd.DataFrame,
    chromosome: str = DEFAULT_CHROMOSOME,
    start: int = DEFAULT_REGION_START,
    end: int = DEFAULT_REGION_END,
) -> pd.DataFrame:
    """Keep pairs where both markers lie on `chromosome` within [start, end]."""
    inside = pd.Series(True, index=pairs.index)
    for side in ("a", "b"):
        inside &= pairs[f"chromosome_{side}"] == chromosome
        inside &= pairs[f"position_{side}"].between(start, end)
    region = pairs[inside].reset_index(drop=True)
    logging.info(
        "%d of %d marker pairs fall within %s:%d-%d.", len(region), len(pairs), chromosome, start, end
    )
    return region


def symmetrize_pairs(pairs: pd.DataFrame) -> pd.DataFrame:
    """Duplicate each pair with its markers swapped so both triangles are filled."""
    swap = {}
    for column in pairs.columns:
        if column.endswith("_a"):
            swap[column] = column[:-2] + "_b"
        elif column.endswith("_b"):
            swap[column] = column[:-2] + "_a"
    mirrored = pairs.rename(columns=swap)[pairs.columns]
    return pd.concat([pairs, mirrored], ignore_index=True)


def r2_matrix(pairs: pd.DataFrame) -> pd.DataFrame:
    """Marker-by-marker r2 matrix ordered by position, with a unit diagonal."""
    full = symmetrize_pairs(pairs)
    order = (
        full[["marker_a", "position_a"]]
        .drop_duplicates()
        .sort_values(["position_a", "marker_a"])["marker_a"]
        .tolist()
    )
    matrix = full.pivot(index="marker_a", columns="marker_b", values="r2").reindex(index=order, columns=order)
    values = matrix.to_numpy(dtype=float, copy=True)
    np.fill_diagonal(values, 1.0)
    matrix = pd.DataFrame(values, index=order, columns=order)
    matrix.index.name = "marker"
    return matrix

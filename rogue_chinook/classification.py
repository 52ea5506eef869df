"""
Migration-genotype classification and season trajectories.

Two diagnostic markers in the Ots28 region are scored separately. A call is
classified only on an exact match with the marker's three patterns; anything
else, including missing calls, stays unclassified.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Sequence

import numpy as np
import pandas as pd
from scipy import stats

EARLY_HOMOZYGOTE = "early_homozygote"
HETEROZYGOTE = "heterozygote"
LATE_HOMOZYGOTE = "late_homozygote"
DISCORDANT = "discordant"

GENOTYPE_CLASSES = [EARLY_HOMOZYGOTE, HETEROZYGOTE, LATE_HOMOZYGOTE]

EARLY_ALLELE_DOSAGE: Dict[str, int] = {
    EARLY_HOMOZYGOTE: 2,
    HETEROZYGOTE: 1,
    LATE_HOMOZYGOTE: 0,
}


@dataclass(frozen=True)
class MarkerVocabulary:
    """Diagnostic marker with its early- and late-associated alleles."""

    marker: str
    early_allele: str
    late_allele: str

    @property
    def patterns(self) -> Dict[str, str]:
        return {
            self.early_allele * 2: EARLY_HOMOZYGOTE,
            self.early_allele + self.late_allele: HETEROZYGOTE,
            self.late_allele * 2: LATE_HOMOZYGOTE,
        }


SNP1 = MarkerVocabulary("Ots28_11073102", "T", "A")
SNP2 = MarkerVocabulary("Ots28_11077127", "C", "T")


def classify_genotype(call: object, vocabulary: MarkerVocabulary) -> Optional[str]:
    """Class of a two-character genotype call, or None when it is not in the vocabulary."""
    if not isinstance(call, str):
        return None
    return vocabulary.patterns.get(call)


def concordance_label(class_1: Optional[str], class_2: Optional[str]) -> Optional[str]:
    """Shared class when both markers agree, ``discordant`` otherwise."""
    if not isinstance(class_1, str) or not isinstance(class_2, str):
        return None
    return class_1 if class_1 == class_2 else DISCORDANT


def allele_dosage(genotype_class: Optional[str]) -> Optional[int]:
    """Number of early-associated alleles carried by a genotype class."""
    if not isinstance(genotype_class, str):
        return None
    return EARLY_ALLELE_DOSAGE.get(genotype_class)


def classify_samples(
    genotypes: pd.DataFrame,
    snp1: MarkerVocabulary = SNP1,
    snp2: MarkerVocabulary = SNP2,
) -> pd.DataFrame:
    """Add SNP1/SNP2 classes and their concordance label to each sample."""
    for vocabulary in (snp1, snp2):
        if vocabulary.marker not in genotypes.columns:
            raise ValueError(f"Diagnostic marker {vocabulary.marker} has no genotype calls.")

    out = genotypes.copy()
    out["snp1_class"] = [classify_genotype(call, snp1) for call in out[snp1.marker]]
    out["snp2_class"] = [classify_genotype(call, snp2) for call in out[snp2.marker]]
    out["concordance"] = [
        concordance_label(a, b) for a, b in zip(out["snp1_class"], out["snp2_class"])
    ]
    for column, vocabulary in (("snp1_class", snp1), ("snp2_class", snp2)):
        unclassified = int(out[column].isna().sum())
        if unclassified:
            logging.info("%d samples unclassified at %s.", unclassified, vocabulary.marker)
    discordant = int((out["concordance"] == DISCORDANT).sum())
    logging.info("%d samples have discordant SNP1/SNP2 classes.", discordant)
    return out


def cumulative_trajectory(samples: pd.DataFrame, class_column: str = "snp1_class") -> pd.DataFrame:
    """
    Running share of early alleles over the season.

    Samples are ordered by day of year and each contributes its early-allele
    dosage. The running sum is divided by the cohort's final total, so the
    trajectory ends at 1.0; the denominator depends on how sampling effort was
    spread across the season and is not a population-level estimate.
    """
    classified = samples[samples[class_column].notna()].copy()
    classified["dosage"] = classified[class_column].map(EARLY_ALLELE_DOSAGE).astype(int)
    classified = classified.sort_values(["day_of_year", "sample_id"], kind="mergesort")
    classified["cumulative_early_alleles"] = classified["dosage"].cumsum()

    total = classified["cumulative_early_alleles"].iloc[-1] if not classified.empty else 0
    if total > 0:
        classified["cumulative_proportion"] = classified["cumulative_early_alleles"] / total
    else:
        logging.warning("No early alleles observed in %s; trajectory is undefined.", class_column)
        classified["cumulative_proportion"] = np.nan
    columns = [
        "sample_id",
        "day_of_year",
        class_column,
        "dosage",
        "cumulative_early_alleles",
        "cumulative_proportion",
    ]
    return classified[columns].reset_index(drop=True)


def weekly_genotype_frequencies(samples: pd.DataFrame, class_column: str = "snp1_class") -> pd.DataFrame:
    """Genotype class counts and early-allele frequency per julian week."""
    classified = samples[samples[class_column].notna()]
    counts = pd.crosstab(classified["week_of_year"], classified[class_column])
    counts = counts.reindex(columns=GENOTYPE_CLASSES, fill_value=0)
    counts.columns.name = None
    counts["n_classified"] = counts[GENOTYPE_CLASSES].sum(axis=1)
    early_alleles = sum(counts[name] * dosage for name, dosage in EARLY_ALLELE_DOSAGE.items())
    counts["early_allele_frequency"] = early_alleles / (2 * counts["n_classified"])
    return counts.reset_index()


def dominance_coefficient(
    samples: pd.DataFrame,
    class_column: str = "snp1_class",
    trait: str = "day_of_year",
) -> float:
    """
    Position of the heterozygote mean between the two homozygote means.

    h = (mean_het - mean_late) / (mean_early - mean_late); 0 means the late
    allele is dominant, 1 means the early allele is dominant.
    """
    means = samples.groupby(class_column)[trait].mean()
    if not all(name in means.index for name in GENOTYPE_CLASSES):
        return float("nan")
    spread = means[EARLY_HOMOZYGOTE] - means[LATE_HOMOZYGOTE]
    if spread == 0:
        return float("nan")
    return float((means[HETEROZYGOTE] - means[LATE_HOMOZYGOTE]) / spread)


def seasonal_trend(
    samples: pd.DataFrame,
    class_column: str = "snp1_class",
    trait: str = "day_of_year",
) -> Dict[str, float]:
    """Spearman correlation between `trait` and early-allele dosage."""
    classified = samples[samples[class_column].notna()]
    dosage = classified[class_column].map(EARLY_ALLELE_DOSAGE)
    if len(classified) < 3 or dosage.nunique() < 2:
        return {"n": float(len(classified)), "spearman_rho": float("nan"), "p_value": float("nan")}
    rho, p_value = stats.spearmanr(classified[trait], dosage)
    return {"n": float(len(classified)), "spearman_rho": float(rho), "p_value": float(p_value)}


def trait_by_class(samples: pd.DataFrame, class_column: str, trait: str = "day_of_year") -> pd.DataFrame:
    """Count, mean, median and standard deviation of `trait` per genotype class."""
    summary = samples.groupby(class_column)[trait].agg(["count", "mean", "median", "std"])
    return summary.reindex(GENOTYPE_CLASSES).rename_axis("genotype_class").reset_index()


def genotype_counts_by(samples: pd.DataFrame, class_column: str, by: str) -> pd.DataFrame:
    """Crosstab of genotype classes by a grouping column."""
    table = pd.crosstab(samples[by], samples[class_column])
    table = table.reindex(columns=GENOTYPE_CLASSES, fill_value=0)
    table.columns.name = None
    table["total"] = table.sum(axis=1)
    return table.reset_index()


def concordance_table(samples: pd.DataFrame) -> pd.DataFrame:
    """SNP1 by SNP2 class counts for samples classified at both markers."""
    both = samples[samples["snp1_class"].notna() & samples["snp2_class"].notna()]
    table = pd.crosstab(both["snp1_class"], both["snp2_class"])
    table = table.reindex(index=GENOTYPE_CLASSES, columns=GENOTYPE_CLASSES, fill_value=0)
    table.index.name = "snp1_class"
    table.columns.name = None
    return table.reset_index()


def supplementary_table(
    samples: pd.DataFrame,
    snp1: MarkerVocabulary = SNP1,
    snp2: MarkerVocabulary = SNP2,
    extra_columns: Sequence[str] = (),
) -> pd.DataFrame:
    """Per-sample classification results for the supplementary TSV."""
    table = samples[
        [
            "sample_id",
            "collection_date",
            "day_of_year",
            "week_of_year",
            "capture_method",
            "location",
            "detailed_location",
            snp1.marker,
            snp2.marker,
            "snp1_class",
            "snp2_class",
            "concordance",
            *extra_columns,
        ]
    ].rename(columns={snp1.marker: "snp1_genotype", snp2.marker: "snp2_genotype"})
    table["collection_date"] = table["collection_date"].dt.strftime("%Y-%m-%d")
    return table.sort_values(["day_of_year", "sample_id"]).reset_index(drop=True)

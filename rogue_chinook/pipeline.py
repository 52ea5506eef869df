"""
Lower Rogue River 2020 Chinook migration-allele report.

Runs the analysis end to end and writes tables, figures, an HTML report and
`metadata.json` to `output/rogue_migration_report/`.

Steps
-----
1. Load and clean the sample-intake metadata; restrict to the cohort year.
2. Load genotype calls, drop samples outside the cohort, attach metadata.
3. Merge weekly-binned and USGS gauge environmental readings with weekly
   sample counts (one figure per source).
4. Classify SNP1/SNP2 genotypes, compute concordance, weekly frequencies,
   the cumulative early-allele trajectory and the dominance coefficient.
5. Compute pairwise r2 with scikit-allel, name the pairs and keep the
   Ots28 region of interest.
6. Render figures, tables, the supplementary table and the HTML report.

Usage
-----
    rogue-chinook-report \
        --metadata data/metadata/rogue_2020_intake.tsv \
        --genotypes data/genotypes/rogue_2020_calls.tsv \
        --reported-angler-count 67

All relative paths resolve against the current working directory; files in
`data/` are only read.
"""

import argparse
import hashlib
import logging
import time
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd

from . import classification, environment, genotypes, linkage, metadata, plotting
from .report import ReportSection, write_html_report
from .utils import assemble_metadata, configure_logging, resolve_path, to_relative_path, write_table

# Stored pair table; names, genotype digest and filter identify the run that wrote it.
LD_CACHE_COLUMNS = [
    "marker_index_a",
    "marker_index_b",
    "marker_a",
    "marker_b",
    "genotype_digest",
    "max_missing",
    "r2",
]


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse CLI arguments."""
    parser = argparse.ArgumentParser(
        description=(
            "Summarise early/late migration-allele frequencies, river conditions and "
            "linkage disequilibrium for Lower Rogue River Chinook salmon."
        )
    )
    parser.add_argument(
        "--metadata",
        type=Path,
        default=Path("data/metadata/rogue_2020_intake.tsv"),
        help="Sample-intake metadata TSV.",
    )
    parser.add_argument(
        "--genotypes",
        type=Path,
        default=Path("data/genotypes/rogue_2020_calls.tsv"),
        help="Long-format genotype calls (sample_id, marker, genotype).",
    )
    parser.add_argument(
        "--marker-info",
        type=Path,
        default=Path("data/genotypes/marker_info.tsv"),
        help="Marker alleles and read depths; row order defines the marker index.",
    )
    parser.add_argument(
        "--marker-positions",
        type=Path,
        default=Path("data/genotypes/ots28_marker_positions.xlsx"),
        help="Spreadsheet (or TSV) with marker, chromosome and position.",
    )
    parser.add_argument(
        "--weekly-environment",
        type=Path,
        default=Path("data/environment/rogue_weekly_binned.tsv"),
        help="Pre-binned weekly temperature/discharge table.",
    )
    parser.add_argument(
        "--usgs-gauge",
        type=Path,
        default=Path("data/environment/usgs_14372300_15min.rdb"),
        help="USGS 15-minute gauge export (RDB).",
    )
    parser.add_argument(
        "--historical-dates",
        type=Path,
        default=Path("data/metadata/rogue_2019_sample_dates.tsv"),
        help="Manually transcribed prior-year sample dates (date, n_samples).",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("output/rogue_migration_report"),
        help="Destination directory for tables, figures, logs and the report.",
    )
    parser.add_argument("--year", type=int, default=2020, help="Cohort sampling year.")
    parser.add_argument(
        "--date-format",
        default=metadata.DEFAULT_DATE_FORMAT,
        help="strptime format of the intake and historical date columns.",
    )
    parser.add_argument("--snp1-marker", default=classification.SNP1.marker)
    parser.add_argument("--snp1-early-allele", default=classification.SNP1.early_allele)
    parser.add_argument("--snp1-late-allele", default=classification.SNP1.late_allele)
    parser.add_argument("--snp2-marker", default=classification.SNP2.marker)
    parser.add_argument("--snp2-early-allele", default=classification.SNP2.early_allele)
    parser.add_argument("--snp2-late-allele", default=classification.SNP2.late_allele)
    parser.add_argument("--ld-chromosome", default=linkage.DEFAULT_CHROMOSOME)
    parser.add_argument("--ld-start", type=int, default=linkage.DEFAULT_REGION_START)
    parser.add_argument("--ld-end", type=int, default=linkage.DEFAULT_REGION_END)
    parser.add_argument(
        "--max-missing",
        type=float,
        default=0.3,
        help="Maximum fraction of missing calls for a sample to enter the LD analysis.",
    )
    parser.add_argument(
        "--reported-angler-count",
        type=int,
        default=67,
        help="Angler sample count reported independently of the metadata; a mismatch is logged as a caveat.",
    )
    parser.add_argument(
        "--skip-angler-check",
        action="store_true",
        help="Do not compare the metadata angler count with --reported-angler-count.",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Recompute pairwise LD even if the table already exists.",
    )
    return parser.parse_args(argv)


def genotype_digest(individuals: pd.DataFrame, markers: List[str]) -> str:
    """SHA-256 of the sample ids and calls that enter the LD computation."""
    text = individuals[["sample_id", *markers]].to_csv(sep="\t", index=False, na_rep="NA")
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def ld_cache_matches(
    cached: pd.DataFrame,
    marker_info: pd.DataFrame,
    digest: str,
    max_missing: float,
) -> bool:
    """Check that a stored pair table was computed from the same markers, genotypes and filter."""
    if not set(LD_CACHE_COLUMNS) <= set(cached.columns):
        return False
    names = marker_info.set_index("marker_index")["marker"]
    if len(cached) != len(names) * (len(names) - 1) // 2:
        return False
    same_markers = (
        cached["marker_index_a"].map(names).eq(cached["marker_a"].astype(str)).all()
        and cached["marker_index_b"].map(names).eq(cached["marker_b"].astype(str)).all()
    )
    same_genotypes = (cached["genotype_digest"].astype(str) == digest).all()
    same_filter = ((cached["max_missing"] - max_missing).abs() < 1e-9).all()
    return bool(same_markers and same_genotypes and same_filter)


def run_linkage(
    cohort_genotypes: pd.DataFrame,
    marker_info: pd.DataFrame,
    ld_pairs_path: Path,
    max_missing: float,
    force: bool,
) -> pd.DataFrame:
    """Compute (or reuse) the index-keyed pairwise r2 table."""
    markers = genotypes.genotype_markers(cohort_genotypes, marker_info)
    individuals = genotypes.filter_individuals(cohort_genotypes, markers, max_missing)
    digest = genotype_digest(individuals, markers)

    if ld_pairs_path.exists() and not force:
        cached = pd.read_csv(ld_pairs_path, sep="\t")
        if ld_cache_matches(cached, marker_info, digest, max_missing):
            logging.info("Pairwise LD table exists; reusing %s", ld_pairs_path)
            return cached[["marker_index_a", "marker_index_b", "r2"]]
        logging.info(
            "Pairwise LD table %s was computed from other markers, genotypes or --max-missing; recomputing.",
            ld_pairs_path,
        )

    genotype_array = genotypes.to_genotype_array(individuals, marker_info)
    pairs = linkage.pairwise_r2(genotype_array)
    names = marker_info.set_index("marker_index")["marker"]
    record = pairs.assign(
        marker_a=pairs["marker_index_a"].map(names),
        marker_b=pairs["marker_index_b"].map(names),
        genotype_digest=digest,
        max_missing=max_missing,
    )
    write_table(record[LD_CACHE_COLUMNS], ld_pairs_path)
    return pairs


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)

    repo_root = Path.cwd()
    output_dir = resolve_path(args.output_dir, repo_root)
    tables_dir = output_dir / "tables"
    figures_dir = output_dir / "figures"
    logs_dir = output_dir / "logs"
    for directory in [output_dir, tables_dir, figures_dir]:
        directory.mkdir(parents=True, exist_ok=True)

    configure_logging(logs_dir / "pipeline.log")
    script_start = time.time()

    try:
        inputs = {
            name: resolve_path(getattr(args, name), repo_root)
            for name in [
                "metadata",
                "genotypes",
                "marker_info",
                "marker_positions",
                "weekly_environment",
                "usgs_gauge",
                "historical_dates",
            ]
        }
        snp1 = classification.MarkerVocabulary(
            args.snp1_marker, args.snp1_early_allele.upper(), args.snp1_late_allele.upper()
        )
        snp2 = classification.MarkerVocabulary(
            args.snp2_marker, args.snp2_early_allele.upper(), args.snp2_late_allele.upper()
        )
        caveats: List[str] = []
        tables: Dict[str, Path] = {}
        figures: List[Path] = []

        # 1. Metadata
        samples = metadata.load_sample_metadata(inputs["metadata"], args.date_format)
        cohort = metadata.filter_cohort(samples, args.year)
        reported_count = None if args.skip_angler_check else args.reported_angler_count
        caveat = metadata.angler_count_caveat(cohort, reported_count)
        if caveat:
            caveats.append(caveat)
        weekly_counts = metadata.weekly_sample_counts(cohort)
        collection = metadata.collection_summary(cohort)
        historical = metadata.load_historical_dates(inputs["historical_dates"], args.date_format)

        # 2. Genotypes
        marker_info = genotypes.load_marker_info(inputs["marker_info"])
        calls = genotypes.load_genotype_calls(inputs["genotypes"])
        wide = genotypes.pivot_genotypes(calls)
        cohort_genotypes = genotypes.join_sample_metadata(wide, cohort)
        markers = genotypes.genotype_markers(cohort_genotypes, marker_info)
        missingness = genotypes.sample_missingness(cohort_genotypes, markers)
        depth = genotypes.marker_depth_summary(marker_info, [snp1.marker, snp2.marker])

        # 3. Environment
        schedules = [
            environment.load_weekly_environment(inputs["weekly_environment"]),
            environment.load_usgs_gauge(inputs["usgs_gauge"]),
        ]
        all_counts = pd.concat(
            [
                weekly_counts[["year", "week_of_year", "n_samples"]],
                historical[["year", "week_of_year", "n_samples"]],
            ],
            ignore_index=True,
        )
        aligned = pd.concat(
            [environment.align_sample_counts(schedule, all_counts) for schedule in schedules],
            ignore_index=True,
        )

        # 4. Classification
        classified = classification.classify_samples(cohort_genotypes, snp1, snp2)
        trajectories = {
            f"SNP1 ({snp1.marker})": classification.cumulative_trajectory(classified, "snp1_class"),
            f"SNP2 ({snp2.marker})": classification.cumulative_trajectory(classified, "snp2_class"),
        }
        frequencies = classification.weekly_genotype_frequencies(classified, "snp1_class")
        dominance = pd.DataFrame(
            [
                {
                    "marker": vocabulary.marker,
                    "dominance_coefficient": classification.dominance_coefficient(classified, column),
                    **classification.seasonal_trend(classified, column),
                }
                for vocabulary, column in ((snp1, "snp1_class"), (snp2, "snp2_class"))
            ]
        )
        logging.info("Dominance coefficients and seasonal trend:\n%s", dominance.to_string(index=False))

        # 5. Linkage
        pairs = run_linkage(
            cohort_genotypes, marker_info, tables_dir / "ld_pairs.tsv", args.max_missing, args.force
        )
        positions = linkage.load_marker_positions(inputs["marker_positions"])
        named_pairs = linkage.attach_marker_info(pairs, marker_info, positions)
        region_pairs = linkage.restrict_region(named_pairs, args.ld_chromosome, args.ld_start, args.ld_end)
        tables["ld_pairs"] = tables_dir / "ld_pairs.tsv"

        # 6. Tables
        table_frames = {
            "weekly_sample_counts": weekly_counts,
            "collection_summary": collection,
            "sample_missingness": missingness,
            "diagnostic_marker_depth": depth,
            "environment_weekly_aligned": aligned,
            "snp1_weekly_genotype_frequencies": frequencies,
            "snp1_cumulative_trajectory": trajectories[f"SNP1 ({snp1.marker})"],
            "snp2_cumulative_trajectory": trajectories[f"SNP2 ({snp2.marker})"],
            "snp1_genotypes_by_capture_method": classification.genotype_counts_by(
                classified, "snp1_class", "capture_method"
            ),
            "snp1_genotypes_by_location": classification.genotype_counts_by(classified, "snp1_class", "location"),
            "snp1_snp2_concordance": classification.concordance_table(classified),
            "snp1_day_of_year_by_class": classification.trait_by_class(classified, "snp1_class"),
            "dominance_and_seasonal_trend": dominance,
            "ld_region_pairs": region_pairs,
            "supplementary_sample_classification": classification.supplementary_table(classified, snp1, snp2),
        }
        for name, frame in table_frames.items():
            tables[name] = write_table(frame, tables_dir / f"{name}.tsv")

        # 6. Figures
        figures.append(plotting.plot_weekly_sample_counts(weekly_counts, figures_dir / "weekly_sample_counts.png"))
        figures.append(
            plotting.plot_weekly_genotype_frequencies(
                frequencies, snp1.marker, figures_dir / "snp1_weekly_genotype_frequencies.png"
            )
        )
        figures.append(
            plotting.plot_cumulative_trajectories(trajectories, figures_dir / "cumulative_early_allele.png")
        )
        environment_figures = []
        for source, frame in aligned.groupby("source"):
            environment_figures.append(
                plotting.plot_environment(frame, figures_dir / f"environment_{source}.png")
            )
        figures.extend(environment_figures)
        figures.append(
            plotting.plot_sampling_dates(cohort, historical, args.year, figures_dir / "sampling_dates_by_season.png")
        )
        ld_figures = []
        if region_pairs.empty:
            logging.warning(
                "No marker pairs in %s:%d-%d; LD heatmap skipped.",
                args.ld_chromosome,
                args.ld_start,
                args.ld_end,
            )
        else:
            matrix = linkage.r2_matrix(region_pairs)
            tables["ld_region_matrix"] = write_table(matrix, tables_dir / "ld_region_matrix.tsv", index=True)
            ld_figures.append(
                plotting.plot_ld_heatmap(
                    matrix,
                    figures_dir / "ld_region_heatmap.png",
                    title=f"Pairwise r$^2$, {args.ld_chromosome}:{args.ld_start:,}-{args.ld_end:,}",
                )
            )
        figures.extend(ld_figures)

        sections = [
            ReportSection(
                "Sampling",
                f"{len(cohort)} samples collected in {args.year}; prior-year record covers "
                f"{int(historical['n_samples'].sum())} samples.",
                {"Samples by capture method": collection},
                [figures_dir / "weekly_sample_counts.png", figures_dir / "sampling_dates_by_season.png"],
            ),
            ReportSection(
                "River conditions",
                "Weekly-binned and USGS gauge readings are shown in separate figures; each reading "
                "is placed on its own year's calendar.",
                figures=environment_figures,
            ),
            ReportSection(
                "Migration-associated genotypes",
                f"SNP1 = {snp1.marker} ({snp1.early_allele} early / {snp1.late_allele} late), "
                f"SNP2 = {snp2.marker} ({snp2.early_allele} early / {snp2.late_allele} late). "
                "The cumulative trajectory is normalised by this cohort's own total and "
                "reflects how sampling effort was spread over the season.",
                {
                    "SNP1 genotypes by capture method": table_frames["snp1_genotypes_by_capture_method"],
                    "SNP1 x SNP2 concordance": table_frames["snp1_snp2_concordance"],
                    "Day of year by SNP1 class": table_frames["snp1_day_of_year_by_class"],
                    "Dominance coefficient and seasonal trend": dominance,
                    "Diagnostic marker read depth": depth,
                },
                [
                    figures_dir / "snp1_weekly_genotype_frequencies.png",
                    figures_dir / "cumulative_early_allele.png",
                ],
            ),
            ReportSection(
                "Linkage disequilibrium",
                f"{len(region_pairs)} marker pairs within {args.ld_chromosome}:{args.ld_start:,}-{args.ld_end:,}.",
                figures=ld_figures,
            ),
        ]
        report_path = write_html_report(
            output_dir / "report.html",
            f"Lower Rogue River {args.year} Chinook migration alleles",
            sections,
            caveats,
        )

        assemble_metadata(
            script_start,
            params={
                **{name: to_relative_path(path, repo_root) for name, path in inputs.items()},
                "year": args.year,
                "date_format": args.date_format,
                "snp1": f"{snp1.marker}:{snp1.early_allele}/{snp1.late_allele}",
                "snp2": f"{snp2.marker}:{snp2.early_allele}/{snp2.late_allele}",
                "ld_region": f"{args.ld_chromosome}:{args.ld_start}-{args.ld_end}",
                "max_missing": args.max_missing,
                "reported_angler_count": reported_count,
                "force": args.force,
            },
            outputs={
                "tables": list(tables.values()),
                "figures": figures,
                "report": [report_path],
                "logs": [logs_dir / "pipeline.log"],
            },
            metadata_path=output_dir / "metadata.json",
            repo_root=repo_root,
            caveats=caveats,
        )

        logging.info("Report pipeline complete. Outputs written to %s", output_dir)

    except Exception as exc:  # pylint: disable=broad-except
        logging.exception("Report pipeline failed: %s", exc)
        raise


if __name__ == "__main__":
    main()

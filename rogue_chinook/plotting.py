"""Figures for the migration-allele report."""

from pathlib import Path
from typing import Dict, Optional

import matplotlib.pyplot as plt
import pandas as pd
import seaborn as sns

from .classification import GENOTYPE_CLASSES
from .environment import require_single_source

CLASS_COLORS = {
    "early_homozygote": "#2878B5",
    "heterozygote": "#9AC9DB",
    "late_homozygote": "#C82423",
}

METHOD_COLORS = {
    "angler": "#2878B5",
    "creel": "#F8AC8C",
    "seine": "#54B345",
}

MEASURE_LABELS = {
    "temperature_c": "Water temperature (°C)",
    "discharge_cfs": "Discharge (cfs)",
}


def save_figure(fig, figure_path: Path) -> Path:
    """Save a figure as a 300 dpi PNG and close it."""
    figure_path.parent.mkdir(parents=True, exist_ok=True)
    fig.tight_layout()
    fig.savefig(figure_path, dpi=300, bbox_inches="tight")
    plt.close(fig)
    return figure_path


def plot_weekly_sample_counts(counts: pd.DataFrame, figure_path: Path) -> Path:
    """Stacked bars of samples per julian week, split by capture method."""
    table = counts.pivot_table(
        index="week_of_year", columns="capture_method", values="n_samples", aggfunc="sum", fill_value=0
    )
    fig, ax = plt.subplots(figsize=(10, 5))
    bottom = pd.Series(0, index=table.index)
    for method in table.columns:
        ax.bar(
            table.index,
            table[method],
            bottom=bottom,
            label=method,
            color=METHOD_COLORS.get(method, "grey"),
            edgecolor="black",
            linewidth=0.5,
        )
        bottom = bottom + table[method]
    ax.set_xlabel("Julian week")
    ax.set_ylabel("Samples")
    ax.set_title("Samples collected per week by capture method")
    ax.legend(title="Capture method", frameon=False)
    ax.grid(True, axis="y", alpha=0.3)
    return save_figure(fig, figure_path)


def plot_weekly_genotype_frequencies(frequencies: pd.DataFrame, marker: str, figure_path: Path) -> Path:
    """Proportional stacked bars of genotype classes per week with the early-allele frequency."""
    shares = frequencies.set_index("week_of_year")[GENOTYPE_CLASSES].div(
        frequencies.set_index("week_of_year")["n_classified"], axis=0
    )
    fig, ax = plt.subplots(figsize=(10, 5))
    bottom = pd.Series(0.0, index=shares.index)
    for name in GENOTYPE_CLASSES:
        ax.bar(shares.index, shares[name], bottom=bottom, label=name, color=CLASS_COLORS[name])
        bottom = bottom + shares[name]
    ax.plot(
        frequencies["week_of_year"],
        frequencies["early_allele_frequency"],
        color="black",
        marker="o",
        label="early allele frequency",
    )
    for week, n in zip(frequencies["week_of_year"], frequencies["n_classified"]):
        ax.annotate(f"n={n}", (week, 1.01), ha="center", fontsize=7)
    ax.set_ylim(0, 1.08)
    ax.set_xlabel("Julian week")
    ax.set_ylabel("Proportion of samples")
    ax.set_title(f"Genotype classes by week ({marker})")
    ax.legend(loc="upper left", bbox_to_anchor=(1.01, 1), frameon=False)
    return save_figure(fig, figure_path)


def plot_cumulative_trajectories(trajectories: Dict[str, pd.DataFrame], figure_path: Path) -> Path:
    """Step plot of cumulative early-allele proportion for each marker."""
    fig, ax = plt.subplots(figsize=(8, 5))
    palette = sns.color_palette("tab10", n_colors=max(1, len(trajectories)))
    for color, (label, trajectory) in zip(palette, trajectories.items()):
        ax.step(
            trajectory["day_of_year"],
            trajectory["cumulative_proportion"],
            where="post",
            label=label,
            color=color,
        )
    ax.set_ylim(0, 1.05)
    ax.set_xlabel("Day of year")
    ax.set_ylabel("Cumulative proportion of early alleles")
    ax.set_title("Cumulative early-allele trajectory (sampling-effort dependent)")
    ax.legend(frameon=False)
    ax.grid(True, alpha=0.3)
    return save_figure(fig, figure_path)


def plot_environment(aligned: pd.DataFrame, figure_path: Path) -> Path:
    """
    Weekly temperature and discharge by day of year, one line per year, with
    sample counts as bars on a secondary axis. Only one source per figure.
    """
    source = require_single_source(aligned)
    measures = [measure for measure in MEASURE_LABELS if measure in aligned.columns]
    fig, axes = plt.subplots(len(measures), 1, figsize=(10, 4 * len(measures)), sharex=True, squeeze=False)
    years = sorted(aligned["year"].unique())
    palette = dict(zip(years, sns.color_palette("deep", n_colors=len(years))))

    for ax, measure in zip(axes[:, 0], measures):
        counts_ax = ax.twinx()
        for year in years:
            data = aligned[aligned["year"] == year].sort_values("day_of_year")
            ax.plot(data["day_of_year"], data[measure], marker="o", markersize=3, color=palette[year], label=str(year))
            sampled = data[data["n_samples"] > 0]
            counts_ax.bar(sampled["day_of_year"], sampled["n_samples"], width=5, alpha=0.25, color=palette[year])
        ax.set_ylabel(MEASURE_LABELS[measure])
        counts_ax.set_ylabel("Samples per week")
        ax.legend(title="Year", frameon=False, loc="upper left")
        ax.grid(True, alpha=0.3)
    axes[-1, 0].set_xlabel("Day of year (week start)")
    axes[0, 0].set_title(f"Lower Rogue River conditions ({source})")
    return save_figure(fig, figure_path)


def plot_sampling_dates(current: pd.DataFrame, historical: pd.DataFrame, year: int, figure_path: Path) -> Path:
    """Histogram of sampling day of year for the cohort and the prior-year record."""
    prior = historical.loc[historical.index.repeat(historical["n_samples"]), "day_of_year"]
    prior_label = ", ".join(str(y) for y in sorted(historical["year"].unique())) or "prior"
    combined = pd.concat(
        [
            pd.DataFrame({"day_of_year": current["day_of_year"].to_numpy(), "season": str(year)}),
            pd.DataFrame({"day_of_year": prior.to_numpy(), "season": prior_label}),
        ],
        ignore_index=True,
    )
    fig, ax = plt.subplots(figsize=(9, 5))
    sns.histplot(data=combined, x="day_of_year", hue="season", binwidth=7, multiple="dodge", shrink=0.8, ax=ax)
    ax.set_xlabel("Day of year")
    ax.set_ylabel("Samples")
    ax.set_title("Sampling dates by season")
    return save_figure(fig, figure_path)


def plot_ld_heatmap(matrix: pd.DataFrame, figure_path: Path, title: Optional[str] = None) -> Path:
    """Heatmap of pairwise r2 for markers ordered by position."""
    size = min(14, max(6, 0.12 * len(matrix)))
    fig, ax = plt.subplots(figsize=(size + 2, size))
    show_labels = len(matrix) <= 60
    sns.heatmap(
        matrix,
        ax=ax,
        cmap="YlOrRd",
        vmin=0,
        vmax=1,
        square=True,
        cbar_kws={"label": "r$^2$"},
        xticklabels=show_labels,
        yticklabels=show_labels,
    )
    ax.set_xlabel("Marker")
    ax.set_ylabel("Marker")
    ax.set_title(title or "Pairwise linkage disequilibrium")
    return save_figure(fig, figure_path)

"""
eda.py
Exploratory Data Analysis for NYPD Shooting Incident Data

Each chart answers one question:
- Which boroughs record the most shootings?
- How does the monthly incident count move over time?
- Which victim age groups are most affected?

The tables behind the charts are returned as DataFrames so they can be
checked without rendering anything.
"""

import logging
from pathlib import Path

import matplotlib.pyplot as plt
import matplotlib.ticker as mticker
import pandas as pd
import seaborn as sns

from config import AnalysisConfig

log = logging.getLogger(__name__)

# ── Style ─────────────────────────────────────────────────────────────────────
ACCENT   = "#D62728"   # red: draws attention to key findings
NEUTRAL  = "#4C72B0"   # blue: standard bars
UNKNOWN  = "#B0B0B0"   # gray: the "Unknown" category
BG_GRAY  = "#F7F7F7"
SOURCE   = "Source: NYC Open Data / NYPD Shooting Incident Data (Historic)"

plt.rcParams.update({
    "figure.facecolor": BG_GRAY,
    "axes.facecolor":   BG_GRAY,
    "axes.spines.top":  False,
    "axes.spines.right": False,
    "axes.labelsize":   11,
    "axes.titlesize":   13,
    "axes.titleweight": "bold",
    "xtick.labelsize":  9,
    "ytick.labelsize":  9,
    "font.family":      "sans-serif",
})


# ── Helpers ───────────────────────────────────────────────────────────────────

def _save(fig: plt.Figure, fig_dir, name: str) -> Path:
    fig_dir = Path(fig_dir)
    fig_dir.mkdir(parents=True, exist_ok=True)
    path = fig_dir / f"{name}.png"
    fig.savefig(path, dpi=150, bbox_inches="tight")
    plt.close(fig)
    log.info(f"Saved → {path}")
    return path


def _source_note(ax, note=SOURCE):
    ax.annotate(note, xy=(0, -0.15), xycoords="axes fraction",
                fontsize=7, color="gray")


def fmt_thousands(ax, axis="y"):
    fmt = mticker.FuncFormatter(lambda x, _: f"{x:,.0f}")
    if axis == "y":
        ax.yaxis.set_major_formatter(fmt)
    else:
        ax.xaxis.set_major_formatter(fmt)


# ── Aggregations ──────────────────────────────────────────────────────────────

def monthly_counts(df: pd.DataFrame, date_column: str = "OCCUR_DATE",
                   fill_gaps: bool = False) -> pd.DataFrame:
    """
    Incidents per calendar month as ``[MONTH, COUNT]``, oldest first.

    Each date is truncated to the first day of its month. Months without a
    single incident are left out unless ``fill_gaps`` is set, in which case
    they appear with a count of zero.
    """
    dates = pd.to_datetime(df[date_column], errors="coerce")
    undated = int(dates.isna().sum())
    if undated:
        log.warning(f"{undated:,} rows without a usable {date_column} excluded from monthly counts")

    months = dates.dropna().dt.to_period("M").dt.to_timestamp()
    counts = months.value_counts().sort_index()

    if fill_gaps and len(counts):
        full_range = pd.date_range(counts.index.min(), counts.index.max(), freq="MS")
        counts = counts.reindex(full_range, fill_value=0)

    return counts.rename_axis("MONTH").reset_index(name="COUNT")


def category_counts(df: pd.DataFrame, column: str) -> pd.DataFrame:
    """
    Frequency table ``[column, COUNT]``. Ordered categoricals keep their
    category order; everything else is sorted by descending count.
    """
    series = df[column]
    counts = series.value_counts(sort=False)

    is_ordered = isinstance(series.dtype, pd.CategoricalDtype) and series.dtype.ordered
    if not is_ordered:
        counts = counts.sort_values(ascending=False, kind="stable")

    counts = counts[counts > 0]
    return counts.rename_axis(column).reset_index(name="COUNT")


def tabulate_categories(df: pd.DataFrame, columns) -> dict:
    return {col: category_counts(df, col) for col in columns if col in df.columns}


# ── Chart 1: Borough ──────────────────────────────────────────────────────────

def plot_borough_counts(df: pd.DataFrame, fig_dir, column: str = "BOROUGH") -> Path:
    """Q: Which boroughs record the most shooting incidents?"""
    counts = category_counts(df, column)

    fig, ax = plt.subplots(figsize=(10, 6))
    labels = counts[column].astype(str).tolist()
    colors = [ACCENT if i == 0 else NEUTRAL for i in range(len(counts))]
    ax.bar(labels, counts["COUNT"], color=colors, edgecolor="white")
    ax.set_title("Shooting Incidents by Borough")
    ax.set_xlabel("Borough")
    ax.set_ylabel("Number of Incidents")
    fmt_thousands(ax)
    for i, v in enumerate(counts["COUNT"]):
        ax.text(i, v, f"{v:,}", ha="center", va="bottom", fontsize=8)
    _source_note(ax)

    plt.tight_layout()
    return _save(fig, fig_dir, "01_incidents_by_borough")


# ── Chart 2: Monthly Trend ────────────────────────────────────────────────────

def plot_monthly_trend(df: pd.DataFrame, fig_dir, date_column: str = "OCCUR_DATE",
                       fill_gaps: bool = False) -> Path:
    """Q: Are shootings rising, falling or seasonal?"""
    monthly = monthly_counts(df, date_column, fill_gaps=fill_gaps)

    fig, ax = plt.subplots(figsize=(14, 5))
    ax.plot(monthly["MONTH"], monthly["COUNT"], color=NEUTRAL, linewidth=1.5, marker="o",
            markersize=3)
    if len(monthly):
        peak = monthly.loc[monthly["COUNT"].idxmax()]
        ax.scatter([peak["MONTH"]], [peak["COUNT"]], color=ACCENT, zorder=3,
                   label=f"Peak: {peak['MONTH']:%b %Y} ({peak['COUNT']:,})")
        ax.legend(fontsize=8)

    subtitle = "zero-incident months filled" if fill_gaps else "months with no incidents are omitted"
    ax.set_title(f"Monthly Shooting Incidents\n({subtitle})")
    ax.set_xlabel("Month")
    ax.set_ylabel("Number of Incidents")
    fmt_thousands(ax)
    _source_note(ax)

    plt.tight_layout()
    return _save(fig, fig_dir, "02_monthly_incidents")


# ── Chart 3: Victim Age Group ─────────────────────────────────────────────────

def plot_victim_age_groups(df: pd.DataFrame, fig_dir, column: str = "VIC_AGE_GROUP",
                           unknown_label: str = "Unknown") -> Path:
    """Q: Which victim age groups are most affected?"""
    counts = category_counts(df, column)
    labels = counts[column].astype(str).tolist()

    fig, ax = plt.subplots(figsize=(10, 6))
    sns.barplot(x=labels, y=counts["COUNT"].tolist(), order=labels, color=NEUTRAL, ax=ax)
    for patch, label in zip(ax.patches, labels):
        if label == unknown_label:
            patch.set_facecolor(UNKNOWN)
    ax.set_title("Shooting Incidents by Victim Age Group\n(Gray = Unknown)")
    ax.set_xlabel("Victim Age Group")
    ax.set_ylabel("Number of Incidents")
    fmt_thousands(ax)
    _source_note(ax)

    plt.tight_layout()
    return _save(fig, fig_dir, "03_incidents_by_victim_age_group")


# ── Pipeline Orchestrator ─────────────────────────────────────────────────────

def run_eda(df: pd.DataFrame, config: AnalysisConfig = None) -> dict:
    """
    Render the three report charts from a cleaned table.

    Returns a dict with the saved figure paths and the frequency tables.
    """
    config = config or AnalysisConfig()
    borough_column = config.rename_columns.get("BORO", "BOROUGH")

    log.info("=" * 60)
    log.info("EDA | DESCRIPTIVE CHARTS")
    log.info("=" * 60)

    figures = {
        "borough": plot_borough_counts(df, config.figure_dir, borough_column),
        "monthly": plot_monthly_trend(df, config.figure_dir, config.date_column,
                                      fill_gaps=config.fill_month_gaps),
        "victim_age_group": plot_victim_age_groups(df, config.figure_dir, "VIC_AGE_GROUP",
                                                   config.unknown_label),
    }
    tables = tabulate_categories(df, config.categorical_columns)
    tables["monthly"] = monthly_counts(df, config.date_column, fill_gaps=config.fill_month_gaps)

    log.info(f"EDA complete, {len(figures)} figures saved to {config.figure_dir}/")
    return {"figures": figures, "tables": tables}

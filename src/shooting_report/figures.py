"""
Report charts.

Each function takes a summary table from aggregate/predict/bias and returns a
matplotlib Figure; nothing is drawn on global pyplot state that outlives the
call. save_figure writes a figure atomically and closes it.
"""

from pathlib import Path
from typing import Optional, Union

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from matplotlib.figure import Figure

from shooting_report.io_utils import atomic_write

DPI = 150


def plot_rate_bars(
    rates: pd.DataFrame,
    by: str,
    rate_column: str = "rate",
    title: Optional[str] = None,
) -> Figure:
    """Bar chart of a rate per group, annotated with group size n."""
    fig, ax = plt.subplots(figsize=(9, 5))

    labels = rates[by].astype(str).tolist()
    values = rates[rate_column].to_numpy(dtype=float)
    bars = ax.bar(range(len(labels)), values, color="steelblue", edgecolor="black", linewidth=0.5)

    if "n" in rates.columns:
        for bar, n in zip(bars, rates["n"]):
            ax.annotate(
                f"n={int(n):,}",
                (bar.get_x() + bar.get_width() / 2, bar.get_height()),
                ha="center", va="bottom", fontsize=8,
            )

    ax.set_xticks(range(len(labels)))
    ax.set_xticklabels(labels, rotation=30, ha="right", fontsize=9)
    ax.set_ylabel(rate_column.replace("_", " ").title(), fontsize=10)
    ax.set_ylim(0, max(1.0, float(np.nanmax(values)) * 1.1) if len(values) else 1.0)
    ax.set_title(title or f"{rate_column} by {by}", fontsize=12, fontweight="bold")
    fig.tight_layout()
    return fig


def plot_period_counts(
    counts: pd.DataFrame,
    group: Optional[str] = None,
    title: Optional[str] = None,
) -> Figure:
    """Line chart of counts per period, one line per group if given."""
    fig, ax = plt.subplots(figsize=(10, 5))

    if group is None:
        ax.plot(counts["period"].astype(str), counts["count"], marker="o", color="steelblue")
    else:
        wide = counts.pivot_table(
            index="period", columns=group, values="count", fill_value=0, observed=True
        )
        for col in wide.columns:
            ax.plot(wide.index.astype(str), wide[col], marker="o", label=str(col))
        ax.legend(title=group, fontsize=8)

    ax.set_xlabel("Period", fontsize=10)
    ax.set_ylabel("Incidents", fontsize=10)
    ax.tick_params(axis="x", rotation=45, labelsize=8)
    ax.set_title(title or "Incidents per period", fontsize=12, fontweight="bold")
    fig.tight_layout()
    return fig


def plot_hour_profile(hours: pd.DataFrame, title: Optional[str] = None) -> Figure:
    """Bar chart of incident counts per hour of day."""
    fig, ax = plt.subplots(figsize=(10, 4))
    ax.bar(hours["hour"], hours["count"], color="slategray", edgecolor="black", linewidth=0.5)
    ax.set_xticks(range(24))
    ax.set_xlabel("Hour of day", fontsize=10)
    ax.set_ylabel("Incidents", fontsize=10)
    ax.set_title(title or "Incidents by hour of day", fontsize=12, fontweight="bold")
    fig.tight_layout()
    return fig


def plot_count_heatmap(
    table: pd.DataFrame,
    title: Optional[str] = None,
    cmap: str = "Reds",
) -> Figure:
    """Annotated heatmap of a two-way count matrix (e.g. missing_crosstab output)."""
    values = table.to_numpy(dtype=float)
    fig, ax = plt.subplots(figsize=(1.2 * values.shape[1] + 3, 0.5 * values.shape[0] + 2))

    im = ax.imshow(values, cmap=cmap, aspect="auto")
    fig.colorbar(im, ax=ax, shrink=0.8)

    for i in range(values.shape[0]):
        for j in range(values.shape[1]):
            ax.text(j, i, f"{int(values[i, j]):,}", ha="center", va="center", fontsize=8)

    ax.set_xticks(range(values.shape[1]))
    ax.set_xticklabels([str(c) for c in table.columns], rotation=30, ha="right", fontsize=8)
    ax.set_yticks(range(values.shape[0]))
    ax.set_yticklabels([str(r) for r in table.index], fontsize=8)
    ax.set_xlabel(str(table.columns.name or ""), fontsize=10)
    ax.set_ylabel(str(table.index.name or ""), fontsize=10)
    ax.set_title(title or "Counts", fontsize=12, fontweight="bold")
    fig.tight_layout()
    return fig


def plot_class_distribution(comparison: pd.DataFrame, title: Optional[str] = None) -> Figure:
    """Side-by-side observed vs predicted class shares (compare_class_distribution output)."""
    fig, ax = plt.subplots(figsize=(10, 5))

    x = np.arange(len(comparison))
    width = 0.38
    ax.bar(x - width / 2, comparison["observed_share"], width, label="Observed (complete cases)",
           color="steelblue", edgecolor="black", linewidth=0.5)
    ax.bar(x + width / 2, comparison["predicted_share"], width, label="Predicted (grid)",
           color="darkorange", edgecolor="black", linewidth=0.5)

    ax.set_xticks(x)
    ax.set_xticklabels(comparison["class"].astype(str), rotation=30, ha="right", fontsize=9)
    ax.set_ylabel("Share", fontsize=10)
    ax.set_ylim(0, 1)
    ax.legend(fontsize=9)
    ax.set_title(title or "Observed vs predicted class distribution", fontsize=12, fontweight="bold")
    fig.tight_layout()
    return fig


def plot_predicted_vs_observed(
    comparison: pd.DataFrame,
    min_observed: int = 1,
    title: Optional[str] = None,
) -> Figure:
    """
    Scatter of predicted probability vs observed share (compare_probabilities output).

    Points are sized by observed support; combinations with fewer than
    min_observed complete cases are left out.
    """
    data = comparison[comparison["n_observed"] >= min_observed]
    fig, ax = plt.subplots(figsize=(7, 7))

    for label, group in data.groupby("class", sort=False):
        sizes = 10 + 60 * np.sqrt(group["n_observed"] / max(1, data["n_observed"].max()))
        ax.scatter(group["observed_share"], group["predicted_probability"],
                   s=sizes, alpha=0.6, label=str(label), edgecolor="black", linewidth=0.3)

    ax.plot([0, 1], [0, 1], color="gray", linestyle="--", linewidth=1)
    ax.set_xlim(0, 1)
    ax.set_ylim(0, 1)
    ax.set_xlabel("Observed share", fontsize=10)
    ax.set_ylabel("Predicted probability", fontsize=10)
    ax.legend(fontsize=8, title="Class")
    ax.set_title(title or "Predicted vs observed", fontsize=12, fontweight="bold")
    fig.tight_layout()
    return fig


def save_figure(fig: Figure, output_path: Union[str, Path], dpi: int = DPI) -> Path:
    """Atomically write a figure (format from extension) and close it."""
    output_path = Path(output_path)
    fmt = output_path.suffix.lstrip(".") or "png"
    try:
        with atomic_write(output_path, mode="wb") as f:
            fig.savefig(f, format=fmt, dpi=dpi, bbox_inches="tight", facecolor="white")
    finally:
        plt.close(fig)
    return output_path

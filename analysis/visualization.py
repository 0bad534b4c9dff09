"""
Scatter and elbow plots for the explorer.

Draws the dataset on two chosen numeric columns, optionally coloured by a
clustering result. Rows the clustering engine excluded (label -1) are drawn in
grey as "unclustered" rather than being dropped.
"""

import logging
import os
from typing import Any, Dict, Optional, Sequence

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns

from utils.parser import is_finite_number

logger = logging.getLogger(__name__)

MIN_PLOT_POINTS = 5
UNCLUSTERED_NAME = "unclustered"
UNCLUSTERED_COLOR = "#b0b0b0"


def _save(fig, save_path: Optional[str]) -> None:
    if not save_path:
        return
    folder = os.path.dirname(save_path)
    if folder:
        os.makedirs(folder, exist_ok=True)
    fig.savefig(save_path, dpi=150)
    logger.info("saved plot to %s", save_path)


def scatter_frame(
        rows: Sequence[Dict[str, Any]],
        x_field: str,
        y_field: str,
        labels: Optional[Sequence[int]] = None,
) -> pd.DataFrame:
    """
    Collects the plottable points.

    Only rows where both fields are finite numbers are kept. The frame has
    columns 'x', 'y', 'row' (original position) and, when labels are given,
    'cluster' ("Cluster <n>" or "unclustered").
    """
    if labels is not None and len(labels) != len(rows):
        raise ValueError(f"Got {len(labels)} labels for {len(rows)} rows.")

    records = []
    for i, row in enumerate(rows):
        x, y = row.get(x_field), row.get(y_field)
        if not (is_finite_number(x) and is_finite_number(y)):
            continue
        record = {"x": float(x), "y": float(y), "row": i}
        if labels is not None:
            label = int(labels[i])
            record["cluster"] = UNCLUSTERED_NAME if label < 0 else f"Cluster {label}"
        records.append(record)

    columns = ["x", "y", "row"] + (["cluster"] if labels is not None else [])
    return pd.DataFrame.from_records(records, columns=columns)


def plot_clusters(
        rows: Sequence[Dict[str, Any]],
        x_field: str,
        y_field: str,
        labels: Optional[Sequence[int]] = None,
        centroids: Optional[np.ndarray] = None,
        features: Optional[Sequence[str]] = None,
        title: Optional[str] = None,
        save_path: Optional[str] = None,
):
    """
    Scatter plot of ``x_field`` vs ``y_field``.

    Parameters
    ----------
    rows : Sequence[Dict[str, Any]]
        Dataset rows (numeric columns already coerced).
    x_field, y_field : str
        Columns for the two axes.
    labels : Sequence[int], optional
        Cluster label per row, -1 for unclustered rows.
    centroids : np.ndarray, optional
        Centroids (k, len(features)); drawn only when both axes are features.
    features : Sequence[str], optional
        Feature order of the centroid columns.
    title : str, optional
        Figure title.
    save_path : str, optional
        If given, the figure is written there as PNG.

    Returns
    -------
    matplotlib.figure.Figure or None
        None when fewer than 5 points can be plotted.
    """
    if not rows or not x_field or not y_field:
        logger.warning("Load a dataset and choose X/Y fields before plotting.")
        return None

    df_plot = scatter_frame(rows, x_field, y_field, labels)
    if len(df_plot) < MIN_PLOT_POINTS:
        logger.warning(
            "Not enough numeric points to plot %s vs %s (%d, need at least %d).",
            x_field, y_field, len(df_plot), MIN_PLOT_POINTS,
        )
        return None

    fig, ax = plt.subplots(figsize=(9, 6))

    if labels is None:
        sns.scatterplot(data=df_plot, x="x", y="y", s=15, alpha=0.6, ax=ax)
    else:
        unclustered = df_plot[df_plot["cluster"] == UNCLUSTERED_NAME]
        clustered = df_plot[df_plot["cluster"] != UNCLUSTERED_NAME]

        if not unclustered.empty:
            ax.scatter(
                unclustered["x"], unclustered["y"],
                c=UNCLUSTERED_COLOR, s=12, alpha=0.5, label=UNCLUSTERED_NAME,
            )
        if not clustered.empty:
            order = sorted(clustered["cluster"].unique(), key=lambda name: int(name.split()[-1]))
            palette = sns.color_palette("viridis" if len(order) > 10 else "tab10", len(order))
            for color, name in zip(palette, order):
                members = clustered[clustered["cluster"] == name]
                ax.scatter(members["x"], members["y"], color=color, s=15, alpha=0.7, label=name)

        if centroids is not None and features is not None and x_field in features and y_field in features:
            features = list(features)
            cx = np.asarray(centroids)[:, features.index(x_field)]
            cy = np.asarray(centroids)[:, features.index(y_field)]
            ax.scatter(cx, cy, marker="X", s=160, c="black", label="centroids")

        ax.legend(loc="best", fontsize="small")

    ax.set_xlabel(x_field)
    ax.set_ylabel(y_field)
    ax.set_title(title or f"{y_field} vs {x_field}")
    ax.grid(True, linestyle="--", alpha=0.3)
    fig.tight_layout()

    _save(fig, save_path)
    return fig


def plot_cluster_result(rows, result, x_field: str, y_field: str, save_path: Optional[str] = None):
    """Plots a ClusterResult on two columns."""
    title = (
        f"k={result.k} | {result.iterations} iterations | inertia={result.inertia:.4g}"
    )
    return plot_clusters(
        rows, x_field, y_field,
        labels=result.labels,
        centroids=result.centroids,
        features=result.features,
        title=title,
        save_path=save_path,
    )


def plot_elbow(sweep_df: pd.DataFrame, title: Optional[str] = None, save_path: Optional[str] = None):
    """
    Elbow Method plot: inertia against k.

    Rows of the sweep that failed (no inertia) are skipped. Returns None when
    nothing is left to plot.
    """
    data = sweep_df.dropna(subset=["inertia"]) if "inertia" in sweep_df.columns else sweep_df.iloc[0:0]
    if data.empty:
        logger.warning("No successful runs in the sweep; skipping elbow plot.")
        return None

    fig, ax = plt.subplots(figsize=(8, 5))
    sns.lineplot(data=data, x="k", y="inertia", marker="o", ax=ax)
    ax.set_title(title or "Elbow Method: K-Means inertia")
    ax.set_xlabel("Number of clusters (k)")
    ax.grid(True)
    fig.tight_layout()

    _save(fig, save_path)
    return fig

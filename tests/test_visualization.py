import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import pytest

from analysis.visualization import plot_clusters, plot_elbow, scatter_frame


def _rows():
    rows = [{"x": float(i), "y": float(i * i)} for i in range(8)]
    rows.append({"x": None, "y": 3.0})
    rows.append({"x": "n/a", "y": 1.0})
    return rows


def test_scatter_frame_keeps_finite_points_and_names_unclustered() -> None:
    rows = _rows()
    labels = [0, 0, 0, 1, 1, 1, -1, 1, -1, -1]

    df = scatter_frame(rows, "x", "y", labels)

    assert len(df) == 8
    assert df["row"].tolist() == list(range(8))
    assert df.loc[df["row"] == 6, "cluster"].iloc[0] == "unclustered"
    assert df.loc[df["row"] == 0, "cluster"].iloc[0] == "Cluster 0"


def test_scatter_frame_rejects_mismatched_labels() -> None:
    with pytest.raises(ValueError):
        scatter_frame(_rows(), "x", "y", labels=[0, 1])


def test_plot_clusters_saves_png(tmp_path) -> None:
    labels = [0, 0, 0, 1, 1, 1, -1, 1, -1, -1]
    centroids = np.array([[1.0, 1.7], [5.0, 27.0]])
    path = tmp_path / "plots" / "scatter.png"

    fig = plot_clusters(_rows(), "x", "y", labels=labels, centroids=centroids,
                        features=["x", "y"], save_path=str(path))

    assert fig is not None
    assert path.exists()
    legend_texts = [t.get_text() for t in fig.axes[0].get_legend().get_texts()]
    assert "unclustered" in legend_texts
    plt.close(fig)


def test_plot_clusters_without_labels() -> None:
    fig = plot_clusters(_rows(), "x", "y")

    assert fig is not None
    assert fig.axes[0].get_xlabel() == "x"
    plt.close(fig)


def test_plot_clusters_needs_five_points() -> None:
    rows = [{"x": 1.0, "y": 2.0}] * 4

    assert plot_clusters(rows, "x", "y") is None
    assert plot_clusters([], "x", "y") is None


def test_plot_elbow(tmp_path) -> None:
    df = pd.DataFrame({"k": [2, 3, 4, 5], "inertia": [40.0, 12.0, 9.0, np.nan]})

    fig = plot_elbow(df, save_path=str(tmp_path / "elbow.png"))

    assert fig is not None
    assert (tmp_path / "elbow.png").exists()
    plt.close(fig)

    assert plot_elbow(pd.DataFrame({"k": [2], "inertia": [np.nan]})) is None

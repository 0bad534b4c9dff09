"""
Clustering diagnostics.

This module implements the figures reported after every K-Means run: the
within-cluster sum of squares (inertia), the per-cluster membership counts and
the expansion of matrix-space labels back onto the original rows. It also
wraps two Scikit-Learn internal validation indexes (Silhouette,
Davies-Bouldin) used by the k sweep.

References
----------
[1] Rousseeuw, P.J., "Silhouettes: a graphical aid to the interpretation and
    validation of cluster analysis", 1987, J. Comput. Appl. Math., 20: 53-65.
[2] Davies, D.L., Bouldin, D.W., "A Cluster Separation Measure", 1979,
    IEEE TPAMI, 1(2): 224-227.
"""

import numpy as np
from sklearn.metrics import davies_bouldin_score, silhouette_score
from typing import Dict

UNCLUSTERED_LABEL = -1


def compute_inertia(X: np.ndarray, labels: np.ndarray, centroids: np.ndarray) -> float:
    """
    Computes the within-cluster sum of squared errors (SSE).

    SSE = sum_j ||x_j - c_{label(j)}||^2

    Parameters
    ----------
    X : np.ndarray
        Data of shape (n_samples, n_features).
    labels : np.ndarray
        Cluster index of each sample.
    centroids : np.ndarray
        Centroids of shape (n_clusters, n_features).

    Returns
    -------
    float
        Total inertia, >= 0.
    """
    diffs = X - centroids[labels]
    return float(np.sum(diffs ** 2))


def count_clusters(labels: np.ndarray, k: int) -> np.ndarray:
    """
    Number of members of each of the k clusters.

    Empty clusters are reported as 0. Sentinel (negative) labels are ignored.
    """
    labels = np.asarray(labels)
    return np.bincount(labels[labels >= 0], minlength=k).astype(np.int64)


def expand_labels(labels: np.ndarray, row_index: np.ndarray, n_rows: int) -> np.ndarray:
    """
    Maps matrix-row labels onto the original row positions.

    Parameters
    ----------
    labels : np.ndarray
        Label of each valid (matrix) row.
    row_index : np.ndarray
        Original position of each matrix row.
    n_rows : int
        Length of the original dataset.

    Returns
    -------
    np.ndarray
        Array of length ``n_rows``; rows that were excluded from the matrix
        carry ``UNCLUSTERED_LABEL``.
    """
    full = np.full(n_rows, UNCLUSTERED_LABEL, dtype=np.int64)
    full[row_index] = labels
    return full


def compute_clustering_metrics(X: np.ndarray, labels: np.ndarray) -> Dict[str, float]:
    """
    Computes internal validation indexes for a clustering.

    Both indexes need at least two non-empty clusters and fewer clusters than
    samples; otherwise they are reported as NaN.

    Parameters
    ----------
    X : np.ndarray
        The feature matrix.
    labels : np.ndarray
        Cluster index of each sample (matrix space, no sentinels).

    Returns
    -------
    Dict[str, float]
        Dictionary with 'silhouette' and 'davies_bouldin'.
    """
    n_used = len(np.unique(labels))
    if n_used < 2 or n_used >= X.shape[0]:
        return {"silhouette": float("nan"), "davies_bouldin": float("nan")}

    return {
        "silhouette": float(silhouette_score(X, labels)),
        "davies_bouldin": float(davies_bouldin_score(X, labels)),
    }

"""
Deterministic K-Means Implementation.

This module provides the clustering core used by the explorer: Lloyd's
algorithm (Batch K-Means) with squared Euclidean distance and an evenly-spaced
seeding rule, so that the same data and the same k always give the same
clusters.

Each step is exposed as a plain function (initialisation, assignment, update,
centroid shift) and the ``KMeans`` class drives them until convergence.

Notes
-----
The convergence threshold ``CONVERGENCE_EPSILON`` is compared against the total
squared centroid displacement in raw feature units. It is not scaled by the
feature ranges, so normalising the features (or not) changes how many
iterations a run takes.

References
----------
[1] Lloyd, S., "Least squares quantization in PCM", 1982, IEEE Transactions on
    Information Theory, 28(2): 129-137.
"""

import logging
from enum import Enum
from typing import List, Optional

import numpy as np
from scipy.spatial.distance import cdist

from utils.clustering_metrics import compute_inertia
from .exceptions import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 30
CONVERGENCE_EPSILON = 1e-9


class ConvergenceState(str, Enum):
    """Lifecycle of a single K-Means run."""

    RUNNING = "running"
    CONVERGED = "converged"
    MAX_ITER_REACHED = "max_iter_reached"
    FAILED = "failed"


# ---------------------------------------------------------------------
# Algorithm steps
# ---------------------------------------------------------------------

def initialize_centroids(X: np.ndarray, k: int) -> np.ndarray:
    """
    Picks k evenly spaced rows of X as the initial centroids.

    Row ``i * (n - 1) // (k - 1)`` is used for ``i = 0 .. k-1`` (the divisor is
    1 when k == 1), so the first and the last rows are always seeds when k > 1.

    Parameters
    ----------
    X : np.ndarray
        Data of shape (n_samples, n_features).
    k : int
        Number of centroids, 1 <= k <= n_samples.

    Returns
    -------
    np.ndarray
        Copy of the selected rows, shape (k, n_features).
    """
    n = X.shape[0]
    divisor = (k - 1) or 1
    indices = [(i * (n - 1)) // divisor for i in range(k)]
    return X[indices].astype(np.float64, copy=True)


def assign_labels(X: np.ndarray, centroids: np.ndarray) -> np.ndarray:
    """
    Assigns every point to its nearest centroid (squared Euclidean).

    Ties go to the lowest centroid index.
    """
    distances = cdist(X, centroids, metric="sqeuclidean")
    # argmin returns the first minimum, which gives the tie-break for free
    return np.argmin(distances, axis=1).astype(np.int64)


def update_centroids(
        X: np.ndarray,
        labels: np.ndarray,
        k: int,
        previous: np.ndarray,
) -> np.ndarray:
    """
    Recalculates each centroid as the mean of the points assigned to it.

    A cluster with no points keeps its previous centroid unchanged; it is never
    re-seeded.

    Parameters
    ----------
    X : np.ndarray
        Data of shape (n_samples, n_features).
    labels : np.ndarray
        Current assignment, values in [0, k).
    k : int
        Number of clusters.
    previous : np.ndarray
        Centroids before this update, shape (k, n_features).

    Returns
    -------
    np.ndarray
        New centroids, shape (k, n_features).
    """
    centroids = np.empty_like(previous, dtype=np.float64)

    for c in range(k):
        cluster_points = X[labels == c]
        if len(cluster_points) > 0:
            centroids[c] = np.mean(cluster_points, axis=0)
        else:
            centroids[c] = previous[c]

    return centroids


def centroid_shift(old: np.ndarray, new: np.ndarray) -> float:
    """Total squared displacement between two centroid sets."""
    return float(np.sum((new - old) ** 2))


# ---------------------------------------------------------------------
# Convergence controller
# ---------------------------------------------------------------------

class KMeans:
    """
    K-Means clustering with deterministic evenly-spaced seeding.

    The loop alternates assignment and update until no label changes, the
    total squared centroid shift falls below ``tol``, or ``max_iters`` passes
    have run.

    Parameters
    ----------
    n_clusters : int
        Number of clusters (k).
    max_iters : int, default=30
        Maximum number of assignment+update passes.
    tol : float, default=1e-9
        Centroid shift threshold, in raw (unnormalised) feature units.

    Attributes
    ----------
    centroids : np.ndarray
        Final centroids, shape (n_clusters, n_features).
    labels_ : np.ndarray
        Final assignment of every training point.
    inertia_ : float
        Sum of squared distances from each point to its centroid.
    n_iter_ : int
        Number of passes actually executed (<= max_iters).
    state_ : ConvergenceState
        ``CONVERGED`` or ``MAX_ITER_REACHED`` after a successful fit.
    inertia_history_ : List[float]
        Inertia after each update step.
    """

    def __init__(
        self,
        n_clusters: int,
        max_iters: int = DEFAULT_MAX_ITERATIONS,
        tol: float = CONVERGENCE_EPSILON,
    ):
        if n_clusters < 1:
            raise ValidationError(f"n_clusters must be >= 1, got {n_clusters}.")
        if max_iters < 1:
            raise ValidationError(f"max_iters must be >= 1, got {max_iters}.")

        self.n_clusters = n_clusters
        self.max_iters = max_iters
        self.tol = tol
        self.centroids: Optional[np.ndarray] = None
        self.labels_: Optional[np.ndarray] = None
        self.inertia_: Optional[float] = None
        self.n_iter_ = 0
        self.state_ = ConvergenceState.RUNNING
        self.inertia_history_: List[float] = []

    def fit(self, X: np.ndarray) -> "KMeans":
        """
        Runs the assignment/update loop on X.

        Parameters
        ----------
        X : np.ndarray
            Finite data of shape (n_samples, n_features).

        Returns
        -------
        self
        """
        X = np.asarray(X, dtype=np.float64)
        if X.ndim != 2 or X.shape[0] < self.n_clusters:
            self.state_ = ConvergenceState.FAILED
            raise ValidationError(
                f"Expected a 2D matrix with at least {self.n_clusters} rows, got shape {X.shape}."
            )

        self.state_ = ConvergenceState.RUNNING
        self.inertia_history_ = []
        centroids = initialize_centroids(X, self.n_clusters)
        labels = np.zeros(X.shape[0], dtype=np.int64)
        iterations = 0

        while self.state_ is ConvergenceState.RUNNING:
            new_labels = assign_labels(X, centroids)
            changed = bool(np.any(new_labels != labels))
            labels = new_labels

            new_centroids = update_centroids(X, labels, self.n_clusters, centroids)
            shift = centroid_shift(centroids, new_centroids)
            centroids = new_centroids
            iterations += 1

            self.inertia_history_.append(compute_inertia(X, labels, centroids))
            logger.debug(
                "iteration %d: changed=%s shift=%.3g inertia=%.6g",
                iterations, changed, shift, self.inertia_history_[-1],
            )

            if not changed or shift < self.tol:
                self.state_ = ConvergenceState.CONVERGED
            elif iterations >= self.max_iters:
                self.state_ = ConvergenceState.MAX_ITER_REACHED

        self.centroids = centroids
        self.labels_ = labels
        self.n_iter_ = iterations
        self.inertia_ = compute_inertia(X, labels, centroids)
        return self

    def predict(self, X: np.ndarray) -> np.ndarray:
        """Nearest fitted centroid for each row of X."""
        if self.centroids is None:
            raise ValueError("Model has not been fitted yet. Call fit() first.")
        return assign_labels(np.asarray(X, dtype=np.float64), self.centroids)

    def fit_predict(self, X: np.ndarray) -> np.ndarray:
        self.fit(X)
        return self.labels_

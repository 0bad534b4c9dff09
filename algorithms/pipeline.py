"""
Clustering request pipeline.

Ties the engine together for a single request: validation, matrix building,
K-Means and diagnostics. ``run_clustering`` is what the execution boundary
calls; it always returns a value (``ClusterResult`` or ``ClusterFailure``)
instead of raising engine errors.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Sequence, Tuple, Union

import numpy as np

from utils.clustering_metrics import count_clusters, expand_labels
from .exceptions import ClusteringError, InsufficientDataError, ValidationError
from .kmeans import CONVERGENCE_EPSILON, DEFAULT_MAX_ITERATIONS, KMeans
from .matrix import FeatureMatrix, build_feature_matrix

logger = logging.getLogger(__name__)

MIN_K = 2
MAX_K = 10
MIN_FEATURES = 1
MAX_FEATURES = 8


@dataclass(frozen=True)
class ClusterRequest:
    """One clustering job: rows, the feature columns to use, k and the iteration cap."""

    rows: Sequence[Mapping[str, Any]]
    features: Sequence[str]
    k: int
    max_iterations: int = DEFAULT_MAX_ITERATIONS


@dataclass(frozen=True, eq=False)
class ClusterResult:
    """
    Immutable snapshot of a completed run.

    ``labels`` is indexed like the request rows; excluded rows carry -1.
    ``centroids`` has shape (k, len(features)).
    """

    labels: np.ndarray
    centroids: np.ndarray
    iterations: int
    inertia: float
    counts: np.ndarray
    features: Tuple[str, ...]
    status: str
    n_valid: int
    n_excluded: int
    inertia_history: Tuple[float, ...] = field(default_factory=tuple)

    ok = True

    def __post_init__(self):
        self._freeze()

    def __setstate__(self, state):
        # unpickling skips __post_init__; results cross the worker pipe this way
        self.__dict__.update(state)
        self._freeze()

    def _freeze(self) -> None:
        for arr in (self.labels, self.centroids, self.counts):
            arr.setflags(write=False)

    @property
    def k(self) -> int:
        return int(self.centroids.shape[0])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": True,
            "labels": self.labels.tolist(),
            "centroids": self.centroids.tolist(),
            "iterations": self.iterations,
            "inertia": self.inertia,
            "counts": self.counts.tolist(),
            "features": list(self.features),
            "status": self.status,
            "n_valid": self.n_valid,
            "n_excluded": self.n_excluded,
        }


@dataclass(frozen=True)
class ClusterFailure:
    """Structured failure outcome; ``kind`` names the error category."""

    error: str
    kind: str = "clustering"

    ok = False

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": False, "error": self.error, "kind": self.kind}


ClusterOutcome = Union[ClusterResult, ClusterFailure]


def _is_int(value: Any) -> bool:
    return isinstance(value, (int, np.integer)) and not isinstance(value, bool)


def validate_request(request: ClusterRequest) -> None:
    """Raises ValidationError if k, the feature list or the iteration cap is out of range."""
    features: List[str] = list(request.features)

    if not _is_int(request.k):
        raise ValidationError(f"k must be an integer, got {request.k!r}.")
    if not MIN_K <= request.k <= MAX_K:
        raise ValidationError(f"k must be between {MIN_K} and {MAX_K}, got {request.k}.")

    if not MIN_FEATURES <= len(features) <= MAX_FEATURES:
        raise ValidationError(
            f"Select between {MIN_FEATURES} and {MAX_FEATURES} features, got {len(features)}."
        )
    if len(set(features)) != len(features):
        raise ValidationError(f"Duplicate feature names in {features}.")

    if not _is_int(request.max_iterations) or request.max_iterations < 1:
        raise ValidationError(f"max_iterations must be >= 1, got {request.max_iterations}.")


def cluster_rows(request: ClusterRequest) -> ClusterResult:
    """
    Runs the full pipeline for a request.

    Raises
    ------
    ValidationError
        If the request is malformed.
    InsufficientDataError
        If fewer than 2k rows have finite values for all features.
    """
    validate_request(request)
    k = int(request.k)

    fm = build_feature_matrix(request.rows, request.features, k)
    return cluster_matrix(fm, k, int(request.max_iterations))


def cluster_matrix(fm: FeatureMatrix, k: int, max_iterations: int = DEFAULT_MAX_ITERATIONS) -> ClusterResult:
    """
    Fits K-Means on an already built feature matrix.

    Lets callers that try several k on the same rows build the matrix once.
    Arguments are not validated beyond the 2k-rows rule.
    """
    if fm.n_valid < 2 * k:
        raise InsufficientDataError(fm.n_valid, k)

    model = KMeans(n_clusters=k, max_iters=max_iterations, tol=CONVERGENCE_EPSILON)
    model.fit(fm.X)

    logger.info(
        "k-means k=%d on %d/%d rows: %s after %d iterations, inertia=%.6g",
        k, fm.n_valid, fm.n_rows, model.state_.value, model.n_iter_, model.inertia_,
    )

    return ClusterResult(
        labels=expand_labels(model.labels_, fm.row_index, fm.n_rows),
        centroids=model.centroids.copy(),
        iterations=model.n_iter_,
        inertia=model.inertia_,
        counts=count_clusters(model.labels_, k),
        features=fm.features,
        status=model.state_.value,
        n_valid=fm.n_valid,
        n_excluded=fm.n_excluded,
        inertia_history=tuple(model.inertia_history_),
    )


def run_clustering(request: ClusterRequest) -> ClusterOutcome:
    """Like ``cluster_rows`` but engine errors come back as a ``ClusterFailure``."""
    try:
        return cluster_rows(request)
    except ClusteringError as e:
        logger.info("clustering request rejected (%s): %s", e.kind, e)
        return ClusterFailure(error=str(e), kind=e.kind)

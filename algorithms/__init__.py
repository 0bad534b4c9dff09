"""
Clustering Engine Package.

This package contains the deterministic K-Means engine used by the explorer
and the execution boundary that runs it away from the interactive caller.

Modules
-------
- exceptions: ClusteringError, ValidationError, InsufficientDataError.
- matrix: Numeric matrix builder (row filtering + original index mapping).
- kmeans: Evenly-seeded K-Means (assignment, update, convergence control).
- pipeline: Request/result types and the single-request pipeline.
- worker: Background process that runs requests one at a time.
"""

from .exceptions import ClusteringError, ValidationError, InsufficientDataError
from .matrix import FeatureMatrix, build_feature_matrix
from .kmeans import KMeans, ConvergenceState
from .pipeline import (
    ClusterRequest,
    ClusterResult,
    ClusterFailure,
    cluster_matrix,
    cluster_rows,
    run_clustering,
)
from .worker import ClusteringWorker

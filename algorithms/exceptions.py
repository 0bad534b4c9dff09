"""
Error taxonomy for the clustering engine.

All engine errors derive from ``ClusteringError`` (itself a ``ValueError``) so
that callers can catch them as a group. They never cross the execution
boundary as exceptions: ``algorithms.worker.run_clustering`` converts them into
a ``ClusterFailure`` value.
"""


class ClusteringError(ValueError):
    """Base class for every failure the engine reports to its caller."""

    kind = "clustering"


class ValidationError(ClusteringError):
    """The request itself is malformed (k, feature list or iteration cap)."""

    kind = "validation"


class InsufficientDataError(ClusteringError):
    """Too few rows with finite values for every selected feature."""

    kind = "insufficient_data"

    def __init__(self, n_valid: int, k: int):
        self.n_valid = n_valid
        self.k = k
        super().__init__(
            f"Not enough valid numeric rows for chosen k/features "
            f"({n_valid} valid, need at least {2 * k} for k={k})."
        )

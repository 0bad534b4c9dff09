"""
Numeric Matrix Builder.

Turns row-oriented records (column name -> scalar) into the dense feature
matrix consumed by K-Means. Rows where any selected feature is missing or not a
finite real number are excluded, and the positions of the retained rows are
kept so results can be mapped back onto the original dataset.
"""

from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from utils.parser import is_finite_number
from .exceptions import InsufficientDataError


@dataclass(frozen=True, eq=False)
class FeatureMatrix:
    """
    Dense view of the valid rows for a set of features.

    Attributes
    ----------
    X : np.ndarray
        Float matrix of shape (n_valid, n_features). Every entry is finite.
    row_index : np.ndarray
        Original row position of each matrix row, shape (n_valid,).
    features : Tuple[str, ...]
        Column names, in matrix column order.
    n_rows : int
        Number of rows in the original dataset.
    """

    X: np.ndarray
    row_index: np.ndarray
    features: Tuple[str, ...]
    n_rows: int

    @property
    def n_valid(self) -> int:
        return int(self.X.shape[0])

    @property
    def n_excluded(self) -> int:
        return self.n_rows - self.n_valid


def build_feature_matrix(
        rows: Sequence[Mapping[str, Any]],
        features: Sequence[str],
        k: Optional[int] = None,
) -> FeatureMatrix:
    """
    Builds the feature matrix for ``features`` from ``rows``.

    Parameters
    ----------
    rows : Sequence[Mapping[str, Any]]
        Dataset rows. Absent keys and ``None`` both count as missing.
    features : Sequence[str]
        Feature column names, in the order they become matrix columns.
    k : int, optional
        Number of clusters requested; at least ``2 * k`` rows must survive.
        No minimum is enforced when omitted.

    Returns
    -------
    FeatureMatrix
        Retained rows and their original positions.

    Raises
    ------
    InsufficientDataError
        If fewer than ``2 * k`` rows have a finite value for every feature.
    """
    kept_values: List[List[float]] = []
    kept_index: List[int] = []

    for i, row in enumerate(rows):
        vec = [row.get(f) for f in features]
        if all(is_finite_number(v) for v in vec):
            kept_values.append([float(v) for v in vec])
            kept_index.append(i)

    if k is not None and len(kept_index) < 2 * k:
        raise InsufficientDataError(len(kept_index), k)

    X = np.asarray(kept_values, dtype=np.float64).reshape(len(kept_index), len(features))
    return FeatureMatrix(
        X=X,
        row_index=np.asarray(kept_index, dtype=np.int64),
        features=tuple(features),
        n_rows=len(rows),
    )

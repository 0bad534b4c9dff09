"""
Interactive explorer session.

``ExplorerSession`` is the caller side of the clustering boundary. It owns the
dataset, its schema and the current axis selection for as long as the session
lives, and hands clustering requests to a background ``ClusteringWorker``.

Clustering outcomes are returned to the caller through the future from
``cluster()``; the session does not keep a "current result" of its own.
"""

import logging
from concurrent.futures import Future
from typing import Any, Callable, Dict, List, Optional, Sequence

import pandas as pd

from algorithms.exceptions import ValidationError
from algorithms.kmeans import DEFAULT_MAX_ITERATIONS
from algorithms.pipeline import MAX_K, MIN_K, ClusterRequest
from algorithms.worker import ClusteringWorker
from analysis.visualization import plot_cluster_result, plot_clusters
from utils.parser import (
    DEFAULT_MAX_ROWS,
    NUMERIC_THRESHOLD,
    Dataset,
    Schema,
    coerce_numeric_rows,
    detect_schema,
    load_csv,
    min_max_normalise,
    parse_csv,
)

logger = logging.getLogger(__name__)

MIN_SESSION_FEATURES = 2
MAX_SESSION_FEATURES = 8
PREVIEW_ROWS = 6


def clamp_k(k: int) -> int:
    """Clamps k into the range the engine accepts."""
    return max(MIN_K, min(MAX_K, int(k)))


class ExplorerSession:
    """
    Holds one loaded dataset and the user's selections.

    Parameters
    ----------
    numeric_threshold : float, default=0.85
        Fraction of parseable cells needed for a column to be numeric.
    max_rows : int, default=5000
        Row cap applied when reading a CSV.
    mp_context : str, optional
        Start method for the clustering worker process.
    """

    def __init__(
        self,
        numeric_threshold: float = NUMERIC_THRESHOLD,
        max_rows: int = DEFAULT_MAX_ROWS,
        mp_context: Optional[str] = None,
    ):
        self.numeric_threshold = numeric_threshold
        self.max_rows = max_rows
        self.mp_context = mp_context

        self.dataset: Optional[Dataset] = None
        self.schema: Optional[Schema] = None
        self.x_field: Optional[str] = None
        self.y_field: Optional[str] = None
        self.normalise = False

        self._normalised: Optional[Dataset] = None
        self._worker: Optional[ClusteringWorker] = None

    # -----------------------------------------------------------------
    # Dataset
    # -----------------------------------------------------------------
    def load_text(self, text: str) -> Dataset:
        """Parses CSV text, infers the schema and picks default axes."""
        raw = parse_csv(text, max_rows=self.max_rows)
        return self._set_dataset(raw)

    def load_csv(self, filepath: str) -> Dataset:
        raw = load_csv(filepath, max_rows=self.max_rows)
        return self._set_dataset(raw)

    def _set_dataset(self, raw: Dataset) -> Dataset:
        schema = detect_schema(raw, numeric_threshold=self.numeric_threshold)
        self.dataset = coerce_numeric_rows(raw, schema.numeric)
        self.schema = schema
        self._normalised = None

        numeric = schema.numeric
        self.x_field = numeric[0] if numeric else None
        self.y_field = numeric[1] if len(numeric) > 1 else self.x_field

        logger.info(
            "dataset loaded: %d rows%s, %d numeric / %d categorical columns",
            len(self.dataset), " (truncated)" if self.dataset.truncated else "",
            len(schema.numeric), len(schema.categorical),
        )
        return self.dataset

    def _require_dataset(self) -> None:
        if self.dataset is None or self.schema is None:
            raise RuntimeError("No dataset loaded. Load a CSV first.")

    @property
    def can_plot(self) -> bool:
        return self.schema is not None and len(self.schema.numeric) >= 2

    @property
    def rows(self) -> List[Dict[str, Any]]:
        """Rows as the plots and the engine see them (normalised when enabled)."""
        self._require_dataset()
        if not self.normalise:
            return self.dataset.rows
        if self._normalised is None:
            self._normalised = min_max_normalise(self.dataset, self.schema.numeric)
        return self._normalised.rows

    def select_axes(self, x_field: str, y_field: str) -> None:
        self._require_dataset()
        for name in (x_field, y_field):
            if not self.schema.is_numeric(name):
                raise ValueError(f"'{name}' is not a numeric column.")
        self.x_field, self.y_field = x_field, y_field

    def set_normalise(self, enabled: bool) -> None:
        self.normalise = bool(enabled)

    def summary(self) -> Dict[str, Any]:
        """Row/column counts for the loaded dataset."""
        self._require_dataset()
        return {
            "rows": len(self.dataset),
            "truncated": self.dataset.truncated,
            "columns": len(self.dataset.columns),
            "numeric_columns": len(self.schema.numeric),
            "categorical_columns": len(self.schema.categorical),
        }

    def preview(self, n_rows: int = PREVIEW_ROWS) -> pd.DataFrame:
        self._require_dataset()
        return self.dataset.to_frame().head(n_rows)

    # -----------------------------------------------------------------
    # Clustering
    # -----------------------------------------------------------------
    @property
    def worker(self) -> ClusteringWorker:
        if self._worker is None or self._worker.closed:
            self._worker = ClusteringWorker(mp_context=self.mp_context)
        return self._worker

    def make_request(
        self,
        features: Sequence[str],
        k: int,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
    ) -> ClusterRequest:
        """
        Builds a validated request from the current rows.

        Raises
        ------
        ValidationError
            If fewer than 2 or more than 8 features are chosen, or a feature is
            not a numeric column.
        """
        self._require_dataset()
        features = list(features)
        if not MIN_SESSION_FEATURES <= len(features) <= MAX_SESSION_FEATURES:
            raise ValidationError(
                f"Select between {MIN_SESSION_FEATURES} and {MAX_SESSION_FEATURES} features, "
                f"got {len(features)}."
            )
        unknown = [f for f in features if not self.schema.is_numeric(f)]
        if unknown:
            raise ValidationError(f"Not numeric columns: {unknown}.")

        return ClusterRequest(
            rows=list(self.rows),
            features=features,
            k=clamp_k(k),
            max_iterations=int(max_iterations),
        )

    def cluster(
        self,
        features: Sequence[str],
        k: int,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        callback: Optional[Callable[[Future], None]] = None,
    ) -> Future:
        """Submits a clustering request; the future resolves to a ClusterResult or ClusterFailure."""
        request = self.make_request(features, k, max_iterations)
        return self.worker.submit(request, callback=callback)

    def abandon(self) -> None:
        """Drops any outstanding request by terminating the worker; the next cluster() starts a fresh one."""
        if self._worker is not None:
            self._worker.terminate()
            self._worker = None

    def close(self) -> None:
        if self._worker is not None:
            self._worker.close()
            self._worker = None

    def __enter__(self) -> "ExplorerSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.close()
        else:
            self.abandon()

    # -----------------------------------------------------------------
    # Plotting
    # -----------------------------------------------------------------
    def plot(self, result=None, save_path: Optional[str] = None):
        """Scatter of the selected axes, coloured by ``result`` when one is given."""
        self._require_dataset()
        if not self.can_plot:
            logger.warning("Need at least 2 numeric columns to plot.")
            return None
        if result is not None and getattr(result, "ok", False):
            return plot_cluster_result(self.rows, result, self.x_field, self.y_field, save_path=save_path)
        return plot_clusters(self.rows, self.x_field, self.y_field, save_path=save_path)

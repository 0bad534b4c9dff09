"""
K sweep for the Elbow Method.

Runs the K-Means engine once per k on the same rows and features and collects
inertia, iteration count and internal validation indexes into a DataFrame.
Because seeding is deterministic, a sweep is reproducible run to run.
"""

import time
from typing import Any, Dict, List, Sequence

import pandas as pd
from tqdm import tqdm

from algorithms.exceptions import ClusteringError
from algorithms.kmeans import DEFAULT_MAX_ITERATIONS
from algorithms.matrix import build_feature_matrix
from algorithms.pipeline import MAX_K, MIN_K, ClusterRequest, cluster_matrix, validate_request
from utils.clustering_metrics import compute_clustering_metrics

SWEEP_COLUMNS = [
    "k", "inertia", "iterations", "status", "n_valid", "n_excluded",
    "silhouette", "davies_bouldin", "runtime", "error",
]


def run_k_sweep(
        rows: Sequence[Dict[str, Any]],
        features: Sequence[str],
        k_values: Sequence[int] = tuple(range(MIN_K, MAX_K + 1)),
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        show_progress: bool = True,
) -> pd.DataFrame:
    """
    Clusters ``rows`` for every k in ``k_values``.

    Parameters
    ----------
    rows : Sequence[Dict[str, Any]]
        Dataset rows.
    features : Sequence[str]
        Feature columns.
    k_values : Sequence[int], default=2..10
        Cluster counts to try.
    max_iterations : int, default=30
        Iteration cap per run.
    show_progress : bool, default=True
        Show a tqdm progress bar.

    Returns
    -------
    pd.DataFrame
        One row per k with the SWEEP_COLUMNS. Runs that fail (e.g. too few
        rows for a large k) have their message in 'error' and NaN metrics.
    """
    records: List[Dict[str, Any]] = []
    # the valid rows do not depend on k
    fm = build_feature_matrix(rows, features)
    pbar = tqdm(list(k_values), unit="k", disable=not show_progress)

    for k in pbar:
        pbar.set_description(f"k={k}")
        try:
            validate_request(ClusterRequest(rows, features, k, max_iterations))
            start = time.perf_counter()
            result = cluster_matrix(fm, k, max_iterations)
            runtime = time.perf_counter() - start
        except ClusteringError as e:
            pbar.write(f"k={k} skipped: {e}")
            records.append({"k": k, "error": str(e)})
            continue

        res = {
            "k": k,
            "inertia": result.inertia,
            "iterations": result.iterations,
            "status": result.status,
            "n_valid": result.n_valid,
            "n_excluded": result.n_excluded,
            "runtime": runtime,
            "error": None,
        }
        res.update(compute_clustering_metrics(fm.X, result.labels[fm.row_index]))
        records.append(res)

    return pd.DataFrame.from_records(records, columns=SWEEP_COLUMNS)

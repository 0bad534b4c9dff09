"""
Utilities package initialization.

Exposes the data loading, preprocessing and diagnostics helpers to the
top-level utils package for cleaner imports throughout the project.
"""

from .parser import (
    Dataset,
    Schema,
    DatasetError,
    parse_csv,
    load_csv,
    detect_schema,
    coerce_numeric_rows,
    min_max_normalise,
    preprocess_single_csv,
)

from .clustering_metrics import (
    compute_inertia,
    count_clusters,
    expand_labels,
    compute_clustering_metrics,
)

from .logging_config import configure_logging

"""
Explorer Package.

Caller-side orchestration: the interactive session that owns the dataset and
submits clustering requests, and the k sweep used for the Elbow Method.
"""

from .session import ExplorerSession
from .sweep import run_k_sweep

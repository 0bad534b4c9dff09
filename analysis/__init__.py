"""
Analysis Package.

Plotting helpers for the explorer (cluster scatter plots, elbow plots).
"""

from .visualization import plot_clusters, plot_cluster_result, plot_elbow

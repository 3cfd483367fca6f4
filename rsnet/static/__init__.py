"""
rsnet.static
============

This subpackage contains components for building a binary functional
network from ROI time series and deriving graph-theoretic metrics.

Modules
-------

connectivity
    Defines the :class:`ConnectivityMatrix` dataclass and the Pearson
    correlation over good frames.

network
    Density thresholding, the immutable :class:`AdjacencyGraph` and
    largest-component pruning.

metrics
    Defines the :class:`GraphMetrics` dataclass and node/global
    measures (degree, clustering, path length, efficiency, page-rank,
    transitivity).

analyzer
    Provides :class:`StaticAnalyzer`, a convenience class that runs the
    three steps with a shared configuration.
"""

from .connectivity import ConnectivityMatrix, compute_pearson_connectivity
from .network import (
    AdjacencyGraph,
    NetworkResult,
    binarize,
    build_network,
    density_threshold,
    largest_component,
)
from .metrics import (
    GraphMetrics,
    compute_clustering,
    compute_degree,
    compute_global_efficiency,
    compute_graph_metrics,
    compute_local_efficiency,
    compute_mean_path_length,
    compute_pagerank,
    compute_transitivity,
    shortest_path_matrix,
)
from .analyzer import StaticAnalyzer

__all__ = [
    'ConnectivityMatrix',
    'compute_pearson_connectivity',
    'AdjacencyGraph',
    'NetworkResult',
    'binarize',
    'build_network',
    'density_threshold',
    'largest_component',
    'GraphMetrics',
    'compute_clustering',
    'compute_degree',
    'compute_global_efficiency',
    'compute_graph_metrics',
    'compute_local_efficiency',
    'compute_mean_path_length',
    'compute_pagerank',
    'compute_transitivity',
    'shortest_path_matrix',
    'StaticAnalyzer',
]

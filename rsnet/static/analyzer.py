"""
rsnet.static.analyzer
=====================

This module provides a high level interface for computing static
functional connectivity and graph metrics.  The :class:`StaticAnalyzer`
class ties together :mod:`rsnet.static.connectivity`,
:mod:`rsnet.static.network` and :mod:`rsnet.static.metrics` using the
options of a :class:`~rsnet.preprocessing.config.NetworkConfig`.
"""

from __future__ import annotations

from typing import Optional, Sequence

import numpy as np

from ..preprocessing.config import NetworkConfig
from .connectivity import ConnectivityMatrix, compute_pearson_connectivity
from .metrics import GraphMetrics, compute_graph_metrics
from .network import AdjacencyGraph, NetworkResult, build_network


class StaticAnalyzer:
    """Compute connectivity, the density-thresholded network and its metrics.

    Parameters
    ----------
    config : NetworkConfig, optional
        Density, pruning and page-rank options.  Defaults to
        ``NetworkConfig()``.
    """

    def __init__(self, config: Optional[NetworkConfig] = None) -> None:
        self.config = config or NetworkConfig()
        self.config.validate()

    # -- connectivity computation -----------------------------------
    def compute_connectivity(
        self,
        roi_timeseries: np.ndarray,
        labels: Sequence[str],
        good: Optional[np.ndarray] = None,
        missing: Optional[np.ndarray] = None,
        method: str = 'pearson',
    ) -> ConnectivityMatrix:
        """Compute the ROI×ROI correlation matrix over good frames.

        Only ``'pearson'`` is implemented; other method names raise
        ``NotImplementedError``.
        """
        if method != 'pearson':
            raise NotImplementedError(f"Connectivity method '{method}' is not implemented")
        return compute_pearson_connectivity(roi_timeseries, labels, good=good, missing=missing)

    # -- network construction ---------------------------------------
    def build_network(self, conn_matrix: ConnectivityMatrix) -> NetworkResult:
        return build_network(conn_matrix, self.config.density, self.config.prune)

    # -- graph metrics ----------------------------------------------
    def compute_graph_metrics(self, graph: AdjacencyGraph) -> GraphMetrics:
        return compute_graph_metrics(graph, self.config.pagerank_damping)

    def analyse(self, conn_matrix: ConnectivityMatrix) -> tuple:
        """Build the network from ``conn_matrix`` and compute its metrics.

        Returns
        -------
        tuple
            ``(NetworkResult, GraphMetrics)``; metrics refer to the pruned
            graph.
        """
        network = self.build_network(conn_matrix)
        return network, self.compute_graph_metrics(network.pruned)


__all__ = ['StaticAnalyzer']

"""
rsnet.static.metrics
====================

This module defines the :class:`GraphMetrics` container and functions for
node and global topological statistics of a binary brain network.

Node metrics that are undefined are reported as ``NaN`` rather than
zero so that aggregate statistics can exclude them:

* degree is undefined for isolated nodes (this covers missing regions
  and nodes pruned from the largest component),
* clustering, local efficiency and page-rank are undefined for nodes
  with fewer than two neighbours.  For page-rank this is a reporting
  policy kept consistent with the other node metrics.

Shortest-path quantities treat disconnected pairs as infinitely distant
and leave them out of every mean.  Graph algorithms rely on
:mod:`networkx`.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence

import networkx as nx
import numpy as np
import pandas as pd

from ..errors import DisconnectedGraphWarning
from .network import AdjacencyGraph


logger = logging.getLogger(__name__)


@dataclass
class GraphMetrics:
    """Store node-wise and global graph metrics.

    Attributes
    ----------
    node_metrics : Dict[str, np.ndarray]
        Metric name to array of length N_ROI; ``NaN`` marks undefined
        values.
    global_metrics : Dict[str, float]
        Graph level metrics (e.g. ``global_efficiency``).
    distances : np.ndarray | None
        Shortest-path distance matrix with ``inf`` for disconnected pairs.
    """

    node_metrics: Dict[str, np.ndarray] = field(default_factory=dict)
    global_metrics: Dict[str, float] = field(default_factory=dict)
    distances: Optional[np.ndarray] = None

    def to_dataframe(self, labels: Optional[Sequence[str]] = None) -> pd.DataFrame:
        """Node metrics as a table with one row per ROI."""
        df = pd.DataFrame(self.node_metrics)
        if labels is not None:
            df.index = pd.Index(list(labels), name='roi')
        return df

    def summary(self) -> Dict[str, float]:
        """Mean of each node metric over defined values, plus global metrics."""
        out: Dict[str, float] = {}
        for name, values in self.node_metrics.items():
            defined = values[~np.isnan(values)]
            out[f'mean_{name}'] = float(defined.mean()) if defined.size else float('nan')
        out.update(self.global_metrics)
        return out


def _low_degree(graph: AdjacencyGraph, minimum: int) -> np.ndarray:
    return graph.degree < minimum


def compute_degree(graph: AdjacencyGraph) -> np.ndarray:
    """Node degree, ``NaN`` for isolated nodes."""
    degree = graph.degree.astype(float)
    degree[degree == 0] = np.nan
    return degree


def compute_clustering(graph: AdjacencyGraph) -> np.ndarray:
    """Local clustering coefficient, ``NaN`` for degree < 2."""
    clustering = nx.clustering(graph.to_networkx())
    values = np.array([clustering[i] for i in range(graph.n_nodes)], dtype=float)
    values[_low_degree(graph, 2)] = np.nan
    return values


def shortest_path_matrix(graph: AdjacencyGraph) -> np.ndarray:
    """Hop distances between all node pairs; ``inf`` where disconnected."""
    n = graph.n_nodes
    dist = np.full((n, n), np.inf)
    for source, lengths in nx.all_pairs_shortest_path_length(graph.to_networkx()):
        for target, length in lengths.items():
            dist[source, target] = length
    return dist


def _off_diagonal_finite(dist: np.ndarray) -> np.ndarray:
    n = dist.shape[0]
    return np.isfinite(dist) & ~np.eye(n, dtype=bool)


def compute_mean_path_length(distances: np.ndarray) -> np.ndarray:
    """Row mean of finite off-diagonal distances, ``NaN`` when there are none."""
    finite = _off_diagonal_finite(distances)
    counts = finite.sum(axis=1)
    totals = np.where(finite, distances, 0.0).sum(axis=1)
    with np.errstate(divide='ignore', invalid='ignore'):
        mean = totals / counts
    mean[counts == 0] = np.nan
    return mean


def _pairwise_efficiency(G: nx.Graph) -> float:
    """Mean over node pairs of 1/d; disconnected pairs add 0."""
    k = G.number_of_nodes()
    total = 0.0
    for source, lengths in nx.all_pairs_shortest_path_length(G):
        for target, length in lengths.items():
            if target != source:
                total += 1.0 / length
    # total runs over ordered pairs
    return total / (k * (k - 1))


def compute_local_efficiency(graph: AdjacencyGraph) -> np.ndarray:
    """Efficiency of the subgraph induced by each node's neighbours.

    For a node with ``k`` neighbours the value is
    ``2 / (k (k - 1)) * sum(1 / d_ij)`` over neighbour pairs connected
    within the induced subgraph.  ``NaN`` for degree < 2.
    """
    G = graph.to_networkx()
    values = np.full(graph.n_nodes, np.nan)
    for node in range(graph.n_nodes):
        neighbours = list(G.neighbors(node))
        if len(neighbours) < 2:
            continue
        values[node] = _pairwise_efficiency(G.subgraph(neighbours))
    return values


def compute_pagerank(graph: AdjacencyGraph, damping: float = 0.85) -> np.ndarray:
    """Page-rank centrality, reported as ``NaN`` for degree < 2."""
    ranks = nx.pagerank(graph.to_networkx(), alpha=damping)
    values = np.array([ranks[i] for i in range(graph.n_nodes)], dtype=float)
    values[_low_degree(graph, 2)] = np.nan
    return values


def compute_global_efficiency(distances: np.ndarray) -> float:
    """Mean of 1/d over all finite-distance node pairs (``NaN`` if none)."""
    finite = _off_diagonal_finite(distances)
    if not np.any(finite):
        return float('nan')
    return float(np.mean(1.0 / distances[finite]))


def compute_transitivity(graph: AdjacencyGraph) -> float:
    """Global clustering: closed triplets over all connected triplets."""
    return float(nx.transitivity(graph.to_networkx()))


def compute_graph_metrics(graph: AdjacencyGraph, pagerank_damping: float = 0.85) -> GraphMetrics:
    """Compute every node and global metric for ``graph``.

    Emits :class:`~rsnet.errors.DisconnectedGraphWarning` when some pairs
    of non-isolated nodes are disconnected and therefore excluded from
    the path based metrics.
    """
    distances = shortest_path_matrix(graph)
    connected = graph.degree > 0
    sub = distances[np.ix_(connected, connected)]
    n_disconnected = int(np.isinf(sub).sum() // 2)
    if n_disconnected:
        logger.warning('%d node pairs are disconnected and excluded from path metrics', n_disconnected)
        warnings.warn(
            f"{n_disconnected} node pairs are disconnected and excluded from path metrics",
            DisconnectedGraphWarning,
            stacklevel=2,
        )
    node_metrics = {
        'degree': compute_degree(graph),
        'clustering': compute_clustering(graph),
        'mean_path_length': compute_mean_path_length(distances),
        'local_efficiency': compute_local_efficiency(graph),
        'pagerank': compute_pagerank(graph, pagerank_damping),
    }
    global_metrics = {
        'global_efficiency': compute_global_efficiency(distances),
        'transitivity': compute_transitivity(graph),
        'n_edges': float(graph.n_edges),
        'density': float(graph.density),
    }
    return GraphMetrics(node_metrics=node_metrics, global_metrics=global_metrics, distances=distances)


__all__ = [
    'GraphMetrics',
    'compute_degree',
    'compute_clustering',
    'shortest_path_matrix',
    'compute_mean_path_length',
    'compute_local_efficiency',
    'compute_pagerank',
    'compute_global_efficiency',
    'compute_transitivity',
    'compute_graph_metrics',
]

"""
rsnet.static.network
====================

Binarisation of a correlation matrix at a fixed edge density and
reduction to the largest connected component.

With ``N`` nodes there are ``E = N (N - 1) / 2`` node pairs.  For target
density ``d`` the threshold ``T`` is the ``k``-th largest correlation among
pairs of present (non-missing) regions, where ``k = max(1, floor(d * E))``,
so the edge count tracks ``d * E`` whether or not regions are missing.  An
edge exists wherever the correlation is at least ``T``.  Ties at the
threshold are all retained.

Pruning returns a new :class:`AdjacencyGraph`; nodes outside the largest
component stay in the graph as isolated nodes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import networkx as nx
import numpy as np

from .connectivity import ConnectivityMatrix


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AdjacencyGraph:
    """Undirected, unweighted graph over all ROI nodes.

    Attributes
    ----------
    adjacency : np.ndarray
        Read-only symmetric 0/1 integer matrix with zero diagonal.
    labels : Sequence[str]
        Node labels.
    missing : np.ndarray
        Boolean vector of regions excluded from construction.
    component : np.ndarray | None
        Boolean vector of the nodes in the retained component, set by
        :func:`largest_component`.
    """

    adjacency: np.ndarray
    labels: Sequence[str]
    missing: Optional[np.ndarray] = None
    component: Optional[np.ndarray] = None

    def __post_init__(self) -> None:
        adj = (np.asarray(self.adjacency) != 0).astype(np.int8)
        if adj.ndim != 2 or adj.shape[0] != adj.shape[1]:
            raise ValueError("adjacency must be square")
        if not np.array_equal(adj, adj.T):
            raise ValueError("adjacency must be symmetric")
        np.fill_diagonal(adj, 0)
        n = adj.shape[0]
        if len(self.labels) != n:
            raise ValueError("Number of labels must match the adjacency size")
        missing = np.zeros(n, dtype=bool) if self.missing is None else np.array(self.missing, dtype=bool)
        adj.setflags(write=False)
        missing.setflags(write=False)
        object.__setattr__(self, 'adjacency', adj)
        object.__setattr__(self, 'labels', list(self.labels))
        object.__setattr__(self, 'missing', missing)
        if self.component is not None:
            component = np.array(self.component, dtype=bool)
            component.setflags(write=False)
            object.__setattr__(self, 'component', component)

    @property
    def n_nodes(self) -> int:
        return self.adjacency.shape[0]

    @property
    def n_edges(self) -> int:
        return int(np.triu(self.adjacency, k=1).sum())

    @property
    def density(self) -> float:
        n = self.n_nodes
        pairs = n * (n - 1) / 2
        return self.n_edges / pairs if pairs else 0.0

    @property
    def degree(self) -> np.ndarray:
        return self.adjacency.sum(axis=1).astype(int)

    def edges(self) -> List[Tuple[int, int]]:
        rows, cols = np.nonzero(np.triu(self.adjacency, k=1))
        return list(zip(rows.tolist(), cols.tolist()))

    def to_networkx(self) -> nx.Graph:
        """Return a :class:`networkx.Graph` with nodes ``0..N-1``."""
        G = nx.Graph()
        G.add_nodes_from(range(self.n_nodes))
        G.add_edges_from(self.edges())
        return G


def _present_pairs(n: int, missing: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    rows, cols = np.triu_indices(n, k=1)
    keep = ~missing[rows] & ~missing[cols]
    return rows[keep], cols[keep]


def density_threshold(
    matrix: np.ndarray,
    density: float = 0.10,
    missing: Optional[np.ndarray] = None,
) -> float:
    """Return the correlation value that retains the top ``density`` of pairs.

    Parameters
    ----------
    matrix : np.ndarray
        Symmetric correlation matrix.
    density : float
        Target fraction of all node pairs to keep.
    missing : np.ndarray, optional
        Boolean vector of regions excluded from the count.

    Returns
    -------
    float
        The threshold ``T``; ``inf`` if there are no present pairs.  When
        fewer present pairs exist than the target count, all of them are
        retained.
    """
    if not 0 < density <= 1:
        raise ValueError("density must be in (0, 1]")
    mat = np.asarray(matrix, dtype=float)
    n = mat.shape[0]
    missing = np.zeros(n, dtype=bool) if missing is None else np.asarray(missing, dtype=bool)
    rows, cols = _present_pairs(n, missing)
    values = mat[rows, cols]
    if values.size == 0:
        logger.warning('No pairs of present regions; the network has no edges')
        return float('inf')
    n_pairs = n * (n - 1) // 2
    k = max(1, int(np.floor(density * n_pairs)))
    if k > values.size:
        logger.warning(
            'Only %d present pairs for a target of %d edges; keeping all of them',
            values.size, k,
        )
        k = values.size
    return float(np.sort(values)[::-1][k - 1])


def binarize(
    matrix: np.ndarray,
    threshold: float,
    labels: Sequence[str],
    missing: Optional[np.ndarray] = None,
) -> AdjacencyGraph:
    """Create an edge wherever the correlation is at least ``threshold``."""
    mat = np.asarray(matrix, dtype=float)
    n = mat.shape[0]
    missing = np.zeros(n, dtype=bool) if missing is None else np.asarray(missing, dtype=bool)
    present = ~missing
    upper = np.triu(mat >= threshold, k=1) & np.outer(present, present)
    adj = upper | upper.T
    return AdjacencyGraph(adjacency=adj, labels=labels, missing=missing)


def largest_component(graph: AdjacencyGraph) -> AdjacencyGraph:
    """Keep only the edges of the largest connected component.

    Ties between equally sized components go to the one holding the
    smallest node index.  All nodes remain in the returned graph.
    """
    components = list(nx.connected_components(graph.to_networkx()))
    keep = np.zeros(graph.n_nodes, dtype=bool)
    if components:
        best = max(components, key=lambda c: (len(c), -min(c)))
        keep[list(best)] = True
    adj = graph.adjacency * np.outer(keep, keep)
    n_dropped = graph.n_edges - int(np.triu(adj, k=1).sum())
    logger.info(
        'Largest component has %d of %d nodes (%d edges pruned)',
        int(keep.sum()), graph.n_nodes, n_dropped,
    )
    return AdjacencyGraph(adjacency=adj, labels=graph.labels, missing=graph.missing, component=keep)


@dataclass(frozen=True)
class NetworkResult:
    """Threshold, thresholded graph and pruned graph of one build."""

    threshold: float
    thresholded: AdjacencyGraph
    pruned: AdjacencyGraph


def build_network(conn: ConnectivityMatrix, density: float = 0.10, prune: bool = True) -> NetworkResult:
    """Threshold ``conn`` at ``density`` and optionally prune to one component."""
    threshold = density_threshold(conn.matrix, density, conn.missing)
    thresholded = binarize(conn.matrix, threshold, conn.labels, conn.missing)
    logger.info(
        'Density %.3f threshold r >= %.4f gives %d edges',
        density, threshold, thresholded.n_edges,
    )
    pruned = largest_component(thresholded) if prune else thresholded
    return NetworkResult(threshold=threshold, thresholded=thresholded, pruned=pruned)


__all__ = [
    'AdjacencyGraph',
    'NetworkResult',
    'density_threshold',
    'binarize',
    'largest_component',
    'build_network',
]

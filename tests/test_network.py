import numpy as np
import pytest

from rsnet.static.connectivity import ConnectivityMatrix, compute_pearson_connectivity
from rsnet.static.network import (
    AdjacencyGraph,
    binarize,
    build_network,
    density_threshold,
    largest_component,
)


def _symmetric(n, seed=0):
    rng = np.random.default_rng(seed)
    upper = np.triu(rng.uniform(-1, 1, size=(n, n)), k=1)
    return upper + upper.T


def _graph(n, edges):
    adj = np.zeros((n, n), dtype=int)
    for i, j in edges:
        adj[i, j] = adj[j, i] = 1
    return AdjacencyGraph(adjacency=adj, labels=[str(i) for i in range(n)])


def test_dominant_pair_gives_single_edge():
    corr = np.array([
        [0.0, 0.9, 0.1, 0.2],
        [0.9, 0.0, 0.15, 0.05],
        [0.1, 0.15, 0.0, 0.3],
        [0.2, 0.05, 0.3, 0.0],
    ])
    conn = ConnectivityMatrix(matrix=corr, labels=['a', 'b', 'c', 'd'])
    result = build_network(conn, density=0.25)
    assert result.threshold == pytest.approx(0.9)
    assert result.thresholded.edges() == [(0, 1)]
    assert result.pruned.edges() == [(0, 1)]
    assert result.pruned.n_nodes == 4


def test_edge_count_within_one_of_target():
    n = 30
    corr = _symmetric(n)
    for density in (0.05, 0.1, 0.25):
        threshold = density_threshold(corr, density)
        graph = binarize(corr, threshold, [str(i) for i in range(n)])
        target = density * n * (n - 1) / 2
        assert abs(graph.n_edges - target) <= 1


def test_missing_regions_excluded():
    corr = _symmetric(6, seed=2)
    corr[5, :] = corr[:, 5] = 0.99
    corr[5, 5] = 0.0
    missing = np.array([False] * 5 + [True])
    conn = ConnectivityMatrix(matrix=corr, labels=list('abcdef'), missing=missing)
    result = build_network(conn, density=0.2, prune=False)
    assert result.thresholded.adjacency[5].sum() == 0
    # 15 node pairs in total, so floor(0.2 * 15) = 3 edges among present nodes
    assert result.thresholded.n_edges == 3


def test_missing_regions_count_toward_target_density():
    n = 10
    missing = np.zeros(n, dtype=bool)
    missing[[2, 7]] = True
    conn = ConnectivityMatrix(matrix=_symmetric(n, seed=11), labels=[str(i) for i in range(n)], missing=missing)
    result = build_network(conn, density=0.1, prune=False)
    target = 0.1 * n * (n - 1) / 2
    assert abs(result.thresholded.n_edges - target) <= 1
    assert result.thresholded.adjacency[missing].sum() == 0


def test_fewer_present_pairs_than_target():
    corr = _symmetric(4, seed=12)
    missing = np.array([False, True, True, False])
    threshold = density_threshold(corr, 0.5, missing)
    assert threshold == pytest.approx(corr[0, 3])
    graph = binarize(corr, threshold, list('abcd'), missing)
    assert graph.edges() == [(0, 3)]


def test_constant_regions_do_not_tie_at_threshold():
    rng = np.random.default_rng(13)
    x = rng.normal(size=30)
    series = np.column_stack([x, -x] + [np.full(30, 2.0)] * 4)
    labels = [str(i) for i in range(6)]
    conn = compute_pearson_connectivity(series, labels)
    assert conn.missing.tolist() == [False, False, True, True, True, True]
    assert np.all(conn.matrix[2:] == 0.0)
    assert conn.matrix[0, 1] == pytest.approx(-1.0)
    result = build_network(conn, density=0.1, prune=False)
    assert result.thresholded.edges() == [(0, 1)]
    assert abs(result.thresholded.n_edges - 0.1 * 15) <= 1


def test_no_present_pairs():
    missing = np.array([False, True, True])
    assert density_threshold(np.zeros((3, 3)), 0.1, missing) == float('inf')


def test_pruning_keeps_largest_component():
    graph = _graph(6, [(0, 1), (1, 2), (3, 4)])
    pruned = largest_component(graph)
    assert pruned.edges() == [(0, 1), (1, 2)]
    assert pruned.n_nodes == 6
    assert pruned.component.tolist() == [True, True, True, False, False, False]
    assert graph.n_edges == 3


def test_pruned_edges_within_component():
    corr = _symmetric(25, seed=5)
    conn = ConnectivityMatrix(matrix=corr, labels=[str(i) for i in range(25)])
    result = build_network(conn, density=0.05)
    for i, j in result.pruned.edges():
        assert result.pruned.component[i] and result.pruned.component[j]
    assert set(result.pruned.edges()) <= set(result.thresholded.edges())


def test_component_tie_goes_to_smallest_index():
    graph = _graph(4, [(2, 3), (0, 1)])
    assert largest_component(graph).edges() == [(0, 1)]


def test_adjacency_is_read_only_and_symmetric():
    graph = _graph(3, [(0, 1)])
    with pytest.raises(ValueError):
        graph.adjacency[0, 2] = 1
    with pytest.raises(ValueError):
        AdjacencyGraph(adjacency=np.triu(np.ones((3, 3)), k=1), labels=['a', 'b', 'c'])


def test_pearson_uses_good_frames_only():
    rng = np.random.default_rng(9)
    x = rng.normal(size=20)
    series = np.column_stack([x, x + 0.01 * rng.normal(size=20), rng.normal(size=20)])
    series[3] = [100.0, -100.0, 0.0]
    good = np.ones(20, dtype=bool)
    good[3] = False
    conn = compute_pearson_connectivity(series, ['a', 'b', 'c'], good=good)
    assert conn.matrix[0, 1] > 0.99
    assert np.allclose(np.diag(conn.matrix), 0.0)
    assert np.allclose(conn.matrix, conn.matrix.T)


def test_pearson_zeroes_missing_rows():
    rng = np.random.default_rng(10)
    series = rng.normal(size=(15, 3))
    series[:, 2] = 0.0
    conn = compute_pearson_connectivity(series, ['a', 'b', 'c'], missing=[False, False, True])
    assert np.all(conn.matrix[2] == 0.0)
    assert np.all(conn.matrix[:, 2] == 0.0)
    assert conn.missing.tolist() == [False, False, True]

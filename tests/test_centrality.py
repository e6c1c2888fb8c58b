import numpy as np
import pytest

from conftest import small_matrix
from keystone_network.centrality import (CENTRALITY_COLUMNS, closeness_within_component,
                                         compute_centralities, principal_eigenvector)
from keystone_network.network_builder import build_network


def _by_node(df):
    return df.set_index('node')


def test_path_graph():
    network = build_network(small_matrix({('A', 'B'): 0.5, ('B', 'C'): 0.5}), 0.3)
    df = _by_node(compute_centralities(network, group='G1'))

    assert df.loc['A', 'degree'] == 1
    assert df.loc['B', 'degree'] == 2
    # the single A-C shortest path runs through B and is counted once
    assert df.loc['B', 'betweenness'] == pytest.approx(1.0)
    assert df.loc['A', 'betweenness'] == pytest.approx(0.0)
    assert df.loc['A', 'closeness'] == pytest.approx(1 / 3)
    assert df.loc['B', 'closeness'] == pytest.approx(1 / 2)
    assert df.loc['B', 'eigen_centrality'] == pytest.approx(1.0)
    assert df.loc['A', 'eigen_centrality'] == pytest.approx(1 / np.sqrt(2))
    assert (df['transitivity'] == 0).all()


def test_triangle():
    network = build_network(small_matrix({('A', 'B'): 0.5, ('B', 'C'): 0.5, ('A', 'C'): 0.5}), 0.3)
    df = compute_centralities(network)
    assert df['transitivity'].tolist() == pytest.approx([1.0, 1.0, 1.0])
    assert df['eigen_centrality'].tolist() == pytest.approx([1.0, 1.0, 1.0])
    assert df['betweenness'].tolist() == pytest.approx([0.0, 0.0, 0.0])


def test_disconnected_graph():
    taxa = ('A', 'B', 'C', 'D', 'E')
    pairs = {('A', 'B'): 0.5, ('C', 'D'): 0.5, ('D', 'E'): 0.5, ('C', 'E'): 0.5}
    network = build_network(small_matrix(pairs, taxa=taxa), 0.3)

    closeness = closeness_within_component(network.graph)
    assert closeness['A'] == pytest.approx(1.0)
    assert closeness['C'] == pytest.approx(0.5)

    eigen = principal_eigenvector(network.graph)
    assert max(eigen.values()) == pytest.approx(1.0)
    assert eigen['A'] == pytest.approx(0.0, abs=1e-8)
    assert eigen['B'] == pytest.approx(0.0, abs=1e-8)


def test_columns_and_tags(correlation):
    network = build_network(correlation, 0.4)
    df = compute_centralities(network, group='G1')
    assert list(df.columns) == ['node', *CENTRALITY_COLUMNS, 'group', 'threshold']
    assert df['node'].tolist() == list(network.nodes)
    assert (df['group'] == 'G1').all()
    assert (df['threshold'] == 0.4).all()


def test_transitivity_bounds(correlation):
    for t in (0.2, 0.3, 0.4):
        df = compute_centralities(build_network(correlation, t))
        assert df['transitivity'].between(0, 1).all()
        assert (df.loc[df['degree'] < 2, 'transitivity'] == 0).all()
        assert (df['eigen_centrality'] <= 1 + 1e-12).all()

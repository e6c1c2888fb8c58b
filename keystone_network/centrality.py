# keystone_network/centrality.py
"""
Node centrality measures of a co-occurrence network snapshot.

All five measures are computed on the same frozen graph:
degree, betweenness, closeness, eigenvector centrality and local transitivity.
"""

import logging
from typing import Dict, Optional

import networkx as nx
import numpy as np
import pandas as pd

from .network_builder import CooccurrenceNetwork

logger = logging.getLogger(__name__)

CENTRALITY_COLUMNS = ['degree', 'betweenness', 'closeness', 'eigen_centrality', 'transitivity']


def closeness_within_component(graph: nx.Graph) -> Dict[str, float]:
    """
    Inverse sum of shortest-path distances to every node reachable from each node.

    Nodes of other components do not contribute, so the value is defined on
    disconnected graphs (igraph ``closeness`` convention, not normalised).
    """
    closeness = {}
    for node in graph.nodes():
        lengths = nx.single_source_shortest_path_length(graph, node)
        total = sum(lengths.values())
        closeness[node] = 1.0 / total if total > 0 else 0.0
    return closeness


def principal_eigenvector(graph: nx.Graph) -> Dict[str, float]:
    """
    Eigenvector centrality from the principal eigenvector of the whole adjacency matrix.

    The decomposition is global, also for disconnected graphs: nodes outside the
    dominant component get (near) zero scores. Values are scaled to a maximum of 1.
    """
    nodelist = list(graph.nodes())
    if not nodelist:
        return {}
    A = nx.to_numpy_array(graph, nodelist=nodelist, dtype=float)
    eigenvalues, eigenvectors = np.linalg.eigh(A)
    vec = np.abs(eigenvectors[:, np.argmax(eigenvalues)])
    peak = vec.max()
    if peak > 0:
        vec = vec / peak
    return dict(zip(nodelist, vec.tolist()))


def compute_centralities(network: CooccurrenceNetwork, group: Optional[str] = None) -> pd.DataFrame:
    """
    Compute the centrality record of every node in a network.

    Args:
        network: Snapshot produced by :func:`build_network`.
        group: Group label attached to every row.

    Returns:
        DataFrame with columns node, degree, betweenness, closeness,
        eigen_centrality, transitivity, group, threshold (one row per node,
        in network node order).
    """
    G = network.graph
    nodes = list(network.nodes)

    degree = dict(G.degree())
    # undirected + unnormalised: each unordered pair is counted once
    betweenness = nx.betweenness_centrality(G, normalized=False)
    closeness = closeness_within_component(G)
    eigen = principal_eigenvector(G)
    transitivity = nx.clustering(G)

    df = pd.DataFrame({
        'node': nodes,
        'degree': [int(degree[n]) for n in nodes],
        'betweenness': [float(betweenness[n]) for n in nodes],
        'closeness': [float(closeness[n]) for n in nodes],
        'eigen_centrality': [float(eigen[n]) for n in nodes],
        'transitivity': [float(transitivity.get(n, 0.0)) for n in nodes],
    })
    df['transitivity'] = df['transitivity'].fillna(0.0)
    df['group'] = group
    df['threshold'] = network.threshold

    logger.debug(f"Computed centralities for {len(df)} nodes at threshold {network.threshold}")
    return df

# keystone_network/network_builder.py
"""
Threshold a taxon-by-taxon correlation matrix into an undirected, unweighted
co-occurrence network and drop the nodes left without neighbours.
"""

import logging
from dataclasses import dataclass
from typing import Tuple

import networkx as nx
import numpy as np
import pandas as pd

from .exceptions import EmptyNetworkError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CooccurrenceNetwork:
    """Network of one (group, threshold) snapshot. ``graph`` is frozen."""
    threshold: float
    nodes: Tuple[str, ...]
    edges: Tuple[Tuple[str, str], ...]
    graph: nx.Graph
    n_taxa: int

    @property
    def n_isolated(self) -> int:
        return self.n_taxa - len(self.nodes)

    @property
    def density(self) -> float:
        return float(nx.density(self.graph))


def build_adjacency(correlation: pd.DataFrame, threshold: float) -> pd.DataFrame:
    """
    Boolean adjacency: True where |correlation| > threshold, never on the diagonal.

    Args:
        correlation: Aligned square correlation matrix.
        threshold: Absolute-correlation cutoff in (0, 1).

    Returns:
        Boolean DataFrame with the same labels as ``correlation``.
    """
    if not 0 < threshold < 1:
        raise ValueError(f"Threshold must lie in (0, 1), got {threshold}")
    values = correlation.to_numpy(dtype=float)
    # NaN compares False, so missing correlations never create edges
    adj = np.abs(values) > threshold
    # an edge in either triangle counts, as for an undirected igraph adjacency
    adj = adj | adj.T
    np.fill_diagonal(adj, False)
    return pd.DataFrame(adj, index=correlation.index, columns=correlation.columns)


def build_network(correlation: pd.DataFrame, threshold: float) -> CooccurrenceNetwork:
    """
    Build the thresholded network and remove isolated nodes.

    Each edge keeps the original correlation value as its ``correlation`` attribute.

    Raises:
        EmptyNetworkError: If no edge survives the threshold.
    """
    adj = build_adjacency(correlation, threshold)
    values = correlation.to_numpy(dtype=float)
    labels = list(correlation.index)

    rows, cols = np.nonzero(np.triu(adj.to_numpy(), k=1))
    # correlation attribute taken from the triangle that passed, upper first
    values = np.where(np.abs(values) > threshold, values, values.T)
    degree = adj.to_numpy().sum(axis=1)
    nodes = tuple(label for label, d in zip(labels, degree) if d > 0)
    if not nodes:
        raise EmptyNetworkError(f"All {len(labels)} taxa are isolated at threshold {threshold}")

    graph = nx.Graph()
    graph.add_nodes_from(nodes)
    edges = []
    for i, j in zip(rows, cols):
        graph.add_edge(labels[i], labels[j], correlation=float(values[i, j]))
        edges.append((labels[i], labels[j]))
    graph.graph['threshold'] = float(threshold)

    logger.info(
        f"Threshold {threshold}: {len(nodes)} nodes, {len(edges)} edges "
        f"({len(labels) - len(nodes)} isolated taxa removed)"
    )
    return CooccurrenceNetwork(
        threshold=float(threshold),
        nodes=nodes,
        edges=tuple(edges),
        graph=nx.freeze(graph),
        n_taxa=len(labels),
    )

# keystone_network/keystone_scorer.py
"""
Keystone Scorer module for keystone_network.
Combines standardized centralities into a composite keystone score and selects
the top fraction of nodes of one (group, threshold) snapshot:

1. Standardize degree, closeness, transitivity, eigenvector centrality and
   betweenness within the snapshot (zero mean, unit variance)
2. Replace undefined standardized values with 0
3. Weighted sum: 2*degree + 1.5*closeness + 1.5*transitivity + 1*eigen - 1*betweenness
4. Rank by score (ties by taxon ID) and keep the top K = max(1, round(N * top_fraction))

Keystone taxa are modeled as highly connected, clustered and reachable nodes
that are not primarily global bridges, hence the negative betweenness weight.
"""

import logging
from typing import Dict, Optional, Sequence

import numpy as np
import pandas as pd
from sklearn.preprocessing import StandardScaler

from .config import DEFAULT_SCORE_WEIGHTS, KeystoneConfig

logger = logging.getLogger(__name__)

# centrality column -> standardized column
Z_COLUMNS = {
    'degree': 'degree_z',
    'closeness': 'closeness_z',
    'transitivity': 'transitivity_z',
    'eigen_centrality': 'eigen_z',
    'betweenness': 'betweenness_z',
}


def standardize_features(centralities: pd.DataFrame,
                         features: Sequence[str] = tuple(Z_COLUMNS)) -> pd.DataFrame:
    """
    Z-score each feature independently across the nodes of one snapshot.

    A feature with zero variance standardizes to exactly 0 for every node.

    Args:
        centralities: Centrality records of a single (group, threshold).
        features: Centrality columns to standardize.

    Returns:
        DataFrame of the ``*_z`` columns, indexed like ``centralities``.
    """
    z_cols = [Z_COLUMNS[f] for f in features]
    if centralities.empty:
        return pd.DataFrame(columns=z_cols, index=centralities.index, dtype=float)

    values = centralities[list(features)].to_numpy(dtype=float)
    scaled = StandardScaler().fit_transform(values)
    scaled[~np.isfinite(scaled)] = 0.0
    # constant up to floating point noise (e.g. eigenvector entries of a complete graph)
    constant = np.all(np.isclose(values, values[:1], rtol=1e-9, atol=1e-12), axis=0)
    scaled[:, constant] = 0.0
    return pd.DataFrame(scaled, columns=z_cols, index=centralities.index)


def compute_keystone_scores(centralities: pd.DataFrame,
                            weights: Optional[Dict[str, float]] = None) -> pd.DataFrame:
    """
    Return a copy of ``centralities`` with the standardized features and ``keystone_score``.
    """
    weights = {**DEFAULT_SCORE_WEIGHTS, **(weights or {})}
    z = standardize_features(centralities, tuple(Z_COLUMNS))
    scored = pd.concat([centralities.copy(), z], axis=1)
    scored['keystone_score'] = sum(weights[f] * scored[Z_COLUMNS[f]] for f in Z_COLUMNS)
    return scored


def keystone_count(n_nodes: int, top_fraction: float = 0.1) -> int:
    """K = max(1, round(n_nodes * top_fraction)), never above n_nodes."""
    if n_nodes <= 0:
        return 0
    # round() is half-to-even, like R's round()
    return int(min(n_nodes, max(1, round(n_nodes * top_fraction))))


def select_keystone_taxa(scored: pd.DataFrame, top_fraction: float = 0.1) -> pd.DataFrame:
    """
    Rank nodes by descending keystone score and keep the top fraction.

    Ties are broken by taxon ID ascending. The result carries ``keystone_rank``
    (1..K) and is ordered by it.
    """
    k = keystone_count(len(scored), top_fraction)
    # scores equal up to floating point noise count as ties
    ranked = (
        scored.assign(_rank_key=scored['keystone_score'].round(10))
        .sort_values(['_rank_key', 'node'], ascending=[False, True], kind='mergesort')
        .drop(columns='_rank_key')
    )
    keystones = ranked.head(k).reset_index(drop=True)
    keystones['keystone_rank'] = np.arange(1, len(keystones) + 1)
    return keystones


def score(centralities: pd.DataFrame, weights: Optional[Dict[str, float]] = None,
          top_fraction: float = 0.1) -> pd.DataFrame:
    """Stateless scoring transform: centrality records -> ranked keystone taxa."""
    return select_keystone_taxa(compute_keystone_scores(centralities, weights), top_fraction)


class KeystoneScorer:
    """Applies the configured weights and top fraction to centrality snapshots."""

    def __init__(self, config: KeystoneConfig):
        self.config = config
        self.weights = {**DEFAULT_SCORE_WEIGHTS, **config.score_weights}
        self.top_fraction = config.top_fraction

    def score_all(self, centralities: pd.DataFrame) -> pd.DataFrame:
        """Keystone scores for every node of the snapshot."""
        return compute_keystone_scores(centralities, self.weights)

    def identify(self, centralities: pd.DataFrame) -> pd.DataFrame:
        """Top-ranked keystone taxa of the snapshot."""
        keystones = score(centralities, self.weights, self.top_fraction)
        logger.info(f"Selected {len(keystones)} keystone taxa out of {len(centralities)} nodes")
        return keystones

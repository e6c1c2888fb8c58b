# keystone_network/sensitivity.py
"""
Threshold sensitivity of keystone taxa.

For each group the network -> centrality -> keystone steps are repeated over a
set of correlation thresholds. The keystone sets are then compared between
thresholds (Jaccard overlap) and nodes selected at several thresholds are
reported as robust keystone taxa.
"""

import logging
from dataclasses import dataclass, field
from itertools import combinations
from typing import Dict, Iterable, List, Optional

import numpy as np
import pandas as pd

from .centrality import compute_centralities
from .config import KeystoneConfig
from .data_loader import DataLoader
from .exceptions import EmptyNetworkError, InsufficientDataError
from .keystone_scorer import KeystoneScorer
from .network_builder import build_network

logger = logging.getLogger(__name__)

KEYSTONE_COLUMNS = [
    'node', 'group', 'threshold', 'degree', 'betweenness', 'closeness', 'transitivity',
    'eigen_centrality', 'degree_z', 'closeness_z', 'transitivity_z', 'eigen_z', 'betweenness_z',
    'keystone_score', 'keystone_rank',
]


@dataclass
class GroupSensitivityResult:
    """Everything computed for one group across its thresholds."""
    group: str
    centralities: pd.DataFrame
    keystones: pd.DataFrame
    network_stats: pd.DataFrame
    skipped: List[Dict] = field(default_factory=list)

    @property
    def thresholds_completed(self) -> List[float]:
        return sorted(self.keystones['threshold'].unique().tolist()) if not self.keystones.empty else []


def jaccard_index(a: Iterable[str], b: Iterable[str]) -> float:
    """|A & B| / |A | B|, defined as 0 when both sets are empty."""
    a, b = set(a), set(b)
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


class SensitivityAnalyzer:
    """Runs the keystone identification of one group at every configured threshold."""

    def __init__(self, config: KeystoneConfig):
        self.config = config
        self.thresholds = sorted(float(t) for t in config.thresholds)
        self.loader = DataLoader()
        self.scorer = KeystoneScorer(config)

    def analyze_group(self, group: str, correlation: pd.DataFrame,
                      metadata: Optional[pd.DataFrame] = None) -> GroupSensitivityResult:
        """
        Identify keystone taxa of one group at each threshold.

        Args:
            group: Group label.
            correlation: The group's correlation matrix (aligned or raw).
            metadata: Optional node metadata table; when given, the taxon set of each
                threshold is restricted to the nodes it records for (group, threshold).

        Returns:
            GroupSensitivityResult. Thresholds with too few taxa or an empty network
            are listed in ``skipped`` instead of raising.
        """
        centrality_tables, keystone_tables, stats, skipped = [], [], [], []

        for threshold in self.thresholds:
            try:
                required = None
                if metadata is not None:
                    required = self.loader.metadata_nodes(metadata, group, threshold)
                (aligned,), taxa = self.loader.align_matrices(
                    [correlation], required_ids=required, min_taxa=self.config.min_common_taxa
                )
                network = build_network(aligned, threshold)
            except (InsufficientDataError, EmptyNetworkError) as e:
                logger.warning(f"  Group {group}, threshold {threshold}: skipped ({e})")
                skipped.append({'group': group, 'threshold': threshold,
                                'reason': type(e).__name__, 'detail': str(e)})
                continue

            centralities = compute_centralities(network, group=group)
            scored = self.scorer.score_all(centralities)
            keystones = self.scorer.identify(centralities)

            centrality_tables.append(scored)
            keystone_tables.append(keystones)
            stats.append({
                'group': group,
                'threshold': threshold,
                'n_taxa': len(taxa),
                'n_nodes': len(network.nodes),
                'n_edges': len(network.edges),
                'n_isolated': network.n_isolated,
                'density': round(network.density, 6),
                'n_keystone': len(keystones),
            })
            logger.info(f"  Group {group}: identified {len(keystones)} keystone taxa at threshold {threshold}")

        return GroupSensitivityResult(
            group=group,
            centralities=concat_tables(centrality_tables),
            keystones=concat_tables(keystone_tables, columns=KEYSTONE_COLUMNS),
            network_stats=pd.DataFrame(stats),
            skipped=skipped,
        )


def concat_tables(tables: List[pd.DataFrame], columns: Optional[List[str]] = None) -> pd.DataFrame:
    """Concatenate the non-empty tables, optionally selecting ``columns``."""
    tables = [t for t in tables if not t.empty]
    if not tables:
        return pd.DataFrame(columns=columns or [])
    df = pd.concat(tables, ignore_index=True)
    return df[columns] if columns else df


def summarize_keystones(keystones: pd.DataFrame) -> pd.DataFrame:
    """Per (group, threshold) keystone count and mean centralities."""
    if keystones.empty:
        return pd.DataFrame(columns=['group', 'threshold', 'n_keystone', 'avg_degree', 'avg_betweenness',
                                     'avg_closeness', 'avg_transitivity', 'avg_eigen_centrality',
                                     'avg_keystone_score'])
    return (
        keystones.groupby(['group', 'threshold'], sort=True)
        .agg(
            n_keystone=('node', 'size'),
            avg_degree=('degree', 'mean'),
            avg_betweenness=('betweenness', 'mean'),
            avg_closeness=('closeness', 'mean'),
            avg_transitivity=('transitivity', 'mean'),
            avg_eigen_centrality=('eigen_centrality', 'mean'),
            avg_keystone_score=('keystone_score', 'mean'),
        )
        .reset_index()
    )


def threshold_overlap(keystones: pd.DataFrame, thresholds: Optional[Iterable[float]] = None) -> pd.DataFrame:
    """
    Jaccard overlap of keystone sets between every pair of thresholds within each group.

    Args:
        keystones: Keystone table of one or more groups.
        thresholds: Thresholds to compare; defaults to those present per group. A
            threshold missing for a group contributes an empty set.

    Returns:
        DataFrame with group, threshold_a, threshold_b, adjacent, n_a, n_b,
        intersection, union, jaccard.
    """
    rows = []
    if keystones.empty:
        keystones = pd.DataFrame(columns=['group', 'threshold', 'node'])
    for group, group_df in keystones.groupby('group', sort=True):
        levels = sorted(set(thresholds) if thresholds is not None else set(group_df['threshold']))
        sets = {t: set(group_df.loc[np.isclose(group_df['threshold'], t), 'node']) for t in levels}
        for (i, ta), (j, tb) in combinations(enumerate(levels), 2):
            a, b = sets[ta], sets[tb]
            rows.append({
                'group': group,
                'threshold_a': ta,
                'threshold_b': tb,
                'adjacent': j == i + 1,
                'n_a': len(a),
                'n_b': len(b),
                'intersection': len(a & b),
                'union': len(a | b),
                'jaccard': jaccard_index(a, b),
            })
    return pd.DataFrame(rows, columns=['group', 'threshold_a', 'threshold_b', 'adjacent', 'n_a', 'n_b',
                                       'intersection', 'union', 'jaccard'])


def robust_keystone_taxa(keystones: pd.DataFrame, min_thresholds: int = 2) -> pd.DataFrame:
    """Nodes that are keystone taxa of the same group at ``min_thresholds`` or more thresholds."""
    columns = ['node', 'group', 'n_thresholds', 'thresholds']
    if keystones.empty:
        return pd.DataFrame(columns=columns)

    grouped = keystones.groupby(['node', 'group'])['threshold']
    robust = grouped.agg(
        n_thresholds='nunique',
        thresholds=lambda s: ','.join(f"{t:g}" for t in sorted(s.unique())),
    ).reset_index()
    robust = robust[robust['n_thresholds'] >= min_thresholds]
    robust = robust.sort_values(['group', 'n_thresholds', 'node'], ascending=[True, False, True])
    return robust[columns].reset_index(drop=True)


def keystone_feature_correlations(keystones: pd.DataFrame) -> pd.DataFrame:
    """Spearman correlations between centralities of the keystone taxa of each (group, threshold)."""
    pairs = {
        'deg_bet_cor': ('degree', 'betweenness'),
        'deg_close_cor': ('degree', 'closeness'),
        'deg_trans_cor': ('degree', 'transitivity'),
        'bet_close_cor': ('betweenness', 'closeness'),
    }
    rows = []
    for (group, threshold), df in keystones.groupby(['group', 'threshold'], sort=True):
        row = {'group': group, 'threshold': threshold, 'n_keystone': len(df)}
        for name, (x, y) in pairs.items():
            if len(df) < 3 or df[x].nunique() < 2 or df[y].nunique() < 2:
                row[name] = np.nan
            else:
                row[name] = float(df[x].corr(df[y], method='spearman'))
        rows.append(row)
    return pd.DataFrame(rows, columns=['group', 'threshold', 'n_keystone', *pairs])

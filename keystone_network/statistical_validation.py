"""
Statistical validation module for keystone_network.
Implements the statistical checks that run beside the threshold-driven network path:
1. Significance filtering of taxon pairs (p-value and correlation magnitude)
2. Group-level edge statistics of the filtered network
3. Comparison of two correlation methods (e.g. SparCC against Spearman)

The significance filter is a strict per-pair test; it does not depend on the
network topology and applies no multiple-testing correction.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

import numpy as np
import pandas as pd
from scipy import stats

from .config import KeystoneConfig
from .data_loader import DataLoader
from .exceptions import InsufficientDataError

logger = logging.getLogger(__name__)

EDGE_COLUMNS = ['ASV1', 'ASV2', 'Correlation', 'P_value', 'Significant']
SUMMARY_COLUMNS = [
    'Group', 'Total_ASVs', 'Total_Edges', 'Significant_Edges', 'Positive_Correlations',
    'Negative_Correlations', 'Significance_Ratio', 'Mean_Correlation', 'Mean_Abs_Correlation',
]


@dataclass
class SignificanceResult:
    """Pairwise table, significant subset and summary row of one group."""
    group: str
    edges: pd.DataFrame
    significant_edges: pd.DataFrame
    summary: Dict


def upper_triangle_pairs(matrix: pd.DataFrame) -> pd.DataFrame:
    """Long table (ASV1, ASV2, value) of the upper triangle, diagonal excluded, row-major order."""
    labels = matrix.index.to_numpy()
    rows, cols = np.triu_indices(len(labels), k=1)
    return pd.DataFrame({
        'ASV1': labels[rows],
        'ASV2': labels[cols],
        'value': matrix.to_numpy(dtype=float)[rows, cols],
    })


class SignificanceFilter:
    """
    Classifies every taxon pair of a group as significant or not.

    A pair is significant when ``P_value < significance_level`` and
    ``|Correlation| > min_abs_correlation`` (0.05 and 0.3 by default).
    """

    def __init__(self, config: KeystoneConfig):
        """
        Initialize the SignificanceFilter.

        Args:
            config: Configuration object providing the significance level, the
                correlation magnitude cutoff and the minimum number of common taxa.
        """
        self.config = config
        self.alpha = getattr(config, 'significance_level', 0.05)
        self.min_abs_correlation = getattr(config, 'min_abs_correlation', 0.3)
        self.min_taxa = getattr(config, 'min_common_taxa', 10)
        self.loader = DataLoader()

    def pairwise_table(self, correlation: pd.DataFrame, pvalues: pd.DataFrame) -> pd.DataFrame:
        """
        Build the pairwise edge table of two aligned matrices.

        Args:
            correlation: Correlation matrix.
            pvalues: P-value matrix with the same labels and order.

        Returns:
            DataFrame with ASV1, ASV2, Correlation, P_value, Significant.
        """
        if not correlation.index.equals(pvalues.index) or not correlation.columns.equals(pvalues.columns):
            raise ValueError("Correlation and p-value matrices must be aligned before comparison.")

        pairs = upper_triangle_pairs(correlation)
        pairs = pairs.rename(columns={'value': 'Correlation'})
        rows, cols = np.triu_indices(len(correlation), k=1)
        pairs['P_value'] = pvalues.to_numpy(dtype=float)[rows, cols]
        pairs['Significant'] = (pairs['P_value'] < self.alpha) & (pairs['Correlation'].abs() > self.min_abs_correlation)
        return pairs[EDGE_COLUMNS]

    def summarize(self, group: str, edges: pd.DataFrame, n_taxa: int) -> Dict:
        """Group-level counts of a pairwise edge table."""
        n_edges = int(len(edges))
        significant = edges['Significant']
        n_significant = int(significant.sum())
        return {
            'Group': group,
            'Total_ASVs': int(n_taxa),
            'Total_Edges': n_edges,
            'Significant_Edges': n_significant,
            'Positive_Correlations': int((significant & (edges['Correlation'] > 0)).sum()),
            'Negative_Correlations': int((significant & (edges['Correlation'] < 0)).sum()),
            'Significance_Ratio': round(n_significant / n_edges * 100, 2) if n_edges else 0.0,
            'Mean_Correlation': round(float(edges['Correlation'].mean()), 4) if n_edges else float('nan'),
            'Mean_Abs_Correlation': round(float(edges['Correlation'].abs().mean()), 4) if n_edges else float('nan'),
        }

    def filter_group(self, group: str, correlation: pd.DataFrame, pvalues: pd.DataFrame,
                     output_dir: Optional[str] = None) -> SignificanceResult:
        """
        Align the matrices of one group, classify every pair and summarize.

        Args:
            group: Group label.
            correlation: Correlation matrix as loaded.
            pvalues: P-value matrix as loaded.
            output_dir: Directory to save the edge tables (optional).

        Returns:
            SignificanceResult.

        Raises:
            InsufficientDataError: If fewer than ``min_common_taxa`` taxa are shared.
        """
        logger.info(f"🧮 Significance filtering for group {group}...")
        (cor, pval), taxa = self.loader.align_matrices([correlation, pvalues], min_taxa=self.min_taxa)

        edges = self.pairwise_table(cor, pval)
        significant_edges = edges[edges['Significant']].reset_index(drop=True)
        summary = self.summarize(group, edges, len(taxa))

        logger.info(f"  Total edges: {summary['Total_Edges']}")
        logger.info(f"  Significant edges: {summary['Significant_Edges']}")
        logger.info(f"  Positive correlations: {summary['Positive_Correlations']}")
        logger.info(f"  Negative correlations: {summary['Negative_Correlations']}")

        if output_dir:
            output_dir = Path(output_dir)
            output_dir.mkdir(parents=True, exist_ok=True)
            edges.to_csv(output_dir / f"sparcc_network_{group}.txt", sep='\t', index=False)
            significant_edges.to_csv(output_dir / f"sparcc_significant_network_{group}.txt", sep='\t', index=False)
            logger.info(f"  Results saved to: {output_dir}")

        return SignificanceResult(group=group, edges=edges, significant_edges=significant_edges, summary=summary)


def _describe(values: np.ndarray, strong: np.ndarray) -> Dict:
    return {
        'min': float(np.min(values)),
        'max': float(np.max(values)),
        'mean': float(np.mean(values)),
        'sd': float(np.std(values, ddof=1)) if len(values) > 1 else float('nan'),
        'strong_percent': round(float(strong.mean() * 100), 2),
        'n_strong': int(strong.sum()),
    }


def compare_correlation_methods(group: str, primary: pd.DataFrame, alternative: pd.DataFrame,
                                strong_threshold: float = 0.3, min_taxa: int = 10,
                                primary_name: str = 'SparCC', alternative_name: str = 'Spearman') -> Dict:
    """
    Compare the pairwise values of two correlation methods on their common taxa.

    Reports the distribution of each method, how many pairs are strong
    (|r| > ``strong_threshold``) under each, the Jaccard index of the strong-edge
    sets and the Spearman rank correlation between the two methods.

    Args:
        group: Group label.
        primary: Correlation matrix of the primary method.
        alternative: Correlation matrix of the alternative method.
        strong_threshold: Absolute-correlation cutoff for a strong edge.
        min_taxa: Minimum number of common taxa.
        primary_name: Label of the primary method in the result keys.
        alternative_name: Label of the alternative method in the result keys.

    Returns:
        Flat dictionary, one comparison row.

    Raises:
        InsufficientDataError: If fewer than ``min_taxa`` taxa are shared,
            or no pair is finite in both matrices.
    """
    logger.info(f"📊 Comparing {primary_name} and {alternative_name} for group {group}...")
    (a, b), taxa = DataLoader().align_matrices([primary, alternative], min_taxa=min_taxa)

    a_vec = upper_triangle_pairs(a)['value'].to_numpy()
    b_vec = upper_triangle_pairs(b)['value'].to_numpy()
    finite = np.isfinite(a_vec) & np.isfinite(b_vec)
    if not finite.any():
        raise InsufficientDataError(f"No taxon pair of group {group} has finite values in both matrices")
    a_vec, b_vec = a_vec[finite], b_vec[finite]

    strong_a = np.abs(a_vec) > strong_threshold
    strong_b = np.abs(b_vec) > strong_threshold
    n_common = int((strong_a & strong_b).sum())
    n_either = int((strong_a | strong_b).sum())

    rho, p_value = stats.spearmanr(a_vec, b_vec)

    row = {'Group': group, 'Common_ASVs': len(taxa), 'Number_of_edges': int(len(a_vec))}
    for name, vec, strong in ((primary_name, a_vec, strong_a), (alternative_name, b_vec, strong_b)):
        for key, value in _describe(vec, strong).items():
            row[f"{name}_{key}"] = value
    row.update({
        'Common_Strong_Edges': n_common,
        'Jaccard_Index': round(n_common / n_either, 4) if n_either else 0.0,
        'Spearman_rho': float(rho),
        'Spearman_p_value': float(p_value),
    })
    logger.info(f"  Strong edges: {primary_name} {int(strong_a.sum())}, "
                f"{alternative_name} {int(strong_b.sum())}, common {n_common}")
    return row
